"""
Achievement catalog: the static, versioned definitions of every achievement.

Requirements are a closed set of tagged dataclasses (``kind`` is the tag), so a
catalog can be loaded from JSON with pydantic and evaluated with ``match``.
"""
import json
import logging
from enum import Enum
from typing import Annotated, Dict, Iterable, Iterator, List, Literal, Optional, Tuple, Union

from pydantic import Field, TypeAdapter, ValidationError
from pydantic.dataclasses import dataclass

from .exceptions import CatalogLoadError

logger = logging.getLogger(__name__)

CATALOG_VERSION = "2025.09.2"


class AchievementCategory(str, Enum):
    MILESTONE = "milestone"
    STREAK = "streak"
    GOAL = "goal"
    TIME = "time"
    QUALITY = "quality"
    SPECIAL = "special"


class AchievementTier(str, Enum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"
    DIAMOND = "diamond"
    LEGENDARY = "legendary"


class AchievementRarity(str, Enum):
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


class Comparison(str, Enum):
    GTE = "gte"
    GT = "gt"
    EQ = "eq"

    def holds(self, value, threshold) -> bool:
        if self is Comparison.GTE:
            return value >= threshold
        if self is Comparison.GT:
            return value > threshold
        return value == threshold


class CountMetric(str, Enum):
    APPLICATIONS = "applications"
    INTERVIEWS = "interviews"
    OFFERS = "offers"
    REJECTIONS = "rejections"
    ACHIEVEMENTS = "achievements"


class StreakScope(str, Enum):
    CURRENT = "current"
    LONGEST = "longest"


class GoalPeriod(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    TOTAL = "total"


class TimeWindow(str, Enum):
    EARLY_BIRD = "early_bird"
    NIGHT_OWL = "night_owl"
    WEEKEND = "weekend"


class ApplicationCategory(str, Enum):
    RESUME = "resume"
    COVER_LETTER = "cover_letter"
    NOTES = "notes"
    REMOTE = "remote"
    HYBRID = "hybrid"
    ONSITE = "onsite"


NonNegativeInt = Annotated[int, Field(ge=0)]


@dataclass(frozen=True)
class CountThreshold:
    metric: CountMetric
    threshold: NonNegativeInt
    comparison: Comparison = Comparison.GTE
    kind: Literal["count"] = "count"


@dataclass(frozen=True)
class StreakThreshold:
    threshold: NonNegativeInt
    scope: StreakScope = StreakScope.LONGEST
    comparison: Comparison = Comparison.GTE
    kind: Literal["streak"] = "streak"


@dataclass(frozen=True)
class GoalCompletion:
    """At least ``count`` goal periods (or the one named) at ``min_percent`` or more."""
    count: NonNegativeInt = 1
    period: Optional[GoalPeriod] = None
    min_percent: Annotated[float, Field(ge=0)] = 100.0
    comparison: Comparison = Comparison.GTE
    kind: Literal["goal"] = "goal"


@dataclass(frozen=True)
class TimeWindowFlag:
    window: TimeWindow
    expected: bool = True
    kind: Literal["time_window"] = "time_window"


@dataclass(frozen=True)
class CategoryCount:
    category: ApplicationCategory
    threshold: NonNegativeInt
    comparison: Comparison = Comparison.GTE
    kind: Literal["category"] = "category"


@dataclass(frozen=True)
class SetMembershipCount:
    set_name: str
    threshold: NonNegativeInt
    comparison: Comparison = Comparison.GTE
    kind: Literal["set_membership"] = "set_membership"


Requirement = Annotated[
    Union[
        CountThreshold,
        StreakThreshold,
        GoalCompletion,
        TimeWindowFlag,
        CategoryCount,
        SetMembershipCount,
    ],
    Field(discriminator="kind"),
]


@dataclass(frozen=True)
class AchievementDefinition:
    id: Annotated[str, Field(min_length=1)]
    name: str
    description: str
    category: AchievementCategory
    tier: AchievementTier
    rarity: AchievementRarity
    xp_reward: NonNegativeInt
    requirements: Annotated[Tuple[Requirement, ...], Field(min_length=1)]
    icon: str = "Award"


_definitions_adapter = TypeAdapter(List[AchievementDefinition])
_requirements_adapter = TypeAdapter(Tuple[Requirement, ...])


def requirements_to_json(requirements) -> list:
    """Serialize a requirement tuple to JSON-compatible dicts."""
    return _requirements_adapter.dump_python(tuple(requirements), mode="json")


def _achievement(id, name, description, category, tier, rarity, icon, xp_reward, *requirements):
    return AchievementDefinition(
        id=id,
        name=name,
        description=description,
        category=AchievementCategory(category),
        tier=AchievementTier(tier),
        rarity=AchievementRarity(rarity),
        icon=icon,
        xp_reward=xp_reward,
        requirements=tuple(requirements),
    )


DEFAULT_ACHIEVEMENTS: Tuple[AchievementDefinition, ...] = (
    # Milestones
    _achievement("first_application", "First Steps", "Submit your first job application",
                 "milestone", "bronze", "common", "Target", 10,
                 CountThreshold(metric=CountMetric.APPLICATIONS, threshold=1)),
    _achievement("ten_applications", "Getting Started", "Submit 10 job applications",
                 "milestone", "bronze", "common", "Target", 25,
                 CountThreshold(metric=CountMetric.APPLICATIONS, threshold=10)),
    _achievement("fifty_applications", "Job Hunter", "Submit 50 job applications",
                 "milestone", "silver", "uncommon", "Target", 50,
                 CountThreshold(metric=CountMetric.APPLICATIONS, threshold=50)),
    _achievement("hundred_applications", "Application Master", "Submit 100 job applications",
                 "milestone", "gold", "rare", "Target", 100,
                 CountThreshold(metric=CountMetric.APPLICATIONS, threshold=100)),
    _achievement("five_hundred_applications", "Job Search Legend", "Submit 500 job applications",
                 "milestone", "platinum", "epic", "Target", 250,
                 CountThreshold(metric=CountMetric.APPLICATIONS, threshold=500)),
    _achievement("thousand_applications", "Legendary Job Seeker",
                 "Submit 1000 job applications - The ultimate achievement!",
                 "milestone", "legendary", "legendary", "Crown", 1000,
                 CountThreshold(metric=CountMetric.APPLICATIONS, threshold=1000)),
    _achievement("first_interview", "First Interview", "Get your first job interview",
                 "milestone", "silver", "uncommon", "Video", 75,
                 CountThreshold(metric=CountMetric.INTERVIEWS, threshold=1)),
    _achievement("first_offer", "First Offer", "Receive your first job offer",
                 "milestone", "gold", "rare", "Award", 150,
                 CountThreshold(metric=CountMetric.OFFERS, threshold=1)),
    # Streaks
    _achievement("three_day_streak", "Warming Up", "Maintain a 3-day application streak",
                 "streak", "bronze", "common", "Flame", 15,
                 StreakThreshold(threshold=3)),
    _achievement("week_streak", "Consistent", "Maintain a 7-day application streak",
                 "streak", "silver", "uncommon", "Flame", 30,
                 StreakThreshold(threshold=7)),
    _achievement("month_streak", "Dedicated", "Maintain a 30-day application streak",
                 "streak", "gold", "rare", "Flame", 75,
                 StreakThreshold(threshold=30)),
    _achievement("hundred_day_streak", "Streak Legend", "Maintain a 100-day application streak",
                 "streak", "diamond", "legendary", "Flame", 500,
                 StreakThreshold(threshold=100)),
    # Goals
    _achievement("weekly_goal_achiever", "Weekly Warrior", "Complete your weekly goal",
                 "goal", "bronze", "common", "Award", 25,
                 GoalCompletion(period=GoalPeriod.WEEKLY)),
    _achievement("monthly_goal_achiever", "Monthly Crusher", "Complete your monthly goal",
                 "goal", "silver", "uncommon", "Award", 50,
                 GoalCompletion(period=GoalPeriod.MONTHLY)),
    _achievement("goal_overachiever", "Overachiever", "Exceed your weekly goal by 50%",
                 "goal", "gold", "rare", "TrendingUp", 75,
                 GoalCompletion(period=GoalPeriod.WEEKLY, min_percent=150.0)),
    # Time
    _achievement("early_bird", "Early Bird", "Submit an application before 9 AM",
                 "time", "bronze", "common", "Sunrise", 10,
                 TimeWindowFlag(window=TimeWindow.EARLY_BIRD)),
    _achievement("night_owl", "Night Owl", "Submit an application after 8 PM",
                 "time", "bronze", "common", "Moon", 10,
                 TimeWindowFlag(window=TimeWindow.NIGHT_OWL)),
    _achievement("weekend_warrior", "Weekend Warrior", "Submit an application on the weekend",
                 "time", "silver", "uncommon", "Calendar", 15,
                 TimeWindowFlag(window=TimeWindow.WEEKEND)),
    # Quality
    _achievement("cover_letter_pro", "Cover Letter Pro",
                 "Upload cover letter attachments to 10 applications",
                 "quality", "silver", "uncommon", "FileText", 30,
                 CategoryCount(category=ApplicationCategory.COVER_LETTER, threshold=10)),
    _achievement("resume_optimizer", "Resume Optimizer",
                 "Upload resume attachments to 10 applications",
                 "quality", "gold", "rare", "FileEdit", 40,
                 CategoryCount(category=ApplicationCategory.RESUME, threshold=10)),
    _achievement("remote_seeker", "Remote Seeker", "Apply to 10 remote positions",
                 "quality", "silver", "uncommon", "Home", 25,
                 CategoryCount(category=ApplicationCategory.REMOTE, threshold=10)),
    _achievement("note_taker", "Note Taker", "Add notes to 10 applications",
                 "quality", "bronze", "common", "FileText", 30,
                 CategoryCount(category=ApplicationCategory.NOTES, threshold=10)),
    # Special
    _achievement("faang_hunter", "FAANG Hunter", "Apply to 5 FAANG companies",
                 "special", "gold", "rare", "Trophy", 100,
                 SetMembershipCount(set_name="faang", threshold=5)),
    _achievement("achievement_collector", "Achievement Collector", "Unlock 5 achievements",
                 "special", "platinum", "epic", "Trophy", 150,
                 CountThreshold(metric=CountMetric.ACHIEVEMENTS, threshold=5)),
)


class AchievementCatalog:
    """Immutable, ordered collection of achievement definitions."""

    def __init__(self, definitions: Iterable[AchievementDefinition], version: str = CATALOG_VERSION):
        by_id: Dict[str, AchievementDefinition] = {}
        for definition in definitions:
            if definition.id in by_id:
                raise CatalogLoadError(f"Duplicate achievement id in catalog: {definition.id}")
            by_id[definition.id] = definition
        self._by_id = by_id
        self.version = version

    def __len__(self) -> int:
        return len(self._by_id)

    def __iter__(self) -> Iterator[AchievementDefinition]:
        return iter(self._by_id.values())

    def __contains__(self, achievement_id) -> bool:
        return achievement_id in self._by_id

    def get(self, achievement_id: str) -> Optional[AchievementDefinition]:
        return self._by_id.get(achievement_id)

    def ids(self) -> List[str]:
        return list(self._by_id)

    def total_xp(self, achievement_ids: Iterable[str]) -> int:
        """Sum of xp_reward over the distinct known ids."""
        return sum(self._by_id[a].xp_reward for a in set(achievement_ids) if a in self._by_id)

    def to_rows(self) -> List[dict]:
        """Rows for the ``achievements`` catalog table."""
        return [
            {
                "id": d.id,
                "name": d.name,
                "description": d.description,
                "category": d.category.value,
                "tier": d.tier.value,
                "rarity": d.rarity.value,
                "icon": d.icon,
                "xp_reward": d.xp_reward,
                "requirements": requirements_to_json(d.requirements),
                "catalog_version": self.version,
            }
            for d in self
        ]


def parse_catalog(data: dict) -> AchievementCatalog:
    """Build a catalog from its JSON document ``{"version": ..., "achievements": [...]}``."""
    if not isinstance(data, dict) or "achievements" not in data:
        raise CatalogLoadError("Catalog document must be an object with an 'achievements' list")
    try:
        definitions = _definitions_adapter.validate_python(data["achievements"])
    except ValidationError as e:
        raise CatalogLoadError(f"Invalid achievement catalog: {e}") from e
    return AchievementCatalog(definitions, version=str(data.get("version", "unversioned")))


def load_catalog(path: Optional[str] = None) -> AchievementCatalog:
    """
    Load the achievement catalog.

    Args:
        path: Optional JSON catalog file. The built-in catalog is used when omitted.

    Raises:
        CatalogLoadError: If the file cannot be read or fails validation.
    """
    if path is None:
        catalog = AchievementCatalog(DEFAULT_ACHIEVEMENTS)
    else:
        try:
            with open(path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as e:
            raise CatalogLoadError(f"Could not read achievement catalog {path}: {e}") from e
        catalog = parse_catalog(data)

    logger.info("Loaded achievement catalog v%s with %d achievements", catalog.version, len(catalog))
    return catalog
