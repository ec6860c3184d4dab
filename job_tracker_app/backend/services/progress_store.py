"""
Session-owned reactive state for achievement and progress views.

The store holds the latest snapshot and notifies subscribers whenever it
changes. Filtering and sorting are pure projections over the snapshot and
never touch unlock state.
"""
import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from .achievement_catalog import (
    AchievementCatalog,
    AchievementCategory,
    AchievementRarity,
    AchievementTier,
)
from .achievement_repository import AchievementRepository, ProgressStats
from .exceptions import StoreUnavailableError
from .level_engine import UserLevel, build_user_level, compute_level
from .metrics import MetricsSnapshot
from .requirement_evaluator import achievement_progress
from .streak_calculator import StreakStats

logger = logging.getLogger(__name__)

TIER_ORDER = {tier: i for i, tier in enumerate(AchievementTier)}


class SortKey(str, Enum):
    CATALOG = "catalog"
    NAME = "name"
    XP = "xp"
    TIER = "tier"
    RECENT = "recent"


@dataclass(frozen=True)
class AchievementView:
    id: str
    name: str
    description: str
    category: AchievementCategory
    tier: AchievementTier
    rarity: AchievementRarity
    icon: str
    xp_reward: int
    unlocked: bool = False
    unlocked_at: Optional[datetime] = None
    pending: bool = False  # unlocked locally, not yet confirmed by the store
    progress: float = 0.0
    current: float = 0
    target: float = 0


@dataclass(frozen=True)
class AchievementFilter:
    category: Optional[AchievementCategory] = None
    tier: Optional[AchievementTier] = None
    rarity: Optional[AchievementRarity] = None
    unlocked: Optional[bool] = None
    search: Optional[str] = None


@dataclass(frozen=True)
class ProgressSnapshot:
    user_id: int
    stats: ProgressStats = field(default_factory=ProgressStats)
    level: UserLevel = field(default_factory=lambda: build_user_level(0))
    achievements: Tuple[AchievementView, ...] = ()
    filter: AchievementFilter = field(default_factory=AchievementFilter)
    evaluation_enabled: bool = True
    degraded: bool = False  # serving the local cache because the store was unreachable

    @property
    def unlocked_ids(self) -> FrozenSet[str]:
        return frozenset(a.id for a in self.achievements if a.unlocked)

    def unlock_times(self) -> Dict[str, datetime]:
        return {a.id: a.unlocked_at for a in self.achievements if a.unlocked}


def matches(view: AchievementView, criteria: AchievementFilter) -> bool:
    if criteria.category is not None and view.category != criteria.category:
        return False
    if criteria.tier is not None and view.tier != criteria.tier:
        return False
    if criteria.rarity is not None and view.rarity != criteria.rarity:
        return False
    if criteria.unlocked is not None and view.unlocked != criteria.unlocked:
        return False
    if criteria.search:
        needle = criteria.search.strip().lower()
        if needle and needle not in view.name.lower() and needle not in view.description.lower():
            return False
    return True


def filter_achievements(views: Iterable[AchievementView], criteria: AchievementFilter) -> Tuple[AchievementView, ...]:
    return tuple(v for v in views if matches(v, criteria))


def sort_achievements(views: Iterable[AchievementView], key: SortKey = SortKey.CATALOG) -> Tuple[AchievementView, ...]:
    views = tuple(views)
    if key is SortKey.NAME:
        return tuple(sorted(views, key=lambda v: (v.name.lower(), v.id)))
    if key is SortKey.XP:
        return tuple(sorted(views, key=lambda v: (-v.xp_reward, v.id)))
    if key is SortKey.TIER:
        return tuple(sorted(views, key=lambda v: (TIER_ORDER[v.tier], v.id)))
    if key is SortKey.RECENT:
        unlocked = sorted((v for v in views if v.unlocked), key=lambda v: (v.unlocked_at, v.id), reverse=True)
        return tuple(unlocked) + tuple(v for v in views if not v.unlocked)
    return views


def category_counts(views: Iterable[AchievementView], unlocked_only: bool = False) -> Dict[str, int]:
    counts = {category.value: 0 for category in AchievementCategory}
    for view in views:
        if unlocked_only and not view.unlocked:
            continue
        counts[view.category.value] += 1
    return counts


def build_views(
    catalog: AchievementCatalog,
    unlock_times: Mapping[str, datetime],
    pending: Iterable[str] = (),
    metrics: Optional[MetricsSnapshot] = None,
) -> Tuple[AchievementView, ...]:
    pending = frozenset(pending)
    unlocked = frozenset(unlock_times)
    views = []
    for definition in catalog:
        is_unlocked = definition.id in unlocked
        progress = current = target = 0
        if is_unlocked:
            progress = 100.0
        elif metrics is not None:
            measured = achievement_progress(definition, metrics, unlocked)
            progress, current, target = measured.percentage, measured.current, measured.target
        views.append(AchievementView(
            id=definition.id,
            name=definition.name,
            description=definition.description,
            category=definition.category,
            tier=definition.tier,
            rarity=definition.rarity,
            icon=definition.icon,
            xp_reward=definition.xp_reward,
            unlocked=is_unlocked,
            unlocked_at=unlock_times.get(definition.id),
            pending=definition.id in pending,
            progress=progress,
            current=current,
            target=target,
        ))
    return tuple(views)


def derive_stats(
    catalog: Optional[AchievementCatalog],
    unlocked_ids: Iterable[str],
    streak: StreakStats,
    level_step: int,
) -> ProgressStats:
    """Rebuild the stats cache from the unlock set and the streak."""
    unlocked_ids = frozenset(unlocked_ids)
    total_xp = catalog.total_xp(unlocked_ids) if catalog is not None else 0
    return ProgressStats(
        total_xp=total_xp,
        current_level=compute_level(total_xp, level_step),
        achievements_unlocked=len(unlocked_ids),
        daily_streak=streak.daily_streak,
        longest_streak=streak.longest_streak,
        last_application_date=streak.last_application_date,
        streak_start_date=streak.streak_start_date,
    )


class ProgressStore:
    """Reactive snapshot for one user, owned by that user's session."""

    def __init__(
        self,
        user_id: int,
        catalog: Optional[AchievementCatalog],
        repository: AchievementRepository,
        level_step: int = 100,
    ):
        self.user_id = user_id
        self.catalog = catalog
        self.repository = repository
        self.level_step = level_step
        self._listeners: List[Callable[[ProgressSnapshot], None]] = []
        self._lock = threading.RLock()
        self._snapshot = ProgressSnapshot(
            user_id=user_id,
            level=build_user_level(0, level_step),
            achievements=build_views(catalog, {}) if catalog is not None else (),
            evaluation_enabled=catalog is not None,
        )

    @property
    def snapshot(self) -> ProgressSnapshot:
        return self._snapshot

    def subscribe(self, listener: Callable[[ProgressSnapshot], None]) -> Callable[[], None]:
        """Register a listener; returns a callable that removes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, snapshot: ProgressSnapshot) -> ProgressSnapshot:
        with self._lock:
            self._snapshot = snapshot
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Progress listener %r failed", listener)
        return snapshot

    def set_filter(self, criteria: AchievementFilter) -> ProgressSnapshot:
        return self._publish(replace(self._snapshot, filter=criteria))

    def visible_achievements(self, sort: SortKey = SortKey.CATALOG) -> Tuple[AchievementView, ...]:
        snapshot = self._snapshot
        return sort_achievements(filter_achievements(snapshot.achievements, snapshot.filter), sort)

    def category_counts(self, unlocked_only: bool = False) -> Dict[str, int]:
        return category_counts(self._snapshot.achievements, unlocked_only)

    def refresh(
        self,
        unlock_times: Mapping[str, datetime],
        streak: StreakStats,
        pending: Iterable[str] = (),
        metrics: Optional[MetricsSnapshot] = None,
        degraded: bool = False,
    ) -> ProgressSnapshot:
        """Publish a new snapshot. Unlocks already shown locally are kept."""
        with self._lock:
            times = dict(self._snapshot.unlock_times())
            times.update(unlock_times)
            stats = derive_stats(self.catalog, times, streak, self.level_step)
            achievements = build_views(self.catalog, times, pending, metrics) if self.catalog is not None else ()
            snapshot = replace(
                self._snapshot,
                stats=stats,
                level=build_user_level(stats.total_xp, self.level_step),
                achievements=achievements,
                degraded=degraded,
            )
        return self._publish(snapshot)

    def load(
        self,
        pending: Iterable[str] = (),
        metrics: Optional[MetricsSnapshot] = None,
    ) -> Optional[Dict[str, datetime]]:
        """
        Fetch the authoritative unlock set and stats and publish them.
        ``pending`` and ``metrics`` carry the session's optimistic state so the
        republished views keep their pending flags and progress numbers.

        Returns the authoritative unlocks, or None when the store was
        unreachable and the last known local state is being served.
        """
        try:
            unlocks = self.repository.fetch_unlocks(self.user_id)
            cached = self.repository.fetch_stats(self.user_id)
        except StoreUnavailableError as e:
            logger.warning("Achievement store unreachable for user %s, serving local cache: %s", self.user_id, e)
            current = self._snapshot
            self.refresh(
                current.unlock_times(), _streak_from(current.stats),
                pending=pending, metrics=metrics, degraded=True,
            )
            return None

        streak = _streak_from(cached) if cached is not None else _streak_from(self._snapshot.stats)
        self.refresh(unlocks, streak, pending=[a for a in pending if a not in unlocks], metrics=metrics)
        return unlocks


def _streak_from(stats: ProgressStats) -> StreakStats:
    return StreakStats(
        daily_streak=stats.daily_streak,
        longest_streak=stats.longest_streak,
        last_application_date=stats.last_application_date,
        streak_start_date=stats.streak_start_date,
    )
