"""
Derives the metrics snapshot the requirement evaluator reads.

Everything here is a pure function of the application history, the user's
goals and a reference date, so a snapshot can always be rebuilt from source.
"""
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, Mapping, Optional, Sequence, Tuple

from .achievement_catalog import ApplicationCategory, GoalPeriod, TimeWindow
from .exceptions import MetricsValidationError
from .streak_calculator import StreakStats, calculate_streaks

APPLICATION_STATUSES = ("Applied", "Interview", "Offer", "Rejected")
JOB_TYPES = ("Remote", "Onsite", "Hybrid")

# Statuses that mean the application reached the interview stage
INTERVIEW_STAGE_STATUSES = frozenset({"Interview", "Offer"})

RESUME_MARKERS = ("resume", "cv")
COVER_LETTER_MARKERS = ("cover", "letter", "cl_")

JOB_TYPE_CATEGORIES = {
    "Remote": ApplicationCategory.REMOTE,
    "Hybrid": ApplicationCategory.HYBRID,
    "Onsite": ApplicationCategory.ONSITE,
}


@dataclass(frozen=True)
class ApplicationFacts:
    """The slice of an application the engine is allowed to read."""
    company: str
    date_applied: date
    status: str = "Applied"
    job_type: str = "Onsite"
    submitted_at: Optional[datetime] = None
    notes: Optional[str] = None
    attachments: Tuple[dict, ...] = ()

    @classmethod
    def from_record(cls, record) -> "ApplicationFacts":
        """Build facts from an ORM row or a plain mapping."""
        get = record.get if isinstance(record, Mapping) else lambda k, d=None: getattr(record, k, d)
        date_applied = get("date_applied")
        if isinstance(date_applied, datetime):
            date_applied = date_applied.date()
        elif isinstance(date_applied, str):
            date_applied = date.fromisoformat(date_applied[:10])
        return cls(
            company=get("company") or "",
            date_applied=date_applied,
            status=get("status") or "Applied",
            job_type=get("job_type") or "Onsite",
            submitted_at=get("submitted_at"),
            notes=get("notes"),
            attachments=tuple(get("attachments") or ()),
        )


@dataclass(frozen=True)
class GoalTargets:
    total_goal: int = 0
    weekly_goal: int = 0
    monthly_goal: int = 0


# Targets used until the user saves their own
DEFAULT_GOALS = GoalTargets(total_goal=100, weekly_goal=5, monthly_goal=20)


@dataclass(frozen=True)
class MetricsSnapshot:
    total_applications: int = 0
    status_counts: Mapping[str, int] = field(default_factory=dict)
    category_counts: Mapping[ApplicationCategory, int] = field(default_factory=dict)
    company_set_counts: Mapping[str, int] = field(default_factory=dict)
    streak: StreakStats = field(default_factory=StreakStats)
    goal_progress: Mapping[GoalPeriod, float] = field(default_factory=dict)
    time_flags: Mapping[TimeWindow, bool] = field(default_factory=dict)

    def count_for_status(self, *statuses: str) -> int:
        return sum(self.status_counts.get(s, 0) for s in statuses)

    def validate(self) -> None:
        """Raise MetricsValidationError when the snapshot cannot be evaluated safely."""
        if not isinstance(self.total_applications, int) or self.total_applications < 0:
            raise MetricsValidationError(f"total_applications must be a non-negative int, got {self.total_applications!r}")
        if not isinstance(self.streak, StreakStats):
            raise MetricsValidationError("streak must be a StreakStats instance")
        if self.streak.daily_streak < 0 or self.streak.longest_streak < self.streak.daily_streak:
            raise MetricsValidationError(f"Inconsistent streak stats: {self.streak}")
        for name, counts in (
            ("status_counts", self.status_counts),
            ("category_counts", self.category_counts),
            ("company_set_counts", self.company_set_counts),
        ):
            for key, value in counts.items():
                if not isinstance(value, int) or value < 0:
                    raise MetricsValidationError(f"{name}[{key!r}] must be a non-negative int, got {value!r}")
                if value > self.total_applications:
                    raise MetricsValidationError(f"{name}[{key!r}] exceeds total_applications")
        for period, percent in self.goal_progress.items():
            if not isinstance(period, GoalPeriod):
                raise MetricsValidationError(f"Unknown goal period: {period!r}")
            if not isinstance(percent, (int, float)) or percent < 0:
                raise MetricsValidationError(f"goal_progress[{period.value}] must be a non-negative number")
        for window in self.time_flags:
            if not isinstance(window, TimeWindow):
                raise MetricsValidationError(f"Unknown time window: {window!r}")


def attachment_categories(attachment: Mapping) -> set:
    """Classify one attachment by explicit category or, failing that, by filename."""
    explicit = attachment.get("category")
    if explicit:
        try:
            return {ApplicationCategory(explicit)}
        except ValueError:
            return set()
    name = (attachment.get("name") or "").lower()
    found = set()
    if any(marker in name for marker in RESUME_MARKERS):
        found.add(ApplicationCategory.RESUME)
    if any(marker in name for marker in COVER_LETTER_MARKERS):
        found.add(ApplicationCategory.COVER_LETTER)
    return found


def application_categories(app: ApplicationFacts) -> set:
    """All categories a single application counts towards; each counts once per application."""
    found = set()
    for attachment in app.attachments:
        found |= attachment_categories(attachment)
    if app.notes and app.notes.strip():
        found.add(ApplicationCategory.NOTES)
    job_category = JOB_TYPE_CATEGORIES.get(app.job_type)
    if job_category is not None:
        found.add(job_category)
    return found


def goal_progress(dates: Sequence[date], goals: Optional[GoalTargets], today: date) -> Dict[GoalPeriod, float]:
    """
    Percentage completion per goal period. Not clamped, so overachievement is visible.

    Weeks start on Sunday. Periods whose goal is unset or zero are omitted.
    """
    if goals is None:
        return {}
    week_start = today - timedelta(days=(today.weekday() + 1) % 7)
    month_start = today.replace(day=1)
    counts = {
        GoalPeriod.TOTAL: (len(dates), goals.total_goal),
        GoalPeriod.WEEKLY: (sum(1 for d in dates if week_start <= d <= today), goals.weekly_goal),
        GoalPeriod.MONTHLY: (sum(1 for d in dates if month_start <= d <= today), goals.monthly_goal),
    }
    return {
        period: count / goal * 100.0
        for period, (count, goal) in counts.items()
        if goal and goal > 0
    }


def time_flags(applications: Iterable[ApplicationFacts], early_bird_hour: int, night_owl_hour: int) -> Dict[TimeWindow, bool]:
    flags = {window: False for window in TimeWindow}
    for app in applications:
        if app.date_applied is not None and app.date_applied.weekday() >= 5:
            flags[TimeWindow.WEEKEND] = True
        if app.submitted_at is not None:
            if app.submitted_at.hour < early_bird_hour:
                flags[TimeWindow.EARLY_BIRD] = True
            if app.submitted_at.hour >= night_owl_hour:
                flags[TimeWindow.NIGHT_OWL] = True
    return flags


def company_set_counts(applications: Sequence[ApplicationFacts], company_sets: Mapping[str, Iterable[str]]) -> Dict[str, int]:
    counts = {}
    for set_name, members in company_sets.items():
        members = [m.lower() for m in members]
        counts[set_name] = sum(
            1 for app in applications
            if any(member in app.company.lower() for member in members)
        )
    return counts


def build_metrics_snapshot(
    applications: Iterable,
    goals: Optional[GoalTargets] = None,
    today: Optional[date] = None,
    streak: Optional[StreakStats] = None,
    company_sets: Optional[Mapping[str, Iterable[str]]] = None,
    early_bird_hour: int = 9,
    night_owl_hour: int = 20,
) -> MetricsSnapshot:
    """
    Build a metrics snapshot from raw application records.

    Args:
        applications: ApplicationFacts, ORM rows or mappings
        goals: The user's goal targets, if any
        today: Reference date for weekly/monthly goal windows
        streak: Precomputed streak stats; computed from the history when omitted
        company_sets: Named company sets for set-membership requirements
    """
    facts = [a if isinstance(a, ApplicationFacts) else ApplicationFacts.from_record(a) for a in applications]
    today = today or date.today()
    dates = [f.date_applied for f in facts if f.date_applied is not None]

    status_counts = {status: 0 for status in APPLICATION_STATUSES}
    category_counts = {category: 0 for category in ApplicationCategory}
    for app in facts:
        status_counts[app.status] = status_counts.get(app.status, 0) + 1
        for category in application_categories(app):
            category_counts[category] += 1

    return MetricsSnapshot(
        total_applications=len(facts),
        status_counts=status_counts,
        category_counts=category_counts,
        company_set_counts=company_set_counts(facts, company_sets or {}),
        streak=streak if streak is not None else calculate_streaks(dates),
        goal_progress=goal_progress(dates, goals, today),
        time_flags=time_flags(facts, early_bird_hour, night_owl_hour),
    )
