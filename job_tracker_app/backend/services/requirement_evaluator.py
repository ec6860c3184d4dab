"""
Pure requirement evaluation: metrics + catalog + unlocked set -> new unlocks.

Nothing here touches storage or the clock. Identical inputs always produce
identical, sorted outputs.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, Tuple

from .achievement_catalog import (
    AchievementCatalog,
    AchievementDefinition,
    CategoryCount,
    Comparison,
    CountMetric,
    CountThreshold,
    GoalCompletion,
    SetMembershipCount,
    StreakScope,
    StreakThreshold,
    TimeWindowFlag,
)
from .metrics import INTERVIEW_STAGE_STATUSES, MetricsSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequirementProgress:
    current: float
    target: float
    satisfied: bool

    @property
    def percentage(self) -> float:
        if self.satisfied:
            return 100.0
        if self.target <= 0:
            return 0.0
        return min(100.0, self.current / self.target * 100.0)


def _count_value(metric: CountMetric, metrics: MetricsSnapshot, unlocked_count: int) -> int:
    if metric is CountMetric.APPLICATIONS:
        return metrics.total_applications
    if metric is CountMetric.INTERVIEWS:
        return metrics.count_for_status(*INTERVIEW_STAGE_STATUSES)
    if metric is CountMetric.OFFERS:
        return metrics.count_for_status("Offer")
    if metric is CountMetric.REJECTIONS:
        return metrics.count_for_status("Rejected")
    return unlocked_count


def measure(requirement, metrics: MetricsSnapshot, unlocked_count: int) -> RequirementProgress:
    """
    Measure one requirement against a snapshot.

    ``unlocked_count`` feeds ``CountMetric.ACHIEVEMENTS``. A GoalCompletion
    naming a period compares that period's percentage to ``min_percent``;
    without a period it counts the periods at ``min_percent`` or more.
    """
    match requirement:
        case CountThreshold(metric=metric, threshold=threshold, comparison=comparison):
            value = _count_value(metric, metrics, unlocked_count)
        case StreakThreshold(threshold=threshold, scope=scope, comparison=comparison):
            streak = metrics.streak
            value = streak.daily_streak if scope is StreakScope.CURRENT else streak.longest_streak
        case GoalCompletion(count=count, period=period, min_percent=min_percent, comparison=comparison):
            if period is not None:
                value, threshold = metrics.goal_progress.get(period, 0.0), min_percent
            else:
                value = sum(1 for p in metrics.goal_progress.values() if p >= min_percent)
                threshold = count
        case TimeWindowFlag(window=window, expected=expected):
            flag = bool(metrics.time_flags.get(window, False))
            value, threshold, comparison = int(flag == expected), 1, Comparison.EQ
        case CategoryCount(category=category, threshold=threshold, comparison=comparison):
            value = metrics.category_counts.get(category, 0)
        case SetMembershipCount(set_name=set_name, threshold=threshold, comparison=comparison):
            if set_name not in metrics.company_set_counts:
                logger.debug("Company set %r not present in metrics; counting as 0", set_name)
            value = metrics.company_set_counts.get(set_name, 0)
        case _:
            raise TypeError(f"Unknown requirement kind: {requirement!r}")

    return RequirementProgress(current=value, target=threshold, satisfied=comparison.holds(value, threshold))


def is_satisfied(definition: AchievementDefinition, metrics: MetricsSnapshot, unlocked_count: int) -> bool:
    return all(measure(r, metrics, unlocked_count).satisfied for r in definition.requirements)


def evaluate(metrics: MetricsSnapshot, catalog: AchievementCatalog, unlocked: Iterable[str]) -> Tuple[str, ...]:
    """
    Return the ids of achievements newly satisfied and not yet unlocked, sorted.

    Achievements that count unlocked achievements are resolved by repeating
    the fold over the growing unlocked set until nothing new appears.

    Raises:
        MetricsValidationError: If the snapshot is malformed.
    """
    metrics.validate()
    unlocked = frozenset(unlocked)
    newly = set()
    while True:
        known = unlocked | newly
        found = {
            definition.id
            for definition in catalog
            if definition.id not in known and is_satisfied(definition, metrics, len(known))
        }
        if not found:
            break
        newly |= found
    return tuple(sorted(newly))


def achievement_progress(
    definition: AchievementDefinition,
    metrics: MetricsSnapshot,
    unlocked: Iterable[str],
) -> RequirementProgress:
    """Progress towards one achievement; the least-complete requirement wins."""
    unlocked = frozenset(unlocked)
    if definition.id in unlocked:
        return RequirementProgress(current=1, target=1, satisfied=True)
    measured = [measure(r, metrics, len(unlocked)) for r in definition.requirements]
    return min(measured, key=lambda p: (p.satisfied, p.percentage))
