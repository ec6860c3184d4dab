"""
Day-streak computation over a user's distinct application dates.

The current streak is the run of consecutive calendar days ending at the most
recent application date, however long ago that date was.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class StreakStats:
    daily_streak: int = 0
    longest_streak: int = 0
    last_application_date: Optional[date] = None
    streak_start_date: Optional[date] = None


EMPTY_STREAK = StreakStats()


def distinct_dates(values: Iterable) -> List[date]:
    """Normalize dates/datetimes/ISO strings to distinct dates, most recent first."""
    result = set()
    for value in values:
        if value is None:
            continue
        if isinstance(value, datetime):
            value = value.date()
        elif isinstance(value, str):
            value = date.fromisoformat(value[:10])
        elif not isinstance(value, date):
            raise TypeError(f"Unsupported application date: {value!r}")
        result.add(value)
    return sorted(result, reverse=True)


def calculate_streaks(application_dates: Iterable) -> StreakStats:
    """
    Compute current and longest streaks.

    Args:
        application_dates: Dates on which the user applied; duplicates are ignored.

    Returns:
        StreakStats for the history; EMPTY_STREAK when there is none.
    """
    dates = distinct_dates(application_dates)
    if not dates:
        return EMPTY_STREAK

    # Current run: walk back from the most recent date
    daily_streak = 1
    streak_start = dates[0]
    for previous, current in zip(dates, dates[1:]):
        if previous - current != ONE_DAY:
            break
        daily_streak += 1
        streak_start = current

    # Longest run anywhere in the history
    longest = run = 1
    for previous, current in zip(dates, dates[1:]):
        run = run + 1 if previous - current == ONE_DAY else 1
        longest = max(longest, run)

    return StreakStats(
        daily_streak=daily_streak,
        longest_streak=longest,
        last_application_date=dates[0],
        streak_start_date=streak_start,
    )


class StreakTracker:
    """
    Keeps the last good streak for one user.

    A failed recompute leaves the previous values in place; the next trigger
    recomputes from the full history, so nothing drifts.
    """

    def __init__(self, initial: StreakStats = EMPTY_STREAK):
        self.stats = initial

    def recompute(self, application_dates: Iterable) -> StreakStats:
        try:
            self.stats = calculate_streaks(application_dates)
        except (TypeError, ValueError) as e:
            logger.warning("Streak recompute failed, keeping last known values: %s", e)
        return self.stats
