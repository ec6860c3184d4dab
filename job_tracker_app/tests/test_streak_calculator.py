"""
Test day-streak computation.
"""
import itertools
import pytest
from datetime import date, datetime

from backend.services.streak_calculator import (
    EMPTY_STREAK,
    StreakStats,
    StreakTracker,
    calculate_streaks,
    distinct_dates,
)


class TestCalculateStreaks:
    """Current and longest streak over distinct application dates."""

    def test_three_consecutive_days(self):
        stats = calculate_streaks([date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3)])

        assert stats.daily_streak == 3
        assert stats.longest_streak == 3
        assert stats.streak_start_date == date(2024, 1, 1)
        assert stats.last_application_date == date(2024, 1, 3)

    def test_gap_breaks_the_streak(self):
        stats = calculate_streaks([date(2024, 1, 1), date(2024, 1, 3)])

        assert stats.daily_streak == 1
        assert stats.longest_streak == 1
        assert stats.streak_start_date == date(2024, 1, 3)

    def test_empty_history(self):
        assert calculate_streaks([]) == EMPTY_STREAK
        assert EMPTY_STREAK.daily_streak == 0
        assert EMPTY_STREAK.last_application_date is None

    def test_longest_run_is_found_anywhere_in_history(self):
        dates = [date(2024, 1, d) for d in (1, 2, 3, 4, 5, 10, 11)]

        stats = calculate_streaks(dates)

        assert stats.daily_streak == 2
        assert stats.longest_streak == 5
        assert stats.streak_start_date == date(2024, 1, 10)

    def test_multiple_applications_on_one_day_count_once(self):
        dates = [date(2024, 1, 1), date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 2)]

        stats = calculate_streaks(dates)

        assert stats.daily_streak == 2
        assert stats.longest_streak == 2

    def test_current_streak_has_no_recency_requirement(self):
        # The trailing run ends at the most recent application, however old it is
        stats = calculate_streaks([date(2020, 5, 1), date(2020, 5, 2)])

        assert stats.daily_streak == 2

    def test_month_boundary(self):
        stats = calculate_streaks([date(2024, 1, 30), date(2024, 1, 31), date(2024, 2, 1)])

        assert stats.daily_streak == 3

    def test_order_does_not_matter(self):
        dates = [date(2024, 3, 1), date(2024, 3, 2), date(2024, 3, 4), date(2024, 3, 5), date(2024, 3, 6)]
        expected = calculate_streaks(dates)

        for permutation in itertools.permutations(dates):
            assert calculate_streaks(permutation) == expected

    def test_incremental_equals_full_history(self):
        history = [date(2024, 2, d) for d in (1, 2, 3, 7, 8, 9, 10, 12)]
        tracker = StreakTracker()

        for i in range(1, len(history) + 1):
            tracker.recompute(history[:i])

        assert tracker.stats == calculate_streaks(history)

    def test_mixed_input_types(self):
        stats = calculate_streaks([date(2024, 1, 1), datetime(2024, 1, 2, 23, 59), "2024-01-03"])

        assert stats.daily_streak == 3


class TestDistinctDates:
    """Normalization of raw application dates."""

    def test_sorted_most_recent_first(self):
        result = distinct_dates(["2024-01-02", date(2024, 1, 5), None, date(2024, 1, 2)])

        assert result == [date(2024, 1, 5), date(2024, 1, 2)]

    def test_rejects_unsupported_types(self):
        with pytest.raises(TypeError):
            distinct_dates([12345])


class TestStreakTracker:
    """A failed recompute keeps the last good values."""

    def test_keeps_last_values_on_bad_input(self):
        tracker = StreakTracker()
        good = tracker.recompute([date(2024, 1, 1), date(2024, 1, 2)])

        assert tracker.recompute([object()]) == good
        assert tracker.recompute(["not-a-date"]) == good

    def test_recovers_on_next_good_trigger(self):
        tracker = StreakTracker(StreakStats(daily_streak=1, longest_streak=1))
        tracker.recompute([object()])

        stats = tracker.recompute([date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3)])

        assert stats.daily_streak == 3
