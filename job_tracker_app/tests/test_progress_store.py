"""
Test the reactive progress store and its pure projections.
"""
import pytest
from datetime import date, datetime

from backend.services.achievement_catalog import AchievementCategory, AchievementTier
from backend.services.progress_store import (
    AchievementFilter,
    ProgressStore,
    SortKey,
    build_views,
    category_counts,
    derive_stats,
    filter_achievements,
    sort_achievements,
)
from backend.services.metrics import MetricsSnapshot
from backend.services.streak_calculator import EMPTY_STREAK, StreakStats

UNLOCKS = {
    "first_application": datetime(2024, 1, 1, 9, 0),
    "three_day_streak": datetime(2024, 1, 3, 9, 0),
    "early_bird": datetime(2024, 1, 2, 7, 0),
}


@pytest.fixture
def views(catalog):
    return build_views(catalog, UNLOCKS, pending=["early_bird"])


class TestProjections:

    def test_filter_by_category(self, views):
        result = filter_achievements(views, AchievementFilter(category=AchievementCategory.STREAK))

        assert [v.id for v in result] == ["three_day_streak", "week_streak", "month_streak", "hundred_day_streak"]

    def test_filter_unlocked_and_tier(self, views):
        result = filter_achievements(views, AchievementFilter(unlocked=True, tier=AchievementTier.BRONZE))

        assert {v.id for v in result} == set(UNLOCKS)

    def test_locked_only(self, views):
        result = filter_achievements(views, AchievementFilter(unlocked=False))

        assert len(result) == len(views) - len(UNLOCKS)

    def test_search_is_case_insensitive(self, views):
        assert [v.id for v in filter_achievements(views, AchievementFilter(search="faang"))] == ["faang_hunter"]
        assert [v.id for v in filter_achievements(views, AchievementFilter(search="  NIGHT owl "))] == ["night_owl"]

    def test_sort_by_xp(self, views):
        result = sort_achievements(views, SortKey.XP)

        assert result[0].id == "thousand_applications"

    def test_sort_by_recent_unlock(self, views):
        result = sort_achievements(views, SortKey.RECENT)

        assert [v.id for v in result[:3]] == ["three_day_streak", "early_bird", "first_application"]
        assert not result[3].unlocked

    def test_sort_by_name(self, views):
        names = [v.name.lower() for v in sort_achievements(views, SortKey.NAME)]

        assert names == sorted(names)

    def test_catalog_order_is_default(self, views, catalog):
        assert [v.id for v in sort_achievements(views)] == catalog.ids()

    def test_category_counts(self, views):
        unlocked = category_counts(views, unlocked_only=True)

        assert unlocked["milestone"] == 1
        assert unlocked["streak"] == 1
        assert unlocked["time"] == 1
        assert unlocked["special"] == 0
        assert sum(category_counts(views).values()) == 24

    def test_pending_flag(self, views):
        by_id = {v.id: v for v in views}

        assert by_id["early_bird"].pending
        assert not by_id["first_application"].pending
        assert by_id["first_application"].progress == 100.0


class TestDeriveStats:

    def test_xp_and_level_from_unlock_set(self, catalog):
        streak = StreakStats(daily_streak=2, longest_streak=3, last_application_date=date(2024, 1, 3))

        stats = derive_stats(catalog, ["hundred_day_streak", "first_offer"], streak, level_step=100)

        assert stats.total_xp == 650
        assert stats.current_level == 7
        assert stats.achievements_unlocked == 2
        assert stats.longest_streak == 3

    def test_without_catalog(self):
        stats = derive_stats(None, [], EMPTY_STREAK, level_step=100)

        assert stats.total_xp == 0
        assert stats.current_level == 1


class TestProgressStore:

    def test_subscribe_and_unsubscribe(self, test_user, catalog, repository):
        store = ProgressStore(test_user.id, catalog, repository)
        seen = []
        unsubscribe = store.subscribe(seen.append)

        store.refresh(UNLOCKS, EMPTY_STREAK)
        unsubscribe()
        store.refresh(UNLOCKS, EMPTY_STREAK)

        assert len(seen) == 1
        assert seen[0].stats.total_xp == catalog.total_xp(UNLOCKS)

    def test_failing_listener_does_not_block_others(self, test_user, catalog, repository):
        store = ProgressStore(test_user.id, catalog, repository)
        seen = []

        def broken(snapshot):
            raise RuntimeError("listener bug")

        store.subscribe(broken)
        store.subscribe(seen.append)
        store.refresh({}, EMPTY_STREAK)

        assert len(seen) == 1

    def test_set_filter_drives_visible_achievements(self, test_user, catalog, repository):
        store = ProgressStore(test_user.id, catalog, repository)
        store.refresh(UNLOCKS, EMPTY_STREAK)

        store.set_filter(AchievementFilter(unlocked=True))

        assert {v.id for v in store.visible_achievements()} == set(UNLOCKS)
        assert store.snapshot.filter.unlocked is True
        assert store.category_counts(unlocked_only=True)["time"] == 1

    def test_refresh_never_hides_shown_unlocks(self, test_user, catalog, repository):
        store = ProgressStore(test_user.id, catalog, repository)
        store.refresh({"early_bird": datetime(2024, 1, 2)}, EMPTY_STREAK)

        store.refresh({"first_application": datetime(2024, 1, 1)}, EMPTY_STREAK)

        assert store.snapshot.unlocked_ids == {"early_bird", "first_application"}

    def test_load_merges_authoritative_unlocks(self, test_user, catalog, repository):
        repository.insert_unlock(test_user.id, "first_application", datetime(2024, 1, 1))
        store = ProgressStore(test_user.id, catalog, repository)
        store.refresh({"early_bird": datetime(2024, 1, 2)}, EMPTY_STREAK)

        authoritative = store.load()

        assert set(authoritative) == {"first_application"}
        assert store.snapshot.unlocked_ids == {"early_bird", "first_application"}
        assert store.snapshot.stats.total_xp == 20
        assert not store.snapshot.degraded

    def test_load_degrades_to_local_cache(self, test_user, catalog, flaky_repository):
        store = ProgressStore(test_user.id, catalog, flaky_repository)
        store.refresh(UNLOCKS, StreakStats(daily_streak=3, longest_streak=3))
        flaky_repository.offline = True

        assert store.load() is None
        assert store.snapshot.degraded
        assert store.snapshot.unlocked_ids == set(UNLOCKS)
        assert store.snapshot.stats.daily_streak == 3

    def test_disabled_catalog(self, test_user, repository):
        store = ProgressStore(test_user.id, None, repository)

        assert store.snapshot.achievements == ()
        assert store.snapshot.evaluation_enabled is False

    def test_degraded_load_keeps_pending_and_progress(self, test_user, catalog, flaky_repository):
        store = ProgressStore(test_user.id, catalog, flaky_repository)
        metrics = MetricsSnapshot(total_applications=4)
        store.refresh(UNLOCKS, EMPTY_STREAK, pending=["early_bird"], metrics=metrics)
        flaky_repository.offline = True

        store.load(pending=["early_bird"], metrics=metrics)
        by_id = {v.id: v for v in store.snapshot.achievements}

        assert store.snapshot.degraded
        assert by_id["early_bird"].pending
        assert by_id["ten_applications"].current == 4

    def test_load_clears_pending_flag_for_stored_unlocks(self, test_user, catalog, repository):
        repository.insert_unlock(test_user.id, "first_application", datetime(2024, 1, 1))
        store = ProgressStore(test_user.id, catalog, repository)
        store.refresh({"early_bird": datetime(2024, 1, 2, 7, 0)}, EMPTY_STREAK, pending=["early_bird"])

        store.load(pending=["first_application", "early_bird"])
        by_id = {v.id: v for v in store.snapshot.achievements}

        assert not by_id["first_application"].pending
        assert by_id["early_bird"].pending
