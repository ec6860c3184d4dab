"""
Test unlock coordination: optimistic unlocks, retries and exactly-once effects.
"""
import pytest
import threading
from datetime import datetime, timedelta

from backend.models.db.database import Base
from backend.services.exceptions import StoreUnavailableError
from backend.services.unlock_coordinator import UnlockCoordinator


def make_coordinator(user, catalog, repository, notifier, clock=None, **kwargs):
    kwargs.setdefault("retry_base_seconds", 2.0)
    kwargs.setdefault("retry_max_seconds", 60.0)
    if clock is not None:
        kwargs["clock"] = clock
    return UnlockCoordinator(user.id, catalog, repository, notifier, **kwargs)


class TestAchievementRepository:
    """The unique constraint decides which write created the unlock."""

    def test_second_insert_reports_existing_row(self, repository, test_user):
        first_at = datetime(2024, 1, 1, 10, 0)

        first = repository.insert_unlock(test_user.id, "first_application", first_at)
        second = repository.insert_unlock(test_user.id, "first_application", first_at + timedelta(hours=1))

        assert first.created is True
        assert second.created is False
        assert second.unlocked_at == first_at
        assert list(repository.fetch_unlocks(test_user.id)) == ["first_application"]

    def test_database_errors_become_store_unavailable(self, repository, test_db_engine, test_user):
        Base.metadata.drop_all(bind=test_db_engine)

        with pytest.raises(StoreUnavailableError):
            repository.fetch_unlocks(test_user.id)

    def test_missing_goals_fall_back_to_defaults(self, repository, test_user):
        goals = repository.fetch_goals(test_user.id)

        assert (goals.total_goal, goals.weekly_goal, goals.monthly_goal) == (100, 5, 20)


class TestOptimisticUnlocks:

    def test_apply_marks_pending(self, test_user, catalog, repository, notifier):
        coordinator = make_coordinator(test_user, catalog, repository, notifier)

        applied = coordinator.apply(["ten_applications", "first_application"])

        assert applied == ("first_application", "ten_applications")
        assert coordinator.pending_ids == ("first_application", "ten_applications")
        assert coordinator.total_xp() == 35
        assert repository.fetch_unlocks(test_user.id) == {}

    def test_apply_is_idempotent(self, test_user, catalog, repository, notifier):
        coordinator = make_coordinator(test_user, catalog, repository, notifier)
        coordinator.apply(["first_application"])

        assert coordinator.apply(["first_application"]) == ()
        assert coordinator.total_xp() == 10

    def test_unknown_ids_are_ignored(self, test_user, catalog, repository, notifier):
        coordinator = make_coordinator(test_user, catalog, repository, notifier)

        assert coordinator.apply(["does_not_exist"]) == ()
        assert coordinator.unlocked_ids == frozenset()

    def test_flush_confirms_and_notifies(self, test_user, catalog, repository, notifier):
        coordinator = make_coordinator(test_user, catalog, repository, notifier)
        coordinator.apply(["first_application"])

        result = coordinator.flush()

        assert result.created == ("first_application",)
        assert result.notified == ("first_application",)
        assert coordinator.pending_ids == ()
        assert "first_application" in repository.fetch_unlocks(test_user.id)
        assert len(notifier.events) == 1
        event = notifier.events[0]
        assert event.xp_reward == 10
        assert event.to_payload()["achievement_id"] == "first_application"

    def test_flush_twice_does_not_notify_twice(self, test_user, catalog, repository, notifier):
        coordinator = make_coordinator(test_user, catalog, repository, notifier)
        coordinator.apply(["first_application"])
        coordinator.flush()

        result = coordinator.flush()

        assert result.created == ()
        assert len(notifier.events) == 1


class TestConcurrentSessions:
    """Two sessions racing to unlock the same achievement."""

    def test_one_row_one_notification(self, test_user, catalog, repository, notifier):
        first = make_coordinator(test_user, catalog, repository, notifier)
        second = make_coordinator(test_user, catalog, repository, notifier)
        first.apply(["first_application"])
        second.apply(["first_application"])

        first_result = first.flush()
        second_result = second.flush()

        assert first_result.created == ("first_application",)
        assert second_result.already_unlocked == ("first_application",)
        assert len(repository.fetch_unlocks(test_user.id)) == 1
        assert [e.achievement_id for e in notifier.events] == ["first_application"]
        assert first.total_xp() == second.total_xp() == 10

    def test_loser_adopts_winner_timestamp(self, test_user, catalog, repository, notifier, clock):
        first = make_coordinator(test_user, catalog, repository, notifier, clock=clock)
        first.apply(["first_application"])
        winner_at = clock()
        clock.advance(30)
        second = make_coordinator(test_user, catalog, repository, notifier, clock=clock)
        second.apply(["first_application"])

        first.flush()
        second.flush()

        assert second.unlock_times()["first_application"] == winner_at

    def test_hydrate_settles_pending_without_notifying(self, test_user, catalog, repository, notifier):
        coordinator = make_coordinator(test_user, catalog, repository, notifier)
        coordinator.apply(["first_application"])
        repository.insert_unlock(test_user.id, "first_application", datetime(2024, 1, 1))

        coordinator.hydrate(repository.fetch_unlocks(test_user.id))
        result = coordinator.flush()

        assert coordinator.pending_ids == ()
        assert "first_application" in coordinator.unlocked_ids
        assert result.created == ()
        assert notifier.events == []


class TestRetries:
    """Failed unlock writes stay pending and retry with backoff."""

    def test_backoff_schedule(self, test_user, catalog, flaky_repository, notifier, clock):
        flaky_repository.failures = 2
        coordinator = make_coordinator(test_user, catalog, flaky_repository, notifier, clock=clock)
        coordinator.apply(["first_application"])

        result = coordinator.flush()
        assert result.still_pending == ("first_application",)
        assert "first_application" in coordinator.unlocked_ids
        assert coordinator.total_xp() == 10

        # Not due yet: no write attempted
        coordinator.flush()
        assert flaky_repository.insert_calls == 1

        clock.advance(2)
        coordinator.flush()
        assert flaky_repository.insert_calls == 2

        clock.advance(3)
        coordinator.flush()
        assert flaky_repository.insert_calls == 2

        clock.advance(1)
        result = coordinator.flush()
        assert result.created == ("first_application",)
        assert coordinator.pending_ids == ()
        assert len(notifier.events) == 1

    def test_force_ignores_backoff(self, test_user, catalog, flaky_repository, notifier, clock):
        flaky_repository.failures = 1
        coordinator = make_coordinator(test_user, catalog, flaky_repository, notifier, clock=clock)
        coordinator.apply(["first_application"])
        coordinator.flush()

        result = coordinator.flush(force=True)

        assert result.created == ("first_application",)

    def test_backoff_is_capped(self, test_user, catalog, repository, notifier):
        coordinator = make_coordinator(test_user, catalog, repository, notifier, retry_max_seconds=60.0)

        assert coordinator._backoff(1) == timedelta(seconds=2)
        assert coordinator._backoff(3) == timedelta(seconds=8)
        assert coordinator._backoff(20) == timedelta(seconds=60)

    def test_pending_unlock_is_never_dropped(self, test_user, catalog, flaky_repository, notifier):
        flaky_repository.offline = True
        coordinator = make_coordinator(test_user, catalog, flaky_repository, notifier)
        coordinator.apply(["first_application"])

        for _ in range(10):
            coordinator.flush(force=True)

        assert coordinator.pending_ids == ("first_application",)
        assert notifier.events == []


class TestNotificationDelivery:

    def test_retried_on_next_flush(self, test_user, catalog, repository, make_notifier):
        notifier = make_notifier(failures=1)
        coordinator = make_coordinator(test_user, catalog, repository, notifier)
        coordinator.apply(["first_application"])

        first = coordinator.flush()
        second = coordinator.flush()

        assert first.created == ("first_application",)
        assert first.notified == ()
        assert second.notified == ("first_application",)
        assert len(notifier.events) == 1

    def test_dead_lettered_after_max_attempts(self, test_user, catalog, repository, make_notifier, caplog):
        notifier = make_notifier(failures=10)
        coordinator = make_coordinator(test_user, catalog, repository, notifier, notification_max_attempts=3)
        coordinator.apply(["first_application"])

        results = [coordinator.flush() for _ in range(4)]

        assert results[2].dead_lettered == ("first_application",)
        assert results[3].dead_lettered == ()
        assert notifier.calls == 3
        assert [e.achievement_id for e in coordinator.dead_letters] == ["first_application"]
        assert "Giving up on unlock notification" in caplog.text
        # The unlock itself is unaffected
        assert "first_application" in repository.fetch_unlocks(test_user.id)

    def test_delivery_runs_outside_the_coordinator_lock(self, test_user, catalog, repository):
        seen = []

        class ConcurrentReader:
            """Reads coordinator state from another thread while a send is in flight."""

            def send(self, event):
                reader = threading.Thread(target=lambda: seen.append(coordinator.unlocked_ids))
                reader.start()
                reader.join(timeout=2)
                seen.append(reader.is_alive())

        coordinator = make_coordinator(test_user, catalog, repository, ConcurrentReader())
        coordinator.apply(["first_application"])

        result = coordinator.flush()

        assert result.notified == ("first_application",)
        assert seen == [frozenset({"first_application"}), False]


class TestLostReplies:
    """The row was committed but the write reported a failure."""

    def test_retry_still_notifies(self, test_user, catalog, flaky_repository, notifier, clock):
        flaky_repository.lost_replies = 1
        coordinator = make_coordinator(test_user, catalog, flaky_repository, notifier, clock=clock)
        coordinator.apply(["first_application"])

        first = coordinator.flush(force=True)
        second = coordinator.flush(force=True)

        assert first.still_pending == ("first_application",)
        assert second.created == ("first_application",)
        assert second.notified == ("first_application",)
        assert [e.achievement_id for e in notifier.events] == ["first_application"]
        assert list(flaky_repository.fetch_unlocks(test_user.id)) == ["first_application"]

    def test_hydrate_after_lost_reply_notifies(self, test_user, catalog, flaky_repository, notifier, clock):
        flaky_repository.lost_replies = 1
        coordinator = make_coordinator(test_user, catalog, flaky_repository, notifier, clock=clock)
        coordinator.apply(["first_application"])
        coordinator.flush(force=True)

        coordinator.hydrate(flaky_repository.fetch_unlocks(test_user.id))
        result = coordinator.flush()

        assert coordinator.pending_ids == ()
        assert result.notified == ("first_application",)
        assert len(notifier.events) == 1

    def test_same_timestamp_race_notifies_once(self, test_user, catalog, repository, notifier, clock):
        first = make_coordinator(test_user, catalog, repository, notifier, clock=clock)
        second = make_coordinator(test_user, catalog, repository, notifier, clock=clock)
        first.apply(["first_application"])
        second.apply(["first_application"])

        first.flush()
        result = second.flush()

        assert result.already_unlocked == ("first_application",)
        assert len(notifier.events) == 1
