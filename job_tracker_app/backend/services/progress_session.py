"""
Per-user progress session.

A session ties together the streak tracker, the unlock coordinator and the
progress store for one user. Recompute triggers are numbered; a run whose
number has been superseded by a newer trigger is discarded instead of
publishing stale results.
"""
import logging
import threading
from dataclasses import dataclass
from datetime import date
from typing import Dict, Optional, Tuple

from ..config.settings import Settings, get_settings
from ..utils.clock import today_utc
from .achievement_catalog import AchievementCatalog
from .achievement_repository import AchievementRepository
from .exceptions import MetricsValidationError, StoreUnavailableError
from .metrics import MetricsSnapshot, build_metrics_snapshot
from .progress_store import ProgressSnapshot, ProgressStore
from .requirement_evaluator import evaluate
from .streak_calculator import StreakTracker
from .unlock_coordinator import SyncResult, UnlockCoordinator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecomputeResult:
    generation: int
    newly_unlocked: Tuple[str, ...]
    snapshot: ProgressSnapshot


class ProgressSession:
    def __init__(
        self,
        user_id: int,
        repository: AchievementRepository,
        notifier,
        catalog: Optional[AchievementCatalog],
        settings: Optional[Settings] = None,
    ):
        self.user_id = user_id
        self.repository = repository
        self.catalog = catalog
        self.settings = settings or get_settings()

        self.streak = StreakTracker()
        self.coordinator = None
        if catalog is not None:
            self.coordinator = UnlockCoordinator(
                user_id,
                catalog,
                repository,
                notifier,
                retry_base_seconds=self.settings.unlock_retry_base_seconds,
                retry_max_seconds=self.settings.unlock_retry_max_seconds,
                notification_max_attempts=self.settings.notification_max_attempts,
            )
        self.store = ProgressStore(user_id, catalog, repository, level_step=self.settings.level_step)

        self._generation = 0
        self._generation_lock = threading.Lock()
        self._run_lock = threading.Lock()
        self._load_lock = threading.Lock()
        self._hydrated = False
        self._last_metrics: Optional[MetricsSnapshot] = None

    @property
    def evaluation_enabled(self) -> bool:
        return self.coordinator is not None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def snapshot(self) -> ProgressSnapshot:
        return self.store.snapshot

    @property
    def hydrated(self) -> bool:
        """True once the authoritative unlock set has been read."""
        return self._hydrated

    def load(self) -> ProgressSnapshot:
        """Pull the authoritative unlock set and stats into the session."""
        with self._load_lock:
            self._load()
        return self.store.snapshot

    def ensure_loaded(self) -> bool:
        """
        Load once. Callers arriving while the first load runs wait for it, and
        a load that found the store unreachable is retried on the next call.
        """
        with self._load_lock:
            if not self._hydrated:
                self._load()
            return self._hydrated

    def _load(self) -> None:
        pending = self.coordinator.pending_ids if self.coordinator is not None else ()
        unlocks = self.store.load(pending=pending, metrics=self._last_metrics)
        if unlocks is None:
            return
        if self.coordinator is not None:
            self.coordinator.hydrate(unlocks)
        self._hydrated = True

    def request_recompute(self) -> int:
        """Register a new trigger; earlier runs still in flight become stale."""
        with self._generation_lock:
            self._generation += 1
            return self._generation

    def _is_current(self, generation: int) -> bool:
        with self._generation_lock:
            return generation == self._generation

    def run_recompute(self, generation: int, today: Optional[date] = None, persist: bool = True) -> Optional[RecomputeResult]:
        """
        Recompute streak, metrics and unlocks for a trigger.

        Returns None when a newer trigger superseded this one.

        Raises:
            StoreUnavailableError: If the application history cannot be read.
            MetricsValidationError: If the derived snapshot is malformed.
        """
        with self._run_lock:
            if not self._is_current(generation):
                logger.debug("Recompute %d for user %s superseded before start", generation, self.user_id)
                return None
            self.ensure_loaded()

            facts = self.repository.fetch_application_facts(self.user_id)
            goals = self.repository.fetch_goals(self.user_id)
            streak = self.streak.recompute([f.date_applied for f in facts if f.date_applied is not None])
            metrics = build_metrics_snapshot(
                facts,
                goals=goals,
                today=today or today_utc(),
                streak=streak,
                company_sets=self.settings.company_sets,
                early_bird_hour=self.settings.early_bird_hour,
                night_owl_hour=self.settings.night_owl_hour,
            )
            newly = ()
            if self.coordinator is not None:
                newly = evaluate(metrics, self.catalog, self.coordinator.unlocked_ids)

            if not self._is_current(generation):
                logger.debug("Discarding superseded recompute %d for user %s", generation, self.user_id)
                return None

            pending = ()
            unlock_times = {}
            if self.coordinator is not None:
                self.coordinator.apply(newly)
                pending = self.coordinator.pending_ids
                unlock_times = self.coordinator.unlock_times()
            self._last_metrics = metrics
            snapshot = self.store.refresh(unlock_times, streak, pending=pending, metrics=metrics)

        if persist and self._hydrated:
            self._save_stats(snapshot)
        elif persist:
            logger.info("Not caching stats for user %s until the stored unlocks have been read", self.user_id)
        return RecomputeResult(generation, tuple(newly), snapshot)

    def recompute(self, today: Optional[date] = None, persist: bool = True) -> Optional[RecomputeResult]:
        return self.run_recompute(self.request_recompute(), today=today, persist=persist)

    def sync(self, force: bool = False) -> SyncResult:
        """Write pending unlocks to the store and publish what was confirmed."""
        self.ensure_loaded()
        if self.coordinator is None:
            return SyncResult()
        result = self.coordinator.flush(force=force)
        if result.confirmed:
            self.store.refresh(
                self.coordinator.unlock_times(),
                self.streak.stats,
                pending=self.coordinator.pending_ids,
                metrics=self._last_metrics,
            )
        if result.still_pending:
            logger.info("User %s has %d unlock(s) awaiting a retry", self.user_id, len(result.still_pending))
        return result

    def _save_stats(self, snapshot: ProgressSnapshot) -> None:
        try:
            self.repository.save_stats(self.user_id, snapshot.stats)
        except StoreUnavailableError as e:
            logger.warning("Could not persist progress stats for user %s: %s", self.user_id, e)


class ProgressSessionRegistry:
    """Creates and caches one ProgressSession per user."""

    def __init__(
        self,
        repository: AchievementRepository,
        notifier,
        catalog: Optional[AchievementCatalog],
        settings: Optional[Settings] = None,
    ):
        self.repository = repository
        self.notifier = notifier
        self.catalog = catalog
        self.settings = settings or get_settings()
        self._sessions: Dict[int, ProgressSession] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, user_id: int) -> ProgressSession:
        with self._lock:
            session = self._sessions.get(user_id)
            if session is None:
                session = ProgressSession(user_id, self.repository, self.notifier, self.catalog, self.settings)
                self._sessions[user_id] = session
        session.ensure_loaded()
        return session

    def sync_all(self, force: bool = False) -> Dict[int, SyncResult]:
        with self._lock:
            sessions = list(self._sessions.values())
        return {s.user_id: s.sync(force=force) for s in sessions}


def process_trigger(session: ProgressSession, generation: int, today: Optional[date] = None) -> Optional[RecomputeResult]:
    """
    Background entry point for a numbered trigger: recompute, then flush.

    Engine failures are logged and the trigger is skipped; the next trigger
    recomputes from the full history.
    """
    try:
        result = session.run_recompute(generation, today=today)
    except MetricsValidationError as e:
        logger.warning("Skipping trigger %d for user %s, malformed metrics: %s", generation, session.user_id, e)
        return None
    except StoreUnavailableError as e:
        logger.warning("Skipping trigger %d for user %s, store unavailable: %s", generation, session.user_id, e)
        return None
    if result is not None:
        session.sync()
    return result
