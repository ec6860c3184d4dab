"""
Unlock coordination: optimistic local unlocks, a pending-unlock queue, and
reconciliation with the authoritative store.

The store's unique (user_id, achievement_id) constraint is the only arbiter of
"exactly once". Local state here is advisory and safe to repeat:

* XP is always summed over the *set* of unlocked ids, never incremented.
* A pending unlock is never dropped; failed writes are retried on later
  flushes with exponential backoff.
* Only the write that actually created the row queues a notification,
  including a write whose commit landed but whose reply was lost.
"""
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from ..utils.clock import utcnow
from .achievement_catalog import AchievementCatalog
from .achievement_repository import AchievementRepository, UnlockWriteResult
from .exceptions import NotificationDeliveryError, StoreUnavailableError
from .notifications import AchievementUnlockedEvent

logger = logging.getLogger(__name__)


@dataclass
class PendingUnlock:
    achievement_id: str
    optimistic_at: datetime
    attempts: int = 0
    next_attempt_at: Optional[datetime] = None
    last_error: Optional[str] = None


@dataclass
class PendingNotification:
    event: AchievementUnlockedEvent
    attempts: int = 0
    last_error: Optional[str] = None


@dataclass(frozen=True)
class SyncResult:
    created: Tuple[str, ...] = ()
    already_unlocked: Tuple[str, ...] = ()
    still_pending: Tuple[str, ...] = ()
    notified: Tuple[str, ...] = ()
    dead_lettered: Tuple[str, ...] = ()

    @property
    def confirmed(self) -> Tuple[str, ...]:
        return tuple(sorted(self.created + self.already_unlocked))


@dataclass
class _FlushState:
    created: List[str] = field(default_factory=list)
    already_unlocked: List[str] = field(default_factory=list)


class UnlockCoordinator:
    """Per-user unlock state for one session."""

    def __init__(
        self,
        user_id: int,
        catalog: AchievementCatalog,
        repository: AchievementRepository,
        notifier,
        retry_base_seconds: float = 2.0,
        retry_max_seconds: float = 300.0,
        notification_max_attempts: int = 3,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.user_id = user_id
        self.catalog = catalog
        self.repository = repository
        self.notifier = notifier
        self.retry_base_seconds = retry_base_seconds
        self.retry_max_seconds = retry_max_seconds
        self.notification_max_attempts = notification_max_attempts
        self.clock = clock

        self._confirmed: Dict[str, datetime] = {}
        self._pending: Dict[str, PendingUnlock] = {}
        self._notifications: List[PendingNotification] = []
        self._dead_letters: List[PendingNotification] = []
        self._lock = threading.RLock()

    # ------------------------------------------------------------------ state

    @property
    def unlocked_ids(self) -> FrozenSet[str]:
        """Confirmed and optimistic unlocks."""
        with self._lock:
            return frozenset(self._confirmed) | frozenset(self._pending)

    @property
    def pending_ids(self) -> Tuple[str, ...]:
        with self._lock:
            return tuple(sorted(self._pending))

    @property
    def dead_letters(self) -> Tuple[AchievementUnlockedEvent, ...]:
        with self._lock:
            return tuple(n.event for n in self._dead_letters)

    def unlock_times(self) -> Dict[str, datetime]:
        """Unlock timestamp per id; optimistic entries carry their local time."""
        with self._lock:
            times = {a: p.optimistic_at for a, p in self._pending.items()}
            times.update(self._confirmed)
            return times

    def total_xp(self) -> int:
        return self.catalog.total_xp(self.unlocked_ids)

    def hydrate(self, authoritative: Mapping[str, datetime]) -> None:
        """
        Merge the authoritative unlock set. Pending entries another session
        already wrote are settled without a notification from this one.
        """
        with self._lock:
            for achievement_id, unlocked_at in authoritative.items():
                self._confirmed[achievement_id] = unlocked_at
                pending = self._pending.pop(achievement_id, None)
                if pending is None:
                    continue
                if self._wrote_before(pending, UnlockWriteResult(achievement_id, unlocked_at, created=False)):
                    self._notifications.append(PendingNotification(self._event_for(achievement_id)))
                else:
                    logger.debug("Pending unlock %s settled by authoritative record", achievement_id)

    # --------------------------------------------------------------- unlocks

    def apply(self, achievement_ids: Iterable[str]) -> Tuple[str, ...]:
        """
        Mark achievements unlocked locally, ahead of confirmation.

        Returns the ids that were not already unlocked or pending, in sorted order.
        """
        now = self.clock()
        applied = []
        with self._lock:
            for achievement_id in sorted(set(achievement_ids)):
                if achievement_id in self._confirmed or achievement_id in self._pending:
                    continue
                if achievement_id not in self.catalog:
                    logger.warning("Ignoring unlock of unknown achievement %s", achievement_id)
                    continue
                self._pending[achievement_id] = PendingUnlock(achievement_id, optimistic_at=now)
                applied.append(achievement_id)
        if applied:
            logger.info("Optimistically unlocked %s for user %s", applied, self.user_id)
        return tuple(applied)

    def _backoff(self, attempts: int) -> timedelta:
        return timedelta(seconds=min(self.retry_base_seconds * (2 ** (attempts - 1)), self.retry_max_seconds))

    def flush(self, force: bool = False) -> SyncResult:
        """
        Write due pending unlocks, then deliver queued notifications.

        Args:
            force: Ignore backoff timers and attempt every pending write now.
        """
        state = _FlushState()
        with self._lock:
            now = self.clock()
            due = [
                p for p in self._pending.values()
                if force or p.next_attempt_at is None or p.next_attempt_at <= now
            ]
            for pending in due:
                self._write(pending, state)
            batch, self._notifications = self._notifications, []
            still_pending = tuple(sorted(self._pending))

        # Delivery can block on the webhook, so it runs without the lock
        notified, dead = self._deliver_notifications(batch)
        return SyncResult(
            created=tuple(state.created),
            already_unlocked=tuple(state.already_unlocked),
            still_pending=still_pending,
            notified=notified,
            dead_lettered=dead,
        )

    def _write(self, pending: PendingUnlock, state: _FlushState) -> None:
        try:
            result = self.repository.insert_unlock(self.user_id, pending.achievement_id, pending.optimistic_at)
        except StoreUnavailableError as e:
            pending.attempts += 1
            pending.last_error = str(e)
            pending.next_attempt_at = self.clock() + self._backoff(pending.attempts)
            logger.warning(
                "Unlock write for %s failed (attempt %d), retrying after %s: %s",
                pending.achievement_id, pending.attempts, pending.next_attempt_at, e
            )
            return

        del self._pending[pending.achievement_id]
        self._confirmed[pending.achievement_id] = result.unlocked_at
        if result.created or self._wrote_before(pending, result):
            state.created.append(pending.achievement_id)
            self._notifications.append(PendingNotification(self._event_for(pending.achievement_id)))
        else:
            state.already_unlocked.append(pending.achievement_id)

    @staticmethod
    def _wrote_before(pending: PendingUnlock, result: UnlockWriteResult) -> bool:
        """
        An earlier attempt may have committed the row and then lost the reply.
        The stored timestamp is this entry's optimistic one exactly when that
        happened, so the notification is still ours to send.
        """
        return pending.attempts > 0 and result.unlocked_at == pending.optimistic_at

    def _event_for(self, achievement_id: str) -> AchievementUnlockedEvent:
        definition = self.catalog.get(achievement_id)
        return AchievementUnlockedEvent(
            user_id=self.user_id,
            achievement_id=achievement_id,
            xp_reward=definition.xp_reward,
            name=definition.name,
            description=definition.description,
            rarity=definition.rarity.value,
        )

    # ---------------------------------------------------------- notifications

    def _deliver_notifications(self, batch: List[PendingNotification]) -> Tuple[Tuple[str, ...], Tuple[str, ...]]:
        notified, dead = [], []
        remaining, given_up = [], []
        for pending in batch:
            try:
                self.notifier.send(pending.event)
            except NotificationDeliveryError as e:
                pending.attempts += 1
                pending.last_error = str(e)
                if pending.attempts >= self.notification_max_attempts:
                    logger.error(
                        "Giving up on unlock notification for %s after %d attempts: %s",
                        pending.event.achievement_id, pending.attempts, e
                    )
                    given_up.append(pending)
                    dead.append(pending.event.achievement_id)
                else:
                    logger.warning("Unlock notification for %s failed: %s", pending.event.achievement_id, e)
                    remaining.append(pending)
                continue
            notified.append(pending.event.achievement_id)
        with self._lock:
            # Retries go ahead of anything queued while delivery ran
            self._notifications = remaining + self._notifications
            self._dead_letters.extend(given_up)
        return tuple(notified), tuple(dead)
