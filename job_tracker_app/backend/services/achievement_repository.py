"""
Access to the authoritative store: catalog, unlock and stats tables, plus the
application and goal rows the engine reads.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.db import achievement as achievement_model
from ..models.db import application as application_model
from ..models.db import goal as goal_model
from ..models.db.database import SessionLocal
from .achievement_catalog import AchievementCatalog
from .exceptions import StoreUnavailableError
from .metrics import DEFAULT_GOALS, ApplicationFacts, GoalTargets

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UnlockWriteResult:
    achievement_id: str
    unlocked_at: datetime
    created: bool  # False when the row already existed


@dataclass(frozen=True)
class ProgressStats:
    total_xp: int = 0
    current_level: int = 1
    achievements_unlocked: int = 0
    daily_streak: int = 0
    longest_streak: int = 0
    last_application_date: Optional[date] = None
    streak_start_date: Optional[date] = None


class AchievementRepository:
    """Thin SQLAlchemy wrapper; every call runs in its own short session."""

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    @contextmanager
    def _session(self):
        db: Session = self.session_factory()
        try:
            yield db
        except IntegrityError:
            db.rollback()
            raise
        except SQLAlchemyError as e:
            db.rollback()
            raise StoreUnavailableError(f"Achievement store error: {e}") from e
        finally:
            db.close()

    def sync_catalog(self, catalog: AchievementCatalog) -> int:
        """Upsert catalog rows; returns how many were written."""
        rows = catalog.to_rows()
        with self._session() as db:
            for row in rows:
                db.merge(achievement_model.Achievement(**row))
            db.commit()
        logger.info("Synced %d catalog rows (v%s)", len(rows), catalog.version)
        return len(rows)

    def fetch_unlocks(self, user_id: int) -> Dict[str, datetime]:
        with self._session() as db:
            rows = db.query(achievement_model.UserAchievement).filter(
                achievement_model.UserAchievement.user_id == user_id
            ).all()
            return {row.achievement_id: row.unlocked_at for row in rows}

    def insert_unlock(self, user_id: int, achievement_id: str, unlocked_at: datetime) -> UnlockWriteResult:
        """
        Insert an unlock row. A uniqueness violation means the achievement is
        already unlocked and is reported as ``created=False`` with the
        existing row's timestamp.
        """
        try:
            with self._session() as db:
                db.add(achievement_model.UserAchievement(
                    user_id=user_id, achievement_id=achievement_id, unlocked_at=unlocked_at
                ))
                db.commit()
            return UnlockWriteResult(achievement_id, unlocked_at, created=True)
        except IntegrityError as e:
            existing = self.fetch_unlocks(user_id).get(achievement_id)
            if existing is None:
                raise StoreUnavailableError(
                    f"Unlock of {achievement_id} for user {user_id} rejected: {e.orig}"
                ) from e
            logger.debug("Achievement %s already unlocked for user %s", achievement_id, user_id)
            return UnlockWriteResult(achievement_id, existing, created=False)

    def fetch_stats(self, user_id: int) -> Optional[ProgressStats]:
        with self._session() as db:
            row = db.get(achievement_model.UserProgressStats, user_id)
            if row is None:
                return None
            return ProgressStats(
                total_xp=row.total_xp or 0,
                current_level=row.current_level or 1,
                achievements_unlocked=row.achievements_unlocked or 0,
                daily_streak=row.daily_streak or 0,
                longest_streak=row.longest_streak or 0,
                last_application_date=row.last_application_date,
                streak_start_date=row.streak_start_date,
            )

    def save_stats(self, user_id: int, stats: ProgressStats) -> None:
        """Overwrite the cached stats row (last write wins)."""
        with self._session() as db:
            db.merge(achievement_model.UserProgressStats(
                user_id=user_id,
                total_xp=stats.total_xp,
                current_level=stats.current_level,
                achievements_unlocked=stats.achievements_unlocked,
                daily_streak=stats.daily_streak,
                longest_streak=stats.longest_streak,
                last_application_date=stats.last_application_date,
                streak_start_date=stats.streak_start_date,
            ))
            db.commit()

    def fetch_application_facts(self, user_id: int) -> List[ApplicationFacts]:
        with self._session() as db:
            rows = db.query(application_model.Application).filter(
                application_model.Application.user_id == user_id
            ).all()
            return [ApplicationFacts.from_record(row) for row in rows]

    def fetch_goals(self, user_id: int) -> GoalTargets:
        with self._session() as db:
            row = db.query(goal_model.Goal).filter(goal_model.Goal.user_id == user_id).first()
            if row is None:
                return DEFAULT_GOALS
            return GoalTargets(
                total_goal=row.total_goal or 0,
                weekly_goal=row.weekly_goal or 0,
                monthly_goal=row.monthly_goal or 0,
            )
