from sqlalchemy import (
    Column, Integer, String, Text, Date, DateTime, JSON, ForeignKey, UniqueConstraint, func
)
from .database import Base


class Achievement(Base):
    """Catalog row, mirrored from the in-process catalog at startup."""
    __tablename__ = "achievements"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String, index=True)
    tier = Column(String)
    rarity = Column(String)
    icon = Column(String, nullable=True)
    xp_reward = Column(Integer, default=0)
    requirements = Column(JSON, default=list)
    catalog_version = Column(String)


class UserAchievement(Base):
    """Source of truth for "has this user unlocked this achievement". Insert-only."""
    __tablename__ = "user_achievements"
    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="uq_user_achievement"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    achievement_id = Column(String, ForeignKey("achievements.id"), nullable=False)
    unlocked_at = Column(DateTime, nullable=False)


class UserProgressStats(Base):
    """Per-user cache; always rebuildable from unlocks and application history."""
    __tablename__ = "user_progress_stats"

    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    total_xp = Column(Integer, default=0)
    current_level = Column(Integer, default=1)
    achievements_unlocked = Column(Integer, default=0)
    daily_streak = Column(Integer, default=0)
    longest_streak = Column(Integer, default=0)
    last_application_date = Column(Date, nullable=True)
    streak_start_date = Column(Date, nullable=True)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
