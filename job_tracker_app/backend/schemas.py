from datetime import date, datetime
from typing import Optional, Dict, List

from pydantic import BaseModel, Field, field_validator

from .services.metrics import APPLICATION_STATUSES, JOB_TYPES

# User Schemas
class UserBase(BaseModel):
    email: str
    full_name: Optional[str] = None

class UserCreate(UserBase):
    pass

class User(UserBase):
    id: int
    is_active: bool

    class Config:
        from_attributes = True

# Application Tracker Schemas
class Attachment(BaseModel):
    name: str
    type: Optional[str] = None
    size: Optional[int] = None
    category: Optional[str] = None  # resume / cover_letter; inferred from the name when missing

class ApplicationBase(BaseModel):
    company: str
    position: str
    status: str = Field("Applied", examples=["Applied"])
    job_type: str = Field("Onsite", examples=["Remote"])
    location: Optional[str] = None
    date_applied: date
    submitted_at: Optional[datetime] = None
    notes: Optional[str] = None
    attachments: List[Attachment] = []

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v not in APPLICATION_STATUSES:
            raise ValueError(f"status must be one of {', '.join(APPLICATION_STATUSES)}")
        return v

    @field_validator("job_type")
    @classmethod
    def validate_job_type(cls, v):
        if v not in JOB_TYPES:
            raise ValueError(f"job_type must be one of {', '.join(JOB_TYPES)}")
        return v

class ApplicationCreate(ApplicationBase):
    pass

class ApplicationUpdate(BaseModel):
    company: Optional[str] = None
    position: Optional[str] = None
    status: Optional[str] = None
    job_type: Optional[str] = None
    location: Optional[str] = None
    date_applied: Optional[date] = None
    submitted_at: Optional[datetime] = None
    notes: Optional[str] = None
    attachments: Optional[List[Attachment]] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v is not None and v not in APPLICATION_STATUSES:
            raise ValueError(f"status must be one of {', '.join(APPLICATION_STATUSES)}")
        return v

    @field_validator("job_type")
    @classmethod
    def validate_job_type(cls, v):
        if v is not None and v not in JOB_TYPES:
            raise ValueError(f"job_type must be one of {', '.join(JOB_TYPES)}")
        return v

class Application(ApplicationBase):
    id: int
    user_id: int

    class Config:
        from_attributes = True

# Goal Schemas
class GoalBase(BaseModel):
    total_goal: int = Field(100, ge=0)
    weekly_goal: int = Field(5, ge=0)
    monthly_goal: int = Field(20, ge=0)

class GoalUpdate(BaseModel):
    total_goal: Optional[int] = Field(None, ge=0)
    weekly_goal: Optional[int] = Field(None, ge=0)
    monthly_goal: Optional[int] = Field(None, ge=0)

class Goal(GoalBase):
    user_id: int
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class GoalProgress(BaseModel):
    goals: GoalBase
    progress: Dict[str, float]  # weekly / monthly / total percentages, unclamped

# Achievement Schemas
class Achievement(BaseModel):
    id: str
    name: str
    description: str
    category: str
    tier: str
    rarity: str
    icon: str
    xp_reward: int
    unlocked: bool
    unlocked_at: Optional[datetime] = None
    pending: bool = False
    progress: float = 0.0
    current: float = 0
    target: float = 0

    class Config:
        from_attributes = True

class AchievementList(BaseModel):
    achievements: List[Achievement]
    total: int
    unlocked: int
    evaluation_enabled: bool
    degraded: bool = False

class UserLevel(BaseModel):
    level: int
    xp: int
    xp_to_next: int
    total_xp: int
    title: str
    color: str

    class Config:
        from_attributes = True

class StreakSummary(BaseModel):
    daily_streak: int
    longest_streak: int
    last_application_date: Optional[date] = None
    streak_start_date: Optional[date] = None

class ProgressStats(BaseModel):
    total_xp: int
    current_level: int
    achievements_unlocked: int
    total_achievements: int
    daily_streak: int
    longest_streak: int
    category_counts: Dict[str, int]
    recent_unlocks: List[Achievement]
    evaluation_enabled: bool
    degraded: bool = False

class RecomputeResponse(BaseModel):
    scheduled: bool
    newly_unlocked: List[str] = []
    level: Optional[UserLevel] = None
    pending: List[str] = []
    evaluation_enabled: bool

class SyncResponse(BaseModel):
    created: List[str]
    already_unlocked: List[str]
    still_pending: List[str]
    notified: List[str]
    dead_lettered: List[str]

