from sqlalchemy.orm import Session

from ..models.db import goal as goal_model
from ..models.db import application as application_model
from ..utils.clock import today_utc
from .. import schemas
from .metrics import GoalTargets, goal_progress

def get_goals_for_user(db: Session, user_id: int):
    return db.query(goal_model.Goal).filter(goal_model.Goal.user_id == user_id).first()

def upsert_goals(db: Session, goals_update: schemas.GoalUpdate, user_id: int):
    db_goal = get_goals_for_user(db, user_id=user_id)
    if db_goal is None:
        db_goal = goal_model.Goal(user_id=user_id, **schemas.GoalBase().model_dump())
        db.add(db_goal)
    for key, value in goals_update.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(db_goal, key, value)
    db.commit()
    db.refresh(db_goal)
    return db_goal

def get_goal_progress(db: Session, user_id: int, today=None) -> schemas.GoalProgress:
    """Goal targets plus the current weekly/monthly/total percentages."""
    db_goal = get_goals_for_user(db, user_id=user_id)
    goals = schemas.GoalBase.model_validate(db_goal, from_attributes=True) if db_goal else schemas.GoalBase()
    dates = [
        row.date_applied
        for row in db.query(application_model.Application.date_applied).filter(
            application_model.Application.user_id == user_id
        )
        if row.date_applied is not None
    ]
    progress = goal_progress(dates, GoalTargets(**goals.model_dump()), today or today_utc())
    return schemas.GoalProgress(
        goals=goals,
        progress={period.value: round(percent, 2) for period, percent in progress.items()},
    )
