from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from .. import schemas
from ..services import goal_tracker as goal_service
from ..services.progress_session import ProgressSession
from ..models.db.database import get_db
from .application import schedule_progress_update
from .deps import get_current_active_user, get_progress_session

router = APIRouter()

@router.get("/", response_model=schemas.Goal)
def read_goals(
    db: Session = Depends(get_db),
    current_user: schemas.User = Depends(get_current_active_user)
):
    """
    Retrieve the current user's goals, falling back to the defaults.
    """
    db_goal = goal_service.get_goals_for_user(db, user_id=current_user.id)
    if db_goal is None:
        return schemas.Goal(user_id=current_user.id)
    return db_goal

@router.put("/", response_model=schemas.Goal)
def update_goals(
    goals: schemas.GoalUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: schemas.User = Depends(get_current_active_user),
    session: ProgressSession = Depends(get_progress_session),
):
    """
    Set any of the total, weekly and monthly goals. Goal achievements are re-evaluated.
    """
    db_goal = goal_service.upsert_goals(db, goals_update=goals, user_id=current_user.id)
    schedule_progress_update(session, background_tasks)
    return db_goal

@router.get("/progress", response_model=schemas.GoalProgress)
def read_goal_progress(
    db: Session = Depends(get_db),
    current_user: schemas.User = Depends(get_current_active_user)
):
    """
    Percentage completion of each goal; values above 100 mean the goal was exceeded.
    """
    return goal_service.get_goal_progress(db, user_id=current_user.id)
