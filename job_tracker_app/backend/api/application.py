from typing import List
from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.orm import Session

from .. import schemas
from ..services import application_tracker as application_service
from ..services.progress_session import ProgressSession, process_trigger
from ..models.db.database import get_db
from ..utils.api_helpers import check_resource_exists, validate_non_empty_string
from .deps import get_current_active_user, get_progress_session

router = APIRouter()

def schedule_progress_update(session: ProgressSession, background_tasks: BackgroundTasks) -> None:
    """Number the trigger now so older runs are superseded, evaluate after the response."""
    generation = session.request_recompute()
    background_tasks.add_task(process_trigger, session, generation)

@router.post("/", response_model=schemas.Application, status_code=status.HTTP_201_CREATED)
def create_application(
    application: schemas.ApplicationCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: schemas.User = Depends(get_current_active_user),
    session: ProgressSession = Depends(get_progress_session),
):
    """
    Create a new job application entry for the current user.
    """
    validate_non_empty_string(application.company, "Company")
    validate_non_empty_string(application.position, "Position")
    db_application = application_service.create_application_for_user(
        db=db, application=application, user_id=current_user.id
    )
    schedule_progress_update(session, background_tasks)
    return db_application

@router.get("/", response_model=List[schemas.Application])
def read_applications(
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    current_user: schemas.User = Depends(get_current_active_user)
):
    """
    Retrieve all job applications for the current user.
    """
    applications = application_service.get_applications_for_user(
        db, user_id=current_user.id, skip=skip, limit=limit
    )
    return applications

@router.get("/{application_id}", response_model=schemas.Application)
def read_application(
    application_id: int,
    db: Session = Depends(get_db),
    current_user: schemas.User = Depends(get_current_active_user)
):
    """
    Retrieve a specific job application by its ID.
    """
    db_application = application_service.get_application_by_id(
        db, application_id=application_id, user_id=current_user.id
    )
    check_resource_exists(db_application, "Application")
    return db_application

@router.put("/{application_id}", response_model=schemas.Application)
def update_application(
    application_id: int,
    application: schemas.ApplicationUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: schemas.User = Depends(get_current_active_user),
    session: ProgressSession = Depends(get_progress_session),
):
    """
    Update a job application's details.
    """
    db_application = application_service.update_application(
        db, application_id=application_id, application_update=application, user_id=current_user.id
    )
    check_resource_exists(db_application, "Application")
    schedule_progress_update(session, background_tasks)
    return db_application

@router.delete("/{application_id}", response_model=schemas.Application)
def delete_application(
    application_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: schemas.User = Depends(get_current_active_user),
    session: ProgressSession = Depends(get_progress_session),
):
    """
    Delete a job application. Achievements it helped unlock stay unlocked.
    """
    db_application = application_service.delete_application(
        db, application_id=application_id, user_id=current_user.id
    )
    check_resource_exists(db_application, "Application")
    schedule_progress_update(session, background_tasks)
    return db_application
