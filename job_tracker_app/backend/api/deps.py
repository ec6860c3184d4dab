"""
Shared FastAPI dependencies.

Authentication lives in front of this service; requests identify the user
with the ``X-User-Id`` header.
"""
from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from .. import schemas
from ..models.db import crud
from ..models.db.database import get_db
from ..services.progress_session import ProgressSession, ProgressSessionRegistry


def get_current_user(
    x_user_id: int = Header(..., alias="X-User-Id"),
    db: Session = Depends(get_db),
):
    user = crud.get_user(db, user_id=x_user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown user",
        )
    return user

def get_current_active_user(current_user: schemas.User = Depends(get_current_user)):
    if not current_user.is_active:
        raise HTTPException(status_code=400, detail="Inactive user")
    return current_user

def get_registry(request: Request) -> ProgressSessionRegistry:
    return request.app.state.progress_registry

def get_progress_session(
    current_user: schemas.User = Depends(get_current_active_user),
    registry: ProgressSessionRegistry = Depends(get_registry),
) -> ProgressSession:
    return registry.get(current_user.id)
