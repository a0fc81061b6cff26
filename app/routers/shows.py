from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas.show import ShowCreate, ShowResponse
from ..services import show_service
from ..utils.dependencies import CurrentUser, ROLE_ADMIN, get_current_user, require_roles

router = APIRouter(prefix="/api/shows", tags=["Shows"])


@router.get("", response_model=List[ShowResponse])
def list_shows(
    upcoming: bool = Query(False),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user)
):
    return show_service.list_shows(db, upcoming_only=upcoming)


@router.post("", response_model=ShowResponse, status_code=status.HTTP_201_CREATED)
def create_show(
    data: ShowCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(require_roles(ROLE_ADMIN))
):
    return show_service.create_show(
        db,
        name=data.name,
        location=data.location,
        start_date=data.start_date,
        end_date=data.end_date,
    )
