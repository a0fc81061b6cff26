from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas.client import BookingListResponse
from ..schemas.show import AvailabilityResponse, AvailabilityUpdate
from ..services import availability_service
from ..utils.dependencies import CurrentUser, ROLE_ADMIN, ROLE_STAFF, require_roles

router = APIRouter(prefix="/api/staff", tags=["Staff"])

staff_only = require_roles(ROLE_STAFF, ROLE_ADMIN)


@router.get("/availability", response_model=List[AvailabilityResponse])
def get_availability(
    show_id: Optional[str] = Query(None, max_length=36),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(staff_only)
):
    return availability_service.get_availability(db, current_user.id, show_id)


@router.put("/availability", response_model=AvailabilityResponse)
def set_availability(
    data: AvailabilityUpdate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(staff_only)
):
    """Replace the caller's available dates for one show."""
    return availability_service.set_availability(
        db,
        staff_id=current_user.id,
        staff_name=current_user.name,
        show_id=data.show_id,
        available_dates=data.available_dates,
    )


@router.get("/bookings", response_model=BookingListResponse)
def list_assigned_bookings(
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(staff_only)
):
    return {"bookings": availability_service.list_staff_bookings(db, current_user.id)}
