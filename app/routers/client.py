from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas.client import (
    BookingListResponse,
    ClientProfile,
    ClientProfileUpdate,
    ContactsUpdate,
    LocationsUpdate,
)
from ..services import client_service
from ..utils.dependencies import CurrentUser, ROLE_CLIENT, require_roles

router = APIRouter(prefix="/api/client", tags=["Client"])

client_only = require_roles(ROLE_CLIENT)


@router.get("/profile", response_model=ClientProfile)
def get_profile(
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(client_only)
):
    return client_service.get_client(db, current_user.id)


@router.put("/profile", response_model=ClientProfile)
def update_profile(
    data: ClientProfileUpdate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(client_only)
):
    """Update company profile. Only name, category, location, phone, website and email are writable."""
    client = client_service.get_client(db, current_user.id)
    return client_service.update_profile(db, client, data.model_dump(exclude_unset=True))


@router.put("/contacts", response_model=ClientProfile)
def replace_contacts(
    data: ContactsUpdate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(client_only)
):
    client = client_service.get_client(db, current_user.id)
    client_service.replace_contacts(db, client, [c.model_dump() for c in data.contacts])
    return client


@router.put("/locations", response_model=ClientProfile)
def replace_locations(
    data: LocationsUpdate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(client_only)
):
    client = client_service.get_client(db, current_user.id)
    client_service.replace_locations(db, client, [loc.model_dump() for loc in data.locations])
    return client


@router.get("/bookings", response_model=BookingListResponse)
def list_bookings(
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(client_only)
):
    """Client's bookings, newest first."""
    return {"bookings": client_service.list_client_bookings(db, current_user.id)}
