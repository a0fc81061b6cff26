"""
Client Service
==============
Client profile, nested contacts / locations, and the booking list shown on
the client dashboard.
"""

import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..errors import NotFoundError, ValidationError
from ..models.booking import Booking
from ..models.client import Client
from ..models.show import Show
from .show_service import resolve_show_name

# Fields a client may change on their own profile
PROFILE_FIELDS = ("name", "category", "location", "phone", "website", "email")

CONTACT_FIELDS = ("name", "email", "phone", "role")
LOCATION_FIELDS = ("name", "address", "city", "state", "zip")


def get_client(db: Session, client_id: str) -> Client:
    client = db.query(Client).filter(Client.id == client_id).first()
    if not client:
        raise NotFoundError("Client profile not found", client_id=client_id)
    return client


def update_profile(db: Session, client: Client, data: Dict[str, Any]) -> Client:
    """Apply the allowed profile fields from `data`; anything else is ignored."""
    updates = {k: v for k, v in data.items() if k in PROFILE_FIELDS and v is not None}

    if "email" in updates:
        email = str(updates["email"]).strip().lower()
        taken = db.query(Client).filter(Client.email == email, Client.id != client.id).first()
        if taken:
            raise ValidationError("Email already in use")
        updates["email"] = email

    if "name" in updates and not str(updates["name"]).strip():
        raise ValidationError("Company name cannot be empty")

    for key, value in updates.items():
        setattr(client, key, value)

    db.commit()
    db.refresh(client)
    return client


def _normalize_entries(entries: List[Dict[str, Any]], fields: tuple, label: str) -> List[Dict[str, Any]]:
    normalized = []
    seen_ids = set()
    for entry in entries or []:
        name = (entry.get("name") or "").strip()
        if not name:
            raise ValidationError(f"Every {label} needs a name")

        entry_id = entry.get("id") or str(uuid.uuid4())
        if entry_id in seen_ids:
            raise ValidationError(f"Duplicate {label} id: {entry_id}")
        seen_ids.add(entry_id)

        item = {"id": entry_id}
        for field in fields:
            value = entry.get(field)
            item[field] = value.strip() if isinstance(value, str) else value
        normalized.append(item)
    return normalized


def replace_contacts(db: Session, client: Client, contacts: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    # JSON columns only persist on reassignment
    client.contacts = _normalize_entries(contacts, CONTACT_FIELDS, "contact")
    db.commit()
    return client.contacts


def replace_locations(db: Session, client: Client, locations: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    client.locations = _normalize_entries(locations, LOCATION_FIELDS, "location")
    db.commit()
    return client.locations


def booking_summary(booking: Booking, show: Optional[Show] = None) -> Dict[str, Any]:
    """Booking as the dashboards display it, with recomputed staff totals."""
    staff_ids = booking.assigned_staff_ids
    show_data = dict(booking.show_data or {})
    if show is not None:
        show_data.update({k: v for k, v in show.snapshot().items() if v})

    return {
        "id": booking.id,
        "client_id": booking.client_id,
        "show_id": booking.show_id,
        "show_name": resolve_show_name(show, booking),
        "show_data": show_data,
        "dates_needed": list(booking.dates_needed or []),
        "notes": booking.notes,
        "status": booking.status,
        "payment_status": booking.payment_status,
        "booking_fee_cents_paid": booking.booking_fee_cents_paid,
        "final_fee_cents_paid": booking.final_fee_cents_paid,
        "total_staff_needed": booking.staff_days,
        "has_assigned_staff": bool(staff_ids),
        "unique_staff_ids": staff_ids,
        "primary_contact_id": booking.primary_contact_id,
        "primary_location_id": booking.primary_location_id,
        "created_at": booking.created_at,
    }


def summarize_bookings(db: Session, bookings: List[Booking]) -> List[Dict[str, Any]]:
    show_ids = {b.show_id for b in bookings if b.show_id}
    shows = {}
    if show_ids:
        shows = {s.id: s for s in db.query(Show).filter(Show.id.in_(show_ids)).all()}
    return [booking_summary(b, shows.get(b.show_id)) for b in bookings]


def list_client_bookings(db: Session, client_id: str) -> List[Dict[str, Any]]:
    """Client's bookings, newest first."""
    bookings = (
        db.query(Booking)
        .filter(Booking.client_id == client_id)
        .order_by(Booking.created_at.desc())
        .all()
    )
    return summarize_bookings(db, bookings)
