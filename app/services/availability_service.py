"""
Availability Service
====================
Staff submit the show days they can work; one record per staff + show.
Also lists the bookings a staff member has been assigned to.
"""

from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import ValidationError
from ..models.availability import Availability
from ..models.booking import Booking, BookingStatus
from ..utils.db_helpers import safe_upsert
from .client_service import summarize_bookings
from .show_service import get_show


def _parse_dates(raw_dates: List[Any]) -> List[date]:
    days = []
    for raw in raw_dates or []:
        if isinstance(raw, date):
            days.append(raw)
            continue
        try:
            days.append(date.fromisoformat(str(raw)[:10]))
        except ValueError:
            raise ValidationError(f"Invalid date: {raw}")
    return sorted(set(days))


def get_availability(db: Session, staff_id: str, show_id: Optional[str] = None) -> List[Availability]:
    query = db.query(Availability).filter(Availability.staff_id == staff_id)
    if show_id:
        query = query.filter(Availability.show_id == show_id)
    return query.order_by(Availability.created_at.asc()).all()


def set_availability(
    db: Session,
    staff_id: str,
    staff_name: Optional[str],
    show_id: str,
    available_dates: List[Any]
) -> Availability:
    """
    Replace a staff member's dates for one show.

    Dates must fall inside the show's range when the show has one.
    """
    show = get_show(db, show_id)
    days = _parse_dates(available_dates)

    for day in days:
        if show.start_date and day < show.start_date:
            raise ValidationError(f"{day.isoformat()} is before the show starts")
        if show.end_date and day > show.end_date:
            raise ValidationError(f"{day.isoformat()} is after the show ends")

    iso_dates = [d.isoformat() for d in days]
    lookup = (Availability.staff_id == staff_id) & (Availability.show_id == show_id)

    try:
        record, _ = safe_upsert(
            db, Availability, lookup,
            create_data={
                "staff_id": staff_id,
                "staff_name": staff_name,
                "show_id": show_id,
                "available_dates": iso_dates,
            },
            update_data={"staff_name": staff_name, "available_dates": iso_dates},
        )
        db.commit()
    except IntegrityError:
        # A concurrent first submission won the insert; update that row
        db.rollback()
        record = db.query(Availability).filter(lookup).first()
        record.staff_name = staff_name
        record.available_dates = iso_dates
        db.commit()

    db.refresh(record)
    return record


def list_staff_bookings(db: Session, staff_id: str) -> List[Dict[str, Any]]:
    """Bookings where the staff member is assigned on at least one date."""
    candidates = (
        db.query(Booking)
        .filter(Booking.status != BookingStatus.DECLINED.value)
        .order_by(Booking.created_at.desc())
        .all()
    )
    assigned = [b for b in candidates if staff_id in b.assigned_staff_ids]
    return summarize_bookings(db, assigned)
