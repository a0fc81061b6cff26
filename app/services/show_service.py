"""
Show Service
============
Show lookups plus the display-name fallback used wherever a booking is shown
without its show row at hand.
"""

from datetime import date
from typing import Any, List, Optional

from sqlalchemy.orm import Session

from ..errors import NotFoundError, ValidationError
from ..models.show import Show

UNKNOWN_SHOW = "Unknown Show"


def _field(source: Any, name: str) -> Optional[str]:
    if source is None:
        return None
    if isinstance(source, dict):
        value = source.get(name)
    else:
        value = getattr(source, name, None)
    if isinstance(value, str):
        value = value.strip()
    return value or None


def resolve_show_name(show: Any = None, booking: Any = None, default: str = UNKNOWN_SHOW) -> str:
    """
    Display name for a booking's show.

    Tries, in order: the show's name, the booking's stored show_name, then
    the legacy `title` and `name` fields older records carry. Works on model
    instances and plain dicts alike.
    """
    candidates = (
        _field(show, "name"),
        _field(booking, "show_name"),
        _field(booking, "title"),
        _field(booking, "name"),
    )
    for candidate in candidates:
        if candidate:
            return candidate
    return default


def get_show(db: Session, show_id: str) -> Show:
    show = db.query(Show).filter(Show.id == show_id).first()
    if not show:
        raise NotFoundError("Show not found", show_id=show_id)
    return show


def list_shows(db: Session, upcoming_only: bool = False) -> List[Show]:
    query = db.query(Show)
    if upcoming_only:
        query = query.filter((Show.end_date.is_(None)) | (Show.end_date >= date.today()))
    return query.order_by(Show.start_date.asc()).all()


def create_show(
    db: Session,
    name: str,
    location: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None
) -> Show:
    if not name or not name.strip():
        raise ValidationError("Show name is required")
    if start_date and end_date and end_date < start_date:
        raise ValidationError("Show end date is before its start date")

    show = Show(name=name.strip(), location=location, start_date=start_date, end_date=end_date)
    db.add(show)
    db.commit()
    db.refresh(show)
    return show
