from pydantic import Field, field_validator
from typing import List, Optional
import datetime as dt

from .common import CamelModel
from ..utils.sanitization import strip_dangerous_tags


class DateNeeded(CamelModel):
    date: dt.date
    staff_count: int = Field(..., ge=0, le=500)


class CreateBookingSessionRequest(CamelModel):
    show_id: str = Field(..., min_length=1, max_length=36)
    dates_needed: List[DateNeeded] = Field(..., min_length=1)
    notes: Optional[str] = Field(None, max_length=5000)
    total_staff_needed: Optional[int] = Field(None, ge=0)
    primary_contact_id: Optional[str] = Field(None, max_length=36)
    primary_location_id: Optional[str] = Field(None, max_length=36)

    @field_validator('notes', mode='before')
    @classmethod
    def sanitize_notes(cls, v):
        if isinstance(v, str):
            return strip_dangerous_tags(v)
        return v


class CreateBookingSessionResponse(CamelModel):
    url: str
    intent_id: str


class ConfirmSessionResponse(CamelModel):
    success: bool
    booking_id: Optional[str] = None
    idempotent: bool = False
    pending: bool = False
    message: Optional[str] = None


class ChargeFinalRequest(CamelModel):
    booking_id: str = Field(..., min_length=1, max_length=36)
    override_fee_cents: Optional[int] = Field(None, ge=0)
    override_rate_cents: Optional[int] = Field(None, ge=0)
    dry_run: bool = False


class FinalFeeComputed(CamelModel):
    rate_cents: int
    staff_days: int
    total_cents: int


class ChargeFinalResponse(CamelModel):
    booking_id: str
    computed: FinalFeeComputed
    amount_to_charge_cents: int
    dry_run: bool = False
    success: bool = False
    payment_intent_id: Optional[str] = None
    amount_cents: Optional[int] = None
    requires_action: bool = False
    url: Optional[str] = None
