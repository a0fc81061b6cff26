from pydantic import EmailStr, Field
from typing import Any, Dict, List, Optional
from datetime import datetime

from .common import CamelModel


class Contact(CamelModel):
    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=200)
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=30)
    role: Optional[str] = Field(None, max_length=100)


class Location(CamelModel):
    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=200)
    address: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    zip: Optional[str] = Field(None, max_length=20)


class ClientProfile(CamelModel):
    id: str
    email: str
    name: str
    category: Optional[str] = None
    location: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    logo_url: Optional[str] = None
    contacts: List[Contact] = []
    locations: List[Location] = []
    created_at: Optional[datetime] = None


class ClientProfileUpdate(CamelModel):
    name: Optional[str] = Field(None, max_length=200)
    category: Optional[str] = Field(None, max_length=100)
    location: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=30)
    website: Optional[str] = Field(None, max_length=255)
    email: Optional[EmailStr] = None


class ContactsUpdate(CamelModel):
    contacts: List[Contact]


class LocationsUpdate(CamelModel):
    locations: List[Location]


class BookingSummary(CamelModel):
    id: str
    client_id: str
    show_id: str
    show_name: str
    show_data: Dict[str, Any] = {}
    dates_needed: List[Dict[str, Any]] = []
    notes: Optional[str] = None
    status: str
    payment_status: str
    booking_fee_cents_paid: Optional[int] = None
    final_fee_cents_paid: Optional[int] = None
    total_staff_needed: int
    has_assigned_staff: bool
    unique_staff_ids: List[str] = []
    primary_contact_id: Optional[str] = None
    primary_location_id: Optional[str] = None
    created_at: Optional[datetime] = None


class BookingListResponse(CamelModel):
    bookings: List[BookingSummary]
