# Models package
from .client import Client
from .staff import Staff, StaffRole
from .show import Show
from .booking import Booking, BookingStatus, PaymentStatus, STATUS_RANK
from .booking_intent import BookingIntent
from .availability import Availability
from .webhook_event import WebhookEventLog, WebhookEventStatus

__all__ = [
    "Client",
    "Staff", "StaffRole",
    "Show",
    "Booking", "BookingStatus", "PaymentStatus", "STATUS_RANK",
    "BookingIntent",
    "Availability",
    "WebhookEventLog", "WebhookEventStatus",
]
