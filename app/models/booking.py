import uuid
from datetime import datetime
from sqlalchemy import Column, String, Integer, Text, DateTime, JSON, Index
from ..database import Base
import enum


class BookingStatus(str, enum.Enum):
    PAYMENT_PENDING = "payment_pending"
    DEPOSIT_PAID = "deposit_paid"
    FINAL_PAID = "final_paid"
    PAID = "paid"
    COMPLETED = "completed"
    DECLINED = "declined"


class PaymentStatus(str, enum.Enum):
    PAYMENT_PENDING = "payment_pending"
    PAID = "paid"


# Status only moves forward. Equal-rank statuses are alternatives, not steps.
STATUS_RANK = {
    BookingStatus.PAYMENT_PENDING.value: 0,
    BookingStatus.DEPOSIT_PAID.value: 1,
    BookingStatus.FINAL_PAID.value: 2,
    BookingStatus.PAID.value: 2,
    BookingStatus.COMPLETED.value: 3,
    BookingStatus.DECLINED.value: 3,
}


def statuses_below(status: str) -> list:
    """Statuses a booking may currently hold and still advance to `status`."""
    target = STATUS_RANK[status]
    return [s for s, rank in STATUS_RANK.items() if rank < target]


class Booking(Base):
    """Confirmed booking. Only ever created by promoting a paid BookingIntent."""
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    client_id = Column(String(36), nullable=False, index=True)
    show_id = Column(String(36), nullable=False, index=True)
    show_name = Column(String(255), nullable=True)
    show_data = Column(JSON, default=dict)  # {location, start_date, end_date}

    # [{date, staff_count, staff_ids: []}]
    dates_needed = Column(JSON, default=list)
    notes = Column(Text, nullable=True)
    total_staff_needed = Column(Integer, default=0)

    status = Column(String(30), default=BookingStatus.PAYMENT_PENDING.value, nullable=False)
    payment_status = Column(String(30), default=PaymentStatus.PAYMENT_PENDING.value, nullable=False)

    # Amounts in cents
    booking_fee_cents = Column(Integer, default=0)
    booking_fee_cents_paid = Column(Integer, nullable=True)
    final_fee_cents_paid = Column(Integer, nullable=True)

    # Payment gateway references
    stripe_customer_id = Column(String(255), nullable=True)
    stripe_checkout_session_id = Column(String(255), nullable=True)
    stripe_payment_intent_id = Column(String(255), nullable=True)
    stripe_final_payment_intent_id = Column(String(255), nullable=True)
    stripe_invoice_id = Column(String(255), nullable=True)

    # Audit trail of final fee computation / charge attempts
    final_calculation = Column(JSON, nullable=True)

    primary_contact_id = Column(String(36), nullable=True)
    primary_location_id = Column(String(36), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_booking_client_created", "client_id", "created_at"),
        Index("ix_booking_checkout_session", "stripe_checkout_session_id"),
        Index("ix_booking_status", "status"),
    )

    @property
    def staff_days(self) -> int:
        return sum(int(d.get("staff_count") or 0) for d in (self.dates_needed or []))

    @property
    def assigned_staff_ids(self) -> list:
        """Unique assigned staff ids across all dates, in first-seen order."""
        seen = []
        for day in self.dates_needed or []:
            for staff_id in day.get("staff_ids") or []:
                if staff_id not in seen:
                    seen.append(staff_id)
        return seen

    def __repr__(self):
        return f"<Booking {self.id} {self.show_name} status={self.status}>"
