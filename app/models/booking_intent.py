"""
Booking Intent Model

A booking request waiting on its deposit. Created when the client submits
the booking form, promoted into a Booking once the deposit is confirmed
(webhook or success-page poll, whichever lands first), deleted if the
checkout session expires unpaid.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, Integer, Text, DateTime, JSON, Index
from ..database import Base


class BookingIntent(Base):
    __tablename__ = "booking_intents"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    client_id = Column(String(36), nullable=False, index=True)
    show_id = Column(String(36), nullable=False)
    show_name = Column(String(255), nullable=True)
    show_data = Column(JSON, default=dict)

    # [{date, staff_count}]
    dates_needed = Column(JSON, default=list)
    notes = Column(Text, nullable=True)
    total_staff_needed = Column(Integer, default=0)
    booking_fee_cents = Column(Integer, nullable=False)

    primary_contact_id = Column(String(36), nullable=True)
    primary_location_id = Column(String(36), nullable=True)

    stripe_checkout_session_id = Column(String(255), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    # Set together, once, by the promotion claim
    consumed_at = Column(DateTime, nullable=True)
    booking_id = Column(String(36), nullable=True)

    __table_args__ = (
        Index("ix_booking_intent_checkout_session", "stripe_checkout_session_id"),
    )

    @property
    def is_consumed(self) -> bool:
        return self.consumed_at is not None

    def __repr__(self):
        state = "consumed" if self.is_consumed else "pending"
        return f"<BookingIntent {self.id} {state}>"
