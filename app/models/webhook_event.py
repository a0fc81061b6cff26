"""
Webhook Event Log Model

One row per provider event id. Lets the receiver acknowledge redeliveries
without reprocessing and keeps the raw payload for auditing.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, Index, Integer, UniqueConstraint
from ..database import Base
import enum


class WebhookEventStatus(str, enum.Enum):
    PROCESSING = "processing"
    PROCESSED = "processed"
    REJECTED = "rejected"  # Business rejection, acknowledged
    FAILED = "failed"      # Transient failure, provider will retry


class WebhookEventLog(Base):
    __tablename__ = "webhook_event_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    provider = Column(String(50), default="stripe", nullable=False)
    event_id = Column(String(255), nullable=False)
    event_type = Column(String(100), nullable=True)

    payload_json = Column(Text, nullable=False)

    status = Column(String(20), default=WebhookEventStatus.PROCESSING.value)
    attempts = Column(Integer, default=0)

    result_action = Column(String(50), nullable=True)
    result_booking_id = Column(String(36), nullable=True)
    error_message = Column(Text, nullable=True)

    received_at = Column(DateTime, default=datetime.utcnow)
    processed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("provider", "event_id", name="uq_webhook_event_provider_event"),
        Index("ix_webhook_event_status", "status", "received_at"),
    )

    def __repr__(self):
        return f"<WebhookEventLog {self.provider} {self.event_type} status={self.status}>"
