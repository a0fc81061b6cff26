"""
Webhook Receiver

Stripe webhook handler that:
1. Verifies the Stripe-Signature header
2. Skips provider event ids that were already handled
3. Dispatches the event to the reconciliation service
4. Records the outcome on webhook_event_logs

Response contract (Stripe retries anything non-2xx):
- 400 bad signature
- 200 processed, duplicate, or rejected for a business reason
- 500 transient failure, so the delivery is retried
"""

import json
import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import NotFoundError, StateError, ValidationError
from ..models.webhook_event import WebhookEventLog, WebhookEventStatus
from ..utils.sanitization import sanitize_for_log
from .payment_gateway import StripeGateway
from .reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)

PROVIDER = "stripe"

# Maximum payload size (256KB)
MAX_PAYLOAD_SIZE = 256 * 1024

# Business rejections: acknowledged, never retried
REJECTABLE_ERRORS = (NotFoundError, ValidationError, StateError)


class WebhookReceiveResult:
    """Result from receiving a webhook."""

    def __init__(
        self,
        success: bool,
        event_id: Optional[str] = None,
        action: Optional[str] = None,
        booking_id: Optional[str] = None,
        message: str = "",
        duplicate: bool = False,
        rejected: bool = False
    ):
        self.success = success
        self.event_id = event_id
        self.action = action
        self.booking_id = booking_id
        self.message = message
        self.duplicate = duplicate
        self.rejected = rejected

    def to_dict(self) -> dict:
        return {
            "received": self.success,
            "eventId": self.event_id,
            "action": self.action,
            "bookingId": self.booking_id,
            "duplicate": self.duplicate,
            "rejected": self.rejected,
            "message": self.message,
        }


class StripeWebhookReceiver:
    """
    Verifies and processes Stripe events inline.

    Promotion and status updates are idempotent on their own; the event log
    only saves redundant work and keeps an audit of what arrived.
    """

    def __init__(self, db: Session, gateway: StripeGateway):
        self.db = db
        self.gateway = gateway
        self.reconciliation = ReconciliationService(db, gateway)

    def _claim_event(self, event: dict, payload: bytes) -> Optional[WebhookEventLog]:
        """
        Record the event as processing.

        Returns None when the event id was already processed or rejected.
        """
        event_id = event.get("id")

        existing = self.db.query(WebhookEventLog).filter(
            WebhookEventLog.provider == PROVIDER,
            WebhookEventLog.event_id == event_id
        ).first()

        if existing is None:
            existing = WebhookEventLog(
                provider=PROVIDER,
                event_id=event_id,
                event_type=event.get("type"),
                payload_json=payload.decode("utf-8", errors="replace"),
                status=WebhookEventStatus.PROCESSING.value,
                attempts=1,
                received_at=datetime.utcnow()
            )
            self.db.add(existing)
            try:
                self.db.commit()
            except IntegrityError:
                # Concurrent delivery of the same event inserted first
                self.db.rollback()
                existing = self.db.query(WebhookEventLog).filter(
                    WebhookEventLog.provider == PROVIDER,
                    WebhookEventLog.event_id == event_id
                ).first()
            else:
                return existing

        if existing.status in (WebhookEventStatus.PROCESSED.value, WebhookEventStatus.REJECTED.value):
            return None

        # Earlier attempt failed (or is still running): handlers are idempotent
        existing.attempts = (existing.attempts or 0) + 1
        existing.status = WebhookEventStatus.PROCESSING.value
        self.db.commit()
        return existing

    def _finish(self, event_log: WebhookEventLog, status: str, action: str = None,
                booking_id: str = None, error: str = None):
        event_log.status = status
        event_log.result_action = action
        event_log.result_booking_id = booking_id
        event_log.error_message = error
        event_log.processed_at = datetime.utcnow()
        self.db.commit()

    def receive(self, payload: bytes, signature: Optional[str]) -> WebhookReceiveResult:
        """
        Verify and process one webhook delivery.

        Raises:
            WebhookSignatureError: signature or payload invalid (400)
            HTTPException 413: payload too large
            HTTPException 500: transient failure, Stripe should retry
        """
        if len(payload) > MAX_PAYLOAD_SIZE:
            raise HTTPException(status_code=413, detail="Payload too large")

        event = self.gateway.construct_event(payload, signature)
        event_id = event.get("id")
        event_type = event.get("type")

        try:
            event_log = self._claim_event(event, payload)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception(f"Could not record webhook {event_id}: {e}")
            raise HTTPException(status_code=500, detail="Internal error processing webhook")

        if event_log is None:
            logger.info(f"Duplicate webhook {event_id} ({event_type}) acknowledged")
            return WebhookReceiveResult(
                success=True,
                event_id=event_id,
                action="duplicate",
                message="Event already processed",
                duplicate=True
            )

        try:
            outcome = self.reconciliation.handle_event(event)
        except REJECTABLE_ERRORS as e:
            self.db.rollback()
            logger.warning(f"Webhook {event_id} ({event_type}) rejected: {e.message} {json.dumps(e.context, default=str)}")
            self._finish(event_log, WebhookEventStatus.REJECTED.value, action="rejected", error=e.message)
            return WebhookReceiveResult(
                success=True,
                event_id=event_id,
                action="rejected",
                message=e.message,
                rejected=True
            )
        except Exception as e:
            logger.exception(f"Error processing webhook {event_id} ({event_type}): {e}")
            self.db.rollback()
            try:
                self._finish(event_log, WebhookEventStatus.FAILED.value, action="failed", error=sanitize_for_log(e, 1000))
            except SQLAlchemyError:
                self.db.rollback()
                logger.exception(f"Could not mark webhook {event_id} as failed")
            raise HTTPException(status_code=500, detail="Internal error processing webhook")

        self._finish(
            event_log,
            WebhookEventStatus.PROCESSED.value,
            action=outcome.action,
            booking_id=outcome.booking_id
        )
        logger.info(f"Processed webhook {event_id} ({event_type}): {outcome.action}")

        return WebhookReceiveResult(
            success=True,
            event_id=event_id,
            action=outcome.action,
            booking_id=outcome.booking_id,
            message="Event processed"
        )
