"""
Reconciliation Service
======================
Promotes paid BookingIntents into Bookings and applies final-fee payments.

Two triggers reach the same promotion step:
1. Webhook: checkout.session.completed / payment_intent.succeeded
2. Poll: the success page calls confirm_session with the checkout session id

Either may arrive first, both may arrive, and the provider redelivers
webhooks. Promotion therefore claims the intent with a single conditional
update on `consumed_at IS NULL`; whoever loses the claim returns the
winner's booking id.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import GatewayError, NotFoundError, ValidationError
from ..models.booking import Booking, BookingStatus, PaymentStatus, statuses_below
from ..models.booking_intent import BookingIntent
from ..models.client import Client
from ..utils.db_helpers import compare_and_set, delete_where
from ..utils.logging_config import get_logger
from .payment_gateway import (
    META_BOOKING_ID,
    META_INTENT_ID,
    META_TYPE,
    PAYMENT_TYPE_BOOKING_FEE,
    PAYMENT_TYPE_FINAL_FEE,
    StripeGateway,
    as_dict,
    object_id,
)

logger = get_logger(__name__)

FINALIZING_MESSAGE = "Payment confirmed, finalizing your booking"


@dataclass
class PaymentConfirmation:
    """What the provider told us about a successful deposit."""
    checkout_session_id: Optional[str] = None
    payment_intent_id: Optional[str] = None
    customer_id: Optional[str] = None
    amount_cents: Optional[int] = None

    @classmethod
    def from_session(cls, session: Dict[str, Any]) -> "PaymentConfirmation":
        payment_intent_id = object_id(session.get("payment_intent"))
        return cls(
            checkout_session_id=session.get("id"),
            # Sessions without a payment intent fall back to their own id
            payment_intent_id=payment_intent_id or session.get("id"),
            customer_id=object_id(session.get("customer")),
            amount_cents=session.get("amount_total"),
        )

    @classmethod
    def from_payment_intent(
        cls,
        payment_intent: Dict[str, Any],
        session: Optional[Dict[str, Any]] = None
    ) -> "PaymentConfirmation":
        amount = payment_intent.get("amount_received") or payment_intent.get("amount")
        return cls(
            checkout_session_id=session.get("id") if session else None,
            payment_intent_id=payment_intent.get("id"),
            customer_id=object_id(payment_intent.get("customer")),
            amount_cents=amount,
        )


@dataclass
class PromotionResult:
    booking_id: str
    intent_id: str
    idempotent: bool = False


@dataclass
class ConfirmResult:
    success: bool
    booking_id: Optional[str] = None
    idempotent: bool = False
    pending: bool = False
    message: Optional[str] = None


@dataclass
class EventOutcome:
    action: str  # promoted, duplicate, expired, final_paid, ignored
    booking_id: Optional[str] = None


def advance_booking_status(
    db: Session,
    booking_id: str,
    target_status: str,
    values: Dict[str, Any]
) -> bool:
    """
    Move a booking forward to `target_status` together with `values`.

    Conditional on the current status ranking strictly below the target, so
    status never regresses and a replayed advance is a no-op. Commits.
    Returns whether the row changed.
    """
    update_values = dict(values)
    update_values["status"] = target_status
    update_values["updated_at"] = datetime.utcnow()

    advanced = compare_and_set(
        db, Booking, Booking.id == booking_id,
        update_values,
        Booking.status.in_(statuses_below(target_status)),
    )
    db.commit()
    return advanced


class ReconciliationService:
    """Intent promotion, expiry and final-payment bookkeeping."""

    def __init__(self, db: Session, gateway: StripeGateway):
        self.db = db
        self.gateway = gateway

    # ============ Intent resolution ============

    def resolve_intent_id(
        self,
        session: Dict[str, Any],
        payment_intent: Optional[Dict[str, Any]] = None
    ) -> Optional[str]:
        """
        Find the intent behind a checkout session.

        Precedence: session metadata, then the payment intent's metadata, then
        the intent stored with this checkout session id.
        """
        metadata = as_dict(session.get("metadata"))
        if metadata.get(META_INTENT_ID):
            return metadata[META_INTENT_ID]

        if payment_intent is None:
            payment_intent_id = object_id(session.get("payment_intent"))
            if payment_intent_id:
                try:
                    payment_intent = self.gateway.retrieve_payment_intent(payment_intent_id)
                except GatewayError as e:
                    logger.warning(f"Could not read payment intent {payment_intent_id}: {e.message}")

        if payment_intent:
            pi_metadata = as_dict(payment_intent.get("metadata"))
            if pi_metadata.get(META_INTENT_ID):
                return pi_metadata[META_INTENT_ID]

        session_id = session.get("id")
        if session_id:
            intent = self.db.query(BookingIntent).filter(
                BookingIntent.stripe_checkout_session_id == session_id
            ).first()
            if intent:
                return intent.id

        return None

    # ============ Promotion ============

    def promote_intent(
        self,
        intent_id: str,
        confirmation: PaymentConfirmation,
        source: str = "webhook"
    ) -> PromotionResult:
        """
        Create the Booking for a paid intent, exactly once.

        Raises:
            NotFoundError: no such intent (never created, or expired)
            SQLAlchemyError: the store failed; nothing was committed
        """
        intent = self.db.query(BookingIntent).filter(BookingIntent.id == intent_id).first()
        if not intent:
            raise NotFoundError("Booking intent not found", intent_id=intent_id)

        if intent.consumed_at is not None:
            logger.booking_promoted(intent.booking_id, intent.id, source, idempotent=True)
            return PromotionResult(booking_id=intent.booking_id, intent_id=intent.id, idempotent=True)

        booking_id = str(uuid.uuid4())
        won = compare_and_set(
            self.db, BookingIntent, BookingIntent.id == intent_id,
            {"consumed_at": datetime.utcnow(), "booking_id": booking_id},
            BookingIntent.consumed_at.is_(None),
        )

        if not won:
            # Someone else claimed it between our read and our update
            self.db.rollback()
            winner = (
                self.db.query(BookingIntent)
                .populate_existing()
                .filter(BookingIntent.id == intent_id)
                .first()
            )
            if not winner or not winner.booking_id:
                raise NotFoundError("Booking intent no longer available", intent_id=intent_id)
            logger.booking_promoted(winner.booking_id, intent_id, source, idempotent=True)
            return PromotionResult(booking_id=winner.booking_id, intent_id=intent_id, idempotent=True)

        customer_id = confirmation.customer_id
        if not customer_id:
            client = self.db.query(Client).filter(Client.id == intent.client_id).first()
            customer_id = client.stripe_customer_id if client else None

        amount_paid = confirmation.amount_cents
        if amount_paid is None:
            amount_paid = intent.booking_fee_cents

        booking = Booking(
            id=booking_id,
            client_id=intent.client_id,
            show_id=intent.show_id,
            show_name=intent.show_name,
            show_data=dict(intent.show_data or {}),
            dates_needed=[
                {"date": d["date"], "staff_count": int(d.get("staff_count") or 0), "staff_ids": []}
                for d in (intent.dates_needed or [])
            ],
            notes=intent.notes,
            total_staff_needed=intent.total_staff_needed,
            status=BookingStatus.DEPOSIT_PAID.value,
            payment_status=PaymentStatus.PAYMENT_PENDING.value,
            booking_fee_cents=intent.booking_fee_cents,
            booking_fee_cents_paid=amount_paid,
            stripe_customer_id=customer_id,
            stripe_checkout_session_id=confirmation.checkout_session_id or intent.stripe_checkout_session_id,
            stripe_payment_intent_id=confirmation.payment_intent_id,
            primary_contact_id=intent.primary_contact_id,
            primary_location_id=intent.primary_location_id,
        )
        self.db.add(booking)

        try:
            self.db.commit()
        except SQLAlchemyError:
            # The claim rolls back with the insert, so a retry can promote
            self.db.rollback()
            raise

        logger.booking_promoted(booking_id, intent_id, source)
        return PromotionResult(booking_id=booking_id, intent_id=intent_id, idempotent=False)

    # ============ Expiry ============

    def expire_intent(self, intent_id: str) -> bool:
        """
        Delete an intent whose checkout expired, unless it was consumed.

        Best effort: store failures are logged and reported as False.
        """
        try:
            removed = delete_where(
                self.db, BookingIntent, BookingIntent.id == intent_id,
                BookingIntent.consumed_at.is_(None),
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.log_with_context(
                logging.ERROR,
                f"Failed to delete expired intent {intent_id}: {e}",
                entity_type="booking_intent",
                entity_id=intent_id,
            )
            return False

        if removed:
            logger.info(f"Deleted expired booking intent {intent_id}")
        else:
            logger.info(f"Expired intent {intent_id} already consumed or gone, kept as is")
        return removed == 1

    # ============ Final fee ============

    def apply_final_payment(
        self,
        booking_id: str,
        amount_cents: Optional[int],
        payment_intent_id: Optional[str] = None,
        invoice_id: Optional[str] = None,
        checkout_session_id: Optional[str] = None,
        source: str = "webhook"
    ) -> bool:
        """Record a collected final fee. Returns False if already recorded."""
        booking = self.db.query(Booking).filter(Booking.id == booking_id).first()
        if not booking:
            raise NotFoundError("Booking not found", booking_id=booking_id)

        now = datetime.utcnow()
        audit = dict(booking.final_calculation or {})
        audit.update({
            "charged_cents": amount_cents,
            "charged_at": now.isoformat(),
            "confirmed_via": source,
        })
        if checkout_session_id:
            audit["checkout_session_id"] = checkout_session_id

        values: Dict[str, Any] = {
            "payment_status": PaymentStatus.PAID.value,
            "final_fee_cents_paid": amount_cents,
            "final_calculation": audit,
        }
        if payment_intent_id:
            values["stripe_final_payment_intent_id"] = payment_intent_id
        if invoice_id:
            values["stripe_invoice_id"] = invoice_id

        old_status = booking.status
        advanced = advance_booking_status(self.db, booking_id, BookingStatus.FINAL_PAID.value, values)
        if advanced:
            logger.booking_status_changed(booking_id, old_status, BookingStatus.FINAL_PAID.value)
        else:
            logger.info(f"Final payment for booking {booking_id} already recorded (status {old_status})")
        return advanced

    # ============ Poll trigger ============

    def confirm_session(self, session_id: str) -> ConfirmResult:
        """
        Success-page confirmation.

        Raises:
            ValidationError: session id missing or the session is not complete
            NotFoundError: no intent / booking behind the session
            GatewayError: the session could not be retrieved

        Failures after the session is known to be paid are not raised: the
        caller gets `pending=True` and the webhook finishes the job.
        """
        if not session_id:
            raise ValidationError("session_id is required")

        session = self.gateway.retrieve_checkout_session(session_id)
        if session.get("status") != "complete":
            raise ValidationError("Session not complete", session_status=session.get("status"))

        metadata = as_dict(session.get("metadata"))
        if metadata.get(META_TYPE) == PAYMENT_TYPE_FINAL_FEE:
            booking_id = metadata.get(META_BOOKING_ID)
            if not booking_id:
                raise NotFoundError("No booking for this session")
            advanced = self.apply_final_payment(
                booking_id,
                session.get("amount_total"),
                payment_intent_id=object_id(session.get("payment_intent")),
                checkout_session_id=session.get("id"),
                source="poll",
            )
            return ConfirmResult(success=True, booking_id=booking_id, idempotent=not advanced)

        intent_id = self.resolve_intent_id(session)
        if not intent_id:
            raise NotFoundError("No booking found for this session", session_id=session_id)

        try:
            result = self.promote_intent(intent_id, PaymentConfirmation.from_session(session), source="poll")
        except (SQLAlchemyError, GatewayError) as e:
            self.db.rollback()
            logger.log_with_context(
                logging.ERROR,
                f"Promotion failed for paid session {session_id}: {e}",
                entity_type="booking_intent",
                entity_id=intent_id,
            )
            return ConfirmResult(success=True, pending=True, message=FINALIZING_MESSAGE)

        return ConfirmResult(success=True, booking_id=result.booking_id, idempotent=result.idempotent)

    # ============ Webhook trigger ============

    def handle_event(self, event: Dict[str, Any]) -> EventOutcome:
        """
        Dispatch a verified provider event.

        Business rejections raise NotFoundError / ValidationError; the
        webhook receiver acknowledges those. Anything else propagates.
        """
        event_type = event.get("type")
        obj = as_dict(as_dict(event.get("data")).get("object"))

        if event_type == "checkout.session.completed":
            return self._on_session_completed(obj)
        if event_type == "checkout.session.expired":
            return self._on_session_expired(obj)
        if event_type == "payment_intent.succeeded":
            return self._on_payment_intent_succeeded(obj)
        if event_type == "invoice.payment_succeeded":
            return self._on_invoice_paid(obj)

        logger.debug(f"Ignoring event type {event_type}")
        return EventOutcome(action="ignored")

    def _on_session_completed(self, session: Dict[str, Any]) -> EventOutcome:
        metadata = as_dict(session.get("metadata"))

        if metadata.get(META_TYPE) == PAYMENT_TYPE_FINAL_FEE:
            booking_id = metadata.get(META_BOOKING_ID)
            if not booking_id:
                raise ValidationError("Final fee session without bookingId", session_id=session.get("id"))
            advanced = self.apply_final_payment(
                booking_id,
                session.get("amount_total"),
                payment_intent_id=object_id(session.get("payment_intent")),
                checkout_session_id=session.get("id"),
            )
            return EventOutcome(action="final_paid" if advanced else "duplicate", booking_id=booking_id)

        # Sessions only complete unpaid for async payment methods
        if session.get("payment_status") not in (None, "paid", "no_payment_required"):
            logger.info(f"Session {session.get('id')} completed with payment_status={session.get('payment_status')}")
            return EventOutcome(action="ignored")

        intent_id = self.resolve_intent_id(session)
        if not intent_id:
            raise NotFoundError("No booking intent for session", session_id=session.get("id"))

        result = self.promote_intent(intent_id, PaymentConfirmation.from_session(session))
        return EventOutcome(action="duplicate" if result.idempotent else "promoted", booking_id=result.booking_id)

    def _on_session_expired(self, session: Dict[str, Any]) -> EventOutcome:
        metadata = as_dict(session.get("metadata"))
        if metadata.get(META_TYPE) == PAYMENT_TYPE_FINAL_FEE:
            # Booking stays as is; staff can trigger the charge again
            return EventOutcome(action="ignored", booking_id=metadata.get(META_BOOKING_ID))

        intent_id = metadata.get(META_INTENT_ID)
        if not intent_id and session.get("id"):
            intent = self.db.query(BookingIntent).filter(
                BookingIntent.stripe_checkout_session_id == session["id"]
            ).first()
            intent_id = intent.id if intent else None

        if not intent_id:
            logger.info(f"Expired session {session.get('id')} has no intent")
            return EventOutcome(action="ignored")

        self.expire_intent(intent_id)
        return EventOutcome(action="expired")

    def _on_payment_intent_succeeded(self, payment_intent: Dict[str, Any]) -> EventOutcome:
        metadata = as_dict(payment_intent.get("metadata"))
        payment_type = metadata.get(META_TYPE)

        if payment_type == PAYMENT_TYPE_FINAL_FEE:
            booking_id = metadata.get(META_BOOKING_ID)
            if not booking_id:
                raise ValidationError("Final fee payment without bookingId", payment_intent_id=payment_intent.get("id"))
            amount = payment_intent.get("amount_received") or payment_intent.get("amount")
            advanced = self.apply_final_payment(
                booking_id,
                amount,
                payment_intent_id=payment_intent.get("id"),
            )
            return EventOutcome(action="final_paid" if advanced else "duplicate", booking_id=booking_id)

        session = self.gateway.find_checkout_session_for_payment_intent(payment_intent.get("id"))

        intent_id = metadata.get(META_INTENT_ID)
        if not intent_id and session:
            intent_id = self.resolve_intent_id(session, payment_intent=payment_intent)
        if not intent_id:
            if payment_type != PAYMENT_TYPE_BOOKING_FEE:
                # No booking metadata and no intent behind its checkout session: not a portal payment
                return EventOutcome(action="ignored")
            raise NotFoundError("No booking intent for payment", payment_intent_id=payment_intent.get("id"))

        confirmation = PaymentConfirmation.from_payment_intent(payment_intent, session)
        result = self.promote_intent(intent_id, confirmation)
        return EventOutcome(action="duplicate" if result.idempotent else "promoted", booking_id=result.booking_id)

    def _on_invoice_paid(self, invoice: Dict[str, Any]) -> EventOutcome:
        metadata = as_dict(invoice.get("metadata"))
        booking_id = metadata.get(META_BOOKING_ID)
        if not booking_id:
            return EventOutcome(action="ignored")

        advanced = self.apply_final_payment(
            booking_id,
            invoice.get("amount_paid"),
            payment_intent_id=object_id(invoice.get("payment_intent")),
            invoice_id=invoice.get("id"),
        )
        return EventOutcome(action="final_paid" if advanced else "duplicate", booking_id=booking_id)
