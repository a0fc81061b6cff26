"""
Final Fee Service
=================
Collects the final staffing fee for a booking after the show:

    staff_days = sum of staff_count over dates_needed
    total      = staff_days * rate
    amount     = override fee if given, else total

The saved card from the deposit is charged off-session. When the bank wants
the cardholder present (or there is no usable card), a hosted checkout
session for the same amount is returned instead and the booking status is
left alone until that session is paid.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..config import Settings, settings as default_settings
from ..errors import AuthenticationRequiredError, NotFoundError, StateError, ValidationError
from ..models.booking import Booking, BookingStatus, PaymentStatus, STATUS_RANK
from ..utils.db_helpers import compare_and_set
from ..utils.logging_config import get_logger
from .payment_gateway import META_BOOKING_ID, META_TYPE, PAYMENT_TYPE_FINAL_FEE, StripeGateway
from .reconciliation_service import advance_booking_status
from .show_service import resolve_show_name

logger = get_logger(__name__)


@dataclass
class FinalFeeBreakdown:
    rate_cents: int
    staff_days: int
    total_cents: int
    amount_cents: int

    def computed(self) -> Dict[str, int]:
        return {
            "rate_cents": self.rate_cents,
            "staff_days": self.staff_days,
            "total_cents": self.total_cents,
        }


@dataclass
class FinalChargeResult:
    booking_id: str
    breakdown: FinalFeeBreakdown
    dry_run: bool = False
    success: bool = False
    payment_intent_id: Optional[str] = None
    requires_action: bool = False
    url: Optional[str] = None
    checkout_session_id: Optional[str] = None


def compute_final_fee(
    dates_needed: Optional[List[Dict[str, Any]]],
    rate_cents: int,
    override_fee_cents: Optional[int] = None
) -> FinalFeeBreakdown:
    """Staff-day arithmetic. An override replaces the amount, never the computation."""
    staff_days = 0
    for day in dates_needed or []:
        count = day.get("staff_count", day.get("staffCount", 0))
        staff_days += int(count or 0)

    total_cents = staff_days * int(rate_cents)
    amount_cents = int(override_fee_cents) if override_fee_cents and override_fee_cents > 0 else total_cents

    return FinalFeeBreakdown(
        rate_cents=int(rate_cents),
        staff_days=staff_days,
        total_cents=total_cents,
        amount_cents=amount_cents,
    )


class FinalFeeCharger:
    """Charges, or prepares a checkout for, a booking's final fee."""

    def __init__(self, db: Session, gateway: StripeGateway, settings: Settings = default_settings):
        self.db = db
        self.gateway = gateway
        self.settings = settings

    def charge_final(
        self,
        booking_id: str,
        override_fee_cents: Optional[int] = None,
        override_rate_cents: Optional[int] = None,
        dry_run: bool = False,
        actor_id: Optional[str] = None,
        origin: Optional[str] = None
    ) -> FinalChargeResult:
        """
        Raises:
            NotFoundError: unknown booking
            ValidationError: amount below the provider minimum
            StateError: no customer on the booking, or the final fee was already collected
            GatewayError: the provider refused for a reason other than authentication
        """
        booking = self.db.query(Booking).filter(Booking.id == booking_id).first()
        if not booking:
            raise NotFoundError("Booking not found", booking_id=booking_id)

        rate_cents = override_rate_cents if override_rate_cents and override_rate_cents > 0 \
            else self.settings.stripe_final_rate_cents
        breakdown = compute_final_fee(booking.dates_needed, rate_cents, override_fee_cents)

        if breakdown.amount_cents < self.settings.stripe_min_charge_cents:
            raise ValidationError(
                f"Amount must be at least {self.settings.stripe_min_charge_cents} cents",
                amount_cents=breakdown.amount_cents,
            )

        if dry_run:
            return FinalChargeResult(booking_id=booking.id, breakdown=breakdown, dry_run=True)

        if not booking.stripe_customer_id:
            raise StateError("Booking has no payment customer on file", booking_id=booking.id)
        if booking.final_fee_cents_paid or STATUS_RANK.get(booking.status, 0) >= STATUS_RANK[BookingStatus.FINAL_PAID.value]:
            raise StateError("Final fee already collected or booking closed", status=booking.status)

        attempt = self._begin_attempt(booking)

        payment_method_id = self.gateway.find_payment_method(
            booking.stripe_customer_id,
            deposit_payment_intent_id=booking.stripe_payment_intent_id,
        )
        if not payment_method_id:
            logger.info(f"No saved payment method for booking {booking.id}, sending checkout")
            return self._checkout_fallback(booking, breakdown, actor_id, origin, attempt)

        metadata = {META_BOOKING_ID: booking.id, META_TYPE: PAYMENT_TYPE_FINAL_FEE}
        try:
            intent = self.gateway.charge_off_session(
                customer_id=booking.stripe_customer_id,
                payment_method_id=payment_method_id,
                amount_cents=breakdown.amount_cents,
                metadata=metadata,
                idempotency_key=f"final-fee-{booking.id}-{breakdown.amount_cents}-{payment_method_id}-{attempt}",
                description=f"Final staffing fee for {resolve_show_name(booking=booking, default='your event')}",
            )
        except AuthenticationRequiredError as e:
            logger.info(f"Off-session charge for booking {booking.id} needs authentication ({e.provider_code})")
            return self._checkout_fallback(booking, breakdown, actor_id, origin, attempt)

        now = datetime.utcnow()
        audit = breakdown.computed()
        audit.update({
            "charged_cents": breakdown.amount_cents,
            "charged_at": now.isoformat(),
            "triggered_by_user_id": actor_id,
            "charge_attempts": attempt,
        })
        if breakdown.amount_cents != breakdown.total_cents:
            audit["override_fee_cents"] = breakdown.amount_cents

        payment_intent_id = intent.get("id")
        old_status = booking.status
        advanced = advance_booking_status(self.db, booking.id, BookingStatus.FINAL_PAID.value, {
            "payment_status": PaymentStatus.PAID.value,
            "final_fee_cents_paid": breakdown.amount_cents,
            "stripe_final_payment_intent_id": payment_intent_id,
            "final_calculation": audit,
        })
        if advanced:
            logger.booking_status_changed(booking.id, old_status, BookingStatus.FINAL_PAID.value)
        elif self._merge_confirmed_audit(booking.id, payment_intent_id, audit):
            logger.info(f"Final payment {payment_intent_id} was recorded by the webhook first, audit merged")
        else:
            logger.log_with_context(
                logging.ERROR,
                f"Final fee charged but booking {booking.id} had already moved on",
                entity_type="booking",
                entity_id=booking.id,
                payment_intent_id=payment_intent_id,
            )

        return FinalChargeResult(
            booking_id=booking.id,
            breakdown=breakdown,
            success=True,
            payment_intent_id=payment_intent_id,
        )

    def _begin_attempt(self, booking: Booking) -> int:
        """Count this charge attempt on the booking; provider idempotency keys are scoped to it."""
        audit = dict(booking.final_calculation or {})
        attempt = int(audit.get("charge_attempts") or 0) + 1
        audit["charge_attempts"] = attempt
        booking.final_calculation = audit
        booking.updated_at = datetime.utcnow()
        self.db.commit()
        return attempt

    def _merge_confirmed_audit(
        self,
        booking_id: str,
        payment_intent_id: Optional[str],
        audit: Dict[str, Any]
    ) -> bool:
        """
        The payment_intent.succeeded webhook may record this charge first.
        Fold the computation into that record, guarded on the same payment intent.
        """
        if not payment_intent_id:
            return False

        current = (
            self.db.query(Booking)
            .populate_existing()
            .filter(Booking.id == booking_id)
            .first()
        )
        if not current or current.stripe_final_payment_intent_id != payment_intent_id:
            return False

        merged = dict(current.final_calculation or {})
        merged.update(audit)
        merged_in = compare_and_set(
            self.db, Booking, Booking.id == booking_id,
            {"final_calculation": merged, "updated_at": datetime.utcnow()},
            Booking.stripe_final_payment_intent_id == payment_intent_id,
        )
        self.db.commit()
        return merged_in

    def _checkout_fallback(
        self,
        booking: Booking,
        breakdown: FinalFeeBreakdown,
        actor_id: Optional[str],
        origin: Optional[str],
        attempt: int
    ) -> FinalChargeResult:
        base = self.settings.redirect_base_url(origin)
        show_name = resolve_show_name(booking=booking, default="your event")

        session = self.gateway.create_checkout_session(
            customer_id=booking.stripe_customer_id,
            amount_cents=breakdown.amount_cents,
            product_name=f"Final staffing fee for {show_name}",
            metadata={META_BOOKING_ID: booking.id, META_TYPE: PAYMENT_TYPE_FINAL_FEE},
            success_url=f"{base}/client/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{base}/client/dashboard",
            idempotency_key=f"final-fee-checkout-{booking.id}-{breakdown.amount_cents}-{attempt}",
        )

        audit = breakdown.computed()
        audit.update({
            "requires_action_cents": breakdown.amount_cents,
            "checkout_session_id": session["id"],
            "created_at": datetime.utcnow().isoformat(),
            "triggered_by_user_id": actor_id,
            "charge_attempts": attempt,
        })
        if breakdown.amount_cents != breakdown.total_cents:
            audit["override_fee_cents"] = breakdown.amount_cents

        booking.final_calculation = audit
        booking.updated_at = datetime.utcnow()
        self.db.commit()

        return FinalChargeResult(
            booking_id=booking.id,
            breakdown=breakdown,
            requires_action=True,
            url=session["url"],
            checkout_session_id=session["id"],
        )
