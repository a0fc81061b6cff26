"""
Tests for the final staffing fee

Tests cover:
- Staff-day computation and overrides
- Dry runs (no provider call, no mutation)
- Off-session charge success and the audit it leaves
- Authentication-required fallback to hosted checkout
- Guard rails (minimum amount, missing customer, already paid)
"""

import pytest

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from app.errors import (
    AuthenticationRequiredError,
    GatewayError,
    NotFoundError,
    StateError,
    ValidationError,
)
from app.models.booking import Booking, BookingStatus, PaymentStatus
from app.services.final_fee_service import FinalFeeCharger, compute_final_fee
from app.services.reconciliation_service import ReconciliationService

from conftest import make_booking, make_client, make_show


@pytest.fixture
def booking(db):
    client = make_client(db)
    show = make_show(db)
    return make_booking(db, client, show)


def reload(db, booking_id):
    db.expire_all()
    return db.query(Booking).filter(Booking.id == booking_id).one()


class TestComputeFinalFee:

    def test_staff_days_times_rate(self):
        breakdown = compute_final_fee(
            [{"date": "2026-03-10", "staff_count": 2}, {"date": "2026-03-11", "staff_count": 3}],
            20000,
        )

        assert breakdown.staff_days == 5
        assert breakdown.total_cents == 100000
        assert breakdown.amount_cents == 100000

    def test_override_replaces_amount_only(self):
        breakdown = compute_final_fee([{"date": "2026-03-10", "staff_count": 5}], 20000, override_fee_cents=75000)

        assert breakdown.total_cents == 100000
        assert breakdown.amount_cents == 75000

    def test_zero_override_ignored(self):
        breakdown = compute_final_fee([{"date": "2026-03-10", "staff_count": 1}], 20000, override_fee_cents=0)
        assert breakdown.amount_cents == 20000

    def test_camel_case_counts(self):
        breakdown = compute_final_fee([{"date": "2026-03-10", "staffCount": 4}], 1000)
        assert breakdown.staff_days == 4

    def test_no_dates(self):
        breakdown = compute_final_fee(None, 20000)
        assert breakdown.total_cents == 0


class TestChargeFinal:
    """FinalFeeCharger.charge_final"""

    def test_dry_run_makes_no_changes(self, db, gateway, booking):
        result = FinalFeeCharger(db, gateway).charge_final(booking.id, dry_run=True)

        assert result.dry_run is True
        assert result.success is False
        assert result.breakdown.computed() == {"rate_cents": 20000, "staff_days": 5, "total_cents": 100000}
        assert result.breakdown.amount_cents == 100000

        gateway.find_payment_method.assert_not_called()
        gateway.charge_off_session.assert_not_called()
        gateway.create_checkout_session.assert_not_called()

        stored = reload(db, booking.id)
        assert stored.status == BookingStatus.DEPOSIT_PAID.value
        assert stored.final_calculation is None

    def test_successful_charge(self, db, gateway, booking):
        result = FinalFeeCharger(db, gateway).charge_final(booking.id, actor_id="staff-1")

        assert result.success is True
        assert result.payment_intent_id == "pi_final_1"
        assert result.requires_action is False

        kwargs = gateway.charge_off_session.call_args.kwargs
        assert kwargs["customer_id"] == "cus_test"
        assert kwargs["payment_method_id"] == "pm_card_visa"
        assert kwargs["amount_cents"] == 100000
        assert kwargs["metadata"] == {"bookingId": booking.id, "type": "final_fee"}
        assert kwargs["idempotency_key"] == f"final-fee-{booking.id}-100000-pm_card_visa-1"
        gateway.find_payment_method.assert_called_once_with("cus_test", deposit_payment_intent_id="pi_deposit_1")

        stored = reload(db, booking.id)
        assert stored.status == BookingStatus.FINAL_PAID.value
        assert stored.payment_status == PaymentStatus.PAID.value
        assert stored.final_fee_cents_paid == 100000
        assert stored.stripe_final_payment_intent_id == "pi_final_1"

        audit = stored.final_calculation
        assert audit["rate_cents"] == 20000
        assert audit["staff_days"] == 5
        assert audit["total_cents"] == 100000
        assert audit["charged_cents"] == 100000
        assert audit["triggered_by_user_id"] == "staff-1"
        assert audit["charge_attempts"] == 1
        assert "charged_at" in audit
        assert "override_fee_cents" not in audit

    def test_override_recorded_in_audit(self, db, gateway, booking):
        FinalFeeCharger(db, gateway).charge_final(booking.id, override_fee_cents=75000, actor_id="admin-1")

        assert gateway.charge_off_session.call_args.kwargs["amount_cents"] == 75000
        audit = reload(db, booking.id).final_calculation
        assert audit["total_cents"] == 100000
        assert audit["charged_cents"] == 75000
        assert audit["override_fee_cents"] == 75000

    def test_override_rate(self, db, gateway, booking):
        result = FinalFeeCharger(db, gateway).charge_final(booking.id, override_rate_cents=15000, dry_run=True)
        assert result.breakdown.total_cents == 75000

    def test_authentication_required_falls_back_to_checkout(self, db, gateway, booking):
        gateway.charge_off_session.side_effect = AuthenticationRequiredError(
            "Payment requires cardholder authentication", provider_code="authentication_required"
        )
        gateway.create_checkout_session.return_value = {
            "id": "cs_final_1",
            "url": "https://checkout.stripe.com/c/pay/cs_final_1",
        }

        result = FinalFeeCharger(db, gateway).charge_final(booking.id, actor_id="staff-1")

        assert result.success is False
        assert result.requires_action is True
        assert result.url == "https://checkout.stripe.com/c/pay/cs_final_1"

        kwargs = gateway.create_checkout_session.call_args.kwargs
        assert kwargs["amount_cents"] == 100000
        assert kwargs["metadata"] == {"bookingId": booking.id, "type": "final_fee"}
        assert kwargs["product_name"] == "Final staffing fee for CES 2026"
        assert kwargs["cancel_url"] == "http://localhost:3000/client/dashboard"

        stored = reload(db, booking.id)
        assert stored.status == BookingStatus.DEPOSIT_PAID.value
        assert stored.final_fee_cents_paid is None
        assert stored.final_calculation["requires_action_cents"] == 100000
        assert stored.final_calculation["checkout_session_id"] == "cs_final_1"

    def test_no_saved_card_falls_back_to_checkout(self, db, gateway, booking):
        gateway.find_payment_method.return_value = None

        result = FinalFeeCharger(db, gateway).charge_final(booking.id)

        assert result.requires_action is True
        gateway.charge_off_session.assert_not_called()

    def test_decline_propagates(self, db, gateway, booking):
        gateway.charge_off_session.side_effect = GatewayError(
            "Your card has insufficient funds.", provider_code="card_declined", decline_code="insufficient_funds"
        )

        with pytest.raises(GatewayError) as exc_info:
            FinalFeeCharger(db, gateway).charge_final(booking.id)

        assert not isinstance(exc_info.value, AuthenticationRequiredError)
        assert exc_info.value.decline_code == "insufficient_funds"
        assert reload(db, booking.id).status == BookingStatus.DEPOSIT_PAID.value

    def test_retry_after_decline_uses_fresh_key(self, db, gateway, booking):
        charger = FinalFeeCharger(db, gateway)
        gateway.charge_off_session.side_effect = GatewayError("Your card was declined.", provider_code="card_declined")

        with pytest.raises(GatewayError):
            charger.charge_final(booking.id, actor_id="staff-1")
        declined_key = gateway.charge_off_session.call_args.kwargs["idempotency_key"]

        # Client updated their card before staff tried again
        gateway.charge_off_session.side_effect = None
        gateway.find_payment_method.return_value = "pm_new_card"
        result = charger.charge_final(booking.id, actor_id="staff-1")

        retry_key = gateway.charge_off_session.call_args.kwargs["idempotency_key"]
        assert retry_key != declined_key
        assert retry_key == f"final-fee-{booking.id}-100000-pm_new_card-2"
        assert result.success is True
        assert reload(db, booking.id).final_calculation["charge_attempts"] == 2

    def test_repeated_checkout_fallback_gets_new_session_key(self, db, gateway, booking):
        gateway.find_payment_method.return_value = None
        charger = FinalFeeCharger(db, gateway)

        charger.charge_final(booking.id)
        first_key = gateway.create_checkout_session.call_args.kwargs["idempotency_key"]
        charger.charge_final(booking.id)
        second_key = gateway.create_checkout_session.call_args.kwargs["idempotency_key"]

        assert first_key == f"final-fee-checkout-{booking.id}-100000-1"
        assert second_key == f"final-fee-checkout-{booking.id}-100000-2"

    def test_webhook_recorded_first_keeps_audit(self, db, gateway, booking, session_factory):
        """payment_intent.succeeded lands between the charge and our own status update"""
        booking_id = booking.id
        webhook_db = session_factory()

        def charge_then_deliver_webhook(**kwargs):
            payment_intent = {
                "id": "pi_final_1",
                "amount_received": kwargs["amount_cents"],
                "metadata": kwargs["metadata"],
            }
            ReconciliationService(webhook_db, gateway).handle_event(
                {"id": "evt_final", "type": "payment_intent.succeeded", "data": {"object": payment_intent}}
            )
            return {"id": "pi_final_1", "status": "succeeded"}

        gateway.charge_off_session.side_effect = charge_then_deliver_webhook
        try:
            result = FinalFeeCharger(db, gateway).charge_final(booking_id, actor_id="staff-1")
        finally:
            webhook_db.close()

        assert result.success is True
        stored = reload(db, booking_id)
        assert stored.status == BookingStatus.FINAL_PAID.value
        assert stored.stripe_final_payment_intent_id == "pi_final_1"
        audit = stored.final_calculation
        assert audit["confirmed_via"] == "webhook"
        assert audit["rate_cents"] == 20000
        assert audit["staff_days"] == 5
        assert audit["total_cents"] == 100000
        assert audit["triggered_by_user_id"] == "staff-1"

    def test_other_payment_recorded_first_is_not_overwritten(self, db, gateway, booking, session_factory):
        booking_id = booking.id
        invoice_db = session_factory()

        def charge_after_invoice_paid(**kwargs):
            ReconciliationService(invoice_db, gateway).apply_final_payment(
                booking_id, 100000, payment_intent_id="pi_invoice_1", invoice_id="in_1"
            )
            return {"id": "pi_final_1", "status": "succeeded"}

        gateway.charge_off_session.side_effect = charge_after_invoice_paid
        try:
            FinalFeeCharger(db, gateway).charge_final(booking_id, actor_id="staff-1")
        finally:
            invoice_db.close()

        stored = reload(db, booking_id)
        assert stored.stripe_final_payment_intent_id == "pi_invoice_1"
        assert "triggered_by_user_id" not in stored.final_calculation

    def test_below_minimum_rejected(self, db, gateway, booking):
        with pytest.raises(ValidationError):
            FinalFeeCharger(db, gateway).charge_final(booking.id, override_fee_cents=10)

        gateway.charge_off_session.assert_not_called()

    def test_no_staff_days_rejected(self, db, gateway):
        client = make_client(db)
        show = make_show(db)
        empty = make_booking(db, client, show, dates=[{"date": "2026-03-10", "staff_count": 0, "staff_ids": []}])

        with pytest.raises(ValidationError):
            FinalFeeCharger(db, gateway).charge_final(empty.id, dry_run=True)

    def test_missing_customer(self, db, gateway):
        client = make_client(db)
        show = make_show(db)
        no_customer = make_booking(db, client, show, stripe_customer_id=None)

        with pytest.raises(StateError):
            FinalFeeCharger(db, gateway).charge_final(no_customer.id)

    def test_already_paid(self, db, gateway):
        client = make_client(db)
        show = make_show(db)
        paid = make_booking(
            db, client, show,
            status=BookingStatus.FINAL_PAID.value,
            payment_status=PaymentStatus.PAID.value,
            final_fee_cents_paid=100000,
        )

        with pytest.raises(StateError):
            FinalFeeCharger(db, gateway).charge_final(paid.id)

        gateway.charge_off_session.assert_not_called()

    def test_unknown_booking(self, db, gateway):
        with pytest.raises(NotFoundError):
            FinalFeeCharger(db, gateway).charge_final("missing")
