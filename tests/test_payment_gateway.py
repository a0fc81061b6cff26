"""
Tests for the Stripe gateway wrapper

The SDK's resource calls are patched, so nothing leaves the process.
"""

import pytest
import stripe
from unittest.mock import MagicMock

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from app.errors import AuthenticationRequiredError, GatewayError, WebhookSignatureError
from app.services.payment_gateway import StripeGateway, as_dict, map_stripe_error, object_id


@pytest.fixture
def stripe_gateway():
    return StripeGateway(api_key="sk_test_portal", webhook_secret="whsec_test", api_version="2024-06-20")


class TestErrorMapping:

    def test_card_decline_is_gateway_error(self):
        error = stripe.CardError("Your card was declined.", None, "card_declined")

        mapped = map_stripe_error(error, "payment_intent.create")

        assert isinstance(mapped, GatewayError)
        assert not isinstance(mapped, AuthenticationRequiredError)
        assert mapped.provider_code == "card_declined"
        assert mapped.context["operation"] == "payment_intent.create"

    def test_authentication_required_code(self):
        error = stripe.CardError("This payment requires authentication.", None, "authentication_required")

        mapped = map_stripe_error(error, "payment_intent.create")

        assert isinstance(mapped, AuthenticationRequiredError)
        assert mapped.status_code == 502

    def test_connection_error(self):
        mapped = map_stripe_error(stripe.APIConnectionError("Network unreachable"), "customer.create")

        assert isinstance(mapped, GatewayError)
        assert mapped.provider_code is None


class TestChargeOffSession:

    def test_success_passes_key_and_idempotency(self, monkeypatch, stripe_gateway):
        create = MagicMock(return_value={"id": "pi_1", "status": "succeeded"})
        monkeypatch.setattr(stripe.PaymentIntent, "create", create)

        result = stripe_gateway.charge_off_session(
            customer_id="cus_1",
            payment_method_id="pm_1",
            amount_cents=100000,
            metadata={"bookingId": "b-1", "type": "final_fee"},
            idempotency_key="final-fee-b-1-100000",
        )

        assert result["id"] == "pi_1"
        kwargs = create.call_args.kwargs
        assert kwargs["api_key"] == "sk_test_portal"
        assert kwargs["stripe_version"] == "2024-06-20"
        assert kwargs["idempotency_key"] == "final-fee-b-1-100000"
        assert kwargs["off_session"] is True
        assert kwargs["confirm"] is True
        assert kwargs["amount"] == 100000

    def test_requires_action_status(self, monkeypatch, stripe_gateway):
        monkeypatch.setattr(
            stripe.PaymentIntent, "create",
            MagicMock(return_value={"id": "pi_1", "status": "requires_action"})
        )

        with pytest.raises(AuthenticationRequiredError):
            stripe_gateway.charge_off_session("cus_1", "pm_1", 5000, metadata={})

    def test_processing_status_is_error(self, monkeypatch, stripe_gateway):
        monkeypatch.setattr(
            stripe.PaymentIntent, "create",
            MagicMock(return_value={"id": "pi_1", "status": "processing"})
        )

        with pytest.raises(GatewayError) as exc_info:
            stripe_gateway.charge_off_session("cus_1", "pm_1", 5000, metadata={})

        assert not isinstance(exc_info.value, AuthenticationRequiredError)

    def test_sdk_authentication_error_mapped(self, monkeypatch, stripe_gateway):
        monkeypatch.setattr(
            stripe.PaymentIntent, "create",
            MagicMock(side_effect=stripe.CardError("Authentication required", None, "authentication_required"))
        )

        with pytest.raises(AuthenticationRequiredError):
            stripe_gateway.charge_off_session("cus_1", "pm_1", 5000, metadata={})


class TestCheckoutSessions:

    def test_create_copies_metadata_to_payment_intent(self, monkeypatch, stripe_gateway):
        create = MagicMock(return_value={"id": "cs_1", "url": "https://checkout.stripe.com/c/pay/cs_1"})
        monkeypatch.setattr(stripe.checkout.Session, "create", create)

        session = stripe_gateway.create_checkout_session(
            customer_id="cus_1",
            amount_cents=5000,
            product_name="Booking fee for CES 2026",
            metadata={"intentId": "i-1", "type": "booking_fee"},
            success_url="http://localhost:3000/client/success?session_id={CHECKOUT_SESSION_ID}",
            cancel_url="http://localhost:3000/client/dashboard?tab=book",
            idempotency_key="booking-intent-i-1",
            expires_at=1900000000,
        )

        assert session == {"id": "cs_1", "url": "https://checkout.stripe.com/c/pay/cs_1"}
        kwargs = create.call_args.kwargs
        assert kwargs["mode"] == "payment"
        assert kwargs["metadata"] == {"intentId": "i-1", "type": "booking_fee"}
        assert kwargs["payment_intent_data"]["metadata"] == {"intentId": "i-1", "type": "booking_fee"}
        assert kwargs["payment_intent_data"]["setup_future_usage"] == "off_session"
        assert kwargs["line_items"][0]["price_data"]["unit_amount"] == 5000
        assert kwargs["expires_at"] == 1900000000

    def test_session_lookup_failure_returns_none(self, monkeypatch, stripe_gateway):
        monkeypatch.setattr(
            stripe.checkout.Session, "list",
            MagicMock(side_effect=stripe.APIConnectionError("Network unreachable"))
        )

        assert stripe_gateway.find_checkout_session_for_payment_intent("pi_1") is None

    def test_unconfigured_gateway(self):
        with pytest.raises(GatewayError) as exc_info:
            StripeGateway(api_key="").retrieve_checkout_session("cs_1")

        assert exc_info.value.provider_code == "not_configured"


class TestFindPaymentMethod:

    def test_prefers_deposit_method(self, monkeypatch, stripe_gateway):
        monkeypatch.setattr(stripe.PaymentIntent, "retrieve", MagicMock(return_value={"id": "pi_dep", "payment_method": "pm_dep"}))
        monkeypatch.setattr(stripe.Customer, "retrieve", MagicMock(return_value={"id": "cus_1", "invoice_settings": {}}))
        monkeypatch.setattr(stripe.PaymentMethod, "retrieve", MagicMock(return_value={"id": "pm_dep", "customer": "cus_1"}))
        listing = MagicMock()
        monkeypatch.setattr(stripe.PaymentMethod, "list", listing)

        assert stripe_gateway.find_payment_method("cus_1", deposit_payment_intent_id="pi_dep") == "pm_dep"
        listing.assert_not_called()

    def test_unattached_method_is_attached(self, monkeypatch, stripe_gateway):
        monkeypatch.setattr(stripe.Customer, "retrieve", MagicMock(return_value={
            "id": "cus_1", "invoice_settings": {"default_payment_method": "pm_default"}
        }))
        monkeypatch.setattr(stripe.PaymentMethod, "retrieve", MagicMock(return_value={"id": "pm_default", "customer": None}))
        attach = MagicMock()
        monkeypatch.setattr(stripe.PaymentMethod, "attach", attach)

        assert stripe_gateway.find_payment_method("cus_1") == "pm_default"
        assert attach.call_args.kwargs["customer"] == "cus_1"

    def test_foreign_method_skipped_for_first_card(self, monkeypatch, stripe_gateway):
        monkeypatch.setattr(stripe.Customer, "retrieve", MagicMock(return_value={
            "id": "cus_1", "invoice_settings": {"default_payment_method": "pm_other"}
        }))
        monkeypatch.setattr(stripe.PaymentMethod, "retrieve", MagicMock(return_value={"id": "pm_other", "customer": "cus_2"}))
        monkeypatch.setattr(stripe.PaymentMethod, "list", MagicMock(return_value={"data": [{"id": "pm_card"}]}))

        assert stripe_gateway.find_payment_method("cus_1") == "pm_card"

    def test_no_methods(self, monkeypatch, stripe_gateway):
        monkeypatch.setattr(stripe.Customer, "retrieve", MagicMock(return_value={"id": "cus_1"}))
        monkeypatch.setattr(stripe.PaymentMethod, "list", MagicMock(return_value={"data": []}))

        assert stripe_gateway.find_payment_method("cus_1") is None


class TestConstructEvent:

    def test_missing_signature(self, stripe_gateway):
        with pytest.raises(WebhookSignatureError):
            stripe_gateway.construct_event(b"{}", None)

    def test_missing_secret(self):
        with pytest.raises(WebhookSignatureError):
            StripeGateway(api_key="sk_test_portal").construct_event(b"{}", "t=1,v1=abc")

    def test_bad_signature(self, monkeypatch, stripe_gateway):
        monkeypatch.setattr(
            stripe.Webhook, "construct_event",
            MagicMock(side_effect=stripe.SignatureVerificationError("No signatures found", "t=1,v1=abc"))
        )

        with pytest.raises(WebhookSignatureError):
            stripe_gateway.construct_event(b"{}", "t=1,v1=abc")

    def test_valid_event(self, monkeypatch, stripe_gateway):
        monkeypatch.setattr(
            stripe.Webhook, "construct_event",
            MagicMock(return_value={"id": "evt_1", "type": "checkout.session.completed"})
        )

        assert stripe_gateway.construct_event(b"{}", "t=1,v1=abc")["id"] == "evt_1"


def test_object_id_accepts_ids_and_objects():
    assert object_id("pi_1") == "pi_1"
    assert object_id({"id": "pi_2"}) == "pi_2"
    assert object_id(None) is None


def test_as_dict_handles_none():
    assert as_dict(None) == {}
