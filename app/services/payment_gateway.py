"""
Stripe Payment Gateway Client

Thin wrapper over the Stripe SDK covering what the portal needs:
- Customer creation
- Hosted checkout sessions (create / retrieve / lookup by payment intent)
- Saved payment method discovery and off-session charges
- Signature-verified webhook parsing

The API key is passed on every call instead of being set on the `stripe`
module, so a gateway instance is self-contained and safe to inject.
Stripe errors are mapped onto the portal's GatewayError family.
"""

import logging
from typing import Any, Dict, Optional

import stripe

from ..config import Settings
from ..errors import AuthenticationRequiredError, GatewayError, WebhookSignatureError

logger = logging.getLogger(__name__)


# Metadata keys written on sessions / payment intents
META_INTENT_ID = "intentId"
META_BOOKING_ID = "bookingId"
META_CLIENT_ID = "clientId"
META_TYPE = "type"

# Values for META_TYPE
PAYMENT_TYPE_BOOKING_FEE = "booking_fee"
PAYMENT_TYPE_FINAL_FEE = "final_fee"

# Provider error codes that mean the cardholder must be present
AUTHENTICATION_CODES = {
    "authentication_required",
    "payment_intent_authentication_failure",
    "card_not_supported_for_off_session",
}


def as_dict(obj: Any) -> Dict[str, Any]:
    """Normalize a StripeObject (or plain dict) into a dict."""
    if obj is None:
        return {}
    if type(obj) is dict:
        return obj
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return dict(obj)


def object_id(value: Any) -> Optional[str]:
    """Stripe fields may hold an id string or an expanded object."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        return value.get("id")
    return getattr(value, "id", None)


def map_stripe_error(exc: "stripe.StripeError", operation: str) -> GatewayError:
    """Translate a Stripe SDK error into GatewayError / AuthenticationRequiredError."""
    provider_code = getattr(exc, "code", None)
    decline_code = None

    error_body = getattr(exc, "error", None)
    if error_body is not None:
        decline_code = getattr(error_body, "decline_code", None)
    if decline_code is None:
        json_body = getattr(exc, "json_body", None) or {}
        decline_code = (json_body.get("error") or {}).get("decline_code")

    message = getattr(exc, "user_message", None) or str(exc) or "Payment provider error"

    if provider_code in AUTHENTICATION_CODES or decline_code == "authentication_required":
        return AuthenticationRequiredError(
            message,
            provider_code=provider_code,
            decline_code=decline_code,
            operation=operation,
        )

    return GatewayError(
        message,
        provider_code=provider_code,
        decline_code=decline_code,
        operation=operation,
    )


class StripeGateway:
    """Stripe client bound to one API key / webhook secret."""

    def __init__(
        self,
        api_key: str,
        webhook_secret: str = "",
        api_version: Optional[str] = None,
        currency: str = "usd",
    ):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.api_version = api_version
        self.currency = currency

    @classmethod
    def from_settings(cls, settings: Settings) -> "StripeGateway":
        return cls(
            api_key=settings.stripe_secret_key,
            webhook_secret=settings.stripe_webhook_secret,
            api_version=settings.stripe_api_version,
            currency=settings.stripe_currency,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _options(self, idempotency_key: Optional[str] = None) -> Dict[str, Any]:
        if not self.api_key:
            raise GatewayError("Stripe is not configured", provider_code="not_configured")
        options = {"api_key": self.api_key}
        if self.api_version:
            options["stripe_version"] = self.api_version
        if idempotency_key:
            options["idempotency_key"] = idempotency_key
        return options

    # ============ Customers ============

    def create_customer(
        self,
        email: Optional[str] = None,
        name: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
        idempotency_key: Optional[str] = None,
    ) -> str:
        """Create a customer and return its id."""
        params: Dict[str, Any] = {"metadata": metadata or {}}
        if email:
            params["email"] = email
        if name:
            params["name"] = name

        try:
            customer = stripe.Customer.create(**params, **self._options(idempotency_key))
        except stripe.StripeError as e:
            raise map_stripe_error(e, "customer.create") from e

        customer_id = as_dict(customer).get("id")
        logger.info(f"Created Stripe customer {customer_id}")
        return customer_id

    # ============ Checkout sessions ============

    def create_checkout_session(
        self,
        customer_id: str,
        amount_cents: int,
        product_name: str,
        metadata: Dict[str, str],
        success_url: str,
        cancel_url: str,
        idempotency_key: Optional[str] = None,
        save_payment_method: bool = True,
        expires_at: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Create a one-line hosted checkout session for `amount_cents`.

        The same metadata is copied onto the underlying payment intent so
        `payment_intent.succeeded` events can be correlated too.

        Returns:
            {"id": ..., "url": ...}
        """
        payment_intent_data: Dict[str, Any] = {"metadata": dict(metadata)}
        if save_payment_method:
            payment_intent_data["setup_future_usage"] = "off_session"

        params: Dict[str, Any] = {
            "mode": "payment",
            "customer": customer_id,
            "line_items": [{
                "price_data": {
                    "currency": self.currency,
                    "product_data": {"name": product_name},
                    "unit_amount": int(amount_cents),
                },
                "quantity": 1,
            }],
            "payment_intent_data": payment_intent_data,
            "metadata": dict(metadata),
            "success_url": success_url,
            "cancel_url": cancel_url,
        }
        if expires_at:
            params["expires_at"] = int(expires_at)

        try:
            session = stripe.checkout.Session.create(**params, **self._options(idempotency_key))
        except stripe.StripeError as e:
            raise map_stripe_error(e, "checkout.session.create") from e

        data = as_dict(session)
        return {"id": data.get("id"), "url": data.get("url")}

    def retrieve_checkout_session(self, session_id: str) -> Dict[str, Any]:
        try:
            session = stripe.checkout.Session.retrieve(session_id, **self._options())
        except stripe.StripeError as e:
            raise map_stripe_error(e, "checkout.session.retrieve") from e
        return as_dict(session)

    def find_checkout_session_for_payment_intent(self, payment_intent_id: str) -> Optional[Dict[str, Any]]:
        """
        Best-effort lookup of the checkout session that created a payment intent.

        Never raises: a failed lookup is logged and returns None.
        """
        try:
            sessions = stripe.checkout.Session.list(
                payment_intent=payment_intent_id,
                limit=1,
                **self._options()
            )
        except (stripe.StripeError, GatewayError) as e:
            logger.warning(f"Checkout session lookup failed for {payment_intent_id}: {e}")
            return None

        data = as_dict(sessions).get("data") or []
        return as_dict(data[0]) if data else None

    # ============ Payment intents ============

    def retrieve_payment_intent(self, payment_intent_id: str) -> Dict[str, Any]:
        try:
            intent = stripe.PaymentIntent.retrieve(payment_intent_id, **self._options())
        except stripe.StripeError as e:
            raise map_stripe_error(e, "payment_intent.retrieve") from e
        return as_dict(intent)

    def find_payment_method(
        self,
        customer_id: str,
        deposit_payment_intent_id: Optional[str] = None,
    ) -> Optional[str]:
        """
        Find a saved payment method usable for an off-session charge.

        Order:
        1. The method used for the deposit payment intent
        2. The customer's default invoice payment method
        3. The first card attached to the customer

        Methods that are not attached yet are attached to the customer; a
        method attached to a different customer is skipped.
        """
        candidates = []

        if deposit_payment_intent_id:
            try:
                deposit = self.retrieve_payment_intent(deposit_payment_intent_id)
                candidates.append(object_id(deposit.get("payment_method")))
            except GatewayError as e:
                logger.warning(f"Could not read deposit intent {deposit_payment_intent_id}: {e.message}")

        try:
            customer = as_dict(stripe.Customer.retrieve(customer_id, **self._options()))
        except stripe.StripeError as e:
            raise map_stripe_error(e, "customer.retrieve") from e
        invoice_settings = as_dict(customer.get("invoice_settings"))
        candidates.append(object_id(invoice_settings.get("default_payment_method")))

        for pm_id in candidates:
            if pm_id and pm_id.startswith("pm_") and self._ensure_attached(pm_id, customer_id):
                return pm_id

        try:
            methods = stripe.PaymentMethod.list(
                customer=customer_id,
                type="card",
                limit=1,
                **self._options()
            )
        except stripe.StripeError as e:
            raise map_stripe_error(e, "payment_method.list") from e

        data = as_dict(methods).get("data") or []
        return object_id(as_dict(data[0])) if data else None

    def _ensure_attached(self, payment_method_id: str, customer_id: str) -> bool:
        try:
            method = as_dict(stripe.PaymentMethod.retrieve(payment_method_id, **self._options()))
        except stripe.StripeError as e:
            logger.warning(f"Payment method {payment_method_id} unavailable: {e}")
            return False

        owner = object_id(method.get("customer"))
        if owner == customer_id:
            return True
        if owner:
            logger.warning(f"Payment method {payment_method_id} belongs to another customer")
            return False

        try:
            stripe.PaymentMethod.attach(payment_method_id, customer=customer_id, **self._options())
        except stripe.StripeError as e:
            logger.warning(f"Could not attach {payment_method_id} to {customer_id}: {e}")
            return False
        return True

    def charge_off_session(
        self,
        customer_id: str,
        payment_method_id: str,
        amount_cents: int,
        metadata: Dict[str, str],
        idempotency_key: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Confirm an off-session payment intent against a saved method.

        Raises:
            AuthenticationRequiredError: the cardholder has to complete the payment
            GatewayError: any other provider failure
        """
        params: Dict[str, Any] = {
            "amount": int(amount_cents),
            "currency": self.currency,
            "customer": customer_id,
            "payment_method": payment_method_id,
            "off_session": True,
            "confirm": True,
            "metadata": dict(metadata),
        }
        if description:
            params["description"] = description

        try:
            intent = stripe.PaymentIntent.create(**params, **self._options(idempotency_key))
        except stripe.StripeError as e:
            raise map_stripe_error(e, "payment_intent.create") from e

        data = as_dict(intent)
        status = data.get("status")
        if status == "requires_action":
            raise AuthenticationRequiredError(
                "Payment requires cardholder authentication",
                provider_code="authentication_required",
                payment_intent_id=data.get("id"),
            )
        if status != "succeeded":
            raise GatewayError(
                f"Payment not completed (status: {status})",
                provider_code=status,
                payment_intent_id=data.get("id"),
            )
        return data

    # ============ Webhooks ============

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Verify the Stripe-Signature header and parse the event."""
        if not self.webhook_secret:
            raise WebhookSignatureError("Webhook secret is not configured")
        if not signature:
            raise WebhookSignatureError("Missing Stripe-Signature header")

        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except ValueError as e:
            raise WebhookSignatureError("Invalid webhook payload") from e
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError("Invalid webhook signature") from e

        return as_dict(event)
