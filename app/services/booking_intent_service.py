"""
Booking Intent Service
======================
Turns a submitted booking form into a BookingIntent plus a hosted checkout
session for the booking deposit. No Booking exists until the deposit is
confirmed; see reconciliation_service.
"""

import logging
import time
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..config import Settings, settings as default_settings
from ..errors import GatewayError, NotFoundError, ValidationError
from ..models.booking_intent import BookingIntent
from ..models.client import Client
from ..utils.db_helpers import compare_and_set
from ..utils.logging_config import get_logger
from .payment_gateway import (
    META_CLIENT_ID,
    META_INTENT_ID,
    META_TYPE,
    PAYMENT_TYPE_BOOKING_FEE,
    StripeGateway,
)
from .show_service import get_show, resolve_show_name

logger = get_logger(__name__)


@dataclass
class CheckoutResult:
    url: str
    intent_id: str
    session_id: str


def normalize_dates_needed(dates_needed: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """
    Validate and normalize [{date, staff_count}] entries.

    Accepts `staffCount` as well as `staff_count`; dates must be ISO
    (YYYY-MM-DD) and counts non-negative integers. Entries keep their order.
    """
    if not dates_needed:
        raise ValidationError("At least one date is required")

    normalized = []
    for entry in dates_needed:
        raw_date = entry.get("date")
        if isinstance(raw_date, date):
            raw_date = raw_date.isoformat()
        if not raw_date:
            raise ValidationError("Each entry needs a date")
        try:
            day = date.fromisoformat(str(raw_date)[:10])
        except ValueError:
            raise ValidationError(f"Invalid date: {raw_date}")

        count = entry.get("staff_count", entry.get("staffCount", 0))
        try:
            count = int(count or 0)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid staff count for {day.isoformat()}")
        if count < 0:
            raise ValidationError(f"Staff count cannot be negative for {day.isoformat()}")

        normalized.append({"date": day.isoformat(), "staff_count": count})

    return normalized


def checkout_urls(base_url: str) -> tuple:
    """(success_url, cancel_url) for the deposit checkout."""
    base = base_url.rstrip("/")
    return (
        f"{base}/client/success?session_id={{CHECKOUT_SESSION_ID}}",
        f"{base}/client/dashboard?tab=book",
    )


class BookingIntentManager:
    """Creates booking intents and their deposit checkout sessions."""

    def __init__(self, db: Session, gateway: StripeGateway, settings: Settings = default_settings):
        self.db = db
        self.gateway = gateway
        self.settings = settings

    def ensure_customer(self, client: Client) -> str:
        """
        Return the client's Stripe customer id, creating it on first use.

        The id is stored with a conditional update so two concurrent first
        bookings settle on one customer.
        """
        if client.stripe_customer_id:
            return client.stripe_customer_id

        customer_id = self.gateway.create_customer(
            email=client.email,
            name=client.name,
            metadata={META_CLIENT_ID: client.id},
            idempotency_key=f"client-customer-{client.id}",
        )

        won = compare_and_set(
            self.db, Client, Client.id == client.id,
            {"stripe_customer_id": customer_id},
            Client.stripe_customer_id.is_(None),
        )
        self.db.commit()
        self.db.refresh(client)

        if not won:
            logger.info(f"Client {client.id} already had a customer id, keeping {client.stripe_customer_id}")
        return client.stripe_customer_id

    def create_intent(
        self,
        client_id: str,
        show_id: str,
        dates_needed: List[Dict[str, Any]],
        notes: Optional[str] = None,
        total_staff_needed: Optional[int] = None,
        primary_contact_id: Optional[str] = None,
        primary_location_id: Optional[str] = None,
        origin: Optional[str] = None,
    ) -> CheckoutResult:
        """
        Persist a BookingIntent and open a deposit checkout session for it.

        Raises:
            ValidationError: bad input, or the booking fee is unset / below the minimum
            NotFoundError: unknown show or client
            GatewayError: session creation failed (the intent is removed again)
        """
        if not show_id:
            raise ValidationError("Show is required")
        days = normalize_dates_needed(dates_needed)

        fee_cents = int(self.settings.stripe_booking_fee_cents or 0)
        if fee_cents < self.settings.stripe_min_charge_cents:
            raise ValidationError(
                f"Booking fee must be at least {self.settings.stripe_min_charge_cents} cents",
                fee_cents=fee_cents,
            )

        show = get_show(self.db, show_id)
        client = self.db.query(Client).filter(Client.id == client_id).first()
        if not client:
            raise NotFoundError("Client not found", client_id=client_id)

        if primary_contact_id and not client.find_contact(primary_contact_id):
            raise ValidationError("Primary contact does not belong to this client")
        if primary_location_id and not client.find_location(primary_location_id):
            raise ValidationError("Primary location does not belong to this client")

        if total_staff_needed is None or total_staff_needed < 0:
            total_staff_needed = sum(d["staff_count"] for d in days)

        customer_id = self.ensure_customer(client)
        show_name = resolve_show_name(show)

        intent = BookingIntent(
            client_id=client.id,
            show_id=show.id,
            show_name=show_name,
            show_data=show.snapshot(),
            dates_needed=days,
            notes=notes,
            total_staff_needed=total_staff_needed,
            booking_fee_cents=fee_cents,
            primary_contact_id=primary_contact_id,
            primary_location_id=primary_location_id,
        )
        self.db.add(intent)
        self.db.commit()
        self.db.refresh(intent)

        success_url, cancel_url = checkout_urls(self.settings.redirect_base_url(origin))
        expires_at = int(time.time()) + self.settings.checkout_session_expiry_minutes * 60

        try:
            session = self.gateway.create_checkout_session(
                customer_id=customer_id,
                amount_cents=fee_cents,
                product_name=f"Booking fee for {show_name}",
                metadata={META_INTENT_ID: intent.id, META_TYPE: PAYMENT_TYPE_BOOKING_FEE},
                success_url=success_url,
                cancel_url=cancel_url,
                idempotency_key=f"booking-intent-{intent.id}",
                expires_at=expires_at,
            )
        except GatewayError as e:
            logger.log_with_context(
                logging.ERROR,
                f"Checkout session failed for intent {intent.id}: {e.message}",
                entity_type="booking_intent",
                entity_id=intent.id,
                provider_code=e.provider_code,
            )
            self.db.delete(intent)
            self.db.commit()
            raise

        intent.stripe_checkout_session_id = session["id"]
        self.db.commit()

        logger.intent_created(intent.id, client.id, show.id, fee_cents)
        return CheckoutResult(url=session["url"], intent_id=intent.id, session_id=session["id"])
