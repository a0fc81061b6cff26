"""
Shared fixtures: a throwaway SQLite database per test, a mocked Stripe
gateway, and a TestClient wired to both.
"""

import os
import sys

# Settings are read at import time, so configure before importing the app
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["LOG_JSON"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["SECRET_KEY"] = "test-secret-key-that-is-long-enough-for-jwt-signing"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_portal"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_portal"
os.environ["STRIPE_BOOKING_FEE_CENTS"] = "5000"
os.environ["STRIPE_FINAL_RATE_CENTS"] = "20000"
os.environ["INTERNAL_ADMIN_API_KEY"] = "internal-test-key"
os.environ["PUBLIC_BASE_URL"] = "http://localhost:3000"

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from datetime import date
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app import models  # noqa: F401
from app.database import Base, get_db
from app.main import app
from app.models.booking import Booking, BookingStatus, PaymentStatus
from app.models.booking_intent import BookingIntent
from app.models.client import Client
from app.models.show import Show
from app.models.staff import Staff, StaffRole
from app.services.payment_gateway import StripeGateway
from app.utils.dependencies import get_payment_gateway
from app.utils.security import create_access_token

DEFAULT_DATES = [
    {"date": "2026-03-10", "staff_count": 2},
    {"date": "2026-03-11", "staff_count": 3},
]


@pytest.fixture
def engine(tmp_path):
    db_engine = create_engine(
        f"sqlite:///{tmp_path / 'portal_test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def gateway():
    """Stripe gateway double with happy-path defaults."""
    fake = MagicMock(spec=StripeGateway)
    fake.is_configured = True
    fake.create_customer.return_value = "cus_test"
    fake.create_checkout_session.return_value = {
        "id": "cs_test_1",
        "url": "https://checkout.stripe.com/c/pay/cs_test_1",
    }
    fake.find_checkout_session_for_payment_intent.return_value = None
    fake.find_payment_method.return_value = "pm_card_visa"
    fake.charge_off_session.return_value = {"id": "pi_final_1", "status": "succeeded"}
    return fake


@pytest.fixture
def api(session_factory, gateway):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


# ============ Seed helpers ============

def make_client(db, email="expo@acme.test", name="Acme Displays", **kwargs) -> Client:
    values = {
        "contacts": [{"id": "contact-1", "name": "Dana Lee", "email": email, "phone": "", "role": "Primary"}],
        "locations": [{"id": "loc-1", "name": "HQ", "address": "1 Main St", "city": "Austin", "state": "TX", "zip": "78701"}],
    }
    values.update(kwargs)
    client = Client(email=email, name=name, **values)
    db.add(client)
    db.commit()
    db.refresh(client)
    return client


def make_staff(db, email="sam@portal.test", name="Sam Rivera", role=StaffRole.STAFF.value) -> Staff:
    member = Staff(email=email, name=name, role=role)
    db.add(member)
    db.commit()
    db.refresh(member)
    return member


def make_show(db, name="CES 2026", start=date(2026, 3, 10), end=date(2026, 3, 12)) -> Show:
    show = Show(name=name, location="Las Vegas", start_date=start, end_date=end)
    db.add(show)
    db.commit()
    db.refresh(show)
    return show


def make_intent(db, client, show, dates=None, session_id="cs_test_1", fee_cents=5000) -> BookingIntent:
    dates = dates if dates is not None else DEFAULT_DATES
    intent = BookingIntent(
        client_id=client.id,
        show_id=show.id,
        show_name=show.name,
        show_data=show.snapshot(),
        dates_needed=[dict(d) for d in dates],
        notes="Booth 4410",
        total_staff_needed=sum(d["staff_count"] for d in dates),
        booking_fee_cents=fee_cents,
        primary_contact_id="contact-1",
        stripe_checkout_session_id=session_id,
    )
    db.add(intent)
    db.commit()
    db.refresh(intent)
    return intent


def make_booking(db, client, show, dates=None, **kwargs) -> Booking:
    dates = dates if dates is not None else [dict(d, staff_ids=[]) for d in DEFAULT_DATES]
    values = {
        "client_id": client.id,
        "show_id": show.id,
        "show_name": show.name,
        "show_data": show.snapshot(),
        "dates_needed": dates,
        "total_staff_needed": sum(int(d.get("staff_count") or 0) for d in dates),
        "status": BookingStatus.DEPOSIT_PAID.value,
        "payment_status": PaymentStatus.PAYMENT_PENDING.value,
        "booking_fee_cents": 5000,
        "booking_fee_cents_paid": 5000,
        "stripe_customer_id": "cus_test",
        "stripe_payment_intent_id": "pi_deposit_1",
    }
    values.update(kwargs)
    booking = Booking(**values)
    db.add(booking)
    db.commit()
    db.refresh(booking)
    return booking


def auth_headers(user_id: str, role: str) -> dict:
    token = create_access_token(data={"sub": user_id, "role": role})
    return {"Authorization": f"Bearer {token}"}
