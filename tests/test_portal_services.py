"""
Tests for show naming, client helpers, availability and security utilities
"""

import pytest
from datetime import date, timedelta
from jose import jwt

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from app.errors import NotFoundError, ValidationError
from app.models.booking import BookingStatus
from app.services import availability_service, client_service, show_service
from app.services.show_service import UNKNOWN_SHOW, resolve_show_name
from app.utils.sanitization import sanitize_for_log, strip_dangerous_tags
from app.utils.security import (
    create_access_token,
    hash_password,
    validate_password_strength,
    verify_access_token,
    verify_password,
)

from conftest import make_booking, make_client, make_show, make_staff


class TestShowName:

    def test_show_name_wins(self):
        assert resolve_show_name({"name": "CES"}, {"show_name": "Old"}) == "CES"

    def test_falls_back_through_booking_fields(self):
        assert resolve_show_name(None, {"show_name": " ", "title": "Legacy Title"}) == "Legacy Title"
        assert resolve_show_name(None, {"name": "Legacy Name"}) == "Legacy Name"

    def test_default(self):
        assert resolve_show_name(None, {}) == UNKNOWN_SHOW
        assert resolve_show_name(default="your event") == "your event"

    def test_model_instances(self, db):
        client = make_client(db)
        show = make_show(db, name="SEMA")
        booking = make_booking(db, client, show, show_name="Stored")
        assert resolve_show_name(show, booking) == "SEMA"
        assert resolve_show_name(None, booking) == "Stored"


class TestShowService:

    def test_get_missing_show(self, db):
        with pytest.raises(NotFoundError):
            show_service.get_show(db, "missing")

    def test_create_rejects_blank_name(self, db):
        with pytest.raises(ValidationError):
            show_service.create_show(db, "   ")

    def test_list_upcoming_keeps_open_ended(self, db):
        make_show(db, name="Open", start=date.today(), end=None)
        make_show(db, name="Over", start=date.today() - timedelta(days=10), end=date.today() - timedelta(days=5))

        names = [s.name for s in show_service.list_shows(db, upcoming_only=True)]

        assert names == ["Open"]


class TestClientService:

    def test_booking_summary_recomputes_staff(self, db):
        client = make_client(db)
        show = make_show(db)
        booking = make_booking(db, client, show, dates=[
            {"date": "2026-03-10", "staff_count": 4, "staff_ids": []},
        ], total_staff_needed=99)

        summary = client_service.booking_summary(booking, show)

        assert summary["total_staff_needed"] == 4
        assert summary["has_assigned_staff"] is False
        assert summary["unique_staff_ids"] == []

    def test_update_profile_ignores_unknown_fields(self, db):
        client = make_client(db)

        client_service.update_profile(db, client, {"stripe_customer_id": "cus_hijack", "phone": "555"})

        assert client.stripe_customer_id is None
        assert client.phone == "555"

    def test_blank_name_rejected(self, db):
        client = make_client(db)

        with pytest.raises(ValidationError):
            client_service.update_profile(db, client, {"name": "  "})

    def test_duplicate_contact_ids_rejected(self, db):
        client = make_client(db)

        with pytest.raises(ValidationError):
            client_service.replace_contacts(db, client, [
                {"id": "c1", "name": "A"},
                {"id": "c1", "name": "B"},
            ])

    def test_bookings_newest_first(self, db):
        client = make_client(db)
        show = make_show(db)
        older = make_booking(db, client, show)
        newer = make_booking(db, client, show)
        older.created_at = newer.created_at - timedelta(days=1)
        db.commit()

        ids = [b["id"] for b in client_service.list_client_bookings(db, client.id)]

        assert ids == [newer.id, older.id]


class TestAvailability:

    def test_declined_bookings_hidden_from_staff(self, db):
        member = make_staff(db)
        client = make_client(db)
        show = make_show(db)
        assigned = [{"date": "2026-03-10", "staff_count": 1, "staff_ids": [member.id]}]
        make_booking(db, client, show, dates=assigned)
        make_booking(db, client, show, dates=[dict(d) for d in assigned], status=BookingStatus.DECLINED.value)

        assert len(availability_service.list_staff_bookings(db, member.id)) == 1

    def test_invalid_date_string(self, db):
        member = make_staff(db)
        show = make_show(db)

        with pytest.raises(ValidationError):
            availability_service.set_availability(db, member.id, member.name, show.id, ["not-a-date"])


class TestSecurity:

    def test_password_hash_round_trip(self):
        hashed = hash_password("booth2026")
        assert verify_password("booth2026", hashed) is True
        assert verify_password("wrong2026", hashed) is False
        assert verify_password("booth2026", None) is False

    def test_password_strength(self):
        assert validate_password_strength("booth2026")[0] is True
        assert validate_password_strength("short1")[0] is False
        assert validate_password_strength("12345678")[0] is False

    def test_access_token_claims(self):
        payload = verify_access_token(create_access_token(data={"sub": "client-1", "role": "client"}))
        assert payload["sub"] == "client-1"
        assert payload["role"] == "client"

    def test_token_signed_with_other_key(self):
        forged = jwt.encode(
            {"sub": "client-1", "role": "admin", "type": "access"},
            "some-other-secret-key-that-is-long-enough",
            algorithm="HS256",
        )
        assert verify_access_token(forged) is None


class TestSanitization:

    def test_script_removed(self):
        assert strip_dangerous_tags('Booth <script>alert(1)</script>4410') == "Booth 4410"

    def test_event_handler_removed(self):
        assert "onerror" not in strip_dangerous_tags('<img src=x onerror="alert(1)">')

    def test_secrets_redacted_in_logs(self):
        logged = sanitize_for_log("api_key=sk_live_abc123 card 4242 4242 4242 4242")
        assert "sk_live_abc123" not in logged
        assert "4242 4242 4242 4242" not in logged
