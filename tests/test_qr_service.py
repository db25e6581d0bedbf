import json
import uuid
from datetime import datetime, timedelta, timezone

from app.models.booking import Booking
from app.models.user import User
from app.services import qr_service


def _booking():
    created = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)
    return Booking(
        id=str(uuid.uuid4()),
        booking_id="SP654321012",
        user_id="u1",
        floor_id="f1",
        spot_type="normal",
        spot_number="Any Available Spot",
        status="pending",
        created_at=created,
        expires_at=created + timedelta(minutes=15),
    )


def test_encode_returns_svg():
    svg = qr_service.encode(json.dumps({"type": "booking", "bookingId": "SP654321012"}))
    assert isinstance(svg, bytes)
    assert b"<svg" in svg


def test_payloads():
    b = _booking()
    assert qr_service.booking_qr_payload(b) == {"type": "booking", "bookingId": "SP654321012"}
    u = User(id="u1", email="x@example.com", password_hash="-")
    assert qr_service.user_qr_payload(u) == {"type": "user", "userId": "u1"}
    assert b"<svg" in qr_service.user_qr_svg(u)


def test_pass_pdf():
    pdf = qr_service.render_booking_pass_pdf(_booking(), "Level 1", "Test Driver")
    assert pdf.startswith(b"%PDF")
