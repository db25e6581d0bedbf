"""Booking lifecycle transitions on in-memory bookings (no database)."""
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from app.core.errors import (
    BookingExpiredError,
    ErrorCode,
    ForbiddenError,
    InvalidTransitionError,
)
from app.models.booking import Booking
from app.services import booking_state
from app.services.booking_state import ACTIVE, CANCELLED, COMPLETED, EXPIRED, PENDING

T = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)
OWNER = "owner-1"


def make_booking(status=PENDING, created_at=T):
    return Booking(
        id=str(uuid.uuid4()),
        booking_id="SP123456789",
        user_id=OWNER,
        floor_id="floor-1",
        spot_type="normal",
        spot_number="Any Available Spot",
        status=status,
        actual_amount=0,
        payment_status="pending",
        payment_method="none",
        created_at=created_at,
        expires_at=booking_state.hold_expiry(created_at),
    )


def active_booking(entry=T):
    b = make_booking()
    booking_state.activate(b, entry)
    return b


class TestActivate:

    def test_sets_entry_and_expected_exit(self):
        b = make_booking()
        booking_state.activate(b, T + timedelta(minutes=5))
        assert b.status == ACTIVE
        assert b.entry_time == T + timedelta(minutes=5)
        assert b.expected_exit_time == T + timedelta(hours=4, minutes=5)
        assert b.reminder_at == b.expected_exit_time - timedelta(minutes=10)
        assert b.reminder_sent_at is None

    def test_hold_lapsed_never_activates(self):
        b = make_booking()
        with pytest.raises(BookingExpiredError):
            booking_state.activate(b, T + timedelta(minutes=15))
        assert b.status == PENDING
        assert b.entry_time is None

    def test_already_active(self):
        b = active_booking()
        with pytest.raises(InvalidTransitionError) as exc:
            booking_state.activate(b, T + timedelta(minutes=1))
        assert exc.value.code == ErrorCode.ALREADY_ACTIVE
        assert exc.value.current_status == ACTIVE

    @pytest.mark.parametrize("status", [COMPLETED, CANCELLED, EXPIRED])
    def test_terminal_states_reject_entry(self, status):
        b = make_booking(status=status)
        with pytest.raises(InvalidTransitionError):
            booking_state.activate(b, T)
        assert b.status == status


class TestHold:

    def test_hold_is_fifteen_minutes(self):
        b = make_booking()
        assert b.expires_at == T + timedelta(minutes=15)
        assert not booking_state.is_hold_expired(b, T + timedelta(minutes=14, seconds=59))
        assert booking_state.is_hold_expired(b, T + timedelta(minutes=15))

    def test_expire_pending(self):
        b = make_booking()
        booking_state.expire(b)
        assert b.status == EXPIRED

    def test_expire_active_rejected(self):
        b = active_booking()
        with pytest.raises(InvalidTransitionError):
            booking_state.expire(b)
        assert b.status == ACTIVE


class TestCancel:

    def test_owner_cancels_pending(self):
        b = make_booking()
        booking_state.cancel(b, OWNER)
        assert b.status == CANCELLED

    def test_cancel_active_rejected_and_unchanged(self):
        b = active_booking()
        with pytest.raises(InvalidTransitionError) as exc:
            booking_state.cancel(b, OWNER)
        assert exc.value.current_status == ACTIVE
        assert b.status == ACTIVE

    def test_other_user_cannot_cancel(self):
        b = make_booking()
        with pytest.raises(ForbiddenError):
            booking_state.cancel(b, "someone-else")
        assert b.status == PENDING


class TestExtend:

    def test_each_extension_adds_an_hour(self):
        b = active_booking()
        b.reminder_sent_at = T + timedelta(hours=3, minutes=50)
        booking_state.extend(b)
        booking_state.extend(b)
        assert b.expected_exit_time == T + timedelta(hours=6)
        assert b.reminder_at == T + timedelta(hours=5, minutes=50)
        assert b.reminder_sent_at is None

    def test_extend_pending_rejected(self):
        b = make_booking()
        with pytest.raises(InvalidTransitionError):
            booking_state.extend(b)
        assert b.expected_exit_time is None


class TestExit:

    def test_quote_then_complete(self):
        b = active_booking()
        exit_at = T + timedelta(minutes=280)
        fee = booking_state.quote_exit(b, exit_at)
        assert fee.total_amount == 55
        assert b.actual_amount == 55
        assert b.exit_time is None

        booking_state.complete(b, "paid", "wallet")
        assert b.status == COMPLETED
        assert b.exit_time == exit_at
        assert (b.payment_status, b.payment_method) == ("paid", "wallet")

    def test_quote_requires_active(self):
        b = make_booking()
        with pytest.raises(InvalidTransitionError) as exc:
            booking_state.quote_exit(b, T)
        assert exc.value.code == ErrorCode.NOT_ACTIVE

    def test_complete_requires_quote(self):
        b = active_booking()
        with pytest.raises(InvalidTransitionError):
            booking_state.complete(b, "paid", "upi")
        assert b.status == ACTIVE
        assert b.exit_time is None

    def test_payment_window(self):
        b = active_booking()
        booking_state.quote_exit(b, T + timedelta(hours=1))
        booking_state.open_payment_window(b, T + timedelta(hours=1), 180)
        assert booking_state.has_open_quote(b)
        assert booking_state.is_payment_window_open(b, T + timedelta(hours=1, seconds=179))
        assert not booking_state.is_payment_window_open(b, T + timedelta(hours=1, seconds=180))

    def test_completed_is_terminal(self):
        b = active_booking()
        booking_state.quote_exit(b, T + timedelta(hours=1))
        booking_state.complete(b, "due", "none")
        with pytest.raises(InvalidTransitionError):
            booking_state.complete(b, "paid", "upi")
        assert b.payment_status == "due"
