"""Booking lifecycle state machine.

pending -> active -> completed
pending -> expired | cancelled

Functions here only mutate the Booking passed in; locking, persistence and
money movements belong to booking_service / ledger_service. Every guard runs
before the first assignment so a rejected transition leaves the booking
untouched.
"""
from datetime import datetime, timedelta, timezone

from app.core.errors import (
    BookingExpiredError,
    ErrorCode,
    ForbiddenError,
    InvalidTransitionError,
)
from app.models.booking import Booking
from app.services.pricing import BASE_HOURS, FeeBreakdown, calculate_fee

PENDING = "pending"
ACTIVE = "active"
COMPLETED = "completed"
CANCELLED = "cancelled"
EXPIRED = "expired"

OPEN_STATUSES = (PENDING, ACTIVE)
TERMINAL_STATUSES = (COMPLETED, CANCELLED, EXPIRED)

BOOKING_TRANSITIONS = {
    PENDING: {ACTIVE, EXPIRED, CANCELLED},
    ACTIVE: {COMPLETED},
    COMPLETED: set(),
    CANCELLED: set(),
    EXPIRED: set(),
}

HOLD_MINUTES = 15
EXTENSION = timedelta(hours=1)
REMINDER_LEAD = timedelta(minutes=10)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything stored here is UTC."""
    if dt is None or dt.tzinfo is not None:
        return dt
    return dt.replace(tzinfo=timezone.utc)


def assert_transition(booking: Booking, target: str, action: str,
                      code: ErrorCode = ErrorCode.INVALID_TRANSITION) -> None:
    allowed = BOOKING_TRANSITIONS.get(booking.status, set())
    if target not in allowed:
        raise InvalidTransitionError(booking.status, action, code)


def hold_expiry(created_at: datetime) -> datetime:
    return created_at + timedelta(minutes=HOLD_MINUTES)


def is_hold_expired(booking: Booking, now: datetime) -> bool:
    return booking.status == PENDING and as_utc(now) >= as_utc(booking.expires_at)


def activate(booking: Booking, now: datetime) -> None:
    code = ErrorCode.ALREADY_ACTIVE if booking.status == ACTIVE else ErrorCode.INVALID_TRANSITION
    assert_transition(booking, ACTIVE, "enter", code)
    if is_hold_expired(booking, now):
        raise BookingExpiredError(booking.booking_id)

    booking.status = ACTIVE
    booking.entry_time = now
    # display/notification target only, billing uses the actual exit time
    booking.expected_exit_time = now + timedelta(hours=BASE_HOURS)
    booking.reminder_at = booking.expected_exit_time - REMINDER_LEAD
    booking.reminder_sent_at = None


def expire(booking: Booking) -> None:
    assert_transition(booking, EXPIRED, "expire")
    booking.status = EXPIRED


def cancel(booking: Booking, user_id: str) -> None:
    if booking.user_id != user_id:
        raise ForbiddenError("Not authorized to cancel this booking")
    assert_transition(booking, CANCELLED, "cancel")
    booking.status = CANCELLED


def extend(booking: Booking) -> None:
    if booking.status != ACTIVE:
        raise InvalidTransitionError(booking.status, "extend")
    booking.expected_exit_time = as_utc(booking.expected_exit_time) + EXTENSION
    booking.reminder_at = booking.expected_exit_time - REMINDER_LEAD
    booking.reminder_sent_at = None


def quote_exit(booking: Booking, now: datetime) -> FeeBreakdown:
    """Price the stay up to ``now`` and remember the quote on the booking."""
    if booking.status != ACTIVE:
        raise InvalidTransitionError(booking.status, "exit", ErrorCode.NOT_ACTIVE)
    fee = calculate_fee(as_utc(booking.entry_time), now)
    booking.actual_amount = fee.total_amount
    booking.exit_requested_at = now
    return fee


def has_open_quote(booking: Booking) -> bool:
    return booking.status == ACTIVE and booking.exit_requested_at is not None


def open_payment_window(booking: Booking, now: datetime, seconds: int) -> None:
    booking.payment_status = "pending"
    booking.payment_due_by = now + timedelta(seconds=seconds)


def is_payment_window_open(booking: Booking, now: datetime) -> bool:
    return booking.payment_due_by is not None and as_utc(now) < as_utc(booking.payment_due_by)


def complete(booking: Booking, payment_status: str, payment_method: str) -> None:
    assert_transition(booking, COMPLETED, "complete exit", ErrorCode.NOT_ACTIVE)
    if booking.exit_requested_at is None:
        raise InvalidTransitionError(booking.status, "complete exit without an exit quote", ErrorCode.NOT_ACTIVE)

    booking.status = COMPLETED
    booking.exit_time = booking.exit_requested_at
    booking.payment_status = payment_status
    booking.payment_method = payment_method
    booking.payment_due_by = None
