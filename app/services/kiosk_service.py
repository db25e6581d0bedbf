"""Entry/exit kiosk flows.

Scanned QR payloads come in a few historical shapes; parse_scan_payload maps
all of them to one ScanPayload before anything else looks at them.
"""
import json
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from app.core.errors import (
    BookingExpiredError,
    ErrorCode,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from app.db.session import atomic
from app.models.floor import Floor
from app.models.user import User
from app.services import booking_state, ledger_service
from app.services.booking_service import find_booking_by_identifier
from app.services.booking_state import ACTIVE, EXPIRED, PENDING, as_utc, utcnow
from app.services.ledger_service import ExitResult
from app.services.notification_service import notify

logger = logging.getLogger(__name__)

BOOKING = "booking"
USER = "user"


@dataclass(frozen=True)
class ScanPayload:
    kind: str  # booking | user
    identifier: str


def parse_scan_payload(raw) -> ScanPayload:
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError:
            raise ValidationError("Invalid QR code format")
    if not isinstance(raw, dict):
        raise ValidationError("Invalid QR code format")

    kind = raw.get("type")
    if kind == BOOKING:
        identifier = raw.get("bookingId") or raw.get("id") or raw.get("_id")
        if not identifier:
            raise ValidationError("Missing booking identifier in QR code")
    elif kind == USER:
        identifier = raw.get("userId") or raw.get("id")
        if not identifier:
            raise ValidationError("Missing user identifier in QR code")
    else:
        raise ValidationError("Unknown QR code type")
    return ScanPayload(kind=kind, identifier=str(identifier))


def _special_pass(db: Session, scan: ScanPayload, gate: str) -> dict:
    user = db.get(User, scan.identifier)
    if not user:
        raise NotFoundError("User")
    if not user.is_special_pass:
        raise ForbiddenError("User does not have a special pass")
    logger.info("special pass %s admitted at %s", user.id, gate)
    return {"status": "special_pass", "gate": gate, "userName": user.name or user.email}


def entry_scan(db: Session, raw, now: datetime | None = None) -> dict:
    scan = parse_scan_payload(raw)
    if scan.kind == USER:
        return _special_pass(db, scan, "entry")

    now = now or utcnow()
    expired = False
    with atomic(db):
        booking = find_booking_by_identifier(db, scan.identifier, lock=True)
        if booking.status == EXPIRED:
            # already expired by the sweep; same answer as a lazy expiry
            raise BookingExpiredError(booking.booking_id)
        if booking.status == ACTIVE:
            raise InvalidTransitionError(booking.status, "enter", ErrorCode.ALREADY_ACTIVE)
        if booking.status != PENDING:
            raise InvalidTransitionError(booking.status, "enter")
        if booking_state.is_hold_expired(booking, now):
            booking_state.expire(booking)
            expired = True
        else:
            booking_state.activate(booking, now)

    if expired:
        logger.info("booking %s scanned after its hold lapsed", booking.booking_id)
        raise BookingExpiredError(booking.booking_id)

    floor = db.get(Floor, booking.floor_id)
    user = db.get(User, booking.user_id)
    logger.info("booking %s activated", booking.booking_id)
    notify(db, user, "entry_confirmed", {
        "booking_id": booking.booking_id,
        "entry_time": as_utc(booking.entry_time),
        "expected_exit_time": as_utc(booking.expected_exit_time),
    })
    return {
        "status": booking.status,
        "bookingId": booking.booking_id,
        "entryTime": as_utc(booking.entry_time).isoformat(),
        "expectedExitTime": as_utc(booking.expected_exit_time).isoformat(),
        "floor": floor.name if floor else None,
        "spotNumber": booking.spot_number,
    }


def exit_scan(db: Session, raw, now: datetime | None = None) -> dict:
    scan = parse_scan_payload(raw)
    if scan.kind == USER:
        return _special_pass(db, scan, "exit")

    booking = find_booking_by_identifier(db, scan.identifier, lock=True)
    result: ExitResult = ledger_service.settle_exit(db, booking, now)
    return result.as_dict()


def complete_exit(db: Session, booking_id: str, outcome: str) -> dict:
    booking = ledger_service.complete_exit(db, booking_id, outcome)
    return {
        "status": booking.status,
        "bookingId": booking.booking_id,
        "paymentStatus": booking.payment_status,
        "paymentMethod": booking.payment_method,
        "amount": booking.actual_amount,
    }


def payment_status(db: Session, identifier: str) -> dict:
    """What the kiosk polls while a driver pays the UPI request shown at exit."""
    booking = find_booking_by_identifier(db, identifier)
    out = {
        "isPaid": booking.payment_status == "paid",
        "bookingId": booking.booking_id,
        "status": booking.status,
        "paymentStatus": booking.payment_status,
    }
    if out["isPaid"]:
        out["paymentMethod"] = booking.payment_method
    return out
