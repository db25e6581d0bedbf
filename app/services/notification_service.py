"""User notifications (email + SMS) for booking lifecycle events.

Delivery is best effort: a failure is logged and swallowed so the state
change that triggered it stays committed.
"""
import logging
from datetime import datetime

from sqlalchemy.orm import Session

from app.models.user import User
from app.services.email_service import queue_email, send_sms, sms_enabled

logger = logging.getLogger(__name__)

SIGNATURE = "\n\nRegards,\nSmartPark Team"

# template -> (subject, email body, sms text); formatted with the notify() data
TEMPLATES: dict[str, tuple[str, str, str]] = {
    "booking_confirmed": (
        "SmartPark Booking Confirmation",
        "Hello {name},\n\nYour parking spot has been booked.\n"
        "Booking ID: {booking_id}\nFloor: {floor}\n"
        "You can park in any available spot on this floor.\n"
        "Valid until: {expires_at}\n"
        "Please scan the QR code at the entry kiosk within 15 minutes to activate your booking.",
        "SmartPark: Booking {booking_id} on {floor} confirmed. Scan the QR code at entry within 15 minutes.",
    ),
    "entry_confirmed": (
        "SmartPark Entry Confirmed",
        "Hello {name},\n\nYour entry has been confirmed.\n"
        "Booking ID: {booking_id}\nEntry time: {entry_time}\nExpected exit time: {expected_exit_time}\n"
        "Base rate is Rs.40 for 4 hours. Please keep enough wallet balance before exiting.",
        "SmartPark: Entry confirmed for booking {booking_id}. Expected exit {expected_exit_time}.",
    ),
    "exit_reminder": (
        "SmartPark Booking Expiring Soon",
        "Hello {name},\n\nYour parking booking expires in 10 minutes at {expected_exit_time}.\n"
        "To avoid fines, please exit before then or extend your booking.",
        "SmartPark: Your booking expires at {expected_exit_time}. Exit or extend to avoid fines.",
    ),
    "booking_extended": (
        "SmartPark Booking Extension",
        "Hello {name},\n\nYour parking time has been extended.\n"
        "Booking ID: {booking_id}\nNew expected exit time: {expected_exit_time}",
        "SmartPark: Booking {booking_id} extended until {expected_exit_time}.",
    ),
    "exit_completed": (
        "SmartPark Exit Confirmed",
        "Hello {name},\n\nYour exit has been processed.\n"
        "Booking ID: {booking_id}\nDuration: {duration} minutes\nAmount: Rs.{amount}\n"
        "Payment method: {method}\nRemaining wallet balance: Rs.{wallet}\n\nThank you for using SmartPark.",
        "SmartPark: Exit processed for {booking_id}. Rs.{amount} paid via {method}.",
    ),
    "payment_due": (
        "SmartPark Payment Due",
        "Hello {name},\n\nYou have an outstanding payment for your recent parking.\n"
        "Booking ID: {booking_id}\nAmount due: Rs.{amount}\n"
        "Please clear your dues to make new bookings.",
        "SmartPark: Rs.{amount} is due for booking {booking_id}. Clear dues before your next booking.",
    ),
}


def _fmt(value):
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M UTC")
    return value


def render(template: str, user: User, data: dict) -> tuple[str, str, str]:
    subject, body, sms = TEMPLATES[template]
    values = {"name": user.name or user.email, **{k: _fmt(v) for k, v in data.items()}}
    return subject, body.format(**values) + SIGNATURE, sms.format(**values)


def notify(db: Session, user: User, template: str, data: dict) -> None:
    try:
        subject, body, sms = render(template, user, data)
    except (KeyError, IndexError):
        logger.warning("cannot render notification %s", template, exc_info=True)
        return

    try:
        queue_email(db, user.email, subject, body, template=template,
                    related_booking_id=str(data.get("booking_id", "")))
    except Exception:
        db.rollback()
        logger.warning("could not queue %s email for user %s", template, user.id, exc_info=True)

    if user.phone and sms_enabled():
        try:
            send_sms(user.phone, sms)
        except Exception:
            logger.warning("%s sms to user %s failed", template, user.id, exc_info=True)
