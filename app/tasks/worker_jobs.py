"""Periodic sweeps run by Celery beat (see celery_app.beat_schedule).

Each job opens its own session unless one is passed in, and skips quietly
when the tables do not exist yet so an unmigrated database does not crash
the worker.
"""
import logging
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import ProgrammingError
from sqlalchemy.orm import Session

from app.db.session import SessionLocal, atomic
from app.models.booking import Booking
from app.models.user import User
from app.services import booking_service, ledger_service
from app.services.booking_state import ACTIVE, as_utc, utcnow
from app.services.email_service import process_pending_emails
from app.services.notification_service import notify

logger = logging.getLogger(__name__)

MISSING_TABLES = {"skipped": True, "reason": "missing_tables"}
REMINDER_BATCH = 100


@contextmanager
def _session(db: Session | None):
    if db is not None:
        yield db
        return
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def expire_holds(db: Session | None = None, now: datetime | None = None) -> dict:
    with _session(db) as db:
        try:
            with atomic(db):
                n = booking_service.expire_stale_bookings(db, now)
        except ProgrammingError:
            # DB not migrated yet
            return MISSING_TABLES
        return {"expired": n}


def dispatch_exit_reminders(db: Session | None = None, now: datetime | None = None) -> dict:
    """Send the "10 minutes left" reminder once per active booking.

    The row is marked sent before delivery, so a crash between the two loses
    a reminder rather than duplicating it. Exit and extension reset the
    schedule through reminder_at.
    """
    now = now or utcnow()
    with _session(db) as db:
        try:
            with atomic(db):
                due = db.execute(
                    select(Booking)
                    .where(
                        Booking.status == ACTIVE,
                        Booking.reminder_at.isnot(None),
                        Booking.reminder_at <= now,
                        Booking.reminder_sent_at.is_(None),
                    )
                    .order_by(Booking.reminder_at.asc())
                    .limit(REMINDER_BATCH)
                    .with_for_update(skip_locked=True)
                ).scalars().all()
                for b in due:
                    b.reminder_sent_at = now
        except ProgrammingError:
            return MISSING_TABLES

        for b in due:
            user = db.get(User, b.user_id)
            if user:
                notify(db, user, "exit_reminder", {
                    "booking_id": b.booking_id,
                    "expected_exit_time": as_utc(b.expected_exit_time),
                })
        if due:
            logger.info("sent %d exit reminder(s)", len(due))
        return {"sent": len(due)}


def settle_lapsed_exit_payments(db: Session | None = None, now: datetime | None = None) -> dict:
    with _session(db) as db:
        try:
            return {"settled": ledger_service.settle_lapsed_exit_payments(db, now)}
        except ProgrammingError:
            return MISSING_TABLES


def archive_completed_bookings(db: Session | None = None, now: datetime | None = None) -> dict:
    with _session(db) as db:
        try:
            return {"archived": booking_service.archive_completed_bookings(db, now=now)}
        except ProgrammingError:
            return MISSING_TABLES


def process_email_queue(limit: int = 50, db: Session | None = None) -> dict:
    """Process queued/failed emails (retry send)."""
    with _session(db) as db:
        try:
            return process_pending_emails(db, limit=limit)
        except ProgrammingError:
            db.rollback()
            return MISSING_TABLES
