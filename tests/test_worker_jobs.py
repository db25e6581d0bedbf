"""Periodic sweeps: hold expiry, exit reminders, lapsed payments, archival, email retry."""
from datetime import timedelta

from app.models.booking import Booking
from app.models.email_log import EmailLog
from app.services import booking_service, kiosk_service, ledger_service
from app.tasks import worker_jobs


def start_session(db, user, floor, entry):
    b = booking_service.create_booking(db, user, floor.id, now=entry - timedelta(minutes=1))
    kiosk_service.entry_scan(db, {"type": "booking", "bookingId": b.booking_id}, now=entry)
    return b


def reminders(db):
    return db.query(EmailLog).filter(EmailLog.template == "exit_reminder").count()


class TestExpireHolds:

    def test_expires_lapsed_pending(self, db, make_user, floor, now):
        fresh = booking_service.create_booking(db, make_user(), floor.id, now=now)
        stale = booking_service.create_booking(db, make_user(), floor.id, now=now - timedelta(minutes=30))
        assert worker_jobs.expire_holds(db, now=now) == {"expired": 1}
        assert db.get(Booking, stale.id).status == "expired"
        assert db.get(Booking, fresh.id).status == "pending"


class TestExitReminders:

    def test_sent_once_ten_minutes_before_expected_exit(self, db, user, floor, now):
        start_session(db, user, floor, now)
        assert worker_jobs.dispatch_exit_reminders(db, now=now + timedelta(hours=3, minutes=49)) == {"sent": 0}
        assert worker_jobs.dispatch_exit_reminders(db, now=now + timedelta(hours=3, minutes=50)) == {"sent": 1}
        assert worker_jobs.dispatch_exit_reminders(db, now=now + timedelta(hours=3, minutes=55)) == {"sent": 0}
        assert reminders(db) == 1

    def test_extension_reschedules(self, db, user, floor, now):
        b = start_session(db, user, floor, now)
        worker_jobs.dispatch_exit_reminders(db, now=now + timedelta(hours=3, minutes=50))
        booking_service.extend_booking(db, user, b.booking_id)
        assert worker_jobs.dispatch_exit_reminders(db, now=now + timedelta(hours=3, minutes=55)) == {"sent": 0}
        assert worker_jobs.dispatch_exit_reminders(db, now=now + timedelta(hours=4, minutes=50)) == {"sent": 1}

    def test_no_reminder_after_exit(self, db, user, floor, now):
        b = start_session(db, user, floor, now)
        locked = booking_service.find_booking_by_identifier(db, b.booking_id, lock=True)
        ledger_service.settle_exit(db, locked, now + timedelta(hours=1))
        assert worker_jobs.dispatch_exit_reminders(db, now=now + timedelta(hours=4)) == {"sent": 0}


class TestLapsedPayments:

    def test_sweep_turns_quote_into_due(self, db, make_user, floor, now):
        driver = make_user(wallet=0)
        b = start_session(db, driver, floor, now)
        locked = booking_service.find_booking_by_identifier(db, b.booking_id, lock=True)
        ledger_service.settle_exit(db, locked, now + timedelta(hours=1))

        assert worker_jobs.settle_lapsed_exit_payments(db, now=now + timedelta(hours=2)) == {"settled": 1}
        db.refresh(driver)
        assert driver.due_amount == 40


class TestArchive:

    def test_archives_old_completed(self, db, user, floor, now):
        old = now - timedelta(days=120)
        b = start_session(db, user, floor, old)
        locked = booking_service.find_booking_by_identifier(db, b.booking_id, lock=True)
        ledger_service.settle_exit(db, locked, old + timedelta(hours=1))

        assert worker_jobs.archive_completed_bookings(db, now=now) == {"archived": 1}


class TestEmailQueue:

    def test_retries_failed_emails(self, db, outbox):
        db.add(EmailLog(id="e1", to_email="a@example.com", subject="s", body="hello", status="failed"))
        db.commit()
        assert worker_jobs.process_email_queue(limit=10, db=db) == {"processed": 1, "sent": 1, "failed": 0}
        assert db.get(EmailLog, "e1").status == "sent"
        assert outbox[-1]["to"] == "a@example.com"
