from app.tasks.celery_app import celery
from app.tasks import worker_jobs

@celery.task(name="app.tasks.jobs.expire_holds")
def expire_holds():
    return worker_jobs.expire_holds()

@celery.task(name="app.tasks.jobs.dispatch_exit_reminders")
def dispatch_exit_reminders():
    return worker_jobs.dispatch_exit_reminders()

@celery.task(name="app.tasks.jobs.settle_lapsed_exit_payments")
def settle_lapsed_exit_payments():
    return worker_jobs.settle_lapsed_exit_payments()

@celery.task(name="app.tasks.jobs.archive_completed_bookings")
def archive_completed_bookings():
    return worker_jobs.archive_completed_bookings()

@celery.task(name="app.tasks.jobs.process_email_queue")
def process_email_queue(limit: int = 50):
    return worker_jobs.process_email_queue(limit=limit)
