from urllib.parse import urlparse, urlunparse, parse_qs, urlencode

from celery import Celery
from celery.schedules import crontab
from app.core.config import settings

# Sweeps keep booking state honest between requests: lapsed holds, exit
# reminders, unpaid kiosk quotes. Archiving runs nightly.
SWEEP_SECONDS = 60.0


def _broker_url(url: str) -> str:
    """rediss:// (managed TLS Redis) must carry ssl_cert_reqs or Celery refuses it."""
    if not url or urlparse(url).scheme.lower() != "rediss":
        return url
    parsed = urlparse(url)
    qs = parse_qs(parsed.query)
    qs.setdefault("ssl_cert_reqs", ["CERT_NONE"])
    return urlunparse(parsed._replace(query=urlencode(qs, doseq=True)))


def _job(name: str, schedule, **kwargs) -> dict:
    entry = {"task": f"app.tasks.jobs.{name}", "schedule": schedule}
    if kwargs:
        entry["kwargs"] = kwargs
    return entry


broker = _broker_url(settings.REDIS_URL)
celery = Celery("smartpark", broker=broker, backend=broker, include=["app.tasks.jobs"])
celery.conf.timezone = "UTC"
celery.conf.beat_schedule = {
    "expire-holds": _job("expire_holds", SWEEP_SECONDS),
    "dispatch-exit-reminders": _job("dispatch_exit_reminders", SWEEP_SECONDS),
    "settle-lapsed-exit-payments": _job("settle_lapsed_exit_payments", SWEEP_SECONDS),
    "archive-completed-bookings": _job("archive_completed_bookings", crontab(hour=3, minute=0)),
    "process-email-queue": _job("process_email_queue", 2 * SWEEP_SECONDS, limit=50),
}
