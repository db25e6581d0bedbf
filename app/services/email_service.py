import logging
import smtplib
import uuid
from datetime import datetime, timezone
from email.message import EmailMessage

import requests
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.email_log import EmailLog

logger = logging.getLogger(__name__)

SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"
TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"
RETRYABLE = ("queued", "failed")


def _deliver(log: EmailLog) -> bool:
    """Try one EmailLog row and record the outcome on it. Caller commits."""
    try:
        send_email(log.to_email, log.subject, log.body or "")
    except Exception:
        logger.warning("email %s (%s) to %s failed", log.id, log.template or log.subject, log.to_email, exc_info=True)
        log.status = "failed"
        return False
    log.status = "sent"
    log.sent_at = datetime.now(timezone.utc)
    return True


def queue_email(db: Session, to_email: str, subject: str, body: str, template: str = "", related_booking_id: str = "") -> str:
    """Persist the email, then attempt an immediate send.

    A failed send leaves the row as ``failed`` for process_pending_emails to retry.
    Commits on its own, so call it only after the triggering change is committed.
    """
    log = EmailLog(
        id=str(uuid.uuid4()),
        to_email=to_email,
        template=template,
        subject=subject,
        body=body,
        status="queued",
        related_booking_id=related_booking_id,
    )
    db.add(log)
    db.commit()
    _deliver(log)
    db.commit()
    return log.id


def send_email(to_email: str, subject: str, body: str) -> None:
    """SendGrid when an API key is configured, plain SMTP otherwise (MailHog locally)."""
    if settings.SENDGRID_API_KEY:
        _post_or_raise(
            "SendGrid",
            SENDGRID_SEND_URL,
            json={
                "personalizations": [{"to": [{"email": to_email}]}],
                "from": {"email": settings.SENDGRID_FROM_EMAIL or settings.SMTP_FROM},
                "subject": subject,
                "content": [{"type": "text/plain", "value": body}],
            },
            headers={"Authorization": f"Bearer {settings.SENDGRID_API_KEY}"},
        )
        return

    msg = EmailMessage()
    msg["From"], msg["To"], msg["Subject"] = settings.SMTP_FROM, to_email, subject
    msg.set_content(body)
    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=10) as smtp:
        if settings.SMTP_USERNAME:
            smtp.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        smtp.send_message(msg)


def _post_or_raise(provider: str, url: str, **kwargs) -> None:
    r = requests.post(url, timeout=20, **kwargs)
    if r.status_code >= 400:
        raise RuntimeError(f"{provider} error {r.status_code}: {r.text}")


def sms_enabled() -> bool:
    return bool(settings.TWILIO_ACCOUNT_SID and settings.TWILIO_AUTH_TOKEN and settings.TWILIO_PHONE_NUMBER)


def send_sms(phone: str, message: str) -> None:
    """Send one SMS through Twilio's REST API. Raises on failure."""
    _post_or_raise(
        "Twilio",
        TWILIO_MESSAGES_URL.format(sid=settings.TWILIO_ACCOUNT_SID),
        data={"From": settings.TWILIO_PHONE_NUMBER, "To": phone, "Body": message},
        auth=(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN),
    )


def process_pending_emails(db: Session, limit: int = 50) -> dict:
    """Retry up to `limit` queued or failed emails, oldest first. Returns counts."""
    batch = (
        db.query(EmailLog)
        .filter(EmailLog.status.in_(RETRYABLE), EmailLog.body.isnot(None), EmailLog.body != "")
        .order_by(EmailLog.created_at.asc())
        .limit(limit)
        .all()
    )
    sent = sum(1 for log in batch if _deliver(log))
    if batch:
        db.commit()
    return {"processed": len(batch), "sent": sent, "failed": len(batch) - sent}
