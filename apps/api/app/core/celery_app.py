import logging

from celery import Celery
from celery.schedules import crontab

from app.business.quotes.reminders import quote_reminder_service
from app.business.quotes.service import quote_service
from app.core.config import get_settings
from app.core.database import SessionLocal

settings = get_settings()
logger = logging.getLogger("app.billing.jobs")

celery_app = Celery("medical_crm_api", broker=settings.redis_url, backend=settings.redis_url)
celery_app.conf.beat_schedule = {
    "billing-quotes-mark-expired": {
        "task": "billing.quotes.mark_expired",
        "schedule": crontab(minute=0),
    },
    "billing-quotes-send-reminders": {
        "task": "billing.quotes.send_reminders",
        "schedule": crontab(minute=0, hour=8),
    },
}


@celery_app.task(name="billing.quotes.mark_expired")
def mark_expired_quotes_task() -> int:
    session = SessionLocal()
    try:
        return quote_service.mark_expired_quotes(session)
    finally:
        session.close()


@celery_app.task(name="billing.quotes.send_reminders")
def send_quote_reminders_task() -> dict[str, int]:
    session = SessionLocal()
    try:
        results = quote_reminder_service.check_and_send_reminders(session)
    finally:
        session.close()
    sent = sum(1 for result in results if result.success)
    summary = {"sent": sent, "failed": len(results) - sent}
    logger.info("quote.reminder_job_finished", extra={"count": sent, "job_name": "send_reminders"})
    return summary
