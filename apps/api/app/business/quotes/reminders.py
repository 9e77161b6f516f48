from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from opentelemetry import trace
from sqlalchemy.orm import Session

from app.business.quotes import lifecycle
from app.business.quotes.models import Quote, QuoteReminder, ReminderType
from app.business.quotes.notifications import EventBusQuoteNotifier, QuoteNotifier
from app.business.quotes.repository import QuoteReminderRepository, QuoteRepository
from app.core.config import get_settings
from app.core.database import transaction
from app.metrics import observe_quote_job, observe_quote_notification_failure, observe_quote_reminder_sent


logger = logging.getLogger("app.billing.jobs")
tracer = trace.get_tracer("app.billing.quotes.reminders")

REMINDER_DAYS: dict[int, ReminderType] = {
    7: ReminderType.SEVEN_DAYS_BEFORE,
    3: ReminderType.THREE_DAYS_BEFORE,
    0: ReminderType.DAY_OF,
}
ATTENTION_WINDOW = timedelta(days=7)


def reminder_type_for(days_until_expiry: int | None) -> ReminderType | None:
    if days_until_expiry is None:
        return None
    if days_until_expiry < 0:
        return ReminderType.AFTER_EXPIRY
    return REMINDER_DAYS.get(days_until_expiry)


@dataclass(slots=True)
class ReminderResult:
    quote_id: uuid.UUID
    quote_number: str
    reminder_type: str
    success: bool
    error: str | None = None


@dataclass(slots=True)
class QuoteReminderService:
    quote_repository: QuoteRepository = QuoteRepository()
    reminder_repository: QuoteReminderRepository = QuoteReminderRepository()
    notifier: QuoteNotifier = EventBusQuoteNotifier()

    def check_and_send_reminders(self, session: Session, now: datetime | None = None) -> list[ReminderResult]:
        """Send at most one reminder of each type per sent quote.

        A quote that fails is reported in the result list and retried on the
        next run; the remaining quotes are still processed.
        """

        if not get_settings().quote_notifications_enabled:
            return []

        current = lifecycle.as_utc(now or lifecycle.utcnow())
        started = time.perf_counter()
        results: list[ReminderResult] = []
        with tracer.start_as_current_span("billing.quote.send_reminders") as span:
            quotes = self.quote_repository.list_sent(session)
            span.set_attribute("candidates", len(quotes))
            for quote in quotes:
                reminder_type = reminder_type_for(lifecycle.days_until_expiry(quote, current))
                if reminder_type is None:
                    continue
                if reminder_type.value in self.reminder_repository.sent_types(session, quote.id):
                    continue
                results.append(self.send_reminder_for_quote(session, quote, reminder_type, current))
            span.set_attribute("count", sum(1 for result in results if result.success))

        observe_quote_job("send_reminders", time.perf_counter() - started)
        logger.info(
            "quote.reminders_sent",
            extra={"count": sum(1 for result in results if result.success), "job_name": "send_reminders"},
        )
        return results

    def send_reminder_for_quote(
        self,
        session: Session,
        quote: Quote,
        reminder_type: ReminderType,
        now: datetime | None = None,
    ) -> ReminderResult:
        current = lifecycle.as_utc(now or lifecycle.utcnow())
        quote_id = quote.id
        quote_number = quote.quote_number
        try:
            with transaction(session):
                self.reminder_repository.record(session, quote_id, reminder_type.value, current)
                quote.last_reminder_sent_at = current
                session.add(quote)
                session.flush()
                self.notifier.quote_reminder(quote, reminder_type.value, lifecycle.days_until_expiry(quote, current))
        except Exception as exc:
            observe_quote_notification_failure("quote_reminder")
            logger.warning(
                "quote.reminder_failed",
                exc_info=True,
                extra={
                    "quote_id": str(quote_id),
                    "quote_number": quote_number,
                    "reminder_type": reminder_type.value,
                    "error": str(exc)[:500],
                },
            )
            return ReminderResult(
                quote_id=quote_id,
                quote_number=quote_number,
                reminder_type=reminder_type.value,
                success=False,
                error=str(exc)[:500],
            )

        observe_quote_reminder_sent(reminder_type.value)
        logger.info(
            "quote.reminder_sent",
            extra={"quote_id": str(quote_id), "quote_number": quote_number, "reminder_type": reminder_type.value},
        )
        return ReminderResult(quote_id=quote_id, quote_number=quote_number, reminder_type=reminder_type.value, success=True)

    def get_quotes_needing_attention(self, session: Session, now: datetime | None = None) -> list[Quote]:
        current = lifecycle.as_utc(now or lifecycle.utcnow())
        return self.quote_repository.list_sent_expiring_before(session, current + ATTENTION_WINDOW)

    def get_reminders_for_quote(self, session: Session, quote_id: uuid.UUID) -> list[QuoteReminder]:
        return self.reminder_repository.list_for_quote(session, quote_id)


quote_reminder_service = QuoteReminderService()
