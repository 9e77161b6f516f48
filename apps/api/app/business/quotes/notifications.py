from __future__ import annotations

import logging
from typing import Any, Protocol

from app import events
from app.business.quotes.models import Quote
from app.core.config import get_settings
from app.metrics import observe_quote_notification_failure


logger = logging.getLogger("app.billing.quotes")


class QuoteNotifier(Protocol):
    def quote_sent(self, quote: Quote) -> None: ...

    def quote_accepted(self, quote: Quote) -> None: ...

    def quote_rejected(self, quote: Quote) -> None: ...

    def quote_reminder(self, quote: Quote, reminder_type: str, days_until_expiry: int | None) -> None: ...


class EventBusQuoteNotifier:
    """Publishes quote notifications as domain events for downstream mailers."""

    def quote_sent(self, quote: Quote) -> None:
        events.publish(self._envelope("billing.quote.sent", quote))

    def quote_accepted(self, quote: Quote) -> None:
        events.publish(self._envelope("billing.quote.accepted", quote))

    def quote_rejected(self, quote: Quote) -> None:
        events.publish(self._envelope("billing.quote.rejected", quote))

    def quote_reminder(self, quote: Quote, reminder_type: str, days_until_expiry: int | None) -> None:
        envelope = self._envelope("billing.quote.reminder", quote)
        envelope["reminder_type"] = reminder_type
        envelope["days_until_expiry"] = days_until_expiry
        events.publish(envelope)

    @staticmethod
    def _envelope(event_type: str, quote: Quote) -> dict[str, Any]:
        return {
            "event_type": event_type,
            "quote_id": str(quote.id),
            "quote_number": quote.quote_number,
            "institution_id": str(quote.institution_id),
            "assigned_user_id": str(quote.assigned_user_id),
            "status": quote.status,
            "total": str(quote.total),
        }


def dispatch(notifier: QuoteNotifier, event: str, quote: Quote, *args: Any) -> bool:
    """Best-effort delivery: failures are logged and counted, never raised."""

    if not get_settings().quote_notifications_enabled:
        return False
    try:
        getattr(notifier, event)(quote, *args)
    except Exception as exc:
        observe_quote_notification_failure(event)
        logger.warning(
            "quote.notification_failed",
            exc_info=True,
            extra={
                "quote_id": str(quote.id),
                "quote_number": quote.quote_number,
                "event_name": event,
                "error": str(exc)[:500],
            },
        )
        return False
    return True
