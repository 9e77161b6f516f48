from app.business.quotes.api import router
from app.business.quotes.models import DiscountType, Quote, QuoteLine, QuoteReminder, QuoteStatus, ReminderType
from app.business.quotes.reminders import QuoteReminderService, quote_reminder_service
from app.business.quotes.schemas import (
    QuoteCreate,
    QuoteLineCreate,
    QuoteLineRead,
    QuoteLineUpdate,
    QuoteListRead,
    QuoteRead,
    QuoteStatisticsRead,
    QuoteUpdate,
)
from app.business.quotes.service import QuoteService, quote_service

__all__ = [
    "router",
    "Quote",
    "QuoteLine",
    "QuoteReminder",
    "QuoteStatus",
    "DiscountType",
    "ReminderType",
    "QuoteCreate",
    "QuoteUpdate",
    "QuoteLineCreate",
    "QuoteLineUpdate",
    "QuoteLineRead",
    "QuoteRead",
    "QuoteListRead",
    "QuoteStatisticsRead",
    "QuoteService",
    "quote_service",
    "QuoteReminderService",
    "quote_reminder_service",
]
