"""Monthly quote numbers of the form ``Q{YYYY}{MM}{NNNN}``.

The next number is read from the greatest existing one for the month, so two
writers can compute the same value. The unique constraint on
``billing_quote.quote_number`` decides the winner; the loser regenerates
inside a fresh savepoint. Gaps are allowed.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime

from opentelemetry import trace
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.business.quotes.errors import QuoteConflictError
from app.business.quotes.lifecycle import as_utc, utcnow
from app.business.quotes.models import Quote
from app.metrics import observe_quote_number_conflict


logger = logging.getLogger("app.billing.quotes")
tracer = trace.get_tracer("app.billing.quotes.numbering")

QUOTE_NUMBER_RE = re.compile(r"^Q\d{10}$")
MAX_SEQUENCE = 9999


def quote_number_prefix(now: datetime | None = None) -> str:
    current = as_utc(now or utcnow())
    return f"Q{current.year:04d}{current.month:02d}"


def next_quote_number(session: Session, now: datetime | None = None) -> str:
    prefix = quote_number_prefix(now)
    latest = session.scalar(
        select(Quote.quote_number)
        .where(Quote.quote_number.like(f"{prefix}%"))
        .order_by(Quote.quote_number.desc())
        .limit(1)
    )
    sequence = 1
    if latest:
        sequence = int(latest[-4:]) + 1
    if sequence > MAX_SEQUENCE:
        raise QuoteConflictError(
            f"Quote number sequence exhausted for {prefix}",
            code="QUOTE_NUMBER_EXHAUSTED",
        )
    return f"{prefix}{sequence:04d}"


def insert_with_quote_number(
    session: Session,
    quote: Quote,
    *,
    max_attempts: int,
    now: datetime | None = None,
) -> Quote:
    """Assign a fresh number to ``quote`` and flush it, retrying on collision."""

    with tracer.start_as_current_span("billing.quote.allocate_number") as span:
        for attempt in range(1, max_attempts + 1):
            quote.quote_number = next_quote_number(session, now)
            span.set_attribute("attempt", attempt)
            try:
                with session.begin_nested():
                    session.add(quote)
                    session.flush()
            except IntegrityError as exc:
                observe_quote_number_conflict()
                logger.warning(
                    "quote.number_conflict",
                    extra={"quote_number": quote.quote_number, "attempt": attempt, "error": str(exc.orig)},
                )
                continue
            span.set_attribute("quote_number", quote.quote_number)
            return quote

    raise QuoteConflictError("Could not allocate a unique quote number, please retry")
