from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any

from app.business.quotes.errors import InvalidTransitionError
from app.business.quotes.models import QuoteStatus


VALID_QUOTE_TRANSITIONS: dict[str, set[str]] = {
    QuoteStatus.DRAFT: {QuoteStatus.SENT, QuoteStatus.CANCELLED},
    QuoteStatus.SENT: {QuoteStatus.ACCEPTED, QuoteStatus.REJECTED, QuoteStatus.EXPIRED, QuoteStatus.CANCELLED},
    QuoteStatus.ACCEPTED: set(),
    QuoteStatus.REJECTED: set(),
    QuoteStatus.EXPIRED: set(),
    QuoteStatus.CANCELLED: set(),
}

MODIFIABLE_STATUSES = frozenset({QuoteStatus.DRAFT, QuoteStatus.SENT})
_SECONDS_PER_DAY = 86400


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; every stored value is UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_expired(quote: Any, now: datetime | None = None) -> bool:
    current = as_utc(now or utcnow())
    return quote.status != QuoteStatus.ACCEPTED and current > as_utc(quote.valid_until)


def can_be_modified(quote: Any) -> bool:
    return quote.status in MODIFIABLE_STATUSES


def can_be_deleted(quote: Any) -> bool:
    return quote.status == QuoteStatus.DRAFT


def can_be_accepted(quote: Any, now: datetime | None = None) -> bool:
    return quote.status == QuoteStatus.SENT and not is_expired(quote, now)


def can_be_rejected(quote: Any, now: datetime | None = None) -> bool:
    return quote.status == QuoteStatus.SENT and not is_expired(quote, now)


def days_until_expiry(quote: Any, now: datetime | None = None) -> int | None:
    if quote.status in {QuoteStatus.ACCEPTED, QuoteStatus.REJECTED}:
        return None
    delta = as_utc(quote.valid_until) - as_utc(now or utcnow())
    return math.ceil(delta.total_seconds() / _SECONDS_PER_DAY)


def send(quote: Any) -> None:
    if quote.status != QuoteStatus.DRAFT:
        raise InvalidTransitionError("Only draft quotes can be sent")
    _move(quote, QuoteStatus.SENT)


def accept(quote: Any, comments: str | None = None, now: datetime | None = None) -> None:
    current = now or utcnow()
    if not can_be_accepted(quote, current):
        raise InvalidTransitionError("Quote cannot be accepted in its current state")
    _move(quote, QuoteStatus.ACCEPTED)
    quote.accepted_at = current
    if comments is not None:
        quote.client_comments = comments


def reject(quote: Any, comments: str | None = None, now: datetime | None = None) -> None:
    current = now or utcnow()
    if not can_be_rejected(quote, current):
        raise InvalidTransitionError("Quote cannot be rejected in its current state")
    _move(quote, QuoteStatus.REJECTED)
    quote.rejected_at = current
    if comments is not None:
        quote.client_comments = comments


def cancel(quote: Any) -> None:
    if quote.status not in MODIFIABLE_STATUSES:
        raise InvalidTransitionError("Only draft or sent quotes can be cancelled")
    _move(quote, QuoteStatus.CANCELLED)


def _move(quote: Any, target: QuoteStatus) -> None:
    allowed = VALID_QUOTE_TRANSITIONS.get(quote.status, set())
    if target not in allowed:
        raise InvalidTransitionError(f"invalid quote transition {quote.status} -> {target}")
    quote.status = target.value
