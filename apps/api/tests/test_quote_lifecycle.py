from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from app.business.quotes import lifecycle
from app.business.quotes.errors import InvalidTransitionError


NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _quote(status: str = "draft", valid_until: datetime | None = None) -> SimpleNamespace:
    return SimpleNamespace(
        status=status,
        valid_until=valid_until or NOW + timedelta(days=10),
        accepted_at=None,
        rejected_at=None,
        client_comments=None,
    )


def test_send_moves_draft_to_sent() -> None:
    quote = _quote()

    lifecycle.send(quote)

    assert quote.status == "sent"


@pytest.mark.parametrize("status", ["sent", "accepted", "rejected", "expired", "cancelled"])
def test_send_rejects_non_draft(status: str) -> None:
    with pytest.raises(InvalidTransitionError) as exc_info:
        lifecycle.send(_quote(status))

    assert exc_info.value.code == "INVALID_TRANSITION"


def test_accept_stamps_time_and_comments() -> None:
    quote = _quote("sent")

    lifecycle.accept(quote, "Looks good", now=NOW)

    assert quote.status == "accepted"
    assert quote.accepted_at == NOW
    assert quote.client_comments == "Looks good"


def test_accept_requires_unexpired_sent_quote() -> None:
    expired = _quote("sent", valid_until=NOW - timedelta(minutes=1))

    with pytest.raises(InvalidTransitionError):
        lifecycle.accept(expired, now=NOW)
    with pytest.raises(InvalidTransitionError):
        lifecycle.accept(_quote("draft"), now=NOW)


def test_reject_keeps_existing_comments_when_none_given() -> None:
    quote = _quote("sent")
    quote.client_comments = "earlier note"

    lifecycle.reject(quote, None, now=NOW)

    assert quote.status == "rejected"
    assert quote.rejected_at == NOW
    assert quote.client_comments == "earlier note"


def test_cancel_allowed_from_draft_and_sent_only() -> None:
    draft = _quote("draft")
    sent = _quote("sent")
    lifecycle.cancel(draft)
    lifecycle.cancel(sent)
    assert draft.status == sent.status == "cancelled"

    with pytest.raises(InvalidTransitionError):
        lifecycle.cancel(_quote("accepted"))


def test_terminal_states_have_no_transitions() -> None:
    for status in ("accepted", "rejected", "expired", "cancelled"):
        assert lifecycle.VALID_QUOTE_TRANSITIONS[status] == set()


def test_is_expired_ignores_accepted_quotes() -> None:
    past = NOW - timedelta(days=1)

    assert lifecycle.is_expired(_quote("sent", valid_until=past), NOW) is True
    assert lifecycle.is_expired(_quote("accepted", valid_until=past), NOW) is False
    assert lifecycle.is_expired(_quote("sent"), NOW) is False


def test_is_expired_treats_naive_values_as_utc() -> None:
    naive_past = (NOW - timedelta(hours=1)).replace(tzinfo=None)

    assert lifecycle.is_expired(_quote("sent", valid_until=naive_past), NOW) is True


def test_modifiable_and_deletable_states() -> None:
    assert lifecycle.can_be_modified(_quote("draft")) is True
    assert lifecycle.can_be_modified(_quote("sent")) is True
    assert lifecycle.can_be_modified(_quote("accepted")) is False
    assert lifecycle.can_be_deleted(_quote("draft")) is True
    assert lifecycle.can_be_deleted(_quote("sent")) is False


def test_days_until_expiry_rounds_up_and_skips_closed_quotes() -> None:
    assert lifecycle.days_until_expiry(_quote("sent", valid_until=NOW + timedelta(days=2, hours=1)), NOW) == 3
    assert lifecycle.days_until_expiry(_quote("sent", valid_until=NOW + timedelta(days=7)), NOW) == 7
    assert lifecycle.days_until_expiry(_quote("sent", valid_until=NOW - timedelta(days=2)), NOW) == -2
    assert lifecycle.days_until_expiry(_quote("accepted"), NOW) is None
    assert lifecycle.days_until_expiry(_quote("rejected"), NOW) is None
