from __future__ import annotations

from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.business.quotes.models import Quote, QuoteReminder, ReminderType
from app.business.quotes.reminders import QuoteReminderService, reminder_type_for
from app.core.config import get_settings
from app.core.database import Base
from app.crm.models import CRMUser, MedicalInstitution


NOW = datetime(2026, 5, 4, 8, 0, tzinfo=timezone.utc)


class RecordingNotifier:
    def __init__(self, fail_for: set[str] | None = None) -> None:
        self.reminders: list[tuple[str, str, int | None]] = []
        self._fail_for = fail_for or set()

    def quote_sent(self, quote: Quote) -> None:
        return None

    def quote_accepted(self, quote: Quote) -> None:
        return None

    def quote_rejected(self, quote: Quote) -> None:
        return None

    def quote_reminder(self, quote: Quote, reminder_type: str, days_until_expiry: int | None) -> None:
        if quote.quote_number in self._fail_for:
            raise RuntimeError("mailer down")
        self.reminders.append((quote.quote_number, reminder_type, days_until_expiry))


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clear_settings() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def add_quote(db_session: Session):  # type: ignore[no-untyped-def]
    user = CRMUser(email="reminders@example.test", first_name="Remi", last_name="Nder")
    institution = MedicalInstitution(name="Clinique des Alpes")
    db_session.add_all([user, institution])
    db_session.commit()
    counter = {"value": 0}

    def _add(days: float, status: str = "sent") -> Quote:
        counter["value"] += 1
        quote = Quote(
            quote_number=f"Q202605{counter['value']:04d}",
            institution_id=institution.id,
            assigned_user_id=user.id,
            title=f"Quote {counter['value']}",
            status=status,
            valid_until=NOW + timedelta(days=days),
            subtotal=Decimal("100"),
            total_discount_amount=Decimal("0"),
            total_tax_amount=Decimal("0"),
            total=Decimal("100"),
        )
        db_session.add(quote)
        db_session.commit()
        return quote

    return _add


def test_reminder_type_mapping() -> None:
    assert reminder_type_for(7) == ReminderType.SEVEN_DAYS_BEFORE
    assert reminder_type_for(3) == ReminderType.THREE_DAYS_BEFORE
    assert reminder_type_for(0) == ReminderType.DAY_OF
    assert reminder_type_for(-4) == ReminderType.AFTER_EXPIRY
    assert reminder_type_for(5) is None
    assert reminder_type_for(None) is None


def test_sends_one_reminder_per_matching_quote(db_session: Session, add_quote) -> None:  # type: ignore[no-untyped-def]
    seven = add_quote(7)
    three = add_quote(2.5)
    add_quote(5)
    add_quote(7, status="draft")
    notifier = RecordingNotifier()
    service = QuoteReminderService(notifier=notifier)

    results = service.check_and_send_reminders(db_session, now=NOW)

    assert sorted((result.quote_number, result.reminder_type, result.success) for result in results) == [
        (seven.quote_number, "seven_days_before", True),
        (three.quote_number, "three_days_before", True),
    ]
    assert sorted(item[1] for item in notifier.reminders) == ["seven_days_before", "three_days_before"]
    assert db_session.get(Quote, seven.id).last_reminder_sent_at is not None


def test_reminders_are_not_repeated(db_session: Session, add_quote) -> None:  # type: ignore[no-untyped-def]
    add_quote(-1)
    notifier = RecordingNotifier()
    service = QuoteReminderService(notifier=notifier)

    first = service.check_and_send_reminders(db_session, now=NOW)
    second = service.check_and_send_reminders(db_session, now=NOW)

    assert [result.reminder_type for result in first] == ["after_expiry"]
    assert second == []
    assert db_session.scalar(select(func.count()).select_from(QuoteReminder)) == 1


def test_failed_reminder_is_reported_and_retried_later(db_session: Session, add_quote) -> None:  # type: ignore[no-untyped-def]
    broken = add_quote(-0.5)
    healthy = add_quote(3)
    service = QuoteReminderService(notifier=RecordingNotifier(fail_for={broken.quote_number}))

    results = {result.quote_number: result for result in service.check_and_send_reminders(db_session, now=NOW)}

    assert results[broken.quote_number].success is False
    assert results[broken.quote_number].error == "mailer down"
    assert results[healthy.quote_number].success is True
    assert service.get_reminders_for_quote(db_session, broken.id) == []
    assert [item.reminder_type for item in service.get_reminders_for_quote(db_session, healthy.id)] == ["three_days_before"]

    retry = QuoteReminderService(notifier=RecordingNotifier()).check_and_send_reminders(db_session, now=NOW)
    assert [(result.quote_number, result.success) for result in retry] == [(broken.quote_number, True)]


def test_disabled_notifications_skip_the_job(
    db_session: Session,
    add_quote,  # type: ignore[no-untyped-def]
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    add_quote(7)
    monkeypatch.setenv("QUOTE_NOTIFICATIONS_ENABLED", "false")
    get_settings.cache_clear()

    assert QuoteReminderService(notifier=RecordingNotifier()).check_and_send_reminders(db_session, now=NOW) == []


def test_quotes_needing_attention_window(db_session: Session, add_quote) -> None:  # type: ignore[no-untyped-def]
    soon = add_quote(6)
    add_quote(12)

    quotes = QuoteReminderService().get_quotes_needing_attention(db_session, now=NOW)

    assert [quote.id for quote in quotes] == [soon.id]
