from __future__ import annotations

import uuid
from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.business.quotes import numbering
from app.business.quotes.errors import QuoteConflictError
from app.business.quotes.models import Quote
from app.core.database import Base
from app.crm.models import CRMUser, MedicalInstitution


NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


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


@pytest.fixture()
def refs(db_session: Session) -> tuple[uuid.UUID, uuid.UUID]:
    user = CRMUser(email="numbering@example.test", first_name="Nora", last_name="Number")
    institution = MedicalInstitution(name="Clinique du Parc")
    db_session.add_all([user, institution])
    db_session.commit()
    return institution.id, user.id


def _quote(refs: tuple[uuid.UUID, uuid.UUID], quote_number: str | None = None) -> Quote:
    institution_id, user_id = refs
    return Quote(
        quote_number=quote_number,
        institution_id=institution_id,
        assigned_user_id=user_id,
        title="Numbered quote",
        valid_until=NOW + timedelta(days=30),
        subtotal=Decimal("0"),
        total_discount_amount=Decimal("0"),
        total_tax_amount=Decimal("0"),
        total=Decimal("0"),
    )


def test_prefix_uses_year_and_month() -> None:
    assert numbering.quote_number_prefix(NOW) == "Q202603"
    assert numbering.quote_number_prefix(datetime(2026, 11, 1, tzinfo=timezone.utc)) == "Q202611"


def test_first_number_of_month_starts_at_one(db_session: Session) -> None:
    assert numbering.next_quote_number(db_session, NOW) == "Q2026030001"


def test_next_number_follows_greatest_existing(db_session: Session, refs: tuple[uuid.UUID, uuid.UUID]) -> None:
    db_session.add_all([_quote(refs, "Q2026030007"), _quote(refs, "Q2026020042")])
    db_session.commit()

    assert numbering.next_quote_number(db_session, NOW) == "Q2026030008"


def test_sequence_exhaustion_raises_conflict(db_session: Session, refs: tuple[uuid.UUID, uuid.UUID]) -> None:
    db_session.add(_quote(refs, "Q2026039999"))
    db_session.commit()

    with pytest.raises(QuoteConflictError) as exc_info:
        numbering.next_quote_number(db_session, NOW)

    assert exc_info.value.code == "QUOTE_NUMBER_EXHAUSTED"


def test_insert_assigns_matching_number(db_session: Session, refs: tuple[uuid.UUID, uuid.UUID]) -> None:
    quote = numbering.insert_with_quote_number(db_session, _quote(refs), max_attempts=3, now=NOW)
    db_session.commit()

    assert numbering.QUOTE_NUMBER_RE.match(quote.quote_number)
    assert quote.quote_number == "Q2026030001"


def test_insert_retries_after_unique_collision(
    db_session: Session,
    refs: tuple[uuid.UUID, uuid.UUID],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    db_session.add(_quote(refs, "Q2026030001"))
    db_session.commit()

    proposals = iter(["Q2026030001", "Q2026030002"])
    monkeypatch.setattr(numbering, "next_quote_number", lambda session, now=None: next(proposals))

    quote = numbering.insert_with_quote_number(db_session, _quote(refs), max_attempts=3, now=NOW)
    db_session.commit()

    assert quote.quote_number == "Q2026030002"
    assert db_session.scalar(select(func.count()).select_from(Quote)) == 2


def test_insert_gives_up_after_max_attempts(
    db_session: Session,
    refs: tuple[uuid.UUID, uuid.UUID],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    db_session.add(_quote(refs, "Q2026030001"))
    db_session.commit()
    monkeypatch.setattr(numbering, "next_quote_number", lambda session, now=None: "Q2026030001")

    with pytest.raises(QuoteConflictError) as exc_info:
        numbering.insert_with_quote_number(db_session, _quote(refs), max_attempts=2, now=NOW)

    assert exc_info.value.code == "QUOTE_NUMBER_CONFLICT"
