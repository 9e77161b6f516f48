from __future__ import annotations

import logging
import uuid
from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi import HTTPException
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.business.quotes.models import QuoteLine
from app.business.quotes.repository import QuoteLineRepository
from app.business.quotes.schemas import QuoteCreate, QuoteLineCreate, QuoteLineUpdate
from app.business.quotes.service import QuoteService
from app.core.database import Base
from app.crm.models import CRMUser, MedicalInstitution
from app.platform.security.context import AuthContext
from app.platform.security.policies import build_default_policy_backend, set_policy_backend


class SilentNotifier:
    def quote_sent(self, quote) -> None:  # type: ignore[no-untyped-def]
        return None

    def quote_accepted(self, quote) -> None:  # type: ignore[no-untyped-def]
        return None

    def quote_rejected(self, quote) -> None:  # type: ignore[no-untyped-def]
        return None

    def quote_reminder(self, quote, reminder_type, days_until_expiry) -> None:  # type: ignore[no-untyped-def]
        return None


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
def reset_policy_backend() -> Generator[None, None, None]:
    set_policy_backend(build_default_policy_backend())
    yield
    set_policy_backend(build_default_policy_backend())


@pytest.fixture()
def service() -> QuoteService:
    return QuoteService(notifier=SilentNotifier())


@pytest.fixture()
def ctx(db_session: Session) -> AuthContext:
    user = CRMUser(email="lines@example.test", first_name="Lina", last_name="Lines", role="user")
    db_session.add(user)
    db_session.commit()
    return AuthContext(user_id=str(user.id), correlation_id="corr-lines", roles=["user"])


@pytest.fixture()
def quote_id(db_session: Session, service: QuoteService, ctx: AuthContext) -> uuid.UUID:
    institution = MedicalInstitution(name="Centre Hospitalier de Lyon")
    db_session.add(institution)
    db_session.commit()
    quote = service.create_quote(
        db_session,
        ctx,
        QuoteCreate(
            institution_id=institution.id,
            title="Surgical consumables",
            valid_until=datetime.now(timezone.utc) + timedelta(days=20),
            lines=[
                QuoteLineCreate(description="A", quantity=Decimal("1"), unit_price=Decimal("10")),
                QuoteLineCreate(description="B", quantity=Decimal("1"), unit_price=Decimal("20")),
                QuoteLineCreate(description="C", quantity=Decimal("1"), unit_price=Decimal("30")),
            ],
        ),
    )
    return quote.id


def _descriptions(db_session: Session, quote_id: uuid.UUID) -> list[tuple[int, str]]:
    lines = db_session.scalars(
        select(QuoteLine).where(QuoteLine.quote_id == quote_id).order_by(QuoteLine.order_index)
    ).all()
    return [(line.order_index, line.description) for line in lines]


def test_add_line_appends_by_default(
    db_session: Session, service: QuoteService, ctx: AuthContext, quote_id: uuid.UUID
) -> None:
    line = service.add_quote_line(
        db_session,
        ctx,
        quote_id,
        QuoteLineCreate(description="D", quantity=Decimal("2"), unit_price=Decimal("5"), tax_rate=Decimal("10")),
    )

    assert line.order_index == 4
    assert line.total == Decimal("11.00")
    assert line.tax_percentage == Decimal("10")
    assert service.get_quote_by_id(db_session, ctx, quote_id).total == Decimal("71.00")


def test_add_line_at_position_shifts_followers(
    db_session: Session, service: QuoteService, ctx: AuthContext, quote_id: uuid.UUID
) -> None:
    service.add_quote_line(
        db_session,
        ctx,
        quote_id,
        QuoteLineCreate(description="Inserted", quantity=Decimal("1"), unit_price=Decimal("1"), order_index=2),
    )

    assert _descriptions(db_session, quote_id) == [(1, "A"), (2, "Inserted"), (3, "B"), (4, "C")]


def test_add_line_rejects_position_out_of_range(
    db_session: Session, service: QuoteService, ctx: AuthContext, quote_id: uuid.UUID
) -> None:
    with pytest.raises(HTTPException) as exc_info:
        service.add_quote_line(
            db_session,
            ctx,
            quote_id,
            QuoteLineCreate(description="Far", quantity=Decimal("1"), unit_price=Decimal("1"), order_index=9),
        )

    assert exc_info.value.status_code == 422


def test_update_line_recomputes_quote_totals(
    db_session: Session, service: QuoteService, ctx: AuthContext, quote_id: uuid.UUID
) -> None:
    first = service.list_quote_lines(db_session, ctx, quote_id)[0]

    updated = service.update_quote_line(
        db_session,
        ctx,
        quote_id,
        first.id,
        QuoteLineUpdate(discount_type="fixed_amount", discount_value=Decimal("4")),
    )

    assert updated.discount_amount == Decimal("4.00")
    assert updated.description == "A"
    assert service.get_quote_by_id(db_session, ctx, quote_id).total == Decimal("56.00")


def test_update_line_rejects_percentage_over_hundred(
    db_session: Session, service: QuoteService, ctx: AuthContext, quote_id: uuid.UUID
) -> None:
    first = service.list_quote_lines(db_session, ctx, quote_id)[0]

    with pytest.raises(HTTPException) as exc_info:
        service.update_quote_line(db_session, ctx, quote_id, first.id, QuoteLineUpdate(discount_value=Decimal("150")))

    assert exc_info.value.status_code == 422
    assert service.get_quote_by_id(db_session, ctx, quote_id).total == Decimal("60.00")


def test_update_line_rejects_quantity_that_rounds_to_zero(
    db_session: Session, service: QuoteService, ctx: AuthContext, quote_id: uuid.UUID
) -> None:
    first = service.list_quote_lines(db_session, ctx, quote_id)[0]

    with pytest.raises(HTTPException) as exc_info:
        service.update_quote_line(db_session, ctx, quote_id, first.id, QuoteLineUpdate(quantity=Decimal("0.0001")))

    assert exc_info.value.status_code == 422
    assert exc_info.value.detail["message"] == "Quantity must be greater than 0"
    assert service.list_quote_lines(db_session, ctx, quote_id)[0].quantity == Decimal("1.000")


def test_update_unknown_line_is_not_found(
    db_session: Session, service: QuoteService, ctx: AuthContext, quote_id: uuid.UUID
) -> None:
    with pytest.raises(HTTPException) as exc_info:
        service.update_quote_line(db_session, ctx, quote_id, uuid.uuid4(), QuoteLineUpdate(description="x"))

    assert exc_info.value.detail["code"] == "QUOTE_LINE_NOT_FOUND"


def test_delete_line_compacts_indices(
    db_session: Session, service: QuoteService, ctx: AuthContext, quote_id: uuid.UUID
) -> None:
    middle = service.list_quote_lines(db_session, ctx, quote_id)[1]

    quote = service.delete_quote_line(db_session, ctx, quote_id, middle.id)

    assert [(line.order_index, line.description) for line in quote.lines] == [(1, "A"), (2, "C")]
    assert quote.total == Decimal("40.00")


def test_reorder_applies_requested_order(
    db_session: Session, service: QuoteService, ctx: AuthContext, quote_id: uuid.UUID
) -> None:
    a, b, c = service.list_quote_lines(db_session, ctx, quote_id)

    reordered = service.reorder_quote_lines(db_session, ctx, quote_id, [c.id, a.id, b.id])

    assert [(line.order_index, line.description) for line in reordered] == [(1, "C"), (2, "A"), (3, "B")]
    assert _descriptions(db_session, quote_id) == [(1, "C"), (2, "A"), (3, "B")]


def test_reorder_rejects_foreign_or_duplicate_ids(
    db_session: Session, service: QuoteService, ctx: AuthContext, quote_id: uuid.UUID
) -> None:
    a, b, c = service.list_quote_lines(db_session, ctx, quote_id)

    with pytest.raises(HTTPException) as exc_info:
        service.reorder_quote_lines(db_session, ctx, quote_id, [a.id, b.id, uuid.uuid4()])
    assert exc_info.value.detail["code"] == "INVALID_LINE_IDS"

    with pytest.raises(HTTPException) as exc_info:
        service.reorder_quote_lines(db_session, ctx, quote_id, [a.id, a.id, b.id])
    assert exc_info.value.detail["code"] == "INVALID_LINE_IDS"


def test_reorder_requires_every_line(
    db_session: Session, service: QuoteService, ctx: AuthContext, quote_id: uuid.UUID
) -> None:
    a, b, _ = service.list_quote_lines(db_session, ctx, quote_id)

    with pytest.raises(HTTPException) as exc_info:
        service.reorder_quote_lines(db_session, ctx, quote_id, [b.id, a.id])

    assert exc_info.value.detail["code"] == "INCOMPLETE_LINE_LIST"
    assert _descriptions(db_session, quote_id) == [(1, "A"), (2, "B"), (3, "C")]


class StaleIndexRepository(QuoteLineRepository):
    """Hands out an index another writer already took."""

    def next_order_index(self, session: Session, quote_id: uuid.UUID) -> int:
        return 1


def test_add_line_reports_order_index_collision_as_conflict(
    db_session: Session, ctx: AuthContext, quote_id: uuid.UUID, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.WARNING)
    service = QuoteService(line_repository=StaleIndexRepository(), notifier=SilentNotifier())

    with pytest.raises(HTTPException) as exc_info:
        service.add_quote_line(
            db_session,
            ctx,
            quote_id,
            QuoteLineCreate(description="Late", quantity=Decimal("1"), unit_price=Decimal("5")),
        )

    assert exc_info.value.status_code == 409
    assert exc_info.value.detail["code"] == "QUOTE_LINE_ORDER_CONFLICT"
    assert any(record.getMessage() == "quote.line_order_conflict" for record in caplog.records)
    assert _descriptions(db_session, quote_id) == [(1, "A"), (2, "B"), (3, "C")]
    assert service.get_quote_by_id(db_session, ctx, quote_id).total == Decimal("60.00")
