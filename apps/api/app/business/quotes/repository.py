from __future__ import annotations

import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import Select, func, or_, select, update
from sqlalchemy.orm import Session, selectinload

from app.business.quotes.models import Quote, QuoteLine, QuoteReminder, QuoteStatus


@dataclass(slots=True)
class QuoteFilters:
    search: str | None = None
    status: str | None = None
    institution_id: uuid.UUID | None = None
    assigned_user_id: uuid.UUID | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    amount_min: Decimal | None = None
    amount_max: Decimal | None = None


class QuoteRepository:
    def get(self, session: Session, quote_id: uuid.UUID, *, with_lines: bool = True) -> Quote | None:
        stmt = select(Quote).where(Quote.id == quote_id).execution_options(populate_existing=True)
        if with_lines:
            stmt = stmt.options(selectinload(Quote.lines))
        return session.scalar(stmt)

    def search(
        self,
        session: Session,
        filters: QuoteFilters,
        *,
        page: int,
        limit: int,
    ) -> tuple[list[Quote], int]:
        stmt = self._apply_filters(select(Quote), filters)
        total = session.scalar(select(func.count()).select_from(stmt.order_by(None).subquery())) or 0
        rows = session.scalars(
            stmt.options(selectinload(Quote.lines))
            .order_by(Quote.created_at.desc(), Quote.quote_number.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
        return list(rows), int(total)

    def list_by(self, session: Session, **criteria: Any) -> list[Quote]:
        stmt = select(Quote).options(selectinload(Quote.lines))
        for column_name, value in criteria.items():
            stmt = stmt.where(getattr(Quote, column_name) == value)
        return list(session.scalars(stmt.order_by(Quote.created_at.desc())).all())

    def status_counts(self, session: Session, assigned_user_id: uuid.UUID | None = None) -> dict[str, int]:
        stmt = select(Quote.status, func.count()).group_by(Quote.status)
        if assigned_user_id is not None:
            stmt = stmt.where(Quote.assigned_user_id == assigned_user_id)
        return {str(row[0]): int(row[1]) for row in session.execute(stmt).all()}

    def sum_total(
        self,
        session: Session,
        *,
        assigned_user_id: uuid.UUID | None = None,
        status: str | None = None,
    ) -> Decimal:
        stmt = select(func.coalesce(func.sum(Quote.total), 0))
        if assigned_user_id is not None:
            stmt = stmt.where(Quote.assigned_user_id == assigned_user_id)
        if status is not None:
            stmt = stmt.where(Quote.status == status)
        return Decimal(str(session.scalar(stmt) or 0))

    def mark_expired(self, session: Session, now: datetime) -> int:
        result = session.execute(
            update(Quote)
            .where(Quote.status == QuoteStatus.SENT.value, Quote.valid_until < now)
            .values(status=QuoteStatus.EXPIRED.value, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0)

    def list_sent(self, session: Session) -> list[Quote]:
        return list(session.scalars(select(Quote).where(Quote.status == QuoteStatus.SENT.value)).all())

    def list_sent_expiring_before(self, session: Session, cutoff: datetime) -> list[Quote]:
        return list(
            session.scalars(
                select(Quote)
                .where(Quote.status == QuoteStatus.SENT.value, Quote.valid_until <= cutoff)
                .order_by(Quote.valid_until.asc())
            ).all()
        )

    @staticmethod
    def _apply_filters(stmt: Select[tuple[Quote]], filters: QuoteFilters) -> Select[tuple[Quote]]:
        if filters.search:
            pattern = f"%{filters.search.strip()}%"
            stmt = stmt.where(
                or_(
                    Quote.title.ilike(pattern),
                    Quote.description.ilike(pattern),
                    Quote.quote_number.ilike(pattern),
                )
            )
        if filters.status:
            stmt = stmt.where(Quote.status == filters.status)
        if filters.institution_id is not None:
            stmt = stmt.where(Quote.institution_id == filters.institution_id)
        if filters.assigned_user_id is not None:
            stmt = stmt.where(Quote.assigned_user_id == filters.assigned_user_id)
        if filters.date_from is not None:
            stmt = stmt.where(Quote.created_at >= filters.date_from)
        if filters.date_to is not None:
            stmt = stmt.where(Quote.created_at <= filters.date_to)
        if filters.amount_min is not None:
            stmt = stmt.where(Quote.total >= filters.amount_min)
        if filters.amount_max is not None:
            stmt = stmt.where(Quote.total <= filters.amount_max)
        return stmt


class QuoteLineRepository:
    def get(self, session: Session, quote_id: uuid.UUID, line_id: uuid.UUID) -> QuoteLine | None:
        return session.scalar(select(QuoteLine).where(QuoteLine.id == line_id, QuoteLine.quote_id == quote_id))

    def list_for_quote(self, session: Session, quote_id: uuid.UUID) -> list[QuoteLine]:
        return list(
            session.scalars(
                select(QuoteLine).where(QuoteLine.quote_id == quote_id).order_by(QuoteLine.order_index.asc())
            ).all()
        )

    def next_order_index(self, session: Session, quote_id: uuid.UUID) -> int:
        current = session.scalar(select(func.max(QuoteLine.order_index)).where(QuoteLine.quote_id == quote_id))
        return int(current or 0) + 1

    def apply_positions(self, session: Session, ordered_lines: Sequence[QuoteLine], *, skip: int | None = None) -> None:
        """Renumber ``ordered_lines`` to 1..N, leaving position ``skip`` free.

        Two flushes: every line first moves above the current maximum, then
        takes its final slot, so (quote_id, order_index) never collides.
        """

        if not ordered_lines:
            return

        targets: list[int] = []
        position = 1
        for _ in ordered_lines:
            if skip is not None and position == skip:
                position += 1
            targets.append(position)
            position += 1

        if all(line.order_index == target for line, target in zip(ordered_lines, targets)):
            return

        ceiling = max(max(line.order_index for line in ordered_lines), targets[-1])
        for offset, line in enumerate(ordered_lines, start=1):
            line.order_index = ceiling + offset
        session.flush()

        for line, target in zip(ordered_lines, targets):
            line.order_index = target
        session.flush()

    def compact(self, session: Session, quote_id: uuid.UUID) -> None:
        self.apply_positions(session, self.list_for_quote(session, quote_id))


class QuoteReminderRepository:
    def sent_types(self, session: Session, quote_id: uuid.UUID) -> set[str]:
        return set(session.scalars(select(QuoteReminder.reminder_type).where(QuoteReminder.quote_id == quote_id)).all())

    def record(self, session: Session, quote_id: uuid.UUID, reminder_type: str, sent_at: datetime) -> QuoteReminder:
        reminder = QuoteReminder(quote_id=quote_id, reminder_type=reminder_type, sent_at=sent_at)
        session.add(reminder)
        session.flush()
        return reminder

    def list_for_quote(self, session: Session, quote_id: uuid.UUID) -> list[QuoteReminder]:
        return list(
            session.scalars(
                select(QuoteReminder).where(QuoteReminder.quote_id == quote_id).order_by(QuoteReminder.sent_at.desc())
            ).all()
        )
