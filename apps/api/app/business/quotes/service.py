from __future__ import annotations

import logging
import math
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from fastapi import HTTPException, status
from opentelemetry import trace
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app import audit, events
from app.business.quotes import lifecycle
from app.business.quotes.calculations import (
    CENT,
    ZERO,
    apply_line_totals,
    discount_percentage,
    money,
    quantity,
    rollup,
)
from app.business.quotes.documents import (
    QuoteDocument,
    QuoteDocumentRenderer,
    build_quote_document,
    render_quote_document,
)
from app.business.quotes.errors import (
    InsufficientPermissionsError,
    QuoteConflictError,
    QuoteNotDeletableError,
    QuoteNotFoundError,
    QuoteNotModifiableError,
    QuoteValidationError,
    http_errors,
)
from app.business.quotes.models import Quote, QuoteLine, QuoteStatus
from app.business.quotes.notifications import EventBusQuoteNotifier, QuoteNotifier, dispatch
from app.business.quotes.numbering import insert_with_quote_number
from app.business.quotes.repository import QuoteFilters, QuoteLineRepository, QuoteRepository
from app.business.quotes.schemas import (
    PaginationRead,
    QuoteCreate,
    QuoteLineCreate,
    QuoteLineRead,
    QuoteLineUpdate,
    QuoteListRead,
    QuoteRead,
    QuoteStatisticsRead,
    QuoteUpdate,
)
from app.business.quotes.validation import validate_quote_data, validate_quote_line_data
from app.core.config import get_settings
from app.core.database import transaction
from app.crm.models import CRMUser, MedicalInstitution
from app.crm.repositories import InstitutionRepository, UserRepository
from app.metrics import observe_quote_created, observe_quote_job, observe_quote_transition, observe_quotes_expired
from app.platform.security.context import AuthContext
from app.platform.security.permissions import QUOTES_EDIT_ALL, QUOTES_VIEW_ALL
from app.platform.security.policies import get_policy_backend


logger = logging.getLogger("app.billing.quotes")
tracer = trace.get_tracer("app.billing.quotes.service")

_LINE_FIELDS = ("description", "quantity", "unit_price", "discount_type", "discount_value", "tax_rate")
_QUOTE_FIELDS = ("title", "description", "internal_notes", "client_comments", "template_id", "valid_until")


@contextmanager
def _line_order_conflicts(quote_id: uuid.UUID) -> Iterator[None]:
    """Turn a (quote_id, order_index) collision with a concurrent writer into a 409."""

    try:
        yield
    except IntegrityError as exc:
        logger.warning(
            "quote.line_order_conflict",
            extra={"quote_id": str(quote_id), "error": str(exc.orig)},
        )
        raise QuoteConflictError(
            "Quote lines were changed concurrently, please retry",
            code="QUOTE_LINE_ORDER_CONFLICT",
        ) from exc


@dataclass(slots=True)
class QuoteService:
    quote_repository: QuoteRepository = QuoteRepository()
    line_repository: QuoteLineRepository = QuoteLineRepository()
    institution_repository: InstitutionRepository = InstitutionRepository()
    user_repository: UserRepository = UserRepository()
    notifier: QuoteNotifier = EventBusQuoteNotifier()
    renderer: QuoteDocumentRenderer | None = None

    def create_quote(self, session: Session, ctx: AuthContext, payload: QuoteCreate) -> QuoteRead:
        with http_errors():
            data = payload.model_dump(mode="python")
            validate_quote_data(data)
            actor = self._require_actor(session, ctx)
            self._require_institution(session, payload.institution_id)

            assigned_user_id = payload.assigned_user_id or actor.id
            if assigned_user_id != actor.id:
                if not self._role_allows(actor, QUOTES_EDIT_ALL):
                    raise InsufficientPermissionsError("Insufficient permissions to assign quotes to other users")
                self._require_user(session, assigned_user_id)

            settings = get_settings()
            quote = Quote(
                institution_id=payload.institution_id,
                assigned_user_id=assigned_user_id,
                template_id=payload.template_id,
                title=payload.title.strip(),
                description=payload.description,
                internal_notes=payload.internal_notes,
                status=QuoteStatus.DRAFT.value,
                valid_until=lifecycle.as_utc(payload.valid_until),
                subtotal=ZERO,
                total_discount_amount=ZERO,
                total_tax_amount=ZERO,
                total=ZERO,
            )
            new_lines = [self._build_line(line.model_dump(mode="python"), order_index=index) for index, line in enumerate(payload.lines, start=1)]

            with transaction(session):
                insert_with_quote_number(session, quote, max_attempts=settings.quote_number_max_retries)
                quote.lines.extend(new_lines)
                session.flush()
                self.recalculate_quote_totals(session, quote)

            observe_quote_created()
            audit.record(
                actor_user_id=ctx.user_id,
                entity_type="billing.quote",
                entity_id=str(quote.id),
                action="create",
                before=None,
                after=self._snapshot(quote),
                correlation_id=ctx.correlation_id,
            )
            events.publish(
                {
                    "event_type": "billing.quote.created",
                    "quote_id": str(quote.id),
                    "quote_number": quote.quote_number,
                    "institution_id": str(quote.institution_id),
                    "assigned_user_id": str(quote.assigned_user_id),
                    "total": str(quote.total),
                }
            )
            logger.info("quote.created", extra={"quote_id": str(quote.id), "quote_number": quote.quote_number})
            return self._to_quote_read(self._get_quote(session, quote.id))

    def get_quote_by_id(self, session: Session, ctx: AuthContext, quote_id: uuid.UUID) -> QuoteRead:
        with http_errors():
            quote = self._get_quote(session, quote_id)
            self._ensure_can_view(ctx, quote)
            return self._to_quote_read(quote)

    def list_quotes(
        self,
        session: Session,
        ctx: AuthContext,
        filters: QuoteFilters,
        *,
        page: int = 1,
        limit: int | None = None,
    ) -> QuoteListRead:
        settings = get_settings()
        page = max(page, 1)
        limit = min(max(limit or settings.quote_default_page_size, 1), settings.quote_max_page_size)
        if not self._can_view_all(ctx):
            filters.assigned_user_id = self._actor_id(ctx)
            if filters.assigned_user_id is None:
                return QuoteListRead(items=[], pagination=PaginationRead(total=0, page=page, limit=limit, total_pages=0))

        rows, total = self.quote_repository.search(session, filters, page=page, limit=limit)
        return QuoteListRead(
            items=[self._to_quote_read(row) for row in rows],
            pagination=PaginationRead(total=total, page=page, limit=limit, total_pages=math.ceil(total / limit)),
        )

    def get_quotes_by_institution(self, session: Session, ctx: AuthContext, institution_id: uuid.UUID) -> list[QuoteRead]:
        with http_errors():
            self._require_institution(session, institution_id)
            rows = self.quote_repository.list_by(session, institution_id=institution_id)
            return [self._to_quote_read(row) for row in rows if self._is_visible(ctx, row)]

    def get_quotes_by_user(self, session: Session, ctx: AuthContext, user_id: uuid.UUID) -> list[QuoteRead]:
        with http_errors():
            self._require_user(session, user_id)
            rows = self.quote_repository.list_by(session, assigned_user_id=user_id)
            return [self._to_quote_read(row) for row in rows if self._is_visible(ctx, row)]

    def get_quotes_by_status(self, session: Session, ctx: AuthContext, status_value: str) -> list[QuoteRead]:
        with http_errors():
            if status_value not in {item.value for item in QuoteStatus}:
                raise QuoteValidationError(f"Unknown quote status '{status_value}'")
            rows = self.quote_repository.list_by(session, status=status_value)
            return [self._to_quote_read(row) for row in rows if self._is_visible(ctx, row)]

    def update_quote(self, session: Session, ctx: AuthContext, quote_id: uuid.UUID, payload: QuoteUpdate) -> QuoteRead:
        with http_errors():
            quote = self._get_modifiable_quote(session, ctx, quote_id, "modify")
            data = payload.model_dump(mode="python", exclude_unset=True)
            validate_quote_data(data)

            replacement = None
            if data.get("lines") is not None:
                replacement = [self._build_line(line, order_index=index) for index, line in enumerate(data["lines"], start=1)]

            before = self._snapshot(quote)
            with _line_order_conflicts(quote.id), transaction(session):
                for field_name in _QUOTE_FIELDS:
                    if field_name not in data:
                        continue
                    value = data[field_name]
                    if field_name == "title":
                        value = value.strip()
                    elif field_name == "valid_until":
                        value = lifecycle.as_utc(value)
                    setattr(quote, field_name, value)

                if replacement is not None:
                    # Old rows go first so the new 1..N positions never collide.
                    quote.lines.clear()
                    session.flush()
                    quote.lines.extend(replacement)
                    session.flush()
                self.recalculate_quote_totals(session, quote)

            audit.record(
                actor_user_id=ctx.user_id,
                entity_type="billing.quote",
                entity_id=str(quote.id),
                action="update",
                before=before,
                after=self._snapshot(quote),
                correlation_id=ctx.correlation_id,
            )
            return self._to_quote_read(self._get_quote(session, quote.id))

    def delete_quote(self, session: Session, ctx: AuthContext, quote_id: uuid.UUID) -> None:
        with http_errors():
            quote = self._get_quote(session, quote_id)
            self._ensure_can_modify(session, ctx, quote, "delete")
            if not lifecycle.can_be_deleted(quote):
                raise QuoteNotDeletableError("Only draft quotes can be deleted")

            before = self._snapshot(quote)
            with transaction(session):
                session.delete(quote)

            audit.record(
                actor_user_id=ctx.user_id,
                entity_type="billing.quote",
                entity_id=str(quote_id),
                action="delete",
                before=before,
                after=None,
                correlation_id=ctx.correlation_id,
            )
            logger.info("quote.deleted", extra={"quote_id": str(quote_id), "quote_number": before["quote_number"]})

    def send_quote(self, session: Session, ctx: AuthContext, quote_id: uuid.UUID) -> QuoteRead:
        with http_errors():
            quote = self._get_quote(session, quote_id)
            self._ensure_can_modify(session, ctx, quote, "send")
            if quote.status == QuoteStatus.DRAFT and not quote.lines:
                raise QuoteValidationError("Cannot send quote without line items", code="QUOTE_NO_LINES")
            self._transition(session, ctx, quote, lifecycle.send)
            dispatch(self.notifier, "quote_sent", quote)
            return self._to_quote_read(quote)

    def accept_quote(
        self,
        session: Session,
        ctx: AuthContext,
        quote_id: uuid.UUID,
        client_comments: str | None = None,
    ) -> QuoteRead:
        with http_errors():
            quote = self._get_quote(session, quote_id)
            self._ensure_can_modify(session, ctx, quote, "accept")
            self._transition(session, ctx, quote, lambda item: lifecycle.accept(item, client_comments))
            dispatch(self.notifier, "quote_accepted", quote)
            return self._to_quote_read(quote)

    def reject_quote(
        self,
        session: Session,
        ctx: AuthContext,
        quote_id: uuid.UUID,
        client_comments: str | None = None,
    ) -> QuoteRead:
        with http_errors():
            quote = self._get_quote(session, quote_id)
            self._ensure_can_modify(session, ctx, quote, "reject")
            self._transition(session, ctx, quote, lambda item: lifecycle.reject(item, client_comments))
            dispatch(self.notifier, "quote_rejected", quote)
            return self._to_quote_read(quote)

    def cancel_quote(self, session: Session, ctx: AuthContext, quote_id: uuid.UUID) -> QuoteRead:
        with http_errors():
            quote = self._get_quote(session, quote_id)
            self._ensure_can_modify(session, ctx, quote, "cancel")
            self._transition(session, ctx, quote, lifecycle.cancel)
            events.publish(
                {
                    "event_type": "billing.quote.cancelled",
                    "quote_id": str(quote.id),
                    "quote_number": quote.quote_number,
                }
            )
            return self._to_quote_read(quote)

    def list_quote_lines(self, session: Session, ctx: AuthContext, quote_id: uuid.UUID) -> list[QuoteLineRead]:
        with http_errors():
            quote = self._get_quote(session, quote_id, with_lines=False)
            self._ensure_can_view(ctx, quote)
            return [self._to_line_read(line) for line in self.line_repository.list_for_quote(session, quote.id)]

    def add_quote_line(
        self,
        session: Session,
        ctx: AuthContext,
        quote_id: uuid.UUID,
        payload: QuoteLineCreate,
    ) -> QuoteLineRead:
        with http_errors():
            quote = self._get_modifiable_quote(session, ctx, quote_id, "modify")
            data = payload.model_dump(mode="python")
            validate_quote_line_data(data)

            existing = self.line_repository.list_for_quote(session, quote.id)
            position = data.get("order_index")
            if position is not None and not 1 <= position <= len(existing) + 1:
                raise QuoteValidationError(f"Order index must be between 1 and {len(existing) + 1}")
            line = self._build_line(data, order_index=position or 0)

            with _line_order_conflicts(quote.id), transaction(session):
                if position is None:
                    line.order_index = self.line_repository.next_order_index(session, quote.id)
                else:
                    self.line_repository.apply_positions(session, existing, skip=position)
                quote.lines.append(line)
                session.flush()
                self.recalculate_quote_totals(session, quote)

            self._audit_line(ctx, line.id, "line_create", None, self._line_snapshot(line))
            return self._to_line_read(line)

    def update_quote_line(
        self,
        session: Session,
        ctx: AuthContext,
        quote_id: uuid.UUID,
        line_id: uuid.UUID,
        payload: QuoteLineUpdate,
    ) -> QuoteLineRead:
        with http_errors():
            quote = self._get_modifiable_quote(session, ctx, quote_id, "modify")
            line = self._get_line(session, quote.id, line_id)
            changes = payload.model_dump(mode="python", exclude_unset=True)
            merged = {field_name: getattr(line, field_name) for field_name in _LINE_FIELDS}
            merged.update({key: value for key, value in changes.items() if value is not None})
            validate_quote_line_data(merged)
            before = self._line_snapshot(line)

            with transaction(session):
                self._assign_line_fields(line, merged)
                apply_line_totals(line)
                session.flush()
                self.recalculate_quote_totals(session, quote)

            self._audit_line(ctx, line.id, "line_update", before, self._line_snapshot(line))
            return self._to_line_read(line)

    def delete_quote_line(self, session: Session, ctx: AuthContext, quote_id: uuid.UUID, line_id: uuid.UUID) -> QuoteRead:
        with http_errors():
            quote = self._get_modifiable_quote(session, ctx, quote_id, "modify")
            line = self._get_line(session, quote.id, line_id)
            before = self._line_snapshot(line)

            with _line_order_conflicts(quote.id), transaction(session):
                quote.lines.remove(line)
                session.flush()
                self.line_repository.compact(session, quote.id)
                self.recalculate_quote_totals(session, quote)

            self._audit_line(ctx, line_id, "line_delete", before, None)
            return self._to_quote_read(self._get_quote(session, quote.id))

    def reorder_quote_lines(
        self,
        session: Session,
        ctx: AuthContext,
        quote_id: uuid.UUID,
        line_ids: list[uuid.UUID],
    ) -> list[QuoteLineRead]:
        with http_errors():
            quote = self._get_modifiable_quote(session, ctx, quote_id, "modify")
            existing = self.line_repository.list_for_quote(session, quote.id)
            by_id = {line.id: line for line in existing}

            requested = set(line_ids)
            if len(requested) != len(line_ids):
                raise QuoteValidationError("Line ids must not repeat", code="INVALID_LINE_IDS")
            foreign = requested - by_id.keys()
            if foreign:
                raise QuoteValidationError("Some line ids do not belong to this quote", code="INVALID_LINE_IDS")
            if requested != by_id.keys():
                raise QuoteValidationError("All quote lines must be included in the reorder", code="INCOMPLETE_LINE_LIST")

            ordered = [by_id[line_id] for line_id in line_ids]
            with _line_order_conflicts(quote.id), transaction(session):
                self.line_repository.apply_positions(session, ordered)
                self.recalculate_quote_totals(session, quote)

            audit.record(
                actor_user_id=ctx.user_id,
                entity_type="billing.quote",
                entity_id=str(quote.id),
                action="line_reorder",
                before={"line_ids": [str(line.id) for line in existing]},
                after={"line_ids": [str(line_id) for line_id in line_ids]},
                correlation_id=ctx.correlation_id,
            )
            return [self._to_line_read(line) for line in self.line_repository.list_for_quote(session, quote.id)]

    def recalculate_quote_totals(self, session: Session, quote: Quote) -> None:
        totals = rollup(self.line_repository.list_for_quote(session, quote.id))
        quote.subtotal = totals.subtotal
        quote.total_discount_amount = totals.total_discount_amount
        quote.total_tax_amount = totals.total_tax_amount
        quote.total = totals.total
        session.add(quote)
        session.flush()

    def get_quote_statistics(
        self,
        session: Session,
        ctx: AuthContext,
        user_id: uuid.UUID | None = None,
    ) -> QuoteStatisticsRead:
        if not self._can_view_all(ctx):
            user_id = self._actor_id(ctx)
            if user_id is None:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail={"code": "INSUFFICIENT_PERMISSIONS", "message": "Unknown user"},
                )

        counts = self.quote_repository.status_counts(session, assigned_user_id=user_id)
        sent = counts.get(QuoteStatus.SENT, 0)
        accepted = counts.get(QuoteStatus.ACCEPTED, 0)
        conversion_rate = ZERO
        if sent > 0:
            conversion_rate = (Decimal(accepted) / Decimal(sent) * Decimal("100")).quantize(CENT, rounding=ROUND_HALF_UP)

        return QuoteStatisticsRead(
            total_quotes=sum(counts.values()),
            draft_quotes=counts.get(QuoteStatus.DRAFT, 0),
            sent_quotes=sent,
            accepted_quotes=accepted,
            rejected_quotes=counts.get(QuoteStatus.REJECTED, 0),
            expired_quotes=counts.get(QuoteStatus.EXPIRED, 0),
            cancelled_quotes=counts.get(QuoteStatus.CANCELLED, 0),
            total_value=money(self.quote_repository.sum_total(session, assigned_user_id=user_id)),
            accepted_value=money(
                self.quote_repository.sum_total(session, assigned_user_id=user_id, status=QuoteStatus.ACCEPTED.value)
            ),
            conversion_rate=conversion_rate,
        )

    def mark_expired_quotes(self, session: Session, now: datetime | None = None) -> int:
        current = lifecycle.as_utc(now or lifecycle.utcnow())
        started = time.perf_counter()
        with tracer.start_as_current_span("billing.quote.mark_expired") as span:
            with transaction(session):
                count = self.quote_repository.mark_expired(session, current)
            span.set_attribute("count", count)

        observe_quotes_expired(count)
        observe_quote_job("mark_expired", time.perf_counter() - started)
        if count:
            observe_quote_transition(QuoteStatus.SENT.value, QuoteStatus.EXPIRED.value)
            events.publish({"event_type": "billing.quote.expired", "count": count, "as_of": current.isoformat()})
        logger.info("quote.expired_batch", extra={"count": count})
        return count

    def build_document(self, session: Session, ctx: AuthContext, quote_id: uuid.UUID) -> QuoteDocument:
        with http_errors():
            quote = self._get_quote(session, quote_id)
            self._ensure_can_view(ctx, quote)
            institution = self._require_institution(session, quote.institution_id)
            user = self._require_user(session, quote.assigned_user_id)
            return build_quote_document(quote, institution, user)

    def render_quote_pdf(
        self,
        session: Session,
        ctx: AuthContext,
        quote_id: uuid.UUID,
        template_id: uuid.UUID | None = None,
    ) -> bytes:
        if self.renderer is None:
            raise HTTPException(
                status_code=status.HTTP_501_NOT_IMPLEMENTED,
                detail={"code": "PDF_RENDERER_UNAVAILABLE", "message": "No PDF renderer is configured"},
            )
        document = self.build_document(session, ctx, quote_id)
        quote = self._get_quote(session, quote_id, with_lines=False)
        return render_quote_document(self.renderer, document, template_id or quote.template_id)

    def can_user_modify_quote(self, quote: Quote, user: CRMUser | None) -> bool:
        if user is None or not user.is_active:
            return False
        if self._role_allows(user, QUOTES_EDIT_ALL):
            return True
        return quote.assigned_user_id == user.id

    def _transition(self, session: Session, ctx: AuthContext, quote: Quote, apply: Any) -> None:
        from_status = quote.status
        with transaction(session):
            apply(quote)
            session.add(quote)
            session.flush()

        observe_quote_transition(from_status, quote.status)
        audit.record(
            actor_user_id=ctx.user_id,
            entity_type="billing.quote",
            entity_id=str(quote.id),
            action="transition",
            before={"status": from_status},
            after={"status": quote.status},
            correlation_id=ctx.correlation_id,
        )
        logger.info(
            "quote.transition",
            extra={
                "quote_id": str(quote.id),
                "quote_number": quote.quote_number,
                "from_status": from_status,
                "to_status": quote.status,
            },
        )

    def _get_quote(self, session: Session, quote_id: uuid.UUID, *, with_lines: bool = True) -> Quote:
        quote = self.quote_repository.get(session, quote_id, with_lines=with_lines)
        if quote is None:
            raise QuoteNotFoundError("Quote not found", code="QUOTE_NOT_FOUND")
        return quote

    def _get_line(self, session: Session, quote_id: uuid.UUID, line_id: uuid.UUID) -> QuoteLine:
        line = self.line_repository.get(session, quote_id, line_id)
        if line is None:
            raise QuoteNotFoundError("Quote line not found", code="QUOTE_LINE_NOT_FOUND")
        return line

    def _get_modifiable_quote(self, session: Session, ctx: AuthContext, quote_id: uuid.UUID, action: str) -> Quote:
        quote = self._get_quote(session, quote_id)
        self._ensure_can_modify(session, ctx, quote, action)
        if not lifecycle.can_be_modified(quote):
            raise QuoteNotModifiableError("Quote cannot be modified in its current state")
        return quote

    def _ensure_can_modify(self, session: Session, ctx: AuthContext, quote: Quote, action: str) -> None:
        actor_id = self._actor_id(ctx)
        actor = self.user_repository.find_by_id(session, actor_id) if actor_id is not None else None
        if not self.can_user_modify_quote(quote, actor):
            raise InsufficientPermissionsError(f"Insufficient permissions to {action} this quote")

    def _ensure_can_view(self, ctx: AuthContext, quote: Quote) -> None:
        if not self._is_visible(ctx, quote):
            raise InsufficientPermissionsError("Insufficient permissions to view this quote")

    def _is_visible(self, ctx: AuthContext, quote: Quote) -> bool:
        return self._can_view_all(ctx) or quote.assigned_user_id == self._actor_id(ctx)

    @staticmethod
    def _can_view_all(ctx: AuthContext) -> bool:
        return get_policy_backend().is_allowed(QUOTES_VIEW_ALL, ctx)

    @staticmethod
    def _role_allows(user: CRMUser, permission: str) -> bool:
        return get_policy_backend().role_allows(user.role, permission)

    @staticmethod
    def _actor_id(ctx: AuthContext) -> uuid.UUID | None:
        try:
            return uuid.UUID(str(ctx.user_id))
        except ValueError:
            return None

    def _require_actor(self, session: Session, ctx: AuthContext) -> CRMUser:
        actor_id = self._actor_id(ctx)
        if actor_id is None:
            raise QuoteNotFoundError("User not found", code="USER_NOT_FOUND")
        return self._require_user(session, actor_id)

    def _require_user(self, session: Session, user_id: uuid.UUID) -> CRMUser:
        user = self.user_repository.find_by_id(session, user_id)
        if user is None:
            raise QuoteNotFoundError("User not found", code="USER_NOT_FOUND")
        return user

    def _require_institution(self, session: Session, institution_id: uuid.UUID) -> MedicalInstitution:
        institution = self.institution_repository.find_by_id(session, institution_id)
        if institution is None:
            raise QuoteNotFoundError("Medical institution not found", code="INSTITUTION_NOT_FOUND")
        return institution

    def _build_line(self, data: dict[str, Any], *, order_index: int) -> QuoteLine:
        line = QuoteLine(order_index=order_index)
        self._assign_line_fields(
            line,
            {
                "description": data["description"],
                "quantity": data["quantity"],
                "unit_price": data["unit_price"],
                "discount_type": data.get("discount_type") or "percentage",
                "discount_value": data.get("discount_value") if data.get("discount_value") is not None else ZERO,
                "tax_rate": data.get("tax_rate") if data.get("tax_rate") is not None else ZERO,
            },
        )
        apply_line_totals(line)
        return line

    @staticmethod
    def _assign_line_fields(line: QuoteLine, values: dict[str, Any]) -> None:
        line.description = str(values["description"]).strip()
        line.quantity = quantity(values["quantity"])
        line.unit_price = money(values["unit_price"])
        line.discount_type = str(values["discount_type"])
        line.discount_value = money(values["discount_value"])
        line.tax_rate = money(values["tax_rate"])

    def _audit_line(
        self,
        ctx: AuthContext,
        line_id: uuid.UUID,
        action: str,
        before: dict[str, Any] | None,
        after: dict[str, Any] | None,
    ) -> None:
        audit.record(
            actor_user_id=ctx.user_id,
            entity_type="billing.quote_line",
            entity_id=str(line_id),
            action=action,
            before=before,
            after=after,
            correlation_id=ctx.correlation_id,
        )

    @staticmethod
    def _line_snapshot(line: QuoteLine) -> dict[str, Any]:
        return {
            "quote_id": str(line.quote_id),
            "order_index": line.order_index,
            "description": line.description,
            "total": str(line.total),
        }

    @staticmethod
    def _snapshot(quote: Quote) -> dict[str, Any]:
        return {
            "quote_number": quote.quote_number,
            "status": quote.status,
            "title": quote.title,
            "valid_until": lifecycle.as_utc(quote.valid_until).isoformat(),
            "total": str(quote.total),
        }

    @staticmethod
    def _to_line_read(line: QuoteLine) -> QuoteLineRead:
        payload = {
            "id": line.id,
            "quote_id": line.quote_id,
            "order_index": line.order_index,
            "description": line.description,
            "quantity": line.quantity,
            "unit_price": line.unit_price,
            "discount_type": line.discount_type,
            "discount_value": line.discount_value,
            "tax_rate": line.tax_rate,
            "subtotal": line.subtotal,
            "discount_amount": line.discount_amount,
            "total_after_discount": line.total_after_discount,
            "tax_amount": line.tax_amount,
            "total": line.total,
            "discount_percentage": discount_percentage(line.discount_amount, line.subtotal),
            "tax_percentage": line.tax_rate,
            "created_at": line.created_at,
            "updated_at": line.updated_at,
        }
        return QuoteLineRead.model_validate(payload)

    def _to_quote_read(self, quote: Quote) -> QuoteRead:
        now = lifecycle.utcnow()
        payload = {
            "id": quote.id,
            "quote_number": quote.quote_number,
            "institution_id": quote.institution_id,
            "assigned_user_id": quote.assigned_user_id,
            "template_id": quote.template_id,
            "title": quote.title,
            "description": quote.description,
            "client_comments": quote.client_comments,
            "internal_notes": quote.internal_notes,
            "status": quote.status,
            "valid_until": lifecycle.as_utc(quote.valid_until),
            "accepted_at": quote.accepted_at,
            "rejected_at": quote.rejected_at,
            "subtotal": quote.subtotal,
            "total_discount_amount": quote.total_discount_amount,
            "total_tax_amount": quote.total_tax_amount,
            "total": quote.total,
            "is_expired": lifecycle.is_expired(quote, now),
            "can_be_modified": lifecycle.can_be_modified(quote),
            "can_be_accepted": lifecycle.can_be_accepted(quote, now),
            "can_be_rejected": lifecycle.can_be_rejected(quote, now),
            "days_until_expiry": lifecycle.days_until_expiry(quote, now),
            "created_at": quote.created_at,
            "updated_at": quote.updated_at,
            "lines": [self._to_line_read(line) for line in sorted(quote.lines, key=lambda item: item.order_index)],
        }
        return QuoteRead.model_validate(payload)


quote_service = QuoteService()
