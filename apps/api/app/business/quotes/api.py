from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from app.business.quotes.reminders import quote_reminder_service
from app.business.quotes.repository import QuoteFilters
from app.business.quotes.schemas import (
    QuoteCreate,
    QuoteExpiryRead,
    QuoteLineCreate,
    QuoteLineRead,
    QuoteLineReorderRequest,
    QuoteLineUpdate,
    QuoteListRead,
    QuoteRead,
    QuoteReminderRead,
    QuoteStatisticsRead,
    QuoteStatus,
    QuoteTransitionRequest,
    QuoteUpdate,
)
from app.business.quotes.service import quote_service
from app.core.database import get_db
from app.core.rbac import get_auth_context, require_permissions
from app.platform.security.context import AuthContext
from app.platform.security.permissions import QUOTES_CREATE, QUOTES_DELETE, QUOTES_EXPIRE


router = APIRouter(prefix="/quotes", tags=["quotes"])


@router.get("", response_model=QuoteListRead)
def list_quotes(
    search: str | None = Query(default=None),
    status_filter: QuoteStatus | None = Query(default=None, alias="status"),
    institution_id: uuid.UUID | None = Query(default=None),
    assigned_user_id: uuid.UUID | None = Query(default=None),
    date_from: datetime | None = Query(default=None),
    date_to: datetime | None = Query(default=None),
    amount_min: Decimal | None = Query(default=None),
    amount_max: Decimal | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> QuoteListRead:
    filters = QuoteFilters(
        search=search,
        status=status_filter,
        institution_id=institution_id,
        assigned_user_id=assigned_user_id,
        date_from=date_from,
        date_to=date_to,
        amount_min=amount_min,
        amount_max=amount_max,
    )
    return quote_service.list_quotes(db, ctx, filters, page=page, limit=limit)


@router.get("/statistics", response_model=QuoteStatisticsRead)
def get_quote_statistics(
    user_id: uuid.UUID | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> QuoteStatisticsRead:
    return quote_service.get_quote_statistics(db, ctx, user_id)


@router.get("/by-institution/{institution_id}", response_model=list[QuoteRead])
def get_quotes_by_institution(
    institution_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> list[QuoteRead]:
    return quote_service.get_quotes_by_institution(db, ctx, institution_id)


@router.get("/by-user/{user_id}", response_model=list[QuoteRead])
def get_quotes_by_user(
    user_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> list[QuoteRead]:
    return quote_service.get_quotes_by_user(db, ctx, user_id)


@router.get("/by-status/{status_value}", response_model=list[QuoteRead])
def get_quotes_by_status(
    status_value: str,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> list[QuoteRead]:
    return quote_service.get_quotes_by_status(db, ctx, status_value)


@router.post("/expire", response_model=QuoteExpiryRead)
def expire_quotes(
    db: Session = Depends(get_db),
    _: AuthContext = Depends(require_permissions(QUOTES_EXPIRE)),
) -> QuoteExpiryRead:
    return QuoteExpiryRead(expired_count=quote_service.mark_expired_quotes(db))


@router.post("", response_model=QuoteRead, status_code=status.HTTP_201_CREATED)
def create_quote(
    payload: QuoteCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_permissions(QUOTES_CREATE)),
) -> QuoteRead:
    return quote_service.create_quote(db, ctx, payload)


@router.get("/{quote_id}", response_model=QuoteRead)
def get_quote(
    quote_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> QuoteRead:
    return quote_service.get_quote_by_id(db, ctx, quote_id)


@router.put("/{quote_id}", response_model=QuoteRead)
def update_quote(
    quote_id: uuid.UUID,
    payload: QuoteUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> QuoteRead:
    return quote_service.update_quote(db, ctx, quote_id, payload)


@router.delete("/{quote_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_quote(
    quote_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_permissions(QUOTES_DELETE)),
) -> Response:
    quote_service.delete_quote(db, ctx, quote_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{quote_id}/send", response_model=QuoteRead)
def send_quote(
    quote_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> QuoteRead:
    return quote_service.send_quote(db, ctx, quote_id)


@router.post("/{quote_id}/accept", response_model=QuoteRead)
def accept_quote(
    quote_id: uuid.UUID,
    payload: QuoteTransitionRequest | None = None,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> QuoteRead:
    return quote_service.accept_quote(db, ctx, quote_id, payload.client_comments if payload else None)


@router.post("/{quote_id}/reject", response_model=QuoteRead)
def reject_quote(
    quote_id: uuid.UUID,
    payload: QuoteTransitionRequest | None = None,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> QuoteRead:
    return quote_service.reject_quote(db, ctx, quote_id, payload.client_comments if payload else None)


@router.post("/{quote_id}/cancel", response_model=QuoteRead)
def cancel_quote(
    quote_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> QuoteRead:
    return quote_service.cancel_quote(db, ctx, quote_id)


@router.get("/{quote_id}/lines", response_model=list[QuoteLineRead])
def list_quote_lines(
    quote_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> list[QuoteLineRead]:
    return quote_service.list_quote_lines(db, ctx, quote_id)


@router.post("/{quote_id}/lines", response_model=QuoteLineRead, status_code=status.HTTP_201_CREATED)
def add_quote_line(
    quote_id: uuid.UUID,
    payload: QuoteLineCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> QuoteLineRead:
    return quote_service.add_quote_line(db, ctx, quote_id, payload)


@router.put("/{quote_id}/lines/reorder", response_model=list[QuoteLineRead])
def reorder_quote_lines(
    quote_id: uuid.UUID,
    payload: QuoteLineReorderRequest,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> list[QuoteLineRead]:
    return quote_service.reorder_quote_lines(db, ctx, quote_id, payload.line_ids)


@router.put("/{quote_id}/lines/{line_id}", response_model=QuoteLineRead)
def update_quote_line(
    quote_id: uuid.UUID,
    line_id: uuid.UUID,
    payload: QuoteLineUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> QuoteLineRead:
    return quote_service.update_quote_line(db, ctx, quote_id, line_id, payload)


@router.delete("/{quote_id}/lines/{line_id}", response_model=QuoteRead)
def delete_quote_line(
    quote_id: uuid.UUID,
    line_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> QuoteRead:
    return quote_service.delete_quote_line(db, ctx, quote_id, line_id)


@router.get("/{quote_id}/reminders", response_model=list[QuoteReminderRead])
def list_quote_reminders(
    quote_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> list[QuoteReminderRead]:
    quote_service.get_quote_by_id(db, ctx, quote_id)
    return [QuoteReminderRead.model_validate(item) for item in quote_reminder_service.get_reminders_for_quote(db, quote_id)]


@router.get("/{quote_id}/pdf")
def get_quote_pdf(
    quote_id: uuid.UUID,
    template_id: uuid.UUID | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> Response:
    content = quote_service.render_quote_pdf(db, ctx, quote_id, template_id)
    quote = quote_service.get_quote_by_id(db, ctx, quote_id)
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{quote.quote_number}.pdf"'},
    )
