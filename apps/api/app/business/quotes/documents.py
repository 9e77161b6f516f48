from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Protocol

from opentelemetry import trace

from app.business.quotes.models import Quote
from app.crm.models import CRMUser, MedicalInstitution


tracer = trace.get_tracer("app.billing.quotes.documents")


@dataclass(frozen=True, slots=True)
class QuoteDocumentLine:
    order_index: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    discount_type: str
    discount_value: Decimal
    discount_amount: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total: Decimal


@dataclass(frozen=True, slots=True)
class QuoteDocument:
    """Computed quote data handed to a PDF renderer."""

    quote_id: uuid.UUID
    quote_number: str
    title: str
    description: str | None
    status: str
    valid_until: datetime
    institution_name: str
    assigned_user_name: str
    assigned_user_email: str
    subtotal: Decimal
    total_discount_amount: Decimal
    total_tax_amount: Decimal
    total: Decimal
    lines: list[QuoteDocumentLine] = field(default_factory=list)


class QuoteDocumentRenderer(Protocol):
    def render(self, document: QuoteDocument, template_id: uuid.UUID | None = None) -> bytes: ...


def build_quote_document(quote: Quote, institution: MedicalInstitution, user: CRMUser) -> QuoteDocument:
    return QuoteDocument(
        quote_id=quote.id,
        quote_number=quote.quote_number,
        title=quote.title,
        description=quote.description,
        status=quote.status,
        valid_until=quote.valid_until,
        institution_name=institution.name,
        assigned_user_name=user.full_name,
        assigned_user_email=user.email,
        subtotal=quote.subtotal,
        total_discount_amount=quote.total_discount_amount,
        total_tax_amount=quote.total_tax_amount,
        total=quote.total,
        lines=[
            QuoteDocumentLine(
                order_index=line.order_index,
                description=line.description,
                quantity=line.quantity,
                unit_price=line.unit_price,
                discount_type=line.discount_type,
                discount_value=line.discount_value,
                discount_amount=line.discount_amount,
                tax_rate=line.tax_rate,
                tax_amount=line.tax_amount,
                total=line.total,
            )
            for line in sorted(quote.lines, key=lambda item: item.order_index)
        ],
    )


def render_quote_document(
    renderer: QuoteDocumentRenderer,
    document: QuoteDocument,
    template_id: uuid.UUID | None = None,
) -> bytes:
    with tracer.start_as_current_span("billing.quote.render_pdf") as span:
        span.set_attribute("quote_id", str(document.quote_id))
        span.set_attribute("quote_number", document.quote_number)
        payload = renderer.render(document, template_id)
        span.set_attribute("bytes", len(payload))
        return payload
