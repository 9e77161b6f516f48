from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


QuoteStatus = Literal["draft", "sent", "accepted", "rejected", "expired", "cancelled"]
DiscountType = Literal["percentage", "fixed_amount"]


class QuoteLineCreate(BaseModel):
    description: str = Field(max_length=1000)
    quantity: Decimal
    unit_price: Decimal
    discount_type: DiscountType = "percentage"
    discount_value: Decimal = Decimal("0")
    tax_rate: Decimal = Decimal("0")
    order_index: int | None = None


class QuoteLineUpdate(BaseModel):
    description: str | None = Field(default=None, max_length=1000)
    quantity: Decimal | None = None
    unit_price: Decimal | None = None
    discount_type: DiscountType | None = None
    discount_value: Decimal | None = None
    tax_rate: Decimal | None = None


class QuoteCreate(BaseModel):
    institution_id: UUID
    assigned_user_id: UUID | None = None
    template_id: UUID | None = None
    title: str = Field(max_length=255)
    description: str | None = None
    internal_notes: str | None = None
    valid_until: datetime
    lines: list[QuoteLineCreate] = Field(default_factory=list)

    @field_validator("template_id", mode="before")
    @classmethod
    def blank_template_is_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class QuoteUpdate(BaseModel):
    title: str | None = Field(default=None, max_length=255)
    description: str | None = None
    internal_notes: str | None = None
    client_comments: str | None = None
    template_id: UUID | None = None
    valid_until: datetime | None = None
    lines: list[QuoteLineCreate] | None = None

    @field_validator("template_id", mode="before")
    @classmethod
    def blank_template_is_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class QuoteTransitionRequest(BaseModel):
    client_comments: str | None = None


class QuoteLineReorderRequest(BaseModel):
    line_ids: list[UUID]


class QuoteLineRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    quote_id: UUID
    order_index: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    discount_type: DiscountType | str
    discount_value: Decimal
    tax_rate: Decimal
    subtotal: Decimal
    discount_amount: Decimal
    total_after_discount: Decimal
    tax_amount: Decimal
    total: Decimal
    discount_percentage: Decimal
    tax_percentage: Decimal
    created_at: datetime
    updated_at: datetime


class QuoteRead(BaseModel):
    id: UUID
    quote_number: str
    institution_id: UUID
    assigned_user_id: UUID
    template_id: UUID | None
    title: str
    description: str | None
    client_comments: str | None
    internal_notes: str | None
    status: QuoteStatus | str
    valid_until: datetime
    accepted_at: datetime | None
    rejected_at: datetime | None
    subtotal: Decimal
    total_discount_amount: Decimal
    total_tax_amount: Decimal
    total: Decimal
    is_expired: bool
    can_be_modified: bool
    can_be_accepted: bool
    can_be_rejected: bool
    days_until_expiry: int | None
    created_at: datetime
    updated_at: datetime
    lines: list[QuoteLineRead] = Field(default_factory=list)


class PaginationRead(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


class QuoteListRead(BaseModel):
    items: list[QuoteRead]
    pagination: PaginationRead


class QuoteStatisticsRead(BaseModel):
    total_quotes: int
    draft_quotes: int
    sent_quotes: int
    accepted_quotes: int
    rejected_quotes: int
    expired_quotes: int
    cancelled_quotes: int
    total_value: Decimal
    accepted_value: Decimal
    conversion_rate: Decimal


class QuoteExpiryRead(BaseModel):
    expired_count: int


class QuoteReminderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    quote_id: UUID
    reminder_type: str
    sent_at: datetime
