from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from decimal import Decimal
from typing import Any

from app.business.quotes.calculations import HUNDRED, ZERO, quantity as quantize_quantity
from app.business.quotes.errors import QuoteValidationError
from app.business.quotes.lifecycle import as_utc, utcnow
from app.business.quotes.models import DiscountType


def validate_quote_data(data: Mapping[str, Any], now: datetime | None = None) -> None:
    """Check quote fields present in ``data``; absent keys are not validated."""

    if "title" in data and (data["title"] is None or not str(data["title"]).strip()):
        raise QuoteValidationError("Quote title is required")

    if "valid_until" in data:
        valid_until = data["valid_until"]
        if valid_until is None:
            raise QuoteValidationError("Valid until date is required")
        if as_utc(valid_until) <= as_utc(now or utcnow()):
            raise QuoteValidationError("Valid until date must be in the future")

    lines = data.get("lines")
    if lines:
        for line in lines:
            validate_quote_line_data(line)


def validate_quote_line_data(data: Mapping[str, Any]) -> None:
    if "description" in data and (data["description"] is None or not str(data["description"]).strip()):
        raise QuoteValidationError("Line description is required")

    quantity = data.get("quantity")
    if quantity is not None and quantize_quantity(quantity) <= ZERO:
        raise QuoteValidationError("Quantity must be greater than 0")

    unit_price = data.get("unit_price")
    if unit_price is not None and Decimal(str(unit_price)) < ZERO:
        raise QuoteValidationError("Unit price cannot be negative")

    discount_value = data.get("discount_value")
    if discount_value is not None and Decimal(str(discount_value)) < ZERO:
        raise QuoteValidationError("Discount value cannot be negative")

    tax_rate = data.get("tax_rate")
    if tax_rate is not None and not ZERO <= Decimal(str(tax_rate)) <= HUNDRED:
        raise QuoteValidationError("Tax rate must be between 0 and 100")

    discount_type = data.get("discount_type")
    if discount_type is not None and discount_type not in {item.value for item in DiscountType}:
        raise QuoteValidationError("Discount type must be percentage or fixed_amount")

    if (
        discount_type == DiscountType.PERCENTAGE
        and discount_value is not None
        and Decimal(str(discount_value)) > HUNDRED
    ):
        raise QuoteValidationError("Percentage discount cannot exceed 100%")
