"""Pure money arithmetic for quote lines and quote rollups.

All values are ``Decimal``. Currency amounts are quantized to cents and
quantities to three places, both with ROUND_HALF_UP.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Literal

from app.business.quotes.errors import QuoteValidationError


DiscountType = Literal["percentage", "fixed_amount"]

CENT = Decimal("0.01")
MILLI = Decimal("0.001")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def money(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def quantity(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(MILLI, rounding=ROUND_HALF_UP)


@dataclass(frozen=True, slots=True)
class LineTotals:
    subtotal: Decimal
    discount_amount: Decimal
    total_after_discount: Decimal
    tax_amount: Decimal
    total: Decimal


@dataclass(frozen=True, slots=True)
class QuoteTotals:
    subtotal: Decimal = ZERO
    total_discount_amount: Decimal = ZERO
    total_tax_amount: Decimal = ZERO
    total: Decimal = ZERO


def calculate_line_totals(
    quantity_value: Any,
    unit_price: Any,
    discount_type: DiscountType,
    discount_value: Any,
    tax_rate: Any,
) -> LineTotals:
    subtotal = money(quantity(quantity_value) * money(unit_price))
    value = Decimal(str(discount_value))

    if discount_type == "percentage":
        discount_amount = money(subtotal * value / HUNDRED)
    else:
        discount_amount = money(min(value, subtotal))
    discount_amount = min(discount_amount, subtotal)

    total_after_discount = subtotal - discount_amount
    tax_amount = money(total_after_discount * Decimal(str(tax_rate)) / HUNDRED)
    return LineTotals(
        subtotal=subtotal,
        discount_amount=discount_amount,
        total_after_discount=total_after_discount,
        tax_amount=tax_amount,
        total=total_after_discount + tax_amount,
    )


def validate_discount(discount_type: DiscountType, discount_value: Any, subtotal: Any) -> bool:
    value = Decimal(str(discount_value))
    if value < ZERO:
        return False
    if discount_type == "percentage":
        return value <= HUNDRED
    return value <= Decimal(str(subtotal))


def apply_line_totals(line: Any) -> LineTotals:
    """Recompute and assign the derived money fields of a line in place.

    Called on every line save regardless of which fields changed. Percentage
    discounts must lie in 0..100. Fixed discounts only need to be
    non-negative; amounts above the subtotal are clamped to it.
    """

    discount_type: DiscountType = line.discount_type
    value = Decimal(str(line.discount_value))
    if value < ZERO:
        raise QuoteValidationError("Invalid discount configuration")
    if discount_type == "percentage" and value > HUNDRED:
        raise QuoteValidationError("Percentage discount cannot exceed 100%")

    totals = calculate_line_totals(
        line.quantity,
        line.unit_price,
        discount_type,
        value,
        line.tax_rate,
    )

    line.subtotal = totals.subtotal
    line.discount_amount = totals.discount_amount
    line.total_after_discount = totals.total_after_discount
    line.tax_amount = totals.tax_amount
    line.total = totals.total
    return totals


def rollup(lines: Iterable[Any]) -> QuoteTotals:
    subtotal = ZERO
    discount = ZERO
    tax = ZERO
    total = ZERO
    for line in lines:
        subtotal += Decimal(str(line.subtotal))
        discount += Decimal(str(line.discount_amount))
        tax += Decimal(str(line.tax_amount))
        total += Decimal(str(line.total))
    return QuoteTotals(
        subtotal=money(subtotal),
        total_discount_amount=money(discount),
        total_tax_amount=money(tax),
        total=money(total),
    )


def discount_percentage(discount_amount: Any, subtotal: Any) -> Decimal:
    base = Decimal(str(subtotal))
    if base == ZERO:
        return ZERO
    return money(Decimal(str(discount_amount)) / base * HUNDRED)
