from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace

import pytest

from app.business.quotes.calculations import (
    apply_line_totals,
    calculate_line_totals,
    discount_percentage,
    money,
    quantity,
    rollup,
    validate_discount,
)
from app.business.quotes.errors import QuoteValidationError


def _line(**overrides: object) -> SimpleNamespace:
    values = {
        "quantity": Decimal("1"),
        "unit_price": Decimal("0"),
        "discount_type": "percentage",
        "discount_value": Decimal("0"),
        "tax_rate": Decimal("0"),
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def test_percentage_discount_then_tax_on_discounted_amount() -> None:
    totals = calculate_line_totals(Decimal("2"), Decimal("100"), "percentage", Decimal("10"), Decimal("20"))

    assert totals.subtotal == Decimal("200.00")
    assert totals.discount_amount == Decimal("20.00")
    assert totals.total_after_discount == Decimal("180.00")
    assert totals.tax_amount == Decimal("36.00")
    assert totals.total == Decimal("216.00")


def test_fixed_discount_is_clamped_to_subtotal() -> None:
    totals = calculate_line_totals(Decimal("1"), Decimal("50"), "fixed_amount", Decimal("60"), Decimal("10"))

    assert totals.discount_amount == Decimal("50.00")
    assert totals.total_after_discount == Decimal("0.00")
    assert totals.tax_amount == Decimal("0.00")
    assert totals.total == Decimal("0.00")


def test_rounding_is_half_up_to_cents() -> None:
    totals = calculate_line_totals(Decimal("1"), Decimal("10.05"), "percentage", Decimal("5"), Decimal("0"))

    # 10.05 * 5% = 0.5025 -> 0.50
    assert totals.discount_amount == Decimal("0.50")
    assert money(Decimal("0.125")) == Decimal("0.13")
    assert quantity(Decimal("1.0005")) == Decimal("1.001")


def test_zero_price_line_has_zero_totals() -> None:
    totals = calculate_line_totals(Decimal("3"), Decimal("0"), "percentage", Decimal("50"), Decimal("20"))

    assert totals.subtotal == Decimal("0.00")
    assert totals.total == Decimal("0.00")


def test_apply_line_totals_assigns_derived_fields() -> None:
    line = _line(quantity=Decimal("1.5"), unit_price=Decimal("80"), discount_value=Decimal("25"), tax_rate=Decimal("5.5"))

    apply_line_totals(line)

    assert line.subtotal == Decimal("120.00")
    assert line.discount_amount == Decimal("30.00")
    assert line.total_after_discount == Decimal("90.00")
    assert line.tax_amount == Decimal("4.95")
    assert line.total == Decimal("94.95")


def test_apply_line_totals_rejects_percentage_over_hundred() -> None:
    line = _line(unit_price=Decimal("10"), discount_value=Decimal("101"))

    with pytest.raises(QuoteValidationError) as exc_info:
        apply_line_totals(line)

    assert exc_info.value.code == "VALIDATION_ERROR"
    assert "cannot exceed 100%" in exc_info.value.message


def test_apply_line_totals_clamps_fixed_discount_to_subtotal() -> None:
    line = _line(unit_price=Decimal("10"), discount_type="fixed_amount", discount_value=Decimal("15"))

    apply_line_totals(line)

    assert line.discount_amount == Decimal("10.00")
    assert line.total == Decimal("0.00")


def test_apply_line_totals_rejects_negative_fixed_discount() -> None:
    line = _line(unit_price=Decimal("10"), discount_type="fixed_amount", discount_value=Decimal("-0.01"))

    with pytest.raises(QuoteValidationError) as exc_info:
        apply_line_totals(line)

    assert exc_info.value.message == "Invalid discount configuration"
    assert not hasattr(line, "total")


def test_validate_discount_bounds() -> None:
    assert validate_discount("percentage", Decimal("100"), Decimal("10")) is True
    assert validate_discount("percentage", Decimal("100.01"), Decimal("10")) is False
    assert validate_discount("fixed_amount", Decimal("10"), Decimal("10")) is True
    assert validate_discount("fixed_amount", Decimal("10.01"), Decimal("10")) is False
    assert validate_discount("fixed_amount", Decimal("-1"), Decimal("10")) is False


def test_rollup_sums_line_amounts() -> None:
    first = _line(quantity=Decimal("2"), unit_price=Decimal("100"), discount_value=Decimal("10"), tax_rate=Decimal("20"))
    second = _line(unit_price=Decimal("50"), discount_type="fixed_amount", discount_value=Decimal("60"), tax_rate=Decimal("10"))
    apply_line_totals(first)
    apply_line_totals(second)

    totals = rollup([first, second])

    assert totals.subtotal == Decimal("250.00")
    assert totals.total_discount_amount == Decimal("70.00")
    assert totals.total_tax_amount == Decimal("36.00")
    assert totals.total == Decimal("216.00")


def test_two_line_quote_totals() -> None:
    first = _line(quantity=Decimal("2"), unit_price=Decimal("100"), discount_value=Decimal("10"), tax_rate=Decimal("20"))
    second = _line(unit_price=Decimal("50"), discount_type="fixed_amount", discount_value=Decimal("5"), tax_rate=Decimal("15"))
    apply_line_totals(first)
    apply_line_totals(second)

    totals = rollup([first, second])

    assert second.tax_amount == Decimal("6.75")
    assert second.total == Decimal("51.75")
    assert totals.subtotal == Decimal("250.00")
    assert totals.total_discount_amount == Decimal("25.00")
    assert totals.total_tax_amount == Decimal("42.75")
    assert totals.total == Decimal("267.75")


def test_rollup_of_no_lines_is_zero() -> None:
    totals = rollup([])

    assert totals.subtotal == Decimal("0")
    assert totals.total == Decimal("0")


def test_discount_percentage_handles_zero_subtotal() -> None:
    assert discount_percentage(Decimal("0"), Decimal("0")) == Decimal("0")
    assert discount_percentage(Decimal("20"), Decimal("200")) == Decimal("10.00")


def test_validation_error_maps_to_unprocessable_content() -> None:
    http_error = QuoteValidationError("Quantity must be greater than 0").to_http()

    assert http_error.status_code == 422
    assert http_error.detail == {"code": "VALIDATION_ERROR", "message": "Quantity must be greater than 0"}
