from decimal import Decimal

import pytest

from restopos.core.errors import InvalidRequest
from restopos.models.cart import CartLine
from restopos.services.pricing import compute_totals, to_money


def _line(price, quantity, item="item"):
    return CartLine(menu_item_id=item, unit_price=Decimal(price), quantity=quantity)


def test_totals_for_standard_cart():
    lines = [_line("42.50", 2)]

    totals = compute_totals(lines, Decimal("0.18"), Decimal("0.10"))

    assert totals.subtotal == Decimal("85.00")
    assert totals.tax_amount == Decimal("15.30")
    assert totals.service_charge == Decimal("8.50")
    assert totals.total == Decimal("108.80")


def test_total_is_sum_of_rounded_components():
    lines = [_line("19.99", 3, "a"), _line("7.33", 1, "b"), _line("0.05", 7, "c")]

    totals = compute_totals(lines, "0.075", "0.125")

    assert totals.subtotal == sum((l.unit_price * l.quantity for l in lines), Decimal("0"))
    assert totals.total == totals.subtotal + totals.tax_amount + totals.service_charge
    for value in (totals.tax_amount, totals.service_charge):
        assert value == value.quantize(Decimal("0.01"))


def test_empty_cart_is_all_zeros():
    totals = compute_totals([], Decimal("0.18"), Decimal("0.10"))

    assert totals.subtotal == totals.tax_amount == totals.service_charge == totals.total == Decimal("0")


def test_compute_totals_is_idempotent():
    lines = [_line("12.345", 3)]

    assert compute_totals(lines, "0.05", "0.1") == compute_totals(lines, "0.05", "0.1")


def test_half_cent_rounds_to_even():
    assert to_money(Decimal("0.125")) == Decimal("0.12")
    assert to_money(Decimal("0.135")) == Decimal("0.14")


def test_negative_rate_rejected():
    with pytest.raises(InvalidRequest):
        compute_totals([_line("10.00", 1)], Decimal("-0.01"), Decimal("0"))


def test_as_dict_serialises_floats():
    totals = compute_totals([_line("42.50", 2)], Decimal("0.18"), Decimal("0.10"))

    assert totals.as_dict() == {
        "subtotal": 85.0,
        "tax_amount": 15.3,
        "service_charge": 8.5,
        "total": 108.8,
    }
