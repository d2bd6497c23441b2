from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_EVEN
from typing import Iterable, Union

from ..core.errors import InvalidRequest
from ..models.cart import CartLine

CENT = Decimal("0.01")

Rate = Union[Decimal, float, int, str]


def to_money(value) -> Decimal:
    """Quantize to cents with banker's rounding."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_EVEN)


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    tax_amount: Decimal
    service_charge: Decimal
    total: Decimal

    def as_dict(self) -> dict:
        return {
            "subtotal": float(self.subtotal),
            "tax_amount": float(self.tax_amount),
            "service_charge": float(self.service_charge),
            "total": float(self.total),
        }


def compute_totals(lines: Iterable[CartLine], tax_rate: Rate, service_charge_rate: Rate) -> Totals:
    """Price a cart.

    Rates are fractions (0.18 for 18%). Tax and service charge are rounded to
    cents before summing, so ``total`` always equals the sum of the persisted
    components.
    """
    tax_rate = Decimal(str(tax_rate))
    service_charge_rate = Decimal(str(service_charge_rate))
    if tax_rate < 0 or service_charge_rate < 0:
        raise InvalidRequest("Rates cannot be negative")

    subtotal = to_money(sum((line.unit_price * line.quantity for line in lines), Decimal("0")))
    tax_amount = to_money(subtotal * tax_rate)
    service_charge = to_money(subtotal * service_charge_rate)

    return Totals(
        subtotal=subtotal,
        tax_amount=tax_amount,
        service_charge=service_charge,
        total=subtotal + tax_amount + service_charge,
    )
