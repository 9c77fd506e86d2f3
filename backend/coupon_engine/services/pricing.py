from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_EVEN, ROUND_HALF_UP, ROUND_UP
from typing import Literal, Sequence


MONEY_QUANT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")

MoneyRounding = Literal["half_up", "half_even", "up", "down"]


_ROUNDING_MAP: dict[str, str] = {
    "half_up": ROUND_HALF_UP,
    "half_even": ROUND_HALF_EVEN,
    "up": ROUND_UP,
    "down": ROUND_DOWN,
}


def quantize_money(value: Decimal, *, rounding: MoneyRounding = "half_up") -> Decimal:
    mode = _ROUNDING_MAP.get(str(rounding), ROUND_HALF_UP)
    return Decimal(value).quantize(MONEY_QUANT, rounding=mode)


def percent_of(base: Decimal, percent: Decimal) -> Decimal:
    return base * percent / HUNDRED


@dataclass(frozen=True)
class BaseDiscount:
    amount: Decimal
    free_shipping: bool = False


def compute_base_discount(
    *,
    kind: str,
    value: Decimal,
    base: Decimal,
    shipping_cost: Decimal,
    max_discount_amount: Decimal | None = None,
) -> BaseDiscount:
    """Percentage, fixed-amount or free-shipping discount against ``base`` (unrounded)."""
    if kind == "free_shipping":
        return BaseDiscount(amount=max(shipping_cost, ZERO), free_shipping=True)
    if base <= 0 or value <= 0:
        return BaseDiscount(amount=ZERO)
    if kind == "percentage":
        amount = percent_of(base, value)
        if max_discount_amount is not None:
            amount = min(amount, max_discount_amount)
        return BaseDiscount(amount=min(amount, base))
    if kind == "fixed_amount":
        return BaseDiscount(amount=min(value, base))
    return BaseDiscount(amount=ZERO)


def apportion(total: Decimal, line_totals: Sequence[Decimal], *, rounding: MoneyRounding = "half_up") -> list[Decimal]:
    """Split ``total`` across lines in proportion to their share of the summed line totals.

    The rounding remainder lands on the largest line so the shares always sum to ``total``.
    """
    subtotal = sum(line_totals, start=ZERO)
    if subtotal <= 0:
        return [ZERO for _ in line_totals]
    shares = [quantize_money(total * line / subtotal, rounding=rounding) for line in line_totals]
    remainder = quantize_money(total, rounding=rounding) - sum(shares, start=ZERO)
    if remainder:
        largest = max(range(len(line_totals)), key=lambda idx: line_totals[idx])
        shares[largest] += remainder
    return shares
