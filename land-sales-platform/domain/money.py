"""
Domain: money arithmetic (pure).

All monetary values are Decimal with two decimal places. Rounding happens at
calculation boundaries only, with ROUND_HALF_UP.

Splitting an amount into shares works on integer cents with a
largest-remainder rule, so the shares always add back up to the input exactly
and repeated splits do not drift.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import List, Sequence, Tuple, Union

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# Tolerance used when comparing amounts that went through independent rounding.
EPSILON = Decimal("0.01")

Number = Union[Decimal, int, float, str]


def to_money(value: Number) -> Decimal:
    """
    Convert a numeric value to a Decimal rounded to cents.

    Floats go through str() to avoid binary representation noise.
    """

    if isinstance(value, bool):
        raise TypeError("bool is not a monetary amount")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float, str)):
        try:
            amount = Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f"Not a monetary amount: {value!r}") from None
    else:
        raise TypeError(f"Unsupported monetary type: {type(value)!r}")

    if not amount.is_finite():
        raise ValueError(f"Not a finite monetary amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(value: Number) -> int:
    return int(to_money(value) * 100)


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)


def allocate(total: Number, weights: Sequence[int]) -> List[Decimal]:
    """
    Split `total` proportionally to integer `weights`.

    Each share is floored to whole cents; the cents left over go one at a
    time to the shares with the largest remainders (ties go to the earlier
    share). The result always sums to `total` exactly.

    Example:
        allocate(Decimal("100.00"), [1, 2])
        # [Decimal("33.33"), Decimal("66.67")]
    """

    if not weights:
        raise ValueError("weights must not be empty")
    if any(w < 0 for w in weights):
        raise ValueError("weights must be >= 0")
    weight_sum = sum(weights)
    if weight_sum <= 0:
        raise ValueError("weights must not all be zero")

    total_cents = to_cents(total)
    raw = [total_cents * w for w in weights]
    shares = [r // weight_sum for r in raw]
    remainders = [r % weight_sum for r in raw]

    leftover = total_cents - sum(shares)
    order = sorted(range(len(weights)), key=lambda i: (-remainders[i], i))
    for i in order[:leftover]:
        shares[i] += 1

    return [from_cents(c) for c in shares]


def split_share(amount: Number, unit_count: int) -> Tuple[Decimal, Decimal]:
    """
    Carve one unit's share out of an amount that covers `unit_count` units.

    Returns (extracted, remainder) with extracted + remainder == amount.
    """

    if unit_count < 2:
        raise ValueError("unit_count must be >= 2 to split")
    extracted, remainder = allocate(amount, [1, unit_count - 1])
    return extracted, remainder


def approx_equal(a: Number, b: Number, epsilon: Decimal = EPSILON) -> bool:
    return abs(to_money(a) - to_money(b)) <= epsilon
