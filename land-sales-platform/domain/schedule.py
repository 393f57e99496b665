"""
Domain: Amortization schedule generator (pure).

Turns the principal left after reservation and advance into an ordered list
of monthly obligations. Exactly one of `month_count` or `monthly_amount` drives
the schedule:

- month_count: every item is remaining_principal / N rounded to cents; the
  last item absorbs the rounding remainder.
  8000 over 7 months -> 6 x 1142.86 + 1142.84
- monthly_amount: N = ceil(remaining_principal / monthly_amount); the last item
  is whatever is left and is never larger than monthly_amount.
  8000 at 800 per month -> 10 x 800

Due dates are start_date + i calendar months (i = 0..N-1), clamped to the end
of shorter months. A principal of zero or less yields an empty schedule.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_CEILING, ROUND_DOWN, ROUND_HALF_UP, Decimal
from typing import Optional, Tuple

from .errors import ValidationError
from .money import CENT, ZERO, to_money
from .time import add_months

MAX_MONTHS = 120


@dataclass(frozen=True, slots=True)
class ScheduleItem:
    sequence: int
    amount_due: Decimal
    due_date: date


@dataclass(frozen=True, slots=True)
class SchedulePlan:
    remaining_principal: Decimal
    monthly_amount: Decimal
    month_count: int
    items: Tuple[ScheduleItem, ...]

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def total(self) -> Decimal:
        return sum((item.amount_due for item in self.items), ZERO)


def _amounts_from_months(principal: Decimal, month_count: int) -> Tuple[Decimal, list]:
    if month_count < 1 or month_count > MAX_MONTHS:
        raise ValidationError(f"month_count must be between 1 and {MAX_MONTHS}")

    base = (principal / month_count).quantize(CENT, rounding=ROUND_HALF_UP)
    if base * (month_count - 1) > principal:
        # Rounding up would leave the last item negative.
        base = (principal / month_count).quantize(CENT, rounding=ROUND_DOWN)

    amounts = [base] * (month_count - 1)
    amounts.append(principal - base * (month_count - 1))
    return base, amounts


def _amounts_from_monthly(principal: Decimal, monthly_amount: Decimal) -> Tuple[Decimal, list]:
    if monthly_amount <= 0:
        raise ValidationError("monthly_amount must be > 0")

    month_count = int((principal / monthly_amount).to_integral_value(rounding=ROUND_CEILING))
    if month_count > MAX_MONTHS:
        raise ValidationError(
            f"monthly_amount {monthly_amount} needs {month_count} months; the limit is {MAX_MONTHS}"
        )

    amounts = [monthly_amount] * (month_count - 1)
    amounts.append(principal - monthly_amount * (month_count - 1))
    return monthly_amount, amounts


def generate_schedule(
    remaining_principal: Decimal,
    start_date: date,
    *,
    month_count: Optional[int] = None,
    monthly_amount: Optional[Decimal] = None,
) -> SchedulePlan:
    """
    Build the installment schedule for `remaining_principal`.

    Args:
        remaining_principal: price - reservation - advance
        start_date: due date of the first item
        month_count: number of monthly items (1..120)
        monthly_amount: fixed amount per month

    Returns:
        SchedulePlan whose items sum to remaining_principal exactly

    Raises:
        ValidationError: both or neither of month_count / monthly_amount given,
            or either one is out of range
    """

    if (month_count is None) == (monthly_amount is None):
        raise ValidationError("Exactly one of month_count or monthly_amount is required")

    principal = to_money(remaining_principal)
    if principal <= 0:
        return SchedulePlan(
            remaining_principal=ZERO,
            monthly_amount=ZERO,
            month_count=0,
            items=(),
        )

    if month_count is not None:
        monthly, amounts = _amounts_from_months(principal, month_count)
    else:
        monthly, amounts = _amounts_from_monthly(principal, to_money(monthly_amount))

    items = tuple(
        ScheduleItem(sequence=i + 1, amount_due=amount, due_date=add_months(start_date, i))
        for i, amount in enumerate(amounts)
    )
    return SchedulePlan(
        remaining_principal=principal,
        monthly_amount=monthly,
        month_count=len(items),
        items=items,
    )
