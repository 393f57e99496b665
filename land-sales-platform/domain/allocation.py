"""
Domain: Payment allocator (pure).

A single payment is consumed against the next `months_to_apply` unpaid
installments of a sale, in sequence order:

    outstanding = amount_due + stacked_amount - amount_paid
    applied     = min(remaining, outstanding)

An installment becomes Paid once amount_paid >= amount_due + stacked_amount,
otherwise Partial. Each touched installment produces one allocation line
carrying the applied amount, never the full payment amount.

A payment larger than the outstanding total of the targeted installments is
rejected, so the applied amounts always add up to the payment.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import List, Sequence, Tuple
from uuid import UUID

from .errors import ValidationError
from .installment import Installment, InstallmentStatus
from .money import ZERO, to_money


@dataclass(frozen=True, slots=True)
class AllocationLine:
    installment_id: UUID
    sequence: int
    applied: Decimal
    outstanding_after: Decimal


@dataclass(frozen=True, slots=True)
class AllocationResult:
    updated: Tuple[Installment, ...]
    lines: Tuple[AllocationLine, ...]

    @property
    def total_applied(self) -> Decimal:
        return sum((line.applied for line in self.lines), ZERO)


def unpaid_in_order(installments: Sequence[Installment]) -> List[Installment]:
    return sorted(
        (i for i in installments if i.status is not InstallmentStatus.PAID and i.outstanding > 0),
        key=lambda i: i.sequence,
    )


def allocate_payment(
    amount: Decimal,
    installments: Sequence[Installment],
    months_to_apply: int,
    paid_on: date,
) -> AllocationResult:
    """
    Apply `amount` to the next `months_to_apply` unpaid installments.

    Example:
        1500 over two installments of 800 (months_to_apply=2)
        -> #1 Paid (applied 800), #2 Partial (applied 700, 100 outstanding)

    Raises:
        ValidationError: amount <= 0, months_to_apply < 1, no unpaid
            installments, or amount exceeds what the targeted installments owe
    """

    payment = to_money(amount)
    if payment <= 0:
        raise ValidationError("Payment amount must be > 0")
    if months_to_apply < 1:
        raise ValidationError("months_to_apply must be >= 1")

    targets = unpaid_in_order(installments)[:months_to_apply]
    if not targets:
        raise ValidationError("No unpaid installments remain for this sale")

    owed = sum((i.outstanding for i in targets), ZERO)
    if payment > owed:
        raise ValidationError(
            f"Payment {payment} exceeds the {owed} outstanding on the next {len(targets)} installment(s)"
        )

    remaining = payment
    updated: List[Installment] = []
    lines: List[AllocationLine] = []

    for inst in targets:
        if remaining <= 0:
            break
        applied = min(remaining, inst.outstanding)
        new_paid = inst.amount_paid + applied
        status = InstallmentStatus.PAID if new_paid >= inst.total_due else InstallmentStatus.PARTIAL
        changed = replace(inst, amount_paid=new_paid, status=status, paid_date=paid_on)
        remaining -= applied

        updated.append(changed)
        lines.append(
            AllocationLine(
                installment_id=inst.installment_id,
                sequence=inst.sequence,
                applied=applied,
                outstanding_after=changed.outstanding,
            )
        )

    return AllocationResult(updated=tuple(updated), lines=tuple(lines))


def all_paid(installments: Sequence[Installment]) -> bool:
    """True when a non-empty schedule has every installment Paid."""

    return bool(installments) and all(i.is_paid for i in installments)
