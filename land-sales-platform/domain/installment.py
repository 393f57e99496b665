"""
Domain: Installment obligations of an Installment-mode Sale.

Rules implemented here:
- Sequence numbers are 1-based.
- amount_paid <= amount_due + stacked_amount.
- The stored status is bookkeeping only. Overdue state is derived from the due
  date at read time (see domain.overdue).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from .money import ZERO


class InstallmentStatus(str, Enum):
    UNPAID = "Unpaid"
    PARTIAL = "Partial"
    PAID = "Paid"
    LATE = "Late"


@dataclass(frozen=True, slots=True)
class Installment:
    installment_id: UUID
    sale_id: UUID
    sequence: int
    amount_due: Decimal
    due_date: date
    amount_paid: Decimal = ZERO
    stacked_amount: Decimal = ZERO
    status: InstallmentStatus = InstallmentStatus.UNPAID
    paid_date: Optional[date] = None

    def __post_init__(self) -> None:
        if self.sequence < 1:
            raise ValueError("sequence must be >= 1")
        if self.amount_due < 0 or self.amount_paid < 0 or self.stacked_amount < 0:
            raise ValueError("installment amounts must be >= 0")
        if self.amount_paid > self.total_due:
            raise ValueError("amount_paid must not exceed amount_due + stacked_amount")

    @property
    def total_due(self) -> Decimal:
        return self.amount_due + self.stacked_amount

    @property
    def outstanding(self) -> Decimal:
        return max(self.total_due - self.amount_paid, ZERO)

    @property
    def is_paid(self) -> bool:
        return self.status is InstallmentStatus.PAID
