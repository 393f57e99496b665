"""
Domain: Sale aggregate and its lifecycle state machine.

Rules implemented here:
- A Sale covers one or more Units sold to one Client; the unit set is never empty.
- reservation_amount <= total_price.
- profit_margin is always total_price - total_cost.
- Lifecycle transitions are validated centrally against one table keyed by
  payment mode. An illegal transition raises StateError; it is never a no-op.

    Full:        Pending -> AwaitingPayment -> Completed
    Installment: Pending -> AwaitingPayment -> InstallmentsOngoing -> Completed
    Both:        any non-terminal state -> Cancelled

This module contains only pure domain entities: no I/O, no database, no frameworks.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import FrozenSet, Mapping, Optional, Tuple
from uuid import UUID

from .errors import StateError
from .money import ZERO
from .time import as_date, require_utc_timestamp


class PaymentMode(str, Enum):
    FULL = "Full"
    INSTALLMENT = "Installment"


class SaleStatus(str, Enum):
    PENDING = "Pending"
    AWAITING_PAYMENT = "AwaitingPayment"
    INSTALLMENTS_ONGOING = "InstallmentsOngoing"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SaleStatus.COMPLETED, SaleStatus.CANCELLED)


_S = SaleStatus

SALE_TRANSITIONS: Mapping[PaymentMode, Mapping[SaleStatus, FrozenSet[SaleStatus]]] = {
    PaymentMode.FULL: {
        _S.PENDING: frozenset({_S.AWAITING_PAYMENT, _S.CANCELLED}),
        _S.AWAITING_PAYMENT: frozenset({_S.COMPLETED, _S.CANCELLED}),
    },
    PaymentMode.INSTALLMENT: {
        _S.PENDING: frozenset({_S.AWAITING_PAYMENT, _S.CANCELLED}),
        _S.AWAITING_PAYMENT: frozenset({_S.INSTALLMENTS_ONGOING, _S.CANCELLED}),
        _S.INSTALLMENTS_ONGOING: frozenset({_S.COMPLETED, _S.CANCELLED}),
    },
}


def can_transition(mode: PaymentMode, current: SaleStatus, target: SaleStatus) -> bool:
    return target in SALE_TRANSITIONS[mode].get(current, frozenset())


def require_transition(mode: PaymentMode, current: SaleStatus, target: SaleStatus) -> None:
    """Raise StateError unless `current -> target` is legal for `mode`."""

    if not can_transition(mode, current, target):
        raise StateError(
            f"Illegal sale transition for {mode.value} sale: {current.value} -> {target.value}"
        )


@dataclass(frozen=True, slots=True)
class Sale:
    """
    Aggregate over one or more Units sold to one Client.

    Monetary fields cover the whole unit set. When a unit is split off, both
    the extracted sale and this one are rewritten with their shares.

    advance_amount is the money paid at confirmation on top of the
    reservation (Installment mode only).
    """

    sale_id: UUID
    client_id: UUID
    unit_ids: Tuple[UUID, ...]
    payment_mode: PaymentMode
    total_cost: Decimal
    total_price: Decimal
    reservation_amount: Decimal
    status: SaleStatus
    sale_date: date

    deadline: Optional[date] = None
    advance_amount: Decimal = ZERO
    advance_due_date: Optional[date] = None
    installment_start_date: Optional[date] = None
    month_count: Optional[int] = None
    monthly_amount: Optional[Decimal] = None

    # Set on sales created by extracting a unit out of a multi-unit sale.
    split_from_sale_id: Optional[UUID] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not self.unit_ids:
            raise ValueError("Sale must reference at least one unit")
        if len(set(self.unit_ids)) != len(self.unit_ids):
            raise ValueError("Sale unit_ids must be unique")
        if self.reservation_amount < 0 or self.advance_amount < 0:
            raise ValueError("reservation_amount and advance_amount must be >= 0")
        if self.reservation_amount > self.total_price:
            raise ValueError("reservation_amount must not exceed total_price")
        if self.month_count is not None and self.month_count < 0:
            raise ValueError("month_count must be >= 0")
        if self.created_at is not None:
            require_utc_timestamp("created_at", self.created_at)
        if self.updated_at is not None:
            require_utc_timestamp("updated_at", self.updated_at)

    @property
    def profit_margin(self) -> Decimal:
        return self.total_price - self.total_cost

    @property
    def unit_count(self) -> int:
        return len(self.unit_ids)

    @property
    def is_active(self) -> bool:
        return self.status is not SaleStatus.CANCELLED

    @property
    def remaining_principal(self) -> Decimal:
        """Amount left for the installment schedule after reservation and advance."""
        return self.total_price - self.reservation_amount - self.advance_amount

    def is_past_deadline(self, today: date | datetime) -> bool:
        """A sale still awaiting payment whose deadline date has passed."""

        if self.deadline is None or self.status is not SaleStatus.AWAITING_PAYMENT:
            return False
        return self.deadline < as_date(today)

    def transitioned(self, target: SaleStatus) -> "Sale":
        """Return a copy in `target` status, validating the transition."""

        require_transition(self.payment_mode, self.status, target)
        return replace(self, status=target)
