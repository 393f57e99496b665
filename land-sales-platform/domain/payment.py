"""
Domain: Payment ledger entries.

Rules implemented here:
- Ledger entries are immutable and append-only.
- Refund is the only kind representing money flowing back to the client and is
  never counted as cash received.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional
from uuid import UUID

from .installment import Installment
from .money import ZERO
from .sale import PaymentMode, Sale, SaleStatus
from .time import require_utc_timestamp


class PaymentKind(str, Enum):
    SMALL_ADVANCE = "SmallAdvance"
    BIG_ADVANCE = "BigAdvance"
    INSTALLMENT = "Installment"
    FULL = "Full"
    REFUND = "Refund"


@dataclass(frozen=True, slots=True)
class Payment:
    payment_id: UUID
    client_id: UUID
    sale_id: UUID
    amount: Decimal
    kind: PaymentKind
    payment_date: date
    installment_id: Optional[UUID] = None
    # Caller-supplied key; retries carrying the same key are not applied twice.
    idempotency_key: Optional[str] = None
    created_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.amount <= 0:
            raise ValueError("Payment amount must be > 0")
        if self.created_at is not None:
            require_utc_timestamp("created_at", self.created_at)


def cash_received(payments: Iterable[Payment]) -> Decimal:
    """Money received from the client. Refunds are excluded, never netted."""

    return sum((p.amount for p in payments if p.kind is not PaymentKind.REFUND), ZERO)


def refunded_total(payments: Iterable[Payment]) -> Decimal:
    return sum((p.amount for p in payments if p.kind is PaymentKind.REFUND), ZERO)


@dataclass(frozen=True, slots=True)
class SaleProgress:
    """
    How far a sale has been paid.

    paid_toward_price is derived from the sale and its installments, not from
    the ledger: the BigAdvance entry restates the reservation, so summing the
    ledger would count the reservation twice.
    """

    total_price: Decimal
    paid_toward_price: Decimal
    remaining: Decimal
    percent: Decimal
    cash_received: Decimal
    refunded: Decimal


def sale_progress(
    sale: Sale, installments: Iterable[Installment], payments: Iterable[Payment]
) -> SaleProgress:
    paid = sale.reservation_amount
    if sale.payment_mode is PaymentMode.FULL and sale.status is SaleStatus.COMPLETED:
        paid = sale.total_price
    elif sale.payment_mode is PaymentMode.INSTALLMENT and sale.status in (
        SaleStatus.INSTALLMENTS_ONGOING,
        SaleStatus.COMPLETED,
    ):
        paid += sale.advance_amount + sum((i.amount_paid for i in installments), ZERO)

    payments = list(payments)
    remaining = max(sale.total_price - paid, ZERO)
    if sale.total_price > 0:
        percent = (paid * 100 / sale.total_price).quantize(Decimal("0.01"))
    else:
        percent = Decimal("100.00")

    return SaleProgress(
        total_price=sale.total_price,
        paid_toward_price=paid,
        remaining=remaining,
        percent=percent,
        cash_received=cash_received(payments),
        refunded=refunded_total(payments),
    )
