"""
Installment payment recording.

One incoming payment is spread over the next `months_to_apply` unpaid
installments by the pure allocator. Each touched installment gets its own
ledger entry carrying only the amount applied to it. After allocation the
sale's status is recomputed from its installments: it becomes Completed
when every installment is Paid.

Retries: a caller may pass an idempotency key. When ledger entries with that
key already exist for the sale, nothing is applied again and the earlier
entries are returned.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional, Tuple
from uuid import UUID, uuid4

from domain.allocation import AllocationLine, all_paid, allocate_payment
from domain.errors import StateError, ValidationError
from domain.installment import Installment
from domain.money import Number, to_money
from domain.payment import Payment, PaymentKind
from domain.sale import Sale, SaleStatus
from repositories.installment_repository import list_installments_by_sale, update_installment
from repositories.payment_repository import (
    delete_payments,
    insert_payments,
    list_payments_by_idempotency_key,
)
from repositories.sale_repository import save_sale_if_status
from services.sale_lifecycle_service import load_sale
from services.unit_of_work import CompensatingSequence

logger = logging.getLogger(__name__)

_PAYABLE_STATUSES = (SaleStatus.INSTALLMENTS_ONGOING, SaleStatus.COMPLETED)


@dataclass(frozen=True, slots=True)
class PaymentResult:
    """
    sale: the sale after status recomputation
    installments: the sale's full schedule after allocation
    payments: ledger entries written by this call (or by the original call on replay)
    replayed: True when an earlier call with the same idempotency key was found
    """
    sale: Sale
    installments: Tuple[Installment, ...]
    payments: Tuple[Payment, ...]
    replayed: bool = False


def _ledger_entry(
    sale: Sale,
    line: AllocationLine,
    payment_date: date,
    idempotency_key: Optional[str],
    now: datetime,
) -> Payment:
    return Payment(
        payment_id=uuid4(),
        client_id=sale.client_id,
        sale_id=sale.sale_id,
        amount=line.applied,
        kind=PaymentKind.INSTALLMENT,
        payment_date=payment_date,
        installment_id=line.installment_id,
        idempotency_key=idempotency_key,
        created_at=now,
    )


def record_payment(
    sale_id: UUID,
    amount: Number,
    months_to_apply: int = 1,
    *,
    idempotency_key: Optional[str] = None,
    payment_date: Optional[date] = None,
    now: Optional[datetime] = None,
) -> PaymentResult:
    """
    Apply a payment to a sale's installments.

    Args:
        sale_id: Sale being paid
        amount: Amount received (> 0)
        months_to_apply: How many of the next unpaid installments it may cover
        idempotency_key: Optional caller key making retries safe
        payment_date: Date stamped on installments and ledger entries (defaults to today)
        now: Current UTC time (defaults to the wall clock)

    Returns:
        PaymentResult

    Raises:
        ValidationError: amount <= 0, months_to_apply < 1, no unpaid
            installments, or amount larger than what the targeted installments owe
        StateError: the sale's advance has not been confirmed, or it is cancelled
    """

    now = now or datetime.now(timezone.utc)
    payment_date = payment_date or now.date()

    try:
        payment = to_money(amount)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"amount: {exc}") from exc
    if payment <= 0:
        raise ValidationError("Payment amount must be > 0")

    sale = load_sale(sale_id)

    if idempotency_key:
        earlier = list_payments_by_idempotency_key(sale_id, idempotency_key)
        if earlier:
            logger.info(
                "Payment replay ignored",
                extra={"sale_id": str(sale_id), "idempotency_key": idempotency_key},
            )
            return PaymentResult(
                sale=sale,
                installments=tuple(list_installments_by_sale(sale_id)),
                payments=tuple(earlier),
                replayed=True,
            )

    if sale.status not in _PAYABLE_STATUSES:
        raise StateError(f"Sale {sale_id} is {sale.status.value}; installment payments are not accepted")

    schedule = list_installments_by_sale(sale_id)
    allocation = allocate_payment(payment, schedule, months_to_apply, payment_date)
    entries = [_ledger_entry(sale, line, payment_date, idempotency_key, now) for line in allocation.lines]

    steps = CompensatingSequence("record_payment", sale_id=sale_id)
    before = {inst.installment_id: inst for inst in schedule}
    for inst in allocation.updated:
        old = before[inst.installment_id]
        steps.run(
            f"update installment {inst.sequence}",
            lambda inst=inst: update_installment(inst),
            undo=lambda old=old: update_installment(old),
        )
    steps.run(
        "record payments",
        lambda: insert_payments(entries),
        undo=lambda: delete_payments([p.payment_id for p in entries]),
    )

    changed = {inst.installment_id: inst for inst in allocation.updated}
    merged = tuple(changed.get(inst.installment_id, inst) for inst in schedule)

    if sale.status is SaleStatus.INSTALLMENTS_ONGOING and all_paid(merged):
        completed = sale.transitioned(SaleStatus.COMPLETED)
        sale = steps.run(
            "mark sale completed",
            lambda: save_sale_if_status(completed, SaleStatus.INSTALLMENTS_ONGOING, updated_at=now),
        )

    logger.info(
        "Payment allocated",
        extra={
            "sale_id": str(sale_id),
            "amount": str(payment),
            "installments_touched": [line.sequence for line in allocation.lines],
            "sale_status": sale.status.value,
        },
    )
    return PaymentResult(sale=sale, installments=merged, payments=tuple(entries))


__all__ = ["PaymentResult", "record_payment"]
