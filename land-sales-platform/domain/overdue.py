"""
Domain: Overdue classification and installment statistics (pure).

Contract implemented here:
- is_overdue = status != Paid AND due_date < today
- Comparison is date-only; time of day is ignored.
- An installment due exactly today is not overdue.
- The stored Late flag is never consulted. Every overdue figure is derived
  from due_date and an explicit `today`; no implicit clock is read.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Mapping, Tuple
from uuid import UUID

from .installment import Installment, InstallmentStatus
from .money import ZERO
from .time import as_date


def is_overdue(installment: Installment, today: date | datetime) -> bool:
    if installment.status is InstallmentStatus.PAID:
        return False
    return installment.due_date < as_date(today)


def days_until_due(installment: Installment, today: date | datetime) -> int:
    """Whole days from today to the due date; negative once the date has passed."""

    return (installment.due_date - as_date(today)).days


def days_late(installment: Installment, today: date | datetime) -> int:
    if not is_overdue(installment, today):
        return 0
    return -days_until_due(installment, today)


def derived_status(installment: Installment, today: date | datetime) -> InstallmentStatus:
    """Status as it should be displayed today, regardless of the stored flag."""

    if installment.status is InstallmentStatus.PAID:
        return InstallmentStatus.PAID
    if is_overdue(installment, today):
        return InstallmentStatus.LATE
    if installment.amount_paid > 0:
        return InstallmentStatus.PARTIAL
    return InstallmentStatus.UNPAID


@dataclass(frozen=True, slots=True)
class OverdueView:
    installment: Installment
    status: InstallmentStatus
    is_overdue: bool
    outstanding: Decimal
    days_until_due: int
    days_late: int


def classify(installment: Installment, today: date | datetime) -> OverdueView:
    return OverdueView(
        installment=installment,
        status=derived_status(installment, today),
        is_overdue=is_overdue(installment, today),
        outstanding=installment.outstanding,
        days_until_due=days_until_due(installment, today),
        days_late=days_late(installment, today),
    )


@dataclass(frozen=True, slots=True)
class InstallmentSummary:
    total_due: Decimal
    total_paid: Decimal
    total_overdue: Decimal
    installment_count: int
    overdue_count: int
    client_count: int
    clients_with_overdue: int


def summarize(
    installments: Iterable[Installment],
    today: date | datetime,
    client_by_sale: Mapping[UUID, UUID],
) -> InstallmentSummary:
    """
    Aggregate installments across sales.

    total_overdue is the outstanding amount of overdue installments, not their
    face value. Installments whose sale has no known client still count toward
    the amounts but not toward the client figures.
    """

    total_due = ZERO
    total_paid = ZERO
    total_overdue = ZERO
    count = 0
    overdue_count = 0
    clients = set()
    late_clients = set()

    for inst in installments:
        count += 1
        total_due += inst.total_due
        total_paid += inst.amount_paid
        client_id = client_by_sale.get(inst.sale_id)
        if client_id is not None:
            clients.add(client_id)
        if is_overdue(inst, today):
            overdue_count += 1
            total_overdue += inst.outstanding
            if client_id is not None:
                late_clients.add(client_id)

    return InstallmentSummary(
        total_due=total_due,
        total_paid=total_paid,
        total_overdue=total_overdue,
        installment_count=count,
        overdue_count=overdue_count,
        client_count=len(clients),
        clients_with_overdue=len(late_clients),
    )


def overdue_views(
    installments: Iterable[Installment], today: date | datetime
) -> Tuple[OverdueView, ...]:
    return tuple(classify(inst, today) for inst in sorted(installments, key=lambda i: i.sequence))
