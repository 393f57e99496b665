"""
Sale lifecycle manager.

The single entry point the outer layers call to create, confirm and cancel
sales. Each operation validates everything it can before the first write,
then runs its writes through a CompensatingSequence.

Handles:
- Totals computed from unit prices for the chosen payment mode
- Conditional unit reservation (double booking raises AvailabilityConflictError)
- Full-payment and advance confirmation, with schedule generation
- Extraction of a single unit out of a multi-unit sale before confirming or
  cancelling it
- Cancellation with unit release and an optional refund entry
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple
from uuid import UUID, uuid4

from domain.errors import AvailabilityConflictError, NotFoundError, StateError, ValidationError
from domain.installment import Installment
from domain.money import ZERO, Number, to_money
from domain.payment import Payment, PaymentKind, cash_received
from domain.sale import PaymentMode, Sale, SaleStatus, require_transition
from domain.schedule import SchedulePlan, generate_schedule
from domain.unit import UnitStatus
from repositories.client_repository import get_client_by_id
from repositories.installment_repository import (
    delete_installments_by_sale,
    insert_installments,
    list_installments_by_sale,
)
from repositories.payment_repository import delete_payments, insert_payment, list_payments_by_sale
from repositories.sale_repository import (
    delete_sale,
    get_sale_by_id,
    insert_sale,
    save_sale_if_status,
    update_sale,
)
from repositories.unit_repository import get_units_by_ids
from services.split_service import apply_split, plan_split
from services.unit_of_work import CompensatingSequence
from services.unit_sync_service import (
    mark_units_sold,
    release_units,
    reserve_units,
    restore_unit_statuses,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AdvanceConfirmation:
    """
    Result of confirm_advance.

    sale: the confirmed sale (the extracted singleton when a unit was split off)
    installments: its generated schedule (empty when the advance covers the price)
    remainder: the rewritten original sale after a split, otherwise None
    """
    sale: Sale
    installments: Tuple[Installment, ...]
    remainder: Optional[Sale] = None


def _money(value: Number, name: str) -> Decimal:
    try:
        return to_money(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{name}: {exc}") from exc


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def load_sale(sale_id: UUID) -> Sale:
    sale = get_sale_by_id(sale_id)
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found")
    return sale


def _check_unit(sale: Sale, unit_id: Optional[UUID]) -> None:
    if unit_id is not None and unit_id not in sale.unit_ids:
        raise ValidationError(f"Unit {unit_id} does not belong to sale {sale.sale_id}")


def _split_target(
    sale: Sale,
    unit_id: Optional[UUID],
    steps: CompensatingSequence,
    now: datetime,
) -> Tuple[Sale, Optional[Sale]]:
    """
    Resolve which sale an action applies to.

    With a unit id on a multi-unit sale the unit is split off first and the
    action applies to the new singleton; otherwise it applies to the whole sale.
    """

    if unit_id is None or sale.unit_count < 2:
        return sale, None
    plan = plan_split(sale, unit_id, now=now)
    extracted = apply_split(plan, steps, now=now)
    return extracted, plan.remainder


def create_sale(
    client_id: UUID,
    unit_ids: Sequence[UUID],
    payment_mode: PaymentMode,
    reservation_amount: Number = ZERO,
    deadline: Optional[date] = None,
    *,
    advance_due_date: Optional[date] = None,
    sale_date: Optional[date] = None,
    now: Optional[datetime] = None,
) -> Sale:
    """
    Create a sale over one or more Available units.

    Process:
    1. Validate client, units, prices and reservation (no writes yet)
    2. Insert the sale as Pending
    3. Reserve every unit with a conditional update
    4. Move the sale to AwaitingPayment
    5. Record the reservation as a SmallAdvance payment (when > 0)

    Raises:
        ValidationError: empty/duplicate unit list, unpriced unit, reservation
            out of range, deadline before the sale date
        NotFoundError: unknown client or unit
        AvailabilityConflictError: a unit is not Available (checked before
            writing and again by the conditional reservation)
    """

    now = _now(now)
    sale_date = sale_date or now.date()
    unit_ids = list(unit_ids)

    if not unit_ids:
        raise ValidationError("A sale needs at least one unit")
    if len(set(unit_ids)) != len(unit_ids):
        raise ValidationError("Duplicate unit in sale")

    reservation = _money(reservation_amount, "reservation_amount")
    if reservation < 0:
        raise ValidationError("reservation_amount must be >= 0")
    if deadline is not None and deadline < sale_date:
        raise ValidationError("deadline must not be before the sale date")

    if get_client_by_id(client_id) is None:
        raise NotFoundError(f"Client {client_id} not found")

    units = {unit.unit_id: unit for unit in get_units_by_ids(unit_ids)}
    missing = [u for u in unit_ids if u not in units]
    if missing:
        raise NotFoundError("Units not found: " + ", ".join(str(u) for u in missing))

    unpriced = [units[u].unit_number for u in unit_ids if units[u].price_for(payment_mode) is None]
    if unpriced:
        raise ValidationError(
            f"No {payment_mode.value} price for unit(s): " + ", ".join(unpriced)
        )

    unavailable = [u for u in unit_ids if not units[u].is_available]
    if unavailable:
        raise AvailabilityConflictError(unavailable)

    total_price = sum((units[u].price_for(payment_mode) for u in unit_ids), ZERO)
    total_cost = sum((units[u].purchase_cost for u in unit_ids), ZERO)
    if reservation > total_price:
        raise ValidationError(f"reservation_amount {reservation} exceeds the sale price {total_price}")

    if payment_mode is PaymentMode.INSTALLMENT and advance_due_date is None:
        advance_due_date = deadline

    sale = Sale(
        sale_id=uuid4(),
        client_id=client_id,
        unit_ids=tuple(unit_ids),
        payment_mode=payment_mode,
        total_cost=total_cost,
        total_price=total_price,
        reservation_amount=reservation,
        status=SaleStatus.PENDING,
        sale_date=sale_date,
        deadline=deadline,
        advance_due_date=advance_due_date if payment_mode is PaymentMode.INSTALLMENT else None,
        created_at=now,
    )
    awaiting = sale.transitioned(SaleStatus.AWAITING_PAYMENT)

    steps = CompensatingSequence("create_sale", sale_id=sale.sale_id)
    steps.run("insert sale", lambda: insert_sale(sale), undo=lambda: delete_sale(sale.sale_id))
    steps.run(
        "reserve units",
        lambda: reserve_units(unit_ids, now=now),
        undo=lambda: restore_unit_statuses(
            {u: UnitStatus.AVAILABLE for u in unit_ids}, UnitStatus.RESERVED, now=now
        ),
    )
    stored = steps.run(
        "mark awaiting payment",
        lambda: save_sale_if_status(awaiting, SaleStatus.PENDING, updated_at=now),
    )
    if reservation > 0:
        steps.run(
            "record reservation",
            lambda: insert_payment(
                Payment(
                    payment_id=uuid4(),
                    client_id=client_id,
                    sale_id=sale.sale_id,
                    amount=reservation,
                    kind=PaymentKind.SMALL_ADVANCE,
                    payment_date=sale_date,
                    created_at=now,
                )
            ),
        )

    logger.info(
        "Sale created",
        extra={
            "sale_id": str(sale.sale_id),
            "client_id": str(client_id),
            "payment_mode": payment_mode.value,
            "unit_count": len(unit_ids),
            "total_price": str(total_price),
            "reservation_amount": str(reservation),
        },
    )
    return stored


def confirm_full_payment(
    sale_id: UUID,
    unit_id: Optional[UUID] = None,
    *,
    payment_date: Optional[date] = None,
    now: Optional[datetime] = None,
) -> Sale:
    """
    Confirm that a Full-mode sale has been paid in full.

    Write order: sale Completed -> units Sold -> Full payment of
    (price - reservation). With `unit_id` on a multi-unit sale, that unit is
    split off first and only the new singleton sale is confirmed.

    Raises:
        StateError: not a Full-mode sale, or not AwaitingPayment
        ValidationError: unit_id is not one of the sale's units
    """

    now = _now(now)
    payment_date = payment_date or now.date()
    sale = load_sale(sale_id)

    if sale.payment_mode is not PaymentMode.FULL:
        raise StateError(f"Sale {sale_id} is not a Full-mode sale")
    require_transition(sale.payment_mode, sale.status, SaleStatus.COMPLETED)
    _check_unit(sale, unit_id)

    steps = CompensatingSequence("confirm_full_payment", sale_id=sale_id)
    target, remainder = _split_target(sale, unit_id, steps, now)
    completed = target.transitioned(SaleStatus.COMPLETED)

    stored = steps.run(
        "mark sale completed",
        lambda: save_sale_if_status(completed, target.status, updated_at=now),
        undo=lambda: update_sale(target, updated_at=now),
    )
    steps.run(
        "mark units sold",
        lambda: mark_units_sold(target.unit_ids, now=now),
        undo=lambda: restore_unit_statuses(
            {u: UnitStatus.RESERVED for u in target.unit_ids}, UnitStatus.SOLD, now=now
        ),
    )
    balance = target.total_price - target.reservation_amount
    if balance > 0:
        steps.run(
            "record full payment",
            lambda: insert_payment(
                Payment(
                    payment_id=uuid4(),
                    client_id=target.client_id,
                    sale_id=target.sale_id,
                    amount=balance,
                    kind=PaymentKind.FULL,
                    payment_date=payment_date,
                    created_at=now,
                )
            ),
        )

    logger.info(
        "Full payment confirmed",
        extra={
            "sale_id": str(target.sale_id),
            "split_from_sale_id": str(sale.sale_id) if remainder is not None else None,
            "amount": str(balance),
        },
    )
    return stored


def confirm_advance(
    sale_id: UUID,
    advance_amount_paid: Number,
    start_date: date,
    *,
    month_count: Optional[int] = None,
    monthly_amount: Optional[Number] = None,
    unit_id: Optional[UUID] = None,
    payment_date: Optional[date] = None,
    now: Optional[datetime] = None,
) -> AdvanceConfirmation:
    """
    Confirm the advance of an Installment-mode sale and generate its schedule.

    Write order: sale fields + InstallmentsOngoing -> units Sold ->
    BigAdvance payment (advance + reservation) -> installment rows. When the
    advance covers the whole price the schedule is empty and the sale goes
    straight on to Completed.

    Raises:
        StateError: not an Installment-mode sale, or not AwaitingPayment
        ValidationError: both/neither of month_count/monthly_amount, either
            out of range, advance < 0 or reservation + advance > price
    """

    now = _now(now)
    payment_date = payment_date or now.date()
    sale = load_sale(sale_id)

    if sale.payment_mode is not PaymentMode.INSTALLMENT:
        raise StateError(f"Sale {sale_id} is not an Installment-mode sale")
    require_transition(sale.payment_mode, sale.status, SaleStatus.INSTALLMENTS_ONGOING)
    _check_unit(sale, unit_id)

    if (month_count is None) == (monthly_amount is None):
        raise ValidationError("Exactly one of month_count or monthly_amount is required")
    advance = _money(advance_amount_paid, "advance_amount_paid")
    if advance < 0:
        raise ValidationError("advance_amount_paid must be >= 0")
    monthly = _money(monthly_amount, "monthly_amount") if monthly_amount is not None else None

    steps = CompensatingSequence("confirm_advance", sale_id=sale_id)

    # Validate against the target's share before any write, including the split.
    if unit_id is not None and sale.unit_count > 1:
        planned = plan_split(sale, unit_id, now=now)
        share = planned.extracted
    else:
        planned = None
        share = sale

    if share.reservation_amount + advance > share.total_price:
        raise ValidationError(
            f"reservation + advance ({share.reservation_amount + advance}) exceeds the price {share.total_price}"
        )
    plan: SchedulePlan = generate_schedule(
        share.total_price - share.reservation_amount - advance,
        start_date,
        month_count=month_count,
        monthly_amount=monthly,
    )

    if planned is not None:
        target = apply_split(planned, steps, now=now)
        remainder: Optional[Sale] = planned.remainder
    else:
        target, remainder = sale, None

    confirmed = replace(
        target,
        advance_amount=advance,
        installment_start_date=start_date,
        month_count=plan.month_count,
        monthly_amount=plan.monthly_amount if not plan.is_empty else None,
    ).transitioned(SaleStatus.INSTALLMENTS_ONGOING)
    if plan.is_empty:
        confirmed = confirmed.transitioned(SaleStatus.COMPLETED)

    rows = tuple(
        Installment(
            installment_id=uuid4(),
            sale_id=target.sale_id,
            sequence=item.sequence,
            amount_due=item.amount_due,
            due_date=item.due_date,
        )
        for item in plan.items
    )

    stored = steps.run(
        "write sale fields",
        lambda: save_sale_if_status(confirmed, target.status, updated_at=now),
        undo=lambda: update_sale(target, updated_at=now),
    )
    steps.run(
        "mark units sold",
        lambda: mark_units_sold(target.unit_ids, now=now),
        undo=lambda: restore_unit_statuses(
            {u: UnitStatus.RESERVED for u in target.unit_ids}, UnitStatus.SOLD, now=now
        ),
    )
    big_advance = advance + target.reservation_amount
    if big_advance > 0:
        entry = Payment(
            payment_id=uuid4(),
            client_id=target.client_id,
            sale_id=target.sale_id,
            amount=big_advance,
            kind=PaymentKind.BIG_ADVANCE,
            payment_date=payment_date,
            created_at=now,
        )
        steps.run(
            "record advance",
            lambda: insert_payment(entry),
            undo=lambda: delete_payments([entry.payment_id]),
        )
    if rows:
        steps.run("write schedule", lambda: insert_installments(rows))

    logger.info(
        "Advance confirmed",
        extra={
            "sale_id": str(target.sale_id),
            "split_from_sale_id": str(sale.sale_id) if remainder is not None else None,
            "advance_amount": str(advance),
            "month_count": plan.month_count,
            "monthly_amount": str(plan.monthly_amount),
            "status": stored.status.value,
        },
    )
    return AdvanceConfirmation(sale=stored, installments=rows, remainder=remainder)


def cancel_sale(
    sale_id: UUID,
    refund_amount: Optional[Number] = None,
    *,
    unit_id: Optional[UUID] = None,
    payment_date: Optional[date] = None,
    now: Optional[datetime] = None,
) -> Sale:
    """
    Cancel a sale (or one unit of a multi-unit sale).

    Write order: sale Cancelled -> units released -> installments deleted ->
    Refund payment (when > 0). With `unit_id` on a multi-unit sale, the unit
    is split off first and only the singleton is cancelled; the remaining
    units' sale keeps its status.

    Returns:
        The cancelled sale

    Raises:
        StateError: the sale is already Completed or Cancelled
        ValidationError: refund < 0 or larger than the cash received on the sale
    """

    now = _now(now)
    payment_date = payment_date or now.date()
    sale = load_sale(sale_id)

    if sale.status is SaleStatus.COMPLETED:
        raise StateError(f"Sale {sale_id} is Completed and cannot be cancelled")
    require_transition(sale.payment_mode, sale.status, SaleStatus.CANCELLED)
    _check_unit(sale, unit_id)

    refund = _money(refund_amount, "refund_amount") if refund_amount is not None else ZERO
    if refund < 0:
        raise ValidationError("refund_amount must be >= 0")
    if refund > 0:
        received = cash_received(list_payments_by_sale(sale_id))
        if refund > received:
            raise ValidationError(f"refund_amount {refund} exceeds the {received} received on this sale")

    steps = CompensatingSequence("cancel_sale", sale_id=sale_id)
    target, remainder = _split_target(sale, unit_id, steps, now)
    cancelled = target.transitioned(SaleStatus.CANCELLED)

    stored = steps.run(
        "mark sale cancelled",
        lambda: save_sale_if_status(cancelled, target.status, updated_at=now),
        undo=lambda: update_sale(target, updated_at=now),
    )
    previous = steps.run("release units", lambda: release_units(target.unit_ids, now=now))
    steps.add_undo(
        "release units",
        lambda: restore_unit_statuses(previous, UnitStatus.AVAILABLE, now=now),
    )

    schedule: List[Installment] = list_installments_by_sale(target.sale_id)
    if schedule:
        steps.run(
            "delete installments",
            lambda: delete_installments_by_sale(target.sale_id),
            undo=lambda: insert_installments(schedule),
        )
    if refund > 0:
        steps.run(
            "record refund",
            lambda: insert_payment(
                Payment(
                    payment_id=uuid4(),
                    client_id=target.client_id,
                    sale_id=target.sale_id,
                    amount=refund,
                    kind=PaymentKind.REFUND,
                    payment_date=payment_date,
                    created_at=now,
                )
            ),
        )

    logger.info(
        "Sale cancelled",
        extra={
            "sale_id": str(target.sale_id),
            "split_from_sale_id": str(sale.sale_id) if remainder is not None else None,
            "released_units": [str(u) for u in previous],
            "deleted_installments": len(schedule),
            "refund_amount": str(refund),
        },
    )
    return stored


__all__ = [
    "AdvanceConfirmation",
    "load_sale",
    "create_sale",
    "confirm_full_payment",
    "confirm_advance",
    "cancel_sale",
]
