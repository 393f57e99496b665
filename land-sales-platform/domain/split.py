"""
Domain: Multi-unit split engine (pure).

When one unit of an N-unit sale is confirmed or cancelled on its own, its
share is carved out into a new singleton sale and the original sale is
rewritten in place for the remaining N-1 units.

Shares are computed on integer cents with a largest-remainder rule
(domain.money.split_share): the extracted sale gets 1/N, the remainder
(N-1)/N, and the two always add back up to the pre-split value exactly, so
repeated splits do not drift.

Existing installments of the original sale are rescaled in place (same rows,
same sequence numbers); they are never regenerated. For each row the split
is done on amount_due, on the total (amount_due + stacked_amount) and on
amount_paid, which keeps amount_paid <= amount_due + stacked_amount on both
sides. Statuses are recomputed from the rescaled amounts, so a row whose share
is fully covered becomes Paid.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple
from uuid import UUID

from .errors import ValidationError
from .installment import Installment, InstallmentStatus
from .money import split_share
from .sale import Sale


@dataclass(frozen=True, slots=True)
class InstallmentShare:
    """The extracted unit's share of one installment row."""

    sequence: int
    amount_due: Decimal
    stacked_amount: Decimal
    amount_paid: Decimal
    status: InstallmentStatus


@dataclass(frozen=True, slots=True)
class SplitResult:
    extracted: Sale
    remainder: Sale
    installments: Tuple[Installment, ...]
    extracted_shares: Tuple[InstallmentShare, ...]


def _rescaled_status(status: InstallmentStatus, total_due: Decimal, amount_paid: Decimal) -> InstallmentStatus:
    """Status of a row after its amounts were scaled down; a row owing nothing is Paid."""

    if amount_paid >= total_due:
        return InstallmentStatus.PAID
    if status is InstallmentStatus.LATE:
        return status
    return InstallmentStatus.PARTIAL if amount_paid > 0 else InstallmentStatus.UNPAID


def _split_installment(inst: Installment, unit_count: int) -> Tuple[Installment, InstallmentShare]:
    ext_due, rem_due = split_share(inst.amount_due, unit_count)
    ext_total, rem_total = split_share(inst.total_due, unit_count)
    ext_paid, rem_paid = split_share(inst.amount_paid, unit_count)

    rescaled = replace(
        inst,
        amount_due=rem_due,
        stacked_amount=rem_total - rem_due,
        amount_paid=rem_paid,
        status=_rescaled_status(inst.status, rem_total, rem_paid),
    )
    share = InstallmentShare(
        sequence=inst.sequence,
        amount_due=ext_due,
        stacked_amount=ext_total - ext_due,
        amount_paid=ext_paid,
        status=_rescaled_status(inst.status, ext_total, ext_paid),
    )
    return rescaled, share


def split_sale(
    sale: Sale,
    unit_id: UUID,
    *,
    new_sale_id: UUID,
    installments: Sequence[Installment] = (),
    created_at: Optional[datetime] = None,
) -> SplitResult:
    """
    Extract `unit_id` out of `sale`.

    Args:
        sale: the multi-unit sale
        unit_id: the unit whose payment path diverges
        new_sale_id: id for the singleton sale
        installments: the sale's existing installment rows, if any
        created_at: timestamp for the singleton sale (UTC)

    Returns:
        SplitResult with the singleton, the rewritten original and the
        rescaled installment rows

    Raises:
        ValidationError: the sale has a single unit, or unit_id is not one of its units
    """

    n = sale.unit_count
    if n < 2:
        raise ValidationError("Only a sale with more than one unit can be split")
    if unit_id not in sale.unit_ids:
        raise ValidationError(f"Unit {unit_id} does not belong to sale {sale.sale_id}")

    ext_cost, rem_cost = split_share(sale.total_cost, n)
    ext_price, rem_price = split_share(sale.total_price, n)
    ext_res, rem_res = split_share(sale.reservation_amount, n)
    ext_adv, rem_adv = split_share(sale.advance_amount, n)
    if sale.monthly_amount is not None:
        ext_monthly, rem_monthly = split_share(sale.monthly_amount, n)
    else:
        ext_monthly = rem_monthly = None

    extracted = replace(
        sale,
        sale_id=new_sale_id,
        unit_ids=(unit_id,),
        total_cost=ext_cost,
        total_price=ext_price,
        reservation_amount=ext_res,
        advance_amount=ext_adv,
        monthly_amount=ext_monthly,
        split_from_sale_id=sale.sale_id,
        created_at=created_at,
        updated_at=created_at,
    )
    remainder = replace(
        sale,
        unit_ids=tuple(u for u in sale.unit_ids if u != unit_id),
        total_cost=rem_cost,
        total_price=rem_price,
        reservation_amount=rem_res,
        advance_amount=rem_adv,
        monthly_amount=rem_monthly,
    )

    rescaled: List[Installment] = []
    shares: List[InstallmentShare] = []
    for inst in sorted(installments, key=lambda i: i.sequence):
        if inst.sale_id != sale.sale_id:
            raise ValidationError(f"Installment {inst.installment_id} does not belong to sale {sale.sale_id}")
        row, share = _split_installment(inst, n)
        rescaled.append(row)
        shares.append(share)

    return SplitResult(
        extracted=extracted,
        remainder=remainder,
        installments=tuple(rescaled),
        extracted_shares=tuple(shares),
    )
