"""
Installment repository (persistence).

This module provides *only* persistence operations for Installment rows.
Rows are created once per sale, updated by payment allocation and splits,
and deleted only when the whole sale is cancelled.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Iterable, List, Mapping, Optional, Sequence
from uuid import UUID

from domain.installment import Installment, InstallmentStatus
from repositories.client import get_supabase
from repositories.rows import date_or_none, execute, parse_date, parse_money, parse_optional_date

# Supabase table name for installments.
# Keep this aligned with your database schema.
_INSTALLMENTS_TABLE: str = "installments"


def _row_to_installment(row: Mapping[str, Any]) -> Installment:
    """Convert a Supabase row into an Installment."""

    return Installment(
        installment_id=UUID(str(row["installment_id"])),
        sale_id=UUID(str(row["sale_id"])),
        sequence=int(row["sequence"]),
        amount_due=parse_money(row["amount_due"]),
        due_date=parse_date(row["due_date"]),
        amount_paid=parse_money(row.get("amount_paid") or 0),
        stacked_amount=parse_money(row.get("stacked_amount") or 0),
        status=InstallmentStatus(str(row["status"])),
        paid_date=parse_optional_date(row.get("paid_date")),
    )


def _mutable_payload(inst: Installment) -> dict[str, Any]:
    return {
        "amount_due": str(inst.amount_due),
        "amount_paid": str(inst.amount_paid),
        "stacked_amount": str(inst.stacked_amount),
        "status": inst.status.value,
        "paid_date": date_or_none(inst.paid_date),
    }


def insert_installments(installments: Sequence[Installment]) -> None:
    """Insert a whole schedule in one request."""

    if not installments:
        return
    payload = []
    for inst in installments:
        row = _mutable_payload(inst)
        row.update(
            {
                "installment_id": str(inst.installment_id),
                "sale_id": str(inst.sale_id),
                "sequence": inst.sequence,
                "due_date": inst.due_date.isoformat(),
            }
        )
        payload.append(row)
    execute(get_supabase().table(_INSTALLMENTS_TABLE).insert(payload), "insert installments")


def list_installments_by_sale(sale_id: UUID) -> List[Installment]:
    """
    Fetch a sale's schedule.

    Returns:
        List[Installment] ordered by sequence (possibly empty)
    """

    query = (
        get_supabase()
        .table(_INSTALLMENTS_TABLE)
        .select("*")
        .eq("sale_id", str(sale_id))
        .order("sequence")
    )
    return [_row_to_installment(row) for row in execute(query, "list installments")]


def list_installments(sale_ids: Optional[Iterable[UUID]] = None) -> List[Installment]:
    """Fetch installments across sales (all sales when `sale_ids` is None)."""

    query = get_supabase().table(_INSTALLMENTS_TABLE).select("*")
    if sale_ids is not None:
        ids = [str(s) for s in sale_ids]
        if not ids:
            return []
        query = query.in_("sale_id", ids)
    return [_row_to_installment(row) for row in execute(query, "list installments")]


def update_installment(inst: Installment) -> None:
    query = (
        get_supabase()
        .table(_INSTALLMENTS_TABLE)
        .update(_mutable_payload(inst))
        .eq("installment_id", str(inst.installment_id))
    )
    execute(query, "update installment")


def delete_installments_by_sale(sale_id: UUID) -> None:
    execute(
        get_supabase().table(_INSTALLMENTS_TABLE).delete().eq("sale_id", str(sale_id)),
        "delete installments",
    )


def flag_late_installments(today: date) -> int:
    """
    Stamp Late on Unpaid installments due before `today`.

    The flag is for display only; overdue logic never reads it.

    Returns:
        Number of rows flagged
    """

    query = (
        get_supabase()
        .table(_INSTALLMENTS_TABLE)
        .update({"status": InstallmentStatus.LATE.value})
        .eq("status", InstallmentStatus.UNPAID.value)
        .lt("due_date", today.isoformat())
    )
    return len(execute(query, "flag late installments"))


__all__ = [
    "insert_installments",
    "list_installments_by_sale",
    "list_installments",
    "update_installment",
    "delete_installments_by_sale",
    "flag_late_installments",
]
