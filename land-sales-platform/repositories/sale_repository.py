"""
Sale repository (persistence).

This module provides *only* persistence operations for the Sale aggregate.
It does not validate lifecycle transitions; the sale lifecycle service does
that before calling in. Status writes can carry the expected current status
so two concurrent confirmations cannot both apply.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, List, Mapping, Optional
from uuid import UUID

from domain.errors import StateError
from domain.money import ZERO
from domain.sale import PaymentMode, Sale, SaleStatus
from repositories.client import get_supabase
from repositories.rows import (
    date_or_none,
    execute,
    money_or_none,
    parse_date,
    parse_money,
    parse_optional_date,
    parse_optional_datetime,
    parse_optional_money,
    parse_optional_uuid,
    to_iso_utc,
    uuid_or_none,
)

# Supabase table name for sales.
# Keep this aligned with your database schema.
_SALES_TABLE: str = "sales"


def _row_to_sale(row: Mapping[str, Any]) -> Sale:
    """Convert a Supabase row into a Sale."""

    month_count = row.get("month_count")
    return Sale(
        sale_id=UUID(str(row["sale_id"])),
        client_id=UUID(str(row["client_id"])),
        unit_ids=tuple(UUID(str(u)) for u in row["unit_ids"]),
        payment_mode=PaymentMode(str(row["payment_mode"])),
        total_cost=parse_money(row["total_cost"]),
        total_price=parse_money(row["total_price"]),
        reservation_amount=parse_money(row.get("reservation_amount") or 0),
        status=SaleStatus(str(row["status"])),
        sale_date=parse_date(row["sale_date"]),
        deadline=parse_optional_date(row.get("deadline")),
        advance_amount=parse_money(row.get("advance_amount") or ZERO),
        advance_due_date=parse_optional_date(row.get("advance_due_date")),
        installment_start_date=parse_optional_date(row.get("installment_start_date")),
        month_count=int(month_count) if month_count is not None else None,
        monthly_amount=parse_optional_money(row.get("monthly_amount")),
        split_from_sale_id=parse_optional_uuid(row.get("split_from_sale_id")),
        created_at=parse_optional_datetime(row.get("created_at_utc")),
        updated_at=parse_optional_datetime(row.get("updated_at_utc")),
    )


def _sale_to_payload(sale: Sale) -> dict[str, Any]:
    """Mutable columns of a sale row. profit_margin is stored for reporting queries."""

    return {
        "client_id": str(sale.client_id),
        "unit_ids": [str(u) for u in sale.unit_ids],
        "payment_mode": sale.payment_mode.value,
        "total_cost": str(sale.total_cost),
        "total_price": str(sale.total_price),
        "profit_margin": str(sale.profit_margin),
        "reservation_amount": str(sale.reservation_amount),
        "status": sale.status.value,
        "sale_date": sale.sale_date.isoformat(),
        "deadline": date_or_none(sale.deadline),
        "advance_amount": str(sale.advance_amount),
        "advance_due_date": date_or_none(sale.advance_due_date),
        "installment_start_date": date_or_none(sale.installment_start_date),
        "month_count": sale.month_count,
        "monthly_amount": money_or_none(sale.monthly_amount),
        "split_from_sale_id": uuid_or_none(sale.split_from_sale_id),
    }


def insert_sale(sale: Sale) -> Sale:
    """
    Insert a new sale row.

    Returns:
        The sale as stored (with created_at/updated_at stamped)
    """

    now = sale.created_at or datetime.now(timezone.utc)
    payload = _sale_to_payload(sale)
    payload["sale_id"] = str(sale.sale_id)
    payload["created_at_utc"] = to_iso_utc(now, name="created_at")
    payload["updated_at_utc"] = to_iso_utc(now, name="updated_at")

    rows = execute(get_supabase().table(_SALES_TABLE).insert(payload), "insert sale")
    if rows:
        return _row_to_sale(rows[0])
    return _row_to_sale(payload)


def get_sale_by_id(sale_id: UUID) -> Optional[Sale]:
    """
    Retrieve a single sale by its ID.

    Args:
        sale_id: Sale identifier

    Returns:
        Sale or None if not found
    """

    query = (
        get_supabase()
        .table(_SALES_TABLE)
        .select("*")
        .eq("sale_id", str(sale_id))
        .limit(1)
    )
    rows = execute(query, "get sale")
    return _row_to_sale(rows[0]) if rows else None


def update_sale(
    sale: Sale,
    *,
    expected_status: Optional[SaleStatus] = None,
    updated_at: Optional[datetime] = None,
) -> Optional[Sale]:
    """
    Overwrite the mutable columns of an existing sale.

    Args:
        sale: The new state of the sale
        expected_status: When given, only update if the stored status still matches
        updated_at: UTC timestamp for the row (defaults to now)

    Returns:
        The stored Sale, or None when no row matched
    """

    payload = _sale_to_payload(sale)
    payload["updated_at_utc"] = to_iso_utc(updated_at or datetime.now(timezone.utc), name="updated_at")

    query = get_supabase().table(_SALES_TABLE).update(payload).eq("sale_id", str(sale.sale_id))
    if expected_status is not None:
        query = query.eq("status", expected_status.value)

    rows = execute(query, "update sale")
    return _row_to_sale(rows[0]) if rows else None


def save_sale_if_status(
    sale: Sale,
    expected_status: SaleStatus,
    *,
    updated_at: Optional[datetime] = None,
) -> Sale:
    """
    Conditional update of a sale.

    Raises:
        StateError: the stored sale is no longer in `expected_status`
    """

    stored = update_sale(sale, expected_status=expected_status, updated_at=updated_at)
    if stored is None:
        raise StateError(f"Sale {sale.sale_id} is no longer {expected_status.value}")
    return stored


def delete_sale(sale_id: UUID) -> None:
    """
    Physically delete a sale row.

    Only used to undo an insert that was never committed as a whole (a
    failed creation or split). Cancelled sales are kept.
    """

    execute(
        get_supabase().table(_SALES_TABLE).delete().eq("sale_id", str(sale_id)),
        "delete sale",
    )


def list_sales_for_unit(unit_id: UUID) -> List[Sale]:
    """All sales (any status) whose unit list contains `unit_id`."""

    query = (
        get_supabase()
        .table(_SALES_TABLE)
        .select("*")
        .contains("unit_ids", [str(unit_id)])
    )
    return [_row_to_sale(row) for row in execute(query, "list sales for unit")]


def list_sales_by_ids(sale_ids: Iterable[UUID]) -> List[Sale]:
    ids = [str(s) for s in sale_ids]
    if not ids:
        return []
    query = get_supabase().table(_SALES_TABLE).select("*").in_("sale_id", ids)
    return [_row_to_sale(row) for row in execute(query, "list sales")]


__all__ = [
    "insert_sale",
    "get_sale_by_id",
    "update_sale",
    "save_sale_if_status",
    "delete_sale",
    "list_sales_for_unit",
    "list_sales_by_ids",
]
