"""
Unit repository (persistence).

This module provides *only* persistence operations for the Unit entity.
Status changes are conditional updates: the expected current status is part
of the WHERE clause, so a unit that moved in the meantime is left untouched
and the caller sees zero updated rows.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, List, Mapping, Optional
from uuid import UUID

from domain.unit import Unit, UnitKind, UnitStatus
from repositories.client import get_supabase
from repositories.rows import (
    execute,
    parse_money,
    parse_optional_datetime,
    parse_optional_money,
    to_iso_utc,
)

# Supabase table name for units.
# Keep this aligned with your database schema.
_UNITS_TABLE: str = "units"


def _row_to_unit(row: Mapping[str, Any]) -> Unit:
    """Convert a Supabase row into a Unit."""

    return Unit(
        unit_id=UUID(str(row["unit_id"])),
        unit_number=str(row["unit_number"]),
        area_m2=parse_money(row.get("area_m2", 0)),
        purchase_cost=parse_money(row.get("purchase_cost", 0)),
        price_full=parse_optional_money(row.get("price_full")),
        price_installment=parse_optional_money(row.get("price_installment")),
        status=UnitStatus(str(row["status"])),
        kind=UnitKind(str(row.get("kind") or UnitKind.LAND.value)),
        updated_at=parse_optional_datetime(row.get("updated_at_utc")),
    )


def get_unit_by_id(unit_id: UUID) -> Optional[Unit]:
    query = (
        get_supabase()
        .table(_UNITS_TABLE)
        .select("*")
        .eq("unit_id", str(unit_id))
        .limit(1)
    )
    rows = execute(query, "fetch unit")
    return _row_to_unit(rows[0]) if rows else None


def get_units_by_ids(unit_ids: Iterable[UUID]) -> List[Unit]:
    """
    Fetch several units at once.

    Returns:
        List[Unit] in no particular order; ids that do not exist are simply absent
    """

    ids = [str(u) for u in unit_ids]
    if not ids:
        return []
    query = get_supabase().table(_UNITS_TABLE).select("*").in_("unit_id", ids)
    return [_row_to_unit(row) for row in execute(query, "fetch units")]


def list_units_by_status(status: UnitStatus) -> List[Unit]:
    query = get_supabase().table(_UNITS_TABLE).select("*").eq("status", status.value)
    return [_row_to_unit(row) for row in execute(query, "list units")]


def update_unit_status(
    unit_id: UUID,
    new_status: UnitStatus,
    *,
    expected: Iterable[UnitStatus],
    updated_at: Optional[datetime] = None,
) -> Optional[Unit]:
    """
    Move a unit to `new_status` only if it is currently in one of `expected`.

    Args:
        unit_id: Unit identifier
        new_status: Target status
        expected: Statuses the unit must be in for the write to apply
        updated_at: UTC timestamp stamped on the row (defaults to now)

    Returns:
        The updated Unit, or None when no row matched (unit missing or moved)
    """

    stamp = updated_at or datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "status": new_status.value,
        "updated_at_utc": to_iso_utc(stamp, name="updated_at"),
    }
    query = (
        get_supabase()
        .table(_UNITS_TABLE)
        .update(payload)
        .eq("unit_id", str(unit_id))
        .in_("status", [s.value for s in expected])
    )
    rows = execute(query, "update unit status")
    return _row_to_unit(rows[0]) if rows else None


__all__ = [
    "get_unit_by_id",
    "get_units_by_ids",
    "list_units_by_status",
    "update_unit_status",
]
