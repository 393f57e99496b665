"""
Domain: sellable Units (land pieces and houses).

Rules implemented here:
- A Unit is in exactly one of Available, Reserved, Sold.
- Forward transitions: Available -> Reserved (sale created),
  Reserved -> Sold (sale confirmed), Reserved/Sold -> Available (sale cancelled).
- A Unit has a separate price per payment mode; a missing price means the unit
  cannot be sold in that mode.

This module contains only pure domain entities: no I/O, no database, no frameworks.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import FrozenSet, Mapping, Optional
from uuid import UUID

from .sale import PaymentMode
from .time import require_utc_timestamp


class UnitStatus(str, Enum):
    AVAILABLE = "Available"
    RESERVED = "Reserved"
    SOLD = "Sold"


class UnitKind(str, Enum):
    LAND = "Land"
    HOUSE = "House"


UNIT_TRANSITIONS: Mapping[UnitStatus, FrozenSet[UnitStatus]] = {
    UnitStatus.AVAILABLE: frozenset({UnitStatus.RESERVED}),
    UnitStatus.RESERVED: frozenset({UnitStatus.SOLD, UnitStatus.AVAILABLE}),
    UnitStatus.SOLD: frozenset({UnitStatus.AVAILABLE}),
}


def statuses_leading_to(target: UnitStatus) -> FrozenSet[UnitStatus]:
    """Statuses a unit may be in right before a forward move to `target`."""

    return frozenset(src for src, targets in UNIT_TRANSITIONS.items() if target in targets)


@dataclass(frozen=True, slots=True)
class Unit:
    """
    Immutable snapshot of a sellable unit.

    Status changes return a new instance; persistence applies them as
    conditional writes.
    """

    unit_id: UUID
    unit_number: str
    area_m2: Decimal
    purchase_cost: Decimal
    price_full: Optional[Decimal]
    price_installment: Optional[Decimal]
    status: UnitStatus = UnitStatus.AVAILABLE
    kind: UnitKind = UnitKind.LAND
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.area_m2 < 0:
            raise ValueError("area_m2 must be >= 0")
        if self.purchase_cost < 0:
            raise ValueError("purchase_cost must be >= 0")
        if self.updated_at is not None:
            require_utc_timestamp("updated_at", self.updated_at)

    @property
    def is_available(self) -> bool:
        return self.status is UnitStatus.AVAILABLE

    def price_for(self, mode: PaymentMode) -> Optional[Decimal]:
        """Selling price for `mode`, or None when the unit is not priced for it."""

        price = self.price_full if mode is PaymentMode.FULL else self.price_installment
        if price is None or price <= 0:
            return None
        return price

    def with_status(self, target: UnitStatus) -> "Unit":
        """Return a copy in `target` status; raises ValueError on an illegal move."""

        if target not in UNIT_TRANSITIONS[self.status]:
            raise ValueError(f"Unit {self.unit_number}: illegal move {self.status.value} -> {target.value}")
        return replace(self, status=target)
