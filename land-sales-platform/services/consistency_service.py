"""
Unit/sale consistency audit.

Multi-step writes are best-effort, so a unit's stored status can drift from
the sales that reference it. This service detects the drift and releases
reservations left behind by sales that no longer exist.

Checks per unit:
- more than one active (non-Cancelled) sale references it   -> review_sales
- Available while an active sale references it              -> reserve_unit
- Reserved without any active sale                           -> release_unit
- Sold without a confirmed sale, or Reserved while its sale
  is already confirmed                                       -> check_sales
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional, Tuple
from uuid import UUID

from domain.errors import NotFoundError
from domain.sale import SaleStatus
from domain.unit import UnitStatus
from repositories.sale_repository import list_sales_for_unit
from repositories.unit_repository import get_unit_by_id, list_units_by_status, update_unit_status

logger = logging.getLogger(__name__)

ORPHAN_GRACE_PERIOD = timedelta(minutes=5)

_CONFIRMED = (SaleStatus.INSTALLMENTS_ONGOING, SaleStatus.COMPLETED)


class RecommendedAction(str, Enum):
    NONE = "none"
    RESERVE_UNIT = "reserve_unit"
    RELEASE_UNIT = "release_unit"
    CHECK_SALES = "check_sales"
    REVIEW_SALES = "review_sales"


@dataclass(frozen=True, slots=True)
class UnitConsistencyReport:
    unit_id: UUID
    unit_number: str
    status: UnitStatus
    active_sale_ids: Tuple[UUID, ...]
    issues: Tuple[str, ...]
    action: RecommendedAction

    @property
    def is_consistent(self) -> bool:
        return not self.issues


def verify_unit_consistency(unit_id: UUID) -> UnitConsistencyReport:
    """
    Compare a unit's stored status with the sales that reference it.

    Raises:
        NotFoundError: unknown unit
    """

    unit = get_unit_by_id(unit_id)
    if unit is None:
        raise NotFoundError(f"Unit {unit_id} not found")

    active = [sale for sale in list_sales_for_unit(unit_id) if sale.is_active]
    confirmed = [sale for sale in active if sale.status in _CONFIRMED]

    issues: List[str] = []
    actions: List[RecommendedAction] = []

    if len(active) > 1:
        issues.append(f"unit is referenced by {len(active)} active sales")
        actions.append(RecommendedAction.REVIEW_SALES)
    if unit.status is UnitStatus.AVAILABLE and active:
        issues.append("unit is Available but has an active sale")
        actions.append(RecommendedAction.RESERVE_UNIT)
    if unit.status is UnitStatus.RESERVED and not active:
        issues.append("unit is Reserved without an active sale")
        actions.append(RecommendedAction.RELEASE_UNIT)
    if unit.status is UnitStatus.SOLD and not confirmed:
        issues.append("unit is Sold without a confirmed sale")
        actions.append(RecommendedAction.CHECK_SALES)
    if unit.status is UnitStatus.RESERVED and confirmed:
        issues.append("unit is Reserved but its sale is already confirmed")
        actions.append(RecommendedAction.CHECK_SALES)

    report = UnitConsistencyReport(
        unit_id=unit.unit_id,
        unit_number=unit.unit_number,
        status=unit.status,
        active_sale_ids=tuple(sale.sale_id for sale in active),
        issues=tuple(issues),
        action=actions[0] if actions else RecommendedAction.NONE,
    )
    if issues:
        logger.warning(
            "Unit inconsistent with its sales",
            extra={
                "unit_id": str(unit_id),
                "status": unit.status.value,
                "issues": list(issues),
                "action": report.action.value,
            },
        )
    return report


def release_orphaned_reservations(
    now: Optional[datetime] = None,
    grace_period: timedelta = ORPHAN_GRACE_PERIOD,
) -> List[UUID]:
    """
    Release Reserved units that no active sale references.

    Units reserved within `grace_period` are skipped. The release is a
    conditional update, so a unit reserved again in the meantime is untouched.

    Returns:
        Ids of the units released
    """

    now = now or datetime.now(timezone.utc)
    released: List[UUID] = []

    for unit in list_units_by_status(UnitStatus.RESERVED):
        if unit.updated_at is not None and now - unit.updated_at < grace_period:
            continue
        if any(sale.is_active for sale in list_sales_for_unit(unit.unit_id)):
            continue
        if update_unit_status(
            unit.unit_id, UnitStatus.AVAILABLE, expected=[UnitStatus.RESERVED], updated_at=now
        ) is not None:
            released.append(unit.unit_id)

    logger.info(
        "Orphaned reservations released",
        extra={"released": [str(u) for u in released]},
    )
    return released


__all__ = [
    "RecommendedAction",
    "UnitConsistencyReport",
    "verify_unit_consistency",
    "release_orphaned_reservations",
]
