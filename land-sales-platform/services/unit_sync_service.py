"""
Unit availability synchronizer.

Keeps each unit's Available/Reserved/Sold status aligned with its sale. Every
status move is a conditional update on the unit's current status, so the
availability check and the write happen in one statement and two concurrent
sales cannot both reserve the same unit.

When some units of a batch move and others do not, the ones that moved are
put back before AvailabilityConflictError (or the storage error) is raised.
A failed put-back raises InconsistencyError.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Mapping, Optional, Sequence
from uuid import UUID

from domain.errors import AvailabilityConflictError, InconsistencyError
from domain.unit import Unit, UnitStatus, statuses_leading_to
from repositories.unit_repository import get_units_by_ids, update_unit_status

logger = logging.getLogger(__name__)


def _roll_back(
    moved: Mapping[UUID, Unit],
    previous: Mapping[UUID, UnitStatus],
    target: UnitStatus,
    now: datetime,
) -> List[str]:
    """Put moved units back; returns the units that could not be restored."""

    failures: List[str] = []
    for unit_id in moved:
        back = previous.get(unit_id)
        if back is None:
            failures.append(f"unit {unit_id}: previous status unknown")
            continue
        try:
            restored = update_unit_status(unit_id, back, expected=[target], updated_at=now)
        except RuntimeError as exc:
            failures.append(f"unit {unit_id}: {exc}")
            continue
        if restored is None:
            failures.append(f"unit {unit_id}: no longer {target.value}")
    return failures


def _move_units(
    operation: str,
    unit_ids: Sequence[UUID],
    target: UnitStatus,
    expected: Mapping[UUID, Iterable[UnitStatus]],
    now: datetime,
) -> Dict[UUID, Unit]:
    moved: Dict[UUID, Unit] = {}
    previous: Dict[UUID, UnitStatus] = {}
    conflicts: List[UUID] = []

    for unit_id in unit_ids:
        allowed = list(expected[unit_id])
        try:
            unit = update_unit_status(unit_id, target, expected=allowed, updated_at=now)
        except RuntimeError as exc:
            logger.warning(
                "Unit status write failed; rolling back",
                extra={
                    "operation": operation,
                    "target_status": target.value,
                    "failed_unit_id": str(unit_id),
                    "moved_unit_ids": [str(u) for u in moved],
                    "error": str(exc),
                },
            )
            failures = _roll_back(moved, previous, target, now)
            if failures:
                raise InconsistencyError(operation, f"update unit {unit_id}", failures) from exc
            raise
        if unit is None:
            conflicts.append(unit_id)
            continue
        moved[unit_id] = unit
        if len(allowed) == 1:
            previous[unit_id] = allowed[0]

    if not conflicts:
        return moved

    logger.warning(
        "Unit status conflict; rolling back",
        extra={
            "operation": operation,
            "target_status": target.value,
            "conflicting_unit_ids": [str(u) for u in conflicts],
            "moved_unit_ids": [str(u) for u in moved],
        },
    )
    failures = _roll_back(moved, previous, target, now)
    if failures:
        raise InconsistencyError(operation, "conditional unit update", failures)
    raise AvailabilityConflictError(conflicts)



def reserve_units(unit_ids: Sequence[UUID], *, now: Optional[datetime] = None) -> List[Unit]:
    """
    Available -> Reserved for every unit, or none of them.

    Raises:
        AvailabilityConflictError: one or more units were not Available at write time
    """

    now = now or datetime.now(timezone.utc)
    expected = {u: [UnitStatus.AVAILABLE] for u in unit_ids}
    moved = _move_units("reserve_units", unit_ids, UnitStatus.RESERVED, expected, now)
    return [moved[u] for u in unit_ids]


def mark_units_sold(unit_ids: Sequence[UUID], *, now: Optional[datetime] = None) -> List[Unit]:
    """
    Reserved -> Sold for every unit, or none of them.

    Raises:
        AvailabilityConflictError: one or more units were not Reserved at write time
    """

    now = now or datetime.now(timezone.utc)
    expected = {u: [UnitStatus.RESERVED] for u in unit_ids}
    moved = _move_units("mark_units_sold", unit_ids, UnitStatus.SOLD, expected, now)
    return [moved[u] for u in unit_ids]


def release_units(unit_ids: Sequence[UUID], *, now: Optional[datetime] = None) -> Dict[UUID, UnitStatus]:
    """
    Reserved/Sold -> Available.

    Units that are already Available are left alone.

    Returns:
        The status each released unit had before, for restore_unit_statuses()
    """

    now = now or datetime.now(timezone.utc)
    current = {unit.unit_id: unit.status for unit in get_units_by_ids(unit_ids)}
    to_release = [u for u in unit_ids if current.get(u, UnitStatus.AVAILABLE) is not UnitStatus.AVAILABLE]

    sources = statuses_leading_to(UnitStatus.AVAILABLE)
    expected = {u: [current[u]] for u in to_release if current[u] in sources}
    to_release = [u for u in to_release if u in expected]

    _move_units("release_units", to_release, UnitStatus.AVAILABLE, expected, now)
    return {u: current[u] for u in to_release}


def restore_unit_statuses(
    previous: Mapping[UUID, UnitStatus],
    current: UnitStatus,
    *,
    now: Optional[datetime] = None,
) -> None:
    """
    Compensating write: put units back to the status they had before.

    Raises:
        RuntimeError: a unit is no longer in `current` and was not restored
    """

    now = now or datetime.now(timezone.utc)
    stuck: List[str] = []
    for unit_id, status in previous.items():
        if update_unit_status(unit_id, status, expected=[current], updated_at=now) is None:
            stuck.append(str(unit_id))
    if stuck:
        raise RuntimeError(f"Units not restored (no longer {current.value}): {', '.join(stuck)}")


__all__ = [
    "reserve_units",
    "mark_units_sold",
    "release_units",
    "restore_unit_statuses",
]
