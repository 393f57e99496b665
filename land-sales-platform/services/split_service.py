"""
Multi-unit split: applies domain.split to storage.

Write order:
1. insert the extracted singleton sale   (undo: delete it)
2. rewrite the original sale in place     (undo: restore the previous row)
3. rescale each existing installment row  (undo: restore the previous row)

The caller passes its CompensatingSequence so the split is undone together
with whatever the caller does next to the extracted sale.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Tuple
from uuid import UUID, uuid4

from domain.installment import Installment
from domain.sale import Sale
from domain.split import SplitResult, split_sale
from repositories.installment_repository import list_installments_by_sale, update_installment
from repositories.sale_repository import delete_sale, insert_sale, save_sale_if_status, update_sale
from services.unit_of_work import CompensatingSequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SplitPlan:
    original: Sale
    original_installments: Tuple[Installment, ...]
    result: SplitResult

    @property
    def extracted(self) -> Sale:
        return self.result.extracted

    @property
    def remainder(self) -> Sale:
        return self.result.remainder


def plan_split(sale: Sale, unit_id: UUID, *, now: Optional[datetime] = None) -> SplitPlan:
    """Read the sale's installments and compute the split without writing anything."""

    now = now or datetime.now(timezone.utc)
    installments = tuple(list_installments_by_sale(sale.sale_id))
    result = split_sale(
        sale,
        unit_id,
        new_sale_id=uuid4(),
        installments=installments,
        created_at=now,
    )
    return SplitPlan(original=sale, original_installments=installments, result=result)


def apply_split(plan: SplitPlan, steps: CompensatingSequence, *, now: Optional[datetime] = None) -> Sale:
    """
    Persist a planned split.

    Returns:
        The extracted singleton sale as stored
    """

    now = now or datetime.now(timezone.utc)
    original = plan.original
    extracted = plan.extracted

    stored = steps.run(
        "insert extracted sale",
        lambda: insert_sale(extracted),
        undo=lambda: delete_sale(extracted.sale_id),
    )
    steps.run(
        "rewrite original sale",
        lambda: save_sale_if_status(plan.remainder, original.status, updated_at=now),
        undo=lambda: update_sale(original, updated_at=now),
    )

    before = {inst.installment_id: inst for inst in plan.original_installments}
    for inst in plan.result.installments:
        old = before[inst.installment_id]
        steps.run(
            f"rescale installment {inst.sequence}",
            lambda inst=inst: update_installment(inst),
            undo=lambda old=old: update_installment(old),
        )

    logger.info(
        "Unit split off sale",
        extra={
            "sale_id": str(original.sale_id),
            "extracted_sale_id": str(extracted.sale_id),
            "unit_id": str(extracted.unit_ids[0]),
            "remaining_units": plan.remainder.unit_count,
            "rescaled_installments": len(plan.result.installments),
        },
    )
    return stored


__all__ = ["SplitPlan", "plan_split", "apply_split"]
