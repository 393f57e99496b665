"""
Read-side reports over installments and payments.

Everything overdue-related is derived from due dates and an explicit "today";
the stored Late flag is only written by refresh_late_flags() for display.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Iterable, Optional, Tuple
from uuid import UUID

from domain.overdue import InstallmentSummary, OverdueView, overdue_views, summarize
from domain.payment import SaleProgress, sale_progress
from repositories.installment_repository import (
    flag_late_installments,
    list_installments,
    list_installments_by_sale,
)
from repositories.payment_repository import list_payments_by_sale
from repositories.sale_repository import list_sales_by_ids
from services.sale_lifecycle_service import load_sale

logger = logging.getLogger(__name__)


def _today(today: Optional[date]) -> date:
    return today or datetime.now(timezone.utc).date()


def get_schedule_view(sale_id: UUID, today: Optional[date] = None) -> Tuple[OverdueView, ...]:
    """A sale's schedule with live overdue classification, in sequence order."""

    load_sale(sale_id)
    return overdue_views(list_installments_by_sale(sale_id), _today(today))


def get_installment_summary(
    today: Optional[date] = None,
    sale_ids: Optional[Iterable[UUID]] = None,
) -> InstallmentSummary:
    """
    Totals across installments (all sales, or only `sale_ids`).

    Example:
        summary = get_installment_summary(date(2025, 6, 1))
        summary.overdue_count, summary.clients_with_overdue
    """

    installments = list_installments(list(sale_ids) if sale_ids is not None else None)
    sales = list_sales_by_ids({inst.sale_id for inst in installments})
    client_by_sale = {sale.sale_id: sale.client_id for sale in sales}
    return summarize(installments, _today(today), client_by_sale)


def get_sale_progress(sale_id: UUID) -> SaleProgress:
    sale = load_sale(sale_id)
    return sale_progress(sale, list_installments_by_sale(sale_id), list_payments_by_sale(sale_id))


def refresh_late_flags(today: Optional[date] = None) -> int:
    """Stamp the display-only Late flag on unpaid installments past due."""

    today = _today(today)
    flagged = flag_late_installments(today)
    logger.info("Late flags refreshed", extra={"today": today.isoformat(), "flagged": flagged})
    return flagged


__all__ = [
    "get_schedule_view",
    "get_installment_summary",
    "get_sale_progress",
    "refresh_late_flags",
]
