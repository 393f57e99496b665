"""
Installment report endpoints.
"""

from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Query

from api.models import InstallmentSummaryResponse
from services.installment_report_service import get_installment_summary

router = APIRouter()


@router.get(
    "/installments/summary",
    response_model=InstallmentSummaryResponse,
    summary="Installment Summary",
    description="Totals due, paid and overdue across sales; overdue is derived from due dates."
)
def installment_summary_endpoint(
    today: Optional[date] = None,
    sale_id: Optional[List[UUID]] = Query(None, description="Restrict to these sales"),
):
    summary = get_installment_summary(today, sale_id)
    return InstallmentSummaryResponse.from_domain(summary)
