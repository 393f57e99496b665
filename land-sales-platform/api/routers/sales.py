"""
Sales API Endpoints.

Endpoints for the sale lifecycle: creation, full-payment and advance
confirmation, installment payments and cancellation. Engine errors propagate
to the exception handlers registered in api.main.
"""

from datetime import date, datetime, timezone
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter

from api.models import (
    AdvanceConfirmationResponse,
    CancelSaleRequest,
    ConfirmAdvanceRequest,
    ConfirmFullRequest,
    CreateSaleRequest,
    InstallmentResponse,
    PaymentResponse,
    PaymentResultResponse,
    RecordPaymentRequest,
    SaleProgressResponse,
    SaleResponse,
    installment_list,
)
from services.installment_report_service import get_sale_progress, get_schedule_view
from services.payment_service import record_payment
from services.sale_lifecycle_service import (
    cancel_sale,
    confirm_advance,
    confirm_full_payment,
    create_sale,
    load_sale,
)

router = APIRouter()


def _today() -> date:
    return datetime.now(timezone.utc).date()


@router.post(
    "/sales",
    response_model=SaleResponse,
    status_code=201,
    summary="Create Sale",
    description="Create a sale over Available units and reserve them."
)
def create_sale_endpoint(request: CreateSaleRequest):
    """
    Create a sale.

    Totals come from the units' prices for the chosen payment mode. The units
    are reserved with a conditional update; a unit taken in the meantime
    yields 409 with `unavailable_unit_ids`.
    """
    sale = create_sale(
        client_id=request.client_id,
        unit_ids=request.unit_ids,
        payment_mode=request.payment_mode,
        reservation_amount=request.reservation_amount,
        deadline=request.deadline,
        advance_due_date=request.advance_due_date,
    )
    return SaleResponse.from_domain(sale)


@router.get("/sales/{sale_id}", response_model=SaleResponse, summary="Get Sale")
def get_sale_endpoint(sale_id: UUID):
    return SaleResponse.from_domain(load_sale(sale_id))


@router.post(
    "/sales/{sale_id}/confirm-full",
    response_model=SaleResponse,
    summary="Confirm Full Payment",
)
def confirm_full_endpoint(sale_id: UUID, request: ConfirmFullRequest):
    sale = confirm_full_payment(sale_id, request.unit_id, payment_date=request.payment_date)
    return SaleResponse.from_domain(sale)


@router.post(
    "/sales/{sale_id}/confirm-advance",
    response_model=AdvanceConfirmationResponse,
    summary="Confirm Advance",
    description="Confirm the advance of an Installment sale and generate its schedule."
)
def confirm_advance_endpoint(sale_id: UUID, request: ConfirmAdvanceRequest):
    result = confirm_advance(
        sale_id,
        request.advance_amount_paid,
        request.start_date,
        month_count=request.month_count,
        monthly_amount=request.monthly_amount,
        unit_id=request.unit_id,
        payment_date=request.payment_date,
    )
    return AdvanceConfirmationResponse(
        sale=SaleResponse.from_domain(result.sale),
        installments=installment_list(result.installments, _today()),
        remainder_sale=SaleResponse.from_domain(result.remainder) if result.remainder else None,
    )


@router.post(
    "/sales/{sale_id}/payments",
    response_model=PaymentResultResponse,
    summary="Record Installment Payment",
)
def record_payment_endpoint(sale_id: UUID, request: RecordPaymentRequest):
    """
    Record a payment against the next unpaid installments.

    Send the same `idempotency_key` when retrying; the payment is applied once.
    """
    result = record_payment(
        sale_id,
        request.amount,
        request.months_to_apply,
        idempotency_key=request.idempotency_key,
        payment_date=request.payment_date,
    )
    return PaymentResultResponse(
        sale=SaleResponse.from_domain(result.sale),
        installments=installment_list(result.installments, _today()),
        payments=[PaymentResponse.from_domain(p) for p in result.payments],
        replayed=result.replayed,
    )


@router.post("/sales/{sale_id}/cancel", response_model=SaleResponse, summary="Cancel Sale")
def cancel_sale_endpoint(sale_id: UUID, request: CancelSaleRequest):
    sale = cancel_sale(
        sale_id,
        request.refund_amount,
        unit_id=request.unit_id,
        payment_date=request.payment_date,
    )
    return SaleResponse.from_domain(sale)


@router.get(
    "/sales/{sale_id}/installments",
    response_model=List[InstallmentResponse],
    summary="Installment Schedule",
    description="The sale's schedule with overdue status computed from due dates."
)
def list_installments_endpoint(sale_id: UUID, today: Optional[date] = None):
    views = get_schedule_view(sale_id, today)
    return [InstallmentResponse.from_view(view) for view in views]


@router.get("/sales/{sale_id}/progress", response_model=SaleProgressResponse, summary="Payment Progress")
def sale_progress_endpoint(sale_id: UUID):
    return SaleProgressResponse.from_domain(get_sale_progress(sale_id))
