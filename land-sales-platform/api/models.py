"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from domain.installment import Installment
from domain.overdue import InstallmentSummary, OverdueView, classify
from domain.payment import Payment, SaleProgress
from domain.sale import PaymentMode, Sale
from services.consistency_service import UnitConsistencyReport


# ============================================================================
# Sale Models
# ============================================================================

class CreateSaleRequest(BaseModel):
    """Request to create a sale over one or more units."""
    client_id: UUID
    unit_ids: List[UUID] = Field(..., min_length=1, description="Units to sell together")
    payment_mode: PaymentMode
    reservation_amount: Decimal = Decimal("0")
    deadline: Optional[date] = None
    advance_due_date: Optional[date] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "client_id": "123e4567-e89b-12d3-a456-426614174002",
                "unit_ids": [
                    "123e4567-e89b-12d3-a456-426614174000",
                    "123e4567-e89b-12d3-a456-426614174001"
                ],
                "payment_mode": "Installment",
                "reservation_amount": "500.00",
                "deadline": "2025-02-15"
            }
        }
    )


class ConfirmFullRequest(BaseModel):
    """Confirm full payment; unit_id extracts one unit of a multi-unit sale first."""
    unit_id: Optional[UUID] = None
    payment_date: Optional[date] = None


class ConfirmAdvanceRequest(BaseModel):
    """Confirm the advance and generate the schedule from exactly one of month_count/monthly_amount."""
    advance_amount_paid: Decimal
    start_date: date
    month_count: Optional[int] = None
    monthly_amount: Optional[Decimal] = None
    unit_id: Optional[UUID] = None
    payment_date: Optional[date] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "advance_amount_paid": "2000.00",
                "start_date": "2025-03-01",
                "month_count": 7
            }
        }
    )


class RecordPaymentRequest(BaseModel):
    """Apply one payment to the next months_to_apply unpaid installments."""
    amount: Decimal
    months_to_apply: int = 1
    idempotency_key: Optional[str] = Field(None, max_length=200)
    payment_date: Optional[date] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "amount": "1500.00",
                "months_to_apply": 2,
                "idempotency_key": "receipt-2025-0042"
            }
        }
    )


class CancelSaleRequest(BaseModel):
    """Cancel a sale or, with unit_id, one unit of it."""
    refund_amount: Optional[Decimal] = None
    unit_id: Optional[UUID] = None
    payment_date: Optional[date] = None


class SaleResponse(BaseModel):
    sale_id: UUID
    client_id: UUID
    unit_ids: List[UUID]
    payment_mode: str
    status: str
    total_cost: Decimal
    total_price: Decimal
    profit_margin: Decimal
    reservation_amount: Decimal
    advance_amount: Decimal
    sale_date: date
    deadline: Optional[date] = None
    advance_due_date: Optional[date] = None
    installment_start_date: Optional[date] = None
    month_count: Optional[int] = None
    monthly_amount: Optional[Decimal] = None
    split_from_sale_id: Optional[UUID] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, sale: Sale) -> "SaleResponse":
        return cls(
            sale_id=sale.sale_id,
            client_id=sale.client_id,
            unit_ids=list(sale.unit_ids),
            payment_mode=sale.payment_mode.value,
            status=sale.status.value,
            total_cost=sale.total_cost,
            total_price=sale.total_price,
            profit_margin=sale.profit_margin,
            reservation_amount=sale.reservation_amount,
            advance_amount=sale.advance_amount,
            sale_date=sale.sale_date,
            deadline=sale.deadline,
            advance_due_date=sale.advance_due_date,
            installment_start_date=sale.installment_start_date,
            month_count=sale.month_count,
            monthly_amount=sale.monthly_amount,
            split_from_sale_id=sale.split_from_sale_id,
            created_at=sale.created_at,
        )


# ============================================================================
# Installment and Payment Models
# ============================================================================

class InstallmentResponse(BaseModel):
    """One installment with its live overdue classification."""
    installment_id: UUID
    sequence: int
    due_date: date
    amount_due: Decimal
    stacked_amount: Decimal
    amount_paid: Decimal
    outstanding: Decimal
    status: str  # derived from due_date and today
    stored_status: str
    is_overdue: bool
    days_until_due: int
    days_late: int
    paid_date: Optional[date] = None

    @classmethod
    def from_view(cls, view: OverdueView) -> "InstallmentResponse":
        inst = view.installment
        return cls(
            installment_id=inst.installment_id,
            sequence=inst.sequence,
            due_date=inst.due_date,
            amount_due=inst.amount_due,
            stacked_amount=inst.stacked_amount,
            amount_paid=inst.amount_paid,
            outstanding=view.outstanding,
            status=view.status.value,
            stored_status=inst.status.value,
            is_overdue=view.is_overdue,
            days_until_due=view.days_until_due,
            days_late=view.days_late,
            paid_date=inst.paid_date,
        )


def installment_list(installments: Tuple[Installment, ...], today: date) -> List[InstallmentResponse]:
    ordered = sorted(installments, key=lambda i: i.sequence)
    return [InstallmentResponse.from_view(classify(inst, today)) for inst in ordered]


class PaymentResponse(BaseModel):
    payment_id: UUID
    sale_id: UUID
    installment_id: Optional[UUID] = None
    amount: Decimal
    kind: str
    payment_date: date
    idempotency_key: Optional[str] = None

    @classmethod
    def from_domain(cls, payment: Payment) -> "PaymentResponse":
        return cls(
            payment_id=payment.payment_id,
            sale_id=payment.sale_id,
            installment_id=payment.installment_id,
            amount=payment.amount,
            kind=payment.kind.value,
            payment_date=payment.payment_date,
            idempotency_key=payment.idempotency_key,
        )


class AdvanceConfirmationResponse(BaseModel):
    sale: SaleResponse
    installments: List[InstallmentResponse]
    remainder_sale: Optional[SaleResponse] = None


class PaymentResultResponse(BaseModel):
    sale: SaleResponse
    installments: List[InstallmentResponse]
    payments: List[PaymentResponse]
    replayed: bool

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "sale": {},
                "installments": [],
                "payments": [
                    {"amount": "800.00", "kind": "Installment"},
                    {"amount": "700.00", "kind": "Installment"}
                ],
                "replayed": False
            }
        }
    )


class InstallmentSummaryResponse(BaseModel):
    total_due: Decimal
    total_paid: Decimal
    total_overdue: Decimal
    installment_count: int
    overdue_count: int
    client_count: int
    clients_with_overdue: int

    @classmethod
    def from_domain(cls, summary: InstallmentSummary) -> "InstallmentSummaryResponse":
        return cls(
            total_due=summary.total_due,
            total_paid=summary.total_paid,
            total_overdue=summary.total_overdue,
            installment_count=summary.installment_count,
            overdue_count=summary.overdue_count,
            client_count=summary.client_count,
            clients_with_overdue=summary.clients_with_overdue,
        )


class SaleProgressResponse(BaseModel):
    total_price: Decimal
    paid_toward_price: Decimal
    remaining: Decimal
    percent: Decimal
    cash_received: Decimal
    refunded: Decimal

    @classmethod
    def from_domain(cls, progress: SaleProgress) -> "SaleProgressResponse":
        return cls(
            total_price=progress.total_price,
            paid_toward_price=progress.paid_toward_price,
            remaining=progress.remaining,
            percent=progress.percent,
            cash_received=progress.cash_received,
            refunded=progress.refunded,
        )


# ============================================================================
# Unit Models
# ============================================================================

class UnitConsistencyResponse(BaseModel):
    unit_id: UUID
    unit_number: str
    status: str
    active_sale_ids: List[UUID]
    is_consistent: bool
    issues: List[str]
    recommended_action: str

    @classmethod
    def from_domain(cls, report: UnitConsistencyReport) -> "UnitConsistencyResponse":
        return cls(
            unit_id=report.unit_id,
            unit_number=report.unit_number,
            status=report.status.value,
            active_sale_ids=list(report.active_sale_ids),
            is_consistent=report.is_consistent,
            issues=list(report.issues),
            recommended_action=report.action.value,
        )


class ErrorResponse(BaseModel):
    """Body of every engine error response."""
    error: str
    detail: str
    unavailable_unit_ids: Optional[List[UUID]] = None
    failed_step: Optional[str] = None
    compensation_failures: Optional[List[str]] = None
