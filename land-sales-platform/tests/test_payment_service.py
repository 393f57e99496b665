"""
Tests for `services/payment_service.py` and `services/installment_report_service.py`.

Covers:
- One ledger entry per touched installment, carrying the applied amount.
- Sale status recomputed after each payment (Completed once all are Paid).
- Idempotency keys make retries safe.
- Reports derive overdue figures from due dates.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import UUID

import pytest

from domain.errors import StateError, ValidationError
from domain.installment import InstallmentStatus
from domain.sale import PaymentMode, SaleStatus
from services.installment_report_service import (
    get_installment_summary,
    get_sale_progress,
    get_schedule_view,
    refresh_late_flags,
)
from services.payment_service import record_payment
from services.sale_lifecycle_service import confirm_advance, create_sale, load_sale

NOW = datetime(2025, 1, 10, 9, 30, tzinfo=timezone.utc)
START = date(2025, 2, 1)


def _ongoing_sale(db, *, advance: str = "8400.00", months: int = 2, client_name: str = "Amina Benali"):
    """price 10000, advance 8400, 2 months -> two installments of 800."""

    client_id = UUID(db.add_client(client_name))
    unit_id = UUID(db.add_unit(f"L-{len(db.rows('units')):02d}", price_installment="10000.00"))
    sale = create_sale(client_id, [unit_id], PaymentMode.INSTALLMENT, now=NOW)
    confirm_advance(sale.sale_id, Decimal(advance), START, month_count=months, now=NOW)
    return sale.sale_id


def _installment_payments(db) -> list:
    return [row for row in db.rows("payments") if row["kind"] == "Installment"]


def test_payment_spread_over_two_installments(db) -> None:
    sale_id = _ongoing_sale(db)

    result = record_payment(sale_id, Decimal("1500.00"), 2, now=NOW)

    assert [i.status for i in result.installments] == [InstallmentStatus.PAID, InstallmentStatus.PARTIAL]
    assert [p.amount for p in result.payments] == [Decimal("800.00"), Decimal("700.00")]
    assert [p.installment_id for p in result.payments] == [i.installment_id for i in result.installments]
    assert result.sale.status is SaleStatus.INSTALLMENTS_ONGOING
    assert len(_installment_payments(db)) == 2


def test_last_payment_completes_sale(db) -> None:
    sale_id = _ongoing_sale(db)
    record_payment(sale_id, Decimal("1500.00"), 2, now=NOW)

    result = record_payment(sale_id, Decimal("100.00"), now=NOW)

    assert result.sale.status is SaleStatus.COMPLETED
    assert load_sale(sale_id).status is SaleStatus.COMPLETED
    assert all(i.is_paid for i in result.installments)

    with pytest.raises(ValidationError):
        record_payment(sale_id, Decimal("1.00"), now=NOW)


def test_retry_with_same_key_is_not_applied_twice(db) -> None:
    sale_id = _ongoing_sale(db)

    first = record_payment(sale_id, Decimal("1500.00"), 2, idempotency_key="receipt-42", now=NOW)
    again = record_payment(sale_id, Decimal("1500.00"), 2, idempotency_key="receipt-42", now=NOW)

    assert not first.replayed
    assert again.replayed
    assert {p.payment_id for p in again.payments} == {p.payment_id for p in first.payments}
    assert len(_installment_payments(db)) == 2
    assert [i.amount_paid for i in again.installments] == [Decimal("800.00"), Decimal("700.00")]


def test_different_keys_are_separate_payments(db) -> None:
    sale_id = _ongoing_sale(db)

    record_payment(sale_id, Decimal("800.00"), idempotency_key="a", now=NOW)
    record_payment(sale_id, Decimal("800.00"), idempotency_key="b", now=NOW)

    assert len(_installment_payments(db)) == 2
    assert load_sale(sale_id).status is SaleStatus.COMPLETED


def test_rejects_invalid_amounts(db) -> None:
    sale_id = _ongoing_sale(db)

    with pytest.raises(ValidationError):
        record_payment(sale_id, Decimal("0"), now=NOW)
    with pytest.raises(ValidationError):
        record_payment(sale_id, "abc", now=NOW)
    with pytest.raises(ValidationError):
        record_payment(sale_id, Decimal("1600.01"), 2, now=NOW)


def test_sale_awaiting_advance_does_not_accept_payments(db) -> None:
    client_id = UUID(db.add_client())
    unit_id = UUID(db.add_unit("L-01"))
    sale = create_sale(client_id, [unit_id], PaymentMode.INSTALLMENT, now=NOW)

    with pytest.raises(StateError):
        record_payment(sale.sale_id, Decimal("100.00"), now=NOW)


def test_failed_ledger_write_restores_installments(db) -> None:
    sale_id = _ongoing_sale(db)
    db.fail("payments", "insert")

    with pytest.raises(RuntimeError):
        record_payment(sale_id, Decimal("1500.00"), 2, now=NOW)

    rows = db.rows("installments")
    assert all(row["status"] == "Unpaid" for row in rows)
    assert all(Decimal(row["amount_paid"]) == Decimal("0") for row in rows)


def test_schedule_view_classifies_overdue(db) -> None:
    sale_id = _ongoing_sale(db)
    record_payment(sale_id, Decimal("300.00"), now=NOW)

    views = get_schedule_view(sale_id, date(2025, 2, 15))

    assert [v.installment.sequence for v in views] == [1, 2]
    assert views[0].is_overdue
    assert views[0].status is InstallmentStatus.LATE
    assert views[0].outstanding == Decimal("500.00")
    assert views[0].days_late == 14
    assert not views[1].is_overdue
    assert views[1].days_until_due == 14


def test_summary_across_sales(db) -> None:
    first = _ongoing_sale(db)
    _ongoing_sale(db, client_name="Karim Haddad")
    record_payment(first, Decimal("800.00"), now=NOW)

    summary = get_installment_summary(date(2025, 2, 2))

    assert summary.installment_count == 4
    assert summary.total_due == Decimal("3200.00")
    assert summary.total_paid == Decimal("800.00")
    assert summary.overdue_count == 1
    assert summary.total_overdue == Decimal("800.00")
    assert summary.client_count == 2
    assert summary.clients_with_overdue == 1


def test_sale_progress(db) -> None:
    sale_id = _ongoing_sale(db)
    record_payment(sale_id, Decimal("1500.00"), 2, now=NOW)

    progress = get_sale_progress(sale_id)

    assert progress.paid_toward_price == Decimal("9900.00")
    assert progress.remaining == Decimal("100.00")
    assert progress.percent == Decimal("99.00")
    assert progress.cash_received == Decimal("9900.00")
    assert progress.refunded == Decimal("0")


def test_refresh_late_flags_is_display_only(db) -> None:
    sale_id = _ongoing_sale(db)

    flagged = refresh_late_flags(date(2025, 2, 2))

    assert flagged == 1
    statuses = sorted(row["status"] for row in db.rows("installments"))
    assert statuses == ["Late", "Unpaid"]

    result = record_payment(sale_id, Decimal("800.00"), now=NOW)
    assert result.installments[0].status is InstallmentStatus.PAID
