"""
Tests for `services/sale_lifecycle_service.py`.

Runs the lifecycle operations through the real repositories against the
in-memory database. Covers:
- Sale creation, validation and conditional reservation.
- Full and advance confirmation, with and without a unit split.
- Cancellation, refunds and unit release.
- Compensation after a failed step, and InconsistencyError when undoing fails.
- Storage failures partway through a multi-unit status move.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from domain.errors import (
    AvailabilityConflictError,
    InconsistencyError,
    NotFoundError,
    StateError,
    ValidationError,
)
from domain.sale import PaymentMode, SaleStatus
from repositories.unit_repository import get_units_by_ids
from services.sale_lifecycle_service import (
    cancel_sale,
    confirm_advance,
    confirm_full_payment,
    create_sale,
    load_sale,
)

NOW = datetime(2025, 1, 10, 9, 30, tzinfo=timezone.utc)
START = date(2025, 2, 1)


def _payments(db, kind: str) -> list:
    return [row for row in db.rows("payments") if row["kind"] == kind]


def _installment_sale(db, *, units: int = 1, price: str = "10000.00", reservation: str = "0.00"):
    client_id = UUID(db.add_client())
    unit_ids = [UUID(db.add_unit(f"L-{i:02d}", price_installment=price)) for i in range(units)]
    sale = create_sale(client_id, unit_ids, PaymentMode.INSTALLMENT, Decimal(reservation), now=NOW)
    return sale, unit_ids


def _full_sale(db, *, units: int = 1, reservation: str = "1000.00"):
    client_id = UUID(db.add_client())
    unit_ids = [UUID(db.add_unit(f"F-{i:02d}")) for i in range(units)]
    sale = create_sale(client_id, unit_ids, PaymentMode.FULL, Decimal(reservation), date(2025, 2, 10), now=NOW)
    return sale, unit_ids


# ---------------------------------------------------------------------------
# create
# ---------------------------------------------------------------------------


def test_create_full_sale_reserves_units_and_records_reservation(db) -> None:
    sale, (unit_id,) = _full_sale(db)

    assert sale.status is SaleStatus.AWAITING_PAYMENT
    assert sale.total_price == Decimal("10000.00")
    assert sale.total_cost == Decimal("6000.00")
    assert sale.profit_margin == Decimal("4000.00")
    assert sale.deadline == date(2025, 2, 10)
    assert db.unit_status(unit_id) == "Reserved"

    (entry,) = _payments(db, "SmallAdvance")
    assert Decimal(entry["amount"]) == Decimal("1000.00")
    assert db.sale_row(sale.sale_id)["profit_margin"] == "4000.00"


def test_create_installment_sale_uses_installment_price(db) -> None:
    sale, _ = _installment_sale(db, units=2, price="12000.00")

    assert sale.total_price == Decimal("24000.00")
    assert sale.payment_mode is PaymentMode.INSTALLMENT
    assert _payments(db, "SmallAdvance") == []


def test_create_rejects_empty_unit_list(db) -> None:
    client_id = UUID(db.add_client())

    with pytest.raises(ValidationError):
        create_sale(client_id, [], PaymentMode.FULL, now=NOW)


def test_create_rejects_reservation_above_price(db) -> None:
    client_id = UUID(db.add_client())
    unit_id = UUID(db.add_unit("L-01"))

    with pytest.raises(ValidationError):
        create_sale(client_id, [unit_id], PaymentMode.FULL, Decimal("10000.01"), now=NOW)

    assert db.rows("sales") == []
    assert db.unit_status(unit_id) == "Available"


def test_create_rejects_unit_without_price_for_mode(db) -> None:
    client_id = UUID(db.add_client())
    unit_id = UUID(db.add_unit("L-01", price_installment=None))

    with pytest.raises(ValidationError):
        create_sale(client_id, [unit_id], PaymentMode.INSTALLMENT, now=NOW)


def test_create_rejects_unknown_client_and_unit(db) -> None:
    unit_id = UUID(db.add_unit("L-01"))
    with pytest.raises(NotFoundError):
        create_sale(uuid4(), [unit_id], PaymentMode.FULL, now=NOW)

    client_id = UUID(db.add_client())
    with pytest.raises(NotFoundError):
        create_sale(client_id, [uuid4()], PaymentMode.FULL, now=NOW)


def test_create_rejects_unit_already_reserved(db) -> None:
    _, (unit_id,) = _full_sale(db)
    other_client = UUID(db.add_client("Karim Haddad"))

    with pytest.raises(AvailabilityConflictError) as exc_info:
        create_sale(other_client, [unit_id], PaymentMode.FULL, now=NOW)

    assert exc_info.value.unavailable_unit_ids == [unit_id]


def test_create_lost_race_rolls_back(db, monkeypatch) -> None:
    """The unit is taken between the availability read and the reservation write."""

    client_id = UUID(db.add_client())
    first = UUID(db.add_unit("L-01"))
    second = UUID(db.add_unit("L-02"))
    stale = get_units_by_ids([first, second])
    next(row for row in db.rows("units") if row["unit_id"] == str(second))["status"] = "Reserved"
    monkeypatch.setattr("services.sale_lifecycle_service.get_units_by_ids", lambda ids: stale)

    with pytest.raises(AvailabilityConflictError) as exc_info:
        create_sale(client_id, [first, second], PaymentMode.FULL, now=NOW)

    assert exc_info.value.unavailable_unit_ids == [second]
    assert db.unit_status(first) == "Available"
    assert db.rows("sales") == []


# ---------------------------------------------------------------------------
# confirm full
# ---------------------------------------------------------------------------


def test_confirm_full_payment(db) -> None:
    sale, (unit_id,) = _full_sale(db)

    done = confirm_full_payment(sale.sale_id, now=NOW)

    assert done.status is SaleStatus.COMPLETED
    assert db.unit_status(unit_id) == "Sold"
    (entry,) = _payments(db, "Full")
    assert Decimal(entry["amount"]) == Decimal("9000.00")


def test_confirm_full_twice_is_a_state_error(db) -> None:
    sale, _ = _full_sale(db)
    confirm_full_payment(sale.sale_id, now=NOW)

    with pytest.raises(StateError):
        confirm_full_payment(sale.sale_id, now=NOW)


def test_confirm_full_on_installment_sale_is_a_state_error(db) -> None:
    sale, _ = _installment_sale(db)

    with pytest.raises(StateError):
        confirm_full_payment(sale.sale_id, now=NOW)


def test_confirm_full_one_unit_of_two_splits_the_sale(db) -> None:
    sale, (first, second) = _full_sale(db, units=2)

    done = confirm_full_payment(sale.sale_id, first, now=NOW)

    assert done.sale_id != sale.sale_id
    assert done.unit_ids == (first,)
    assert done.status is SaleStatus.COMPLETED
    assert done.total_price == Decimal("10000.00")
    assert done.reservation_amount == Decimal("500.00")
    assert done.split_from_sale_id == sale.sale_id

    remainder = load_sale(sale.sale_id)
    assert remainder.unit_ids == (second,)
    assert remainder.status is SaleStatus.AWAITING_PAYMENT
    assert remainder.total_price == Decimal("10000.00")
    assert remainder.reservation_amount == Decimal("500.00")

    assert db.unit_status(first) == "Sold"
    assert db.unit_status(second) == "Reserved"
    (entry,) = _payments(db, "Full")
    assert Decimal(entry["amount"]) == Decimal("9500.00")
    assert entry["sale_id"] == str(done.sale_id)


def test_confirm_full_without_unit_confirms_whole_group(db) -> None:
    sale, unit_ids = _full_sale(db, units=2)

    done = confirm_full_payment(sale.sale_id, now=NOW)

    assert done.sale_id == sale.sale_id
    assert all(db.unit_status(u) == "Sold" for u in unit_ids)
    assert len(db.rows("sales")) == 1


def test_confirm_full_rejects_foreign_unit(db) -> None:
    sale, _ = _full_sale(db, units=2)

    with pytest.raises(ValidationError):
        confirm_full_payment(sale.sale_id, uuid4(), now=NOW)


# ---------------------------------------------------------------------------
# confirm advance
# ---------------------------------------------------------------------------


def test_confirm_advance_generates_schedule(db) -> None:
    """price=10000, advance=2000, 7 months -> 7 installments summing to 8000."""

    sale, (unit_id,) = _installment_sale(db)

    result = confirm_advance(sale.sale_id, Decimal("2000.00"), START, month_count=7, now=NOW)

    assert result.sale.status is SaleStatus.INSTALLMENTS_ONGOING
    assert result.sale.advance_amount == Decimal("2000.00")
    assert result.sale.month_count == 7
    assert result.sale.monthly_amount == Decimal("1142.86")
    assert result.remainder is None
    assert len(result.installments) == 7
    assert sum(i.amount_due for i in result.installments) == Decimal("8000.00")
    assert len(db.rows("installments")) == 7
    assert db.unit_status(unit_id) == "Sold"
    (entry,) = _payments(db, "BigAdvance")
    assert Decimal(entry["amount"]) == Decimal("2000.00")


def test_big_advance_includes_reservation(db) -> None:
    sale, _ = _installment_sale(db, reservation="500.00")

    result = confirm_advance(sale.sale_id, Decimal("1500.00"), START, monthly_amount=Decimal("800.00"), now=NOW)

    assert result.sale.month_count == 10
    (entry,) = _payments(db, "BigAdvance")
    assert Decimal(entry["amount"]) == Decimal("2000.00")


def test_confirm_advance_covering_price_completes_sale(db) -> None:
    sale, _ = _installment_sale(db)

    result = confirm_advance(sale.sale_id, Decimal("10000.00"), START, month_count=12, now=NOW)

    assert result.installments == ()
    assert result.sale.status is SaleStatus.COMPLETED
    assert db.rows("installments") == []


def test_confirm_advance_validation(db) -> None:
    sale, _ = _installment_sale(db)

    with pytest.raises(ValidationError):
        confirm_advance(sale.sale_id, Decimal("2000.00"), START, now=NOW)
    with pytest.raises(ValidationError):
        confirm_advance(sale.sale_id, Decimal("2000.00"), START, month_count=7, monthly_amount=Decimal("800"), now=NOW)
    with pytest.raises(ValidationError):
        confirm_advance(sale.sale_id, Decimal("10000.01"), START, month_count=7, now=NOW)
    with pytest.raises(ValidationError):
        confirm_advance(sale.sale_id, Decimal("-1.00"), START, month_count=7, now=NOW)

    assert load_sale(sale.sale_id).status is SaleStatus.AWAITING_PAYMENT
    assert db.rows("installments") == []


def test_confirm_advance_on_full_sale_is_a_state_error(db) -> None:
    sale, _ = _full_sale(db)

    with pytest.raises(StateError):
        confirm_advance(sale.sale_id, Decimal("2000.00"), START, month_count=7, now=NOW)


def test_confirm_advance_for_one_unit_splits_first(db) -> None:
    sale, (first, second) = _installment_sale(db, units=2, price="12000.00", reservation="1000.00")

    result = confirm_advance(sale.sale_id, Decimal("1500.00"), START, month_count=10, unit_id=first, now=NOW)

    assert result.sale.unit_ids == (first,)
    assert result.sale.total_price == Decimal("12000.00")
    assert result.sale.reservation_amount == Decimal("500.00")
    assert result.sale.status is SaleStatus.INSTALLMENTS_ONGOING
    assert sum(i.amount_due for i in result.installments) == Decimal("10000.00")
    assert all(i.sale_id == result.sale.sale_id for i in result.installments)

    assert result.remainder is not None
    assert result.remainder.unit_ids == (second,)
    assert load_sale(sale.sale_id).status is SaleStatus.AWAITING_PAYMENT
    assert db.unit_status(second) == "Reserved"


# ---------------------------------------------------------------------------
# compensation
# ---------------------------------------------------------------------------


def test_failed_schedule_write_is_compensated(db) -> None:
    sale, (unit_id,) = _installment_sale(db)
    db.fail("installments", "insert")

    with pytest.raises(RuntimeError):
        confirm_advance(sale.sale_id, Decimal("2000.00"), START, month_count=7, now=NOW)

    assert db.sale_row(sale.sale_id)["status"] == "AwaitingPayment"
    assert db.unit_status(unit_id) == "Reserved"
    assert _payments(db, "BigAdvance") == []


def test_failed_compensation_raises_inconsistency_error(db) -> None:
    sale, (unit_id,) = _installment_sale(db)
    db.fail("installments", "insert")
    db.fail("units", "update", skip=1)

    with pytest.raises(InconsistencyError) as exc_info:
        confirm_advance(sale.sale_id, Decimal("2000.00"), START, month_count=7, now=NOW)

    err = exc_info.value
    assert err.operation == "confirm_advance"
    assert err.failed_step == "write schedule"
    assert len(err.compensation_failures) == 1
    assert "mark units sold" in err.compensation_failures[0]
    assert isinstance(err.__cause__, RuntimeError)
    # The other undo steps still ran.
    assert db.sale_row(sale.sale_id)["status"] == "AwaitingPayment"
    assert _payments(db, "BigAdvance") == []
    assert db.unit_status(unit_id) == "Sold"


def test_failed_reservation_payment_undoes_sale_creation(db) -> None:
    client_id = UUID(db.add_client())
    unit_id = UUID(db.add_unit("L-01"))
    db.fail("payments", "insert")

    with pytest.raises(RuntimeError):
        create_sale(client_id, [unit_id], PaymentMode.FULL, Decimal("1000.00"), now=NOW)

    assert db.rows("sales") == []
    assert db.unit_status(unit_id) == "Available"


# ---------------------------------------------------------------------------
# cancel
# ---------------------------------------------------------------------------


def test_cancel_ongoing_sale_with_refund(db) -> None:
    sale, (unit_id,) = _installment_sale(db)
    confirm_advance(sale.sale_id, Decimal("2000.00"), START, month_count=7, now=NOW)

    cancelled = cancel_sale(sale.sale_id, Decimal("500.00"), now=NOW)

    assert cancelled.status is SaleStatus.CANCELLED
    assert db.unit_status(unit_id) == "Available"
    assert db.rows("installments") == []
    (refund,) = _payments(db, "Refund")
    assert Decimal(refund["amount"]) == Decimal("500.00")
    assert len(_payments(db, "BigAdvance")) == 1


def test_cancel_reserved_sale_releases_units(db) -> None:
    sale, unit_ids = _full_sale(db, units=2)

    cancel_sale(sale.sale_id, now=NOW)

    assert all(db.unit_status(u) == "Available" for u in unit_ids)
    assert _payments(db, "Refund") == []


def test_refund_cannot_exceed_cash_received(db) -> None:
    sale, _ = _full_sale(db)

    with pytest.raises(ValidationError):
        cancel_sale(sale.sale_id, Decimal("1000.01"), now=NOW)
    with pytest.raises(ValidationError):
        cancel_sale(sale.sale_id, Decimal("-1"), now=NOW)


def test_cancel_completed_or_cancelled_is_a_state_error(db) -> None:
    done, _ = _full_sale(db)
    confirm_full_payment(done.sale_id, now=NOW)
    with pytest.raises(StateError):
        cancel_sale(done.sale_id, now=NOW)

    gone, _ = _full_sale(db)
    cancel_sale(gone.sale_id, now=NOW)
    with pytest.raises(StateError):
        cancel_sale(gone.sale_id, now=NOW)


def test_cancel_one_unit_of_ongoing_sale(db) -> None:
    sale, (first, second) = _installment_sale(db, units=2, price="12000.00")
    confirm_advance(sale.sale_id, Decimal("4000.00"), START, month_count=10, now=NOW)

    cancelled = cancel_sale(sale.sale_id, unit_id=first, now=NOW)

    assert cancelled.sale_id != sale.sale_id
    assert cancelled.status is SaleStatus.CANCELLED
    assert cancelled.unit_ids == (first,)
    assert cancelled.total_price == Decimal("12000.00")

    remainder = load_sale(sale.sale_id)
    assert remainder.status is SaleStatus.INSTALLMENTS_ONGOING
    assert remainder.unit_ids == (second,)
    assert remainder.total_price == Decimal("12000.00")
    assert remainder.advance_amount == Decimal("2000.00")
    assert remainder.monthly_amount == Decimal("1000.00")

    rows = db.rows("installments")
    assert len(rows) == 10
    assert all(Decimal(row["amount_due"]) == Decimal("1000.00") for row in rows)
    assert db.unit_status(first) == "Available"
    assert db.unit_status(second) == "Sold"


# ---------------------------------------------------------------------------
# unit writes failing partway through a batch
# ---------------------------------------------------------------------------


def test_create_unit_write_failure_releases_units_already_reserved(db) -> None:
    client_id = UUID(db.add_client())
    first, second = UUID(db.add_unit("L-01")), UUID(db.add_unit("L-02"))
    db.fail("units", "update", skip=1)

    with pytest.raises(RuntimeError, match="injected failure"):
        create_sale(client_id, [first, second], PaymentMode.FULL, now=NOW)

    assert db.rows("sales") == []
    assert db.unit_status(first) == "Available"
    assert db.unit_status(second) == "Available"


def test_confirm_unit_write_failure_keeps_units_reserved(db) -> None:
    sale, (first, second) = _full_sale(db, units=2)
    db.fail("units", "update", skip=1)

    with pytest.raises(RuntimeError, match="injected failure"):
        confirm_full_payment(sale.sale_id, now=NOW)

    assert load_sale(sale.sale_id).status is SaleStatus.AWAITING_PAYMENT
    assert db.unit_status(first) == "Reserved"
    assert db.unit_status(second) == "Reserved"
    assert _payments(db, "Full") == []


def test_cancel_unit_write_failure_keeps_sale_and_units(db) -> None:
    sale, (first, second) = _full_sale(db, units=2)
    db.fail("units", "update", skip=1)

    with pytest.raises(RuntimeError, match="injected failure"):
        cancel_sale(sale.sale_id, now=NOW)

    assert load_sale(sale.sale_id).status is SaleStatus.AWAITING_PAYMENT
    assert db.unit_status(first) == "Reserved"
    assert db.unit_status(second) == "Reserved"


def test_unit_write_failure_with_failed_put_back_is_inconsistent(db) -> None:
    client_id = UUID(db.add_client())
    first, second = UUID(db.add_unit("L-01")), UUID(db.add_unit("L-02"))
    db.fail("units", "update", skip=1, times=2)

    with pytest.raises(InconsistencyError) as excinfo:
        create_sale(client_id, [first, second], PaymentMode.FULL, now=NOW)

    assert excinfo.value.failed_step == f"update unit {second}"
    assert len(excinfo.value.compensation_failures) == 1
    assert str(first) in excinfo.value.compensation_failures[0]
    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert db.rows("sales") == []
    assert db.unit_status(first) == "Reserved"
