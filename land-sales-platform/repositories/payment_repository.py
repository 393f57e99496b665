"""
Payment repository (persistence).

The payments table is an append-only ledger. The only delete is used to undo
an entry written by an operation that failed partway.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Mapping, Sequence
from uuid import UUID

from domain.payment import Payment, PaymentKind
from repositories.client import get_supabase
from repositories.rows import (
    execute,
    parse_date,
    parse_money,
    parse_optional_datetime,
    parse_optional_uuid,
    to_iso_utc,
    uuid_or_none,
)

# Supabase table name for ledger entries.
# Keep this aligned with your database schema.
_PAYMENTS_TABLE: str = "payments"


def _row_to_payment(row: Mapping[str, Any]) -> Payment:
    """Convert a Supabase row into a Payment."""

    return Payment(
        payment_id=UUID(str(row["payment_id"])),
        client_id=UUID(str(row["client_id"])),
        sale_id=UUID(str(row["sale_id"])),
        amount=parse_money(row["amount"]),
        kind=PaymentKind(str(row["kind"])),
        payment_date=parse_date(row["payment_date"]),
        installment_id=parse_optional_uuid(row.get("installment_id")),
        idempotency_key=row.get("idempotency_key"),
        created_at=parse_optional_datetime(row.get("created_at_utc")),
    )


def _payment_to_row(payment: Payment) -> dict[str, Any]:
    created_at = payment.created_at or datetime.now(timezone.utc)
    return {
        "payment_id": str(payment.payment_id),
        "client_id": str(payment.client_id),
        "sale_id": str(payment.sale_id),
        "installment_id": uuid_or_none(payment.installment_id),
        "amount": str(payment.amount),
        "kind": payment.kind.value,
        "payment_date": payment.payment_date.isoformat(),
        "idempotency_key": payment.idempotency_key,
        "created_at_utc": to_iso_utc(created_at, name="created_at"),
    }


def insert_payments(payments: Sequence[Payment]) -> None:
    """Append ledger entries in one request."""

    if not payments:
        return
    payload = [_payment_to_row(p) for p in payments]
    execute(get_supabase().table(_PAYMENTS_TABLE).insert(payload), "insert payments")


def insert_payment(payment: Payment) -> None:
    insert_payments([payment])


def list_payments_by_sale(sale_id: UUID) -> List[Payment]:
    query = (
        get_supabase()
        .table(_PAYMENTS_TABLE)
        .select("*")
        .eq("sale_id", str(sale_id))
        .order("created_at_utc")
    )
    return [_row_to_payment(row) for row in execute(query, "list payments")]


def list_payments_by_idempotency_key(sale_id: UUID, key: str) -> List[Payment]:
    query = (
        get_supabase()
        .table(_PAYMENTS_TABLE)
        .select("*")
        .eq("sale_id", str(sale_id))
        .eq("idempotency_key", key)
    )
    return [_row_to_payment(row) for row in execute(query, "look up payment by idempotency key")]


def delete_payments(payment_ids: Sequence[UUID]) -> None:
    """Undo ledger entries written by a failed operation."""

    if not payment_ids:
        return
    query = (
        get_supabase()
        .table(_PAYMENTS_TABLE)
        .delete()
        .in_("payment_id", [str(p) for p in payment_ids])
    )
    execute(query, "delete payments")


__all__ = [
    "insert_payments",
    "insert_payment",
    "list_payments_by_sale",
    "list_payments_by_idempotency_key",
    "delete_payments",
]
