"""
Client repository for buyer records.

The engine only reads clients, to check that the buyer of a new sale exists.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional
from uuid import UUID

from domain.client import Client
from repositories.client import get_supabase
from repositories.rows import execute, parse_optional_datetime

_CLIENTS_TABLE: str = "clients"


def _row_to_client(row: Mapping[str, Any]) -> Client:
    return Client(
        client_id=UUID(str(row["client_id"])),
        full_name=str(row["full_name"]),
        phone=row.get("phone"),
        id_number=row.get("id_number"),
        email=row.get("email"),
        address=row.get("address"),
        created_at=parse_optional_datetime(row.get("created_at_utc")),
    )


def get_client_by_id(client_id: UUID) -> Optional[Client]:
    """
    Get a client by their ID.

    Args:
        client_id: UUID of the client

    Returns:
        Client domain model or None if not found

    Example:
        client = get_client_by_id(UUID('12345678-1234-1234-1234-123456789012'))
        if client is None:
            # Reject the sale
    """
    query = (
        get_supabase()
        .table(_CLIENTS_TABLE)
        .select("*")
        .eq("client_id", str(client_id))
        .limit(1)
    )
    rows = execute(query, "fetch client")
    if not rows:
        return None
    return _row_to_client(rows[0])


__all__ = ["get_client_by_id"]
