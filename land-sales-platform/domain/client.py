"""
Domain: Client (buyer).

A client is the person a Sale is made to. Identity checks and account
management live outside the engine; the engine only needs to know the client
exists.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

from .time import require_utc_timestamp


@dataclass(frozen=True, slots=True)
class Client:
    client_id: UUID
    full_name: str

    # Optional profile information
    phone: Optional[str] = None
    id_number: Optional[str] = None  # national identity card number
    email: Optional[str] = None
    address: Optional[str] = None

    created_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        """Validate timestamps are UTC-aware."""
        if not self.full_name.strip():
            raise ValueError("full_name must not be empty")
        if self.created_at is not None:
            require_utc_timestamp("created_at", self.created_at)
