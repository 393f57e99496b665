"""
Row conversion helpers shared by the repository modules.

Supabase returns numeric columns as numbers or strings and timestamps as
ISO-8601 strings; everything goes through these helpers on the way in and out.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, List, Optional
from uuid import UUID

from postgrest.exceptions import APIError  # type: ignore[import-not-found]

from domain.money import to_money
from domain.time import require_utc_timestamp


def to_iso_utc(dt: datetime, *, name: str) -> str:
    """Serialize a UTC datetime to ISO-8601 (timezone-aware, offset 0)."""

    require_utc_timestamp(name, dt)
    return dt.astimezone(timezone.utc).isoformat()


def parse_utc_datetime(value: Any) -> datetime:
    """
    Parse a Supabase timestamp into a timezone-aware UTC datetime.

    Supabase commonly returns ISO-8601 strings, sometimes with a trailing 'Z'.
    """

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise TypeError(f"Unsupported timestamp type: {type(value)!r}")

    if dt.tzinfo is None or dt.utcoffset() is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_optional_datetime(value: Any) -> Optional[datetime]:
    return parse_utc_datetime(value) if value else None


def parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value[:10])
    raise TypeError(f"Unsupported date type: {type(value)!r}")


def parse_optional_date(value: Any) -> Optional[date]:
    return parse_date(value) if value else None


def date_or_none(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def parse_money(value: Any) -> Decimal:
    return to_money(Decimal(str(value)))


def parse_optional_money(value: Any) -> Optional[Decimal]:
    return parse_money(value) if value is not None else None


def money_or_none(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


def parse_optional_uuid(value: Any) -> Optional[UUID]:
    return UUID(str(value)) if value else None


def uuid_or_none(value: Optional[UUID]) -> Optional[str]:
    return str(value) if value is not None else None


def execute(query: Any, action: str) -> List[dict]:
    """
    Run a query builder and return its rows.

    Both error styles of the client (an `error` attribute on the response, or
    an APIError raised by execute()) surface as RuntimeError.
    """

    try:
        response = query.execute()
    except APIError as exc:
        raise RuntimeError(f"Failed to {action}: {exc}") from exc

    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to {action}: {error}")

    return getattr(response, "data", None) or []
