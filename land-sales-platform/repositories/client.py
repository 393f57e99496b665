"""
Supabase client initialization.

This module contains *only* the database connection setup. The client is
created on first use, so pure domain code and tests import without
credentials.

Environment variables required:
- SUPABASE_URL: Your Supabase project URL
- SUPABASE_KEY: Your Supabase API key (use a server-side key only on the backend)
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

# The dependency is `supabase` (supabase-py). If your editor can't resolve it,
# install it in your environment: `pip install supabase`.
from supabase import Client, create_client  # type: ignore[import-not-found]

# Look for .env in the land-sales-platform directory
env_path = Path(__file__).parent.parent / ".env"

_client: Optional[Any] = None


def _require_env(name: str, hint: str) -> str:
    value = os.getenv(name)
    if not value:
        raise RuntimeError(f"Missing environment variable: {name}. {hint}")
    return value


def get_supabase() -> Client:
    """
    Return the shared Supabase client, creating it on first call.

    Raises:
        RuntimeError: SUPABASE_URL or SUPABASE_KEY is not set
    """

    global _client
    if _client is None:
        load_dotenv(dotenv_path=env_path)
        url = _require_env("SUPABASE_URL", "Set SUPABASE_URL to your Supabase project URL.")
        key = _require_env("SUPABASE_KEY", "Set SUPABASE_KEY to your Supabase API key.")
        _client = create_client(url, key)
    return _client


def set_supabase(client: Optional[Any]) -> None:
    """
    Install a pre-built client (scripts, tests). Passing None resets to lazy creation.
    """

    global _client
    _client = client


__all__ = ["get_supabase", "set_supabase"]
