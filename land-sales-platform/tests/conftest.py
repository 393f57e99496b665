"""
Pytest configuration.

This file adds the parent directory to the Python path so that tests
can import from the domain, repositories, services and api packages, and
provides an in-memory database fixture for service and API tests.
"""

import sys
from pathlib import Path

import pytest

# Add the land-sales-platform directory to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))
sys.path.insert(0, str(Path(__file__).parent))

from fake_supabase import FakeSupabase  # noqa: E402
from repositories.client import set_supabase  # noqa: E402


@pytest.fixture
def db():
    """Fresh in-memory database installed as the Supabase client."""

    fake = FakeSupabase()
    set_supabase(fake)
    yield fake
    set_supabase(None)
