#!/usr/bin/env python3
"""
Unit Consistency Check Script

Compares each unit's stored status with the sales that reference it and
optionally releases reservations that no active sale holds any more.

Usage:
    python check_unit_consistency.py --unit-id <uuid> [--unit-id <uuid> ...]
    python check_unit_consistency.py --status Reserved
    python check_unit_consistency.py --release-orphans --grace-minutes 10
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import timedelta
from pathlib import Path
from uuid import UUID

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from domain.errors import SalesEngineError
from domain.unit import UnitStatus
from repositories.unit_repository import list_units_by_status
from services.consistency_service import release_orphaned_reservations, verify_unit_consistency


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Check units against the sales that reference them",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Check two specific units
  python check_unit_consistency.py --unit-id 123e4567-e89b-12d3-a456-426614174000

  # Check every Sold unit
  python check_unit_consistency.py --status Sold

  # Release reservations older than 10 minutes with no active sale
  python check_unit_consistency.py --release-orphans --grace-minutes 10
        """
    )
    parser.add_argument("--unit-id", type=UUID, action="append", default=[], help="Unit to check")
    parser.add_argument(
        "--status",
        choices=[s.value for s in UnitStatus],
        help="Check every unit currently in this status",
    )
    parser.add_argument(
        "--release-orphans",
        action="store_true",
        help="Release Reserved units that no active sale references",
    )
    parser.add_argument("--grace-minutes", type=int, default=5, help="Skip reservations newer than this")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    unit_ids = list(args.unit_id)
    try:
        if args.status:
            unit_ids.extend(unit.unit_id for unit in list_units_by_status(UnitStatus(args.status)))

        inconsistent = 0
        for unit_id in unit_ids:
            report = verify_unit_consistency(unit_id)
            if report.is_consistent:
                print(f"OK    {report.unit_number} ({report.status.value})")
                continue
            inconsistent += 1
            print(f"ISSUE {report.unit_number} ({report.status.value}) -> {report.action.value}")
            for issue in report.issues:
                print(f"      - {issue}")

        released = []
        if args.release_orphans:
            released = release_orphaned_reservations(grace_period=timedelta(minutes=args.grace_minutes))
    except (RuntimeError, SalesEngineError) as e:
        print(f"\nERROR: {e}", file=sys.stderr)
        return 1

    print("=" * 50)
    print(f"Units checked:       {len(unit_ids)}")
    print(f"Inconsistent units:  {inconsistent}")
    if args.release_orphans:
        print(f"Reservations released: {len(released)}")
    print("=" * 50)
    return 1 if inconsistent else 0


if __name__ == "__main__":
    sys.exit(main())
