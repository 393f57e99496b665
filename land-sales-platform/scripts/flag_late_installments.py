#!/usr/bin/env python3
"""
Late Flag Refresh Script

Stamps the display-only Late status on Unpaid installments whose due date has
passed, and prints the live installment summary.

Usage:
    python flag_late_installments.py
    python flag_late_installments.py --today 2025-06-01
    python flag_late_installments.py --dry-run
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import date
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from domain.errors import SalesEngineError
from services.installment_report_service import get_installment_summary, refresh_late_flags


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Flag unpaid installments past their due date as Late",
    )
    parser.add_argument(
        "--today",
        type=date.fromisoformat,
        default=None,
        help="Reference date (YYYY-MM-DD); defaults to today in UTC",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only print the summary, do not write Late flags",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        flagged = 0 if args.dry_run else refresh_late_flags(args.today)
        summary = get_installment_summary(args.today)
    except (RuntimeError, SalesEngineError) as e:
        print(f"\nERROR: {e}", file=sys.stderr)
        return 1

    print("=" * 50)
    print("INSTALLMENT STATUS")
    print("=" * 50)
    if not args.dry_run:
        print(f"Installments flagged Late:  {flagged}")
    print(f"Installments:               {summary.installment_count}")
    print(f"Total due:                  {summary.total_due}")
    print(f"Total paid:                 {summary.total_paid}")
    print(f"Overdue installments:       {summary.overdue_count}")
    print(f"Overdue outstanding:        {summary.total_overdue}")
    print(f"Clients with overdue:       {summary.clients_with_overdue} of {summary.client_count}")
    print("=" * 50)
    return 0


if __name__ == "__main__":
    sys.exit(main())
