#!/usr/bin/env python3
"""
Integrity checks for one residence.

Runs:
  - budget total verification: every budget's cached total must equal
    the sum of its lines;
  - unbalanced entry detection: the lines of each multi-line entry must
    have equal debits and credits.

Findings are reported only, never corrected.  Exit status is 0 when
everything is consistent and 2 when anything was found.

Usage:
    python3 scripts/check_integrity.py --residence <uuid> [--config FILE] [--db-url URL]
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import TextIO
from uuid import UUID

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_FINDINGS = 2


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Verify budget totals and entry balance for a residence.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--residence", required=True, type=UUID, help="Residence id.")
    parser.add_argument("--config", default=None, type=Path, help="YAML settings file.")
    parser.add_argument("--db-url", default=None, help="Overrides the configured database URL.")
    return parser.parse_args(argv)


def run(session, residence_id: UUID, out: TextIO) -> int:
    """Run both checks and print findings.  Returns the exit status."""
    from copro_kernel.exceptions import BudgetTotalDriftError
    from copro_kernel.selectors.ledger_selector import LedgerSelector
    from copro_modules.budget.service import BudgetService

    findings = 0

    try:
        checked = BudgetService(session, auto_commit=False).verify_totals(residence_id)
        print(f"  Budgets: {checked} checked, totals consistent", file=out)
    except BudgetTotalDriftError as exc:
        for budget_id, stored, expected in exc.drifts:
            print(
                f"  Budget {budget_id}: stored total {stored}, lines sum to {expected}",
                file=out,
            )
        findings += len(exc.drifts)

    unbalanced = LedgerSelector(session).unbalanced_entries(residence_id)
    for entry_id, debit, credit in unbalanced:
        print(f"  Entry {entry_id}: debits {debit} != credits {credit}", file=out)
    if not unbalanced:
        print("  Entries: all balanced", file=out)
    findings += len(unbalanced)

    return EXIT_FINDINGS if findings else EXIT_OK


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    from copro_config import get_active_config
    from copro_kernel.db.engine import get_session, init_engine_from_url
    from copro_kernel.logging_config import configure_logging

    settings = get_active_config(args.config)
    configure_logging(level=settings.log_level)
    try:
        init_engine_from_url(args.db_url or settings.database_url, echo=False)
    except Exception as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return EXIT_ERROR

    session = get_session()
    try:
        return run(session, args.residence, sys.stdout)
    finally:
        session.close()


if __name__ == "__main__":
    sys.exit(main())
