#!/usr/bin/env python3
"""
Export the ledger lines of a residence as CSV.

Columns: Date, Journal code, Account code, Label, Lot number, Debit,
Credit.  Delimiter and decimal separator come from the active config
(``;`` and ``,`` by default).

Usage:
    python3 scripts/export_ledger.py --residence <uuid> [options]

Examples:
    # Whole ledger to stdout
    python3 scripts/export_ledger.py --residence 5f0c...

    # Bank journal for the first quarter into a file
    python3 scripts/export_ledger.py --residence 5f0c... --journal BQ \\
        --from 2026-01-01 --to 2026-03-31 --output bank_q1.csv
"""

from __future__ import annotations

import argparse
import sys
from datetime import date
from pathlib import Path
from typing import TextIO
from uuid import UUID

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Export residence ledger lines to CSV.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--residence", required=True, type=UUID, help="Residence id.")
    parser.add_argument("--journal", default=None, help="Journal code filter (e.g. BQ).")
    parser.add_argument(
        "--from", dest="date_from", default=None, type=date.fromisoformat,
        help="First line date, YYYY-MM-DD.",
    )
    parser.add_argument(
        "--to", dest="date_to", default=None, type=date.fromisoformat,
        help="Last line date, YYYY-MM-DD.",
    )
    parser.add_argument(
        "--output", default=None, type=Path,
        help="Destination file (default: stdout).",
    )
    parser.add_argument("--config", default=None, type=Path, help="YAML settings file.")
    parser.add_argument("--db-url", default=None, help="Overrides the configured database URL.")
    return parser.parse_args(argv)


def run(session, settings, args: argparse.Namespace, stream: TextIO) -> int:
    """Write the CSV for ``args`` to ``stream``.  Returns the row count."""
    from copro_kernel.domain.dtos import LedgerFilter
    from copro_modules.reporting.config import ReportingConfig
    from copro_modules.reporting.service import ReportingService

    filters = LedgerFilter(
        journal_code=args.journal,
        date_from=args.date_from,
        date_to=args.date_to,
    )
    reporting = ReportingService(session, config=ReportingConfig.from_settings(settings))
    return reporting.export_ledger(args.residence, stream, filters=filters)


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
        return 1

    session = get_session()
    try:
        if args.output is None:
            count = run(session, settings, args, sys.stdout)
        else:
            with open(args.output, "w", newline="", encoding="utf-8") as handle:
                count = run(session, settings, args, handle)
            print(f"  {count} line(s) written to {args.output}", file=sys.stderr)
    finally:
        session.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
