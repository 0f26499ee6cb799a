"""
Ledger CSV export.

Writes ledger lines to a text stream with ``csv.writer``.  Columns are
fixed: Date, Journal code, Account code, Label, Lot number, Debit, Credit.
Dates render as dd/mm/yyyy; a line without a lot has an empty lot cell and
a lot the directory no longer knows renders as "unknown".
"""

from __future__ import annotations

import csv
from collections.abc import Iterable
from typing import TextIO

from copro_kernel.domain.dtos import LedgerLineView
from copro_kernel.domain.references import DirectoryResolver
from copro_kernel.logging_config import get_logger
from copro_modules.reporting.models import LEDGER_CSV_HEADERS
from copro_modules.reporting.statements import ledger_csv_row

logger = get_logger("modules.reporting.export")


def export_ledger_csv(
    lines: Iterable[LedgerLineView],
    directory: DirectoryResolver | None,
    stream: TextIO,
    delimiter: str = ";",
    decimal_separator: str = ",",
) -> int:
    """Write a header and one row per line.  Returns the number of data rows."""
    if delimiter == decimal_separator:
        raise ValueError("delimiter and decimal_separator must differ")
    writer = csv.writer(stream, delimiter=delimiter, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(LEDGER_CSV_HEADERS)
    count = 0
    for line in lines:
        writer.writerow(ledger_csv_row(line, directory, decimal_separator))
        count += 1
    logger.info("ledger_csv_exported", extra={"rows": count, "delimiter": delimiter})
    return count
