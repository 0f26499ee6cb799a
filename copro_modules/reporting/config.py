"""
Reporting Configuration Schema.

CSV formatting defaults follow French spreadsheet conventions: ``;`` as
the field delimiter and ``,`` as the decimal separator.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Self

from copro_config.schema import AccountingSettings


@dataclass
class ReportingConfig:
    csv_delimiter: str = ";"
    csv_decimal_separator: str = ","
    date_format: str = "%d/%m/%Y"
    page_size: int = 100

    def __post_init__(self):
        if len(self.csv_delimiter) != 1:
            raise ValueError("csv_delimiter must be a single character")
        if len(self.csv_decimal_separator) != 1:
            raise ValueError("csv_decimal_separator must be a single character")
        if self.csv_delimiter == self.csv_decimal_separator:
            raise ValueError("csv_delimiter and csv_decimal_separator must differ")

    @classmethod
    def with_defaults(cls) -> Self:
        return cls()

    @classmethod
    def from_settings(cls, settings: AccountingSettings) -> Self:
        return cls(
            csv_delimiter=settings.csv_delimiter,
            csv_decimal_separator=settings.csv_decimal_separator,
            page_size=settings.page_size,
        )
