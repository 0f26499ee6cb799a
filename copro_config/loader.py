"""
Configuration loader (``copro_config.loader``).

Responsibility
--------------
Reads an optional YAML settings file and turns a plain mapping into a
validated ``AccountingSettings``.  Callers go through
``copro_config.get_active_config()``; this module is its implementation.

Invariants enforced
-------------------
* Unknown keys are rejected so that a typo never silently falls back to a
  default.
* Every value is type-converted and range-checked here; the rest of the
  system trusts ``AccountingSettings``.

Failure modes
-------------
* Missing file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid value  -> ``ConfigurationError``.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from copro_config.schema import STATUTORY_WORKS_FUND_MINIMUM, AccountingSettings, BudgetCategory
from copro_kernel.exceptions import ConfigurationError

_VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_KNOWN_KEYS = frozenset(f.name for f in dataclasses.fields(AccountingSettings))


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML mapping.  An empty file yields an empty dict."""
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    # Allow the settings to be nested under an ``accounting:`` key
    if set(data) == {"accounting"} and isinstance(data["accounting"], dict):
        return data["accounting"]
    return data


def _decimal(name: str, value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ConfigurationError(name, "must be a number")
    try:
        result = Decimal(str(value))
    except InvalidOperation:
        raise ConfigurationError(name, f"not a number: {value!r}") from None
    if not result.is_finite():
        raise ConfigurationError(name, "must be finite")
    return result


def _int(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(name, "must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(name, f"not an integer: {value!r}") from None


def _single_char(name: str, value: Any) -> str:
    if not isinstance(value, str) or len(value) != 1:
        raise ConfigurationError(name, "must be a single character")
    return value


def _category_accounts(value: Any) -> dict[str, tuple[str, ...]]:
    if not isinstance(value, Mapping):
        raise ConfigurationError("category_accounts", "must be a mapping")
    valid = {c.value for c in BudgetCategory}
    result = dict(AccountingSettings().category_accounts)
    for category, prefixes in value.items():
        if category not in valid:
            raise ConfigurationError("category_accounts", f"unknown category {category!r}")
        if isinstance(prefixes, str):
            prefixes = [prefixes]
        if prefixes is None:
            prefixes = []
        result[category] = tuple(str(p).strip() for p in prefixes if str(p).strip())
    return result


def parse_settings(data: Mapping[str, Any]) -> AccountingSettings:
    """Build validated settings from a mapping; absent keys keep defaults."""
    unknown = set(data) - _KNOWN_KEYS
    if unknown:
        raise ConfigurationError(", ".join(sorted(unknown)), "unknown setting")

    values: dict[str, Any] = {}
    if "database_url" in data:
        url = data["database_url"]
        if not isinstance(url, str) or not url.strip():
            raise ConfigurationError("database_url", "must be a non-empty string")
        values["database_url"] = url.strip()
    if "currency" in data:
        currency = str(data["currency"]).upper()
        if len(currency) != 3 or not currency.isalpha():
            raise ConfigurationError("currency", "must be a 3-letter ISO code")
        values["currency"] = currency
    if "page_size" in data:
        values["page_size"] = _int("page_size", data["page_size"])
        if values["page_size"] < 1:
            raise ConfigurationError("page_size", "must be at least 1")
    if "works_fund_legal_minimum" in data:
        minimum = _decimal("works_fund_legal_minimum", data["works_fund_legal_minimum"])
        if minimum < STATUTORY_WORKS_FUND_MINIMUM:
            raise ConfigurationError(
                "works_fund_legal_minimum",
                f"must not be below the statutory {STATUTORY_WORKS_FUND_MINIMUM}%",
            )
        values["works_fund_legal_minimum"] = minimum
    if "csv_delimiter" in data:
        values["csv_delimiter"] = _single_char("csv_delimiter", data["csv_delimiter"])
    if "csv_decimal_separator" in data:
        values["csv_decimal_separator"] = _single_char(
            "csv_decimal_separator", data["csv_decimal_separator"]
        )
    if "match_window_days" in data:
        values["match_window_days"] = _int("match_window_days", data["match_window_days"])
        if values["match_window_days"] < 0:
            raise ConfigurationError("match_window_days", "must not be negative")
    if "variance_tolerance_percentage" in data:
        tolerance = _decimal("variance_tolerance_percentage", data["variance_tolerance_percentage"])
        if tolerance < 0:
            raise ConfigurationError("variance_tolerance_percentage", "must not be negative")
        values["variance_tolerance_percentage"] = tolerance
    if "category_accounts" in data:
        values["category_accounts"] = _category_accounts(data["category_accounts"])
    if "log_level" in data:
        level = str(data["log_level"]).upper()
        if level not in _VALID_LEVELS:
            raise ConfigurationError("log_level", f"must be one of {', '.join(_VALID_LEVELS)}")
        values["log_level"] = level

    settings = AccountingSettings(**values)
    if settings.csv_delimiter == settings.csv_decimal_separator:
        raise ConfigurationError("csv_delimiter", "must differ from csv_decimal_separator")
    return settings


def apply_environment(data: dict[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    """Overlay COPRO_DATABASE_URL / COPRO_LOG_LEVEL on the file settings."""
    merged = dict(data)
    if environ.get("COPRO_DATABASE_URL"):
        merged["database_url"] = environ["COPRO_DATABASE_URL"]
    if environ.get("COPRO_LOG_LEVEL"):
        merged["log_level"] = environ["COPRO_LOG_LEVEL"]
    return merged

