"""
copro_config -- single public entrypoint for runtime configuration.

Responsibility:
    ``get_active_config()`` is the only way to obtain settings.  No other
    component reads configuration files or environment variables.

Architecture position:
    Configuration sits above ``copro_kernel`` and below ``copro_modules``.
    The kernel never imports from here; module configs are derived from
    ``AccountingSettings`` with ``from_settings()``.

Sources, lowest precedence first:
    1. Built-in defaults (``AccountingSettings()``).
    2. A YAML file: the ``path`` argument, else ``COPRO_CONFIG_FILE``.
    3. ``COPRO_DATABASE_URL`` and ``COPRO_LOG_LEVEL``.

Failure modes:
    - ``FileNotFoundError`` for an explicit path that does not exist.
    - ``ConfigurationError`` for any invalid value or unknown key.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

from copro_config.loader import apply_environment, load_yaml_file, parse_settings
from copro_config.schema import AccountingSettings, BudgetCategory, DEFAULT_CATEGORY_ACCOUNTS
from copro_kernel.logging_config import get_logger

_logger = get_logger("config")

CONFIG_FILE_ENV = "COPRO_CONFIG_FILE"


def get_active_config(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> AccountingSettings:
    """
    Resolve the active settings.

    ``environ`` defaults to ``os.environ``; tests pass a plain dict.
    """
    environ = os.environ if environ is None else environ
    if path is None and environ.get(CONFIG_FILE_ENV):
        path = environ[CONFIG_FILE_ENV]

    data = load_yaml_file(Path(path)) if path is not None else {}
    settings = parse_settings(apply_environment(data, environ))

    _logger.info("config_loaded", extra={
        "config_path": str(path) if path is not None else None,
        "currency": settings.currency,
        "page_size": settings.page_size,
        "works_fund_legal_minimum": str(settings.works_fund_legal_minimum),
    })
    return settings


__all__ = [
    "AccountingSettings",
    "BudgetCategory",
    "DEFAULT_CATEGORY_ACCOUNTS",
    "get_active_config",
]
