"""Kernel selectors (read path)."""

from copro_kernel.selectors.base import BaseSelector
from copro_kernel.selectors.ledger_selector import DEFAULT_PAGE_SIZE, LedgerSelector

__all__ = ["BaseSelector", "LedgerSelector", "DEFAULT_PAGE_SIZE"]
