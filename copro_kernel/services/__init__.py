"""Kernel services (write path)."""

from copro_kernel.services.base import BaseService
from copro_kernel.services.ledger_service import LedgerService

__all__ = ["BaseService", "LedgerService"]
