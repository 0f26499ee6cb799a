"""ORM models of the accounting kernel."""

from copro_kernel.models.account import Account, AccountType
from copro_kernel.models.journal import Journal, JournalType, LedgerLine

__all__ = [
    "Account",
    "AccountType",
    "Journal",
    "JournalType",
    "LedgerLine",
]
