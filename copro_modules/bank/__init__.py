"""
Bank Reconciliation module (``copro_modules.bank``).

Bank accounts of a residence, their statement transactions, and the
manual reconciliation flow: the engine proposes candidate ledger lines,
an operator confirms, and the transaction is flagged as settled.  Nothing
here posts to the ledger.
"""

from copro_modules.bank.config import BankConfig
from copro_modules.bank.models import (
    BankAccount,
    BankTransaction,
    ImportResult,
    ReconcileResult,
    TransactionRow,
)

__all__ = [
    "BankAccount",
    "BankConfig",
    "BankTransaction",
    "ImportResult",
    "ReconcileResult",
    "TransactionRow",
]
