"""
Condominium Accounting Kernel

Append-only double-entry ledger for co-ownership residences with:
- Residence-scoped chart of accounts and journals
- Atomic, idempotent line posting and reversing entries
- Decimal-only money handling
- Typed errors and structured JSON logging
"""

__version__ = "0.1.0"
