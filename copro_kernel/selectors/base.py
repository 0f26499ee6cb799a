"""
Module: copro_kernel.selectors.base
Responsibility: Base class for read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/ and models/.

Invariants enforced:
    - Selectors never add, delete, flush or commit.  The caller owns the
      session and its transaction.
    - Selectors return frozen DTOs or plain values, not ORM instances.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    """Read-only access to persisted accounting data."""

    def __init__(self, session: Session):
        self.session = session
