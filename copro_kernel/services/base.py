"""
BaseService -- common constructor and transaction helpers for services.

Responsibility:
    Holds the caller's SQLAlchemy ``Session`` and clock, and decides who
    owns the transaction boundary.

Architecture position:
    Kernel > Services.  Extended by the ledger service and by every module
    service in ``copro_modules``.

Invariants enforced:
    - With ``auto_commit=True`` (default) each public operation is one
      transaction: committed on success, rolled back and re-raised on any
      exception.  Nothing is ever partially applied.
    - With ``auto_commit=False`` the service only flushes; an outer service
      composing several calls owns commit/rollback.

Failure modes:
    - Exceptions are never swallowed.  ``_unit_of_work`` rolls back and
      re-raises.
"""

from __future__ import annotations

from abc import ABC
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.orm import Session

from copro_kernel.domain.clock import Clock, SystemClock
from copro_kernel.logging_config import get_logger

logger = get_logger("services.base")


class BaseService(ABC):
    """
    Abstract base class for services that write.

    Contract:
        Accepts a Session from the caller.  ``auto_commit`` selects whether
        the service commits itself or leaves that to an enclosing service.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auto_commit: bool = True,
    ):
        self.session = session
        self._clock = clock or SystemClock()
        self._auto_commit = auto_commit

    @property
    def clock(self) -> Clock:
        return self._clock

    @contextmanager
    def _unit_of_work(self, operation: str) -> Iterator[Session]:
        """Commit (or flush) on success; roll back and re-raise on failure."""
        try:
            yield self.session
            if self._auto_commit:
                self.session.commit()
            else:
                self.session.flush()
        except Exception:
            if self._auto_commit:
                self.session.rollback()
            logger.warning(
                "operation_rolled_back",
                extra={"operation": operation},
                exc_info=True,
            )
            raise
