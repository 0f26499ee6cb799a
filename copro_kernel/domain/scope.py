"""
Caller scope (``copro_kernel.domain.scope``).

Every write, and every read that is not already keyed by residence, receives
the identity/session context of the caller: which residence they act on and
who they are.  There is no process-wide "current residence" or "current
fiscal year"; both always travel as explicit arguments.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True)
class CallerScope:
    """
    Identity/session context supplied by the outer application.

    Contract:
        ``residence_id`` is the cost center the caller works on.
        ``actor_id`` is recorded as ``created_by`` on every write.
    """

    residence_id: UUID
    actor_id: UUID
    agency_id: UUID | None = None

    def can_access(self, residence_id: UUID | None) -> bool:
        """True for the caller's own residence and for global (null) records."""
        return residence_id is None or residence_id == self.residence_id

    def log_fields(self) -> dict[str, str]:
        return {
            "residence_id": str(self.residence_id),
            "actor_id": str(self.actor_id),
        }
