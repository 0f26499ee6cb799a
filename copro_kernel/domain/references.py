"""
External directory references (``copro_kernel.domain.references``).

Lots, leases and residences live in a directory owned by another part of
the application.  The accounting engine stores their ids as plain foreign
keys and trusts them, but an id may point at an entity that has since been
deleted.  Such references render as ``UNKNOWN_REFERENCE`` instead of being
looked up ad hoc by each caller.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Protocol
from uuid import UUID

UNKNOWN_REFERENCE = "unknown"


class DirectoryResolver(Protocol):
    """Read access to the Lease/Lot/Residence directory."""

    def lot_label(self, lot_id: UUID) -> str | None:
        """Lot number/label, or None if the lot no longer exists."""
        ...

    def lease_lot(self, lease_id: UUID) -> UUID | None:
        """Lot rented under a lease, or None if the lease no longer exists."""
        ...


@dataclass
class StaticDirectory:
    """In-memory DirectoryResolver (scripts, tests, single-process tools)."""

    lots: Mapping[UUID, str] = field(default_factory=dict)
    leases: Mapping[UUID, UUID] = field(default_factory=dict)

    def lot_label(self, lot_id: UUID) -> str | None:
        return self.lots.get(lot_id)

    def lease_lot(self, lease_id: UUID) -> UUID | None:
        return self.leases.get(lease_id)


def display_reference(label: str | None) -> str:
    """Render a resolved label, or the sentinel for a missing entity."""
    return label if label else UNKNOWN_REFERENCE


def lot_display(directory: DirectoryResolver | None, lot_id: UUID | None) -> str:
    """
    Label of an optional lot reference.

    No lot at all renders as an empty string; a lot id that no longer
    resolves renders as ``UNKNOWN_REFERENCE``.
    """
    if lot_id is None:
        return ""
    if directory is None:
        return str(lot_id)
    return display_reference(directory.lot_label(lot_id))
