"""
ORM-level immutability enforcement for posted ledger lines.

A posted ledger line is a legal record.  Correcting it means posting a
reversing line; the original is never edited or deleted.  These listeners
intercept SQLAlchemy ``before_update`` / ``before_delete`` events on
LedgerLine and raise ``ImmutableLineError`` when a financial field changes.

Audit metadata (``updated_at``, ``updated_by_id``) and the free-text
``label`` may still change.

Bulk ``session.execute(update(...))`` statements bypass ORM events; the
kernel never issues them against ``accounting_lines``.

Usage::

    from copro_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup, idempotent
"""

from sqlalchemy import event, inspect

from copro_kernel.exceptions import ImmutableLineError
from copro_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_PROTECTED_LINE_FIELDS = (
    "residence_id",
    "journal_id",
    "account_id",
    "lot_id",
    "entry_id",
    "line_date",
    "debit",
    "credit",
    "reverses_line_id",
)


def _check_ledger_line_update(mapper, connection, target):
    state = inspect(target)
    changed = [
        name for name in _PROTECTED_LINE_FIELDS
        if state.attrs[name].history.has_changes()
    ]
    if changed:
        logger.error(
            "immutability_violation_blocked",
            extra={
                "entity_type": "LedgerLine",
                "entity_id": str(target.id),
                "operation": "UPDATE",
                "fields": changed,
            },
        )
        raise ImmutableLineError(str(target.id), f"update of {', '.join(changed)}")


def _check_ledger_line_delete(mapper, connection, target):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "LedgerLine",
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutableLineError(str(target.id), "delete")


def register_immutability_listeners() -> None:
    """Register the ledger line listeners (idempotent)."""
    from copro_kernel.models.journal import LedgerLine

    if not event.contains(LedgerLine, "before_update", _check_ledger_line_update):
        event.listen(LedgerLine, "before_update", _check_ledger_line_update)
    if not event.contains(LedgerLine, "before_delete", _check_ledger_line_delete):
        event.listen(LedgerLine, "before_delete", _check_ledger_line_delete)


def unregister_immutability_listeners() -> None:
    """Remove the listeners. FOR TESTING ONLY."""
    from copro_kernel.models.journal import LedgerLine

    if event.contains(LedgerLine, "before_update", _check_ledger_line_update):
        event.remove(LedgerLine, "before_update", _check_ledger_line_update)
    if event.contains(LedgerLine, "before_delete", _check_ledger_line_delete):
        event.remove(LedgerLine, "before_delete", _check_ledger_line_delete)
