"""
LedgerService -- the only write path into the general ledger.

Responsibility:
    Maintains the chart of accounts and journals, and appends ledger lines:
    single lines (``post_line``), balanced multi-line entries
    (``post_entry``) and reversing lines (``reverse_line``).

Architecture position:
    Kernel > Services.  Imports models/, db/, domain/.  Called by module
    services and by operators through the outer application.

Invariants enforced:
    - debit >= 0, credit >= 0, exactly one side non-zero per line.
    - Journal and account must be global or belong to the caller's
      residence; anything else is "not found", never silently widened.
    - post_entry writes every line or none, and only when debits == credits.
    - A retried post with the same idempotency key returns the original
      line instead of double-posting.
    - A line is reversed at most once.

Failure modes:
    - InvalidAmountError / MissingFieldError before anything is written.
    - AccountNotFoundError / JournalNotFoundError: the post is aborted.
    - UnbalancedEntryError for an entry whose sides differ.
    - DuplicateAccountCodeError / DuplicateJournalCodeError, including when
      a concurrent writer wins the race on the unique constraint.
    - AccountReferencedError when deleting an account still in use.

Audit relevance:
    Every posted line logs ``ledger_line_posted`` with account, journal,
    amounts and actor.  Lines are append-only (db/immutability.py).
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from copro_kernel.db.types import ZERO, parse_non_negative, round_money
from copro_kernel.domain.clock import Clock
from copro_kernel.domain.dtos import AccountInfo, JournalInfo, LedgerLineView, LineSpec
from copro_kernel.domain.scope import CallerScope
from copro_kernel.exceptions import (
    AccountNotFoundError,
    AccountReferencedError,
    AlreadyReversedError,
    DuplicateAccountCodeError,
    DuplicateJournalCodeError,
    InvalidAmountError,
    JournalNotFoundError,
    LedgerLineNotFoundError,
    MissingFieldError,
    UnbalancedEntryError,
)
from copro_kernel.logging_config import LogContext, get_logger
from copro_kernel.models.account import Account, AccountType
from copro_kernel.models.journal import Journal, JournalType, LedgerLine
from copro_kernel.services.base import BaseService

logger = get_logger("services.ledger")

REVERSAL_LABEL_PREFIX = "Reversal: "


class LedgerService(BaseService):
    """
    Append-only writer for accounts, journals and ledger lines.

    Contract:
        Every write takes the caller's ``CallerScope``; ``actor_id`` becomes
        ``created_by_id``.  Returns frozen DTOs, never ORM instances.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auto_commit: bool = True,
    ):
        super().__init__(session, clock=clock, auto_commit=auto_commit)

    # =========================================================================
    # Chart of accounts
    # =========================================================================

    def create_account(
        self,
        scope: CallerScope,
        code: str,
        name: str,
        account_type: AccountType | str,
        parent_id: UUID | None = None,
        is_global: bool = False,
    ) -> AccountInfo:
        code = _required(code, "code").strip()
        name = _required(name, "name").strip()
        account_type = AccountType(account_type)
        residence_id = None if is_global else scope.residence_id

        with LogContext.bind(**scope.log_fields()), self._unit_of_work("create_account"):
            if parent_id is not None:
                self._load_account(scope, parent_id)
            if self._account_code_exists(residence_id, code):
                raise DuplicateAccountCodeError(code)

            account = Account(
                residence_id=residence_id,
                code=code,
                name=name,
                account_type=account_type.value,
                parent_id=parent_id,
                created_by_id=scope.actor_id,
            )
            self._insert(account, DuplicateAccountCodeError(code))
            logger.info("account_created", extra={
                "account_id": str(account.id),
                "account_code": code,
                "account_type": account_type.value,
                "is_global": is_global,
            })
            return AccountInfo.from_model(account)

    def rename_account(self, scope: CallerScope, account_id: UUID, name: str) -> AccountInfo:
        """Renaming is the only change allowed once lines reference an account."""
        name = _required(name, "name").strip()
        with LogContext.bind(**scope.log_fields()), self._unit_of_work("rename_account"):
            account = self._load_account(scope, account_id)
            account.name = name
            account.updated_by_id = scope.actor_id
            logger.info("account_renamed", extra={"account_id": str(account_id)})
            return AccountInfo.from_model(account)

    def delete_account(self, scope: CallerScope, account_id: UUID) -> None:
        with LogContext.bind(**scope.log_fields()), self._unit_of_work("delete_account"):
            account = self._load_account(scope, account_id)
            line_count = self.session.scalar(
                select(func.count(LedgerLine.id)).where(LedgerLine.account_id == account_id)
            )
            if line_count:
                raise AccountReferencedError(str(account_id), line_count)
            self.session.delete(account)
            logger.info("account_deleted", extra={"account_id": str(account_id)})

    # =========================================================================
    # Journals
    # =========================================================================

    def create_journal(
        self,
        scope: CallerScope,
        code: str,
        name: str,
        journal_type: JournalType | str = JournalType.MISCELLANEOUS,
        is_global: bool = False,
    ) -> JournalInfo:
        code = _required(code, "code").strip().upper()
        name = _required(name, "name").strip()
        journal_type = JournalType(journal_type)
        residence_id = None if is_global else scope.residence_id

        with LogContext.bind(**scope.log_fields()), self._unit_of_work("create_journal"):
            exists = self.session.scalar(
                select(func.count(Journal.id)).where(
                    _same_scope(Journal.residence_id, residence_id),
                    Journal.code == code,
                )
            )
            if exists:
                raise DuplicateJournalCodeError(code)

            journal = Journal(
                residence_id=residence_id,
                agency_id=scope.agency_id,
                code=code,
                name=name,
                journal_type=journal_type.value,
                created_by_id=scope.actor_id,
            )
            self._insert(journal, DuplicateJournalCodeError(code))
            logger.info("journal_created", extra={
                "journal_id": str(journal.id),
                "journal_code": code,
                "journal_type": journal_type.value,
            })
            return JournalInfo.from_model(journal)

    # =========================================================================
    # Ledger lines
    # =========================================================================

    def post_line(
        self,
        scope: CallerScope,
        journal_id: UUID,
        account_id: UUID,
        line_date: date,
        label: str,
        debit: Decimal | str | int = ZERO,
        credit: Decimal | str | int = ZERO,
        lot_id: UUID | None = None,
        reference: str | None = None,
        idempotency_key: str | None = None,
    ) -> LedgerLineView:
        """
        Append one ledger line.

        Amounts are validated before any lookup or write.  With an
        ``idempotency_key``, a retry returns the line posted the first time.
        """
        debit, credit = _validate_sides(debit, credit)
        if line_date is None:
            raise MissingFieldError("date")

        with LogContext.bind(**scope.log_fields()), self._unit_of_work("post_line"):
            if idempotency_key:
                existing = self._line_by_idempotency_key(scope.residence_id, idempotency_key)
                if existing is not None:
                    logger.info("ledger_line_already_posted", extra={
                        "line_id": str(existing.id),
                        "idempotency_key": idempotency_key,
                    })
                    return LedgerLineView.from_model(existing)

            journal = self._load_journal(scope, journal_id)
            account = self._load_account(scope, account_id)
            line = self._new_line(
                scope, journal, account, line_date, label or "", debit, credit,
                lot_id=lot_id, reference=reference, idempotency_key=idempotency_key,
            )

            try:
                with self.session.begin_nested():
                    self.session.add(line)
            except IntegrityError:
                # Concurrent retry with the same key won the race
                existing = (
                    self._line_by_idempotency_key(scope.residence_id, idempotency_key)
                    if idempotency_key else None
                )
                if existing is None:
                    raise
                return LedgerLineView.from_model(existing)

            self._log_posted(line, scope)
            return LedgerLineView.from_model(line)

    def post_entry(
        self,
        scope: CallerScope,
        journal_id: UUID,
        line_date: date,
        label: str,
        lines: Sequence[LineSpec],
        reference: str | None = None,
    ) -> list[LedgerLineView]:
        """
        Post several lines as one logical transaction sharing an ``entry_id``.

        Either every line is written or none is.
        """
        if not lines:
            raise MissingFieldError("lines")
        sides = [_validate_sides(spec.debit, spec.credit) for spec in lines]
        total_debit = sum((d for d, _ in sides), ZERO)
        total_credit = sum((c for _, c in sides), ZERO)
        if round_money(total_debit) != round_money(total_credit):
            raise UnbalancedEntryError(str(total_debit), str(total_credit))

        entry_id = uuid4()
        with LogContext.bind(**scope.log_fields()), self._unit_of_work("post_entry"):
            journal = self._load_journal(scope, journal_id)
            posted = []
            for spec, (debit, credit) in zip(lines, sides):
                account = self._load_account(scope, spec.account_id)
                line = self._new_line(
                    scope, journal, account, line_date, spec.label or label or "",
                    debit, credit, lot_id=spec.lot_id, reference=reference,
                    entry_id=entry_id,
                )
                self.session.add(line)
                posted.append(line)
            self.session.flush()

            for line in posted:
                self._log_posted(line, scope)
            logger.info("ledger_entry_posted", extra={
                "entry_id": str(entry_id),
                "line_count": len(posted),
                "total": str(total_debit),
            })
            return [LedgerLineView.from_model(line) for line in posted]

    def reverse_line(
        self,
        scope: CallerScope,
        line_id: UUID,
        line_date: date | None = None,
    ) -> LedgerLineView:
        """
        Append a line with debit and credit swapped that cancels ``line_id``.

        The reversal has no entry_id; the original entry keeps only its own
        lines.
        """
        with LogContext.bind(**scope.log_fields()), self._unit_of_work("reverse_line"):
            original = self.session.get(LedgerLine, line_id)
            if original is None or original.residence_id != scope.residence_id:
                raise LedgerLineNotFoundError(str(line_id))

            existing = self.session.scalar(
                select(LedgerLine).where(LedgerLine.reverses_line_id == line_id)
            )
            if existing is not None:
                raise AlreadyReversedError(str(line_id), str(existing.id))

            reversal = self._new_line(
                scope,
                original.journal,
                original.account,
                line_date or self._clock.today(),
                f"{REVERSAL_LABEL_PREFIX}{original.label}",
                original.credit,
                original.debit,
                lot_id=original.lot_id,
                reference=original.reference,
            )
            reversal.reverses_line_id = original.id
            self._insert(reversal, AlreadyReversedError(str(line_id), "concurrent reversal"))

            logger.info("ledger_line_reversed", extra={
                "line_id": str(line_id),
                "reversal_id": str(reversal.id),
            })
            return LedgerLineView.from_model(reversal)

    # =========================================================================
    # Internals
    # =========================================================================

    def _new_line(
        self,
        scope: CallerScope,
        journal: Journal,
        account: Account,
        line_date: date,
        label: str,
        debit: Decimal,
        credit: Decimal,
        lot_id: UUID | None = None,
        reference: str | None = None,
        idempotency_key: str | None = None,
        entry_id: UUID | None = None,
    ) -> LedgerLine:
        return LedgerLine(
            residence_id=scope.residence_id,
            journal_id=journal.id,
            journal=journal,
            account_id=account.id,
            account=account,
            lot_id=lot_id,
            entry_id=entry_id,
            line_date=line_date,
            label=label,
            reference=reference,
            debit=debit,
            credit=credit,
            idempotency_key=idempotency_key,
            created_by_id=scope.actor_id,
        )

    def _insert(self, obj, conflict: Exception) -> None:
        """Add and flush inside a savepoint; unique violations become ``conflict``."""
        try:
            with self.session.begin_nested():
                self.session.add(obj)
        except IntegrityError as exc:
            raise conflict from exc

    def _load_journal(self, scope: CallerScope, journal_id: UUID) -> Journal:
        journal = self.session.get(Journal, journal_id)
        if journal is None or not scope.can_access(journal.residence_id):
            raise JournalNotFoundError(str(journal_id))
        return journal

    def _load_account(self, scope: CallerScope, account_id: UUID) -> Account:
        account = self.session.get(Account, account_id)
        if account is None or not scope.can_access(account.residence_id):
            raise AccountNotFoundError(str(account_id))
        return account

    def _account_code_exists(self, residence_id: UUID | None, code: str) -> bool:
        count = self.session.scalar(
            select(func.count(Account.id)).where(
                _same_scope(Account.residence_id, residence_id),
                Account.code == code,
            )
        )
        return bool(count)

    def _line_by_idempotency_key(self, residence_id: UUID, key: str) -> LedgerLine | None:
        return self.session.scalar(
            select(LedgerLine).where(
                LedgerLine.residence_id == residence_id,
                LedgerLine.idempotency_key == key,
            )
        )

    def _log_posted(self, line: LedgerLine, scope: CallerScope) -> None:
        logger.info("ledger_line_posted", extra={
            "line_id": str(line.id),
            "journal_code": line.journal.code,
            "account_code": line.account.code,
            "debit": str(line.debit),
            "credit": str(line.credit),
            "line_date": line.line_date.isoformat(),
            "entry_id": str(line.entry_id) if line.entry_id else None,
        })


def _required(value: str | None, field: str) -> str:
    if value is None or not str(value).strip():
        raise MissingFieldError(field)
    return str(value)


def _validate_sides(debit: object, credit: object) -> tuple[Decimal, Decimal]:
    """Parse both sides and enforce exactly one non-zero, non-negative side."""
    debit = parse_non_negative(ZERO if debit is None else debit, "debit")
    credit = parse_non_negative(ZERO if credit is None else credit, "credit")
    if debit == ZERO and credit == ZERO:
        raise InvalidAmountError("debit/credit", "0", "either debit or credit is required")
    if debit != ZERO and credit != ZERO:
        raise InvalidAmountError(
            "debit/credit",
            f"{debit}/{credit}",
            "a line carries either a debit or a credit, not both",
        )
    return debit, credit


def _same_scope(column, residence_id: UUID | None):
    return column.is_(None) if residence_id is None else column == residence_id
