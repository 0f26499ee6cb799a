"""
Bank Reconciliation Service (``copro_modules.bank.service``).

Responsibility
--------------
Bank accounts of a residence, statement imports, the pending queue and
the manual reconciliation flag.  Candidate ledger lines for a movement are
proposed by ``copro_engines.matching``; an operator confirms them.

Architecture position
---------------------
**Modules layer**.  Reads the ledger through ``LedgerSelector`` and never
posts to it: reconciliation only flags a pairing.

Invariants enforced
-------------------
* Exactly one main account per residence once any account exists.  The
  first account created is main (of two created at once, the second
  becomes a secondary account); ``set_main`` moves the flag.
* IBANs are stored normalized and pass the ISO 13616 mod-97 check.
* ``import_transactions`` skips rows whose ``external_id`` is already on
  the account, and moves the rolling balance with one database-side
  increment in the same transaction as the inserts.
* ``reconcile`` is all-or-nothing over the ids given and idempotent for
  ids that are already reconciled.

Failure modes
-------------
* ``InvalidIbanError``             -- malformed IBAN or bad checksum.
* ``BankAccountNotFoundError``     -- unknown account or another residence's.
* ``BankTransactionNotFoundError`` -- unknown transaction or another
  residence's; the whole ``reconcile`` call is rejected.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from datetime import timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from copro_engines.matching import LedgerCandidate, MatchSuggestion, rank_candidates
from copro_kernel.db.types import ZERO, parse_amount, round_money
from copro_kernel.domain.clock import Clock
from copro_kernel.domain.scope import CallerScope
from copro_kernel.exceptions import (
    BankAccountNotFoundError,
    BankTransactionNotFoundError,
    InvalidAmountError,
    InvalidIbanError,
    MissingFieldError,
)
from copro_kernel.logging_config import LogContext, get_logger
from copro_kernel.selectors.ledger_selector import LedgerSelector
from copro_kernel.services.base import BaseService
from copro_modules.bank.config import BankConfig
from copro_modules.bank.models import (
    BankAccount,
    BankTransaction,
    ImportResult,
    ReconcileResult,
    TransactionRow,
)
from copro_modules.bank.orm import BankAccountModel, BankTransactionModel

logger = get_logger("modules.bank.service")

_IBAN_PATTERN = re.compile(r"^[A-Z]{2}[0-9]{2}[A-Z0-9]{11,30}$")


def normalize_iban(iban: str) -> str:
    """Remove spaces and upper-case."""
    return "".join((iban or "").split()).upper()


def is_valid_iban(iban: str) -> bool:
    """ISO 13616: format check, then the rearranged number mod 97 equals 1."""
    value = normalize_iban(iban)
    if not _IBAN_PATTERN.match(value):
        return False
    rearranged = value[4:] + value[:4]
    digits = "".join(str(int(ch, 36)) for ch in rearranged)
    return int(digits) % 97 == 1


class BankService(BaseService):
    """
    Bank accounts, transactions and manual reconciliation.

    Contract
    --------
    * Every method takes the caller's ``CallerScope``; accounts and
      transactions of another residence are reported as not found.
    * Returns frozen DTOs from ``copro_modules.bank.models``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: BankConfig | None = None,
        auto_commit: bool = True,
    ):
        super().__init__(session, clock=clock, auto_commit=auto_commit)
        self._config = config or BankConfig.with_defaults()
        self._ledger = LedgerSelector(session)

    # =========================================================================
    # Accounts
    # =========================================================================

    def create_bank_account(
        self,
        scope: CallerScope,
        bank_name: str,
        iban: str,
        bic: str | None = None,
        account_name: str | None = None,
    ) -> BankAccount:
        if bank_name is None or not bank_name.strip():
            raise MissingFieldError("bank_name")
        normalized = normalize_iban(iban)
        if not is_valid_iban(normalized):
            raise InvalidIbanError(iban)

        with LogContext.bind(**scope.log_fields()), self._unit_of_work("create_bank_account"):
            def _new_account(is_main: bool) -> BankAccountModel:
                return BankAccountModel(
                    residence_id=scope.residence_id,
                    bank_name=bank_name.strip(),
                    account_name=account_name,
                    iban=normalized,
                    bic=bic.strip().upper() if bic else None,
                    balance=ZERO,
                    is_main=is_main,
                    created_by_id=scope.actor_id,
                )

            account = _new_account(self._account_count(scope.residence_id) == 0)
            try:
                with self.session.begin_nested():
                    self.session.add(account)
            except IntegrityError:
                if not account.is_main:
                    raise
                # A concurrent first account holds the main flag
                logger.info("bank_account_main_taken", extra={
                    "iban_suffix": normalized[-4:],
                })
                account = _new_account(False)
                with self.session.begin_nested():
                    self.session.add(account)
            logger.info("bank_account_created", extra={
                "bank_account_id": str(account.id),
                "iban_suffix": normalized[-4:],
                "is_main": account.is_main,
            })
            return account.to_dto()

    def set_main(self, scope: CallerScope, account_id: UUID) -> BankAccount:
        """Make ``account_id`` the residence's only main account."""
        with LogContext.bind(**scope.log_fields()), self._unit_of_work("set_main"):
            target = self._load_account(scope, account_id)
            accounts = self.session.scalars(
                select(BankAccountModel)
                .where(BankAccountModel.residence_id == scope.residence_id)
                .with_for_update()
            ).all()
            # Clear first so the partial unique index never sees two mains
            for account in accounts:
                if account.id != target.id and account.is_main:
                    account.is_main = False
                    account.updated_by_id = scope.actor_id
            self.session.flush()
            target.is_main = True
            target.updated_by_id = scope.actor_id
            self.session.flush()
            logger.info("bank_account_main_changed", extra={"bank_account_id": str(account_id)})
            return target.to_dto()

    def get_account(self, scope: CallerScope, account_id: UUID) -> BankAccount:
        return self._load_account(scope, account_id).to_dto()

    def list_accounts(self, scope: CallerScope) -> list[BankAccount]:
        rows = self.session.scalars(
            select(BankAccountModel)
            .where(BankAccountModel.residence_id == scope.residence_id)
            .order_by(BankAccountModel.is_main.desc(), BankAccountModel.created_at)
        ).all()
        return [row.to_dto() for row in rows]

    def treasury(self, residence_id: UUID) -> Decimal:
        """Sum of the residence's bank account balances."""
        total = self.session.scalar(
            select(func.sum(BankAccountModel.balance)).where(
                BankAccountModel.residence_id == residence_id
            )
        )
        return round_money(Decimal(str(total or ZERO)))

    # =========================================================================
    # Transactions
    # =========================================================================

    def import_transactions(
        self,
        scope: CallerScope,
        bank_account_id: UUID,
        rows: Sequence[TransactionRow],
    ) -> ImportResult:
        """
        Insert statement rows and move the rolling balance by their sum.

        Rows whose ``external_id`` is already on the account, or repeated
        inside ``rows``, are skipped.  Rows without ``external_id`` are
        always inserted.
        """
        parsed = []
        for row in rows:
            if row.transaction_date is None:
                raise MissingFieldError("transaction_date")
            parsed.append((row, parse_amount(row.amount, "amount")))

        with LogContext.bind(**scope.log_fields()), self._unit_of_work("import_transactions"):
            account = self._load_account(scope, bank_account_id, for_update=True)
            known = set(self.session.scalars(
                select(BankTransactionModel.external_id).where(
                    BankTransactionModel.bank_account_id == account.id,
                    BankTransactionModel.external_id.is_not(None),
                )
            ).all())

            imported = []
            skipped = []
            delta = ZERO
            for row, amount in parsed:
                if row.external_id is not None and row.external_id in known:
                    skipped.append(row.external_id)
                    continue
                model = BankTransactionModel.from_dto(
                    row, account.id, amount, created_by_id=scope.actor_id,
                )
                try:
                    with self.session.begin_nested():
                        self.session.add(model)
                except IntegrityError:
                    # Imported concurrently by another session
                    skipped.append(row.external_id)
                    continue
                if row.external_id is not None:
                    known.add(row.external_id)
                imported.append(model)
                delta += amount

            if imported:
                self.session.execute(
                    update(BankAccountModel)
                    .where(BankAccountModel.id == account.id)
                    .values(balance=BankAccountModel.balance + delta)
                    .execution_options(synchronize_session=False)
                )
            account.last_sync_at = self.clock.now()
            self.session.flush()
            self.session.refresh(account)

            logger.info("bank_transactions_imported", extra={
                "bank_account_id": str(account.id),
                "imported": len(imported),
                "skipped": len(skipped),
                "balance_delta": str(delta),
            })
            return ImportResult(
                imported=tuple(model.to_dto() for model in imported),
                skipped_external_ids=tuple(skipped),
                balance=round_money(account.balance),
            )

    def list_pending(self, scope: CallerScope, limit: int | None = None) -> list[BankTransaction]:
        """Unreconciled transactions of every account of the residence, newest first."""
        rows = self.session.scalars(
            select(BankTransactionModel)
            .join(BankAccountModel, BankTransactionModel.bank_account_id == BankAccountModel.id)
            .where(
                BankAccountModel.residence_id == scope.residence_id,
                BankTransactionModel.is_reconciled.is_(False),
            )
            .order_by(
                BankTransactionModel.transaction_date.desc(),
                BankTransactionModel.created_at.desc(),
            )
            .limit(limit or self._config.page_size)
        ).all()
        return [row.to_dto() for row in rows]

    def get_transaction(self, scope: CallerScope, transaction_id: UUID) -> BankTransaction:
        return self._load_transactions(scope, [transaction_id])[0].to_dto()

    def candidates(
        self,
        scope: CallerScope,
        transaction_id: UUID,
        window_days: int | None = None,
    ) -> list[MatchSuggestion]:
        """Ledger lines an operator may pair with the transaction.  Advisory only."""
        window = self._config.match_window_days if window_days is None else window_days
        if window < 0:
            raise InvalidAmountError("window_days", window, "must not be negative")
        txn = self._load_transactions(scope, [transaction_id])[0]
        anchor = txn.value_date or txn.transaction_date
        lines = self._ledger.lines_matching_amount(
            scope.residence_id,
            txn.amount,
            anchor - timedelta(days=window),
            anchor + timedelta(days=window),
        )
        pool = [
            LedgerCandidate(
                line_id=line.id,
                line_date=line.line_date,
                debit=line.debit,
                credit=line.credit,
                label=line.label,
                account_code=line.account_code,
            )
            for line in lines
        ]
        return rank_candidates(txn.amount, anchor, txn.label, pool, window_days=window)

    def reconcile(
        self,
        scope: CallerScope,
        transaction_ids: Sequence[UUID],
        reconciled_with: str | None = None,
    ) -> ReconcileResult:
        """
        Flag transactions as reconciled.

        Ids already reconciled are left untouched.  One id outside the
        caller's residence rejects the whole call.
        """
        with LogContext.bind(**scope.log_fields()), self._unit_of_work("reconcile"):
            models = self._load_transactions(scope, transaction_ids, for_update=True)
            now = self.clock.now()
            done = []
            already = []
            for model in models:
                if model.is_reconciled:
                    already.append(model.id)
                    continue
                model.is_reconciled = True
                model.reconciled_at = now
                if reconciled_with:
                    model.reconciled_with = reconciled_with
                model.updated_by_id = scope.actor_id
                done.append(model.id)
            logger.info("bank_transactions_reconciled", extra={
                "reconciled": len(done),
                "already_reconciled": len(already),
                "reconciled_with": reconciled_with or "",
            })
            return ReconcileResult(reconciled=tuple(done), already_reconciled=tuple(already))

    def unreconcile(self, scope: CallerScope, transaction_id: UUID) -> BankTransaction:
        with LogContext.bind(**scope.log_fields()), self._unit_of_work("unreconcile"):
            model = self._load_transactions(scope, [transaction_id], for_update=True)[0]
            if model.is_reconciled:
                model.is_reconciled = False
                model.reconciled_at = None
                model.reconciled_with = None
                model.updated_by_id = scope.actor_id
                logger.warning("bank_transaction_unreconciled", extra={
                    "transaction_id": str(transaction_id),
                })
            return model.to_dto()

    # =========================================================================
    # Internals
    # =========================================================================

    def _account_count(self, residence_id: UUID) -> int:
        return self.session.scalar(
            select(func.count(BankAccountModel.id)).where(
                BankAccountModel.residence_id == residence_id
            )
        ) or 0

    def _load_account(
        self,
        scope: CallerScope,
        account_id: UUID,
        for_update: bool = False,
    ) -> BankAccountModel:
        query = select(BankAccountModel).where(BankAccountModel.id == account_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        account = self.session.scalar(query)
        if account is None or account.residence_id != scope.residence_id:
            raise BankAccountNotFoundError(str(account_id))
        return account

    def _load_transactions(
        self,
        scope: CallerScope,
        transaction_ids: Sequence[UUID],
        for_update: bool = False,
    ) -> list[BankTransactionModel]:
        """Transactions in the order requested; any unknown id raises."""
        wanted = list(dict.fromkeys(transaction_ids))
        if not wanted:
            return []
        query = (
            select(BankTransactionModel)
            .join(BankAccountModel, BankTransactionModel.bank_account_id == BankAccountModel.id)
            .where(
                BankTransactionModel.id.in_(wanted),
                BankAccountModel.residence_id == scope.residence_id,
            )
        )
        if for_update:
            query = query.with_for_update(of=BankTransactionModel).execution_options(
                populate_existing=True
            )
        found = {row.id: row for row in self.session.scalars(query).all()}
        for transaction_id in wanted:
            if transaction_id not in found:
                logger.warning("bank_transaction_out_of_scope", extra={
                    "transaction_id": str(transaction_id),
                })
                raise BankTransactionNotFoundError(str(transaction_id))
        return [found[transaction_id] for transaction_id in wanted]
