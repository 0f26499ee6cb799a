"""
Distribution Key Service (``copro_modules.distribution.service``).

Responsibility
--------------
Manages distribution keys and the per-lot shares under them, and
exposes the prorata queries built on the pure distribution engine:
percentages, allocation of an amount, and a lot's part of several costs.

Architecture position
---------------------
**Modules layer**.  ``DistributionService`` is the sole public entry
point.  Percentages are computed by ``copro_engines.distribution``;
nothing here divides shares by hand.

Invariants enforced
-------------------
* Key codes are upper-cased and unique per residence.
* ``set_share`` is an upsert; shares must be >= 0.
* A key with zero total shares is valid and yields 0 % for every lot.
* ``delete_key`` is refused while any budget line or regularization
  charge line references the key (checked explicitly, not left to a
  foreign-key failure).
* Each public method owns its transaction (commit on success, rollback
  and re-raise on failure).

Failure modes
-------------
* ``DuplicateKeyCodeError``   -- code already used in the residence.
* ``DistributionKeyNotFoundError`` -- unknown key or another residence's.
* ``InvalidAmountError``      -- negative or non-numeric shares.
* ``KeyInUseError``           -- deletion of a referenced key.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from copro_engines.distribution import allocate, lot_charge, percentages, share_percentage
from copro_kernel.db.types import ZERO, parse_amount, parse_non_negative
from copro_kernel.domain.clock import Clock
from copro_kernel.domain.scope import CallerScope
from copro_kernel.domain.values import Money
from copro_kernel.exceptions import (
    DistributionKeyNotFoundError,
    DuplicateKeyCodeError,
    KeyInUseError,
    MissingFieldError,
)
from copro_kernel.logging_config import LogContext, get_logger
from copro_kernel.services.base import BaseService
from copro_modules.budget.orm import BudgetLineModel
from copro_modules.distribution.models import DistributionKey, KeyUsage, LotShare
from copro_modules.distribution.orm import DistributionKeyModel, LotShareModel
from copro_modules.regularization.orm import RegularizationChargeLineModel

logger = get_logger("modules.distribution.service")


class DistributionService(BaseService):
    """
    Distribution keys, lot shares and prorata computations.

    Contract
    --------
    * Every method takes the caller's ``CallerScope``; keys of another
      residence are reported as not found.
    * Returns frozen DTOs from ``copro_modules.distribution.models``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auto_commit: bool = True,
        currency: str = "EUR",
    ):
        super().__init__(session, clock=clock, auto_commit=auto_commit)
        self._currency = currency

    # =========================================================================
    # Keys
    # =========================================================================

    def create_key(
        self,
        scope: CallerScope,
        code: str,
        name: str,
        description: str | None = None,
    ) -> DistributionKey:
        if code is None or not code.strip():
            raise MissingFieldError("code")
        if name is None or not name.strip():
            raise MissingFieldError("name")
        code = code.strip().upper()

        with LogContext.bind(**scope.log_fields()), self._unit_of_work("create_key"):
            exists = self.session.scalar(
                select(func.count(DistributionKeyModel.id)).where(
                    DistributionKeyModel.residence_id == scope.residence_id,
                    DistributionKeyModel.code == code,
                )
            )
            conflict = DuplicateKeyCodeError(code, str(scope.residence_id))
            if exists:
                raise conflict

            key = DistributionKeyModel(
                residence_id=scope.residence_id,
                code=code,
                name=name.strip(),
                description=description,
                created_by_id=scope.actor_id,
            )
            try:
                with self.session.begin_nested():
                    self.session.add(key)
            except IntegrityError as exc:
                raise conflict from exc

            logger.info("distribution_key_created", extra={
                "key_id": str(key.id),
                "key_code": code,
            })
            return key.to_dto()

    def update_key(
        self,
        scope: CallerScope,
        key_id: UUID,
        name: str | None = None,
        description: str | None = None,
    ) -> DistributionKey:
        with LogContext.bind(**scope.log_fields()), self._unit_of_work("update_key"):
            key = self._load_key(scope, key_id)
            if name is not None:
                if not name.strip():
                    raise MissingFieldError("name")
                key.name = name.strip()
            if description is not None:
                key.description = description
            key.updated_by_id = scope.actor_id
            logger.info("distribution_key_updated", extra={"key_id": str(key_id)})
            return key.to_dto()

    def get_key(self, scope: CallerScope, key_id: UUID) -> DistributionKey:
        return self._load_key(scope, key_id).to_dto()

    def list_keys(self, scope: CallerScope) -> list[DistributionKey]:
        rows = self.session.scalars(
            select(DistributionKeyModel)
            .where(DistributionKeyModel.residence_id == scope.residence_id)
            .order_by(DistributionKeyModel.code)
        ).all()
        return [row.to_dto() for row in rows]

    def key_usage(self, scope: CallerScope, key_id: UUID) -> KeyUsage:
        self._load_key(scope, key_id)
        return self._usage(key_id)

    def delete_key(self, scope: CallerScope, key_id: UUID) -> None:
        """Delete a key and its shares, unless budgets or regularizations use it."""
        with LogContext.bind(**scope.log_fields()), self._unit_of_work("delete_key"):
            key = self._load_key(scope, key_id)
            usage = self._usage(key_id)
            if usage.in_use:
                logger.warning("distribution_key_delete_refused", extra={
                    "key_id": str(key_id),
                    "budget_line_refs": usage.budget_lines,
                    "regularization_refs": usage.regularization_lines,
                })
                raise KeyInUseError(str(key_id), usage.budget_lines, usage.regularization_lines)
            self.session.delete(key)
            logger.info("distribution_key_deleted", extra={
                "key_id": str(key_id),
                "key_code": key.code,
            })

    # =========================================================================
    # Shares
    # =========================================================================

    def set_share(
        self,
        scope: CallerScope,
        key_id: UUID,
        lot_id: UUID,
        shares: Decimal | str | int,
    ) -> LotShare:
        """Insert or update the shares of ``lot_id`` under ``key_id``."""
        value = parse_non_negative(shares, "shares")
        if lot_id is None:
            raise MissingFieldError("lot_id")

        with LogContext.bind(**scope.log_fields()), self._unit_of_work("set_share"):
            self._load_key(scope, key_id)
            row = self._share_row(key_id, lot_id)
            if row is None:
                row = LotShareModel(
                    key_id=key_id,
                    lot_id=lot_id,
                    shares=value,
                    created_by_id=scope.actor_id,
                )
                try:
                    with self.session.begin_nested():
                        self.session.add(row)
                except IntegrityError:
                    # Another operator inserted the pair first; update theirs
                    row = self._share_row(key_id, lot_id)
                    if row is None:
                        raise
                    row.shares = value
                    row.updated_by_id = scope.actor_id
            else:
                row.shares = value
                row.updated_by_id = scope.actor_id
            self.session.flush()

            total = self._total_shares(key_id)
            logger.info("lot_share_set", extra={
                "key_id": str(key_id),
                "lot_id": str(lot_id),
                "shares": str(value),
                "key_total_shares": str(total),
            })
            return row.to_dto(share_percentage(value, total))

    def remove_share(self, scope: CallerScope, key_id: UUID, lot_id: UUID) -> bool:
        """Drop a lot from a key.  Returns False when the lot had no share row."""
        with LogContext.bind(**scope.log_fields()), self._unit_of_work("remove_share"):
            self._load_key(scope, key_id)
            row = self._share_row(key_id, lot_id)
            if row is None:
                return False
            self.session.delete(row)
            logger.info("lot_share_removed", extra={
                "key_id": str(key_id),
                "lot_id": str(lot_id),
            })
            return True

    def shares(self, scope: CallerScope, key_id: UUID) -> list[LotShare]:
        """Every lot share of a key with its current percentage."""
        self._load_key(scope, key_id)
        rows = self._share_rows(key_id)
        fractions = percentages({row.lot_id: row.shares for row in rows})
        return [row.to_dto(fractions[row.lot_id]) for row in rows]

    def total_shares(self, scope: CallerScope, key_id: UUID) -> Decimal:
        self._load_key(scope, key_id)
        return self._total_shares(key_id)

    def percentage(self, scope: CallerScope, key_id: UUID, lot_id: UUID) -> Decimal:
        """
        shares(key, lot) / total shares of the key.

        0 for a lot without shares and for a key whose total is 0.
        """
        self._load_key(scope, key_id)
        row = self._share_row(key_id, lot_id)
        if row is None:
            return ZERO
        return share_percentage(row.shares, self._total_shares(key_id))

    def share_map(self, scope: CallerScope, key_id: UUID) -> dict[UUID, Decimal]:
        """lot_id -> shares, for callers feeding the distribution engine."""
        self._load_key(scope, key_id)
        return {row.lot_id: row.shares for row in self._share_rows(key_id)}

    # =========================================================================
    # Prorata
    # =========================================================================

    def allocate(
        self,
        scope: CallerScope,
        key_id: UUID,
        amount: Decimal | str | int,
    ) -> dict[UUID, Decimal]:
        """Split ``amount`` across the key's lots; parts sum exactly to it."""
        value = parse_amount(amount, "amount")
        parts = allocate(Money.of(value, self._currency), self.share_map(scope, key_id))
        return {lot_id: part.amount for lot_id, part in parts.items()}

    def lot_charges(
        self,
        scope: CallerScope,
        lot_id: UUID,
        allocations: Sequence[tuple[UUID, Decimal | str | int]],
    ) -> Decimal:
        """A lot's total part of several (key_id, amount) shared costs."""
        pairs = [
            (self.share_map(scope, key_id), Money.of(parse_amount(amount, "amount"), self._currency))
            for key_id, amount in allocations
        ]
        return lot_charge(lot_id, pairs, currency=self._currency).amount

    # =========================================================================
    # Internals
    # =========================================================================

    def _load_key(self, scope: CallerScope, key_id: UUID) -> DistributionKeyModel:
        key = self.session.get(DistributionKeyModel, key_id)
        if key is None or key.residence_id != scope.residence_id:
            raise DistributionKeyNotFoundError(str(key_id))
        return key

    def _share_row(self, key_id: UUID, lot_id: UUID) -> LotShareModel | None:
        return self.session.scalar(
            select(LotShareModel).where(
                LotShareModel.key_id == key_id,
                LotShareModel.lot_id == lot_id,
            )
        )

    def _share_rows(self, key_id: UUID) -> list[LotShareModel]:
        return list(self.session.scalars(
            select(LotShareModel)
            .where(LotShareModel.key_id == key_id)
            .order_by(LotShareModel.created_at, LotShareModel.lot_id)
        ).all())

    def _total_shares(self, key_id: UUID) -> Decimal:
        return sum((row.shares for row in self._share_rows(key_id)), ZERO)

    def _usage(self, key_id: UUID) -> KeyUsage:
        budget_refs = self.session.scalar(
            select(func.count(BudgetLineModel.id)).where(
                BudgetLineModel.distribution_key_id == key_id
            )
        ) or 0
        regularization_refs = self.session.scalar(
            select(func.count(RegularizationChargeLineModel.id)).where(
                RegularizationChargeLineModel.distribution_key_id == key_id
            )
        ) or 0
        return KeyUsage(
            key_id=key_id,
            budget_lines=budget_refs,
            regularization_lines=regularization_refs,
        )
