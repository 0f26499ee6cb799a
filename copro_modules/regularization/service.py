"""
Regularization Module Service (``copro_modules.regularization.service``).

Responsibility
--------------
Creates per-lease regularizations, drives the pending -> sent -> paid
lifecycle, and exposes the data a notification collaborator needs
(``notice``) plus residence-level totals (``summary``).

Architecture position
---------------------
**Modules layer**.  ``RegularizationService`` is the sole public entry
point.  Lot labels come from the external directory through a
``DirectoryResolver``; a lease or lot that no longer exists renders as
``"unknown"``.

Invariants enforced
-------------------
* ``balance = provisions_total - actual_charges``; the caller never
  supplies it.
* ``period_end >= period_start``; amounts >= 0.
* One regularization per lease and period.
* Transitions follow ``REGULARIZATION_WORKFLOW``; ``send`` stamps
  ``sent_at`` and ``mark_paid`` stamps ``paid_at``.
* ``send_all`` sends every eligible row in one transaction; rows that are
  not pending are skipped and reported, never an error.

Failure modes
-------------
* ``InvalidPeriodError`` / ``InvalidAmountError`` before any write.
* ``DuplicateRegularizationError`` -- lease already settled for the period.
* ``RegularizationNotFoundError`` -- unknown id or another residence's.
* ``IllegalTransitionError`` -- e.g. sending an already-sent row.
* ``OptimisticLockError`` -- concurrent status change.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from copro_kernel.db.types import ZERO, parse_non_negative, round_money
from copro_kernel.domain.clock import Clock
from copro_kernel.domain.references import DirectoryResolver, lot_display
from copro_kernel.domain.scope import CallerScope
from copro_kernel.exceptions import (
    DistributionKeyNotFoundError,
    DuplicateRegularizationError,
    InvalidPeriodError,
    MissingFieldError,
    OptimisticLockError,
    RegularizationNotFoundError,
)
from copro_kernel.logging_config import LogContext, get_logger
from copro_kernel.services.base import BaseService
from copro_modules.distribution.orm import DistributionKeyModel
from copro_modules.regularization.models import (
    ChargeLine,
    Regularization,
    RegularizationNotice,
    RegularizationStatus,
    RegularizationSummary,
    SendAllResult,
    direction_of,
)
from copro_modules.regularization.orm import RegularizationChargeLineModel, RegularizationModel
from copro_modules.regularization.workflows import REGULARIZATION_WORKFLOW

logger = get_logger("modules.regularization.service")


class RegularizationService(BaseService):
    """
    Tenant charge regularizations.

    Contract
    --------
    * Writes own their transaction; reads are scoped to the caller's
      residence.
    * ``directory`` resolves lot labels and the lot of a lease; without one
      lots render as their raw id.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        directory: DirectoryResolver | None = None,
        auto_commit: bool = True,
    ):
        super().__init__(session, clock=clock, auto_commit=auto_commit)
        self._directory = directory

    # =========================================================================
    # Creation
    # =========================================================================

    def create(
        self,
        scope: CallerScope,
        lease_id: UUID,
        period_start: date,
        period_end: date,
        provisions_total: Decimal | str | int,
        actual_charges: Decimal | str | int,
        lot_id: UUID | None = None,
    ) -> Regularization:
        """Record a settlement; ``balance`` is derived here."""
        provisions = parse_non_negative(provisions_total, "provisions_total")
        actual = parse_non_negative(actual_charges, "actual_charges")
        return self._create(scope, lease_id, period_start, period_end, provisions, actual, lot_id, ())

    def create_from_breakdown(
        self,
        scope: CallerScope,
        lease_id: UUID,
        period_start: date,
        period_end: date,
        provisions_total: Decimal | str | int,
        charges: Sequence[ChargeLine],
        lot_id: UUID | None = None,
    ) -> Regularization:
        """Like ``create``, with ``actual_charges`` = the sum of ``charges``."""
        provisions = parse_non_negative(provisions_total, "provisions_total")
        parsed = tuple(
            ChargeLine(
                label=_label(charge.label),
                amount=parse_non_negative(charge.amount, "charge.amount"),
                category=charge.category,
                distribution_key_id=charge.distribution_key_id,
            )
            for charge in charges
        )
        actual = sum((c.amount for c in parsed), ZERO)
        return self._create(scope, lease_id, period_start, period_end, provisions, actual, lot_id, parsed)

    def _create(
        self,
        scope: CallerScope,
        lease_id: UUID,
        period_start: date,
        period_end: date,
        provisions: Decimal,
        actual: Decimal,
        lot_id: UUID | None,
        charges: tuple[ChargeLine, ...],
    ) -> Regularization:
        if lease_id is None:
            raise MissingFieldError("lease_id")
        if period_start is None:
            raise MissingFieldError("period_start")
        if period_end is None:
            raise MissingFieldError("period_end")
        if period_end < period_start:
            raise InvalidPeriodError(period_start.isoformat(), period_end.isoformat())
        if lot_id is None and self._directory is not None:
            lot_id = self._directory.lease_lot(lease_id)

        with LogContext.bind(**scope.log_fields()), self._unit_of_work("create_regularization"):
            conflict = DuplicateRegularizationError(
                str(lease_id), period_start.isoformat(), period_end.isoformat()
            )
            exists = self.session.scalar(
                select(func.count(RegularizationModel.id)).where(
                    RegularizationModel.lease_id == lease_id,
                    RegularizationModel.period_start == period_start,
                    RegularizationModel.period_end == period_end,
                )
            )
            if exists:
                raise conflict
            for charge in charges:
                if charge.distribution_key_id is not None:
                    self._check_key(scope, charge.distribution_key_id)

            reg = RegularizationModel(
                residence_id=scope.residence_id,
                lease_id=lease_id,
                lot_id=lot_id,
                period_start=period_start,
                period_end=period_end,
                provisions_total=provisions,
                actual_charges=actual,
                balance=provisions - actual,
                status=REGULARIZATION_WORKFLOW.initial_state,
                created_by_id=scope.actor_id,
            )
            reg.charge_lines = [
                RegularizationChargeLineModel.from_dto(charge, position, scope.actor_id)
                for position, charge in enumerate(charges)
            ]
            try:
                with self.session.begin_nested():
                    self.session.add(reg)
            except IntegrityError as exc:
                raise conflict from exc

            logger.info("regularization_created", extra={
                "regularization_id": str(reg.id),
                "lease_id": str(lease_id),
                "provisions_total": str(provisions),
                "actual_charges": str(actual),
                "balance": str(reg.balance),
                "direction": direction_of(reg.balance).value,
            })
            return reg.to_dto()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def send(self, scope: CallerScope, regularization_id: UUID) -> Regularization:
        """pending -> sent, stamping ``sent_at``."""
        with LogContext.bind(**scope.log_fields()), self._unit_of_work("send_regularization"):
            reg = self._load(scope, regularization_id)
            self._apply(scope, reg, "send")
            return reg.to_dto()

    def mark_paid(self, scope: CallerScope, regularization_id: UUID) -> Regularization:
        """sent -> paid, stamping ``paid_at``."""
        with LogContext.bind(**scope.log_fields()), self._unit_of_work("mark_regularization_paid"):
            reg = self._load(scope, regularization_id)
            self._apply(scope, reg, "mark_paid")
            return reg.to_dto()

    def send_all(
        self,
        scope: CallerScope,
        ids: Sequence[UUID] | None = None,
    ) -> SendAllResult:
        """
        Send every pending regularization of the residence, or only ``ids``.

        Unknown ids abort the whole call; non-pending ones are skipped.
        """
        with LogContext.bind(**scope.log_fields()), self._unit_of_work("send_all_regularizations"):
            if ids is None:
                rows = list(self.session.scalars(
                    select(RegularizationModel)
                    .where(
                        RegularizationModel.residence_id == scope.residence_id,
                        RegularizationModel.status == RegularizationStatus.PENDING.value,
                    )
                    .order_by(RegularizationModel.period_end, RegularizationModel.lease_id)
                ).all())
            else:
                rows = [self._load(scope, reg_id) for reg_id in dict.fromkeys(ids)]

            sent, skipped = [], []
            for reg in rows:
                if reg.status != RegularizationStatus.PENDING.value:
                    skipped.append(reg.id)
                    continue
                self._apply(scope, reg, "send")
                sent.append(reg)

            logger.info("regularizations_sent", extra={
                "sent_count": len(sent),
                "skipped_count": len(skipped),
            })
            return SendAllResult(
                sent=tuple(reg.to_dto() for reg in sent),
                skipped=tuple(skipped),
            )

    def _apply(self, scope: CallerScope, reg: RegularizationModel, action: str) -> None:
        from_state = reg.status
        reg.status = REGULARIZATION_WORKFLOW.next_state(from_state, action, reg.id)
        now = self._clock.now()
        if action == "send":
            reg.sent_at = now
        elif action == "mark_paid":
            reg.paid_at = now
        reg.updated_by_id = scope.actor_id
        try:
            self.session.flush()
        except StaleDataError as exc:
            raise OptimisticLockError("Regularization", str(reg.id)) from exc

        logger.info("regularization_status_changed", extra={
            "regularization_id": str(reg.id),
            "from_state": from_state,
            "to_state": reg.status,
        })

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, scope: CallerScope, regularization_id: UUID) -> Regularization:
        return self._load(scope, regularization_id).to_dto()

    def list_regularizations(
        self,
        scope: CallerScope,
        status: RegularizationStatus | str | None = None,
        lease_id: UUID | None = None,
    ) -> list[Regularization]:
        query = select(RegularizationModel).where(
            RegularizationModel.residence_id == scope.residence_id
        )
        if status is not None:
            query = query.where(RegularizationModel.status == RegularizationStatus(status).value)
        if lease_id is not None:
            query = query.where(RegularizationModel.lease_id == lease_id)
        query = query.order_by(RegularizationModel.period_end.desc(), RegularizationModel.lease_id)
        return [row.to_dto() for row in self.session.scalars(query).all()]

    def charge_lines(self, scope: CallerScope, regularization_id: UUID) -> list[ChargeLine]:
        reg = self._load(scope, regularization_id)
        return [line.to_dto() for line in reg.charge_lines]

    def notice(self, scope: CallerScope, regularization_id: UUID) -> RegularizationNotice:
        reg = self._load(scope, regularization_id)
        balance = reg.balance
        return RegularizationNotice(
            regularization_id=reg.id,
            lease_id=reg.lease_id,
            lot_label=lot_display(self._directory, reg.lot_id),
            period_start=reg.period_start,
            period_end=reg.period_end,
            provisions_total=round_money(reg.provisions_total),
            actual_charges=round_money(reg.actual_charges),
            balance=round_money(balance),
            amount=round_money(abs(balance)),
            direction=direction_of(balance),
            sent_at=reg.sent_at,
            charges=tuple(line.to_dto() for line in reg.charge_lines),
        )

    def summary(self, scope: CallerScope, year: int | None = None) -> RegularizationSummary:
        """Totals over the residence, optionally for periods ending in ``year``."""
        query = select(RegularizationModel).where(
            RegularizationModel.residence_id == scope.residence_id
        )
        if year is not None:
            query = query.where(
                RegularizationModel.period_end >= date(year, 1, 1),
                RegularizationModel.period_end <= date(year, 12, 31),
            )
        rows = self.session.scalars(query).all()
        counts = {status: 0 for status in RegularizationStatus}
        for row in rows:
            counts[RegularizationStatus(row.status)] += 1
        return RegularizationSummary(
            count=len(rows),
            provisions_total=round_money(sum((r.provisions_total for r in rows), ZERO)),
            actual_charges=round_money(sum((r.actual_charges for r in rows), ZERO)),
            balance=round_money(sum((r.balance for r in rows), ZERO)),
            pending=counts[RegularizationStatus.PENDING],
            sent=counts[RegularizationStatus.SENT],
            paid=counts[RegularizationStatus.PAID],
        )

    # =========================================================================
    # Internals
    # =========================================================================

    def _load(self, scope: CallerScope, regularization_id: UUID) -> RegularizationModel:
        reg = self.session.get(RegularizationModel, regularization_id)
        if reg is None or reg.residence_id != scope.residence_id:
            raise RegularizationNotFoundError(str(regularization_id))
        return reg

    def _check_key(self, scope: CallerScope, key_id: UUID) -> None:
        key = self.session.get(DistributionKeyModel, key_id)
        if key is None or key.residence_id != scope.residence_id:
            raise DistributionKeyNotFoundError(str(key_id))


def _label(label: str | None) -> str:
    if label is None or not label.strip():
        raise MissingFieldError("charge.label")
    return label.strip()
