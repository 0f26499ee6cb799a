"""
Works Fund Service (``copro_modules.works_fund.service``).

Responsibility
--------------
One reserve fund per residence: creation with a minimum percentage,
contributions, and the compliance status against the latest voted budget.

Architecture position
---------------------
**Modules layer**.  Threshold arithmetic lives in
``copro_engines.works_fund``; the budget total comes from
``BudgetService.latest_voted_total``.

Invariants enforced
-------------------
* ``minimum_percentage`` is never below the legal floor.
* ``contribute`` requires an amount > 0 and moves the balance with
  ``UPDATE ... SET balance = balance + :amount`` so concurrent
  contributions never lose an update.
* ``status`` only reports.  A fund below its required minimum logs a
  warning and blocks nothing.

Failure modes
-------------
* ``BelowLegalMinimumError`` -- percentage under the legal floor.
* ``InvalidAmountError``     -- contribution <= 0.
* ``WorksFundNotFoundError`` -- no fund yet for the residence.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from copro_engines.works_fund import fund_position
from copro_kernel.db.types import parse_amount, parse_positive, round_money
from copro_kernel.domain.clock import Clock
from copro_kernel.domain.scope import CallerScope
from copro_kernel.exceptions import BelowLegalMinimumError, WorksFundNotFoundError
from copro_kernel.logging_config import LogContext, get_logger
from copro_kernel.services.base import BaseService
from copro_modules.budget.service import BudgetService
from copro_modules.works_fund.config import WorksFundConfig
from copro_modules.works_fund.models import WorksFund, WorksFundStatus
from copro_modules.works_fund.orm import WorksFundModel

logger = get_logger("modules.works_fund.service")


class WorksFundService(BaseService):
    """Reserve fund for major works."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: WorksFundConfig | None = None,
        auto_commit: bool = True,
    ):
        super().__init__(session, clock=clock, auto_commit=auto_commit)
        self._config = config or WorksFundConfig.with_defaults()

    def get_or_create(
        self,
        scope: CallerScope,
        minimum_percentage: Decimal | str | int | None = None,
    ) -> WorksFund:
        """
        The residence's fund, created on first call.

        ``minimum_percentage`` applies to creation only and defaults to
        the legal floor.  It is validated even when the fund exists.
        """
        percentage = self._check_percentage(
            self._config.legal_minimum_percentage
            if minimum_percentage is None else minimum_percentage
        )
        with LogContext.bind(**scope.log_fields()), self._unit_of_work("get_or_create"):
            fund = self._find(scope)
            if fund is not None:
                return fund.to_dto()

            fund = WorksFundModel(
                residence_id=scope.residence_id,
                balance=Decimal("0"),
                minimum_percentage=percentage,
                created_by_id=scope.actor_id,
            )
            try:
                with self.session.begin_nested():
                    self.session.add(fund)
            except IntegrityError:
                # Created concurrently; the residence still has one fund
                fund = self._find(scope)
                if fund is None:
                    raise
                return fund.to_dto()

            logger.info("works_fund_created", extra={
                "fund_id": str(fund.id),
                "minimum_percentage": str(percentage),
            })
            return fund.to_dto()

    def get(self, scope: CallerScope) -> WorksFund:
        return self._load(scope).to_dto()

    def set_minimum_percentage(
        self,
        scope: CallerScope,
        minimum_percentage: Decimal | str | int,
    ) -> WorksFund:
        percentage = self._check_percentage(minimum_percentage)
        with LogContext.bind(**scope.log_fields()), self._unit_of_work("set_minimum_percentage"):
            fund = self._load(scope)
            fund.minimum_percentage = percentage
            fund.updated_by_id = scope.actor_id
            logger.info("works_fund_minimum_changed", extra={
                "fund_id": str(fund.id),
                "minimum_percentage": str(percentage),
            })
            return fund.to_dto()

    def contribute(self, scope: CallerScope, amount: Decimal | str | int) -> WorksFund:
        value = parse_positive(amount, "amount")
        with LogContext.bind(**scope.log_fields()), self._unit_of_work("contribute"):
            fund = self._load(scope)
            self.session.execute(
                update(WorksFundModel)
                .where(WorksFundModel.id == fund.id)
                .values(
                    balance=WorksFundModel.balance + value,
                    last_contribution_date=self.clock.today(),
                    updated_by_id=scope.actor_id,
                )
                .execution_options(synchronize_session=False)
            )
            self.session.refresh(fund)
            logger.info("works_fund_contribution", extra={
                "fund_id": str(fund.id),
                "amount": str(value),
                "balance": str(round_money(fund.balance)),
            })
            return fund.to_dto()

    def status(self, scope: CallerScope) -> WorksFundStatus:
        """Balance against ``minimum_percentage`` of the latest voted budget."""
        fund = self._load(scope)
        budget_total = BudgetService(
            self.session, clock=self.clock, auto_commit=False
        ).latest_voted_total(scope.residence_id)
        position = fund_position(
            round_money(fund.balance),
            Decimal(str(fund.minimum_percentage)),
            budget_total,
        )
        if not position.is_compliant:
            logger.warning("works_fund_below_minimum", extra={
                "residence_id": str(scope.residence_id),
                "balance": str(position.balance),
                "required_minimum": str(round_money(position.required_minimum)),
                "shortfall": str(round_money(position.shortfall)),
            })
        return WorksFundStatus(
            fund_id=fund.id,
            residence_id=fund.residence_id,
            balance=position.balance,
            minimum_percentage=position.minimum_percentage,
            budget_total=position.budget_total,
            required_minimum=round_money(position.required_minimum),
            progress=position.progress,
            shortfall=round_money(position.shortfall),
            last_contribution_date=fund.last_contribution_date,
        )

    def _check_percentage(self, value: Decimal | str | int) -> Decimal:
        percentage = parse_amount(value, "minimum_percentage")
        floor = self._config.legal_minimum_percentage
        if percentage < floor:
            logger.warning("works_fund_percentage_rejected", extra={
                "minimum_percentage": str(percentage),
                "legal_minimum": str(floor),
            })
            raise BelowLegalMinimumError(str(percentage), str(floor))
        return percentage

    def _find(self, scope: CallerScope) -> WorksFundModel | None:
        return self.session.scalar(
            select(WorksFundModel).where(WorksFundModel.residence_id == scope.residence_id)
        )

    def _load(self, scope: CallerScope) -> WorksFundModel:
        fund = self._find(scope)
        if fund is None:
            raise WorksFundNotFoundError(str(scope.residence_id))
        return fund
