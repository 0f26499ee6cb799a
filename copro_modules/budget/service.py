"""
Budget Module Service (``copro_modules.budget.service``).

Responsibility
--------------
Orchestrates annual budgets: creation, line maintenance, the
draft -> voted -> active -> closed lifecycle, actual amounts pulled from
the ledger, budget-versus-actual variance, the per-lot call for funds,
and the integrity check of cached totals.

Architecture position
---------------------
**Modules layer**.  ``BudgetService`` is the sole public entry point for
budget operations.  Variance arithmetic is delegated to
``copro_engines.variance``, prorata splits to
``copro_engines.distribution``, ledger sums to ``LedgerSelector``.

Invariants enforced
-------------------
* ``total_budget == sum(line.budgeted_amount)`` for every budget.  The
  line insert/delete and ``UPDATE ... SET total_budget = total_budget +
  :delta`` run in one transaction; a failure rolls both back.  The
  increment is evaluated by the database, so concurrent writers never
  lose an update.
* Deleting a line decrements the total, clamped at 0 (a clamp is logged
  as a warning because it means the total had already drifted).
* Lines change only while the budget is ``draft``.
* Status changes are ORM writes guarded by the ``version`` counter.
* ``verify_totals`` reports drift and never corrects it.

Failure modes
-------------
* ``DuplicateFiscalYearError``  -- fiscal year already budgeted.
* ``BudgetNotFoundError`` / ``BudgetLineNotFoundError`` -- unknown id or
  another residence's.
* ``BudgetNotEditableError``    -- line change outside ``draft``.
* ``IllegalTransitionError``    -- lifecycle action not allowed.
* ``OptimisticLockError``       -- concurrent status change.
* ``BudgetTotalDriftError``     -- ``verify_totals`` found drift.

Audit relevance
---------------
``budget_line_added`` / ``budget_line_deleted`` log the delta and the new
total; status changes log ``budget_status_changed``.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from copro_engines.distribution import allocate, split_instalments
from copro_engines.variance import category_variance, total_variance
from copro_kernel.db.types import ZERO, parse_amount, parse_non_negative, round_money
from copro_kernel.domain.clock import Clock
from copro_kernel.domain.scope import CallerScope
from copro_kernel.domain.values import Money
from copro_kernel.exceptions import (
    BudgetLineNotFoundError,
    BudgetNotEditableError,
    BudgetNotFoundError,
    BudgetTotalDriftError,
    DistributionKeyNotFoundError,
    DuplicateFiscalYearError,
    MissingFieldError,
    OptimisticLockError,
    ValidationError,
)
from copro_kernel.logging_config import LogContext, get_logger
from copro_kernel.selectors.ledger_selector import LedgerSelector
from copro_kernel.services.base import BaseService
from copro_modules.budget.config import BudgetConfig
from copro_modules.budget.models import (
    VOTED_STATES,
    Budget,
    BudgetCallForFunds,
    BudgetCategory,
    BudgetLine,
    BudgetStatus,
    CategoryGroup,
    LotCallForFunds,
    VarianceReport,
)
from copro_modules.budget.orm import BudgetLineModel, BudgetModel
from copro_modules.budget.workflows import BUDGET_WORKFLOW
from copro_modules.distribution.orm import DistributionKeyModel, LotShareModel

logger = get_logger("modules.budget.service")

_MIN_FISCAL_YEAR = 1900
_MAX_FISCAL_YEAR = 9999


class BudgetService(BaseService):
    """
    Annual budgets and their lines.

    Contract
    --------
    * Every method that writes owns its transaction (``auto_commit``).
    * Reads and writes are scoped by the caller's residence.
    * Clock is injectable for deterministic ``voted_at`` stamps.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: BudgetConfig | None = None,
        auto_commit: bool = True,
    ):
        super().__init__(session, clock=clock, auto_commit=auto_commit)
        self._config = config or BudgetConfig.with_defaults()

    # =========================================================================
    # Budgets
    # =========================================================================

    def create_budget(self, scope: CallerScope, fiscal_year: int) -> Budget:
        """New ``draft`` budget with ``total_budget = 0``."""
        fiscal_year = _validate_fiscal_year(fiscal_year)

        with LogContext.bind(**scope.log_fields()), self._unit_of_work("create_budget"):
            conflict = DuplicateFiscalYearError(fiscal_year, str(scope.residence_id))
            exists = self.session.scalar(
                select(func.count(BudgetModel.id)).where(
                    BudgetModel.residence_id == scope.residence_id,
                    BudgetModel.fiscal_year == fiscal_year,
                )
            )
            if exists:
                raise conflict

            budget = BudgetModel(
                residence_id=scope.residence_id,
                fiscal_year=fiscal_year,
                status=BUDGET_WORKFLOW.initial_state,
                total_budget=ZERO,
                created_by_id=scope.actor_id,
            )
            try:
                with self.session.begin_nested():
                    self.session.add(budget)
            except IntegrityError as exc:
                raise conflict from exc

            logger.info("budget_created", extra={
                "budget_id": str(budget.id),
                "fiscal_year": fiscal_year,
            })
            return budget.to_dto()

    def get_budget(self, scope: CallerScope, budget_id: UUID) -> Budget:
        return self._load_budget(scope, budget_id).to_dto()

    def list_budgets(self, scope: CallerScope) -> list[Budget]:
        rows = self.session.scalars(
            select(BudgetModel)
            .where(BudgetModel.residence_id == scope.residence_id)
            .order_by(BudgetModel.fiscal_year.desc())
        ).all()
        return [row.to_dto() for row in rows]

    def budget_for_year(self, scope: CallerScope, fiscal_year: int) -> Budget | None:
        row = self.session.scalar(
            select(BudgetModel).where(
                BudgetModel.residence_id == scope.residence_id,
                BudgetModel.fiscal_year == fiscal_year,
            )
        )
        return row.to_dto() if row is not None else None

    # =========================================================================
    # Lines
    # =========================================================================

    def add_line(
        self,
        scope: CallerScope,
        budget_id: UUID,
        label: str,
        category: BudgetCategory | str,
        budgeted_amount: Decimal | str | int,
        distribution_key_id: UUID | None = None,
        account_prefix: str | None = None,
    ) -> BudgetLine:
        """
        Append a line and add its amount to the budget total, atomically.
        """
        if label is None or not label.strip():
            raise MissingFieldError("label")
        category = _validate_category(category)
        amount = parse_non_negative(budgeted_amount, "budgeted_amount")
        account_prefix = account_prefix.strip() if account_prefix else None

        with LogContext.bind(**scope.log_fields()), self._unit_of_work("add_line"):
            budget = self._load_budget(scope, budget_id, for_update=True)
            self._require_draft(budget)
            if distribution_key_id is not None:
                self._check_key(scope, distribution_key_id)

            line = BudgetLineModel(
                budget_id=budget.id,
                label=label.strip(),
                category=category.value,
                budgeted_amount=amount,
                distribution_key_id=distribution_key_id,
                account_prefix=account_prefix,
                created_by_id=scope.actor_id,
            )
            self.session.add(line)
            self.session.flush()
            self._increment_total(budget, amount)

            logger.info("budget_line_added", extra={
                "budget_id": str(budget.id),
                "line_id": str(line.id),
                "category": category.value,
                "delta": str(amount),
                "total_budget": str(budget.total_budget),
            })
            return line.to_dto()

    def delete_line(self, scope: CallerScope, line_id: UUID) -> Budget:
        """Remove a line and subtract its amount from the total (floor 0)."""
        with LogContext.bind(**scope.log_fields()), self._unit_of_work("delete_line"):
            line = self._load_line(scope, line_id)
            budget = self._load_budget(scope, line.budget_id, for_update=True)
            self._require_draft(budget)

            amount = line.budgeted_amount
            if budget.total_budget < amount:
                logger.warning("budget_total_clamped", extra={
                    "budget_id": str(budget.id),
                    "total_budget": str(budget.total_budget),
                    "line_amount": str(amount),
                })

            self.session.delete(line)
            self.session.flush()
            self._decrement_total(budget, amount)

            logger.info("budget_line_deleted", extra={
                "budget_id": str(budget.id),
                "line_id": str(line_id),
                "delta": str(-amount),
                "total_budget": str(budget.total_budget),
            })
            return budget.to_dto()

    def lines(self, scope: CallerScope, budget_id: UUID) -> list[BudgetLine]:
        self._load_budget(scope, budget_id)
        return [row.to_dto() for row in self._line_rows(budget_id)]

    def group_by_category(
        self,
        scope: CallerScope,
        budget_id: UUID,
    ) -> dict[BudgetCategory, CategoryGroup]:
        """category -> lines and budgeted total, in category declaration order."""
        grouped: dict[BudgetCategory, list[BudgetLine]] = defaultdict(list)
        for line in self.lines(scope, budget_id):
            grouped[line.category].append(line)

        return {
            category: CategoryGroup(
                category=category,
                lines=tuple(grouped[category]),
                category_total=sum((l.budgeted_amount for l in grouped[category]), ZERO),
            )
            for category in BudgetCategory
            if category in grouped
        }

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def vote(
        self,
        scope: CallerScope,
        budget_id: UUID,
        voted_at: datetime | None = None,
        assembly_id: UUID | None = None,
    ) -> Budget:
        return self._transition(
            scope, budget_id, "vote",
            voted_at=voted_at or self._clock.now(),
            assembly_id=assembly_id,
        )

    def activate(self, scope: CallerScope, budget_id: UUID) -> Budget:
        return self._transition(scope, budget_id, "activate")

    def close(self, scope: CallerScope, budget_id: UUID) -> Budget:
        return self._transition(scope, budget_id, "close")

    def _transition(self, scope: CallerScope, budget_id: UUID, action: str, **stamps) -> Budget:
        with LogContext.bind(**scope.log_fields()), self._unit_of_work(f"budget_{action}"):
            budget = self._load_budget(scope, budget_id)
            from_state = budget.status
            budget.status = BUDGET_WORKFLOW.next_state(from_state, action, budget.id)
            for name, value in stamps.items():
                if value is not None:
                    setattr(budget, name, value)
            budget.updated_by_id = scope.actor_id
            try:
                self.session.flush()
            except StaleDataError as exc:
                raise OptimisticLockError("Budget", str(budget_id)) from exc

            logger.info("budget_status_changed", extra={
                "budget_id": str(budget_id),
                "from_state": from_state,
                "to_state": budget.status,
                "action": action,
            })
            return budget.to_dto()

    # =========================================================================
    # Actuals and variance
    # =========================================================================

    def record_actual(
        self,
        scope: CallerScope,
        line_id: UUID,
        amount: Decimal | str | int,
    ) -> BudgetLine:
        """Set a line's actual amount by hand (lines without ledger mapping)."""
        value = parse_amount(amount, "actual_amount")
        with LogContext.bind(**scope.log_fields()), self._unit_of_work("record_actual"):
            line = self._load_line(scope, line_id)
            self._require_open(line.budget)
            line.actual_amount = value
            line.updated_by_id = scope.actor_id
            logger.info("budget_actual_recorded", extra={
                "line_id": str(line_id),
                "actual_amount": str(value),
            })
            return line.to_dto()

    def refresh_actuals(self, scope: CallerScope, budget_id: UUID) -> list[BudgetLine]:
        """
        Recompute actual amounts from the ledger for the fiscal year.

        A line's accounts are its ``account_prefix``; a line without one
        uses its category's configured prefixes, but only when it is the
        only line of that category (otherwise the ledger sum could not be
        attributed to one line).  Other lines keep their recorded actual.
        """
        with LogContext.bind(**scope.log_fields()), self._unit_of_work("refresh_actuals"):
            budget = self._load_budget(scope, budget_id)
            self._require_open(budget)
            rows = self._line_rows(budget_id)
            per_category: dict[str, int] = defaultdict(int)
            for row in rows:
                per_category[row.category] += 1

            selector = LedgerSelector(self.session)
            period_start = date(budget.fiscal_year, 1, 1)
            period_end = date(budget.fiscal_year, 12, 31)
            refreshed = 0
            for row in rows:
                if row.account_prefix:
                    prefixes = (row.account_prefix,)
                elif per_category[row.category] == 1:
                    prefixes = self._config.category_accounts.get(row.category, ())
                else:
                    prefixes = ()
                if not prefixes:
                    continue

                actual = ZERO
                for prefix in prefixes:
                    sums = selector.account_totals(
                        scope.residence_id,
                        account_code_prefix=prefix,
                        date_from=period_start,
                        date_to=period_end,
                    )
                    actual += sums.total_debit - sums.total_credit
                row.actual_amount = actual
                row.updated_by_id = scope.actor_id
                refreshed += 1

            logger.info("budget_actuals_refreshed", extra={
                "budget_id": str(budget_id),
                "fiscal_year": budget.fiscal_year,
                "lines_refreshed": refreshed,
            })
            return [row.to_dto() for row in rows]

    def variance_report(self, scope: CallerScope, budget_id: UUID) -> VarianceReport:
        budget = self._load_budget(scope, budget_id)
        tolerance = self._config.variance_tolerance_percentage
        budgeted: dict[BudgetCategory, Decimal] = defaultdict(lambda: ZERO)
        actual: dict[BudgetCategory, Decimal] = defaultdict(lambda: ZERO)
        for row in self._line_rows(budget_id):
            category = BudgetCategory(row.category)
            budgeted[category] += row.budgeted_amount
            actual[category] += row.actual_amount or ZERO

        categories = tuple(
            category_variance(
                category.value,
                round_money(budgeted[category]),
                round_money(actual[category]),
                tolerance,
            )
            for category in BudgetCategory
            if category in budgeted
        )
        return VarianceReport(
            budget_id=budget.id,
            fiscal_year=budget.fiscal_year,
            categories=categories,
            total=total_variance(categories, tolerance),
        )

    def latest_voted_total(self, residence_id: UUID) -> Decimal:
        """Total of the most recent voted/active/closed budget; 0 if none."""
        row = self.session.scalar(
            select(BudgetModel)
            .where(
                BudgetModel.residence_id == residence_id,
                BudgetModel.status.in_([s.value for s in VOTED_STATES]),
            )
            .order_by(BudgetModel.fiscal_year.desc())
            .limit(1)
        )
        return round_money(row.total_budget) if row is not None else ZERO

    # =========================================================================
    # Call for funds
    # =========================================================================

    def call_for_funds(
        self,
        scope: CallerScope,
        budget_id: UUID,
        quarters: int | None = None,
    ) -> BudgetCallForFunds:
        """
        What each lot owes for the year, split into equal instalments.

        Every keyed line is spread across its key's lots; lines without a
        key (or whose key has no shares yet) are reported as unallocated.
        """
        if quarters is None:
            quarters = self._config.call_for_funds_instalments
        if quarters < 1:
            raise ValidationError(f"Instalment count must be at least 1, got {quarters}")

        budget = self._load_budget(scope, budget_id)
        currency = self._config.currency
        per_lot: dict[UUID, Money] = {}
        unallocated = ZERO
        warnings: list[str] = []

        for row in self._line_rows(budget_id):
            if row.distribution_key_id is None:
                unallocated += row.budgeted_amount
                continue
            shares = {
                share.lot_id: share.shares
                for share in self.session.scalars(
                    select(LotShareModel).where(LotShareModel.key_id == row.distribution_key_id)
                )
            }
            parts = allocate(Money.of(round_money(row.budgeted_amount), currency), shares)
            if not parts:
                unallocated += row.budgeted_amount
                warnings.append(f"line {row.label!r}: distribution key has no shares")
                continue
            for lot_id, part in parts.items():
                per_lot[lot_id] = per_lot.get(lot_id, Money.zero(currency)) + part

        lots = tuple(
            LotCallForFunds(
                lot_id=lot_id,
                annual_amount=total.amount,
                instalments=tuple(p.amount for p in split_instalments(total, quarters)),
            )
            for lot_id, total in sorted(per_lot.items(), key=lambda kv: str(kv[0]))
        )
        logger.info("call_for_funds_computed", extra={
            "budget_id": str(budget_id),
            "lot_count": len(lots),
            "instalments": quarters,
            "unallocated": str(unallocated),
        })
        return BudgetCallForFunds(
            budget_id=budget.id,
            fiscal_year=budget.fiscal_year,
            lots=lots,
            unallocated=round_money(unallocated),
            warnings=tuple(warnings),
        )

    # =========================================================================
    # Integrity
    # =========================================================================

    def verify_totals(self, residence_id: UUID) -> int:
        """
        Compare every cached total with the sum of its lines.

        Returns the number of budgets checked.  Raises
        ``BudgetTotalDriftError`` listing every drifting budget; the cached
        values are left untouched.
        """
        lines_total = (
            select(
                BudgetLineModel.budget_id,
                func.coalesce(func.sum(BudgetLineModel.budgeted_amount), 0).label("lines_total"),
            )
            .group_by(BudgetLineModel.budget_id)
            .subquery()
        )
        rows = self.session.execute(
            select(BudgetModel.id, BudgetModel.total_budget, lines_total.c.lines_total)
            .outerjoin(lines_total, lines_total.c.budget_id == BudgetModel.id)
            .where(BudgetModel.residence_id == residence_id)
        ).all()

        drifts = []
        for budget_id, cached, summed in rows:
            cached = round_money(Decimal(str(cached)))
            summed = round_money(Decimal(str(summed or 0)))
            if cached != summed:
                drifts.append((str(budget_id), str(cached), str(summed)))

        if drifts:
            logger.error("budget_total_drift_detected", extra={
                "residence_id": str(residence_id),
                "drift_count": len(drifts),
            })
            raise BudgetTotalDriftError(drifts)
        logger.info("budget_totals_verified", extra={
            "residence_id": str(residence_id),
            "budget_count": len(rows),
        })
        return len(rows)

    # =========================================================================
    # Internals
    # =========================================================================

    def _increment_total(self, budget: BudgetModel, delta: Decimal) -> None:
        self.session.execute(
            update(BudgetModel)
            .where(BudgetModel.id == budget.id)
            .values(total_budget=BudgetModel.total_budget + delta)
            .execution_options(synchronize_session=False)
        )
        self.session.refresh(budget)

    def _decrement_total(self, budget: BudgetModel, delta: Decimal) -> None:
        remaining = BudgetModel.total_budget - delta
        self.session.execute(
            update(BudgetModel)
            .where(BudgetModel.id == budget.id)
            .values(total_budget=case((remaining < 0, ZERO), else_=remaining))
            .execution_options(synchronize_session=False)
        )
        self.session.refresh(budget)

    def _load_budget(
        self,
        scope: CallerScope,
        budget_id: UUID,
        for_update: bool = False,
    ) -> BudgetModel:
        query = select(BudgetModel).where(BudgetModel.id == budget_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        budget = self.session.scalar(query)
        if budget is None or budget.residence_id != scope.residence_id:
            raise BudgetNotFoundError(str(budget_id))
        return budget

    def _load_line(self, scope: CallerScope, line_id: UUID) -> BudgetLineModel:
        line = self.session.get(BudgetLineModel, line_id)
        if line is None or line.budget.residence_id != scope.residence_id:
            raise BudgetLineNotFoundError(str(line_id))
        return line

    def _line_rows(self, budget_id: UUID) -> list[BudgetLineModel]:
        return list(self.session.scalars(
            select(BudgetLineModel)
            .where(BudgetLineModel.budget_id == budget_id)
            .order_by(BudgetLineModel.created_at, BudgetLineModel.id)
        ).all())

    def _check_key(self, scope: CallerScope, key_id: UUID) -> None:
        key = self.session.get(DistributionKeyModel, key_id)
        if key is None or key.residence_id != scope.residence_id:
            raise DistributionKeyNotFoundError(str(key_id))

    @staticmethod
    def _require_draft(budget: BudgetModel) -> None:
        if budget.status != BudgetStatus.DRAFT.value:
            raise BudgetNotEditableError(str(budget.id), budget.status)

    @staticmethod
    def _require_open(budget: BudgetModel) -> None:
        if budget.status == BudgetStatus.CLOSED.value:
            raise BudgetNotEditableError(str(budget.id), budget.status)


def _validate_fiscal_year(fiscal_year: object) -> int:
    if isinstance(fiscal_year, bool) or not isinstance(fiscal_year, int):
        raise ValidationError(f"Fiscal year must be an integer, got {fiscal_year!r}")
    if not _MIN_FISCAL_YEAR <= fiscal_year <= _MAX_FISCAL_YEAR:
        raise ValidationError(f"Fiscal year out of range: {fiscal_year}")
    return fiscal_year


def _validate_category(category: BudgetCategory | str) -> BudgetCategory:
    try:
        return BudgetCategory(category)
    except ValueError:
        raise ValidationError(f"Unknown budget category: {category!r}") from None
