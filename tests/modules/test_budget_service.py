"""
Tests for BudgetService -- annual budgets, lines, lifecycle and variance.

Covers:
- total_budget follows add_line / delete_line
- Lines only change while the budget is a draft
- draft -> voted -> active -> closed, nothing else
- Actuals from the ledger and the budget-versus-actual report
- Call for funds per lot
- verify_totals detects a drifting cached total
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import update

from copro_engines.variance import Trend
from copro_kernel.domain.dtos import LineSpec
from copro_kernel.exceptions import (
    BudgetNotEditableError,
    BudgetNotFoundError,
    BudgetTotalDriftError,
    DistributionKeyNotFoundError,
    DuplicateFiscalYearError,
    IllegalTransitionError,
    InvalidAmountError,
    ValidationError,
)
from copro_modules.budget.models import BudgetCategory, BudgetStatus
from copro_modules.budget.orm import BudgetModel


@pytest.fixture
def draft_budget(budget_service, scope):
    return budget_service.create_budget(scope, 2026)


class TestBudgetTotals:

    def test_new_budget_is_empty_draft(self, draft_budget):
        assert draft_budget.status == BudgetStatus.DRAFT
        assert draft_budget.total_budget == Decimal("0")

    def test_total_follows_lines(self, budget_service, scope):
        budget = budget_service.create_budget(scope, 2025)
        upkeep = budget_service.add_line(scope, budget.id, "Entretien", BudgetCategory.ENTRETIEN, 1000)
        budget_service.add_line(scope, budget.id, "Energie", BudgetCategory.ENERGIE, 2000)
        assert budget_service.get_budget(scope, budget.id).total_budget == Decimal("3000")

        after = budget_service.delete_line(scope, upkeep.id)
        assert after.total_budget == Decimal("2000")
        assert [line.label for line in budget_service.lines(scope, budget.id)] == ["Energie"]

    def test_category_accepts_plain_value(self, budget_service, scope, draft_budget):
        line = budget_service.add_line(scope, draft_budget.id, "Eau", "eau", "450,50")
        assert line.category == BudgetCategory.EAU
        assert line.budgeted_amount == Decimal("450.50")

    def test_unknown_category_rejected(self, budget_service, scope, draft_budget):
        with pytest.raises(ValidationError):
            budget_service.add_line(scope, draft_budget.id, "Misc", "gardening", 10)

    def test_negative_amount_rejected(self, budget_service, scope, draft_budget):
        with pytest.raises(InvalidAmountError):
            budget_service.add_line(scope, draft_budget.id, "Misc", BudgetCategory.AUTRES, -10)

    def test_foreign_key_rejected(
        self, budget_service, distribution_service, scope, other_scope, draft_budget,
    ):
        foreign = distribution_service.create_key(other_scope, "GEN", "General")
        with pytest.raises(DistributionKeyNotFoundError):
            budget_service.add_line(
                scope, draft_budget.id, "Menage", BudgetCategory.ENTRETIEN, 10,
                distribution_key_id=foreign.id,
            )

    def test_group_by_category(self, budget_service, scope, draft_budget):
        budget_service.add_line(scope, draft_budget.id, "Electricite", BudgetCategory.ENERGIE, 300)
        budget_service.add_line(scope, draft_budget.id, "Menage", BudgetCategory.ENTRETIEN, 100)
        budget_service.add_line(scope, draft_budget.id, "Ascenseur", BudgetCategory.ENTRETIEN, 200)
        groups = budget_service.group_by_category(scope, draft_budget.id)
        assert list(groups) == [BudgetCategory.ENTRETIEN, BudgetCategory.ENERGIE]
        assert groups[BudgetCategory.ENTRETIEN].category_total == Decimal("300")
        assert len(groups[BudgetCategory.ENTRETIEN].lines) == 2


class TestBudgetYears:

    def test_duplicate_fiscal_year_rejected(self, budget_service, scope, draft_budget):
        with pytest.raises(DuplicateFiscalYearError):
            budget_service.create_budget(scope, 2026)

    def test_same_year_in_other_residence(self, budget_service, other_scope, draft_budget):
        other = budget_service.create_budget(other_scope, 2026)
        assert other.residence_id == other_scope.residence_id

    @pytest.mark.parametrize("year", ["2026", 1800, True])
    def test_invalid_fiscal_year(self, budget_service, scope, year):
        with pytest.raises(ValidationError):
            budget_service.create_budget(scope, year)

    def test_list_newest_first(self, budget_service, scope):
        budget_service.create_budget(scope, 2024)
        budget_service.create_budget(scope, 2026)
        budget_service.create_budget(scope, 2025)
        assert [b.fiscal_year for b in budget_service.list_budgets(scope)] == [2026, 2025, 2024]

    def test_budget_for_year(self, budget_service, scope, draft_budget):
        assert budget_service.budget_for_year(scope, 2026).id == draft_budget.id
        assert budget_service.budget_for_year(scope, 2030) is None

    def test_other_residence_budget_not_found(self, budget_service, other_scope, draft_budget):
        with pytest.raises(BudgetNotFoundError):
            budget_service.get_budget(other_scope, draft_budget.id)


class TestLifecycle:

    def test_full_lifecycle(self, budget_service, scope, draft_budget):
        voted = budget_service.vote(scope, draft_budget.id)
        assert voted.status == BudgetStatus.VOTED
        assert voted.voted_at is not None
        assert budget_service.activate(scope, draft_budget.id).status == BudgetStatus.ACTIVE
        assert budget_service.close(scope, draft_budget.id).status == BudgetStatus.CLOSED

    def test_activate_draft_rejected(self, budget_service, scope, draft_budget):
        with pytest.raises(IllegalTransitionError):
            budget_service.activate(scope, draft_budget.id)

    def test_lines_frozen_after_vote(self, budget_service, scope, draft_budget):
        line = budget_service.add_line(scope, draft_budget.id, "Menage", BudgetCategory.ENTRETIEN, 100)
        budget_service.vote(scope, draft_budget.id)
        with pytest.raises(BudgetNotEditableError):
            budget_service.add_line(scope, draft_budget.id, "Late", BudgetCategory.AUTRES, 5)
        with pytest.raises(BudgetNotEditableError):
            budget_service.delete_line(scope, line.id)
        assert budget_service.get_budget(scope, draft_budget.id).total_budget == Decimal("100")

    def test_actuals_frozen_after_close(self, budget_service, scope, draft_budget):
        line = budget_service.add_line(scope, draft_budget.id, "Menage", BudgetCategory.ENTRETIEN, 100)
        for action in (budget_service.vote, budget_service.activate, budget_service.close):
            action(scope, draft_budget.id)
        with pytest.raises(BudgetNotEditableError):
            budget_service.record_actual(scope, line.id, 90)

    def test_transition_logged(self, budget_service, scope, draft_budget, captured_logs):
        budget_service.vote(scope, draft_budget.id)
        records = [r for r in captured_logs() if r["message"] == "budget_status_changed"]
        assert records[-1]["from_state"] == "draft"
        assert records[-1]["to_state"] == "voted"

    def test_latest_voted_total_ignores_drafts(self, budget_service, scope):
        voted = budget_service.create_budget(scope, 2025)
        budget_service.add_line(scope, voted.id, "Menage", BudgetCategory.ENTRETIEN, 800)
        budget_service.vote(scope, voted.id)
        draft = budget_service.create_budget(scope, 2026)
        budget_service.add_line(scope, draft.id, "Menage", BudgetCategory.ENTRETIEN, 5000)
        assert budget_service.latest_voted_total(scope.residence_id) == Decimal("800.00")

    def test_latest_voted_total_without_budget(self, budget_service, other_scope):
        assert budget_service.latest_voted_total(other_scope.residence_id) == Decimal("0")


class TestVariance:

    @pytest.fixture
    def spent(self, ledger_service, scope, purchases_journal, standard_accounts):
        ledger_service.post_entry(
            scope, purchases_journal.id, date(2026, 4, 2), "Cleaning company",
            [
                LineSpec(standard_accounts["maintenance"].id, debit="1100.00"),
                LineSpec(standard_accounts["suppliers"].id, credit="1100.00"),
            ],
        )
        ledger_service.post_entry(
            scope, purchases_journal.id, date(2026, 6, 30), "Electricity",
            [
                LineSpec(standard_accounts["electricity"].id, debit="1500.00"),
                LineSpec(standard_accounts["suppliers"].id, credit="1500.00"),
            ],
        )
        # Outside the fiscal year
        ledger_service.post_entry(
            scope, purchases_journal.id, date(2025, 12, 31), "Old bill",
            [
                LineSpec(standard_accounts["electricity"].id, debit="999.00"),
                LineSpec(standard_accounts["suppliers"].id, credit="999.00"),
            ],
        )

    def test_refresh_actuals_from_ledger(self, budget_service, scope, draft_budget, spent):
        budget_service.add_line(scope, draft_budget.id, "Entretien", BudgetCategory.ENTRETIEN, 1000)
        budget_service.add_line(scope, draft_budget.id, "Energie", BudgetCategory.ENERGIE, 2000)
        lines = budget_service.refresh_actuals(scope, draft_budget.id)
        actuals = {line.label: line.actual_amount for line in lines}
        assert actuals == {"Entretien": Decimal("1100.00"), "Energie": Decimal("1500.00")}

    def test_variance_report(self, budget_service, scope, draft_budget, spent):
        budget_service.add_line(scope, draft_budget.id, "Entretien", BudgetCategory.ENTRETIEN, 1000)
        budget_service.add_line(scope, draft_budget.id, "Energie", BudgetCategory.ENERGIE, 2000)
        budget_service.refresh_actuals(scope, draft_budget.id)

        report = budget_service.variance_report(scope, draft_budget.id)
        rows = {row.category: row for row in report.categories}
        assert rows["entretien"].trend == Trend.OVER
        assert rows["entretien"].remaining == Decimal("-100.00")
        assert rows["energie"].trend == Trend.UNDER
        assert rows["energie"].percent_used == Decimal("75.00")
        assert report.total.budgeted == Decimal("3000.00")
        assert report.total.actual == Decimal("2600.00")

    def test_shared_category_keeps_manual_actuals(
        self, budget_service, scope, draft_budget, spent,
    ):
        first = budget_service.add_line(scope, draft_budget.id, "Menage", BudgetCategory.ENTRETIEN, 500)
        budget_service.add_line(scope, draft_budget.id, "Jardin", BudgetCategory.ENTRETIEN, 500)
        budget_service.record_actual(scope, first.id, "420")
        lines = {line.label: line for line in budget_service.refresh_actuals(scope, draft_budget.id)}
        assert lines["Menage"].actual_amount == Decimal("420")
        assert lines["Jardin"].actual_amount is None

    def test_account_prefix_overrides_category(self, budget_service, scope, draft_budget, spent):
        line = budget_service.add_line(
            scope, draft_budget.id, "Electricite", BudgetCategory.AUTRES, 1600, account_prefix="602",
        )
        refreshed = budget_service.refresh_actuals(scope, draft_budget.id)
        assert refreshed[0].id == line.id
        assert refreshed[0].actual_amount == Decimal("1500.00")


class TestCallForFunds:

    def test_lots_and_instalments(self, budget_service, scope, draft_budget, general_key):
        key, lot_1, lot_2 = general_key
        budget_service.add_line(
            scope, draft_budget.id, "Menage", BudgetCategory.ENTRETIEN, 1000, distribution_key_id=key.id,
        )
        budget_service.add_line(scope, draft_budget.id, "Divers", BudgetCategory.AUTRES, 200)

        call = budget_service.call_for_funds(scope, draft_budget.id)
        by_lot = {lot.lot_id: lot for lot in call.lots}
        assert by_lot[lot_1].annual_amount == Decimal("250.00")
        assert by_lot[lot_2].annual_amount == Decimal("750.00")
        assert by_lot[lot_2].instalments == (Decimal("187.50"),) * 4
        assert call.unallocated == Decimal("200.00")

    def test_instalments_sum_to_annual_amount(self, budget_service, scope, draft_budget, general_key):
        key, _, _ = general_key
        budget_service.add_line(
            scope, draft_budget.id, "Menage", BudgetCategory.ENTRETIEN, "1000.01",
            distribution_key_id=key.id,
        )
        call = budget_service.call_for_funds(scope, draft_budget.id, quarters=3)
        for lot in call.lots:
            assert len(lot.instalments) == 3
            assert sum(lot.instalments) == lot.annual_amount

    def test_key_without_shares_is_reported(
        self, budget_service, distribution_service, scope, draft_budget,
    ):
        empty = distribution_service.create_key(scope, "VIDE", "Empty")
        budget_service.add_line(
            scope, draft_budget.id, "Ascenseur", BudgetCategory.ENTRETIEN, 300,
            distribution_key_id=empty.id,
        )
        call = budget_service.call_for_funds(scope, draft_budget.id)
        assert call.lots == ()
        assert call.unallocated == Decimal("300.00")
        assert len(call.warnings) == 1

    @pytest.mark.parametrize("quarters", [0, -1])
    def test_non_positive_instalments_rejected(self, budget_service, scope, draft_budget, quarters):
        with pytest.raises(ValidationError):
            budget_service.call_for_funds(scope, draft_budget.id, quarters=quarters)

    def test_default_instalments(self, budget_service, scope, draft_budget, general_key):
        key, _, _ = general_key
        budget_service.add_line(
            scope, draft_budget.id, "Menage", BudgetCategory.ENTRETIEN, 400, distribution_key_id=key.id,
        )
        call = budget_service.call_for_funds(scope, draft_budget.id)
        assert all(len(lot.instalments) == 4 for lot in call.lots)


class TestVerifyTotals:

    def test_consistent_totals(self, budget_service, scope, draft_budget):
        budget_service.add_line(scope, draft_budget.id, "Menage", BudgetCategory.ENTRETIEN, 100)
        budget_service.create_budget(scope, 2027)
        assert budget_service.verify_totals(scope.residence_id) == 2

    def test_drift_detected(self, budget_service, session, scope, draft_budget):
        budget_service.add_line(scope, draft_budget.id, "Menage", BudgetCategory.ENTRETIEN, 100)
        session.execute(
            update(BudgetModel)
            .where(BudgetModel.id == draft_budget.id)
            .values(total_budget=Decimal("90"))
        )
        with pytest.raises(BudgetTotalDriftError) as exc_info:
            budget_service.verify_totals(scope.residence_id)
        assert exc_info.value.drifts == [[str(draft_budget.id), "90.00", "100.00"]]
