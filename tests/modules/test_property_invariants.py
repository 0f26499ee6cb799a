"""
Property-based tests for the bookkeeping invariants.

Hypothesis drives the public services with generated amounts and
operation sequences.  Every example works on a fresh residence so that
examples sharing the test transaction never see each other's rows.

Properties checked:
- Balanced entries leave no unbalanced entry and a zero overall balance
- A key's percentages sum to 1 and allocations sum to the amount
- A budget's cached total equals the sum of its lines after any
  add/delete sequence
- A regularization's balance is provisions minus actual charges
"""

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from copro_kernel.domain.dtos import LineSpec
from copro_kernel.domain.scope import CallerScope
from copro_kernel.models.account import AccountType
from copro_kernel.models.journal import JournalType
from copro_modules.budget.models import BudgetCategory

PROPERTY_SETTINGS = settings(
    max_examples=25,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture, HealthCheck.too_slow],
)

amounts = st.decimals(
    min_value=Decimal("0.01"),
    max_value=Decimal("99999.99"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)
share_counts = st.integers(min_value=0, max_value=10_000)


def fresh_scope(actor_id: UUID) -> CallerScope:
    return CallerScope(residence_id=uuid4(), actor_id=actor_id)


# =============================================================================
# Ledger
# =============================================================================


@PROPERTY_SETTINGS
@given(entries=st.lists(st.lists(amounts, min_size=1, max_size=4), min_size=1, max_size=5))
def test_balanced_entries_keep_ledger_balanced(
    ledger_service, ledger_selector, test_actor_id, entries,
):
    caller = fresh_scope(test_actor_id)
    journal = ledger_service.create_journal(caller, "OD", "Operations", JournalType.MISCELLANEOUS)
    expense = ledger_service.create_account(caller, "614", "Upkeep", AccountType.EXPENSE)
    supplier = ledger_service.create_account(caller, "401", "Suppliers", AccountType.LIABILITY)

    for debits in entries:
        specs = [LineSpec(expense.id, debit=value) for value in debits]
        specs.append(LineSpec(supplier.id, credit=sum(debits, Decimal("0"))))
        ledger_service.post_entry(caller, journal.id, date(2026, 5, 1), "Invoice", specs)

    assert ledger_selector.unbalanced_entries(caller.residence_id) == []
    assert ledger_selector.account_totals(caller.residence_id).balance == Decimal("0")


# =============================================================================
# Distribution keys
# =============================================================================


@PROPERTY_SETTINGS
@given(
    shares=st.lists(share_counts, min_size=1, max_size=8).filter(lambda s: sum(s) > 0),
    amount=amounts,
)
def test_percentages_and_allocations_are_complete(
    distribution_service, test_actor_id, shares, amount,
):
    caller = fresh_scope(test_actor_id)
    key = distribution_service.create_key(caller, "GEN", "General")
    for value in shares:
        distribution_service.set_share(caller, key.id, uuid4(), value)

    fractions = [row.percentage for row in distribution_service.shares(caller, key.id)]
    assert abs(sum(fractions) - Decimal("1")) < Decimal("1e-20")
    assert all(Decimal("0") <= f <= Decimal("1") for f in fractions)

    parts = distribution_service.allocate(caller, key.id, amount)
    assert sum(parts.values()) == amount
    assert all(part >= 0 for part in parts.values())


# =============================================================================
# Budgets
# =============================================================================


@PROPERTY_SETTINGS
@given(
    ops=st.lists(
        st.one_of(
            st.tuples(st.just("add"), st.sampled_from(list(BudgetCategory)), amounts),
            st.tuples(st.just("delete"), st.integers(min_value=0, max_value=20)),
        ),
        max_size=12,
    ),
)
def test_budget_total_matches_lines(budget_service, test_actor_id, ops):
    caller = fresh_scope(test_actor_id)
    budget = budget_service.create_budget(caller, 2026)
    line_ids = []
    for op in ops:
        if op[0] == "add":
            _, category, value = op
            line_ids.append(budget_service.add_line(caller, budget.id, "Line", category, value).id)
        elif line_ids:
            budget_service.delete_line(caller, line_ids.pop(op[1] % len(line_ids)))

    lines = budget_service.lines(caller, budget.id)
    expected = sum((line.budgeted_amount for line in lines), Decimal("0"))
    assert budget_service.get_budget(caller, budget.id).total_budget == expected
    assert budget_service.verify_totals(caller.residence_id) == 1


# =============================================================================
# Regularizations
# =============================================================================


@PROPERTY_SETTINGS
@given(provisions=amounts, actual=amounts)
def test_regularization_balance(regularization_service, test_actor_id, provisions, actual):
    caller = fresh_scope(test_actor_id)
    reg = regularization_service.create(
        caller, uuid4(), date(2025, 1, 1), date(2025, 12, 31), provisions, actual,
    )
    assert reg.balance == provisions - actual
    assert reg.amount == abs(provisions - actual)
    assert (reg.balance >= 0) == (reg.direction.value == "refund")
