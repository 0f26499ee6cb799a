"""
Tests for BankService -- accounts, statement imports and reconciliation.

Covers:
- IBAN normalization and mod-97 validation
- One main account per residence
- Imports skip known external ids and move the balance by the imported sum
- Pending transactions newest first
- Candidate ledger lines within the matching window
- reconcile(): idempotent, all-or-nothing across residences
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from copro_kernel.domain.dtos import LineSpec
from copro_kernel.exceptions import (
    BankAccountNotFoundError,
    BankTransactionNotFoundError,
    InvalidAmountError,
    InvalidIbanError,
    MissingFieldError,
)
from copro_modules.bank.models import TransactionRow
from copro_modules.bank.service import is_valid_iban, normalize_iban

VALID_IBAN = "FR1420041010050500013M02606"
OTHER_VALID_IBAN = "DE89370400440532013000"


@pytest.fixture
def account(bank_service, scope):
    return bank_service.create_bank_account(scope, "Credit Mutuel", VALID_IBAN, bic="cmcifrpp")


@pytest.fixture
def imported(bank_service, scope, account):
    """Three statement rows: +150, -80.20 and +40 (no external id)."""
    return bank_service.import_transactions(scope, account.id, [
        TransactionRow(date(2026, 1, 10), "VIR DUPONT CHARGES", "150.00", external_id="tx-1"),
        TransactionRow(date(2026, 1, 12), "PRLV EDF", "-80.20", external_id="tx-2"),
        TransactionRow(date(2026, 1, 14), "REMISE CHEQUE", "40"),
    ])


class TestIban:

    def test_normalize(self):
        assert normalize_iban(" fr14 2004 1010 0505 0001 3m02 606 ") == VALID_IBAN

    @pytest.mark.parametrize("iban", [VALID_IBAN, OTHER_VALID_IBAN, "de89 3704 0044 0532 0130 00"])
    def test_valid(self, iban):
        assert is_valid_iban(iban)

    @pytest.mark.parametrize("iban", [
        "FR1520041010050500013M02606",  # wrong check digits
        "FR14",
        "1234567890123456",
        "",
    ])
    def test_invalid(self, iban):
        assert not is_valid_iban(iban)

    def test_invalid_iban_refused(self, bank_service, scope):
        with pytest.raises(InvalidIbanError):
            bank_service.create_bank_account(scope, "Bank", "FR1520041010050500013M02606")


class TestAccounts:

    def test_first_account_is_main(self, account):
        assert account.is_main is True
        assert account.iban == VALID_IBAN
        assert account.bic == "CMCIFRPP"
        assert account.balance == Decimal("0")

    def test_second_account_is_not_main(self, bank_service, scope, account):
        second = bank_service.create_bank_account(scope, "Deutsche Bank", OTHER_VALID_IBAN)
        assert second.is_main is False

    def test_racing_first_account_becomes_secondary(
        self, bank_service, scope, account, monkeypatch, captured_logs,
    ):
        # Both creations saw no account yet
        monkeypatch.setattr(bank_service, "_account_count", lambda residence_id: 0)
        second = bank_service.create_bank_account(scope, "Deutsche Bank", OTHER_VALID_IBAN)
        assert second.is_main is False
        mains = [a.id for a in bank_service.list_accounts(scope) if a.is_main]
        assert mains == [account.id]
        assert any(r["message"] == "bank_account_main_taken" for r in captured_logs())

    def test_set_main_moves_the_flag(self, bank_service, scope, account):
        second = bank_service.create_bank_account(scope, "Deutsche Bank", OTHER_VALID_IBAN)
        bank_service.set_main(scope, second.id)
        mains = [a.id for a in bank_service.list_accounts(scope) if a.is_main]
        assert mains == [second.id]

    def test_missing_bank_name(self, bank_service, scope):
        with pytest.raises(MissingFieldError):
            bank_service.create_bank_account(scope, " ", VALID_IBAN)

    def test_other_residence_account_not_found(self, bank_service, other_scope, account):
        with pytest.raises(BankAccountNotFoundError):
            bank_service.get_account(other_scope, account.id)

    def test_iban_not_logged_in_full(self, bank_service, scope, captured_logs):
        bank_service.create_bank_account(scope, "Bank", VALID_IBAN)
        record = next(r for r in captured_logs() if r["message"] == "bank_account_created")
        assert record["iban_suffix"] == "2606"
        assert VALID_IBAN not in str(record)


class TestImport:

    def test_balance_moves_by_imported_sum(self, imported, deterministic_clock):
        assert len(imported.imported) == 3
        assert imported.skipped_external_ids == ()
        assert imported.balance == Decimal("109.80")

    def test_known_external_ids_skipped(self, bank_service, scope, account, imported):
        again = bank_service.import_transactions(scope, account.id, [
            TransactionRow(date(2026, 1, 10), "VIR DUPONT CHARGES", "150.00", external_id="tx-1"),
            TransactionRow(date(2026, 1, 20), "VIR MARTIN", "60.00", external_id="tx-3"),
            TransactionRow(date(2026, 1, 20), "VIR MARTIN", "60.00", external_id="tx-3"),
        ])
        assert [t.external_id for t in again.imported] == ["tx-3"]
        assert again.skipped_external_ids == ("tx-1", "tx-3")
        assert again.balance == Decimal("169.80")

    def test_last_sync_stamped(self, bank_service, scope, account, imported):
        assert bank_service.get_account(scope, account.id).last_sync_at is not None

    def test_non_numeric_amount_rejects_whole_import(self, bank_service, scope, account):
        with pytest.raises(InvalidAmountError):
            bank_service.import_transactions(scope, account.id, [
                TransactionRow(date(2026, 1, 10), "OK", "10.00", external_id="a"),
                TransactionRow(date(2026, 1, 10), "KO", "ten", external_id="b"),
            ])
        assert bank_service.list_pending(scope) == []

    def test_treasury_sums_accounts(self, bank_service, scope, account, imported):
        second = bank_service.create_bank_account(scope, "Deutsche Bank", OTHER_VALID_IBAN)
        bank_service.import_transactions(scope, second.id, [
            TransactionRow(date(2026, 1, 2), "INTERETS", "10.20"),
        ])
        assert bank_service.treasury(scope.residence_id) == Decimal("120.00")


class TestPending:

    def test_newest_first(self, bank_service, scope, imported):
        pending = bank_service.list_pending(scope)
        assert [t.transaction_date for t in pending] == [
            date(2026, 1, 14), date(2026, 1, 12), date(2026, 1, 10),
        ]

    def test_limit(self, bank_service, scope, imported):
        assert len(bank_service.list_pending(scope, limit=2)) == 2

    def test_other_residence_sees_nothing(self, bank_service, other_scope, imported):
        assert bank_service.list_pending(other_scope) == []


class TestCandidates:

    @pytest.fixture
    def owner_payment(
        self, ledger_service, scope, bank_journal, standard_accounts,
    ):
        ledger_service.post_entry(
            scope, bank_journal.id, date(2026, 1, 11), "Dupont charges Q1",
            [
                LineSpec(standard_accounts["bank"].id, debit="150.00"),
                LineSpec(standard_accounts["owners"].id, credit="150.00"),
            ],
        )
        ledger_service.post_entry(
            scope, bank_journal.id, date(2026, 2, 20), "Dupont charges Q2",
            [
                LineSpec(standard_accounts["bank"].id, debit="150.00"),
                LineSpec(standard_accounts["owners"].id, credit="150.00"),
            ],
        )

    def test_same_direction_ranked_first(self, bank_service, scope, imported, owner_payment):
        incoming = imported.imported[0]
        suggestions = bank_service.candidates(scope, incoming.id)
        assert len(suggestions) == 2
        assert suggestions[0].account_code == "512"
        assert suggestions[0].direction_matches is True
        assert all(s.line_date == date(2026, 1, 11) for s in suggestions)

    def test_zero_window(self, bank_service, scope, imported, owner_payment):
        assert bank_service.candidates(scope, imported.imported[0].id, window_days=0) == []

    def test_negative_window_rejected(self, bank_service, scope, imported):
        with pytest.raises(InvalidAmountError):
            bank_service.candidates(scope, imported.imported[0].id, window_days=-1)


class TestReconcile:

    def test_reconcile_is_idempotent(self, bank_service, scope, imported):
        ids = [t.id for t in imported.imported[:2]]
        first = bank_service.reconcile(scope, ids, reconciled_with="ledger:42")
        assert first.reconciled == tuple(ids)
        second = bank_service.reconcile(scope, ids)
        assert second.reconciled == ()
        assert second.already_reconciled == tuple(ids)

        txn = bank_service.get_transaction(scope, ids[0])
        assert txn.is_reconciled is True
        assert txn.reconciled_with == "ledger:42"
        assert [t.id for t in bank_service.list_pending(scope)] == [imported.imported[2].id]

    def test_foreign_id_rejects_everything(
        self, bank_service, scope, other_scope, imported, captured_logs,
    ):
        foreign_account = bank_service.create_bank_account(other_scope, "Other", OTHER_VALID_IBAN)
        foreign = bank_service.import_transactions(other_scope, foreign_account.id, [
            TransactionRow(date(2026, 1, 10), "ELSEWHERE", "5.00"),
        ]).imported[0]

        with pytest.raises(BankTransactionNotFoundError):
            bank_service.reconcile(scope, [imported.imported[0].id, foreign.id])
        assert bank_service.get_transaction(scope, imported.imported[0].id).is_reconciled is False
        assert any(r["message"] == "bank_transaction_out_of_scope" for r in captured_logs())

    def test_unknown_id_rejected(self, bank_service, scope, imported):
        with pytest.raises(BankTransactionNotFoundError):
            bank_service.reconcile(scope, [uuid4()])

    def test_unreconcile(self, bank_service, scope, imported):
        txn_id = imported.imported[0].id
        bank_service.reconcile(scope, [txn_id], reconciled_with="ledger:1")
        reopened = bank_service.unreconcile(scope, txn_id)
        assert reopened.is_reconciled is False
        assert reopened.reconciled_at is None
        assert reopened.reconciled_with is None
