"""
Typed Exception Hierarchy for the Condominium Accounting Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Accounting code must fail precisely.  Callers (API handlers, operator
scripts, notification jobs) decide what to do with an error by its TYPE,
never by parsing its message:

    try:
        budgets.add_line(scope, budget_id, "Entretien", category, amount)
    except ValidationError as e:          # bad input, show it to the user
        show(e.user_message)
    except ConflictError as e:            # duplicate / illegal transition
        show(e.user_message)
    except NotFoundError:                 # generic message only
        show("not found")

Every exception:
  1. has a class-level ``code`` (machine-readable, API-safe);
  2. stores its context as attributes (logged by StructuredFormatter);
  3. exposes ``user_message`` -- specific for validation/conflict errors,
     generic for not-found and referential errors.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    CoproAccountingError (base)
    |
    +-- ValidationError                      input rejected before persistence
    |   +-- InvalidAmountError
    |   +-- MissingFieldError
    |   +-- BelowLegalMinimumError
    |   +-- UnbalancedEntryError
    |   +-- InvalidPeriodError
    |   +-- InvalidIbanError
    |   +-- ConfigurationError
    |
    +-- ConflictError                        uniqueness / state machine
    |   +-- DuplicateAccountCodeError
    |   +-- DuplicateJournalCodeError
    |   +-- DuplicateKeyCodeError
    |   +-- DuplicateFiscalYearError
    |   +-- DuplicateRegularizationError
    |   +-- IllegalTransitionError
    |   +-- BudgetNotEditableError
    |   +-- AlreadyReversedError
    |   +-- OptimisticLockError
    |
    +-- NotFoundError                        unknown id or outside scope
    |   +-- AccountNotFoundError
    |   +-- JournalNotFoundError
    |   +-- LedgerLineNotFoundError
    |   +-- DistributionKeyNotFoundError
    |   +-- BudgetNotFoundError
    |   +-- BudgetLineNotFoundError
    |   +-- RegularizationNotFoundError
    |   +-- BankAccountNotFoundError
    |   +-- BankTransactionNotFoundError
    |   +-- WorksFundNotFoundError
    |
    +-- ReferentialIntegrityError            deletion blocked
    |   +-- KeyInUseError
    |   +-- AccountReferencedError
    |
    +-- ConsistencyError                     internal drift, never auto-fixed
        +-- BudgetTotalDriftError
        +-- ImmutableLineError

===============================================================================
"""

from __future__ import annotations

from collections.abc import Sequence


class CoproAccountingError(Exception):
    """
    Base exception for all accounting engine errors.

    All subclasses must define a ``code`` class attribute.
    """

    code: str = "COPRO_ACCOUNTING_ERROR"

    @property
    def user_message(self) -> str:
        return str(self)


# =============================================================================
# Category bases
# =============================================================================


class ValidationError(CoproAccountingError):
    """Malformed or out-of-range input.  Raised before any persistence."""

    code: str = "VALIDATION_ERROR"


class ConflictError(CoproAccountingError):
    """Uniqueness violation or illegal state transition."""

    code: str = "CONFLICT"


class NotFoundError(CoproAccountingError):
    """Referenced id does not resolve, or resolves outside the caller's scope."""

    code: str = "NOT_FOUND"

    @property
    def user_message(self) -> str:
        return "not found"


class ReferentialIntegrityError(CoproAccountingError):
    """Deletion blocked because the entity is still referenced."""

    code: str = "REFERENTIAL_INTEGRITY"

    @property
    def user_message(self) -> str:
        return "cannot delete: still in use"


class ConsistencyError(CoproAccountingError):
    """
    A derived value no longer matches its source records.

    Should never happen when every multi-step mutation is atomic.  Reported,
    never silently corrected.
    """

    code: str = "CONSISTENCY_ERROR"


# =============================================================================
# Validation
# =============================================================================


class InvalidAmountError(ValidationError):
    """An amount is non-numeric, negative, or otherwise out of range."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, value: object, reason: str):
        self.field = field
        self.value = str(value)
        self.reason = reason
        super().__init__(f"Invalid amount for {field} ({value!r}): {reason}")


class MissingFieldError(ValidationError):
    """A required field is empty."""

    code: str = "MISSING_FIELD"

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Missing required field: {field}")


class BelowLegalMinimumError(ValidationError):
    """Works fund percentage below the legal floor."""

    code: str = "BELOW_LEGAL_MINIMUM"

    def __init__(self, percentage: str, legal_minimum: str):
        self.percentage = percentage
        self.legal_minimum = legal_minimum
        super().__init__(
            f"Minimum percentage {percentage}% is below legal minimum "
            f"of {legal_minimum}%"
        )


class UnbalancedEntryError(ValidationError):
    """Lines of one logical transaction do not balance."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, debits: str, credits: str):
        self.debits = debits
        self.credits = credits
        super().__init__(f"Unbalanced entry: debits={debits}, credits={credits}")


class InvalidPeriodError(ValidationError):
    """Period end precedes period start."""

    code: str = "INVALID_PERIOD"

    def __init__(self, period_start: str, period_end: str):
        self.period_start = period_start
        self.period_end = period_end
        super().__init__(f"Period end {period_end} precedes period start {period_start}")


class InvalidIbanError(ValidationError):
    """IBAN fails format or mod-97 checksum validation."""

    code: str = "INVALID_IBAN"

    def __init__(self, iban: str):
        self.iban = iban
        super().__init__(f"Invalid IBAN: {iban}")


class ConfigurationError(ValidationError):
    """A configuration value is invalid."""

    code: str = "INVALID_CONFIGURATION"

    def __init__(self, setting: str, reason: str):
        self.setting = setting
        self.reason = reason
        super().__init__(f"Invalid setting {setting}: {reason}")


# =============================================================================
# Conflict
# =============================================================================


class DuplicateAccountCodeError(ConflictError):
    """Account code already exists in this scope."""

    code: str = "DUPLICATE_ACCOUNT_CODE"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Account code already exists: {account_code}")

    @property
    def user_message(self) -> str:
        return f"this account code already exists: {self.account_code}"


class DuplicateJournalCodeError(ConflictError):
    """Journal code already exists in this scope."""

    code: str = "DUPLICATE_JOURNAL_CODE"

    def __init__(self, journal_code: str):
        self.journal_code = journal_code
        super().__init__(f"Journal code already exists: {journal_code}")

    @property
    def user_message(self) -> str:
        return f"this journal code already exists: {self.journal_code}"


class DuplicateKeyCodeError(ConflictError):
    """Distribution key code already exists for the residence."""

    code: str = "DUPLICATE_KEY"

    def __init__(self, key_code: str, residence_id: str):
        self.key_code = key_code
        self.residence_id = residence_id
        super().__init__(
            f"Distribution key {key_code} already exists for residence {residence_id}"
        )

    @property
    def user_message(self) -> str:
        return f"this code already exists: {self.key_code}"


class DuplicateFiscalYearError(ConflictError):
    """A budget already exists for this residence and fiscal year."""

    code: str = "DUPLICATE_FISCAL_YEAR"

    def __init__(self, fiscal_year: int, residence_id: str):
        self.fiscal_year = fiscal_year
        self.residence_id = residence_id
        super().__init__(
            f"Budget for fiscal year {fiscal_year} already exists "
            f"for residence {residence_id}"
        )

    @property
    def user_message(self) -> str:
        return f"a budget already exists for {self.fiscal_year}"


class DuplicateRegularizationError(ConflictError):
    """A regularization already exists for this lease and period."""

    code: str = "DUPLICATE_REGULARIZATION"

    def __init__(self, lease_id: str, period_start: str, period_end: str):
        self.lease_id = lease_id
        self.period_start = period_start
        self.period_end = period_end
        super().__init__(
            f"Regularization for lease {lease_id} over "
            f"{period_start}..{period_end} already exists"
        )


class IllegalTransitionError(ConflictError):
    """Requested state transition is not allowed from the current state."""

    code: str = "ILLEGAL_TRANSITION"

    def __init__(self, entity_type: str, entity_id: str, from_state: str, action: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.from_state = from_state
        self.action = action
        super().__init__(
            f"Cannot {action} {entity_type} {entity_id} in state '{from_state}'"
        )

    @property
    def user_message(self) -> str:
        return f"cannot {self.action}: current status is {self.from_state}"


class BudgetNotEditableError(ConflictError):
    """Budget lines can only change while the budget is a draft."""

    code: str = "BUDGET_NOT_EDITABLE"

    def __init__(self, budget_id: str, status: str):
        self.budget_id = budget_id
        self.status = status
        super().__init__(f"Budget {budget_id} is {status}; lines can no longer change")


class AlreadyReversedError(ConflictError):
    """Ledger line has already been reversed."""

    code: str = "ALREADY_REVERSED"

    def __init__(self, line_id: str, reversal_id: str):
        self.line_id = line_id
        self.reversal_id = reversal_id
        super().__init__(f"Ledger line {line_id} already reversed by {reversal_id}")


class OptimisticLockError(ConflictError):
    """Row was modified by another transaction since it was read."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# =============================================================================
# Not found
# =============================================================================


class _EntityNotFound(NotFoundError):
    entity_type: str = "entity"

    def __init__(self, entity_id: str):
        self.entity_id = str(entity_id)
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class AccountNotFoundError(_EntityNotFound):
    code: str = "ACCOUNT_NOT_FOUND"
    entity_type = "Account"


class JournalNotFoundError(_EntityNotFound):
    code: str = "JOURNAL_NOT_FOUND"
    entity_type = "Journal"


class LedgerLineNotFoundError(_EntityNotFound):
    code: str = "LEDGER_LINE_NOT_FOUND"
    entity_type = "Ledger line"


class DistributionKeyNotFoundError(_EntityNotFound):
    code: str = "DISTRIBUTION_KEY_NOT_FOUND"
    entity_type = "Distribution key"


class BudgetNotFoundError(_EntityNotFound):
    code: str = "BUDGET_NOT_FOUND"
    entity_type = "Budget"


class BudgetLineNotFoundError(_EntityNotFound):
    code: str = "BUDGET_LINE_NOT_FOUND"
    entity_type = "Budget line"


class RegularizationNotFoundError(_EntityNotFound):
    code: str = "REGULARIZATION_NOT_FOUND"
    entity_type = "Regularization"


class BankAccountNotFoundError(_EntityNotFound):
    code: str = "BANK_ACCOUNT_NOT_FOUND"
    entity_type = "Bank account"


class BankTransactionNotFoundError(_EntityNotFound):
    code: str = "BANK_TRANSACTION_NOT_FOUND"
    entity_type = "Bank transaction"


class WorksFundNotFoundError(_EntityNotFound):
    code: str = "WORKS_FUND_NOT_FOUND"
    entity_type = "Works fund"


# =============================================================================
# Referential integrity
# =============================================================================


class KeyInUseError(ReferentialIntegrityError):
    """Distribution key still referenced by budget lines or regularizations."""

    code: str = "KEY_IN_USE"

    def __init__(self, key_id: str, budget_line_refs: int, regularization_refs: int):
        self.key_id = key_id
        self.budget_line_refs = budget_line_refs
        self.regularization_refs = regularization_refs
        super().__init__(
            f"Distribution key {key_id} is in use: "
            f"{budget_line_refs} budget line(s), "
            f"{regularization_refs} regularization charge line(s)"
        )


class AccountReferencedError(ReferentialIntegrityError):
    """Account cannot be deleted because ledger lines reference it."""

    code: str = "ACCOUNT_REFERENCED"

    def __init__(self, account_id: str, line_count: int):
        self.account_id = account_id
        self.line_count = line_count
        super().__init__(
            f"Account {account_id} is referenced by {line_count} ledger line(s)"
        )


# =============================================================================
# Consistency
# =============================================================================


class BudgetTotalDriftError(ConsistencyError):
    """Cached Budget.total_budget differs from the sum of its lines."""

    code: str = "BUDGET_TOTAL_DRIFT"

    def __init__(self, drifts: Sequence[tuple[str, str, str]]):
        # (budget_id, cached_total, lines_total)
        self.drifts = [list(d) for d in drifts]
        details = ", ".join(
            f"{budget_id}: cached={cached} lines={actual}"
            for budget_id, cached, actual in drifts
        )
        super().__init__(f"Budget total drift detected: {details}")


class ImmutableLineError(ConsistencyError):
    """Attempt to modify or delete a posted ledger line."""

    code: str = "IMMUTABLE_LINE"

    def __init__(self, line_id: str, operation: str):
        self.line_id = line_id
        self.operation = operation
        super().__init__(
            f"Ledger line {line_id} is posted; {operation} is not allowed "
            "(post a reversing line instead)"
        )
