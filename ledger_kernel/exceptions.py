"""
Ledger exception hierarchy.

Every error raised by the ledger core derives from ``LedgerError`` and
carries a stable machine-readable ``code`` class attribute plus the
structured attributes a caller needs to build a user-facing message.

Callers map the three kinds onto their own transport:

    ValidationError  -- malformed input, unbalanced entry, schedule/amount
                        mismatch, invalid payment target
    NotFoundError    -- missing entry, receivable, installment, revenue
    ConflictError    -- mutation of an immutable or terminal object, double
                        reversal, stale concurrent write

Nothing in the core swallows these. Any error raised inside an operation
aborts that operation's transaction.
"""

from decimal import Decimal


class LedgerError(Exception):
    """Base exception for all ledger errors."""

    code: str = "LEDGER_ERROR"


# =============================================================================
# Error kinds
# =============================================================================


class ValidationError(LedgerError):
    """Input or state is invalid for the requested operation."""

    code: str = "VALIDATION_ERROR"


class NotFoundError(LedgerError):
    """A referenced record does not exist or is soft-deleted."""

    code: str = "NOT_FOUND"


class ConflictError(LedgerError):
    """The operation conflicts with the record's current state."""

    code: str = "CONFLICT"


# =============================================================================
# Journal entry validation
# =============================================================================


class EmptyEntryError(ValidationError):
    """Journal entry has no lines."""

    code: str = "EMPTY_ENTRY"

    def __init__(self):
        super().__init__("At least one journal entry line is required")


class InvalidLineError(ValidationError):
    """A journal line violates the one-sided positive amount rule."""

    code: str = "INVALID_LINE"

    def __init__(self, line_number: int, reason: str):
        self.line_number = line_number
        self.reason = reason
        super().__init__(f"Line {line_number}: {reason}")


class UnbalancedEntryError(ValidationError):
    """Total debits do not equal total credits."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, debits: Decimal, credits: Decimal):
        self.debits = debits
        self.credits = credits
        self.difference = abs(debits - credits)
        super().__init__(
            f"Entry is not balanced: debits={debits}, credits={credits}, "
            f"difference={self.difference}"
        )


class AccountNotFoundError(ValidationError):
    """One or more account codes do not resolve to an active account."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_codes: list[str]):
        self.account_codes = list(account_codes)
        super().__init__(
            f"Invalid account codes: {', '.join(self.account_codes)}"
        )


class DuplicateAccountError(ConflictError):
    """An account with this code already exists."""

    code: str = "DUPLICATE_ACCOUNT"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Account {account_code} already exists")


# =============================================================================
# Not found
# =============================================================================


class JournalEntryNotFoundError(NotFoundError):
    """Journal entry does not exist or has been deleted."""

    code: str = "JOURNAL_ENTRY_NOT_FOUND"

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Journal entry {entry_id} not found")


class ReceivableNotFoundError(NotFoundError):
    code: str = "RECEIVABLE_NOT_FOUND"

    def __init__(self, receivable_id: str):
        self.receivable_id = receivable_id
        super().__init__(f"Receivable {receivable_id} not found")


class InstallmentNotFoundError(NotFoundError):
    code: str = "INSTALLMENT_NOT_FOUND"

    def __init__(self, installment_id: str):
        self.installment_id = installment_id
        super().__init__(f"Installment {installment_id} not found")


class RevenueNotFoundError(NotFoundError):
    code: str = "REVENUE_NOT_FOUND"

    def __init__(self, revenue_id: str):
        self.revenue_id = revenue_id
        super().__init__(f"Revenue {revenue_id} not found")


class RevenueSourceNotFoundError(NotFoundError):
    code: str = "REVENUE_SOURCE_NOT_FOUND"

    def __init__(self, source_id: str):
        self.source_id = source_id
        super().__init__(f"Revenue source {source_id} not found")


# =============================================================================
# Lifecycle conflicts
# =============================================================================


class InvalidStatusTransitionError(ConflictError):
    """The requested status change is not in the transition table."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, entity_type: str, from_status: str, to_status: str):
        self.entity_type = entity_type
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"{entity_type} cannot move from {from_status} to {to_status}"
        )


class InvalidSettlementTransitionError(ValidationError):
    """
    A receivable or installment status change outside its transition table.

    Raised for operator requests such as WRITTEN_OFF -> OVERDUE; journal
    entries keep ``InvalidStatusTransitionError``.
    """

    code: str = "INVALID_SETTLEMENT_TRANSITION"

    def __init__(self, entity_type: str, from_status: str, to_status: str):
        self.entity_type = entity_type
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"{entity_type} cannot move from {from_status} to {to_status}"
        )


class EntryNotDraftError(ConflictError):
    """Only DRAFT entries can be edited, deleted or posted."""

    code: str = "ENTRY_NOT_DRAFT"

    def __init__(self, entry_code: str, status: str):
        self.entry_code = entry_code
        self.status = status
        super().__init__(
            f"Journal entry {entry_code} is {status}; only DRAFT entries can be changed"
        )


class EntryAlreadyPostedError(ConflictError):
    code: str = "ENTRY_ALREADY_POSTED"

    def __init__(self, entry_code: str):
        self.entry_code = entry_code
        super().__init__(f"Journal entry {entry_code} is already posted")


class EntryNotPostedError(ConflictError):
    """Adjustment or reversal requires a POSTED original."""

    code: str = "ENTRY_NOT_POSTED"

    def __init__(self, entry_code: str, status: str):
        self.entry_code = entry_code
        self.status = status
        super().__init__(
            f"Journal entry {entry_code} is {status}; only POSTED entries can be "
            f"adjusted or reversed"
        )


class EntryAlreadyReversedError(ConflictError):
    code: str = "ENTRY_ALREADY_REVERSED"

    def __init__(self, entry_code: str, reversal_code: str | None = None):
        self.entry_code = entry_code
        self.reversal_code = reversal_code
        detail = f" by {reversal_code}" if reversal_code else ""
        super().__init__(f"Journal entry {entry_code} has already been reversed{detail}")


class JournalEntryExistsError(ConflictError):
    """A revenue record already links a live journal entry."""

    code: str = "JOURNAL_ENTRY_EXISTS"

    def __init__(self, revenue_code: str, entry_code: str):
        self.revenue_code = revenue_code
        self.entry_code = entry_code
        super().__init__(
            f"Journal entry {entry_code} already exists for revenue {revenue_code}"
        )


class ImmutabilityViolationError(ConflictError):
    """Attempted to modify a record that is frozen."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")


class ConcurrencyError(ConflictError):
    """A concurrent transaction changed the record first."""

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(
            f"{operation} lost a concurrent update; reload and retry"
        )


# =============================================================================
# Receivables
# =============================================================================


class ScheduleMismatchError(ValidationError):
    """Installment amounts do not add up to the receivable total."""

    code: str = "SCHEDULE_MISMATCH"

    def __init__(self, total_amount: Decimal, schedule_total: Decimal):
        self.total_amount = total_amount
        self.schedule_total = schedule_total
        super().__init__(
            f"Installment schedule total ({schedule_total}) does not match "
            f"receivable amount ({total_amount})"
        )


class ScheduleLockedError(ConflictError):
    """Schedule or amount cannot change after payments were recorded."""

    code: str = "SCHEDULE_LOCKED"

    def __init__(self, receivable_code: str, payment_count: int):
        self.receivable_code = receivable_code
        self.payment_count = payment_count
        super().__init__(
            f"Receivable {receivable_code} has {payment_count} recorded payment(s); "
            f"amount and schedule are locked"
        )


class PaymentNotAllowedError(ValidationError):
    """Target installment or receivable cannot accept a payment."""

    code: str = "PAYMENT_NOT_ALLOWED"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class OverpaymentError(ValidationError):
    """Payment exceeds the balance that can absorb it."""

    code: str = "OVERPAYMENT"

    def __init__(self, amount: Decimal, available: Decimal):
        self.amount = amount
        self.available = available
        super().__init__(
            f"Payment amount {amount} exceeds remaining balance {available}"
        )
