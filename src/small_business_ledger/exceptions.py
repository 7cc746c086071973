"""Domain exception hierarchy for Small Business Ledger.

All domain-specific exceptions inherit from SmallBusinessLedgerError.
Every fatal error names the offending account, date or amount in both its
message and its context so the caller can correct the root cause.
"""

from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from typing import Any

from small_business_ledger.domain.value_objects import format_minor_units


class SmallBusinessLedgerError(Exception):
    """Base exception for all Small Business Ledger errors.

    Includes an error_code for machine consumers and extra context.
    """

    error_code: str = "SBL_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        *,
        error_code: str | None = None,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        if status_code:
            self.status_code = status_code
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a dictionary for CLI/API output."""
        return {
            "error": self.error_code,
            "message": self.message,
            "context": self.context,
        }


# =============================================================================
# Ledger Errors
# =============================================================================


class LedgerError(SmallBusinessLedgerError):
    """Base exception for journal posting errors."""

    error_code = "LEDGER_ERROR"
    status_code = 400


class LedgerImbalanceError(LedgerError):
    """Raised when an entry's debits don't equal its credits."""

    error_code = "LEDGER_IMBALANCE"

    def __init__(self, expected_debits: int, expected_credits: int) -> None:
        self.expected_debits = expected_debits
        self.expected_credits = expected_credits
        super().__init__(
            "Entry is unbalanced: "
            f"debits={format_minor_units(expected_debits)}, "
            f"credits={format_minor_units(expected_credits)}",
            context={
                "expected_debits": expected_debits,
                "expected_credits": expected_credits,
            },
        )


class EmptyJournalEntryError(LedgerError):
    """Raised when an entry has no lines."""

    error_code = "EMPTY_JOURNAL_ENTRY"

    def __init__(self) -> None:
        super().__init__("A journal entry needs at least one line")


class PeriodLockedError(LedgerError):
    """Raised when a write targets an account/date inside a locked period."""

    error_code = "PERIOD_LOCKED"
    status_code = 409

    def __init__(self, account_id: str, locked_through: date, entry_date: date) -> None:
        self.account_id = account_id
        self.locked_through = locked_through
        self.entry_date = entry_date
        super().__init__(
            f"Account {account_id} closed through {locked_through.isoformat()}; "
            f"cannot post to {entry_date.isoformat()}",
            context={
                "account_id": account_id,
                "locked_through": locked_through.isoformat(),
                "entry_date": entry_date.isoformat(),
            },
        )


class InvalidLineAmountError(LedgerError):
    """Raised when a line carries a negative debit or credit."""

    error_code = "INVALID_LINE_AMOUNT"

    def __init__(self, account_id: str, side: str, amount: Decimal) -> None:
        super().__init__(
            f"Line on account {account_id} has a negative {side} of {amount}",
            context={"account_id": account_id, "side": side, "amount": str(amount)},
        )


class AdjustmentReasonRequiredError(LedgerError):
    """Raised when an adjusting entry or posted-transaction edit has no reason."""

    error_code = "ADJUSTMENT_REASON_REQUIRED"

    def __init__(self, subject: str) -> None:
        super().__init__(
            f"A reason is required to adjust {subject}",
            context={"subject": subject},
        )


# =============================================================================
# Data Integrity Errors
# =============================================================================


class DataIntegrityError(SmallBusinessLedgerError):
    """Raised when a referenced record is missing or inconsistent."""

    error_code = "DATA_INTEGRITY"
    status_code = 404


class AccountNotFoundError(DataIntegrityError):
    """Raised when an account cannot be found."""

    error_code = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: str) -> None:
        self.account_id = account_id
        super().__init__(
            f"Account not found: {account_id}",
            context={"account_id": account_id},
        )


class JournalEntryNotFoundError(DataIntegrityError):
    """Raised when a journal entry cannot be found."""

    error_code = "JOURNAL_ENTRY_NOT_FOUND"

    def __init__(self, entry_id: str) -> None:
        super().__init__(
            f"Journal entry not found: {entry_id}",
            context={"entry_id": entry_id},
        )


class StagedTransactionNotFoundError(DataIntegrityError):
    """Raised when a staged transaction cannot be found."""

    error_code = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: str) -> None:
        super().__init__(
            f"Transaction not found: {transaction_id}",
            context={"transaction_id": transaction_id},
        )


class InvoiceNotFoundError(DataIntegrityError):
    """Raised when an invoice cannot be found."""

    error_code = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_id: str) -> None:
        super().__init__(
            f"Invoice not found: {invoice_id}",
            context={"invoice_id": invoice_id},
        )


# =============================================================================
# Staging and Workflow Errors
# =============================================================================


class StagingError(SmallBusinessLedgerError):
    """Base exception for staged transaction errors."""

    error_code = "STAGING_ERROR"
    status_code = 400


class MissingAssignmentError(StagingError):
    """Raised when a staged transaction lacks a required assignment."""

    error_code = "MISSING_ASSIGNMENT"
    status_code = 422

    def __init__(self, transaction_id: str, field: str) -> None:
        self.field = field
        super().__init__(
            f"Transaction {transaction_id} needs {field} before it can be posted",
            context={"transaction_id": transaction_id, "field": field},
        )


class PendingNotPostableError(StagingError):
    """Raised when a bank item still pending at the bank is posted."""

    error_code = "PENDING_NOT_POSTABLE"
    status_code = 409

    def __init__(self, transaction_id: str) -> None:
        super().__init__(
            f"Transaction {transaction_id} is still pending at the bank",
            context={"transaction_id": transaction_id},
        )


class InvalidTransactionStateError(StagingError):
    """Raised when an operation does not apply to a transaction's status."""

    error_code = "INVALID_TRANSACTION_STATE"
    status_code = 409

    def __init__(self, transaction_id: str, status: str, operation: str) -> None:
        super().__init__(
            f"Cannot {operation} transaction {transaction_id} in status '{status}'",
            context={
                "transaction_id": transaction_id,
                "status": status,
                "operation": operation,
            },
        )


class ClearedLineProtectedError(StagingError):
    """Raised when an edit touches lines cleared by a reconciliation."""

    error_code = "CLEARED_LINE_PROTECTED"
    status_code = 403

    def __init__(self, entry_id: str, line_tokens: Iterable[str]) -> None:
        tokens = sorted(line_tokens)
        super().__init__(
            f"Journal entry {entry_id} has reconciled lines ({', '.join(tokens)}); "
            "unclear them in the reconciliation before editing",
            context={"entry_id": entry_id, "line_tokens": tokens},
        )


class InvalidPaymentError(StagingError):
    """Raised when an invoice payment amount is not positive."""

    error_code = "INVALID_PAYMENT"
    status_code = 422

    def __init__(self, invoice_id: str, amount: int) -> None:
        super().__init__(
            f"Payment of {format_minor_units(amount)} on invoice {invoice_id} "
            "must be positive; use a credit memo for refunds",
            context={"invoice_id": invoice_id, "amount": amount},
        )


# =============================================================================
# Reconciliation Errors
# =============================================================================


class ReconciliationError(SmallBusinessLedgerError):
    """Base exception for reconciliation-related errors."""

    error_code = "RECONCILIATION_ERROR"
    status_code = 400


class ReconciliationMismatchError(ReconciliationError):
    """Raised when the cleared balance does not equal the statement balance."""

    error_code = "RECONCILIATION_MISMATCH"

    def __init__(self, account_id: str, cleared_balance: int, statement_balance: int) -> None:
        super().__init__(
            f"Reconciliation failed for account {account_id}: cleared balance "
            f"{format_minor_units(cleared_balance)} vs statement "
            f"{format_minor_units(statement_balance)}",
            context={
                "account_id": account_id,
                "cleared_balance": cleared_balance,
                "statement_balance": statement_balance,
                "difference": statement_balance - cleared_balance,
            },
        )


class ReconciliationOutOfOrderError(ReconciliationError):
    """Raised when a lock would end on or before an existing lock."""

    error_code = "RECONCILIATION_OUT_OF_ORDER"
    status_code = 409

    def __init__(
        self, account_id: str, statement_end_date: date, locked_through: date
    ) -> None:
        super().__init__(
            f"Account {account_id} is already locked through "
            f"{locked_through.isoformat()}; a new lock must end after it "
            f"(got {statement_end_date.isoformat()})",
            context={
                "account_id": account_id,
                "statement_end_date": statement_end_date.isoformat(),
                "locked_through": locked_through.isoformat(),
            },
        )


# =============================================================================
# Collaborator Errors
# =============================================================================


class UnauthenticatedError(SmallBusinessLedgerError):
    """Raised when no user is signed in."""

    error_code = "UNAUTHENTICATED"
    status_code = 401

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class PersistenceError(SmallBusinessLedgerError):
    """Base exception for storage errors."""

    error_code = "PERSISTENCE_ERROR"
    status_code = 500


class PersistenceUnavailableError(PersistenceError):
    """Raised when the store cannot complete a read or write."""

    error_code = "PERSISTENCE_UNAVAILABLE"
    status_code = 503

    def __init__(self, message: str, attempts: int | None = None) -> None:
        context: dict[str, Any] = {}
        if attempts is not None:
            context["attempts"] = attempts
        super().__init__(f"Persistence layer unavailable: {message}", context=context)


class TenantRequiredError(PersistenceError):
    """Raised when a read or write is attempted without a tenant id."""

    error_code = "TENANT_REQUIRED"
    status_code = 400

    def __init__(self, operation: str) -> None:
        super().__init__(
            f"No user id supplied for {operation}",
            context={"operation": operation},
        )


class TransactionConflictError(PersistenceError):
    """Raised when an atomic write loses a race for the database lock."""

    error_code = "TRANSACTION_CONFLICT"
    status_code = 409

    def __init__(self, message: str) -> None:
        super().__init__(f"Atomic transaction aborted: {message}")
