from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from small_business_ledger.domain.invoices import Invoice, InvoicePayment
from small_business_ledger.domain.journal import EntryDraft, JournalEntry, LineDraft
from small_business_ledger.domain.reconciliation import ClearingSummary, Reconciliation
from small_business_ledger.domain.transactions import (
    BankFeedItem,
    SplitLine,
    StagedTransaction,
)
from small_business_ledger.domain.value_objects import (
    AccountType,
    PaymentMethod,
    TransactionType,
)


@dataclass(frozen=True)
class TypeMismatch:
    account_id: str
    account_type: AccountType
    parent_id: str
    parent_type: AccountType


@dataclass(frozen=True)
class AssignmentSuggestion:
    source: str
    transaction_type: TransactionType | None = None
    account_id: str | None = None
    business_id: str | None = None
    project_id: str | None = None


@dataclass(frozen=True)
class ReasonRequired:
    """The edit cannot proceed until the user supplies a reason."""

    transaction_id: str
    entry_id: str
    original_date_locked: bool


@dataclass(frozen=True)
class EditPlan:
    transaction_id: str
    entry_id: str
    reason: str
    reversal_date: date
    original_date_locked: bool

    @property
    def date_moved(self) -> bool:
        return self.original_date_locked


@dataclass(frozen=True)
class EditResult:
    transaction: StagedTransaction
    reversal: JournalEntry
    plan: EditPlan


class LedgerService(ABC):
    @abstractmethod
    def post(
        self, draft: EntryDraft, linked_transaction_id: str | None = None
    ) -> JournalEntry:
        pass

    @abstractmethod
    def get_entry(self, entry_id: str) -> JournalEntry:
        pass

    @abstractmethod
    def list_entries(
        self, start_date: date | None = None, end_date: date | None = None
    ) -> list[JournalEntry]:
        pass

    @abstractmethod
    def get_account_balance(self, account_id: str, as_of_date: date | None = None) -> int:
        pass

    @abstractmethod
    def post_opening_balances(
        self,
        entry_date: date,
        balances: Mapping[str, Decimal | int | str],
        business_id: str | None = None,
    ) -> JournalEntry:
        pass

    @abstractmethod
    def post_adjusting_entry(
        self,
        entry_date: date,
        description: str,
        lines: Iterable[LineDraft],
        reason: str,
        business_id: str | None = None,
    ) -> JournalEntry:
        pass


class PeriodLockManager(ABC):
    @abstractmethod
    def is_locked(self, account_id: str, on_date: date) -> bool:
        pass

    @abstractmethod
    def locked_through(self, account_id: str) -> date | None:
        pass

    @abstractmethod
    def assert_open(self, account_id: str, on_date: date) -> None:
        pass

    @abstractmethod
    def clearing_summary(
        self,
        account_id: str,
        statement_end_date: date,
        statement_balance: int,
        cleared_line_ids: Iterable[str],
    ) -> ClearingSummary:
        pass

    @abstractmethod
    def finalize(
        self,
        business_id: str,
        account_id: str,
        statement_end_date: date,
        statement_balance: int,
        cleared_line_ids: Iterable[str],
    ) -> Reconciliation:
        pass

    @abstractmethod
    def finalize_reconciliation(
        self,
        business_id: str,
        account_id: str,
        statement_end_date: date,
        statement_balance: int,
        cleared_line_ids: Iterable[str],
    ) -> Reconciliation:
        pass


class StagingService(ABC):
    @abstractmethod
    def ingest_bank_feed(
        self, items: Iterable[BankFeedItem], bank_account_id: str
    ) -> list[StagedTransaction]:
        pass

    @abstractmethod
    def add_manual(
        self,
        transaction_date: date,
        description: str,
        amount: Decimal | int | str,
        bank_account_id: str,
        **assignment: Any,
    ) -> StagedTransaction:
        pass

    @abstractmethod
    def categorize(
        self,
        transaction_id: str,
        *,
        account_id: str | None = None,
        business_id: str | None = None,
        project_id: str | None = None,
        contractor_id: str | None = None,
        transfer_account_id: str | None = None,
        transaction_type: TransactionType | None = None,
        splits: list[SplitLine] | None = None,
    ) -> StagedTransaction:
        pass

    @abstractmethod
    def suggest_assignment(self, txn: StagedTransaction) -> AssignmentSuggestion | None:
        pass

    @abstractmethod
    def is_possible_duplicate(self, txn: StagedTransaction) -> bool:
        pass

    @abstractmethod
    def post_staged(self, transaction_id: str) -> JournalEntry:
        pass


class AdjustmentWorkflow(ABC):
    @abstractmethod
    def plan(self, transaction_id: str, reason: str | None) -> ReasonRequired | EditPlan:
        pass

    @abstractmethod
    def edit_posted_transaction(self, transaction_id: str, reason: str | None) -> EditResult:
        pass


class InvoiceService(ABC):
    @abstractmethod
    def create_invoice(
        self,
        invoice_number: str,
        customer_id: str,
        business_id: str,
        date_issued: date,
        total_amount: Decimal | int | str,
        due_date: date | None = None,
        send: bool = False,
    ) -> Invoice:
        pass

    @abstractmethod
    def record_payment(
        self,
        invoice_id: str,
        amount: Decimal | int | str,
        payment_date: date,
        method: PaymentMethod = PaymentMethod.CHECK,
    ) -> InvoicePayment:
        pass


class ReportingService(ABC):
    @abstractmethod
    def profit_and_loss(
        self, start_date: date, end_date: date, business_id: str | None = None
    ) -> dict[str, Any]:
        pass

    @abstractmethod
    def balance_sheet(self, as_of_date: date, business_id: str | None = None) -> dict[str, Any]:
        pass

    @abstractmethod
    def cash_flow(
        self, start_date: date, end_date: date, business_id: str | None = None
    ) -> dict[str, Any]:
        pass

    @abstractmethod
    def ar_aging(self, business_id: str | None = None) -> dict[str, Any]:
        pass

    @abstractmethod
    def dashboard(self, business_id: str | None = None) -> dict[str, Any]:
        pass


__all__ = [
    "AdjustmentWorkflow",
    "AssignmentSuggestion",
    "EditPlan",
    "EditResult",
    "InvoiceService",
    "LedgerService",
    "PeriodLockManager",
    "ReasonRequired",
    "ReportingService",
    "StagingService",
    "TypeMismatch",
]
