"""Repository interfaces.

Every read and write is scoped by ``user_id``; implementations must raise
``TenantRequiredError`` rather than fall back to scanning all tenants.
Journal entries, reconciliations and audit events are append-only: their
repositories expose no update or delete.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import date

from small_business_ledger.domain.accounts import Account
from small_business_ledger.domain.audit import AuditEvent
from small_business_ledger.domain.invoices import Invoice, InvoicePayment
from small_business_ledger.domain.journal import JournalEntry
from small_business_ledger.domain.reconciliation import Reconciliation
from small_business_ledger.domain.transactions import MerchantProfile, StagedTransaction


class AccountRepository(ABC):
    @abstractmethod
    def add(self, user_id: str, account: Account) -> None:
        pass

    @abstractmethod
    def get(self, user_id: str, account_id: str) -> Account | None:
        pass

    @abstractmethod
    def get_by_code(self, user_id: str, code: str) -> Account | None:
        pass

    @abstractmethod
    def list_all(self, user_id: str) -> Iterable[Account]:
        pass

    @abstractmethod
    def list_children(self, user_id: str, parent_id: str) -> Iterable[Account]:
        pass

    @abstractmethod
    def update(self, user_id: str, account: Account) -> None:
        pass


class JournalRepository(ABC):
    @abstractmethod
    def add(self, user_id: str, entry: JournalEntry) -> None:
        pass

    @abstractmethod
    def get(self, user_id: str, entry_id: str) -> JournalEntry | None:
        pass

    @abstractmethod
    def list_all(
        self,
        user_id: str,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> Iterable[JournalEntry]:
        pass

    @abstractmethod
    def list_by_account(
        self,
        user_id: str,
        account_id: str,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> Iterable[JournalEntry]:
        pass


class ReconciliationRepository(ABC):
    @abstractmethod
    def add(self, user_id: str, reconciliation: Reconciliation) -> None:
        pass

    @abstractmethod
    def get(self, user_id: str, reconciliation_id: str) -> Reconciliation | None:
        pass

    @abstractmethod
    def list_by_account(self, user_id: str, account_id: str) -> Iterable[Reconciliation]:
        pass

    @abstractmethod
    def list_all(self, user_id: str) -> Iterable[Reconciliation]:
        pass

    @abstractmethod
    def latest_locked(self, user_id: str, account_id: str) -> Reconciliation | None:
        pass

    @abstractmethod
    def cleared_tokens(self, user_id: str, line_tokens: Iterable[str]) -> dict[str, str]:
        """Map each cleared token among ``line_tokens`` to its reconciliation id."""


class StagedTransactionRepository(ABC):
    @abstractmethod
    def add(self, user_id: str, txn: StagedTransaction) -> None:
        pass

    @abstractmethod
    def get(self, user_id: str, txn_id: str) -> StagedTransaction | None:
        pass

    @abstractmethod
    def get_by_vendor_id(
        self, user_id: str, vendor_transaction_id: str
    ) -> StagedTransaction | None:
        pass

    @abstractmethod
    def list_all(self, user_id: str) -> Iterable[StagedTransaction]:
        pass

    @abstractmethod
    def list_by_status(self, user_id: str, status: str) -> Iterable[StagedTransaction]:
        pass

    @abstractmethod
    def update(self, user_id: str, txn: StagedTransaction) -> None:
        pass


class InvoiceRepository(ABC):
    @abstractmethod
    def add(self, user_id: str, invoice: Invoice) -> None:
        pass

    @abstractmethod
    def get(self, user_id: str, invoice_id: str) -> Invoice | None:
        pass

    @abstractmethod
    def list_all(self, user_id: str) -> Iterable[Invoice]:
        pass

    @abstractmethod
    def update(self, user_id: str, invoice: Invoice) -> None:
        pass

    @abstractmethod
    def add_payment(self, user_id: str, payment: InvoicePayment) -> None:
        pass

    @abstractmethod
    def list_payments(self, user_id: str, invoice_id: str) -> Iterable[InvoicePayment]:
        pass


class MerchantProfileRepository(ABC):
    @abstractmethod
    def list_all(self, user_id: str) -> Iterable[MerchantProfile]:
        pass

    @abstractmethod
    def get_by_name(self, user_id: str, merchant_name: str) -> MerchantProfile | None:
        pass

    @abstractmethod
    def upsert(self, user_id: str, profile: MerchantProfile) -> None:
        pass


class AuditEventRepository(ABC):
    @abstractmethod
    def add(self, user_id: str, event: AuditEvent) -> None:
        pass

    @abstractmethod
    def list_recent(self, user_id: str, limit: int = 100) -> Iterable[AuditEvent]:
        pass
