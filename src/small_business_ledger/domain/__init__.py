from small_business_ledger.domain.accounts import Account
from small_business_ledger.domain.audit import AuditAction, AuditEvent
from small_business_ledger.domain.clock import Clock, FixedClock, SystemClock
from small_business_ledger.domain.invoices import Invoice, InvoicePayment
from small_business_ledger.domain.journal import (
    EntryDraft,
    JournalEntry,
    JournalLine,
    LineDraft,
    line_token,
)
from small_business_ledger.domain.reconciliation import ClearingSummary, Reconciliation
from small_business_ledger.domain.transactions import (
    BankFeedItem,
    MerchantProfile,
    SplitLine,
    StagedTransaction,
)
from small_business_ledger.domain.value_objects import (
    AccountStatus,
    AccountType,
    InvoiceStatus,
    PaymentMethod,
    TransactionStatus,
    TransactionType,
)

__all__ = [
    "Account",
    "AccountStatus",
    "AccountType",
    "AuditAction",
    "AuditEvent",
    "BankFeedItem",
    "Clock",
    "ClearingSummary",
    "EntryDraft",
    "FixedClock",
    "Invoice",
    "InvoicePayment",
    "InvoiceStatus",
    "JournalEntry",
    "JournalLine",
    "LineDraft",
    "MerchantProfile",
    "PaymentMethod",
    "Reconciliation",
    "SplitLine",
    "StagedTransaction",
    "SystemClock",
    "TransactionStatus",
    "TransactionType",
    "line_token",
]
