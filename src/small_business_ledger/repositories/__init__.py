from small_business_ledger.repositories.interfaces import (
    AccountRepository,
    AuditEventRepository,
    InvoiceRepository,
    JournalRepository,
    MerchantProfileRepository,
    ReconciliationRepository,
    StagedTransactionRepository,
)
from small_business_ledger.repositories.sqlite import (
    SQLiteAccountRepository,
    SQLiteAuditEventRepository,
    SQLiteDatabase,
    SQLiteInvoiceRepository,
    SQLiteJournalRepository,
    SQLiteMerchantProfileRepository,
    SQLiteReconciliationRepository,
    SQLiteStagedTransactionRepository,
)

__all__ = [
    "AccountRepository",
    "AuditEventRepository",
    "InvoiceRepository",
    "JournalRepository",
    "MerchantProfileRepository",
    "ReconciliationRepository",
    "StagedTransactionRepository",
    "SQLiteAccountRepository",
    "SQLiteAuditEventRepository",
    "SQLiteDatabase",
    "SQLiteInvoiceRepository",
    "SQLiteJournalRepository",
    "SQLiteMerchantProfileRepository",
    "SQLiteReconciliationRepository",
    "SQLiteStagedTransactionRepository",
]
