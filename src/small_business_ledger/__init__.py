from small_business_ledger.domain.accounts import Account
from small_business_ledger.domain.journal import (
    EntryDraft,
    JournalEntry,
    JournalLine,
    LineDraft,
)
from small_business_ledger.domain.reconciliation import Reconciliation
from small_business_ledger.domain.transactions import StagedTransaction
from small_business_ledger.domain.value_objects import (
    AccountType,
    TransactionStatus,
    TransactionType,
)

__all__ = [
    "Account",
    "AccountType",
    "EntryDraft",
    "JournalEntry",
    "JournalLine",
    "LineDraft",
    "Reconciliation",
    "StagedTransaction",
    "TransactionStatus",
    "TransactionType",
]

__version__ = "0.1.0"
