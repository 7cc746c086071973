"""Staged (inbox) transaction models.

A staged transaction is a bank-feed or manually entered item that has not yet
been turned into a journal entry. Amounts are signed integer cents: negative
is money leaving the bank account.
"""

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from uuid import uuid4

from small_business_ledger.domain.value_objects import TransactionStatus, TransactionType


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class SplitLine:
    """One destination of a split transaction; amount is positive cents."""

    account_id: str
    amount: int
    description: str = ""
    project_id: str | None = None
    business_id: str | None = None
    contractor_id: str | None = None


@dataclass
class StagedTransaction:
    transaction_date: date
    description: str
    amount: int
    bank_account_id: str
    id: str = field(default_factory=lambda: uuid4().hex)
    status: TransactionStatus = TransactionStatus.IMPORTED
    transaction_type: TransactionType = TransactionType.EXPENSE
    assigned_account: str | None = None
    assigned_business: str | None = None
    assigned_project: str | None = None
    assigned_contractor_id: str | None = None
    transfer_account_id: str | None = None
    splits: list[SplitLine] = field(default_factory=list)
    linked_journal_entry_id: str | None = None
    pending: bool = False
    vendor_transaction_id: str | None = None
    merchant_name: str | None = None
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)

    @property
    def is_inflow(self) -> bool:
        return self.amount > 0

    @property
    def absolute_amount(self) -> int:
        return abs(self.amount)

    @property
    def is_postable_status(self) -> bool:
        return self.status in (TransactionStatus.IMPORTED, TransactionStatus.NEEDS_REPOST)

    def mark_posted(self, journal_entry_id: str) -> None:
        self.status = TransactionStatus.POSTED
        self.linked_journal_entry_id = journal_entry_id
        self.updated_at = _utc_now()

    def mark_needs_repost(self) -> None:
        self.status = TransactionStatus.NEEDS_REPOST
        self.linked_journal_entry_id = None
        self.updated_at = _utc_now()


@dataclass(frozen=True)
class BankFeedItem:
    """Raw item from the bank-feed provider.

    ``amount`` uses the provider's convention: positive is money out.
    """

    vendor_transaction_id: str
    transaction_date: date
    name: str
    amount: str | float | int
    pending: bool = False
    merchant_name: str | None = None


@dataclass
class MerchantProfile:
    """Remembered categorization for a merchant."""

    merchant_name: str
    id: str = field(default_factory=lambda: uuid4().hex)
    default_business: str | None = None
    default_account: str | None = None
    default_project: str | None = None
    last_seen: datetime = field(default_factory=_utc_now)
