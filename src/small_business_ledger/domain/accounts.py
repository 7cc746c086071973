from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import uuid4

from small_business_ledger.domain.value_objects import AccountStatus, AccountType


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class Account:
    """Node in the chart-of-accounts forest.

    Journal lines reference accounts permanently, so accounts are archived
    rather than deleted.
    """

    code: str
    name: str
    account_type: AccountType
    id: str = field(default_factory=lambda: uuid4().hex)
    parent_id: str | None = None
    status: AccountStatus = AccountStatus.ACTIVE
    is_bank_account: bool = False
    description: str = ""
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE

    @property
    def is_debit_normal(self) -> bool:
        return self.account_type.is_debit_normal

    def archive(self) -> None:
        self.status = AccountStatus.ARCHIVED
        self.updated_at = _utc_now()

    def normal_balance(self, raw_balance: int) -> int:
        """Sign-adjust a debit-minus-credit amount to this account's normal side."""
        return raw_balance if self.is_debit_normal else -raw_balance
