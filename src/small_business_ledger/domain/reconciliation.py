"""Reconciliation (period lock) domain models."""

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from uuid import uuid4


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


@dataclass(frozen=True)
class Reconciliation:
    """A finalized bank statement reconciliation.

    Once locked, no journal activity for ``account_id`` dated on or before
    ``statement_end_date`` may be posted or reversed, and the lines listed in
    ``cleared_line_ids`` may not be altered. Records are never updated.
    """

    business_id: str
    account_id: str
    statement_end_date: date
    statement_balance: int
    cleared_line_ids: frozenset[str]
    performed_by: str
    id: str = field(default_factory=lambda: uuid4().hex)
    is_locked: bool = True
    created_at: datetime = field(default_factory=_utc_now)

    def covers(self, account_id: str, entry_date: date) -> bool:
        """True if this lock closes ``account_id`` on ``entry_date``."""
        return (
            self.is_locked
            and self.account_id == account_id
            and entry_date <= self.statement_end_date
        )


@dataclass(frozen=True)
class ClearingSummary:
    """Cleared-balance worksheet for one account and statement.

    Deposits and withdrawals are measured on the account's normal side: for a
    debit-normal bank account deposits are debits, for a credit card they are
    credits.
    """

    account_id: str
    statement_end_date: date
    starting_balance: int
    cleared_deposits: int
    cleared_withdrawals: int
    statement_balance: int
    cleared_line_count: int

    @property
    def cleared_balance(self) -> int:
        return self.starting_balance + self.cleared_deposits - self.cleared_withdrawals

    @property
    def difference(self) -> int:
        return self.statement_balance - self.cleared_balance

    @property
    def is_balanced(self) -> bool:
        return self.difference == 0
