"""Journal entry domain models.

Drafts carry currency-unit amounts as entered; posted entries carry integer
minor units and are never mutated after they are written.
"""

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from uuid import uuid4

from small_business_ledger.domain.value_objects import to_decimal


def _utc_now() -> datetime:
    return datetime.now(UTC)


def line_token(entry_id: str, line_index: int) -> str:
    """Identifier of one journal line as recorded by reconciliations."""
    return f"{entry_id}-{line_index}"


@dataclass
class LineDraft:
    account_id: str
    debit: Decimal = Decimal("0")
    credit: Decimal = Decimal("0")
    description: str = ""
    business_id: str | None = None
    project_id: str | None = None
    contractor_id: str | None = None

    def __post_init__(self) -> None:
        self.debit = to_decimal(self.debit)
        self.credit = to_decimal(self.credit)


@dataclass
class EntryDraft:
    """A proposed journal entry awaiting validation by the ledger."""

    entry_date: date
    description: str
    business_id: str
    lines: list[LineDraft] = field(default_factory=list)
    project_id: str | None = None
    is_adjusting_entry: bool = False
    adjustment_reason: str = ""
    original_journal_entry_id: str | None = None

    def add_line(self, line: LineDraft) -> None:
        self.lines.append(line)

    @property
    def account_ids(self) -> list[str]:
        """Distinct account ids in first-seen order."""
        return list(dict.fromkeys(line.account_id for line in self.lines))


@dataclass(frozen=True)
class JournalLine:
    account_id: str
    debit: int = 0
    credit: int = 0
    description: str = ""
    business_id: str | None = None
    project_id: str | None = None
    contractor_id: str | None = None
    is_cleared: bool = False
    reconciliation_id: str | None = None

    @property
    def net_amount(self) -> int:
        return self.debit - self.credit


@dataclass(frozen=True)
class JournalEntry:
    entry_date: date
    description: str
    business_id: str
    lines: tuple[JournalLine, ...]
    id: str = field(default_factory=lambda: uuid4().hex)
    project_id: str | None = None
    is_adjusting_entry: bool = False
    adjustment_reason: str = ""
    original_journal_entry_id: str | None = None
    created_at: datetime = field(default_factory=_utc_now)

    @property
    def total_debits(self) -> int:
        return sum(line.debit for line in self.lines)

    @property
    def total_credits(self) -> int:
        return sum(line.credit for line in self.lines)

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits

    @property
    def is_reversal(self) -> bool:
        return self.original_journal_entry_id is not None

    @property
    def account_ids(self) -> list[str]:
        return list(dict.fromkeys(line.account_id for line in self.lines))

    def line_tokens(self) -> list[str]:
        return [line_token(self.id, index) for index in range(len(self.lines))]

    def primary_line(self, exclude_account_ids: set[str] | None = None) -> JournalLine:
        """First line not touching an excluded (bank/equity) account, else line 0."""
        excluded = exclude_account_ids or set()
        for line in self.lines:
            if line.account_id not in excluded:
                return line
        return self.lines[0]
