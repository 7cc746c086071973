"""LedgerService implementation for double-entry posting."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date
from decimal import Decimal

from small_business_ledger.domain.audit import AuditAction
from small_business_ledger.domain.journal import EntryDraft, JournalEntry, JournalLine, LineDraft
from small_business_ledger.domain.value_objects import (
    format_minor_units,
    to_decimal,
    to_minor_units,
)
from small_business_ledger.exceptions import (
    AccountNotFoundError,
    AdjustmentReasonRequiredError,
    EmptyJournalEntryError,
    InvalidLineAmountError,
    InvalidTransactionStateError,
    JournalEntryNotFoundError,
    LedgerImbalanceError,
    StagedTransactionNotFoundError,
)
from small_business_ledger.logging_config import get_logger
from small_business_ledger.repositories.interfaces import (
    AccountRepository,
    JournalRepository,
    StagedTransactionRepository,
)
from small_business_ledger.repositories.sqlite import SQLiteDatabase
from small_business_ledger.services.audit import AuditLog
from small_business_ledger.services.identity import IdentityProvider
from small_business_ledger.services.interfaces import LedgerService, PeriodLockManager

logger = get_logger(__name__)

OPENING_BALANCE_DESCRIPTION = "Opening Balance Set"


def sanitize_lines(
    draft: EntryDraft, epsilon: Decimal = Decimal("0.0001")
) -> tuple[JournalLine, ...]:
    """Round every draft amount to whole cents.

    Amounts that were not already whole cents (beyond ``epsilon``) are logged
    as a data-quality warning; rounding never rejects the entry.

    Raises:
        InvalidLineAmountError: If a debit or credit is negative
    """
    lines: list[JournalLine] = []
    for index, draft_line in enumerate(draft.lines):
        amounts: dict[str, int] = {}
        for side in ("debit", "credit"):
            raw = getattr(draft_line, side)
            if raw < 0:
                raise InvalidLineAmountError(draft_line.account_id, side, raw)
            cents, residual = to_minor_units(raw)
            if residual > epsilon:
                logger.warning(
                    "amount_rounded_to_minor_units",
                    account_id=draft_line.account_id,
                    line_index=index,
                    side=side,
                    original=str(raw),
                    rounded=format_minor_units(cents),
                )
            amounts[side] = cents
        lines.append(
            JournalLine(
                account_id=draft_line.account_id,
                debit=amounts["debit"],
                credit=amounts["credit"],
                description=draft_line.description,
                business_id=draft_line.business_id,
                project_id=draft_line.project_id,
                contractor_id=draft_line.contractor_id,
            )
        )
    return tuple(lines)


class LedgerServiceImpl(LedgerService):
    """Validates and appends journal entries.

    Posting is sanitize, balance check, then lock check and write inside one
    atomic transaction. Balances are always derived from the journal.
    """

    def __init__(
        self,
        database: SQLiteDatabase,
        account_repo: AccountRepository,
        journal_repo: JournalRepository,
        staged_repo: StagedTransactionRepository,
        period_locks: PeriodLockManager,
        audit: AuditLog,
        identity: IdentityProvider,
        rounding_epsilon: Decimal = Decimal("0.0001"),
        max_retries: int = 3,
        opening_balance_equity_account_id: str = "3001",
        default_business_id: str = "Shared",
    ) -> None:
        self._db = database
        self._account_repo = account_repo
        self._journal_repo = journal_repo
        self._staged_repo = staged_repo
        self._period_locks = period_locks
        self._audit = audit
        self._identity = identity
        self._rounding_epsilon = rounding_epsilon
        self._max_retries = max_retries
        self._opening_equity_id = opening_balance_equity_account_id
        self._default_business_id = default_business_id

    def post(
        self, draft: EntryDraft, linked_transaction_id: str | None = None
    ) -> JournalEntry:
        """Validate and append a journal entry.

        Args:
            draft: The proposed entry, amounts in currency units
            linked_transaction_id: Staged transaction to flip to posted in the
                same atomic unit as the entry write

        Returns:
            The posted entry with integer cent amounts

        Raises:
            EmptyJournalEntryError: If the draft has no lines
            LedgerImbalanceError: If rounded debits don't equal rounded credits
            AccountNotFoundError: If a line references an unknown account
            PeriodLockedError: If any referenced account is locked on the entry date
        """
        user_id = self._identity.require_user()
        if not draft.lines:
            raise EmptyJournalEntryError()

        lines = sanitize_lines(draft, self._rounding_epsilon)
        entry = JournalEntry(
            entry_date=draft.entry_date,
            description=draft.description,
            business_id=draft.business_id,
            lines=lines,
            project_id=draft.project_id,
            is_adjusting_entry=draft.is_adjusting_entry,
            adjustment_reason=draft.adjustment_reason,
            original_journal_entry_id=draft.original_journal_entry_id,
        )
        if not entry.is_balanced:
            raise LedgerImbalanceError(entry.total_debits, entry.total_credits)

        def _commit() -> JournalEntry:
            for account_id in entry.account_ids:
                if self._account_repo.get(user_id, account_id) is None:
                    raise AccountNotFoundError(account_id)
                self._period_locks.assert_open(account_id, entry.entry_date)

            staged = None
            if linked_transaction_id is not None:
                staged = self._staged_repo.get(user_id, linked_transaction_id)
                if staged is None:
                    raise StagedTransactionNotFoundError(linked_transaction_id)
                if not staged.is_postable_status:
                    raise InvalidTransactionStateError(
                        staged.id, staged.status.value, "post"
                    )

            self._journal_repo.add(user_id, entry)
            if staged is not None:
                staged.mark_posted(entry.id)
                self._staged_repo.update(user_id, staged)
            self._audit.record(
                AuditAction.POST_ENTRY,
                f"Posted {entry.id} dated {entry.entry_date.isoformat()} "
                f"for {format_minor_units(entry.total_debits)}",
            )
            return entry

        posted = self._db.run_atomic(_commit, self._max_retries)
        logger.info(
            "journal_entry_posted",
            entry_id=posted.id,
            entry_date=posted.entry_date.isoformat(),
            total=posted.total_debits,
            line_count=len(posted.lines),
            linked_transaction_id=linked_transaction_id,
        )
        return posted

    def get_entry(self, entry_id: str) -> JournalEntry:
        user_id = self._identity.require_user()
        entry = self._journal_repo.get(user_id, entry_id)
        if entry is None:
            raise JournalEntryNotFoundError(entry_id)
        return entry

    def list_entries(
        self, start_date: date | None = None, end_date: date | None = None
    ) -> list[JournalEntry]:
        user_id = self._identity.require_user()
        return list(self._journal_repo.list_all(user_id, start_date, end_date))

    def get_account_balance(self, account_id: str, as_of_date: date | None = None) -> int:
        """Normal-side balance in cents, derived from every line on the account."""
        user_id = self._identity.require_user()
        account = self._account_repo.get(user_id, account_id)
        if account is None:
            raise AccountNotFoundError(account_id)

        raw = 0
        for entry in self._journal_repo.list_by_account(
            user_id, account_id, end_date=as_of_date
        ):
            for line in entry.lines:
                if line.account_id == account_id:
                    raw += line.net_amount
        return account.normal_balance(raw)

    def post_opening_balances(
        self,
        entry_date: date,
        balances: Mapping[str, Decimal | int | str],
        business_id: str | None = None,
    ) -> JournalEntry:
        """Post starting balances, plugging the difference to opening equity.

        Each balance is on the account's normal side; a negative value posts to
        the opposite side.
        """
        user_id = self._identity.require_user()
        draft = EntryDraft(
            entry_date=entry_date,
            description=OPENING_BALANCE_DESCRIPTION,
            business_id=business_id or self._default_business_id,
        )
        total = Decimal("0")
        for account_id, value in balances.items():
            amount = to_decimal(value)
            if amount == 0:
                continue
            account = self._account_repo.get(user_id, account_id)
            if account is None:
                raise AccountNotFoundError(account_id)
            debit_side = account.is_debit_normal == (amount > 0)
            line = LineDraft(
                account_id=account_id,
                debit=abs(amount) if debit_side else Decimal("0"),
                credit=Decimal("0") if debit_side else abs(amount),
                description=OPENING_BALANCE_DESCRIPTION,
                business_id=draft.business_id,
            )
            draft.add_line(line)
            total += line.debit - line.credit

        if total != 0:
            draft.add_line(
                LineDraft(
                    account_id=self._opening_equity_id,
                    debit=-total if total < 0 else Decimal("0"),
                    credit=total if total > 0 else Decimal("0"),
                    description=OPENING_BALANCE_DESCRIPTION,
                    business_id=draft.business_id,
                )
            )
        return self.post(draft)

    def post_adjusting_entry(
        self,
        entry_date: date,
        description: str,
        lines: Iterable[LineDraft],
        reason: str,
        business_id: str | None = None,
    ) -> JournalEntry:
        """Post a manual adjusting journal entry (AJE); a reason is mandatory."""
        self._identity.require_user()
        if not reason or not reason.strip():
            raise AdjustmentReasonRequiredError("a manual journal entry")
        draft = EntryDraft(
            entry_date=entry_date,
            description=description,
            business_id=business_id or self._default_business_id,
            lines=list(lines),
            is_adjusting_entry=True,
            adjustment_reason=reason.strip(),
        )

        def _post() -> JournalEntry:
            entry = self.post(draft)
            self._audit.record(
                AuditAction.CREATE_AJE,
                f"Created AJE {entry.id}: {description} (reason: {draft.adjustment_reason})",
            )
            return entry

        return self._db.run_atomic(_post, self._max_retries)
