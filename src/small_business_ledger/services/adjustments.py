"""Append-only correction of posted transactions.

Editing a posted transaction never touches its journal entry. A reversing
entry offsets it, and the staged transaction goes back to ``needs_repost``
so the corrected version is approved through the normal posting path.

Deciding what an edit needs (``plan_edit``) is separate from carrying it
out, so callers collect the reason before the workflow runs.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date, timedelta
from decimal import Decimal

from small_business_ledger.domain.audit import AuditAction
from small_business_ledger.domain.clock import Clock, SystemClock
from small_business_ledger.domain.journal import EntryDraft, JournalEntry, LineDraft
from small_business_ledger.domain.transactions import StagedTransaction
from small_business_ledger.domain.value_objects import TransactionStatus, minor_to_decimal
from small_business_ledger.exceptions import (
    AdjustmentReasonRequiredError,
    ClearedLineProtectedError,
    DataIntegrityError,
    InvalidTransactionStateError,
    StagedTransactionNotFoundError,
)
from small_business_ledger.logging_config import LogContext, get_logger
from small_business_ledger.repositories.interfaces import (
    JournalRepository,
    ReconciliationRepository,
    StagedTransactionRepository,
)
from small_business_ledger.repositories.sqlite import SQLiteDatabase
from small_business_ledger.services.audit import AuditLog
from small_business_ledger.services.identity import IdentityProvider
from small_business_ledger.services.interfaces import (
    AdjustmentWorkflow,
    EditPlan,
    EditResult,
    LedgerService,
    PeriodLockManager,
    ReasonRequired,
)

logger = get_logger(__name__)


def plan_edit(
    txn: StagedTransaction,
    entry: JournalEntry,
    cleared_tokens: Iterable[str],
    locked_through: Mapping[str, date | None],
    reason: str | None,
    today: date,
) -> ReasonRequired | EditPlan:
    """Decide how an edit of a posted transaction proceeds.

    Args:
        txn: The posted staged transaction
        entry: Its linked journal entry
        cleared_tokens: Tokens of the entry's lines held by a locked reconciliation
        locked_through: Latest lock date per account on the entry
        reason: User-supplied reason, if collected yet
        today: Current date

    Returns:
        ReasonRequired when no reason was given, otherwise the EditPlan. When
        the original date is locked the reversal moves to the first open day,
        which is today unless a lock already extends past it.

    Raises:
        ClearedLineProtectedError: If any line of the entry has been reconciled
    """
    cleared = sorted(cleared_tokens)
    if cleared:
        raise ClearedLineProtectedError(entry.id, cleared)

    lock_dates = [through for through in locked_through.values() if through is not None]
    original_locked = any(entry.entry_date <= through for through in lock_dates)

    if not reason or not reason.strip():
        return ReasonRequired(
            transaction_id=txn.id, entry_id=entry.id, original_date_locked=original_locked
        )

    reversal_date = entry.entry_date
    if original_locked:
        reversal_date = max(today, max(lock_dates) + timedelta(days=1))
    return EditPlan(
        transaction_id=txn.id,
        entry_id=entry.id,
        reason=reason.strip(),
        reversal_date=reversal_date,
        original_date_locked=original_locked,
    )


def build_reversal(entry: JournalEntry, txn: StagedTransaction, plan: EditPlan) -> EntryDraft:
    """Mirror ``entry`` with every debit and credit swapped."""
    return EntryDraft(
        entry_date=plan.reversal_date,
        description=f"VOID/REVERSE {entry.id} - {txn.description}",
        business_id=entry.business_id,
        project_id=entry.project_id,
        lines=[
            LineDraft(
                account_id=line.account_id,
                debit=minor_to_decimal(line.credit) if line.credit else Decimal("0"),
                credit=minor_to_decimal(line.debit) if line.debit else Decimal("0"),
                description=f"Reversal of {entry.id}: {line.description}",
                business_id=line.business_id,
                project_id=line.project_id,
                contractor_id=line.contractor_id,
            )
            for line in entry.lines
        ],
        is_adjusting_entry=True,
        adjustment_reason=f"Reversing for update: {plan.reason}",
        original_journal_entry_id=entry.id,
    )


class AdjustmentWorkflowImpl(AdjustmentWorkflow):
    def __init__(
        self,
        database: SQLiteDatabase,
        staged_repo: StagedTransactionRepository,
        journal_repo: JournalRepository,
        reconciliation_repo: ReconciliationRepository,
        period_locks: PeriodLockManager,
        ledger: LedgerService,
        audit: AuditLog,
        identity: IdentityProvider,
        clock: Clock | None = None,
        max_retries: int = 3,
    ) -> None:
        self._db = database
        self._staged_repo = staged_repo
        self._journal_repo = journal_repo
        self._reconciliation_repo = reconciliation_repo
        self._period_locks = period_locks
        self._ledger = ledger
        self._audit = audit
        self._identity = identity
        self._clock = clock or SystemClock()
        self._max_retries = max_retries

    def plan(self, transaction_id: str, reason: str | None) -> ReasonRequired | EditPlan:
        _, _, plan = self._load_and_plan(transaction_id, reason)
        return plan

    def edit_posted_transaction(self, transaction_id: str, reason: str | None) -> EditResult:
        """Reverse a posted transaction's entry and send it back for re-posting.

        Either the reversal is posted and the transaction becomes
        ``needs_repost``, or nothing changes.

        Raises:
            StagedTransactionNotFoundError: If the transaction is unknown
            InvalidTransactionStateError: If the transaction is not posted
            DataIntegrityError: If its linked journal entry is missing
            ClearedLineProtectedError: If any line of the entry is reconciled
            AdjustmentReasonRequiredError: If no reason was supplied
            PeriodLockedError: If the reversal itself cannot be posted
        """
        user_id = self._identity.require_user()

        def _edit() -> EditResult:
            txn, entry, plan = self._load_and_plan(transaction_id, reason)
            if isinstance(plan, ReasonRequired):
                raise AdjustmentReasonRequiredError(f"posted transaction {transaction_id}")

            if plan.date_moved:
                logger.warning(
                    "reversal_date_moved_to_open_period",
                    entry_id=entry.id,
                    original_date=entry.entry_date.isoformat(),
                    reversal_date=plan.reversal_date.isoformat(),
                )
                self._audit.record(
                    AuditAction.PERIOD_CROSSING,
                    f"Original date {entry.entry_date.isoformat()} of {entry.id} is locked; "
                    f"reversal dated {plan.reversal_date.isoformat()}",
                )

            reversal = self._ledger.post(build_reversal(entry, txn, plan))
            self._audit.record(
                AuditAction.EDIT_ATTEMPT,
                f"Reversed {entry.id} with {reversal.id} to edit transaction {txn.id}: "
                f"{plan.reason}",
            )
            txn.mark_needs_repost()
            self._staged_repo.update(user_id, txn)
            return EditResult(transaction=txn, reversal=reversal, plan=plan)

        with LogContext(transaction_id=transaction_id):
            result = self._db.run_atomic(_edit, self._max_retries)
        logger.info(
            "posted_transaction_reversed",
            transaction_id=transaction_id,
            original_entry_id=result.plan.entry_id,
            reversal_entry_id=result.reversal.id,
        )
        return result

    def _load_and_plan(
        self, transaction_id: str, reason: str | None
    ) -> tuple[StagedTransaction, JournalEntry, ReasonRequired | EditPlan]:
        user_id = self._identity.require_user()
        txn = self._staged_repo.get(user_id, transaction_id)
        if txn is None:
            raise StagedTransactionNotFoundError(transaction_id)
        if txn.status != TransactionStatus.POSTED:
            raise InvalidTransactionStateError(txn.id, txn.status.value, "edit")
        if not txn.linked_journal_entry_id:
            raise DataIntegrityError(
                f"Posted transaction {txn.id} has no linked journal entry",
                context={"transaction_id": txn.id},
            )
        entry = self._journal_repo.get(user_id, txn.linked_journal_entry_id)
        if entry is None:
            raise DataIntegrityError(
                f"Journal entry {txn.linked_journal_entry_id} linked to transaction "
                f"{txn.id} not found",
                context={
                    "transaction_id": txn.id,
                    "entry_id": txn.linked_journal_entry_id,
                },
            )

        cleared = self._reconciliation_repo.cleared_tokens(user_id, entry.line_tokens())
        locked_through = {
            account_id: self._period_locks.locked_through(account_id)
            for account_id in entry.account_ids
        }
        plan = plan_edit(txn, entry, cleared, locked_through, reason, self._clock.today())
        return txn, entry, plan
