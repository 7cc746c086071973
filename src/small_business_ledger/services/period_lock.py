"""Period locking via finalized bank reconciliations."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date

from small_business_ledger.domain.audit import AuditAction
from small_business_ledger.domain.journal import JournalEntry, JournalLine
from small_business_ledger.domain.reconciliation import ClearingSummary, Reconciliation
from small_business_ledger.domain.value_objects import format_minor_units
from small_business_ledger.exceptions import (
    AccountNotFoundError,
    DataIntegrityError,
    PeriodLockedError,
    ReconciliationMismatchError,
    ReconciliationOutOfOrderError,
)
from small_business_ledger.logging_config import get_logger
from small_business_ledger.repositories.interfaces import (
    AccountRepository,
    JournalRepository,
    ReconciliationRepository,
)
from small_business_ledger.repositories.sqlite import SQLiteDatabase
from small_business_ledger.services.audit import AuditLog
from small_business_ledger.services.identity import IdentityProvider
from small_business_ledger.services.interfaces import PeriodLockManager

logger = get_logger(__name__)


@dataclass(frozen=True)
class ClearingCandidate:
    """A journal line on the account that a statement may clear."""

    token: str
    entry: JournalEntry
    line: JournalLine


class PeriodLockManagerImpl(PeriodLockManager):
    def __init__(
        self,
        database: SQLiteDatabase,
        reconciliation_repo: ReconciliationRepository,
        journal_repo: JournalRepository,
        account_repo: AccountRepository,
        audit: AuditLog,
        identity: IdentityProvider,
        max_retries: int = 3,
    ) -> None:
        self._db = database
        self._reconciliation_repo = reconciliation_repo
        self._journal_repo = journal_repo
        self._account_repo = account_repo
        self._audit = audit
        self._identity = identity
        self._max_retries = max_retries

    def locked_through(self, account_id: str) -> date | None:
        user_id = self._identity.require_user()
        latest = self._reconciliation_repo.latest_locked(user_id, account_id)
        return latest.statement_end_date if latest else None

    def is_locked(self, account_id: str, on_date: date) -> bool:
        through = self.locked_through(account_id)
        return through is not None and on_date <= through

    def assert_open(self, account_id: str, on_date: date) -> None:
        """Raise PeriodLockedError if ``account_id`` is closed on ``on_date``."""
        user_id = self._identity.require_user()
        latest = self._reconciliation_repo.latest_locked(user_id, account_id)
        if latest is not None and latest.covers(account_id, on_date):
            raise PeriodLockedError(account_id, latest.statement_end_date, on_date)

    def list_reconciliations(self, account_id: str | None = None) -> list[Reconciliation]:
        user_id = self._identity.require_user()
        if account_id is None:
            return list(self._reconciliation_repo.list_all(user_id))
        return list(self._reconciliation_repo.list_by_account(user_id, account_id))

    def clearing_candidates(
        self, account_id: str, statement_end_date: date
    ) -> list[ClearingCandidate]:
        """Uncleared lines on the account dated on or before the statement end."""
        user_id = self._identity.require_user()
        candidates = []
        for entry in self._journal_repo.list_by_account(
            user_id, account_id, end_date=statement_end_date
        ):
            for token, line in zip(entry.line_tokens(), entry.lines, strict=True):
                if line.account_id == account_id and not line.is_cleared:
                    candidates.append(ClearingCandidate(token=token, entry=entry, line=line))
        return candidates

    def clearing_summary(
        self,
        account_id: str,
        statement_end_date: date,
        statement_balance: int,
        cleared_line_ids: Iterable[str],
    ) -> ClearingSummary:
        """Cleared-balance worksheet for a statement.

        The starting balance is the statement balance of the account's previous
        lock (zero for a first reconciliation).

        Raises:
            AccountNotFoundError: If the account is unknown
            DataIntegrityError: If a token is not an uncleared line of this
                account dated within the statement
        """
        user_id = self._identity.require_user()
        account = self._account_repo.get(user_id, account_id)
        if account is None:
            raise AccountNotFoundError(account_id)

        selected = set(cleared_line_ids)
        by_token = self._open_lines(account_id, statement_end_date, selected)

        deposits = withdrawals = 0
        for token in selected:
            line = by_token[token]
            if account.is_debit_normal:
                deposits += line.debit
                withdrawals += line.credit
            else:
                deposits += line.credit
                withdrawals += line.debit

        previous = self._reconciliation_repo.latest_locked(user_id, account_id)
        return ClearingSummary(
            account_id=account_id,
            statement_end_date=statement_end_date,
            starting_balance=previous.statement_balance if previous else 0,
            cleared_deposits=deposits,
            cleared_withdrawals=withdrawals,
            statement_balance=statement_balance,
            cleared_line_count=len(selected),
        )

    def _open_lines(
        self, account_id: str, statement_end_date: date, tokens: Iterable[str]
    ) -> dict[str, JournalLine]:
        """Resolve tokens to uncleared lines of the account within the statement.

        Malformed tokens, lines of other accounts, lines dated after the
        statement and lines a previous lock already cleared are all rejected.
        """
        by_token = {
            c.token: c.line for c in self.clearing_candidates(account_id, statement_end_date)
        }
        unknown = set(tokens) - by_token.keys()
        if unknown:
            raise DataIntegrityError(
                f"Lines {', '.join(sorted(unknown))} are not open lines of account "
                f"{account_id} through {statement_end_date.isoformat()}",
                context={"account_id": account_id, "line_tokens": sorted(unknown)},
            )
        return by_token

    def finalize(
        self,
        business_id: str,
        account_id: str,
        statement_end_date: date,
        statement_balance: int,
        cleared_line_ids: Iterable[str],
    ) -> Reconciliation:
        """Write the lock record.

        The caller is responsible for having checked the clearing difference;
        ``finalize_reconciliation`` does both in one atomic unit.

        Raises:
            ReconciliationOutOfOrderError: If the account is already locked on
                or after ``statement_end_date``
            DataIntegrityError: If a token is not an uncleared line of this
                account dated within the statement
        """
        user_id = self._identity.require_user()
        tokens = frozenset(cleared_line_ids)

        def _finalize() -> Reconciliation:
            if self._account_repo.get(user_id, account_id) is None:
                raise AccountNotFoundError(account_id)
            through = self.locked_through(account_id)
            if through is not None and statement_end_date <= through:
                raise ReconciliationOutOfOrderError(account_id, statement_end_date, through)
            self._open_lines(account_id, statement_end_date, tokens)

            reconciliation = Reconciliation(
                business_id=business_id,
                account_id=account_id,
                statement_end_date=statement_end_date,
                statement_balance=statement_balance,
                cleared_line_ids=tokens,
                performed_by=self._identity.current_user_label(),
            )
            self._reconciliation_repo.add(user_id, reconciliation)
            self._audit.record(
                AuditAction.LOCK_PERIOD,
                f"Locked account {account_id} through {statement_end_date.isoformat()} "
                f"at {format_minor_units(statement_balance)} ({len(tokens)} cleared lines)",
            )
            return reconciliation

        reconciliation = self._db.run_atomic(_finalize, self._max_retries)
        logger.info(
            "period_lock_finalized",
            reconciliation_id=reconciliation.id,
            account_id=account_id,
            statement_end_date=statement_end_date.isoformat(),
            cleared_lines=len(tokens),
        )
        return reconciliation

    def finalize_reconciliation(
        self,
        business_id: str,
        account_id: str,
        statement_end_date: date,
        statement_balance: int,
        cleared_line_ids: Iterable[str],
    ) -> Reconciliation:
        """Check the clearing difference is zero, then lock the period."""
        tokens = frozenset(cleared_line_ids)

        def _reconcile() -> Reconciliation:
            summary = self.clearing_summary(
                account_id, statement_end_date, statement_balance, tokens
            )
            if not summary.is_balanced:
                logger.warning(
                    "reconciliation_difference",
                    account_id=account_id,
                    difference=summary.difference,
                )
                raise ReconciliationMismatchError(
                    account_id, summary.cleared_balance, statement_balance
                )
            return self.finalize(
                business_id, account_id, statement_end_date, statement_balance, tokens
            )

        return self._db.run_atomic(_reconcile, self._max_retries)
