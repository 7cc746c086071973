"""SQLite implementations of repository interfaces."""

from __future__ import annotations

import json
import sqlite3
from collections import defaultdict
from collections.abc import Callable, Iterable, Iterator, Sequence
from contextlib import contextmanager
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any, TypeVar

from small_business_ledger.domain.accounts import Account
from small_business_ledger.domain.audit import AuditAction, AuditEvent
from small_business_ledger.domain.invoices import Invoice, InvoicePayment
from small_business_ledger.domain.journal import JournalEntry, JournalLine
from small_business_ledger.domain.reconciliation import Reconciliation
from small_business_ledger.domain.transactions import (
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
from small_business_ledger.exceptions import (
    DataIntegrityError,
    PersistenceUnavailableError,
    TenantRequiredError,
    TransactionConflictError,
)
from small_business_ledger.logging_config import get_logger
from small_business_ledger.repositories.interfaces import (
    AccountRepository,
    AuditEventRepository,
    InvoiceRepository,
    JournalRepository,
    MerchantProfileRepository,
    ReconciliationRepository,
    StagedTransactionRepository,
)

logger = get_logger(__name__)

T = TypeVar("T")

_CONTENTION_MARKERS = ("database is locked", "database is busy", "database table is locked")


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _is_contention(exc: sqlite3.Error) -> bool:
    return isinstance(exc, sqlite3.OperationalError) and any(
        marker in str(exc).lower() for marker in _CONTENTION_MARKERS
    )


def _require_tenant(user_id: str | None, operation: str) -> str:
    if not user_id:
        raise TenantRequiredError(operation)
    return user_id


def _opt_date(value: str | None) -> date | None:
    return date.fromisoformat(value) if value else None


_SCHEMA = """
    -- Chart of accounts
    CREATE TABLE IF NOT EXISTS accounts (
        user_id TEXT NOT NULL,
        id TEXT NOT NULL,
        code TEXT NOT NULL,
        name TEXT NOT NULL,
        account_type TEXT NOT NULL,
        parent_id TEXT,
        status TEXT NOT NULL DEFAULT 'active',
        is_bank_account INTEGER NOT NULL DEFAULT 0,
        description TEXT NOT NULL DEFAULT '',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        PRIMARY KEY (user_id, id)
    );
    CREATE INDEX IF NOT EXISTS idx_accounts_code ON accounts(user_id, code);

    -- Journal entries (append-only)
    CREATE TABLE IF NOT EXISTS journal_entries (
        user_id TEXT NOT NULL,
        id TEXT NOT NULL,
        entry_date TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        business_id TEXT NOT NULL,
        project_id TEXT,
        is_adjusting_entry INTEGER NOT NULL DEFAULT 0,
        adjustment_reason TEXT NOT NULL DEFAULT '',
        original_journal_entry_id TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        PRIMARY KEY (user_id, id)
    );
    CREATE INDEX IF NOT EXISTS idx_journal_entries_date ON journal_entries(user_id, entry_date);

    CREATE TABLE IF NOT EXISTS journal_lines (
        user_id TEXT NOT NULL,
        entry_id TEXT NOT NULL,
        line_index INTEGER NOT NULL,
        account_id TEXT NOT NULL,
        debit INTEGER NOT NULL DEFAULT 0,
        credit INTEGER NOT NULL DEFAULT 0,
        description TEXT NOT NULL DEFAULT '',
        business_id TEXT,
        project_id TEXT,
        contractor_id TEXT,
        PRIMARY KEY (user_id, entry_id, line_index),
        FOREIGN KEY (user_id, entry_id) REFERENCES journal_entries(user_id, id)
    );
    CREATE INDEX IF NOT EXISTS idx_journal_lines_account ON journal_lines(user_id, account_id);

    -- Reconciliation locks (append-only)
    CREATE TABLE IF NOT EXISTS reconciliations (
        user_id TEXT NOT NULL,
        id TEXT NOT NULL,
        business_id TEXT NOT NULL,
        account_id TEXT NOT NULL,
        statement_end_date TEXT NOT NULL,
        statement_balance INTEGER NOT NULL,
        is_locked INTEGER NOT NULL DEFAULT 1,
        performed_by TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        PRIMARY KEY (user_id, id)
    );
    CREATE INDEX IF NOT EXISTS idx_reconciliations_account
        ON reconciliations(user_id, account_id, statement_end_date);

    CREATE TABLE IF NOT EXISTS cleared_lines (
        user_id TEXT NOT NULL,
        line_token TEXT NOT NULL,
        entry_id TEXT NOT NULL,
        line_index INTEGER NOT NULL,
        reconciliation_id TEXT NOT NULL,
        created_at TEXT NOT NULL,
        PRIMARY KEY (user_id, line_token),
        FOREIGN KEY (user_id, reconciliation_id) REFERENCES reconciliations(user_id, id)
    );

    -- Inbox
    CREATE TABLE IF NOT EXISTS staged_transactions (
        user_id TEXT NOT NULL,
        id TEXT NOT NULL,
        transaction_date TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        amount INTEGER NOT NULL,
        bank_account_id TEXT NOT NULL,
        status TEXT NOT NULL,
        transaction_type TEXT NOT NULL,
        assigned_account TEXT,
        assigned_business TEXT,
        assigned_project TEXT,
        assigned_contractor_id TEXT,
        transfer_account_id TEXT,
        splits TEXT,
        linked_journal_entry_id TEXT,
        pending INTEGER NOT NULL DEFAULT 0,
        vendor_transaction_id TEXT,
        merchant_name TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        PRIMARY KEY (user_id, id)
    );
    CREATE UNIQUE INDEX IF NOT EXISTS idx_staged_vendor
        ON staged_transactions(user_id, vendor_transaction_id)
        WHERE vendor_transaction_id IS NOT NULL;

    CREATE TABLE IF NOT EXISTS merchant_profiles (
        user_id TEXT NOT NULL,
        merchant_name TEXT NOT NULL COLLATE NOCASE,
        id TEXT NOT NULL,
        default_business TEXT,
        default_account TEXT,
        default_project TEXT,
        last_seen TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        PRIMARY KEY (user_id, merchant_name)
    );

    -- Receivables
    CREATE TABLE IF NOT EXISTS invoices (
        user_id TEXT NOT NULL,
        id TEXT NOT NULL,
        invoice_number TEXT NOT NULL,
        customer_id TEXT NOT NULL,
        business_id TEXT NOT NULL,
        date_issued TEXT NOT NULL,
        due_date TEXT,
        total_amount INTEGER NOT NULL,
        amount_paid INTEGER NOT NULL DEFAULT 0,
        status TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        PRIMARY KEY (user_id, id)
    );

    CREATE TABLE IF NOT EXISTS invoice_payments (
        user_id TEXT NOT NULL,
        id TEXT NOT NULL,
        invoice_id TEXT NOT NULL,
        payment_date TEXT NOT NULL,
        amount INTEGER NOT NULL,
        method TEXT NOT NULL,
        linked_journal_entry_id TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        PRIMARY KEY (user_id, id),
        FOREIGN KEY (user_id, invoice_id) REFERENCES invoices(user_id, id)
    );

    -- Audit trail (append-only)
    CREATE TABLE IF NOT EXISTS audit_events (
        user_id TEXT NOT NULL,
        id TEXT NOT NULL,
        timestamp TEXT NOT NULL,
        action TEXT NOT NULL,
        details TEXT NOT NULL,
        performed_by TEXT NOT NULL,
        created_at TEXT NOT NULL,
        PRIMARY KEY (user_id, id)
    );
    CREATE INDEX IF NOT EXISTS idx_audit_events_timestamp ON audit_events(user_id, timestamp);
"""


class SQLiteDatabase:
    """SQLite database connection manager.

    The connection runs in autocommit mode; ``atomic()`` opens an explicit
    ``BEGIN IMMEDIATE`` transaction so that reads made inside it (such as a
    period-lock check) and the writes that depend on them share one isolation
    boundary. Nested ``atomic()`` blocks run as savepoints of the outermost
    transaction.
    """

    def __init__(
        self, path: str | Path = ":memory:", check_same_thread: bool = True
    ) -> None:
        self._path = str(path)
        self._check_same_thread = check_same_thread
        self._connection: sqlite3.Connection | None = None
        self._depth = 0

    @property
    def path(self) -> str:
        return self._path

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._connection is None:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            try:
                self._connection = sqlite3.connect(
                    self._path,
                    check_same_thread=self._check_same_thread,
                    isolation_level=None,
                )
            except sqlite3.Error as exc:
                raise PersistenceUnavailableError(str(exc)) from exc
            self._connection.row_factory = sqlite3.Row
            self._connection.execute("PRAGMA foreign_keys = ON")
        return self._connection

    def initialize(self) -> None:
        """Create all database tables."""
        try:
            self.get_connection().executescript(_SCHEMA)
        except sqlite3.Error as exc:
            raise PersistenceUnavailableError(str(exc)) from exc

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None
            self._depth = 0

    def execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        """Run one statement, translating driver errors into ledger errors."""
        try:
            return self.get_connection().execute(sql, params)
        except sqlite3.Error as exc:
            if _is_contention(exc):
                raise TransactionConflictError(str(exc)) from exc
            raise PersistenceUnavailableError(str(exc)) from exc

    @contextmanager
    def atomic(self) -> Iterator[sqlite3.Connection]:
        """Run the enclosed block as one all-or-nothing unit.

        The outermost block owns the transaction; nested blocks run inside a
        savepoint, so a failure caught by the enclosing block leaves none of
        the nested block's writes behind.
        """
        conn = self.get_connection()
        level = self._depth
        savepoint = f"sp_{level}"
        self.execute("BEGIN IMMEDIATE" if level == 0 else f"SAVEPOINT {savepoint}")
        self._depth += 1
        try:
            yield conn
        except BaseException:
            self._depth = level
            if conn.in_transaction:
                if level == 0:
                    conn.rollback()
                else:
                    self.execute(f"ROLLBACK TO {savepoint}")
                    self.execute(f"RELEASE {savepoint}")
            raise
        self._depth = level
        if level > 0:
            self.execute(f"RELEASE {savepoint}")
            return
        try:
            self.execute("COMMIT")
        except BaseException:
            if conn.in_transaction:
                conn.rollback()
            raise

    def run_atomic(self, fn: Callable[[], T], max_retries: int = 3) -> T:
        """Run ``fn`` inside ``atomic()``, re-running it from the start on conflict.

        ``fn`` must redo its own validation reads; nothing from an aborted
        attempt is kept.
        """
        attempts = max(1, max_retries)
        last_error: TransactionConflictError | None = None
        for attempt in range(1, attempts + 1):
            try:
                with self.atomic():
                    return fn()
            except TransactionConflictError as exc:
                if self.in_transaction:
                    # Joined an outer transaction: only the outermost caller may retry.
                    raise
                last_error = exc
                logger.warning(
                    "atomic_transaction_retry",
                    attempt=attempt,
                    max_retries=attempts,
                    error=str(exc),
                )
        logger.error("atomic_transaction_exhausted", attempts=attempts)
        raise PersistenceUnavailableError(
            f"gave up after {attempts} attempts ({last_error})", attempts=attempts
        ) from last_error


class SQLiteAccountRepository(AccountRepository):
    """SQLite implementation of AccountRepository."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def add(self, user_id: str, account: Account) -> None:
        _require_tenant(user_id, "accounts.add")
        now = _utc_now()
        with self._db.atomic():
            self._db.execute(
                """
                INSERT INTO accounts (user_id, id, code, name, account_type, parent_id,
                                      status, is_bank_account, description,
                                      created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    account.id,
                    account.code,
                    account.name,
                    account.account_type.value,
                    account.parent_id,
                    account.status.value,
                    1 if account.is_bank_account else 0,
                    account.description,
                    account.created_at.isoformat(),
                    now.isoformat(),
                ),
            )

    def get(self, user_id: str, account_id: str) -> Account | None:
        _require_tenant(user_id, "accounts.get")
        row = self._db.execute(
            "SELECT * FROM accounts WHERE user_id = ? AND id = ?",
            (user_id, account_id),
        ).fetchone()
        return self._row_to_account(row) if row else None

    def get_by_code(self, user_id: str, code: str) -> Account | None:
        _require_tenant(user_id, "accounts.get_by_code")
        row = self._db.execute(
            "SELECT * FROM accounts WHERE user_id = ? AND code = ? ORDER BY created_at LIMIT 1",
            (user_id, code),
        ).fetchone()
        return self._row_to_account(row) if row else None

    def list_all(self, user_id: str) -> Iterable[Account]:
        _require_tenant(user_id, "accounts.list_all")
        rows = self._db.execute(
            "SELECT * FROM accounts WHERE user_id = ? ORDER BY code", (user_id,)
        ).fetchall()
        return [self._row_to_account(row) for row in rows]

    def list_children(self, user_id: str, parent_id: str) -> Iterable[Account]:
        _require_tenant(user_id, "accounts.list_children")
        rows = self._db.execute(
            "SELECT * FROM accounts WHERE user_id = ? AND parent_id = ? ORDER BY code",
            (user_id, parent_id),
        ).fetchall()
        return [self._row_to_account(row) for row in rows]

    def update(self, user_id: str, account: Account) -> None:
        _require_tenant(user_id, "accounts.update")
        with self._db.atomic():
            self._db.execute(
                """
                UPDATE accounts SET code = ?, name = ?, account_type = ?, parent_id = ?,
                                    status = ?, is_bank_account = ?, description = ?,
                                    updated_at = ?
                WHERE user_id = ? AND id = ?
                """,
                (
                    account.code,
                    account.name,
                    account.account_type.value,
                    account.parent_id,
                    account.status.value,
                    1 if account.is_bank_account else 0,
                    account.description,
                    _utc_now().isoformat(),
                    user_id,
                    account.id,
                ),
            )

    def _row_to_account(self, row: sqlite3.Row) -> Account:
        return Account(
            id=row["id"],
            code=row["code"],
            name=row["name"],
            account_type=AccountType(row["account_type"]),
            parent_id=row["parent_id"],
            status=AccountStatus(row["status"]),
            is_bank_account=bool(row["is_bank_account"]),
            description=row["description"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )


class SQLiteJournalRepository(JournalRepository):
    """SQLite implementation of JournalRepository.

    Entries and their lines are written once. Cleared state is joined in from
    ``cleared_lines`` on read.
    """

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def add(self, user_id: str, entry: JournalEntry) -> None:
        _require_tenant(user_id, "journal.add")
        now = _utc_now().isoformat()
        with self._db.atomic():
            self._db.execute(
                """
                INSERT INTO journal_entries (user_id, id, entry_date, description, business_id,
                                             project_id, is_adjusting_entry, adjustment_reason,
                                             original_journal_entry_id, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    entry.id,
                    entry.entry_date.isoformat(),
                    entry.description,
                    entry.business_id,
                    entry.project_id,
                    1 if entry.is_adjusting_entry else 0,
                    entry.adjustment_reason,
                    entry.original_journal_entry_id,
                    entry.created_at.isoformat(),
                    now,
                ),
            )
            for index, line in enumerate(entry.lines):
                self._db.execute(
                    """
                    INSERT INTO journal_lines (user_id, entry_id, line_index, account_id, debit,
                                               credit, description, business_id, project_id,
                                               contractor_id)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        user_id,
                        entry.id,
                        index,
                        line.account_id,
                        line.debit,
                        line.credit,
                        line.description,
                        line.business_id,
                        line.project_id,
                        line.contractor_id,
                    ),
                )

    def get(self, user_id: str, entry_id: str) -> JournalEntry | None:
        _require_tenant(user_id, "journal.get")
        row = self._db.execute(
            "SELECT * FROM journal_entries WHERE user_id = ? AND id = ?",
            (user_id, entry_id),
        ).fetchone()
        if row is None:
            return None
        return self._hydrate(user_id, [row])[0]

    def list_all(
        self,
        user_id: str,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> Iterable[JournalEntry]:
        _require_tenant(user_id, "journal.list_all")
        query = "SELECT * FROM journal_entries WHERE user_id = ?"
        params: list[str] = [user_id]
        query, params = self._date_filter(query, params, start_date, end_date)
        query += " ORDER BY entry_date, created_at"
        return self._hydrate(user_id, self._db.execute(query, params).fetchall())

    def list_by_account(
        self,
        user_id: str,
        account_id: str,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> Iterable[JournalEntry]:
        _require_tenant(user_id, "journal.list_by_account")
        query = """
            SELECT * FROM journal_entries
            WHERE user_id = ?
              AND id IN (SELECT entry_id FROM journal_lines
                         WHERE user_id = ? AND account_id = ?)
        """
        params: list[str] = [user_id, user_id, account_id]
        query, params = self._date_filter(query, params, start_date, end_date)
        query += " ORDER BY entry_date, created_at"
        return self._hydrate(user_id, self._db.execute(query, params).fetchall())

    @staticmethod
    def _date_filter(
        query: str, params: list[str], start_date: date | None, end_date: date | None
    ) -> tuple[str, list[str]]:
        if start_date is not None:
            query += " AND entry_date >= ?"
            params.append(start_date.isoformat())
        if end_date is not None:
            query += " AND entry_date <= ?"
            params.append(end_date.isoformat())
        return query, params

    def _hydrate(self, user_id: str, rows: list[sqlite3.Row]) -> list[JournalEntry]:
        if not rows:
            return []
        ids = [row["id"] for row in rows]
        lines: dict[str, list[JournalLine]] = defaultdict(list)
        # Chunked to stay under SQLite's bound-parameter limit.
        for start in range(0, len(ids), 500):
            chunk = ids[start : start + 500]
            placeholders = ", ".join("?" for _ in chunk)
            line_rows = self._db.execute(
                f"""
                SELECT l.*, c.reconciliation_id AS cleared_by
                FROM journal_lines l
                LEFT JOIN cleared_lines c
                  ON c.user_id = l.user_id
                 AND c.entry_id = l.entry_id
                 AND c.line_index = l.line_index
                WHERE l.user_id = ? AND l.entry_id IN ({placeholders})
                ORDER BY l.entry_id, l.line_index
                """,
                [user_id, *chunk],
            ).fetchall()
            for line_row in line_rows:
                lines[line_row["entry_id"]].append(self._row_to_line(line_row))
        return [self._row_to_entry(row, lines[row["id"]]) for row in rows]

    def _row_to_line(self, row: sqlite3.Row) -> JournalLine:
        return JournalLine(
            account_id=row["account_id"],
            debit=row["debit"],
            credit=row["credit"],
            description=row["description"],
            business_id=row["business_id"],
            project_id=row["project_id"],
            contractor_id=row["contractor_id"],
            is_cleared=row["cleared_by"] is not None,
            reconciliation_id=row["cleared_by"],
        )

    def _row_to_entry(self, row: sqlite3.Row, lines: list[JournalLine]) -> JournalEntry:
        return JournalEntry(
            id=row["id"],
            entry_date=date.fromisoformat(row["entry_date"]),
            description=row["description"],
            business_id=row["business_id"],
            project_id=row["project_id"],
            lines=tuple(lines),
            is_adjusting_entry=bool(row["is_adjusting_entry"]),
            adjustment_reason=row["adjustment_reason"],
            original_journal_entry_id=row["original_journal_entry_id"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )


class SQLiteReconciliationRepository(ReconciliationRepository):
    """SQLite implementation of ReconciliationRepository."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def add(self, user_id: str, reconciliation: Reconciliation) -> None:
        _require_tenant(user_id, "reconciliations.add")
        now = _utc_now().isoformat()
        with self._db.atomic():
            self._db.execute(
                """
                INSERT INTO reconciliations (user_id, id, business_id, account_id,
                                             statement_end_date, statement_balance, is_locked,
                                             performed_by, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    reconciliation.id,
                    reconciliation.business_id,
                    reconciliation.account_id,
                    reconciliation.statement_end_date.isoformat(),
                    reconciliation.statement_balance,
                    1 if reconciliation.is_locked else 0,
                    reconciliation.performed_by,
                    reconciliation.created_at.isoformat(),
                    now,
                ),
            )
            for token in sorted(reconciliation.cleared_line_ids):
                entry_id, _, index = token.rpartition("-")
                if not entry_id or not index.isdigit():
                    raise DataIntegrityError(
                        f"Malformed cleared line token: {token!r}",
                        context={"line_token": token},
                    )
                self._db.execute(
                    """
                    INSERT INTO cleared_lines (user_id, line_token, entry_id, line_index,
                                               reconciliation_id, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (user_id, token, entry_id, int(index), reconciliation.id, now),
                )

    def get(self, user_id: str, reconciliation_id: str) -> Reconciliation | None:
        _require_tenant(user_id, "reconciliations.get")
        row = self._db.execute(
            "SELECT * FROM reconciliations WHERE user_id = ? AND id = ?",
            (user_id, reconciliation_id),
        ).fetchone()
        return self._row_to_reconciliation(user_id, row) if row else None

    def list_by_account(self, user_id: str, account_id: str) -> Iterable[Reconciliation]:
        _require_tenant(user_id, "reconciliations.list_by_account")
        rows = self._db.execute(
            """
            SELECT * FROM reconciliations WHERE user_id = ? AND account_id = ?
            ORDER BY statement_end_date, created_at
            """,
            (user_id, account_id),
        ).fetchall()
        return [self._row_to_reconciliation(user_id, row) for row in rows]

    def list_all(self, user_id: str) -> Iterable[Reconciliation]:
        _require_tenant(user_id, "reconciliations.list_all")
        rows = self._db.execute(
            """
            SELECT * FROM reconciliations WHERE user_id = ?
            ORDER BY account_id, statement_end_date, created_at
            """,
            (user_id,),
        ).fetchall()
        return [self._row_to_reconciliation(user_id, row) for row in rows]

    def latest_locked(self, user_id: str, account_id: str) -> Reconciliation | None:
        _require_tenant(user_id, "reconciliations.latest_locked")
        row = self._db.execute(
            """
            SELECT * FROM reconciliations
            WHERE user_id = ? AND account_id = ? AND is_locked = 1
            ORDER BY statement_end_date DESC, created_at DESC
            LIMIT 1
            """,
            (user_id, account_id),
        ).fetchone()
        return self._row_to_reconciliation(user_id, row) if row else None

    def cleared_tokens(self, user_id: str, line_tokens: Iterable[str]) -> dict[str, str]:
        _require_tenant(user_id, "reconciliations.cleared_tokens")
        tokens = list(line_tokens)
        if not tokens:
            return {}
        placeholders = ", ".join("?" for _ in tokens)
        rows = self._db.execute(
            f"""
            SELECT c.line_token, c.reconciliation_id FROM cleared_lines c
            JOIN reconciliations r ON r.user_id = c.user_id AND r.id = c.reconciliation_id
            WHERE c.user_id = ? AND r.is_locked = 1 AND c.line_token IN ({placeholders})
            """,
            [user_id, *tokens],
        ).fetchall()
        return {row["line_token"]: row["reconciliation_id"] for row in rows}

    def _row_to_reconciliation(self, user_id: str, row: sqlite3.Row) -> Reconciliation:
        tokens = self._db.execute(
            "SELECT line_token FROM cleared_lines WHERE user_id = ? AND reconciliation_id = ?",
            (user_id, row["id"]),
        ).fetchall()
        return Reconciliation(
            id=row["id"],
            business_id=row["business_id"],
            account_id=row["account_id"],
            statement_end_date=date.fromisoformat(row["statement_end_date"]),
            statement_balance=row["statement_balance"],
            cleared_line_ids=frozenset(t["line_token"] for t in tokens),
            is_locked=bool(row["is_locked"]),
            performed_by=row["performed_by"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )


class SQLiteStagedTransactionRepository(StagedTransactionRepository):
    """SQLite implementation of StagedTransactionRepository."""

    _COLUMNS = (
        "user_id, id, transaction_date, description, amount, bank_account_id, status, "
        "transaction_type, assigned_account, assigned_business, assigned_project, "
        "assigned_contractor_id, transfer_account_id, splits, linked_journal_entry_id, "
        "pending, vendor_transaction_id, merchant_name, created_at, updated_at"
    )

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def add(self, user_id: str, txn: StagedTransaction) -> None:
        _require_tenant(user_id, "staged_transactions.add")
        txn.updated_at = _utc_now()
        with self._db.atomic():
            self._db.execute(
                f"INSERT INTO staged_transactions ({self._COLUMNS}) "
                f"VALUES ({', '.join('?' for _ in range(20))})",
                (user_id, *self._values(txn)),
            )

    def get(self, user_id: str, txn_id: str) -> StagedTransaction | None:
        _require_tenant(user_id, "staged_transactions.get")
        row = self._db.execute(
            "SELECT * FROM staged_transactions WHERE user_id = ? AND id = ?",
            (user_id, txn_id),
        ).fetchone()
        return self._row_to_transaction(row) if row else None

    def get_by_vendor_id(
        self, user_id: str, vendor_transaction_id: str
    ) -> StagedTransaction | None:
        _require_tenant(user_id, "staged_transactions.get_by_vendor_id")
        row = self._db.execute(
            """
            SELECT * FROM staged_transactions
            WHERE user_id = ? AND vendor_transaction_id = ?
            """,
            (user_id, vendor_transaction_id),
        ).fetchone()
        return self._row_to_transaction(row) if row else None

    def list_all(self, user_id: str) -> Iterable[StagedTransaction]:
        _require_tenant(user_id, "staged_transactions.list_all")
        rows = self._db.execute(
            """
            SELECT * FROM staged_transactions WHERE user_id = ?
            ORDER BY transaction_date DESC, created_at DESC
            """,
            (user_id,),
        ).fetchall()
        return [self._row_to_transaction(row) for row in rows]

    def list_by_status(self, user_id: str, status: str) -> Iterable[StagedTransaction]:
        _require_tenant(user_id, "staged_transactions.list_by_status")
        rows = self._db.execute(
            """
            SELECT * FROM staged_transactions WHERE user_id = ? AND status = ?
            ORDER BY transaction_date DESC, created_at DESC
            """,
            (user_id, TransactionStatus(status).value),
        ).fetchall()
        return [self._row_to_transaction(row) for row in rows]

    def update(self, user_id: str, txn: StagedTransaction) -> None:
        _require_tenant(user_id, "staged_transactions.update")
        txn.updated_at = _utc_now()
        values = self._values(txn)
        with self._db.atomic():
            self._db.execute(
                """
                UPDATE staged_transactions SET
                    transaction_date = ?, description = ?, amount = ?, bank_account_id = ?,
                    status = ?, transaction_type = ?, assigned_account = ?,
                    assigned_business = ?, assigned_project = ?, assigned_contractor_id = ?,
                    transfer_account_id = ?, splits = ?, linked_journal_entry_id = ?,
                    pending = ?, vendor_transaction_id = ?, merchant_name = ?, updated_at = ?
                WHERE user_id = ? AND id = ?
                """,
                (*values[1:17], values[18], user_id, txn.id),
            )

    @staticmethod
    def _values(txn: StagedTransaction) -> tuple[Any, ...]:
        splits = (
            json.dumps(
                [
                    {
                        "account_id": s.account_id,
                        "amount": s.amount,
                        "description": s.description,
                        "project_id": s.project_id,
                        "business_id": s.business_id,
                        "contractor_id": s.contractor_id,
                    }
                    for s in txn.splits
                ]
            )
            if txn.splits
            else None
        )
        return (
            txn.id,
            txn.transaction_date.isoformat(),
            txn.description,
            txn.amount,
            txn.bank_account_id,
            txn.status.value,
            txn.transaction_type.value,
            txn.assigned_account,
            txn.assigned_business,
            txn.assigned_project,
            txn.assigned_contractor_id,
            txn.transfer_account_id,
            splits,
            txn.linked_journal_entry_id,
            1 if txn.pending else 0,
            txn.vendor_transaction_id,
            txn.merchant_name,
            txn.created_at.isoformat(),
            txn.updated_at.isoformat(),
        )

    def _row_to_transaction(self, row: sqlite3.Row) -> StagedTransaction:
        splits = [SplitLine(**item) for item in json.loads(row["splits"])] if row["splits"] else []
        return StagedTransaction(
            id=row["id"],
            transaction_date=date.fromisoformat(row["transaction_date"]),
            description=row["description"],
            amount=row["amount"],
            bank_account_id=row["bank_account_id"],
            status=TransactionStatus(row["status"]),
            transaction_type=TransactionType(row["transaction_type"]),
            assigned_account=row["assigned_account"],
            assigned_business=row["assigned_business"],
            assigned_project=row["assigned_project"],
            assigned_contractor_id=row["assigned_contractor_id"],
            transfer_account_id=row["transfer_account_id"],
            splits=splits,
            linked_journal_entry_id=row["linked_journal_entry_id"],
            pending=bool(row["pending"]),
            vendor_transaction_id=row["vendor_transaction_id"],
            merchant_name=row["merchant_name"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )


class SQLiteInvoiceRepository(InvoiceRepository):
    """SQLite implementation of InvoiceRepository."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def add(self, user_id: str, invoice: Invoice) -> None:
        _require_tenant(user_id, "invoices.add")
        invoice.updated_at = _utc_now()
        with self._db.atomic():
            self._db.execute(
                """
                INSERT INTO invoices (user_id, id, invoice_number, customer_id, business_id,
                                      date_issued, due_date, total_amount, amount_paid, status,
                                      created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    invoice.id,
                    invoice.invoice_number,
                    invoice.customer_id,
                    invoice.business_id,
                    invoice.date_issued.isoformat(),
                    invoice.due_date.isoformat() if invoice.due_date else None,
                    invoice.total_amount,
                    invoice.amount_paid,
                    invoice.status.value,
                    invoice.created_at.isoformat(),
                    invoice.updated_at.isoformat(),
                ),
            )

    def get(self, user_id: str, invoice_id: str) -> Invoice | None:
        _require_tenant(user_id, "invoices.get")
        row = self._db.execute(
            "SELECT * FROM invoices WHERE user_id = ? AND id = ?", (user_id, invoice_id)
        ).fetchone()
        return self._row_to_invoice(row) if row else None

    def list_all(self, user_id: str) -> Iterable[Invoice]:
        _require_tenant(user_id, "invoices.list_all")
        rows = self._db.execute(
            "SELECT * FROM invoices WHERE user_id = ? ORDER BY date_issued, invoice_number",
            (user_id,),
        ).fetchall()
        return [self._row_to_invoice(row) for row in rows]

    def update(self, user_id: str, invoice: Invoice) -> None:
        _require_tenant(user_id, "invoices.update")
        invoice.updated_at = _utc_now()
        with self._db.atomic():
            self._db.execute(
                """
                UPDATE invoices SET invoice_number = ?, customer_id = ?, business_id = ?,
                                    date_issued = ?, due_date = ?, total_amount = ?,
                                    amount_paid = ?, status = ?, updated_at = ?
                WHERE user_id = ? AND id = ?
                """,
                (
                    invoice.invoice_number,
                    invoice.customer_id,
                    invoice.business_id,
                    invoice.date_issued.isoformat(),
                    invoice.due_date.isoformat() if invoice.due_date else None,
                    invoice.total_amount,
                    invoice.amount_paid,
                    invoice.status.value,
                    invoice.updated_at.isoformat(),
                    user_id,
                    invoice.id,
                ),
            )

    def add_payment(self, user_id: str, payment: InvoicePayment) -> None:
        _require_tenant(user_id, "invoices.add_payment")
        now = _utc_now().isoformat()
        with self._db.atomic():
            self._db.execute(
                """
                INSERT INTO invoice_payments (user_id, id, invoice_id, payment_date, amount,
                                              method, linked_journal_entry_id,
                                              created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    payment.id,
                    payment.invoice_id,
                    payment.payment_date.isoformat(),
                    payment.amount,
                    payment.method.value,
                    payment.linked_journal_entry_id,
                    payment.created_at.isoformat(),
                    now,
                ),
            )

    def list_payments(self, user_id: str, invoice_id: str) -> Iterable[InvoicePayment]:
        _require_tenant(user_id, "invoices.list_payments")
        rows = self._db.execute(
            """
            SELECT * FROM invoice_payments WHERE user_id = ? AND invoice_id = ?
            ORDER BY payment_date, created_at
            """,
            (user_id, invoice_id),
        ).fetchall()
        return [
            InvoicePayment(
                id=row["id"],
                invoice_id=row["invoice_id"],
                payment_date=date.fromisoformat(row["payment_date"]),
                amount=row["amount"],
                method=PaymentMethod(row["method"]),
                linked_journal_entry_id=row["linked_journal_entry_id"],
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]

    def _row_to_invoice(self, row: sqlite3.Row) -> Invoice:
        return Invoice(
            id=row["id"],
            invoice_number=row["invoice_number"],
            customer_id=row["customer_id"],
            business_id=row["business_id"],
            date_issued=date.fromisoformat(row["date_issued"]),
            due_date=_opt_date(row["due_date"]),
            total_amount=row["total_amount"],
            amount_paid=row["amount_paid"],
            status=InvoiceStatus(row["status"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )


class SQLiteMerchantProfileRepository(MerchantProfileRepository):
    """SQLite implementation of MerchantProfileRepository."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def list_all(self, user_id: str) -> Iterable[MerchantProfile]:
        _require_tenant(user_id, "merchant_profiles.list_all")
        rows = self._db.execute(
            "SELECT * FROM merchant_profiles WHERE user_id = ? ORDER BY merchant_name",
            (user_id,),
        ).fetchall()
        return [self._row_to_profile(row) for row in rows]

    def get_by_name(self, user_id: str, merchant_name: str) -> MerchantProfile | None:
        _require_tenant(user_id, "merchant_profiles.get_by_name")
        row = self._db.execute(
            "SELECT * FROM merchant_profiles WHERE user_id = ? AND merchant_name = ?",
            (user_id, merchant_name),
        ).fetchone()
        return self._row_to_profile(row) if row else None

    def _row_to_profile(self, row: sqlite3.Row) -> MerchantProfile:
        return MerchantProfile(
            id=row["id"],
            merchant_name=row["merchant_name"],
            default_business=row["default_business"],
            default_account=row["default_account"],
            default_project=row["default_project"],
            last_seen=datetime.fromisoformat(row["last_seen"]),
        )

    def upsert(self, user_id: str, profile: MerchantProfile) -> None:
        _require_tenant(user_id, "merchant_profiles.upsert")
        now = _utc_now().isoformat()
        with self._db.atomic():
            self._db.execute(
                """
                INSERT INTO merchant_profiles (user_id, merchant_name, id, default_business,
                                               default_account, default_project, last_seen,
                                               created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (user_id, merchant_name) DO UPDATE SET
                    default_business = excluded.default_business,
                    default_account = excluded.default_account,
                    default_project = excluded.default_project,
                    last_seen = excluded.last_seen,
                    updated_at = excluded.updated_at
                """,
                (
                    user_id,
                    profile.merchant_name,
                    profile.id,
                    profile.default_business,
                    profile.default_account,
                    profile.default_project,
                    profile.last_seen.isoformat(),
                    now,
                    now,
                ),
            )


class SQLiteAuditEventRepository(AuditEventRepository):
    """SQLite implementation of AuditEventRepository."""

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def add(self, user_id: str, event: AuditEvent) -> None:
        _require_tenant(user_id, "audit_events.add")
        with self._db.atomic():
            self._db.execute(
                """
                INSERT INTO audit_events (user_id, id, timestamp, action, details,
                                          performed_by, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    event.id,
                    event.timestamp.isoformat(),
                    event.action.value,
                    event.details,
                    event.user,
                    _utc_now().isoformat(),
                ),
            )

    def list_recent(self, user_id: str, limit: int = 100) -> Iterable[AuditEvent]:
        _require_tenant(user_id, "audit_events.list_recent")
        rows = self._db.execute(
            """
            SELECT * FROM audit_events WHERE user_id = ?
            ORDER BY timestamp DESC, created_at DESC
            LIMIT ?
            """,
            (user_id, limit),
        ).fetchall()
        return [
            AuditEvent(
                id=row["id"],
                action=AuditAction(row["action"]),
                details=row["details"],
                user=row["performed_by"],
                timestamp=datetime.fromisoformat(row["timestamp"]),
            )
            for row in rows
        ]
