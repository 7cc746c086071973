"""Dependency injection container for Small Business Ledger.

Wires the SQLite repositories, the identity and clock collaborators and the
services together from ``Settings``. Everything is created lazily on first
access and cached for reuse.

Usage:
    from small_business_ledger.container import Container

    container = Container(settings, identity=StaticIdentity("tenant-1"))
    container.ledger_service.post(draft)
"""

from functools import cached_property

from small_business_ledger.config import Settings, get_settings
from small_business_ledger.domain.clock import Clock, SystemClock
from small_business_ledger.logging_config import get_logger
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
from small_business_ledger.services.accounts import AccountRegistry
from small_business_ledger.services.adjustments import AdjustmentWorkflowImpl
from small_business_ledger.services.audit import AuditLog
from small_business_ledger.services.identity import IdentityProvider, StaticIdentity
from small_business_ledger.services.invoices import InvoiceServiceImpl
from small_business_ledger.services.ledger import LedgerServiceImpl
from small_business_ledger.services.period_lock import PeriodLockManagerImpl
from small_business_ledger.services.reporting import ReportingServiceImpl
from small_business_ledger.services.staging import StagingServiceImpl

logger = get_logger(__name__)


class Container:
    """Dependency injection container.

    Tests build one over an in-memory database:

        settings = Settings(database_path=":memory:")
        container = Container(settings, identity=StaticIdentity("u1"), clock=FixedClock(...))
    """

    def __init__(
        self,
        settings: Settings | None = None,
        identity: IdentityProvider | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._identity = identity or StaticIdentity(None)
        self._clock = clock or SystemClock()
        logger.debug(
            "container_created",
            database_path=str(self._settings.database_path),
            environment=self._settings.environment.value,
        )

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def identity(self) -> IdentityProvider:
        return self._identity

    @property
    def clock(self) -> Clock:
        return self._clock

    @cached_property
    def database(self) -> SQLiteDatabase:
        """The SQLite database, initialized on first access."""
        db_path = str(self._settings.database_path)
        logger.info("initializing_sqlite_database", path=db_path)
        db = SQLiteDatabase(db_path)
        db.initialize()
        return db

    # Repositories

    @cached_property
    def account_repository(self) -> SQLiteAccountRepository:
        return SQLiteAccountRepository(self.database)

    @cached_property
    def journal_repository(self) -> SQLiteJournalRepository:
        return SQLiteJournalRepository(self.database)

    @cached_property
    def reconciliation_repository(self) -> SQLiteReconciliationRepository:
        return SQLiteReconciliationRepository(self.database)

    @cached_property
    def staged_repository(self) -> SQLiteStagedTransactionRepository:
        return SQLiteStagedTransactionRepository(self.database)

    @cached_property
    def invoice_repository(self) -> SQLiteInvoiceRepository:
        return SQLiteInvoiceRepository(self.database)

    @cached_property
    def merchant_repository(self) -> SQLiteMerchantProfileRepository:
        return SQLiteMerchantProfileRepository(self.database)

    @cached_property
    def audit_repository(self) -> SQLiteAuditEventRepository:
        return SQLiteAuditEventRepository(self.database)

    # Services

    @cached_property
    def audit_log(self) -> AuditLog:
        return AuditLog(self.audit_repository, self._identity, self._clock)

    @cached_property
    def account_registry(self) -> AccountRegistry:
        return AccountRegistry(
            self.database, self.account_repository, self._identity, self.audit_log
        )

    @cached_property
    def period_lock_manager(self) -> PeriodLockManagerImpl:
        return PeriodLockManagerImpl(
            self.database,
            self.reconciliation_repository,
            self.journal_repository,
            self.account_repository,
            self.audit_log,
            self._identity,
            max_retries=self._settings.max_transaction_retries,
        )

    @cached_property
    def ledger_service(self) -> LedgerServiceImpl:
        return LedgerServiceImpl(
            self.database,
            self.account_repository,
            self.journal_repository,
            self.staged_repository,
            self.period_lock_manager,
            self.audit_log,
            self._identity,
            rounding_epsilon=self._settings.rounding_warning_epsilon,
            max_retries=self._settings.max_transaction_retries,
            opening_balance_equity_account_id=self._settings.opening_balance_equity_account_id,
            default_business_id=self._settings.default_business_id,
        )

    @cached_property
    def staging_service(self) -> StagingServiceImpl:
        return StagingServiceImpl(
            self.database,
            self.staged_repository,
            self.account_repository,
            self.journal_repository,
            self.merchant_repository,
            self.ledger_service,
            self._identity,
            max_retries=self._settings.max_transaction_retries,
        )

    @cached_property
    def adjustment_workflow(self) -> AdjustmentWorkflowImpl:
        return AdjustmentWorkflowImpl(
            self.database,
            self.staged_repository,
            self.journal_repository,
            self.reconciliation_repository,
            self.period_lock_manager,
            self.ledger_service,
            self.audit_log,
            self._identity,
            clock=self._clock,
            max_retries=self._settings.max_transaction_retries,
        )

    @cached_property
    def invoice_service(self) -> InvoiceServiceImpl:
        return InvoiceServiceImpl(
            self.database,
            self.invoice_repository,
            self.ledger_service,
            self.audit_log,
            self._identity,
            undeposited_funds_account_id=self._settings.undeposited_funds_account_id,
            income_account_id=self._settings.default_income_account_id,
            max_retries=self._settings.max_transaction_retries,
        )

    @cached_property
    def reporting_service(self) -> ReportingServiceImpl:
        return ReportingServiceImpl(
            self.account_repository,
            self.journal_repository,
            self.staged_repository,
            self.invoice_repository,
            self.reconciliation_repository,
            self._identity,
            clock=self._clock,
            cash_account_ids=self._settings.cash_account_ids,
            owner_equity_account_id=self._settings.owner_equity_account_id,
            opening_balance_equity_account_id=self._settings.opening_balance_equity_account_id,
            retained_earnings_account_id=self._settings.retained_earnings_account_id,
            reconciliation_overdue_days=self._settings.reconciliation_overdue_days,
        )

    def close(self) -> None:
        """Close the database connection if one was opened."""
        if "database" in self.__dict__:
            logger.info("closing_database_connection")
            self.database.close()

    def __enter__(self) -> "Container":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
