"""Chart-of-accounts registry."""

from __future__ import annotations

from small_business_ledger.domain.accounts import Account
from small_business_ledger.domain.audit import AuditAction
from small_business_ledger.domain.value_objects import AccountType
from small_business_ledger.exceptions import AccountNotFoundError
from small_business_ledger.logging_config import get_logger
from small_business_ledger.repositories.interfaces import AccountRepository
from small_business_ledger.repositories.sqlite import SQLiteDatabase
from small_business_ledger.services.audit import AuditLog
from small_business_ledger.services.identity import IdentityProvider
from small_business_ledger.services.interfaces import TypeMismatch

logger = get_logger(__name__)

# Leading digit of top-level codes for each account type.
_CODE_BLOCKS: dict[AccountType, int] = {
    AccountType.ASSET: 1000,
    AccountType.LIABILITY: 2000,
    AccountType.EQUITY: 3000,
    AccountType.INCOME: 4000,
    AccountType.COST_OF_SERVICES: 5000,
    AccountType.EXPENSE: 6000,
}

# (code, name, type, parent code, bank/cash flag)
DEFAULT_CHART: tuple[tuple[str, str, AccountType, str | None, bool], ...] = (
    ("1000", "Checking", AccountType.ASSET, None, True),
    ("1001", "Savings", AccountType.ASSET, None, True),
    ("1002", "Undeposited Funds", AccountType.ASSET, None, False),
    ("1200", "Accounts Receivable", AccountType.ASSET, None, False),
    ("1500", "Equipment & Gear", AccountType.ASSET, None, False),
    ("2000", "Credit Card", AccountType.LIABILITY, None, True),
    ("2100", "Sales Tax Payable", AccountType.LIABILITY, None, False),
    ("3000", "Owner's Equity", AccountType.EQUITY, None, False),
    ("3001", "Opening Balance Equity", AccountType.EQUITY, None, False),
    ("3002", "Retained Earnings", AccountType.EQUITY, None, False),
    ("4000", "Service Revenue", AccountType.INCOME, None, False),
    ("4100", "Product Sales", AccountType.INCOME, None, False),
    ("5000", "Cost of Goods Sold", AccountType.COST_OF_SERVICES, None, False),
    ("5100", "Subcontractors", AccountType.COST_OF_SERVICES, None, False),
    ("5200", "Job Supplies", AccountType.COST_OF_SERVICES, None, False),
    ("6000", "Advertising", AccountType.EXPENSE, None, False),
    ("6001", "Bank Charges", AccountType.EXPENSE, None, False),
    ("6002", "Dues & Subscriptions", AccountType.EXPENSE, None, False),
    ("6003", "Insurance", AccountType.EXPENSE, None, False),
    ("6004", "Meals", AccountType.EXPENSE, None, False),
    ("6005", "Office Supplies", AccountType.EXPENSE, None, False),
    ("6006", "Professional Fees", AccountType.EXPENSE, None, False),
    ("6007", "Rent", AccountType.EXPENSE, None, False),
    ("6008", "Repairs & Maintenance", AccountType.EXPENSE, None, False),
    ("6009", "Software", AccountType.EXPENSE, None, False),
    ("6010", "Travel", AccountType.EXPENSE, None, False),
    ("6011", "Utilities", AccountType.EXPENSE, None, False),
    ("6012", "Vehicle Expenses", AccountType.EXPENSE, None, False),
    ("6013", "Gas", AccountType.EXPENSE, "6012", False),
)


class AccountRegistry:
    """Owns the chart-of-accounts forest.

    A child always takes its parent's type at creation. Accounts are archived,
    never deleted, because journal lines reference them permanently.
    """

    def __init__(
        self,
        database: SQLiteDatabase,
        account_repo: AccountRepository,
        identity: IdentityProvider,
        audit: AuditLog,
    ) -> None:
        self._db = database
        self._account_repo = account_repo
        self._identity = identity
        self._audit = audit

    def get(self, account_id: str) -> Account:
        user_id = self._identity.require_user()
        account = self._account_repo.get(user_id, account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    def list_accounts(self, include_archived: bool = False) -> list[Account]:
        user_id = self._identity.require_user()
        accounts = list(self._account_repo.list_all(user_id))
        if include_archived:
            return accounts
        return [a for a in accounts if a.is_active]

    def create(
        self,
        name: str,
        parent_id: str | None = None,
        *,
        account_type: AccountType | None = None,
        code: str | None = None,
        account_id: str | None = None,
        is_bank_account: bool = False,
        description: str = "",
    ) -> Account:
        """Create an account under ``parent_id`` (or at the top level).

        The type comes from the parent; ``account_type`` only applies to
        top-level accounts and defaults to Expense. Without an explicit code,
        children get ``<parent code>.<n>`` and top-level accounts the next free
        code in their type's thousand block.
        """
        user_id = self._identity.require_user()
        parent = self.get(parent_id) if parent_id else None
        resolved_type = parent.account_type if parent else account_type or AccountType.EXPENSE
        resolved_code = code or self._next_code(user_id, parent, resolved_type)
        account = Account(
            code=resolved_code,
            name=name,
            account_type=resolved_type,
            parent_id=parent.id if parent else None,
            is_bank_account=is_bank_account,
            description=description,
        )
        if account_id:
            account.id = account_id
        self._account_repo.add(user_id, account)
        logger.info(
            "account_created",
            account_id=account.id,
            code=account.code,
            account_type=account.account_type.value,
            parent_id=account.parent_id,
        )
        return account

    def archive(self, account_id: str) -> Account:
        user_id = self._identity.require_user()

        def _archive() -> Account:
            account = self.get(account_id)
            account.archive()
            self._account_repo.update(user_id, account)
            self._audit.record(
                AuditAction.ACCOUNT_ARCHIVE, f"Archived account {account.code} {account.name}"
            )
            return account

        account = self._db.run_atomic(_archive)
        logger.info("account_archived", account_id=account_id)
        return account

    def seed_default_chart(self) -> list[Account]:
        """Create the standard small-business chart; existing codes are skipped."""
        user_id = self._identity.require_user()

        def _seed() -> list[Account]:
            created: list[Account] = []
            for code, name, account_type, parent_code, is_bank in DEFAULT_CHART:
                if self._account_repo.get_by_code(user_id, code) is not None:
                    continue
                created.append(
                    self.create(
                        name,
                        parent_id=parent_code,
                        account_type=account_type,
                        code=code,
                        account_id=code,
                        is_bank_account=is_bank,
                    )
                )
            return created

        created = self._db.run_atomic(_seed)
        logger.info("default_chart_seeded", created=len(created))
        return created

    def find_type_mismatches(self) -> list[TypeMismatch]:
        """Report children whose type no longer matches their parent's."""
        accounts = {a.id: a for a in self.list_accounts(include_archived=True)}
        mismatches = []
        for account in accounts.values():
            parent = accounts.get(account.parent_id) if account.parent_id else None
            if parent is not None and parent.account_type != account.account_type:
                mismatches.append(
                    TypeMismatch(
                        account_id=account.id,
                        account_type=account.account_type,
                        parent_id=parent.id,
                        parent_type=parent.account_type,
                    )
                )
        if mismatches:
            logger.warning("account_type_mismatches_found", count=len(mismatches))
        return mismatches

    def _next_code(
        self, user_id: str, parent: Account | None, account_type: AccountType
    ) -> str:
        existing = {a.code for a in self._account_repo.list_all(user_id)}
        if parent is not None:
            suffix = len(list(self._account_repo.list_children(user_id, parent.id))) + 1
            while f"{parent.code}.{suffix}" in existing:
                suffix += 1
            return f"{parent.code}.{suffix}"
        block = _CODE_BLOCKS[account_type]
        used = [
            int(c) for c in existing if c.isdigit() and block <= int(c) < block + 1000
        ]
        candidate = max(used) + 1 if used else block
        if candidate >= block + 1000:
            candidate = next(n for n in range(block, block + 1000) if str(n) not in existing)
        return str(candidate)
