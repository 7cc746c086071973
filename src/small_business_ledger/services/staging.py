"""Inbox of staged transactions and the staging-to-journal bridge."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from typing import Any

from small_business_ledger.domain.journal import EntryDraft, JournalEntry, LineDraft
from small_business_ledger.domain.transactions import (
    BankFeedItem,
    MerchantProfile,
    SplitLine,
    StagedTransaction,
)
from small_business_ledger.domain.value_objects import (
    TransactionStatus,
    TransactionType,
    minor_to_decimal,
    to_minor_units,
)
from small_business_ledger.exceptions import (
    AccountNotFoundError,
    InvalidTransactionStateError,
    MissingAssignmentError,
    PendingNotPostableError,
    StagedTransactionNotFoundError,
)
from small_business_ledger.logging_config import LogContext, get_logger
from small_business_ledger.repositories.interfaces import (
    AccountRepository,
    JournalRepository,
    MerchantProfileRepository,
    StagedTransactionRepository,
)
from small_business_ledger.repositories.sqlite import SQLiteDatabase
from small_business_ledger.services.identity import IdentityProvider
from small_business_ledger.services.interfaces import (
    AssignmentSuggestion,
    LedgerService,
    StagingService,
)

logger = get_logger(__name__)

TRANSFER_KEYWORDS = ("transfer", "zelle", "venmo", "payment to")


def validate_staged(txn: StagedTransaction) -> None:
    """Check a staged transaction can be turned into journal lines.

    Raises:
        PendingNotPostableError: If the bank has not finalized the item
        MissingAssignmentError: If a required assignment is missing
    """
    if txn.pending:
        raise PendingNotPostableError(txn.id)
    if txn.transaction_type == TransactionType.TRANSFER:
        if not txn.transfer_account_id:
            raise MissingAssignmentError(txn.id, "transfer_account_id")
    elif not txn.assigned_account and not txn.splits:
        raise MissingAssignmentError(txn.id, "assigned_account")
    if not txn.assigned_business:
        raise MissingAssignmentError(txn.id, "assigned_business")


def stage_to_lines(txn: StagedTransaction) -> list[LineDraft]:
    """Build the journal lines for a staged transaction.

    The bank leg is a debit for inflows and a credit for outflows; offsetting
    legs go to the transfer account, the splits, or the assigned account, in
    that order of precedence. Transfers list the debit leg first; every other
    entry leads with the bank leg. Line dimensions default to the transaction's
    assignments, and a split's own values override them.
    """
    inflow = txn.is_inflow
    business_id = txn.assigned_business
    project_id = txn.assigned_project
    contractor_id = txn.assigned_contractor_id

    def leg(
        account_id: str,
        cents: int,
        on_debit: bool,
        description: str = "",
        project: str | None = None,
        business: str | None = None,
        contractor: str | None = None,
    ) -> LineDraft:
        amount = minor_to_decimal(cents)
        return LineDraft(
            account_id=account_id,
            debit=amount if on_debit else Decimal("0"),
            credit=Decimal("0") if on_debit else amount,
            description=description or txn.description,
            business_id=business or business_id,
            project_id=project or project_id,
            contractor_id=contractor or contractor_id,
        )

    bank = leg(txn.bank_account_id, txn.absolute_amount, on_debit=inflow)
    if txn.transaction_type == TransactionType.TRANSFER and txn.transfer_account_id:
        target = leg(txn.transfer_account_id, txn.absolute_amount, on_debit=not inflow)
        return [bank, target] if inflow else [target, bank]
    lines = [bank]
    if txn.splits:
        for split in txn.splits:
            lines.append(
                leg(
                    split.account_id,
                    split.amount,
                    on_debit=not inflow,
                    description=split.description,
                    project=split.project_id,
                    business=split.business_id,
                    contractor=split.contractor_id,
                )
            )
    elif txn.assigned_account:
        lines.append(leg(txn.assigned_account, txn.absolute_amount, on_debit=not inflow))
    return lines


class StagingServiceImpl(StagingService):
    def __init__(
        self,
        database: SQLiteDatabase,
        staged_repo: StagedTransactionRepository,
        account_repo: AccountRepository,
        journal_repo: JournalRepository,
        merchant_repo: MerchantProfileRepository,
        ledger: LedgerService,
        identity: IdentityProvider,
        max_retries: int = 3,
    ) -> None:
        self._db = database
        self._staged_repo = staged_repo
        self._account_repo = account_repo
        self._journal_repo = journal_repo
        self._merchant_repo = merchant_repo
        self._ledger = ledger
        self._identity = identity
        self._max_retries = max_retries

    def get(self, transaction_id: str) -> StagedTransaction:
        user_id = self._identity.require_user()
        txn = self._staged_repo.get(user_id, transaction_id)
        if txn is None:
            raise StagedTransactionNotFoundError(transaction_id)
        return txn

    def list_inbox(self, status: TransactionStatus | None = None) -> list[StagedTransaction]:
        user_id = self._identity.require_user()
        if status is None:
            return list(self._staged_repo.list_all(user_id))
        return list(self._staged_repo.list_by_status(user_id, status.value))

    def ingest_bank_feed(
        self, items: Iterable[BankFeedItem], bank_account_id: str
    ) -> list[StagedTransaction]:
        """Stage bank-feed items, skipping vendor ids already seen.

        The feed reports money out as positive; staged amounts use the
        opposite convention, so amounts are negated on the way in.
        """
        user_id = self._identity.require_user()
        if self._account_repo.get(user_id, bank_account_id) is None:
            raise AccountNotFoundError(bank_account_id)
        batch = list(items)

        def _ingest() -> tuple[list[StagedTransaction], int]:
            staged: list[StagedTransaction] = []
            skipped = 0
            seen: set[str] = set()
            for item in batch:
                if item.vendor_transaction_id in seen or (
                    self._staged_repo.get_by_vendor_id(user_id, item.vendor_transaction_id)
                    is not None
                ):
                    skipped += 1
                    continue
                seen.add(item.vendor_transaction_id)
                cents, _ = to_minor_units(item.amount)
                amount = -cents
                txn = StagedTransaction(
                    transaction_date=item.transaction_date,
                    description=item.name,
                    amount=amount,
                    bank_account_id=bank_account_id,
                    transaction_type=(
                        TransactionType.EXPENSE if amount < 0 else TransactionType.INCOME
                    ),
                    pending=item.pending,
                    vendor_transaction_id=item.vendor_transaction_id,
                    merchant_name=item.merchant_name,
                )
                self._apply_suggestion(txn, self.suggest_assignment(txn))
                self._staged_repo.add(user_id, txn)
                staged.append(txn)
            return staged, skipped

        staged, skipped = self._db.run_atomic(_ingest, self._max_retries)
        logger.info(
            "bank_feed_ingested",
            bank_account_id=bank_account_id,
            staged=len(staged),
            duplicates_skipped=skipped,
        )
        return staged

    def add_manual(
        self,
        transaction_date: date,
        description: str,
        amount: Decimal | int | str,
        bank_account_id: str,
        **assignment: Any,
    ) -> StagedTransaction:
        """Stage a manually entered item; ``amount`` is signed, negative is money out."""
        user_id = self._identity.require_user()
        cents, _ = to_minor_units(amount)
        txn = StagedTransaction(
            transaction_date=transaction_date,
            description=description,
            amount=cents,
            bank_account_id=bank_account_id,
            transaction_type=TransactionType.EXPENSE if cents < 0 else TransactionType.INCOME,
        )
        for field_name, value in assignment.items():
            if not hasattr(txn, field_name):
                raise TypeError(f"Unknown staged transaction field: {field_name}")
            setattr(txn, field_name, value)
        self._staged_repo.add(user_id, txn)
        logger.info("manual_transaction_staged", transaction_id=txn.id, amount=cents)
        return txn

    def categorize(
        self,
        transaction_id: str,
        *,
        account_id: str | None = None,
        business_id: str | None = None,
        project_id: str | None = None,
        contractor_id: str | None = None,
        transfer_account_id: str | None = None,
        transaction_type: TransactionType | None = None,
        splits: list[SplitLine] | None = None,
    ) -> StagedTransaction:
        user_id = self._identity.require_user()

        def _categorize() -> StagedTransaction:
            txn = self.get(transaction_id)
            if not txn.is_postable_status:
                raise InvalidTransactionStateError(txn.id, txn.status.value, "categorize")
            if transaction_type is not None:
                txn.transaction_type = transaction_type
            elif (
                account_id is not None
                and transfer_account_id is None
                and txn.transaction_type == TransactionType.TRANSFER
            ):
                # A plain category overrides a transfer suggestion.
                txn.transaction_type = (
                    TransactionType.INCOME if txn.is_inflow else TransactionType.EXPENSE
                )
            if txn.transaction_type != TransactionType.TRANSFER:
                txn.transfer_account_id = None
            if account_id is not None:
                txn.assigned_account = account_id
            if business_id is not None:
                txn.assigned_business = business_id
            if project_id is not None:
                txn.assigned_project = project_id
            if contractor_id is not None:
                txn.assigned_contractor_id = contractor_id
            if transfer_account_id is not None:
                txn.transfer_account_id = transfer_account_id
                txn.transaction_type = TransactionType.TRANSFER
            if splits is not None:
                txn.splits = list(splits)
            self._staged_repo.update(user_id, txn)
            return txn

        return self._db.run_atomic(_categorize, self._max_retries)

    def suggest_assignment(self, txn: StagedTransaction) -> AssignmentSuggestion | None:
        """Merchant memory first, then transfer keyword detection."""
        user_id = self._identity.require_user()
        description = txn.description.lower()
        profile = None
        if txn.merchant_name:
            profile = self._merchant_repo.get_by_name(user_id, txn.merchant_name)
        if profile is None:
            profile = next(
                (
                    p
                    for p in self._merchant_repo.list_all(user_id)
                    if p.merchant_name.lower() in description
                ),
                None,
            )
        if profile is not None and profile.default_account:
            return AssignmentSuggestion(
                source=f"merchant:{profile.merchant_name}",
                account_id=profile.default_account,
                business_id=profile.default_business,
                project_id=profile.default_project,
            )
        if any(keyword in description for keyword in TRANSFER_KEYWORDS):
            return AssignmentSuggestion(
                source="transfer_keyword", transaction_type=TransactionType.TRANSFER
            )
        return None

    def is_possible_duplicate(self, txn: StagedTransaction) -> bool:
        """True if the bank account already has a line for this date and amount."""
        user_id = self._identity.require_user()
        for entry in self._journal_repo.list_by_account(
            user_id, txn.bank_account_id, txn.transaction_date, txn.transaction_date
        ):
            if entry.id == txn.linked_journal_entry_id:
                continue
            for line in entry.lines:
                if (
                    line.account_id == txn.bank_account_id
                    and abs(line.net_amount) == txn.absolute_amount
                ):
                    return True
        return False

    def post_staged(self, transaction_id: str) -> JournalEntry:
        """Validate, build lines and post; the transaction flips to posted atomically."""
        user_id = self._identity.require_user()

        def _post() -> JournalEntry:
            txn = self.get(transaction_id)
            if not txn.is_postable_status:
                raise InvalidTransactionStateError(txn.id, txn.status.value, "post")
            validate_staged(txn)
            draft = EntryDraft(
                entry_date=txn.transaction_date,
                description=txn.description,
                business_id=txn.assigned_business or "",
                lines=stage_to_lines(txn),
                project_id=txn.assigned_project,
            )
            entry = self._ledger.post(draft, linked_transaction_id=txn.id)
            if txn.transaction_type != TransactionType.TRANSFER:
                self._remember_merchant(user_id, txn)
            return entry

        with LogContext(transaction_id=transaction_id):
            return self._db.run_atomic(_post, self._max_retries)

    def _remember_merchant(self, user_id: str, txn: StagedTransaction) -> None:
        if not txn.assigned_account or not txn.assigned_business:
            return
        merchant_name = txn.merchant_name or txn.description.split(" ")[0]
        if not merchant_name:
            return
        existing = self._merchant_repo.get_by_name(user_id, merchant_name)
        profile = MerchantProfile(
            merchant_name=merchant_name,
            default_business=txn.assigned_business,
            default_account=txn.assigned_account,
            default_project=txn.assigned_project,
        )
        if existing is not None:
            profile.id = existing.id
        self._merchant_repo.upsert(user_id, profile)
        logger.debug("merchant_profile_saved", merchant_name=merchant_name)

    @staticmethod
    def _apply_suggestion(
        txn: StagedTransaction, suggestion: AssignmentSuggestion | None
    ) -> None:
        if suggestion is None:
            return
        if suggestion.transaction_type is not None:
            txn.transaction_type = suggestion.transaction_type
        txn.assigned_account = txn.assigned_account or suggestion.account_id
        txn.assigned_business = txn.assigned_business or suggestion.business_id
        txn.assigned_project = txn.assigned_project or suggestion.project_id
