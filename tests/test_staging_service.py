"""Tests for the staged-transaction inbox and the staging-to-journal bridge."""

from datetime import date
from decimal import Decimal

import pytest

from small_business_ledger.domain.transactions import BankFeedItem, SplitLine, StagedTransaction
from small_business_ledger.domain.value_objects import TransactionStatus, TransactionType
from small_business_ledger.exceptions import (
    InvalidTransactionStateError,
    MissingAssignmentError,
    PendingNotPostableError,
)
from small_business_ledger.services.staging import stage_to_lines, validate_staged


def feed_item(vendor_id: str, amount: str, name: str = "HOME DEPOT #123", **kwargs):
    return BankFeedItem(
        vendor_transaction_id=vendor_id,
        transaction_date=kwargs.pop("transaction_date", date(2023, 10, 5)),
        name=name,
        amount=amount,
        **kwargs,
    )


class TestIngestBankFeed:
    def test_negates_vendor_amounts_and_sets_type(self, container):
        staged = container.staging_service.ingest_bank_feed(
            [feed_item("v1", "42.50"), feed_item("v2", "-1000.00", name="Client deposit")],
            "1000",
        )

        purchase, deposit = staged
        assert purchase.amount == -4250
        assert purchase.transaction_type == TransactionType.EXPENSE
        assert deposit.amount == 100000
        assert deposit.transaction_type == TransactionType.INCOME
        assert all(t.status == TransactionStatus.IMPORTED for t in staged)

    def test_deduplicates_on_vendor_id(self, container):
        staging = container.staging_service
        staging.ingest_bank_feed([feed_item("v1", "10.00"), feed_item("v1", "10.00")], "1000")

        second = staging.ingest_bank_feed([feed_item("v1", "10.00"), feed_item("v2", "5")], "1000")

        assert [t.vendor_transaction_id for t in second] == ["v2"]
        assert len(staging.list_inbox()) == 2

    def test_records_pending_flag_and_merchant(self, container):
        (txn,) = container.staging_service.ingest_bank_feed(
            [feed_item("v1", "8.00", pending=True, merchant_name="Shell")], "1000"
        )

        stored = container.staging_service.get(txn.id)
        assert stored.pending
        assert stored.merchant_name == "Shell"


class TestValidateStaged:
    def make(self, **kwargs) -> StagedTransaction:
        defaults = dict(
            transaction_date=date(2023, 10, 5),
            description="Lumber",
            amount=-5000,
            bank_account_id="1000",
        )
        defaults.update(kwargs)
        return StagedTransaction(**defaults)

    def test_pending_is_never_postable(self):
        txn = self.make(pending=True, assigned_account="5200", assigned_business="Shared")

        with pytest.raises(PendingNotPostableError):
            validate_staged(txn)

    def test_expense_needs_account(self):
        with pytest.raises(MissingAssignmentError) as exc_info:
            validate_staged(self.make(assigned_business="Shared"))

        assert exc_info.value.context["field"] == "assigned_account"

    def test_transfer_needs_target(self):
        txn = self.make(transaction_type=TransactionType.TRANSFER, assigned_business="Shared")

        with pytest.raises(MissingAssignmentError) as exc_info:
            validate_staged(txn)

        assert exc_info.value.context["field"] == "transfer_account_id"

    def test_business_is_always_required(self):
        with pytest.raises(MissingAssignmentError) as exc_info:
            validate_staged(self.make(assigned_account="5200"))

        assert exc_info.value.context["field"] == "assigned_business"


class TestStageToLines:
    def test_outflow_credits_bank_and_debits_category(self):
        txn = StagedTransaction(
            transaction_date=date(2023, 10, 5),
            description="Lumber",
            amount=-5000,
            bank_account_id="1000",
            assigned_account="5200",
            assigned_business="Shared",
            assigned_project="kitchen",
        )

        bank, offset = stage_to_lines(txn)

        assert (bank.account_id, bank.credit, bank.debit) == ("1000", Decimal("50.00"), 0)
        assert (offset.account_id, offset.debit) == ("5200", Decimal("50.00"))
        assert offset.project_id == "kitchen"
        assert offset.business_id == "Shared"

    def test_inflow_debits_bank(self):
        txn = StagedTransaction(
            transaction_date=date(2023, 10, 5),
            description="Deposit",
            amount=25000,
            bank_account_id="1000",
            assigned_account="4000",
            assigned_business="Shared",
        )

        bank, offset = stage_to_lines(txn)

        assert bank.debit == Decimal("250.00")
        assert offset.credit == Decimal("250.00")

    def test_splits_override_dimensions(self):
        txn = StagedTransaction(
            transaction_date=date(2023, 10, 5),
            description="Mixed purchase",
            amount=-3000,
            bank_account_id="2000",
            assigned_business="Shared",
            assigned_project="kitchen",
            splits=[
                SplitLine(account_id="5200", amount=2000),
                SplitLine(account_id="6005", amount=1000, project_id="office"),
            ],
        )

        lines = stage_to_lines(txn)

        assert [line.account_id for line in lines] == ["2000", "5200", "6005"]
        assert [line.project_id for line in lines] == ["kitchen", "kitchen", "office"]
        assert sum(line.debit for line in lines) == sum(line.credit for line in lines)

    def test_transfer_uses_target_account(self):
        txn = StagedTransaction(
            transaction_date=date(2023, 10, 5),
            description="Transfer to savings",
            amount=-10000,
            bank_account_id="1000",
            transaction_type=TransactionType.TRANSFER,
            transfer_account_id="1001",
            assigned_account="6000",
            assigned_business="Shared",
        )

        target, bank = stage_to_lines(txn)

        assert bank.credit == Decimal("100.00")
        assert (target.account_id, target.debit) == ("1001", Decimal("100.00"))

    def test_incoming_transfer_leads_with_bank_debit(self):
        txn = StagedTransaction(
            transaction_date=date(2023, 10, 5),
            description="Transfer from savings",
            amount=10000,
            bank_account_id="1000",
            transaction_type=TransactionType.TRANSFER,
            transfer_account_id="1001",
            assigned_business="Shared",
        )

        lines = stage_to_lines(txn)

        assert [(line.account_id, line.debit) for line in lines] == [
            ("1000", Decimal("100.00")),
            ("1001", Decimal("0")),
        ]


class TestPostStaged:
    def test_post_links_entry_and_flips_status(self, container):
        staging = container.staging_service
        (txn,) = staging.ingest_bank_feed([feed_item("v1", "50.00")], "1000")
        staging.categorize(txn.id, account_id="5200", business_id="Shared")

        entry = staging.post_staged(txn.id)

        stored = staging.get(txn.id)
        assert stored.status == TransactionStatus.POSTED
        assert stored.linked_journal_entry_id == entry.id
        assert container.ledger_service.get_account_balance("1000") == -5000

    def test_pending_item_is_not_posted(self, container):
        staging = container.staging_service
        (txn,) = staging.ingest_bank_feed([feed_item("v1", "50.00", pending=True)], "1000")
        staging.categorize(txn.id, account_id="5200", business_id="Shared")

        with pytest.raises(PendingNotPostableError):
            staging.post_staged(txn.id)

        assert staging.get(txn.id).status == TransactionStatus.IMPORTED
        assert container.ledger_service.list_entries() == []

    def test_missing_assignment_leaves_item_imported(self, container):
        staging = container.staging_service
        (txn,) = staging.ingest_bank_feed([feed_item("v1", "50.00")], "1000")

        with pytest.raises(MissingAssignmentError):
            staging.post_staged(txn.id)

        assert staging.get(txn.id).status == TransactionStatus.IMPORTED

    def test_posted_item_cannot_be_posted_again(self, container):
        staging = container.staging_service
        txn = staging.add_manual(
            date(2023, 10, 5),
            "Consulting",
            "300.00",
            "1000",
            assigned_account="4000",
            assigned_business="Shared",
        )
        staging.post_staged(txn.id)

        with pytest.raises(InvalidTransactionStateError):
            staging.post_staged(txn.id)
        assert len(container.ledger_service.list_entries()) == 1

    def test_transfer_via_categorize(self, container):
        staging = container.staging_service
        (txn,) = staging.ingest_bank_feed(
            [feed_item("v1", "200.00", name="Online transfer to savings")], "1000"
        )
        assert txn.transaction_type == TransactionType.TRANSFER

        staging.categorize(txn.id, transfer_account_id="1001", business_id="Shared")
        staging.post_staged(txn.id)

        assert container.ledger_service.get_account_balance("1001") == 20000
        assert container.ledger_service.get_account_balance("1000") == -20000

    def test_plain_category_overrides_transfer_suggestion(self, container):
        staging = container.staging_service
        (txn,) = staging.ingest_bank_feed(
            [feed_item("v1", "80.00", name="Zelle payment to plumber")], "1000"
        )
        assert txn.transaction_type == TransactionType.TRANSFER

        categorized = staging.categorize(txn.id, account_id="5100", business_id="Shared")
        staging.post_staged(txn.id)

        assert categorized.transaction_type == TransactionType.EXPENSE
        assert categorized.transfer_account_id is None
        assert container.ledger_service.get_account_balance("5100") == 8000

    def test_explicit_type_replaces_transfer(self, container):
        staging = container.staging_service
        (txn,) = staging.ingest_bank_feed(
            [feed_item("v1", "-300.00", name="Venmo from client")], "1000"
        )
        staging.categorize(txn.id, transfer_account_id="1001", business_id="Shared")

        categorized = staging.categorize(
            txn.id, transaction_type=TransactionType.INCOME, account_id="4000"
        )

        assert categorized.transaction_type == TransactionType.INCOME
        assert categorized.transfer_account_id is None


class TestSuggestions:
    def test_merchant_memory_applies_on_next_import(self, container):
        staging = container.staging_service
        (first,) = staging.ingest_bank_feed(
            [feed_item("v1", "60.00", name="SHELL OIL 5521", merchant_name="Shell")], "1000"
        )
        staging.categorize(first.id, account_id="6013", business_id="Shared")
        staging.post_staged(first.id)

        (second,) = staging.ingest_bank_feed(
            [
                feed_item(
                    "v2",
                    "45.00",
                    name="SHELL OIL 9912",
                    merchant_name="Shell",
                    transaction_date=date(2023, 10, 12),
                )
            ],
            "1000",
        )

        assert second.assigned_account == "6013"
        assert second.assigned_business == "Shared"

    def test_transfer_keywords(self, container):
        txn = StagedTransaction(
            transaction_date=date(2023, 10, 5),
            description="Zelle payment from client",
            amount=1000,
            bank_account_id="1000",
        )

        suggestion = container.staging_service.suggest_assignment(txn)

        assert suggestion is not None
        assert suggestion.source == "transfer_keyword"
        assert suggestion.transaction_type == TransactionType.TRANSFER

    def test_no_suggestion(self, container):
        txn = StagedTransaction(
            transaction_date=date(2023, 10, 5),
            description="Unknown vendor",
            amount=-1000,
            bank_account_id="1000",
        )

        assert container.staging_service.suggest_assignment(txn) is None


class TestPossibleDuplicate:
    def test_same_date_and_amount_on_bank_account(self, container, draft):
        container.ledger_service.post(draft(date(2023, 10, 5), "6004", "1000", "42.50"))
        (txn,) = container.staging_service.ingest_bank_feed([feed_item("v1", "42.50")], "1000")

        assert container.staging_service.is_possible_duplicate(txn)

    def test_different_amount_is_not_duplicate(self, container, draft):
        container.ledger_service.post(draft(date(2023, 10, 5), "6004", "1000", "42.51"))
        (txn,) = container.staging_service.ingest_bank_feed([feed_item("v1", "42.50")], "1000")

        assert not container.staging_service.is_possible_duplicate(txn)

    def test_own_posted_entry_is_ignored(self, container):
        staging = container.staging_service
        (txn,) = staging.ingest_bank_feed([feed_item("v1", "42.50")], "1000")
        staging.categorize(txn.id, account_id="6004", business_id="Shared")
        staging.post_staged(txn.id)

        assert not staging.is_possible_duplicate(staging.get(txn.id))
