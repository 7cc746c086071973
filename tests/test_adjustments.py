"""Tests for the posted-transaction edit (reversal) workflow."""

from datetime import date

import pytest

from small_business_ledger.domain.audit import AuditAction
from small_business_ledger.domain.value_objects import TransactionStatus
from small_business_ledger.exceptions import (
    AdjustmentReasonRequiredError,
    ClearedLineProtectedError,
    InvalidTransactionStateError,
    PersistenceUnavailableError,
)
from small_business_ledger.services.interfaces import EditPlan, ReasonRequired


@pytest.fixture
def posted(container):
    """A $75.00 job-supplies purchase on Checking, posted on 2023-10-05."""
    staging = container.staging_service
    txn = staging.add_manual(
        date(2023, 10, 5),
        "Lumber yard",
        "-75.00",
        "1000",
        assigned_account="5200",
        assigned_business="Shared",
        assigned_project="deck",
    )
    entry = staging.post_staged(txn.id)
    return staging.get(txn.id), entry


class TestEditPostedTransaction:
    def test_reversal_dated_at_original_date_when_open(self, container, posted):
        txn, original = posted

        result = container.adjustment_workflow.edit_posted_transaction(
            txn.id, "Wrong category"
        )

        reversal = result.reversal
        assert reversal.entry_date == date(2023, 10, 5)
        assert reversal.is_adjusting_entry
        assert reversal.original_journal_entry_id == original.id
        assert reversal.adjustment_reason == "Reversing for update: Wrong category"
        for before, after in zip(original.lines, reversal.lines, strict=True):
            assert after.account_id == before.account_id
            assert (after.debit, after.credit) == (before.credit, before.debit)
            assert after.description.startswith(f"Reversal of {original.id}")

        stored_txn = container.staging_service.get(txn.id)
        assert stored_txn.status == TransactionStatus.NEEDS_REPOST
        assert stored_txn.linked_journal_entry_id is None

        stored_original = container.ledger_service.get_entry(original.id)
        assert stored_original.lines == original.lines
        assert stored_original.description == original.description
        assert container.ledger_service.get_account_balance("1000") == 0
        assert container.ledger_service.get_account_balance("5200") == 0

        actions = [e.action for e in container.audit_log.list_recent()]
        assert AuditAction.EDIT_ATTEMPT in actions
        assert AuditAction.PERIOD_CROSSING not in actions

    def test_corrected_transaction_reposts(self, container, posted):
        txn, _ = posted
        container.adjustment_workflow.edit_posted_transaction(txn.id, "Wrong category")
        staging = container.staging_service

        staging.categorize(txn.id, account_id="6005")
        entry = staging.post_staged(txn.id)

        assert staging.get(txn.id).status == TransactionStatus.POSTED
        assert staging.get(txn.id).linked_journal_entry_id == entry.id
        assert container.ledger_service.get_account_balance("6005") == 7500
        assert len(container.ledger_service.list_entries()) == 3

    def test_locked_original_date_moves_reversal_to_today(self, container, posted):
        txn, original = posted
        container.period_lock_manager.finalize("Shared", "1000", date(2023, 10, 31), 0, [])

        plan = container.adjustment_workflow.plan(txn.id, "Wrong category")
        assert isinstance(plan, EditPlan)
        assert plan.original_date_locked

        result = container.adjustment_workflow.edit_posted_transaction(
            txn.id, "Wrong category"
        )

        assert result.reversal.entry_date == date(2023, 12, 15)
        assert result.plan.date_moved
        actions = [e.action for e in container.audit_log.list_recent()]
        assert AuditAction.PERIOD_CROSSING in actions

    def test_lock_past_today_moves_reversal_after_lock(self, container, posted):
        txn, _ = posted
        container.period_lock_manager.finalize("Shared", "1000", date(2024, 1, 31), 0, [])

        result = container.adjustment_workflow.edit_posted_transaction(txn.id, "Fix")

        assert result.reversal.entry_date == date(2024, 2, 1)

    def test_cleared_line_blocks_edit(self, container, posted):
        txn, original = posted
        token = original.line_tokens()[0]
        container.period_lock_manager.finalize_reconciliation(
            "Shared", "1000", date(2023, 10, 31), -7500, [token]
        )

        with pytest.raises(ClearedLineProtectedError) as exc_info:
            container.adjustment_workflow.edit_posted_transaction(txn.id, "Wrong category")

        assert exc_info.value.context["line_tokens"] == [token]
        assert container.staging_service.get(txn.id).status == TransactionStatus.POSTED
        assert len(container.ledger_service.list_entries()) == 1

    def test_missing_reason_requests_input(self, container, posted):
        txn, _ = posted
        workflow = container.adjustment_workflow

        plan = workflow.plan(txn.id, None)

        assert isinstance(plan, ReasonRequired)
        with pytest.raises(AdjustmentReasonRequiredError):
            workflow.edit_posted_transaction(txn.id, "   ")
        assert container.staging_service.get(txn.id).status == TransactionStatus.POSTED

    def test_unposted_transaction_cannot_be_edited(self, container):
        txn = container.staging_service.add_manual(date(2023, 10, 5), "Coffee", "-4.00", "1000")

        with pytest.raises(InvalidTransactionStateError):
            container.adjustment_workflow.edit_posted_transaction(txn.id, "Reason")

    def test_failed_reversal_leaves_status_untouched(self, container, posted, monkeypatch):
        txn, _ = posted
        container.period_lock_manager.finalize("Shared", "1000", date(2023, 10, 31), 0, [])

        def unavailable(*args, **kwargs):
            raise PersistenceUnavailableError("disk full")

        monkeypatch.setattr(container.ledger_service, "post", unavailable)

        with pytest.raises(PersistenceUnavailableError):
            container.adjustment_workflow.edit_posted_transaction(txn.id, "Wrong category")

        stored = container.staging_service.get(txn.id)
        assert stored.status == TransactionStatus.POSTED
        assert stored.linked_journal_entry_id is not None
        actions = [e.action for e in container.audit_log.list_recent()]
        assert AuditAction.PERIOD_CROSSING not in actions
        assert AuditAction.EDIT_ATTEMPT not in actions
