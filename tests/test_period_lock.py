"""Tests for period locks and reconciliation finalization."""

from datetime import date

import pytest

from small_business_ledger.domain.audit import AuditAction
from small_business_ledger.exceptions import (
    DataIntegrityError,
    PeriodLockedError,
    ReconciliationMismatchError,
    ReconciliationOutOfOrderError,
)


@pytest.fixture
def october(container, draft):
    """Two October deposits and one withdrawal on Checking."""
    ledger = container.ledger_service
    return [
        ledger.post(draft(date(2023, 10, 2), "1000", "4000", "500.00")),
        ledger.post(draft(date(2023, 10, 9), "1000", "4100", "250.00")),
        ledger.post(draft(date(2023, 10, 20), "6007", "1000", "300.00")),
    ]


def checking_token(entry) -> str:
    index = next(i for i, line in enumerate(entry.lines) if line.account_id == "1000")
    return entry.line_tokens()[index]


class TestIsLocked:
    def test_unlocked_account(self, container):
        locks = container.period_lock_manager

        assert locks.locked_through("1000") is None
        assert not locks.is_locked("1000", date(2023, 10, 15))

    def test_lock_covers_dates_through_statement_end(self, container):
        locks = container.period_lock_manager
        locks.finalize("Shared", "1000", date(2023, 10, 31), 0, [])

        assert locks.is_locked("1000", date(2023, 10, 15))
        assert locks.is_locked("1000", date(2023, 10, 31))
        assert not locks.is_locked("1000", date(2023, 11, 1))
        assert not locks.is_locked("1001", date(2023, 10, 15))


class TestPostingIntoLockedPeriod:
    def test_post_before_lock_fails_after_lock_succeeds(self, container, draft):
        container.period_lock_manager.finalize("Shared", "1000", date(2023, 10, 31), 0, [])
        ledger = container.ledger_service

        with pytest.raises(PeriodLockedError) as exc_info:
            ledger.post(draft(date(2023, 10, 15), "1000", "4000", "10.00"))

        assert str(exc_info.value) == (
            "Account 1000 closed through 2023-10-31; cannot post to 2023-10-15"
        )
        assert ledger.list_entries() == []

        entry = ledger.post(draft(date(2023, 11, 1), "1000", "4000", "10.00"))
        assert entry.entry_date == date(2023, 11, 1)

    def test_lock_applies_to_every_later_post(self, container, draft):
        container.period_lock_manager.finalize("Shared", "1000", date(2023, 10, 31), 0, [])
        ledger = container.ledger_service

        for day in (1, 15, 31):
            with pytest.raises(PeriodLockedError):
                ledger.post(draft(date(2023, 10, day), "6004", "1000", "1.00"))

    def test_lock_on_one_account_blocks_entries_touching_it(self, container, draft):
        container.period_lock_manager.finalize("Shared", "2000", date(2023, 10, 31), 0, [])

        with pytest.raises(PeriodLockedError) as exc_info:
            container.ledger_service.post(draft(date(2023, 10, 5), "6009", "2000", "20.00"))

        assert exc_info.value.account_id == "2000"


class TestFinalize:
    def test_out_of_order_lock_is_rejected(self, container):
        locks = container.period_lock_manager
        locks.finalize("Shared", "1000", date(2023, 10, 31), 0, [])

        with pytest.raises(ReconciliationOutOfOrderError):
            locks.finalize("Shared", "1000", date(2023, 9, 30), 0, [])
        with pytest.raises(ReconciliationOutOfOrderError):
            locks.finalize("Shared", "1000", date(2023, 10, 31), 0, [])

        assert locks.locked_through("1000") == date(2023, 10, 31)

    def test_finalize_writes_audit_event(self, container):
        container.period_lock_manager.finalize("Shared", "1000", date(2023, 10, 31), 0, [])

        actions = [e.action for e in container.audit_log.list_recent()]

        assert AuditAction.LOCK_PERIOD in actions

    @pytest.mark.parametrize("token", ["abc", "", "missing-entry-0"])
    def test_malformed_or_unknown_token_is_rejected(self, container, token):
        locks = container.period_lock_manager

        with pytest.raises(DataIntegrityError):
            locks.finalize("Shared", "1000", date(2023, 10, 31), 0, [token])

        assert locks.locked_through("1000") is None

    def test_line_of_another_account_is_rejected(self, container, october):
        revenue_index = next(
            i for i, line in enumerate(october[0].lines) if line.account_id == "4000"
        )
        revenue_token = october[0].line_tokens()[revenue_index]

        with pytest.raises(DataIntegrityError) as exc_info:
            container.period_lock_manager.finalize(
                "Shared", "1000", date(2023, 10, 31), 0, [revenue_token]
            )

        assert exc_info.value.context["line_tokens"] == [revenue_token]
        assert container.period_lock_manager.list_reconciliations("1000") == []

    def test_line_after_statement_end_is_rejected(self, container, draft):
        november = container.ledger_service.post(
            draft(date(2023, 11, 3), "1000", "4000", "40.00")
        )

        with pytest.raises(DataIntegrityError):
            container.period_lock_manager.finalize(
                "Shared", "1000", date(2023, 10, 31), 0, [checking_token(november)]
            )

    def test_line_cleared_by_earlier_lock_is_rejected(self, container, october):
        locks = container.period_lock_manager
        token = checking_token(october[0])
        locks.finalize("Shared", "1000", date(2023, 10, 31), 50000, [token])

        with pytest.raises(DataIntegrityError):
            locks.finalize("Shared", "1000", date(2023, 11, 30), 50000, [token])

        assert locks.locked_through("1000") == date(2023, 10, 31)
        assert len(locks.list_reconciliations("1000")) == 1


class TestClearingSummary:
    def test_summary_of_cleared_lines(self, container, october):
        tokens = [checking_token(e) for e in october]

        summary = container.period_lock_manager.clearing_summary(
            "1000", date(2023, 10, 31), 45000, tokens
        )

        assert summary.starting_balance == 0
        assert summary.cleared_deposits == 75000
        assert summary.cleared_withdrawals == 30000
        assert summary.cleared_balance == 45000
        assert summary.is_balanced

    def test_starting_balance_is_previous_statement_balance(self, container, october, draft):
        locks = container.period_lock_manager
        tokens = [checking_token(e) for e in october]
        locks.finalize_reconciliation("Shared", "1000", date(2023, 10, 31), 45000, tokens)
        november = container.ledger_service.post(
            draft(date(2023, 11, 3), "1000", "4000", "50.00")
        )

        summary = locks.clearing_summary(
            "1000", date(2023, 11, 30), 50000, [checking_token(november)]
        )

        assert summary.starting_balance == 45000
        assert summary.cleared_balance == 50000

    def test_unknown_token_is_rejected(self, container, october):
        with pytest.raises(DataIntegrityError):
            container.period_lock_manager.clearing_summary(
                "1000", date(2023, 10, 31), 0, ["missing-0"]
            )


class TestFinalizeReconciliation:
    def test_mismatch_is_rejected_without_locking(self, container, october):
        locks = container.period_lock_manager
        tokens = [checking_token(e) for e in october]

        with pytest.raises(ReconciliationMismatchError) as exc_info:
            locks.finalize_reconciliation("Shared", "1000", date(2023, 10, 31), 40000, tokens)

        assert exc_info.value.context["difference"] == -5000
        assert locks.locked_through("1000") is None

    def test_balanced_reconciliation_clears_lines(self, container, october):
        locks = container.period_lock_manager
        tokens = [checking_token(e) for e in october]

        reconciliation = locks.finalize_reconciliation(
            "Shared", "1000", date(2023, 10, 31), 45000, tokens
        )

        assert reconciliation.cleared_line_ids == frozenset(tokens)
        assert reconciliation.performed_by == "Pat Owner"
        stored = container.ledger_service.get_entry(october[0].id)
        cleared = [line for line in stored.lines if line.account_id == "1000"]
        assert cleared[0].is_cleared
        assert cleared[0].reconciliation_id == reconciliation.id
        assert locks.clearing_candidates("1000", date(2023, 10, 31)) == []
