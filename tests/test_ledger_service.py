"""Tests for LedgerServiceImpl posting and balance derivation."""

import logging
from datetime import date
from decimal import Decimal

import pytest

from small_business_ledger.domain.audit import AuditAction
from small_business_ledger.domain.journal import EntryDraft, LineDraft
from small_business_ledger.exceptions import (
    AccountNotFoundError,
    AdjustmentReasonRequiredError,
    EmptyJournalEntryError,
    InvalidLineAmountError,
    LedgerImbalanceError,
)
from small_business_ledger.services.ledger import OPENING_BALANCE_DESCRIPTION, sanitize_lines


class TestPost:
    def test_balanced_entry_updates_balances(self, container, draft):
        """Debit Checking / credit Service Revenue for $100.00."""
        ledger = container.ledger_service

        entry = ledger.post(draft(date(2023, 10, 2), "1000", "4000", "100.00"))

        assert entry.total_debits == entry.total_credits == 10000
        assert ledger.get_account_balance("1000") == 10000
        # Income is credit-normal, so revenue shows as a positive balance.
        assert ledger.get_account_balance("4000") == 10000

    def test_unbalanced_entry_is_rejected_and_nothing_written(self, container):
        ledger = container.ledger_service
        unbalanced = EntryDraft(
            entry_date=date(2023, 10, 2),
            description="Off by a cent",
            business_id="Shared",
            lines=[
                LineDraft(account_id="1000", debit=Decimal("100.00")),
                LineDraft(account_id="4000", credit=Decimal("99.99")),
            ],
        )

        with pytest.raises(LedgerImbalanceError) as exc_info:
            ledger.post(unbalanced)

        assert exc_info.value.expected_debits == 10000
        assert exc_info.value.expected_credits == 9999
        assert "$100.00" in str(exc_info.value)
        assert "$99.99" in str(exc_info.value)
        assert ledger.list_entries() == []
        assert ledger.get_account_balance("1000") == 0

    def test_every_posted_entry_balances_in_cents(self, container, draft):
        ledger = container.ledger_service
        ledger.post(draft(date(2023, 10, 1), "1000", "4000", "19.99"))
        ledger.post(draft(date(2023, 10, 2), "6007", "1000", "1200"))
        ledger.post(
            EntryDraft(
                entry_date=date(2023, 10, 3),
                description="Split supplies",
                business_id="Shared",
                lines=[
                    LineDraft(account_id="6005", debit=Decimal("10.10")),
                    LineDraft(account_id="5200", debit=Decimal("5.05")),
                    LineDraft(account_id="2000", credit=Decimal("15.15")),
                ],
            )
        )

        entries = ledger.list_entries()

        assert len(entries) == 3
        for entry in entries:
            assert sum(line.debit for line in entry.lines) == sum(
                line.credit for line in entry.lines
            )
            assert all(isinstance(line.debit, int) for line in entry.lines)

    def test_rounds_sub_cent_amounts_and_warns(self, container, capsys, caplog):
        ledger = container.ledger_service
        fractional = EntryDraft(
            entry_date=date(2023, 10, 2),
            description="Fractional",
            business_id="Shared",
            lines=[
                LineDraft(account_id="6004", debit=Decimal("10.005")),
                LineDraft(account_id="1000", credit=Decimal("10.01")),
            ],
        )

        with caplog.at_level(logging.WARNING):
            entry = ledger.post(fractional)

        assert entry.lines[0].debit == 1001
        captured = capsys.readouterr()
        all_output = captured.out + captured.err + caplog.text
        assert "amount_rounded_to_minor_units" in all_output

    def test_empty_entry_is_rejected(self, container):
        with pytest.raises(EmptyJournalEntryError):
            container.ledger_service.post(
                EntryDraft(entry_date=date(2023, 10, 2), description="", business_id="Shared")
            )

    def test_unknown_account_is_rejected(self, container, draft):
        with pytest.raises(AccountNotFoundError) as exc_info:
            container.ledger_service.post(draft(date(2023, 10, 2), "1000", "9999", "5.00"))

        assert exc_info.value.context["account_id"] == "9999"
        assert container.ledger_service.list_entries() == []

    def test_records_audit_event_per_post(self, container, draft):
        container.ledger_service.post(draft(date(2023, 10, 2), "1000", "4000", "1.00"))

        events = container.audit_log.list_recent()

        assert [e.action for e in events] == [AuditAction.POST_ENTRY]
        assert events[0].user == "Pat Owner"

    def test_list_entries_filters_by_date(self, container, draft):
        ledger = container.ledger_service
        ledger.post(draft(date(2023, 9, 30), "1000", "4000", "1.00"))
        ledger.post(draft(date(2023, 10, 15), "1000", "4000", "2.00"))

        entries = ledger.list_entries(date(2023, 10, 1), date(2023, 10, 31))

        assert [e.entry_date for e in entries] == [date(2023, 10, 15)]

    def test_balance_as_of_date(self, container, draft):
        ledger = container.ledger_service
        ledger.post(draft(date(2023, 9, 30), "1000", "4000", "1.00"))
        ledger.post(draft(date(2023, 10, 15), "1000", "4000", "2.00"))

        assert ledger.get_account_balance("1000", as_of_date=date(2023, 9, 30)) == 100
        assert ledger.get_account_balance("1000") == 300


class TestSanitizeLines:
    def test_negative_amount_is_rejected(self):
        negative = EntryDraft(
            entry_date=date(2023, 10, 2),
            description="Negative",
            business_id="Shared",
            lines=[LineDraft(account_id="1000", debit=Decimal("-5.00"))],
        )

        with pytest.raises(InvalidLineAmountError):
            sanitize_lines(negative)

    def test_whole_cents_pass_through(self):
        lines = sanitize_lines(
            EntryDraft(
                entry_date=date(2023, 10, 2),
                description="Plain",
                business_id="Shared",
                lines=[LineDraft(account_id="1000", debit=Decimal("12.34"), description="x")],
            )
        )

        assert lines[0].debit == 1234
        assert lines[0].credit == 0
        assert lines[0].description == "x"


class TestOpeningBalances:
    def test_plugs_difference_to_opening_balance_equity(self, container):
        ledger = container.ledger_service

        entry = ledger.post_opening_balances(
            date(2023, 1, 1), {"1000": "5000.00", "2000": "1200.00"}
        )

        assert entry.description == OPENING_BALANCE_DESCRIPTION
        assert entry.is_balanced
        assert ledger.get_account_balance("1000") == 500000
        assert ledger.get_account_balance("2000") == 120000
        assert ledger.get_account_balance("3001") == 380000

    def test_unknown_account_is_rejected(self, container):
        with pytest.raises(AccountNotFoundError):
            container.ledger_service.post_opening_balances(date(2023, 1, 1), {"1999": "10"})


class TestAdjustingEntries:
    def test_reason_is_mandatory(self, container):
        lines = [
            LineDraft(account_id="6001", debit=Decimal("3.00")),
            LineDraft(account_id="1000", credit=Decimal("3.00")),
        ]

        with pytest.raises(AdjustmentReasonRequiredError):
            container.ledger_service.post_adjusting_entry(
                date(2023, 10, 31), "Bank fee", lines, "  "
            )

    def test_posts_flagged_entry_with_audit(self, container):
        lines = [
            LineDraft(account_id="6001", debit=Decimal("3.00")),
            LineDraft(account_id="1000", credit=Decimal("3.00")),
        ]

        entry = container.ledger_service.post_adjusting_entry(
            date(2023, 10, 31), "Bank fee", lines, "Missed monthly fee"
        )

        stored = container.ledger_service.get_entry(entry.id)
        assert stored.is_adjusting_entry
        assert stored.adjustment_reason == "Missed monthly fee"
        actions = {e.action for e in container.audit_log.list_recent()}
        assert AuditAction.CREATE_AJE in actions
