"""Tests for the chart-of-accounts registry."""

from datetime import date

import pytest

from small_business_ledger.domain.audit import AuditAction
from small_business_ledger.domain.value_objects import AccountStatus, AccountType
from small_business_ledger.exceptions import AccountNotFoundError, UnauthenticatedError
from small_business_ledger.services.accounts import DEFAULT_CHART, AccountRegistry
from small_business_ledger.services.identity import StaticIdentity


class TestSeedDefaultChart:
    def test_seeds_every_account_once(self, empty_container):
        registry = empty_container.account_registry

        created = registry.seed_default_chart()
        again = registry.seed_default_chart()

        assert len(created) == len(DEFAULT_CHART)
        assert again == []
        gas = registry.get("6013")
        assert gas.parent_id == "6012"
        assert gas.account_type == AccountType.EXPENSE

    def test_bank_flags(self, container):
        flagged = {a.id for a in container.account_registry.list_accounts() if a.is_bank_account}

        assert flagged == {"1000", "1001", "2000"}


class TestCreate:
    def test_child_inherits_parent_type(self, container):
        registry = container.account_registry

        child = registry.create(
            "Tolls", parent_id="6012", account_type=AccountType.INCOME
        )

        assert child.account_type == AccountType.EXPENSE
        assert child.parent_id == "6012"
        assert child.code == "6012.2"

    def test_next_top_level_code_in_type_block(self, container):
        account = container.account_registry.create(
            "Loan Payable", account_type=AccountType.LIABILITY
        )

        assert account.code.startswith("2")
        assert account.code not in {"2000", "2100"}

    def test_defaults_to_expense(self, empty_container):
        account = empty_container.account_registry.create("Misc")

        assert account.account_type == AccountType.EXPENSE
        assert account.code == "6000"

    def test_unknown_parent(self, container):
        with pytest.raises(AccountNotFoundError):
            container.account_registry.create("Orphan", parent_id="9999")


class TestArchive:
    def test_archived_account_hidden_but_kept(self, container, draft):
        container.ledger_service.post(draft(date(2023, 10, 2), "6004", "1000", "12.00"))
        registry = container.account_registry

        archived = registry.archive("6004")

        assert archived.status == AccountStatus.ARCHIVED
        assert "6004" not in {a.id for a in registry.list_accounts()}
        assert "6004" in {a.id for a in registry.list_accounts(include_archived=True)}
        assert container.ledger_service.get_account_balance("6004") == 1200
        actions = [e.action for e in container.audit_log.list_recent()]
        assert AuditAction.ACCOUNT_ARCHIVE in actions


class TestFindTypeMismatches:
    def test_reports_child_with_different_type(self, container):
        registry = container.account_registry
        child = registry.create("Fuel Cards", parent_id="6012")
        child.account_type = AccountType.LIABILITY
        container.account_repository.update("user-1", child)

        mismatches = registry.find_type_mismatches()

        assert len(mismatches) == 1
        assert mismatches[0].account_id == child.id
        assert mismatches[0].parent_type == AccountType.EXPENSE

    def test_clean_chart(self, container):
        assert container.account_registry.find_type_mismatches() == []


class TestIdentity:
    def test_unauthenticated_user_is_refused(self, container):
        registry = AccountRegistry(
            container.database,
            container.account_repository,
            StaticIdentity(None),
            container.audit_log,
        )

        with pytest.raises(UnauthenticatedError):
            registry.list_accounts()

    def test_label_falls_back_to_user_id(self):
        assert StaticIdentity("u-9").current_user_label() == "u-9"
        assert StaticIdentity(None).current_user_label() == "anonymous"
