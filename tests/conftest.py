from datetime import date
from decimal import Decimal

import pytest

from small_business_ledger.config import Settings
from small_business_ledger.container import Container
from small_business_ledger.domain.clock import FixedClock
from small_business_ledger.domain.journal import EntryDraft, LineDraft
from small_business_ledger.services.identity import StaticIdentity

USER_ID = "user-1"


@pytest.fixture
def settings() -> Settings:
    return Settings(database_path=":memory:", _env_file=None)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(date(2023, 12, 15))


@pytest.fixture
def identity() -> StaticIdentity:
    return StaticIdentity(USER_ID, label="Pat Owner")


@pytest.fixture
def container(settings: Settings, identity: StaticIdentity, clock: FixedClock):
    """Container over an in-memory database with the default chart seeded."""
    with Container(settings, identity=identity, clock=clock) as c:
        c.account_registry.seed_default_chart()
        yield c


@pytest.fixture
def empty_container(settings: Settings, identity: StaticIdentity, clock: FixedClock):
    with Container(settings, identity=identity, clock=clock) as c:
        yield c


def make_draft(
    entry_date: date,
    debit_account: str,
    credit_account: str,
    amount: str,
    description: str = "Test entry",
    business_id: str = "Shared",
    project_id: str | None = None,
) -> EntryDraft:
    """Two-line entry moving ``amount`` from ``credit_account`` to ``debit_account``."""
    value = Decimal(amount)
    return EntryDraft(
        entry_date=entry_date,
        description=description,
        business_id=business_id,
        project_id=project_id,
        lines=[
            LineDraft(account_id=debit_account, debit=value),
            LineDraft(account_id=credit_account, credit=value),
        ],
    )


@pytest.fixture
def draft():
    return make_draft
