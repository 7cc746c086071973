"""Tests for CLI module."""

import json
from pathlib import Path

import pytest

from small_business_ledger.cli import cmd_version, main
from small_business_ledger.config import Settings, get_settings
from small_business_ledger.container import Container
from small_business_ledger.domain.value_objects import TransactionStatus
from small_business_ledger.services.identity import StaticIdentity


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    monkeypatch.delenv("SBL_USER_ID", raising=False)
    monkeypatch.delenv("SBL_DATABASE_PATH", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def db_path(tmp_path) -> Path:
    path = tmp_path / "ledger.db"
    assert main(["--database", str(path), "--user", "u1", "init", "--seed"]) == 0
    return path


def run(db_path: Path, *argv: str) -> int:
    return main(["--database", str(db_path), "--user", "u1", *argv])


def write_json(path: Path, payload) -> str:
    path.write_text(json.dumps(payload))
    return str(path)


def open_container(db_path: Path) -> Container:
    return Container(
        Settings(database_path=db_path, _env_file=None), identity=StaticIdentity("u1")
    )


class TestCmdVersion:
    def test_prints_version(self, capsys):
        class Args:
            pass

        assert cmd_version(Args()) == 0
        assert "Small Business Ledger v0.1.0" in capsys.readouterr().out


class TestInit:
    def test_creates_and_seeds(self, tmp_path, capsys):
        path = tmp_path / "nested" / "ledger.db"

        result = main(["--database", str(path), "--user", "u1", "init", "--seed"])

        assert result == 0
        assert path.exists()
        out = capsys.readouterr().out
        assert "Initialized database" in out
        assert "Seeded 29 accounts" in out

    def test_refuses_existing_database(self, db_path, capsys):
        assert run(db_path, "init") == 1
        assert "already exists" in capsys.readouterr().out

    def test_force_reinitializes(self, db_path, capsys):
        assert run(db_path, "init", "--force") == 0
        with open_container(db_path) as container:
            assert container.account_registry.list_accounts() == []


class TestAccounts:
    def test_list(self, db_path, capsys):
        assert run(db_path, "accounts", "list") == 0

        out = capsys.readouterr().out
        assert "Checking" in out
        assert "Opening Balance Equity" in out

    def test_add_and_archive(self, db_path, capsys):
        assert run(db_path, "accounts", "add", "Tolls", "--parent", "6012") == 0
        assert "6012.2" in capsys.readouterr().out

        assert run(db_path, "accounts", "archive", "6004") == 0
        assert "Archived 6004 Meals" in capsys.readouterr().out

    def test_requires_user(self, db_path, capsys):
        assert main(["--database", str(db_path), "accounts", "list"]) == 1
        assert "Authentication required" in capsys.readouterr().out


class TestPost:
    def test_posts_entry_from_file(self, db_path, tmp_path, capsys):
        entry_file = write_json(
            tmp_path / "entry.json",
            {
                "date": "2023-10-02",
                "description": "Kitchen job",
                "lines": [
                    {"account_id": "1000", "debit": "100.00"},
                    {"account_id": "4000", "credit": "100.00"},
                ],
            },
        )

        assert run(db_path, "post", entry_file) == 0
        assert "Total: $100.00" in capsys.readouterr().out

    def test_unbalanced_entry_reports_error(self, db_path, tmp_path, capsys):
        entry_file = write_json(
            tmp_path / "entry.json",
            {
                "date": "2023-10-02",
                "lines": [
                    {"account_id": "1000", "debit": "100.00"},
                    {"account_id": "4000", "credit": "99.99"},
                ],
            },
        )

        assert run(db_path, "post", entry_file) == 1
        assert "Error: Entry is unbalanced" in capsys.readouterr().out

    def test_missing_file(self, db_path, capsys):
        assert run(db_path, "post", "/nonexistent/entry.json") == 1
        assert "File not found" in capsys.readouterr().out


class TestInboxWorkflow:
    def test_import_categorize_post_edit(self, db_path, tmp_path, capsys):
        feed = write_json(
            tmp_path / "feed.json",
            [
                {"transaction_id": "v1", "date": "2023-10-05", "name": "Lumber", "amount": 75},
                {
                    "transaction_id": "v2",
                    "date": "2023-10-06",
                    "name": "Gas station",
                    "amount": "30.00",
                    "pending": True,
                },
            ],
        )

        assert run(db_path, "inbox", "import", feed, "--account", "1000") == 0
        assert "Imported 2 transactions (0 skipped)" in capsys.readouterr().out
        assert run(db_path, "inbox", "import", feed, "--account", "1000") == 0
        assert "Imported 0 transactions (2 skipped)" in capsys.readouterr().out

        with open_container(db_path) as container:
            lumber = next(
                t for t in container.staging_service.list_inbox() if t.description == "Lumber"
            )

        assert run(db_path, "inbox", "list") == 0
        assert "[pending]" in capsys.readouterr().out

        assert (
            run(db_path, "inbox", "categorize", lumber.id, "--account", "5200", "--business", "Shared")
            == 0
        )
        assert run(db_path, "inbox", "post", lumber.id) == 0
        assert "as journal entry" in capsys.readouterr().out

        assert run(db_path, "edit", lumber.id) == 1
        assert "a reason is required" in capsys.readouterr().out
        assert run(db_path, "edit", lumber.id, "--reason", "Wrong job") == 0
        assert "ready to re-post" in capsys.readouterr().out

        with open_container(db_path) as container:
            stored = container.staging_service.get(lumber.id)
            assert stored.status == TransactionStatus.NEEDS_REPOST

    def test_type_option_takes_item_out_of_transfer(self, db_path, tmp_path, capsys):
        feed = write_json(
            tmp_path / "feed.json",
            [{"transaction_id": "z1", "date": "2023-10-05", "name": "Zelle payment to plumber", "amount": 80}],
        )
        run(db_path, "inbox", "import", feed, "--account", "1000")
        with open_container(db_path) as container:
            (txn,) = container.staging_service.list_inbox()
        capsys.readouterr()

        assert (
            run(
                db_path,
                "inbox",
                "categorize",
                txn.id,
                "--type",
                "expense",
                "--account",
                "5100",
                "--business",
                "Shared",
            )
            == 0
        )
        assert "Type: expense" in capsys.readouterr().out
        assert run(db_path, "inbox", "post", txn.id) == 0


class TestReconcile:
    def test_finalize_locks_period(self, db_path, tmp_path, capsys):
        entry_file = write_json(
            tmp_path / "entry.json",
            {
                "date": "2023-10-02",
                "description": "Deposit",
                "lines": [
                    {"account_id": "1000", "debit": "100.00"},
                    {"account_id": "4000", "credit": "100.00"},
                ],
            },
        )
        run(db_path, "post", entry_file)
        with open_container(db_path) as container:
            (entry,) = container.ledger_service.list_entries()
        capsys.readouterr()

        assert run(db_path, "reconcile", "candidates", "--account", "1000", "--end-date", "2023-10-31") == 0
        assert entry.line_tokens()[0] in capsys.readouterr().out

        assert (
            run(
                db_path,
                "reconcile",
                "finalize",
                "--account",
                "1000",
                "--end-date",
                "2023-10-31",
                "--balance",
                "100.00",
                "--lines",
                entry.line_tokens()[0],
            )
            == 0
        )
        assert "Reconciliation locked" in capsys.readouterr().out

        assert run(db_path, "post", entry_file) == 1
        assert "closed through 2023-10-31" in capsys.readouterr().out

    def test_mismatch_is_reported(self, db_path, capsys):
        result = run(
            db_path,
            "reconcile",
            "finalize",
            "--account",
            "1000",
            "--end-date",
            "2023-10-31",
            "--balance",
            "5.00",
        )

        assert result == 1
        assert "Reconciliation failed for account 1000" in capsys.readouterr().out


class TestReport:
    def test_pnl_json(self, db_path, tmp_path, capsys):
        entry_file = write_json(
            tmp_path / "entry.json",
            {
                "date": "2023-10-02",
                "description": "Kitchen job",
                "lines": [
                    {"account_id": "1000", "debit": "100.00"},
                    {"account_id": "4000", "credit": "100.00"},
                ],
            },
        )
        run(db_path, "post", entry_file)
        capsys.readouterr()

        assert (
            run(
                db_path,
                "report",
                "pnl",
                "--start-date",
                "2023-01-01",
                "--end-date",
                "2023-12-31",
            )
            == 0
        )

        report = json.loads(capsys.readouterr().out)
        assert report["report_name"] == "Profit and Loss"
        assert report["totals"]["net_income"] == 10000

    @pytest.mark.parametrize("report_type", ["balance-sheet", "cash-flow", "ar-aging", "dashboard"])
    def test_other_reports_render(self, db_path, capsys, report_type):
        assert run(db_path, "report", report_type) == 0
        assert "report_name" in json.loads(capsys.readouterr().out)

    def test_general_ledger_csv(self, db_path, capsys):
        assert run(db_path, "report", "gl-csv") == 0
        assert capsys.readouterr().out.startswith("Date,Business,Account")
