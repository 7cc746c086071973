"""Command-line interface for Small Business Ledger."""

import argparse
import json
import sys
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

from small_business_ledger import __version__
from small_business_ledger.config import Settings, get_settings
from small_business_ledger.container import Container
from small_business_ledger.domain.journal import EntryDraft, LineDraft
from small_business_ledger.domain.transactions import BankFeedItem
from small_business_ledger.domain.value_objects import (
    AccountType,
    TransactionStatus,
    TransactionType,
    format_minor_units,
    to_minor_units,
)
from small_business_ledger.exceptions import SmallBusinessLedgerError
from small_business_ledger.logging_config import bind_context, configure_logging
from small_business_ledger.services.identity import StaticIdentity
from small_business_ledger.services.interfaces import ReasonRequired
from small_business_ledger.services.reporting import financial_date_range


def _settings_for(args: argparse.Namespace) -> Settings:
    settings = get_settings()
    if args.database:
        settings = settings.model_copy(update={"database_path": Path(args.database)})
    return settings


def create_container(args: argparse.Namespace) -> Container:
    """Build the service container for the acting user."""
    settings = _settings_for(args)
    user_id = args.user or settings.user_id
    if user_id:
        bind_context(user_id=user_id)
    return Container(settings, identity=StaticIdentity(user_id))


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date (expected YYYY-MM-DD): {value}") from None


def _parse_amount(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"Invalid amount: {value}") from None


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _fail(error: Exception) -> int:
    print(f"Error: {error}")
    return 1


def cmd_init(args: argparse.Namespace) -> int:
    """Initialize a new database, optionally seeding the default chart."""
    settings = _settings_for(args)
    db_path = Path(settings.database_path)

    if db_path.exists() and not args.force:
        print(f"Database already exists at {db_path}")
        print("Use --force to reinitialize (WARNING: will delete existing data)")
        return 1
    if db_path.exists() and args.force:
        db_path.unlink()

    try:
        with create_container(args) as container:
            container.database.initialize()
            print(f"Initialized database at {db_path}")
            if args.seed:
                created = container.account_registry.seed_default_chart()
                print(f"Seeded {len(created)} accounts")
    except SmallBusinessLedgerError as e:
        return _fail(e)
    return 0


def cmd_version(args: argparse.Namespace) -> int:
    """Show version information."""
    print(f"Small Business Ledger v{__version__}")
    return 0


def cmd_accounts_list(args: argparse.Namespace) -> int:
    """List the chart of accounts with derived balances."""
    try:
        with create_container(args) as container:
            accounts = container.account_registry.list_accounts(args.all)
            if not accounts:
                print("No accounts found")
                return 0
            print(f"{'Code':<10} {'Name':<30} {'Type':<18} {'Balance':>14}")
            print("-" * 75)
            for account in accounts:
                balance = container.ledger_service.get_account_balance(account.id)
                flag = " (archived)" if not account.is_active else ""
                print(
                    f"{account.code:<10} {account.name + flag:<30} "
                    f"{account.account_type.value:<18} {format_minor_units(balance):>14}"
                )
            mismatches = container.account_registry.find_type_mismatches()
            for mismatch in mismatches:
                print(
                    f"Warning: {mismatch.account_id} is {mismatch.account_type.value} "
                    f"but parent {mismatch.parent_id} is {mismatch.parent_type.value}"
                )
    except SmallBusinessLedgerError as e:
        return _fail(e)
    return 0


def cmd_accounts_add(args: argparse.Namespace) -> int:
    """Add an account to the chart."""
    try:
        with create_container(args) as container:
            account = container.account_registry.create(
                args.name,
                parent_id=args.parent,
                account_type=AccountType(args.type) if args.type else None,
                code=args.code,
                is_bank_account=args.bank,
            )
            print(f"Account created: {account.id}")
            print(f"  Code: {account.code}")
            print(f"  Type: {account.account_type.value}")
    except SmallBusinessLedgerError as e:
        return _fail(e)
    return 0


def cmd_accounts_archive(args: argparse.Namespace) -> int:
    """Archive an account."""
    try:
        with create_container(args) as container:
            account = container.account_registry.archive(args.account_id)
            print(f"Archived {account.code} {account.name}")
    except SmallBusinessLedgerError as e:
        return _fail(e)
    return 0


def cmd_accounts_seed(args: argparse.Namespace) -> int:
    """Create the default small-business chart of accounts."""
    try:
        with create_container(args) as container:
            created = container.account_registry.seed_default_chart()
            print(f"Seeded {len(created)} accounts")
    except SmallBusinessLedgerError as e:
        return _fail(e)
    return 0


def _load_json(path: str) -> Any:
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")
    return json.loads(file_path.read_text())


def _draft_from_json(data: dict[str, Any], default_business_id: str) -> EntryDraft:
    return EntryDraft(
        entry_date=date.fromisoformat(data["date"]),
        description=data.get("description", ""),
        business_id=data.get("business_id", default_business_id),
        project_id=data.get("project_id"),
        lines=[
            LineDraft(
                account_id=line["account_id"],
                debit=Decimal(str(line.get("debit", "0"))),
                credit=Decimal(str(line.get("credit", "0"))),
                description=line.get("description", ""),
                business_id=line.get("business_id"),
                project_id=line.get("project_id"),
                contractor_id=line.get("contractor_id"),
            )
            for line in data.get("lines", [])
        ],
    )


def cmd_post(args: argparse.Namespace) -> int:
    """Post a journal entry described by a JSON file."""
    try:
        data = _load_json(args.file)
        with create_container(args) as container:
            draft = _draft_from_json(data, container.settings.default_business_id)
            if args.reason:
                entry = container.ledger_service.post_adjusting_entry(
                    draft.entry_date,
                    draft.description,
                    draft.lines,
                    args.reason,
                    business_id=draft.business_id,
                )
            else:
                entry = container.ledger_service.post(draft)
            print(f"Journal entry posted: {entry.id}")
            print(f"  Date: {entry.entry_date}")
            print(f"  Total: {format_minor_units(entry.total_debits)}")
    except (OSError, ValueError, KeyError, InvalidOperation) as e:
        return _fail(e)
    except SmallBusinessLedgerError as e:
        return _fail(e)
    return 0


def cmd_inbox_import(args: argparse.Namespace) -> int:
    """Stage bank-feed items from a JSON file."""
    try:
        raw_items = _load_json(args.file)
        items = [
            BankFeedItem(
                vendor_transaction_id=item["transaction_id"],
                transaction_date=date.fromisoformat(item["date"]),
                name=item.get("name", ""),
                amount=str(item["amount"]),
                pending=bool(item.get("pending", False)),
                merchant_name=item.get("merchant_name"),
            )
            for item in raw_items
        ]
        with create_container(args) as container:
            staged = container.staging_service.ingest_bank_feed(items, args.account)
            print(f"Imported {len(staged)} transactions ({len(items) - len(staged)} skipped)")
    except (OSError, ValueError, KeyError, InvalidOperation) as e:
        return _fail(e)
    except SmallBusinessLedgerError as e:
        return _fail(e)
    return 0


def cmd_inbox_list(args: argparse.Namespace) -> int:
    """List staged transactions."""
    try:
        with create_container(args) as container:
            status = TransactionStatus(args.status) if args.status else None
            staged = container.staging_service.list_inbox(status)
            if not staged:
                print("Inbox is empty")
                return 0
            print(f"{'ID':<34} {'Date':<12} {'Amount':>12} {'Status':<13} Description")
            print("-" * 90)
            for txn in staged:
                marker = ""
                if txn.pending:
                    marker = " [pending]"
                elif txn.is_postable_status and container.staging_service.is_possible_duplicate(
                    txn
                ):
                    marker = " [possible duplicate]"
                print(
                    f"{txn.id:<34} {txn.transaction_date.isoformat():<12} "
                    f"{format_minor_units(txn.amount):>12} {txn.status.value:<13} "
                    f"{txn.description}{marker}"
                )
    except ValueError as e:
        return _fail(e)
    except SmallBusinessLedgerError as e:
        return _fail(e)
    return 0


def cmd_inbox_categorize(args: argparse.Namespace) -> int:
    """Assign account, business, project or transfer target to a staged item."""
    try:
        with create_container(args) as container:
            txn = container.staging_service.categorize(
                args.transaction_id,
                account_id=args.account,
                business_id=args.business,
                project_id=args.project,
                contractor_id=args.contractor,
                transfer_account_id=args.transfer_to,
                transaction_type=TransactionType(args.type) if args.type else None,
            )
            print(f"Categorized {txn.id}")
            print(f"  Type: {txn.transaction_type.value}")
            print(f"  Account: {txn.transfer_account_id or txn.assigned_account or '-'}")
            print(f"  Business: {txn.assigned_business or '-'}")
    except SmallBusinessLedgerError as e:
        return _fail(e)
    return 0


def cmd_inbox_post(args: argparse.Namespace) -> int:
    """Post a staged transaction to the journal."""
    try:
        with create_container(args) as container:
            entry = container.staging_service.post_staged(args.transaction_id)
            print(f"Posted {args.transaction_id} as journal entry {entry.id}")
    except SmallBusinessLedgerError as e:
        return _fail(e)
    return 0


def cmd_reconcile_candidates(args: argparse.Namespace) -> int:
    """List uncleared lines of an account through a statement date."""
    try:
        with create_container(args) as container:
            candidates = container.period_lock_manager.clearing_candidates(
                args.account, args.end_date
            )
            for candidate in candidates:
                line = candidate.line
                print(
                    f"{candidate.token:<40} {candidate.entry.entry_date.isoformat():<12} "
                    f"{format_minor_units(line.net_amount):>12} "
                    f"{line.description or candidate.entry.description}"
                )
    except SmallBusinessLedgerError as e:
        return _fail(e)
    return 0


def cmd_reconcile_finalize(args: argparse.Namespace) -> int:
    """Clear lines against a statement and lock the account through its end date."""
    tokens = [token for token in args.lines.split(",") if token] if args.lines else []
    try:
        with create_container(args) as container:
            balance, _ = to_minor_units(args.balance)
            business_id = args.business or container.settings.default_business_id
            reconciliation = container.period_lock_manager.finalize_reconciliation(
                business_id, args.account, args.end_date, balance, tokens
            )
            print(f"Reconciliation locked: {reconciliation.id}")
            print(f"  Account: {reconciliation.account_id}")
            print(f"  Through: {reconciliation.statement_end_date}")
            print(f"  Cleared lines: {len(reconciliation.cleared_line_ids)}")
    except SmallBusinessLedgerError as e:
        return _fail(e)
    return 0


def cmd_edit(args: argparse.Namespace) -> int:
    """Reverse a posted transaction so it can be corrected and re-posted."""
    try:
        with create_container(args) as container:
            plan = container.adjustment_workflow.plan(args.transaction_id, args.reason)
            if isinstance(plan, ReasonRequired):
                print("Error: a reason is required to edit a posted transaction (--reason)")
                if plan.original_date_locked:
                    print("  The original date is locked; the reversal will be dated today")
                return 1
            result = container.adjustment_workflow.edit_posted_transaction(
                args.transaction_id, args.reason
            )
            print(f"Reversal posted: {result.reversal.id}")
            print(f"  Dated: {result.reversal.entry_date}")
            if result.plan.date_moved:
                print("  Original date is locked; reversal moved to the open period")
            print(f"Transaction {result.transaction.id} is ready to re-post")
    except SmallBusinessLedgerError as e:
        return _fail(e)
    return 0


def _report_range(args: argparse.Namespace, today: date) -> tuple[date, date]:
    start, end = financial_date_range(args.period, today)
    return args.start_date or start, args.end_date or end


def cmd_report(args: argparse.Namespace) -> int:
    """Print a financial report as JSON."""
    try:
        with create_container(args) as container:
            reporting = container.reporting_service
            today = container.clock.today()
            if args.report_type == "pnl":
                start, end = _report_range(args, today)
                report = reporting.profit_and_loss(start, end, args.business)
            elif args.report_type == "balance-sheet":
                report = reporting.balance_sheet(args.as_of or today, args.business)
            elif args.report_type == "cash-flow":
                start, end = _report_range(args, today)
                report = reporting.cash_flow(start, end, args.business)
            elif args.report_type == "ar-aging":
                report = reporting.ar_aging(args.business)
            elif args.report_type == "project":
                if not args.project:
                    print("Error: --project is required for the project report")
                    return 1
                report = reporting.project_profitability(args.project)
            elif args.report_type == "gl-csv":
                print(reporting.general_ledger_csv(), end="")
                return 0
            else:
                report = reporting.dashboard(args.business)
            _print_json(report)
    except ValueError as e:
        return _fail(e)
    except SmallBusinessLedgerError as e:
        return _fail(e)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="sbl",
        description="Small Business Ledger - double-entry bookkeeping for small businesses",
    )
    parser.add_argument(
        "--database",
        "-d",
        help="Path to SQLite database file",
        default=None,
    )
    parser.add_argument(
        "--user",
        "-u",
        help="Acting user id (defaults to SBL_USER_ID)",
        default=None,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # init command
    init_parser = subparsers.add_parser("init", help="Initialize a new database")
    init_parser.add_argument(
        "--force",
        "-f",
        action="store_true",
        help="Force reinitialization (deletes existing data)",
    )
    init_parser.add_argument(
        "--seed", action="store_true", help="Seed the default chart of accounts"
    )
    init_parser.set_defaults(func=cmd_init)

    # version command
    version_parser = subparsers.add_parser("version", help="Show version")
    version_parser.set_defaults(func=cmd_version)

    # accounts command group
    accounts_parser = subparsers.add_parser("accounts", help="Chart of accounts commands")
    accounts_subparsers = accounts_parser.add_subparsers(
        dest="accounts_command", help="Accounts subcommands"
    )

    accounts_list_parser = accounts_subparsers.add_parser("list", help="List accounts")
    accounts_list_parser.add_argument(
        "--all", action="store_true", help="Include archived accounts"
    )
    accounts_list_parser.set_defaults(func=cmd_accounts_list)

    accounts_add_parser = accounts_subparsers.add_parser("add", help="Add an account")
    accounts_add_parser.add_argument("name", help="Account name")
    accounts_add_parser.add_argument("--parent", help="Parent account ID")
    accounts_add_parser.add_argument(
        "--type",
        choices=[t.value for t in AccountType],
        help="Account type for top-level accounts (default: expense)",
    )
    accounts_add_parser.add_argument("--code", help="Account code")
    accounts_add_parser.add_argument(
        "--bank", action="store_true", help="Mark as a bank or cash account"
    )
    accounts_add_parser.set_defaults(func=cmd_accounts_add)

    accounts_archive_parser = accounts_subparsers.add_parser(
        "archive", help="Archive an account"
    )
    accounts_archive_parser.add_argument("account_id", help="Account ID")
    accounts_archive_parser.set_defaults(func=cmd_accounts_archive)

    accounts_seed_parser = accounts_subparsers.add_parser(
        "seed", help="Create the default chart of accounts"
    )
    accounts_seed_parser.set_defaults(func=cmd_accounts_seed)

    # post command
    post_parser = subparsers.add_parser("post", help="Post a journal entry from a JSON file")
    post_parser.add_argument("file", help="JSON entry file")
    post_parser.add_argument(
        "--reason", help="Post as an adjusting entry with this reason"
    )
    post_parser.set_defaults(func=cmd_post)

    # inbox command group
    inbox_parser = subparsers.add_parser("inbox", help="Staged transaction commands")
    inbox_subparsers = inbox_parser.add_subparsers(
        dest="inbox_command", help="Inbox subcommands"
    )

    inbox_import_parser = inbox_subparsers.add_parser(
        "import", help="Import a bank-feed JSON file"
    )
    inbox_import_parser.add_argument("file", help="Bank-feed JSON file")
    inbox_import_parser.add_argument(
        "--account", required=True, help="Bank account ID the feed belongs to"
    )
    inbox_import_parser.set_defaults(func=cmd_inbox_import)

    inbox_list_parser = inbox_subparsers.add_parser("list", help="List staged transactions")
    inbox_list_parser.add_argument(
        "--status",
        choices=[s.value for s in TransactionStatus],
        help="Filter by status",
    )
    inbox_list_parser.set_defaults(func=cmd_inbox_list)

    inbox_categorize_parser = inbox_subparsers.add_parser(
        "categorize", help="Categorize a staged transaction"
    )
    inbox_categorize_parser.add_argument("transaction_id", help="Staged transaction ID")
    inbox_categorize_parser.add_argument("--account", help="Category account ID")
    inbox_categorize_parser.add_argument("--business", help="Business ID")
    inbox_categorize_parser.add_argument("--project", help="Project ID")
    inbox_categorize_parser.add_argument("--contractor", help="Contractor ID")
    inbox_categorize_parser.add_argument(
        "--transfer-to", help="Counterpart account ID (marks the item as a transfer)"
    )
    inbox_categorize_parser.add_argument(
        "--type",
        choices=[t.value for t in TransactionType],
        help="Override the transaction type",
    )
    inbox_categorize_parser.set_defaults(func=cmd_inbox_categorize)

    inbox_post_parser = inbox_subparsers.add_parser(
        "post", help="Post a staged transaction"
    )
    inbox_post_parser.add_argument("transaction_id", help="Staged transaction ID")
    inbox_post_parser.set_defaults(func=cmd_inbox_post)

    # reconcile command group
    reconcile_parser = subparsers.add_parser("reconcile", help="Reconciliation commands")
    reconcile_subparsers = reconcile_parser.add_subparsers(
        dest="reconcile_command", help="Reconcile subcommands"
    )

    reconcile_candidates_parser = reconcile_subparsers.add_parser(
        "candidates", help="List uncleared lines for a statement"
    )
    reconcile_candidates_parser.add_argument("--account", required=True, help="Account ID")
    reconcile_candidates_parser.add_argument(
        "--end-date", required=True, type=_parse_date, help="Statement end date (YYYY-MM-DD)"
    )
    reconcile_candidates_parser.set_defaults(func=cmd_reconcile_candidates)

    reconcile_finalize_parser = reconcile_subparsers.add_parser(
        "finalize", help="Finalize a reconciliation and lock the period"
    )
    reconcile_finalize_parser.add_argument("--account", required=True, help="Account ID")
    reconcile_finalize_parser.add_argument(
        "--end-date", required=True, type=_parse_date, help="Statement end date (YYYY-MM-DD)"
    )
    reconcile_finalize_parser.add_argument(
        "--balance", required=True, type=_parse_amount, help="Statement ending balance"
    )
    reconcile_finalize_parser.add_argument(
        "--lines", help="Comma-separated cleared line tokens"
    )
    reconcile_finalize_parser.add_argument("--business", help="Business ID")
    reconcile_finalize_parser.set_defaults(func=cmd_reconcile_finalize)

    # edit command
    edit_parser = subparsers.add_parser("edit", help="Reverse a posted transaction for editing")
    edit_parser.add_argument("transaction_id", help="Staged transaction ID")
    edit_parser.add_argument("--reason", help="Reason for the adjustment")
    edit_parser.set_defaults(func=cmd_edit)

    # report command
    report_parser = subparsers.add_parser("report", help="Generate financial reports")
    report_parser.add_argument(
        "report_type",
        choices=[
            "pnl",
            "balance-sheet",
            "cash-flow",
            "ar-aging",
            "dashboard",
            "project",
            "gl-csv",
        ],
        help="Report to generate",
    )
    report_parser.add_argument(
        "--period",
        choices=["month", "quarter", "year", "ytd", "lastYear"],
        default="ytd",
        help="Named date range (default: ytd)",
    )
    report_parser.add_argument(
        "--start-date", type=_parse_date, help="Start date (YYYY-MM-DD)"
    )
    report_parser.add_argument("--end-date", type=_parse_date, help="End date (YYYY-MM-DD)")
    report_parser.add_argument(
        "--as-of", type=_parse_date, help="As-of date for the balance sheet"
    )
    report_parser.add_argument("--business", help="Business ID (default: combined)")
    report_parser.add_argument("--project", help="Project ID for the project report")
    report_parser.set_defaults(func=cmd_report)

    args = parser.parse_args(argv)
    configure_logging(get_settings())

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "accounts" and args.accounts_command is None:
        accounts_parser.print_help()
        return 0

    if args.command == "inbox" and args.inbox_command is None:
        inbox_parser.print_help()
        return 0

    if args.command == "reconcile" and args.reconcile_command is None:
        reconcile_parser.print_help()
        return 0

    result: int = args.func(args)
    return result


if __name__ == "__main__":
    sys.exit(main())
