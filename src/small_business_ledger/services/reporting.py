"""Financial reports derived from the journal.

The module-level functions are pure: they take the journal, the chart of
accounts and any other inputs explicitly and return plain dicts, so calling
one twice with the same arguments gives the same report. ``ReportingServiceImpl``
only loads the inputs for the current user and delegates.

All amounts are integer cents.
"""

from __future__ import annotations

import csv
import io
from collections import defaultdict
from collections.abc import Collection, Iterable
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from dateutil.relativedelta import relativedelta

from small_business_ledger.domain.accounts import Account
from small_business_ledger.domain.clock import Clock, SystemClock
from small_business_ledger.domain.invoices import Invoice
from small_business_ledger.domain.journal import JournalEntry
from small_business_ledger.domain.reconciliation import Reconciliation
from small_business_ledger.domain.transactions import StagedTransaction
from small_business_ledger.domain.value_objects import (
    AccountType,
    InvoiceStatus,
    TransactionStatus,
    minor_to_decimal,
)
from small_business_ledger.logging_config import get_logger
from small_business_ledger.repositories.interfaces import (
    AccountRepository,
    InvoiceRepository,
    JournalRepository,
    ReconciliationRepository,
    StagedTransactionRepository,
)
from small_business_ledger.services.identity import IdentityProvider
from small_business_ledger.services.interfaces import ReportingService

logger = get_logger(__name__)

COMBINED = "Combined"
RETAINED_EARNINGS_NAME = "Retained Earnings"
VIRTUAL_RETAINED_EARNINGS_ID = "virtual-re"
TRAVEL_ACCOUNT_NAMES = frozenset({"Travel", "Gas"})
AGING_BUCKETS = ("current", "days_1_30", "days_31_60", "days_61_90", "days_over_90")
GENERAL_LEDGER_COLUMNS = ("Date", "Business", "Account", "Description", "Debit", "Credit", "Project")


def _in_business(entry: JournalEntry, business_id: str | None) -> bool:
    return business_id in (None, COMBINED) or entry.business_id == business_id


def _raw_totals(entries: Iterable[JournalEntry]) -> dict[str, int]:
    """Debit-minus-credit per account."""
    totals: dict[str, int] = defaultdict(int)
    for entry in entries:
        for line in entry.lines:
            totals[line.account_id] += line.net_amount
    return totals


def _line_item(account: Account, amount: int) -> dict[str, Any]:
    return {
        "account_id": account.id,
        "account_code": account.code,
        "account_name": account.name,
        "amount": amount,
    }


def _sorted(accounts: Iterable[Account]) -> list[Account]:
    return sorted(accounts, key=lambda a: a.code)


def financial_date_range(kind: str, today: date) -> tuple[date, date]:
    """Resolve a named reporting period relative to ``today``.

    ``kind`` is one of month, quarter, year, ytd or lastYear.
    """
    if kind == "month":
        start = today.replace(day=1)
        return start, start + relativedelta(months=1) - timedelta(days=1)
    if kind == "quarter":
        start = date(today.year, 3 * ((today.month - 1) // 3) + 1, 1)
        return start, start + relativedelta(months=3) - timedelta(days=1)
    if kind == "ytd":
        return date(today.year, 1, 1), today
    if kind == "lastYear":
        return date(today.year - 1, 1, 1), date(today.year - 1, 12, 31)
    if kind == "year":
        return date(today.year, 1, 1), date(today.year, 12, 31)
    raise ValueError(f"Unknown date range: {kind}")


def profit_and_loss(
    entries: Iterable[JournalEntry],
    accounts: Iterable[Account],
    start_date: date,
    end_date: date,
    business_id: str | None = None,
) -> dict[str, Any]:
    """Income, cost of services and expenses for entries dated in the range."""
    in_range = [
        e
        for e in entries
        if start_date <= e.entry_date <= end_date and _in_business(e, business_id)
    ]
    totals = _raw_totals(in_range)

    sections: dict[AccountType, list[dict[str, Any]]] = {
        AccountType.INCOME: [],
        AccountType.COST_OF_SERVICES: [],
        AccountType.EXPENSE: [],
    }
    for account in _sorted(accounts):
        if account.account_type not in sections:
            continue
        amount = account.normal_balance(totals.get(account.id, 0))
        if amount != 0:
            sections[account.account_type].append(_line_item(account, amount))

    total_revenue = sum(item["amount"] for item in sections[AccountType.INCOME])
    total_cos = sum(item["amount"] for item in sections[AccountType.COST_OF_SERVICES])
    total_expenses = sum(item["amount"] for item in sections[AccountType.EXPENSE])
    gross_profit = total_revenue - total_cos

    return {
        "report_name": "Profit and Loss",
        "date_range": {"start_date": start_date, "end_date": end_date},
        "business_id": business_id or COMBINED,
        "data": {
            "revenue": sections[AccountType.INCOME],
            "cost_of_services": sections[AccountType.COST_OF_SERVICES],
            "expenses": sections[AccountType.EXPENSE],
        },
        "totals": {
            "total_revenue": total_revenue,
            "total_cost_of_services": total_cos,
            "gross_profit": gross_profit,
            "total_expenses": total_expenses,
            "net_income": gross_profit - total_expenses,
        },
    }


def balance_sheet(
    entries: Iterable[JournalEntry],
    accounts: Iterable[Account],
    as_of_date: date,
    business_id: str | None = None,
    retained_earnings_account_id: str | None = None,
) -> dict[str, Any]:
    """Assets, liabilities and equity as of a date.

    Income statement activity through the date is folded into the retained
    earnings account when one exists (matched by id, then by name), otherwise
    into a synthetic "Retained Earnings (YTD)" line. ``is_balanced`` is a
    diagnostic; an unbalanced sheet is returned as-is with its difference.
    """
    account_list = _sorted(accounts)
    by_id = {a.id: a for a in account_list}
    included = [
        e for e in entries if e.entry_date <= as_of_date and _in_business(e, business_id)
    ]
    totals = _raw_totals(included)

    net_income = 0
    for account_id, raw in totals.items():
        account = by_id.get(account_id)
        if account is not None and account.account_type.is_profit_and_loss:
            net_income -= raw

    retained = by_id.get(retained_earnings_account_id or "") or next(
        (
            a
            for a in account_list
            if a.account_type == AccountType.EQUITY and a.name == RETAINED_EARNINGS_NAME
        ),
        None,
    )

    assets: list[dict[str, Any]] = []
    liabilities: list[dict[str, Any]] = []
    equity: list[dict[str, Any]] = []
    for account in account_list:
        amount = account.normal_balance(totals.get(account.id, 0))
        if account.account_type == AccountType.ASSET:
            target = assets
        elif account.account_type == AccountType.LIABILITY:
            target = liabilities
        elif account.account_type == AccountType.EQUITY:
            target = equity
            if retained is not None and account.id == retained.id:
                amount += net_income
        else:
            continue
        if amount != 0:
            target.append(_line_item(account, amount))

    if retained is None and net_income != 0:
        equity.append(
            {
                "account_id": VIRTUAL_RETAINED_EARNINGS_ID,
                "account_code": "",
                "account_name": "Retained Earnings (YTD)",
                "amount": net_income,
            }
        )

    total_assets = sum(item["amount"] for item in assets)
    total_liabilities = sum(item["amount"] for item in liabilities)
    total_equity = sum(item["amount"] for item in equity)
    difference = total_assets - (total_liabilities + total_equity)
    if difference != 0:
        logger.warning(
            "balance_sheet_out_of_balance",
            as_of_date=as_of_date.isoformat(),
            difference=difference,
        )

    return {
        "report_name": "Balance Sheet",
        "as_of_date": as_of_date,
        "business_id": business_id or COMBINED,
        "data": {"assets": assets, "liabilities": liabilities, "equity": equity},
        "totals": {
            "total_assets": total_assets,
            "total_liabilities": total_liabilities,
            "total_equity": total_equity,
            "total_liabilities_and_equity": total_liabilities + total_equity,
            "net_income": net_income,
            "difference": difference,
            "is_balanced": abs(difference) < 1,
        },
    }


def cash_flow(
    entries: Iterable[JournalEntry],
    start_date: date,
    end_date: date,
    cash_account_ids: Collection[str],
    business_id: str | None = None,
) -> dict[str, Any]:
    """Monthly inflow (debits) and outflow (credits) on the cash accounts."""
    months: dict[str, dict[str, int]] = {}
    for entry in entries:
        if not (start_date <= entry.entry_date <= end_date) or not _in_business(
            entry, business_id
        ):
            continue
        for line in entry.lines:
            if line.account_id in cash_account_ids:
                bucket = months.setdefault(
                    entry.entry_date.strftime("%Y-%m"), {"inflow": 0, "outflow": 0}
                )
                bucket["inflow"] += line.debit
                bucket["outflow"] += line.credit

    data = [
        {
            "month": month,
            "inflow": values["inflow"],
            "outflow": values["outflow"],
            "net": values["inflow"] - values["outflow"],
        }
        for month, values in sorted(months.items())
    ]
    inflow = sum(row["inflow"] for row in data)
    outflow = sum(row["outflow"] for row in data)
    return {
        "report_name": "Cash Flow",
        "date_range": {"start_date": start_date, "end_date": end_date},
        "business_id": business_id or COMBINED,
        "data": data,
        "totals": {"inflow": inflow, "outflow": outflow, "net": inflow - outflow},
    }


def _aging_bucket(days_overdue: int) -> str:
    if days_overdue <= 0:
        return "current"
    if days_overdue <= 30:
        return "days_1_30"
    if days_overdue <= 60:
        return "days_31_60"
    if days_overdue <= 90:
        return "days_61_90"
    return "days_over_90"


def ar_aging(
    invoices: Iterable[Invoice], today: date, business_id: str | None = None
) -> dict[str, Any]:
    """Bucket unpaid, non-draft invoices by days past due.

    Outstanding is floored at zero so overpaid invoices never reduce totals.
    """
    buckets = dict.fromkeys(AGING_BUCKETS, 0)
    data = []
    for invoice in invoices:
        if business_id not in (None, COMBINED) and invoice.business_id != business_id:
            continue
        if invoice.status == InvoiceStatus.DRAFT or invoice.outstanding <= 0:
            continue
        days_overdue = (today - invoice.aging_date).days
        bucket = _aging_bucket(days_overdue)
        buckets[bucket] += invoice.outstanding
        data.append(
            {
                "invoice_id": invoice.id,
                "invoice_number": invoice.invoice_number,
                "customer_id": invoice.customer_id,
                "due_date": invoice.aging_date,
                "days_overdue": days_overdue,
                "outstanding": invoice.outstanding,
                "bucket": bucket,
                "status": invoice.status_as_of(today).value,
            }
        )
    return {
        "report_name": "A/R Aging",
        "as_of_date": today,
        "business_id": business_id or COMBINED,
        "data": sorted(data, key=lambda row: -row["days_overdue"]),
        "totals": {**buckets, "total": sum(buckets.values())},
    }


def project_profitability(
    entries: Iterable[JournalEntry], accounts: Iterable[Account], project_id: str
) -> dict[str, Any]:
    """Revenue, direct costs, margin and travel ratio for one project."""
    by_id = {a.id: a for a in accounts}
    revenue = direct_costs = travel = 0
    for entry in entries:
        if entry.project_id != project_id:
            continue
        for line in entry.lines:
            account = by_id.get(line.account_id)
            if account is None:
                continue
            if account.account_type == AccountType.INCOME:
                revenue -= line.net_amount
            elif account.account_type == AccountType.COST_OF_SERVICES:
                direct_costs += line.net_amount
            elif account.name in TRAVEL_ACCOUNT_NAMES:
                travel += line.net_amount

    gross_profit = revenue - direct_costs

    def percent(part: int) -> Decimal:
        if revenue <= 0:
            return Decimal("0")
        return (Decimal(part) * 100 / Decimal(revenue)).quantize(
            Decimal("0.1"), rounding=ROUND_HALF_UP
        )

    return {
        "report_name": "Project Profitability",
        "project_id": project_id,
        "totals": {
            "revenue": revenue,
            "direct_costs": direct_costs,
            "gross_profit": gross_profit,
            "margin_percent": percent(gross_profit),
            "travel_expenses": travel,
            "travel_ratio_percent": percent(travel),
        },
    }


def dashboard_metrics(
    entries: Iterable[JournalEntry],
    accounts: Iterable[Account],
    staged: Iterable[StagedTransaction],
    reconciliations: Iterable[Reconciliation],
    today: date,
    *,
    owner_equity_account_id: str = "3000",
    opening_balance_equity_account_id: str = "3001",
    overdue_days: int = 45,
    business_id: str | None = None,
) -> dict[str, Any]:
    """Headline KPIs for the dashboard."""
    account_list = _sorted(accounts)
    by_id = {a.id: a for a in account_list}
    entry_list = [e for e in entries if _in_business(e, business_id)]
    totals = _raw_totals(entry_list)

    revenue = expenses = owner_draw = 0
    for entry in entry_list:
        for line in entry.lines:
            account = by_id.get(line.account_id)
            if account is None:
                continue
            if account.account_type == AccountType.INCOME:
                revenue -= line.net_amount
            elif account.account_type in (AccountType.EXPENSE, AccountType.COST_OF_SERVICES):
                expenses += line.net_amount
            elif account.id == owner_equity_account_id:
                owner_draw += line.debit

    cash_on_hand = sum(
        totals.get(a.id, 0)
        for a in account_list
        if a.account_type == AccountType.ASSET and a.is_bank_account
    )
    debt = sum(
        -totals.get(a.id, 0) for a in account_list if a.account_type == AccountType.LIABILITY
    )

    latest_lock: dict[str, date] = {}
    for reconciliation in reconciliations:
        if not reconciliation.is_locked:
            continue
        current = latest_lock.get(reconciliation.account_id)
        if current is None or reconciliation.statement_end_date > current:
            latest_lock[reconciliation.account_id] = reconciliation.statement_end_date

    reconciliation_status = []
    for account in account_list:
        if not account.is_bank_account or not account.is_active:
            continue
        last = latest_lock.get(account.id)
        days_since = (today - last).days if last is not None else None
        reconciliation_status.append(
            {
                "account_id": account.id,
                "account_name": account.name,
                "last_reconciled": last,
                "days_since": days_since,
                "is_overdue": days_since is None or days_since > overdue_days,
            }
        )

    excluded = {a.id for a in account_list if a.is_bank_account}
    excluded.add(opening_balance_equity_account_id)
    feed = [
        e
        for e in sorted(entry_list, key=lambda e: (e.entry_date, e.created_at))
        if not e.is_adjusting_entry and e.description != "Opening Balance Set"
    ][-5:]
    recent_activity = []
    for entry in reversed(feed):
        line = entry.primary_line(excluded)
        account = by_id.get(line.account_id)
        is_income = account is not None and account.account_type == AccountType.INCOME
        recent_activity.append(
            {
                "entry_id": entry.id,
                "date": entry.entry_date,
                "description": entry.description,
                "amount": line.credit if is_income else line.debit,
                "type": "income" if is_income else "expense",
                "category": account.name if account else "Unknown",
            }
        )

    return {
        "report_name": "Dashboard",
        "as_of_date": today,
        "business_id": business_id or COMBINED,
        "data": {
            "recent_activity": recent_activity,
            "reconciliations": reconciliation_status,
        },
        "totals": {
            "revenue": revenue,
            "expenses": expenses,
            "profit": revenue - expenses,
            "owner_draw": owner_draw,
            "cash_on_hand": cash_on_hand,
            "debt": debt,
            "needs_review": sum(1 for t in staged if t.status == TransactionStatus.IMPORTED),
        },
    }


def general_ledger_csv(entries: Iterable[JournalEntry], accounts: Iterable[Account]) -> str:
    """Every journal line as CSV, amounts in currency units."""
    names = {a.id: a.name for a in accounts}
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(GENERAL_LEDGER_COLUMNS)
    for entry in entries:
        for line in entry.lines:
            writer.writerow(
                [
                    entry.entry_date.isoformat(),
                    entry.business_id,
                    names.get(line.account_id, line.account_id),
                    line.description or entry.description,
                    minor_to_decimal(line.debit),
                    minor_to_decimal(line.credit),
                    entry.project_id or "",
                ]
            )
    return buffer.getvalue()


class ReportingServiceImpl(ReportingService):
    """Loads the current user's ledger data and runs the report functions."""

    def __init__(
        self,
        account_repo: AccountRepository,
        journal_repo: JournalRepository,
        staged_repo: StagedTransactionRepository,
        invoice_repo: InvoiceRepository,
        reconciliation_repo: ReconciliationRepository,
        identity: IdentityProvider,
        clock: Clock | None = None,
        cash_account_ids: Collection[str] = ("1000", "1001"),
        owner_equity_account_id: str = "3000",
        opening_balance_equity_account_id: str = "3001",
        retained_earnings_account_id: str = "3002",
        reconciliation_overdue_days: int = 45,
    ) -> None:
        self._account_repo = account_repo
        self._journal_repo = journal_repo
        self._staged_repo = staged_repo
        self._invoice_repo = invoice_repo
        self._reconciliation_repo = reconciliation_repo
        self._identity = identity
        self._clock = clock or SystemClock()
        self._cash_account_ids = frozenset(cash_account_ids)
        self._owner_equity_id = owner_equity_account_id
        self._opening_equity_id = opening_balance_equity_account_id
        self._retained_earnings_id = retained_earnings_account_id
        self._overdue_days = reconciliation_overdue_days

    def _load(self) -> tuple[str, list[JournalEntry], list[Account]]:
        user_id = self._identity.require_user()
        entries = list(self._journal_repo.list_all(user_id))
        accounts = list(self._account_repo.list_all(user_id))
        return user_id, entries, accounts

    def date_range(self, kind: str) -> tuple[date, date]:
        return financial_date_range(kind, self._clock.today())

    def profit_and_loss(
        self, start_date: date, end_date: date, business_id: str | None = None
    ) -> dict[str, Any]:
        _, entries, accounts = self._load()
        report = profit_and_loss(entries, accounts, start_date, end_date, business_id)
        logger.info(
            "report_generated",
            report_name=report["report_name"],
            start_date=start_date.isoformat(),
            end_date=end_date.isoformat(),
        )
        return report

    def balance_sheet(self, as_of_date: date, business_id: str | None = None) -> dict[str, Any]:
        _, entries, accounts = self._load()
        report = balance_sheet(
            entries, accounts, as_of_date, business_id, self._retained_earnings_id
        )
        logger.info(
            "report_generated",
            report_name=report["report_name"],
            as_of_date=as_of_date.isoformat(),
            is_balanced=report["totals"]["is_balanced"],
        )
        return report

    def cash_flow(
        self, start_date: date, end_date: date, business_id: str | None = None
    ) -> dict[str, Any]:
        _, entries, _ = self._load()
        report = cash_flow(entries, start_date, end_date, self._cash_account_ids, business_id)
        logger.info("report_generated", report_name=report["report_name"])
        return report

    def ar_aging(self, business_id: str | None = None) -> dict[str, Any]:
        user_id = self._identity.require_user()
        report = ar_aging(
            self._invoice_repo.list_all(user_id), self._clock.today(), business_id
        )
        logger.info(
            "report_generated",
            report_name=report["report_name"],
            total=report["totals"]["total"],
        )
        return report

    def dashboard(self, business_id: str | None = None) -> dict[str, Any]:
        user_id, entries, accounts = self._load()
        return dashboard_metrics(
            entries,
            accounts,
            self._staged_repo.list_all(user_id),
            self._reconciliation_repo.list_all(user_id),
            self._clock.today(),
            owner_equity_account_id=self._owner_equity_id,
            opening_balance_equity_account_id=self._opening_equity_id,
            overdue_days=self._overdue_days,
            business_id=business_id,
        )

    def project_profitability(self, project_id: str) -> dict[str, Any]:
        _, entries, accounts = self._load()
        return project_profitability(entries, accounts, project_id)

    def general_ledger_csv(self) -> str:
        _, entries, accounts = self._load()
        return general_ledger_csv(entries, accounts)
