from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

CENTS_PER_UNIT = 100
_CENT = Decimal("0.01")


class AccountType(str, Enum):
    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    INCOME = "income"
    COST_OF_SERVICES = "cost_of_services"
    EXPENSE = "expense"

    @property
    def is_debit_normal(self) -> bool:
        return self in (
            AccountType.ASSET,
            AccountType.EXPENSE,
            AccountType.COST_OF_SERVICES,
        )

    @property
    def is_profit_and_loss(self) -> bool:
        return self in (
            AccountType.INCOME,
            AccountType.EXPENSE,
            AccountType.COST_OF_SERVICES,
        )


class AccountStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"


class TransactionStatus(str, Enum):
    IMPORTED = "imported"
    POSTED = "posted"
    NEEDS_REPOST = "needs_repost"


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"


class PaymentMethod(str, Enum):
    CHECK = "check"
    CREDIT_CARD = "credit_card"
    BANK_TRANSFER = "bank_transfer"
    CASH = "cash"


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    """Convert a currency-unit amount to Decimal without float artifacts."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def to_minor_units(value: Decimal | int | float | str) -> tuple[int, Decimal]:
    """Round a currency-unit amount to whole cents.

    Returns the integer cent value and the absolute rounding residual in
    currency units, so callers can flag inputs that were not whole cents.
    """
    amount = to_decimal(value)
    rounded = amount.quantize(_CENT, rounding=ROUND_HALF_UP)
    return int(rounded * CENTS_PER_UNIT), abs(amount - rounded)


def minor_to_decimal(cents: int) -> Decimal:
    """Exact currency-unit value of an integer cent amount."""
    return Decimal(cents).scaleb(-2)


def format_minor_units(cents: int) -> str:
    """Render cents as a signed currency string, e.g. -1234 -> '-$12.34'."""
    sign = "-" if cents < 0 else ""
    return f"{sign}${minor_to_decimal(abs(cents)):,.2f}"


__all__ = [
    "AccountStatus",
    "AccountType",
    "CENTS_PER_UNIT",
    "InvoiceStatus",
    "PaymentMethod",
    "TransactionStatus",
    "TransactionType",
    "format_minor_units",
    "minor_to_decimal",
    "to_decimal",
    "to_minor_units",
]
