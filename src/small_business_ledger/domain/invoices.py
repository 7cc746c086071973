from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from uuid import uuid4

from small_business_ledger.domain.value_objects import InvoiceStatus, PaymentMethod


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class Invoice:
    invoice_number: str
    customer_id: str
    business_id: str
    date_issued: date
    total_amount: int
    id: str = field(default_factory=lambda: uuid4().hex)
    due_date: date | None = None
    amount_paid: int = 0
    status: InvoiceStatus = InvoiceStatus.DRAFT
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)

    @property
    def outstanding(self) -> int:
        """Unpaid balance; overpayment never makes this negative."""
        return max(0, self.total_amount - self.amount_paid)

    @property
    def aging_date(self) -> date:
        return self.due_date or self.date_issued

    def status_as_of(self, today: date) -> InvoiceStatus:
        """Stored status, or OVERDUE once a sent or part-paid invoice passes its due date."""
        if (
            self.status in (InvoiceStatus.SENT, InvoiceStatus.PARTIAL)
            and self.outstanding > 0
            and self.aging_date < today
        ):
            return InvoiceStatus.OVERDUE
        return self.status

    def apply_payment(self, amount: int) -> None:
        self.amount_paid += amount
        self.status = (
            InvoiceStatus.PAID
            if self.amount_paid >= self.total_amount
            else InvoiceStatus.PARTIAL
        )
        self.updated_at = _utc_now()


@dataclass(frozen=True)
class InvoicePayment:
    invoice_id: str
    payment_date: date
    amount: int
    method: PaymentMethod
    linked_journal_entry_id: str
    id: str = field(default_factory=lambda: uuid4().hex)
    created_at: datetime = field(default_factory=_utc_now)
