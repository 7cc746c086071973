"""Customer invoices and payment posting."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from small_business_ledger.domain.audit import AuditAction
from small_business_ledger.domain.invoices import Invoice, InvoicePayment
from small_business_ledger.domain.journal import EntryDraft, LineDraft
from small_business_ledger.domain.value_objects import (
    InvoiceStatus,
    PaymentMethod,
    format_minor_units,
    minor_to_decimal,
    to_minor_units,
)
from small_business_ledger.exceptions import InvalidPaymentError, InvoiceNotFoundError
from small_business_ledger.logging_config import get_logger
from small_business_ledger.repositories.interfaces import InvoiceRepository
from small_business_ledger.repositories.sqlite import SQLiteDatabase
from small_business_ledger.services.audit import AuditLog
from small_business_ledger.services.identity import IdentityProvider
from small_business_ledger.services.interfaces import InvoiceService, LedgerService

logger = get_logger(__name__)


class InvoiceServiceImpl(InvoiceService):
    def __init__(
        self,
        database: SQLiteDatabase,
        invoice_repo: InvoiceRepository,
        ledger: LedgerService,
        audit: AuditLog,
        identity: IdentityProvider,
        undeposited_funds_account_id: str = "1002",
        income_account_id: str = "4000",
        max_retries: int = 3,
    ) -> None:
        self._db = database
        self._invoice_repo = invoice_repo
        self._ledger = ledger
        self._audit = audit
        self._identity = identity
        self._undeposited_funds_id = undeposited_funds_account_id
        self._income_id = income_account_id
        self._max_retries = max_retries

    def get_invoice(self, invoice_id: str) -> Invoice:
        user_id = self._identity.require_user()
        invoice = self._invoice_repo.get(user_id, invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id)
        return invoice

    def list_invoices(self) -> list[Invoice]:
        user_id = self._identity.require_user()
        return list(self._invoice_repo.list_all(user_id))

    def list_payments(self, invoice_id: str) -> list[InvoicePayment]:
        user_id = self._identity.require_user()
        return list(self._invoice_repo.list_payments(user_id, invoice_id))

    def create_invoice(
        self,
        invoice_number: str,
        customer_id: str,
        business_id: str,
        date_issued: date,
        total_amount: Decimal | int | str,
        due_date: date | None = None,
        send: bool = False,
    ) -> Invoice:
        user_id = self._identity.require_user()
        total, _ = to_minor_units(total_amount)
        invoice = Invoice(
            invoice_number=invoice_number,
            customer_id=customer_id,
            business_id=business_id,
            date_issued=date_issued,
            due_date=due_date,
            total_amount=total,
            status=InvoiceStatus.SENT if send else InvoiceStatus.DRAFT,
        )

        def _create() -> Invoice:
            self._invoice_repo.add(user_id, invoice)
            self._audit.record(
                AuditAction.INVOICE_CREATE,
                f"Created invoice #{invoice_number} for {format_minor_units(total)}",
            )
            return invoice

        self._db.run_atomic(_create, self._max_retries)
        logger.info("invoice_created", invoice_id=invoice.id, total=total)
        return invoice

    def mark_sent(self, invoice_id: str) -> Invoice:
        user_id = self._identity.require_user()
        invoice = self.get_invoice(invoice_id)
        if invoice.status == InvoiceStatus.DRAFT:
            invoice.status = InvoiceStatus.SENT
            self._invoice_repo.update(user_id, invoice)
        return invoice

    def record_payment(
        self,
        invoice_id: str,
        amount: Decimal | int | str,
        payment_date: date,
        method: PaymentMethod = PaymentMethod.CHECK,
    ) -> InvoicePayment:
        """Post a customer payment and apply it to the invoice.

        The payment is debited to Undeposited Funds and credited to income.
        Overpayment is accepted; the invoice's outstanding balance floors at zero.

        Raises:
            InvalidPaymentError: If the amount is not positive
            InvoiceNotFoundError: If the invoice is unknown
        """
        user_id = self._identity.require_user()
        cents, _ = to_minor_units(amount)
        if cents <= 0:
            raise InvalidPaymentError(invoice_id, cents)

        def _pay() -> InvoicePayment:
            invoice = self.get_invoice(invoice_id)
            value = minor_to_decimal(cents)
            entry = self._ledger.post(
                EntryDraft(
                    entry_date=payment_date,
                    description=f"Payment for Invoice #{invoice.invoice_number}",
                    business_id=invoice.business_id,
                    lines=[
                        LineDraft(
                            account_id=self._undeposited_funds_id,
                            debit=value,
                            business_id=invoice.business_id,
                        ),
                        LineDraft(
                            account_id=self._income_id,
                            credit=value,
                            business_id=invoice.business_id,
                        ),
                    ],
                )
            )
            invoice.apply_payment(cents)
            self._invoice_repo.update(user_id, invoice)
            payment = InvoicePayment(
                invoice_id=invoice.id,
                payment_date=payment_date,
                amount=cents,
                method=method,
                linked_journal_entry_id=entry.id,
            )
            self._invoice_repo.add_payment(user_id, payment)
            self._audit.record(
                AuditAction.INVOICE_PAYMENT,
                f"Recorded {format_minor_units(cents)} on invoice #{invoice.invoice_number}",
            )
            return payment

        payment = self._db.run_atomic(_pay, self._max_retries)
        logger.info(
            "invoice_payment_recorded",
            invoice_id=invoice_id,
            amount=cents,
            journal_entry_id=payment.linked_journal_entry_id,
        )
        return payment
