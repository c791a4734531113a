"""
Ledger Update Coordinator - jedina tačka koja menja tekuće stanje
(plaćeni iznos fakture, stanje blagajne).
"""

from collections.abc import Callable
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sefbooks.core.clock import Clock, SystemClock
from sefbooks.core.exceptions import (
    CurrencyMismatchError,
    DuplicatePaymentError,
    InvoiceNotFoundError,
    PettyCashAccountNotFoundError,
)
from sefbooks.core.logging_config import get_logger

from .entities import BankTransaction, Invoice, Payment, PettyCashAccount, PettyCashEntry
from .repositories import IUnitOfWork
from .value_objects import (
    DEFAULT_TOLERANCE,
    PaymentMethod,
    PettyCashEntryType,
    round2,
    to_decimal,
)

logger = get_logger("ledger")


class LedgerService:
    """
    Service - Evidencija uplata i kretanja na blagajni.

    ``apply_payment`` works inside a caller-owned unit of work so the
    reconciliation matcher can combine it with the transaction update;
    ``record_payment`` and ``post_petty_cash_entry`` open their own.
    """

    def __init__(
        self,
        uow_factory: Callable[[], IUnitOfWork],
        clock: Clock | None = None,
        tolerance: Any = DEFAULT_TOLERANCE,
    ):
        self.uow_factory = uow_factory
        self.clock = clock or SystemClock()
        self.tolerance = to_decimal(tolerance, DEFAULT_TOLERANCE)

    def apply_payment(
        self,
        uow: IUnitOfWork,
        invoice: Invoice,
        amount: Decimal,
        method: PaymentMethod,
        payment_date: date | None = None,
        currency: str | None = None,
        reference: str | None = None,
        transaction: BankTransaction | None = None,
        bank_account: str | None = None,
        note: str | None = None,
        created_by: str | None = None,
    ) -> tuple[Payment, Invoice]:
        """
        Create the payment and raise the invoice's paid amount as one step of
        the enclosing unit of work. ``invoice`` must have been read with
        ``for_update=True`` in the same unit of work.
        """
        currency = currency or invoice.currency
        if currency != invoice.currency:
            raise CurrencyMismatchError(currency, invoice.currency)

        if transaction is not None:
            if transaction.payment_id is not None or uow.payments.get_by_transaction(transaction.id):
                raise DuplicatePaymentError(transaction.id)

        updated_invoice = invoice.apply_payment(amount, self.tolerance)
        payment = Payment(
            company_id=invoice.company_id,
            invoice_id=invoice.id,
            amount=round2(amount),
            payment_date=payment_date or self.clock.today(),
            method=method,
            currency=currency,
            reference=reference,
            bank_transaction_id=transaction.id if transaction else None,
            bank_account=bank_account,
            note=note,
            created_by=created_by,
        )
        payment = uow.payments.add(payment)
        updated_invoice = uow.invoices.update(updated_invoice)

        logger.info(
            "Payment recorded",
            extra={
                "payment_id": str(payment.id),
                "invoice_id": str(invoice.id),
                "amount": str(payment.amount),
                "currency": currency,
                "payment_status": updated_invoice.payment_status.value,
                "bank_transaction_id": str(transaction.id) if transaction else None,
            },
        )
        return payment, updated_invoice

    def record_payment(
        self,
        company_id: UUID,
        invoice_id: UUID,
        amount: Any,
        method: PaymentMethod,
        payment_date: date | None = None,
        currency: str | None = None,
        reference: str | None = None,
        bank_account: str | None = None,
        note: str | None = None,
        created_by: str | None = None,
    ) -> Payment:
        """Ručni unos uplate."""
        with self.uow_factory() as uow:
            invoice = uow.invoices.get(invoice_id, for_update=True)
            if invoice is None or invoice.company_id != company_id:
                raise InvoiceNotFoundError(invoice_id)
            payment, _ = self.apply_payment(
                uow,
                invoice,
                to_decimal(amount),
                method,
                payment_date=payment_date,
                currency=currency,
                reference=reference,
                bank_account=bank_account,
                note=note,
                created_by=created_by,
            )
            uow.commit()
        return payment

    def list_invoice_payments(self, company_id: UUID, invoice_id: UUID) -> list[Payment]:
        with self.uow_factory() as uow:
            invoice = uow.invoices.get(invoice_id)
            if invoice is None or invoice.company_id != company_id:
                raise InvoiceNotFoundError(invoice_id)
            return uow.payments.list_by_invoice(invoice_id)

    def open_petty_cash_account(
        self, company_id: UUID, name: str, currency: str = "RSD"
    ) -> PettyCashAccount:
        with self.uow_factory() as uow:
            account = uow.petty_cash.add_account(
                PettyCashAccount(company_id=company_id, name=name, currency=currency)
            )
            uow.commit()
        return account

    def post_petty_cash_entry(
        self,
        company_id: UUID,
        account_id: UUID,
        entry_type: PettyCashEntryType,
        amount: Any,
        entry_date: date | None = None,
        description: str | None = None,
        partner_name: str | None = None,
        created_by: str | None = None,
    ) -> tuple[PettyCashEntry, PettyCashAccount]:
        """Uplata/isplata na blagajni; stanje ne sme pasti ispod nule."""
        with self.uow_factory() as uow:
            account = uow.petty_cash.get_account(account_id, for_update=True)
            if account is None or account.company_id != company_id:
                raise PettyCashAccountNotFoundError(account_id)

            updated = account.post(entry_type, to_decimal(amount))
            sequence = len(uow.petty_cash.list_entries(account_id)) + 1
            entry = uow.petty_cash.add_entry(
                PettyCashEntry(
                    account_id=account_id,
                    entry_number=f"BL/{account.name}/{sequence:05d}",
                    entry_date=entry_date or self.clock.today(),
                    entry_type=entry_type,
                    amount=round2(to_decimal(amount)),
                    description=description,
                    partner_name=partner_name,
                    created_by=created_by,
                )
            )
            updated = uow.petty_cash.update_account(updated)
            uow.commit()

        logger.info(
            "Petty cash entry posted",
            extra={
                "account_id": str(account_id),
                "entry_type": entry_type.value,
                "amount": str(entry.amount),
                "balance": str(updated.balance),
            },
        )
        return entry, updated
