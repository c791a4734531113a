"""
Pytest configuration and fixtures.
"""

import logging
from datetime import UTC, date, datetime
from decimal import Decimal
from uuid import UUID

import pytest

from sefbooks.core.clock import FixedClock
from sefbooks.domain.entities import Company, Invoice
from sefbooks.domain.ledger import LedgerService
from sefbooks.domain.reconciliation import (
    BankReconciliationService,
    ParsedStatement,
    ParsedTransaction,
)
from sefbooks.domain.services import InvoiceService, VATPeriodService
from sefbooks.domain.value_objects import InvoiceDirection, InvoiceStatus, TransactionDirection
from sefbooks.infrastructure.memory import InMemoryStore, InMemoryUnitOfWork

VALID_PIB = "101234569"


class _ListHandler(logging.Handler):

    def __init__(self) -> None:
        super().__init__(level=logging.DEBUG)
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


@pytest.fixture
def log_records():
    """Zapisi sa sefbooks loggera, nezavisno od propagate podešavanja."""
    handler = _ListHandler()
    logger = logging.getLogger("sefbooks")
    previous_level = logger.level
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    yield handler.records
    logger.removeHandler(handler)
    logger.setLevel(previous_level)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2026, 2, 15, 9, 30, tzinfo=UTC))


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def uow_factory(store):
    return lambda: InMemoryUnitOfWork(store)


@pytest.fixture
def company(uow_factory) -> Company:
    company = Company(pib=VALID_PIB, name="Alfa Trade d.o.o.", address="Bulevar kralja Aleksandra 1")
    with uow_factory() as uow:
        uow.companies.add(company)
        uow.commit()
    return company


@pytest.fixture
def company_id(company) -> UUID:
    return company.id


@pytest.fixture
def ledger(uow_factory, clock) -> LedgerService:
    return LedgerService(uow_factory, clock)


@pytest.fixture
def reconciliation(uow_factory, ledger) -> BankReconciliationService:
    return BankReconciliationService(uow_factory, ledger)


@pytest.fixture
def vat_service(uow_factory, clock) -> VATPeriodService:
    return VATPeriodService(uow_factory, clock)


@pytest.fixture
def invoice_service(uow_factory) -> InvoiceService:
    return InvoiceService(uow_factory)


@pytest.fixture
def make_invoice(invoice_service, company_id):
    """Faktura sa jednom stavkom; iznosi se obračunavaju iz stavki."""

    def _make(
        number: str,
        quantity="1",
        unit_price="1000",
        tax_rate="20",
        direction: InvoiceDirection = InvoiceDirection.OUTGOING,
        status: InvoiceStatus = InvoiceStatus.SENT,
        issue_date: date = date(2026, 1, 10),
        due_date: date | None = date(2026, 1, 25),
        partner_name: str | None = "Beta Promet d.o.o.",
        partner_accounts: list[str] | None = None,
        lines: list[dict] | None = None,
        **extra,
    ) -> Invoice:
        invoice = Invoice(
            company_id=company_id,
            invoice_number=number,
            direction=direction,
            issue_date=issue_date,
            status=status,
            due_date=due_date,
            partner_name=partner_name,
            partner_accounts=partner_accounts or [],
            **extra,
        )
        lines = lines or [{"quantity": quantity, "unit_price": unit_price, "tax_rate": tax_rate}]
        return invoice_service.create_invoice(invoice, lines)

    return _make


@pytest.fixture
def make_statement(reconciliation, company_id):
    """Izvod sa datim prilivima/odlivima; krajnje stanje se izračunava."""

    def _make(
        transactions: list[ParsedTransaction],
        statement_number: str = "1",
        opening_balance: Decimal = Decimal("0"),
    ):
        closing = opening_balance
        for tx in transactions:
            amount = Decimal(str(tx.amount))
            closing += amount if tx.direction == TransactionDirection.CREDIT else -amount
        return reconciliation.register_statement(
            company_id,
            ParsedStatement(
                account_number="265-0000000001234-56",
                statement_number=statement_number,
                statement_date=date(2026, 1, 31),
                opening_balance=opening_balance,
                closing_balance=closing,
                transactions=transactions,
            ),
        )

    return _make
