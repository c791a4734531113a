"""
In-memory adapters for the repository interfaces.

Units of work are serialised by one store-wide lock and operate on a staged
copy of the tables; ``commit`` publishes the copy, anything else discards it.
Used by the tests and for running the API without a database.
"""

import copy
import threading
from collections.abc import Iterable
from datetime import date
from typing import Any
from uuid import UUID

from sefbooks.core.exceptions import (
    ConcurrentUpdateError,
    DuplicateInvoiceError,
    DuplicatePaymentError,
    DuplicateStatementError,
)
from sefbooks.domain.entities import (
    PAYABLE_STATUSES,
    BankStatement,
    BankTransaction,
    Company,
    Invoice,
    Payment,
    PettyCashAccount,
    PettyCashEntry,
    VATPeriodReport,
)
from sefbooks.domain.repositories import (
    IBankStatementRepository,
    IBankTransactionRepository,
    ICompanyRepository,
    IInvoiceRepository,
    IPaymentRepository,
    IPettyCashRepository,
    IUnitOfWork,
    IVATReportRepository,
)
from sefbooks.domain.value_objects import (
    AWAITING_RESOLUTION,
    InvoiceDirection,
    InvoiceStatus,
    MatchStatus,
)

_TABLES = (
    "companies",
    "invoices",
    "statements",
    "transactions",
    "payments",
    "vat_reports",
    "petty_cash_accounts",
    "petty_cash_entries",
)

Tables = dict[str, dict[UUID, Any]]


class InMemoryStore:
    """Shared state for every unit of work created from it."""

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.tables: Tables = {name: {} for name in _TABLES}


def _check_version(table: dict[UUID, Any], entity: Any, entity_name: str) -> None:
    stored = table.get(entity.id)
    if stored is None or stored.version != entity.version - 1:
        raise ConcurrentUpdateError(entity_name, entity.id)


class InMemoryCompanyRepository(ICompanyRepository):

    def __init__(self, tables: Tables):
        self.table = tables["companies"]

    def get(self, company_id: UUID) -> Company | None:
        return self.table.get(company_id)

    def get_by_pib(self, pib: str) -> Company | None:
        return next((c for c in self.table.values() if c.pib == pib), None)

    def add(self, company: Company) -> Company:
        self.table[company.id] = company
        return company


class InMemoryInvoiceRepository(IInvoiceRepository):

    def __init__(self, tables: Tables):
        self.table = tables["invoices"]

    def get(self, invoice_id: UUID, for_update: bool = False) -> Invoice | None:
        return self.table.get(invoice_id)

    def get_by_number(self, company_id: UUID, invoice_number: str) -> Invoice | None:
        return next(
            (
                inv for inv in self.table.values()
                if inv.company_id == company_id and inv.invoice_number == invoice_number
            ),
            None,
        )

    def add(self, invoice: Invoice) -> Invoice:
        if self.get_by_number(invoice.company_id, invoice.invoice_number):
            raise DuplicateInvoiceError(invoice.company_id, invoice.invoice_number)
        self.table[invoice.id] = invoice
        return invoice

    def update(self, invoice: Invoice) -> Invoice:
        _check_version(self.table, invoice, "Invoice")
        self.table[invoice.id] = invoice
        return invoice

    def list_by_period(
        self,
        company_id: UUID,
        direction: InvoiceDirection,
        statuses: Iterable[InvoiceStatus],
        start_date: date,
        end_date: date,
    ) -> list[Invoice]:
        statuses = set(statuses)
        found = [
            inv for inv in self.table.values()
            if inv.company_id == company_id
            and inv.direction == direction
            and inv.status in statuses
            and start_date <= inv.issue_date <= end_date
        ]
        return sorted(found, key=lambda inv: (inv.issue_date, inv.invoice_number))

    def list_open(self, company_id: UUID, direction: InvoiceDirection, currency: str) -> list[Invoice]:
        found = [
            inv for inv in self.table.values()
            if inv.company_id == company_id
            and inv.direction == direction
            and inv.currency == currency
            and inv.status in PAYABLE_STATUSES
            and inv.remaining_amount > 0
        ]
        return sorted(found, key=lambda inv: (inv.due_date or date.max, inv.invoice_number))


class InMemoryBankStatementRepository(IBankStatementRepository):

    def __init__(self, tables: Tables):
        self.table = tables["statements"]

    def get(self, statement_id: UUID, for_update: bool = False) -> BankStatement | None:
        return self.table.get(statement_id)

    def get_by_number(
        self, company_id: UUID, account_number: str, statement_number: str
    ) -> BankStatement | None:
        return next(
            (
                s for s in self.table.values()
                if s.company_id == company_id
                and s.account_number == account_number
                and s.statement_number == statement_number
            ),
            None,
        )

    def add(self, statement: BankStatement) -> BankStatement:
        if self.get_by_number(statement.company_id, statement.account_number, statement.statement_number):
            raise DuplicateStatementError(statement.account_number, statement.statement_number)
        self.table[statement.id] = statement
        return statement

    def update(self, statement: BankStatement) -> BankStatement:
        _check_version(self.table, statement, "BankStatement")
        self.table[statement.id] = statement
        return statement


class InMemoryBankTransactionRepository(IBankTransactionRepository):

    def __init__(self, tables: Tables):
        self.table = tables["transactions"]
        self.statements = tables["statements"]

    def get(self, transaction_id: UUID, for_update: bool = False) -> BankTransaction | None:
        return self.table.get(transaction_id)

    def add(self, transaction: BankTransaction) -> BankTransaction:
        self.table[transaction.id] = transaction
        return transaction

    def update(self, transaction: BankTransaction) -> BankTransaction:
        _check_version(self.table, transaction, "BankTransaction")
        self.table[transaction.id] = transaction
        return transaction

    def list_by_statement(
        self, statement_id: UUID, status: MatchStatus | None = None
    ) -> list[BankTransaction]:
        found = [
            tx for tx in self.table.values()
            if tx.statement_id == statement_id and (status is None or tx.match_status == status)
        ]
        return sorted(found, key=lambda tx: (tx.transaction_date, str(tx.id)))

    def list_unmatched(self, company_id: UUID, limit: int = 50) -> list[BankTransaction]:
        statement_ids = {s.id for s in self.statements.values() if s.company_id == company_id}
        found = [
            tx for tx in self.table.values()
            if tx.statement_id in statement_ids and tx.match_status in AWAITING_RESOLUTION
        ]
        found.sort(key=lambda tx: tx.transaction_date, reverse=True)
        return found[:limit]


class InMemoryPaymentRepository(IPaymentRepository):

    def __init__(self, tables: Tables):
        self.table = tables["payments"]

    def add(self, payment: Payment) -> Payment:
        if payment.bank_transaction_id is not None and self.get_by_transaction(payment.bank_transaction_id):
            raise DuplicatePaymentError(payment.bank_transaction_id)
        self.table[payment.id] = payment
        return payment

    def get(self, payment_id: UUID) -> Payment | None:
        return self.table.get(payment_id)

    def get_by_transaction(self, transaction_id: UUID) -> Payment | None:
        return next(
            (p for p in self.table.values() if p.bank_transaction_id == transaction_id), None
        )

    def list_by_invoice(self, invoice_id: UUID) -> list[Payment]:
        found = [p for p in self.table.values() if p.invoice_id == invoice_id]
        return sorted(found, key=lambda p: (p.payment_date, p.created_at))


class InMemoryVATReportRepository(IVATReportRepository):

    def __init__(self, tables: Tables):
        self.table = tables["vat_reports"]

    def get(self, report_id: UUID, for_update: bool = False) -> VATPeriodReport | None:
        return self.table.get(report_id)

    def get_by_period(self, company_id: UUID, year: int, month: int) -> VATPeriodReport | None:
        return next(
            (
                r for r in self.table.values()
                if r.company_id == company_id and r.year == year and r.month == month
            ),
            None,
        )

    def add(self, report: VATPeriodReport) -> VATPeriodReport:
        if self.get_by_period(report.company_id, report.year, report.month):
            raise ConcurrentUpdateError("VATPeriodReport", f"{report.year}-{report.month:02d}")
        self.table[report.id] = report
        return report

    def update(self, report: VATPeriodReport) -> VATPeriodReport:
        _check_version(self.table, report, "VATPeriodReport")
        self.table[report.id] = report
        return report

    def delete(self, report_id: UUID) -> None:
        self.table.pop(report_id, None)

    def list_for_year(self, company_id: UUID, year: int) -> list[VATPeriodReport]:
        found = [r for r in self.table.values() if r.company_id == company_id and r.year == year]
        return sorted(found, key=lambda r: r.month)


class InMemoryPettyCashRepository(IPettyCashRepository):

    def __init__(self, tables: Tables):
        self.accounts = tables["petty_cash_accounts"]
        self.entries = tables["petty_cash_entries"]

    def get_account(self, account_id: UUID, for_update: bool = False) -> PettyCashAccount | None:
        return self.accounts.get(account_id)

    def add_account(self, account: PettyCashAccount) -> PettyCashAccount:
        self.accounts[account.id] = account
        return account

    def update_account(self, account: PettyCashAccount) -> PettyCashAccount:
        _check_version(self.accounts, account, "PettyCashAccount")
        self.accounts[account.id] = account
        return account

    def add_entry(self, entry: PettyCashEntry) -> PettyCashEntry:
        self.entries[entry.id] = entry
        return entry

    def list_entries(self, account_id: UUID) -> list[PettyCashEntry]:
        found = [e for e in self.entries.values() if e.account_id == account_id]
        return sorted(found, key=lambda e: (e.entry_date, e.created_at))


class InMemoryUnitOfWork(IUnitOfWork):

    def __init__(self, store: InMemoryStore):
        self.store = store

    def __enter__(self) -> "InMemoryUnitOfWork":
        self.store.lock.acquire()
        self._begin()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        try:
            super().__exit__(*exc_info)
        finally:
            self.store.lock.release()

    def _begin(self) -> None:
        staged = copy.deepcopy(self.store.tables)
        self.companies = InMemoryCompanyRepository(staged)
        self.invoices = InMemoryInvoiceRepository(staged)
        self.statements = InMemoryBankStatementRepository(staged)
        self.transactions = InMemoryBankTransactionRepository(staged)
        self.payments = InMemoryPaymentRepository(staged)
        self.vat_reports = InMemoryVATReportRepository(staged)
        self.petty_cash = InMemoryPettyCashRepository(staged)
        self._staged = staged

    def commit(self) -> None:
        self.store.tables = self._staged
        self._begin()

    def rollback(self) -> None:
        self._begin()
