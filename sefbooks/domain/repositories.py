"""
Repository interfaces and the unit of work (transactional scope).

Services only talk to these abstractions; the SQL adapter lives in
``sefbooks.infrastructure.database`` and an in-memory one in
``sefbooks.infrastructure.memory``.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import date
from types import TracebackType
from uuid import UUID

from .entities import (
    BankStatement,
    BankTransaction,
    Company,
    Invoice,
    Payment,
    PettyCashAccount,
    PettyCashEntry,
    VATPeriodReport,
)
from .value_objects import InvoiceDirection, InvoiceStatus, MatchStatus


class ICompanyRepository(ABC):

    @abstractmethod
    def get(self, company_id: UUID) -> Company | None:
        ...

    @abstractmethod
    def get_by_pib(self, pib: str) -> Company | None:
        ...

    @abstractmethod
    def add(self, company: Company) -> Company:
        ...


class IInvoiceRepository(ABC):

    @abstractmethod
    def get(self, invoice_id: UUID, for_update: bool = False) -> Invoice | None:
        ...

    @abstractmethod
    def get_by_number(self, company_id: UUID, invoice_number: str) -> Invoice | None:
        ...

    @abstractmethod
    def add(self, invoice: Invoice) -> Invoice:
        ...

    @abstractmethod
    def update(self, invoice: Invoice) -> Invoice:
        """Persist a new version; the stored version must be ``invoice.version - 1``."""
        ...

    @abstractmethod
    def list_by_period(
        self,
        company_id: UUID,
        direction: InvoiceDirection,
        statuses: Iterable[InvoiceStatus],
        start_date: date,
        end_date: date,
    ) -> list[Invoice]:
        ...

    @abstractmethod
    def list_open(self, company_id: UUID, direction: InvoiceDirection, currency: str) -> list[Invoice]:
        """Invoices with a positive remaining amount in a payable status."""
        ...


class IBankStatementRepository(ABC):

    @abstractmethod
    def get(self, statement_id: UUID, for_update: bool = False) -> BankStatement | None:
        ...

    @abstractmethod
    def get_by_number(
        self, company_id: UUID, account_number: str, statement_number: str
    ) -> BankStatement | None:
        ...

    @abstractmethod
    def add(self, statement: BankStatement) -> BankStatement:
        ...

    @abstractmethod
    def update(self, statement: BankStatement) -> BankStatement:
        ...


class IBankTransactionRepository(ABC):

    @abstractmethod
    def get(self, transaction_id: UUID, for_update: bool = False) -> BankTransaction | None:
        ...

    @abstractmethod
    def add(self, transaction: BankTransaction) -> BankTransaction:
        ...

    @abstractmethod
    def update(self, transaction: BankTransaction) -> BankTransaction:
        ...

    @abstractmethod
    def list_by_statement(
        self, statement_id: UUID, status: MatchStatus | None = None
    ) -> list[BankTransaction]:
        ...

    @abstractmethod
    def list_unmatched(self, company_id: UUID, limit: int = 50) -> list[BankTransaction]:
        """UNMATCHED and PARTIAL transactions of the company, newest first."""
        ...


class IPaymentRepository(ABC):

    @abstractmethod
    def add(self, payment: Payment) -> Payment:
        """Raises ``DuplicatePaymentError`` for a second payment of one bank transaction."""
        ...

    @abstractmethod
    def get(self, payment_id: UUID) -> Payment | None:
        ...

    @abstractmethod
    def get_by_transaction(self, transaction_id: UUID) -> Payment | None:
        ...

    @abstractmethod
    def list_by_invoice(self, invoice_id: UUID) -> list[Payment]:
        ...


class IVATReportRepository(ABC):

    @abstractmethod
    def get(self, report_id: UUID, for_update: bool = False) -> VATPeriodReport | None:
        ...

    @abstractmethod
    def get_by_period(self, company_id: UUID, year: int, month: int) -> VATPeriodReport | None:
        ...

    @abstractmethod
    def add(self, report: VATPeriodReport) -> VATPeriodReport:
        ...

    @abstractmethod
    def update(self, report: VATPeriodReport) -> VATPeriodReport:
        ...

    @abstractmethod
    def delete(self, report_id: UUID) -> None:
        ...

    @abstractmethod
    def list_for_year(self, company_id: UUID, year: int) -> list[VATPeriodReport]:
        ...


class IPettyCashRepository(ABC):

    @abstractmethod
    def get_account(self, account_id: UUID, for_update: bool = False) -> PettyCashAccount | None:
        ...

    @abstractmethod
    def add_account(self, account: PettyCashAccount) -> PettyCashAccount:
        ...

    @abstractmethod
    def update_account(self, account: PettyCashAccount) -> PettyCashAccount:
        ...

    @abstractmethod
    def add_entry(self, entry: PettyCashEntry) -> PettyCashEntry:
        ...

    @abstractmethod
    def list_entries(self, account_id: UUID) -> list[PettyCashEntry]:
        ...


class IUnitOfWork(ABC):
    """
    All-or-nothing scope for balance-bearing writes.

        with uow_factory() as uow:
            invoice = uow.invoices.get(invoice_id, for_update=True)
            ...
            uow.commit()

    Leaving the block without ``commit()`` (or through an exception) rolls
    every change back.
    """

    companies: ICompanyRepository
    invoices: IInvoiceRepository
    statements: IBankStatementRepository
    transactions: IBankTransactionRepository
    payments: IPaymentRepository
    vat_reports: IVATReportRepository
    petty_cash: IPettyCashRepository

    def __enter__(self) -> "IUnitOfWork":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.rollback()

    @abstractmethod
    def commit(self) -> None:
        ...

    @abstractmethod
    def rollback(self) -> None:
        ...
