"""
SQL adapters for the repository interfaces and the unit of work.

Rows are mapped to domain entities on every read; writes of versioned
entities go through ``UPDATE ... WHERE version = :expected`` so a lost
race surfaces as ``ConcurrentUpdateError`` instead of a silent overwrite.
Rows read with ``for_update=True`` are locked (``SELECT ... FOR UPDATE``)
where the backend supports it.
"""

import json
from collections.abc import Callable, Iterable
from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sefbooks.core.exceptions import (
    ConcurrentUpdateError,
    DuplicateInvoiceError,
    DuplicatePaymentError,
    DuplicateStatementError,
)
from sefbooks.core.logging_config import get_logger
from sefbooks.domain import entities
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
    InvoicePaymentStatus,
    InvoiceStatus,
    MatchStatus,
    PaymentMethod,
    PeriodType,
    PettyCashEntryType,
    ReportStatus,
    StatementStatus,
    TransactionDirection,
    match_detail_from_dict,
    match_detail_to_dict,
)
from sefbooks.infrastructure.database import models

logger = get_logger("database")


def _select_one(session: Session, model: type, entity_id: UUID, for_update: bool = False) -> Any:
    stmt = select(model).where(model.id == entity_id).execution_options(populate_existing=True)
    if for_update:
        stmt = stmt.with_for_update()
    return session.execute(stmt).scalar_one_or_none()


def _versioned_update(
    session: Session,
    model: type,
    entity_name: str,
    entity_id: UUID,
    new_version: int,
    values: dict[str, Any],
) -> None:
    result = session.execute(
        update(model)
        .where(model.id == entity_id, model.version == new_version - 1)
        .values(version=new_version, **values)
    )
    if result.rowcount != 1:
        logger.warning(
            "Optimistic lock failed",
            extra={"entity": entity_name, "entity_id": str(entity_id), "version": new_version},
        )
        raise ConcurrentUpdateError(entity_name, entity_id)


class SqlCompanyRepository(ICompanyRepository):

    def __init__(self, session: Session):
        self.session = session

    def get(self, company_id: UUID) -> entities.Company | None:
        row = self.session.get(models.Company, company_id)
        if row is None:
            return None
        return entities.Company(pib=row.pib, name=row.name, id=row.id, address=row.address)

    def get_by_pib(self, pib: str) -> entities.Company | None:
        row = self.session.execute(
            select(models.Company).where(models.Company.pib == pib)
        ).scalar_one_or_none()
        if row is None:
            return None
        return entities.Company(pib=row.pib, name=row.name, id=row.id, address=row.address)

    def add(self, company: entities.Company) -> entities.Company:
        self.session.add(
            models.Company(id=company.id, pib=company.pib, name=company.name, address=company.address)
        )
        self.session.flush()
        return company


def _line_to_domain(row: models.InvoiceLine) -> entities.InvoiceLine:
    return entities.InvoiceLine(
        quantity=row.quantity,
        unit_price=row.unit_price,
        tax_rate=row.tax_rate,
        base_amount=row.base_amount,
        tax_amount=row.tax_amount,
        amount=row.amount,
        line_number=row.line_number,
        description=row.description,
        id=row.id,
    )


def _line_to_row(invoice_id: UUID, line: entities.InvoiceLine) -> models.InvoiceLine:
    return models.InvoiceLine(
        id=line.id,
        invoice_id=invoice_id,
        line_number=line.line_number,
        description=line.description,
        quantity=line.quantity,
        unit_price=line.unit_price,
        tax_rate=line.tax_rate,
        base_amount=line.base_amount,
        tax_amount=line.tax_amount,
        amount=line.amount,
    )


_INVOICE_COLUMNS = (
    "status", "payment_status", "currency", "due_date", "partner_name", "partner_pib",
    "is_export", "is_import", "total_amount", "tax_amount", "paid_amount", "updated_at",
)


class SqlInvoiceRepository(IInvoiceRepository):

    def __init__(self, session: Session):
        self.session = session

    def _lines(self, invoice_id: UUID) -> list[entities.InvoiceLine]:
        rows = self.session.execute(
            select(models.InvoiceLine)
            .where(models.InvoiceLine.invoice_id == invoice_id)
            .order_by(models.InvoiceLine.line_number)
        ).scalars()
        return [_line_to_domain(row) for row in rows]

    def _to_domain(self, row: models.Invoice) -> entities.Invoice:
        return entities.Invoice(
            company_id=row.company_id,
            invoice_number=row.invoice_number,
            direction=InvoiceDirection(row.direction),
            issue_date=row.issue_date,
            id=row.id,
            status=InvoiceStatus(row.status),
            payment_status=InvoicePaymentStatus(row.payment_status),
            currency=row.currency,
            due_date=row.due_date,
            partner_name=row.partner_name,
            partner_pib=row.partner_pib,
            partner_accounts=json.loads(row.partner_accounts or "[]"),
            is_export=row.is_export,
            is_import=row.is_import,
            lines=self._lines(row.id),
            total_amount=row.total_amount,
            tax_amount=row.tax_amount,
            paid_amount=row.paid_amount,
            created_at=row.created_at,
            updated_at=row.updated_at,
            version=row.version,
        )

    def get(self, invoice_id: UUID, for_update: bool = False) -> entities.Invoice | None:
        row = _select_one(self.session, models.Invoice, invoice_id, for_update)
        return self._to_domain(row) if row else None

    def get_by_number(self, company_id: UUID, invoice_number: str) -> entities.Invoice | None:
        row = self.session.execute(
            select(models.Invoice).where(
                models.Invoice.company_id == company_id,
                models.Invoice.invoice_number == invoice_number,
            )
        ).scalar_one_or_none()
        return self._to_domain(row) if row else None

    def add(self, invoice: entities.Invoice) -> entities.Invoice:
        self.session.add(
            models.Invoice(
                id=invoice.id,
                company_id=invoice.company_id,
                invoice_number=invoice.invoice_number,
                direction=invoice.direction.value,
                issue_date=invoice.issue_date,
                partner_accounts=json.dumps(invoice.partner_accounts),
                created_at=invoice.created_at,
                version=invoice.version,
                **self._columns(invoice),
            )
        )
        try:
            self.session.flush()
        except IntegrityError as exc:
            raise DuplicateInvoiceError(invoice.company_id, invoice.invoice_number) from exc
        self.session.add_all(_line_to_row(invoice.id, line) for line in invoice.lines)
        self.session.flush()
        return invoice

    @staticmethod
    def _columns(invoice: entities.Invoice) -> dict[str, Any]:
        values = {name: getattr(invoice, name) for name in _INVOICE_COLUMNS}
        values["status"] = invoice.status.value
        values["payment_status"] = invoice.payment_status.value
        return values

    def update(self, invoice: entities.Invoice) -> entities.Invoice:
        values = self._columns(invoice)
        values["partner_accounts"] = json.dumps(invoice.partner_accounts)
        _versioned_update(self.session, models.Invoice, "Invoice", invoice.id, invoice.version, values)

        stored_ids = {line.id for line in self._lines(invoice.id)}
        if stored_ids != {line.id for line in invoice.lines}:
            self.session.execute(
                delete(models.InvoiceLine).where(models.InvoiceLine.invoice_id == invoice.id)
            )
            self.session.add_all(_line_to_row(invoice.id, line) for line in invoice.lines)
        self.session.flush()
        return invoice

    def list_by_period(
        self,
        company_id: UUID,
        direction: InvoiceDirection,
        statuses: Iterable[InvoiceStatus],
        start_date: date,
        end_date: date,
    ) -> list[entities.Invoice]:
        rows = self.session.execute(
            select(models.Invoice)
            .where(
                models.Invoice.company_id == company_id,
                models.Invoice.direction == direction.value,
                models.Invoice.status.in_([s.value for s in statuses]),
                models.Invoice.issue_date >= start_date,
                models.Invoice.issue_date <= end_date,
            )
            .order_by(models.Invoice.issue_date, models.Invoice.invoice_number)
        ).scalars().all()
        return [self._to_domain(row) for row in rows]

    def list_open(self, company_id: UUID, direction: InvoiceDirection, currency: str) -> list[entities.Invoice]:
        rows = self.session.execute(
            select(models.Invoice)
            .where(
                models.Invoice.company_id == company_id,
                models.Invoice.direction == direction.value,
                models.Invoice.currency == currency,
                models.Invoice.status.in_([s.value for s in entities.PAYABLE_STATUSES]),
                models.Invoice.paid_amount < models.Invoice.total_amount,
            )
            .order_by(models.Invoice.due_date, models.Invoice.invoice_number)
        ).scalars().all()
        return [self._to_domain(row) for row in rows]


def _statement_to_domain(row: models.BankStatement) -> entities.BankStatement:
    return entities.BankStatement(
        company_id=row.company_id,
        account_number=row.account_number,
        statement_number=row.statement_number,
        statement_date=row.statement_date,
        id=row.id,
        bank_name=row.bank_name,
        currency=row.currency,
        opening_balance=row.opening_balance,
        closing_balance=row.closing_balance,
        total_credit=row.total_credit,
        total_debit=row.total_debit,
        status=StatementStatus(row.status),
        created_at=row.created_at,
        version=row.version,
    )


class SqlBankStatementRepository(IBankStatementRepository):

    def __init__(self, session: Session):
        self.session = session

    def get(self, statement_id: UUID, for_update: bool = False) -> entities.BankStatement | None:
        row = _select_one(self.session, models.BankStatement, statement_id, for_update)
        return _statement_to_domain(row) if row else None

    def get_by_number(
        self, company_id: UUID, account_number: str, statement_number: str
    ) -> entities.BankStatement | None:
        row = self.session.execute(
            select(models.BankStatement).where(
                models.BankStatement.company_id == company_id,
                models.BankStatement.account_number == account_number,
                models.BankStatement.statement_number == statement_number,
            )
        ).scalar_one_or_none()
        return _statement_to_domain(row) if row else None

    def add(self, statement: entities.BankStatement) -> entities.BankStatement:
        self.session.add(
            models.BankStatement(
                id=statement.id,
                company_id=statement.company_id,
                account_number=statement.account_number,
                statement_number=statement.statement_number,
                statement_date=statement.statement_date,
                bank_name=statement.bank_name,
                currency=statement.currency,
                opening_balance=statement.opening_balance,
                closing_balance=statement.closing_balance,
                total_credit=statement.total_credit,
                total_debit=statement.total_debit,
                status=statement.status.value,
                created_at=statement.created_at,
                version=statement.version,
            )
        )
        try:
            self.session.flush()
        except IntegrityError as exc:
            raise DuplicateStatementError(statement.account_number, statement.statement_number) from exc
        return statement

    def update(self, statement: entities.BankStatement) -> entities.BankStatement:
        _versioned_update(
            self.session,
            models.BankStatement,
            "BankStatement",
            statement.id,
            statement.version,
            {"status": statement.status.value},
        )
        return statement


def _transaction_to_domain(row: models.BankTransaction) -> entities.BankTransaction:
    return entities.BankTransaction(
        statement_id=row.statement_id,
        transaction_date=row.transaction_date,
        amount=row.amount,
        direction=TransactionDirection(row.direction),
        id=row.id,
        value_date=row.value_date,
        reference=row.reference,
        description=row.description,
        partner_name=row.partner_name,
        partner_account=row.partner_account,
        match_status=MatchStatus(row.match_status),
        matched_invoice_id=row.matched_invoice_id,
        payment_id=row.payment_id,
        match_detail=match_detail_from_dict(json.loads(row.match_detail)) if row.match_detail else None,
        version=row.version,
    )


def _match_columns(transaction: entities.BankTransaction) -> dict[str, Any]:
    detail = transaction.match_detail
    return {
        "match_status": transaction.match_status.value,
        "matched_invoice_id": transaction.matched_invoice_id,
        "payment_id": transaction.payment_id,
        "match_detail": json.dumps(match_detail_to_dict(detail)) if detail else None,
    }


class SqlBankTransactionRepository(IBankTransactionRepository):

    def __init__(self, session: Session):
        self.session = session

    def get(self, transaction_id: UUID, for_update: bool = False) -> entities.BankTransaction | None:
        row = _select_one(self.session, models.BankTransaction, transaction_id, for_update)
        return _transaction_to_domain(row) if row else None

    def add(self, transaction: entities.BankTransaction) -> entities.BankTransaction:
        self.session.add(
            models.BankTransaction(
                id=transaction.id,
                statement_id=transaction.statement_id,
                transaction_date=transaction.transaction_date,
                value_date=transaction.value_date,
                amount=transaction.amount,
                direction=transaction.direction.value,
                reference=transaction.reference,
                description=transaction.description,
                partner_name=transaction.partner_name,
                partner_account=transaction.partner_account,
                version=transaction.version,
                **_match_columns(transaction),
            )
        )
        self.session.flush()
        return transaction

    def update(self, transaction: entities.BankTransaction) -> entities.BankTransaction:
        _versioned_update(
            self.session,
            models.BankTransaction,
            "BankTransaction",
            transaction.id,
            transaction.version,
            _match_columns(transaction),
        )
        return transaction

    def list_by_statement(
        self, statement_id: UUID, status: MatchStatus | None = None
    ) -> list[entities.BankTransaction]:
        stmt = (
            select(models.BankTransaction)
            .where(models.BankTransaction.statement_id == statement_id)
            .order_by(models.BankTransaction.transaction_date, models.BankTransaction.id)
            .execution_options(populate_existing=True)
        )
        if status is not None:
            stmt = stmt.where(models.BankTransaction.match_status == status.value)
        return [_transaction_to_domain(row) for row in self.session.execute(stmt).scalars()]

    def list_unmatched(self, company_id: UUID, limit: int = 50) -> list[entities.BankTransaction]:
        rows = self.session.execute(
            select(models.BankTransaction)
            .join(models.BankStatement, models.BankStatement.id == models.BankTransaction.statement_id)
            .where(
                models.BankStatement.company_id == company_id,
                models.BankTransaction.match_status.in_([s.value for s in AWAITING_RESOLUTION]),
            )
            .order_by(models.BankTransaction.transaction_date.desc())
            .limit(limit)
        ).scalars()
        return [_transaction_to_domain(row) for row in rows]


def _payment_to_domain(row: models.Payment) -> entities.Payment:
    return entities.Payment(
        company_id=row.company_id,
        invoice_id=row.invoice_id,
        amount=row.amount,
        payment_date=row.payment_date,
        method=PaymentMethod(row.method),
        id=row.id,
        currency=row.currency,
        reference=row.reference,
        bank_transaction_id=row.bank_transaction_id,
        bank_account=row.bank_account,
        note=row.note,
        created_by=row.created_by,
        created_at=row.created_at,
    )


class SqlPaymentRepository(IPaymentRepository):

    def __init__(self, session: Session):
        self.session = session

    def add(self, payment: entities.Payment) -> entities.Payment:
        self.session.add(
            models.Payment(
                id=payment.id,
                company_id=payment.company_id,
                invoice_id=payment.invoice_id,
                amount=payment.amount,
                currency=payment.currency,
                payment_date=payment.payment_date,
                method=payment.method.value,
                reference=payment.reference,
                bank_transaction_id=payment.bank_transaction_id,
                bank_account=payment.bank_account,
                note=payment.note,
                created_by=payment.created_by,
                created_at=payment.created_at,
            )
        )
        try:
            self.session.flush()
        except IntegrityError as exc:
            if payment.bank_transaction_id is not None:
                raise DuplicatePaymentError(payment.bank_transaction_id) from exc
            raise
        return payment

    def get(self, payment_id: UUID) -> entities.Payment | None:
        row = self.session.get(models.Payment, payment_id)
        return _payment_to_domain(row) if row else None

    def get_by_transaction(self, transaction_id: UUID) -> entities.Payment | None:
        row = self.session.execute(
            select(models.Payment).where(models.Payment.bank_transaction_id == transaction_id)
        ).scalar_one_or_none()
        return _payment_to_domain(row) if row else None

    def list_by_invoice(self, invoice_id: UUID) -> list[entities.Payment]:
        rows = self.session.execute(
            select(models.Payment)
            .where(models.Payment.invoice_id == invoice_id)
            .order_by(models.Payment.payment_date, models.Payment.created_at)
        ).scalars()
        return [_payment_to_domain(row) for row in rows]


def _report_to_domain(row: models.VATPeriodReport) -> entities.VATPeriodReport:
    return entities.VATPeriodReport(
        company_id=row.company_id,
        year=row.year,
        month=row.month,
        period_type=PeriodType(row.period_type),
        id=row.id,
        status=ReportStatus(row.status),
        calculated_at=row.calculated_at,
        submitted_at=row.submitted_at,
        version=row.version,
        **{name: getattr(row, name) for name in entities.VAT_FIELD_NAMES},
    )


def _report_columns(report: entities.VATPeriodReport) -> dict[str, Any]:
    return {
        "period_type": report.period_type.value,
        "status": report.status.value,
        "calculated_at": report.calculated_at,
        "submitted_at": report.submitted_at,
        **report.field_values(),
    }


class SqlVATReportRepository(IVATReportRepository):

    def __init__(self, session: Session):
        self.session = session

    def get(self, report_id: UUID, for_update: bool = False) -> entities.VATPeriodReport | None:
        row = _select_one(self.session, models.VATPeriodReport, report_id, for_update)
        return _report_to_domain(row) if row else None

    def get_by_period(self, company_id: UUID, year: int, month: int) -> entities.VATPeriodReport | None:
        row = self.session.execute(
            select(models.VATPeriodReport)
            .where(
                models.VATPeriodReport.company_id == company_id,
                models.VATPeriodReport.year == year,
                models.VATPeriodReport.month == month,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return _report_to_domain(row) if row else None

    def add(self, report: entities.VATPeriodReport) -> entities.VATPeriodReport:
        self.session.add(
            models.VATPeriodReport(
                id=report.id,
                company_id=report.company_id,
                year=report.year,
                month=report.month,
                version=report.version,
                **_report_columns(report),
            )
        )
        try:
            self.session.flush()
        except IntegrityError as exc:
            raise ConcurrentUpdateError("VATPeriodReport", f"{report.year}-{report.month:02d}") from exc
        return report

    def update(self, report: entities.VATPeriodReport) -> entities.VATPeriodReport:
        _versioned_update(
            self.session,
            models.VATPeriodReport,
            "VATPeriodReport",
            report.id,
            report.version,
            _report_columns(report),
        )
        return report

    def delete(self, report_id: UUID) -> None:
        self.session.execute(
            delete(models.VATPeriodReport).where(
                models.VATPeriodReport.id == report_id,
                models.VATPeriodReport.status != ReportStatus.SUBMITTED.value,
            )
        )

    def list_for_year(self, company_id: UUID, year: int) -> list[entities.VATPeriodReport]:
        rows = self.session.execute(
            select(models.VATPeriodReport)
            .where(
                models.VATPeriodReport.company_id == company_id,
                models.VATPeriodReport.year == year,
            )
            .order_by(models.VATPeriodReport.month)
        ).scalars()
        return [_report_to_domain(row) for row in rows]


class SqlPettyCashRepository(IPettyCashRepository):

    def __init__(self, session: Session):
        self.session = session

    @staticmethod
    def _account_to_domain(row: models.PettyCashAccount) -> entities.PettyCashAccount:
        return entities.PettyCashAccount(
            company_id=row.company_id,
            name=row.name,
            id=row.id,
            currency=row.currency,
            balance=row.balance,
            version=row.version,
        )

    def get_account(self, account_id: UUID, for_update: bool = False) -> entities.PettyCashAccount | None:
        row = _select_one(self.session, models.PettyCashAccount, account_id, for_update)
        return self._account_to_domain(row) if row else None

    def add_account(self, account: entities.PettyCashAccount) -> entities.PettyCashAccount:
        self.session.add(
            models.PettyCashAccount(
                id=account.id,
                company_id=account.company_id,
                name=account.name,
                currency=account.currency,
                balance=account.balance,
                version=account.version,
            )
        )
        self.session.flush()
        return account

    def update_account(self, account: entities.PettyCashAccount) -> entities.PettyCashAccount:
        _versioned_update(
            self.session,
            models.PettyCashAccount,
            "PettyCashAccount",
            account.id,
            account.version,
            {"balance": account.balance},
        )
        return account

    def add_entry(self, entry: entities.PettyCashEntry) -> entities.PettyCashEntry:
        self.session.add(
            models.PettyCashEntry(
                id=entry.id,
                account_id=entry.account_id,
                entry_number=entry.entry_number,
                entry_date=entry.entry_date,
                entry_type=entry.entry_type.value,
                amount=entry.amount,
                description=entry.description,
                partner_name=entry.partner_name,
                created_by=entry.created_by,
                created_at=entry.created_at,
            )
        )
        self.session.flush()
        return entry

    def list_entries(self, account_id: UUID) -> list[entities.PettyCashEntry]:
        rows = self.session.execute(
            select(models.PettyCashEntry)
            .where(models.PettyCashEntry.account_id == account_id)
            .order_by(models.PettyCashEntry.entry_date, models.PettyCashEntry.created_at)
        ).scalars()
        return [
            entities.PettyCashEntry(
                account_id=row.account_id,
                entry_number=row.entry_number,
                entry_date=row.entry_date,
                entry_type=PettyCashEntryType(row.entry_type),
                amount=row.amount,
                id=row.id,
                description=row.description,
                partner_name=row.partner_name,
                created_by=row.created_by,
                created_at=row.created_at,
            )
            for row in rows
        ]


class SqlUnitOfWork(IUnitOfWork):
    """One session, one database transaction."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory
        self.session: Session | None = None

    def __enter__(self) -> "SqlUnitOfWork":
        self.session = self.session_factory()
        self.companies = SqlCompanyRepository(self.session)
        self.invoices = SqlInvoiceRepository(self.session)
        self.statements = SqlBankStatementRepository(self.session)
        self.transactions = SqlBankTransactionRepository(self.session)
        self.payments = SqlPaymentRepository(self.session)
        self.vat_reports = SqlVATReportRepository(self.session)
        self.petty_cash = SqlPettyCashRepository(self.session)
        return self

    def __exit__(self, *exc_info: Any) -> None:
        try:
            super().__exit__(*exc_info)
        finally:
            self.session.close()

    def commit(self) -> None:
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ConcurrentUpdateError("UnitOfWork", "commit") from exc

    def rollback(self) -> None:
        self.session.rollback()
