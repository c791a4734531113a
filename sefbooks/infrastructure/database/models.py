"""
Infrastructure - SQLModel database models.
"""

from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _money(**kwargs: Any) -> Any:
    return Field(default=Decimal("0"), max_digits=18, decimal_places=2, **kwargs)


class Company(SQLModel, table=True):
    """Preduzeće - obveznik PDV."""

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    pib: str = Field(unique=True, index=True)
    name: str
    address: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)


class Invoice(SQLModel, table=True):
    """Faktura (izlazna/ulazna)."""

    __table_args__ = (UniqueConstraint("company_id", "invoice_number"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    company_id: UUID = Field(foreign_key="company.id", index=True)
    invoice_number: str = Field(index=True)
    direction: str  # OUTGOING, INCOMING
    status: str = "DRAFT"
    payment_status: str = "UNPAID"
    currency: str = "RSD"
    issue_date: date = Field(index=True)
    due_date: date | None = None
    partner_name: str | None = None
    partner_pib: str | None = None
    partner_accounts: str = "[]"  # JSON array
    is_export: bool = False
    is_import: bool = False
    total_amount: Decimal = _money()
    tax_amount: Decimal = _money()
    paid_amount: Decimal = _money()
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    version: int = 1

    lines: list["InvoiceLine"] = Relationship(back_populates="invoice")


class InvoiceLine(SQLModel, table=True):
    """Stavka fakture."""

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    invoice_id: UUID = Field(foreign_key="invoice.id", index=True)
    line_number: int
    description: str = ""
    quantity: Decimal = Field(max_digits=18, decimal_places=4)
    unit_price: Decimal = Field(max_digits=18, decimal_places=4)
    tax_rate: Decimal = Field(max_digits=5, decimal_places=2)
    base_amount: Decimal = _money()
    tax_amount: Decimal = _money()
    amount: Decimal = _money()

    invoice: "Invoice" = Relationship(back_populates="lines")


class BankStatement(SQLModel, table=True):
    """Izvod banke."""

    __table_args__ = (UniqueConstraint("company_id", "account_number", "statement_number"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    company_id: UUID = Field(foreign_key="company.id", index=True)
    account_number: str
    statement_number: str
    statement_date: date
    bank_name: str | None = None
    currency: str = "RSD"
    opening_balance: Decimal = _money()
    closing_balance: Decimal = _money()
    total_credit: Decimal = _money()
    total_debit: Decimal = _money()
    status: str = "IMPORTED"
    created_at: datetime = Field(default_factory=_utcnow)
    version: int = 1


class BankTransaction(SQLModel, table=True):
    """Stavka izvoda."""

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    statement_id: UUID = Field(foreign_key="bankstatement.id", index=True)
    transaction_date: date
    value_date: date | None = None
    amount: Decimal = _money()
    direction: str  # CREDIT, DEBIT
    reference: str | None = Field(default=None, index=True)
    description: str | None = None
    partner_name: str | None = None
    partner_account: str | None = None
    match_status: str = Field(default="UNMATCHED", index=True)
    matched_invoice_id: UUID | None = Field(default=None, foreign_key="invoice.id")
    payment_id: UUID | None = None
    match_detail: str | None = None  # JSON, tagged by "kind"
    version: int = 1


class Payment(SQLModel, table=True):
    """Uplata. Najviše jedna po transakciji izvoda."""

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    company_id: UUID = Field(foreign_key="company.id", index=True)
    invoice_id: UUID = Field(foreign_key="invoice.id", index=True)
    amount: Decimal = _money()
    currency: str = "RSD"
    payment_date: date
    method: str
    reference: str | None = None
    bank_transaction_id: UUID | None = Field(
        default=None, foreign_key="banktransaction.id", unique=True
    )
    bank_account: str | None = None
    note: str | None = None
    created_by: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)


class VATPeriodReport(SQLModel, table=True):
    """PPPDV prijava."""

    __table_args__ = (UniqueConstraint("company_id", "year", "month"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    company_id: UUID = Field(foreign_key="company.id", index=True)
    year: int
    month: int
    period_type: str = "MONTHLY"
    status: str = "CALCULATED"

    field001: Decimal = _money()
    field002: Decimal = _money()
    field003: Decimal = _money()
    field004: Decimal = _money()
    field005: Decimal = _money()
    field006: Decimal = _money()
    field101: Decimal = _money()
    field102: Decimal = _money()
    field103: Decimal = _money()
    field104: Decimal = _money()
    field105: Decimal = _money()
    field106: Decimal = _money()
    field201: Decimal = _money()
    field202: Decimal = _money()
    field203: Decimal = _money()
    field204: Decimal = _money()

    calculated_at: datetime | None = None
    submitted_at: datetime | None = None
    version: int = 1


class PettyCashAccount(SQLModel, table=True):
    """Blagajna."""

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    company_id: UUID = Field(foreign_key="company.id", index=True)
    name: str
    currency: str = "RSD"
    balance: Decimal = _money()
    version: int = 1


class PettyCashEntry(SQLModel, table=True):
    """Stavka blagajne."""

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    account_id: UUID = Field(foreign_key="pettycashaccount.id", index=True)
    entry_number: str = Field(index=True)
    entry_date: date
    entry_type: str  # DEPOSIT, WITHDRAWAL
    amount: Decimal = _money()
    description: str | None = None
    partner_name: str | None = None
    created_by: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
