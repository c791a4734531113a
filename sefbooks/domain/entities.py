"""
Domain Entities - Fakture, izvodi, uplate, PPPDV prijave i blagajna.
Zakon o PDV, Zakon o elektronskom fakturisanju.
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

from sefbooks.core.exceptions import (
    InsufficientFundsError,
    InvalidAmountError,
    InvalidPibError,
    InvoiceLockedError,
    InvoiceStateError,
    OverpaymentError,
    ReportSubmittedError,
    TransactionStateError,
)
from sefbooks.domain.totals import InvoiceTotalsCalculator, TotalsDiscrepancy, calculate_line
from sefbooks.domain.value_objects import (
    DEFAULT_CURRENCY,
    DEFAULT_TOLERANCE,
    ZERO,
    InvoiceDirection,
    InvoicePaymentStatus,
    InvoiceStatus,
    MatchDetail,
    MatchStatus,
    PaymentMethod,
    PeriodType,
    PettyCashEntryType,
    ReportStatus,
    StatementStatus,
    TransactionDirection,
    is_equal,
    is_valid_pib,
    round2,
    sum_decimals,
    to_decimal,
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class Company:
    """Entity - Preduzeće (obveznik PDV)."""
    pib: str
    name: str
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    address: str | None = None

    def __post_init__(self) -> None:
        if not is_valid_pib(self.pib):
            raise InvalidPibError(self.pib)


@dataclass(frozen=True, slots=True)
class InvoiceLine:
    """
    Stavka fakture. Iznosi su izvedeni iz količine, cene i stope i
    zaokruženi na 2 decimale po stavci.
    """
    quantity: Decimal
    unit_price: Decimal
    tax_rate: Decimal
    base_amount: Decimal
    tax_amount: Decimal
    amount: Decimal
    line_number: int = 1
    description: str = ""
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    @classmethod
    def create(
        cls,
        quantity: Any,
        unit_price: Any,
        tax_rate: Any,
        line_number: int = 1,
        description: str = "",
    ) -> "InvoiceLine":
        amounts = calculate_line(quantity, unit_price, tax_rate)
        return cls(
            quantity=to_decimal(quantity),
            unit_price=to_decimal(unit_price),
            tax_rate=to_decimal(tax_rate),
            base_amount=amounts.base_amount,
            tax_amount=amounts.tax_amount,
            amount=amounts.total_amount,
            line_number=line_number,
            description=description,
        )


_INVOICE_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: frozenset({InvoiceStatus.SENT, InvoiceStatus.CANCELLED}),
    InvoiceStatus.SENT: frozenset({
        InvoiceStatus.DELIVERED,
        InvoiceStatus.ACCEPTED,
        InvoiceStatus.REJECTED,
        InvoiceStatus.CANCELLED,
    }),
    InvoiceStatus.DELIVERED: frozenset({
        InvoiceStatus.ACCEPTED,
        InvoiceStatus.REJECTED,
        InvoiceStatus.CANCELLED,
    }),
    InvoiceStatus.ACCEPTED: frozenset(),
    InvoiceStatus.REJECTED: frozenset(),
    InvoiceStatus.CANCELLED: frozenset(),
}

PAYABLE_STATUSES = frozenset({InvoiceStatus.SENT, InvoiceStatus.DELIVERED, InvoiceStatus.ACCEPTED})


@dataclass
class Invoice:
    """
    Entity - Faktura (izlazna ili ulazna).
    Jedinstvena po (company_id, invoice_number); stavke pripadaju isključivo fakturi.
    """
    company_id: uuid.UUID
    invoice_number: str
    direction: InvoiceDirection
    issue_date: date
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    status: InvoiceStatus = InvoiceStatus.DRAFT
    payment_status: InvoicePaymentStatus = InvoicePaymentStatus.UNPAID
    currency: str = DEFAULT_CURRENCY
    due_date: date | None = None
    partner_name: str | None = None
    partner_pib: str | None = None
    partner_accounts: list[str] = field(default_factory=list)
    is_export: bool = False
    is_import: bool = False
    lines: list[InvoiceLine] = field(default_factory=list)
    total_amount: Decimal = ZERO
    tax_amount: Decimal = ZERO
    paid_amount: Decimal = ZERO
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    version: int = 1

    @property
    def remaining_amount(self) -> Decimal:
        return round2(self.total_amount - self.paid_amount)

    @property
    def tax_exclusive_amount(self) -> Decimal:
        return round2(self.total_amount - self.tax_amount)

    def is_open_for_payment(self) -> bool:
        return self.status in PAYABLE_STATUSES and self.remaining_amount > 0

    def with_lines(self, lines: list[InvoiceLine]) -> "Invoice":
        if self.status != InvoiceStatus.DRAFT:
            raise InvoiceLockedError(self.id, self.status.value)
        numbered = [replace(line, line_number=idx) for idx, line in enumerate(lines, start=1)]
        return replace(
            self,
            lines=numbered,
            total_amount=round2(sum_decimals(*(line.amount for line in numbered))),
            tax_amount=round2(sum_decimals(*(line.tax_amount for line in numbered))),
            updated_at=_utcnow(),
            version=self.version + 1,
        )

    def check_totals(self, tolerance: Any = DEFAULT_TOLERANCE) -> list[TotalsDiscrepancy]:
        return InvoiceTotalsCalculator(tolerance).check_line_sums(
            self.lines, self.total_amount, self.tax_amount
        )

    def transition(self, target: InvoiceStatus) -> "Invoice":
        if target not in _INVOICE_TRANSITIONS[self.status]:
            raise InvoiceStateError(self.id, self.status.value, target.value)
        return replace(self, status=target, updated_at=_utcnow(), version=self.version + 1)

    def apply_payment(self, amount: Decimal, tolerance: Any = DEFAULT_TOLERANCE) -> "Invoice":
        """
        Povećava plaćeni iznos. Preplata preko tolerancije se odbija,
        razlika u okviru tolerancije se svodi na ukupan iznos.
        """
        amount = round2(amount)
        if amount <= 0:
            raise InvalidAmountError("payment.amount", amount)

        new_paid = round2(self.paid_amount + amount)
        if new_paid > self.total_amount:
            if not is_equal(new_paid, self.total_amount, tolerance):
                raise OverpaymentError(self.id, self.remaining_amount, amount)
            new_paid = self.total_amount

        return replace(
            self,
            paid_amount=new_paid,
            payment_status=payment_status_for(new_paid, self.total_amount),
            updated_at=_utcnow(),
            version=self.version + 1,
        )


def payment_status_for(paid_amount: Decimal, total_amount: Decimal) -> InvoicePaymentStatus:
    if paid_amount <= 0:
        return InvoicePaymentStatus.UNPAID
    if paid_amount < total_amount:
        return InvoicePaymentStatus.PARTIALLY_PAID
    return InvoicePaymentStatus.PAID


@dataclass
class BankStatement:
    """
    Entity - Izvod banke. Uvozi se jednom; poseduje svoje transakcije.
    Krajnje stanje = početno stanje + potražuje - duguje.
    """
    company_id: uuid.UUID
    account_number: str
    statement_number: str
    statement_date: date
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    bank_name: str | None = None
    currency: str = DEFAULT_CURRENCY
    opening_balance: Decimal = ZERO
    closing_balance: Decimal = ZERO
    total_credit: Decimal = ZERO
    total_debit: Decimal = ZERO
    status: StatementStatus = StatementStatus.IMPORTED
    created_at: datetime = field(default_factory=_utcnow)
    version: int = 1

    @property
    def expected_closing_balance(self) -> Decimal:
        return round2(self.opening_balance + self.total_credit - self.total_debit)

    def is_balanced(self, tolerance: Any = DEFAULT_TOLERANCE) -> bool:
        return is_equal(self.closing_balance, self.expected_closing_balance, tolerance)

    def with_status(self, status: StatementStatus) -> "BankStatement":
        if status == self.status:
            return self
        return replace(self, status=status, version=self.version + 1)


@dataclass
class BankTransaction:
    """Entity - Stavka izvoda."""
    statement_id: uuid.UUID
    transaction_date: date
    amount: Decimal
    direction: TransactionDirection
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    value_date: date | None = None
    reference: str | None = None
    description: str | None = None
    partner_name: str | None = None
    partner_account: str | None = None
    match_status: MatchStatus = MatchStatus.UNMATCHED
    matched_invoice_id: uuid.UUID | None = None
    payment_id: uuid.UUID | None = None
    match_detail: MatchDetail | None = None
    version: int = 1

    @property
    def booking_date(self) -> date:
        return self.value_date or self.transaction_date

    def ensure_matchable(self, operation: str) -> None:
        """UNMATCHED, PARTIAL, ili MATCHED bez uplate (ispravka veze)."""
        if self.match_status in (MatchStatus.UNMATCHED, MatchStatus.PARTIAL):
            return
        if self.match_status == MatchStatus.MATCHED and self.payment_id is None:
            return
        raise TransactionStateError(self.id, self.match_status.value, operation)

    def mark_matched(
        self,
        invoice_id: uuid.UUID,
        payment_id: uuid.UUID | None,
        detail: MatchDetail,
    ) -> "BankTransaction":
        return replace(
            self,
            match_status=MatchStatus.MATCHED,
            matched_invoice_id=invoice_id,
            payment_id=payment_id,
            match_detail=detail,
            version=self.version + 1,
        )

    def mark_suggested(self, invoice_id: uuid.UUID, detail: MatchDetail) -> "BankTransaction":
        if self.match_status != MatchStatus.UNMATCHED:
            raise TransactionStateError(self.id, self.match_status.value, "suggest")
        return replace(
            self,
            match_status=MatchStatus.PARTIAL,
            matched_invoice_id=invoice_id,
            match_detail=detail,
            version=self.version + 1,
        )

    def ignore(self) -> "BankTransaction":
        if self.match_status not in (MatchStatus.UNMATCHED, MatchStatus.PARTIAL):
            raise TransactionStateError(self.id, self.match_status.value, "ignore")
        return replace(
            self,
            match_status=MatchStatus.IGNORED,
            matched_invoice_id=None,
            match_detail=None,
            version=self.version + 1,
        )


@dataclass(frozen=True)
class Payment:
    """
    Entity - Uplata. Nepromenljiva; jedini način da se promeni plaćeni iznos fakture.
    """
    company_id: uuid.UUID
    invoice_id: uuid.UUID
    amount: Decimal
    payment_date: date
    method: PaymentMethod
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    currency: str = DEFAULT_CURRENCY
    reference: str | None = None
    bank_transaction_id: uuid.UUID | None = None
    bank_account: str | None = None
    note: str | None = None
    created_by: str | None = None
    created_at: datetime = field(default_factory=_utcnow)


VAT_FIELD_NAMES: tuple[str, ...] = (
    "field001", "field002", "field003", "field004", "field005", "field006",
    "field101", "field102", "field103", "field104", "field105", "field106",
    "field201", "field202", "field203", "field204",
)


@dataclass(frozen=True)
class VATPeriodData:
    """
    Rezultat obračuna PPPDV za period.

    001/002 promet 20% osnovica/PDV, 003/004 promet 10%, 005 oslobođeno, 006 izvoz;
    101/102 nabavka 20%, 103/104 nabavka 10%, 105/106 uvoz 20%/10% PDV;
    201 ukupan izlazni PDV, 202 ukupan ulazni PDV, 203 za uplatu, 204 za povraćaj.
    """
    year: int
    month: int
    period_type: PeriodType
    start_date: date
    end_date: date
    field001: Decimal = ZERO
    field002: Decimal = ZERO
    field003: Decimal = ZERO
    field004: Decimal = ZERO
    field005: Decimal = ZERO
    field006: Decimal = ZERO
    field101: Decimal = ZERO
    field102: Decimal = ZERO
    field103: Decimal = ZERO
    field104: Decimal = ZERO
    field105: Decimal = ZERO
    field106: Decimal = ZERO
    field201: Decimal = ZERO
    field202: Decimal = ZERO
    field203: Decimal = ZERO
    field204: Decimal = ZERO

    def field_values(self) -> dict[str, Decimal]:
        return {name: getattr(self, name) for name in VAT_FIELD_NAMES}


@dataclass
class VATPeriodReport:
    """
    Entity - PPPDV prijava, jedinstvena po (company_id, year, month).
    Nakon podnošenja je nepromenljiva.
    """
    company_id: uuid.UUID
    year: int
    month: int
    period_type: PeriodType
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    status: ReportStatus = ReportStatus.CALCULATED
    field001: Decimal = ZERO
    field002: Decimal = ZERO
    field003: Decimal = ZERO
    field004: Decimal = ZERO
    field005: Decimal = ZERO
    field006: Decimal = ZERO
    field101: Decimal = ZERO
    field102: Decimal = ZERO
    field103: Decimal = ZERO
    field104: Decimal = ZERO
    field105: Decimal = ZERO
    field106: Decimal = ZERO
    field201: Decimal = ZERO
    field202: Decimal = ZERO
    field203: Decimal = ZERO
    field204: Decimal = ZERO
    calculated_at: datetime | None = None
    submitted_at: datetime | None = None
    version: int = 1

    @property
    def is_submitted(self) -> bool:
        return self.status == ReportStatus.SUBMITTED

    def field_values(self) -> dict[str, Decimal]:
        return {name: getattr(self, name) for name in VAT_FIELD_NAMES}

    @classmethod
    def from_data(cls, company_id: uuid.UUID, data: VATPeriodData, calculated_at: datetime) -> "VATPeriodReport":
        return cls(
            company_id=company_id,
            year=data.year,
            month=data.month,
            period_type=data.period_type,
            calculated_at=calculated_at,
            **data.field_values(),
        )

    def recalculated(self, data: VATPeriodData, calculated_at: datetime) -> "VATPeriodReport":
        if self.is_submitted:
            raise ReportSubmittedError(self.id, "recalculate")
        return replace(
            self,
            period_type=data.period_type,
            status=ReportStatus.CALCULATED,
            calculated_at=calculated_at,
            version=self.version + 1,
            **data.field_values(),
        )

    def submit(self, submitted_at: datetime) -> "VATPeriodReport":
        if self.is_submitted:
            raise ReportSubmittedError(self.id, "submit")
        return replace(
            self,
            status=ReportStatus.SUBMITTED,
            submitted_at=submitted_at,
            version=self.version + 1,
        )

    def ensure_deletable(self) -> None:
        if self.is_submitted:
            raise ReportSubmittedError(self.id, "delete")


@dataclass
class PettyCashAccount:
    """Entity - Blagajna."""
    company_id: uuid.UUID
    name: str
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    currency: str = DEFAULT_CURRENCY
    balance: Decimal = ZERO
    version: int = 1

    def post(self, entry_type: PettyCashEntryType, amount: Decimal) -> "PettyCashAccount":
        amount = round2(amount)
        if amount <= 0:
            raise InvalidAmountError("petty_cash.amount", amount)
        if entry_type == PettyCashEntryType.DEPOSIT:
            new_balance = round2(self.balance + amount)
        else:
            new_balance = round2(self.balance - amount)
            if new_balance < 0:
                raise InsufficientFundsError(self.id, self.balance, amount)
        return replace(self, balance=new_balance, version=self.version + 1)


@dataclass(frozen=True)
class PettyCashEntry:
    account_id: uuid.UUID
    entry_number: str
    entry_date: date
    entry_type: PettyCashEntryType
    amount: Decimal
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    description: str | None = None
    partner_name: str | None = None
    created_by: str | None = None
    created_at: datetime = field(default_factory=_utcnow)
