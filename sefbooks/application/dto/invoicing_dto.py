"""
API DTOs - Data Transfer Objects for API requests/responses.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sefbooks.domain.value_objects import (
    InvoiceDirection,
    InvoicePaymentStatus,
    InvoiceStatus,
    MatchStatus,
    PaymentMethod,
    PeriodType,
    ReportStatus,
    StatementStatus,
    TransactionDirection,
    match_detail_to_dict,
)


class InvoiceLineInputDTO(BaseModel):
    """DTO - Stavka fakture za obračun."""
    quantity: Decimal = Field(..., description="Količina")
    unit_price: Decimal = Field(..., description="Jedinična cena bez PDV")
    tax_rate: Decimal = Field(..., ge=0, le=100, description="Stopa PDV %")
    description: str | None = Field(None, description="Opis")


class DeclaredTotalsDTO(BaseModel):
    """DTO - Iznosi deklarisani u dokumentu (npr. UBL)."""
    tax_exclusive: Decimal = Field(..., description="Osnovica")
    tax: Decimal = Field(..., description="PDV")
    tax_inclusive: Decimal = Field(..., description="Ukupno za plaćanje")


class CalculateTotalsRequestDTO(BaseModel):
    lines: list[InvoiceLineInputDTO] = Field(..., min_length=1, description="Stavke")
    declared: DeclaredTotalsDTO | None = Field(None, description="Iznosi za proveru")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "lines": [
                {"quantity": 10, "unit_price": 1000, "tax_rate": 20, "description": "Usluga"},
                {"quantity": 5, "unit_price": 500, "tax_rate": 10},
            ],
            "declared": {"tax_exclusive": 12500, "tax": 2250, "tax_inclusive": 14750},
        }
    })


class LineAmountsDTO(BaseModel):
    base_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal


class TotalsDiscrepancyDTO(BaseModel):
    field: str
    calculated: Decimal
    declared: Decimal
    description: str


class CalculateTotalsResponseDTO(BaseModel):
    """DTO - Rezultat obračuna fakture."""
    lines: list[LineAmountsDTO]
    tax_exclusive: Decimal
    tax: Decimal
    tax_inclusive: Decimal
    formatted_total: str
    valid: bool | None = None
    discrepancies: list[TotalsDiscrepancyDTO] = []


class InvoiceResponseDTO(BaseModel):
    """DTO - Faktura."""
    id: UUID
    company_id: UUID
    invoice_number: str
    direction: InvoiceDirection
    status: InvoiceStatus
    payment_status: InvoicePaymentStatus
    currency: str
    issue_date: date
    due_date: date | None = None
    partner_name: str | None = None
    total_amount: Decimal
    tax_amount: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal

    model_config = ConfigDict(from_attributes=True)


class MatchTransactionRequestDTO(BaseModel):
    invoice_id: UUID = Field(..., description="Faktura koja se zatvara")
    matched_by: str | None = Field(None, description="Korisnik")


class PaymentResponseDTO(BaseModel):
    """DTO - Uplata."""
    id: UUID
    company_id: UUID
    invoice_id: UUID
    amount: Decimal
    currency: str
    payment_date: date
    method: PaymentMethod
    reference: str | None = None
    bank_transaction_id: UUID | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BankTransactionResponseDTO(BaseModel):
    id: UUID
    statement_id: UUID
    transaction_date: date
    amount: Decimal
    direction: TransactionDirection
    reference: str | None = None
    partner_name: str | None = None
    partner_account: str | None = None
    match_status: MatchStatus
    matched_invoice_id: UUID | None = None
    payment_id: UUID | None = None
    match_detail: dict[str, Any] | None = Field(None, description="Osnov povezivanja ili predlog")

    model_config = ConfigDict(from_attributes=True)

    @field_validator("match_detail", mode="before")
    @classmethod
    def _serialize_match_detail(cls, value: Any) -> Any:
        if value is None or isinstance(value, dict):
            return value
        return match_detail_to_dict(value)


class BankStatementResponseDTO(BaseModel):
    """DTO - Izvod banke."""
    id: UUID
    company_id: UUID
    account_number: str
    statement_number: str
    statement_date: date
    currency: str
    opening_balance: Decimal
    closing_balance: Decimal
    total_credit: Decimal
    total_debit: Decimal
    status: StatementStatus

    model_config = ConfigDict(from_attributes=True)


class AutoMatchResultDTO(BaseModel):
    """DTO - Rezultat automatskog povezivanja izvoda."""
    statement_id: UUID
    matched: int
    still_unmatched: int
    suggested: int
    status: StatementStatus
    payment_ids: list[UUID] = []

    model_config = ConfigDict(from_attributes=True)


class VATPeriodDataDTO(BaseModel):
    """DTO - Obračun PPPDV (polja 001-204)."""
    year: int
    month: int
    period_type: PeriodType
    start_date: date
    end_date: date
    field001: Decimal = Field(..., description="Promet po opštoj stopi - osnovica")
    field002: Decimal = Field(..., description="Promet po opštoj stopi - PDV")
    field003: Decimal = Field(..., description="Promet po posebnoj stopi - osnovica")
    field004: Decimal = Field(..., description="Promet po posebnoj stopi - PDV")
    field005: Decimal = Field(..., description="Promet oslobođen PDV")
    field006: Decimal = Field(..., description="Izvoz")
    field101: Decimal = Field(..., description="Nabavka po opštoj stopi - osnovica")
    field102: Decimal = Field(..., description="Nabavka po opštoj stopi - PDV")
    field103: Decimal = Field(..., description="Nabavka po posebnoj stopi - osnovica")
    field104: Decimal = Field(..., description="Nabavka po posebnoj stopi - PDV")
    field105: Decimal = Field(..., description="Uvoz po opštoj stopi - PDV")
    field106: Decimal = Field(..., description="Uvoz po posebnoj stopi - PDV")
    field201: Decimal = Field(..., description="Ukupan izlazni PDV")
    field202: Decimal = Field(..., description="Ukupan ulazni PDV")
    field203: Decimal = Field(..., description="PDV za uplatu")
    field204: Decimal = Field(..., description="PDV za povraćaj")

    model_config = ConfigDict(from_attributes=True)


class SaveVATReportRequestDTO(BaseModel):
    company_id: UUID
    year: int | None = Field(None, ge=1, le=9999)
    month: int | None = Field(None, description="1-12")
    period_type: PeriodType = PeriodType.MONTHLY


class VATReportResponseDTO(BaseModel):
    """DTO - PPPDV prijava."""
    id: UUID
    company_id: UUID
    year: int
    month: int
    period_type: PeriodType
    status: ReportStatus
    field001: Decimal
    field002: Decimal
    field003: Decimal
    field004: Decimal
    field005: Decimal
    field006: Decimal
    field101: Decimal
    field102: Decimal
    field103: Decimal
    field104: Decimal
    field105: Decimal
    field106: Decimal
    field201: Decimal
    field202: Decimal
    field203: Decimal
    field204: Decimal
    calculated_at: datetime | None = None
    submitted_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class ManualPaymentRequestDTO(BaseModel):
    """DTO - Ručni unos uplate."""
    company_id: UUID
    amount: Decimal = Field(..., gt=0, description="Iznos uplate")
    method: PaymentMethod = PaymentMethod.BANK_TRANSFER
    payment_date: date | None = Field(None, description="Datum uplate")
    reference: str | None = Field(None, description="Poziv na broj")
    note: str | None = None
