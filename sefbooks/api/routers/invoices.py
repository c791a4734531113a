"""
API Routers - Obračun i pregled faktura.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status

from sefbooks.application.dto.invoicing_dto import (
    CalculateTotalsRequestDTO,
    CalculateTotalsResponseDTO,
    InvoiceResponseDTO,
    LineAmountsDTO,
    ManualPaymentRequestDTO,
    PaymentResponseDTO,
    TotalsDiscrepancyDTO,
)
from sefbooks.api.dependencies import get_invoice_service, get_ledger_service, get_totals_calculator
from sefbooks.domain.ledger import LedgerService
from sefbooks.domain.services import InvoiceService
from sefbooks.domain.totals import InvoiceTotals, InvoiceTotalsCalculator
from sefbooks.domain.value_objects import format_currency

router = APIRouter(prefix="/api/v1/invoices", tags=["Fakture"])


@router.post("/calculate-totals", response_model=CalculateTotalsResponseDTO)
def calculate_totals(
    dto: CalculateTotalsRequestDTO,
    calculator: InvoiceTotalsCalculator = Depends(get_totals_calculator),
):
    """
    Obračun osnovice, PDV i ukupnog iznosa iz stavki.

    - Zaokruživanje po stavci na 2 decimale
    - Ako su poslati deklarisani iznosi, vraća i razlike (tolerancija 0,01)
    """
    line_amounts = [
        calculator.calculate_line(line.quantity, line.unit_price, line.tax_rate)
        for line in dto.lines
    ]
    totals = calculator.compute(dto.lines)

    response = CalculateTotalsResponseDTO(
        lines=[
            LineAmountsDTO(
                base_amount=a.base_amount, tax_amount=a.tax_amount, total_amount=a.total_amount
            )
            for a in line_amounts
        ],
        tax_exclusive=totals.tax_exclusive,
        tax=totals.tax,
        tax_inclusive=totals.tax_inclusive,
        formatted_total=format_currency(totals.tax_inclusive),
    )

    if dto.declared is not None:
        validation = calculator.validate_totals(
            totals,
            InvoiceTotals(
                tax_exclusive=dto.declared.tax_exclusive,
                tax=dto.declared.tax,
                tax_inclusive=dto.declared.tax_inclusive,
            ),
        )
        response.valid = validation.valid
        response.discrepancies = [
            TotalsDiscrepancyDTO(
                field=d.field, calculated=d.calculated, declared=d.declared, description=d.description
            )
            for d in validation.discrepancies
        ]
    return response


@router.get("/{invoice_id}", response_model=InvoiceResponseDTO)
def get_invoice(invoice_id: UUID, service: InvoiceService = Depends(get_invoice_service)):
    return InvoiceResponseDTO.model_validate(service.get(invoice_id))


@router.post(
    "/{invoice_id}/payments",
    response_model=PaymentResponseDTO,
    status_code=status.HTTP_201_CREATED,
)
def record_payment(
    invoice_id: UUID,
    dto: ManualPaymentRequestDTO,
    ledger: LedgerService = Depends(get_ledger_service),
):
    """Ručni unos uplate; preplata se odbija (409)."""
    payment = ledger.record_payment(
        dto.company_id,
        invoice_id,
        dto.amount,
        dto.method,
        payment_date=dto.payment_date,
        reference=dto.reference,
        note=dto.note,
    )
    return PaymentResponseDTO.model_validate(payment)
