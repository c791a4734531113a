"""
API Routers - Izvodi i povezivanje transakcija sa fakturama.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from sefbooks.application.dto.invoicing_dto import (
    AutoMatchResultDTO,
    BankStatementResponseDTO,
    BankTransactionResponseDTO,
    MatchTransactionRequestDTO,
    PaymentResponseDTO,
)
from sefbooks.api.dependencies import get_reconciliation_service
from sefbooks.domain.reconciliation import BankReconciliationService

router = APIRouter(prefix="/api/v1", tags=["Izvodi"])


@router.get("/bank-statements/{statement_id}", response_model=BankStatementResponseDTO)
def get_statement(
    statement_id: UUID,
    service: BankReconciliationService = Depends(get_reconciliation_service),
):
    return BankStatementResponseDTO.model_validate(service.get_statement(statement_id))


@router.post("/bank-statements/{statement_id}/auto-match", response_model=AutoMatchResultDTO)
def auto_match(
    statement_id: UUID,
    service: BankReconciliationService = Depends(get_reconciliation_service),
):
    """
    Automatsko povezivanje priliva sa izlaznim fakturama.

    - Iznos mora biti jednak preostalom dugu
    - Nerazrešivi slučajevi ostaju za ručno povezivanje
    """
    return AutoMatchResultDTO.model_validate(service.run_auto_match(statement_id))


@router.get("/bank-transactions/unmatched", response_model=list[BankTransactionResponseDTO])
def list_unmatched(
    company_id: UUID = Query(..., description="Preduzeće"),
    limit: int = Query(50, ge=1, le=500),
    service: BankReconciliationService = Depends(get_reconciliation_service),
):
    return [
        BankTransactionResponseDTO.model_validate(tx)
        for tx in service.list_unmatched(company_id, limit)
    ]


@router.post(
    "/bank-transactions/{transaction_id}/match",
    response_model=PaymentResponseDTO,
    status_code=status.HTTP_201_CREATED,
)
def match_transaction(
    transaction_id: UUID,
    dto: MatchTransactionRequestDTO,
    service: BankReconciliationService = Depends(get_reconciliation_service),
):
    """Ručno povezivanje transakcije sa fakturom."""
    payment = service.match_transaction(transaction_id, dto.invoice_id, dto.matched_by)
    return PaymentResponseDTO.model_validate(payment)


@router.post(
    "/bank-transactions/{transaction_id}/payment",
    response_model=PaymentResponseDTO,
    status_code=status.HTTP_201_CREATED,
)
def create_payment(
    transaction_id: UUID,
    service: BankReconciliationService = Depends(get_reconciliation_service),
):
    """Uplata za već povezanu transakciju."""
    payment = service.create_payment_from_matched_transaction(transaction_id)
    return PaymentResponseDTO.model_validate(payment)


@router.post("/bank-transactions/{transaction_id}/ignore", response_model=BankTransactionResponseDTO)
def ignore_transaction(
    transaction_id: UUID,
    service: BankReconciliationService = Depends(get_reconciliation_service),
):
    return BankTransactionResponseDTO.model_validate(service.ignore_transaction(transaction_id))
