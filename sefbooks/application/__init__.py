"""Application layer - DTOs."""

from sefbooks.application.dto.invoicing_dto import (
    AutoMatchResultDTO,
    CalculateTotalsRequestDTO,
    CalculateTotalsResponseDTO,
    PaymentResponseDTO,
    VATPeriodDataDTO,
    VATReportResponseDTO,
)
