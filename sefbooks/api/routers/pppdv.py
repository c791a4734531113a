"""
API Routers - PPPDV poreska prijava.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from sefbooks.application.dto.invoicing_dto import (
    SaveVATReportRequestDTO,
    VATPeriodDataDTO,
    VATReportResponseDTO,
)
from sefbooks.api.dependencies import get_vat_service
from sefbooks.domain.services import VATPeriodService
from sefbooks.domain.value_objects import PeriodType

router = APIRouter(prefix="/api/v1/pppdv", tags=["PPPDV"])


@router.get("/calculate", response_model=VATPeriodDataDTO)
def calculate(
    company_id: UUID = Query(..., description="Preduzeće"),
    year: int | None = Query(None, description="Godina (podrazumevano tekuća)"),
    month: int | None = Query(None, description="Mesec 1-12 (podrazumevano tekući)"),
    period_type: PeriodType = Query(PeriodType.MONTHLY),
    service: VATPeriodService = Depends(get_vat_service),
):
    """Obračun PPPDV bez čuvanja."""
    return VATPeriodDataDTO.model_validate(service.calculate(company_id, year, month, period_type))


@router.post("", response_model=VATReportResponseDTO, status_code=status.HTTP_201_CREATED)
def save(dto: SaveVATReportRequestDTO, service: VATPeriodService = Depends(get_vat_service)):
    """
    Obračun i čuvanje prijave (upsert po godini i mesecu).
    Podneta prijava se ne može ponovo obračunati.
    """
    report = service.save(dto.company_id, dto.year, dto.month, dto.period_type)
    return VATReportResponseDTO.model_validate(report)


@router.get("", response_model=list[VATReportResponseDTO])
def list_for_year(
    company_id: UUID = Query(...),
    year: int = Query(...),
    service: VATPeriodService = Depends(get_vat_service),
):
    return [VATReportResponseDTO.model_validate(r) for r in service.list_for_year(company_id, year)]


@router.get("/{report_id}", response_model=VATReportResponseDTO)
def get_report(report_id: UUID, service: VATPeriodService = Depends(get_vat_service)):
    return VATReportResponseDTO.model_validate(service.get(report_id))


@router.post("/{report_id}/submit", response_model=VATReportResponseDTO)
def submit(report_id: UUID, service: VATPeriodService = Depends(get_vat_service)):
    return VATReportResponseDTO.model_validate(service.submit(report_id))


@router.delete("/{report_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete(report_id: UUID, service: VATPeriodService = Depends(get_vat_service)):
    service.delete(report_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{report_id}/xml")
def export_xml(report_id: UUID, service: VATPeriodService = Depends(get_vat_service)):
    """XML za ePorezi."""
    report = service.get(report_id)
    xml = service.export_xml(report_id)
    filename = f"PPPDV_{report.year}_{report.month:02d}.xml"
    return Response(
        content=xml.encode("utf-8"),
        media_type="application/xml; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
