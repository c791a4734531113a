"""
Domain Services - Business logic that operates on multiple entities.
PPPDV obračun (Zakon o PDV, Pravilnik o obliku i sadržini poreske prijave)
i životni ciklus fakture.
"""

import calendar
import xml.etree.ElementTree as ET
from collections.abc import Callable
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sefbooks.core.clock import Clock, SystemClock
from sefbooks.core.exceptions import (
    CompanyNotFoundError,
    DuplicateInvoiceError,
    InvalidPeriodError,
    InvoiceNotFoundError,
    ReportNotFoundError,
)
from sefbooks.core.logging_config import LogContext, get_logger

from .entities import (
    VAT_FIELD_NAMES,
    Company,
    Invoice,
    InvoiceLine,
    VATPeriodData,
    VATPeriodReport,
)
from .repositories import IUnitOfWork
from .value_objects import (
    ZERO,
    InvoiceDirection,
    InvoiceStatus,
    PeriodType,
    round2,
    sum_decimals,
)

logger = get_logger("vat")

OUTGOING_VAT_STATUSES = (InvoiceStatus.SENT, InvoiceStatus.DELIVERED, InvoiceStatus.ACCEPTED)
INCOMING_VAT_STATUSES = (InvoiceStatus.ACCEPTED,)

GENERAL_RATE = Decimal("20")
REDUCED_RATE = Decimal("10")

PPPDV_NAMESPACE = "http://pid.poreskauprava.gov.rs/xsd/pppdv"


def resolve_period(year: int, month: int, period_type: PeriodType) -> tuple[date, date]:
    """
    Mesečni period je kalendarski mesec; tromesečni je kvartal koji sadrži
    ``month`` (ceil(month / 3)).
    """
    if not isinstance(year, int) or not 1 <= year <= 9999:
        raise InvalidPeriodError(year, month, period_type)
    if not isinstance(month, int) or not 1 <= month <= 12:
        raise InvalidPeriodError(year, month, period_type)

    if period_type == PeriodType.QUARTERLY:
        quarter = (month + 2) // 3
        first_month = (quarter - 1) * 3 + 1
        last_month = quarter * 3
    else:
        first_month = last_month = month

    last_day = calendar.monthrange(year, last_month)[1]
    return date(year, first_month, 1), date(year, last_month, last_day)


class _VATBuckets:
    """Raw (unrounded) sums per PPPDV field."""

    def __init__(self) -> None:
        self.raw: dict[str, list[Decimal]] = {name: [] for name in VAT_FIELD_NAMES}

    def add(self, name: str, value: Decimal) -> None:
        self.raw[name].append(value)

    def total(self, *names: str) -> Decimal:
        return sum_decimals(*(v for name in names for v in self.raw[name]))


def aggregate_vat(
    outgoing: list[Invoice],
    incoming: list[Invoice],
    year: int,
    month: int,
    period_type: PeriodType,
    start_date: date,
    end_date: date,
) -> VATPeriodData:
    buckets = _VATBuckets()

    for invoice in outgoing:
        for line in invoice.lines:
            if line.tax_rate == GENERAL_RATE:
                buckets.add("field001", line.base_amount)
                buckets.add("field002", line.tax_amount)
            elif line.tax_rate == REDUCED_RATE:
                buckets.add("field003", line.base_amount)
                buckets.add("field004", line.tax_amount)
            elif line.tax_rate == ZERO:
                buckets.add("field006" if invoice.is_export else "field005", line.base_amount)
            else:
                _warn_unknown_rate(invoice, line)

    for invoice in incoming:
        for line in invoice.lines:
            if line.tax_rate == GENERAL_RATE:
                if invoice.is_import:
                    buckets.add("field105", line.tax_amount)
                else:
                    buckets.add("field101", line.base_amount)
                    buckets.add("field102", line.tax_amount)
            elif line.tax_rate == REDUCED_RATE:
                if invoice.is_import:
                    buckets.add("field106", line.tax_amount)
                else:
                    buckets.add("field103", line.base_amount)
                    buckets.add("field104", line.tax_amount)
            elif line.tax_rate != ZERO:
                _warn_unknown_rate(invoice, line)

    output_vat = buckets.total("field002", "field004")
    input_vat = buckets.total("field102", "field104", "field105", "field106")
    balance = output_vat - input_vat

    values: dict[str, Decimal] = {
        name: round2(buckets.total(name))
        for name in VAT_FIELD_NAMES
        if not name.startswith("field2")
    }
    values["field201"] = round2(output_vat)
    values["field202"] = round2(input_vat)
    values["field203"] = round2(balance) if balance > 0 else ZERO
    values["field204"] = round2(-balance) if balance < 0 else ZERO

    return VATPeriodData(
        year=year,
        month=month,
        period_type=period_type,
        start_date=start_date,
        end_date=end_date,
        **values,
    )


def _warn_unknown_rate(invoice: Invoice, line: InvoiceLine) -> None:
    logger.warning(
        "Invoice line with unsupported VAT rate skipped",
        extra={
            "invoice_id": str(invoice.id),
            "invoice_number": invoice.invoice_number,
            "line_number": line.line_number,
            "tax_rate": str(line.tax_rate),
        },
    )


def _xml_amount(value: Decimal) -> str:
    return f"{round2(value):.2f}"


def _tag(name: str) -> str:
    return f"{{{PPPDV_NAMESPACE}}}{name}"


def render_pppdv_xml(report: VATPeriodReport, company: Company) -> str:
    """ePorezi PPPDV XML (UTF-8). ElementTree escapes `& < >`; quotes in text become entities too."""
    root = ET.Element(_tag("PPPDV"))

    header = ET.SubElement(root, _tag("Zaglavlje"))
    for name, text in (
        ("PIB", company.pib),
        ("Naziv", company.name),
        ("Godina", str(report.year)),
        ("Mesec", str(report.month)),
        ("TipPerioda", report.period_type.code),
    ):
        ET.SubElement(header, _tag(name)).text = text

    values = report.field_values()
    data = ET.SubElement(root, _tag("Podaci"))
    for name in VAT_FIELD_NAMES:
        ET.SubElement(data, _tag(f"Polje{name[-3:]}")).text = _xml_amount(values[name])

    ET.indent(root)
    body = ET.tostring(root, encoding="unicode", default_namespace=PPPDV_NAMESPACE)
    # only the root tag carries attributes; quotes after it are element text
    root_tag, _, content = body.partition(">")
    content = content.replace('"', "&quot;").replace("'", "&apos;")
    return f'<?xml version="1.0" encoding="UTF-8"?>\n{root_tag}>{content}\n'


class VATPeriodService:
    """
    Service - PPPDV prijava: obračun, čuvanje, podnošenje, brisanje, XML.
    """

    def __init__(self, uow_factory: Callable[[], IUnitOfWork], clock: Clock | None = None):
        self.uow_factory = uow_factory
        self.clock = clock or SystemClock()

    def _default_period(self, year: int | None, month: int | None) -> tuple[int, int]:
        today = self.clock.today()
        return (year if year is not None else today.year, month if month is not None else today.month)

    def _calculate(
        self,
        uow: IUnitOfWork,
        company_id: UUID,
        year: int,
        month: int,
        period_type: PeriodType,
    ) -> VATPeriodData:
        start_date, end_date = resolve_period(year, month, period_type)
        outgoing = uow.invoices.list_by_period(
            company_id, InvoiceDirection.OUTGOING, OUTGOING_VAT_STATUSES, start_date, end_date
        )
        incoming = uow.invoices.list_by_period(
            company_id, InvoiceDirection.INCOMING, INCOMING_VAT_STATUSES, start_date, end_date
        )
        logger.info(
            "Calculating PPPDV",
            extra={
                "year": year,
                "month": month,
                "period_type": period_type.value,
                "start_date": start_date,
                "end_date": end_date,
                "outgoing_count": len(outgoing),
                "incoming_count": len(incoming),
            },
        )
        return aggregate_vat(outgoing, incoming, year, month, period_type, start_date, end_date)

    def calculate(
        self,
        company_id: UUID,
        year: int | None = None,
        month: int | None = None,
        period_type: PeriodType = PeriodType.MONTHLY,
    ) -> VATPeriodData:
        """Obračun bez čuvanja."""
        year, month = self._default_period(year, month)
        with LogContext.bind(company_id=company_id, operation="pppdv.calculate"):
            with self.uow_factory() as uow:
                return self._calculate(uow, company_id, year, month, period_type)

    def save(
        self,
        company_id: UUID,
        year: int | None = None,
        month: int | None = None,
        period_type: PeriodType = PeriodType.MONTHLY,
    ) -> VATPeriodReport:
        """Upsert po (company_id, year, month); podneta prijava se ne menja."""
        year, month = self._default_period(year, month)
        with LogContext.bind(company_id=company_id, operation="pppdv.save"):
            with self.uow_factory() as uow:
                data = self._calculate(uow, company_id, year, month, period_type)
                existing = uow.vat_reports.get_by_period(company_id, year, month)
                now = self.clock.now()
                if existing is None:
                    report = uow.vat_reports.add(VATPeriodReport.from_data(company_id, data, now))
                else:
                    report = uow.vat_reports.update(existing.recalculated(data, now))
                uow.commit()

            logger.info(
                "PPPDV report saved",
                extra={"report_id": str(report.id), "year": year, "month": month},
            )
            return report

    def get(self, report_id: UUID) -> VATPeriodReport:
        with self.uow_factory() as uow:
            report = uow.vat_reports.get(report_id)
        if report is None:
            raise ReportNotFoundError(report_id)
        return report

    def get_by_period(self, company_id: UUID, year: int, month: int) -> VATPeriodReport | None:
        with self.uow_factory() as uow:
            return uow.vat_reports.get_by_period(company_id, year, month)

    def list_for_year(self, company_id: UUID, year: int) -> list[VATPeriodReport]:
        with self.uow_factory() as uow:
            return uow.vat_reports.list_for_year(company_id, year)

    def submit(self, report_id: UUID) -> VATPeriodReport:
        """Jedini nepovratan prelaz: CALCULATED -> SUBMITTED."""
        with self.uow_factory() as uow:
            report = uow.vat_reports.get(report_id, for_update=True)
            if report is None:
                raise ReportNotFoundError(report_id)
            report = uow.vat_reports.update(report.submit(self.clock.now()))
            uow.commit()

        logger.info("PPPDV report submitted", extra={"report_id": str(report_id)})
        return report

    def delete(self, report_id: UUID) -> None:
        with self.uow_factory() as uow:
            report = uow.vat_reports.get(report_id, for_update=True)
            if report is None:
                raise ReportNotFoundError(report_id)
            report.ensure_deletable()
            uow.vat_reports.delete(report_id)
            uow.commit()

        logger.info("PPPDV report deleted", extra={"report_id": str(report_id)})

    def export_xml(self, report_id: UUID) -> str:
        with self.uow_factory() as uow:
            report = uow.vat_reports.get(report_id)
            if report is None:
                raise ReportNotFoundError(report_id)
            company = uow.companies.get(report.company_id)
            if company is None:
                raise CompanyNotFoundError(report.company_id)
        return render_pppdv_xml(report, company)


def build_lines(lines: list[dict[str, Any]]) -> list[InvoiceLine]:
    return [
        InvoiceLine.create(
            quantity=line["quantity"],
            unit_price=line["unit_price"],
            tax_rate=line["tax_rate"],
            description=line.get("description") or "",
        )
        for line in lines
    ]


class InvoiceService:
    """
    Service - Unos faktura i promena statusa.
    Stavke se mogu menjati samo dok je faktura u statusu DRAFT.
    """

    def __init__(self, uow_factory: Callable[[], IUnitOfWork]):
        self.uow_factory = uow_factory

    def create_invoice(self, invoice: Invoice, lines: list[dict[str, Any]]) -> Invoice:
        """
        Iznosi se obračunavaju iz stavki; prosleđeni status se zadržava
        (ulazne fakture iz SEF-a stižu već prihvaćene).
        """
        status = invoice.status
        created = replace(invoice, status=InvoiceStatus.DRAFT).with_lines(build_lines(lines))
        created = replace(created, status=status, version=1)

        with self.uow_factory() as uow:
            if uow.companies.get(created.company_id) is None:
                raise CompanyNotFoundError(created.company_id)
            if uow.invoices.get_by_number(created.company_id, created.invoice_number):
                raise DuplicateInvoiceError(created.company_id, created.invoice_number)
            created = uow.invoices.add(created)
            uow.commit()

        logger.info(
            "Invoice created",
            extra={
                "invoice_id": str(created.id),
                "invoice_number": created.invoice_number,
                "direction": created.direction.value,
                "total_amount": str(created.total_amount),
            },
        )
        return created

    def get(self, invoice_id: UUID) -> Invoice:
        with self.uow_factory() as uow:
            invoice = uow.invoices.get(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id)
        return invoice

    def replace_lines(self, invoice_id: UUID, lines: list[dict[str, Any]]) -> Invoice:
        with self.uow_factory() as uow:
            invoice = uow.invoices.get(invoice_id, for_update=True)
            if invoice is None:
                raise InvoiceNotFoundError(invoice_id)
            updated = uow.invoices.update(invoice.with_lines(build_lines(lines)))
            uow.commit()
        return updated

    def change_status(self, invoice_id: UUID, status: InvoiceStatus) -> Invoice:
        with self.uow_factory() as uow:
            invoice = uow.invoices.get(invoice_id, for_update=True)
            if invoice is None:
                raise InvoiceNotFoundError(invoice_id)
            updated = uow.invoices.update(invoice.transition(status))
            uow.commit()

        logger.info(
            "Invoice status changed",
            extra={"invoice_id": str(invoice_id), "status": status.value},
        )
        return updated


def balance_due(report: VATPeriodReport | VATPeriodData) -> Decimal:
    """Pozitivno - za uplatu, negativno - za povraćaj."""
    return round2(report.field203 - report.field204)
