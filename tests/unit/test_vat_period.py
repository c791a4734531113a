"""
Unit tests - PPPDV obračun (polja 001-204), čuvanje, podnošenje i XML.
"""

import xml.etree.ElementTree as ET
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from sefbooks.core.exceptions import InvalidPeriodError, ReportNotFoundError, ReportSubmittedError
from sefbooks.domain.entities import Company
from sefbooks.domain.services import PPPDV_NAMESPACE, balance_due, resolve_period
from sefbooks.domain.value_objects import (
    InvoiceDirection,
    InvoiceStatus,
    PeriodType,
    ReportStatus,
)

NS = {"p": PPPDV_NAMESPACE}


def _incoming(make_invoice, number, **kwargs):
    kwargs.setdefault("status", InvoiceStatus.ACCEPTED)
    return make_invoice(number, direction=InvoiceDirection.INCOMING, **kwargs)


class TestResolvePeriod:

    def test_monthly(self):
        assert resolve_period(2026, 1, PeriodType.MONTHLY) == (date(2026, 1, 1), date(2026, 1, 31))

    def test_leap_february(self):
        assert resolve_period(2024, 2, PeriodType.MONTHLY)[1] == date(2024, 2, 29)

    @pytest.mark.parametrize("month, start, end", [
        (1, date(2026, 1, 1), date(2026, 3, 31)),
        (2, date(2026, 1, 1), date(2026, 3, 31)),
        (6, date(2026, 4, 1), date(2026, 6, 30)),
        (10, date(2026, 10, 1), date(2026, 12, 31)),
    ])
    def test_quarter_containing_month(self, month, start, end):
        assert resolve_period(2026, month, PeriodType.QUARTERLY) == (start, end)

    @pytest.mark.parametrize("year, month", [(2026, 0), (2026, 13), (0, 5)])
    def test_invalid_period(self, year, month):
        with pytest.raises(InvalidPeriodError):
            resolve_period(year, month, PeriodType.MONTHLY)


class TestCalculate:
    """Obračun PPPDV iz faktura perioda."""

    def test_single_outgoing_invoice_is_payable(self, make_invoice, vat_service, company_id):
        make_invoice("F-1", quantity=1, unit_price=50000, tax_rate=20)

        data = vat_service.calculate(company_id, 2026, 1)

        assert data.field001 == Decimal("50000.00")
        assert data.field002 == Decimal("10000.00")
        assert data.field201 == Decimal("10000.00")
        assert data.field202 == Decimal("0")
        assert data.field203 == Decimal("10000.00")
        assert data.field204 == Decimal("0")
        assert balance_due(data) == Decimal("10000.00")

    def test_input_vat_above_output_is_refundable(self, make_invoice, vat_service, company_id):
        make_invoice("F-1", quantity=1, unit_price=50000, tax_rate=20)
        _incoming(make_invoice, "UF-1", quantity=1, unit_price=80000, tax_rate=20)

        data = vat_service.calculate(company_id, 2026, 1)

        assert data.field101 == Decimal("80000.00")
        assert data.field102 == Decimal("16000.00")
        assert data.field202 == Decimal("16000.00")
        assert data.field203 == Decimal("0")
        assert data.field204 == Decimal("6000.00")
        assert balance_due(data) == Decimal("-6000.00")

    def test_buckets_by_rate_export_and_import(self, make_invoice, vat_service, company_id):
        make_invoice("F-1", lines=[
            {"quantity": 1, "unit_price": 1000, "tax_rate": 20},
            {"quantity": 1, "unit_price": 500, "tax_rate": 10},
            {"quantity": 1, "unit_price": 300, "tax_rate": 0},
        ])
        make_invoice("F-2", unit_price=700, tax_rate=0, is_export=True)
        _incoming(make_invoice, "UF-1", unit_price=400, tax_rate=10)
        _incoming(make_invoice, "UVOZ-1", unit_price=2000, tax_rate=20, is_import=True)
        _incoming(make_invoice, "UVOZ-2", unit_price=100, tax_rate=10, is_import=True)

        data = vat_service.calculate(company_id, 2026, 1)

        assert data.field001 == Decimal("1000.00")
        assert data.field002 == Decimal("200.00")
        assert data.field003 == Decimal("500.00")
        assert data.field004 == Decimal("50.00")
        assert data.field005 == Decimal("300.00")
        assert data.field006 == Decimal("700.00")
        assert data.field101 == Decimal("0")
        assert data.field103 == Decimal("400.00")
        assert data.field104 == Decimal("40.00")
        assert data.field105 == Decimal("400.00")
        assert data.field106 == Decimal("10.00")
        assert data.field201 == Decimal("250.00")
        assert data.field202 == Decimal("450.00")
        assert data.field203 == Decimal("0")
        assert data.field204 == Decimal("200.00")

    def test_status_and_period_filters(self, make_invoice, vat_service, company_id):
        make_invoice("F-DRAFT", status=InvoiceStatus.DRAFT)
        make_invoice("F-CANCELLED", status=InvoiceStatus.CANCELLED)
        make_invoice("F-FEB", issue_date=date(2026, 2, 3))
        make_invoice("F-DELIVERED", status=InvoiceStatus.DELIVERED)
        _incoming(make_invoice, "UF-SENT", status=InvoiceStatus.SENT)

        january = vat_service.calculate(company_id, 2026, 1)
        quarter = vat_service.calculate(company_id, 2026, 2, PeriodType.QUARTERLY)

        assert january.field001 == Decimal("1000.00")
        assert january.field202 == Decimal("0")
        assert quarter.field001 == Decimal("2000.00")
        assert quarter.start_date == date(2026, 1, 1)
        assert quarter.end_date == date(2026, 3, 31)

    def test_unsupported_rate_is_skipped_with_warning(
        self, make_invoice, vat_service, company_id, log_records
    ):
        make_invoice("F-1", lines=[
            {"quantity": 1, "unit_price": 1000, "tax_rate": 20},
            {"quantity": 1, "unit_price": 1000, "tax_rate": 8},
        ])

        data = vat_service.calculate(company_id, 2026, 1)

        assert data.field001 == Decimal("1000.00")
        assert data.field201 == Decimal("200.00")
        warnings = [r for r in log_records if r.levelname == "WARNING" and r.name == "sefbooks.vat"]
        assert len(warnings) == 1
        assert warnings[0].tax_rate == "8"
        assert warnings[0].invoice_number == "F-1"

    def test_defaults_to_current_period(self, vat_service, company_id):
        data = vat_service.calculate(company_id)

        assert (data.year, data.month) == (2026, 2)
        assert data.period_type == PeriodType.MONTHLY

    def test_invalid_month(self, vat_service, company_id):
        with pytest.raises(InvalidPeriodError):
            vat_service.calculate(company_id, 2026, 13)


class TestReportLifecycle:
    """Čuvanje (upsert), podnošenje, brisanje."""

    def test_save_is_upsert(self, make_invoice, vat_service, company_id, clock):
        make_invoice("F-1")
        first = vat_service.save(company_id, 2026, 1)
        make_invoice("F-2")

        second = vat_service.save(company_id, 2026, 1)

        assert second.id == first.id
        assert second.version == first.version + 1
        assert second.field001 == Decimal("2000.00")
        assert second.calculated_at == clock.now()
        assert [r.id for r in vat_service.list_for_year(company_id, 2026)] == [first.id]
        assert vat_service.get_by_period(company_id, 2026, 1).id == first.id

    def test_repeated_save_without_changes_is_stable(self, make_invoice, vat_service, company_id):
        make_invoice("F-1", quantity=2, unit_price="1500.50", tax_rate=20)
        _incoming(make_invoice, "UF-1", unit_price=800, tax_rate=10)

        first = vat_service.save(company_id, 2026, 1)
        second = vat_service.save(company_id, 2026, 1)

        assert second.id == first.id
        assert second.field_values() == first.field_values()
        assert second.field_values() == vat_service.calculate(company_id, 2026, 1).field_values()

    def test_submit_freezes_report(self, make_invoice, vat_service, company_id, clock):
        make_invoice("F-1")
        report = vat_service.save(company_id, 2026, 1)

        submitted = vat_service.submit(report.id)

        assert submitted.status == ReportStatus.SUBMITTED
        assert submitted.submitted_at == clock.now()
        with pytest.raises(ReportSubmittedError, match="submit"):
            vat_service.submit(report.id)
        with pytest.raises(ReportSubmittedError, match="recalculate"):
            vat_service.save(company_id, 2026, 1)
        with pytest.raises(ReportSubmittedError, match="delete"):
            vat_service.delete(report.id)
        assert vat_service.get(report.id).status == ReportStatus.SUBMITTED

    def test_delete_calculated_report(self, vat_service, company_id):
        report = vat_service.save(company_id, 2026, 1)

        vat_service.delete(report.id)

        with pytest.raises(ReportNotFoundError):
            vat_service.get(report.id)
        assert vat_service.list_for_year(company_id, 2026) == []

    def test_quarterly_report_keyed_by_year_and_month(self, vat_service, company_id):
        report = vat_service.save(company_id, 2026, 3, PeriodType.QUARTERLY)

        assert (report.year, report.month, report.period_type) == (2026, 3, PeriodType.QUARTERLY)
        assert vat_service.get_by_period(company_id, 2026, 3).id == report.id


class TestPppdvXml:
    """XML za ePorezi."""

    def test_xml_structure(self, make_invoice, vat_service, company_id, company):
        make_invoice("F-1", quantity=1, unit_price=50000, tax_rate=20)
        report = vat_service.save(company_id, 2026, 1)

        root = ET.fromstring(vat_service.export_xml(report.id).encode("utf-8"))

        assert root.tag == f"{{{PPPDV_NAMESPACE}}}PPPDV"
        assert root.find("p:Zaglavlje/p:PIB", NS).text == company.pib
        assert root.find("p:Zaglavlje/p:Naziv", NS).text == company.name
        assert root.find("p:Zaglavlje/p:Godina", NS).text == "2026"
        assert root.find("p:Zaglavlje/p:Mesec", NS).text == "1"
        assert root.find("p:Zaglavlje/p:TipPerioda", NS).text == "M"
        fields = root.find("p:Podaci", NS)
        assert len(fields) == 16
        assert root.find("p:Podaci/p:Polje001", NS).text == "50000.00"
        assert root.find("p:Podaci/p:Polje203", NS).text == "10000.00"
        assert root.find("p:Podaci/p:Polje204", NS).text == "0.00"

    def test_company_name_is_escaped(self, uow_factory, vat_service):
        company = Company(pib="101234577", name='Petrović & Sinovi "Zlatni" <d.o.o.>')
        with uow_factory() as uow:
            uow.companies.add(company)
            uow.commit()
        report = vat_service.save(company.id, 2026, 1, PeriodType.QUARTERLY)

        xml = vat_service.export_xml(report.id)

        assert "Petrović &amp; Sinovi" in xml
        assert "&quot;Zlatni&quot;" in xml
        assert "&lt;d.o.o.&gt;" in xml
        assert "<d.o.o.>" not in xml
        root = ET.fromstring(xml.encode("utf-8"))
        assert root.find("p:Zaglavlje/p:Naziv", NS).text == company.name
        assert root.find("p:Zaglavlje/p:TipPerioda", NS).text == "K"

    def test_every_field_survives_round_trip(self, make_invoice, vat_service, company_id):
        make_invoice("F-1", lines=[
            {"quantity": 3, "unit_price": "333.33", "tax_rate": 20},
            {"quantity": 1, "unit_price": 500, "tax_rate": 10},
            {"quantity": 1, "unit_price": 300, "tax_rate": 0},
        ])
        make_invoice("F-2", unit_price=700, tax_rate=0, is_export=True)
        _incoming(make_invoice, "UF-1", unit_price="1234.56", tax_rate=20)
        _incoming(make_invoice, "UF-2", unit_price=400, tax_rate=10)
        _incoming(make_invoice, "UVOZ-1", unit_price=2000, tax_rate=20, is_import=True)
        _incoming(make_invoice, "UVOZ-2", unit_price=100, tax_rate=10, is_import=True)
        report = vat_service.save(company_id, 2026, 1)

        root = ET.fromstring(vat_service.export_xml(report.id).encode("utf-8"))

        parsed = {
            f"field{element.tag.rsplit('Polje', 1)[1]}": Decimal(element.text)
            for element in root.find("p:Podaci", NS)
        }
        assert parsed == report.field_values()

    def test_unknown_report(self, vat_service):
        with pytest.raises(ReportNotFoundError):
            vat_service.export_xml(uuid4())
