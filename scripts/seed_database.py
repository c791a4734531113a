#!/usr/bin/env python3
"""
Database Seeding Script - SEF fakture, izvod i PPPDV
Seed demo podataka za testiranje i UAT
"""

from datetime import date
from decimal import Decimal
from functools import partial

DEMO_PIB = "101234569"


def main():
    """Main function."""
    print("=" * 60)
    print("Database Seeding - SefBooks")
    print("=" * 60)

    from sefbooks.infrastructure.database import SessionLocal, init_db

    init_db()

    from sefbooks.core.logging_config import configure_logging
    from sefbooks.domain.entities import Company, Invoice
    from sefbooks.domain.ledger import LedgerService
    from sefbooks.domain.reconciliation import (
        BankReconciliationService,
        ParsedStatement,
        ParsedTransaction,
    )
    from sefbooks.domain.services import InvoiceService, VATPeriodService
    from sefbooks.domain.value_objects import (
        InvoiceDirection,
        InvoiceStatus,
        TransactionDirection,
    )
    from sefbooks.infrastructure.database.repositories import SqlUnitOfWork

    configure_logging(level="WARNING")
    uow_factory = partial(SqlUnitOfWork, SessionLocal)

    with uow_factory() as uow:
        existing = uow.companies.get_by_pib(DEMO_PIB)
        if existing:
            print(f"✓ Company already exists: {existing.name}")
            print(f"Company ID: {existing.id}")
            return
        company = Company(pib=DEMO_PIB, name="Demo Trade d.o.o.", address="Knez Mihailova 1, Beograd")
        uow.companies.add(company)
        uow.commit()
    print(f"✓ Created company: {company.name} (PIB {company.pib})")

    invoices = InvoiceService(uow_factory)
    outgoing = [
        (
            Invoice(
                company_id=company.id,
                invoice_number="F-2026-001",
                direction=InvoiceDirection.OUTGOING,
                issue_date=date(2026, 1, 10),
                due_date=date(2026, 1, 25),
                status=InvoiceStatus.SENT,
                partner_name="Alfa Promet d.o.o.",
                partner_accounts=["160-0000000012345-67"],
            ),
            [{"quantity": 10, "unit_price": 1000, "tax_rate": 20, "description": "Konsalting"}],
        ),
        (
            Invoice(
                company_id=company.id,
                invoice_number="F-2026-002",
                direction=InvoiceDirection.OUTGOING,
                issue_date=date(2026, 1, 15),
                due_date=date(2026, 1, 30),
                status=InvoiceStatus.SENT,
                partner_name="Beta Knjige d.o.o.",
            ),
            [{"quantity": 5, "unit_price": 500, "tax_rate": 10, "description": "Udžbenici"}],
        ),
    ]
    incoming = [
        (
            Invoice(
                company_id=company.id,
                invoice_number="UF-2026-001",
                direction=InvoiceDirection.INCOMING,
                issue_date=date(2026, 1, 12),
                status=InvoiceStatus.ACCEPTED,
                partner_name="Gama Servis d.o.o.",
            ),
            [{"quantity": 1, "unit_price": 5000, "tax_rate": 20, "description": "Održavanje"}],
        ),
    ]

    print(f"\n📦 Seeding {len(outgoing) + len(incoming)} invoices...")
    for invoice, lines in outgoing + incoming:
        created = invoices.create_invoice(invoice, lines)
        print(f"  ✓ {created.invoice_number}: {created.total_amount} {created.currency}")

    ledger = LedgerService(uow_factory)
    reconciliation = BankReconciliationService(uow_factory, ledger)
    statement = reconciliation.register_statement(
        company.id,
        ParsedStatement(
            account_number="265-0000000001234-56",
            statement_number="1",
            statement_date=date(2026, 1, 26),
            opening_balance=Decimal("0"),
            closing_balance=Decimal("12000.00"),
            bank_name="Demo banka",
            transactions=[
                ParsedTransaction(
                    transaction_date=date(2026, 1, 26),
                    amount=Decimal("12000.00"),
                    direction=TransactionDirection.CREDIT,
                    reference="F-2026-001",
                    partner_name="ALFA PROMET DOO",
                    partner_account="160-0000000012345-67",
                ),
            ],
        ),
    )
    result = reconciliation.run_auto_match(statement.id)
    print(f"\n✓ Statement {statement.statement_number}: matched={result.matched}, "
          f"unmatched={result.still_unmatched}")

    report = VATPeriodService(uow_factory).save(company.id, 2026, 1)
    print(f"✓ PPPDV 2026/01: za uplatu {report.field203}, za povraćaj {report.field204}")

    print("\n" + "=" * 60)
    print("Seeding completed successfully!")
    print(f"Company ID: {company.id}")
    print("=" * 60)


if __name__ == "__main__":
    main()
