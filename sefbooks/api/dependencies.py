"""
FastAPI dependencies - unit of work factory, clock and services.

Tests override ``get_uow_factory`` and ``get_clock`` through
``app.dependency_overrides``.
"""

from collections.abc import Callable
from functools import partial

from fastapi import Depends

from sefbooks.core.clock import Clock, SystemClock
from sefbooks.core.config import get_settings
from sefbooks.domain.ledger import LedgerService
from sefbooks.domain.reconciliation import BankReconciliationService
from sefbooks.domain.repositories import IUnitOfWork
from sefbooks.domain.services import InvoiceService, VATPeriodService
from sefbooks.domain.totals import InvoiceTotalsCalculator
from sefbooks.infrastructure.database import SessionLocal
from sefbooks.infrastructure.database.repositories import SqlUnitOfWork


def get_uow_factory() -> Callable[[], IUnitOfWork]:
    return partial(SqlUnitOfWork, SessionLocal)


def get_clock() -> Clock:
    return SystemClock()


def get_totals_calculator() -> InvoiceTotalsCalculator:
    return InvoiceTotalsCalculator(get_settings().match_tolerance)


def get_ledger_service(
    uow_factory: Callable[[], IUnitOfWork] = Depends(get_uow_factory),
    clock: Clock = Depends(get_clock),
) -> LedgerService:
    return LedgerService(uow_factory, clock, get_settings().match_tolerance)


def get_reconciliation_service(
    uow_factory: Callable[[], IUnitOfWork] = Depends(get_uow_factory),
    ledger: LedgerService = Depends(get_ledger_service),
) -> BankReconciliationService:
    return BankReconciliationService(uow_factory, ledger, get_settings().match_tolerance)


def get_vat_service(
    uow_factory: Callable[[], IUnitOfWork] = Depends(get_uow_factory),
    clock: Clock = Depends(get_clock),
) -> VATPeriodService:
    return VATPeriodService(uow_factory, clock)


def get_invoice_service(
    uow_factory: Callable[[], IUnitOfWork] = Depends(get_uow_factory),
) -> InvoiceService:
    return InvoiceService(uow_factory)
