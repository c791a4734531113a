"""Domain layer - Pure Python business logic."""

from sefbooks.domain.entities import (
    BankStatement,
    BankTransaction,
    Company,
    Invoice,
    InvoiceLine,
    Payment,
    PettyCashAccount,
    PettyCashEntry,
    VATPeriodData,
    VATPeriodReport,
)
from sefbooks.domain.ledger import LedgerService
from sefbooks.domain.reconciliation import (
    AutoMatchResult,
    BankReconciliationService,
    ParsedStatement,
    ParsedTransaction,
)
from sefbooks.domain.repositories import IUnitOfWork
from sefbooks.domain.services import InvoiceService, VATPeriodService, resolve_period
from sefbooks.domain.totals import InvoiceTotals, InvoiceTotalsCalculator
from sefbooks.domain.value_objects import (
    InvoiceDirection,
    InvoiceStatus,
    MatchStatus,
    Money,
    PeriodType,
    TransactionDirection,
)
