"""
Typed exception hierarchy for the reconciliation and VAT engine.

Every error carries a machine readable ``code`` class attribute, an HTTP
``status_code`` used by the API binding, and its context as attributes.

    SefBooksError
    +-- ValidationError          (400, also a ValueError)
    |   +-- InvalidTaxRateError
    |   +-- InvalidQuantityError
    |   +-- InvalidAmountError
    |   +-- InvalidPeriodError
    |   +-- InvalidPibError
    |   +-- CurrencyMismatchError
    |   +-- UnbalancedStatementError
    |   +-- DirectionMismatchError
    +-- NotFoundError            (404)
    |   +-- CompanyNotFoundError
    |   +-- InvoiceNotFoundError
    |   +-- StatementNotFoundError
    |   +-- TransactionNotFoundError
    |   +-- ReportNotFoundError
    |   +-- PettyCashAccountNotFoundError
    +-- ConflictError            (409)
        +-- OverpaymentError
        +-- DuplicatePaymentError
        +-- TransactionStateError
        +-- InvoiceLockedError
        +-- InvoiceStateError
        +-- ReportSubmittedError
        +-- DuplicateInvoiceError
        +-- DuplicateStatementError
        +-- InsufficientFundsError
        +-- ConcurrentUpdateError

Totals discrepancies between declared and calculated invoice amounts are not
exceptions; see ``InvoiceTotalsCalculator.validate_totals``.
"""

from decimal import Decimal
from typing import Any


class SefBooksError(Exception):
    """Base exception for all engine errors."""

    code: str = "SEFBOOKS_ERROR"
    status_code: int = 500

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "detail": str(self)}


# Validation


class ValidationError(SefBooksError, ValueError):
    """Malformed input; recoverable by correcting it, never retried."""

    code: str = "VALIDATION_ERROR"
    status_code: int = 400


class InvalidTaxRateError(ValidationError):
    code: str = "INVALID_TAX_RATE"

    def __init__(self, tax_rate: Any):
        self.tax_rate = tax_rate
        super().__init__(f"Poreska stopa mora biti između 0 i 100: {tax_rate}")


class InvalidQuantityError(ValidationError):
    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity: Any):
        self.quantity = quantity
        super().__init__(f"Količina mora biti veća od nule: {quantity}")


class InvalidAmountError(ValidationError):
    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, amount: Any):
        self.field = field
        self.amount = amount
        super().__init__(f"Neispravan iznos za {field}: {amount}")


class InvalidPibError(ValidationError):
    code: str = "INVALID_PIB"

    def __init__(self, pib: Any):
        self.pib = pib
        super().__init__(f"Neispravan PIB: {pib}")


class InvalidPeriodError(ValidationError):
    code: str = "INVALID_PERIOD"

    def __init__(self, year: Any, month: Any, period_type: Any = None):
        self.year = year
        self.month = month
        self.period_type = period_type
        super().__init__(f"Neispravan poreski period: {year}-{month} ({period_type})")


class CurrencyMismatchError(ValidationError):
    code: str = "CURRENCY_MISMATCH"

    def __init__(self, left: str, right: str):
        self.left = left
        self.right = right
        super().__init__(f"Različite valute u istoj operaciji: {left} / {right}")


class UnbalancedStatementError(ValidationError):
    code: str = "UNBALANCED_STATEMENT"

    def __init__(self, statement_number: str, expected: Decimal, declared: Decimal):
        self.statement_number = statement_number
        self.expected = expected
        self.declared = declared
        super().__init__(
            f"Izvod {statement_number}: krajnje stanje {declared} != očekivano {expected}"
        )


class DirectionMismatchError(ValidationError):
    code: str = "DIRECTION_MISMATCH"

    def __init__(self, transaction_id: Any, invoice_id: Any):
        self.transaction_id = transaction_id
        self.invoice_id = invoice_id
        super().__init__(
            f"Smer transakcije {transaction_id} ne odgovara fakturi {invoice_id}"
        )


# Not found


class NotFoundError(SefBooksError, LookupError):
    code: str = "NOT_FOUND"
    status_code: int = 404
    resource: str = "Resource"

    def __init__(self, resource_id: Any):
        self.resource_id = resource_id
        super().__init__(f"{self.resource} not found: {resource_id}")


class CompanyNotFoundError(NotFoundError):
    code: str = "COMPANY_NOT_FOUND"
    resource = "Company"


class InvoiceNotFoundError(NotFoundError):
    code: str = "INVOICE_NOT_FOUND"
    resource = "Invoice"


class StatementNotFoundError(NotFoundError):
    code: str = "STATEMENT_NOT_FOUND"
    resource = "Bank statement"


class TransactionNotFoundError(NotFoundError):
    code: str = "TRANSACTION_NOT_FOUND"
    resource = "Bank transaction"


class ReportNotFoundError(NotFoundError):
    code: str = "REPORT_NOT_FOUND"
    resource = "VAT report"


class PettyCashAccountNotFoundError(NotFoundError):
    code: str = "PETTY_CASH_ACCOUNT_NOT_FOUND"
    resource = "Petty cash account"


# Conflicts


class ConflictError(SefBooksError):
    """An invariant would be violated; surfaced as-is, never downgraded."""

    code: str = "CONFLICT"
    status_code: int = 409


class OverpaymentError(ConflictError):
    code: str = "OVERPAYMENT"

    def __init__(self, invoice_id: Any, remaining: Decimal, attempted: Decimal):
        self.invoice_id = invoice_id
        self.remaining = remaining
        self.attempted = attempted
        super().__init__(
            f"Uplata premašuje preostali dug fakture {invoice_id}. "
            f"Preostalo: {remaining}, pokušano: {attempted}"
        )


class DuplicatePaymentError(ConflictError):
    code: str = "DUPLICATE_PAYMENT"

    def __init__(self, transaction_id: Any):
        self.transaction_id = transaction_id
        super().__init__(f"Transakcija {transaction_id} već ima evidentiranu uplatu")


class TransactionStateError(ConflictError):
    code: str = "TRANSACTION_STATE"

    def __init__(self, transaction_id: Any, status: str, operation: str):
        self.transaction_id = transaction_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Transakcija {transaction_id} u statusu {status} ne dozvoljava: {operation}"
        )


class InvoiceLockedError(ConflictError):
    code: str = "INVOICE_LOCKED"

    def __init__(self, invoice_id: Any, status: str):
        self.invoice_id = invoice_id
        self.status = status
        super().__init__(f"Faktura {invoice_id} u statusu {status} se ne može menjati")


class InvoiceStateError(ConflictError):
    code: str = "INVOICE_STATE"

    def __init__(self, invoice_id: Any, status: str, target: str):
        self.invoice_id = invoice_id
        self.status = status
        self.target = target
        super().__init__(f"Faktura {invoice_id}: prelaz {status} -> {target} nije dozvoljen")


class ReportSubmittedError(ConflictError):
    code: str = "REPORT_SUBMITTED"

    def __init__(self, report_id: Any, operation: str):
        self.report_id = report_id
        self.operation = operation
        super().__init__(f"PPPDV prijava {report_id} je podneta, nije dozvoljeno: {operation}")


class DuplicateStatementError(ConflictError):
    code: str = "DUPLICATE_STATEMENT"

    def __init__(self, account_number: str, statement_number: str):
        self.account_number = account_number
        self.statement_number = statement_number
        super().__init__(
            f"Izvod {statement_number} za račun {account_number} je već uvezen"
        )


class InsufficientFundsError(ConflictError):
    code: str = "INSUFFICIENT_FUNDS"

    def __init__(self, account_id: Any, balance: Decimal, attempted: Decimal):
        self.account_id = account_id
        self.balance = balance
        self.attempted = attempted
        super().__init__(
            f"Nedovoljno sredstava u blagajni {account_id}: stanje {balance}, isplata {attempted}"
        )


class ConcurrentUpdateError(ConflictError):
    code: str = "CONCURRENT_UPDATE"

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} je istovremeno izmenjen, pokušajte ponovo")


class DuplicateInvoiceError(ConflictError):
    code: str = "DUPLICATE_INVOICE"

    def __init__(self, company_id: Any, invoice_number: str):
        self.company_id = company_id
        self.invoice_number = invoice_number
        super().__init__(f"Faktura {invoice_number} već postoji za preduzeće {company_id}")
