"""
Invoice Totals Calculator - osnovica, PDV i ukupan iznos iz stavki fakture.

Zaokruživanje se vrši po stavci (osnovica, pa PDV, pa ukupno), a zbirovi
fakture su zbirovi već zaokruženih stavki.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Protocol

from sefbooks.core.exceptions import InvalidAmountError, InvalidQuantityError, InvalidTaxRateError
from sefbooks.domain.value_objects import (
    DEFAULT_TOLERANCE,
    divide,
    is_equal,
    is_valid_tax_rate,
    multiply,
    round2,
    sum_decimals,
    to_decimal,
)


class LineInput(Protocol):
    quantity: Any
    unit_price: Any
    tax_rate: Any


@dataclass(frozen=True, slots=True)
class LineAmounts:
    base_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal


@dataclass(frozen=True, slots=True)
class InvoiceTotals:
    tax_exclusive: Decimal
    tax: Decimal
    tax_inclusive: Decimal


@dataclass(frozen=True, slots=True)
class TotalsDiscrepancy:
    field: str
    calculated: Decimal
    declared: Decimal

    @property
    def description(self) -> str:
        return (
            f"{self.field} mismatch: calculated {self.calculated:.2f}, "
            f"declared {self.declared:.2f}"
        )


@dataclass(frozen=True, slots=True)
class TotalsValidation:
    valid: bool
    discrepancies: tuple[TotalsDiscrepancy, ...] = ()

    @property
    def errors(self) -> list[str]:
        return [d.description for d in self.discrepancies]


def validate_line_input(quantity: Any, unit_price: Any, tax_rate: Any) -> None:
    if not is_valid_tax_rate(tax_rate):
        raise InvalidTaxRateError(tax_rate)
    if to_decimal(quantity) <= 0:
        raise InvalidQuantityError(quantity)
    if to_decimal(unit_price, fallback=-1) < 0:
        raise InvalidAmountError("unit_price", unit_price)


def calculate_line(quantity: Any, unit_price: Any, tax_rate: Any) -> LineAmounts:
    """
    Stavka fakture:
      osnovica = round2(količina * cena)
      PDV      = round2(osnovica * stopa / 100)
      ukupno   = round2(osnovica + PDV)
    """
    validate_line_input(quantity, unit_price, tax_rate)
    base_amount = round2(multiply(quantity, unit_price))
    tax_amount = round2(divide(multiply(base_amount, tax_rate), 100))
    total_amount = round2(base_amount + tax_amount)
    return LineAmounts(base_amount=base_amount, tax_amount=tax_amount, total_amount=total_amount)


def compute_invoice_totals(lines: Iterable[LineInput]) -> InvoiceTotals:
    line_amounts = [
        calculate_line(line.quantity, line.unit_price, line.tax_rate) for line in lines
    ]
    tax_exclusive = round2(sum_decimals(*(a.base_amount for a in line_amounts)))
    tax = round2(sum_decimals(*(a.tax_amount for a in line_amounts)))
    return InvoiceTotals(
        tax_exclusive=tax_exclusive,
        tax=tax,
        tax_inclusive=round2(tax_exclusive + tax),
    )


def validate_totals(
    calculated: InvoiceTotals,
    declared: InvoiceTotals,
    tolerance: Any = DEFAULT_TOLERANCE,
) -> TotalsValidation:
    """
    Compare declared totals (e.g. from an imported UBL document) against the
    calculated ones. Every field is checked independently.
    """
    checks = (
        ("tax_exclusive", calculated.tax_exclusive, declared.tax_exclusive),
        ("tax", calculated.tax, declared.tax),
        ("tax_inclusive", calculated.tax_inclusive, declared.tax_inclusive),
    )
    discrepancies = tuple(
        TotalsDiscrepancy(field=name, calculated=round2(calc), declared=to_decimal(decl))
        for name, calc, decl in checks
        if not is_equal(calc, decl, tolerance)
    )
    return TotalsValidation(valid=not discrepancies, discrepancies=discrepancies)


class InvoiceTotalsCalculator:
    """
    Service - Obračun iznosa fakture.
    """

    def __init__(self, tolerance: Any = DEFAULT_TOLERANCE):
        self.tolerance = to_decimal(tolerance, DEFAULT_TOLERANCE)

    def calculate_line(self, quantity: Any, unit_price: Any, tax_rate: Any) -> LineAmounts:
        return calculate_line(quantity, unit_price, tax_rate)

    def compute(self, lines: Iterable[LineInput]) -> InvoiceTotals:
        return compute_invoice_totals(lines)

    def validate(self, lines: Iterable[LineInput], declared: InvoiceTotals) -> TotalsValidation:
        return validate_totals(self.compute(lines), declared, self.tolerance)

    def validate_totals(self, calculated: InvoiceTotals, declared: InvoiceTotals) -> TotalsValidation:
        return validate_totals(calculated, declared, self.tolerance)

    def check_line_sums(
        self,
        lines: Iterable[Any],
        total_amount: Any,
        tax_amount: Any,
    ) -> list[TotalsDiscrepancy]:
        """Stored aggregate fields against the stored line components."""
        lines = list(lines)
        line_total = round2(sum_decimals(*(line.amount for line in lines)))
        line_tax = round2(sum_decimals(*(line.tax_amount for line in lines)))
        discrepancies = []
        if not is_equal(line_total, total_amount, self.tolerance):
            discrepancies.append(
                TotalsDiscrepancy("total_amount", line_total, to_decimal(total_amount))
            )
        if not is_equal(line_tax, tax_amount, self.tolerance):
            discrepancies.append(
                TotalsDiscrepancy("tax_amount", line_tax, to_decimal(tax_amount))
            )
        return discrepancies
