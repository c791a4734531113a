"""
Domain Layer - Value objects: exact money, enumerations, match metadata.
Iznosi i poreske stope prema Zakonu o PDV i Zakonu o elektronskom fakturisanju.
"""

import math
from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Context, Decimal, InvalidOperation, localcontext
from enum import Enum
from typing import Any, Literal
from uuid import UUID

from sefbooks.core.exceptions import CurrencyMismatchError
from sefbooks.core.logging_config import get_logger

logger = get_logger("money")

MONEY_CONTEXT = Context(prec=28, rounding=ROUND_HALF_UP)
CENT = Decimal("0.01")
ZERO = Decimal("0")
DEFAULT_TOLERANCE = Decimal("0.01")
DEFAULT_CURRENCY = "RSD"


def to_decimal(value: Any, fallback: Any = 0) -> Decimal:
    """
    Parse any monetary input into a Decimal without raising.

    Strings may use "." or "," as the decimal separator and may contain
    whitespace. Unparsable or non-finite input resolves to ``fallback`` and
    emits an input-quality warning.
    """
    if value is None:
        return Decimal(fallback)
    if isinstance(value, Money):
        return value.amount
    if isinstance(value, bool):
        return _fallback(value, fallback)
    if isinstance(value, Decimal):
        return value if value.is_finite() else _fallback(value, fallback)
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            return _fallback(value, fallback)
        return Decimal(repr(value))
    if isinstance(value, str):
        normalized = "".join(value.split()).replace(",", ".")
        try:
            parsed = Decimal(normalized)
        except InvalidOperation:
            return _fallback(value, fallback)
        return parsed if parsed.is_finite() else _fallback(value, fallback)
    return _fallback(value, fallback)


def _fallback(raw: Any, fallback: Any) -> Decimal:
    logger.warning(
        "Unparsable monetary input, using fallback",
        extra={"raw_value": repr(raw), "fallback": str(fallback)},
    )
    return Decimal(fallback)


def round2(value: Any) -> Decimal:
    """Zaokruživanje na 2 decimale (half-up)."""
    amount = to_decimal(value)
    # quantize fails when the result has more digits than the context precision
    precision = max(MONEY_CONTEXT.prec, amount.adjusted() + 3)
    with localcontext(MONEY_CONTEXT, prec=precision):
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def multiply(a: Any, b: Any) -> Decimal:
    with localcontext(MONEY_CONTEXT):
        return to_decimal(a) * to_decimal(b)


def divide(a: Any, b: Any) -> Decimal:
    with localcontext(MONEY_CONTEXT):
        return to_decimal(a) / to_decimal(b)


def sum_decimals(*values: Any) -> Decimal:
    total = ZERO
    with localcontext(MONEY_CONTEXT):
        for value in values:
            total += to_decimal(value)
    return total


def is_equal(a: Any, b: Any, tolerance: Any = DEFAULT_TOLERANCE) -> bool:
    return abs(to_decimal(a) - to_decimal(b)) <= to_decimal(tolerance)


def is_valid_tax_rate(rate: Any) -> bool:
    if rate is None:
        return False
    decimal_rate = to_decimal(rate, fallback=-1)
    return Decimal(0) <= decimal_rate <= Decimal(100)


def format_currency(value: Any, currency: str = DEFAULT_CURRENCY) -> str:
    """Srpski format: 1.234,56 RSD."""
    formatted = f"{round2(value):,.2f}"
    serbian = formatted.replace(",", "_").replace(".", ",").replace("_", ".")
    return f"{serbian} {currency}"


@dataclass(frozen=True, slots=True)
class Money:
    """Value Object - Novčani iznos u valuti."""
    amount: Decimal
    currency: str = DEFAULT_CURRENCY

    def __post_init__(self) -> None:
        if not isinstance(self.amount, Decimal) or not self.amount.is_finite():
            object.__setattr__(self, "amount", to_decimal(self.amount))

    @classmethod
    def of(cls, value: Any, currency: str = DEFAULT_CURRENCY, fallback: Any = 0) -> "Money":
        return cls(amount=to_decimal(value, fallback), currency=currency)

    @classmethod
    def zero(cls, currency: str = DEFAULT_CURRENCY) -> "Money":
        return cls(amount=ZERO, currency=currency)

    def _check_currency(self, other: "Money") -> None:
        if self.currency != other.currency:
            raise CurrencyMismatchError(self.currency, other.currency)

    def __add__(self, other: "Money") -> "Money":
        self._check_currency(other)
        return Money(amount=sum_decimals(self.amount, other.amount), currency=self.currency)

    def __sub__(self, other: "Money") -> "Money":
        self._check_currency(other)
        with localcontext(MONEY_CONTEXT):
            return Money(amount=self.amount - other.amount, currency=self.currency)

    def __mul__(self, factor: Any) -> "Money":
        return Money(amount=multiply(self.amount, factor), currency=self.currency)

    def __truediv__(self, divisor: Any) -> "Money":
        return Money(amount=divide(self.amount, divisor), currency=self.currency)

    def rounded(self) -> "Money":
        return Money(amount=round2(self.amount), currency=self.currency)

    def is_positive(self) -> bool:
        return self.amount > 0

    def is_non_negative(self) -> bool:
        return self.amount >= 0

    def equals(self, other: "Money", tolerance: Any = DEFAULT_TOLERANCE) -> bool:
        self._check_currency(other)
        return is_equal(self.amount, other.amount, tolerance)

    def format(self) -> str:
        return format_currency(self.amount, self.currency)

    @staticmethod
    def total(values: list["Money"], currency: str = DEFAULT_CURRENCY) -> "Money":
        result = Money.zero(currency)
        for value in values:
            result += value
        return result


def is_valid_pib(pib: str | None) -> bool:
    """
    PIB - 9 cifara, kontrolna cifra po ISO 7064 (MOD 11,10).
    """
    if not pib:
        return False
    cleaned = "".join(pib.split())
    if len(cleaned) != 9 or not cleaned.isdigit():
        return False

    digits = [int(c) for c in cleaned]
    total = 10
    for digit in digits[:8]:
        total = (total + digit) % 10
        if total == 0:
            total = 10
        total = (total * 2) % 11

    return (11 - total) % 10 == digits[8]


class InvoiceDirection(str, Enum):
    OUTGOING = "OUTGOING"    # Izlazna faktura
    INCOMING = "INCOMING"    # Ulazna faktura


class InvoiceStatus(str, Enum):
    """Status fakture u SEF sistemu."""
    DRAFT = "DRAFT"
    SENT = "SENT"
    DELIVERED = "DELIVERED"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class InvoicePaymentStatus(str, Enum):
    UNPAID = "UNPAID"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"


class TransactionDirection(str, Enum):
    CREDIT = "CREDIT"    # Potražuje - priliv
    DEBIT = "DEBIT"      # Duguje - odliv


class MatchStatus(str, Enum):
    UNMATCHED = "UNMATCHED"
    PARTIAL = "PARTIAL"
    MATCHED = "MATCHED"
    IGNORED = "IGNORED"


# Waiting for a manual decision: no evidence yet, or a suggested invoice.
AWAITING_RESOLUTION = frozenset({MatchStatus.UNMATCHED, MatchStatus.PARTIAL})


class StatementStatus(str, Enum):
    IMPORTED = "IMPORTED"
    PROCESSING = "PROCESSING"
    MATCHED = "MATCHED"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    BANK_TRANSFER = "BANK_TRANSFER"
    CARD = "CARD"
    CHECK = "CHECK"
    COMPENSATION = "COMPENSATION"    # Kompenzacija
    OTHER = "OTHER"


class PeriodType(str, Enum):
    """Poreski period PPPDV prijave."""
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"

    @property
    def code(self) -> str:
        return "M" if self is PeriodType.MONTHLY else "K"


class ReportStatus(str, Enum):
    CALCULATED = "CALCULATED"
    SUBMITTED = "SUBMITTED"


class PettyCashEntryType(str, Enum):
    DEPOSIT = "DEPOSIT"          # Uplata u blagajnu
    WITHDRAWAL = "WITHDRAWAL"    # Isplata iz blagajne


@dataclass(frozen=True, slots=True)
class ReferenceMatch:
    """Poziv na broj iz izvoda jednak je broju fakture."""
    reference: str
    score: int
    kind: Literal["reference"] = "reference"


@dataclass(frozen=True, slots=True)
class PartnerMatch:
    partner_name: str | None
    partner_account: str | None
    score: int
    kind: Literal["partner"] = "partner"


@dataclass(frozen=True, slots=True)
class ManualMatch:
    matched_by: str | None = None
    kind: Literal["manual"] = "manual"


@dataclass(frozen=True, slots=True)
class SuggestedMatch:
    """Likely invoice found but the amount differs; waits for manual confirmation."""
    invoice_id: UUID
    reason: str
    kind: Literal["suggested"] = "suggested"


MatchDetail = ReferenceMatch | PartnerMatch | ManualMatch | SuggestedMatch

_MATCH_DETAIL_TYPES: dict[str, type] = {
    "reference": ReferenceMatch,
    "partner": PartnerMatch,
    "manual": ManualMatch,
    "suggested": SuggestedMatch,
}


def match_detail_to_dict(detail: MatchDetail) -> dict[str, Any]:
    data = asdict(detail)
    if isinstance(detail, SuggestedMatch):
        data["invoice_id"] = str(detail.invoice_id)
    return data


def match_detail_from_dict(data: dict[str, Any]) -> MatchDetail:
    kind = data.get("kind")
    detail_type = _MATCH_DETAIL_TYPES.get(kind)
    if detail_type is None:
        raise ValueError(f"Unknown match detail kind: {kind}")
    fields = {k: v for k, v in data.items() if k != "kind"}
    if detail_type is SuggestedMatch:
        fields["invoice_id"] = UUID(str(fields["invoice_id"]))
    return detail_type(**fields)
