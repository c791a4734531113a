"""
Bank Reconciliation Matcher - povezivanje stavki izvoda sa fakturama.

Automatsko povezivanje zahteva tačan iznos (u okviru tolerancije) i bar
jedan dokaz o partneru; delimične uplate i nerazrešivi slučajevi idu na
ručno povezivanje, ništa se ne pogađa.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sefbooks.core.exceptions import (
    CompanyNotFoundError,
    CurrencyMismatchError,
    DirectionMismatchError,
    DuplicatePaymentError,
    DuplicateStatementError,
    InvalidAmountError,
    InvoiceNotFoundError,
    StatementNotFoundError,
    TransactionNotFoundError,
    TransactionStateError,
    UnbalancedStatementError,
)
from sefbooks.core.logging_config import LogContext, get_logger

from .entities import BankStatement, BankTransaction, Invoice, Payment
from .ledger import LedgerService
from .repositories import IUnitOfWork
from .value_objects import (
    AWAITING_RESOLUTION,
    DEFAULT_CURRENCY,
    DEFAULT_TOLERANCE,
    InvoiceDirection,
    ManualMatch,
    MatchDetail,
    MatchStatus,
    PartnerMatch,
    PaymentMethod,
    ReferenceMatch,
    StatementStatus,
    SuggestedMatch,
    TransactionDirection,
    is_equal,
    round2,
    sum_decimals,
    to_decimal,
)

logger = get_logger("reconciliation")

REFERENCE_SCORE = 3
ACCOUNT_SCORE = 2
NAME_SCORE = 2
NAME_OVERLAP_SCORE = 1

# Pravne forme ne razlikuju partnere
_LEGAL_FORMS = frozenset({"doo", "ad", "pr", "szr", "str", "sr", "ltd", "gmbh"})


@dataclass(frozen=True)
class ParsedTransaction:
    """Stavka izvoda kako je dolazi iz parsera (CSV/XML/MT940)."""
    transaction_date: date
    amount: Any
    direction: TransactionDirection
    value_date: date | None = None
    reference: str | None = None
    description: str | None = None
    partner_name: str | None = None
    partner_account: str | None = None


@dataclass(frozen=True)
class ParsedStatement:
    account_number: str
    statement_number: str
    statement_date: date
    opening_balance: Any
    closing_balance: Any
    transactions: list[ParsedTransaction] = field(default_factory=list)
    bank_name: str | None = None
    currency: str = DEFAULT_CURRENCY


@dataclass(frozen=True)
class AutoMatchResult:
    statement_id: UUID
    matched: int
    still_unmatched: int
    suggested: int
    payment_ids: tuple[UUID, ...] = ()
    status: StatementStatus = StatementStatus.PROCESSING


@dataclass(frozen=True)
class MatchCandidate:
    invoice: Invoice
    score: int
    detail: MatchDetail


def normalize_reference(reference: str | None) -> str:
    return "".join((reference or "").split()).casefold()


def normalize_account(account: str | None) -> str:
    """Broj računa bez crtica i razmaka."""
    return re.sub(r"\D", "", account or "")


def name_tokens(name: str | None) -> frozenset[str]:
    """
    >>> sorted(name_tokens("Alfa Trade d.o.o. Beograd"))
    ['alfa', 'beograd', 'trade']
    """
    tokens = re.findall(r"\w+", (name or "").casefold())
    return frozenset(t for t in tokens if len(t) > 1 and t not in _LEGAL_FORMS)


def reference_matches(transaction: BankTransaction, invoice: Invoice) -> bool:
    reference = normalize_reference(transaction.reference)
    return bool(reference) and reference == normalize_reference(invoice.invoice_number)


def score_candidate(transaction: BankTransaction, invoice: Invoice) -> MatchCandidate:
    """Partner evidence only; the amount is checked by the caller."""
    score = 0
    by_reference = reference_matches(transaction, invoice)
    if by_reference:
        score += REFERENCE_SCORE

    account = normalize_account(transaction.partner_account)
    if account and account in {normalize_account(a) for a in invoice.partner_accounts}:
        score += ACCOUNT_SCORE

    tx_tokens = name_tokens(transaction.partner_name)
    invoice_tokens = name_tokens(invoice.partner_name)
    if tx_tokens and tx_tokens == invoice_tokens:
        score += NAME_SCORE
    elif tx_tokens & invoice_tokens:
        score += NAME_OVERLAP_SCORE

    detail: MatchDetail
    if by_reference:
        detail = ReferenceMatch(reference=transaction.reference or "", score=score)
    else:
        detail = PartnerMatch(
            partner_name=transaction.partner_name,
            partner_account=transaction.partner_account,
            score=score,
        )
    return MatchCandidate(invoice=invoice, score=score, detail=detail)


def select_candidate(
    transaction: BankTransaction,
    open_invoices: list[Invoice],
    tolerance: Decimal = DEFAULT_TOLERANCE,
) -> MatchCandidate | None:
    """
    Best amount-exact candidate with positive partner score; ties on score go
    to the earliest due date, a tie on that as well returns None.
    """
    scored = [
        score_candidate(transaction, invoice)
        for invoice in open_invoices
        if is_equal(invoice.remaining_amount, transaction.amount, tolerance)
    ]
    scored = [c for c in scored if c.score > 0]
    if not scored:
        return None

    best_score = max(c.score for c in scored)
    best = [c for c in scored if c.score == best_score]
    best.sort(key=lambda c: c.invoice.due_date or date.max)
    if len(best) > 1 and (best[0].invoice.due_date or date.max) == (best[1].invoice.due_date or date.max):
        return None
    return best[0]


def expected_direction(direction: TransactionDirection) -> InvoiceDirection:
    """Priliv zatvara izlaznu fakturu, odliv ulaznu."""
    if direction == TransactionDirection.CREDIT:
        return InvoiceDirection.OUTGOING
    return InvoiceDirection.INCOMING


class BankReconciliationService:
    """
    Service - Uvoz izvoda i povezivanje transakcija sa fakturama.
    """

    def __init__(
        self,
        uow_factory: Callable[[], IUnitOfWork],
        ledger: LedgerService,
        tolerance: Any = DEFAULT_TOLERANCE,
    ):
        self.uow_factory = uow_factory
        self.ledger = ledger
        self.tolerance = to_decimal(tolerance, DEFAULT_TOLERANCE)

    def register_statement(self, company_id: UUID, parsed: ParsedStatement) -> BankStatement:
        """Upis već parsiranog izvoda; sve stavke ulaze kao UNMATCHED."""
        for tx in parsed.transactions:
            if to_decimal(tx.amount) <= 0:
                raise InvalidAmountError("transaction.amount", tx.amount)

        credits = [round2(tx.amount) for tx in parsed.transactions if tx.direction == TransactionDirection.CREDIT]
        debits = [round2(tx.amount) for tx in parsed.transactions if tx.direction == TransactionDirection.DEBIT]
        statement = BankStatement(
            company_id=company_id,
            account_number=parsed.account_number,
            statement_number=parsed.statement_number,
            statement_date=parsed.statement_date,
            bank_name=parsed.bank_name,
            currency=parsed.currency,
            opening_balance=round2(parsed.opening_balance),
            closing_balance=round2(parsed.closing_balance),
            total_credit=round2(sum_decimals(*credits)),
            total_debit=round2(sum_decimals(*debits)),
        )
        if not statement.is_balanced(self.tolerance):
            raise UnbalancedStatementError(
                parsed.statement_number,
                statement.expected_closing_balance,
                statement.closing_balance,
            )

        with LogContext.bind(company_id=company_id, operation="statement.register"):
            with self.uow_factory() as uow:
                if uow.companies.get(company_id) is None:
                    raise CompanyNotFoundError(company_id)
                if uow.statements.get_by_number(company_id, parsed.account_number, parsed.statement_number):
                    raise DuplicateStatementError(parsed.account_number, parsed.statement_number)

                statement = uow.statements.add(statement)
                for tx in parsed.transactions:
                    uow.transactions.add(
                        BankTransaction(
                            statement_id=statement.id,
                            transaction_date=tx.transaction_date,
                            value_date=tx.value_date,
                            amount=round2(tx.amount),
                            direction=tx.direction,
                            reference=tx.reference,
                            description=tx.description,
                            partner_name=tx.partner_name,
                            partner_account=tx.partner_account,
                        )
                    )
                uow.commit()

            logger.info(
                "Bank statement registered",
                extra={
                    "statement_id": str(statement.id),
                    "statement_number": statement.statement_number,
                    "transaction_count": len(parsed.transactions),
                },
            )
        return statement

    def run_auto_match(self, statement_id: UUID) -> AutoMatchResult:
        """
        Automatsko povezivanje svih UNMATCHED priliva izvoda u jednoj
        transakciji. Ponovno pokretanje ne pravi nove uplate.
        """
        with self.uow_factory() as uow:
            statement = uow.statements.get(statement_id, for_update=True)
            if statement is None:
                raise StatementNotFoundError(statement_id)

            with LogContext.bind(company_id=statement.company_id, operation="statement.auto_match"):
                open_invoices = {
                    invoice.id: invoice
                    for invoice in uow.invoices.list_open(
                        statement.company_id, InvoiceDirection.OUTGOING, statement.currency
                    )
                }
                matched = 0
                suggested = 0
                payment_ids: list[UUID] = []

                for listed in uow.transactions.list_by_statement(statement.id, MatchStatus.UNMATCHED):
                    if listed.direction != TransactionDirection.CREDIT:
                        continue
                    transaction = uow.transactions.get(listed.id, for_update=True)
                    if transaction is None or transaction.match_status != MatchStatus.UNMATCHED:
                        continue

                    candidate = select_candidate(
                        transaction, list(open_invoices.values()), self.tolerance
                    )
                    if candidate is None:
                        if self._suggest(uow, transaction, list(open_invoices.values())):
                            suggested += 1
                        continue

                    invoice = uow.invoices.get(candidate.invoice.id, for_update=True)
                    if invoice is None or not is_equal(invoice.remaining_amount, transaction.amount, self.tolerance):
                        continue

                    payment, invoice = self._settle(
                        uow, statement, transaction, invoice, candidate.detail
                    )
                    payment_ids.append(payment.id)
                    matched += 1
                    if invoice.is_open_for_payment():
                        open_invoices[invoice.id] = invoice
                    else:
                        open_invoices.pop(invoice.id, None)

                statement = self._refresh_status(uow, statement)
                still_unmatched = len(
                    uow.transactions.list_by_statement(statement.id, MatchStatus.UNMATCHED)
                )
                uow.commit()

                logger.info(
                    "Auto-match finished",
                    extra={
                        "statement_id": str(statement_id),
                        "matched": matched,
                        "suggested": suggested,
                        "still_unmatched": still_unmatched,
                        "status": statement.status.value,
                    },
                )

        return AutoMatchResult(
            statement_id=statement_id,
            matched=matched,
            still_unmatched=still_unmatched,
            suggested=suggested,
            payment_ids=tuple(payment_ids),
            status=statement.status,
        )

    def match_transaction(
        self,
        transaction_id: UUID,
        invoice_id: UUID,
        matched_by: str | None = None,
    ) -> Payment:
        """Ručno povezivanje; isti efekat kao automatsko."""
        with self.uow_factory() as uow:
            transaction = uow.transactions.get(transaction_id, for_update=True)
            if transaction is None:
                raise TransactionNotFoundError(transaction_id)
            transaction.ensure_matchable("match")

            statement = uow.statements.get(transaction.statement_id, for_update=True)
            if statement is None:
                raise StatementNotFoundError(transaction.statement_id)

            invoice = uow.invoices.get(invoice_id, for_update=True)
            if invoice is None or invoice.company_id != statement.company_id:
                raise InvoiceNotFoundError(invoice_id)
            if invoice.direction != expected_direction(transaction.direction):
                raise DirectionMismatchError(transaction_id, invoice_id)
            if invoice.currency != statement.currency:
                raise CurrencyMismatchError(statement.currency, invoice.currency)

            with LogContext.bind(company_id=statement.company_id, operation="transaction.match"):
                payment, _ = self._settle(
                    uow, statement, transaction, invoice, ManualMatch(matched_by=matched_by)
                )
                self._refresh_status(uow, statement)
                uow.commit()
        return payment

    def create_payment_from_matched_transaction(
        self, transaction_id: UUID, created_by: str | None = None
    ) -> Payment:
        """Uplata za transakciju koja je već povezana sa fakturom, bez ponovnog povezivanja."""
        with self.uow_factory() as uow:
            transaction = uow.transactions.get(transaction_id, for_update=True)
            if transaction is None:
                raise TransactionNotFoundError(transaction_id)
            if transaction.payment_id is not None:
                raise DuplicatePaymentError(transaction_id)
            if transaction.match_status != MatchStatus.MATCHED or transaction.matched_invoice_id is None:
                raise TransactionStateError(
                    transaction_id, transaction.match_status.value, "create_payment"
                )

            statement = uow.statements.get(transaction.statement_id)
            if statement is None:
                raise StatementNotFoundError(transaction.statement_id)
            invoice = uow.invoices.get(transaction.matched_invoice_id, for_update=True)
            if invoice is None:
                raise InvoiceNotFoundError(transaction.matched_invoice_id)

            with LogContext.bind(company_id=statement.company_id, operation="transaction.payment"):
                payment, _ = self._settle(
                    uow,
                    statement,
                    transaction,
                    invoice,
                    transaction.match_detail or ManualMatch(matched_by=created_by),
                    created_by=created_by,
                )
                uow.commit()
        return payment

    def ignore_transaction(self, transaction_id: UUID) -> BankTransaction:
        with self.uow_factory() as uow:
            transaction = uow.transactions.get(transaction_id, for_update=True)
            if transaction is None:
                raise TransactionNotFoundError(transaction_id)
            transaction = uow.transactions.update(transaction.ignore())

            statement = uow.statements.get(transaction.statement_id, for_update=True)
            if statement is not None:
                self._refresh_status(uow, statement)
            uow.commit()

        logger.info("Bank transaction ignored", extra={"transaction_id": str(transaction_id)})
        return transaction

    def list_unmatched(self, company_id: UUID, limit: int = 50) -> list[BankTransaction]:
        """Transakcije koje čekaju ručno povezivanje (UNMATCHED i PARTIAL sa predlogom)."""
        with self.uow_factory() as uow:
            return uow.transactions.list_unmatched(company_id, limit)

    def get_statement(self, statement_id: UUID) -> BankStatement:
        with self.uow_factory() as uow:
            statement = uow.statements.get(statement_id)
        if statement is None:
            raise StatementNotFoundError(statement_id)
        return statement

    def _settle(
        self,
        uow: IUnitOfWork,
        statement: BankStatement,
        transaction: BankTransaction,
        invoice: Invoice,
        detail: MatchDetail,
        created_by: str | None = None,
    ) -> tuple[Payment, Invoice]:
        """Uplata + nova verzija fakture + MATCHED transakcija, u pozivaočevoj transakciji."""
        payment, invoice = self.ledger.apply_payment(
            uow,
            invoice,
            transaction.amount,
            PaymentMethod.BANK_TRANSFER,
            payment_date=transaction.booking_date,
            currency=statement.currency,
            reference=transaction.reference,
            transaction=transaction,
            bank_account=transaction.partner_account,
            note=transaction.description,
            created_by=created_by,
        )
        uow.transactions.update(transaction.mark_matched(invoice.id, payment.id, detail))
        logger.info(
            "Bank transaction matched",
            extra={
                "transaction_id": str(transaction.id),
                "invoice_id": str(invoice.id),
                "invoice_number": invoice.invoice_number,
                "match_kind": detail.kind,
            },
        )
        return payment, invoice

    def _suggest(
        self,
        uow: IUnitOfWork,
        transaction: BankTransaction,
        open_invoices: list[Invoice],
    ) -> bool:
        by_reference = [inv for inv in open_invoices if reference_matches(transaction, inv)]
        if len(by_reference) != 1:
            return False
        invoice = by_reference[0]
        reason = (
            f"Iznos {round2(transaction.amount)} ne odgovara preostalom dugu "
            f"{invoice.remaining_amount} fakture {invoice.invoice_number}"
        )
        uow.transactions.update(
            transaction.mark_suggested(invoice.id, SuggestedMatch(invoice_id=invoice.id, reason=reason))
        )
        logger.info(
            "Bank transaction needs manual confirmation",
            extra={"transaction_id": str(transaction.id), "invoice_id": str(invoice.id)},
        )
        return True

    def _refresh_status(self, uow: IUnitOfWork, statement: BankStatement) -> BankStatement:
        transactions = uow.transactions.list_by_statement(statement.id)
        pending = sum(1 for t in transactions if t.match_status in AWAITING_RESOLUTION)
        status = StatementStatus.MATCHED if pending == 0 else StatementStatus.PROCESSING
        if status == statement.status:
            return statement
        return uow.statements.update(statement.with_status(status))
