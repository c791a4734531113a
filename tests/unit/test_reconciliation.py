"""
Unit tests - Povezivanje izvoda sa fakturama.
Automatsko i ručno povezivanje, zaštita od duple uplate i preplate.
"""

import threading
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from sefbooks.core.exceptions import (
    CompanyNotFoundError,
    DirectionMismatchError,
    DuplicatePaymentError,
    DuplicateStatementError,
    InvalidAmountError,
    OverpaymentError,
    TransactionStateError,
    UnbalancedStatementError,
)
from sefbooks.domain.entities import Payment
from sefbooks.domain.reconciliation import (
    ParsedStatement,
    ParsedTransaction,
    name_tokens,
    normalize_account,
)
from sefbooks.domain.value_objects import (
    InvoiceDirection,
    InvoicePaymentStatus,
    InvoiceStatus,
    ManualMatch,
    MatchStatus,
    PartnerMatch,
    PaymentMethod,
    ReferenceMatch,
    StatementStatus,
    SuggestedMatch,
    TransactionDirection,
)


def _credit(amount, reference=None, partner_name=None, partner_account=None, day=28):
    return ParsedTransaction(
        transaction_date=date(2026, 1, day),
        amount=Decimal(str(amount)),
        direction=TransactionDirection.CREDIT,
        reference=reference,
        partner_name=partner_name,
        partner_account=partner_account,
    )


def _debit(amount, reference=None, partner_name=None, day=28):
    return ParsedTransaction(
        transaction_date=date(2026, 1, day),
        amount=Decimal(str(amount)),
        direction=TransactionDirection.DEBIT,
        reference=reference,
        partner_name=partner_name,
    )


def _transactions(uow_factory, statement_id):
    with uow_factory() as uow:
        return uow.transactions.list_by_statement(statement_id)


def _statement(uow_factory, statement_id):
    with uow_factory() as uow:
        return uow.statements.get(statement_id)


def _payments(uow_factory, invoice_id):
    with uow_factory() as uow:
        return uow.payments.list_by_invoice(invoice_id)


class TestMatchingHelpers:

    def test_legal_form_is_not_a_name_token(self):
        assert name_tokens("BETA PROMET DOO") == name_tokens("Beta Promet d.o.o.")

    def test_account_normalization(self):
        assert normalize_account("160-0000000012345-67") == "160000000001234567"
        assert normalize_account(None) == ""


class TestAutoMatch:
    """Automatsko povezivanje priliva sa izlaznim fakturama."""

    def test_exact_amount_and_partner_name_pays_invoice(
        self, make_invoice, make_statement, reconciliation, invoice_service, uow_factory
    ):
        invoice = make_invoice("F-2026-001", quantity=10, unit_price=1000)
        assert invoice.payment_status == InvoicePaymentStatus.UNPAID
        statement = make_statement([_credit("12000.00", partner_name="BETA PROMET DOO")])

        result = reconciliation.run_auto_match(statement.id)

        assert result.matched == 1
        assert result.still_unmatched == 0
        assert result.status == StatementStatus.MATCHED
        assert len(result.payment_ids) == 1

        paid = invoice_service.get(invoice.id)
        assert paid.payment_status == InvoicePaymentStatus.PAID
        assert paid.paid_amount == Decimal("12000.00")

        [tx] = _transactions(uow_factory, statement.id)
        assert tx.match_status == MatchStatus.MATCHED
        assert tx.matched_invoice_id == invoice.id
        assert tx.payment_id == result.payment_ids[0]
        assert isinstance(tx.match_detail, PartnerMatch)
        assert tx.match_detail.score == 2

        [payment] = _payments(uow_factory, invoice.id)
        assert payment.bank_transaction_id == tx.id
        assert payment.payment_date == date(2026, 1, 28)
        assert payment.method == PaymentMethod.BANK_TRANSFER

    def test_reference_match(self, make_invoice, make_statement, reconciliation, uow_factory):
        make_invoice("F-2026-002", partner_name=None)
        statement = make_statement([_credit("1200", reference=" f-2026-002 ")])

        result = reconciliation.run_auto_match(statement.id)

        assert result.matched == 1
        [tx] = _transactions(uow_factory, statement.id)
        assert isinstance(tx.match_detail, ReferenceMatch)
        assert tx.match_detail.score == 3

    def test_partner_account_match(self, make_invoice, make_statement, reconciliation):
        make_invoice("F-2026-003", partner_name=None, partner_accounts=["160-0000000012345-67"])
        statement = make_statement([_credit("1200", partner_account="160000000001234567")])

        assert reconciliation.run_auto_match(statement.id).matched == 1

    def test_rerun_creates_no_new_payments(
        self, make_invoice, make_statement, reconciliation, uow_factory
    ):
        invoice = make_invoice("F-2026-004")
        statement = make_statement([_credit("1200", partner_name="Beta Promet")])
        reconciliation.run_auto_match(statement.id)

        again = reconciliation.run_auto_match(statement.id)

        assert again.matched == 0
        assert again.payment_ids == ()
        assert len(_payments(uow_factory, invoice.id)) == 1

    def test_amount_without_partner_evidence_is_not_matched(
        self, make_invoice, make_statement, reconciliation, invoice_service
    ):
        invoice = make_invoice("F-2026-005", partner_name="Beta Promet d.o.o.")
        statement = make_statement([_credit("1200", partner_name="Gama Servis")])

        result = reconciliation.run_auto_match(statement.id)

        assert result.matched == 0
        assert result.still_unmatched == 1
        assert result.status == StatementStatus.PROCESSING
        assert invoice_service.get(invoice.id).paid_amount == Decimal("0")

    def test_tie_on_score_and_due_date_stays_unmatched(
        self, make_invoice, make_statement, reconciliation, uow_factory
    ):
        make_invoice("F-2026-006")
        make_invoice("F-2026-007")
        statement = make_statement([_credit("1200", partner_name="Beta Promet")])

        result = reconciliation.run_auto_match(statement.id)

        assert result.matched == 0
        [tx] = _transactions(uow_factory, statement.id)
        assert tx.match_status == MatchStatus.UNMATCHED
        assert tx.matched_invoice_id is None

    def test_tie_on_score_goes_to_earliest_due_date(
        self, make_invoice, make_statement, reconciliation, uow_factory
    ):
        make_invoice("F-2026-008", due_date=date(2026, 1, 30))
        earlier = make_invoice("F-2026-009", due_date=date(2026, 1, 20))
        statement = make_statement([_credit("1200", partner_name="Beta Promet")])

        reconciliation.run_auto_match(statement.id)

        [tx] = _transactions(uow_factory, statement.id)
        assert tx.matched_invoice_id == earlier.id

    def test_higher_score_beats_earlier_due_date(
        self, make_invoice, make_statement, reconciliation, uow_factory
    ):
        make_invoice("F-2026-010", due_date=date(2026, 1, 15))
        referenced = make_invoice("F-2026-011", due_date=date(2026, 2, 15))
        statement = make_statement(
            [_credit("1200", reference="F-2026-011", partner_name="Beta Promet")]
        )

        reconciliation.run_auto_match(statement.id)

        [tx] = _transactions(uow_factory, statement.id)
        assert tx.matched_invoice_id == referenced.id
        assert tx.match_detail.score == 5

    def test_invoice_is_never_paid_twice_in_one_run(
        self, make_invoice, make_statement, reconciliation, uow_factory
    ):
        invoice = make_invoice("F-2026-012")
        statement = make_statement([
            _credit("1200", partner_name="Beta Promet", day=27),
            _credit("1200", partner_name="Beta Promet", day=28),
        ])

        result = reconciliation.run_auto_match(statement.id)

        assert result.matched == 1
        assert result.still_unmatched == 1
        assert len(_payments(uow_factory, invoice.id)) == 1

    def test_partial_amount_with_reference_is_suggested(
        self, make_invoice, make_statement, reconciliation, invoice_service, uow_factory
    ):
        invoice = make_invoice("F-2026-013", quantity=10, unit_price=1000)
        statement = make_statement([_credit("5000", reference="F-2026-013")])

        result = reconciliation.run_auto_match(statement.id)

        assert result.matched == 0
        assert result.suggested == 1
        assert result.status == StatementStatus.PROCESSING
        [tx] = _transactions(uow_factory, statement.id)
        assert tx.match_status == MatchStatus.PARTIAL
        assert tx.payment_id is None
        assert isinstance(tx.match_detail, SuggestedMatch)
        assert tx.match_detail.invoice_id == invoice.id
        assert invoice_service.get(invoice.id).paid_amount == Decimal("0")

    def test_suggested_transaction_listed_for_manual_resolution(
        self, make_invoice, make_statement, reconciliation, company_id
    ):
        invoice = make_invoice("F-2026-099", quantity=10, unit_price=1000)
        statement = make_statement([
            _credit("5000", reference="F-2026-099", day=27),
            _credit("77", partner_name="Nepoznat uplatilac", day=28),
        ])

        result = reconciliation.run_auto_match(statement.id)
        listed = reconciliation.list_unmatched(company_id)

        assert (result.suggested, result.still_unmatched) == (1, 1)
        assert [tx.match_status for tx in listed] == [MatchStatus.UNMATCHED, MatchStatus.PARTIAL]
        assert listed[1].match_detail.invoice_id == invoice.id

    def test_debits_and_other_currencies_are_skipped(
        self, make_invoice, make_statement, reconciliation
    ):
        make_invoice("F-2026-014", currency="EUR")
        statement = make_statement([
            _credit("1200", partner_name="Beta Promet"),
            _debit("300", partner_name="Beta Promet"),
        ], opening_balance=Decimal("1000"))

        result = reconciliation.run_auto_match(statement.id)

        assert result.matched == 0
        assert result.still_unmatched == 2


class TestManualMatch:
    """Ručno povezivanje - isti efekat kao automatsko."""

    def test_confirm_suggested_partial_payment(
        self, make_invoice, make_statement, reconciliation, invoice_service, uow_factory
    ):
        invoice = make_invoice("F-2026-020", quantity=10, unit_price=1000)
        statement = make_statement([_credit("5000", reference="F-2026-020")])
        reconciliation.run_auto_match(statement.id)
        [tx] = _transactions(uow_factory, statement.id)

        payment = reconciliation.match_transaction(tx.id, invoice.id, matched_by="ana")

        assert payment.amount == Decimal("5000.00")
        updated = invoice_service.get(invoice.id)
        assert updated.payment_status == InvoicePaymentStatus.PARTIALLY_PAID
        assert updated.remaining_amount == Decimal("7000.00")

        [tx] = _transactions(uow_factory, statement.id)
        assert tx.match_status == MatchStatus.MATCHED
        assert tx.match_detail == ManualMatch(matched_by="ana")
        assert _statement(uow_factory, statement.id).status == StatementStatus.MATCHED

    def test_overpayment_leaves_everything_unchanged(
        self, make_invoice, make_statement, reconciliation, invoice_service, uow_factory
    ):
        invoice = make_invoice("F-2026-021")
        statement = make_statement([_credit("5000", partner_name="Nepoznat")])
        [tx] = _transactions(uow_factory, statement.id)

        with pytest.raises(OverpaymentError):
            reconciliation.match_transaction(tx.id, invoice.id)

        assert invoice_service.get(invoice.id).paid_amount == Decimal("0")
        assert _payments(uow_factory, invoice.id) == []
        [tx] = _transactions(uow_factory, statement.id)
        assert tx.match_status == MatchStatus.UNMATCHED

    def test_paid_transaction_cannot_be_matched_again(
        self, make_invoice, make_statement, reconciliation, uow_factory
    ):
        first = make_invoice("F-2026-022")
        second = make_invoice("F-2026-023")
        statement = make_statement([_credit("1200")])
        [tx] = _transactions(uow_factory, statement.id)
        reconciliation.match_transaction(tx.id, first.id)

        with pytest.raises(TransactionStateError, match="MATCHED"):
            reconciliation.match_transaction(tx.id, second.id)
        with pytest.raises(DuplicatePaymentError):
            reconciliation.create_payment_from_matched_transaction(tx.id)

    def test_credit_cannot_pay_incoming_invoice(
        self, make_invoice, make_statement, reconciliation, uow_factory
    ):
        supplier = make_invoice(
            "UF-2026-001", direction=InvoiceDirection.INCOMING, status=InvoiceStatus.ACCEPTED
        )
        statement = make_statement([_credit("1200")])
        [tx] = _transactions(uow_factory, statement.id)

        with pytest.raises(DirectionMismatchError):
            reconciliation.match_transaction(tx.id, supplier.id)

    def test_debit_pays_incoming_invoice(
        self, make_invoice, make_statement, reconciliation, invoice_service, uow_factory
    ):
        supplier = make_invoice(
            "UF-2026-002", direction=InvoiceDirection.INCOMING, status=InvoiceStatus.ACCEPTED
        )
        statement = make_statement([_debit("1200")], opening_balance=Decimal("5000"))
        [tx] = _transactions(uow_factory, statement.id)

        reconciliation.match_transaction(tx.id, supplier.id)

        assert invoice_service.get(supplier.id).payment_status == InvoicePaymentStatus.PAID

    def test_payment_from_already_linked_transaction(
        self, make_invoice, make_statement, reconciliation, invoice_service, uow_factory
    ):
        invoice = make_invoice("F-2026-024")
        statement = make_statement([_credit("1200")])
        with uow_factory() as uow:
            [tx] = uow.transactions.list_by_statement(statement.id)
            uow.transactions.update(tx.mark_matched(invoice.id, None, ManualMatch("import")))
            uow.commit()

        payment = reconciliation.create_payment_from_matched_transaction(tx.id, created_by="ana")

        assert payment.bank_transaction_id == tx.id
        assert payment.created_by == "ana"
        assert invoice_service.get(invoice.id).payment_status == InvoicePaymentStatus.PAID
        [tx] = _transactions(uow_factory, statement.id)
        assert tx.payment_id == payment.id

    def test_payment_requires_linked_transaction(self, make_statement, reconciliation, uow_factory):
        statement = make_statement([_credit("1200")])
        [tx] = _transactions(uow_factory, statement.id)

        with pytest.raises(TransactionStateError, match="create_payment"):
            reconciliation.create_payment_from_matched_transaction(tx.id)

    def test_second_payment_row_for_transaction_rejected(
        self, make_invoice, make_statement, reconciliation, company_id, uow_factory
    ):
        invoice = make_invoice("F-2026-025")
        statement = make_statement([_credit("1200")])
        [tx] = _transactions(uow_factory, statement.id)
        reconciliation.match_transaction(tx.id, invoice.id)

        with uow_factory() as uow, pytest.raises(DuplicatePaymentError):
            uow.payments.add(Payment(
                company_id=company_id,
                invoice_id=invoice.id,
                amount=Decimal("1"),
                payment_date=date(2026, 1, 28),
                method=PaymentMethod.BANK_TRANSFER,
                bank_transaction_id=tx.id,
            ))

    def test_concurrent_matches_never_overpay(
        self, make_invoice, make_statement, reconciliation, invoice_service, uow_factory
    ):
        invoice = make_invoice("F-2026-026")
        statement = make_statement([_credit("1200", day=27), _credit("1200", day=28)])
        transactions = _transactions(uow_factory, statement.id)
        barrier = threading.Barrier(len(transactions))
        outcomes: list[object] = []

        def worker(transaction_id):
            barrier.wait()
            try:
                outcomes.append(reconciliation.match_transaction(transaction_id, invoice.id))
            except OverpaymentError as exc:
                outcomes.append(exc)

        threads = [threading.Thread(target=worker, args=(tx.id,)) for tx in transactions]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sum(isinstance(o, Payment) for o in outcomes) == 1
        assert sum(isinstance(o, OverpaymentError) for o in outcomes) == 1
        assert invoice_service.get(invoice.id).paid_amount == Decimal("1200.00")


class TestIgnore:

    def test_ignore_closes_statement(self, make_statement, reconciliation, company_id, uow_factory):
        statement = make_statement([_credit("10", partner_name="Kamata banke")])
        [tx] = _transactions(uow_factory, statement.id)

        ignored = reconciliation.ignore_transaction(tx.id)

        assert ignored.match_status == MatchStatus.IGNORED
        assert _statement(uow_factory, statement.id).status == StatementStatus.MATCHED
        assert reconciliation.list_unmatched(company_id) == []

    def test_ignored_is_terminal(self, make_invoice, make_statement, reconciliation, uow_factory):
        invoice = make_invoice("F-2026-030")
        statement = make_statement([_credit("1200")])
        [tx] = _transactions(uow_factory, statement.id)
        reconciliation.ignore_transaction(tx.id)

        with pytest.raises(TransactionStateError):
            reconciliation.ignore_transaction(tx.id)
        with pytest.raises(TransactionStateError):
            reconciliation.match_transaction(tx.id, invoice.id)


class TestRegisterStatement:
    """Uvoz izvoda."""

    def test_transactions_start_unmatched(self, make_statement, reconciliation, company_id):
        statement = make_statement([_credit("100", day=5), _credit("200", day=6), _debit("50")])

        assert statement.status == StatementStatus.IMPORTED
        assert statement.total_credit == Decimal("300.00")
        assert statement.total_debit == Decimal("50.00")
        unmatched = reconciliation.list_unmatched(company_id)
        assert len(unmatched) == 3
        assert unmatched[0].transaction_date == date(2026, 1, 28)
        assert len(reconciliation.list_unmatched(company_id, limit=2)) == 2

    def test_unbalanced_statement_rejected(self, reconciliation, company_id):
        parsed = ParsedStatement(
            account_number="265-1",
            statement_number="7",
            statement_date=date(2026, 1, 31),
            opening_balance=Decimal("100"),
            closing_balance=Decimal("250"),
            transactions=[_credit("100")],
        )

        with pytest.raises(UnbalancedStatementError, match="200.00"):
            reconciliation.register_statement(company_id, parsed)

    def test_duplicate_statement_rejected(self, make_statement):
        make_statement([_credit("100")], statement_number="12")

        with pytest.raises(DuplicateStatementError):
            make_statement([_credit("100")], statement_number="12")

    def test_non_positive_amount_rejected(self, make_statement):
        with pytest.raises(InvalidAmountError):
            make_statement([_credit("0")])

    def test_unknown_company(self, reconciliation, company):
        parsed = ParsedStatement(
            account_number="265-1",
            statement_number="1",
            statement_date=date(2026, 1, 31),
            opening_balance=0,
            closing_balance=0,
        )

        with pytest.raises(CompanyNotFoundError):
            reconciliation.register_statement(uuid4(), parsed)
