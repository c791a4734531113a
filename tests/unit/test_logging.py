"""
Unit tests - Strukturisano (JSON) logovanje i kontekst zahteva.
"""

import io
import json
import logging
import sys
from decimal import Decimal
from uuid import UUID

import pytest

from sefbooks.core.exceptions import OverpaymentError
from sefbooks.core.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


def _record(message: str, level: int = logging.INFO, exc_info=None, **extra) -> logging.LogRecord:
    record = logging.LogRecord("sefbooks.test", level, __file__, 1, message, (), exc_info)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:

    def test_payload_contains_extra_fields(self):
        payload = json.loads(StructuredFormatter().format(
            _record("Payment recorded", amount=Decimal("1200.00"), invoice_id=UUID(int=1))
        ))

        assert payload["message"] == "Payment recorded"
        assert payload["level"] == "INFO"
        assert payload["logger"] == "sefbooks.test"
        assert payload["amount"] == "1200.00"
        assert payload["invoice_id"] == "00000000-0000-0000-0000-000000000001"

    def test_context_fields_are_bound_and_restored(self):
        formatter = StructuredFormatter()

        with LogContext.bind(company_id="c-1", request_id="r-1", operation=None):
            inside = json.loads(formatter.format(_record("inside")))
        outside = json.loads(formatter.format(_record("outside")))

        assert inside["company_id"] == "c-1"
        assert inside["request_id"] == "r-1"
        assert "operation" not in inside
        assert "company_id" not in outside

    def test_exception_code_is_logged(self):
        try:
            raise OverpaymentError("inv-1", Decimal("10.00"), Decimal("20.00"))
        except OverpaymentError:
            record = _record("failed", logging.ERROR, exc_info=sys.exc_info())

        payload = json.loads(StructuredFormatter().format(record))

        assert payload["exc_type"] == "OverpaymentError"
        assert payload["exc_code"] == "OVERPAYMENT"
        assert "Traceback" in payload["traceback"]


class TestConfigureLogging:

    @pytest.fixture(autouse=True)
    def _reset(self):
        reset_logging()
        yield
        reset_logging()

    def test_configure_is_idempotent(self):
        stream = io.StringIO()

        configure_logging(level="INFO", stream=stream)
        configure_logging(level="DEBUG", stream=stream)
        get_logger("ledger").info("Petty cash entry posted", extra={"balance": "10.00"})

        lines = stream.getvalue().splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0])["logger"] == "sefbooks.ledger"
        assert logging.getLogger("sefbooks").level == logging.INFO
