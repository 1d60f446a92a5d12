"""
Tests for configuration and structured logging
"""

import io
import json
import logging
from decimal import Decimal

import pytest

from dealer_finance import config as config_module
from dealer_finance.config import DealerFinanceConfig, get_config, reload_config
from dealer_finance.logging_config import JSONFormatter, setup_logging, log_action


class TestConfig:
    """Test environment-driven configuration"""

    def test_defaults(self, monkeypatch):
        for key in ("DEALER_FINANCE_STORAGE_BACKEND", "DEALER_FINANCE_DEFAULT_TAX_RATE"):
            monkeypatch.delenv(key, raising=False)
        settings = DealerFinanceConfig(_env_file=None)

        assert settings.storage_backend == "sqlite"
        assert settings.default_tax_rate == Decimal("0.08")
        assert settings.default_interest_rate == Decimal("6.99")
        assert settings.max_loan_term == 84
        assert settings.true_frequency_schedule is False

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("DEALER_FINANCE_STORAGE_BACKEND", "memory")
        monkeypatch.setenv("DEALER_FINANCE_TRUE_FREQUENCY_SCHEDULE", "true")
        monkeypatch.setenv("DEALER_FINANCE_DEFAULT_TAX_RATE", "0.13")
        settings = DealerFinanceConfig(_env_file=None)

        assert settings.storage_backend == "memory"
        assert settings.true_frequency_schedule is True
        assert settings.default_tax_rate == Decimal("0.13")

    def test_reload_config(self, monkeypatch):
        original = get_config()
        monkeypatch.setenv("DEALER_FINANCE_API_PORT", "9100")
        try:
            assert reload_config().api_port == 9100
            assert get_config().api_port == 9100
        finally:
            config_module.config = original


class TestLogging:
    """Test JSON log formatting"""

    def test_json_formatter_fields(self):
        record = logging.LogRecord(
            "dealer_finance.ledger", logging.WARNING, __file__, 1,
            "Balance clamped on %s", ("INV-1",), None
        )
        record.action = "get_balance"
        record.resource = "invoice:INV-1"

        entry = json.loads(JSONFormatter().format(record))
        assert entry["level"] == "WARNING"
        assert entry["logger"] == "dealer_finance.ledger"
        assert entry["message"] == "Balance clamped on INV-1"
        assert entry["action"] == "get_balance"
        assert entry["resource"] == "invoice:INV-1"
        assert "correlation_id" not in entry

    def test_setup_logging_replaces_handlers(self):
        logger = setup_logging(level="DEBUG", logger_name="dealer_finance_test_setup")
        logger = setup_logging(level="INFO", logger_name="dealer_finance_test_setup", log_format="text")

        assert len(logger.handlers) == 1
        assert logger.level == logging.INFO
        assert not isinstance(logger.handlers[0].formatter, JSONFormatter)

    def test_log_action_emits_structured_record(self):
        logger = setup_logging(level="INFO", logger_name="dealer_finance_test_action")
        stream = io.StringIO()
        logger.handlers[0].setStream(stream)

        log_action(
            logger, "info", "Payment recorded",
            action="record_payment", resource="invoice:INV-1",
            correlation_id="req-42", extra={"amount": "669.60"}
        )

        entry = json.loads(stream.getvalue().strip())
        assert entry["message"] == "Payment recorded"
        assert entry["action"] == "record_payment"
        assert entry["correlation_id"] == "req-42"
        assert entry["extra"] == {"amount": "669.60"}
