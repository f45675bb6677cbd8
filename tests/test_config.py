"""
Test suite for configuration and logging

Tests environment-driven settings, the calculation policy derived from them
and the structured JSON log output.
"""

import json
import logging
import sys
import pytest
from decimal import Decimal

from loan_engine.config import (
    LoanEngineConfig, CalculationPolicy, DEFAULT_POLICY, get_config, reload_config
)
from loan_engine.logging_config import JSONFormatter, setup_logging, get_logger, log_calculation


class TestLoanEngineConfig:
    """Test pydantic-settings configuration"""

    def test_defaults(self):
        settings = LoanEngineConfig()
        assert settings.money_decimal_places == 2
        assert settings.rate_decimal_places == 4
        assert settings.max_rebate_fraction == "0.50"
        assert settings.log_format == "json"

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("LOAN_ENGINE_MONEY_DECIMAL_PLACES", "0")
        monkeypatch.setenv("LOAN_ENGINE_MAX_REBATE_FRACTION", "0.25")

        settings = LoanEngineConfig()
        assert settings.money_decimal_places == 0
        assert settings.max_rebate_fraction == "0.25"

    def test_reload_config(self, monkeypatch):
        monkeypatch.setenv("LOAN_ENGINE_RATE_DECIMAL_PLACES", "6")
        try:
            assert reload_config().rate_decimal_places == 6
            assert get_config().rate_decimal_places == 6
        finally:
            monkeypatch.delenv("LOAN_ENGINE_RATE_DECIMAL_PLACES")
            reload_config()


class TestCalculationPolicy:
    """Test the immutable calculation policy"""

    def test_default_policy(self):
        assert DEFAULT_POLICY.money_places == 2
        assert DEFAULT_POLICY.rate_places == 4
        assert DEFAULT_POLICY.max_rebate_fraction == Decimal('0.50')
        assert DEFAULT_POLICY.absorb_residue_in_final_installment
        assert DEFAULT_POLICY.money_quantum == Decimal('0.01')

    def test_from_config(self):
        policy = CalculationPolicy.from_config(LoanEngineConfig(money_decimal_places=3,
                                                                max_rebate_fraction="0.25"))
        assert policy.money_places == 3
        assert policy.max_rebate_fraction == Decimal('0.25')

    def test_invalid_policy(self):
        with pytest.raises(ValueError, match="between 0 and 1"):
            CalculationPolicy(max_rebate_fraction=Decimal('1.5'))

        with pytest.raises(ValueError, match="cannot be negative"):
            CalculationPolicy(money_places=-1)

        with pytest.raises(ValueError, match="absorbed into the final installment"):
            CalculationPolicy(absorb_residue_in_final_installment=False)


class TestStructuredLogging:
    """Test JSON log output"""

    def test_json_log_line(self, tmp_path):
        log_file = tmp_path / "engine.log"
        logger = setup_logging("DEBUG", logger_name="loan_engine.tests.json", log_file=str(log_file))

        log_calculation(logger, "info", "Loan schedule calculated",
                        operation="calculate_loan", calculation_method="FLAT_RATE",
                        loan_reference="LN-001", figures={"installment_amount": "958.33"})
        for handler in logger.handlers:
            handler.flush()

        entry = json.loads(log_file.read_text().strip().splitlines()[-1])
        assert entry["level"] == "INFO"
        assert entry["logger"] == "loan_engine.tests.json"
        assert entry["message"] == "Loan schedule calculated"
        assert entry["operation"] == "calculate_loan"
        assert entry["loan_reference"] == "LN-001"
        assert entry["figures"] == {"installment_amount": "958.33"}
        assert "correlation_id" not in entry

        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)

    def test_below_level_is_dropped(self):
        logger = get_logger("loan_engine.tests.quiet")
        logger.setLevel(logging.WARNING)
        records = []
        handler = logging.Handler()
        handler.emit = records.append
        logger.addHandler(handler)
        try:
            log_calculation(logger, "debug", "not shown")
            log_calculation(logger, "warning", "shown")
        finally:
            logger.removeHandler(handler)

        assert [r.getMessage() for r in records] == ["shown"]

    def test_formatter_includes_exception(self):
        try:
            raise ValueError("bad input")
        except ValueError:
            record = logging.getLogger("loan_engine.tests").makeRecord(
                "loan_engine.tests", logging.ERROR, __file__, 1, "failed", (), sys.exc_info()
            )
        entry = json.loads(JSONFormatter().format(record))
        assert entry["level"] == "ERROR"
        assert "ValueError: bad input" in entry["exception"]
