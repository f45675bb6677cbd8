"""
Structured Logging Configuration Module

Provides JSON-formatted structured logging for loan calculations.
"""

import logging
import json
from datetime import datetime, timezone
from typing import Optional


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, 'correlation_id', None),
            "loan_reference": getattr(record, 'loan_reference', None),
            "operation": getattr(record, 'operation', None),
            "calculation_method": getattr(record, 'calculation_method', None),
            "figures": getattr(record, 'figures', None)
        }

        # Remove None values
        log_entry = {k: v for k, v in log_entry.items() if v is not None}

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level: str = "INFO", logger_name: str = "loan_engine",
                  log_format: str = "json", log_file: Optional[str] = None) -> logging.Logger:
    """
    Setup structured logging for the engine.

    Library code only emits records; call this from the host application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        logger_name: Name of the logger
        log_format: "json" or "text"
        log_file: Optional file path; logs go to stderr when None

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)

    # Remove existing handlers to avoid duplicates
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.FileHandler(log_file) if log_file else logging.StreamHandler()
    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))

    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper()))
    logger.propagate = False

    return logger


def get_logger(name: str = "loan_engine") -> logging.Logger:
    """Get logger instance"""
    return logging.getLogger(name)


def log_calculation(logger: logging.Logger, level: str, message: str,
                    operation: Optional[str] = None, calculation_method: Optional[str] = None,
                    loan_reference: Optional[str] = None, correlation_id: Optional[str] = None,
                    figures: Optional[dict] = None):
    """
    Log a calculation with structured data.

    Args:
        logger: Logger instance
        level: Log level (debug, info, warning, error)
        message: Log message
        operation: Engine operation (calculate_loan, calculate_penalty, ...)
        calculation_method: Calculation method value
        loan_reference: Caller's loan reference, if any
        correlation_id: Correlation ID for request tracing
        figures: Key numbers of the calculation
    """
    numeric_level = getattr(logging, level.upper())
    if not logger.isEnabledFor(numeric_level):
        return

    record = logger.makeRecord(
        logger.name, numeric_level,
        __name__, 0, message, (), None
    )

    if operation:
        record.operation = operation
    if calculation_method:
        record.calculation_method = calculation_method
    if loan_reference:
        record.loan_reference = loan_reference
    if correlation_id:
        record.correlation_id = correlation_id
    if figures:
        record.figures = figures

    logger.handle(record)
