"""
Loan Engine Exceptions

Error taxonomy for calculation calls. Every error is local to a single call
and recoverable by the caller; the engine never retries.
"""

from typing import Any, Dict, Optional


class LoanCalculationError(Exception):
    """Base exception for all loan engine errors"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


class InvalidLoanInputError(LoanCalculationError, ValueError):
    """Raised when calculation input is rejected before any computation starts"""

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None):
        details = {}
        if field:
            details['field'] = field
        if value is not None:
            details['value'] = str(value)
        super().__init__(message, details)
        self.field = field


class UnsupportedCalculationMethodError(InvalidLoanInputError):
    """Raised when no strategy is registered for a calculation method"""

    def __init__(self, method: Any):
        super().__init__(
            f"Calculation method {getattr(method, 'value', method)} is not supported",
            field="calculation_method",
            value=getattr(method, 'value', method)
        )


class UnsolvableAnnuityError(LoanCalculationError, ArithmeticError):
    """Raised when a rate/term combination yields a degenerate installment"""

    def __init__(self, periodic_rate, periods: int, payment=None):
        details = {'periodic_rate': str(periodic_rate), 'periods': periods}
        if payment is not None:
            details['payment'] = str(payment)
        super().__init__("Annuity payment cannot be solved for the given rate and term", details)


class CustomFormulaError(LoanCalculationError):
    """Raised when a caller-supplied custom formula fails or returns bad rows"""

    def __init__(self, message: str, installment_number: Optional[int] = None):
        details = {}
        if installment_number is not None:
            details['installment_number'] = installment_number
        super().__init__(message, details)
