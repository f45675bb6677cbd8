"""
Loan Calculation Engine

Amortization schedules, overdue penalties, early settlement and restructuring
quotes for consumer and microfinance loans. Pure Decimal arithmetic with no
I/O: identical inputs always produce identical results.
"""

__version__ = "1.0.0"

from .models import (
    LoanCalculationMethod, RepaymentFrequency, InterestBasis, PenaltyType,
    LoanCalculationInput, LoanInstallment, LoanSummary, LoanCalculationResult,
    PenaltyCalculationResult, EarlySettlementResult, LoanRestructureOptions,
    LoanRestructureResult, AffordabilityResult, CustomFormulaContext, RecordedPayment
)
from .exceptions import (
    LoanCalculationError, InvalidLoanInputError, UnsupportedCalculationMethodError,
    UnsolvableAnnuityError, CustomFormulaError
)
from .calculator import LoanCalculator
