"""
Loan Calculation Models

Enumerations and immutable value objects exchanged with the engine: the
calculation input, schedule installments, and the results of schedule,
penalty, early settlement and restructuring calculations.
"""

from decimal import Decimal, InvalidOperation
from datetime import date, datetime
from dataclasses import dataclass, field, fields, replace
from typing import Any, Callable, Dict, Optional, Sequence, Tuple
from enum import Enum

from .exceptions import InvalidLoanInputError


class LoanCalculationMethod(Enum):
    """Calculation methods, one strategy each"""
    FLAT_RATE = "FLAT_RATE"                    # Add-on interest on original principal
    REDUCING_BALANCE = "REDUCING_BALANCE"      # Interest on outstanding balance, level EMI
    SIMPLE_INTEREST = "SIMPLE_INTEREST"        # P * r * t, time-based settlement
    COMPOUND_INTEREST = "COMPOUND_INTEREST"    # P * (1 + r)^n total repayment
    ANNUITY = "ANNUITY"                        # Level payment with fees folded in
    BALLOON_PAYMENT = "BALLOON_PAYMENT"        # Lump sum due with final installment
    CUSTOM_FORMULA = "CUSTOM_FORMULA"          # Caller-supplied amortization callback


class RepaymentFrequency(Enum):
    """Repayment frequency options"""
    DAILY = "DAILY"              # 365 (or 360) payments per year
    WEEKLY = "WEEKLY"            # 52 payments per year
    BIWEEKLY = "BIWEEKLY"        # 26 payments per year
    MONTHLY = "MONTHLY"          # 12 payments per year
    QUARTERLY = "QUARTERLY"      # 4 payments per year
    SEMI_ANNUAL = "SEMI_ANNUAL"  # 2 payments per year
    ANNUAL = "ANNUAL"            # 1 payment per year


class InterestBasis(Enum):
    """Day-count basis for daily rates"""
    ACTUAL_365 = "ACTUAL_365"    # Actual days / 365
    ACTUAL_360 = "ACTUAL_360"    # Actual days / 360
    THIRTY_360 = "THIRTY_360"    # 30-day months / 360


class PenaltyType(Enum):
    """How overdue penalties are charged"""
    FIXED_AMOUNT = "FIXED_AMOUNT"                              # Flat charge once overdue
    PERCENTAGE_OF_OVERDUE = "PERCENTAGE_OF_OVERDUE"            # Annual rate prorated per day
    PERCENTAGE_OF_INSTALLMENT = "PERCENTAGE_OF_INSTALLMENT"    # Percent of installment due
    COMPOUNDING_DAILY = "COMPOUNDING_DAILY"                    # Daily compounding on overdue


def as_decimal(value: Any, field_name: str) -> Decimal:
    """Coerce a number or numeric string to Decimal, rejecting it as invalid input otherwise"""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise InvalidLoanInputError(f"{field_name} must be numeric", field=field_name, value=value)
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise InvalidLoanInputError(f"{field_name} must be numeric", field=field_name, value=value) from e
    if not result.is_finite():
        raise InvalidLoanInputError(f"{field_name} must be finite", field=field_name, value=value)
    return result


def as_enum(enum_cls, value: Any, field_name: str):
    """Coerce an enum member or its value, rejecting unknown values as invalid input"""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError as e:
        raise InvalidLoanInputError(
            f"Unsupported {field_name}: {value}", field=field_name, value=value
        ) from e


@dataclass(frozen=True)
class CustomFormulaContext:
    """What a custom formula callback sees when asked for a schedule"""
    loan_input: 'LoanCalculationInput'
    periodic_rate: Decimal
    number_of_installments: int
    due_dates: Tuple[date, ...]


# A custom formula returns one (principal, interest) pair per installment
CustomFormula = Callable[[CustomFormulaContext], Sequence[Tuple[Any, Any]]]


@dataclass(frozen=True)
class LoanCalculationInput:
    """
    Everything needed to compute one loan schedule.

    Amounts are Decimal; rates are percentages (12.5 means 12.5% a year).
    Numbers given as int, float or str are converted on construction.
    """
    principal_amount: Decimal
    annual_interest_rate: Decimal
    term_in_months: int
    repayment_frequency: RepaymentFrequency
    calculation_method: LoanCalculationMethod
    grace_period_days: int = 0
    processing_fee_amount: Decimal = Decimal('0')
    processing_fee_percentage: Decimal = Decimal('0')
    insurance_fee_amount: Decimal = Decimal('0')
    insurance_fee_percentage: Decimal = Decimal('0')
    penalty_rate: Optional[Decimal] = None
    penalty_type: Optional[PenaltyType] = None
    interest_basis: InterestBasis = InterestBasis.ACTUAL_365
    balloon_amount: Optional[Decimal] = None
    custom_formula: Optional[CustomFormula] = field(default=None, compare=False)
    disbursement_date: Optional[date] = None

    def __post_init__(self):
        for name in ('principal_amount', 'annual_interest_rate', 'processing_fee_amount',
                     'processing_fee_percentage', 'insurance_fee_amount',
                     'insurance_fee_percentage'):
            object.__setattr__(self, name, as_decimal(getattr(self, name), name))
        for name in ('penalty_rate', 'balloon_amount'):
            if getattr(self, name) is not None:
                object.__setattr__(self, name, as_decimal(getattr(self, name), name))

        object.__setattr__(self, 'repayment_frequency',
                           as_enum(RepaymentFrequency, self.repayment_frequency, 'repayment_frequency'))
        object.__setattr__(self, 'calculation_method',
                           as_enum(LoanCalculationMethod, self.calculation_method, 'calculation_method'))
        object.__setattr__(self, 'interest_basis',
                           as_enum(InterestBasis, self.interest_basis, 'interest_basis'))
        if self.penalty_type is not None:
            object.__setattr__(self, 'penalty_type',
                               as_enum(PenaltyType, self.penalty_type, 'penalty_type'))

        if self.disbursement_date is None:
            object.__setattr__(self, 'disbursement_date', date.today())
        elif isinstance(self.disbursement_date, datetime):
            object.__setattr__(self, 'disbursement_date', self.disbursement_date.date())

        if self.principal_amount <= Decimal('0'):
            raise InvalidLoanInputError("Principal amount must be greater than 0",
                                        field='principal_amount', value=self.principal_amount)
        if self.annual_interest_rate < Decimal('0'):
            raise InvalidLoanInputError("Interest rate cannot be negative",
                                        field='annual_interest_rate', value=self.annual_interest_rate)
        if isinstance(self.term_in_months, bool) or not isinstance(self.term_in_months, int) \
                or self.term_in_months <= 0:
            raise InvalidLoanInputError("Loan term must be a whole number of months greater than 0",
                                        field='term_in_months', value=self.term_in_months)
        if self.grace_period_days is None or self.grace_period_days < 0:
            raise InvalidLoanInputError("Grace period cannot be negative",
                                        field='grace_period_days', value=self.grace_period_days)
        for name in ('processing_fee_amount', 'processing_fee_percentage',
                     'insurance_fee_amount', 'insurance_fee_percentage'):
            if getattr(self, name) < Decimal('0'):
                raise InvalidLoanInputError(f"{name} cannot be negative", field=name, value=getattr(self, name))
        if self.penalty_rate is not None and self.penalty_rate < Decimal('0'):
            raise InvalidLoanInputError("Penalty rate cannot be negative",
                                        field='penalty_rate', value=self.penalty_rate)

    @property
    def processing_fee(self) -> Decimal:
        """Fixed processing fee plus percentage of principal"""
        return self.processing_fee_amount + self.principal_amount * self.processing_fee_percentage / Decimal('100')

    @property
    def insurance_fee(self) -> Decimal:
        """Fixed insurance fee plus percentage of principal"""
        return self.insurance_fee_amount + self.principal_amount * self.insurance_fee_percentage / Decimal('100')

    @property
    def total_fees(self) -> Decimal:
        """Upfront fees charged on the loan"""
        return self.processing_fee + self.insurance_fee

    def with_changes(self, **changes) -> 'LoanCalculationInput':
        """Copy of this input with some fields replaced (re-validated)"""
        return replace(self, **changes)


@dataclass(frozen=True)
class LoanInstallment:
    """Single installment in a repayment schedule"""
    installment_number: int
    due_date: date
    principal_amount: Decimal
    interest_amount: Decimal
    fees_amount: Decimal
    total_amount: Decimal
    remaining_balance: Decimal
    cumulative_principal: Decimal
    cumulative_interest: Decimal

    def __post_init__(self):
        # Validate that total equals principal + interest + fees
        calculated = self.principal_amount + self.interest_amount + self.fees_amount
        if abs(calculated - self.total_amount) > Decimal('0.01'):
            raise ValueError(f"Installment {self.installment_number} total {self.total_amount} does not equal "
                             f"principal {self.principal_amount} + interest {self.interest_amount} + "
                             f"fees {self.fees_amount}")

    def to_dict(self) -> Dict[str, Any]:
        return _to_serializable(self)


@dataclass(frozen=True)
class LoanSummary:
    """Aggregate figures for a schedule"""
    number_of_installments: int
    first_payment_date: date
    last_payment_date: date
    total_interest_paid: Decimal
    total_fees_paid: Decimal
    average_payment: Decimal


@dataclass(frozen=True)
class LoanCalculationResult:
    """
    Complete schedule for one loan.

    This is what the persistence layer stores as repayment schedule rows; it
    carries no database identifiers. ``loan_input`` is kept so that penalty,
    settlement and restructure quotes are recomputed from canonical inputs.
    """
    principal_amount: Decimal
    total_interest: Decimal
    total_fees: Decimal
    total_amount: Decimal
    installment_amount: Decimal
    effective_interest_rate: Decimal
    apr: Decimal
    repayment_schedule: Tuple[LoanInstallment, ...]
    calculation_method: LoanCalculationMethod
    summary: LoanSummary
    disbursement_date: date
    periodic_rate: Decimal
    loan_input: LoanCalculationInput = field(repr=False, compare=False)

    @property
    def number_of_installments(self) -> int:
        return len(self.repayment_schedule)

    def remaining_installments(self, payments_made: int) -> Tuple[LoanInstallment, ...]:
        """Installments not yet paid after a number of payments"""
        return self.repayment_schedule[payments_made:]

    def outstanding_principal(self, payments_made: int) -> Decimal:
        """Principal still owed after a number of payments"""
        if payments_made <= 0:
            return self.principal_amount
        return self.repayment_schedule[payments_made - 1].remaining_balance

    def to_dict(self) -> Dict[str, Any]:
        """Plain dict of the result (Decimals as strings, dates ISO formatted)"""
        return _to_serializable(self, exclude=('loan_input',))


@dataclass(frozen=True)
class PenaltyCalculationResult:
    """Penalty charged on an overdue amount, recomputed fresh each time"""
    penalty_amount: Decimal
    penalty_days: int
    penalty_rate: Decimal
    penalty_type: PenaltyType
    calculation_date: date


@dataclass(frozen=True)
class EarlySettlementResult:
    """Payoff quote for settling a loan before maturity"""
    settlement_date: date
    remaining_principal: Decimal
    remaining_interest: Decimal
    rebate_amount: Decimal
    penalty_amount: Decimal
    total_settlement_amount: Decimal
    savings_from_early_settlement: Decimal
    installments_outstanding: int


@dataclass(frozen=True)
class RecordedPayment:
    """Payment actually received against a loan, split as the host allocated it"""
    payment_date: date
    amount: Decimal
    principal_amount: Decimal = Decimal('0')
    interest_amount: Decimal = Decimal('0')

    def __post_init__(self):
        for name in ('amount', 'principal_amount', 'interest_amount'):
            value = as_decimal(getattr(self, name), name)
            if value < Decimal('0'):
                raise InvalidLoanInputError(f"{name} cannot be negative", field=name, value=value)
            object.__setattr__(self, name, value)


@dataclass(frozen=True)
class LoanRestructureOptions:
    """Requested changes for a restructure; None keeps the original value"""
    new_term_in_months: Optional[int] = None
    new_interest_rate: Optional[Decimal] = None
    new_repayment_frequency: Optional[RepaymentFrequency] = None
    additional_amount: Decimal = Decimal('0')
    moratorium_months: int = 0
    new_calculation_method: Optional[LoanCalculationMethod] = None
    restructure_date: Optional[date] = None
    restructure_fee_amount: Decimal = Decimal('0')
    restructure_fee_percentage: Decimal = Decimal('0')

    def __post_init__(self):
        for name in ('additional_amount', 'restructure_fee_amount', 'restructure_fee_percentage'):
            value = as_decimal(getattr(self, name), name)
            if value < Decimal('0'):
                raise InvalidLoanInputError(f"{name} cannot be negative", field=name, value=value)
            object.__setattr__(self, name, value)
        if self.new_interest_rate is not None:
            object.__setattr__(self, 'new_interest_rate',
                               as_decimal(self.new_interest_rate, 'new_interest_rate'))
        if self.new_repayment_frequency is not None:
            object.__setattr__(self, 'new_repayment_frequency',
                               as_enum(RepaymentFrequency, self.new_repayment_frequency,
                                       'new_repayment_frequency'))
        if self.new_calculation_method is not None:
            object.__setattr__(self, 'new_calculation_method',
                               as_enum(LoanCalculationMethod, self.new_calculation_method,
                                       'new_calculation_method'))
        if self.moratorium_months is None or self.moratorium_months < 0:
            raise InvalidLoanInputError("Moratorium cannot be negative",
                                        field='moratorium_months', value=self.moratorium_months)


@dataclass(frozen=True)
class LoanRestructureResult:
    """Original and restructured schedules with the delta between them"""
    original_loan: LoanCalculationResult
    restructured_loan: LoanCalculationResult
    restructure_cost: Decimal
    total_savings: Decimal
    new_installment_amount: Decimal
    extension_months: int
    outstanding_principal: Decimal
    capitalized_interest: Decimal


@dataclass(frozen=True)
class AffordabilityResult:
    """Debt-to-income check for a proposed installment"""
    current_debt_to_income_ratio: Decimal
    new_debt_to_income_ratio: Decimal
    is_affordable: bool
    available_capacity: Decimal


def _to_serializable(obj, exclude: Tuple[str, ...] = ()) -> Any:
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (list, tuple)):
        return [_to_serializable(item) for item in obj]
    if hasattr(obj, '__dataclass_fields__'):
        return {
            f.name: _to_serializable(getattr(obj, f.name))
            for f in fields(obj) if f.name not in exclude
        }
    return obj
