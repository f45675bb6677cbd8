"""
Penalty Calculation Module

Computes overdue charges from days overdue, overdue amount, penalty rate and
penalty type. Used for schedule previews and by the host system's daily
penalty accrual job. The calculator is pure: the same arguments always give
the same result, and it never keeps a running total.
"""

from decimal import Decimal, localcontext
from datetime import date
from typing import Optional

from .config import CalculationPolicy, DEFAULT_POLICY
from .exceptions import InvalidLoanInputError
from .models import PenaltyType, InterestBasis, PenaltyCalculationResult, as_decimal, as_enum
from .numeric import DECIMAL_CONTEXT, ZERO, ONE, HUNDRED, days_in_year, round_money


def calculate_penalty(
    overdue_days: int,
    overdue_amount: Decimal,
    penalty_rate: Decimal,
    penalty_type: PenaltyType,
    *,
    installment_amount: Optional[Decimal] = None,
    interest_basis: InterestBasis = InterestBasis.ACTUAL_365,
    calculation_date: Optional[date] = None,
    compound: bool = True,
    policy: Optional[CalculationPolicy] = None
) -> PenaltyCalculationResult:
    """
    Calculate the penalty on an overdue amount

    Rate semantics by type:
        FIXED_AMOUNT: penalty_rate is the charge itself
        PERCENTAGE_OF_OVERDUE: annual percent, prorated per day overdue
        PERCENTAGE_OF_INSTALLMENT: flat percent of the installment amount
        COMPOUNDING_DAILY: annual percent compounded daily on the overdue amount

    Args:
        overdue_days: Days the amount has been overdue
        overdue_amount: Amount overdue
        penalty_rate: Rate (or fixed amount) as described above
        penalty_type: How the penalty is charged
        installment_amount: Scheduled installment, defaults to overdue_amount
        interest_basis: Day-count basis for daily proration
        calculation_date: Date stamped on the result, defaults to today
        compound: False accrues COMPOUNDING_DAILY penalties without compounding
        policy: Rounding policy

    Returns:
        PenaltyCalculationResult
    """
    policy = policy or DEFAULT_POLICY
    penalty_type = as_enum(PenaltyType, penalty_type, 'penalty_type')
    overdue_amount = as_decimal(overdue_amount, 'overdue_amount')
    penalty_rate = as_decimal(penalty_rate, 'penalty_rate')
    if installment_amount is not None:
        installment_amount = as_decimal(installment_amount, 'installment_amount')

    if isinstance(overdue_days, bool) or not isinstance(overdue_days, int) or overdue_days < 0:
        raise InvalidLoanInputError("Overdue days must be a non-negative whole number",
                                    field='overdue_days', value=overdue_days)
    if overdue_amount < ZERO:
        raise InvalidLoanInputError("Overdue amount cannot be negative",
                                    field='overdue_amount', value=overdue_amount)
    if penalty_rate < ZERO:
        raise InvalidLoanInputError("Penalty rate cannot be negative",
                                    field='penalty_rate', value=penalty_rate)

    with localcontext(DECIMAL_CONTEXT):
        if overdue_days == 0:
            penalty_amount = ZERO

        elif penalty_type == PenaltyType.FIXED_AMOUNT:
            penalty_amount = penalty_rate

        elif penalty_type == PenaltyType.PERCENTAGE_OF_OVERDUE:
            # Amount x annual rate x (days / year)
            year_days = Decimal(days_in_year(interest_basis))
            penalty_amount = overdue_amount * penalty_rate / HUNDRED * Decimal(overdue_days) / year_days

        elif penalty_type == PenaltyType.PERCENTAGE_OF_INSTALLMENT:
            base = installment_amount if installment_amount is not None else overdue_amount
            penalty_amount = base * penalty_rate / HUNDRED

        elif penalty_type == PenaltyType.COMPOUNDING_DAILY:
            daily_rate = penalty_rate / HUNDRED / Decimal(days_in_year(interest_basis))
            if compound:
                penalty_amount = overdue_amount * ((ONE + daily_rate) ** overdue_days - ONE)
            else:
                penalty_amount = overdue_amount * daily_rate * Decimal(overdue_days)

        else:
            raise InvalidLoanInputError(f"Unsupported penalty type: {penalty_type}",
                                        field='penalty_type', value=penalty_type)

        penalty_amount = round_money(penalty_amount, policy.money_places)

    return PenaltyCalculationResult(
        penalty_amount=penalty_amount,
        penalty_days=overdue_days,
        penalty_rate=penalty_rate,
        penalty_type=penalty_type,
        calculation_date=calculation_date or date.today()
    )
