"""
Loan Calculator Module

Single entry point for host systems: validates input, dispatches to the
strategy registered for the calculation method and logs each calculation.
Also offers method comparison and a debt-to-income affordability check.
"""

from decimal import Decimal, localcontext
from dataclasses import replace
from datetime import date
from typing import Iterable, List, Optional
import logging

from .config import CalculationPolicy, DEFAULT_POLICY
from .exceptions import InvalidLoanInputError, LoanCalculationError
from .logging_config import get_logger, log_calculation
from .models import (
    LoanCalculationMethod, LoanCalculationInput, LoanCalculationResult, PenaltyType,
    PenaltyCalculationResult, EarlySettlementResult, LoanRestructureOptions,
    LoanRestructureResult, AffordabilityResult, RecordedPayment, as_decimal
)
from .numeric import DECIMAL_CONTEXT, ZERO, HUNDRED, round_money, round_rate
from .numeric import effective_annual_rate as _effective_annual_rate
from .settlement import calculate_loan_restructure
from .strategies import STRATEGIES, get_strategy, validate_input


class LoanCalculator:
    """
    Stateless loan calculation service

    Safe to share between threads: it holds only an immutable policy and a
    logger.
    """

    def __init__(self, policy: Optional[CalculationPolicy] = None,
                 logger: Optional[logging.Logger] = None):
        self.policy = policy or DEFAULT_POLICY
        self.logger = logger or get_logger("loan_engine.calculator")

    def calculate_loan(self, loan_input: LoanCalculationInput) -> LoanCalculationResult:
        """
        Calculate the full repayment schedule for a loan

        Args:
            loan_input: Loan parameters

        Returns:
            LoanCalculationResult

        Raises:
            InvalidLoanInputError: If the input is rejected
            UnsupportedCalculationMethodError: If no strategy handles the method
        """
        strategy = get_strategy(loan_input.calculation_method)
        validate_input(loan_input)
        result = strategy.calculate_loan(loan_input, policy=self.policy)

        log_calculation(
            self.logger, "debug", "Loan schedule calculated",
            operation="calculate_loan",
            calculation_method=loan_input.calculation_method.value,
            figures={
                "principal_amount": str(result.principal_amount),
                "number_of_installments": result.number_of_installments,
                "installment_amount": str(result.installment_amount),
                "total_interest": str(result.total_interest),
                "total_amount": str(result.total_amount),
                "apr": str(result.apr)
            }
        )
        return result

    def compare_loan_methods(self, base_input: LoanCalculationInput,
                             methods: Iterable[LoanCalculationMethod]) -> List[LoanCalculationResult]:
        """
        Calculate the same loan under several methods

        Methods that cannot be calculated for this input (a balloon loan
        without a balloon amount, for instance) are logged and left out.
        """
        results = []
        for method in methods:
            try:
                results.append(self.calculate_loan(base_input.with_changes(calculation_method=method)))
            except LoanCalculationError as e:
                log_calculation(
                    self.logger, "warning", f"Skipping method in comparison: {e.message}",
                    operation="compare_loan_methods",
                    calculation_method=getattr(method, 'value', str(method)),
                    figures=e.details or None
                )
        return results

    def calculate_penalty(self, method: LoanCalculationMethod, overdue_days: int,
                          overdue_amount: Decimal, penalty_rate: Decimal,
                          penalty_type: PenaltyType = PenaltyType.PERCENTAGE_OF_OVERDUE,
                          **kwargs) -> PenaltyCalculationResult:
        """Penalty on an overdue amount, as charged under a calculation method"""
        strategy = get_strategy(method)
        kwargs.setdefault('policy', self.policy)
        result = strategy.calculate_penalty(overdue_days, overdue_amount, penalty_rate,
                                            penalty_type, **kwargs)

        log_calculation(
            self.logger, "debug", "Penalty calculated",
            operation="calculate_penalty",
            calculation_method=strategy.method.value,
            figures={
                "overdue_days": overdue_days,
                "penalty_type": result.penalty_type.value,
                "penalty_amount": str(result.penalty_amount)
            }
        )
        return result

    def calculate_early_settlement(self, result: LoanCalculationResult, settlement_date: date,
                                   payments_made: int, **kwargs) -> EarlySettlementResult:
        """Early settlement quote using the loan's own settlement rules"""
        strategy = get_strategy(result.calculation_method)
        kwargs.setdefault('policy', self.policy)
        settlement = strategy.calculate_early_settlement(result, settlement_date, payments_made, **kwargs)

        log_calculation(
            self.logger, "debug", "Early settlement calculated",
            operation="calculate_early_settlement",
            calculation_method=strategy.method.value,
            figures={
                "payments_made": payments_made,
                "rebate_amount": str(settlement.rebate_amount),
                "total_settlement_amount": str(settlement.total_settlement_amount)
            }
        )
        return settlement

    def calculate_loan_restructure(self, result: LoanCalculationResult,
                                   options: LoanRestructureOptions,
                                   payments_made: int) -> LoanRestructureResult:
        """Re-amortize the outstanding balance under new terms"""
        restructure = calculate_loan_restructure(
            result, options, payments_made,
            lambda loan_input, policy: self.calculate_loan(loan_input),
            policy=self.policy
        )

        log_calculation(
            self.logger, "debug", "Loan restructure calculated",
            operation="calculate_loan_restructure",
            calculation_method=restructure.restructured_loan.calculation_method.value,
            figures={
                "outstanding_principal": str(restructure.outstanding_principal),
                "new_installment_amount": str(restructure.new_installment_amount),
                "total_savings": str(restructure.total_savings),
                "extension_months": restructure.extension_months
            }
        )
        return restructure

    def apply_actual_payments(self, result: LoanCalculationResult,
                              payments: Iterable[RecordedPayment]) -> LoanCalculationResult:
        """
        Schedule with its summary reflecting payments actually received

        The scheduled installments are left as calculated; only the summary's
        interest paid is replaced by the interest the host allocated.

        Raises:
            InvalidLoanInputError: If the recorded principal exceeds the loan principal
        """
        payments = list(payments)
        principal_paid = sum((p.principal_amount for p in payments), ZERO)
        interest_paid = sum((p.interest_amount for p in payments), ZERO)
        if principal_paid > result.principal_amount:
            raise InvalidLoanInputError("Recorded principal payments exceed the loan principal",
                                        field='payments', value=principal_paid)

        updated = replace(result, summary=replace(result.summary, total_interest_paid=interest_paid))

        log_calculation(
            self.logger, "debug", "Actual payments applied",
            operation="apply_actual_payments",
            calculation_method=result.calculation_method.value,
            figures={
                "payments": len(payments),
                "principal_paid": str(principal_paid),
                "interest_paid": str(interest_paid),
                "remaining_balance": str(result.principal_amount - principal_paid)
            }
        )
        return updated

    def available_methods(self) -> List[LoanCalculationMethod]:
        """Calculation methods with a registered strategy"""
        return list(STRATEGIES.keys())

    def effective_annual_rate(self, apr: Decimal, periods_per_year: int) -> Decimal:
        """Effective annual rate (percent) for a nominal APR compounded each period"""
        rate = _effective_annual_rate(as_decimal(apr, 'apr'), periods_per_year)
        return round_rate(rate, self.policy.rate_places)

    def calculate_affordability(self, monthly_income: Decimal, existing_monthly_debts: Decimal,
                                proposed_payment: Decimal,
                                max_debt_to_income_ratio: Decimal = Decimal('40')) -> AffordabilityResult:
        """
        Debt-to-income check for a proposed installment

        Args:
            monthly_income: Borrower's gross monthly income
            existing_monthly_debts: Current monthly debt payments
            proposed_payment: Installment of the new loan
            max_debt_to_income_ratio: Ceiling, in percent

        Returns:
            AffordabilityResult with ratios in percent
        """
        monthly_income = as_decimal(monthly_income, 'monthly_income')
        existing_monthly_debts = as_decimal(existing_monthly_debts, 'existing_monthly_debts')
        proposed_payment = as_decimal(proposed_payment, 'proposed_payment')
        max_debt_to_income_ratio = as_decimal(max_debt_to_income_ratio, 'max_debt_to_income_ratio')

        if monthly_income <= ZERO:
            raise InvalidLoanInputError("Monthly income must be greater than 0",
                                        field='monthly_income', value=monthly_income)
        if existing_monthly_debts < ZERO or proposed_payment < ZERO:
            raise InvalidLoanInputError("Debt payments cannot be negative")

        with localcontext(DECIMAL_CONTEXT):
            current_ratio = existing_monthly_debts / monthly_income * HUNDRED
            new_ratio = (existing_monthly_debts + proposed_payment) / monthly_income * HUNDRED
            capacity = monthly_income * max_debt_to_income_ratio / HUNDRED - existing_monthly_debts

            return AffordabilityResult(
                current_debt_to_income_ratio=round_rate(current_ratio, self.policy.rate_places),
                new_debt_to_income_ratio=round_rate(new_ratio, self.policy.rate_places),
                is_affordable=new_ratio <= max_debt_to_income_ratio,
                available_capacity=round_money(max(capacity, ZERO), self.policy.money_places)
            )
