#!/usr/bin/env python3
"""
Example: Quoting a loan with the calculation engine

Builds a schedule, compares calculation methods, prices an early payoff and
a restructure, and checks affordability for the borrower.
"""

import os
import sys
from decimal import Decimal
from datetime import date

# Add the loan engine package to the path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from loan_engine import (
    LoanCalculator, LoanCalculationInput, LoanCalculationMethod, RepaymentFrequency,
    PenaltyType, LoanRestructureOptions
)
from loan_engine.config import get_config
from loan_engine.logging_config import setup_logging


def main():
    print("Loan Calculation Engine - Quote Example")
    print("=" * 60)

    # 1. Logging
    config = get_config()
    setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)
    calculator = LoanCalculator()

    # 2. Schedule
    print("\n1. Reducing balance schedule")
    loan_input = LoanCalculationInput(
        principal_amount=Decimal('10000'),
        annual_interest_rate=Decimal('15'),
        term_in_months=12,
        repayment_frequency=RepaymentFrequency.MONTHLY,
        calculation_method=LoanCalculationMethod.REDUCING_BALANCE,
        processing_fee_percentage=Decimal('1'),
        penalty_rate=Decimal('24'),
        penalty_type=PenaltyType.PERCENTAGE_OF_OVERDUE,
        disbursement_date=date(2024, 1, 15)
    )
    result = calculator.calculate_loan(loan_input)
    print(f"   Installment: {result.installment_amount}")
    print(f"   Total interest: {result.total_interest}")
    print(f"   APR: {result.apr}%  Effective rate: {result.effective_interest_rate}%")
    for installment in result.repayment_schedule[:3]:
        print(f"   #{installment.installment_number} {installment.due_date} "
              f"principal {installment.principal_amount} interest {installment.interest_amount} "
              f"balance {installment.remaining_balance}")

    # 3. Method comparison
    print("\n2. Method comparison")
    for compared in calculator.compare_loan_methods(loan_input, calculator.available_methods()):
        print(f"   {compared.calculation_method.value:<20} installment {compared.installment_amount:>10} "
              f"interest {compared.total_interest:>10}")

    # 4. Early settlement after five payments
    print("\n3. Early settlement")
    settlement = calculator.calculate_early_settlement(result, date(2024, 6, 30), 5)
    print(f"   Settle for {settlement.total_settlement_amount} "
          f"(rebate {settlement.rebate_amount}, saves {settlement.savings_from_early_settlement})")

    # 5. Restructure with a three month moratorium
    print("\n4. Restructure")
    restructure = calculator.calculate_loan_restructure(
        result, LoanRestructureOptions(new_term_in_months=12, moratorium_months=3), 6
    )
    print(f"   New installment {restructure.new_installment_amount}, "
          f"capitalized interest {restructure.capitalized_interest}, "
          f"extension {restructure.extension_months} months")

    # 6. Affordability
    print("\n5. Affordability")
    affordability = calculator.calculate_affordability(
        Decimal('5000'), Decimal('1500'), result.installment_amount
    )
    print(f"   Debt-to-income {affordability.new_debt_to_income_ratio}% "
          f"affordable: {affordability.is_affordable}")


if __name__ == "__main__":
    main()
