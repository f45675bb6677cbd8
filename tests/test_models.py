"""
Test suite for loan calculation models

Tests input coercion and validation, installment consistency checks and
restructure options.
"""

import pytest
from dataclasses import FrozenInstanceError
from decimal import Decimal
from datetime import date, datetime

from loan_engine.exceptions import InvalidLoanInputError, LoanCalculationError
from loan_engine.models import (
    LoanCalculationInput, LoanCalculationMethod, RepaymentFrequency, InterestBasis,
    PenaltyType, LoanInstallment, LoanRestructureOptions, as_decimal, as_enum
)


def make_input(**overrides):
    values = dict(
        principal_amount=Decimal('10000'),
        annual_interest_rate=Decimal('15'),
        term_in_months=12,
        repayment_frequency=RepaymentFrequency.MONTHLY,
        calculation_method=LoanCalculationMethod.REDUCING_BALANCE,
        disbursement_date=date(2024, 1, 15)
    )
    values.update(overrides)
    return LoanCalculationInput(**values)


class TestCoercion:
    """Test conversion helpers"""

    def test_as_decimal(self):
        assert as_decimal(5, 'amount') == Decimal('5')
        assert as_decimal('12.50', 'amount') == Decimal('12.50')
        assert as_decimal(0.1, 'amount') == Decimal('0.1')

        with pytest.raises(InvalidLoanInputError, match="amount must be numeric"):
            as_decimal('twelve', 'amount')
        with pytest.raises(InvalidLoanInputError, match="must be finite"):
            as_decimal('Infinity', 'amount')

    def test_as_enum(self):
        assert as_enum(PenaltyType, 'FIXED_AMOUNT', 'penalty_type') == PenaltyType.FIXED_AMOUNT
        assert as_enum(PenaltyType, PenaltyType.FIXED_AMOUNT, 'penalty_type') == PenaltyType.FIXED_AMOUNT

        with pytest.raises(InvalidLoanInputError, match="Unsupported penalty_type"):
            as_enum(PenaltyType, 'LATE_FEE', 'penalty_type')


class TestLoanCalculationInput:
    """Test loan input construction"""

    def test_coerces_plain_values(self):
        """Test that ints, strings and enum values are converted"""
        loan_input = LoanCalculationInput(
            principal_amount=10000,
            annual_interest_rate='15.5',
            term_in_months=12,
            repayment_frequency='WEEKLY',
            calculation_method='FLAT_RATE',
            interest_basis='ACTUAL_360',
            penalty_rate=2,
            penalty_type='FIXED_AMOUNT',
            disbursement_date=date(2024, 1, 15)
        )

        assert loan_input.principal_amount == Decimal('10000')
        assert isinstance(loan_input.principal_amount, Decimal)
        assert loan_input.annual_interest_rate == Decimal('15.5')
        assert loan_input.repayment_frequency == RepaymentFrequency.WEEKLY
        assert loan_input.calculation_method == LoanCalculationMethod.FLAT_RATE
        assert loan_input.interest_basis == InterestBasis.ACTUAL_360
        assert loan_input.penalty_rate == Decimal('2')
        assert loan_input.penalty_type == PenaltyType.FIXED_AMOUNT

    def test_disbursement_date_defaults(self):
        loan_input = make_input(disbursement_date=None)
        assert loan_input.disbursement_date == date.today()

        loan_input = make_input(disbursement_date=datetime(2024, 3, 1, 12, 30))
        assert loan_input.disbursement_date == date(2024, 3, 1)

    def test_invalid_values(self):
        """Test that basic validation rejects bad input"""
        with pytest.raises(InvalidLoanInputError, match="Principal amount must be greater than 0"):
            make_input(principal_amount=Decimal('0'))

        with pytest.raises(InvalidLoanInputError, match="Interest rate cannot be negative"):
            make_input(annual_interest_rate=Decimal('-1'))

        with pytest.raises(InvalidLoanInputError, match="Loan term must be a whole number"):
            make_input(term_in_months=0)

        with pytest.raises(InvalidLoanInputError, match="Loan term must be a whole number"):
            make_input(term_in_months=1.5)

        with pytest.raises(InvalidLoanInputError, match="Grace period cannot be negative"):
            make_input(grace_period_days=-1)

        with pytest.raises(InvalidLoanInputError, match="cannot be negative"):
            make_input(processing_fee_amount=Decimal('-5'))

        with pytest.raises(InvalidLoanInputError, match="Unsupported repayment_frequency"):
            make_input(repayment_frequency='FORTNIGHTLY')

    def test_errors_are_value_errors(self):
        """Test the error taxonomy is catchable as ValueError"""
        with pytest.raises(ValueError):
            make_input(principal_amount=Decimal('-100'))

        try:
            make_input(principal_amount=Decimal('-100'))
        except LoanCalculationError as e:
            assert e.details['field'] == 'principal_amount'
            assert e.details['value'] == '-100'

    def test_total_fees(self):
        loan_input = make_input(
            processing_fee_amount=Decimal('100'),
            processing_fee_percentage=Decimal('1'),
            insurance_fee_percentage=Decimal('0.5')
        )
        assert loan_input.processing_fee == Decimal('200')
        assert loan_input.insurance_fee == Decimal('50')
        assert loan_input.total_fees == Decimal('250')

    def test_immutable(self):
        loan_input = make_input()
        with pytest.raises(FrozenInstanceError):
            loan_input.principal_amount = Decimal('1')

    def test_with_changes_revalidates(self):
        loan_input = make_input()
        changed = loan_input.with_changes(term_in_months=24)

        assert changed.term_in_months == 24
        assert loan_input.term_in_months == 12

        with pytest.raises(InvalidLoanInputError):
            loan_input.with_changes(principal_amount=Decimal('0'))

    def test_custom_formula_ignored_in_equality(self):
        first = make_input(custom_formula=lambda ctx: [])
        second = make_input(custom_formula=lambda ctx: [])
        assert first == second


class TestLoanInstallment:
    """Test installment consistency"""

    def test_valid_installment(self):
        installment = LoanInstallment(
            installment_number=1,
            due_date=date(2024, 2, 15),
            principal_amount=Decimal('777.58'),
            interest_amount=Decimal('125.00'),
            fees_amount=Decimal('0'),
            total_amount=Decimal('902.58'),
            remaining_balance=Decimal('9222.42'),
            cumulative_principal=Decimal('777.58'),
            cumulative_interest=Decimal('125.00')
        )
        assert installment.to_dict()['total_amount'] == '902.58'
        assert installment.to_dict()['due_date'] == '2024-02-15'

    def test_total_mismatch_rejected(self):
        with pytest.raises(ValueError, match="does not equal"):
            LoanInstallment(
                installment_number=1,
                due_date=date(2024, 2, 15),
                principal_amount=Decimal('777.58'),
                interest_amount=Decimal('125.00'),
                fees_amount=Decimal('0'),
                total_amount=Decimal('900.00'),
                remaining_balance=Decimal('9222.42'),
                cumulative_principal=Decimal('777.58'),
                cumulative_interest=Decimal('125.00')
            )


class TestLoanRestructureOptions:
    """Test restructure option validation"""

    def test_defaults_and_coercion(self):
        options = LoanRestructureOptions(
            new_interest_rate='10',
            new_repayment_frequency='QUARTERLY',
            additional_amount=500
        )
        assert options.new_interest_rate == Decimal('10')
        assert options.new_repayment_frequency == RepaymentFrequency.QUARTERLY
        assert options.additional_amount == Decimal('500')
        assert options.new_term_in_months is None
        assert options.moratorium_months == 0

    def test_invalid_options(self):
        with pytest.raises(InvalidLoanInputError, match="Moratorium cannot be negative"):
            LoanRestructureOptions(moratorium_months=-1)

        with pytest.raises(InvalidLoanInputError, match="additional_amount cannot be negative"):
            LoanRestructureOptions(additional_amount=Decimal('-1'))

        with pytest.raises(InvalidLoanInputError, match="Unsupported new_calculation_method"):
            LoanRestructureOptions(new_calculation_method='MYSTERY')
