"""
Test suite for penalty calculation

Tests each penalty type, day-count proration and input validation.
"""

import pytest
from decimal import Decimal
from datetime import date

from loan_engine.exceptions import InvalidLoanInputError
from loan_engine.models import PenaltyType, InterestBasis
from loan_engine.penalties import calculate_penalty


class TestPenaltyTypes:
    """Test penalty amounts per type"""

    def test_not_overdue_is_free(self):
        """Test zero days overdue never charges, whatever the type"""
        for penalty_type in PenaltyType:
            result = calculate_penalty(0, Decimal('1000'), Decimal('50'), penalty_type)
            assert result.penalty_amount == Decimal('0')
            assert result.penalty_days == 0

    def test_fixed_amount(self):
        result = calculate_penalty(3, Decimal('1000'), Decimal('50'), PenaltyType.FIXED_AMOUNT)
        assert result.penalty_amount == Decimal('50.00')

        # Charged once regardless of duration
        later = calculate_penalty(30, Decimal('1000'), Decimal('50'), PenaltyType.FIXED_AMOUNT)
        assert later.penalty_amount == Decimal('50.00')

    def test_percentage_of_overdue(self):
        """1,000 overdue at 36.5% a year for 10 days"""
        result = calculate_penalty(10, Decimal('1000'), Decimal('36.5'), PenaltyType.PERCENTAGE_OF_OVERDUE)
        assert result.penalty_amount == Decimal('10.00')

        result = calculate_penalty(10, Decimal('1000'), Decimal('36'), PenaltyType.PERCENTAGE_OF_OVERDUE,
                                   interest_basis=InterestBasis.ACTUAL_360)
        assert result.penalty_amount == Decimal('10.00')

    def test_percentage_of_overdue_monotonic(self):
        amounts = [
            calculate_penalty(days, Decimal('902.58'), Decimal('24'),
                              PenaltyType.PERCENTAGE_OF_OVERDUE).penalty_amount
            for days in range(0, 60)
        ]
        assert all(later >= earlier for earlier, later in zip(amounts, amounts[1:]))

    def test_percentage_of_installment(self):
        result = calculate_penalty(5, Decimal('1000'), Decimal('5'), PenaltyType.PERCENTAGE_OF_INSTALLMENT,
                                   installment_amount=Decimal('900'))
        assert result.penalty_amount == Decimal('45.00')

        # Falls back to the overdue amount
        result = calculate_penalty(5, Decimal('1000'), Decimal('5'), PenaltyType.PERCENTAGE_OF_INSTALLMENT)
        assert result.penalty_amount == Decimal('50.00')

    def test_compounding_daily(self):
        """1,000 overdue at 36.5% (0.1% a day) for 100 days"""
        compounded = calculate_penalty(100, Decimal('1000'), Decimal('36.5'), PenaltyType.COMPOUNDING_DAILY)
        assert compounded.penalty_amount == Decimal('105.12')

        simple = calculate_penalty(100, Decimal('1000'), Decimal('36.5'), PenaltyType.COMPOUNDING_DAILY,
                                   compound=False)
        assert simple.penalty_amount == Decimal('100.00')


class TestPenaltyInput:
    """Test validation and result metadata"""

    def test_negative_values_rejected(self):
        with pytest.raises(InvalidLoanInputError, match="Overdue days must be a non-negative"):
            calculate_penalty(-1, Decimal('1000'), Decimal('5'), PenaltyType.FIXED_AMOUNT)

        with pytest.raises(InvalidLoanInputError, match="Overdue amount cannot be negative"):
            calculate_penalty(1, Decimal('-1000'), Decimal('5'), PenaltyType.FIXED_AMOUNT)

        with pytest.raises(InvalidLoanInputError, match="Penalty rate cannot be negative"):
            calculate_penalty(1, Decimal('1000'), Decimal('-5'), PenaltyType.FIXED_AMOUNT)

        with pytest.raises(InvalidLoanInputError, match="Unsupported penalty_type"):
            calculate_penalty(1, Decimal('1000'), Decimal('5'), 'LATE_FEE')

    def test_plain_values_accepted(self):
        result = calculate_penalty(10, '1000', 36.5, 'PERCENTAGE_OF_OVERDUE')
        assert result.penalty_amount == Decimal('10.00')
        assert result.penalty_type == PenaltyType.PERCENTAGE_OF_OVERDUE
        assert result.penalty_rate == Decimal('36.5')

    def test_calculation_date(self):
        result = calculate_penalty(1, Decimal('100'), Decimal('5'), PenaltyType.FIXED_AMOUNT)
        assert result.calculation_date == date.today()

        result = calculate_penalty(1, Decimal('100'), Decimal('5'), PenaltyType.FIXED_AMOUNT,
                                   calculation_date=date(2024, 3, 1))
        assert result.calculation_date == date(2024, 3, 1)

    def test_pure(self):
        """Test identical arguments give identical results"""
        args = (12, Decimal('902.58'), Decimal('24'), PenaltyType.COMPOUNDING_DAILY)
        kwargs = dict(calculation_date=date(2024, 3, 1))
        assert calculate_penalty(*args, **kwargs) == calculate_penalty(*args, **kwargs)
