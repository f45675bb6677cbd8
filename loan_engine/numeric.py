"""
Numeric Utilities Module

Periodic rate conversion, repayment period date arithmetic, Decimal rounding,
compound interest and annuity formulas. NEVER uses float for monetary values.
"""

from decimal import Decimal, Context, ROUND_HALF_UP, ROUND_CEILING, localcontext, InvalidOperation
from datetime import date, timedelta
from typing import Iterable, List, Optional, Tuple
import calendar
import re

from .models import RepaymentFrequency, InterestBasis
from .exceptions import UnsolvableAnnuityError


# Fixed precision for every calculation; entry points evaluate under
# localcontext(DECIMAL_CONTEXT) instead of touching the thread's context.
DECIMAL_CONTEXT = Context(prec=28, rounding=ROUND_HALF_UP)

ZERO = Decimal('0')
ONE = Decimal('1')
HUNDRED = Decimal('100')


def to_decimal(value) -> Decimal:
    """
    Convert a number or numeric string to Decimal

    Args:
        value: Decimal, int, float or string (thousands separators allowed)

    Returns:
        Decimal value

    Raises:
        ValueError: If the value cannot be converted
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or value is None:
        raise ValueError(f"Cannot convert {value!r} to Decimal")
    if isinstance(value, str):
        value = re.sub(r'[\s,_]', '', value)
    try:
        result = Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Cannot convert {value!r} to Decimal") from e
    if not result.is_finite():
        raise ValueError(f"Cannot convert {value!r} to Decimal")
    return result


def round_money(value: Decimal, places: int = 2) -> Decimal:
    """Round a monetary amount half-up to the given number of places"""
    return value.quantize(Decimal('0.1') ** places, rounding=ROUND_HALF_UP)


def round_rate(value: Decimal, places: int = 4) -> Decimal:
    """Round a percentage rate half-up to the given number of places"""
    return value.quantize(Decimal('0.1') ** places, rounding=ROUND_HALF_UP)


def days_in_year(basis: InterestBasis) -> int:
    """Day-count denominator for an interest basis"""
    if basis == InterestBasis.ACTUAL_365:
        return 365
    elif basis in (InterestBasis.ACTUAL_360, InterestBasis.THIRTY_360):
        return 360
    else:
        raise ValueError(f"Unsupported interest basis: {basis}")


def periods_per_year(frequency: RepaymentFrequency,
                     basis: InterestBasis = InterestBasis.ACTUAL_365) -> int:
    """Number of repayment periods in a year"""
    if frequency == RepaymentFrequency.DAILY:
        return days_in_year(basis)
    return {
        RepaymentFrequency.WEEKLY: 52,
        RepaymentFrequency.BIWEEKLY: 26,
        RepaymentFrequency.MONTHLY: 12,
        RepaymentFrequency.QUARTERLY: 4,
        RepaymentFrequency.SEMI_ANNUAL: 2,
        RepaymentFrequency.ANNUAL: 1
    }[frequency]


def periodic_rate(annual_rate_percent: Decimal, frequency: RepaymentFrequency,
                  basis: InterestBasis = InterestBasis.ACTUAL_365) -> Decimal:
    """
    Convert an annual percentage rate to the rate for one repayment period

    Args:
        annual_rate_percent: Annual rate as a percentage (12.5 for 12.5%)
        frequency: Repayment frequency
        basis: Interest basis, only relevant for daily repayment

    Returns:
        Periodic rate as a fraction (0.0125 for 1.25%)
    """
    return annual_rate_percent / HUNDRED / Decimal(periods_per_year(frequency, basis))


def number_of_installments(term_months: int, frequency: RepaymentFrequency,
                           basis: InterestBasis = InterestBasis.ACTUAL_365) -> int:
    """
    Installment count for a term, rounded UP to whole periods

    12 months weekly is 52 installments, 5 months bi-weekly is ceil(10.83) = 11.
    """
    periods = Decimal(term_months) * Decimal(periods_per_year(frequency, basis)) / Decimal('12')
    return int(periods.to_integral_value(rounding=ROUND_CEILING))


def term_covers_one_period(term_months: int, frequency: RepaymentFrequency,
                           basis: InterestBasis = InterestBasis.ACTUAL_365) -> bool:
    """Check that a term is at least one full repayment period long"""
    return Decimal(term_months) * Decimal(periods_per_year(frequency, basis)) >= Decimal('12')


def add_months(start_date: date, months: int) -> date:
    """Add months to a date, handling month-end edge cases"""
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def add_period(anchor: date, periods: int, frequency: RepaymentFrequency) -> date:
    """
    Date that lies a number of repayment periods after an anchor date

    Monthly-based frequencies are always computed from the anchor so a
    31st-of-month anchor lands on each month's last day without drifting.
    """
    if frequency == RepaymentFrequency.DAILY:
        return anchor + timedelta(days=periods)
    elif frequency == RepaymentFrequency.WEEKLY:
        return anchor + timedelta(days=7 * periods)
    elif frequency == RepaymentFrequency.BIWEEKLY:
        return anchor + timedelta(days=14 * periods)
    elif frequency == RepaymentFrequency.MONTHLY:
        return add_months(anchor, periods)
    elif frequency == RepaymentFrequency.QUARTERLY:
        return add_months(anchor, 3 * periods)
    elif frequency == RepaymentFrequency.SEMI_ANNUAL:
        return add_months(anchor, 6 * periods)
    elif frequency == RepaymentFrequency.ANNUAL:
        return add_months(anchor, 12 * periods)
    else:
        raise ValueError(f"Unsupported repayment frequency: {frequency}")


def days_between(start: date, end: date) -> int:
    """Actual calendar days from start to end (negative if end is earlier)"""
    return (end - start).days


def days_360(start: date, end: date) -> int:
    """30/360 day count between two dates"""
    d1 = min(start.day, 30)
    d2 = end.day
    if d1 == 30 and d2 == 31:
        d2 = 30
    return (end.year - start.year) * 360 + (end.month - start.month) * 30 + (d2 - d1)


def day_count(start: date, end: date, basis: InterestBasis) -> int:
    """Days between two dates under an interest basis"""
    if basis == InterestBasis.THIRTY_360:
        return days_360(start, end)
    return days_between(start, end)


def compound_amount(principal: Decimal, rate: Decimal, periods: int) -> Decimal:
    """Future value of a principal compounded each period: P * (1 + r)^n"""
    return principal * (ONE + rate) ** periods


def annuity_payment(principal: Decimal, rate: Decimal, periods: int) -> Decimal:
    """
    Level payment that fully amortizes a principal

    payment = P * r * (1 + r)^n / ((1 + r)^n - 1), or P / n at zero rate.

    Raises:
        UnsolvableAnnuityError: If periods is not positive or the payment
            comes out non-positive
    """
    if periods <= 0:
        raise UnsolvableAnnuityError(rate, periods)

    if rate == ZERO:
        payment = principal / Decimal(periods)
    else:
        factor = (ONE + rate) ** periods
        if factor == ONE:
            raise UnsolvableAnnuityError(rate, periods)
        payment = principal * (rate * factor) / (factor - ONE)

    if payment <= ZERO:
        raise UnsolvableAnnuityError(rate, periods, payment)
    return payment


def present_value_of_annuity(payment: Decimal, rate: Decimal, periods: int) -> Decimal:
    """Present value of n level payments discounted at the periodic rate"""
    if rate == ZERO:
        return payment * Decimal(periods)
    return payment * (ONE - (ONE + rate) ** -periods) / rate


def effective_annual_rate(nominal_percent: Decimal, compounding_periods: int) -> Decimal:
    """
    Effective annual rate (percent) from a nominal annual rate (percent)

    EAR = ((1 + r/m)^m - 1) * 100
    """
    if compounding_periods <= 0:
        raise ValueError("Compounding periods must be positive")
    with localcontext(DECIMAL_CONTEXT):
        rate = nominal_percent / HUNDRED / Decimal(compounding_periods)
        return ((ONE + rate) ** compounding_periods - ONE) * HUNDRED


def periodic_irr(cash_flows: Iterable[Decimal], max_iter: int = 100,
                 tolerance: Decimal = Decimal('1E-12')) -> Optional[Decimal]:
    """
    Internal rate of return per period of evenly spaced cash flows

    Uses Newton-Raphson with a bisection fallback.

    Args:
        cash_flows: Amounts at periods 0..n
        max_iter: Newton iterations before falling back to bisection
        tolerance: Convergence threshold on the rate

    Returns:
        Periodic IRR as a fraction, or None if undefined (no sign change)
        or not convergent
    """
    amounts: List[Decimal] = [to_decimal(a) for a in cash_flows]
    if len(amounts) < 2:
        return None
    if not (any(a > ZERO for a in amounts) and any(a < ZERO for a in amounts)):
        return None

    def npv_and_slope(rate: Decimal) -> Tuple[Decimal, Decimal]:
        # Horner's scheme in the discount factor v = 1 / (1 + rate)
        v = ONE / (ONE + rate)
        value = derivative = ZERO
        for a in reversed(amounts):
            derivative = derivative * v + value
            value = value * v + a
        # d/d(rate) of sum(a_t * v^t) is P'(v) * -v^2
        return value, -derivative * v * v

    def npv(rate: Decimal) -> Decimal:
        return npv_and_slope(rate)[0]

    # Newton-Raphson
    r = Decimal('0.01')
    for _ in range(max_iter):
        value, slope = npv_and_slope(r)
        if slope == ZERO:
            break
        new_r = r - value / slope
        if new_r <= Decimal('-1'):
            break
        if abs(new_r - r) < tolerance:
            return new_r
        r = new_r

    # Bisection fallback
    lo, hi = Decimal('-0.99'), ONE
    for _ in range(8):
        f_lo, f_hi = npv(lo), npv(hi)
        if f_lo == ZERO:
            return lo
        if f_hi == ZERO:
            return hi
        if (f_lo < ZERO) != (f_hi < ZERO):
            break
        hi *= 2
    else:
        return None

    lo_negative = npv(lo) < ZERO
    for _ in range(200):
        mid = (lo + hi) / 2
        value = npv(mid)
        if abs(hi - lo) < tolerance or value == ZERO:
            return mid
        if (value < ZERO) == lo_negative:
            lo = mid
        else:
            hi = mid
    return None
