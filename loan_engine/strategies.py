"""
Calculation Strategies Module

One strategy per calculation method, each a set of three plain functions
(schedule, penalty, early settlement) registered in a closed dispatch table.
All methods share a single schedule builder; a method only decides the level
installment and how each period splits into principal and interest.

Rounding policy: every component is rounded to the currency's minor unit as
it is generated and the rounding residue is absorbed into the final
installment's principal, so the closing balance is exactly zero.
"""

from decimal import Decimal, ROUND_DOWN, localcontext
from datetime import date, timedelta
from dataclasses import dataclass
from functools import partial
from typing import Callable, Dict, List, Optional, Tuple

from .config import CalculationPolicy, DEFAULT_POLICY
from .exceptions import (
    InvalidLoanInputError, UnsupportedCalculationMethodError, UnsolvableAnnuityError,
    CustomFormulaError
)
from .models import (
    LoanCalculationMethod, LoanCalculationInput, LoanCalculationResult, LoanInstallment,
    LoanSummary, CustomFormulaContext, PenaltyCalculationResult, EarlySettlementResult,
    as_decimal
)
from .numeric import (
    DECIMAL_CONTEXT, ZERO, ONE, HUNDRED, periodic_rate, periods_per_year,
    number_of_installments, term_covers_one_period, add_period, annuity_payment,
    compound_amount, periodic_irr, round_money, round_rate
)
from .penalties import calculate_penalty
from .settlement import calculate_early_settlement, calculate_simple_interest_settlement


# row(installment_number, opening_balance) -> (principal, interest)
RowFunction = Callable[[int, Decimal], Tuple[Decimal, Decimal]]


@dataclass(frozen=True)
class SchedulePlan:
    """How a method splits the loan into installments"""
    installment_amount: Decimal
    row: RowFunction
    fees: Tuple[Decimal, ...]


@dataclass(frozen=True)
class ScheduleContext:
    """Derived figures shared by every method for one input"""
    loan_input: LoanCalculationInput
    policy: CalculationPolicy
    periodic_rate: Decimal
    periods_per_year: int
    number_of_installments: int
    due_dates: Tuple[date, ...]
    total_fees: Decimal

    def money(self, value: Decimal) -> Decimal:
        return round_money(value, self.policy.money_places)


@dataclass(frozen=True)
class CalculationStrategy:
    """The three operations every calculation method provides"""
    method: LoanCalculationMethod
    calculate_loan: Callable[..., LoanCalculationResult]
    calculate_penalty: Callable[..., PenaltyCalculationResult]
    calculate_early_settlement: Callable[..., EarlySettlementResult]


def validate_input(loan_input: LoanCalculationInput) -> None:
    """
    Method-specific validation, run before any computation

    Raises:
        InvalidLoanInputError: If the input cannot be calculated
    """
    if not term_covers_one_period(loan_input.term_in_months, loan_input.repayment_frequency,
                                  loan_input.interest_basis):
        raise InvalidLoanInputError(
            f"Term of {loan_input.term_in_months} months is shorter than one "
            f"{loan_input.repayment_frequency.value} repayment period",
            field='repayment_frequency', value=loan_input.repayment_frequency.value
        )

    method = loan_input.calculation_method
    if method == LoanCalculationMethod.BALLOON_PAYMENT:
        balloon = loan_input.balloon_amount
        if balloon is None or balloon <= ZERO:
            raise InvalidLoanInputError("Balloon amount is required for balloon payment loans",
                                        field='balloon_amount', value=balloon)
        if balloon > loan_input.principal_amount:
            raise InvalidLoanInputError("Balloon amount cannot exceed the principal amount",
                                        field='balloon_amount', value=balloon)

    if method == LoanCalculationMethod.CUSTOM_FORMULA:
        formula = loan_input.custom_formula
        if formula is None:
            raise InvalidLoanInputError("Custom formula is required for custom calculation method",
                                        field='custom_formula')
        if isinstance(formula, str):
            raise InvalidLoanInputError("Custom formula must be a callable; formula text is not supported",
                                        field='custom_formula', value=formula)
        if not callable(formula):
            raise InvalidLoanInputError("Custom formula must be a callable", field='custom_formula')


def _schedule_context(loan_input: LoanCalculationInput, policy: CalculationPolicy) -> ScheduleContext:
    frequency = loan_input.repayment_frequency
    basis = loan_input.interest_basis
    n = number_of_installments(loan_input.term_in_months, frequency, basis)

    # First due date is one period after disbursement plus any grace period
    anchor = loan_input.disbursement_date + timedelta(days=loan_input.grace_period_days)
    due_dates = tuple(add_period(anchor, i, frequency) for i in range(1, n + 1))

    return ScheduleContext(
        loan_input=loan_input,
        policy=policy,
        periodic_rate=periodic_rate(loan_input.annual_interest_rate, frequency, basis),
        periods_per_year=periods_per_year(frequency, basis),
        number_of_installments=n,
        due_dates=due_dates,
        total_fees=round_money(loan_input.total_fees, policy.money_places)
    )


def _split_evenly(ctx: ScheduleContext, total: Decimal) -> Tuple[Decimal, ...]:
    """Equal shares rounded down, the non-negative residue on the last share"""
    n = ctx.number_of_installments
    share = (total / Decimal(n)).quantize(ctx.policy.money_quantum, rounding=ROUND_DOWN)
    return (share,) * (n - 1) + (total - share * (n - 1),)


def _level_amount(ctx: ScheduleContext, value: Decimal) -> Decimal:
    """
    Round a per-installment amount that must repay something every period

    Raises:
        UnsolvableAnnuityError: If the amount rounds to zero in the minor unit
    """
    amount = ctx.money(value)
    if amount <= ZERO:
        raise UnsolvableAnnuityError(ctx.periodic_rate, ctx.number_of_installments, amount)
    return amount


def _principal_shares(ctx: ScheduleContext) -> Tuple[Decimal, ...]:
    shares = _split_evenly(ctx, ctx.loan_input.principal_amount)
    _level_amount(ctx, shares[0])
    return shares


def _upfront_fees(ctx: ScheduleContext) -> Tuple[Decimal, ...]:
    """All fees charged with the first installment"""
    return (ctx.total_fees,) + (ZERO,) * (ctx.number_of_installments - 1)


def _even_rows(principal_shares: Tuple[Decimal, ...], interest_shares: Tuple[Decimal, ...]) -> RowFunction:
    def row(number: int, balance: Decimal) -> Tuple[Decimal, Decimal]:
        return principal_shares[number - 1], interest_shares[number - 1]
    return row


def _level_payment_rows(ctx: ScheduleContext, payment: Decimal) -> RowFunction:
    def row(number: int, balance: Decimal) -> Tuple[Decimal, Decimal]:
        interest = ctx.money(balance * ctx.periodic_rate)
        return payment - interest, interest
    return row


def _flat_interest(loan_input: LoanCalculationInput) -> Decimal:
    """Principal x rate x term in years"""
    return (loan_input.principal_amount * loan_input.annual_interest_rate / HUNDRED
            * Decimal(loan_input.term_in_months) / Decimal('12'))


def _flat_rate_plan(ctx: ScheduleContext) -> SchedulePlan:
    principal = ctx.loan_input.principal_amount
    total_interest = ctx.money(_flat_interest(ctx.loan_input))
    n = Decimal(ctx.number_of_installments)
    return SchedulePlan(
        installment_amount=ctx.money((principal + total_interest) / n),
        row=_even_rows(_principal_shares(ctx), _split_evenly(ctx, total_interest)),
        fees=_upfront_fees(ctx)
    )


def _simple_interest_plan(ctx: ScheduleContext) -> SchedulePlan:
    total_interest = ctx.money(_flat_interest(ctx.loan_input))
    principal_shares = _principal_shares(ctx)
    interest_shares = _split_evenly(ctx, total_interest)
    return SchedulePlan(
        installment_amount=principal_shares[0] + interest_shares[0],
        row=_even_rows(principal_shares, interest_shares),
        fees=_upfront_fees(ctx)
    )


def _compound_interest_plan(ctx: ScheduleContext) -> SchedulePlan:
    principal = ctx.loan_input.principal_amount
    total_repayment = compound_amount(principal, ctx.periodic_rate, ctx.number_of_installments)
    total_interest = ctx.money(total_repayment - principal)
    n = Decimal(ctx.number_of_installments)
    return SchedulePlan(
        installment_amount=ctx.money((principal + total_interest) / n),
        row=_even_rows(_principal_shares(ctx), _split_evenly(ctx, total_interest)),
        fees=_upfront_fees(ctx)
    )


def _reducing_balance_plan(ctx: ScheduleContext) -> SchedulePlan:
    emi = _level_amount(ctx, annuity_payment(ctx.loan_input.principal_amount, ctx.periodic_rate,
                                             ctx.number_of_installments))
    return SchedulePlan(
        installment_amount=emi,
        row=_level_payment_rows(ctx, emi),
        fees=_upfront_fees(ctx)
    )


def _annuity_plan(ctx: ScheduleContext) -> SchedulePlan:
    payment = _level_amount(ctx, annuity_payment(ctx.loan_input.principal_amount, ctx.periodic_rate,
                                                 ctx.number_of_installments))
    # Fees are folded into the level installment instead of charged upfront
    fees = _split_evenly(ctx, ctx.total_fees)
    return SchedulePlan(
        installment_amount=payment + fees[0],
        row=_level_payment_rows(ctx, payment),
        fees=fees
    )


def _balloon_payment_plan(ctx: ScheduleContext) -> SchedulePlan:
    principal = ctx.loan_input.principal_amount
    balloon = ctx.loan_input.balloon_amount
    amortized = principal - balloon

    # Amortize P - B and pay interest on B; the balance runs down to B
    payment = balloon * ctx.periodic_rate
    if amortized > ZERO:
        payment += annuity_payment(amortized, ctx.periodic_rate, ctx.number_of_installments)
    payment = _level_amount(ctx, payment)

    return SchedulePlan(
        installment_amount=payment,
        row=_level_payment_rows(ctx, payment),
        fees=_upfront_fees(ctx)
    )


def _custom_formula_plan(ctx: ScheduleContext) -> SchedulePlan:
    loan_input = ctx.loan_input
    formula_context = CustomFormulaContext(
        loan_input=loan_input,
        periodic_rate=ctx.periodic_rate,
        number_of_installments=ctx.number_of_installments,
        due_dates=ctx.due_dates
    )

    try:
        raw_rows = list(loan_input.custom_formula(formula_context))
    except CustomFormulaError:
        raise
    except Exception as e:
        raise CustomFormulaError(f"Custom formula failed: {e}") from e

    if len(raw_rows) != ctx.number_of_installments:
        raise CustomFormulaError(
            f"Custom formula returned {len(raw_rows)} installments, "
            f"expected {ctx.number_of_installments}"
        )

    rows: List[Tuple[Decimal, Decimal]] = []
    allocated = ZERO
    for number, raw in enumerate(raw_rows, start=1):
        try:
            principal_part, interest_part = raw
            principal_part = ctx.money(as_decimal(principal_part, 'principal'))
            interest_part = ctx.money(as_decimal(interest_part, 'interest'))
        except (TypeError, ValueError) as e:
            raise CustomFormulaError(f"Custom formula returned an invalid installment: {raw!r}",
                                     installment_number=number) from e

        if principal_part < ZERO or interest_part < ZERO:
            raise CustomFormulaError("Custom formula returned a negative component",
                                     installment_number=number)
        if number < ctx.number_of_installments:
            allocated += principal_part
            if allocated > loan_input.principal_amount:
                raise CustomFormulaError("Custom formula repays more than the principal",
                                         installment_number=number)
        rows.append((principal_part, interest_part))

    principal_total = sum((p for p, _ in rows), ZERO)
    # Only rounding residue (one minor unit per installment) may land on the last row
    tolerance = ctx.policy.money_quantum * Decimal(ctx.number_of_installments)
    if abs(principal_total - loan_input.principal_amount) > tolerance:
        raise CustomFormulaError(
            f"Custom formula repays {principal_total} of a {loan_input.principal_amount} principal"
        )

    interest_total = sum((i for _, i in rows), ZERO)
    return SchedulePlan(
        installment_amount=ctx.money((principal_total + interest_total) / Decimal(len(rows))),
        row=lambda number, balance: rows[number - 1],
        fees=_upfront_fees(ctx)
    )


def _annual_rate_from_irr(flows: List[Decimal], periods: int, effective: bool) -> Decimal:
    rate = periodic_irr(flows)
    if rate is None:
        return ZERO
    if effective:
        return ((ONE + rate) ** periods - ONE) * HUNDRED
    return rate * Decimal(periods) * HUNDRED


def _build_result(ctx: ScheduleContext, plan: SchedulePlan) -> LoanCalculationResult:
    """Run the plan period by period and assemble the result"""
    loan_input = ctx.loan_input
    n = ctx.number_of_installments

    schedule: List[LoanInstallment] = []
    balance = loan_input.principal_amount
    cumulative_principal = ZERO
    cumulative_interest = ZERO

    for number in range(1, n + 1):
        principal_part, interest_part = plan.row(number, balance)
        principal_part = ctx.money(principal_part)
        interest_part = ctx.money(interest_part)

        if number == n:
            # Rounding residue lands on the final principal
            principal_part = balance
        else:
            principal_part = min(max(principal_part, ZERO), balance)

        fees_part = plan.fees[number - 1]
        balance -= principal_part
        cumulative_principal += principal_part
        cumulative_interest += interest_part

        schedule.append(LoanInstallment(
            installment_number=number,
            due_date=ctx.due_dates[number - 1],
            principal_amount=principal_part,
            interest_amount=interest_part,
            fees_amount=fees_part,
            total_amount=principal_part + interest_part + fees_part,
            remaining_balance=balance,
            cumulative_principal=cumulative_principal,
            cumulative_interest=cumulative_interest
        ))

    total_interest = cumulative_interest
    total_fees = sum((i.fees_amount for i in schedule), ZERO)
    total_amount = loan_input.principal_amount + total_interest + total_fees

    # APR folds fees into the payment stream; effective rate excludes them
    apr_flows = [-loan_input.principal_amount] + [i.total_amount for i in schedule]
    rate_flows = [-loan_input.principal_amount] + [i.principal_amount + i.interest_amount for i in schedule]
    apr = _annual_rate_from_irr(apr_flows, ctx.periods_per_year, effective=False)
    effective_rate = _annual_rate_from_irr(rate_flows, ctx.periods_per_year, effective=True)

    summary = LoanSummary(
        number_of_installments=n,
        first_payment_date=schedule[0].due_date,
        last_payment_date=schedule[-1].due_date,
        total_interest_paid=total_interest,
        total_fees_paid=total_fees,
        average_payment=ctx.money(sum((i.total_amount for i in schedule), ZERO) / Decimal(n))
    )

    return LoanCalculationResult(
        principal_amount=loan_input.principal_amount,
        total_interest=total_interest,
        total_fees=total_fees,
        total_amount=total_amount,
        installment_amount=plan.installment_amount,
        effective_interest_rate=round_rate(effective_rate, ctx.policy.rate_places),
        apr=round_rate(apr, ctx.policy.rate_places),
        repayment_schedule=tuple(schedule),
        calculation_method=loan_input.calculation_method,
        summary=summary,
        disbursement_date=loan_input.disbursement_date,
        periodic_rate=ctx.periodic_rate,
        loan_input=loan_input
    )


def _calculate_with(plan_builder: Callable[[ScheduleContext], SchedulePlan],
                    loan_input: LoanCalculationInput,
                    policy: Optional[CalculationPolicy] = None) -> LoanCalculationResult:
    validate_input(loan_input)
    with localcontext(DECIMAL_CONTEXT):
        ctx = _schedule_context(loan_input, policy or DEFAULT_POLICY)
        return _build_result(ctx, plan_builder(ctx))


def _strategy(method: LoanCalculationMethod,
              plan_builder: Callable[[ScheduleContext], SchedulePlan],
              penalty=calculate_penalty,
              settlement=calculate_early_settlement) -> CalculationStrategy:
    return CalculationStrategy(
        method=method,
        calculate_loan=partial(_calculate_with, plan_builder),
        calculate_penalty=penalty,
        calculate_early_settlement=settlement
    )


STRATEGIES: Dict[LoanCalculationMethod, CalculationStrategy] = {
    LoanCalculationMethod.FLAT_RATE: _strategy(
        LoanCalculationMethod.FLAT_RATE, _flat_rate_plan,
        penalty=partial(calculate_penalty, compound=False)
    ),
    LoanCalculationMethod.REDUCING_BALANCE: _strategy(LoanCalculationMethod.REDUCING_BALANCE,
                                                      _reducing_balance_plan),
    LoanCalculationMethod.SIMPLE_INTEREST: _strategy(
        LoanCalculationMethod.SIMPLE_INTEREST, _simple_interest_plan,
        # Daily penalties accrue without compounding, as for flat rate loans
        penalty=partial(calculate_penalty, compound=False),
        settlement=calculate_simple_interest_settlement
    ),
    LoanCalculationMethod.COMPOUND_INTEREST: _strategy(LoanCalculationMethod.COMPOUND_INTEREST,
                                                       _compound_interest_plan),
    LoanCalculationMethod.ANNUITY: _strategy(LoanCalculationMethod.ANNUITY, _annuity_plan),
    LoanCalculationMethod.BALLOON_PAYMENT: _strategy(LoanCalculationMethod.BALLOON_PAYMENT,
                                                     _balloon_payment_plan),
    LoanCalculationMethod.CUSTOM_FORMULA: _strategy(LoanCalculationMethod.CUSTOM_FORMULA,
                                                    _custom_formula_plan),
}


def get_strategy(method: LoanCalculationMethod) -> CalculationStrategy:
    """
    Strategy registered for a calculation method

    Raises:
        UnsupportedCalculationMethodError: If the method is unknown
    """
    if not isinstance(method, LoanCalculationMethod):
        try:
            method = LoanCalculationMethod(method)
        except ValueError:
            raise UnsupportedCalculationMethodError(method) from None
    strategy = STRATEGIES.get(method)
    if strategy is None:
        raise UnsupportedCalculationMethodError(method)
    return strategy


def calculate_loan(loan_input: LoanCalculationInput,
                   policy: Optional[CalculationPolicy] = None) -> LoanCalculationResult:
    """Build the full schedule with the strategy selected by the input's method"""
    return get_strategy(loan_input.calculation_method).calculate_loan(loan_input, policy=policy)
