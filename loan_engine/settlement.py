"""
Early Settlement and Restructuring Module

Payoff quotes for loans settled before maturity and re-amortization of the
outstanding balance under new terms. Both work from a previously computed
LoanCalculationResult and the number of installments already paid; neither
mutates the original schedule.
"""

from decimal import Decimal, ROUND_CEILING, localcontext
from datetime import date
from typing import Callable, Optional, Tuple

from .config import CalculationPolicy, DEFAULT_POLICY
from .exceptions import InvalidLoanInputError
from .models import (
    LoanCalculationMethod, LoanCalculationInput, LoanCalculationResult, LoanInstallment,
    EarlySettlementResult, LoanRestructureOptions, LoanRestructureResult, as_decimal
)
from .numeric import (
    DECIMAL_CONTEXT, ZERO, HUNDRED, add_months, day_count, days_between,
    periods_per_year, round_money
)
from .penalties import calculate_penalty


def _check_payments_made(result: LoanCalculationResult, payments_made: int) -> None:
    if isinstance(payments_made, bool) or not isinstance(payments_made, int) \
            or payments_made < 0 or payments_made > result.number_of_installments:
        raise InvalidLoanInputError(
            f"Payments made must be between 0 and {result.number_of_installments}",
            field='payments_made', value=payments_made
        )


def _period_start(result: LoanCalculationResult, index: int) -> date:
    """Start of the accrual period for the installment at a schedule index"""
    if index == 0:
        return result.disbursement_date
    return result.repayment_schedule[index - 1].due_date


def _overdue_penalty(result: LoanCalculationResult, outstanding: Tuple[LoanInstallment, ...],
                     settlement_date: date, policy: CalculationPolicy,
                     compound: bool = True) -> Decimal:
    """Penalties on unpaid installments already past due at the settlement date"""
    loan_input = result.loan_input
    if loan_input.penalty_rate is None or loan_input.penalty_type is None:
        return ZERO

    total = ZERO
    for installment in outstanding:
        overdue_days = days_between(installment.due_date, settlement_date)
        if overdue_days <= 0:
            continue
        penalty = calculate_penalty(
            overdue_days,
            installment.total_amount,
            loan_input.penalty_rate,
            loan_input.penalty_type,
            installment_amount=installment.total_amount,
            interest_basis=loan_input.interest_basis,
            calculation_date=settlement_date,
            compound=compound,
            policy=policy
        )
        total += penalty.penalty_amount
    return total


def _settlement_result(result: LoanCalculationResult, settlement_date: date,
                       outstanding: Tuple[LoanInstallment, ...], rebate: Decimal,
                       penalty: Decimal, policy: CalculationPolicy) -> EarlySettlementResult:
    remaining_principal = sum((i.principal_amount for i in outstanding), ZERO)
    remaining_interest = sum((i.interest_amount for i in outstanding), ZERO)
    rebate = round_money(rebate, policy.money_places)
    penalty = round_money(penalty, policy.money_places)

    total = remaining_principal + remaining_interest + penalty - rebate
    scheduled = sum((i.total_amount for i in outstanding), ZERO)

    return EarlySettlementResult(
        settlement_date=settlement_date,
        remaining_principal=remaining_principal,
        remaining_interest=remaining_interest,
        rebate_amount=rebate,
        penalty_amount=penalty,
        total_settlement_amount=total,
        savings_from_early_settlement=scheduled - total,
        installments_outstanding=len(outstanding)
    )


def calculate_early_settlement(
    result: LoanCalculationResult,
    settlement_date: date,
    payments_made: int,
    *,
    outstanding_penalty: Decimal = ZERO,
    policy: Optional[CalculationPolicy] = None
) -> EarlySettlementResult:
    """
    Quote the amount needed to close a loan early

    Interest on installments not yet due is rebated in proportion to the
    unexpired part of each installment's period, capped at the policy's
    maximum rebate fraction. Installments due on or before the settlement
    date get no rebate.

    Args:
        result: Schedule being settled
        settlement_date: Date of payoff
        payments_made: Installments already paid, in schedule order
        outstanding_penalty: Penalty already accrued by the host system
        policy: Rounding and rebate policy

    Returns:
        EarlySettlementResult

    Raises:
        InvalidLoanInputError: If payments_made is out of range
    """
    policy = policy or DEFAULT_POLICY
    _check_payments_made(result, payments_made)
    outstanding_penalty = as_decimal(outstanding_penalty, 'outstanding_penalty')
    basis = result.loan_input.interest_basis

    with localcontext(DECIMAL_CONTEXT):
        outstanding = result.remaining_installments(payments_made)

        rebate = ZERO
        for offset, installment in enumerate(outstanding):
            if installment.due_date <= settlement_date:
                continue
            index = payments_made + offset
            start = _period_start(result, index)
            period_days = max(day_count(start, installment.due_date, basis), 1)
            days_until_due = day_count(settlement_date, installment.due_date, basis)

            fraction = min(Decimal(days_until_due) / Decimal(period_days), policy.max_rebate_fraction)
            rebate += installment.interest_amount * fraction

        # Flat rate loans accrue overdue penalties without compounding
        compound = result.calculation_method != LoanCalculationMethod.FLAT_RATE
        penalty = outstanding_penalty + _overdue_penalty(result, outstanding, settlement_date, policy,
                                                            compound=compound)
        return _settlement_result(result, settlement_date, outstanding, rebate, penalty, policy)


def calculate_simple_interest_settlement(
    result: LoanCalculationResult,
    settlement_date: date,
    payments_made: int,
    *,
    outstanding_penalty: Decimal = ZERO,
    policy: Optional[CalculationPolicy] = None
) -> EarlySettlementResult:
    """
    Settlement quote for simple interest loans

    Interest is owed only for the time the money was actually borrowed: the
    total interest prorated by days elapsed since disbursement, less the
    interest already paid. The rest of the scheduled interest is rebated.
    """
    policy = policy or DEFAULT_POLICY
    _check_payments_made(result, payments_made)
    outstanding_penalty = as_decimal(outstanding_penalty, 'outstanding_penalty')
    basis = result.loan_input.interest_basis

    with localcontext(DECIMAL_CONTEXT):
        outstanding = result.remaining_installments(payments_made)
        remaining_interest = sum((i.interest_amount for i in outstanding), ZERO)
        interest_paid = result.repayment_schedule[payments_made - 1].cumulative_interest \
            if payments_made else ZERO

        total_days = max(day_count(result.disbursement_date, result.summary.last_payment_date, basis), 1)
        elapsed = min(max(day_count(result.disbursement_date, settlement_date, basis), 0), total_days)

        owed = result.total_interest * Decimal(elapsed) / Decimal(total_days) - interest_paid
        owed = min(max(owed, ZERO), remaining_interest)

        penalty = outstanding_penalty + _overdue_penalty(result, outstanding, settlement_date, policy,
                                                            compound=False)
        return _settlement_result(result, settlement_date, outstanding,
                                  remaining_interest - round_money(owed, policy.money_places),
                                  penalty, policy)


def _remaining_term_months(result: LoanCalculationResult, payments_made: int) -> int:
    loan_input = result.loan_input
    if payments_made == 0:
        return loan_input.term_in_months
    remaining = result.number_of_installments - payments_made
    ppy = periods_per_year(loan_input.repayment_frequency, loan_input.interest_basis)
    months = Decimal(remaining) * Decimal('12') / Decimal(ppy)
    return int(months.to_integral_value(rounding=ROUND_CEILING))


def calculate_loan_restructure(
    result: LoanCalculationResult,
    options: LoanRestructureOptions,
    payments_made: int,
    calculate: Callable[..., LoanCalculationResult],
    *,
    policy: Optional[CalculationPolicy] = None
) -> LoanRestructureResult:
    """
    Re-amortize the outstanding balance of a loan under new terms

    A moratorium accrues simple interest on the outstanding balance at the
    new rate; that interest is capitalized into the new principal and regular
    amortization starts when the moratorium ends.

    Args:
        result: Original schedule
        options: Requested changes; unset options keep the original terms
        payments_made: Installments already paid on the original schedule
        calculate: Schedule function used for the new loan
        policy: Rounding policy

    Returns:
        LoanRestructureResult with both schedules and the delta

    Raises:
        InvalidLoanInputError: If payments_made is out of range or the new
            terms are invalid
    """
    policy = policy or DEFAULT_POLICY
    _check_payments_made(result, payments_made)
    original_input: LoanCalculationInput = result.loan_input

    with localcontext(DECIMAL_CONTEXT):
        outstanding = result.outstanding_principal(payments_made)
        original_remaining_interest = sum(
            (i.interest_amount for i in result.remaining_installments(payments_made)), ZERO
        )
        remaining_months = _remaining_term_months(result, payments_made)

        new_rate = options.new_interest_rate if options.new_interest_rate is not None \
            else original_input.annual_interest_rate
        new_term = options.new_term_in_months if options.new_term_in_months is not None \
            else remaining_months

        if options.restructure_date is not None:
            restructure_date = options.restructure_date
        elif payments_made:
            restructure_date = result.repayment_schedule[payments_made - 1].due_date
        else:
            restructure_date = result.disbursement_date

        base = outstanding + options.additional_amount
        capitalized = ZERO
        if options.moratorium_months:
            capitalized = round_money(
                base * new_rate / HUNDRED * Decimal(options.moratorium_months) / Decimal('12'),
                policy.money_places
            )

        changes = dict(
            principal_amount=base + capitalized,
            annual_interest_rate=new_rate,
            term_in_months=new_term,
            disbursement_date=add_months(restructure_date, options.moratorium_months),
            processing_fee_amount=options.restructure_fee_amount,
            processing_fee_percentage=options.restructure_fee_percentage
        )
        if options.new_repayment_frequency is not None:
            changes['repayment_frequency'] = options.new_repayment_frequency
        if options.new_calculation_method is not None:
            changes['calculation_method'] = options.new_calculation_method

    new_input = original_input.with_changes(**changes)
    restructured = calculate(new_input, policy=policy)

    with localcontext(DECIMAL_CONTEXT):
        cost = round_money(new_input.processing_fee, policy.money_places)
        savings = original_remaining_interest - (restructured.total_interest + capitalized) - cost

    return LoanRestructureResult(
        original_loan=result,
        restructured_loan=restructured,
        restructure_cost=cost,
        total_savings=savings,
        new_installment_amount=restructured.installment_amount,
        extension_months=new_term + options.moratorium_months - remaining_months,
        outstanding_principal=outstanding,
        capitalized_interest=capitalized
    )
