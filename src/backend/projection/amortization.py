"""
Loan amortizer: splits one period's debt service into interest and principal.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from models import RepaymentType

from .errors import ProjectionArithmeticError
from .money import ONE, Number, dec, round_minor, scale, split_evenly


@dataclass(frozen=True)
class PaymentSplit:
    interest: int
    principal: int

    @property
    def total(self) -> int:
        return self.interest + self.principal


def annuity_payment(balance: int, rate: Decimal, periods: int) -> Decimal:
    """Level payment amortizing ``balance`` over ``periods`` at periodic ``rate``."""
    if rate == 0:
        return Decimal(balance) / periods
    growth = (ONE + rate) ** periods
    return Decimal(balance) * rate * growth / (growth - ONE)


def split_payment(
    balance: int,
    annual_rate: Number,
    repayment: RepaymentType,
    periods_remaining: int,
    periods_per_year: int = 1,
    *,
    periods_elapsed: int = 0,
    grace_periods: int = 0,
    after_grace: RepaymentType = RepaymentType.EQUAL_INSTALLMENT,
    installment: Optional[int] = None,
    entity_id: Optional[str] = None,
) -> PaymentSplit:
    """
    Interest and principal due this period.

    Args:
        balance: Outstanding balance in minor units
        annual_rate: Nominal annual rate; the period rate is annual_rate / periods_per_year
        repayment: Repayment policy
        periods_remaining: Periods left to maturity, this one included
        periods_elapsed: Periods since the loan started (grace window bookkeeping)
        grace_periods: Length of the interest-only window for grace_then_amortize
        after_grace: Policy that takes over once the grace window closes
        installment: Constant principal of an equal_principal schedule; when
            omitted it is recomputed from the outstanding balance

    Raises:
        ProjectionArithmeticError: balance outstanding with no periods left, or an
            installment that does not cover the period's interest.
    """
    if balance <= 0:
        return PaymentSplit(0, 0)
    if periods_remaining <= 0:
        raise ProjectionArithmeticError(
            f"balance {balance} outstanding with {periods_remaining} periods to maturity", entity_id
        )

    rate = dec(annual_rate) / periods_per_year
    interest = max(0, scale(balance, rate))

    policy = RepaymentType(repayment)
    if policy == RepaymentType.GRACE_THEN_AMORTIZE:
        if periods_elapsed < grace_periods and periods_remaining > 1:
            return PaymentSplit(interest, 0)
        policy = RepaymentType(after_grace)
        if policy == RepaymentType.GRACE_THEN_AMORTIZE:
            policy = RepaymentType.EQUAL_INSTALLMENT

    if periods_remaining == 1:
        principal = balance
    elif policy == RepaymentType.BULLET:
        principal = 0
    elif policy == RepaymentType.EQUAL_PRINCIPAL:
        principal = split_evenly(balance, periods_remaining) if installment is None else installment
    else:
        payment = round_minor(annuity_payment(balance, rate, periods_remaining))
        principal = payment - interest
        if principal < 0:
            raise ProjectionArithmeticError(
                f"installment {payment} does not cover interest {interest}", entity_id
            )

    return PaymentSplit(interest, min(principal, balance))


def principal_installment(
    principal: int,
    periods: int,
    repayment: RepaymentType,
    grace_periods: int = 0,
) -> int:
    """Constant principal per period of an equal_principal schedule over the amortizing periods."""
    amortizing = periods
    if RepaymentType(repayment) == RepaymentType.GRACE_THEN_AMORTIZE:
        amortizing -= grace_periods
    return split_evenly(principal, max(1, amortizing))


def outstanding_balance(
    principal: int,
    annual_rate: Number,
    repayment: RepaymentType,
    total_months: int,
    elapsed_months: int,
    grace_months: int = 0,
    after_grace: RepaymentType = RepaymentType.EQUAL_INSTALLMENT,
) -> int:
    """
    Balance left after ``elapsed_months`` of scheduled repayment.

    Used for loans that started before the run without a recorded balance.
    Interest accrues monthly at annual_rate / 12.
    """
    if total_months <= 0 or elapsed_months <= 0:
        return principal
    if elapsed_months >= total_months:
        return 0

    policy = RepaymentType(repayment)
    if policy == RepaymentType.GRACE_THEN_AMORTIZE:
        grace = min(grace_months, total_months - 1)
        if elapsed_months <= grace:
            return principal
        total_months -= grace
        elapsed_months -= grace
        policy = RepaymentType(after_grace)
        if policy == RepaymentType.GRACE_THEN_AMORTIZE:
            policy = RepaymentType.EQUAL_INSTALLMENT

    if policy == RepaymentType.BULLET:
        return principal

    rate = dec(annual_rate) / 12
    if policy == RepaymentType.EQUAL_PRINCIPAL or rate == 0:
        paid = Decimal(principal) * elapsed_months / total_months
        return max(0, round_minor(Decimal(principal) - paid))

    growth = (ONE + rate) ** total_months
    elapsed_growth = (ONE + rate) ** elapsed_months
    return max(0, round_minor(Decimal(principal) * (growth - elapsed_growth) / (growth - ONE)))


def amortization_schedule(
    principal: int,
    annual_rate: Number,
    repayment: RepaymentType,
    periods: int,
    periods_per_year: int = 1,
    grace_periods: int = 0,
    after_grace: RepaymentType = RepaymentType.EQUAL_INSTALLMENT,
) -> List[PaymentSplit]:
    """Full schedule of a loan under a constant rate."""
    installment = principal_installment(principal, periods, repayment, grace_periods)
    balance = principal
    schedule = []
    for elapsed in range(periods):
        split = split_payment(
            balance,
            annual_rate,
            repayment,
            periods - elapsed,
            periods_per_year,
            periods_elapsed=elapsed,
            grace_periods=grace_periods,
            after_grace=after_grace,
            installment=installment,
        )
        balance -= split.principal
        schedule.append(split)
    return schedule
