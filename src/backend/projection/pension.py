"""
Pension benefit math: accumulation to the benefit start and level distribution after it.

PMT = L * r / (1 - (1 + r) ** -n), with r the monthly rate and n the number
of monthly payments. At r = 0 the payment is L / n.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import config
from models import ReceiveType, SalaryEstimateMode

from .errors import ProjectionArithmeticError
from .money import ONE, ZERO, Number, dec, periodic_rate, round_minor, to_minor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BenefitProjection:
    value_at_start: int
    monthly_payment: int
    receive_type: ReceiveType

    @property
    def annual_payment(self) -> int:
        return self.monthly_payment * 12


def monthly_rate(annual_rate: Number) -> Decimal:
    return periodic_rate(annual_rate, 12)


def clamp_start_age(start_age: int, entity_id: Optional[str] = None) -> int:
    if start_age < config.PENSION_MIN_START_AGE:
        logger.warning(
            "%s: distribution start age %d raised to minimum %d",
            entity_id or "pension", start_age, config.PENSION_MIN_START_AGE,
        )
        return config.PENSION_MIN_START_AGE
    return start_age


def accumulation_value(
    balance: int,
    monthly_contribution: int,
    rate: Decimal,
    months: int,
    contribution_months: Optional[int] = None,
) -> int:
    """
    Value after ``months`` of growth at monthly ``rate``.

    Contributions are paid at each month end for ``contribution_months``
    (defaults to the whole window) and keep growing for the rest of it.
    """
    months = max(0, months)
    paying = months if contribution_months is None else max(0, min(contribution_months, months))
    value = Decimal(balance) * (ONE + rate) ** months
    if paying and monthly_contribution:
        if rate == 0:
            annuity = Decimal(monthly_contribution) * paying
        else:
            annuity = Decimal(monthly_contribution) * ((ONE + rate) ** paying - ONE) / rate
        value += annuity * (ONE + rate) ** (months - paying)
    return round_minor(value)


def level_payment(balance: Number, rate: Decimal, months: int, entity_id: Optional[str] = None) -> Decimal:
    """Unrounded monthly PMT."""
    if months <= 0:
        raise ProjectionArithmeticError(f"distribution length must be positive, got {months} months", entity_id)
    balance = dec(balance)
    if balance <= 0:
        return ZERO
    if rate == 0:
        return balance / months
    return balance * rate / (ONE - (ONE + rate) ** -months)


def distribution_payment(balance: int, rate: Decimal, months: int, entity_id: Optional[str] = None) -> int:
    return round_minor(level_payment(balance, rate, months, entity_id))


def salary_estimate(
    annual_salary: int,
    years_of_service: Number,
    years_to_retirement: int,
    salary_growth: Number = 0,
) -> int:
    """Defined-benefit lump: final monthly salary x projected total years of service."""
    years_to_retirement = max(0, years_to_retirement)
    final_monthly = Decimal(annual_salary) / 12 * (ONE + dec(salary_growth)) ** years_to_retirement
    return round_minor(final_monthly * (dec(years_of_service) + years_to_retirement))


def project_benefit(
    *,
    calculation,
    receive_type: ReceiveType,
    annual_return: Number,
    months_to_start: int,
    distribution_months: int,
    balance: int = 0,
    monthly_contribution: int = 0,
    contribution_months: Optional[int] = None,
    years_to_retirement: int = 0,
    salary_growth: Number = 0,
    entity_id: Optional[str] = None,
) -> BenefitProjection:
    """Value at benefit start and the level monthly payment that follows."""
    rate = monthly_rate(annual_return)
    if isinstance(calculation, SalaryEstimateMode):
        vested = salary_estimate(
            to_minor(calculation.annual_salary),
            calculation.years_of_service,
            years_to_retirement,
            salary_growth,
        )
        deferred = max(0, months_to_start - max(0, years_to_retirement) * 12)
        value = accumulation_value(vested, 0, rate, deferred)
    else:
        value = accumulation_value(balance, monthly_contribution, rate, months_to_start, contribution_months)

    if ReceiveType(receive_type) == ReceiveType.LUMP_SUM:
        return BenefitProjection(value_at_start=value, monthly_payment=0, receive_type=ReceiveType.LUMP_SUM)
    payment = distribution_payment(value, rate, distribution_months, entity_id)
    return BenefitProjection(value_at_start=value, monthly_payment=payment, receive_type=ReceiveType.ANNUITY)
