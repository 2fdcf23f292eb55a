"""
Fixed-point money helpers.

Every amount inside the engine is an ``int`` of minor units. Rates are carried
as ``Decimal`` and each multiplication is rounded half-to-even exactly once, so
a run never accumulates binary float drift.
"""

from decimal import ROUND_HALF_EVEN, Decimal, localcontext
from typing import Union

import config

MINOR = Decimal(config.MINOR_UNITS_PER_MAJOR)
ONE = Decimal(1)
ZERO = Decimal(0)

Number = Union[int, float, str, Decimal]


def dec(value: Number) -> Decimal:
    """Decimal from a float via its shortest repr, so 0.04 stays 0.04."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_minor(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_HALF_EVEN))


def to_minor(amount: Number) -> int:
    """Major units (e.g. 1,000.50) to minor units (100050)."""
    return round_minor(dec(amount) * MINOR)


def to_major(amount: int) -> Decimal:
    return Decimal(amount) / MINOR


def scale(amount: int, factor: Decimal) -> int:
    return round_minor(Decimal(amount) * factor)


def compound_factor(annual_rate: Number, years: Number) -> Decimal:
    """(1 + annual_rate) ** years; exact for whole years."""
    rate = dec(annual_rate)
    years = dec(years)
    if years == years.to_integral_value():
        return (ONE + rate) ** int(years)
    with localcontext() as ctx:
        ctx.prec = 34
        return (ONE + rate) ** years


def periodic_rate(annual_rate: Number, periods_per_year: int) -> Decimal:
    """Compound-equivalent rate per period: (1 + r) ** (1 / n) - 1."""
    rate = dec(annual_rate)
    if periods_per_year == 1:
        return rate
    with localcontext() as ctx:
        ctx.prec = 34
        return (ONE + rate) ** (ONE / Decimal(periods_per_year)) - ONE


def split_evenly(amount: int, parts: int) -> int:
    """Share of ``amount`` for one of ``parts`` equal periods."""
    if parts == 1:
        return amount
    return round_minor(Decimal(amount) / Decimal(parts))
