"""
Timeline builder and calendar arithmetic.

Periods are identified by an ordinal: the calendar year for annual runs, the
absolute month (``year * 12 + month - 1``) for monthly runs. Every date, age
and end condition is converted to the same ordinal before comparison.
"""

from dataclasses import dataclass
from typing import List, Optional

from models import DateEnd, Granularity, Household, LifeEnd, Person, RetirementEnd, YearMonth

from .errors import ConfigurationError


@dataclass(frozen=True)
class Period:
    index: int
    year: int
    month: int
    ordinal: int


def _ordinal(granularity: Granularity, year: int, month: int) -> int:
    if granularity == Granularity.MONTHLY:
        return year * 12 + month - 1
    return year


def _life_end(person: Person, granularity: Granularity) -> int:
    return _ordinal(granularity, person.birth_year + person.life_expectancy, person.birth_month)


def build_timeline(
    start: YearMonth,
    primary: Person,
    spouse: Optional[Person] = None,
    granularity: Granularity = Granularity.ANNUAL,
) -> List[Period]:
    """
    Ordered periods from ``start`` through the later life expectancy of the
    two people, inclusive.

    Raises:
        ConfigurationError: start falls after the computed end.
    """
    granularity = Granularity(granularity)
    first = _ordinal(granularity, start.year, start.month)
    last = _life_end(primary, granularity)
    if spouse is not None:
        last = max(last, _life_end(spouse, granularity))
    if first > last:
        raise ConfigurationError(
            f"simulation start {start.year}-{start.month:02d} is after the life expectancy horizon",
            entity_id="settings.start",
        )

    periods = []
    for index, ordinal in enumerate(range(first, last + 1)):
        if granularity == Granularity.MONTHLY:
            year, month = divmod(ordinal, 12)
            month += 1
        else:
            year, month = ordinal, start.month
        periods.append(Period(index=index, year=year, month=month, ordinal=ordinal))
    return periods


class Calendar:
    """Converts dates, ages and end conditions of one household to period ordinals."""

    def __init__(self, household: Household, start: YearMonth, granularity: Granularity):
        self.household = household
        self.start = start
        self.granularity = Granularity(granularity)
        self.periods_per_year = 12 if self.granularity == Granularity.MONTHLY else 1
        self.months_per_period = 12 // self.periods_per_year

    def periods(self) -> List[Period]:
        return build_timeline(self.start, self.household.primary, self.household.spouse, self.granularity)

    @property
    def start_ordinal(self) -> int:
        return self.ordinal(self.start)

    def ordinal(self, when: YearMonth) -> int:
        return _ordinal(self.granularity, when.year, when.month)

    def ordinal_or(self, when: Optional[YearMonth], default: int) -> int:
        return default if when is None else self.ordinal(when)

    def person(self, who: str) -> Person:
        person = self.household.person(who)
        if person is None:
            raise ConfigurationError(f"no {who} in household")
        return person

    def age_ordinal(self, person: Person, age: int) -> int:
        """First period at which ``person`` has reached ``age``."""
        return _ordinal(self.granularity, person.birth_year + age, person.birth_month)

    def retirement_ordinal(self, person: Person) -> int:
        return self.age_ordinal(person, person.retirement_age)

    def life_end_ordinal(self, person: Person) -> int:
        return self.age_ordinal(person, person.life_expectancy)

    def end_ordinal(self, condition, default: int) -> int:
        """Exclusive end ordinal of an end condition; ``default`` when there is none."""
        if condition is None:
            return default
        if isinstance(condition, DateEnd):
            return _ordinal(self.granularity, condition.year, condition.month)
        if isinstance(condition, RetirementEnd):
            return self.retirement_ordinal(self.person(condition.person))
        if isinstance(condition, LifeEnd):
            return self.life_end_ordinal(self.person(condition.person)) + 1
        raise ConfigurationError(f"unknown end condition {condition!r}")

    def age(self, person: Person, period: Period) -> int:
        if self.granularity == Granularity.MONTHLY:
            born = _ordinal(self.granularity, person.birth_year, person.birth_month)
            return (period.ordinal - born) // 12
        return period.year - person.birth_year

    @staticmethod
    def age_in_months(person: Person, when: YearMonth) -> int:
        return (when.year - person.birth_year) * 12 + when.month - person.birth_month

    def year_of(self, ordinal: int) -> int:
        if self.granularity == Granularity.MONTHLY:
            return ordinal // 12
        return ordinal

    def years_elapsed(self, since: int, period: Period) -> int:
        """Whole years between ordinal ``since`` and ``period`` (0 before ``since``)."""
        return max(0, (period.ordinal - since) // self.periods_per_year)
