"""
Per-year rate resolution for one run.

Categories without a rate series keep one constant rate for the whole run.
Categories with a series read a new rate each calendar year, so growth is
the product of the yearly factors instead of a single power.
"""

from decimal import Decimal
from typing import Dict, Tuple

from models import RateCategory, ScenarioAssumptions

from .money import ONE, compound_factor, dec, periodic_rate


class RateBook:
    """Annual and periodic rates by category and calendar year."""

    def __init__(self, assumptions: ScenarioAssumptions, start_year: int, periods_per_year: int):
        self.assumptions = assumptions
        self.start_year = start_year
        self.periods_per_year = periods_per_year
        self._periodic: Dict[Tuple[RateCategory, float, int], Decimal] = {}

    def varies(self, category: RateCategory) -> bool:
        return self.assumptions.has_series(category)

    def annual(self, category: RateCategory, year: int, fixed_rate: float = 0.0) -> Decimal:
        return dec(self.assumptions.rate_for_year(category, year, self.start_year, fixed_rate))

    def periodic(self, category: RateCategory, year: int, fixed_rate: float = 0.0) -> Decimal:
        category = RateCategory(category)
        key = (category, fixed_rate, year if self.varies(category) else self.start_year)
        if key not in self._periodic:
            self._periodic[key] = periodic_rate(self.annual(category, key[2], fixed_rate), self.periods_per_year)
        return self._periodic[key]

    def growth(self, category: RateCategory, first_year: int, years: int, fixed_rate: float = 0.0) -> Decimal:
        """Factor after ``years`` anniversaries of ``first_year``; anniversary k uses year first_year + k."""
        if not self.varies(category):
            return compound_factor(self.annual(category, first_year, fixed_rate), years)
        factor = ONE
        for k in range(1, years + 1):
            factor *= ONE + self.annual(category, first_year + k, fixed_rate)
        return factor
