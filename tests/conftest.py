"""
Shared fixtures for projection engine testing.
"""

import sys
import os
import pytest

# Add backend to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src', 'backend'))

from models import Granularity, Household, Person, Scenario, YearMonth
from projection.timeline import Calendar, Period


@pytest.fixture
def steady_saver_scenario():
    """Self aged 40, one savings account, +50 a year routed to savings by a single rule."""
    return {
        "name": "SteadySaver",
        "household": {
            "primary": {"birth_year": 1985, "birth_month": 1, "retirement_age": 65, "life_expectancy": 90}
        },
        "settings": {"start": {"year": 2025, "month": 1}, "granularity": "annual"},
        "incomes": [
            {
                "id": "net-income",
                "amount": 50,
                "frequency": "yearly",
                "rate_category": "fixed",
                "growth_rate": 0.0,
            }
        ],
        "accounts": [
            {"id": "savings", "category": "savings", "balance": 1000, "return_rate": 0.0}
        ],
        "priorities": {
            "allocation_rules": [{"id": "save-all", "priority": 1, "account_id": "savings"}]
        },
    }


@pytest.fixture
def family_scenario():
    """Couple with salaries, a mortgage linked to a home, a pension and ranked rules."""
    return {
        "name": "Family",
        "household": {
            "primary": {"birth_year": 1980, "birth_month": 3, "retirement_age": 62, "life_expectancy": 85},
            "spouse": {"birth_year": 1982, "birth_month": 7, "retirement_age": 60, "life_expectancy": 88},
        },
        "settings": {"start": {"year": 2025, "month": 1}},
        "assumptions": {
            "inflation_rate": 0.02,
            "income_growth_rate": 0.03,
            "investment_return_rate": 0.05,
            "real_estate_growth_rate": 0.02,
            "base_rate": 0.03,
        },
        "incomes": [
            {"id": "salary", "owner": "self", "amount": 4000, "end": {"kind": "retirement", "person": "self"}},
            {"id": "spouse-salary", "owner": "spouse", "amount": 3000, "end": {"kind": "retirement", "person": "spouse"}},
        ],
        "expenses": [
            {"id": "living", "owner": "common", "amount": 3500},
            {
                "id": "home-insurance",
                "type": "housing",
                "owner": "common",
                "amount": 100,
                "rate_category": "fixed",
                "source_type": "real_estate",
                "source_id": "home",
            },
            {
                "id": "loan-fee",
                "type": "housing",
                "owner": "common",
                "amount": 20,
                "rate_category": "fixed",
                "source_type": "debt",
                "source_id": "mortgage",
            },
        ],
        "accounts": [
            {"id": "checking", "category": "checking", "balance": 5000},
            {"id": "emergency", "category": "savings", "balance": 10000},
            {"id": "brokerage", "category": "investment", "balance": 40000},
            {
                "id": "pension",
                "category": "pension",
                "balance": 30000,
                "contribution": {"monthly_amount": 300, "end": {"kind": "retirement", "person": "self"}},
                "distribution": {"start_age": 62, "years": 15},
            },
        ],
        "debts": [
            {
                "id": "mortgage",
                "type": "mortgage",
                "owner": "common",
                "principal": 200000,
                "current_balance": 150000,
                "rate_type": "floating",
                "spread": 0.015,
                "repayment_type": "equal_installment",
                "start": {"year": 2015, "month": 1},
                "maturity": {"year": 2040, "month": 1},
            }
        ],
        "real_estate": [
            {"id": "home", "value": 350000, "sell": {"year": 2050, "month": 6}}
        ],
        "public_pensions": [
            {"id": "state-pension", "owner": "self", "monthly_amount": 1100, "start_age": 67}
        ],
        "priorities": {
            "liquid_account_id": "checking",
            "allocation_rules": [
                {
                    "id": "emergency-top-up",
                    "priority": 1,
                    "account_id": "emergency",
                    "mode": {"kind": "maintain_balance", "target": 20000},
                },
                {
                    "id": "invest",
                    "priority": 2,
                    "account_id": "brokerage",
                    "mode": {"kind": "allocate", "annual_limit": 12000},
                },
            ],
        },
    }


@pytest.fixture
def annual_calendar():
    """Annual calendar for a household whose primary person was born in 1985."""
    household = Household(primary=Person(birth_year=1985, retirement_age=65, life_expectancy=90))
    return Calendar(household, YearMonth(year=2025, month=1), Granularity.ANNUAL)


@pytest.fixture
def first_period():
    return Period(index=0, year=2025, month=1, ordinal=2025)


@pytest.fixture
def run_projection():
    """Factory fixture for running projections from plain dicts."""
    def _run(scenario_dict, assumptions=None):
        from projection import ProjectionEngine

        scenario = Scenario(**scenario_dict)
        return ProjectionEngine(scenario, assumptions).run()

    return _run
