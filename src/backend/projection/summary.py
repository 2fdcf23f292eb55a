"""
Chart-ready series derived from a projection result.
"""

from typing import Optional

import numpy as np

from models import Household, ProjectionResult, ProjectionSummary


def summarize(result: ProjectionResult, household: Optional[Household] = None) -> ProjectionSummary:
    snapshots = result.snapshots
    years = np.array([s.year for s in snapshots], dtype=np.int64)
    net_worth = np.array([s.net_worth for s in snapshots], dtype=np.int64)
    liquid = np.array([s.account_balances.get(result.liquid_account_id, 0) for s in snapshots], dtype=np.int64)
    overdraft = np.array([s.account_balances.get(result.overdraft_account_id, 0) for s in snapshots], dtype=np.int64)

    peak = int(np.argmax(net_worth))
    in_overdraft = np.flatnonzero(overdraft < 0)
    first_overdraft_year = int(years[in_overdraft[0]]) if in_overdraft.size else None

    retirement_net_worth = None
    if household is not None:
        ages = np.array([s.ages["self"] for s in snapshots], dtype=np.int64)
        retired = np.flatnonzero(ages >= household.primary.retirement_age)
        if retired.size:
            retirement_net_worth = int(net_worth[retired[0]])

    return ProjectionSummary(
        years=years.tolist(),
        net_worth=net_worth.tolist(),
        liquid_balance=liquid.tolist(),
        overdraft_balance=overdraft.tolist(),
        final_net_worth=int(net_worth[-1]),
        peak_net_worth=int(net_worth[peak]),
        peak_year=int(years[peak]),
        first_overdraft_year=first_overdraft_year,
        retirement_net_worth=retirement_net_worth,
    )
