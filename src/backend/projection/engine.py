"""
Deterministic household projection engine.
"""

import logging
from typing import Dict, List, Optional, Tuple

from models import (
    Account,
    AccountCategory,
    CashFlowPriorities,
    Person,
    ProjectionResult,
    Scenario,
    ScenarioAssumptions,
    Snapshot,
)

from .cashflow import aggregate
from .projector import EntityProjector, HouseholdState
from .rules import default_withdrawal_rules
from .snapshot import Holdings, emit_snapshot
from .timeline import Calendar, Period
from .validation import pinned_account_ids, validate_scenario
from .waterfall import AllocatorState, allocate

logger = logging.getLogger(__name__)


def pinned_accounts(scenario: Scenario) -> Tuple[str, str, List[Account]]:
    """
    Liquid and overdraft account ids, plus the accounts list with any missing
    pinned account added at zero balance.
    """
    accounts = list(scenario.accounts)
    liquid_id, overdraft_id = pinned_account_ids(scenario)

    if not any(account.id == liquid_id for account in accounts):
        accounts.append(Account(id=liquid_id, title="Cash", category=AccountCategory.CHECKING, return_rate=0.0))
    if not any(account.id == overdraft_id for account in accounts):
        accounts.append(
            Account(id=overdraft_id, title="Overdraft", category=AccountCategory.OVERDRAFT, return_rate=0.0)
        )
    return liquid_id, overdraft_id, accounts


class ProjectionEngine:
    """Projects one scenario period by period from the start date to the last life expectancy."""

    def __init__(self, scenario: Scenario, assumptions: Optional[ScenarioAssumptions] = None):
        """
        Args:
            scenario: The household to project
            assumptions: Rate assumptions overriding the scenario's own
        """
        validate_scenario(scenario)
        self.sc = scenario
        self.assumptions = assumptions or scenario.assumptions

        self.calendar = Calendar(scenario.household, scenario.settings.start, scenario.settings.granularity)
        self.periods: List[Period] = self.calendar.periods()

        self.liquid_id, self.overdraft_id, accounts = pinned_accounts(scenario)
        self.priorities: CashFlowPriorities = scenario.priorities
        self.withdrawal_rules = self.priorities.withdrawal_rules
        if self.withdrawal_rules is None:
            self.withdrawal_rules = default_withdrawal_rules(scenario.accounts)

        self.projector = EntityProjector(
            scenario.model_copy(update={"accounts": accounts}),
            self.calendar,
            self.assumptions,
            horizon_end=self.periods[-1].ordinal + 1,
        )

    def _ages(self, period: Period) -> Dict[str, int]:
        people: Dict[str, Optional[Person]] = {"self": self.sc.household.primary, "spouse": self.sc.household.spouse}
        return {who: self.calendar.age(person, period) for who, person in people.items() if person is not None}

    @staticmethod
    def _holdings(state: HouseholdState) -> Holdings:
        return Holdings(
            accounts=dict(state.accounts),
            debts=state.debt_balances(),
            properties=state.property_values(),
            physical_assets=state.asset_values(),
        )

    def run(self) -> ProjectionResult:
        """
        Fold every period left to right.

        Returns:
            ProjectionResult with one snapshot per period
        """
        logger.info(
            "projecting %s: %d %s periods from %d-%02d",
            self.sc.name,
            len(self.periods),
            self.calendar.granularity.value,
            self.periods[0].year,
            self.periods[0].month,
        )

        state = self.projector.initial_state()
        allocator = AllocatorState()
        snapshots: List[Snapshot] = []

        for period in self.periods:
            opening = self._holdings(state)
            projection = self.projector.step(state, period)
            cash = aggregate(projection.flows, period.index)

            waterfall = allocate(
                cash.net_cash_flow,
                projection.state.accounts,
                self.priorities.allocation_rules,
                self.withdrawal_rules,
                self.liquid_id,
                self.overdraft_id,
                self.calendar,
                period,
                allocator,
                unavailable=projection.state.unavailable,
            )
            allocator = waterfall.state
            before_waterfall = self._holdings(projection.state)
            state = projection.state.with_accounts(waterfall.balances)

            snapshots.append(
                emit_snapshot(
                    period,
                    self._ages(period),
                    opening,
                    before_waterfall,
                    self._holdings(state),
                    cash,
                    waterfall.moves,
                    self.projector.account_categories,
                    state.unavailable,
                )
            )
            logger.debug(
                "period %d (%d-%02d): net cash flow %d, net worth %d",
                period.index, period.year, period.month, cash.net_cash_flow, snapshots[-1].net_worth,
            )

        logger.info("projection %s finished: final net worth %d", self.sc.name, snapshots[-1].net_worth)
        return ProjectionResult(
            scenario_name=self.sc.name,
            granularity=self.calendar.granularity,
            liquid_account_id=self.liquid_id,
            overdraft_account_id=self.overdraft_id,
            snapshots=snapshots,
        )
