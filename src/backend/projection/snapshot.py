"""
Snapshot emitter: the end-of-period balance sheet and cash flow record.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping

from models import AccountCategory, Snapshot, WaterfallStep

from .cashflow import CashFlowSummary
from .errors import InvariantViolation
from .timeline import Period

REAL_ESTATE_CATEGORY = "real_estate"
PHYSICAL_ASSET_CATEGORY = "physical_asset"


@dataclass(frozen=True)
class Holdings:
    """Balances of every account, debt, property and physical asset at one instant."""
    accounts: Dict[str, int]
    debts: Dict[str, int]
    properties: Dict[str, int]
    physical_assets: Dict[str, int] = field(default_factory=dict)

    @property
    def gross_value(self) -> int:
        """Accounts (overdraft included, signed) plus property and physical asset values."""
        return sum(self.accounts.values()) + self.holdings_value

    @property
    def holdings_value(self) -> int:
        return sum(self.properties.values()) + sum(self.physical_assets.values())

    @property
    def debt_total(self) -> int:
        return sum(self.debts.values())

    @property
    def net_worth(self) -> int:
        return self.gross_value - self.debt_total


def assets_by_category(holdings: Holdings, categories: Mapping[str, AccountCategory]) -> Dict[str, int]:
    totals: Dict[str, int] = {}
    for account_id, balance in holdings.accounts.items():
        if balance > 0:
            key = AccountCategory(categories[account_id]).value
            totals[key] = totals.get(key, 0) + balance
    property_total = sum(holdings.properties.values())
    if property_total:
        totals[REAL_ESTATE_CATEGORY] = property_total
    asset_total = sum(holdings.physical_assets.values())
    if asset_total:
        totals[PHYSICAL_ASSET_CATEGORY] = asset_total
    return dict(sorted(totals.items()))


def emit_snapshot(
    period: Period,
    ages: Dict[str, int],
    opening: Holdings,
    before_waterfall: Holdings,
    closing: Holdings,
    cash: CashFlowSummary,
    moves: List[WaterfallStep],
    categories: Mapping[str, AccountCategory],
    unavailable: Iterable[str] = (),
) -> Snapshot:
    """
    Build the period's snapshot.

    ``asset_change`` is the movement in accounts and property outside the
    waterfall (growth, depreciation, contributions, distributions, purchases, sales) and
    ``debt_change`` the movement in loan balances, so that
    net_worth == starting_net_worth + net_cash_flow + asset_change - debt_change.
    Negative account balances count toward ``total_debt``.
    """
    asset_change = before_waterfall.gross_value - opening.gross_value
    debt_change = closing.debt_total - opening.debt_total
    net_worth = closing.net_worth

    if net_worth != opening.net_worth + cash.net_cash_flow + asset_change - debt_change:
        raise InvariantViolation("net worth does not reconcile with cash flow and balance changes", period.index)

    positive_accounts = sum(balance for balance in closing.accounts.values() if balance > 0)
    negative_accounts = -sum(balance for balance in closing.accounts.values() if balance < 0)
    total_assets = positive_accounts + closing.holdings_value
    total_debt = closing.debt_total + negative_accounts

    return Snapshot(
        index=period.index,
        year=period.year,
        month=period.month,
        ages=ages,
        assets_by_category=assets_by_category(closing, categories),
        total_assets=total_assets,
        total_debt=total_debt,
        net_worth=net_worth,
        starting_net_worth=opening.net_worth,
        asset_change=asset_change,
        debt_change=debt_change,
        total_inflow=cash.total_inflow,
        total_outflow=cash.total_outflow,
        net_cash_flow=cash.net_cash_flow,
        income_breakdown=cash.income_breakdown,
        expense_breakdown=cash.expense_breakdown,
        owner_net_cash_flow=cash.owner_net,
        waterfall=moves,
        account_balances=dict(closing.accounts),
        debt_balances=dict(closing.debts),
        real_estate_values=dict(closing.properties),
        physical_asset_values=dict(closing.physical_assets),
        unavailable_entities=sorted(unavailable),
    )
