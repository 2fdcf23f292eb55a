"""
Cash flow aggregation for one period.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional

from .errors import InvariantViolation


@dataclass(frozen=True)
class Flow:
    """A single signed household cash movement: positive in, negative out."""
    source_id: str
    owner: str
    category: str
    amount: int


@dataclass(frozen=True)
class CashFlowSummary:
    total_inflow: int = 0
    total_outflow: int = 0
    net_cash_flow: int = 0
    breakdown: Dict[str, int] = field(default_factory=dict)
    income_breakdown: Dict[str, int] = field(default_factory=dict)
    expense_breakdown: Dict[str, int] = field(default_factory=dict)
    owner_net: Dict[str, int] = field(default_factory=dict)


def _add(bucket: Dict[str, int], key: str, amount: int) -> None:
    bucket[key] = bucket.get(key, 0) + amount


def aggregate(flows: Iterable[Flow], period_index: Optional[int] = None) -> CashFlowSummary:
    """Totals, category breakdowns and per-owner net for a period's flows."""
    inflow = outflow = 0
    breakdown: Dict[str, int] = {}
    income: Dict[str, int] = {}
    expense: Dict[str, int] = {}
    owners: Dict[str, int] = {}

    for flow in flows:
        if flow.amount == 0:
            continue
        _add(breakdown, flow.category, flow.amount)
        _add(owners, flow.owner, flow.amount)
        if flow.amount > 0:
            inflow += flow.amount
            _add(income, flow.category, flow.amount)
        else:
            outflow -= flow.amount
            _add(expense, flow.category, -flow.amount)

    net = inflow - outflow
    if sum(breakdown.values()) != net:
        raise InvariantViolation("cash flow breakdown does not sum to net cash flow", period_index=period_index)

    return CashFlowSummary(
        total_inflow=inflow,
        total_outflow=outflow,
        net_cash_flow=net,
        breakdown=dict(sorted(breakdown.items())),
        income_breakdown=dict(sorted(income.items())),
        expense_breakdown=dict(sorted(expense.items())),
        owner_net=dict(sorted(owners.items())),
    )
