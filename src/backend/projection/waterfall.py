"""
Waterfall allocator: routes a period's net cash flow through the household's
accounts.

Surplus
    1. pay the overdraft balance back toward zero
    2. allocation rules in priority order, inside their active window
    3. whatever is left stays in liquid cash

Deficit
    1. draw liquid cash down to zero
    2. withdrawal rules in priority order, each up to the account balance
    3. the remainder is charged to the overdraft account

The overdraft account is the only balance allowed below zero. Each move is
recorded as a ``WaterfallStep`` signed from the account's point of view.
"""

import logging
from dataclasses import dataclass, field
from typing import Container, Dict, List, Optional, Sequence

from models import AllocateMode, AllocationRule, MaintainBalanceMode, RuleWindow, WaterfallStep, WithdrawalRule

from .errors import InvariantViolation
from .money import to_minor
from .rules import by_priority, ranking_problem
from .timeline import Calendar, Period

logger = logging.getLogger(__name__)

OVERDRAFT_PAYDOWN = "overdraft_paydown"
ALLOCATION_RULE = "allocation_rule"
LIQUID_CASH = "liquid_cash"
LIQUID_DRAW = "liquid_draw"
WITHDRAWAL_RULE = "withdrawal_rule"
OVERDRAFT_CHARGE = "overdraft_charge"


@dataclass(frozen=True)
class AllocatorState:
    """Year-to-date amounts sent to each capped allocation rule."""
    year: Optional[int] = None
    allocated: Dict[str, int] = field(default_factory=dict)

    def for_period(self, period: Period) -> "AllocatorState":
        if period.year != self.year:
            return AllocatorState(year=period.year)
        return self


@dataclass(frozen=True)
class WaterfallResult:
    moves: List[WaterfallStep]
    balances: Dict[str, int]
    state: AllocatorState

    def total(self, step: str) -> int:
        return sum(move.amount for move in self.moves if move.step == step)


def in_window(window: Optional[RuleWindow], calendar: Calendar, period: Period) -> bool:
    if window is None:
        return True
    if window.start is not None and period.ordinal < calendar.ordinal(window.start):
        return False
    if window.end is not None and period.ordinal >= calendar.ordinal(window.end):
        return False
    return True


def _check_ranking(rules: Sequence, period: Period) -> None:
    problem = ranking_problem(rules)
    if problem is not None:
        message, rule_id = problem
        raise InvariantViolation(message, period_index=period.index, rule_id=rule_id)


def allocate(
    net_cash_flow: int,
    balances: Dict[str, int],
    allocation_rules: Sequence[AllocationRule],
    withdrawal_rules: Sequence[WithdrawalRule],
    liquid_id: str,
    overdraft_id: str,
    calendar: Calendar,
    period: Period,
    state: AllocatorState = AllocatorState(),
    unavailable: Container[str] = (),
) -> WaterfallResult:
    """
    Route ``net_cash_flow`` through the waterfall.

    Args:
        net_cash_flow: Signed period net in minor units
        balances: Account balances before allocation; not modified
        unavailable: Accounts isolated by an arithmetic failure, skipped by rules

    Returns:
        WaterfallResult with every move, the new balances and the allocator state
        to thread into the next period.

    Raises:
        InvariantViolation: ranks are not dense, the moves do not add up to the
            net cash flow, or a balance other than the overdraft went negative.
    """
    _check_ranking(allocation_rules, period)
    _check_ranking(withdrawal_rules, period)

    state = state.for_period(period)
    allocated = dict(state.allocated)
    balances = dict(balances)
    moves: List[WaterfallStep] = []

    def move(step: str, account_id: str, amount: int, rule_id: Optional[str] = None) -> None:
        if amount == 0:
            return
        balances[account_id] = balances.get(account_id, 0) + amount
        moves.append(WaterfallStep(step=step, account_id=account_id, rule_id=rule_id, amount=amount))

    remaining = net_cash_flow
    if remaining > 0:
        owed = -min(0, balances.get(overdraft_id, 0))
        move(OVERDRAFT_PAYDOWN, overdraft_id, min(remaining, owed))
        remaining -= min(remaining, owed)

        for rule in by_priority(allocation_rules):
            if remaining == 0:
                break
            if rule.account_id in unavailable or not in_window(rule.window, calendar, period):
                continue
            amount = _allocation_amount(rule, remaining, balances.get(rule.account_id, 0), allocated)
            if amount <= 0:
                continue
            if isinstance(rule.mode, AllocateMode) and rule.mode.annual_limit is not None:
                allocated[rule.id] = allocated.get(rule.id, 0) + amount
            move(ALLOCATION_RULE, rule.account_id, amount, rule.id)
            remaining -= amount

        move(LIQUID_CASH, liquid_id, remaining)
        remaining = 0

    elif remaining < 0:
        shortfall = -remaining
        draw = min(shortfall, max(0, balances.get(liquid_id, 0)))
        move(LIQUID_DRAW, liquid_id, -draw)
        shortfall -= draw

        for rule in by_priority(withdrawal_rules):
            if shortfall == 0:
                break
            if rule.account_id in unavailable or not in_window(rule.window, calendar, period):
                continue
            draw = min(shortfall, max(0, balances.get(rule.account_id, 0)))
            move(WITHDRAWAL_RULE, rule.account_id, -draw, rule.id)
            shortfall -= draw

        move(OVERDRAFT_CHARGE, overdraft_id, -shortfall)

    result = WaterfallResult(moves=moves, balances=balances, state=AllocatorState(period.year, allocated))
    _check_result(result, net_cash_flow, overdraft_id, period)
    logger.debug("period %d: net %d routed in %d moves", period.index, net_cash_flow, len(moves))
    return result


def _allocation_amount(rule: AllocationRule, remaining: int, balance: int, allocated: Dict[str, int]) -> int:
    mode = rule.mode
    if isinstance(mode, MaintainBalanceMode):
        return min(remaining, max(0, to_minor(mode.target) - balance))
    if mode.annual_limit is None:
        return remaining
    headroom = to_minor(mode.annual_limit) - allocated.get(rule.id, 0)
    return min(remaining, max(0, headroom))


def _check_result(result: WaterfallResult, net_cash_flow: int, overdraft_id: str, period: Period) -> None:
    moved = sum(move.amount for move in result.moves)
    if moved != net_cash_flow:
        raise InvariantViolation(
            f"waterfall moved {moved} but net cash flow is {net_cash_flow}", period_index=period.index
        )
    for move in result.moves:
        if move.account_id != overdraft_id and result.balances[move.account_id] < 0:
            raise InvariantViolation(
                f"account {move.account_id} left negative", period_index=period.index, rule_id=move.rule_id
            )
