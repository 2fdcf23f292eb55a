"""
Maintenance of the user-ordered allocation and withdrawal rule lists.

Priorities are always a dense 1..N ranking. Every structural change returns a
new list re-ranked from list order; the input list is never modified.
"""

from typing import Iterable, List, Optional, Sequence, Tuple, TypeVar

from models import Account, AccountCategory, AllocationRule, WithdrawalRule

from .errors import ConfigurationError

Rule = TypeVar("Rule", AllocationRule, WithdrawalRule)

# Withdrawal order used when a scenario does not supply one; pension is left out
DEFAULT_WITHDRAWAL_CATEGORIES = (AccountCategory.SAVINGS, AccountCategory.INVESTMENT)


def by_priority(rules: Iterable[Rule]) -> List[Rule]:
    return sorted(rules, key=lambda rule: rule.priority)


def rerank(rules: Sequence[Rule]) -> List[Rule]:
    return [rule.model_copy(update={"priority": rank}) for rank, rule in enumerate(rules, start=1)]


def add_rule(rules: Sequence[Rule], rule: Rule) -> List[Rule]:
    """Append ``rule`` as the lowest priority."""
    if any(existing.id == rule.id for existing in rules):
        raise ConfigurationError("duplicate rule id", entity_id=rule.id)
    return rerank(by_priority(rules) + [rule])


def remove_rule(rules: Sequence[Rule], rule_id: str) -> List[Rule]:
    remaining = [rule for rule in by_priority(rules) if rule.id != rule_id]
    if len(remaining) == len(rules):
        raise ConfigurationError("no such rule", entity_id=rule_id)
    return rerank(remaining)


def move_rule(rules: Sequence[Rule], rule_id: str, position: int) -> List[Rule]:
    """Move a rule to 1-based ``position``, clamped to the list bounds."""
    ordered = by_priority(rules)
    index = next((i for i, rule in enumerate(ordered) if rule.id == rule_id), None)
    if index is None:
        raise ConfigurationError("no such rule", entity_id=rule_id)
    rule = ordered.pop(index)
    position = min(max(position, 1), len(ordered) + 1)
    ordered.insert(position - 1, rule)
    return rerank(ordered)


def ranking_problem(rules: Sequence[Rule]) -> Optional[Tuple[str, str]]:
    """(message, rule id) of the first duplicate or gap in the ranking, else None."""
    seen = {}
    for rule in rules:
        if rule.priority in seen:
            return f"priority {rule.priority} shared with rule {seen[rule.priority]}", rule.id
        seen[rule.priority] = rule.id
    for rank, rule in enumerate(by_priority(rules), start=1):
        if rule.priority != rank:
            return f"priority {rule.priority} leaves a gap at rank {rank}", rule.id
    return None


def check_dense_ranking(rules: Sequence[Rule]) -> None:
    problem = ranking_problem(rules)
    if problem is not None:
        message, rule_id = problem
        raise ConfigurationError(message, entity_id=rule_id)


def default_withdrawal_rules(accounts: Sequence[Account]) -> List[WithdrawalRule]:
    """Savings accounts, then investment accounts, in input order."""
    ordered = [
        account
        for category in DEFAULT_WITHDRAWAL_CATEGORIES
        for account in accounts
        if account.category == category
    ]
    return [
        WithdrawalRule(id=f"default:{account.id}", priority=rank, account_id=account.id)
        for rank, account in enumerate(ordered, start=1)
    ]
