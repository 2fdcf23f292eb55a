"""
Scenario loading and configuration checks.

Everything here runs before the first period is projected; any problem is
reported as a ConfigurationError naming the offending record.
"""

from typing import Any, Dict, Iterable, Mapping, Set, Tuple

from pydantic import ValidationError

import config
from models import Account, AccountCategory, Scenario

from .errors import ConfigurationError
from .rules import check_dense_ranking

SOURCE_TYPES = ("debt", "real_estate", "physical_asset")
COLLATERAL_TYPES = ("real_estate", "physical_asset")


def _record_id(payload: Any, loc) -> str:
    """Walk ``loc`` through the raw payload and return the deepest record id."""
    found = None
    node = payload
    for part in loc:
        try:
            node = node[part]
        except (KeyError, IndexError, TypeError):
            break
        if isinstance(node, Mapping) and "id" in node:
            found = str(node["id"])
    return found


def load_scenario(payload: Mapping[str, Any]) -> Scenario:
    """
    Parse a plain dict into a validated Scenario.

    Raises:
        ConfigurationError: the payload fails schema validation or a
            cross-record check. The message names the record id and field path.
    """
    try:
        scenario = Scenario.model_validate(payload)
    except ValidationError as error:
        first = error.errors()[0]
        path = ".".join(str(part) for part in first["loc"])
        raise ConfigurationError(f"{path}: {first['msg']}", entity_id=_record_id(payload, first["loc"])) from error
    validate_scenario(scenario)
    return scenario


def _check_unique(ids: Iterable[str]) -> None:
    seen: Set[str] = set()
    for entity_id in ids:
        if entity_id in seen:
            raise ConfigurationError("duplicate id", entity_id=entity_id)
        seen.add(entity_id)


def _check_person(scenario: Scenario, who: str, entity_id: str) -> None:
    if who == "spouse" and scenario.household.spouse is None:
        raise ConfigurationError("refers to a spouse but the household has none", entity_id=entity_id)


def _check_end(scenario: Scenario, end, entity_id: str) -> None:
    if end is not None and getattr(end, "kind", None) in ("retirement", "life"):
        _check_person(scenario, end.person, entity_id)


def _check_accounts(scenario: Scenario) -> None:
    overdrafts = [a.id for a in scenario.accounts if a.category == AccountCategory.OVERDRAFT]
    if len(overdrafts) > 1:
        raise ConfigurationError(f"only one overdraft account allowed, found {', '.join(overdrafts)}")

    for account in scenario.accounts:
        _check_person(scenario, account.owner.value, account.id)
        if account.balance < 0 and account.category != AccountCategory.OVERDRAFT:
            raise ConfigurationError("negative balance outside the overdraft account", entity_id=account.id)
        if account.return_rate is not None and account.return_rate <= -1:
            raise ConfigurationError("return rate must be above -100%", entity_id=account.id)
        if account.contribution is not None:
            if account.contribution.monthly_amount < 0:
                raise ConfigurationError("negative contribution", entity_id=account.id)
            _check_end(scenario, account.contribution.end, account.id)


def _check_streams(scenario: Scenario, sources: Dict[str, Set[str]]) -> None:
    for stream in list(scenario.incomes) + list(scenario.expenses):
        _check_person(scenario, stream.owner.value, stream.id)
        _check_end(scenario, stream.end, stream.id)
        if stream.amount < 0:
            raise ConfigurationError("negative amount; use an expense or income instead", entity_id=stream.id)
        if stream.end is not None and stream.end.kind == "date" and stream.start is not None:
            if (stream.end.year, stream.end.month) <= (stream.start.year, stream.start.month):
                raise ConfigurationError("ends before it starts", entity_id=stream.id)
        if stream.source_id is not None:
            if stream.source_type not in SOURCE_TYPES:
                raise ConfigurationError(f"unknown source type {stream.source_type!r}", entity_id=stream.id)
            if stream.source_id not in sources[stream.source_type]:
                raise ConfigurationError(
                    f"linked {stream.source_type} {stream.source_id} does not exist", entity_id=stream.id
                )

    for public in scenario.public_pensions:
        _check_person(scenario, public.owner.value, public.id)
        if public.monthly_amount < 0:
            raise ConfigurationError("negative amount", entity_id=public.id)
        if public.end_age is not None and public.end_age <= public.start_age:
            raise ConfigurationError("end age must follow start age", entity_id=public.id)


def _check_debts(scenario: Scenario, sources: Dict[str, Set[str]]) -> None:
    for debt in scenario.debts:
        _check_person(scenario, debt.owner.value, debt.id)
        if debt.source_id is not None:
            if debt.source_type not in COLLATERAL_TYPES:
                raise ConfigurationError(
                    f"debts can only link to real estate or a physical asset, got {debt.source_type!r}",
                    entity_id=debt.id,
                )
            if debt.source_id not in sources[debt.source_type]:
                raise ConfigurationError(
                    f"linked {debt.source_type} {debt.source_id} does not exist", entity_id=debt.id
                )
        if debt.principal < 0 or (debt.current_balance is not None and debt.current_balance < 0):
            raise ConfigurationError("negative principal", entity_id=debt.id)
        start = (debt.start.year, debt.start.month)
        maturity = (debt.maturity.year, debt.maturity.month)
        if maturity <= start:
            raise ConfigurationError("maturity must follow start", entity_id=debt.id)
        term_months = (maturity[0] - start[0]) * 12 + maturity[1] - start[1]
        if debt.grace_months < 0 or debt.grace_months >= term_months:
            raise ConfigurationError("grace period must be shorter than the loan term", entity_id=debt.id)


def _check_holdings(scenario: Scenario) -> None:
    for holding in list(scenario.real_estate) + list(scenario.physical_assets):
        _check_person(scenario, holding.owner.value, holding.id)
        if holding.value < 0 or (getattr(holding, "purchase_price", None) or 0) < 0:
            raise ConfigurationError("negative value", entity_id=holding.id)
        if holding.purchase is not None and holding.sell is not None:
            if (holding.sell.year, holding.sell.month) <= (holding.purchase.year, holding.purchase.month):
                raise ConfigurationError("sold before it is purchased", entity_id=holding.id)
    for holding in scenario.real_estate:
        if holding.rental is not None:
            _check_end(scenario, holding.rental.end, holding.id)


def _only_account(scenario: Scenario, category: AccountCategory, default: str) -> str:
    matches = [account.id for account in scenario.accounts if account.category == category]
    return matches[0] if len(matches) == 1 else default


def pinned_account_ids(scenario: Scenario) -> Tuple[str, str]:
    """
    Liquid and overdraft account ids: the account the priorities name, else the
    household's only account of that category, else the synthesized default id.
    """
    priorities = scenario.priorities
    liquid_id = priorities.liquid_account_id or _only_account(
        scenario, AccountCategory.CHECKING, config.LIQUID_ACCOUNT_ID
    )
    overdraft_id = priorities.overdraft_account_id or _only_account(
        scenario, AccountCategory.OVERDRAFT, config.OVERDRAFT_ACCOUNT_ID
    )
    return liquid_id, overdraft_id


def _check_priorities(scenario: Scenario) -> None:
    priorities = scenario.priorities
    accounts: Dict[str, Account] = {account.id: account for account in scenario.accounts}

    for pinned, category in (
        (priorities.liquid_account_id, AccountCategory.CHECKING),
        (priorities.overdraft_account_id, AccountCategory.OVERDRAFT),
    ):
        if pinned is None:
            continue
        if pinned not in accounts:
            raise ConfigurationError("pinned account does not exist", entity_id=pinned)
        if accounts[pinned].category != category:
            raise ConfigurationError(f"pinned account must be a {category.value} account", entity_id=pinned)

    pinned_ids = set(pinned_account_ids(scenario))
    pinned_ids |= {a.id for a in scenario.accounts if a.category == AccountCategory.OVERDRAFT}

    rule_lists = [priorities.allocation_rules]
    if priorities.withdrawal_rules is not None:
        rule_lists.append(priorities.withdrawal_rules)

    _check_unique(rule.id for rules in rule_lists for rule in rules)
    for rules in rule_lists:
        check_dense_ranking(rules)
        for rule in rules:
            if rule.account_id not in accounts:
                raise ConfigurationError(f"unknown account {rule.account_id}", entity_id=rule.id)
            if rule.account_id in pinned_ids:
                raise ConfigurationError("rules cannot target a pinned account", entity_id=rule.id)
            if rule.window is not None and rule.window.start is not None and rule.window.end is not None:
                if (rule.window.end.year, rule.window.end.month) <= (rule.window.start.year, rule.window.start.month):
                    raise ConfigurationError("window ends before it starts", entity_id=rule.id)

    for rule in priorities.allocation_rules:
        mode = rule.mode
        if mode.kind == "allocate" and mode.annual_limit is not None and mode.annual_limit < 0:
            raise ConfigurationError("negative annual limit", entity_id=rule.id)
        if mode.kind == "maintain_balance" and mode.target < 0:
            raise ConfigurationError("negative target balance", entity_id=rule.id)


def validate_scenario(scenario: Scenario) -> None:
    """Cross-record checks pydantic cannot express on a single model."""
    _check_unique(
        [a.id for a in scenario.accounts]
        + [d.id for d in scenario.debts]
        + [r.id for r in scenario.real_estate]
        + [a.id for a in scenario.physical_assets]
        + [s.id for s in scenario.incomes]
        + [s.id for s in scenario.expenses]
        + [p.id for p in scenario.public_pensions]
    )
    sources = {
        "debt": {debt.id for debt in scenario.debts},
        "real_estate": {holding.id for holding in scenario.real_estate},
        "physical_asset": {asset.id for asset in scenario.physical_assets},
    }
    _check_accounts(scenario)
    _check_streams(scenario, sources)
    _check_debts(scenario, sources)
    _check_holdings(scenario)
    _check_priorities(scenario)
