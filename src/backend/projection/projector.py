"""
Entity projector.

Scenario records are compiled once into minor-unit specs whose dates are
period ordinals. ``EntityProjector.step`` then advances every entity by one
period and returns the new state together with the period's cash flows.
Account balances are left before the waterfall; the engine routes the net.
Rates are looked up per calendar year through the run's ``RateBook``.

An entity whose math fails is isolated: it keeps its last balance, emits no
further flows and stays in ``HouseholdState.unavailable`` for the rest of the run.
"""

import logging
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Dict, FrozenSet, List, Optional, Tuple

import config
from models import (
    Account,
    AccountCategory,
    Debt,
    Frequency,
    RateCategory,
    RateType,
    RealEstateHolding,
    ReceiveType,
    RepaymentType,
    SalaryEstimateMode,
    Scenario,
    ScenarioAssumptions,
)

from . import pension
from .amortization import outstanding_balance, principal_installment, split_payment
from .cashflow import Flow
from .errors import ProjectionArithmeticError
from .money import dec, scale, split_evenly, to_minor
from .rates import RateBook
from .timeline import Calendar, Period

logger = logging.getLogger(__name__)

DEBT = "debt"
REAL_ESTATE = "real_estate"
PHYSICAL_ASSET = "physical_asset"
HOLDING_KINDS = (REAL_ESTATE, PHYSICAL_ASSET)

PUBLIC_PENSION_CATEGORY = "income.pension"
RENTAL_CATEGORY = "income.rental"


# ============================
# Compiled specs
# ============================
@dataclass(frozen=True)
class StreamSpec:
    """Income (sign +1) or expense (sign -1) active over [start, end)."""
    id: str
    owner: str
    category: str
    sign: int
    annual_amount: int
    rate_category: RateCategory
    fixed_rate: float
    start: int
    end: int
    indexed_from: int
    source_type: Optional[str] = None
    source_id: Optional[str] = None

    def amount(self, calendar: Calendar, rates: RateBook, period: Period) -> int:
        if not self.start <= period.ordinal < self.end:
            return 0
        years = calendar.years_elapsed(self.indexed_from, period)
        factor = rates.growth(self.rate_category, calendar.year_of(self.indexed_from), years, self.fixed_rate)
        grown = scale(self.annual_amount, factor)
        return self.sign * split_evenly(grown, calendar.periods_per_year)


@dataclass(frozen=True)
class AccountSpec:
    id: str
    owner: str
    category: AccountCategory
    opening_balance: int
    rate_category: RateCategory
    fixed_rate: float
    contribution: int = 0  # per period
    contribution_start: int = 0
    contribution_end: int = 0
    distribution_start: Optional[int] = None
    distribution_periods: int = 0
    receive_type: ReceiveType = ReceiveType.ANNUITY
    vested_value: Optional[int] = None  # defined-benefit estimate booked at distribution start

    def contributing(self, ordinal: int) -> bool:
        if self.distribution_start is not None and ordinal >= self.distribution_start:
            return False
        return self.contribution > 0 and self.contribution_start <= ordinal < self.contribution_end


@dataclass(frozen=True)
class DebtSpec:
    id: str
    owner: str
    start: int
    maturity: int
    opening_balance: int
    principal: int
    floating: bool
    rate: Decimal  # fixed rate, or spread over the base rate when floating
    repayment: RepaymentType
    after_grace: RepaymentType
    grace_periods: int
    installment: int  # constant principal of an equal_principal schedule
    disbursed_in_run: bool
    collateral_type: Optional[str] = None  # financed holding; a sale settles the debt
    collateral_id: Optional[str] = None

    def annual_rate(self, assumptions: ScenarioAssumptions, year: int) -> Decimal:
        if self.floating:
            return dec(assumptions.base_rate_for(year)) + self.rate
        return self.rate


@dataclass(frozen=True)
class HoldingSpec:
    """Real estate or physical asset carried at a value that grows or depreciates."""
    id: str
    owner: str
    kind: str
    value: int
    cost: int  # paid on purchase and booked as the value
    rate_category: RateCategory
    fixed_rate: float
    purchase: Optional[int] = None
    sell: Optional[int] = None


# ============================
# Run state
# ============================
@dataclass(frozen=True)
class DebtState:
    balance: int
    retired: bool = False


@dataclass(frozen=True)
class HoldingState:
    value: int
    held: bool


def _values(holdings: Dict[str, HoldingState]) -> Dict[str, int]:
    return {holding_id: holding.value if holding.held else 0 for holding_id, holding in holdings.items()}


@dataclass(frozen=True)
class HouseholdState:
    accounts: Dict[str, int]
    debts: Dict[str, DebtState]
    properties: Dict[str, HoldingState]
    assets: Dict[str, HoldingState] = field(default_factory=dict)
    unavailable: FrozenSet[str] = frozenset()

    def debt_balances(self) -> Dict[str, int]:
        return {debt_id: debt.balance for debt_id, debt in self.debts.items()}

    def property_values(self) -> Dict[str, int]:
        return _values(self.properties)

    def asset_values(self) -> Dict[str, int]:
        return _values(self.assets)

    def holding(self, kind: str, holding_id: str) -> Optional[HoldingState]:
        holdings = self.properties if kind == REAL_ESTATE else self.assets
        return holdings.get(holding_id)

    def with_accounts(self, balances: Dict[str, int]) -> "HouseholdState":
        return replace(self, accounts=dict(balances))


@dataclass(frozen=True)
class PeriodProjection:
    state: HouseholdState
    flows: List[Flow]


# ============================
# Projector
# ============================
class EntityProjector:
    """Compiles a scenario's entities and steps them through the timeline."""

    def __init__(self, scenario: Scenario, calendar: Calendar, assumptions: ScenarioAssumptions, horizon_end: int):
        self.scenario = scenario
        self.calendar = calendar
        self.assumptions = assumptions
        self.rates = RateBook(assumptions, calendar.start.year, calendar.periods_per_year)
        self.start = calendar.start_ordinal
        self.horizon_end = horizon_end

        self.streams: List[StreamSpec] = []
        for income in scenario.incomes:
            self.streams.append(self._compile_stream(income, 1, f"income.{income.type}"))
        for expense in scenario.expenses:
            self.streams.append(self._compile_stream(expense, -1, f"expense.{expense.type}"))
        for public in scenario.public_pensions:
            self.streams.append(self._compile_public_pension(public))

        self.properties = [self._compile_holding(holding, REAL_ESTATE) for holding in scenario.real_estate]
        self.physical_assets = [self._compile_holding(asset, PHYSICAL_ASSET) for asset in scenario.physical_assets]
        self.holding_specs = {spec.id: spec for spec in self.properties + self.physical_assets}
        self.streams.extend(
            self._compile_rental(holding) for holding in scenario.real_estate if holding.rental is not None
        )
        self.debts = [self._compile_debt(debt) for debt in scenario.debts]
        self.accounts = [self._compile_account(account) for account in scenario.accounts]
        self.account_categories = {spec.id: spec.category for spec in self.accounts}

    # ----------------------------
    # Compilation
    # ----------------------------
    def _compile_stream(self, record, sign: int, category: str) -> StreamSpec:
        annual = to_minor(record.amount)
        if Frequency(record.frequency) == Frequency.MONTHLY:
            annual *= 12
        start = self.calendar.ordinal_or(record.start, self.start)
        return StreamSpec(
            id=record.id,
            owner=record.owner.value,
            category=category,
            sign=sign,
            annual_amount=annual,
            rate_category=RateCategory(record.rate_category),
            fixed_rate=record.growth_rate,
            start=start,
            end=self.calendar.end_ordinal(record.end, self.horizon_end),
            indexed_from=start,
            source_type=record.source_type,
            source_id=record.source_id,
        )

    def _compile_public_pension(self, public) -> StreamSpec:
        person = self.calendar.person(public.owner.value)
        if public.end_age is None:
            end = self.calendar.life_end_ordinal(person) + 1
        else:
            end = self.calendar.age_ordinal(person, public.end_age)
        # Amounts are stated in today's money and indexed from the simulation start
        return StreamSpec(
            id=public.id,
            owner=public.owner.value,
            category=PUBLIC_PENSION_CATEGORY,
            sign=1,
            annual_amount=to_minor(public.monthly_amount) * 12,
            rate_category=RateCategory.INFLATION,
            fixed_rate=0.0,
            start=self.calendar.age_ordinal(person, public.start_age),
            end=end,
            indexed_from=self.start,
        )

    def _compile_rental(self, holding: RealEstateHolding) -> StreamSpec:
        rental = holding.rental
        start = self.calendar.ordinal_or(rental.start, self.start)
        return StreamSpec(
            id=f"{holding.id}:rental",
            owner=holding.owner.value,
            category=RENTAL_CATEGORY,
            sign=1,
            annual_amount=to_minor(rental.monthly_amount) * 12,
            rate_category=RateCategory(rental.rate_category),
            fixed_rate=rental.growth_rate,
            start=start,
            end=self.calendar.end_ordinal(rental.end, self.horizon_end),
            indexed_from=start,
            source_type=REAL_ESTATE,
            source_id=holding.id,
        )

    def _compile_holding(self, holding, kind: str) -> HoldingSpec:
        value = to_minor(holding.value)
        price = getattr(holding, "purchase_price", None)
        return HoldingSpec(
            id=holding.id,
            owner=holding.owner.value,
            kind=kind,
            value=value,
            cost=value if price is None else to_minor(price),
            rate_category=RateCategory(holding.rate_category),
            fixed_rate=holding.growth_rate,
            purchase=None if holding.purchase is None else self.calendar.ordinal(holding.purchase),
            sell=None if holding.sell is None else self.calendar.ordinal(holding.sell),
        )

    def _compile_debt(self, debt: Debt) -> DebtSpec:
        start = self.calendar.ordinal(debt.start)
        maturity = self.calendar.ordinal(debt.maturity)
        principal = to_minor(debt.principal)
        floating = RateType(debt.rate_type) == RateType.FLOATING
        repayment = RepaymentType(debt.repayment_type)
        grace_periods = debt.grace_months // self.calendar.months_per_period
        spec = DebtSpec(
            id=debt.id,
            owner=debt.owner.value,
            start=start,
            maturity=maturity,
            opening_balance=0,
            principal=principal,
            floating=floating,
            rate=dec(debt.spread if floating else debt.interest_rate),
            repayment=repayment,
            after_grace=RepaymentType(debt.after_grace),
            grace_periods=grace_periods,
            installment=principal_installment(principal, maturity - start, repayment, grace_periods),
            disbursed_in_run=start > self.start,
            collateral_type=debt.source_type if debt.source_type in HOLDING_KINDS else None,
            collateral_id=debt.source_id if debt.source_type in HOLDING_KINDS else None,
        )
        if spec.disbursed_in_run:
            return spec
        if debt.current_balance is not None:
            return replace(spec, opening_balance=to_minor(debt.current_balance))
        return replace(spec, opening_balance=self._elapsed_balance(debt, spec))

    def _elapsed_balance(self, debt: Debt, spec: DebtSpec) -> int:
        """Scheduled balance at the simulation start of a loan opened before it."""
        run_start = self.calendar.start
        total_months = (debt.maturity.year - debt.start.year) * 12 + debt.maturity.month - debt.start.month
        elapsed_months = (run_start.year - debt.start.year) * 12 + run_start.month - debt.start.month
        return outstanding_balance(
            spec.principal,
            spec.annual_rate(self.assumptions, run_start.year),
            spec.repayment,
            total_months,
            elapsed_months,
            grace_months=debt.grace_months,
            after_grace=spec.after_grace,
        )

    @staticmethod
    def account_rate(account: Account) -> Tuple[RateCategory, float]:
        """Explicit return rate, then rate category, then the account category's default."""
        if account.return_rate is not None:
            return RateCategory.FIXED, account.return_rate
        if account.rate_category is not None:
            return RateCategory(account.rate_category), 0.0
        category = AccountCategory(account.category)
        if category in (AccountCategory.INVESTMENT, AccountCategory.PENSION):
            return RateCategory.INVESTMENT, 0.0
        if category == AccountCategory.SAVINGS:
            return RateCategory.FIXED, config.DEFAULT_SAVINGS_RATE
        return RateCategory.FIXED, 0.0

    def _compile_account(self, account: Account) -> AccountSpec:
        rate_category, fixed_rate = self.account_rate(account)
        spec = AccountSpec(
            id=account.id,
            owner=account.owner.value,
            category=AccountCategory(account.category),
            opening_balance=to_minor(account.balance),
            rate_category=rate_category,
            fixed_rate=fixed_rate,
        )

        if account.contribution is not None:
            contribution = account.contribution
            spec = replace(
                spec,
                contribution=to_minor(contribution.monthly_amount) * self.calendar.months_per_period,
                contribution_start=self.calendar.ordinal_or(contribution.start, self.start),
                contribution_end=self.calendar.end_ordinal(contribution.end, self.horizon_end),
            )

        if account.distribution is not None:
            distribution = account.distribution
            person = self.calendar.person(account.owner.value)
            start_age = pension.clamp_start_age(distribution.start_age, account.id)
            spec = replace(
                spec,
                distribution_start=self.calendar.age_ordinal(person, start_age),
                distribution_periods=distribution.years * self.calendar.periods_per_year,
                receive_type=ReceiveType(distribution.receive_type),
            )
            if isinstance(account.calculation, SalaryEstimateMode):
                spec = replace(spec, vested_value=self._vested_value(account, spec, person, start_age))
        return spec

    def _vested_value(self, account: Account, spec: AccountSpec, person, start_age: int) -> int:
        calculation = account.calculation
        start_year = self.calendar.start.year
        age_months = self.calendar.age_in_months(person, self.calendar.start)
        benefit = pension.project_benefit(
            calculation=calculation,
            receive_type=ReceiveType.LUMP_SUM,
            annual_return=self.rates.annual(spec.rate_category, start_year, spec.fixed_rate),
            months_to_start=start_age * 12 - age_months,
            distribution_months=account.distribution.years * 12,
            years_to_retirement=(person.retirement_age * 12 - age_months) // 12,
            salary_growth=self.rates.annual(
                calculation.salary_rate_category, start_year, calculation.salary_growth_rate
            ),
            entity_id=account.id,
        )
        return benefit.value_at_start

    # ----------------------------
    # Stepping
    # ----------------------------
    def _opening_holdings(self, specs: List[HoldingSpec]) -> Dict[str, HoldingState]:
        return {
            spec.id: HoldingState(value=spec.value, held=spec.purchase is None or spec.purchase < self.start)
            for spec in specs
        }

    def initial_state(self) -> HouseholdState:
        return HouseholdState(
            accounts={spec.id: spec.opening_balance for spec in self.accounts},
            debts={spec.id: DebtState(balance=spec.opening_balance) for spec in self.debts},
            properties=self._opening_holdings(self.properties),
            assets=self._opening_holdings(self.physical_assets),
        )

    def step(self, state: HouseholdState, period: Period) -> PeriodProjection:
        """Advance every entity by one period."""
        unavailable = set(state.unavailable)
        flows: List[Flow] = []

        properties = dict(state.properties)
        assets = dict(state.assets)
        for specs, holdings in ((self.properties, properties), (self.physical_assets, assets)):
            for spec in specs:
                if spec.id in unavailable:
                    continue
                try:
                    holdings[spec.id] = self._step_holding(spec, holdings[spec.id], period, flows)
                except ArithmeticError as error:
                    self._isolate(spec.id, error, period, unavailable)

        # Linked streams see this period's holding moves and the debts as they opened
        linked = replace(state, properties=properties, assets=assets, unavailable=frozenset(unavailable))
        for spec in self.streams:
            if spec.id in unavailable or not self._source_active(spec, linked):
                continue
            try:
                amount = spec.amount(self.calendar, self.rates, period)
            except ArithmeticError as error:
                self._isolate(spec.id, error, period, unavailable)
                continue
            if amount:
                flows.append(Flow(spec.id, spec.owner, spec.category, amount))

        debts = dict(state.debts)
        for spec in self.debts:
            if spec.id in unavailable:
                continue
            try:
                if self._sold(spec, linked, period):
                    debts[spec.id] = self._settle_debt(spec, debts[spec.id], period, flows)
                    continue
                debts[spec.id] = self._step_debt(spec, debts[spec.id], period, flows)
            except ArithmeticError as error:
                self._isolate(spec.id, error, period, unavailable)

        accounts = dict(state.accounts)
        for spec in self.accounts:
            if spec.id in unavailable:
                continue
            try:
                accounts[spec.id] = self._step_account(spec, accounts[spec.id], period, flows)
            except ArithmeticError as error:
                self._isolate(spec.id, error, period, unavailable)

        next_state = HouseholdState(
            accounts=accounts,
            debts=debts,
            properties=properties,
            assets=assets,
            unavailable=frozenset(unavailable),
        )
        return PeriodProjection(state=next_state, flows=flows)

    @staticmethod
    def _isolate(entity_id: str, error: ArithmeticError, period: Period, unavailable: set) -> None:
        logger.warning("period %d: %s isolated after arithmetic failure: %s", period.index, entity_id, error)
        unavailable.add(entity_id)

    @staticmethod
    def _source_active(spec: StreamSpec, state: HouseholdState) -> bool:
        if spec.source_id is None:
            return True
        if spec.source_id in state.unavailable:
            return False
        if spec.source_type == DEBT:
            debt = state.debts.get(spec.source_id)
            return debt is not None and not debt.retired
        if spec.source_type in HOLDING_KINDS:
            holding = state.holding(spec.source_type, spec.source_id)
            return holding is not None and holding.held
        return True

    def _step_holding(
        self, spec: HoldingSpec, holding: HoldingState, period: Period, flows: List[Flow]
    ) -> HoldingState:
        """Local flows are appended only after the math for this entity succeeds."""
        pending = []
        if holding.held and spec.sell is not None and period.ordinal >= spec.sell:
            pending.append(Flow(spec.id, spec.owner, f"{spec.kind}.sale", holding.value))
            holding = HoldingState(value=0, held=False)
        elif not holding.held and spec.purchase is not None and period.ordinal == spec.purchase:
            pending.append(Flow(spec.id, spec.owner, f"{spec.kind}.purchase", -spec.cost))
            holding = HoldingState(value=spec.cost, held=True)

        if holding.held:
            rate = self.rates.periodic(spec.rate_category, period.year, spec.fixed_rate)
            holding = HoldingState(value=holding.value + scale(holding.value, rate), held=True)
        flows.extend(pending)
        return holding

    def _sold(self, spec: DebtSpec, state: HouseholdState, period: Period) -> bool:
        if spec.collateral_id is None:
            return False
        collateral = self.holding_specs[spec.collateral_id]
        holding = state.holding(spec.collateral_type, spec.collateral_id)
        return collateral.sell is not None and period.ordinal >= collateral.sell and not holding.held

    @staticmethod
    def _settle_debt(spec: DebtSpec, debt: DebtState, period: Period, flows: List[Flow]) -> DebtState:
        if debt.retired:
            return debt
        if debt.balance > 0:
            flows.append(Flow(spec.id, spec.owner, "debt.settlement", -debt.balance))
        logger.debug("period %d: debt %s settled by sale of %s", period.index, spec.id, spec.collateral_id)
        return DebtState(balance=0, retired=True)

    def _step_debt(self, spec: DebtSpec, debt: DebtState, period: Period, flows: List[Flow]) -> DebtState:
        if debt.retired or period.ordinal < spec.start:
            return debt

        pending = []
        balance = debt.balance
        if spec.disbursed_in_run and period.ordinal == spec.start:
            balance = spec.principal
            pending.append(Flow(spec.id, spec.owner, "debt.proceeds", spec.principal))

        split = split_payment(
            balance,
            spec.annual_rate(self.assumptions, period.year),
            spec.repayment,
            spec.maturity - period.ordinal,
            self.calendar.periods_per_year,
            periods_elapsed=period.ordinal - spec.start,
            grace_periods=spec.grace_periods,
            after_grace=spec.after_grace,
            installment=spec.installment,
            entity_id=spec.id,
        )
        if split.interest:
            pending.append(Flow(spec.id, spec.owner, "debt.interest", -split.interest))
        if split.principal:
            pending.append(Flow(spec.id, spec.owner, "debt.principal", -split.principal))
        flows.extend(pending)

        balance -= split.principal
        if balance <= 0:
            logger.debug("period %d: debt %s retired", period.index, spec.id)
            return DebtState(balance=0, retired=True)
        return DebtState(balance=balance)

    def _step_account(self, spec: AccountSpec, balance: int, period: Period, flows: List[Flow]) -> int:
        ordinal = period.ordinal
        period_rate = self.rates.periodic(spec.rate_category, period.year, spec.fixed_rate)
        pending = []

        if spec.distribution_start is not None and ordinal >= spec.distribution_start:
            if spec.distribution_periods <= 0:
                raise ProjectionArithmeticError(
                    f"distribution length must be positive, got {spec.distribution_periods} periods", spec.id
                )
            if ordinal == spec.distribution_start and spec.vested_value is not None:
                balance = spec.vested_value
            remaining = spec.distribution_start + spec.distribution_periods - ordinal
            if remaining > 0 and balance > 0:
                if spec.receive_type == ReceiveType.LUMP_SUM:
                    payout, category = balance, "pension.lump_sum"
                elif remaining == 1:
                    payout, category = balance, "pension.distribution"
                else:
                    months = remaining * self.calendar.months_per_period
                    annual = self.rates.annual(spec.rate_category, period.year, spec.fixed_rate)
                    monthly_rate = pension.monthly_rate(annual)
                    monthly = pension.distribution_payment(balance, monthly_rate, months, spec.id)
                    payout = min(balance, monthly * self.calendar.months_per_period)
                    category = "pension.distribution"
                balance -= payout
                pending.append(Flow(spec.id, spec.owner, category, payout))
            balance += scale(balance, period_rate)
        else:
            balance += scale(balance, period_rate)
            if spec.contributing(ordinal):
                balance += spec.contribution
                pending.append(Flow(spec.id, spec.owner, "account.contribution", -spec.contribution))

        flows.extend(pending)
        return balance
