"""
Pydantic models for the household projection engine.
Input records, scenario assumptions and response models.
"""

from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, conint

import config


# ============================
# Enumerations
# ============================
class Owner(str, Enum):
    SELF = "self"
    SPOUSE = "spouse"
    COMMON = "common"


class RateCategory(str, Enum):
    INFLATION = "inflation"
    INCOME = "income"
    INVESTMENT = "investment"
    REAL_ESTATE = "realEstate"
    PHYSICAL_ASSET = "physicalAsset"
    FIXED = "fixed"


class Frequency(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


class Granularity(str, Enum):
    ANNUAL = "annual"
    MONTHLY = "monthly"


class AccountCategory(str, Enum):
    CHECKING = "checking"
    SAVINGS = "savings"
    INVESTMENT = "investment"
    PENSION = "pension"
    OVERDRAFT = "overdraft"


class ReceiveType(str, Enum):
    ANNUITY = "annuity"
    LUMP_SUM = "lump_sum"


class RateType(str, Enum):
    FIXED = "fixed"
    FLOATING = "floating"


class RepaymentType(str, Enum):
    BULLET = "bullet"
    EQUAL_INSTALLMENT = "equal_installment"
    EQUAL_PRINCIPAL = "equal_principal"
    GRACE_THEN_AMORTIZE = "grace_then_amortize"


# ============================
# Time Models
# ============================
class YearMonth(BaseModel):
    """Calendar month; month is 1-based."""
    year: int
    month: conint(ge=1, le=12) = 1


class Person(BaseModel):
    birth_year: int
    birth_month: conint(ge=1, le=12) = 1
    retirement_age: int = config.DEFAULT_RETIREMENT_AGE
    life_expectancy: int = config.DEFAULT_LIFE_EXPECTANCY


class Household(BaseModel):
    primary: Person
    spouse: Optional[Person] = None

    def person(self, owner: Union[Owner, str]) -> Optional[Person]:
        """Person behind an owner; common entities follow the primary person."""
        if Owner(owner) == Owner.SPOUSE:
            return self.spouse
        return self.primary


class DateEnd(BaseModel):
    """Ends at an explicit month (exclusive)."""
    kind: Literal["date"] = "date"
    year: int
    month: conint(ge=1, le=12) = 1


class RetirementEnd(BaseModel):
    """Ends when the person retires."""
    kind: Literal["retirement"] = "retirement"
    person: Literal["self", "spouse"] = "self"


class LifeEnd(BaseModel):
    """Runs through the person's final simulated period."""
    kind: Literal["life"] = "life"
    person: Literal["self", "spouse"] = "self"


EndCondition = Annotated[Union[DateEnd, RetirementEnd, LifeEnd], Field(discriminator="kind")]


# ============================
# Income & Expense Models
# ============================
class IncomeStream(BaseModel):
    """Recurring income (salary, business, rental, pension, ...)."""
    id: str
    title: str = ""
    type: str = "labor"
    owner: Owner = Owner.SELF
    amount: float
    frequency: Frequency = Frequency.MONTHLY
    rate_category: RateCategory = RateCategory.INCOME
    growth_rate: float = 0.0  # used when rate_category is "fixed"
    start: Optional[YearMonth] = None  # None = simulation start
    end: Optional[EndCondition] = None  # None = horizon
    source_type: Optional[str] = None  # "debt", "real_estate" or "physical_asset"; stream stops with its source
    source_id: Optional[str] = None


class ExpenseStream(BaseModel):
    """Recurring expense (living, housing, education, ...)."""
    id: str
    title: str = ""
    type: str = "living"
    owner: Owner = Owner.SELF
    amount: float
    frequency: Frequency = Frequency.MONTHLY
    rate_category: RateCategory = RateCategory.INFLATION
    growth_rate: float = 0.0
    start: Optional[YearMonth] = None
    end: Optional[EndCondition] = None
    source_type: Optional[str] = None  # "debt", "real_estate" or "physical_asset"; stream stops with its source
    source_id: Optional[str] = None


class PublicPension(BaseModel):
    """State pension paid monthly from start_age, indexed to inflation."""
    id: str
    title: str = ""
    owner: Owner = Owner.SELF
    monthly_amount: float
    start_age: int = config.DEFAULT_PUBLIC_PENSION_START_AGE
    end_age: Optional[int] = None  # None = life expectancy


# ============================
# Account Models
# ============================
class ContributionSchedule(BaseModel):
    monthly_amount: float
    start: Optional[YearMonth] = None
    end: Optional[EndCondition] = None


class DistributionSchedule(BaseModel):
    start_age: int
    years: int = config.DEFAULT_DISTRIBUTION_YEARS
    receive_type: ReceiveType = ReceiveType.ANNUITY


class ManualMode(BaseModel):
    """Benefit is whatever the account balance grows to."""
    kind: Literal["manual"] = "manual"


class SalaryEstimateMode(BaseModel):
    """Defined-benefit estimate: final monthly salary x total years of service."""
    kind: Literal["auto"] = "auto"
    annual_salary: float
    years_of_service: float = 0.0
    salary_rate_category: RateCategory = RateCategory.INCOME
    salary_growth_rate: float = 0.0


CalculationMode = Annotated[Union[ManualMode, SalaryEstimateMode], Field(discriminator="kind")]


class Account(BaseModel):
    """Savings, investment or pension balance, or one of the pinned accounts."""
    id: str
    title: str = ""
    category: AccountCategory = AccountCategory.SAVINGS
    owner: Owner = Owner.SELF
    balance: float = 0.0
    rate_category: Optional[RateCategory] = None
    return_rate: Optional[float] = None  # explicit annual rate wins over rate_category
    contribution: Optional[ContributionSchedule] = None
    distribution: Optional[DistributionSchedule] = None
    calculation: CalculationMode = Field(default_factory=ManualMode)


# ============================
# Debt & Holding Models
# ============================
class Debt(BaseModel):
    id: str
    title: str = ""
    type: str = "other"
    owner: Owner = Owner.SELF
    principal: float
    current_balance: Optional[float] = None  # None = derived from the months elapsed before the run
    rate_type: RateType = RateType.FIXED
    interest_rate: float = 0.0
    spread: float = 0.0  # floating: base rate + spread
    repayment_type: RepaymentType = RepaymentType.EQUAL_INSTALLMENT
    grace_months: int = 0
    after_grace: RepaymentType = RepaymentType.EQUAL_INSTALLMENT
    start: YearMonth
    maturity: YearMonth
    source_type: Optional[str] = None  # "real_estate" or "physical_asset": settled when the holding is sold
    source_id: Optional[str] = None


class RentalIncome(BaseModel):
    monthly_amount: float
    rate_category: RateCategory = RateCategory.INFLATION
    growth_rate: float = 0.0
    start: Optional[YearMonth] = None
    end: Optional[EndCondition] = None


class RealEstateHolding(BaseModel):
    id: str
    title: str = ""
    type: str = "residence"
    owner: Owner = Owner.COMMON
    value: float
    rate_category: RateCategory = RateCategory.REAL_ESTATE
    growth_rate: float = 0.0
    rental: Optional[RentalIncome] = None
    purchase: Optional[YearMonth] = None  # None = already owned
    sell: Optional[YearMonth] = None


class PhysicalAsset(BaseModel):
    """Vehicle, equipment or other tangible item; depreciates by default."""
    id: str
    title: str = ""
    type: str = "vehicle"
    owner: Owner = Owner.SELF
    value: float  # current value, or the value once bought
    purchase_price: Optional[float] = None  # None = value
    rate_category: RateCategory = RateCategory.PHYSICAL_ASSET
    growth_rate: float = 0.0
    purchase: Optional[YearMonth] = None  # None = already owned
    sell: Optional[YearMonth] = None


# ============================
# Cash Flow Priority Models
# ============================
class AllocateMode(BaseModel):
    kind: Literal["allocate"] = "allocate"
    annual_limit: Optional[float] = None  # None = unlimited


class MaintainBalanceMode(BaseModel):
    kind: Literal["maintain_balance"] = "maintain_balance"
    target: float


AllocationMode = Annotated[Union[AllocateMode, MaintainBalanceMode], Field(discriminator="kind")]


class RuleWindow(BaseModel):
    """Active window; end is exclusive, missing bounds are open."""
    start: Optional[YearMonth] = None
    end: Optional[YearMonth] = None


class AllocationRule(BaseModel):
    id: str
    priority: int
    account_id: str
    mode: AllocationMode = Field(default_factory=AllocateMode)
    window: Optional[RuleWindow] = None


class WithdrawalRule(BaseModel):
    id: str
    priority: int
    account_id: str
    window: Optional[RuleWindow] = None


class CashFlowPriorities(BaseModel):
    allocation_rules: List[AllocationRule] = Field(default_factory=list)
    withdrawal_rules: Optional[List[WithdrawalRule]] = None  # None = derived default
    liquid_account_id: Optional[str] = None
    overdraft_account_id: Optional[str] = None


# ============================
# Scenario Models
# ============================
class ScenarioAssumptions(BaseModel):
    """
    Annual rates behind each rate category. Immutable for the whole run.

    A category listed in ``rate_series`` takes its rate year by year from the
    series instead: the first simulated year reads entry ``series_offset`` and
    the series wraps around when the run outlasts it.
    """
    model_config = ConfigDict(frozen=True)

    inflation_rate: float = 0.025
    income_growth_rate: float = config.DEFAULT_INCOME_GROWTH_RATE
    investment_return_rate: float = config.DEFAULT_RETURN_RATE
    real_estate_growth_rate: float = 0.025
    physical_asset_rate: float = config.DEFAULT_PHYSICAL_ASSET_RATE
    base_rate: float = 0.035  # floating-rate debt reference
    base_rate_schedule: Dict[int, float] = Field(default_factory=dict)  # year -> base rate
    rate_series: Dict[RateCategory, List[float]] = Field(default_factory=dict)
    series_offset: conint(ge=0) = 0

    def rate_for(self, category: RateCategory, fixed_rate: float = 0.0) -> float:
        category = RateCategory(category)
        if category == RateCategory.INFLATION:
            return self.inflation_rate
        if category == RateCategory.INCOME:
            return self.income_growth_rate
        if category == RateCategory.INVESTMENT:
            return self.investment_return_rate
        if category == RateCategory.REAL_ESTATE:
            return self.real_estate_growth_rate
        if category == RateCategory.PHYSICAL_ASSET:
            return self.physical_asset_rate
        return fixed_rate

    def has_series(self, category: RateCategory) -> bool:
        return bool(self.rate_series.get(RateCategory(category)))

    def rate_for_year(self, category: RateCategory, year: int, start_year: int, fixed_rate: float = 0.0) -> float:
        """Rate of ``category`` in calendar ``year`` of a run starting in ``start_year``."""
        series = self.rate_series.get(RateCategory(category))
        if not series:
            return self.rate_for(category, fixed_rate)
        return series[(self.series_offset + year - start_year) % len(series)]

    def base_rate_for(self, year: int) -> float:
        return self.base_rate_schedule.get(year, self.base_rate)


class SimulationSettings(BaseModel):
    start: YearMonth
    granularity: Granularity = Granularity(config.DEFAULT_GRANULARITY)


class Scenario(BaseModel):
    """Complete household projection input"""
    name: str = "Base"
    household: Household
    settings: SimulationSettings
    assumptions: ScenarioAssumptions = Field(default_factory=ScenarioAssumptions)

    incomes: List[IncomeStream] = Field(default_factory=list)
    expenses: List[ExpenseStream] = Field(default_factory=list)
    accounts: List[Account] = Field(default_factory=list)
    debts: List[Debt] = Field(default_factory=list)
    real_estate: List[RealEstateHolding] = Field(default_factory=list)
    physical_assets: List[PhysicalAsset] = Field(default_factory=list)
    public_pensions: List[PublicPension] = Field(default_factory=list)

    priorities: CashFlowPriorities = Field(default_factory=CashFlowPriorities)


# ============================
# Response Models
# ============================
class WaterfallStep(BaseModel):
    """One move of the waterfall; amount is signed from the account's view."""
    step: str  # overdraft_paydown | allocation_rule | liquid_cash | liquid_draw | withdrawal_rule | overdraft_charge
    account_id: str
    rule_id: Optional[str] = None
    amount: int


class Snapshot(BaseModel):
    """End-of-period household state. Money in minor units."""
    index: int
    year: int
    month: int
    ages: Dict[str, int]

    assets_by_category: Dict[str, int]
    total_assets: int
    total_debt: int
    net_worth: int
    starting_net_worth: int
    asset_change: int
    debt_change: int

    total_inflow: int
    total_outflow: int
    net_cash_flow: int
    income_breakdown: Dict[str, int]
    expense_breakdown: Dict[str, int]
    owner_net_cash_flow: Dict[str, int]
    waterfall: List[WaterfallStep]

    account_balances: Dict[str, int]
    debt_balances: Dict[str, int]
    real_estate_values: Dict[str, int]
    physical_asset_values: Dict[str, int] = Field(default_factory=dict)
    unavailable_entities: List[str] = Field(default_factory=list)


class ProjectionResult(BaseModel):
    scenario_name: str
    granularity: Granularity
    liquid_account_id: str
    overdraft_account_id: str
    snapshots: List[Snapshot]


class ProjectionSummary(BaseModel):
    """Chart-ready series derived from a projection"""
    years: List[int]
    net_worth: List[int]
    liquid_balance: List[int]
    overdraft_balance: List[int]
    final_net_worth: int
    peak_net_worth: int
    peak_year: int
    first_overdraft_year: Optional[int] = None
    retirement_net_worth: Optional[int] = None


class SimulationResponse(BaseModel):
    result: ProjectionResult
    summary: ProjectionSummary


class CompareRequest(BaseModel):
    scenario: Scenario
    presets: List[str] = Field(default_factory=lambda: list(config.SCENARIO_PRESETS))


class PensionEstimateRequest(BaseModel):
    current_age: int
    retirement_age: int
    start_age: int
    balance: float = 0.0
    monthly_contribution: float = 0.0
    return_rate: float = config.DEFAULT_RETURN_RATE
    salary_growth_rate: float = config.DEFAULT_INCOME_GROWTH_RATE
    distribution_years: int = config.DEFAULT_DISTRIBUTION_YEARS
    receive_type: ReceiveType = ReceiveType.ANNUITY
    calculation: CalculationMode = Field(default_factory=ManualMode)


class PensionEstimate(BaseModel):
    """Benefit projection; money in minor units."""
    start_age: int
    value_at_start: int
    receive_type: ReceiveType
    monthly_payment: int = 0
    annual_payment: int = 0


class RuleMoveRequest(BaseModel):
    priorities: CashFlowPriorities
    rule_id: str
    position: int  # 1-based target rank
    kind: Literal["allocation", "withdrawal"] = "allocation"
