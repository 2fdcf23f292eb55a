import logging
from typing import Dict

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

import config
from models import (
    Account,
    AccountCategory,
    AllocateMode,
    AllocationRule,
    CashFlowPriorities,
    CompareRequest,
    ContributionSchedule,
    Debt,
    DistributionSchedule,
    ExpenseStream,
    Household,
    IncomeStream,
    LifeEnd,
    MaintainBalanceMode,
    PensionEstimate,
    PensionEstimateRequest,
    Person,
    PhysicalAsset,
    ProjectionSummary,
    PublicPension,
    RealEstateHolding,
    RepaymentType,
    RetirementEnd,
    RuleMoveRequest,
    Scenario,
    SimulationResponse,
    SimulationSettings,
    WithdrawalRule,
    YearMonth,
)
from projection import (
    ConfigurationError,
    InvariantViolation,
    ProjectionArithmeticError,
    ProjectionEngine,
    preset_assumptions,
    run_scenarios,
    summarize,
)
from projection import pension
from projection.money import to_minor
from projection.rules import move_rule

logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)
logger = logging.getLogger(__name__)

# ============================
# FastAPI app
# ============================
app = FastAPI(title=config.API_TITLE, version=config.API_VERSION, description=config.API_DESCRIPTION)
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=config.CORS_CREDENTIALS,
    allow_methods=config.CORS_METHODS,
    allow_headers=config.CORS_HEADERS,
)


def _engine_error(error: Exception) -> HTTPException:
    if isinstance(error, InvariantViolation):
        logger.error("projection invariant violated: %s", error)
        return HTTPException(status_code=500, detail=str(error))
    return HTTPException(status_code=400, detail=str(error))


@app.get("/")
def root():
    return {"message": config.API_TITLE, "docs": "Visit /docs for API documentation"}


@app.get("/api/default_scenario")
def default_scenario() -> Scenario:
    sc = Scenario(
        name="Example",
        household=Household(
            primary=Person(birth_year=1985, birth_month=4, retirement_age=60, life_expectancy=90),
            spouse=Person(birth_year=1987, birth_month=9, retirement_age=60, life_expectancy=92),
        ),
        settings=SimulationSettings(start=YearMonth(year=2025, month=1)),
        incomes=[
            IncomeStream(id="salary", title="Salary", owner="self", amount=5_500, end=RetirementEnd(person="self")),
            IncomeStream(
                id="spouse-salary", title="Spouse salary", owner="spouse", amount=3_800,
                end=RetirementEnd(person="spouse"),
            ),
            IncomeStream(
                id="bonus", title="Annual bonus", amount=6_000, frequency="yearly",
                end=RetirementEnd(person="self"),
            ),
        ],
        expenses=[
            ExpenseStream(id="living", title="Living costs", owner="common", amount=4_200, end=LifeEnd(person="spouse")),
            ExpenseStream(
                id="school", title="Tuition", type="education", owner="common", amount=900,
                start=YearMonth(year=2031, month=3), end={"kind": "date", "year": 2037, "month": 3},
            ),
        ],
        accounts=[
            Account(id="checking", title="Checking", category=AccountCategory.CHECKING, balance=8_000),
            Account(id="emergency", title="Emergency fund", category=AccountCategory.SAVINGS, balance=15_000),
            Account(id="brokerage", title="Brokerage", category=AccountCategory.INVESTMENT, balance=60_000),
            Account(
                id="workplace-pension", title="Workplace pension", category=AccountCategory.PENSION,
                balance=45_000,
                contribution=ContributionSchedule(monthly_amount=400, end=RetirementEnd(person="self")),
                distribution=DistributionSchedule(start_age=60, years=20),
            ),
        ],
        debts=[
            Debt(
                id="mortgage", title="Mortgage", type="mortgage", owner="common", principal=320_000,
                current_balance=250_000, interest_rate=0.042, repayment_type=RepaymentType.EQUAL_INSTALLMENT,
                start=YearMonth(year=2019, month=6), maturity=YearMonth(year=2049, month=6),
                source_type="real_estate", source_id="home",
            ),
            Debt(
                id="car-loan", title="Car loan", type="auto", principal=24_000, interest_rate=0.059,
                repayment_type=RepaymentType.EQUAL_PRINCIPAL,
                start=YearMonth(year=2023, month=9), maturity=YearMonth(year=2029, month=9),
                source_type="physical_asset", source_id="car",
            ),
        ],
        real_estate=[RealEstateHolding(id="home", title="Home", value=480_000)],
        physical_assets=[
            PhysicalAsset(
                id="car", title="Family car", value=21_000, purchase_price=30_000,
                sell=YearMonth(year=2033, month=9),
            ),
        ],
        public_pensions=[
            PublicPension(id="state-pension", title="State pension", owner="self", monthly_amount=1_300),
            PublicPension(id="spouse-state-pension", title="State pension", owner="spouse", monthly_amount=900),
        ],
        priorities=CashFlowPriorities(
            liquid_account_id="checking",
            allocation_rules=[
                AllocationRule(
                    id="keep-emergency", priority=1, account_id="emergency",
                    mode=MaintainBalanceMode(target=25_000),
                ),
                AllocationRule(
                    id="invest", priority=2, account_id="brokerage", mode=AllocateMode(annual_limit=18_000),
                ),
            ],
            withdrawal_rules=[
                WithdrawalRule(id="draw-emergency", priority=1, account_id="emergency"),
                WithdrawalRule(id="draw-brokerage", priority=2, account_id="brokerage"),
            ],
        ),
    )
    return sc


@app.post("/api/simulate")
def simulate(scenario: Scenario) -> SimulationResponse:
    try:
        result = ProjectionEngine(scenario).run()
    except (ConfigurationError, InvariantViolation) as e:
        raise _engine_error(e)
    return SimulationResponse(result=result, summary=summarize(result, scenario.household))


@app.post("/api/compare")
def compare(request: CompareRequest) -> Dict[str, ProjectionSummary]:
    try:
        assumption_sets = {
            name: preset_assumptions(name, request.scenario.assumptions) for name in request.presets
        }
        results = run_scenarios(request.scenario, assumption_sets)
    except (ConfigurationError, InvariantViolation) as e:
        raise _engine_error(e)
    return {name: summarize(result, request.scenario.household) for name, result in results.items()}


@app.post("/api/pension/estimate")
def estimate_pension(request: PensionEstimateRequest) -> PensionEstimate:
    start_age = pension.clamp_start_age(request.start_age)
    years_to_retirement = max(0, request.retirement_age - request.current_age)
    try:
        benefit = pension.project_benefit(
            calculation=request.calculation,
            receive_type=request.receive_type,
            annual_return=request.return_rate,
            months_to_start=(start_age - request.current_age) * 12,
            distribution_months=request.distribution_years * 12,
            balance=to_minor(request.balance),
            monthly_contribution=to_minor(request.monthly_contribution),
            contribution_months=years_to_retirement * 12,
            years_to_retirement=years_to_retirement,
            salary_growth=request.salary_growth_rate,
        )
    except ProjectionArithmeticError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return PensionEstimate(
        start_age=start_age,
        value_at_start=benefit.value_at_start,
        receive_type=benefit.receive_type,
        monthly_payment=benefit.monthly_payment,
        annual_payment=benefit.annual_payment,
    )


@app.post("/api/priorities/move")
def move_priority(request: RuleMoveRequest) -> CashFlowPriorities:
    priorities = request.priorities
    try:
        if request.kind == "allocation":
            rules = move_rule(priorities.allocation_rules, request.rule_id, request.position)
            return priorities.model_copy(update={"allocation_rules": rules})
        rules = move_rule(priorities.withdrawal_rules or [], request.rule_id, request.position)
        return priorities.model_copy(update={"withdrawal_rules": rules})
    except ConfigurationError as e:
        raise HTTPException(status_code=404, detail=str(e))
