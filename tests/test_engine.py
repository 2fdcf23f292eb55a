"""
End-to-end projection tests: known scenarios, determinism and conservation.
"""

import copy

import pytest

import config
from models import ReceiveType, SalaryEstimateMode, Scenario, ScenarioAssumptions
from projection import ConfigurationError, ProjectionEngine, pension, preset_assumptions, run_scenarios, summarize
from projection.money import scale


class TestSteadySaver:
    """Self aged 40, savings 1,000, +50 a period, one unlimited allocation rule, no return."""

    def test_balance_after_twelve_periods(self, run_projection, steady_saver_scenario):
        result = run_projection(steady_saver_scenario)
        snap = result.snapshots[11]

        assert snap.year == 2036
        assert snap.ages == {"self": 51}
        assert snap.account_balances["savings"] == 160_000
        assert snap.account_balances[config.LIQUID_ACCOUNT_ID] == 0

    def test_horizon_and_pinned_accounts(self, run_projection, steady_saver_scenario):
        result = run_projection(steady_saver_scenario)

        assert len(result.snapshots) == 51
        assert result.liquid_account_id == config.LIQUID_ACCOUNT_ID
        assert result.overdraft_account_id == config.OVERDRAFT_ACCOUNT_ID
        assert result.snapshots[-1].account_balances["savings"] == 100_000 + 51 * 5_000

    def test_waterfall_records_allocation(self, run_projection, steady_saver_scenario):
        snap = run_projection(steady_saver_scenario).snapshots[0]

        assert [(m.step, m.account_id, m.amount) for m in snap.waterfall] == [
            ("allocation_rule", "savings", 5_000)
        ]
        assert snap.income_breakdown == {"income.labor": 5_000}

    def test_monthly_granularity_spreads_yearly_amount(self, run_projection, steady_saver_scenario):
        payload = copy.deepcopy(steady_saver_scenario)
        payload["settings"]["granularity"] = "monthly"
        payload["incomes"][0]["amount"] = 120
        result = run_projection(payload)

        assert result.snapshots[0].net_cash_flow == 1_000
        assert result.snapshots[11].account_balances["savings"] == 100_000 + 12_000
        assert (result.snapshots[-1].year, result.snapshots[-1].month) == (2075, 1)


class TestFamily:

    def test_deterministic(self, run_projection, family_scenario):
        first = run_projection(family_scenario)
        second = run_projection(family_scenario)

        assert first.model_dump_json() == second.model_dump_json()

    def test_net_worth_reconciles_every_period(self, run_projection, family_scenario):
        result = run_projection(family_scenario)

        for snap in result.snapshots:
            assert snap.net_worth == (
                snap.starting_net_worth + snap.net_cash_flow + snap.asset_change - snap.debt_change
            )
            assert snap.net_worth == snap.total_assets - snap.total_debt
            assert sum(m.amount for m in snap.waterfall) == snap.net_cash_flow

        for previous, current in zip(result.snapshots, result.snapshots[1:]):
            assert current.starting_net_worth == previous.net_worth

    def test_only_overdraft_goes_negative(self, run_projection, family_scenario):
        result = run_projection(family_scenario)

        for snap in result.snapshots:
            for account_id, balance in snap.account_balances.items():
                if account_id != result.overdraft_account_id:
                    assert balance >= 0, (snap.year, account_id)

    def test_mortgage_retires_and_linked_expense_stops(self, run_projection, family_scenario):
        result = run_projection(family_scenario)
        by_year = {snap.year: snap for snap in result.snapshots}

        assert by_year[2039].debt_balances["mortgage"] == 0
        assert "debt.principal" in by_year[2039].expense_breakdown
        assert by_year[2039].expense_breakdown["expense.housing"] == (100 + 20) * 12 * 100
        assert by_year[2040].expense_breakdown["expense.housing"] == 100 * 12 * 100
        assert "debt.interest" not in by_year[2040].expense_breakdown

    def test_property_sale_and_rental_link(self, run_projection, family_scenario):
        result = run_projection(family_scenario)
        by_year = {snap.year: snap for snap in result.snapshots}

        assert by_year[2050].real_estate_values["home"] == 0
        assert by_year[2050].income_breakdown["real_estate.sale"] == by_year[2049].real_estate_values["home"]
        assert "expense.housing" not in by_year[2050].expense_breakdown

    def test_floating_rate_follows_base_rate_schedule(self, run_projection, family_scenario):
        payload = copy.deepcopy(family_scenario)
        payload["assumptions"]["base_rate_schedule"] = {"2026": 0.05}
        base = run_projection(family_scenario)
        shocked = run_projection(payload)

        assert shocked.snapshots[0].expense_breakdown == base.snapshots[0].expense_breakdown
        assert (
            shocked.snapshots[1].expense_breakdown["debt.interest"]
            > base.snapshots[1].expense_breakdown["debt.interest"]
        )

    def test_pension_pays_out_over_distribution_window(self, run_projection, family_scenario):
        result = run_projection(family_scenario)
        by_year = {snap.year: snap for snap in result.snapshots}

        assert "account.contribution" in by_year[2041].expense_breakdown
        assert "account.contribution" not in by_year[2042].expense_breakdown
        assert by_year[2042].income_breakdown["pension.distribution"] > 0
        assert by_year[2056].account_balances["pension"] == 0
        assert "pension.distribution" not in by_year[2057].income_breakdown

    def test_public_pension_indexed_from_start(self, run_projection, family_scenario):
        result = run_projection(family_scenario)
        by_year = {snap.year: snap for snap in result.snapshots}

        assert "income.pension" not in by_year[2046].income_breakdown
        assert by_year[2047].income_breakdown["income.pension"] == round(110_000 * 12 * 1.02 ** 22)

    def test_ages_for_both_people(self, run_projection, family_scenario):
        snap = run_projection(family_scenario).snapshots[0]

        assert snap.ages == {"self": 45, "spouse": 43}


class TestPropertyFinancing:

    def test_sale_settles_linked_debt(self, run_projection, steady_saver_scenario):
        payload = copy.deepcopy(steady_saver_scenario)
        payload["real_estate"] = [
            {"id": "flat", "value": 300_000, "rate_category": "fixed", "sell": {"year": 2030, "month": 1}}
        ]
        payload["debts"] = [
            {
                "id": "flat-loan",
                "principal": 100_000,
                "current_balance": 75_000,
                "repayment_type": "equal_principal",
                "start": {"year": 2020, "month": 1},
                "maturity": {"year": 2040, "month": 1},
                "source_type": "real_estate",
                "source_id": "flat",
            }
        ]
        result = run_projection(payload)
        by_year = {snap.year: snap for snap in result.snapshots}

        assert by_year[2029].debt_balances["flat-loan"] == 5_000_000
        assert by_year[2030].expense_breakdown["debt.settlement"] == 5_000_000
        assert by_year[2030].income_breakdown["real_estate.sale"] == 30_000_000
        assert by_year[2030].debt_balances["flat-loan"] == 0
        assert "debt.principal" not in by_year[2031].expense_breakdown

    def test_purchase_brings_property_on_the_books(self, run_projection, steady_saver_scenario):
        payload = copy.deepcopy(steady_saver_scenario)
        payload["real_estate"] = [
            {
                "id": "cabin",
                "value": 500,
                "rate_category": "fixed",
                "purchase": {"year": 2027, "month": 1},
                "rental": {"monthly_amount": 10, "rate_category": "fixed"},
            }
        ]
        result = run_projection(payload)
        by_year = {snap.year: snap for snap in result.snapshots}

        assert by_year[2026].real_estate_values["cabin"] == 0
        assert "income.rental" not in by_year[2026].income_breakdown
        assert by_year[2027].expense_breakdown["real_estate.purchase"] == 50_000
        assert by_year[2027].income_breakdown["income.rental"] == 12_000
        assert by_year[2027].real_estate_values["cabin"] == 50_000
        assert by_year[2027].assets_by_category["real_estate"] == 50_000


class TestIsolation:

    def test_broken_debt_is_isolated(self, run_projection, steady_saver_scenario):
        payload = copy.deepcopy(steady_saver_scenario)
        payload["debts"] = [
            {
                "id": "old-loan",
                "principal": 5_000,
                "current_balance": 5_000,
                "interest_rate": 0.05,
                "start": {"year": 2015, "month": 1},
                "maturity": {"year": 2020, "month": 1},
            }
        ]
        result = run_projection(payload)

        for snap in result.snapshots:
            assert snap.unavailable_entities == ["old-loan"]
            assert snap.debt_balances["old-loan"] == 500_000
            assert "debt.interest" not in snap.expense_breakdown
        assert result.snapshots[11].account_balances["savings"] == 160_000

    def test_zero_length_distribution_isolates_account(self, run_projection, steady_saver_scenario):
        payload = copy.deepcopy(steady_saver_scenario)
        payload["accounts"].append(
            {
                "id": "pension",
                "category": "pension",
                "balance": 2000,
                "return_rate": 0.0,
                "distribution": {"start_age": 60, "years": 0},
            }
        )
        result = run_projection(payload)
        by_year = {snap.year: snap for snap in result.snapshots}

        assert by_year[2044].unavailable_entities == []
        for year in (2045, 2060, 2075):
            assert by_year[year].unavailable_entities == ["pension"]
            assert by_year[year].account_balances["pension"] == 200_000
            assert "pension.distribution" not in by_year[year].income_breakdown
        assert by_year[2045].account_balances["savings"] == 100_000 + 21 * 5_000
        assert by_year[2075].account_balances["savings"] == 100_000 + 51 * 5_000


class TestPensionPayouts:

    @pytest.fixture
    def auto_pension(self):
        return {
            "id": "pension",
            "category": "pension",
            "balance": 0,
            "return_rate": 0.0,
            "calculation": {
                "kind": "auto",
                "annual_salary": 60000,
                "years_of_service": 10,
                "salary_rate_category": "fixed",
                "salary_growth_rate": 0.0,
            },
            "distribution": {"start_age": 60, "years": 10},
        }

    def test_lump_sum_paid_once_at_start(self, run_projection, steady_saver_scenario):
        payload = copy.deepcopy(steady_saver_scenario)
        payload["accounts"].append(
            {
                "id": "pension",
                "category": "pension",
                "balance": 2000,
                "return_rate": 0.0,
                "distribution": {"start_age": 60, "years": 10, "receive_type": "lump_sum"},
            }
        )
        result = run_projection(payload)
        by_year = {snap.year: snap for snap in result.snapshots}

        assert by_year[2044].account_balances["pension"] == 200_000
        assert by_year[2045].income_breakdown["pension.lump_sum"] == 200_000
        assert by_year[2045].account_balances["pension"] == 0
        assert by_year[2045].account_balances["savings"] == 100_000 + 21 * 5_000 + 200_000
        for year in (2046, 2054, 2070):
            assert "pension.lump_sum" not in by_year[year].income_breakdown
            assert by_year[year].account_balances["pension"] == 0

    def test_salary_estimate_booked_at_distribution_start(self, run_projection, steady_saver_scenario, auto_pension):
        payload = copy.deepcopy(steady_saver_scenario)
        payload["accounts"].append(auto_pension)
        result = run_projection(payload)
        by_year = {snap.year: snap for snap in result.snapshots}

        # 5,000 a month final salary x (10 + 25) years of service
        assert by_year[2044].account_balances["pension"] == 0
        assert by_year[2045].income_breakdown["pension.distribution"] == 145_833 * 12
        assert by_year[2045].account_balances["pension"] == 17_500_000 - 145_833 * 12
        assert by_year[2054].account_balances["pension"] == 0
        assert "pension.distribution" not in by_year[2055].income_breakdown

    def test_salary_estimate_counts_months_of_age(self, run_projection, steady_saver_scenario, auto_pension):
        payload = copy.deepcopy(steady_saver_scenario)
        payload["settings"]["granularity"] = "monthly"
        payload["household"]["primary"].update({"birth_month": 12, "retirement_age": 60})
        auto_pension["return_rate"] = 0.06
        auto_pension["distribution"]["start_age"] = 62
        payload["accounts"].append(auto_pension)
        result = run_projection(payload)

        # Aged 39 years 1 month at the start: 275 months to 62, 20 whole years to 60
        expected = pension.project_benefit(
            calculation=SalaryEstimateMode(annual_salary=60000, years_of_service=10, salary_rate_category="fixed"),
            receive_type=ReceiveType.LUMP_SUM,
            annual_return=0.06,
            months_to_start=275,
            distribution_months=120,
            years_to_retirement=20,
        ).value_at_start
        rate = pension.monthly_rate(0.06)
        payout = pension.distribution_payment(expected, rate, 120)
        start = result.snapshots[275]

        assert (start.year, start.month) == (2047, 12)
        assert result.snapshots[274].account_balances["pension"] == 0
        assert start.income_breakdown["pension.distribution"] == payout
        assert start.account_balances["pension"] == (expected - payout) + scale(expected - payout, rate)


class TestDebtOpening:

    def test_elapsed_schedule_sets_opening_balance(self, run_projection, steady_saver_scenario):
        payload = copy.deepcopy(steady_saver_scenario)
        payload["debts"] = [
            {
                "id": "student-loan",
                "principal": 10_000,
                "repayment_type": "equal_principal",
                "start": {"year": 2015, "month": 1},
                "maturity": {"year": 2035, "month": 1},
            }
        ]
        result = run_projection(payload)
        by_year = {snap.year: snap for snap in result.snapshots}

        # Ten of twenty years repaid before the run
        assert by_year[2025].starting_net_worth == 100_000 - 500_000
        assert by_year[2025].expense_breakdown["debt.principal"] == 50_000
        assert by_year[2025].debt_balances["student-loan"] == 450_000
        assert by_year[2034].debt_balances["student-loan"] == 0
        assert "debt.principal" not in by_year[2035].expense_breakdown

    def test_current_balance_wins_over_schedule(self, run_projection, steady_saver_scenario):
        payload = copy.deepcopy(steady_saver_scenario)
        payload["debts"] = [
            {
                "id": "student-loan",
                "principal": 10_000,
                "current_balance": 8_000,
                "repayment_type": "bullet",
                "start": {"year": 2015, "month": 1},
                "maturity": {"year": 2035, "month": 1},
            }
        ]
        snap = run_projection(payload).snapshots[0]

        assert snap.starting_net_worth == 100_000 - 800_000
        assert snap.debt_balances["student-loan"] == 800_000


class TestPhysicalAssets:

    def test_default_rate_depreciates(self, run_projection, steady_saver_scenario):
        payload = copy.deepcopy(steady_saver_scenario)
        payload["physical_assets"] = [{"id": "car", "value": 20_000}]
        result = run_projection(payload)
        first, second = result.snapshots[0], result.snapshots[1]

        assert first.physical_asset_values["car"] == 1_800_000
        assert second.physical_asset_values["car"] == 1_620_000
        assert first.asset_change == -200_000
        assert first.assets_by_category["physical_asset"] == 1_800_000
        assert first.net_worth == 100_000 + 2_000_000 + 5_000 - 200_000
        assert first.net_worth == first.total_assets - first.total_debt

    def test_purchase_loan_and_sale(self, run_projection, steady_saver_scenario):
        payload = copy.deepcopy(steady_saver_scenario)
        payload["physical_assets"] = [
            {
                "id": "van",
                "value": 30_000,
                "rate_category": "fixed",
                "purchase": {"year": 2027, "month": 1},
                "sell": {"year": 2029, "month": 1},
            }
        ]
        payload["debts"] = [
            {
                "id": "van-loan",
                "principal": 30_000,
                "repayment_type": "equal_principal",
                "start": {"year": 2027, "month": 1},
                "maturity": {"year": 2032, "month": 1},
                "source_type": "physical_asset",
                "source_id": "van",
            }
        ]
        payload["expenses"] = [
            {
                "id": "van-insurance",
                "amount": 50,
                "rate_category": "fixed",
                "source_type": "physical_asset",
                "source_id": "van",
            }
        ]
        result = run_projection(payload)
        by_year = {snap.year: snap for snap in result.snapshots}

        assert by_year[2026].physical_asset_values["van"] == 0
        assert "expense.living" not in by_year[2026].expense_breakdown
        assert by_year[2027].expense_breakdown["physical_asset.purchase"] == 3_000_000
        assert by_year[2027].income_breakdown["debt.proceeds"] == 3_000_000
        assert by_year[2027].physical_asset_values["van"] == 3_000_000
        assert by_year[2027].expense_breakdown["expense.living"] == 60_000
        assert by_year[2028].debt_balances["van-loan"] == 1_800_000

        assert by_year[2029].income_breakdown["physical_asset.sale"] == 3_000_000
        assert by_year[2029].expense_breakdown["debt.settlement"] == 1_800_000
        assert by_year[2029].debt_balances["van-loan"] == 0
        assert by_year[2029].physical_asset_values["van"] == 0
        assert "expense.living" not in by_year[2029].expense_breakdown
        assert "debt.principal" not in by_year[2030].expense_breakdown

        for snap in result.snapshots:
            assert snap.net_worth == snap.total_assets - snap.total_debt

    def test_purchase_price_paid_and_booked(self, run_projection, steady_saver_scenario):
        payload = copy.deepcopy(steady_saver_scenario)
        payload["physical_assets"] = [
            {
                "id": "boat",
                "value": 8_000,
                "purchase_price": 10_000,
                "rate_category": "fixed",
                "purchase": {"year": 2026, "month": 1},
            }
        ]
        by_year = {snap.year: snap for snap in run_projection(payload).snapshots}

        assert by_year[2026].expense_breakdown["physical_asset.purchase"] == 1_000_000
        assert by_year[2026].physical_asset_values["boat"] == 1_000_000


class TestRateSeries:

    def test_indexed_stream_reads_each_year(self, run_projection, steady_saver_scenario):
        payload = copy.deepcopy(steady_saver_scenario)
        payload["incomes"][0]["rate_category"] = "inflation"
        payload["assumptions"] = {"rate_series": {"inflation": [0.10, 0.0]}}
        result = run_projection(payload)

        assert [snap.net_cash_flow for snap in result.snapshots[:5]] == [5_000, 5_000, 5_500, 5_500, 6_050]

    def test_offset_shifts_the_series(self, run_projection, steady_saver_scenario):
        payload = copy.deepcopy(steady_saver_scenario)
        payload["incomes"][0]["rate_category"] = "inflation"
        payload["assumptions"] = {"rate_series": {"inflation": [0.10, 0.0]}, "series_offset": 1}
        result = run_projection(payload)

        assert [snap.net_cash_flow for snap in result.snapshots[:4]] == [5_000, 5_500, 5_500, 6_050]

    def test_account_return_follows_series(self, run_projection, steady_saver_scenario):
        payload = copy.deepcopy(steady_saver_scenario)
        payload["accounts"].append({"id": "fund", "category": "investment", "balance": 1000})
        payload["assumptions"] = {"rate_series": {"investment": [0.10, -0.10]}}
        result = run_projection(payload)

        assert [snap.account_balances["fund"] for snap in result.snapshots[:3]] == [110_000, 99_000, 108_900]


class TestLiquidAccount:

    def test_single_checking_account_is_liquid(self, run_projection, steady_saver_scenario):
        payload = copy.deepcopy(steady_saver_scenario)
        payload["incomes"] = []
        payload["expenses"] = [{"id": "rent", "amount": 5, "frequency": "yearly", "rate_category": "fixed"}]
        payload["accounts"].append({"id": "wallet", "category": "checking", "balance": 10})
        result = run_projection(payload)
        snap = result.snapshots[0]

        assert result.liquid_account_id == "wallet"
        assert config.LIQUID_ACCOUNT_ID not in snap.account_balances
        assert snap.account_balances["wallet"] == 500
        assert [m.step for m in snap.waterfall] == ["liquid_draw"]

    def test_two_checking_accounts_fall_back_to_synthesized_cash(self, run_projection, steady_saver_scenario):
        payload = copy.deepcopy(steady_saver_scenario)
        payload["accounts"].append({"id": "wallet", "category": "checking", "balance": 10})
        payload["accounts"].append({"id": "joint", "category": "checking", "balance": 10})
        result = run_projection(payload)

        assert result.liquid_account_id == config.LIQUID_ACCOUNT_ID


class TestDeficitFlow:

    def test_shortfall_drains_savings_then_overdraft(self, run_projection, steady_saver_scenario):
        payload = copy.deepcopy(steady_saver_scenario)
        payload["incomes"] = []
        payload["expenses"] = [
            {"id": "rent", "amount": 400, "frequency": "yearly", "rate_category": "fixed"}
        ]
        result = run_projection(payload)

        assert result.snapshots[1].account_balances["savings"] == 20_000
        assert result.snapshots[2].account_balances["savings"] == 0
        assert result.snapshots[2].account_balances[config.OVERDRAFT_ACCOUNT_ID] == -20_000
        steps = [m.step for m in result.snapshots[2].waterfall]
        assert steps == ["withdrawal_rule", "overdraft_charge"]

        summary = summarize(result)
        assert summary.first_overdraft_year == 2027

    def test_explicit_empty_withdrawal_list_goes_straight_to_overdraft(self, run_projection, steady_saver_scenario):
        payload = copy.deepcopy(steady_saver_scenario)
        payload["incomes"] = []
        payload["expenses"] = [{"id": "rent", "amount": 10, "frequency": "yearly", "rate_category": "fixed"}]
        payload["priorities"]["withdrawal_rules"] = []
        result = run_projection(payload)

        assert result.snapshots[0].account_balances["savings"] == 100_000
        assert result.snapshots[0].account_balances[config.OVERDRAFT_ACCOUNT_ID] == -1_000


class TestEngineSetup:

    def test_invalid_scenario_rejected_before_projection(self, steady_saver_scenario):
        payload = copy.deepcopy(steady_saver_scenario)
        payload["priorities"]["allocation_rules"][0]["account_id"] = "ghost"

        with pytest.raises(ConfigurationError):
            ProjectionEngine(Scenario(**payload))

    def test_start_after_horizon(self, steady_saver_scenario):
        payload = copy.deepcopy(steady_saver_scenario)
        payload["settings"]["start"] = {"year": 2080, "month": 1}

        with pytest.raises(ConfigurationError, match="horizon"):
            ProjectionEngine(Scenario(**payload))

    def test_assumptions_override(self, run_projection, family_scenario):
        high = run_projection(family_scenario, ScenarioAssumptions(investment_return_rate=0.09))
        low = run_projection(family_scenario, ScenarioAssumptions(investment_return_rate=0.01))

        assert high.snapshots[-1].net_worth > low.snapshots[-1].net_worth


class TestPresetsAndSummary:

    def test_unknown_preset(self):
        with pytest.raises(ConfigurationError, match="unknown preset"):
            preset_assumptions("euphoric")

    def test_preset_keeps_base_schedule(self):
        base = ScenarioAssumptions(base_rate_schedule={2030: 0.06})
        optimistic = preset_assumptions("optimistic", base)

        assert optimistic.investment_return_rate == 0.08
        assert optimistic.base_rate_for(2030) == 0.06
        assert optimistic.base_rate_for(2031) == 0.025

    def test_presets_ordered_by_outcome(self, family_scenario):
        scenario = Scenario(**family_scenario)
        sets = {name: preset_assumptions(name, scenario.assumptions) for name in config.SCENARIO_PRESETS}
        results = run_scenarios(scenario, sets, parallel=False)

        assert list(results) == ["optimistic", "average", "pessimistic"]
        finals = {name: result.snapshots[-1].net_worth for name, result in results.items()}
        assert finals["optimistic"] > finals["average"] > finals["pessimistic"]

    def test_summary_series(self, run_projection, steady_saver_scenario):
        result = run_projection(steady_saver_scenario)
        scenario = Scenario(**steady_saver_scenario)
        summary = summarize(result, scenario.household)

        assert summary.years[0] == 2025
        assert len(summary.net_worth) == len(result.snapshots)
        assert summary.final_net_worth == result.snapshots[-1].net_worth
        assert summary.peak_year == 2075
        assert summary.first_overdraft_year is None
        assert summary.retirement_net_worth == 100_000 + 26 * 5_000
