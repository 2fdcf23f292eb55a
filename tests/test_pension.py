"""
Test pension accumulation, level distribution and benefit projection.
"""

from decimal import Decimal

import pytest

from models import ManualMode, ReceiveType, SalaryEstimateMode
from projection import pension
from projection.errors import ProjectionArithmeticError


class TestRates:

    def test_monthly_rate_compounds_to_annual(self):
        rate = pension.monthly_rate(0.06)

        assert abs((1 + rate) ** 12 - Decimal("1.06")) < Decimal("1e-20")

    def test_start_age_clamped_to_minimum(self, caplog):
        assert pension.clamp_start_age(50, "irp") == 56
        assert "raised to minimum" in caplog.text
        assert pension.clamp_start_age(60) == 60


class TestAccumulation:

    def test_zero_rate_sums_contributions(self):
        assert pension.accumulation_value(100_000, 10_000, Decimal(0), 24) == 340_000

    def test_balance_only_growth(self):
        value = pension.accumulation_value(1_000_000, 0, pension.monthly_rate(0.05), 120)

        assert abs(value - 1_628_895) <= 1

    def test_short_contribution_window_keeps_growing(self):
        rate = pension.monthly_rate(0.04)
        full = pension.accumulation_value(0, 50_000, rate, 120)
        partial = pension.accumulation_value(0, 50_000, rate, 120, contribution_months=60)
        paid_only = pension.accumulation_value(0, 50_000, rate, 60)

        assert paid_only < partial < full

    def test_negative_months_treated_as_none(self):
        assert pension.accumulation_value(123_456, 1_000, Decimal("0.01"), -5) == 123_456


class TestDistribution:

    def test_zero_rate_is_linear(self):
        assert pension.distribution_payment(1_200_000, Decimal(0), 120) == 10_000

    def test_zero_length_raises(self):
        with pytest.raises(ProjectionArithmeticError) as excinfo:
            pension.distribution_payment(1_000_000, Decimal("0.004"), 0, entity_id="annuity")

        assert excinfo.value.entity_id == "annuity"

    def test_payment_exhausts_balance(self):
        """Paying PMT for n months at rate r leaves (within a minor unit) nothing."""
        rate = pension.monthly_rate(0.05)
        balance = Decimal(50_000_000)
        payment = pension.level_payment(balance, rate, 240)

        for _ in range(240):
            balance = balance * (1 + rate) - payment

        assert abs(balance) < 1

    def test_round_trip_with_accumulation(self):
        """FV of a level payment stream equals the balance grown for the same term."""
        rate = pension.monthly_rate(0.03)
        payment = pension.level_payment(20_000_000, rate, 180)
        grown_balance = Decimal(20_000_000) * (1 + rate) ** 180
        annuity_fv = payment * ((1 + rate) ** 180 - 1) / rate

        assert abs(grown_balance - annuity_fv) < 1


class TestSalaryEstimate:

    def test_final_salary_times_service(self):
        # 60,000 a year, 10 years served, 5 more to go at 0% growth
        assert pension.salary_estimate(6_000_000, 10, 5) == 500_000 * 15

    def test_salary_growth_applies_to_final_salary(self):
        flat = pension.salary_estimate(6_000_000, 10, 5)
        grown = pension.salary_estimate(6_000_000, 10, 5, 0.03)

        assert grown == round(flat * 1.03 ** 5)


class TestProjectBenefit:

    def test_manual_annuity(self):
        benefit = pension.project_benefit(
            calculation=ManualMode(),
            receive_type=ReceiveType.ANNUITY,
            annual_return=0.0,
            months_to_start=12,
            distribution_months=120,
            balance=1_000_000,
            monthly_contribution=10_000,
        )

        assert benefit.value_at_start == 1_120_000
        assert benefit.monthly_payment == 9_333
        assert benefit.annual_payment == 9_333 * 12

    def test_lump_sum_reports_total_only(self):
        benefit = pension.project_benefit(
            calculation=ManualMode(),
            receive_type=ReceiveType.LUMP_SUM,
            annual_return=0.05,
            months_to_start=60,
            distribution_months=0,
            balance=1_000_000,
        )

        assert benefit.monthly_payment == 0
        assert benefit.value_at_start > 1_000_000

    def test_salary_estimate_mode_defers_to_start(self):
        calculation = SalaryEstimateMode(annual_salary=60_000, years_of_service=10)
        at_retirement = pension.project_benefit(
            calculation=calculation,
            receive_type=ReceiveType.LUMP_SUM,
            annual_return=0.04,
            months_to_start=60,
            distribution_months=120,
            years_to_retirement=5,
        )
        deferred = pension.project_benefit(
            calculation=calculation,
            receive_type=ReceiveType.LUMP_SUM,
            annual_return=0.04,
            months_to_start=120,
            distribution_months=120,
            years_to_retirement=5,
        )

        assert at_retirement.value_at_start == 7_500_000
        assert abs(deferred.value_at_start - 7_500_000 * 1.04 ** 5) <= 1
