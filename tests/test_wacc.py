from __future__ import annotations

import math

import pytest

from valuation_engine.config import EngineSettings
from valuation_engine.models.dcf import WACCDefaultsInput
from valuation_engine.models.financials import BalanceSheet, FinancialPeriod
from valuation_engine.sample_data import build_sample_periods
from valuation_engine.services.dcf import perpetuity_enterprise_value
from valuation_engine.services.wacc import (
    calculate_csr_from_readiness,
    calculate_wacc_defaults,
    derive_wacc_inputs,
    find_ebitda_tier,
    interpolate_size_risk_premium,
    solve_implied_wacc,
)


@pytest.mark.parametrize(
    "ebitda, label",
    [(0, "Micro"), (499_999, "Micro"), (500_000, "Small"), (3_000_000, "Lower-Mid"), (75_000_000, "Enterprise")],
)
def test_ebitda_tiers(ebitda, label):
    assert find_ebitda_tier(ebitda).label == label


def test_size_premium_log_interpolation():
    assert interpolate_size_risk_premium(-5) == 0.080
    assert interpolate_size_risk_premium(100_000) == 0.080
    assert interpolate_size_risk_premium(1_000_000) == pytest.approx(0.062)
    assert interpolate_size_risk_premium(math.sqrt(2) * 1_000_000) == pytest.approx(0.0585)
    assert interpolate_size_risk_premium(80_000_000) == 0.015


def test_size_premium_decreases_with_ebitda():
    premiums = [interpolate_size_risk_premium(e) for e in (300_000, 800_000, 3_000_000, 20_000_000)]
    assert premiums == sorted(premiums, reverse=True)


def test_csr_is_linear_inverse_of_readiness():
    assert calculate_csr_from_readiness(1.0, 0.05, 0.10) == pytest.approx(0.05)
    assert calculate_csr_from_readiness(0.0, 0.05, 0.10) == pytest.approx(0.10)
    assert calculate_csr_from_readiness(0.5, 0.05, 0.10) == pytest.approx(0.075)
    assert calculate_csr_from_readiness(1.7, 0.05, 0.10) == pytest.approx(0.05)


def test_wacc_defaults_from_tier():
    defaults = calculate_wacc_defaults(WACCDefaultsInput(adjusted_ebitda=1_000_000, readiness_score=0.5), EngineSettings())
    assert defaults.ebitda_tier == "Small"
    assert defaults.pre_tax_cost_of_debt == pytest.approx(0.11)
    assert defaults.tax_rate == 0.25
    assert defaults.debt_weight == pytest.approx(0.20)
    assert defaults.cost_of_equity == pytest.approx(0.041 + 0.050 + 0.062 + 0.075)
    assert defaults.computed_wacc == pytest.approx(0.8 * 0.228 + 0.2 * 0.11 * 0.75)


def test_derived_inputs_override_tier_when_sane():
    inputs = WACCDefaultsInput(
        adjusted_ebitda=1_000_000,
        readiness_score=0.5,
        derived_cost_of_debt=0.07,
        derived_tax_rate=0.30,
        derived_debt_weight=0.40,
    )
    defaults = calculate_wacc_defaults(inputs, EngineSettings())
    assert (defaults.pre_tax_cost_of_debt, defaults.tax_rate, defaults.debt_weight) == (0.07, 0.30, 0.40)
    assert defaults.equity_weight == pytest.approx(0.60)


def test_out_of_bounds_derived_inputs_are_ignored():
    inputs = WACCDefaultsInput(
        adjusted_ebitda=1_000_000,
        readiness_score=0.5,
        derived_cost_of_debt=0.25,
        derived_tax_rate=0.02,
        derived_debt_weight=0.95,
    )
    defaults = calculate_wacc_defaults(inputs, EngineSettings())
    assert defaults.pre_tax_cost_of_debt == pytest.approx(0.11)
    assert defaults.tax_rate == 0.25
    assert defaults.debt_weight == pytest.approx(0.20)


def test_derive_inputs_from_latest_period():
    latest = build_sample_periods()[-1]
    inputs = derive_wacc_inputs(latest, 1_250_000, 0.6)
    assert inputs.derived_cost_of_debt == pytest.approx(72_000 / 900_000)
    assert inputs.derived_tax_rate == pytest.approx(290_000 / 1_028_000)
    assert inputs.derived_debt_weight == pytest.approx(0.3)


def test_debt_weight_capped_and_requires_equity():
    levered = FinancialPeriod(
        label="FY2024",
        end_date=build_sample_periods()[-1].end_date,
        balance_sheet=BalanceSheet(long_term_debt=9_000_000, total_equity=1_000_000),
    )
    assert derive_wacc_inputs(levered, 1_000_000, 0.5).derived_debt_weight == 0.80

    insolvent = levered.model_copy(update={"balance_sheet": BalanceSheet(long_term_debt=1_000_000, total_equity=-50_000)})
    assert derive_wacc_inputs(insolvent, 1_000_000, 0.5).derived_debt_weight is None
    assert derive_wacc_inputs(None, 1_000_000, 0.5).derived_cost_of_debt is None


def test_implied_wacc_recovers_discount_rate():
    growth = [0.05, 0.05, 0.04, 0.03, 0.025]
    target = perpetuity_enterprise_value(100_000, growth, 0.15, 0.025)
    assert solve_implied_wacc(target, 100_000, growth, 0.025) == pytest.approx(0.15, abs=0.0002)


def test_implied_wacc_without_solution():
    growth = [0.05] * 5
    assert solve_implied_wacc(0, 100_000, growth, 0.025) is None
    assert solve_implied_wacc(1_000_000, -5, growth, 0.025) is None
    # Even the lowest admissible WACC cannot reach this value.
    assert solve_implied_wacc(1e12, 100_000, growth, 0.025) is None
