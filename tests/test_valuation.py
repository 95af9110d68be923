from __future__ import annotations

import pytest

from valuation_engine.config import EngineSettings
from valuation_engine.models.common import ReadinessCategory, RevenueSizeCategory
from valuation_engine.models.financials import EbitdaAdjustment, EbitdaAdjustmentType, FinancialProfile
from valuation_engine.models.scoring import CategoryScore
from valuation_engine.models.valuation import (
    CanonicalValuationInputs,
    EbitdaNormalizationMode,
    LegacyValuationInputs,
    ValuationMethod,
)
from valuation_engine.services.industry_multiples import DEFAULT_MULTIPLES
from valuation_engine.services.valuation import (
    calculate_canonical_valuation,
    calculate_ebitda_improvement_multiplier,
    calculate_legacy_valuation,
    calculate_revenue_based_valuation,
    market_salary,
    normalize_ebitda,
    owner_compensation_adjustment,
    recommend_valuation_method,
)


def _legacy_inputs(**overrides) -> LegacyValuationInputs:
    values = dict(
        adjusted_ebitda=1_000_000,
        industry_multiple_low=3.0,
        industry_multiple_high=6.0,
        core_score=0.6,
        readiness_score=0.7,
    )
    values.update(overrides)
    return LegacyValuationInputs(**values)


def _canonical_inputs(**overrides) -> CanonicalValuationInputs:
    values = dict(
        adjusted_ebitda=1_000_000,
        industry_multiple_low=3.0,
        industry_multiple_high=6.0,
        adjustment_multiplier=1.1,
        total_quality_adjustment=0.1,
        risk_multiplier=0.738,
    )
    values.update(overrides)
    return CanonicalValuationInputs(**values)


def test_legacy_formula_worked_example():
    result = calculate_legacy_valuation(_legacy_inputs(), EngineSettings())
    assert result.base_multiple == pytest.approx(4.8)
    assert result.discount_fraction == pytest.approx(0.1855, rel=1e-3)
    assert result.final_multiple == pytest.approx(4.466, rel=1e-3)
    assert result.current_value == pytest.approx(4_466_190, rel=1e-3)
    assert result.potential_value == pytest.approx(6_000_000)
    assert result.value_gap == pytest.approx(result.potential_value - result.current_value)


def test_legacy_final_multiple_never_below_floor():
    result = calculate_legacy_valuation(_legacy_inputs(core_score=0.0, readiness_score=0.0), EngineSettings())
    assert result.discount_fraction == pytest.approx(1.0)
    assert result.final_multiple == pytest.approx(3.0)
    perfect = calculate_legacy_valuation(_legacy_inputs(core_score=1.0, readiness_score=1.0), EngineSettings())
    assert perfect.final_multiple == pytest.approx(6.0)
    assert perfect.value_gap == pytest.approx(0.0)


def test_legacy_zeroes_values_for_non_positive_ebitda():
    result = calculate_legacy_valuation(_legacy_inputs(adjusted_ebitda=-50_000), EngineSettings())
    assert (result.current_value, result.potential_value, result.value_gap) == (0.0, 0.0, 0.0)
    assert result.base_multiple == pytest.approx(4.8)


def test_legacy_is_deterministic():
    settings = EngineSettings()
    assert calculate_legacy_valuation(_legacy_inputs(), settings) == calculate_legacy_valuation(_legacy_inputs(), settings)


def test_legacy_scores_are_clamped_to_unit_interval():
    settings = EngineSettings()
    over = calculate_legacy_valuation(_legacy_inputs(core_score=1.2, readiness_score=1.0000001), settings)
    assert over.discount_fraction == 0.0
    assert over.base_multiple == pytest.approx(6.0)
    assert over.final_multiple == pytest.approx(6.0)
    under = calculate_legacy_valuation(_legacy_inputs(core_score=-0.5, readiness_score=-0.2), settings)
    assert under.discount_fraction == pytest.approx(1.0)
    assert under.final_multiple == pytest.approx(3.0)


def test_alpha_is_configurable():
    linear = calculate_legacy_valuation(_legacy_inputs(), EngineSettings(alpha=1.0))
    assert linear.discount_fraction == pytest.approx(0.3)


def test_canonical_formula_chains_multipliers():
    result = calculate_canonical_valuation(_canonical_inputs(), EngineSettings())
    assert result.industry_median_multiple == pytest.approx(4.5)
    assert result.quality_adjusted_multiple == pytest.approx(4.95)
    assert result.risk_adjusted_multiple == pytest.approx(4.95 * 0.738)
    assert result.ev_mid == pytest.approx(3_653_100)
    assert result.ev_low == pytest.approx(3_653_100 * 0.85)
    assert result.ev_high == pytest.approx(3_653_100 * 1.15)
    assert result.spread_factor == 0.15
    assert result.ev_low <= result.ev_mid <= result.ev_high


def test_canonical_spread_override():
    result = calculate_canonical_valuation(_canonical_inputs(spread_factor=0.20), EngineSettings())
    assert result.ev_high == pytest.approx(result.ev_mid * 1.2)


def test_canonical_non_positive_ebitda_keeps_multiples():
    result = calculate_canonical_valuation(_canonical_inputs(adjusted_ebitda=0), EngineSettings())
    assert (result.ev_low, result.ev_mid, result.ev_high) == (0.0, 0.0, 0.0)
    assert result.risk_adjusted_multiple == pytest.approx(4.95 * 0.738)


def test_revenue_based_valuation_uses_revenue_multiples():
    result = calculate_revenue_based_valuation(2_000_000, DEFAULT_MULTIPLES, 0.6, 0.7, EngineSettings())
    assert (result.revenue_multiple_low, result.revenue_multiple_high) == (0.5, 1.5)
    assert result.base_multiple == pytest.approx(1.1)
    assert result.potential_value == pytest.approx(3_000_000)
    assert result.current_value == pytest.approx(2_000_000 * result.final_multiple)


@pytest.mark.parametrize(
    "revenue, ebitda, growth, recurring, method",
    [
        (1_000_000, 0, None, False, ValuationMethod.REVENUE),
        (1_000_000, 200_000, 0.35, False, ValuationMethod.REVENUE),
        (1_000_000, 120_000, None, True, ValuationMethod.REVENUE),
        (1_000_000, 80_000, None, False, ValuationMethod.HYBRID),
        (1_000_000, 200_000, 0.10, True, ValuationMethod.EBITDA),
    ],
)
def test_recommend_valuation_method(revenue, ebitda, growth, recurring, method):
    assert recommend_valuation_method(revenue, ebitda, growth, recurring) == method


def test_market_salary_by_size():
    assert market_salary(RevenueSizeCategory.UNDER_500K) == 80_000
    assert market_salary(RevenueSizeCategory.OVER_25M) == 400_000
    assert market_salary(None) == 150_000


def test_owner_compensation_modes():
    size = RevenueSizeCategory.FROM_3M_TO_10M
    assert owner_compensation_adjustment(260_000, size, EbitdaNormalizationMode.LEGACY) == 60_000
    assert owner_compensation_adjustment(260_000, size, EbitdaNormalizationMode.CANONICAL) == 60_000
    assert owner_compensation_adjustment(150_000, size, EbitdaNormalizationMode.LEGACY) == 0.0
    assert owner_compensation_adjustment(150_000, size, EbitdaNormalizationMode.CANONICAL) == -50_000
    assert owner_compensation_adjustment(0, size, EbitdaNormalizationMode.LEGACY) == 0.0
    assert owner_compensation_adjustment(0, size, EbitdaNormalizationMode.CANONICAL) == -200_000


def test_normalize_ebitda_applies_adjustments():
    profile = FinancialProfile(
        revenue=8_000_000,
        ebitda=1_250_000,
        owner_compensation=260_000,
        size_category=RevenueSizeCategory.FROM_3M_TO_10M,
    )
    adjustments = [
        EbitdaAdjustment(description="One-off legal fees", amount=50_000, type=EbitdaAdjustmentType.ADD_BACK),
        EbitdaAdjustment(description="Below-market rent", amount=20_000, type=EbitdaAdjustmentType.DEDUCTION),
    ]
    assert normalize_ebitda(profile, adjustments, DEFAULT_MULTIPLES) == pytest.approx(1_340_000)

    underpaid = profile.model_copy(update={"owner_compensation": 150_000})
    assert normalize_ebitda(underpaid, adjustments, DEFAULT_MULTIPLES) == pytest.approx(1_230_000)
    assert normalize_ebitda(
        underpaid, adjustments, DEFAULT_MULTIPLES, EbitdaNormalizationMode.LEGACY
    ) == pytest.approx(1_280_000)


def test_normalize_ebitda_estimates_from_revenue(caplog):
    profile = FinancialProfile(revenue=5_000_000, ebitda=0, owner_compensation=150_000)
    with caplog.at_level("INFO", logger="valuation_engine"):
        assert normalize_ebitda(profile, [], DEFAULT_MULTIPLES) == pytest.approx(1_500_000)
    assert "estimated" in caplog.text


def _category(category: ReadinessCategory, score: float) -> CategoryScore:
    return CategoryScore(category=category, earned_points=score * 10, total_points=10, score=score)


def test_ebitda_improvement_multiplier():
    scores = [_category(ReadinessCategory.FINANCIAL, 0.5)]
    weights = {ReadinessCategory.FINANCIAL: 0.25}
    assert calculate_ebitda_improvement_multiplier(scores, weights) == pytest.approx(1.025)
    assert calculate_ebitda_improvement_multiplier([_category(ReadinessCategory.FINANCIAL, 1.0)], weights) == 1.0


def test_ebitda_improvement_multiplier_is_capped():
    scores = [_category(category, 0.0) for category in ReadinessCategory]
    weights = {category: 1.0 for category in ReadinessCategory}
    assert calculate_ebitda_improvement_multiplier(scores, weights) == pytest.approx(1.25)
