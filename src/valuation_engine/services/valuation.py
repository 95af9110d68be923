from __future__ import annotations

import logging
from typing import Dict, Iterable, Mapping, Optional

from ..config import EngineSettings, get_settings
from ..models.common import ReadinessCategory, RevenueSizeCategory, clamp
from ..models.financials import EbitdaAdjustment, EbitdaAdjustmentType, FinancialProfile
from ..models.multiples import MultipleRange
from ..models.scoring import CategoryScore
from ..models.valuation import (
    CanonicalValuationInputs,
    CanonicalValuationResult,
    EbitdaNormalizationMode,
    LegacyValuationInputs,
    LegacyValuationResult,
    RevenueValuationResult,
    ValuationMethod,
)
from .industry_multiples import calculate_base_multiple, estimate_ebitda_from_revenue

logger = logging.getLogger(__name__)

MARKET_SALARY_BY_SIZE: Dict[RevenueSizeCategory, float] = {
    RevenueSizeCategory.UNDER_500K: 80_000,
    RevenueSizeCategory.FROM_500K_TO_1M: 120_000,
    RevenueSizeCategory.FROM_1M_TO_3M: 150_000,
    RevenueSizeCategory.FROM_3M_TO_10M: 200_000,
    RevenueSizeCategory.FROM_10M_TO_25M: 300_000,
    RevenueSizeCategory.OVER_25M: 400_000,
}
DEFAULT_MARKET_SALARY = 150_000

# Typical EBITDA margin uplift from closing each readiness category's gap.
EBITDA_IMPROVEMENT_BY_CATEGORY: Dict[ReadinessCategory, float] = {
    ReadinessCategory.FINANCIAL: 0.05,
    ReadinessCategory.TRANSFERABILITY: 0.02,
    ReadinessCategory.OPERATIONAL: 0.08,
    ReadinessCategory.MARKET: 0.04,
    ReadinessCategory.LEGAL_TAX: 0.03,
    ReadinessCategory.PERSONAL: 0.01,
}
MAX_EBITDA_IMPROVEMENT = 0.25
AVERAGE_CATEGORY_WEIGHT = 0.25

HIGH_GROWTH_THRESHOLD = 0.30
RECURRING_LOW_MARGIN_THRESHOLD = 0.15
LOW_MARGIN_THRESHOLD = 0.10


def _zeroed_legacy(base_multiple: float, discount_fraction: float, final_multiple: float) -> LegacyValuationResult:
    return LegacyValuationResult(
        base_multiple=base_multiple,
        discount_fraction=discount_fraction,
        final_multiple=final_multiple,
        current_value=0.0,
        potential_value=0.0,
        value_gap=0.0,
    )


def calculate_legacy_valuation(
    inputs: LegacyValuationInputs,
    settings: Optional[EngineSettings] = None,
) -> LegacyValuationResult:
    """Core score positions the multiple in range; readiness applies a non-linear discount."""
    settings = settings or get_settings()
    low, high = inputs.industry_multiple_low, inputs.industry_multiple_high
    core_score = clamp(inputs.core_score, 0.0, 1.0)
    readiness_score = clamp(inputs.readiness_score, 0.0, 1.0)

    base_multiple = low + core_score * (high - low)
    discount_fraction = (1 - readiness_score) ** settings.alpha
    # Never falls below the industry floor.
    final_multiple = low + (base_multiple - low) * (1 - discount_fraction)

    if inputs.adjusted_ebitda <= 0:
        logger.debug("Non-positive EBITDA %.0f; legacy values zeroed", inputs.adjusted_ebitda)
        return _zeroed_legacy(base_multiple, discount_fraction, final_multiple)

    current_value = inputs.adjusted_ebitda * final_multiple
    potential_value = inputs.adjusted_ebitda * high
    return LegacyValuationResult(
        base_multiple=base_multiple,
        discount_fraction=discount_fraction,
        final_multiple=final_multiple,
        current_value=current_value,
        potential_value=potential_value,
        value_gap=potential_value - current_value,
    )


def calculate_canonical_valuation(
    inputs: CanonicalValuationInputs,
    settings: Optional[EngineSettings] = None,
) -> CanonicalValuationResult:
    settings = settings or get_settings()
    spread = inputs.spread_factor if inputs.spread_factor is not None else settings.spread_factor

    median = calculate_base_multiple(inputs.industry_multiple_low, inputs.industry_multiple_high)
    quality_adjusted = median * inputs.adjustment_multiplier
    risk_adjusted = quality_adjusted * inputs.risk_multiplier

    ev_mid = inputs.adjusted_ebitda * risk_adjusted if inputs.adjusted_ebitda > 0 else 0.0
    return CanonicalValuationResult(
        industry_median_multiple=median,
        quality_adjusted_multiple=quality_adjusted,
        risk_adjusted_multiple=risk_adjusted,
        total_quality_adjustment=inputs.total_quality_adjustment,
        ev_low=ev_mid * (1 - spread),
        ev_mid=ev_mid,
        ev_high=ev_mid * (1 + spread),
        spread_factor=spread,
    )


def calculate_revenue_based_valuation(
    revenue: float,
    multiples: MultipleRange,
    core_score: float,
    readiness_score: float,
    settings: Optional[EngineSettings] = None,
) -> RevenueValuationResult:
    """Legacy formula applied to revenue multiples, for pre-profit or high-growth companies."""
    legacy = calculate_legacy_valuation(
        LegacyValuationInputs(
            adjusted_ebitda=revenue,
            industry_multiple_low=multiples.revenue_low,
            industry_multiple_high=multiples.revenue_high,
            core_score=core_score,
            readiness_score=readiness_score,
        ),
        settings,
    )
    return RevenueValuationResult(
        current_value=legacy.current_value,
        potential_value=legacy.potential_value,
        value_gap=legacy.value_gap,
        revenue_multiple_low=multiples.revenue_low,
        revenue_multiple_high=multiples.revenue_high,
        base_multiple=legacy.base_multiple,
        final_multiple=legacy.final_multiple,
    )


def recommend_valuation_method(
    revenue: float,
    ebitda: float,
    revenue_growth_rate: Optional[float] = None,
    is_recurring_revenue: bool = False,
) -> ValuationMethod:
    if ebitda <= 0:
        return ValuationMethod.REVENUE

    margin = ebitda / revenue if revenue > 0 else 0.0
    if revenue_growth_rate is not None and revenue_growth_rate > HIGH_GROWTH_THRESHOLD:
        return ValuationMethod.REVENUE
    if is_recurring_revenue and margin < RECURRING_LOW_MARGIN_THRESHOLD:
        return ValuationMethod.REVENUE
    if margin < LOW_MARGIN_THRESHOLD:
        return ValuationMethod.HYBRID
    return ValuationMethod.EBITDA


def market_salary(size_category: Optional[RevenueSizeCategory]) -> float:
    if size_category is None:
        return DEFAULT_MARKET_SALARY
    return MARKET_SALARY_BY_SIZE.get(size_category, DEFAULT_MARKET_SALARY)


def owner_compensation_adjustment(
    owner_compensation: float,
    size_category: Optional[RevenueSizeCategory],
    mode: EbitdaNormalizationMode = EbitdaNormalizationMode.CANONICAL,
) -> float:
    """Signed EBITDA adjustment for owner pay relative to a market salary."""
    benchmark = market_salary(size_category)
    if mode == EbitdaNormalizationMode.LEGACY:
        return max(0.0, owner_compensation - min(owner_compensation, benchmark))
    return owner_compensation - benchmark


def normalize_ebitda(
    profile: FinancialProfile,
    adjustments: Iterable[EbitdaAdjustment],
    multiples: MultipleRange,
    mode: EbitdaNormalizationMode = EbitdaNormalizationMode.CANONICAL,
) -> float:
    """Reported (or revenue-estimated) EBITDA plus add-backs, less deductions, with owner pay normalised."""
    adjustments = list(adjustments)
    add_backs = sum(a.amount for a in adjustments if a.type == EbitdaAdjustmentType.ADD_BACK)
    deductions = sum(a.amount for a in adjustments if a.type == EbitdaAdjustmentType.DEDUCTION)

    if profile.ebitda > 0:
        base = profile.ebitda
    else:
        base = estimate_ebitda_from_revenue(profile.revenue, multiples)
        logger.info("No positive EBITDA reported; estimated %.0f from revenue %.0f", base, profile.revenue)

    owner_adjustment = owner_compensation_adjustment(profile.owner_compensation, profile.size_category, mode)
    return base + add_backs + owner_adjustment - deductions


def calculate_ebitda_improvement_multiplier(
    category_scores: Iterable[CategoryScore],
    weights: Mapping[ReadinessCategory, float],
) -> float:
    potential = 0.0
    for cs in category_scores:
        gap = 1 - cs.score
        potential += gap * EBITDA_IMPROVEMENT_BY_CATEGORY.get(cs.category, 0.0) * (
            weights.get(cs.category, 0.0) / AVERAGE_CATEGORY_WEIGHT
        )
    return 1 + min(potential, MAX_EBITDA_IMPROVEMENT)
