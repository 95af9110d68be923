"""
Multiple Adjustment Engine.

Comparable multiples are rarely applied to a private company as-is. Each
named adjustment below is a signed percentage; enabled impacts are summed and
applied as ``multiple * (1 + total)`` with the multiplier held inside
[floor, cap]. The same multiplier, normalised to 0-1, is the Business
Quality Score.
"""
from __future__ import annotations

import logging
import math
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..config import EngineSettings, get_settings
from ..models.adjustments import (
    AdjustmentCategory,
    AdjustmentProfile,
    AdjustmentResult,
    BusinessQualityScore,
    MultipleAdjustment,
)
from ..models.common import clamp
from ..models.financials import FinancialProfile
from ..models.multiples import ComparableMultipleResult, ComparableRange

logger = logging.getLogger(__name__)

SIZE_DISCOUNTS: Dict[str, float] = {
    "UNDER_500K": -0.35,
    "FROM_500K_TO_1M": -0.25,
    "FROM_1M_TO_3M": -0.18,
    "FROM_3M_TO_10M": -0.10,
    "FROM_10M_TO_25M": -0.05,
    "OVER_25M": 0.0,
}

SIZE_LABELS: Dict[str, str] = {
    "UNDER_500K": "under $500K",
    "FROM_500K_TO_1M": "$500K-$1M",
    "FROM_1M_TO_3M": "$1M-$3M",
    "FROM_3M_TO_10M": "$3M-$10M",
    "FROM_10M_TO_25M": "$10M-$25M",
    "OVER_25M": "over $25M",
}

# (upper revenue bound, size category), ascending.
REVENUE_SIZE_BANDS: Sequence[Tuple[float, str]] = (
    (500_000, "UNDER_500K"),
    (1_000_000, "FROM_500K_TO_1M"),
    (3_000_000, "FROM_1M_TO_3M"),
    (10_000_000, "FROM_3M_TO_10M"),
    (25_000_000, "FROM_10M_TO_25M"),
)

# (minimum, impact, label), checked top-down.
GROWTH_TIERS: Sequence[Tuple[float, float, str]] = (
    (0.30, 0.20, "High growth (30%+)"),
    (0.20, 0.12, "Strong growth (20-30%)"),
    (0.10, 0.05, "Moderate growth (10-20%)"),
    (0.0, 0.0, "Stable (0-10%)"),
    (-0.10, -0.10, "Declining (-10% to 0%)"),
    (float("-inf"), -0.20, "Rapid decline (below -10%)"),
)

MARGIN_TIERS: Sequence[Tuple[float, float, str]] = (
    (0.30, 0.15, "Premium margins (30%+)"),
    (0.20, 0.08, "Strong margins (20-30%)"),
    (0.15, 0.0, "Average margins (15-20%)"),
    (0.10, -0.08, "Below-average margins (10-15%)"),
    (0.0, -0.15, "Thin margins (0-10%)"),
    (float("-inf"), -0.25, "Negative margins"),
)

SINGLE_CUSTOMER_HIGH = (0.30, -0.20)
SINGLE_CUSTOMER_MODERATE = (0.20, -0.10)
TOP3_HIGH = (0.60, -0.15)
TOP3_MODERATE = (0.40, -0.08)

OWNER_DEPENDENCY_MAX_DISCOUNT = -0.25
MIN_OWNER_DEPENDENCY_IMPACT = 0.02

RECURRING_REVENUE_PREMIUMS: Dict[str, float] = {
    "SUBSCRIPTION_SAAS": 0.25,
    "RECURRING_CONTRACTS": 0.12,
    "TRANSACTIONAL": 0.0,
    "PROJECT_BASED": -0.05,
}
GENERIC_RECURRING_PREMIUM = 0.15

REVENUE_MODEL_LABELS = {
    "SUBSCRIPTION_SAAS": "SaaS/subscription",
    "RECURRING_CONTRACTS": "recurring contract",
    "PROJECT_BASED": "project-based",
}


def _pct(value: float) -> str:
    return f"{abs(value * 100):.0f}%"


def size_category_for_revenue(revenue: float) -> str:
    for upper, category in REVENUE_SIZE_BANDS:
        if revenue < upper:
            return category
    return "OVER_25M"


def build_adjustment_profile(profile: FinancialProfile, transferability_score: Optional[float]) -> AdjustmentProfile:
    return AdjustmentProfile(
        revenue=profile.revenue,
        size_category=profile.size_category.value if profile.size_category else None,
        revenue_growth_rate=profile.revenue_growth_rate,
        ebitda_margin=profile.margin(),
        top_customer_concentration=profile.top_customer_concentration,
        top3_customer_concentration=profile.top3_customer_concentration,
        transferability_score=transferability_score,
        revenue_model=profile.revenue_model.value if profile.revenue_model else None,
        is_recurring_revenue=bool(profile.is_recurring_revenue),
    )


def size_adjustment(profile: AdjustmentProfile) -> Optional[MultipleAdjustment]:
    category = profile.size_category
    if not category:
        return _size_adjustment_from_revenue(profile.revenue)

    impact = SIZE_DISCOUNTS.get(category)
    if not impact:
        return None
    return MultipleAdjustment(
        factor="size_discount",
        name="Size Discount",
        impact=impact,
        explanation=(
            f"Private companies with revenue in the {SIZE_LABELS.get(category, category)} range typically trade "
            f"at a {_pct(impact)} discount to public comparables due to less diversified revenue, thinner "
            "management, and higher key-person risk."
        ),
        category=AdjustmentCategory.SIZE,
    )


def _size_adjustment_from_revenue(revenue: float) -> Optional[MultipleAdjustment]:
    category = size_category_for_revenue(revenue)
    impact = SIZE_DISCOUNTS[category]
    if not impact:
        return None
    return MultipleAdjustment(
        factor="size_discount",
        name="Size Discount",
        impact=impact,
        explanation=(
            f"Company revenue of {SIZE_LABELS[category]} places it in a size category that typically trades "
            f"at a {_pct(impact)} discount to larger public comparables."
        ),
        category=AdjustmentCategory.SIZE,
    )


def _tier_for(value: float, tiers: Sequence[Tuple[float, float, str]]) -> Tuple[float, str]:
    for minimum, impact, label in tiers:
        if value >= minimum:
            return impact, label
    return tiers[-1][1], tiers[-1][2]


def growth_adjustment(profile: AdjustmentProfile) -> Optional[MultipleAdjustment]:
    growth = profile.revenue_growth_rate
    if growth is None:
        return None
    impact, label = _tier_for(growth, GROWTH_TIERS)
    if impact == 0:
        return None
    premium = impact > 0
    reason = (
        "Buyers pay more for companies growing above market rates."
        if premium
        else "Declining revenue signals risk that future earnings may erode."
    )
    return MultipleAdjustment(
        factor="growth_adjustment",
        name="Growth Premium" if premium else "Growth Discount",
        impact=impact,
        explanation=(
            f"Revenue growth of {growth * 100:.1f}% ({label}) warrants a {_pct(impact)} "
            f"{'premium' if premium else 'discount'}. {reason}"
        ),
        category=AdjustmentCategory.GROWTH,
    )


def margin_adjustment(profile: AdjustmentProfile) -> Optional[MultipleAdjustment]:
    margin = profile.ebitda_margin
    if margin is None:
        return None
    impact, label = _tier_for(margin, MARGIN_TIERS)
    if impact == 0:
        return None
    premium = impact > 0
    reason = (
        "Higher margins indicate pricing power and operational efficiency."
        if premium
        else "Lower margins reduce buyer confidence in sustainable earnings."
    )
    return MultipleAdjustment(
        factor="margin_adjustment",
        name="Margin Premium" if premium else "Margin Discount",
        impact=impact,
        explanation=(
            f"EBITDA margin of {margin * 100:.1f}% ({label}) warrants a {_pct(impact)} "
            f"{'premium' if premium else 'discount'}. {reason}"
        ),
        category=AdjustmentCategory.PROFITABILITY,
    )


def concentration_adjustments(profile: AdjustmentProfile) -> List[MultipleAdjustment]:
    adjustments: List[MultipleAdjustment] = []
    single_high = False

    top = profile.top_customer_concentration
    if top is not None:
        if top >= SINGLE_CUSTOMER_HIGH[0]:
            single_high = True
            adjustments.append(
                MultipleAdjustment(
                    factor="customer_concentration_single",
                    name="Customer Concentration (Single)",
                    impact=SINGLE_CUSTOMER_HIGH[1],
                    explanation=(
                        f"Top customer represents {top * 100:.0f}% of revenue, exceeding the "
                        f"{SINGLE_CUSTOMER_HIGH[0] * 100:.0f}% threshold. Losing this customer would "
                        "materially impact the business."
                    ),
                    category=AdjustmentCategory.RISK,
                )
            )
        elif top >= SINGLE_CUSTOMER_MODERATE[0]:
            adjustments.append(
                MultipleAdjustment(
                    factor="customer_concentration_single",
                    name="Customer Concentration (Single)",
                    impact=SINGLE_CUSTOMER_MODERATE[1],
                    explanation=(
                        f"Top customer represents {top * 100:.0f}% of revenue. While not critical, buyers "
                        "will factor in the risk of this customer relationship."
                    ),
                    category=AdjustmentCategory.RISK,
                )
            )

    top3 = profile.top3_customer_concentration
    if top3 is not None and not single_high:
        if top3 >= TOP3_HIGH[0]:
            impact, note = TOP3_HIGH[1], "This level of concentration creates material risk exposure."
        elif top3 >= TOP3_MODERATE[0]:
            impact, note = TOP3_MODERATE[1], "Moderate concentration that buyers will consider."
        else:
            return adjustments
        adjustments.append(
            MultipleAdjustment(
                factor="customer_concentration_top3",
                name="Customer Concentration (Top 3)",
                impact=impact,
                explanation=f"Top 3 customers represent {top3 * 100:.0f}% of revenue. {note}",
                category=AdjustmentCategory.RISK,
            )
        )
    return adjustments


def owner_dependency_adjustment(profile: AdjustmentProfile) -> Optional[MultipleAdjustment]:
    score = profile.transferability_score
    if score is None:
        return None
    impact = OWNER_DEPENDENCY_MAX_DISCOUNT * (1 - clamp(score, 0.0, 1.0))
    if abs(impact) < MIN_OWNER_DEPENDENCY_IMPACT:
        return None

    severity = "high" if score < 0.3 else "moderate" if score < 0.6 else "low"
    return MultipleAdjustment(
        factor="owner_dependency",
        name="Owner Dependency Discount",
        impact=impact,
        explanation=(
            f"Transferability score of {score * 100:.0f}% indicates {severity} owner dependency. Buyers "
            f"discount businesses that cannot run without the current owner, applying a {_pct(impact)} discount."
        ),
        category=AdjustmentCategory.RISK,
    )


def recurring_revenue_adjustment(profile: AdjustmentProfile) -> Optional[MultipleAdjustment]:
    model = profile.revenue_model
    if model:
        impact = RECURRING_REVENUE_PREMIUMS.get(model)
        if impact:
            premium = impact > 0
            reason = (
                "Predictable, recurring revenue reduces buyer risk and increases willingness to pay."
                if premium
                else "Project-based revenue is less predictable, increasing buyer risk."
            )
            return MultipleAdjustment(
                factor="recurring_revenue",
                name="Recurring Revenue Premium" if premium else "Revenue Model Discount",
                impact=impact,
                explanation=(
                    f"{REVENUE_MODEL_LABELS.get(model, model)} revenue model warrants a {_pct(impact)} "
                    f"{'premium' if premium else 'discount'}. {reason}"
                ),
                category=AdjustmentCategory.QUALITY,
            )

    if profile.is_recurring_revenue:
        return MultipleAdjustment(
            factor="recurring_revenue",
            name="Recurring Revenue Premium",
            impact=GENERIC_RECURRING_PREMIUM,
            explanation=(
                "Recurring revenue model warrants a 15% premium. Predictable revenue reduces buyer risk "
                "and increases willingness to pay."
            ),
            category=AdjustmentCategory.QUALITY,
        )
    return None


def summarize_adjustments(
    adjustments: List[MultipleAdjustment],
    settings: Optional[EngineSettings] = None,
) -> AdjustmentResult:
    settings = settings or get_settings()
    total = sum(adj.impact for adj in adjustments if adj.enabled)
    multiplier = clamp(1 + total, settings.adjustment_multiplier_floor, settings.adjustment_multiplier_cap)
    return AdjustmentResult(adjustments=adjustments, total_adjustment=total, adjustment_multiplier=multiplier)


def adjust_multiples(profile: AdjustmentProfile, settings: Optional[EngineSettings] = None) -> AdjustmentResult:
    adjustments: List[MultipleAdjustment] = []
    for calculator in (size_adjustment, growth_adjustment, margin_adjustment):
        adjustment = calculator(profile)
        if adjustment is not None:
            adjustments.append(adjustment)
    adjustments.extend(concentration_adjustments(profile))
    for calculator in (owner_dependency_adjustment, recurring_revenue_adjustment):
        adjustment = calculator(profile)
        if adjustment is not None:
            adjustments.append(adjustment)

    result = summarize_adjustments(adjustments, settings)
    logger.debug(
        "Quality adjustments %s -> total %.4f, multiplier %.4f",
        [adj.factor for adj in adjustments],
        result.total_adjustment,
        result.adjustment_multiplier,
    )
    return result


def toggle_adjustments(
    result: AdjustmentResult,
    disabled_factors: Iterable[str],
    settings: Optional[EngineSettings] = None,
) -> AdjustmentResult:
    """Recompute totals with the named factors switched off, for sensitivity views."""
    disabled = set(disabled_factors)
    adjustments = [adj.model_copy(update={"enabled": adj.factor not in disabled}) for adj in result.adjustments]
    return summarize_adjustments(adjustments, settings)


def business_quality_score(multiplier: float, settings: Optional[EngineSettings] = None) -> float:
    settings = settings or get_settings()
    floor, cap = settings.adjustment_multiplier_floor, settings.adjustment_multiplier_cap
    return clamp((multiplier - floor) / (cap - floor), 0.0, 1.0)


def calculate_business_quality_score(
    profile: AdjustmentProfile,
    settings: Optional[EngineSettings] = None,
) -> BusinessQualityScore:
    adjustments = adjust_multiples(profile, settings)
    return BusinessQualityScore(
        score=business_quality_score(adjustments.adjustment_multiplier, settings),
        adjustments=adjustments,
    )


def calculate_spread_factor(comparable_count: int, comparable_ebitda_multiples: Optional[Sequence[float]] = None) -> float:
    if comparable_count >= 5:
        spread = 0.15
    elif comparable_count >= 3:
        spread = 0.25
    elif comparable_count >= 1:
        spread = 0.35
    else:
        spread = 0.40

    multiples = [m for m in (comparable_ebitda_multiples or []) if m is not None and m > 0]
    if len(multiples) >= 2:
        mean = sum(multiples) / len(multiples)
        dispersion = (max(multiples) - min(multiples)) / mean if mean > 0 else 0.0
        if dispersion > 0.5:
            spread += 0.05
        if dispersion > 1.0:
            spread += 0.05
    return min(spread, 0.50)


def _round_multiple(value: float) -> float:
    return math.floor(value * 10 + 0.5) / 10


def _range_around(mid: float, spread: float, floor: float) -> ComparableRange:
    return ComparableRange(
        low=max(floor, _round_multiple(mid * (1 - spread))),
        mid=max(floor, _round_multiple(mid)),
        high=max(floor, _round_multiple(mid * (1 + spread))),
    )


def calculate_multiple_range(
    base_ebitda_multiple: Optional[float],
    base_revenue_multiple: Optional[float],
    adjustments: AdjustmentResult,
    comparable_count: int,
    comparable_ebitda_multiples: Optional[Sequence[float]] = None,
) -> ComparableMultipleResult:
    """Comparable-derived low/mid/high multiples after quality adjustments."""
    spread = calculate_spread_factor(comparable_count, comparable_ebitda_multiples)
    ebitda_range = None
    if base_ebitda_multiple is not None and base_ebitda_multiple > 0:
        ebitda_range = _range_around(base_ebitda_multiple * adjustments.adjustment_multiplier, spread, 0.5)
    revenue_range = None
    if base_revenue_multiple is not None and base_revenue_multiple > 0:
        revenue_range = _range_around(base_revenue_multiple * adjustments.adjustment_multiplier, spread, 0.1)
    return ComparableMultipleResult(
        ebitda_range=ebitda_range,
        revenue_range=revenue_range,
        comparable_count=comparable_count,
        base_ebitda_multiple=base_ebitda_multiple,
        base_revenue_multiple=base_revenue_multiple,
        spread_factor=spread,
    )
