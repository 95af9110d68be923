"""Split the distance between current value and the industry ceiling.

* addressable: value recovered by fixing the risks an owner can fix
* structural: value lost to marketability and size until a transaction happens
* aspirational: headroom from the quality-adjusted multiple up to the size-adjusted ceiling

The three parts are computed independently against different reference
multiples, so their sum only approximates ``ceiling - current``.
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Mapping, Optional

from ..models.common import ReadinessCategory, round_half_up
from ..models.scoring import CategoryScore
from ..models.valuation import CategoryGap, ValueGapInputs, ValueGapResult
from .risk_discounts import is_addressable_discount, risk_multiplier

logger = logging.getLogger(__name__)


def _floored(value: float) -> float:
    return float(max(0.0, round_half_up(value)))


def attribute_addressable_gap(
    addressable_gap: float,
    category_scores: Iterable[CategoryScore],
    weights: Optional[Mapping[ReadinessCategory, float]] = None,
) -> List[CategoryGap]:
    """Spread the addressable gap over categories in proportion to ``(1 - score) * weight``.

    Shares are rounded to whole currency units and the rounding residual lands
    on the category with the largest share, so the parts sum to the total.
    """
    rows = []
    for cs in category_scores:
        weight = weights.get(cs.category, 0.0) if weights is not None else cs.weight
        rows.append((cs, weight, (1 - cs.score) * weight))

    total_raw = sum(raw for _, _, raw in rows)
    if not rows or total_raw <= 0 or addressable_gap <= 0:
        return [
            CategoryGap(category=cs.category, score=cs.score, weight=weight, raw_gap=raw, dollar_impact=0.0)
            for cs, weight, raw in rows
        ]

    impacts = [float(round_half_up(addressable_gap * raw / total_raw)) for _, _, raw in rows]
    residual = round_half_up(addressable_gap) - sum(impacts)
    if residual:
        largest = max(range(len(impacts)), key=lambda i: impacts[i])
        impacts[largest] += residual

    return [
        CategoryGap(category=cs.category, score=cs.score, weight=weight, raw_gap=raw, dollar_impact=impact)
        for (cs, weight, raw), impact in zip(rows, impacts)
    ]


def calculate_value_gap(
    inputs: ValueGapInputs,
    category_scores: Iterable[CategoryScore] = (),
    weights: Optional[Mapping[ReadinessCategory, float]] = None,
) -> ValueGapResult:
    ebitda = inputs.adjusted_ebitda
    if ebitda <= 0:
        return ValueGapResult(
            current_value=0.0,
            addressable_gap=0.0,
            structural_gap=0.0,
            aspirational_gap=0.0,
            total_gap=0.0,
            ceiling_value=0.0,
            category_gaps=attribute_addressable_gap(0.0, category_scores, weights),
        )

    structural_multiplier = risk_multiplier([d for d in inputs.risk_discounts if not is_addressable_discount(d.name)])

    current_value = ebitda * inputs.risk_adjusted_multiple
    pre_risk_value = ebitda * inputs.quality_adjusted_multiple
    structural_only_value = pre_risk_value * structural_multiplier
    ceiling_value = ebitda * inputs.industry_multiple_high * (1 + inputs.size_discount_rate)

    addressable = _floored(structural_only_value - current_value)
    structural = _floored(pre_risk_value - structural_only_value)
    aspirational = _floored(ceiling_value - pre_risk_value)
    total = addressable + structural + aspirational

    logger.debug(
        "Value gap: addressable %.0f, structural %.0f, aspirational %.0f (ceiling %.0f, current %.0f)",
        addressable,
        structural,
        aspirational,
        ceiling_value,
        current_value,
    )
    return ValueGapResult(
        current_value=current_value,
        addressable_gap=addressable,
        structural_gap=structural,
        aspirational_gap=aspirational,
        total_gap=total,
        ceiling_value=ceiling_value,
        category_gaps=attribute_addressable_gap(addressable, category_scores, weights),
    )
