from __future__ import annotations

import logging
from typing import Dict, Optional

from ..models.scoring import CoreFactors

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 0.5

CORE_FACTOR_SCORES: Dict[str, Dict[str, float]] = {
    "revenue_model": {
        "PROJECT_BASED": 0.25,
        "TRANSACTIONAL": 0.5,
        "RECURRING_CONTRACTS": 0.75,
        "SUBSCRIPTION_SAAS": 1.0,
    },
    "gross_margin_proxy": {
        "LOW": 0.25,
        "MODERATE": 0.5,
        "GOOD": 0.75,
        "EXCELLENT": 1.0,
    },
    "labor_intensity": {
        "VERY_HIGH": 0.25,
        "HIGH": 0.5,
        "MODERATE": 0.75,
        "LOW": 1.0,
    },
    "asset_intensity": {
        "ASSET_HEAVY": 0.33,
        "MODERATE": 0.67,
        "ASSET_LIGHT": 1.0,
    },
    "owner_involvement": {
        "CRITICAL": 0.0,
        "HIGH": 0.25,
        "MODERATE": 0.5,
        "LOW": 0.75,
        "MINIMAL": 1.0,
    },
}

# Owner involvement is also measured by the Transferability readiness category.
CORE_FACTOR_WEIGHTS: Dict[str, float] = {
    "revenue_model": 1.0,
    "gross_margin_proxy": 1.0,
    "labor_intensity": 1.0,
    "asset_intensity": 1.0,
    "owner_involvement": 0.5,
}


def score_factor(factor: str, level: Optional[str]) -> float:
    if level is None:
        return NEUTRAL_SCORE
    return CORE_FACTOR_SCORES.get(factor, {}).get(level, NEUTRAL_SCORE)


def calculate_core_score(factors: Optional[CoreFactors]) -> float:
    if factors is None:
        return NEUTRAL_SCORE

    weighted_sum = 0.0
    total_weight = 0.0
    for factor, weight in CORE_FACTOR_WEIGHTS.items():
        weighted_sum += score_factor(factor, getattr(factors, factor)) * weight
        total_weight += weight

    score = max(0.0, min(1.0, weighted_sum / total_weight))
    logger.debug("Core score %.4f from %s", score, factors.model_dump())
    return score
