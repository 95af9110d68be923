from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Dict, Iterable, List, Mapping, Optional

from ..models.common import DEFAULT_CATEGORY_WEIGHTS, ReadinessCategory, clamp
from ..models.scoring import AssessmentResponse, CategoryScore, CompositeScore, DealReadinessResult, ReadinessLabel

logger = logging.getLogger(__name__)

DEAL_READINESS_CATEGORIES = (
    ReadinessCategory.FINANCIAL,
    ReadinessCategory.TRANSFERABILITY,
    ReadinessCategory.OPERATIONAL,
    ReadinessCategory.MARKET,
    ReadinessCategory.LEGAL_TAX,
)

READINESS_LABELS = (
    (0.8, ReadinessLabel.DEAL_READY),
    (0.6, ReadinessLabel.PROGRESSING),
    (0.4, ReadinessLabel.DEVELOPING),
)


def deduplicate_responses(responses: Iterable[AssessmentResponse]) -> List[AssessmentResponse]:
    """Keep the most recently updated response per question.

    Callers pass responses newest-first; on equal (or missing) timestamps the
    first one seen wins.
    """
    latest: "OrderedDict[str, AssessmentResponse]" = OrderedDict()
    for response in responses:
        kept = latest.get(response.question_id)
        if kept is None:
            latest[response.question_id] = response
        elif response.updated_at is not None and kept.updated_at is not None and response.updated_at > kept.updated_at:
            latest[response.question_id] = response
    return list(latest.values())


def normalize_weights(weights: Mapping[ReadinessCategory, float]) -> Dict[ReadinessCategory, float]:
    positive = {ReadinessCategory(cat): max(0.0, float(w)) for cat, w in weights.items()}
    total = sum(positive.values())
    if total <= 0:
        return {cat: 0.0 for cat in positive}
    normalized = {cat: w / total for cat, w in positive.items()}
    # Push floating-point drift into the heaviest category so the sum is exactly 1.0.
    heaviest = max(normalized, key=lambda cat: normalized[cat])
    normalized[heaviest] += 1.0 - sum(normalized.values())
    return normalized


def calculate_category_scores(
    responses: Iterable[AssessmentResponse],
    weights: Optional[Mapping[ReadinessCategory, float]] = None,
) -> List[CategoryScore]:
    normalized = normalize_weights(weights or DEFAULT_CATEGORY_WEIGHTS)
    earned: "OrderedDict[ReadinessCategory, float]" = OrderedDict()
    total: "OrderedDict[ReadinessCategory, float]" = OrderedDict()

    for response in responses:
        if not response.has_option or response.score_value is None:
            continue
        earned[response.category] = earned.get(response.category, 0.0) + response.max_points * response.score_value
        total[response.category] = total.get(response.category, 0.0) + response.max_points

    scores: List[CategoryScore] = []
    for category in ReadinessCategory:
        total_points = total.get(category, 0.0)
        if total_points <= 0:
            continue
        scores.append(
            CategoryScore(
                category=category,
                earned_points=earned[category],
                total_points=total_points,
                score=clamp(earned[category] / total_points, 0.0, 1.0),
                weight=normalized.get(category, 0.0),
            )
        )
    return scores


def calculate_weighted_score(
    category_scores: Iterable[CategoryScore],
    weights: Optional[Mapping[ReadinessCategory, float]] = None,
) -> float:
    normalized = normalize_weights(weights or DEFAULT_CATEGORY_WEIGHTS)
    composite = sum(cs.score * normalized.get(cs.category, 0.0) for cs in category_scores)
    return clamp(composite, 0.0, 1.0)


def calculate_composite(
    responses: Iterable[AssessmentResponse],
    weights: Optional[Mapping[ReadinessCategory, float]] = None,
) -> CompositeScore:
    weights = weights or DEFAULT_CATEGORY_WEIGHTS
    category_scores = calculate_category_scores(deduplicate_responses(responses), weights)
    score = calculate_weighted_score(category_scores, weights)
    logger.debug("Composite readiness %.4f over %d categories", score, len(category_scores))
    return CompositeScore(score=score, categories=category_scores, normalized_weights=normalize_weights(weights))


def get_category_score(
    category_scores: Iterable[CategoryScore],
    category: ReadinessCategory,
    default: Optional[float] = None,
) -> Optional[float]:
    for cs in category_scores:
        if cs.category == category:
            return cs.score
    return default


def calculate_deal_readiness_score(
    category_scores: Iterable[CategoryScore],
    weights: Optional[Mapping[ReadinessCategory, float]] = None,
) -> DealReadinessResult:
    weights = weights or DEFAULT_CATEGORY_WEIGHTS
    present = [cs for cs in category_scores if cs.category in DEAL_READINESS_CATEGORIES]
    if not present:
        return DealReadinessResult(score=0.0, label=ReadinessLabel.NOT_READY)

    normalized = normalize_weights({cs.category: weights.get(cs.category, 0.0) for cs in present})
    contributions = {cs.category: cs.score * normalized[cs.category] for cs in present}
    score = clamp(sum(contributions.values()), 0.0, 1.0)
    label = next((lbl for threshold, lbl in READINESS_LABELS if score >= threshold), ReadinessLabel.NOT_READY)
    return DealReadinessResult(score=score, label=label, contributions=contributions)
