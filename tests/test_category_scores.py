from __future__ import annotations

from datetime import datetime, timezone

import pytest

from valuation_engine.models.common import DEFAULT_CATEGORY_WEIGHTS, ReadinessCategory
from valuation_engine.models.scoring import AssessmentResponse, CategoryScore, ReadinessLabel
from valuation_engine.sample_data import build_sample_responses
from valuation_engine.services.category_scores import (
    calculate_category_scores,
    calculate_composite,
    calculate_deal_readiness_score,
    deduplicate_responses,
    get_category_score,
    normalize_weights,
)


def _response(question_id, category, points, score, updated_at=None, has_option=True):
    return AssessmentResponse(
        question_id=question_id,
        category=category,
        max_points=points,
        score_value=score,
        has_option=has_option,
        updated_at=updated_at,
    )


def test_category_score_is_points_weighted():
    responses = [
        _response("a", ReadinessCategory.FINANCIAL, 10, 1.0),
        _response("b", ReadinessCategory.FINANCIAL, 30, 0.5),
    ]
    scores = calculate_category_scores(responses)
    assert len(scores) == 1
    assert scores[0].earned_points == pytest.approx(25)
    assert scores[0].total_points == pytest.approx(40)
    assert scores[0].score == pytest.approx(0.625)


def test_unanswered_responses_are_ignored():
    responses = [
        _response("a", ReadinessCategory.MARKET, 10, 0.8),
        _response("b", ReadinessCategory.MARKET, 10, None),
        _response("c", ReadinessCategory.MARKET, 10, 0.2, has_option=False),
    ]
    scores = calculate_category_scores(responses)
    assert scores[0].score == pytest.approx(0.8)
    assert scores[0].total_points == pytest.approx(10)


def test_newest_duplicate_response_wins():
    older = datetime(2025, 1, 1, tzinfo=timezone.utc)
    newer = datetime(2025, 2, 1, tzinfo=timezone.utc)
    responses = [
        _response("q1", ReadinessCategory.FINANCIAL, 10, 0.2, older),
        _response("q1", ReadinessCategory.FINANCIAL, 10, 0.9, newer),
        _response("q2", ReadinessCategory.FINANCIAL, 10, 0.5),
        _response("q2", ReadinessCategory.FINANCIAL, 10, 0.1),
    ]
    kept = {r.question_id: r.score_value for r in deduplicate_responses(responses)}
    assert kept == {"q1": 0.9, "q2": 0.5}


def test_normalized_weights_sum_to_one():
    weights = normalize_weights({ReadinessCategory.FINANCIAL: 3, ReadinessCategory.MARKET: 1, ReadinessCategory.PERSONAL: 2})
    assert sum(weights.values()) == pytest.approx(1.0)
    assert weights[ReadinessCategory.FINANCIAL] == pytest.approx(0.5)


def test_composite_over_sample_responses():
    composite = calculate_composite(build_sample_responses())
    by_category = {cs.category: cs.score for cs in composite.categories}

    assert by_category[ReadinessCategory.FINANCIAL] == pytest.approx(0.7)
    assert by_category[ReadinessCategory.TRANSFERABILITY] == pytest.approx(7 / 15)
    expected = sum(by_category[c] * w for c, w in DEFAULT_CATEGORY_WEIGHTS.items())
    assert composite.score == pytest.approx(expected)
    assert 0.0 <= composite.score <= 1.0


def test_missing_category_has_no_score():
    scores = calculate_category_scores([_response("a", ReadinessCategory.MARKET, 10, 0.5)])
    assert get_category_score(scores, ReadinessCategory.LEGAL_TAX) is None
    assert get_category_score(scores, ReadinessCategory.MARKET) == pytest.approx(0.5)


def test_deal_readiness_excludes_personal_and_labels():
    scores = [
        CategoryScore(category=ReadinessCategory.FINANCIAL, earned_points=9, total_points=10, score=0.9),
        CategoryScore(category=ReadinessCategory.OPERATIONAL, earned_points=7, total_points=10, score=0.7),
        CategoryScore(category=ReadinessCategory.PERSONAL, earned_points=0, total_points=10, score=0.0),
    ]
    result = calculate_deal_readiness_score(scores)
    # FINANCIAL 0.25 and OPERATIONAL 0.20 renormalised over the two present categories.
    expected = 0.9 * (0.25 / 0.45) + 0.7 * (0.20 / 0.45)
    assert result.score == pytest.approx(expected)
    assert result.label == ReadinessLabel.DEAL_READY
    assert ReadinessCategory.PERSONAL not in result.contributions


def test_deal_readiness_without_scores_is_not_ready():
    result = calculate_deal_readiness_score([])
    assert result.score == 0.0
    assert result.label == ReadinessLabel.NOT_READY
