from __future__ import annotations

import pytest

from valuation_engine.errors import FailureReason, ValuationEngineError
from valuation_engine.models.common import CalculationOutcome, clamp, round_half_up, round_places


@pytest.mark.parametrize(
    "value, places, expected",
    [
        (0.125, 2, 0.13),
        (0.375, 2, 0.38),
        (0.124, 2, 0.12),
        (0.1083, 4, 0.1083),
        (2.5, 0, 3.0),
    ],
)
def test_round_places_rounds_half_up(value, places, expected):
    assert round_places(value, places) == pytest.approx(expected)


def test_round_half_up_to_step():
    assert round_half_up(2.5) == 3
    assert round_half_up(1_449_999, 100_000) == pytest.approx(1_400_000)
    assert round_half_up(1_450_000, 100_000) == pytest.approx(1_500_000)


def test_clamp():
    assert clamp(1.2, 0.0, 1.0) == 1.0
    assert clamp(-0.1, 0.0, 1.0) == 0.0
    assert clamp(0.4, 0.0, 1.0) == 0.4


def test_outcome_unwrap():
    assert CalculationOutcome[float].success(1.5).unwrap() == 1.5
    failed = CalculationOutcome[float].failure(FailureReason.NEGATIVE_FCF, "Base free cash flow is -10")
    with pytest.raises(ValuationEngineError) as excinfo:
        failed.unwrap()
    assert excinfo.value.code == "negative_fcf"
