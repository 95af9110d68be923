from __future__ import annotations

import logging

import pytest

from valuation_engine.config import EngineSettings
from valuation_engine.errors import FailureReason
from valuation_engine.models.multiples import IndustryClassification, MatchLevel
from valuation_engine.models.valuation import EbitdaNormalizationMode
from valuation_engine.sample_data import build_sample_request, build_sample_table
from valuation_engine.services import snapshot as snapshot_module
from valuation_engine.services.snapshot import InMemorySnapshotStore, ValuationCalculator, rescale_task_values


@pytest.fixture
def store() -> InMemorySnapshotStore:
    return InMemorySnapshotStore()


@pytest.fixture
def calculator(store: InMemorySnapshotStore) -> ValuationCalculator:
    return ValuationCalculator(build_sample_table(), store=store, settings=EngineSettings())


def test_sample_request_produces_complete_snapshot(calculator):
    outcome = calculator.recalculate(build_sample_request())
    assert outcome.ok
    snapshot = outcome.value

    assert snapshot.adjusted_ebitda == pytest.approx(1_340_000)
    assert (snapshot.industry_multiple_low, snapshot.industry_multiple_high) == (4.5, 7.5)
    assert snapshot.multiple_match_level == MatchLevel.SUBSECTOR
    assert snapshot.created_by == "analyst@example.com"

    # both formulas are persisted side by side
    assert snapshot.legacy_current_value > 0
    assert snapshot.legacy_potential_value == pytest.approx(1_340_000 * 7.5)
    assert snapshot.legacy_potential_value_with_improvement >= 1_340_000 * snapshot.base_multiple
    assert snapshot.ev_low < snapshot.ev_mid < snapshot.ev_high
    assert snapshot.ev_mid == pytest.approx(1_340_000 * snapshot.risk_adjusted_multiple)
    assert 0.0 <= snapshot.business_quality_score <= 1.0
    assert snapshot.alpha_constant == 1.4


def test_snapshot_risk_and_gap_fields(calculator):
    snapshot = calculator.recalculate(build_sample_request()).unwrap()
    assert snapshot.dlom_rate == 0.15
    assert snapshot.dlom_amount == pytest.approx(snapshot.ev_mid * 0.15 / 0.85)
    assert snapshot.risk_severity_score == pytest.approx(1 - snapshot.risk_adjusted_multiple / snapshot.quality_adjusted_multiple)
    assert snapshot.total_gap == snapshot.addressable_gap + snapshot.structural_gap + snapshot.aspirational_gap
    assert sum(g.dollar_impact for g in snapshot.category_gaps) == snapshot.addressable_gap


def test_snapshot_includes_auto_dcf(calculator):
    snapshot = calculator.recalculate(build_sample_request()).unwrap()
    assert snapshot.dcf_source == "auto"
    assert snapshot.dcf_base_fcf == pytest.approx(810_000)
    assert snapshot.dcf_net_debt == pytest.approx(500_000)
    assert snapshot.dcf_enterprise_value > 0
    assert snapshot.dcf_implied_multiple == pytest.approx(snapshot.dcf_enterprise_value / 1_340_000)


def test_snapshots_are_append_only(calculator, store):
    first = calculator.recalculate(build_sample_request()).unwrap()
    second = calculator.recalculate(build_sample_request().model_copy(update={"reason": "EBITDA updated"})).unwrap()
    history = store.history_for("acme-industrial")
    assert [s.id for s in history] == [first.id, second.id]
    assert store.latest_for("acme-industrial").reason == "EBITDA updated"
    assert store.latest_for("unknown") is None


def test_no_responses_means_no_snapshot(calculator, store):
    request = build_sample_request().model_copy(update={"responses": []})
    outcome = calculator.recalculate(request)
    assert not outcome.ok
    assert outcome.reason == FailureReason.NO_ASSESSMENT_RESPONSES
    assert store.history_for("acme-industrial") == []


def test_legacy_normalization_mode(calculator):
    request = build_sample_request()
    underpaid = request.model_copy(
        update={
            "profile": request.profile.model_copy(update={"owner_compensation": 150_000}),
            "normalization_mode": EbitdaNormalizationMode.LEGACY,
        }
    )
    assert calculator.recalculate(underpaid).unwrap().adjusted_ebitda == pytest.approx(1_280_000)


def test_unknown_size_category_uses_default_dlom(calculator):
    request = build_sample_request()
    unsized = request.model_copy(update={"profile": request.profile.model_copy(update={"size_category": None})})
    snapshot = calculator.recalculate(unsized).unwrap()
    assert snapshot.dlom_rate == 0.18
    # revenue still drives the size adjustment to the multiple
    assert any(adj.factor == "size_discount" for adj in snapshot.quality_adjustments)


def test_manual_dcf_is_not_overwritten(calculator):
    request = build_sample_request().model_copy(update={"dcf_manually_configured": True})
    snapshot = calculator.recalculate(request).unwrap()
    assert snapshot.dcf_source is None
    assert snapshot.dcf_enterprise_value is None


def test_missing_periods_skip_dcf_only(calculator):
    snapshot = calculator.recalculate(build_sample_request().model_copy(update={"periods": []})).unwrap()
    assert snapshot.dcf_enterprise_value is None
    assert snapshot.ev_mid > 0


def test_dcf_errors_do_not_block_snapshot(calculator, monkeypatch, caplog):
    def explode(*args, **kwargs):
        raise RuntimeError("balance sheet feed unavailable")

    monkeypatch.setattr(snapshot_module, "calculate_auto_dcf", explode)
    with caplog.at_level(logging.ERROR, logger="valuation_engine"):
        outcome = calculator.recalculate(build_sample_request())
    assert outcome.ok
    assert outcome.value.dcf_enterprise_value is None
    assert "Auto DCF failed" in caplog.text


def test_unmatched_industry_uses_default_multiples(calculator):
    request = build_sample_request().model_copy(update={"classification": IndustryClassification(industry="99")})
    snapshot = calculator.recalculate(request).unwrap()
    assert snapshot.multiple_match_level == MatchLevel.DEFAULT
    assert (snapshot.industry_multiple_low, snapshot.industry_multiple_high) == (3.0, 6.0)


def test_rescale_task_values_sums_to_gap():
    scaled = rescale_task_values({"a": 100.0, "b": 100.0, "c": 100.0}, 1000)
    assert scaled == {"a": 334.0, "b": 333.0, "c": 333.0}
    assert rescale_task_values({"a": 50.0, "b": 150.0}, 400) == {"a": 100.0, "b": 300.0}


def test_rescale_task_values_without_gap():
    assert rescale_task_values({"a": 100.0}, 0) == {"a": 0.0}
    assert rescale_task_values({"a": 0.0, "b": 0.0}, 500) == {"a": 0.0, "b": 0.0}
    assert rescale_task_values({}, 500) == {}
