from __future__ import annotations

import logging

import pytest

from valuation_engine.config import EngineSettings
from valuation_engine.models.multiples import IndustryClassification, IndustryMultiple, MatchLevel, MultipleRange
from valuation_engine.sample_data import build_sample_table
from valuation_engine.services.industry_multiples import (
    DEFAULT_MULTIPLES,
    IndustryMultipleTable,
    estimate_ebitda_from_revenue,
    get_industry_multiples,
    sanitize_multiples,
)


def test_subsector_match_uses_newest_row():
    result = get_industry_multiples(build_sample_table(), IndustryClassification(subsector="50205020", industry="50"))
    assert result.match_level == MatchLevel.SUBSECTOR
    assert (result.ebitda_low, result.ebitda_high) == (4.5, 7.5)
    assert not result.is_default


def test_lookup_falls_through_to_less_specific_levels():
    table = build_sample_table()
    sector = table.resolve(IndustryClassification(subsector="99999999", sector="502050"))
    assert sector.match_level == MatchLevel.SECTOR
    industry = table.resolve(IndustryClassification(subsector="99999999", sector="999999", industry="50"))
    assert industry.match_level == MatchLevel.INDUSTRY


def test_unmatched_classification_returns_default_range():
    result = build_sample_table().resolve(IndustryClassification(industry="99"))
    assert result is DEFAULT_MULTIPLES
    assert result.is_default
    assert (result.ebitda_low, result.ebitda_high, result.revenue_low, result.revenue_high) == (3.0, 6.0, 0.5, 1.5)


def test_reversed_reference_row_is_ordered():
    table = IndustryMultipleTable(
        [
            IndustryMultiple(
                industry="10",
                ebitda_multiple_low=8.0,
                ebitda_multiple_high=5.0,
                revenue_multiple_low=2.0,
                revenue_multiple_high=1.0,
            )
        ]
    )
    result = table.resolve(IndustryClassification(industry="10"))
    assert result.ebitda_low <= result.ebitda_high
    assert result.revenue_low <= result.revenue_high


def test_sanitize_clamps_out_of_bounds_multiples(caplog):
    raw = MultipleRange(
        ebitda_low=0.5,
        ebitda_high=22.0,
        revenue_low=0.2,
        revenue_high=9.0,
        match_level=MatchLevel.SECTOR,
    )
    with caplog.at_level(logging.WARNING, logger="valuation_engine"):
        sanitized, warnings = sanitize_multiples(raw, EngineSettings())
    assert (sanitized.ebitda_low, sanitized.ebitda_high) == (1.5, 15.0)
    assert sanitized.revenue_high == 8.0
    assert sanitized.revenue_low == 0.2
    assert len(warnings) == 3
    assert "clamped" in caplog.text


def test_sanitize_leaves_sane_multiples_untouched():
    sanitized, warnings = sanitize_multiples(DEFAULT_MULTIPLES, EngineSettings())
    assert sanitized == DEFAULT_MULTIPLES
    assert warnings == []


def test_estimate_ebitda_from_revenue():
    # low = 5M * 0.5 / 6 = 416,667; high = 5M * 1.5 / 3 = 2.5M; blended 1,458,333
    assert estimate_ebitda_from_revenue(5_000_000, DEFAULT_MULTIPLES) == pytest.approx(1_500_000)


def test_estimate_ebitda_caps_margin():
    rich = DEFAULT_MULTIPLES.model_copy(update={"revenue_low": 3.0, "revenue_high": 6.0})
    # blended 1.5M is capped at 35% of 1.2M revenue, then rounded to the nearest 100k
    assert estimate_ebitda_from_revenue(1_200_000, rich) == pytest.approx(400_000)
