from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from ..config import EngineSettings, get_settings
from ..models.common import clamp, round_half_up
from ..models.multiples import IndustryClassification, IndustryMultiple, MatchLevel, MultipleRange

logger = logging.getLogger(__name__)

DEFAULT_MULTIPLES = MultipleRange(
    ebitda_low=3.0,
    ebitda_high=6.0,
    revenue_low=0.5,
    revenue_high=1.5,
    source="Default SMB multiple range",
    match_level=MatchLevel.DEFAULT,
    is_default=True,
)

LookupStrategy = Tuple[MatchLevel, Callable[[IndustryClassification], Optional[str]]]

# Most specific first.
LOOKUP_CHAIN: Sequence[LookupStrategy] = (
    (MatchLevel.SUBSECTOR, lambda c: c.subsector),
    (MatchLevel.SECTOR, lambda c: c.sector),
    (MatchLevel.SUPERSECTOR, lambda c: c.supersector),
    (MatchLevel.INDUSTRY, lambda c: c.industry),
)


class IndustryMultipleTable:
    """In-memory reference table with cascading lookup by classification."""

    def __init__(self, rows: Iterable[IndustryMultiple] = ()):
        self._rows: List[IndustryMultiple] = list(rows)

    def add(self, row: IndustryMultiple) -> None:
        self._rows.append(row)

    def __len__(self) -> int:
        return len(self._rows)

    def find(self, level: MatchLevel, code: str) -> Optional[IndustryMultiple]:
        attribute = level.value
        matches = [row for row in self._rows if getattr(row, attribute) == code]
        if not matches:
            return None
        return max(matches, key=lambda row: row.effective_date)

    def resolve(self, classification: IndustryClassification) -> MultipleRange:
        for level, code_of in LOOKUP_CHAIN:
            code = code_of(classification)
            if not code:
                continue
            row = self.find(level, code)
            if row is not None:
                logger.debug("Multiples matched at %s level (%s)", level.value, code)
                return _to_range(row, level)
        logger.debug("No multiples matched %s; using default range", classification.model_dump())
        return DEFAULT_MULTIPLES


def _to_range(row: IndustryMultiple, level: MatchLevel) -> MultipleRange:
    ebitda_low, ebitda_high = sorted((row.ebitda_multiple_low, row.ebitda_multiple_high))
    revenue_low, revenue_high = sorted((row.revenue_multiple_low, row.revenue_multiple_high))
    margin_low, margin_high = row.ebitda_margin_low, row.ebitda_margin_high
    if margin_low is not None and margin_high is not None and margin_low > margin_high:
        margin_low, margin_high = margin_high, margin_low
    return MultipleRange(
        ebitda_low=ebitda_low,
        ebitda_high=ebitda_high,
        revenue_low=revenue_low,
        revenue_high=revenue_high,
        margin_low=margin_low,
        margin_high=margin_high,
        source=row.source,
        match_level=level,
        is_default=False,
    )


def get_industry_multiples(table: IndustryMultipleTable, classification: IndustryClassification) -> MultipleRange:
    return table.resolve(classification)


def sanitize_multiples(
    multiples: MultipleRange,
    settings: Optional[EngineSettings] = None,
) -> Tuple[MultipleRange, List[str]]:
    """Swap reversed bounds and clamp externally supplied multiples to sane limits."""
    settings = settings or get_settings()
    warnings: List[str] = []
    ebitda_min, ebitda_max = settings.ebitda_multiple_bounds
    revenue_min, revenue_max = settings.revenue_multiple_bounds

    ebitda_low, ebitda_high = multiples.ebitda_low, multiples.ebitda_high
    if ebitda_low > ebitda_high:
        warnings.append(f"EBITDA multiple range reversed ({ebitda_low}-{ebitda_high}); swapped")
        ebitda_low, ebitda_high = ebitda_high, ebitda_low
    revenue_low, revenue_high = multiples.revenue_low, multiples.revenue_high
    if revenue_low > revenue_high:
        warnings.append(f"Revenue multiple range reversed ({revenue_low}-{revenue_high}); swapped")
        revenue_low, revenue_high = revenue_high, revenue_low

    clamped = {
        "ebitda_low": clamp(ebitda_low, ebitda_min, ebitda_max),
        "ebitda_high": clamp(ebitda_high, ebitda_min, ebitda_max),
        "revenue_low": clamp(revenue_low, revenue_min, revenue_max),
        "revenue_high": clamp(revenue_high, revenue_min, revenue_max),
    }
    original = {
        "ebitda_low": ebitda_low,
        "ebitda_high": ebitda_high,
        "revenue_low": revenue_low,
        "revenue_high": revenue_high,
    }
    for name, value in clamped.items():
        if value != original[name]:
            warnings.append(f"{name} {original[name]} outside bounds; clamped to {value}")

    for message in warnings:
        logger.warning("Reference multiples (%s): %s", multiples.match_level.value, message)

    if not warnings:
        return multiples, warnings
    return multiples.model_copy(update=clamped), warnings


def calculate_base_multiple(low: float, high: float) -> float:
    return (low + high) / 2


def estimate_ebitda_from_revenue(revenue: float, multiples: MultipleRange) -> float:
    """Market-anchored EBITDA estimate for companies without reported EBITDA."""
    if multiples.ebitda_high == 0 or multiples.ebitda_low == 0:
        return 0.0

    ebitda_low = (revenue * multiples.revenue_low) / multiples.ebitda_high
    ebitda_high = (revenue * multiples.revenue_high) / multiples.ebitda_low
    blended = (ebitda_low + ebitda_high) / 2

    # 35% margin is roughly the 95th percentile for SMBs.
    capped = min(blended, revenue * 0.35)
    return float(round_half_up(capped, 100_000))
