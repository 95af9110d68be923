from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class MatchLevel(str, Enum):
    SUBSECTOR = "subsector"
    SECTOR = "sector"
    SUPERSECTOR = "supersector"
    INDUSTRY = "industry"
    DEFAULT = "default"


class IndustryClassification(BaseModel):
    """Four-level industry code, most specific first."""

    subsector: Optional[str] = None
    sector: Optional[str] = None
    supersector: Optional[str] = None
    industry: Optional[str] = None


class IndustryMultiple(BaseModel):
    """A reference-table row. Only the codes it is keyed on need to be set."""

    subsector: Optional[str] = None
    sector: Optional[str] = None
    supersector: Optional[str] = None
    industry: Optional[str] = None
    ebitda_multiple_low: float
    ebitda_multiple_high: float
    revenue_multiple_low: float
    revenue_multiple_high: float
    ebitda_margin_low: Optional[float] = None
    ebitda_margin_high: Optional[float] = None
    source: Optional[str] = None
    effective_date: date = Field(default_factory=lambda: date(1970, 1, 1))


class MultipleRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    ebitda_low: float
    ebitda_high: float
    revenue_low: float
    revenue_high: float
    margin_low: Optional[float] = None
    margin_high: Optional[float] = None
    source: Optional[str] = None
    match_level: MatchLevel
    is_default: bool = False

    def ebitda_median(self) -> float:
        return (self.ebitda_low + self.ebitda_high) / 2


class ComparableRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    low: float
    mid: float
    high: float


class ComparableMultipleResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    ebitda_range: Optional[ComparableRange] = None
    revenue_range: Optional[ComparableRange] = None
    comparable_count: int
    base_ebitda_multiple: Optional[float] = None
    base_revenue_multiple: Optional[float] = None
    spread_factor: float
