from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .common import ReadinessCategory


class CoreFactors(BaseModel):
    """Categorical business attributes. Values are kept as raw strings so an
    unrecognised level degrades to a neutral score instead of failing validation."""

    revenue_model: Optional[str] = None
    gross_margin_proxy: Optional[str] = None
    labor_intensity: Optional[str] = None
    asset_intensity: Optional[str] = None
    owner_involvement: Optional[str] = None


class AssessmentResponse(BaseModel):
    question_id: str
    category: ReadinessCategory
    max_points: float = Field(..., ge=0)
    score_value: Optional[float] = Field(None, description="Resolved 0-1 score of the selected option")
    has_option: bool = True
    updated_at: Optional[datetime] = None


class CategoryScore(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: ReadinessCategory
    earned_points: float
    total_points: float
    score: float
    weight: float = 0.0


class CompositeScore(BaseModel):
    model_config = ConfigDict(frozen=True)

    score: float
    categories: List[CategoryScore]
    normalized_weights: dict


class ReadinessLabel(str, Enum):
    NOT_READY = "not_ready"
    DEVELOPING = "developing"
    PROGRESSING = "progressing"
    DEAL_READY = "deal_ready"


class DealReadinessResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    score: float
    label: ReadinessLabel
    contributions: dict = Field(default_factory=dict)
