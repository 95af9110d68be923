from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class AdjustmentCategory(str, Enum):
    SIZE = "size"
    GROWTH = "growth"
    PROFITABILITY = "profitability"
    RISK = "risk"
    QUALITY = "quality"


class AdjustmentProfile(BaseModel):
    """Subject-company attributes the quality adjustments are computed from."""

    revenue: float
    size_category: Optional[str] = None
    revenue_growth_rate: Optional[float] = None
    ebitda_margin: Optional[float] = None
    top_customer_concentration: Optional[float] = None
    top3_customer_concentration: Optional[float] = None
    transferability_score: Optional[float] = None
    revenue_model: Optional[str] = None
    is_recurring_revenue: bool = False


class MultipleAdjustment(BaseModel):
    model_config = ConfigDict(frozen=True)

    factor: str
    name: str
    impact: float = Field(..., description="Signed decimal, e.g. -0.15 for a 15% discount")
    explanation: str
    enabled: bool = True
    category: AdjustmentCategory


class AdjustmentResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    adjustments: List[MultipleAdjustment]
    total_adjustment: float
    adjustment_multiplier: float

    def find(self, factor: str) -> MultipleAdjustment | None:
        return next((adj for adj in self.adjustments if adj.factor == factor), None)


class BusinessQualityScore(BaseModel):
    model_config = ConfigDict(frozen=True)

    score: float
    adjustments: AdjustmentResult


class RiskDiscount(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    rate: float = Field(..., ge=0, lt=1)
    explanation: str


class RiskDiscountResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    discounts: List[RiskDiscount]
    risk_multiplier: float
    risk_severity_score: float

    def rate_of(self, name: str) -> float:
        discount = next((d for d in self.discounts if d.name == name), None)
        return discount.rate if discount else 0.0
