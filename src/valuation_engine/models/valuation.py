from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .adjustments import MultipleAdjustment, RiskDiscount
from .common import DEFAULT_CATEGORY_WEIGHTS, ReadinessCategory
from .dcf import TerminalValueMethod
from .financials import EbitdaAdjustment, FinancialPeriod, FinancialProfile
from .multiples import IndustryClassification, MatchLevel
from .scoring import AssessmentResponse, CoreFactors


class ValuationMethod(str, Enum):
    EBITDA = "ebitda"
    REVENUE = "revenue"
    HYBRID = "hybrid"


class EbitdaNormalizationMode(str, Enum):
    LEGACY = "legacy"
    CANONICAL = "canonical"


class LegacyValuationInputs(BaseModel):
    adjusted_ebitda: float
    industry_multiple_low: float
    industry_multiple_high: float
    core_score: float
    readiness_score: float


class LegacyValuationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    base_multiple: float
    discount_fraction: float
    final_multiple: float
    current_value: float
    potential_value: float
    value_gap: float


class RevenueValuationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    current_value: float
    potential_value: float
    value_gap: float
    revenue_multiple_low: float
    revenue_multiple_high: float
    base_multiple: float
    final_multiple: float


class CanonicalValuationInputs(BaseModel):
    adjusted_ebitda: float
    industry_multiple_low: float
    industry_multiple_high: float
    adjustment_multiplier: float
    total_quality_adjustment: float = 0.0
    risk_multiplier: float
    spread_factor: Optional[float] = None


class CanonicalValuationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    industry_median_multiple: float
    quality_adjusted_multiple: float
    risk_adjusted_multiple: float
    total_quality_adjustment: float
    ev_low: float
    ev_mid: float
    ev_high: float
    spread_factor: float


class CategoryGap(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: ReadinessCategory
    score: float
    weight: float
    raw_gap: float
    dollar_impact: float


class ValueGapInputs(BaseModel):
    adjusted_ebitda: float
    industry_median_multiple: float
    industry_multiple_high: float
    quality_adjusted_multiple: float
    risk_adjusted_multiple: float
    risk_discounts: List[RiskDiscount]
    size_discount_rate: float = Field(0.0, description="Signed size adjustment impact, e.g. -0.18")


class ValueGapResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    current_value: float
    addressable_gap: float
    structural_gap: float
    aspirational_gap: float
    total_gap: float
    ceiling_value: float
    category_gaps: List[CategoryGap] = Field(default_factory=list)


class SnapshotRequest(BaseModel):
    """Everything the orchestrator needs for one recalculation."""

    company_id: str
    profile: FinancialProfile
    classification: IndustryClassification = Field(default_factory=IndustryClassification)
    core_factors: Optional[CoreFactors] = None
    responses: List[AssessmentResponse] = Field(default_factory=list)
    category_weights: Dict[ReadinessCategory, float] = Field(default_factory=lambda: dict(DEFAULT_CATEGORY_WEIGHTS))
    ebitda_adjustments: List[EbitdaAdjustment] = Field(default_factory=list)
    normalization_mode: EbitdaNormalizationMode = EbitdaNormalizationMode.CANONICAL
    periods: List[FinancialPeriod] = Field(default_factory=list)
    dcf_manually_configured: bool = False
    reason: str = "Recalculation"
    created_by: Optional[str] = None


class ValuationSnapshot(BaseModel):
    """Append-only record of one recalculation. Legacy and canonical fields
    are both populated on every write."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    company_id: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    created_by: Optional[str] = None
    reason: str

    # Inputs
    adjusted_ebitda: float
    revenue: float
    industry_multiple_low: float
    industry_multiple_high: float
    revenue_multiple_low: float
    revenue_multiple_high: float
    multiple_match_level: MatchLevel
    core_score: float
    readiness_score: float
    category_scores: Dict[ReadinessCategory, float]

    # Legacy formula
    base_multiple: float
    discount_fraction: float
    final_multiple: float
    legacy_current_value: float
    legacy_potential_value: float
    legacy_value_gap: float
    legacy_potential_value_with_improvement: float
    alpha_constant: float

    # Canonical formula
    business_quality_score: float
    deal_readiness_score: float
    risk_severity_score: float
    industry_median_multiple: float
    quality_adjusted_multiple: float
    risk_adjusted_multiple: float
    ev_low: float
    ev_mid: float
    ev_high: float
    spread_factor: float
    dlom_rate: float
    dlom_amount: float
    total_quality_adjustment: float
    quality_adjustments: List[MultipleAdjustment]
    risk_discounts: List[RiskDiscount]

    # Gap decomposition
    addressable_gap: float
    structural_gap: float
    aspirational_gap: float
    total_gap: float
    category_gaps: List[CategoryGap]

    # DCF cross-check
    dcf_enterprise_value: Optional[float] = None
    dcf_equity_value: Optional[float] = None
    dcf_wacc: Optional[float] = None
    dcf_base_fcf: Optional[float] = None
    dcf_growth_rates: Optional[List[float]] = None
    dcf_terminal_method: Optional[TerminalValueMethod] = None
    dcf_perpetual_growth_rate: Optional[float] = None
    dcf_net_debt: Optional[float] = None
    dcf_implied_multiple: Optional[float] = None
    dcf_source: Optional[str] = None

    warnings: List[str] = Field(default_factory=list)
