from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, conint


class TerminalValueMethod(str, Enum):
    PERPETUITY = "perpetuity"
    MULTIPLE = "multiple"


class EbitdaTier(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    ebitda_min: float
    ebitda_max: float
    size_risk_premium: tuple[float, float]
    company_specific_risk: tuple[float, float]
    pre_tax_cost_of_debt: tuple[float, float]
    typical_debt_weight: float


class WACCDefaultsInput(BaseModel):
    adjusted_ebitda: float
    readiness_score: float
    derived_cost_of_debt: Optional[float] = None
    derived_tax_rate: Optional[float] = None
    derived_debt_weight: Optional[float] = None


class WACCDefaults(BaseModel):
    model_config = ConfigDict(frozen=True)

    risk_free_rate: float
    equity_risk_premium: float
    beta: float
    size_risk_premium: float
    company_specific_risk: float
    pre_tax_cost_of_debt: float
    tax_rate: float
    debt_weight: float
    equity_weight: float
    cost_of_equity: float
    computed_wacc: float
    ebitda_tier: str


class DCFInputs(BaseModel):
    base_fcf: float = Field(..., description="Base-year free cash flow")
    growth_rates: List[float] = Field(..., description="Annual FCF growth for each projection year")
    wacc: float
    terminal_method: TerminalValueMethod = TerminalValueMethod.PERPETUITY
    perpetual_growth_rate: float = 0.025
    exit_multiple: Optional[float] = None
    base_ebitda: Optional[float] = None
    ebitda_growth_rates: Optional[List[float]] = None
    fcf_to_ebitda_ratio: Optional[float] = None
    net_debt: float = 0.0
    use_mid_year: bool = True


class DCFResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    projected_fcf: List[float]
    present_values: List[float]
    discount_factors: List[float]
    pv_of_cash_flows: float
    terminal_value: float
    pv_of_terminal_value: float
    enterprise_value: float
    equity_value: float
    implied_multiple: Optional[float] = None
    terminal_ebitda: Optional[float] = None


class AutoDCFResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    enterprise_value: float
    equity_value: float
    wacc: float
    base_fcf: float
    fcf_is_estimated: bool
    growth_rates: List[float]
    terminal_method: TerminalValueMethod
    perpetual_growth_rate: float
    net_debt: float
    implied_multiple: Optional[float] = None
    wacc_defaults: WACCDefaults
    dcf: DCFResult


class MonteCarloSettings(BaseModel):
    base_inputs: DCFInputs
    wacc_std_dev: float = Field(0.01, ge=0)
    growth_std_dev: float = Field(0.02, ge=0)
    terminal_growth_std_dev: float = Field(0.005, ge=0)
    iterations: conint(ge=1) = 10_000
    final_ebitda: Optional[float] = Field(None, description="Used to report implied EV/EBITDA multiples")


class HistogramBin(BaseModel):
    model_config = ConfigDict(frozen=True)

    min: float
    max: float
    count: int
    percentage: float


class MonteCarloResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    iterations_requested: int
    valid_iterations: int
    discarded_iterations: int
    cancelled: bool = False
    mean: float
    median: float
    std_dev: float
    p5: float
    p10: float
    p25: float
    p75: float
    p90: float
    p95: float
    min: float
    max: float
    base_case_value: Optional[float] = None
    median_implied_multiple: Optional[float] = None
    histogram: List[HistogramBin]
