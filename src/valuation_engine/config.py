from __future__ import annotations

from functools import lru_cache
from typing import List

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Tunable constants for the valuation engine.

    Every field can be overridden through an environment variable prefixed
    with ``VALUATION_`` (e.g. ``VALUATION_SPREAD_FACTOR=0.2``).
    """

    model_config = SettingsConfigDict(env_prefix="VALUATION_", env_file=".env", extra="ignore")

    # Legacy formula
    alpha: float = Field(1.4, description="Exponent of the non-linear readiness discount")

    # Canonical formula
    spread_factor: float = Field(0.15, description="Fractional width of the EV low/high range")
    adjustment_multiplier_floor: float = Field(0.3, description="Lower bound of the quality multiplier")
    adjustment_multiplier_cap: float = Field(1.5, description="Upper bound of the quality multiplier")

    # Market constants
    risk_free_rate: float = Field(0.041, description="10-year treasury yield")
    equity_risk_premium: float = Field(0.050, description="Supply-side equity risk premium")
    beta: float = Field(1.0, description="Default unlevered beta for private businesses")
    default_tax_rate: float = Field(0.25, description="Federal plus blended state corporate rate")
    terminal_growth_rate: float = Field(0.025, description="Long-term nominal GDP growth")
    default_growth_rates: List[float] = Field(
        default_factory=lambda: [0.05, 0.05, 0.04, 0.03, 0.025],
        description="Five-year FCF growth path when no history is available",
    )
    fcf_conversion_ratio: float = Field(0.70, description="FCF estimate as a share of EBITDA")

    # Reference data sanity bounds
    ebitda_multiple_bounds: List[float] = Field(default_factory=lambda: [1.5, 15.0])
    revenue_multiple_bounds: List[float] = Field(default_factory=lambda: [0.1, 8.0])

    # Monte Carlo
    monte_carlo_chunk_size: int = Field(500, description="Iterations per cooperative chunk")
    monte_carlo_histogram_bins: int = Field(20, description="Histogram bin count (20-25)")

    @field_validator("spread_factor")
    @classmethod
    def check_spread(cls, value: float) -> float:
        if not 0 <= value < 1:
            raise ValueError("spread_factor must be in [0, 1)")
        return value

    @field_validator("monte_carlo_histogram_bins")
    @classmethod
    def check_bins(cls, value: int) -> int:
        if not 20 <= value <= 25:
            raise ValueError("monte_carlo_histogram_bins must be between 20 and 25")
        return value

    @model_validator(mode="after")
    def check_bounds(self) -> "EngineSettings":
        if self.adjustment_multiplier_floor <= 0 or self.adjustment_multiplier_floor >= self.adjustment_multiplier_cap:
            raise ValueError("adjustment multiplier floor must be positive and below the cap")
        for name in ("ebitda_multiple_bounds", "revenue_multiple_bounds"):
            bounds = getattr(self, name)
            if len(bounds) != 2 or bounds[0] > bounds[1]:
                raise ValueError(f"{name} must be a [low, high] pair")
        if len(self.default_growth_rates) != 5:
            raise ValueError("default_growth_rates must contain five annual rates")
        return self


@lru_cache
def get_settings() -> EngineSettings:
    return EngineSettings()
