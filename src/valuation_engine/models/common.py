from __future__ import annotations

import math
from enum import Enum
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

from ..errors import FailureReason, ValuationEngineError


T = TypeVar("T")


class RevenueSizeCategory(str, Enum):
    UNDER_500K = "UNDER_500K"
    FROM_500K_TO_1M = "FROM_500K_TO_1M"
    FROM_1M_TO_3M = "FROM_1M_TO_3M"
    FROM_3M_TO_10M = "FROM_3M_TO_10M"
    FROM_10M_TO_25M = "FROM_10M_TO_25M"
    OVER_25M = "OVER_25M"


class RevenueModel(str, Enum):
    PROJECT_BASED = "PROJECT_BASED"
    TRANSACTIONAL = "TRANSACTIONAL"
    RECURRING_CONTRACTS = "RECURRING_CONTRACTS"
    SUBSCRIPTION_SAAS = "SUBSCRIPTION_SAAS"


class OwnerInvolvement(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MODERATE = "MODERATE"
    LOW = "LOW"
    MINIMAL = "MINIMAL"


class ReadinessCategory(str, Enum):
    FINANCIAL = "FINANCIAL"
    TRANSFERABILITY = "TRANSFERABILITY"
    OPERATIONAL = "OPERATIONAL"
    MARKET = "MARKET"
    LEGAL_TAX = "LEGAL_TAX"
    PERSONAL = "PERSONAL"


DEFAULT_CATEGORY_WEIGHTS = {
    ReadinessCategory.FINANCIAL: 0.25,
    ReadinessCategory.TRANSFERABILITY: 0.20,
    ReadinessCategory.OPERATIONAL: 0.20,
    ReadinessCategory.MARKET: 0.15,
    ReadinessCategory.LEGAL_TAX: 0.10,
    ReadinessCategory.PERSONAL: 0.10,
}


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def round_half_up(value: float, step: float = 1.0) -> float:
    return math.floor(value / step + 0.5) * step


def round_places(value: float, places: int) -> float:
    """Round half up at ``places`` decimals, e.g. 0.125 -> 0.13."""
    scale = 10**places
    return math.floor(value * scale + 0.5) / scale


class CalculationOutcome(BaseModel, Generic[T]):
    """Tagged success/failure wrapper for calculations with expected data gaps."""

    ok: bool
    value: Optional[T] = None
    reason: Optional[FailureReason] = None
    detail: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)

    @classmethod
    def success(cls, value: T, warnings: Optional[List[str]] = None) -> "CalculationOutcome[T]":
        return cls(ok=True, value=value, warnings=list(warnings or []))

    @classmethod
    def failure(cls, reason: FailureReason, detail: Optional[str] = None) -> "CalculationOutcome[T]":
        return cls(ok=False, reason=reason, detail=detail)

    def unwrap(self) -> T:
        if not self.ok:
            raise ValuationEngineError(
                self.detail or f"Calculation failed: {self.reason.value if self.reason else 'unknown'}",
                code=self.reason.value if self.reason else "CALCULATION_FAILED",
            )
        return self.value
