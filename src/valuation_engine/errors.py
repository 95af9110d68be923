from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class FailureReason(str, Enum):
    NO_CASH_FLOW_DATA = "no_cash_flow_data"
    NEGATIVE_FCF = "negative_fcf"
    WACC_BELOW_TERMINAL_GROWTH = "wacc_below_terminal_growth"
    NO_ASSESSMENT_RESPONSES = "no_assessment_responses"
    NO_TERMINAL_EBITDA = "no_terminal_ebitda"
    INVALID_INPUTS = "invalid_inputs"
    NO_VALID_ITERATIONS = "no_valid_iterations"


class ValuationEngineError(Exception):
    """Base exception for the valuation engine."""

    def __init__(self, message: str, code: str = "VALUATION_ERROR", details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class InvalidInputError(ValuationEngineError):
    """Raised when a caller passes structurally invalid arguments."""

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "INVALID_INPUT", details)
        self.field = field


class DCFComputationError(ValuationEngineError):
    """Raised by the strict DCF entry point when a guard condition fails."""

    def __init__(self, reason: FailureReason, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, reason.value.upper(), details)
        self.reason = reason
