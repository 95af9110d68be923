from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from ..errors import DCFComputationError, FailureReason, InvalidInputError
from ..models.common import CalculationOutcome
from ..models.dcf import DCFInputs, DCFResult, TerminalValueMethod

logger = logging.getLogger(__name__)


def project_fcf(base_fcf: float, growth_rates: List[float]) -> List[float]:
    projected: List[float] = []
    current = base_fcf
    for rate in growth_rates:
        current = current * (1 + rate)
        projected.append(current)
    return projected


def discount_periods(years: int, use_mid_year: bool = True) -> List[float]:
    """Discount exponents per projection year; mid-year cash flows arrive half a year early."""
    return [year - 0.5 if use_mid_year else float(year) for year in range(1, years + 1)]


def gordon_terminal_value(final_fcf: float, wacc: float, growth: float) -> float:
    if wacc <= growth:
        raise DCFComputationError(
            FailureReason.WACC_BELOW_TERMINAL_GROWTH,
            f"WACC ({wacc:.2%}) must exceed the terminal growth rate ({growth:.2%})",
            details={"wacc": wacc, "terminal_growth_rate": growth},
        )
    return final_fcf * (1 + growth) / (wacc - growth)


def terminal_ebitda(inputs: DCFInputs, projected: List[float]) -> Optional[float]:
    """Projected final-year EBITDA for the exit-multiple method.

    Prefers an explicit EBITDA growth path, then converts final FCF through the
    FCF-to-EBITDA ratio, and finally grows base EBITDA along the FCF path.
    """
    if inputs.base_ebitda is not None and inputs.ebitda_growth_rates:
        return project_fcf(inputs.base_ebitda, inputs.ebitda_growth_rates)[-1]
    if inputs.fcf_to_ebitda_ratio:
        return projected[-1] / inputs.fcf_to_ebitda_ratio
    if inputs.base_ebitda is not None:
        return project_fcf(inputs.base_ebitda, inputs.growth_rates)[-1]
    return None


def _terminal_value(inputs: DCFInputs, projected: List[float]) -> Tuple[float, Optional[float]]:
    if inputs.terminal_method == TerminalValueMethod.PERPETUITY:
        return gordon_terminal_value(projected[-1], inputs.wacc, inputs.perpetual_growth_rate), None

    if inputs.exit_multiple is None or inputs.exit_multiple <= 0:
        raise DCFComputationError(
            FailureReason.INVALID_INPUTS,
            "Exit-multiple terminal value requires a positive exit multiple",
        )
    final_ebitda = terminal_ebitda(inputs, projected)
    if final_ebitda is None:
        raise DCFComputationError(
            FailureReason.NO_TERMINAL_EBITDA,
            "Exit-multiple terminal value requires base EBITDA or an FCF-to-EBITDA ratio",
        )
    return final_ebitda * inputs.exit_multiple, final_ebitda


def compute_dcf(inputs: DCFInputs) -> DCFResult:
    """Discounted cash flow valuation; raises DCFComputationError on guard failures."""
    if not inputs.growth_rates:
        raise InvalidInputError("At least one projection year is required", field="growth_rates")
    if inputs.wacc <= -1:
        raise InvalidInputError(f"WACC of {inputs.wacc} is not a valid discount rate", field="wacc")

    projected = project_fcf(inputs.base_fcf, inputs.growth_rates)
    periods = discount_periods(len(projected), inputs.use_mid_year)
    factors = [1 / (1 + inputs.wacc) ** period for period in periods]
    present_values = [fcf * factor for fcf, factor in zip(projected, factors)]
    pv_of_cash_flows = sum(present_values)

    terminal_value, final_ebitda = _terminal_value(inputs, projected)
    # Terminal value is discounted from the end of the horizon regardless of convention.
    pv_of_terminal_value = terminal_value / (1 + inputs.wacc) ** len(projected)

    enterprise_value = pv_of_cash_flows + pv_of_terminal_value
    implied_multiple = None
    if inputs.base_ebitda is not None and inputs.base_ebitda > 0:
        implied_multiple = enterprise_value / inputs.base_ebitda

    return DCFResult(
        projected_fcf=projected,
        present_values=present_values,
        discount_factors=factors,
        pv_of_cash_flows=pv_of_cash_flows,
        terminal_value=terminal_value,
        pv_of_terminal_value=pv_of_terminal_value,
        enterprise_value=enterprise_value,
        equity_value=enterprise_value - inputs.net_debt,
        implied_multiple=implied_multiple,
        terminal_ebitda=final_ebitda,
    )


def calculate_dcf(inputs: DCFInputs) -> CalculationOutcome[DCFResult]:
    try:
        result = compute_dcf(inputs)
    except DCFComputationError as exc:
        logger.debug("DCF guard failed: %s", exc.message)
        return CalculationOutcome[DCFResult].failure(exc.reason, exc.message)
    return CalculationOutcome[DCFResult].success(result)


def perpetuity_enterprise_value(
    base_fcf: float,
    growth_rates: List[float],
    wacc: float,
    terminal_growth_rate: float,
    use_mid_year: bool = True,
) -> Optional[float]:
    """Gordon-growth enterprise value, or None when WACC does not exceed terminal growth."""
    if wacc <= terminal_growth_rate or not growth_rates:
        return None
    projected = project_fcf(base_fcf, growth_rates)
    periods = discount_periods(len(projected), use_mid_year)
    pv = sum(fcf / (1 + wacc) ** period for fcf, period in zip(projected, periods))
    terminal_value = projected[-1] * (1 + terminal_growth_rate) / (wacc - terminal_growth_rate)
    return pv + terminal_value / (1 + wacc) ** len(projected)
