from __future__ import annotations

import logging
from typing import List, Optional

import numpy as np

from ..config import EngineSettings, get_settings
from ..errors import DCFComputationError, FailureReason
from ..models.common import CalculationOutcome, clamp, round_places
from ..models.dcf import AutoDCFResult, DCFInputs, TerminalValueMethod
from ..models.financials import FinancialPeriod, newest_first
from .dcf import compute_dcf
from .wacc import calculate_wacc_defaults, derive_wacc_inputs

logger = logging.getLogger(__name__)

HISTORICAL_GROWTH_BOUNDS = (0.0, 0.25)
# (historical, terminal) weights for years one to four; year five is terminal growth.
GROWTH_TAPER = ((1.0, 0.0), (0.85, 0.15), (0.60, 0.40), (0.35, 0.65))


def historical_fcf_growth(periods: List[FinancialPeriod]) -> Optional[float]:
    """Median year-over-year FCF growth, or None with fewer than two usable periods."""
    history = [fcf for fcf in (p.free_cash_flow() for p in reversed(newest_first(periods))) if fcf is not None]
    growth = [
        (current - previous) / previous
        for previous, current in zip(history, history[1:])
        if previous > 0 and current > 0
    ]
    if not growth:
        return None
    return float(np.median(growth))


def derive_growth_rates(
    periods: List[FinancialPeriod],
    settings: Optional[EngineSettings] = None,
) -> List[float]:
    """Five-year path starting at historical median growth and easing into terminal growth."""
    settings = settings or get_settings()
    median_growth = historical_fcf_growth(periods)
    if median_growth is None:
        return list(settings.default_growth_rates)

    start = clamp(median_growth, *HISTORICAL_GROWTH_BOUNDS)
    terminal = settings.terminal_growth_rate
    rates = [round_places(start * historical + terminal * blend, 4) for historical, blend in GROWTH_TAPER]
    return rates + [terminal]


def calculate_auto_dcf(
    periods: List[FinancialPeriod],
    readiness_score: float,
    adjusted_ebitda: Optional[float] = None,
    settings: Optional[EngineSettings] = None,
) -> CalculationOutcome[AutoDCFResult]:
    settings = settings or get_settings()
    if not periods:
        return CalculationOutcome[AutoDCFResult].failure(
            FailureReason.NO_CASH_FLOW_DATA, "No financial periods available"
        )

    latest = newest_first(periods)[0]
    latest_ebitda = latest.income_statement.ebitda if latest.income_statement else 0.0
    ebitda = adjusted_ebitda if adjusted_ebitda is not None and adjusted_ebitda > 0 else latest_ebitda

    base_fcf = latest.free_cash_flow()
    fcf_is_estimated = False
    if base_fcf is None:
        if ebitda <= 0:
            return CalculationOutcome[AutoDCFResult].failure(
                FailureReason.NO_CASH_FLOW_DATA,
                f"Period {latest.label} has neither cash-flow data nor positive EBITDA",
            )
        base_fcf = ebitda * settings.fcf_conversion_ratio
        fcf_is_estimated = True
    if base_fcf <= 0:
        return CalculationOutcome[AutoDCFResult].failure(
            FailureReason.NEGATIVE_FCF, f"Base free cash flow is {base_fcf:,.0f}"
        )

    growth_rates = derive_growth_rates(periods, settings)
    ebitda_for_tier = ebitda if ebitda > 0 else base_fcf / settings.fcf_conversion_ratio
    wacc_defaults = calculate_wacc_defaults(
        derive_wacc_inputs(latest, ebitda_for_tier, readiness_score), settings
    )
    net_debt = latest.balance_sheet.net_debt() if latest.balance_sheet else 0.0

    inputs = DCFInputs(
        base_fcf=base_fcf,
        growth_rates=growth_rates,
        wacc=wacc_defaults.computed_wacc,
        terminal_method=TerminalValueMethod.PERPETUITY,
        perpetual_growth_rate=settings.terminal_growth_rate,
        base_ebitda=ebitda if ebitda > 0 else None,
        net_debt=net_debt,
    )
    try:
        dcf = compute_dcf(inputs)
    except DCFComputationError as exc:
        return CalculationOutcome[AutoDCFResult].failure(exc.reason, exc.message)

    logger.debug(
        "Auto DCF: base FCF %.0f (%s), WACC %.4f, EV %.0f",
        base_fcf,
        "estimated" if fcf_is_estimated else "reported",
        inputs.wacc,
        dcf.enterprise_value,
    )
    warnings = [f"Base FCF estimated at {settings.fcf_conversion_ratio:.0%} of EBITDA"] if fcf_is_estimated else []
    return CalculationOutcome[AutoDCFResult].success(
        AutoDCFResult(
            enterprise_value=dcf.enterprise_value,
            equity_value=dcf.equity_value,
            wacc=inputs.wacc,
            base_fcf=base_fcf,
            fcf_is_estimated=fcf_is_estimated,
            growth_rates=growth_rates,
            terminal_method=inputs.terminal_method,
            perpetual_growth_rate=inputs.perpetual_growth_rate,
            net_debt=net_debt,
            implied_multiple=dcf.implied_multiple,
            wacc_defaults=wacc_defaults,
            dcf=dcf,
        ),
        warnings,
    )
