"""Market-calibrated WACC defaults.

Size premia follow a log-linear curve through fixed EBITDA anchors rather
than tier midpoints; company-specific risk falls linearly as the readiness
score improves. Financial-statement derived cost of debt, tax rate and
capital structure replace the tier defaults when they look sane.
"""
from __future__ import annotations

import logging
import math
from typing import List, Optional, Sequence, Tuple

from ..config import EngineSettings, get_settings
from ..models.common import clamp, round_places
from ..models.dcf import EbitdaTier, WACCDefaults, WACCDefaultsInput
from ..models.financials import FinancialPeriod
from .dcf import perpetuity_enterprise_value

logger = logging.getLogger(__name__)

EBITDA_TIERS: Sequence[EbitdaTier] = (
    EbitdaTier(
        label="Micro",
        ebitda_min=0,
        ebitda_max=500_000,
        size_risk_premium=(0.065, 0.080),
        company_specific_risk=(0.060, 0.120),
        pre_tax_cost_of_debt=(0.110, 0.140),
        typical_debt_weight=0.15,
    ),
    EbitdaTier(
        label="Small",
        ebitda_min=500_000,
        ebitda_max=2_000_000,
        size_risk_premium=(0.055, 0.070),
        company_specific_risk=(0.050, 0.100),
        pre_tax_cost_of_debt=(0.100, 0.120),
        typical_debt_weight=0.20,
    ),
    EbitdaTier(
        label="Lower-Mid",
        ebitda_min=2_000_000,
        ebitda_max=5_000_000,
        size_risk_premium=(0.040, 0.055),
        company_specific_risk=(0.030, 0.060),
        pre_tax_cost_of_debt=(0.085, 0.100),
        typical_debt_weight=0.25,
    ),
    EbitdaTier(
        label="Mid-Market",
        ebitda_min=5_000_000,
        ebitda_max=10_000_000,
        size_risk_premium=(0.030, 0.045),
        company_specific_risk=(0.020, 0.050),
        pre_tax_cost_of_debt=(0.080, 0.095),
        typical_debt_weight=0.30,
    ),
    EbitdaTier(
        label="Upper-Mid",
        ebitda_min=10_000_000,
        ebitda_max=25_000_000,
        size_risk_premium=(0.020, 0.035),
        company_specific_risk=(0.010, 0.030),
        pre_tax_cost_of_debt=(0.075, 0.090),
        typical_debt_weight=0.35,
    ),
    EbitdaTier(
        label="Large",
        ebitda_min=25_000_000,
        ebitda_max=50_000_000,
        size_risk_premium=(0.015, 0.025),
        company_specific_risk=(0.005, 0.020),
        pre_tax_cost_of_debt=(0.070, 0.085),
        typical_debt_weight=0.35,
    ),
    EbitdaTier(
        label="Enterprise",
        ebitda_min=50_000_000,
        ebitda_max=math.inf,
        size_risk_premium=(0.010, 0.020),
        company_specific_risk=(0.000, 0.015),
        pre_tax_cost_of_debt=(0.065, 0.080),
        typical_debt_weight=0.40,
    ),
)

# (EBITDA, size premium)
SIZE_PREMIUM_ANCHORS: Sequence[Tuple[float, float]] = (
    (250_000, 0.080),
    (500_000, 0.070),
    (1_000_000, 0.062),
    (2_000_000, 0.055),
    (5_000_000, 0.042),
    (10_000_000, 0.032),
    (25_000_000, 0.022),
    (50_000_000, 0.015),
)

COST_OF_DEBT_BOUNDS = (0.03, 0.20)
TAX_RATE_BOUNDS = (0.05, 0.50)
MAX_DEBT_WEIGHT = 0.80

IMPLIED_WACC_CEILING = 0.50
IMPLIED_WACC_ITERATIONS = 50
IMPLIED_WACC_TOLERANCE = 0.0001


def _round4(value: float) -> float:
    return round_places(value, 4)


def _within(value: Optional[float], bounds: Tuple[float, float]) -> bool:
    return value is not None and bounds[0] <= value <= bounds[1]


def find_ebitda_tier(ebitda: float) -> EbitdaTier:
    for tier in EBITDA_TIERS:
        if tier.ebitda_min <= ebitda < tier.ebitda_max:
            return tier
    # Negative EBITDA has no tier of its own.
    return EBITDA_TIERS[-1] if ebitda >= EBITDA_TIERS[-1].ebitda_min else EBITDA_TIERS[0]


def interpolate_size_risk_premium(ebitda: float) -> float:
    first_ebitda, first_premium = SIZE_PREMIUM_ANCHORS[0]
    last_ebitda, last_premium = SIZE_PREMIUM_ANCHORS[-1]
    if ebitda <= first_ebitda:
        return first_premium
    if ebitda >= last_ebitda:
        return last_premium

    log_ebitda = math.log(ebitda)
    for (low_ebitda, low_premium), (high_ebitda, high_premium) in zip(SIZE_PREMIUM_ANCHORS, SIZE_PREMIUM_ANCHORS[1:]):
        if low_ebitda <= ebitda < high_ebitda:
            t = (log_ebitda - math.log(low_ebitda)) / (math.log(high_ebitda) - math.log(low_ebitda))
            return _round4(low_premium + t * (high_premium - low_premium))
    return last_premium


def calculate_csr_from_readiness(readiness_score: float, csr_low: float, csr_high: float) -> float:
    score = clamp(readiness_score, 0.0, 1.0)
    return _round4(csr_high - score * (csr_high - csr_low))


def calculate_wacc_defaults(
    inputs: WACCDefaultsInput,
    settings: Optional[EngineSettings] = None,
) -> WACCDefaults:
    settings = settings or get_settings()
    tier = find_ebitda_tier(inputs.adjusted_ebitda)

    size_risk_premium = interpolate_size_risk_premium(inputs.adjusted_ebitda)
    company_specific_risk = calculate_csr_from_readiness(inputs.readiness_score, *tier.company_specific_risk)

    if _within(inputs.derived_cost_of_debt, COST_OF_DEBT_BOUNDS):
        pre_tax_cost_of_debt = inputs.derived_cost_of_debt
    else:
        pre_tax_cost_of_debt = sum(tier.pre_tax_cost_of_debt) / 2

    tax_rate = inputs.derived_tax_rate if _within(inputs.derived_tax_rate, TAX_RATE_BOUNDS) else settings.default_tax_rate

    if _within(inputs.derived_debt_weight, (0.0, MAX_DEBT_WEIGHT)):
        debt_weight = inputs.derived_debt_weight
    else:
        debt_weight = tier.typical_debt_weight
    equity_weight = 1 - debt_weight

    cost_of_equity = (
        settings.risk_free_rate
        + settings.beta * settings.equity_risk_premium
        + size_risk_premium
        + company_specific_risk
    )
    computed_wacc = equity_weight * cost_of_equity + debt_weight * pre_tax_cost_of_debt * (1 - tax_rate)
    logger.debug(
        "WACC defaults: tier=%s Ke=%.4f Kd=%.4f t=%.2f Wd=%.2f -> %.4f",
        tier.label,
        cost_of_equity,
        pre_tax_cost_of_debt,
        tax_rate,
        debt_weight,
        computed_wacc,
    )

    return WACCDefaults(
        risk_free_rate=settings.risk_free_rate,
        equity_risk_premium=settings.equity_risk_premium,
        beta=settings.beta,
        size_risk_premium=size_risk_premium,
        company_specific_risk=company_specific_risk,
        pre_tax_cost_of_debt=pre_tax_cost_of_debt,
        tax_rate=tax_rate,
        debt_weight=debt_weight,
        equity_weight=equity_weight,
        cost_of_equity=cost_of_equity,
        computed_wacc=computed_wacc,
        ebitda_tier=tier.label,
    )


def derive_wacc_inputs(
    period: Optional[FinancialPeriod],
    adjusted_ebitda: float,
    readiness_score: float,
) -> WACCDefaultsInput:
    """Read cost of debt, tax rate and debt weight off the latest financial period."""
    derived_cost_of_debt: Optional[float] = None
    derived_tax_rate: Optional[float] = None
    derived_debt_weight: Optional[float] = None

    income = period.income_statement if period else None
    balance = period.balance_sheet if period else None

    if income is not None and balance is not None:
        total_debt = balance.total_debt()
        if income.interest_expense > 0 and total_debt > 0:
            candidate = income.interest_expense / total_debt
            if _within(candidate, COST_OF_DEBT_BOUNDS):
                derived_cost_of_debt = candidate
        ebt = income.ebt()
        if income.tax_expense > 0 and ebt > 0:
            candidate = income.tax_expense / ebt
            if _within(candidate, TAX_RATE_BOUNDS):
                derived_tax_rate = candidate

    if balance is not None:
        total_debt = balance.total_debt()
        total_capital = total_debt + balance.total_equity
        if total_capital > 0 and balance.total_equity > 0:
            derived_debt_weight = min(total_debt / total_capital, MAX_DEBT_WEIGHT)

    return WACCDefaultsInput(
        adjusted_ebitda=adjusted_ebitda,
        readiness_score=readiness_score,
        derived_cost_of_debt=derived_cost_of_debt,
        derived_tax_rate=derived_tax_rate,
        derived_debt_weight=derived_debt_weight,
    )


def solve_implied_wacc(
    target_ev: float,
    base_fcf: float,
    growth_rates: List[float],
    terminal_growth_rate: float,
    use_mid_year: bool = True,
) -> Optional[float]:
    """Bisect for the WACC at which a perpetuity DCF reproduces ``target_ev``."""
    if target_ev <= 0 or base_fcf <= 0 or not growth_rates:
        return None

    def ev_at(wacc: float) -> Optional[float]:
        return perpetuity_enterprise_value(base_fcf, growth_rates, wacc, terminal_growth_rate, use_mid_year)

    lo = terminal_growth_rate + 0.001
    hi = IMPLIED_WACC_CEILING
    ev_lo, ev_hi = ev_at(lo), ev_at(hi)
    if ev_lo is None or ev_hi is None:
        return None
    # EV falls as WACC rises; the target must sit between the two extremes.
    if ev_lo < target_ev or ev_hi > target_ev:
        return None

    for _ in range(IMPLIED_WACC_ITERATIONS):
        mid = (lo + hi) / 2
        ev_mid = ev_at(mid)
        if ev_mid is None:
            lo = mid
            continue
        if abs(ev_mid - target_ev) / target_ev < IMPLIED_WACC_TOLERANCE:
            return _round4(mid)
        if ev_mid > target_ev:
            lo = mid
        else:
            hi = mid
    return _round4((lo + hi) / 2)
