"""Monte Carlo simulation over DCF assumptions.

Each iteration samples WACC, every annual growth rate and the terminal growth
rate from independent normals centred on the base case. Iterations are
evaluated in vectorised chunks with a cooperative yield between chunks.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional

import numpy as np

from ..config import EngineSettings, get_settings
from ..errors import DCFComputationError, FailureReason
from ..models.common import CalculationOutcome
from ..models.dcf import DCFInputs, HistogramBin, MonteCarloResult, MonteCarloSettings, TerminalValueMethod
from .dcf import compute_dcf, discount_periods, project_fcf

logger = logging.getLogger(__name__)

WACC_BOUNDS = (0.05, 0.25)
GROWTH_BOUNDS = (-0.20, 0.30)
MIN_TERMINAL_GROWTH = 0.005
TERMINAL_GROWTH_WACC_SPREAD = 0.01
IMPLAUSIBLE_EV_FACTOR = 1000

ProgressCallback = Callable[[int, int], None]


class CancellationToken:
    """Cooperative cancellation flag, checked between chunks."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


def standard_normals(rng: np.random.Generator, shape) -> np.ndarray:
    """Box-Muller transform of uniform draws."""
    u1 = 1.0 - rng.random(shape)  # (0, 1] keeps the log finite
    u2 = rng.random(shape)
    return np.sqrt(-2.0 * np.log(u1)) * np.cos(2.0 * np.pi * u2)


def _terminal_ebitda(base: DCFInputs, projected: np.ndarray, growth: np.ndarray) -> np.ndarray:
    if base.base_ebitda is not None and base.ebitda_growth_rates:
        return np.full(projected.shape[0], project_fcf(base.base_ebitda, base.ebitda_growth_rates)[-1])
    if base.fcf_to_ebitda_ratio:
        return projected[:, -1] / base.fcf_to_ebitda_ratio
    return base.base_ebitda * np.prod(1 + growth, axis=1)


def simulate_chunk(mc: MonteCarloSettings, rng: np.random.Generator, size: int) -> np.ndarray:
    """Enterprise values for ``size`` sampled scenarios; NaN marks a failed guard."""
    base = mc.base_inputs
    years = len(base.growth_rates)
    z = standard_normals(rng, (size, years + 2))

    wacc = np.clip(base.wacc + z[:, 0] * mc.wacc_std_dev, *WACC_BOUNDS)
    growth = np.clip(np.asarray(base.growth_rates) + z[:, 1 : years + 1] * mc.growth_std_dev, *GROWTH_BOUNDS)
    terminal_growth = base.perpetual_growth_rate + z[:, years + 1] * mc.terminal_growth_std_dev
    terminal_growth = np.minimum(np.maximum(terminal_growth, MIN_TERMINAL_GROWTH), wacc - TERMINAL_GROWTH_WACC_SPREAD)

    projected = base.base_fcf * np.cumprod(1 + growth, axis=1)
    periods = np.asarray(discount_periods(years, base.use_mid_year))
    pv_of_cash_flows = (projected / (1 + wacc[:, None]) ** periods).sum(axis=1)

    if base.terminal_method == TerminalValueMethod.PERPETUITY:
        spread = wacc - terminal_growth
        with np.errstate(divide="ignore", invalid="ignore"):
            terminal_value = np.where(spread > 0, projected[:, -1] * (1 + terminal_growth) / spread, np.nan)
    else:
        terminal_value = _terminal_ebitda(base, projected, growth) * base.exit_multiple

    return pv_of_cash_flows + terminal_value / (1 + wacc) ** years


def build_histogram(values: np.ndarray, bins: int) -> List[HistogramBin]:
    counts, edges = np.histogram(values, bins=bins)
    total = len(values)
    return [
        HistogramBin(
            min=float(edges[i]),
            max=float(edges[i + 1]),
            count=int(count),
            percentage=float(count) / total * 100,
        )
        for i, count in enumerate(counts)
    ]


def summarize(
    values: np.ndarray,
    mc: MonteCarloSettings,
    discarded: int,
    cancelled: bool,
    base_case_value: Optional[float],
    bins: int,
) -> MonteCarloResult:
    p5, p10, p25, p75, p90, p95 = np.percentile(values, [5, 10, 25, 75, 90, 95])
    median = float(np.median(values))
    median_multiple = None
    if mc.final_ebitda is not None and mc.final_ebitda > 0:
        median_multiple = median / mc.final_ebitda

    return MonteCarloResult(
        iterations_requested=mc.iterations,
        valid_iterations=len(values),
        discarded_iterations=discarded,
        cancelled=cancelled,
        mean=float(np.mean(values)),
        median=median,
        std_dev=float(np.std(values)),
        p5=float(p5),
        p10=float(p10),
        p25=float(p25),
        p75=float(p75),
        p90=float(p90),
        p95=float(p95),
        min=float(np.min(values)),
        max=float(np.max(values)),
        base_case_value=base_case_value,
        median_implied_multiple=median_multiple,
        histogram=build_histogram(values, bins),
    )


async def run_monte_carlo(
    mc: MonteCarloSettings,
    progress_callback: Optional[ProgressCallback] = None,
    rng: Optional[np.random.Generator] = None,
    cancellation: Optional[CancellationToken] = None,
    settings: Optional[EngineSettings] = None,
) -> CalculationOutcome[MonteCarloResult]:
    settings = settings or get_settings()
    rng = rng if rng is not None else np.random.default_rng()

    base_case_value: Optional[float] = None
    try:
        base_case_value = compute_dcf(mc.base_inputs).enterprise_value
    except DCFComputationError as exc:
        # Sampled terminal growth is clamped below sampled WACC, so only this guard is recoverable.
        if exc.reason != FailureReason.WACC_BELOW_TERMINAL_GROWTH:
            return CalculationOutcome[MonteCarloResult].failure(exc.reason, exc.message)

    ceiling = IMPLAUSIBLE_EV_FACTOR * abs(mc.base_inputs.base_fcf)
    chunks: List[np.ndarray] = []
    completed = 0
    discarded = 0
    cancelled = False

    while completed < mc.iterations:
        size = min(settings.monte_carlo_chunk_size, mc.iterations - completed)
        values = simulate_chunk(mc, rng, size)
        valid = np.isfinite(values) & (values < ceiling)
        chunks.append(values[valid])
        discarded += int(size - valid.sum())
        completed += size

        if progress_callback is not None:
            progress_callback(completed, mc.iterations)
        await asyncio.sleep(0)
        if cancellation is not None and cancellation.cancelled:
            cancelled = completed < mc.iterations
            break

    if discarded:
        logger.warning("Monte Carlo discarded %d of %d iterations", discarded, completed)
    if cancelled:
        logger.info("Monte Carlo cancelled after %d of %d iterations", completed, mc.iterations)

    values = np.concatenate(chunks) if chunks else np.empty(0)
    if values.size == 0:
        return CalculationOutcome[MonteCarloResult].failure(
            FailureReason.NO_VALID_ITERATIONS, f"All {completed} iterations were discarded"
        )

    result = summarize(values, mc, discarded, cancelled, base_case_value, settings.monte_carlo_histogram_bins)
    logger.debug("Monte Carlo: %d valid runs, mean EV %.0f", result.valid_iterations, result.mean)
    return CalculationOutcome[MonteCarloResult].success(result)


def run_monte_carlo_sync(
    mc: MonteCarloSettings,
    rng: Optional[np.random.Generator] = None,
    settings: Optional[EngineSettings] = None,
) -> CalculationOutcome[MonteCarloResult]:
    return asyncio.run(run_monte_carlo(mc, rng=rng, settings=settings))
