from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, List, Mapping, Optional, Protocol, Tuple

from ..config import EngineSettings, get_settings
from ..errors import FailureReason
from ..models.adjustments import BusinessQualityScore, RiskDiscountResult
from ..models.common import CalculationOutcome, ReadinessCategory, round_half_up
from ..models.dcf import AutoDCFResult
from ..models.multiples import MultipleRange
from ..models.scoring import CompositeScore
from ..models.valuation import (
    CanonicalValuationInputs,
    CanonicalValuationResult,
    LegacyValuationInputs,
    LegacyValuationResult,
    SnapshotRequest,
    ValuationSnapshot,
    ValueGapInputs,
    ValueGapResult,
)
from .auto_dcf import calculate_auto_dcf
from .category_scores import calculate_composite, calculate_deal_readiness_score, get_category_score
from .core_factors import calculate_core_score
from .industry_multiples import IndustryMultipleTable, sanitize_multiples
from .multiple_adjustments import build_adjustment_profile, calculate_business_quality_score
from .risk_discounts import DLOM_NAME, RiskDiscountInputs, calculate_risk_discounts, dlom_amount
from .valuation import (
    calculate_canonical_valuation,
    calculate_ebitda_improvement_multiplier,
    calculate_legacy_valuation,
    normalize_ebitda,
)
from .value_gap import calculate_value_gap

logger = logging.getLogger(__name__)


class SnapshotStore(Protocol):
    def save(self, snapshot: ValuationSnapshot) -> None:
        ...

    def latest_for(self, company_id: str) -> Optional[ValuationSnapshot]:
        ...

    def history_for(self, company_id: str) -> List[ValuationSnapshot]:
        ...


class InMemorySnapshotStore:
    """Append-only snapshot history keyed by company."""

    def __init__(self) -> None:
        self._snapshots: Dict[str, List[ValuationSnapshot]] = defaultdict(list)

    def save(self, snapshot: ValuationSnapshot) -> None:
        self._snapshots[snapshot.company_id].append(snapshot)

    def latest_for(self, company_id: str) -> Optional[ValuationSnapshot]:
        history = self._snapshots.get(company_id)
        return history[-1] if history else None

    def history_for(self, company_id: str) -> List[ValuationSnapshot]:
        return list(self._snapshots.get(company_id, []))


class ValuationCalculator:
    def __init__(
        self,
        multiples_table: IndustryMultipleTable,
        store: Optional[SnapshotStore] = None,
        settings: Optional[EngineSettings] = None,
    ):
        self.multiples_table = multiples_table
        self.store = store
        self.settings = settings or get_settings()

    def recalculate(self, request: SnapshotRequest) -> CalculationOutcome[ValuationSnapshot]:
        if not request.responses:
            logger.info("Company %s has no assessment responses; snapshot not created", request.company_id)
            return CalculationOutcome[ValuationSnapshot].failure(
                FailureReason.NO_ASSESSMENT_RESPONSES,
                f"Company {request.company_id} has no assessment responses",
            )

        multiples, warnings = self._compute_multiples(request)
        composite = calculate_composite(request.responses, request.category_weights)
        core_score = calculate_core_score(request.core_factors)
        adjusted_ebitda = normalize_ebitda(
            request.profile, request.ebitda_adjustments, multiples, request.normalization_mode
        )

        legacy = self._compute_legacy(adjusted_ebitda, multiples, core_score, composite.score)
        improvement = calculate_ebitda_improvement_multiplier(composite.categories, composite.normalized_weights)
        potential_with_improvement = adjusted_ebitda * improvement * legacy.base_multiple if adjusted_ebitda > 0 else 0.0

        transferability = get_category_score(composite.categories, ReadinessCategory.TRANSFERABILITY)
        quality = calculate_business_quality_score(
            build_adjustment_profile(request.profile, transferability), self.settings
        )
        risk = self._compute_risk(request, composite, transferability)
        canonical = self._compute_canonical(adjusted_ebitda, multiples, quality, risk)
        gap = self._compute_gap(adjusted_ebitda, multiples, canonical, quality, risk, composite)
        deal_readiness = calculate_deal_readiness_score(composite.categories, request.category_weights)

        dlom_rate = risk.rate_of(DLOM_NAME)
        dcf_fields = self._compute_dcf(request, adjusted_ebitda, composite.score)

        snapshot = ValuationSnapshot(
            company_id=request.company_id,
            created_by=request.created_by,
            reason=request.reason,
            adjusted_ebitda=adjusted_ebitda,
            revenue=request.profile.revenue,
            industry_multiple_low=multiples.ebitda_low,
            industry_multiple_high=multiples.ebitda_high,
            revenue_multiple_low=multiples.revenue_low,
            revenue_multiple_high=multiples.revenue_high,
            multiple_match_level=multiples.match_level,
            core_score=core_score,
            readiness_score=composite.score,
            category_scores={cs.category: cs.score for cs in composite.categories},
            base_multiple=legacy.base_multiple,
            discount_fraction=legacy.discount_fraction,
            final_multiple=legacy.final_multiple,
            legacy_current_value=legacy.current_value,
            legacy_potential_value=legacy.potential_value,
            legacy_value_gap=legacy.value_gap,
            legacy_potential_value_with_improvement=potential_with_improvement,
            alpha_constant=self.settings.alpha,
            business_quality_score=quality.score,
            deal_readiness_score=deal_readiness.score,
            risk_severity_score=risk.risk_severity_score,
            industry_median_multiple=canonical.industry_median_multiple,
            quality_adjusted_multiple=canonical.quality_adjusted_multiple,
            risk_adjusted_multiple=canonical.risk_adjusted_multiple,
            ev_low=canonical.ev_low,
            ev_mid=canonical.ev_mid,
            ev_high=canonical.ev_high,
            spread_factor=canonical.spread_factor,
            dlom_rate=dlom_rate,
            dlom_amount=dlom_amount(canonical.ev_mid, dlom_rate),
            total_quality_adjustment=canonical.total_quality_adjustment,
            quality_adjustments=quality.adjustments.adjustments,
            risk_discounts=risk.discounts,
            addressable_gap=gap.addressable_gap,
            structural_gap=gap.structural_gap,
            aspirational_gap=gap.aspirational_gap,
            total_gap=gap.total_gap,
            category_gaps=gap.category_gaps,
            warnings=warnings,
            **dcf_fields,
        )

        if self.store is not None:
            self.store.save(snapshot)
        logger.info(
            "Snapshot %s for company %s: EV %.0f (legacy %.0f), gap %.0f",
            snapshot.id,
            snapshot.company_id,
            snapshot.ev_mid,
            snapshot.legacy_current_value,
            snapshot.total_gap,
        )
        return CalculationOutcome[ValuationSnapshot].success(snapshot, warnings)

    def _compute_multiples(self, request: SnapshotRequest) -> Tuple[MultipleRange, List[str]]:
        resolved = self.multiples_table.resolve(request.classification)
        return sanitize_multiples(resolved, self.settings)

    def _compute_legacy(
        self,
        adjusted_ebitda: float,
        multiples: MultipleRange,
        core_score: float,
        readiness_score: float,
    ) -> LegacyValuationResult:
        return calculate_legacy_valuation(
            LegacyValuationInputs(
                adjusted_ebitda=adjusted_ebitda,
                industry_multiple_low=multiples.ebitda_low,
                industry_multiple_high=multiples.ebitda_high,
                core_score=core_score,
                readiness_score=readiness_score,
            ),
            self.settings,
        )

    def _compute_risk(
        self,
        request: SnapshotRequest,
        composite: CompositeScore,
        transferability: Optional[float],
    ) -> RiskDiscountResult:
        profile = request.profile
        size_category = profile.size_category.value if profile.size_category else None
        return calculate_risk_discounts(
            RiskDiscountInputs(
                owner_involvement=request.core_factors.owner_involvement if request.core_factors else None,
                transferability_score=transferability,
                top_customer_concentration=profile.top_customer_concentration,
                top3_customer_concentration=profile.top3_customer_concentration,
                legal_tax_score=get_category_score(composite.categories, ReadinessCategory.LEGAL_TAX),
                financial_score=get_category_score(composite.categories, ReadinessCategory.FINANCIAL),
                size_category=size_category,
            )
        )

    def _compute_canonical(
        self,
        adjusted_ebitda: float,
        multiples: MultipleRange,
        quality: BusinessQualityScore,
        risk: RiskDiscountResult,
    ) -> CanonicalValuationResult:
        return calculate_canonical_valuation(
            CanonicalValuationInputs(
                adjusted_ebitda=adjusted_ebitda,
                industry_multiple_low=multiples.ebitda_low,
                industry_multiple_high=multiples.ebitda_high,
                adjustment_multiplier=quality.adjustments.adjustment_multiplier,
                total_quality_adjustment=quality.adjustments.total_adjustment,
                risk_multiplier=risk.risk_multiplier,
            ),
            self.settings,
        )

    def _compute_gap(
        self,
        adjusted_ebitda: float,
        multiples: MultipleRange,
        canonical: CanonicalValuationResult,
        quality: BusinessQualityScore,
        risk: RiskDiscountResult,
        composite: CompositeScore,
    ) -> ValueGapResult:
        size_adjustment = quality.adjustments.find("size_discount")
        return calculate_value_gap(
            ValueGapInputs(
                adjusted_ebitda=adjusted_ebitda,
                industry_median_multiple=canonical.industry_median_multiple,
                industry_multiple_high=multiples.ebitda_high,
                quality_adjusted_multiple=canonical.quality_adjusted_multiple,
                risk_adjusted_multiple=canonical.risk_adjusted_multiple,
                risk_discounts=risk.discounts,
                size_discount_rate=size_adjustment.impact if size_adjustment and size_adjustment.enabled else 0.0,
            ),
            composite.categories,
            composite.normalized_weights,
        )

    def _compute_dcf(self, request: SnapshotRequest, adjusted_ebitda: float, readiness_score: float) -> Dict[str, object]:
        if request.dcf_manually_configured:
            logger.info("Auto DCF skipped for company %s: manually configured", request.company_id)
            return {}

        # The DCF is a cross-check; nothing it does may block the multiple-based snapshot.
        try:
            outcome = calculate_auto_dcf(request.periods, readiness_score, adjusted_ebitda, self.settings)
        except Exception:
            logger.exception("Auto DCF failed for company %s", request.company_id)
            return {}

        if not outcome.ok:
            logger.info("Auto DCF skipped for company %s: %s", request.company_id, outcome.reason.value)
            return {}
        return _dcf_snapshot_fields(outcome.value)


def _dcf_snapshot_fields(result: AutoDCFResult) -> Dict[str, object]:
    return {
        "dcf_enterprise_value": result.enterprise_value,
        "dcf_equity_value": result.equity_value,
        "dcf_wacc": result.wacc,
        "dcf_base_fcf": result.base_fcf,
        "dcf_growth_rates": result.growth_rates,
        "dcf_terminal_method": result.terminal_method,
        "dcf_perpetual_growth_rate": result.perpetual_growth_rate,
        "dcf_net_debt": result.net_debt,
        "dcf_implied_multiple": result.implied_multiple,
        "dcf_source": "auto",
    }


def rescale_task_values(task_values: Mapping[str, float], total_gap: float) -> Dict[str, float]:
    """Rescale task dollar values so they sum to the new total gap in whole currency units."""
    current_total = sum(task_values.values())
    if not task_values or current_total <= 0 or total_gap <= 0:
        return {task_id: 0.0 for task_id in task_values}

    target = round_half_up(total_gap)
    scaled = {task_id: float(round_half_up(value * total_gap / current_total)) for task_id, value in task_values.items()}
    residual = target - sum(scaled.values())
    if residual:
        largest = max(scaled, key=lambda task_id: scaled[task_id])
        scaled[largest] += residual
    return scaled
