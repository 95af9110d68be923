from __future__ import annotations

import logging
from typing import Dict, List, Optional

from pydantic import BaseModel

from ..models.adjustments import RiskDiscount, RiskDiscountResult
from ..models.common import clamp, round_places

logger = logging.getLogger(__name__)

DLOM_NAME = "Lack of Marketability (DLOM)"
KEY_PERSON_NAME = "Key-Person Risk"
SINGLE_CONCENTRATION_NAME = "Customer Concentration (Single)"
TOP3_CONCENTRATION_NAME = "Customer Concentration (Top 3)"
DOCUMENTATION_NAME = "Documentation Quality"
LEGAL_TAX_NAME = "Legal/Tax Risk"

DLOM_BY_SIZE: Dict[str, float] = {
    "UNDER_500K": 0.25,
    "FROM_500K_TO_1M": 0.22,
    "FROM_1M_TO_3M": 0.18,
    "FROM_3M_TO_10M": 0.15,
    "FROM_10M_TO_25M": 0.12,
    "OVER_25M": 0.10,
}
DEFAULT_DLOM = 0.18

KEY_PERSON_RATES: Dict[str, float] = {
    "CRITICAL": 0.25,
    "HIGH": 0.15,
    "MODERATE": 0.08,
    "LOW": 0.03,
    "MINIMAL": 0.0,
}
KEY_PERSON_MAX_RATE = 0.30
MIN_KEY_PERSON_RATE = 0.02

SINGLE_CUSTOMER_HIGH = (0.30, 0.15)
SINGLE_CUSTOMER_MODERATE = (0.20, 0.08)
TOP3_HIGH = (0.60, 0.10)
TOP3_MODERATE = (0.40, 0.05)

DOCUMENTATION_THRESHOLD = 0.50
DOCUMENTATION_RATE = 0.05
LEGAL_TAX_THRESHOLD = 0.40
LEGAL_TAX_RATE = 0.08

ADDRESSABLE_RISK_NAMES = (
    KEY_PERSON_NAME,
    SINGLE_CONCENTRATION_NAME,
    TOP3_CONCENTRATION_NAME,
    DOCUMENTATION_NAME,
    LEGAL_TAX_NAME,
)
STRUCTURAL_RISK_NAMES = (DLOM_NAME,)


class RiskDiscountInputs(BaseModel):
    owner_involvement: Optional[str] = None
    transferability_score: Optional[float] = None
    top_customer_concentration: Optional[float] = None
    top3_customer_concentration: Optional[float] = None
    legal_tax_score: Optional[float] = None
    financial_score: Optional[float] = None
    size_category: Optional[str] = None


def is_addressable_discount(name: str) -> bool:
    return name in ADDRESSABLE_RISK_NAMES


def risk_multiplier(discounts: List[RiskDiscount]) -> float:
    product = 1.0
    for discount in discounts:
        product *= 1 - discount.rate
    return product


def dlom_discount(size_category: Optional[str]) -> RiskDiscount:
    rate = DLOM_BY_SIZE.get(size_category or "", DEFAULT_DLOM)
    return RiskDiscount(
        name=DLOM_NAME,
        rate=rate,
        explanation=(
            "Private companies are less liquid than public companies. Size-appropriate DLOM of "
            f"{rate * 100:.0f}% applied based on revenue category."
        ),
    )


def key_person_discount(inputs: RiskDiscountInputs) -> Optional[RiskDiscount]:
    base_rate = KEY_PERSON_RATES.get(inputs.owner_involvement or "", 0.0)
    if base_rate == 0:
        return None

    effective_rate = base_rate
    transferability = inputs.transferability_score
    if transferability is not None:
        modifier = 1 - (transferability - 0.5) * 0.5
        effective_rate = clamp(base_rate * modifier, 0.0, KEY_PERSON_MAX_RATE)
    if effective_rate < MIN_KEY_PERSON_RATE:
        return None

    score_text = f"{transferability * 100:.0f}%" if transferability is not None else "N/A"
    return RiskDiscount(
        name=KEY_PERSON_NAME,
        rate=round_places(effective_rate, 2),
        explanation=(
            f'Owner involvement level "{inputs.owner_involvement}" with transferability score of {score_text}. '
            "Business dependent on current owner creates acquisition risk."
        ),
    )


def concentration_discounts(inputs: RiskDiscountInputs) -> List[RiskDiscount]:
    discounts: List[RiskDiscount] = []
    single_high = False

    top = inputs.top_customer_concentration
    if top is not None:
        if top >= SINGLE_CUSTOMER_HIGH[0]:
            single_high = True
            discounts.append(
                RiskDiscount(
                    name=SINGLE_CONCENTRATION_NAME,
                    rate=SINGLE_CUSTOMER_HIGH[1],
                    explanation=(
                        f"Top customer represents {top * 100:.0f}% of revenue. Losing this customer would "
                        "materially impact the business."
                    ),
                )
            )
        elif top >= SINGLE_CUSTOMER_MODERATE[0]:
            discounts.append(
                RiskDiscount(
                    name=SINGLE_CONCENTRATION_NAME,
                    rate=SINGLE_CUSTOMER_MODERATE[1],
                    explanation=f"Top customer represents {top * 100:.0f}% of revenue, a moderate concentration risk.",
                )
            )

    top3 = inputs.top3_customer_concentration
    if top3 is not None and not single_high:
        if top3 >= TOP3_HIGH[0]:
            rate, note = TOP3_HIGH[1], "Concentrated customer base creates material risk."
        elif top3 >= TOP3_MODERATE[0]:
            rate, note = TOP3_MODERATE[1], "Moderate concentration."
        else:
            return discounts
        discounts.append(
            RiskDiscount(
                name=TOP3_CONCENTRATION_NAME,
                rate=rate,
                explanation=f"Top 3 customers represent {top3 * 100:.0f}% of revenue. {note}",
            )
        )
    return discounts


def calculate_risk_discounts(inputs: RiskDiscountInputs) -> RiskDiscountResult:
    discounts: List[RiskDiscount] = [dlom_discount(inputs.size_category)]

    key_person = key_person_discount(inputs)
    if key_person is not None:
        discounts.append(key_person)

    discounts.extend(concentration_discounts(inputs))

    if inputs.financial_score is not None and inputs.financial_score < DOCUMENTATION_THRESHOLD:
        discounts.append(
            RiskDiscount(
                name=DOCUMENTATION_NAME,
                rate=DOCUMENTATION_RATE,
                explanation=(
                    f"Financial documentation score of {inputs.financial_score * 100:.0f}% is below the "
                    f"{DOCUMENTATION_THRESHOLD * 100:.0f}% threshold. Buyers increase their risk premium when "
                    "financials are poorly documented."
                ),
            )
        )

    if inputs.legal_tax_score is not None and inputs.legal_tax_score < LEGAL_TAX_THRESHOLD:
        discounts.append(
            RiskDiscount(
                name=LEGAL_TAX_NAME,
                rate=LEGAL_TAX_RATE,
                explanation=(
                    f"Legal/tax readiness score of {inputs.legal_tax_score * 100:.0f}% is below the "
                    f"{LEGAL_TAX_THRESHOLD * 100:.0f}% threshold. Unresolved legal or tax issues represent "
                    "material risk to buyers."
                ),
            )
        )

    multiplier = risk_multiplier(discounts)
    logger.debug("Risk discounts %s -> multiplier %.4f", [(d.name, d.rate) for d in discounts], multiplier)
    return RiskDiscountResult(discounts=discounts, risk_multiplier=multiplier, risk_severity_score=1 - multiplier)


def dlom_amount(ev_mid: float, dlom_rate: float) -> float:
    """Dollar value the DLOM removed from the mid-point enterprise value."""
    if ev_mid <= 0 or dlom_rate >= 1:
        return 0.0
    return ev_mid * dlom_rate / (1 - dlom_rate)
