from __future__ import annotations

from datetime import date, datetime, timezone
from typing import List

from .models.common import ReadinessCategory, RevenueModel, RevenueSizeCategory
from .models.financials import (
    BalanceSheet,
    CashFlowStatement,
    EbitdaAdjustment,
    EbitdaAdjustmentType,
    FinancialPeriod,
    FinancialProfile,
    IncomeStatement,
)
from .models.multiples import IndustryClassification, IndustryMultiple
from .models.scoring import AssessmentResponse, CoreFactors
from .models.valuation import SnapshotRequest
from .services.industry_multiples import IndustryMultipleTable


def build_sample_table() -> IndustryMultipleTable:
    return IndustryMultipleTable(
        [
            IndustryMultiple(
                subsector="50205020",
                ebitda_multiple_low=4.0,
                ebitda_multiple_high=7.0,
                revenue_multiple_low=0.6,
                revenue_multiple_high=1.4,
                ebitda_margin_low=0.10,
                ebitda_margin_high=0.20,
                source="Industrial services comps, 2024",
                effective_date=date(2024, 1, 1),
            ),
            IndustryMultiple(
                subsector="50205020",
                ebitda_multiple_low=4.5,
                ebitda_multiple_high=7.5,
                revenue_multiple_low=0.7,
                revenue_multiple_high=1.5,
                ebitda_margin_low=0.10,
                ebitda_margin_high=0.22,
                source="Industrial services comps, 2025",
                effective_date=date(2025, 1, 1),
            ),
            IndustryMultiple(
                sector="502050",
                ebitda_multiple_low=3.5,
                ebitda_multiple_high=6.5,
                revenue_multiple_low=0.5,
                revenue_multiple_high=1.2,
                source="Industrial support services",
                effective_date=date(2025, 1, 1),
            ),
            IndustryMultiple(
                industry="50",
                ebitda_multiple_low=3.0,
                ebitda_multiple_high=6.0,
                revenue_multiple_low=0.5,
                revenue_multiple_high=1.5,
                source="Industrials",
                effective_date=date(2025, 1, 1),
            ),
        ]
    )


def build_sample_periods() -> List[FinancialPeriod]:
    def period(year: int, revenue: float, ebitda: float, ocf: float, capex: float) -> FinancialPeriod:
        return FinancialPeriod(
            label=f"FY{year}",
            end_date=date(year, 12, 31),
            income_statement=IncomeStatement(
                revenue=revenue,
                ebitda=ebitda,
                depreciation=120_000,
                amortization=30_000,
                interest_expense=72_000,
                tax_expense=290_000,
            ),
            cash_flow=CashFlowStatement(operating_cash_flow=ocf, capital_expenditures=-capex),
            balance_sheet=BalanceSheet(
                cash=400_000,
                long_term_debt=800_000,
                current_portion_ltd=100_000,
                total_equity=2_100_000,
            ),
        )

    return [
        period(2022, 6_800_000, 1_050_000, 820_000, 150_000),
        period(2023, 7_400_000, 1_150_000, 900_000, 160_000),
        period(2024, 8_000_000, 1_250_000, 980_000, 170_000),
    ]


def build_sample_responses() -> List[AssessmentResponse]:
    answered_at = datetime(2025, 3, 1, tzinfo=timezone.utc)
    # (category, max points, score of selected option)
    answers = [
        (ReadinessCategory.FINANCIAL, 10, 0.8),
        (ReadinessCategory.FINANCIAL, 10, 0.6),
        (ReadinessCategory.TRANSFERABILITY, 10, 0.5),
        (ReadinessCategory.TRANSFERABILITY, 5, 0.4),
        (ReadinessCategory.OPERATIONAL, 10, 0.7),
        (ReadinessCategory.MARKET, 10, 0.6),
        (ReadinessCategory.LEGAL_TAX, 10, 0.9),
        (ReadinessCategory.PERSONAL, 10, 0.5),
    ]
    return [
        AssessmentResponse(
            question_id=f"q{index}",
            category=category,
            max_points=points,
            score_value=score,
            updated_at=answered_at,
        )
        for index, (category, points, score) in enumerate(answers, start=1)
    ]


def build_sample_request() -> SnapshotRequest:
    profile = FinancialProfile(
        revenue=8_000_000,
        ebitda=1_250_000,
        owner_compensation=260_000,
        size_category=RevenueSizeCategory.FROM_3M_TO_10M,
        revenue_growth_rate=0.08,
        top_customer_concentration=0.22,
        top3_customer_concentration=0.45,
        revenue_model=RevenueModel.RECURRING_CONTRACTS,
        is_recurring_revenue=True,
    )
    return SnapshotRequest(
        company_id="acme-industrial",
        profile=profile,
        classification=IndustryClassification(
            subsector="50205020",
            sector="502050",
            supersector="5020",
            industry="50",
        ),
        core_factors=CoreFactors(
            revenue_model="RECURRING_CONTRACTS",
            gross_margin_proxy="GOOD",
            labor_intensity="HIGH",
            asset_intensity="MODERATE",
            owner_involvement="HIGH",
        ),
        responses=build_sample_responses(),
        ebitda_adjustments=[
            EbitdaAdjustment(description="One-time legal settlement", amount=50_000, type=EbitdaAdjustmentType.ADD_BACK),
            EbitdaAdjustment(description="Below-market rent from owner", amount=20_000, type=EbitdaAdjustmentType.DEDUCTION),
        ],
        periods=build_sample_periods(),
        created_by="analyst@example.com",
    )
