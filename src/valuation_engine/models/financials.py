from __future__ import annotations

from datetime import date
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, confloat

from .common import RevenueModel, RevenueSizeCategory


class FinancialProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    revenue: float = Field(..., description="Annual revenue")
    ebitda: float = Field(..., description="Reported annual EBITDA")
    owner_compensation: float = 0.0
    size_category: Optional[RevenueSizeCategory] = None
    revenue_growth_rate: Optional[float] = Field(None, description="YoY revenue growth as decimal")
    ebitda_margin: Optional[float] = Field(None, description="EBITDA / revenue as decimal")
    top_customer_concentration: Optional[confloat(ge=0, le=1)] = None
    top3_customer_concentration: Optional[confloat(ge=0, le=1)] = None
    revenue_model: Optional[RevenueModel] = None
    is_recurring_revenue: Optional[bool] = None

    def margin(self) -> Optional[float]:
        if self.ebitda_margin is not None:
            return self.ebitda_margin
        if self.revenue > 0:
            return self.ebitda / self.revenue
        return None


class EbitdaAdjustmentType(str, Enum):
    ADD_BACK = "ADD_BACK"
    DEDUCTION = "DEDUCTION"


class EbitdaAdjustment(BaseModel):
    description: str
    amount: float
    type: EbitdaAdjustmentType


class IncomeStatement(BaseModel):
    revenue: float = 0.0
    ebitda: float = 0.0
    depreciation: float = 0.0
    amortization: float = 0.0
    interest_expense: float = 0.0
    tax_expense: float = 0.0

    def ebt(self) -> float:
        return self.ebitda - self.depreciation - self.amortization - self.interest_expense


class CashFlowStatement(BaseModel):
    operating_cash_flow: float = 0.0
    capital_expenditures: float = 0.0
    free_cash_flow: Optional[float] = None


class BalanceSheet(BaseModel):
    cash: float = 0.0
    long_term_debt: float = 0.0
    current_portion_ltd: float = 0.0
    total_equity: float = 0.0

    def total_debt(self) -> float:
        return self.long_term_debt + self.current_portion_ltd

    def net_debt(self) -> float:
        return self.total_debt() - self.cash


class FinancialPeriod(BaseModel):
    """One annual reporting period; T12 periods are labelled ``T12 ...``."""

    label: str
    end_date: date
    income_statement: Optional[IncomeStatement] = None
    cash_flow: Optional[CashFlowStatement] = None
    balance_sheet: Optional[BalanceSheet] = None

    def free_cash_flow(self) -> Optional[float]:
        if self.cash_flow is None:
            return None
        if self.cash_flow.free_cash_flow is not None:
            return self.cash_flow.free_cash_flow
        if self.cash_flow.operating_cash_flow or self.cash_flow.capital_expenditures:
            return self.cash_flow.operating_cash_flow - abs(self.cash_flow.capital_expenditures)
        return None


def newest_first(periods: List[FinancialPeriod]) -> List[FinancialPeriod]:
    return sorted(periods, key=lambda period: period.end_date, reverse=True)
