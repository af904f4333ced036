import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, Field

Frequency = Literal["weekly", "monthly", "quarterly", "yearly"]


class ForecastPeriod(BaseModel):
    date: datetime.date
    predicted_income: float
    predicted_expenses: float
    predicted_balance: float
    confidence: float


class ForecastSummary(BaseModel):
    current_balance: float
    projected_balance_in_30_days: float
    projected_balance_in_90_days: float
    average_monthly_income: float
    average_monthly_expenses: float
    burn_rate: Optional[float] = Field(
        None, description="Months until the balance reaches zero; null when cash flow is not negative"
    )
    confidence_score: float


class RecurringPattern(BaseModel):
    type: str
    description: str
    amount: float
    frequency: Frequency
    confidence: float
    next_occurrence: datetime.date


class SeasonalPattern(BaseModel):
    month: int = Field(..., ge=1, le=12)
    average_income: float
    average_expenses: float
    transaction_count: int
    confidence: float


class TrendAnalysis(BaseModel):
    income_growth_rate: float
    expense_growth_rate: float
    volatility: float
    confidence: float


class CashFlowForecast(BaseModel):
    periods: List[ForecastPeriod]
    summary: ForecastSummary
    recurring_patterns: List[RecurringPattern] = []
    trends: TrendAnalysis
    insights: List[str] = []
    warnings: List[str] = []
