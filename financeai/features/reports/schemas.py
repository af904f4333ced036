import datetime
from enum import Enum
from typing import List, Literal, Optional
from pydantic import BaseModel, Field, model_validator

from financeai.features.context.schemas import BudgetPerformance


class ReportType(str, Enum):
    MONTHLY_SUMMARY = "monthly-summary"
    SPENDING_ANALYSIS = "spending-analysis"
    BUDGET_PERFORMANCE = "budget-performance"


class DateRange(BaseModel):
    start_date: datetime.date
    end_date: datetime.date

    @model_validator(mode="after")
    def check_order(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class ReportGenerationOptions(BaseModel):
    type: ReportType
    date_range: Optional[DateRange] = None
    focus_areas: Optional[List[str]] = Field(None, max_length=10)
    detail_level: Literal["basic", "detailed", "comprehensive"] = "detailed"


class MonthlyTrend(BaseModel):
    month: str
    income: float
    expenses: float
    net: float


class ReportBudgetPerformance(BudgetPerformance):
    remaining: float


class ReportMetadata(BaseModel):
    transactions_analyzed: int
    budgets_analyzed: int
    processing_time: int
    ai_model: str


class AIReport(BaseModel):
    id: str
    type: ReportType
    title: str
    content: str
    summary: str
    insights: List[str] = []
    recommendations: List[str] = []
    generated_at: datetime.datetime
    data_range: DateRange
    metadata: ReportMetadata


class AIReportResponse(BaseModel):
    report: AIReport
    errors: List[str] = []
    warnings: List[str] = []
    processing_time: int
