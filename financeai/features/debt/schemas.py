import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, Field

DebtType = Literal["credit_card", "student_loan", "personal_loan", "mortgage", "auto_loan", "other"]
Level = Literal["low", "medium", "high"]


class DebtAccount(BaseModel):
    id: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=200)
    type: DebtType = "other"
    balance: float
    interest_rate: float = Field(..., description="Annual percentage rate, 18 means 18%")
    minimum_payment: float = 0.0
    credit_limit: Optional[float] = Field(None, gt=0)


class DebtAnalysisRequest(BaseModel):
    debts: List[DebtAccount] = Field(default_factory=list, max_length=100)
    extra_payment: float = Field(0.0, ge=0, description="Monthly amount on top of the minimums")


class PaymentPlan(BaseModel):
    """Months and interest are ``None`` when the debt is never paid off."""

    debt_id: str
    debt_name: str
    monthly_payment: float
    payoff_order: int
    months_to_payoff: Optional[int] = None
    total_interest_paid: Optional[float] = None


class PayoffStrategy(BaseModel):
    name: str
    description: str
    payment_order: List[PaymentPlan]
    total_interest_paid: Optional[float] = None
    time_to_payoff: Optional[int] = None
    monthly_payment: float
    debt_free_date: Optional[datetime.date] = None
    pros: List[str]
    cons: List[str]
    effectiveness: Level


class DebtRecommendation(BaseModel):
    type: Literal["payoff_strategy", "consolidation", "balance_transfer", "lifestyle_change"]
    title: str
    description: str
    priority: Level
    potential_savings: float
    difficulty: Literal["easy", "moderate", "difficult"]
    action_steps: List[str]


class ConsolidationOption(BaseModel):
    type: Literal["personal_loan", "balance_transfer", "home_equity"]
    name: str
    description: str
    potential_interest_rate: float
    estimated_savings: float
    pros: List[str]
    cons: List[str]
    risk_level: Level


class CurrentPath(BaseModel):
    total_interest_paid: Optional[float] = None
    time_to_payoff: Optional[int] = None
    monthly_payment: float


class OptimizedPath(BaseModel):
    strategy: str
    total_interest_paid: Optional[float] = None
    time_to_payoff: Optional[int] = None
    total_savings: Optional[float] = None
    time_saved: Optional[int] = None


class PayoffComparison(BaseModel):
    current_path: CurrentPath
    optimized_path: OptimizedPath


class CreditImpact(BaseModel):
    credit_utilization: float
    impact_description: str
    recommendations: List[str]


class DebtPayoffAnalysis(BaseModel):
    debts: List[DebtAccount]
    strategies: List[PayoffStrategy]
    recommendations: List[DebtRecommendation]
    consolidation_options: List[ConsolidationOption]
    payoff_comparison: PayoffComparison
    credit_impact: CreditImpact
