from typing import List, Literal
from pydantic import BaseModel, Field

Level = Literal["low", "medium", "high"]
JobType = Literal["stable", "contract", "freelance"]


class TimelinePoint(BaseModel):
    months: int
    amount: float
    description: str


class EmergencyFundRecommendation(BaseModel):
    recommended_amount: float
    current_amount: float
    monthly_expenses: float
    months_covered: float
    target_months: int
    progress_percentage: float = Field(..., description="0-100, capped at 100")
    risk_level: Level
    custom_recommendation: str
    savings_timeline: List[TimelinePoint]


class RiskFactor(BaseModel):
    factor: str
    impact: Literal["positive", "negative"]
    description: str
    weight: float


class RiskAssessment(BaseModel):
    income_stability: Literal["stable", "moderate", "volatile"]
    job_security: Level
    dependents: int
    expense_volatility: Level
    overall_risk: Level
    risk_score: float
    factors: List[RiskFactor]


class StrategyMilestone(BaseModel):
    month: int
    amount: float
    achievement: str


class EmergencyFundStrategy(BaseModel):
    strategy: str
    monthly_amount: float
    time_to_target: int
    milestones: List[StrategyMilestone]
    tips: List[str]


class EmergencyScenario(BaseModel):
    scenario: str
    probability: Level
    estimated_cost: float
    months_to_recover: int
    description: str
    mitigation: List[str]


class EmergencyFundAnalysis(BaseModel):
    recommendation: EmergencyFundRecommendation
    risk_assessment: RiskAssessment
    strategies: List[EmergencyFundStrategy]
    scenarios: List[EmergencyScenario]
