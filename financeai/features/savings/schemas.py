import uuid
from typing import List, Literal
from pydantic import BaseModel

Level = Literal["low", "medium", "high"]


class OptimizationOpportunity(BaseModel):
    category: str
    current_spending: float
    recommended_spending: float
    potential_savings: float
    effort: Level
    impact: Level
    description: str
    action_steps: List[str]
    timeline: str


class AutomationStrategy(BaseModel):
    strategy: str
    description: str
    potential_savings: float
    setup_effort: Level
    ongoing_maintenance: Level
    implementation: List[str]
    pros: List[str]
    cons: List[str]


class ProjectionYear(BaseModel):
    year: int
    balance: float
    total_contributions: float
    interest_earned: float


class CompoundInterestProjection(BaseModel):
    initial_amount: float
    monthly_contribution: float
    annual_interest_rate: float
    projections: List[ProjectionYear] = []


class EmergencyFundAllocation(BaseModel):
    current_amount: float
    target_amount: float
    monthly_allocation: float
    priority: int = 1
    time_to_complete: int


class GoalAllocation(BaseModel):
    goal_id: uuid.UUID
    goal_name: str
    goal_type: str
    current_amount: float
    target_amount: float
    monthly_allocation: float
    priority: int
    time_to_complete: int


class SavingsAllocation(BaseModel):
    emergency_fund: EmergencyFundAllocation
    short_term_goals: List[GoalAllocation] = []
    long_term_goals: List[GoalAllocation] = []


class RecommendationMetrics(BaseModel):
    target_savings_rate: float
    emergency_fund_progress: float
    goal_completion_progress: float


class MonthlyRecommendation(BaseModel):
    month: str
    focus_area: str
    actions: List[str]
    expected_savings: float
    difficulty: Literal["easy", "moderate", "challenging"]
    metrics: RecommendationMetrics


class SavingsOptimization(BaseModel):
    """Rates are fractions of income (0.2 means 20%)."""

    current_savings_rate: float
    recommended_savings_rate: float
    monthly_income: float
    monthly_expenses: float
    optimization_opportunities: List[OptimizationOpportunity] = []
    automation_strategies: List[AutomationStrategy] = []
    compound_interest_projection: CompoundInterestProjection
    savings_allocation: SavingsAllocation
    monthly_recommendations: List[MonthlyRecommendation] = []


class ChallengeMilestone(BaseModel):
    week: int
    target: float
    reward: str


class SavingsChallenge(BaseModel):
    challenge_name: str
    duration: int  # weeks
    target_savings: float
    rules: List[str]
    tips: List[str]
    milestones: List[ChallengeMilestone]
    difficulty: Literal["beginner", "intermediate", "advanced"]
