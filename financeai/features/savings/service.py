"""
Savings optimization: how much of the income is saved today, how much could
be, and where the difference can come from.

Everything is computed from already-fetched records; no I/O and no LLM.
"""
import calendar
import datetime
import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from financeai.features.context.service import monthly_average, months_span, of_type
from financeai.features.goals.models import GoalPriority, GoalType
from financeai.features.goals.schemas import GoalResponse
from financeai.features.savings.schemas import (
    AutomationStrategy,
    ChallengeMilestone,
    CompoundInterestProjection,
    EmergencyFundAllocation,
    GoalAllocation,
    MonthlyRecommendation,
    OptimizationOpportunity,
    ProjectionYear,
    RecommendationMetrics,
    SavingsAllocation,
    SavingsChallenge,
    SavingsOptimization,
)
from financeai.features.transactions.models import TransactionType
from financeai.features.transactions.schemas import TransactionResponse, coerce_amount

logger = logging.getLogger(__name__)

IDEAL_SAVINGS_RATE = 0.20
MIN_SAVINGS_RATE = 0.10
MAX_SAVINGS_RATE = 0.50
EMERGENCY_FUND_MONTHS = 6
EMERGENCY_FUND_SHARE = 0.4
DEFAULT_INTEREST_RATE = 0.04
PROJECTION_YEARS = 30
SHORT_TERM_DAYS = 730

PRIORITY_RANK = {
    GoalPriority.CRITICAL: 1,
    GoalPriority.HIGH: 2,
    GoalPriority.MEDIUM: 3,
    GoalPriority.LOW: 4,
}

# First match wins; anything else keeps its lowercased name
CATEGORY_ALIASES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("dining", ("food", "restaurant", "dining")),
    ("subscriptions", ("subscription", "streaming", "software")),
    ("transportation", ("transport", "gas", "car", "uber")),
    ("utilities", ("utility", "electric", "water", "internet")),
)


@dataclass(frozen=True)
class OpportunityRule:
    key: str
    label: str
    threshold: float
    reduction: float
    effort: str
    impact: str
    description: str
    action_steps: Tuple[str, ...]
    timeline: str


OPPORTUNITY_RULES = (
    OpportunityRule(
        key="dining",
        label="Dining Out",
        threshold=300,
        reduction=0.3,
        effort="medium",
        impact="high",
        description="Reduce dining out expenses by cooking more meals at home",
        action_steps=(
            "Plan weekly meals in advance",
            "Batch cook on weekends",
            "Set a monthly dining out budget",
            "Try new recipes at home",
        ),
        timeline="2-4 weeks to establish new habits",
    ),
    OpportunityRule(
        key="subscriptions",
        label="Subscriptions",
        threshold=50,
        reduction=0.4,
        effort="low",
        impact="medium",
        description="Cancel unused subscriptions and negotiate better rates",
        action_steps=(
            "Audit all active subscriptions",
            "Cancel unused services",
            "Negotiate annual payment discounts",
            "Share family plans where possible",
        ),
        timeline="1-2 weeks for immediate impact",
    ),
)

GENERAL_ACTIONS = [
    "Review monthly expenses",
    "Look for new optimization opportunities",
    "Increase savings rate by 1%",
]
GENERAL_EXPECTED_SAVINGS = 100.0


def normalize_category(category: str) -> str:
    lowered = category.lower()
    for alias, needles in CATEGORY_ALIASES:
        if any(needle in lowered for needle in needles):
            return alias
    return lowered


def monthly_category_spending(transactions: Sequence[TransactionResponse]) -> Dict[str, float]:
    """Average monthly expense per normalized category."""
    expenses = of_type(transactions, TransactionType.EXPENSE)
    span = months_span(expenses)
    totals: Dict[str, float] = {}
    for t in expenses:
        key = normalize_category(t.category)
        totals[key] = totals.get(key, 0.0) + coerce_amount(t.amount)
    return {key: total / span for key, total in totals.items()}


def identify_optimization_opportunities(
    transactions: Sequence[TransactionResponse]
) -> List[OptimizationOpportunity]:
    spending = monthly_category_spending(transactions)
    opportunities = []
    for rule in OPPORTUNITY_RULES:
        current = spending.get(rule.key, 0.0)
        if current <= rule.threshold:
            continue
        opportunities.append(OptimizationOpportunity(
            category=rule.label,
            current_spending=current,
            recommended_spending=current * (1 - rule.reduction),
            potential_savings=current * rule.reduction,
            effort=rule.effort,
            impact=rule.impact,
            description=rule.description,
            action_steps=list(rule.action_steps),
            timeline=rule.timeline,
        ))
    return sorted(opportunities, key=lambda o: o.potential_savings, reverse=True)


def _open_goals(goals: Sequence[GoalResponse]) -> List[GoalResponse]:
    return [g for g in goals if g.current_amount < g.target_amount]


def recommended_savings_rate(
    monthly_income: float,
    monthly_expenses: float,
    goals: Sequence[GoalResponse] = (),
    today: Optional[datetime.date] = None
) -> float:
    """Target share of income to save, between 10% and 20% (hard cap 50%)."""
    if monthly_income <= 0:
        return MIN_SAVINGS_RATE

    today = today or datetime.date.today()
    available_rate = (monthly_income - monthly_expenses) / monthly_income
    target = max(MIN_SAVINGS_RATE, min(available_rate * 0.8, IDEAL_SAVINGS_RATE))

    urgent = [g for g in _open_goals(goals) if (g.target_date - today).days < SHORT_TERM_DAYS]
    if urgent:
        target = min(target * 1.2, IDEAL_SAVINGS_RATE)

    return max(MIN_SAVINGS_RATE, min(target, MAX_SAVINGS_RATE))


def compound_interest_projection(
    initial_amount: float,
    monthly_contribution: float,
    annual_interest_rate: float = DEFAULT_INTEREST_RATE,
    years: int = PROJECTION_YEARS
) -> CompoundInterestProjection:
    """Year-end balances with a contribution at the start of every month, compounded monthly."""
    balance = initial_amount
    contributions = initial_amount
    interest_earned = 0.0
    monthly_rate = annual_interest_rate / 12

    projections = []
    for year in range(1, years + 1):
        for _ in range(12):
            balance += monthly_contribution
            contributions += monthly_contribution
            interest = balance * monthly_rate
            balance += interest
            interest_earned += interest
        projections.append(ProjectionYear(
            year=year,
            balance=balance,
            total_contributions=contributions,
            interest_earned=interest_earned,
        ))

    return CompoundInterestProjection(
        initial_amount=initial_amount,
        monthly_contribution=monthly_contribution,
        annual_interest_rate=annual_interest_rate,
        projections=projections,
    )


def months_until(today: datetime.date, target: datetime.date) -> int:
    return max(math.ceil((target - today).days / 30), 1)


class SavingsOptimizationService:

    def optimize_savings(
        self,
        transactions: Sequence[TransactionResponse],
        current_savings: float = 0.0,
        goals: Sequence[GoalResponse] = (),
        today: Optional[datetime.date] = None
    ) -> SavingsOptimization:
        today = today or datetime.date.today()
        monthly_income = monthly_average(transactions, TransactionType.INCOME)
        monthly_expenses = monthly_average(transactions, TransactionType.EXPENSE)
        current_rate = (monthly_income - monthly_expenses) / monthly_income if monthly_income > 0 else 0.0
        recommended_rate = recommended_savings_rate(monthly_income, monthly_expenses, goals, today)

        opportunities = identify_optimization_opportunities(transactions)
        allocation = self.build_allocation(monthly_income, monthly_expenses, current_savings, goals, today)

        logger.info(
            f"Savings optimization over {len(transactions)} transactions: "
            f"rate {current_rate:.2f} -> {recommended_rate:.2f}, {len(opportunities)} opportunities"
        )
        return SavingsOptimization(
            current_savings_rate=current_rate,
            recommended_savings_rate=recommended_rate,
            monthly_income=monthly_income,
            monthly_expenses=monthly_expenses,
            optimization_opportunities=opportunities,
            automation_strategies=self.automation_strategies(monthly_income),
            compound_interest_projection=compound_interest_projection(
                current_savings, max(monthly_income * recommended_rate, 0.0)
            ),
            savings_allocation=allocation,
            monthly_recommendations=self.monthly_recommendations(opportunities, allocation, recommended_rate),
        )

    def automation_strategies(self, monthly_income: float) -> List[AutomationStrategy]:
        return [AutomationStrategy(
            strategy="Automatic Savings Transfer",
            description="Set up automatic transfers from checking to savings on payday",
            potential_savings=monthly_income * 0.1,
            setup_effort="low",
            ongoing_maintenance="low",
            implementation=[
                "Set up automatic transfer with your bank",
                "Schedule transfer for 1-2 days after payday",
                "Start with a small amount and increase gradually",
                "Use a separate high-yield savings account",
            ],
            pros=[
                "Saves before you can spend it",
                "Builds consistent saving habits",
                "Reduces temptation to spend",
                "No ongoing effort required",
            ],
            cons=[
                "Less flexibility for variable expenses",
                "May need to adjust during tight months",
                "Requires initial setup",
            ],
        )]

    def build_allocation(
        self,
        monthly_income: float,
        monthly_expenses: float,
        current_savings: float,
        goals: Sequence[GoalResponse],
        today: datetime.date
    ) -> SavingsAllocation:
        """Emergency fund first, then the open goals split by horizon."""
        available = max(monthly_income - monthly_expenses, 0.0)
        target = monthly_expenses * EMERGENCY_FUND_MONTHS
        monthly = min(available * EMERGENCY_FUND_SHARE, target / 12)
        current = min(current_savings, target)
        remaining = target - current

        emergency_fund = EmergencyFundAllocation(
            current_amount=current,
            target_amount=target,
            monthly_allocation=monthly,
            time_to_complete=math.ceil(remaining / monthly) if monthly > 0 and remaining > 0 else 0,
        )

        short_term, long_term = [], []
        for goal in _open_goals(goals):
            if goal.type == GoalType.EMERGENCY_FUND:
                continue
            months = months_until(today, goal.target_date)
            allocation = GoalAllocation(
                goal_id=goal.id,
                goal_name=goal.name,
                goal_type=goal.type.value,
                current_amount=goal.current_amount,
                target_amount=goal.target_amount,
                monthly_allocation=(goal.target_amount - goal.current_amount) / months,
                priority=PRIORITY_RANK.get(goal.priority, len(PRIORITY_RANK)),
                time_to_complete=months,
            )
            if (goal.target_date - today).days < SHORT_TERM_DAYS:
                short_term.append(allocation)
            else:
                long_term.append(allocation)

        by_priority = lambda a: (a.priority, a.time_to_complete)
        return SavingsAllocation(
            emergency_fund=emergency_fund,
            short_term_goals=sorted(short_term, key=by_priority),
            long_term_goals=sorted(long_term, key=by_priority),
        )

    def monthly_recommendations(
        self,
        opportunities: Sequence[OptimizationOpportunity],
        allocation: SavingsAllocation,
        target_rate: float
    ) -> List[MonthlyRecommendation]:
        """One focus area per calendar month, cycling through the opportunities."""
        fund = allocation.emergency_fund
        fund_progress = (fund.current_amount / fund.target_amount) * 100 if fund.target_amount > 0 else 0.0

        goals = allocation.short_term_goals + allocation.long_term_goals
        goal_target = sum(g.target_amount for g in goals)
        goal_progress = (sum(g.current_amount for g in goals) / goal_target) * 100 if goal_target > 0 else 0.0

        metrics = RecommendationMetrics(
            target_savings_rate=target_rate,
            emergency_fund_progress=fund_progress,
            goal_completion_progress=goal_progress,
        )

        recommendations = []
        for index, month in enumerate(calendar.month_name[1:]):
            focus = opportunities[index % len(opportunities)] if opportunities else None
            recommendations.append(MonthlyRecommendation(
                month=month,
                focus_area=focus.category if focus else "General Savings",
                actions=focus.action_steps if focus else list(GENERAL_ACTIONS),
                expected_savings=focus.potential_savings if focus else GENERAL_EXPECTED_SAVINGS,
                difficulty="easy" if index < 3 else "moderate" if index < 8 else "challenging",
                metrics=metrics,
            ))
        return recommendations

    def generate_savings_challenges(self, monthly_income: float) -> List[SavingsChallenge]:
        weekly_total = lambda week: week * (week + 1) / 2
        no_spend_target = monthly_income * 0.15

        return [
            SavingsChallenge(
                challenge_name="52-Week Progressive Challenge",
                duration=52,
                target_savings=weekly_total(52),
                rules=[
                    "Week 1: Save $1",
                    "Week 2: Save $2",
                    "Continue increasing by $1 each week",
                    "Week 52: Save $52",
                ],
                tips=[
                    "Start in January for best results",
                    "Use a separate savings jar or account",
                    "Track progress visually with a chart",
                    "Consider reversing the order (start with $52)",
                ],
                milestones=[
                    ChallengeMilestone(week=13, target=weekly_total(13), reward="Treat yourself to something small"),
                    ChallengeMilestone(week=26, target=weekly_total(26), reward="Half-way celebration dinner"),
                    ChallengeMilestone(week=39, target=weekly_total(39), reward="Weekend getaway fund started"),
                    ChallengeMilestone(week=52, target=weekly_total(52), reward="Full challenge completed!"),
                ],
                difficulty="beginner",
            ),
            SavingsChallenge(
                challenge_name="30-Day No-Spend Challenge",
                duration=4,
                target_savings=no_spend_target,
                rules=[
                    "Only spend on necessities (groceries, bills, gas)",
                    "No dining out, entertainment, or impulse purchases",
                    "Use items you already own",
                    "Find free activities for entertainment",
                ],
                tips=[
                    "Plan meals using pantry items",
                    "Find free community events",
                    "Use library for entertainment",
                    "Invite friends over instead of going out",
                ],
                milestones=[
                    ChallengeMilestone(week=1, target=no_spend_target * 0.25, reward="First week success!"),
                    ChallengeMilestone(week=2, target=no_spend_target * 0.5, reward="Halfway there!"),
                    ChallengeMilestone(week=3, target=no_spend_target * 0.75, reward="Almost done!"),
                    ChallengeMilestone(week=4, target=no_spend_target, reward="Challenge completed!"),
                ],
                difficulty="intermediate",
            ),
        ]
