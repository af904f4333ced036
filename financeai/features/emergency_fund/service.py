"""
Emergency fund sizing from spending history and a short risk profile.

The target starts at six months of expenses and moves with the risk score:
income and expense volatility, job type, dependents and industry.
"""
import logging
import math
from typing import List, Optional, Sequence

from financeai.features.context.service import (
    coefficient_of_variation,
    monthly_average,
    of_type,
    totals_by_month,
)
from financeai.features.emergency_fund.schemas import (
    EmergencyFundAnalysis,
    EmergencyFundRecommendation,
    EmergencyFundStrategy,
    EmergencyScenario,
    RiskAssessment,
    RiskFactor,
    StrategyMilestone,
    TimelinePoint,
)
from financeai.features.transactions.models import TransactionType
from financeai.features.transactions.schemas import TransactionResponse

logger = logging.getLogger(__name__)

STANDARD_MONTHS = 6
MIN_MONTHS = 3
MAX_MONTHS = 12
BASE_RISK_SCORE = 0.5
MIN_MONTHLY_SAVINGS = 50.0
MAX_BUILD_MONTHS = 24
TIMELINE_MONTHS = (1, 3, 6, 12, 18, 24)

HIGH_RISK_INDUSTRIES = ("hospitality", "retail", "entertainment", "travel")
STABLE_INDUSTRIES = ("healthcare", "education", "government", "utilities")

JOB_FACTORS = {
    "stable": ("high", RiskFactor(
        factor="Job Security", impact="positive",
        description="Stable employment provides financial security", weight=0.25,
    )),
    "contract": ("medium", RiskFactor(
        factor="Contract Work", impact="negative",
        description="Contract work may have income gaps", weight=0.15,
    )),
    "freelance": ("low", RiskFactor(
        factor="Freelance Work", impact="negative",
        description="Freelance income can be unpredictable", weight=0.3,
    )),
}

# (share of monthly income, name, tips)
SAVING_PACES = (
    (0.02, "Conservative Approach", [
        "Start with small, consistent contributions",
        "Automate savings to build the habit",
        "Use a separate high-yield savings account",
        "Celebrate small wins along the way",
    ]),
    (0.05, "Balanced Approach", [
        "Good balance between emergency fund and other goals",
        "Consider increasing during bonus months",
        "Review monthly spending for optimization opportunities",
        "Keep funds easily accessible but separate from checking",
    ]),
    (0.10, "Aggressive Approach", [
        "Fastest way to build your emergency fund",
        "May require significant lifestyle adjustments",
        "Consider side income to boost savings",
        "Prioritize this over non-essential expenses",
    ]),
)

PROBABILITY_ORDER = {"high": 0, "medium": 1, "low": 2}


def format_currency(amount: float) -> str:
    return f"${amount:,.2f}"


def _monthly_variation(transactions: Sequence[TransactionResponse], txn_type: TransactionType) -> Optional[float]:
    """Variation of calendar-month totals; ``None`` without three records over two months."""
    selected = of_type(transactions, txn_type)
    if len(selected) < 3:
        return None
    monthly = list(totals_by_month(selected).values())
    if len(monthly) < 2:
        return None
    return coefficient_of_variation(monthly)


def income_stability(transactions: Sequence[TransactionResponse]) -> str:
    cv = _monthly_variation(transactions, TransactionType.INCOME)
    if cv is None:
        return "moderate"
    if cv < 0.15:
        return "stable"
    if cv < 0.35:
        return "moderate"
    return "volatile"


def expense_volatility(transactions: Sequence[TransactionResponse]) -> str:
    cv = _monthly_variation(transactions, TransactionType.EXPENSE)
    if cv is None:
        return "medium"
    if cv < 0.2:
        return "low"
    if cv < 0.4:
        return "medium"
    return "high"


def assess_risk(
    transactions: Sequence[TransactionResponse],
    dependents: int = 0,
    job_type: Optional[str] = None,
    industry: Optional[str] = None
) -> RiskAssessment:
    factors: List[RiskFactor] = []

    stability = income_stability(transactions)
    if stability == "volatile":
        factors.append(RiskFactor(
            factor="Income Volatility", impact="negative",
            description="Your income varies significantly month to month", weight=0.3,
        ))
    elif stability == "stable":
        factors.append(RiskFactor(
            factor="Income Stability", impact="positive",
            description="Your income is consistent and predictable", weight=0.2,
        ))

    volatility = expense_volatility(transactions)
    if volatility == "high":
        factors.append(RiskFactor(
            factor="Expense Volatility", impact="negative",
            description="Your expenses fluctuate significantly", weight=0.2,
        ))

    job_security = "medium"
    if job_type in JOB_FACTORS:
        job_security, factor = JOB_FACTORS[job_type]
        factors.append(factor)

    if dependents > 0:
        factors.append(RiskFactor(
            factor="Financial Dependents", impact="negative",
            description=f"Supporting {dependents} dependent(s) increases financial responsibility",
            weight=0.1 * dependents,
        ))

    if industry:
        lowered = industry.lower()
        if any(name in lowered for name in HIGH_RISK_INDUSTRIES):
            factors.append(RiskFactor(
                factor="Industry Risk", impact="negative",
                description="Working in a volatile industry increases job security risk", weight=0.2,
            ))
        elif any(name in lowered for name in STABLE_INDUSTRIES):
            factors.append(RiskFactor(
                factor="Stable Industry", impact="positive",
                description="Working in a stable industry provides security", weight=0.15,
            ))

    score = BASE_RISK_SCORE + sum(f.weight if f.impact == "negative" else -f.weight for f in factors)
    score = round(score, 6)
    overall = "low" if score <= 0.3 else "medium" if score <= 0.7 else "high"

    return RiskAssessment(
        income_stability=stability,
        job_security=job_security,
        dependents=dependents,
        expense_volatility=volatility,
        overall_risk=overall,
        risk_score=score,
        factors=factors,
    )


def target_months(risk: RiskAssessment, job_type: Optional[str] = None) -> int:
    months = STANDARD_MONTHS
    if risk.overall_risk == "high":
        months = min(months + 3, MAX_MONTHS)
    elif risk.overall_risk == "low":
        months = max(months - 1, MIN_MONTHS)

    months += min(risk.dependents, 2)
    if job_type == "freelance":
        months += 2
    elif job_type == "contract":
        months += 1

    return min(max(months, MIN_MONTHS), MAX_MONTHS)


def custom_recommendation(recommended: float, months: int, current: float, risk_level: str) -> str:
    progress = current / recommended * 100 if recommended > 0 else 0.0

    if progress >= 100:
        return (
            f"Excellent! Your emergency fund is fully funded with {months} months of expenses. "
            "Focus on maintaining this level and consider investing additional savings."
        )
    if progress >= 75:
        return (
            f"You're almost there! You have {progress:.0f}% of your target emergency fund. "
            f"Consider boosting your savings to reach the full {months}-month target."
        )
    if progress >= 50:
        return (
            f"Good progress! You've saved {progress:.0f}% of your target. Continue building toward "
            f"{months} months of expenses based on your {risk_level} risk profile."
        )
    if progress >= 25:
        return (
            f"You've made a start with {progress:.0f}% of your target. Given your {risk_level} risk level, "
            f"prioritize building your emergency fund to {months} months of expenses."
        )
    return (
        f"Building an emergency fund should be a priority. With your {risk_level} risk profile, aim for "
        f"{months} months of expenses ({format_currency(recommended)}) to protect against financial emergencies."
    )


def suggested_monthly_savings(monthly_income: float, monthly_expenses: float, remaining: float) -> float:
    """20% of the surplus, at least $50, but no faster than a two-year build."""
    suggested = max((monthly_income - monthly_expenses) * 0.2, MIN_MONTHLY_SAVINGS)
    return min(suggested, remaining / MAX_BUILD_MONTHS)


def _timeline_label(progress: float) -> str:
    if progress >= 100:
        return "Emergency fund complete!"
    if progress >= 75:
        return "Nearly there - maintain momentum!"
    if progress >= 50:
        return "Halfway to your goal!"
    if progress >= 25:
        return "Good progress - keep going!"
    return "Building your foundation"


def savings_timeline(current: float, target: float, monthly: float) -> List[TimelinePoint]:
    remaining = target - current
    if remaining <= 0:
        return [TimelinePoint(months=0, amount=current, description="Emergency fund is fully funded!")]
    if monthly <= 0:
        return [TimelinePoint(months=0, amount=current, description="Set a monthly savings goal to see timeline")]

    months_to_target = math.ceil(remaining / monthly)
    timeline = []
    for months in TIMELINE_MONTHS:
        if months > months_to_target:
            break
        amount = min(current + monthly * months, target)
        timeline.append(TimelinePoint(months=months, amount=amount, description=_timeline_label(amount / target * 100)))

    if not any(p.months == months_to_target for p in timeline):
        timeline.append(TimelinePoint(
            months=months_to_target, amount=target, description="Emergency fund target reached!"
        ))
    return timeline


def strategy_milestones(remaining: float, monthly: float) -> List[StrategyMilestone]:
    checkpoints = (
        (0.25, "First quarter complete!"),
        (0.5, "Halfway there!"),
        (0.75, "Three quarters done!"),
        (1.0, "Emergency fund fully funded!"),
    )
    return [
        StrategyMilestone(month=math.ceil(remaining * share / monthly), amount=remaining * share, achievement=label)
        for share, label in checkpoints
    ]


class EmergencyFundService:

    def analyze(
        self,
        transactions: Sequence[TransactionResponse],
        current_amount: float = 0.0,
        dependents: int = 0,
        job_type: Optional[str] = None,
        industry: Optional[str] = None
    ) -> EmergencyFundAnalysis:
        monthly_income = monthly_average(transactions, TransactionType.INCOME)
        monthly_expenses = monthly_average(transactions, TransactionType.EXPENSE)
        risk = assess_risk(transactions, dependents, job_type, industry)
        recommendation = self.recommendation(
            monthly_income, monthly_expenses, current_amount, risk, job_type
        )
        logger.info(
            f"Emergency fund: {recommendation.target_months} months, risk {risk.overall_risk}, "
            f"progress {recommendation.progress_percentage:.0f}%"
        )
        return EmergencyFundAnalysis(
            recommendation=recommendation,
            risk_assessment=risk,
            strategies=self.strategies(recommendation, monthly_income),
            scenarios=self.scenarios(transactions, monthly_expenses, job_type),
        )

    def recommendation(
        self,
        monthly_income: float,
        monthly_expenses: float,
        current_amount: float,
        risk: RiskAssessment,
        job_type: Optional[str] = None
    ) -> EmergencyFundRecommendation:
        months = target_months(risk, job_type)
        recommended = monthly_expenses * months
        remaining = recommended - current_amount
        progress = current_amount / recommended * 100 if recommended > 0 else 0.0
        monthly = suggested_monthly_savings(monthly_income, monthly_expenses, remaining) if remaining > 0 else 0.0

        return EmergencyFundRecommendation(
            recommended_amount=recommended,
            current_amount=current_amount,
            monthly_expenses=monthly_expenses,
            months_covered=current_amount / monthly_expenses if monthly_expenses > 0 else 0.0,
            target_months=months,
            progress_percentage=min(progress, 100.0),
            risk_level=risk.overall_risk,
            custom_recommendation=custom_recommendation(recommended, months, current_amount, risk.overall_risk),
            savings_timeline=savings_timeline(current_amount, recommended, monthly),
        )

    def strategies(
        self,
        recommendation: EmergencyFundRecommendation,
        monthly_income: float
    ) -> List[EmergencyFundStrategy]:
        remaining = recommendation.recommended_amount - recommendation.current_amount
        if remaining <= 0:
            return [EmergencyFundStrategy(
                strategy="Maintain Current Fund",
                monthly_amount=0,
                time_to_target=0,
                milestones=[],
                tips=[
                    "Your emergency fund is fully funded!",
                    "Review and adjust annually for expense changes",
                    "Consider high-yield savings account for better returns",
                    "Don't forget to replenish after any emergency use",
                ],
            )]

        strategies = []
        for share, name, tips in SAVING_PACES:
            monthly = monthly_income * share
            if monthly <= 0:
                continue
            strategies.append(EmergencyFundStrategy(
                strategy=name,
                monthly_amount=monthly,
                time_to_target=math.ceil(remaining / monthly),
                milestones=strategy_milestones(remaining, monthly),
                tips=list(tips),
            ))
        return strategies

    def scenarios(
        self,
        transactions: Sequence[TransactionResponse],
        monthly_expenses: float,
        job_type: Optional[str] = None
    ) -> List[EmergencyScenario]:
        categories = [t.category.lower() for t in transactions]
        has_any = lambda *needles: any(n in c for c in categories for n in needles)

        scenarios = [EmergencyScenario(
            scenario="Job Loss",
            probability="high" if job_type == "freelance" else "medium" if job_type == "contract" else "low",
            estimated_cost=monthly_expenses * 4,
            months_to_recover=4,
            description="Temporary loss of primary income source",
            mitigation=[
                "Maintain professional network",
                "Keep resume updated",
                "Consider skills training",
                "Have job search budget ready",
            ],
        ), EmergencyScenario(
            scenario="Medical Emergency",
            probability="medium",
            estimated_cost=5000,
            months_to_recover=2,
            description="Unexpected medical bills not covered by insurance",
            mitigation=[
                "Maintain good health insurance",
                "Use HSA/FSA accounts",
                "Research medical providers",
                "Negotiate payment plans if needed",
            ],
        )]

        if has_any("transport", "car", "gas"):
            scenarios.append(EmergencyScenario(
                scenario="Major Car Repair",
                probability="medium",
                estimated_cost=2500,
                months_to_recover=1,
                description="Unexpected vehicle breakdown or major repair",
                mitigation=[
                    "Regular vehicle maintenance",
                    "Keep receipts for warranty claims",
                    "Research reliable mechanics",
                    "Consider extended warranties for older cars",
                ],
            ))

        if has_any("home", "utilities", "maintenance"):
            scenarios.append(EmergencyScenario(
                scenario="Home Repair",
                probability="medium",
                estimated_cost=3500,
                months_to_recover=1,
                description="Unexpected home maintenance or appliance replacement",
                mitigation=[
                    "Regular home maintenance",
                    "Home warranty or insurance",
                    "Build relationships with trusted contractors",
                    "Learn basic home repair skills",
                ],
            ))

        scenarios.append(EmergencyScenario(
            scenario="Economic Downturn",
            probability="low",
            estimated_cost=monthly_expenses * 6,
            months_to_recover=8,
            description="Extended period of reduced income or increased expenses",
            mitigation=[
                "Diversify income sources",
                "Maintain marketable skills",
                "Keep low debt levels",
                "Build larger emergency fund during good times",
            ],
        ))

        return sorted(scenarios, key=lambda s: PROBABILITY_ORDER[s.probability])
