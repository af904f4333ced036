"""
Debt payoff planning.

Strategies are compared with a month-by-month simulation: interest accrues on
every open balance, every debt receives its minimum, and whatever is left of
the monthly budget goes to the first open debt in strategy order. Freed
minimums roll over to the next debt once a balance reaches zero.
"""
import calendar
import datetime
import logging
from typing import Dict, List, Optional, Sequence, Tuple

from financeai.features.debt.schemas import (
    ConsolidationOption,
    CreditImpact,
    CurrentPath,
    DebtAccount,
    DebtPayoffAnalysis,
    DebtRecommendation,
    OptimizedPath,
    PaymentPlan,
    PayoffComparison,
    PayoffStrategy,
)

logger = logging.getLogger(__name__)

MAX_SIMULATION_MONTHS = 600
PAID_OFF_EPSILON = 0.005
DEFAULT_MINIMUM_SHARE = 0.02
HIGH_INTEREST_APR = 18.0
UTILIZATION_HIGH = 30.0
UTILIZATION_OPTIMAL = 10.0
LOW_EXTRA_PAYMENT = 100.0

AVALANCHE = "Debt Avalanche (Highest Interest First)"
SNOWBALL = "Debt Snowball (Smallest Balance First)"
MINIMUM_ONLY = "Minimum Payments Only"


def add_months(start: datetime.date, months: int) -> datetime.date:
    """Same day ``months`` later, clamped to the end of shorter months."""
    index = start.month - 1 + months
    year, month = start.year + index // 12, index % 12 + 1
    return start.replace(year=year, month=month, day=min(start.day, calendar.monthrange(year, month)[1]))


def validate_debts(debts: Sequence[DebtAccount]) -> List[DebtAccount]:
    """Clamp negatives, default the minimum to 2% of the balance, drop settled debts."""
    validated = []
    for debt in debts:
        balance = max(0.0, debt.balance)
        if balance <= 0:
            continue
        minimum = debt.minimum_payment if debt.minimum_payment > 0 else balance * DEFAULT_MINIMUM_SHARE
        validated.append(debt.model_copy(update={
            "balance": balance,
            "interest_rate": max(0.0, debt.interest_rate),
            "minimum_payment": minimum,
        }))
    return validated


def simulate_payoff(
    ordered: Sequence[DebtAccount],
    monthly_budget: float
) -> Tuple[Dict[str, Optional[int]], Dict[str, float]]:
    """Months to payoff (``None`` if never) and interest paid, per debt id."""
    balances = {d.id: d.balance for d in ordered}
    interest = {d.id: 0.0 for d in ordered}
    payoff_month: Dict[str, Optional[int]] = {d.id: None for d in ordered}

    month = 0
    while month < MAX_SIMULATION_MONTHS and any(b > 0 for b in balances.values()):
        month += 1
        budget = monthly_budget
        open_debts = [d for d in ordered if balances[d.id] > 0]

        for debt in open_debts:
            accrued = balances[debt.id] * debt.interest_rate / 100 / 12
            balances[debt.id] += accrued
            interest[debt.id] += accrued

        for debt in open_debts:
            paid = min(debt.minimum_payment, balances[debt.id], budget)
            balances[debt.id] -= paid
            budget -= paid

        for debt in open_debts:
            if budget <= 0:
                break
            paid = min(balances[debt.id], budget)
            balances[debt.id] -= paid
            budget -= paid

        for debt in open_debts:
            if balances[debt.id] <= PAID_OFF_EPSILON:
                balances[debt.id] = 0.0
                payoff_month[debt.id] = month

    return payoff_month, interest


def amortize(balance: float, payment: float, annual_rate: float) -> Tuple[Optional[int], Optional[float]]:
    """Months and total interest for one balance paid at a fixed amount."""
    debt = DebtAccount(id="_", name="_", balance=balance, interest_rate=annual_rate, minimum_payment=payment)
    months, interest = simulate_payoff([debt], payment)
    if months["_"] is None:
        return None, None
    return months["_"], interest["_"]


def _strategy_totals(plans: Sequence[PaymentPlan]) -> Tuple[Optional[float], Optional[int]]:
    if any(p.months_to_payoff is None for p in plans):
        return None, None
    return sum(p.total_interest_paid for p in plans), max(p.months_to_payoff for p in plans)


def calculate_debt_free_date(strategy: PayoffStrategy, today: Optional[datetime.date] = None) -> Optional[datetime.date]:
    if strategy.time_to_payoff is None:
        return None
    return add_months(today or datetime.date.today(), strategy.time_to_payoff)


def _interest_key(strategy: PayoffStrategy) -> float:
    return strategy.total_interest_paid if strategy.total_interest_paid is not None else float("inf")


class DebtPayoffService:

    def analyze_debt_payoff(
        self,
        debts: Sequence[DebtAccount],
        extra_payment: float = 0.0,
        today: Optional[datetime.date] = None
    ) -> DebtPayoffAnalysis:
        validated = validate_debts(debts)
        if not validated:
            return self.debt_free_analysis()

        today = today or datetime.date.today()
        strategies = self.generate_strategies(validated, extra_payment, today)
        logger.info(
            f"Debt analysis for {len(validated)} debts, extra payment {extra_payment:.2f}: "
            + ", ".join(f"{s.name}={s.time_to_payoff}" for s in strategies)
        )
        return DebtPayoffAnalysis(
            debts=validated,
            strategies=strategies,
            recommendations=self.recommendations(validated, extra_payment),
            consolidation_options=self.consolidation_options(validated),
            payoff_comparison=self.compare_strategies(strategies),
            credit_impact=self.credit_impact(validated),
        )

    def generate_strategies(
        self,
        debts: Sequence[DebtAccount],
        extra_payment: float,
        today: datetime.date
    ) -> List[PayoffStrategy]:
        budget = sum(d.minimum_payment for d in debts) + extra_payment
        avalanche = self.ordered_strategy(
            AVALANCHE,
            "Pay minimums on all debts, focus extra payments on highest interest debt first.",
            sorted(debts, key=lambda d: d.interest_rate, reverse=True),
            budget,
            pros=["Minimizes total interest paid", "Mathematically optimal approach", "Saves the most money overall"],
            cons=["May take longer to see progress", "Requires discipline", "Less immediate psychological wins"],
        )
        snowball = self.ordered_strategy(
            SNOWBALL,
            "Pay minimums on all debts, focus extra payments on smallest balance first.",
            sorted(debts, key=lambda d: d.balance),
            budget,
            pros=["Quick psychological wins", "Builds momentum and motivation", "Reduces number of payments quickly"],
            cons=["May pay more in total interest", "Not mathematically optimal", "High-interest debts remain longer"],
        )
        strategies = [avalanche, snowball, self.minimum_only_strategy(debts)]
        return [
            s.model_copy(update={"debt_free_date": calculate_debt_free_date(s, today)})
            for s in strategies
        ]

    def ordered_strategy(
        self,
        name: str,
        description: str,
        ordered: Sequence[DebtAccount],
        budget: float,
        pros: List[str],
        cons: List[str]
    ) -> PayoffStrategy:
        months, interest = simulate_payoff(ordered, budget)
        plans = []
        for index, debt in enumerate(ordered):
            later_minimums = sum(d.minimum_payment for d in ordered[index + 1:])
            plans.append(PaymentPlan(
                debt_id=debt.id,
                debt_name=debt.name,
                monthly_payment=max(budget - later_minimums, debt.minimum_payment),
                payoff_order=index + 1,
                months_to_payoff=months[debt.id],
                total_interest_paid=interest[debt.id] if months[debt.id] is not None else None,
            ))
        total_interest, time_to_payoff = _strategy_totals(plans)
        return PayoffStrategy(
            name=name,
            description=description,
            payment_order=plans,
            total_interest_paid=total_interest,
            time_to_payoff=time_to_payoff,
            monthly_payment=budget,
            pros=pros,
            cons=cons,
            effectiveness="high",
        )

    def minimum_only_strategy(self, debts: Sequence[DebtAccount]) -> PayoffStrategy:
        plans = []
        for index, debt in enumerate(debts):
            months, interest = amortize(debt.balance, debt.minimum_payment, debt.interest_rate)
            plans.append(PaymentPlan(
                debt_id=debt.id,
                debt_name=debt.name,
                monthly_payment=debt.minimum_payment,
                payoff_order=index + 1,
                months_to_payoff=months,
                total_interest_paid=interest,
            ))
        total_interest, time_to_payoff = _strategy_totals(plans)
        return PayoffStrategy(
            name=MINIMUM_ONLY,
            description="Pay only minimum payments on all debts. Baseline comparison for other strategies.",
            payment_order=plans,
            total_interest_paid=total_interest,
            time_to_payoff=time_to_payoff,
            monthly_payment=sum(d.minimum_payment for d in debts),
            pros=["Lowest monthly payment requirement", "Preserves cash flow"],
            cons=["Highest total interest paid", "Longest payoff time"],
            effectiveness="low",
        )

    def compare_strategies(self, strategies: Sequence[PayoffStrategy]) -> PayoffComparison:
        """Minimum-only baseline against the cheapest other strategy (first wins a tie)."""
        baseline = next(s for s in strategies if s.name == MINIMUM_ONLY)
        best = min((s for s in strategies if s.name != MINIMUM_ONLY), key=_interest_key)

        savings = None
        if baseline.total_interest_paid is not None and best.total_interest_paid is not None:
            savings = baseline.total_interest_paid - best.total_interest_paid
        time_saved = None
        if baseline.time_to_payoff is not None and best.time_to_payoff is not None:
            time_saved = baseline.time_to_payoff - best.time_to_payoff

        return PayoffComparison(
            current_path=CurrentPath(
                total_interest_paid=baseline.total_interest_paid,
                time_to_payoff=baseline.time_to_payoff,
                monthly_payment=baseline.monthly_payment,
            ),
            optimized_path=OptimizedPath(
                strategy=best.name,
                total_interest_paid=best.total_interest_paid,
                time_to_payoff=best.time_to_payoff,
                total_savings=savings,
                time_saved=time_saved,
            ),
        )

    def recommendations(self, debts: Sequence[DebtAccount], extra_payment: float) -> List[DebtRecommendation]:
        recommendations = []

        high_interest = [d for d in debts if d.interest_rate > HIGH_INTEREST_APR]
        if high_interest:
            recommendations.append(DebtRecommendation(
                type="payoff_strategy",
                title="Prioritize High-Interest Debt",
                description=f"You have {len(high_interest)} debt(s) with interest rates above 18%.",
                priority="high",
                potential_savings=sum(d.balance * 0.1 for d in high_interest),
                difficulty="moderate",
                action_steps=[
                    "List all debts by interest rate",
                    "Pay minimums on all debts",
                    "Apply extra payments to highest interest debt",
                    "Consider balance transfer options",
                ],
            ))

        utilization = self.credit_impact(debts).credit_utilization
        if utilization > UTILIZATION_HIGH:
            recommendations.append(DebtRecommendation(
                type="lifestyle_change",
                title="Reduce Credit Utilization",
                description=f"Your credit utilization is {utilization:.1f}%. Reduce below 30%.",
                priority="high",
                potential_savings=0,
                difficulty="moderate",
                action_steps=[
                    "Calculate current utilization ratio",
                    "Pay down balances below 30% of limits",
                    "Make multiple payments per month",
                    "Avoid closing paid-off cards",
                ],
            ))

        if extra_payment < LOW_EXTRA_PAYMENT:
            recommendations.append(DebtRecommendation(
                type="lifestyle_change",
                title="Increase Debt Payment Capacity",
                description="Finding additional funds will dramatically reduce payoff time.",
                priority="medium",
                potential_savings=2000,
                difficulty="moderate",
                action_steps=[
                    "Review monthly expenses for cuts",
                    "Consider side income opportunities",
                    "Sell unused items",
                    "Reduce discretionary spending temporarily",
                ],
            ))

        return recommendations

    def consolidation_options(self, debts: Sequence[DebtAccount]) -> List[ConsolidationOption]:
        total = sum(d.balance for d in debts)
        weighted_rate = sum(d.balance * d.interest_rate for d in debts) / total
        options = []

        if 1000 < total < 50000:
            options.append(ConsolidationOption(
                type="personal_loan",
                name="Personal Loan Consolidation",
                description="Consolidate all debts into a single personal loan with fixed payments",
                potential_interest_rate=max(6.0, weighted_rate * 0.7),
                estimated_savings=total * 0.15,
                pros=["Single payment", "Lower rate potential", "Fixed schedule"],
                cons=["Requires good credit", "Origination fees", "New debt risk"],
                risk_level="medium",
            ))

        card_debt = sum(d.balance for d in debts if d.type == "credit_card")
        if card_debt > 1000:
            options.append(ConsolidationOption(
                type="balance_transfer",
                name="Balance Transfer Credit Card",
                description="Transfer balances to 0% promotional APR card",
                potential_interest_rate=0,
                estimated_savings=card_debt * (weighted_rate / 100) * 1.5,
                pros=["0% promotional APR", "Consolidates cards", "Improves utilization"],
                cons=["Promotional rate expires", "Transfer fees", "New credit required"],
                risk_level="medium",
            ))

        return options

    def credit_impact(self, debts: Sequence[DebtAccount]) -> CreditImpact:
        cards = [d for d in debts if d.type == "credit_card" and d.credit_limit]
        if not cards:
            return CreditImpact(
                credit_utilization=0,
                impact_description="No credit card debt detected",
                recommendations=["Maintain low utilization when using credit cards"],
            )

        utilization = sum(c.balance for c in cards) / sum(c.credit_limit for c in cards) * 100
        if utilization > UTILIZATION_HIGH:
            return CreditImpact(
                credit_utilization=utilization,
                impact_description="High utilization is negatively impacting your credit score",
                recommendations=[
                    "Pay down balances below 30% utilization",
                    "Consider balance transfers to spread utilization",
                ],
            )
        if utilization > UTILIZATION_OPTIMAL:
            return CreditImpact(
                credit_utilization=utilization,
                impact_description="Moderate utilization - room for improvement",
                recommendations=["Aim for utilization below 10% for optimal score"],
            )
        return CreditImpact(
            credit_utilization=utilization,
            impact_description="Low utilization is positive for your credit score",
            recommendations=["Maintain current low utilization levels"],
        )

    def debt_free_analysis(self) -> DebtPayoffAnalysis:
        return DebtPayoffAnalysis(
            debts=[],
            strategies=[],
            recommendations=[DebtRecommendation(
                type="lifestyle_change",
                title="Congratulations! You're Debt-Free",
                description="Focus on building wealth and maintaining good financial habits",
                priority="high",
                potential_savings=0,
                difficulty="easy",
                action_steps=[
                    "Build emergency fund",
                    "Invest for long-term goals",
                    "Monitor credit score",
                    "Avoid new debt",
                ],
            )],
            consolidation_options=[],
            payoff_comparison=PayoffComparison(
                current_path=CurrentPath(total_interest_paid=0, time_to_payoff=0, monthly_payment=0),
                optimized_path=OptimizedPath(
                    strategy="None needed", total_interest_paid=0, time_to_payoff=0, total_savings=0, time_saved=0
                ),
            ),
            credit_impact=CreditImpact(
                credit_utilization=0,
                impact_description="No current debt",
                recommendations=["Keep monitoring credit health"],
            ),
        )
