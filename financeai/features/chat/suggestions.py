from dataclasses import dataclass
from typing import Callable, List

from financeai.features.context.schemas import FinancialContext
from financeai.features.context.service import top_categories

MAX_SUGGESTIONS = 4

GENERIC_QUESTIONS = (
    "What's my financial health score?",
    "Show me my spending trends",
    "Help me plan next month's budget",
)


@dataclass(frozen=True)
class SuggestionRule:
    name: str
    applies: Callable[[FinancialContext], bool]
    render: Callable[[FinancialContext], str]


def _top_category(context: FinancialContext) -> str:
    return top_categories(context.category_breakdown, 1)[0][0]


# Evaluated in order; earlier rules win the limited slots
SUGGESTION_RULES: List[SuggestionRule] = [
    SuggestionRule(
        "near_budget_limit",
        lambda ctx: any(bp.percentage_used > 90 for bp in ctx.budget_performance),
        lambda ctx: "How can I stay within my budget this month?",
    ),
    SuggestionRule(
        "top_category",
        lambda ctx: bool(ctx.category_breakdown),
        lambda ctx: f"How can I reduce my {_top_category(ctx).lower()} spending?",
    ),
    SuggestionRule(
        "low_savings",
        lambda ctx: ctx.savings_rate < 20,
        lambda ctx: "What are some ways I can increase my savings?",
    ),
    SuggestionRule(
        "negative_net",
        lambda ctx: ctx.net_income < 0,
        lambda ctx: "How can I improve my financial situation?",
    ),
]


def generate_suggested_questions(context: FinancialContext, limit: int = MAX_SUGGESTIONS) -> List[str]:
    suggestions: List[str] = []
    for rule in SUGGESTION_RULES:
        if rule.applies(context):
            question = rule.render(context)
            if question not in suggestions:
                suggestions.append(question)

    for question in GENERIC_QUESTIONS:
        if len(suggestions) >= limit:
            break
        if question not in suggestions:
            suggestions.append(question)

    return suggestions[:limit]
