import math
from typing import Optional

from financeai.features.context.schemas import FinancialContext
from financeai.features.context.service import top_categories
from financeai.features.transactions.schemas import coerce_amount

ADVISOR_PREAMBLE = (
    "You are an expert personal financial advisor with access to the user's real financial data. "
    "Your role is to provide personalized, actionable financial advice in a conversational, friendly tone."
)

GUIDELINES = """**CONVERSATION GUIDELINES:**
- Be conversational, friendly, and encouraging
- Use simple language, avoid financial jargon
- Provide specific, actionable advice based on their actual data
- Reference their real transactions and spending patterns
- Be supportive, not judgmental about spending habits
- Keep responses concise but helpful (2-3 paragraphs max)
- End with a relevant follow-up question when appropriate"""


def _financial_sections(context: FinancialContext) -> str:
    categories = "\n".join(
        f"- {category}: ${amount:.2f}" for category, amount in top_categories(context.category_breakdown, 5)
    )
    recent = "\n".join(
        f"- {t.date.isoformat()}: {t.description} - ${coerce_amount(t.amount):.2f} ({t.category})"
        for t in context.recent_transactions[:5]
    )
    budgets = "\n".join(
        f"- {bp.category}: "
        f"{bp.percentage_used if math.isfinite(bp.percentage_used) else 0.0:.1f}% used "
        f"(${bp.spent:.2f}/${bp.budgeted:.2f})"
        for bp in context.budget_performance
        if math.isfinite(bp.spent) and math.isfinite(bp.budgeted)
    )

    return f"""**FINANCIAL CONTEXT:**
- Total Income: ${context.total_income:.2f}
- Total Expenses: ${context.total_expenses:.2f}
- Net Income: ${context.net_income:.2f}
- Savings Rate: {context.savings_rate:.1f}%
- Total Transactions: {len(context.transactions)}

**TOP SPENDING CATEGORIES:**
{categories}

**RECENT TRANSACTIONS (Last 5):**
{recent}

**BUDGET PERFORMANCE:**
{budgets}
"""


def build_chat_prompt(
    user_message: str,
    context: Optional[FinancialContext],
    response_style: str = "detailed",
    history: Optional[str] = None
) -> str:
    """Assemble the advisor prompt. ``context=None`` leaves out every data section."""
    sections = [ADVISOR_PREAMBLE, ""]
    if context is not None:
        sections.append(_financial_sections(context))
    if history:
        sections.append(f"**CONVERSATION HISTORY:**\n{history}\n")
    sections.append(GUIDELINES)
    sections.append("")
    sections.append(f"**USER QUESTION:** {user_message}")
    sections.append("")
    sections.append(f"**RESPONSE STYLE:** {response_style or 'detailed'}")
    sections.append("")
    sections.append("Provide a helpful, personalized response based on their actual financial data:")
    return "\n".join(sections)
