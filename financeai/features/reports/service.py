import asyncio
import datetime
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from fastapi import Request

from financeai.core.ids import timestamped_id
from financeai.core.llm import LLMService, LLMConfigurationError, parse_json_payload
from financeai.core.resilience import RetryPolicy, call_with_retry
from financeai.features.budgets.schemas import BudgetResponse
from financeai.features.context.service import (
    calculate_budget_performance,
    calculate_category_breakdown,
    sum_by_type,
    top_categories,
    utilization,
)
from financeai.features.transactions.models import TransactionType
from financeai.features.transactions.schemas import TransactionResponse, coerce_amount
from financeai.features.reports.schemas import (
    AIReport,
    AIReportResponse,
    DateRange,
    MonthlyTrend,
    ReportBudgetPerformance,
    ReportGenerationOptions,
    ReportMetadata,
    ReportType,
)

logger = logging.getLogger(__name__)

TREND_MONTHS = 6
DEFAULT_RANGE_DAYS = 30

REPORT_JSON_INSTRUCTIONS = """IMPORTANT: Respond ONLY with valid JSON in this exact format:
{
  "title": "Report Title",
  "content": "Full report content in markdown format",
  "summary": "Brief 2-3 sentence summary",
  "insights": ["Key insight 1", "Key insight 2", "Key insight 3"],
  "recommendations": ["Recommendation 1", "Recommendation 2", "Recommendation 3"]
}

Guidelines:
- Write in simple, clear language that anyone can understand
- Be encouraging and constructive, not judgmental
- Focus on actionable insights and practical recommendations
- Use specific numbers and percentages from the data
- Keep insights concise but meaningful
- Make recommendations specific and achievable"""


@dataclass
class ReportAnalysis:
    transactions: List[TransactionResponse]
    budgets: List[BudgetResponse]
    total_income: float
    total_expenses: float
    net_income: float
    category_breakdown: Dict[str, float]
    monthly_trends: List[MonthlyTrend] = field(default_factory=list)
    budget_performance: List[ReportBudgetPerformance] = field(default_factory=list)


def calculate_monthly_trends(transactions: Sequence[TransactionResponse], months: int = TREND_MONTHS) -> List[MonthlyTrend]:
    """Income/expense per calendar month: the latest ``months`` months, oldest first."""
    buckets: Dict[str, Dict[str, float]] = {}
    for t in transactions:
        key = t.date.strftime("%Y-%m")
        bucket = buckets.setdefault(key, {"income": 0.0, "expenses": 0.0})
        if t.type == TransactionType.INCOME:
            bucket["income"] += coerce_amount(t.amount)
        else:
            bucket["expenses"] += coerce_amount(t.amount)

    latest = sorted(buckets.items(), reverse=True)[:months]
    trends = []
    for key, data in reversed(latest):
        label = datetime.datetime.strptime(key, "%Y-%m").strftime("%b %Y")
        trends.append(MonthlyTrend(
            month=label,
            income=data["income"],
            expenses=data["expenses"],
            net=data["income"] - data["expenses"],
        ))
    return trends


def calculate_report_budget_performance(
    budgets: Sequence[BudgetResponse],
    transactions: Sequence[TransactionResponse]
) -> List[ReportBudgetPerformance]:
    return [
        ReportBudgetPerformance(**item.model_dump(), remaining=item.budgeted - item.spent)
        for item in calculate_budget_performance(budgets, transactions)
    ]


class AIReportService:
    """LLM-written financial reports over the user's transactions and budgets."""

    def __init__(
        self,
        llm: LLMService,
        retry_policy: Optional[RetryPolicy] = None,
        sleep=asyncio.sleep
    ):
        self.llm = llm
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

    @property
    def model_name(self) -> str:
        return getattr(self.llm, "model", "unknown")

    async def generate_report(
        self,
        transactions: Sequence[TransactionResponse],
        budgets: Sequence[BudgetResponse],
        options: ReportGenerationOptions
    ) -> AIReportResponse:
        started = time.perf_counter()
        logger.info(f"Generating {options.type.value} report")

        try:
            analysis = self.analyze_financial_data(transactions, budgets, options)
            prompt = self.build_report_prompt(analysis, options)
            text = await call_with_retry(
                lambda: self.llm.generate_response(
                    prompt, response_format="json_object", timeout=self.retry_policy.timeout
                ),
                self.retry_policy,
                sleep=self._sleep,
            )
            parsed = self.parse_report_response(text)
        except Exception as e:
            logger.error(f"Report generation failed: {type(e).__name__}: {e}")
            return AIReportResponse(
                report=self.create_error_report(options.type),
                errors=[str(e) or "Unknown error occurred"],
                processing_time=int((time.perf_counter() - started) * 1000),
            )

        processing_time = int((time.perf_counter() - started) * 1000)
        report = AIReport(
            id=self.generate_report_id(),
            type=options.type,
            generated_at=datetime.datetime.now(datetime.timezone.utc),
            data_range=self.get_data_range(transactions, options),
            metadata=ReportMetadata(
                transactions_analyzed=len(transactions),
                budgets_analyzed=len(budgets),
                processing_time=processing_time,
                ai_model=self.model_name,
            ),
            **parsed,
        )
        return AIReportResponse(report=report, processing_time=processing_time)

    def analyze_financial_data(
        self,
        transactions: Sequence[TransactionResponse],
        budgets: Sequence[BudgetResponse],
        options: ReportGenerationOptions
    ) -> ReportAnalysis:
        selected = list(transactions)
        if options.date_range:
            start, end = options.date_range.start_date, options.date_range.end_date
            selected = [t for t in selected if start <= t.date <= end]

        total_income = sum_by_type(selected, TransactionType.INCOME)
        total_expenses = sum_by_type(selected, TransactionType.EXPENSE)
        return ReportAnalysis(
            transactions=selected,
            budgets=list(budgets),
            total_income=total_income,
            total_expenses=total_expenses,
            net_income=total_income - total_expenses,
            category_breakdown=calculate_category_breakdown(selected),
            monthly_trends=calculate_monthly_trends(selected),
            budget_performance=calculate_report_budget_performance(budgets, selected),
        )

    def build_report_prompt(self, data: ReportAnalysis, options: ReportGenerationOptions) -> str:
        sections = {
            ReportType.MONTHLY_SUMMARY: self._monthly_summary_section,
            ReportType.SPENDING_ANALYSIS: self._spending_analysis_section,
            ReportType.BUDGET_PERFORMANCE: self._budget_performance_section,
        }
        title = options.type.value.replace("-", " ")

        extras = [f"Detail level: {options.detail_level}"]
        if options.focus_areas:
            extras.append(f"Focus areas: {', '.join(options.focus_areas)}")

        return (
            f"You are a professional financial advisor creating a {title} report.\n\n"
            f"{REPORT_JSON_INSTRUCTIONS}\n"
            f"{sections[options.type](data)}\n"
            + "\n".join(extras)
            + "\n\nRemember: Respond ONLY with the JSON object, no additional text."
        )

    def _monthly_summary_section(self, data: ReportAnalysis) -> str:
        categories = "\n".join(
            f"- {category}: ${amount:.2f}" for category, amount in top_categories(data.category_breakdown, 5)
        )
        trends = "\n".join(
            f"- {t.month}: Income ${t.income:.2f}, Expenses ${t.expenses:.2f}, Net ${t.net:.2f}"
            for t in data.monthly_trends
        )
        return f"""
DATA ANALYSIS:
- Total Income: ${data.total_income:.2f}
- Total Expenses: ${data.total_expenses:.2f}
- Net Income: ${data.net_income:.2f}
- Transactions Analyzed: {len(data.transactions)}

TOP SPENDING CATEGORIES:
{categories}

MONTHLY TRENDS (Last 6 months):
{trends}

Create a comprehensive monthly financial summary that covers:
1. Overall financial health and performance
2. Income vs expenses analysis
3. Spending pattern insights
4. Month-over-month trends
5. Areas of concern or success
"""

    def _spending_analysis_section(self, data: ReportAnalysis) -> str:
        ranked = top_categories(data.category_breakdown, len(data.category_breakdown))
        breakdown = "\n".join(
            f"- {category}: ${amount:.2f} ({utilization(amount, data.total_expenses):.1f}%)"
            for category, amount in ranked
        )
        expense_count = sum(1 for t in data.transactions if t.type == TransactionType.EXPENSE)
        average = data.total_expenses / expense_count if expense_count else 0.0
        frequent = ", ".join(category for category, _ in ranked[:3]) or "none"
        return f"""
SPENDING BREAKDOWN:
{breakdown}

TRANSACTION PATTERNS:
- Average transaction amount: ${average:.2f}
- Most frequent categories: {frequent}

Create a detailed spending analysis that includes:
1. Category-wise spending breakdown with percentages
2. Spending patterns and habits analysis
3. Comparison with typical spending patterns
4. Identification of potential overspending areas
5. Opportunities for cost optimization
"""

    def _budget_performance_section(self, data: ReportAnalysis) -> str:
        lines = "\n".join(
            f"- {bp.category}: Budgeted ${bp.budgeted:.2f}, Spent ${bp.spent:.2f}, {bp.percentage_used:.1f}% used"
            for bp in data.budget_performance
        )
        over = sum(1 for bp in data.budget_performance if bp.percentage_used > 100)
        under = sum(1 for bp in data.budget_performance if bp.percentage_used < 80)
        return f"""
BUDGET PERFORMANCE:
{lines}

BUDGET SUMMARY:
- Total Budgets: {len(data.budgets)}
- Categories Over Budget: {over}
- Categories Under Budget: {under}

Create a comprehensive budget performance analysis that covers:
1. Overall budget adherence and performance
2. Categories that are over/under budget
3. Budget vs actual spending analysis
4. Seasonal or trend-based budget insights
5. Budget adjustment recommendations
"""

    @staticmethod
    def parse_report_response(text: str) -> Dict[str, Any]:
        parsed = parse_json_payload(text)
        insights = parsed.get("insights")
        recommendations = parsed.get("recommendations")
        return {
            "title": parsed.get("title") or "Financial Report",
            "content": parsed.get("content") or "Report content not available",
            "summary": parsed.get("summary") or "Summary not available",
            "insights": [str(i) for i in insights] if isinstance(insights, list) else [],
            "recommendations": [str(r) for r in recommendations] if isinstance(recommendations, list) else [],
        }

    @staticmethod
    def get_data_range(
        transactions: Sequence[TransactionResponse],
        options: ReportGenerationOptions
    ) -> DateRange:
        if options.date_range:
            return options.date_range
        dates = sorted(t.date for t in transactions)
        if dates:
            return DateRange(start_date=dates[0], end_date=dates[-1])
        today = datetime.date.today()
        return DateRange(start_date=today - datetime.timedelta(days=DEFAULT_RANGE_DAYS), end_date=today)

    def create_error_report(self, report_type: ReportType) -> AIReport:
        today = datetime.date.today()
        return AIReport(
            id=self.generate_report_id(),
            type=report_type,
            title="Report Generation Failed",
            content="We encountered an issue generating your financial report. Please try again later.",
            summary="Report generation failed due to a technical issue.",
            insights=[],
            recommendations=["Please try generating the report again", "Contact support if the issue persists"],
            generated_at=datetime.datetime.now(datetime.timezone.utc),
            data_range=DateRange(start_date=today, end_date=today),
            metadata=ReportMetadata(
                transactions_analyzed=0,
                budgets_analyzed=0,
                processing_time=0,
                ai_model=self.model_name,
            ),
        )

    @staticmethod
    def generate_report_id() -> str:
        return timestamped_id("ai-report")


def get_report_service(request: Request) -> AIReportService:
    service = getattr(request.app.state, "report_service", None)
    if service is None:
        raise LLMConfigurationError("AI report service is not configured")
    return service
