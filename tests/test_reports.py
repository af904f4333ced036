import json
import uuid
import datetime

import pytest

from financeai.core.llm import LLMError
from financeai.core.resilience import RetryPolicy
from financeai.features.budgets.schemas import BudgetResponse
from financeai.features.context.service import calculate_budget_performance
from financeai.features.reports.schemas import DateRange, ReportGenerationOptions, ReportType
from financeai.features.reports.service import (
    AIReportService,
    calculate_monthly_trends,
    calculate_report_budget_performance,
)
from financeai.features.transactions.schemas import TransactionResponse
from conftest import FakeLLM, SleepRecorder

REPORT_JSON = {
    "title": "March in review",
    "content": "## Summary\nYou saved money.",
    "summary": "A solid month.",
    "insights": ["Rent is your largest expense"],
    "recommendations": ["Cook at home twice a week"],
}


def txn(date, amount, category="Food", type="expense"):
    return TransactionResponse(
        id=uuid.uuid4(), date=date, description=category, category=category, amount=amount, type=type,
    )


def options(report_type=ReportType.MONTHLY_SUMMARY, **kwargs):
    return ReportGenerationOptions(type=report_type, **kwargs)


def test_monthly_trends_keep_latest_six_oldest_first():
    rows = [txn(datetime.date(2024, month, 15), 100 * month) for month in range(1, 9)]
    rows.append(txn(datetime.date(2024, 8, 1), 5000, "Salary", "income"))

    trends = calculate_monthly_trends(rows)
    assert [t.month for t in trends] == ["Mar 2024", "Apr 2024", "May 2024", "Jun 2024", "Jul 2024", "Aug 2024"]
    assert trends[-1].income == 5000
    assert trends[-1].expenses == 800
    assert trends[-1].net == 4200


def test_report_budget_performance_remaining_and_zero_guard():
    rows = [txn(datetime.date(2024, 3, 1), 80)]
    budgets = [
        BudgetResponse(id=uuid.uuid4(), category="Food", budget_amount=100),
        BudgetResponse(id=uuid.uuid4(), category="Food", budget_amount=0),
    ]
    performance = calculate_report_budget_performance(budgets, rows)
    assert performance[0].remaining == 20
    assert performance[0].percentage_used == 80
    assert performance[1].remaining == -80
    assert performance[1].percentage_used == 0


def test_report_budget_performance_matches_the_chat_context():
    rows = [txn(datetime.date(2024, 3, 1), 80), txn(datetime.date(2024, 3, 2), 40, "Rent")]
    budgets = [
        BudgetResponse(id=uuid.uuid4(), category="Food", budget_amount=100),
        BudgetResponse(id=uuid.uuid4(), category="Rent", budget_amount=30),
    ]
    context_rows = calculate_budget_performance(budgets, rows)
    report_rows = calculate_report_budget_performance(budgets, rows)

    assert [r.model_dump(exclude={"remaining"}) for r in report_rows] == [c.model_dump() for c in context_rows]
    assert [r.remaining for r in report_rows] == [20, -10]


def test_parse_report_response_tolerates_fences_and_defaults():
    fenced = "```json\n" + json.dumps(REPORT_JSON) + "\n```"
    assert AIReportService.parse_report_response(fenced)["title"] == "March in review"

    sparse = AIReportService.parse_report_response('{"insights": "not a list"}')
    assert sparse == {
        "title": "Financial Report",
        "content": "Report content not available",
        "summary": "Summary not available",
        "insights": [],
        "recommendations": [],
    }


def test_data_range_resolution():
    rows = [txn(datetime.date(2024, 2, 10), 5), txn(datetime.date(2024, 1, 3), 5)]
    explicit = DateRange(start_date=datetime.date(2024, 1, 1), end_date=datetime.date(2024, 1, 31))

    assert AIReportService.get_data_range(rows, options(date_range=explicit)) == explicit
    derived = AIReportService.get_data_range(rows, options())
    assert (derived.start_date, derived.end_date) == (datetime.date(2024, 1, 3), datetime.date(2024, 2, 10))

    fallback = AIReportService.get_data_range([], options())
    assert fallback.end_date - fallback.start_date == datetime.timedelta(days=30)


def test_date_range_must_be_ordered():
    with pytest.raises(ValueError):
        DateRange(start_date=datetime.date(2024, 2, 1), end_date=datetime.date(2024, 1, 1))


async def test_generate_report():
    llm = FakeLLM(json.dumps(REPORT_JSON))
    service = AIReportService(llm, RetryPolicy(), sleep=SleepRecorder())
    rows = [txn(datetime.date(2024, 3, 2), 1200, "Rent"), txn(datetime.date(2024, 3, 1), 3000, "Salary", "income")]
    budgets = [BudgetResponse(id=uuid.uuid4(), category="Rent", budget_amount=1000)]

    result = await service.generate_report(rows, budgets, options())

    assert result.errors == []
    report = result.report
    assert report.id.startswith("ai-report-")
    assert report.title == "March in review"
    assert report.recommendations == ["Cook at home twice a week"]
    assert report.metadata.transactions_analyzed == 2
    assert report.metadata.budgets_analyzed == 1
    assert report.metadata.ai_model == "fake-model"
    assert "- Total Income: $3000.00" in llm.prompts[0]
    assert "MONTHLY TRENDS (Last 6 months):\n- Mar 2024: Income $3000.00" in llm.prompts[0]


@pytest.mark.parametrize("report_type, marker", [
    (ReportType.SPENDING_ANALYSIS, "- Rent: $1200.00 (100.0%)"),
    (ReportType.BUDGET_PERFORMANCE, "- Categories Over Budget: 1"),
])
async def test_type_specific_prompt_sections(report_type, marker):
    llm = FakeLLM(json.dumps(REPORT_JSON))
    service = AIReportService(llm, RetryPolicy(), sleep=SleepRecorder())
    rows = [txn(datetime.date(2024, 3, 2), 1200, "Rent")]
    budgets = [BudgetResponse(id=uuid.uuid4(), category="Rent", budget_amount=1000)]

    await service.generate_report(rows, budgets, options(report_type, focus_areas=["housing"]))
    assert marker in llm.prompts[0]
    assert "Focus areas: housing" in llm.prompts[0]


async def test_date_range_filters_the_analysis():
    llm = FakeLLM(json.dumps(REPORT_JSON))
    service = AIReportService(llm, RetryPolicy(), sleep=SleepRecorder())
    rows = [txn(datetime.date(2024, 3, 2), 100), txn(datetime.date(2024, 4, 2), 999)]
    march = DateRange(start_date=datetime.date(2024, 3, 1), end_date=datetime.date(2024, 3, 31))

    await service.generate_report(rows, [], options(date_range=march))
    assert "- Total Expenses: $100.00" in llm.prompts[0]


async def test_unparseable_reply_yields_error_report():
    service = AIReportService(FakeLLM("Sorry, I can't do JSON"), RetryPolicy(), sleep=SleepRecorder())
    result = await service.generate_report([], [], options())

    assert result.report.title == "Report Generation Failed"
    assert result.report.recommendations == [
        "Please try generating the report again",
        "Contact support if the issue persists",
    ]
    assert result.errors and "Invalid JSON" in result.errors[0]


async def test_upstream_failure_is_retried_then_reported():
    llm = FakeLLM(default=RuntimeError("upstream exploded"))
    sleeper = SleepRecorder()
    result = await AIReportService(llm, RetryPolicy(), sleep=sleeper).generate_report([], [], options())

    assert llm.calls == 4
    assert sleeper.delays == [1, 2, 4]
    assert result.report.title == "Report Generation Failed"
    assert result.errors == ["upstream exploded"]


def test_report_endpoint(client, auth_headers, fake_llm):
    fake_llm.default = json.dumps(REPORT_JSON)
    client.post("/api/v1/transactions", json={
        "date": "2024-03-05", "description": "Rent", "category": "Rent", "amount": 900, "type": "expense",
    }, headers=auth_headers)

    response = client.post("/api/v1/reports", json={"type": "spending-analysis"}, headers=auth_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["report"]["type"] == "spending-analysis"
    assert data["report"]["metadata"]["transactions_analyzed"] == 1
    assert data["report"]["data_range"] == {"start_date": "2024-03-05", "end_date": "2024-03-05"}

    assert client.post("/api/v1/reports", json={"type": "weekly"}, headers=auth_headers).status_code == 422


async def test_rejected_request_is_retried_like_any_failure():
    llm = FakeLLM(default=LLMError("gemini rejected the request as invalid (400)"))
    sleeper = SleepRecorder()
    result = await AIReportService(llm, RetryPolicy(), sleep=sleeper).generate_report([], [], options())

    assert llm.calls == 4
    assert sleeper.delays == [1, 2, 4]
    assert result.report.title == "Report Generation Failed"
