import uuid
import datetime

import pytest

from financeai.features.goals.schemas import GoalResponse
from financeai.features.savings.service import (
    SavingsOptimizationService,
    compound_interest_projection,
    identify_optimization_opportunities,
    normalize_category,
    recommended_savings_rate,
)
from financeai.features.transactions.schemas import TransactionResponse

TODAY = datetime.date(2024, 1, 1)


def txn(date, amount, category="Food", type="expense", description="item"):
    return TransactionResponse(
        id=uuid.uuid4(),
        date=datetime.date.fromisoformat(date),
        description=description,
        category=category,
        amount=amount,
        type=type,
    )


def goal(name, target, current, target_date, type="savings", priority="medium"):
    return GoalResponse(
        id=uuid.uuid4(),
        name=name,
        type=type,
        target_amount=target,
        current_amount=current,
        target_date=datetime.date.fromisoformat(target_date),
        priority=priority,
    )


def test_category_aliases():
    assert normalize_category("Food & Drink") == "dining"
    assert normalize_category("Software") == "subscriptions"
    assert normalize_category("Gas Station") == "transportation"
    assert normalize_category("Internet") == "utilities"
    assert normalize_category("Rent") == "rent"


def test_opportunities_above_thresholds_sorted_by_savings():
    opportunities = identify_optimization_opportunities([
        txn("2024-01-01", 400, "Restaurant"),
        txn("2024-01-01", 60, "Streaming"),
        txn("2024-01-01", 900, "Rent"),
    ])

    assert [o.category for o in opportunities] == ["Dining Out", "Subscriptions"]
    assert opportunities[0].potential_savings == pytest.approx(120)
    assert opportunities[0].recommended_spending == pytest.approx(280)
    assert opportunities[1].potential_savings == pytest.approx(24)
    assert opportunities[1].effort == "low"


def test_spending_below_threshold_is_not_an_opportunity():
    assert identify_optimization_opportunities([txn("2024-01-01", 250, "Dining")]) == []


def test_recommended_rate_bounds():
    assert recommended_savings_rate(0, 100) == 0.10
    assert recommended_savings_rate(5000, 4800, today=TODAY) == 0.10
    assert recommended_savings_rate(5000, 4000, today=TODAY) == pytest.approx(0.16)
    assert recommended_savings_rate(5000, 1000, today=TODAY) == pytest.approx(0.20)


def test_goal_due_within_two_years_raises_the_rate():
    soon = goal("Car", 5000, 1000, "2025-01-01")
    done = goal("Laptop", 1000, 1000, "2024-06-01")

    assert recommended_savings_rate(5000, 4000, [soon], today=TODAY) == pytest.approx(0.192)
    assert recommended_savings_rate(5000, 4000, [done], today=TODAY) == pytest.approx(0.16)


def test_compound_projection_without_interest():
    projection = compound_interest_projection(0, 100, annual_interest_rate=0)

    assert len(projection.projections) == 30
    assert projection.projections[0].balance == pytest.approx(1200)
    assert projection.projections[-1].total_contributions == pytest.approx(36000)
    assert projection.projections[-1].interest_earned == 0


def test_compound_projection_accrues_interest():
    first_year = compound_interest_projection(1000, 100, annual_interest_rate=0.12, years=1).projections[0]

    assert first_year.total_contributions == pytest.approx(2200)
    assert first_year.interest_earned > 0
    assert first_year.balance == pytest.approx(first_year.total_contributions + first_year.interest_earned)


def test_allocation_splits_goals_by_horizon():
    goals = [
        goal("Vacation", 2000, 500, "2024-07-01", priority="high"),
        goal("House", 50000, 0, "2030-01-01"),
        goal("Rainy day", 10000, 100, "2024-12-01", type="emergency_fund"),
        goal("Bike", 800, 800, "2024-05-01"),
    ]

    allocation = SavingsOptimizationService().build_allocation(5000, 3000, 6000, goals, TODAY)

    fund = allocation.emergency_fund
    assert fund.target_amount == 18000
    assert fund.monthly_allocation == pytest.approx(800)
    assert fund.current_amount == 6000
    assert fund.time_to_complete == 15

    assert [g.goal_name for g in allocation.short_term_goals] == ["Vacation"]
    vacation = allocation.short_term_goals[0]
    assert vacation.time_to_complete == 7
    assert vacation.monthly_allocation == pytest.approx(1500 / 7)
    assert vacation.priority == 2
    assert [g.goal_name for g in allocation.long_term_goals] == ["House"]


def test_emergency_allocation_without_surplus():
    fund = SavingsOptimizationService().build_allocation(2000, 2500, 0, [], TODAY).emergency_fund

    assert fund.monthly_allocation == 0
    assert fund.time_to_complete == 0


def test_optimize_savings_end_to_end():
    transactions = [
        txn("2024-01-01", 5000, "Salary", "income"),
        txn("2024-03-01", 5000, "Salary", "income"),
        txn("2024-01-05", 400, "Restaurant"),
        txn("2024-03-05", 400, "Restaurant"),
    ]

    result = SavingsOptimizationService().optimize_savings(transactions, current_savings=100, today=TODAY)

    assert result.monthly_income == pytest.approx(5000)
    assert result.monthly_expenses == pytest.approx(400)
    assert result.current_savings_rate == pytest.approx(0.92)
    assert result.recommended_savings_rate == pytest.approx(0.20)
    assert [o.category for o in result.optimization_opportunities] == ["Dining Out"]
    assert result.automation_strategies[0].potential_savings == pytest.approx(500)
    assert result.compound_interest_projection.monthly_contribution == pytest.approx(1000)

    months = result.monthly_recommendations
    assert [m.month for m in months][:2] == ["January", "February"]
    assert len(months) == 12
    assert months[0].focus_area == "Dining Out"
    assert [months[i].difficulty for i in (0, 3, 11)] == ["easy", "moderate", "challenging"]
    assert months[0].metrics.goal_completion_progress == 0


def test_recommendations_fall_back_to_general_savings():
    result = SavingsOptimizationService().optimize_savings([], today=TODAY)

    assert result.current_savings_rate == 0
    assert result.recommended_savings_rate == 0.10
    assert {m.focus_area for m in result.monthly_recommendations} == {"General Savings"}
    assert result.monthly_recommendations[0].expected_savings == 100


def test_challenges_scale_with_income():
    weekly, no_spend = SavingsOptimizationService().generate_savings_challenges(4000)

    assert weekly.target_savings == 1378
    assert [m.target for m in weekly.milestones] == [91, 351, 780, 1378]
    assert no_spend.target_savings == pytest.approx(600)
    assert no_spend.milestones[-1].target == pytest.approx(600)
    assert no_spend.difficulty == "intermediate"


def test_savings_endpoints(client, auth_headers):
    client.post("/api/v1/transactions/bulk", json={"transactions": [
        {"date": "2024-01-01", "description": "Pay", "category": "Salary", "amount": 4000, "type": "income"},
        {"date": "2024-01-03", "description": "Dinner", "category": "Dining", "amount": 450, "type": "expense"},
    ]}, headers=auth_headers)
    client.post("/api/v1/goals", json={
        "name": "Trip", "type": "savings", "target_amount": 3000, "current_amount": 300, "target_date": "2099-01-01",
    }, headers=auth_headers)

    response = client.get("/api/v1/savings/optimization", params={"current_savings": 250}, headers=auth_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["monthly_income"] == 4000
    assert body["optimization_opportunities"][0]["category"] == "Dining Out"
    assert body["savings_allocation"]["emergency_fund"]["current_amount"] == 250
    assert [g["goal_name"] for g in body["savings_allocation"]["long_term_goals"]] == ["Trip"]

    challenges = client.get("/api/v1/savings/challenges", headers=auth_headers).json()
    assert challenges[1]["target_savings"] == pytest.approx(600)

    assert client.get("/api/v1/savings/optimization", params={"current_savings": -1}, headers=auth_headers).status_code == 422
    assert client.get("/api/v1/savings/optimization").status_code == 401
