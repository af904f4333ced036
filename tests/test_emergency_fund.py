import uuid
import datetime

import pytest

from financeai.features.emergency_fund.service import (
    EmergencyFundService,
    assess_risk,
    income_stability,
    savings_timeline,
    suggested_monthly_savings,
    target_months,
)
from financeai.features.transactions.schemas import TransactionResponse


def txn(date, amount, category="Food", type="expense"):
    return TransactionResponse(
        id=uuid.uuid4(),
        date=datetime.date.fromisoformat(date),
        description=category,
        category=category,
        amount=amount,
        type=type,
    )


def salaries(*amounts):
    return [txn(f"2024-0{i + 1}-01", amount, "Salary", "income") for i, amount in enumerate(amounts)]


def test_income_stability_from_monthly_totals():
    assert income_stability(salaries(3000, 3000, 3000)) == "stable"
    assert income_stability(salaries(1000, 5000, 1000)) == "volatile"
    assert income_stability(salaries(3000, 3000)) == "moderate"


def test_neutral_profile_targets_six_months():
    risk = assess_risk([])

    assert risk.overall_risk == "medium"
    assert risk.factors == []
    assert target_months(risk) == 6


def test_stable_income_lowers_the_target():
    risk = assess_risk(salaries(3000, 3000, 3000))

    assert risk.risk_score == pytest.approx(0.3)
    assert risk.overall_risk == "low"
    assert target_months(risk) == 5


def test_stable_job_in_stable_industry():
    risk = assess_risk([], job_type="stable", industry="Public Healthcare")

    assert risk.job_security == "high"
    assert [f.factor for f in risk.factors] == ["Job Security", "Stable Industry"]
    assert risk.overall_risk == "low"


def test_freelancer_with_dependents_is_capped_at_twelve_months():
    risk = assess_risk([], dependents=3, job_type="freelance", industry="retail")

    assert risk.overall_risk == "high"
    assert risk.job_security == "low"
    assert target_months(risk, "freelance") == 12
    assert target_months(assess_risk([], job_type="freelance"), "freelance") == 11


def test_suggested_monthly_savings():
    assert suggested_monthly_savings(5000, 3000, 12000) == pytest.approx(400)
    assert suggested_monthly_savings(1000, 1000, 12000) == 50
    assert suggested_monthly_savings(9000, 1000, 2400) == pytest.approx(100)


def test_timeline_milestones():
    points = savings_timeline(0, 12000, 500)
    assert [p.months for p in points] == [1, 3, 6, 12, 18, 24]
    assert points[-1].amount == 12000
    assert points[-1].description == "Emergency fund complete!"

    short = savings_timeline(0, 1000, 300)
    assert [p.months for p in short] == [1, 3, 4]
    assert short[-1].description == "Emergency fund target reached!"

    assert savings_timeline(1000, 800, 100)[0].description == "Emergency fund is fully funded!"
    assert savings_timeline(0, 800, 0)[0].description == "Set a monthly savings goal to see timeline"


def test_recommendation_messages_follow_progress():
    service = EmergencyFundService()
    risk = assess_risk([])

    empty = service.recommendation(5000, 2000, 0, risk)
    assert empty.recommended_amount == 12000
    assert empty.months_covered == 0
    assert "$12,000.00" in empty.custom_recommendation

    nearly = service.recommendation(5000, 2000, 9000, risk)
    assert nearly.progress_percentage == 75
    assert nearly.months_covered == 4.5
    assert nearly.custom_recommendation.startswith("You're almost there")

    funded = service.recommendation(5000, 2000, 15000, risk)
    assert funded.progress_percentage == 100
    assert funded.custom_recommendation.startswith("Excellent")


def test_strategies_by_saving_pace():
    service = EmergencyFundService()
    recommendation = service.recommendation(5000, 2000, 0, assess_risk([]))

    strategies = service.strategies(recommendation, 5000)
    assert [s.time_to_target for s in strategies] == [120, 48, 24]
    assert [m.month for m in strategies[2].milestones] == [6, 12, 18, 24]

    funded = service.recommendation(5000, 2000, 20000, assess_risk([]))
    assert [s.strategy for s in service.strategies(funded, 5000)] == ["Maintain Current Fund"]
    assert service.strategies(recommendation, 0) == []


def test_scenarios_depend_on_categories_and_job():
    scenarios = EmergencyFundService().scenarios([txn("2024-01-01", 40, "Gas")], 2000, "freelance")

    assert [s.scenario for s in scenarios] == [
        "Job Loss",
        "Medical Emergency",
        "Major Car Repair",
        "Economic Downturn",
    ]
    assert scenarios[0].probability == "high"
    assert scenarios[0].estimated_cost == 8000
    assert scenarios[-1].estimated_cost == 12000


def test_emergency_fund_endpoint_uses_goal_savings(client, auth_headers):
    client.post("/api/v1/transactions", json={
        "date": "2024-01-01", "description": "Rent", "category": "Home", "amount": 1500, "type": "expense",
    }, headers=auth_headers)
    client.post("/api/v1/goals", json={
        "name": "Rainy day", "type": "emergency_fund", "target_amount": 9000,
        "current_amount": 1500, "target_date": "2030-01-01",
    }, headers=auth_headers)

    response = client.get("/api/v1/emergency-fund", headers=auth_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["recommendation"]["current_amount"] == 1500
    assert body["recommendation"]["recommended_amount"] == 9000
    assert "Home Repair" in [s["scenario"] for s in body["scenarios"]]

    explicit = client.get(
        "/api/v1/emergency-fund", params={"current_amount": 0, "job_type": "contract"}, headers=auth_headers
    ).json()
    assert explicit["recommendation"]["current_amount"] == 0
    assert explicit["risk_assessment"]["job_security"] == "medium"

    assert client.get("/api/v1/emergency-fund", params={"job_type": "pirate"}, headers=auth_headers).status_code == 422
