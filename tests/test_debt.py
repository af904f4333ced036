import datetime

import pytest

from financeai.features.debt.schemas import DebtAccount
from financeai.features.debt.service import (
    DebtPayoffService,
    add_months,
    amortize,
    calculate_debt_free_date,
    validate_debts,
)

TODAY = datetime.date(2024, 1, 15)


def debt(id, balance, rate=0.0, minimum=0.0, type="other", limit=None):
    return DebtAccount(
        id=id, name=id.title(), type=type, balance=balance,
        interest_rate=rate, minimum_payment=minimum, credit_limit=limit,
    )


def two_loans():
    return [debt("a", 1000, minimum=100), debt("b", 500, minimum=50)]


def by_name(analysis, prefix):
    return next(s for s in analysis.strategies if s.name.startswith(prefix))


def test_add_months_clamps_the_day():
    assert add_months(datetime.date(2024, 1, 31), 1) == datetime.date(2024, 2, 29)
    assert add_months(datetime.date(2024, 11, 15), 3) == datetime.date(2025, 2, 15)
    assert add_months(datetime.date(2024, 3, 10), 0) == datetime.date(2024, 3, 10)


def test_validation_clamps_and_defaults():
    validated = validate_debts([
        debt("card", 1500, rate=-3),
        debt("settled", -20, minimum=10),
        debt("loan", 800, rate=5, minimum=40),
    ])

    assert [d.id for d in validated] == ["card", "loan"]
    assert validated[0].interest_rate == 0
    assert validated[0].minimum_payment == pytest.approx(30)
    assert validated[1].minimum_payment == 40


def test_amortize_with_interest():
    months, interest = amortize(1000, 100, 12)

    assert months == 11
    assert 0 < interest < 100


def test_amortize_never_pays_off_when_payment_only_covers_interest():
    assert amortize(1000, 20, 24) == (None, None)


def test_snowball_pays_smallest_first_and_rolls_over():
    analysis = DebtPayoffService().analyze_debt_payoff(two_loans(), extra_payment=50, today=TODAY)
    snowball = by_name(analysis, "Debt Snowball")

    plans = {p.debt_id: p for p in snowball.payment_order}
    assert plans["b"].payoff_order == 1
    assert plans["b"].months_to_payoff == 5
    assert plans["b"].monthly_payment == 100
    assert plans["a"].months_to_payoff == 8
    assert plans["a"].monthly_payment == 200
    assert snowball.time_to_payoff == 8
    assert snowball.monthly_payment == 200
    assert snowball.debt_free_date == datetime.date(2024, 9, 15)


def test_comparison_against_minimum_payments():
    analysis = DebtPayoffService().analyze_debt_payoff(two_loans(), extra_payment=50, today=TODAY)

    minimum = by_name(analysis, "Minimum Payments")
    assert minimum.time_to_payoff == 10
    assert minimum.monthly_payment == 150
    assert minimum.effectiveness == "low"

    comparison = analysis.payoff_comparison
    assert comparison.current_path.time_to_payoff == 10
    assert comparison.optimized_path.strategy.startswith("Debt Avalanche")
    assert comparison.optimized_path.time_to_payoff == 8
    assert comparison.optimized_path.time_saved == 2
    assert comparison.optimized_path.total_savings == 0


def test_avalanche_saves_interest_over_snowball():
    debts = [debt("card", 3000, rate=24, minimum=90), debt("loan", 1000, rate=6, minimum=30)]
    analysis = DebtPayoffService().analyze_debt_payoff(debts, extra_payment=200, today=TODAY)

    avalanche = by_name(analysis, "Debt Avalanche")
    snowball = by_name(analysis, "Debt Snowball")
    assert [p.debt_id for p in avalanche.payment_order] == ["card", "loan"]
    assert [p.debt_id for p in snowball.payment_order] == ["loan", "card"]
    assert avalanche.total_interest_paid < snowball.total_interest_paid
    assert analysis.payoff_comparison.optimized_path.total_savings > 0


def test_unpayable_minimums_leave_the_baseline_open():
    debts = [debt("card", 1000, rate=24, minimum=20)]
    analysis = DebtPayoffService().analyze_debt_payoff(debts, extra_payment=100, today=TODAY)

    minimum = by_name(analysis, "Minimum Payments")
    assert minimum.time_to_payoff is None
    assert minimum.total_interest_paid is None
    assert minimum.debt_free_date is None
    assert calculate_debt_free_date(minimum) is None

    optimized = analysis.payoff_comparison.optimized_path
    assert optimized.time_to_payoff is not None
    assert optimized.total_savings is None
    assert optimized.time_saved is None


def test_recommendations_and_consolidation_for_card_debt():
    debts = [debt("visa", 5000, rate=22, minimum=150, type="credit_card", limit=10000)]
    analysis = DebtPayoffService().analyze_debt_payoff(debts, extra_payment=0, today=TODAY)

    titles = [r.title for r in analysis.recommendations]
    assert titles == [
        "Prioritize High-Interest Debt",
        "Reduce Credit Utilization",
        "Increase Debt Payment Capacity",
    ]
    assert analysis.recommendations[0].potential_savings == pytest.approx(500)

    options = {o.type: o for o in analysis.consolidation_options}
    assert options["personal_loan"].potential_interest_rate == pytest.approx(15.4)
    assert options["personal_loan"].estimated_savings == pytest.approx(750)
    assert options["balance_transfer"].estimated_savings == pytest.approx(1650)

    assert analysis.credit_impact.credit_utilization == pytest.approx(50)
    assert analysis.credit_impact.impact_description.startswith("High utilization")


def test_low_utilization_without_extra_recommendations():
    debts = [debt("visa", 500, rate=15, minimum=50, type="credit_card", limit=10000)]
    analysis = DebtPayoffService().analyze_debt_payoff(debts, extra_payment=150, today=TODAY)

    assert analysis.recommendations == []
    assert analysis.consolidation_options == []
    assert analysis.credit_impact.impact_description.startswith("Low utilization")


def test_no_debts_is_debt_free():
    analysis = DebtPayoffService().analyze_debt_payoff([debt("old", 0)])

    assert analysis.strategies == []
    assert analysis.recommendations[0].title == "Congratulations! You're Debt-Free"
    assert analysis.payoff_comparison.optimized_path.strategy == "None needed"


def test_debt_analysis_endpoint(client, auth_headers):
    payload = {
        "debts": [
            {"id": "a", "name": "Loan A", "balance": 1000, "interest_rate": 0, "minimum_payment": 100},
            {"id": "b", "name": "Loan B", "balance": 500, "interest_rate": 0, "minimum_payment": 50},
        ],
        "extra_payment": 50,
    }
    response = client.post("/api/v1/debt/analysis", json=payload, headers=auth_headers)

    assert response.status_code == 200
    body = response.json()
    assert len(body["strategies"]) == 3
    assert body["payoff_comparison"]["optimized_path"]["time_saved"] == 2

    assert client.post("/api/v1/debt/analysis", json={**payload, "extra_payment": -1}, headers=auth_headers).status_code == 422
    assert client.post("/api/v1/debt/analysis", json=payload).status_code == 401
