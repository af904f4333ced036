"""
Financial context aggregation.

Pure functions over already-fetched, already user-scoped records. Nothing
here performs I/O or raises on malformed amounts: a bad amount counts as 0 so
the assistant stays usable with partially broken data.
"""
import statistics
from typing import Dict, List, Sequence, Tuple

from financeai.features.context.schemas import BudgetPerformance, FinancialContext
from financeai.features.transactions.models import TransactionType
from financeai.features.transactions.schemas import TransactionResponse, coerce_amount
from financeai.features.budgets.schemas import BudgetResponse

RECENT_TRANSACTIONS_LIMIT = 10
DAYS_PER_MONTH = 30


def is_type(txn, txn_type: TransactionType) -> bool:
    value = getattr(txn.type, "value", txn.type)
    return value == txn_type.value


def sum_by_type(transactions: Sequence[TransactionResponse], txn_type: TransactionType) -> float:
    return sum(coerce_amount(t.amount) for t in transactions if is_type(t, txn_type))


def calculate_category_breakdown(transactions: Sequence[TransactionResponse]) -> Dict[str, float]:
    """Expense totals per category. Keys are used verbatim, no normalization."""
    breakdown: Dict[str, float] = {}
    for t in transactions:
        if is_type(t, TransactionType.EXPENSE):
            breakdown[t.category] = breakdown.get(t.category, 0.0) + coerce_amount(t.amount)
    return breakdown


def top_categories(breakdown: Dict[str, float], limit: int = 5) -> List[Tuple[str, float]]:
    """Largest categories first; equal amounts keep their encounter order."""
    return sorted(breakdown.items(), key=lambda item: item[1], reverse=True)[:limit]


def utilization(spent: float, budgeted: float) -> float:
    return (spent / budgeted) * 100 if budgeted > 0 else 0.0


def calculate_budget_performance(
    budgets: Sequence[BudgetResponse],
    transactions: Sequence[TransactionResponse]
) -> List[BudgetPerformance]:
    performance = []
    for budget in budgets:
        spent = sum(
            coerce_amount(t.amount)
            for t in transactions
            if is_type(t, TransactionType.EXPENSE) and t.category == budget.category
        )
        budgeted = coerce_amount(budget.budget_amount)
        performance.append(BudgetPerformance(
            category=budget.category,
            budgeted=budgeted,
            spent=spent,
            percentage_used=utilization(spent, budgeted),
        ))
    return performance


def build_financial_context(
    transactions: Sequence[TransactionResponse],
    budgets: Sequence[BudgetResponse]
) -> FinancialContext:
    total_income = sum_by_type(transactions, TransactionType.INCOME)
    total_expenses = sum_by_type(transactions, TransactionType.EXPENSE)
    net_income = total_income - total_expenses
    savings_rate = (net_income / total_income) * 100 if total_income > 0 else 0.0

    recent = sorted(transactions, key=lambda t: t.date, reverse=True)[:RECENT_TRANSACTIONS_LIMIT]

    return FinancialContext(
        transactions=list(transactions),
        budgets=list(budgets),
        total_income=total_income,
        total_expenses=total_expenses,
        net_income=net_income,
        savings_rate=savings_rate,
        category_breakdown=calculate_category_breakdown(transactions),
        recent_transactions=recent,
        budget_performance=calculate_budget_performance(budgets, transactions),
    )


def months_span(transactions: Sequence[TransactionResponse]) -> float:
    """Months covered by the records, in 30-day months and never less than 1."""
    if not transactions:
        return 1.0
    dates = [t.date for t in transactions]
    return max((max(dates) - min(dates)).days / DAYS_PER_MONTH, 1.0)


def of_type(transactions: Sequence[TransactionResponse], txn_type: TransactionType) -> List[TransactionResponse]:
    return [t for t in transactions if is_type(t, txn_type)]


def monthly_average(transactions: Sequence[TransactionResponse], txn_type: TransactionType) -> float:
    """Average monthly total of one type over the span those records cover."""
    selected = of_type(transactions, txn_type)
    if not selected:
        return 0.0
    return sum(coerce_amount(t.amount) for t in selected) / months_span(selected)


def totals_by_month(transactions: Sequence[TransactionResponse]) -> Dict[str, float]:
    """Summed amounts per calendar month (``YYYY-MM``), oldest month first."""
    totals: Dict[str, float] = {}
    for t in sorted(transactions, key=lambda t: t.date):
        key = t.date.strftime("%Y-%m")
        totals[key] = totals.get(key, 0.0) + coerce_amount(t.amount)
    return totals


def coefficient_of_variation(values: Sequence[float]) -> float:
    """Population standard deviation over the mean; 0 when the mean is not positive."""
    if not values:
        return 0.0
    mean = statistics.fmean(values)
    if mean <= 0:
        return 0.0
    return statistics.pstdev(values) / mean
