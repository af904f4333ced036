from typing import Dict, List
from pydantic import BaseModel

from financeai.features.transactions.schemas import TransactionResponse
from financeai.features.budgets.schemas import BudgetResponse


class BudgetPerformance(BaseModel):
    category: str
    budgeted: float
    spent: float
    percentage_used: float


class FinancialContext(BaseModel):
    """Per-request aggregate fed into AI prompts. Never persisted."""

    transactions: List[TransactionResponse] = []
    budgets: List[BudgetResponse] = []
    total_income: float = 0.0
    total_expenses: float = 0.0
    net_income: float = 0.0
    savings_rate: float = 0.0
    category_breakdown: Dict[str, float] = {}
    recent_transactions: List[TransactionResponse] = []
    budget_performance: List[BudgetPerformance] = []
