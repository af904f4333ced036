from typing import Annotated, List
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from financeai.core.database import get_db
from financeai.features.auth.deps import get_current_user
from financeai.features.auth.schemas import CurrentUser
from financeai.features.context.service import monthly_average
from financeai.features.goals.schemas import GoalResponse
from financeai.features.goals.service import GoalService
from financeai.features.savings.schemas import SavingsChallenge, SavingsOptimization
from financeai.features.savings.service import SavingsOptimizationService
from financeai.features.transactions.models import TransactionType
from financeai.features.transactions.service import TransactionService

router = APIRouter()


@router.get("/optimization", response_model=SavingsOptimization)
async def get_savings_optimization(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    txn_service: Annotated[TransactionService, Depends()],
    goal_service: Annotated[GoalService, Depends()],
    service: Annotated[SavingsOptimizationService, Depends()],
    current_savings: float = Query(0.0, ge=0, description="Money already set aside")
):
    """Savings rate analysis, cut opportunities and an allocation across the open goals."""
    transactions = await txn_service.list_for_analysis(db, current_user.id)
    goals = [GoalResponse.model_validate(g) for g in await goal_service.get_user_goals(db, current_user.id)]
    return service.optimize_savings(transactions, current_savings=current_savings, goals=goals)


@router.get("/challenges", response_model=List[SavingsChallenge])
async def get_savings_challenges(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    txn_service: Annotated[TransactionService, Depends()],
    service: Annotated[SavingsOptimizationService, Depends()]
):
    transactions = await txn_service.list_for_analysis(db, current_user.id)
    return service.generate_savings_challenges(monthly_average(transactions, TransactionType.INCOME))
