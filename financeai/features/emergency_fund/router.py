from typing import Annotated, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from financeai.core.database import get_db
from financeai.features.auth.deps import get_current_user
from financeai.features.auth.schemas import CurrentUser
from financeai.features.emergency_fund.schemas import EmergencyFundAnalysis, JobType
from financeai.features.emergency_fund.service import EmergencyFundService
from financeai.features.goals.models import GoalType
from financeai.features.goals.service import GoalService
from financeai.features.transactions.service import TransactionService

router = APIRouter()


@router.get("", response_model=EmergencyFundAnalysis)
async def get_emergency_fund_analysis(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    txn_service: Annotated[TransactionService, Depends()],
    goal_service: Annotated[GoalService, Depends()],
    service: Annotated[EmergencyFundService, Depends()],
    current_amount: Optional[float] = Query(None, ge=0, description="Defaults to the saved amount of emergency fund goals"),
    dependents: int = Query(0, ge=0, le=20),
    job_type: Optional[JobType] = Query(None),
    industry: Optional[str] = Query(None, max_length=100)
):
    """Recommended fund size, risk profile, saving paces and emergency scenarios."""
    transactions = await txn_service.list_for_analysis(db, current_user.id)
    if current_amount is None:
        goals = await goal_service.get_user_goals(db, current_user.id)
        current_amount = float(sum(g.current_amount for g in goals if g.type == GoalType.EMERGENCY_FUND.value))

    return service.analyze(
        transactions,
        current_amount=current_amount,
        dependents=dependents,
        job_type=job_type,
        industry=industry,
    )
