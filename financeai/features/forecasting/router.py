from typing import Annotated
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from financeai.core.database import get_db
from financeai.features.auth.deps import get_current_user
from financeai.features.auth.schemas import CurrentUser
from financeai.features.forecasting.schemas import CashFlowForecast
from financeai.features.forecasting.service import CashFlowForecastingService
from financeai.features.transactions.service import TransactionService

router = APIRouter()


@router.get("/cash-flow", response_model=CashFlowForecast)
async def get_cash_flow_forecast(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    txn_service: Annotated[TransactionService, Depends()],
    service: Annotated[CashFlowForecastingService, Depends()],
    current_balance: float = Query(0.0, description="Balance to project forward from"),
    days: int = Query(90, ge=1, le=365)
):
    """Daily income, expense and balance projection with insights and warnings."""
    transactions = await txn_service.list_for_analysis(db, current_user.id)
    return service.generate_forecast(transactions, current_balance=current_balance, forecast_days=days)
