from typing import Annotated
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from financeai.core.database import get_db
from financeai.features.auth.deps import get_current_user
from financeai.features.auth.schemas import CurrentUser
from financeai.features.budgets.schemas import BudgetResponse
from financeai.features.budgets.service import BudgetService
from financeai.features.reports.schemas import AIReportResponse, ReportGenerationOptions
from financeai.features.reports.service import AIReportService, get_report_service
from financeai.features.transactions.schemas import TransactionResponse
from financeai.features.transactions.service import TransactionService

router = APIRouter()


@router.post("", response_model=AIReportResponse)
async def generate_report(
    options: ReportGenerationOptions,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    report_service: Annotated[AIReportService, Depends(get_report_service)],
    txn_service: Annotated[TransactionService, Depends()],
    budget_service: Annotated[BudgetService, Depends()]
):
    """
    Generate an AI-written report over the user's data.

    A failed generation still returns 200 with the fallback report and the
    failure listed in ``errors``.
    """
    transactions = await txn_service.get_user_transactions(db, current_user.id)
    budgets = await budget_service.get_user_budgets(db, current_user.id)
    return await report_service.generate_report(
        [TransactionResponse.model_validate(t) for t in transactions],
        [BudgetResponse.model_validate(b) for b in budgets],
        options,
    )
