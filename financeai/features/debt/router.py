from typing import Annotated
from fastapi import APIRouter, Depends
from financeai.features.auth.deps import get_current_user
from financeai.features.auth.schemas import CurrentUser
from financeai.features.debt.schemas import DebtAnalysisRequest, DebtPayoffAnalysis
from financeai.features.debt.service import DebtPayoffService

router = APIRouter()


@router.post("/analysis", response_model=DebtPayoffAnalysis)
async def analyze_debt_payoff(
    payload: DebtAnalysisRequest,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    service: Annotated[DebtPayoffService, Depends()]
):
    """Compare avalanche, snowball and minimum-only payoff for the submitted debts."""
    return service.analyze_debt_payoff(payload.debts, payload.extra_payment)
