from typing import Annotated, List
from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from financeai.core.database import get_db
from financeai.features.auth.deps import get_current_user
from financeai.features.auth.schemas import CurrentUser
from financeai.features.budgets.schemas import (
    BudgetCreate,
    BudgetUpdate,
    BudgetResponse,
    BudgetStats
)
from financeai.features.budgets.service import BudgetService, DuplicateBudgetError

router = APIRouter()


@router.post("", response_model=BudgetResponse, status_code=status.HTTP_201_CREATED)
async def create_budget(
    budget_data: BudgetCreate,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BudgetService, Depends()]
):
    try:
        return await service.create_budget(db, current_user.id, budget_data)
    except DuplicateBudgetError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.get("", response_model=List[BudgetResponse])
async def list_budgets(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BudgetService, Depends()]
):
    return await service.get_user_budgets(db, current_user.id)


@router.get("/stats", response_model=BudgetStats)
async def get_budget_stats(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BudgetService, Depends()]
):
    """Total budgeted vs spent across all categories."""
    return await service.get_budget_stats(db, current_user.id)


@router.get("/over-budget", response_model=List[BudgetResponse])
async def list_over_budget(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BudgetService, Depends()]
):
    return await service.get_over_budget(db, current_user.id)


@router.post("/refresh")
async def refresh_spent_amounts(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BudgetService, Depends()]
):
    """Recompute every budget's spent amount from the transaction set."""
    refreshed = await service.recalculate_spent_amounts(db, current_user.id)
    return {"status": "success", "refreshed": refreshed}


@router.get("/{budget_id}", response_model=BudgetResponse)
async def get_budget(
    budget_id: UUID,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BudgetService, Depends()]
):
    budget = await service.get_budget_by_id(db, budget_id, current_user.id)
    if not budget:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Budget not found")
    return budget


@router.put("/{budget_id}", response_model=BudgetResponse)
async def update_budget(
    budget_id: UUID,
    budget_data: BudgetUpdate,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BudgetService, Depends()]
):
    try:
        budget = await service.update_budget(db, budget_id, current_user.id, budget_data)
    except DuplicateBudgetError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if not budget:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Budget not found")
    return budget


@router.delete("/{budget_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_budget(
    budget_id: UUID,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BudgetService, Depends()]
):
    if not await service.delete_budget(db, budget_id, current_user.id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Budget not found")
