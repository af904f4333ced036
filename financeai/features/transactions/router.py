import datetime
from typing import Annotated, List, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from financeai.core.database import get_db
from financeai.features.auth.deps import get_current_user
from financeai.features.auth.schemas import CurrentUser
from financeai.features.transactions.models import TransactionType
from financeai.features.transactions.schemas import (
    TransactionCreate,
    TransactionBulkCreate,
    TransactionUpdate,
    TransactionResponse
)
from financeai.features.transactions.service import TransactionService

router = APIRouter()


@router.post("", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
async def create_transaction(
    txn_data: TransactionCreate,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[TransactionService, Depends()]
):
    """Create a transaction and refresh the matching budget."""
    return await service.create_transaction(db, current_user.id, txn_data)


@router.post("/bulk", response_model=List[TransactionResponse], status_code=status.HTTP_201_CREATED)
async def create_transactions_bulk(
    payload: TransactionBulkCreate,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[TransactionService, Depends()]
):
    return await service.create_transactions(db, current_user.id, payload.transactions)


@router.get("", response_model=List[TransactionResponse])
async def list_transactions(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[TransactionService, Depends()],
    start_date: Optional[datetime.date] = Query(None),
    end_date: Optional[datetime.date] = Query(None),
    category: Optional[str] = Query(None),
    type: Optional[TransactionType] = Query(None, description="income or expense"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0)
):
    """List the current user's transactions, newest first."""
    return await service.get_user_transactions(
        db, current_user.id,
        start_date=start_date,
        end_date=end_date,
        category=category,
        txn_type=type,
        limit=limit,
        offset=offset
    )


@router.get("/{txn_id}", response_model=TransactionResponse)
async def get_transaction(
    txn_id: UUID,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[TransactionService, Depends()]
):
    txn = await service.get_transaction_by_id(db, txn_id, current_user.id)
    if not txn:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Transaction not found")
    return txn


@router.put("/{txn_id}", response_model=TransactionResponse)
async def update_transaction(
    txn_id: UUID,
    txn_data: TransactionUpdate,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[TransactionService, Depends()]
):
    txn = await service.update_transaction(db, txn_id, current_user.id, txn_data)
    if not txn:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Transaction not found")
    return txn


@router.delete("/{txn_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_transaction(
    txn_id: UUID,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[TransactionService, Depends()]
):
    deleted = await service.delete_transaction(db, txn_id, current_user.id)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Transaction not found")
