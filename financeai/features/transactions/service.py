import logging
import datetime
from uuid import UUID
from decimal import Decimal
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from financeai.features.transactions.models import Transaction, TransactionType
from financeai.features.transactions.schemas import TransactionCreate, TransactionResponse, TransactionUpdate
from financeai.features.budgets.service import BudgetService

logger = logging.getLogger(__name__)


class TransactionService:
    def __init__(self):
        self.budget_service = BudgetService()

    def _build(self, user_id: UUID, data: TransactionCreate) -> Transaction:
        return Transaction(
            user_id=user_id,
            date=data.date,
            description=data.description,
            category=data.category,
            amount=Decimal(str(data.amount)),
            type=data.type.value,
        )

    async def _commit_with_budget_refresh(self, db: AsyncSession, user_id: UUID, categories: set) -> None:
        # Flush first so the recomputation sees the pending rows
        await db.flush()
        await self.budget_service.recalculate_spent_amounts(db, user_id, categories, commit=False)
        await db.commit()

    async def create_transaction(
        self,
        db: AsyncSession,
        user_id: UUID,
        txn_data: TransactionCreate
    ) -> Transaction:
        txn = self._build(user_id, txn_data)
        db.add(txn)
        await self._commit_with_budget_refresh(db, user_id, {txn.category})
        await db.refresh(txn)
        logger.info(f"Created {txn.type} transaction {txn.id} for user {user_id}")
        return txn

    async def create_transactions(
        self,
        db: AsyncSession,
        user_id: UUID,
        items: List[TransactionCreate]
    ) -> List[Transaction]:
        """Bulk insert (used by statement import)."""
        txns = [self._build(user_id, item) for item in items]
        db.add_all(txns)
        await self._commit_with_budget_refresh(db, user_id, {t.category for t in txns})
        for txn in txns:
            await db.refresh(txn)
        logger.info(f"Bulk created {len(txns)} transactions for user {user_id}")
        return txns

    async def get_user_transactions(
        self,
        db: AsyncSession,
        user_id: UUID,
        start_date: Optional[datetime.date] = None,
        end_date: Optional[datetime.date] = None,
        category: Optional[str] = None,
        txn_type: Optional[TransactionType] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> List[Transaction]:
        """Transactions newest first, optionally filtered."""
        stmt = select(Transaction).where(Transaction.user_id == user_id)

        if start_date:
            stmt = stmt.where(Transaction.date >= start_date)
        if end_date:
            stmt = stmt.where(Transaction.date <= end_date)
        if category:
            stmt = stmt.where(Transaction.category == category)
        if txn_type:
            stmt = stmt.where(Transaction.type == txn_type.value)

        stmt = stmt.order_by(Transaction.date.desc(), Transaction.created_at.desc())
        if offset:
            stmt = stmt.offset(offset)
        if limit:
            stmt = stmt.limit(limit)

        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def list_for_analysis(self, db: AsyncSession, user_id: UUID) -> List[TransactionResponse]:
        """All of the user's transactions as read models, for the aggregation services."""
        rows = await self.get_user_transactions(db, user_id)
        return [TransactionResponse.model_validate(t) for t in rows]

    async def get_transaction_by_id(
        self,
        db: AsyncSession,
        txn_id: UUID,
        user_id: UUID
    ) -> Optional[Transaction]:
        stmt = select(Transaction).where(
            Transaction.id == txn_id,
            Transaction.user_id == user_id
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def update_transaction(
        self,
        db: AsyncSession,
        txn_id: UUID,
        user_id: UUID,
        txn_data: TransactionUpdate
    ) -> Optional[Transaction]:
        txn = await self.get_transaction_by_id(db, txn_id, user_id)
        if not txn:
            return None

        # Both the old and the new category may need their budgets refreshed
        affected = {txn.category}
        update_data = txn_data.model_dump(exclude_unset=True, exclude_none=True)
        if "amount" in update_data:
            update_data["amount"] = Decimal(str(update_data["amount"]))
        if "type" in update_data:
            update_data["type"] = update_data["type"].value
        for field, value in update_data.items():
            setattr(txn, field, value)
        affected.add(txn.category)

        await self._commit_with_budget_refresh(db, user_id, affected)
        await db.refresh(txn)
        logger.info(f"Updated transaction {txn_id}")
        return txn

    async def delete_transaction(
        self,
        db: AsyncSession,
        txn_id: UUID,
        user_id: UUID
    ) -> bool:
        txn = await self.get_transaction_by_id(db, txn_id, user_id)
        if not txn:
            return False
        category = txn.category
        await db.delete(txn)
        await self._commit_with_budget_refresh(db, user_id, {category})
        logger.info(f"Deleted transaction {txn_id}")
        return True
