import logging
from uuid import UUID
from decimal import Decimal
from typing import Iterable, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError

from financeai.features.budgets.models import Budget
from financeai.features.budgets.schemas import BudgetCreate, BudgetUpdate, BudgetStats
from financeai.features.transactions.models import Transaction, TransactionType

logger = logging.getLogger(__name__)


class DuplicateBudgetError(Exception):
    pass


class BudgetService:

    async def create_budget(
        self,
        db: AsyncSession,
        user_id: UUID,
        budget_data: BudgetCreate
    ) -> Budget:
        """Create a budget; its spent amount is computed from existing expenses."""
        budget = Budget(
            user_id=user_id,
            category=budget_data.category,
            budget_amount=Decimal(str(budget_data.budget_amount)),
            period=budget_data.period,
        )
        budget.spent_amount = await self._sum_expenses(db, user_id, budget.category)
        db.add(budget)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise DuplicateBudgetError(f"A budget for '{budget.category}' already exists")
        await db.refresh(budget)
        logger.info(f"Created budget '{budget.category}' for user {user_id}")
        return budget

    async def get_user_budgets(
        self,
        db: AsyncSession,
        user_id: UUID
    ) -> List[Budget]:
        stmt = select(Budget).where(Budget.user_id == user_id).order_by(Budget.category)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def get_budget_by_id(
        self,
        db: AsyncSession,
        budget_id: UUID,
        user_id: UUID
    ) -> Optional[Budget]:
        stmt = select(Budget).where(
            Budget.id == budget_id,
            Budget.user_id == user_id
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_budget_by_category(
        self,
        db: AsyncSession,
        user_id: UUID,
        category: str
    ) -> Optional[Budget]:
        stmt = select(Budget).where(
            Budget.user_id == user_id,
            Budget.category == category
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def update_budget(
        self,
        db: AsyncSession,
        budget_id: UUID,
        user_id: UUID,
        budget_data: BudgetUpdate
    ) -> Optional[Budget]:
        budget = await self.get_budget_by_id(db, budget_id, user_id)
        if not budget:
            return None

        update_data = budget_data.model_dump(exclude_unset=True, exclude_none=True)
        if "budget_amount" in update_data:
            update_data["budget_amount"] = Decimal(str(update_data["budget_amount"]))
        for field, value in update_data.items():
            setattr(budget, field, value)

        if "category" in update_data:
            budget.spent_amount = await self._sum_expenses(db, user_id, budget.category)

        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise DuplicateBudgetError(f"A budget for '{budget_data.category}' already exists")
        await db.refresh(budget)
        logger.info(f"Updated budget {budget_id}")
        return budget

    async def delete_budget(
        self,
        db: AsyncSession,
        budget_id: UUID,
        user_id: UUID
    ) -> bool:
        budget = await self.get_budget_by_id(db, budget_id, user_id)
        if not budget:
            return False
        await db.delete(budget)
        await db.commit()
        logger.info(f"Deleted budget {budget_id}")
        return True

    async def get_budget_stats(self, db: AsyncSession, user_id: UUID) -> BudgetStats:
        stmt = (
            select(
                func.sum(Budget.budget_amount).label("total_budget"),
                func.sum(Budget.spent_amount).label("total_spent"),
                func.count(Budget.id).label("budget_count"),
            )
            .where(Budget.user_id == user_id)
        )
        row = (await db.execute(stmt)).one()

        total_budget = float(row.total_budget or 0)
        total_spent = float(row.total_spent or 0)
        return BudgetStats(
            total_budget=total_budget,
            total_spent=total_spent,
            utilization_rate=(total_spent / total_budget) * 100 if total_budget > 0 else 0.0,
            budget_count=row.budget_count or 0,
        )

    async def get_over_budget(self, db: AsyncSession, user_id: UUID) -> List[Budget]:
        stmt = (
            select(Budget)
            .where(Budget.user_id == user_id)
            .where(Budget.spent_amount > Budget.budget_amount)
            .order_by(Budget.spent_amount.desc())
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def _sum_expenses(self, db: AsyncSession, user_id: UUID, category: str) -> Decimal:
        stmt = (
            select(func.sum(Transaction.amount))
            .where(Transaction.user_id == user_id)
            .where(Transaction.category == category)
            .where(Transaction.type == TransactionType.EXPENSE.value)
        )
        total = (await db.execute(stmt)).scalar()
        return Decimal(str(total or 0))

    async def recalculate_spent_amounts(
        self,
        db: AsyncSession,
        user_id: UUID,
        categories: Optional[Iterable[str]] = None,
        commit: bool = True
    ) -> int:
        """Recompute spent_amount from the transaction set (never patched incrementally).

        Limits the work to ``categories`` when given. Returns the number of
        budgets refreshed.
        """
        stmt = select(Budget).where(Budget.user_id == user_id)
        if categories is not None:
            wanted = {c for c in categories if c}
            if not wanted:
                return 0
            stmt = stmt.where(Budget.category.in_(wanted))

        budgets = list((await db.execute(stmt)).scalars().all())
        for budget in budgets:
            budget.spent_amount = await self._sum_expenses(db, user_id, budget.category)

        if commit and budgets:
            await db.commit()
        return len(budgets)
