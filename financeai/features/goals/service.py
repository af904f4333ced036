import logging
from uuid import UUID
from decimal import Decimal
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from financeai.features.goals.models import Goal
from financeai.features.goals.schemas import GoalCreate, GoalUpdate

logger = logging.getLogger(__name__)

_MONEY_FIELDS = ("target_amount", "current_amount")


class GoalService:

    async def create_goal(self, db: AsyncSession, user_id: UUID, goal_data: GoalCreate) -> Goal:
        data = goal_data.model_dump(mode="json")
        data["target_date"] = goal_data.target_date
        for field in _MONEY_FIELDS:
            data[field] = Decimal(str(data[field]))

        goal = Goal(user_id=user_id, **data)
        db.add(goal)
        await db.commit()
        await db.refresh(goal)
        logger.info(f"Created goal '{goal.name}' for user {user_id}")
        return goal

    async def get_user_goals(self, db: AsyncSession, user_id: UUID) -> List[Goal]:
        stmt = select(Goal).where(Goal.user_id == user_id).order_by(Goal.target_date)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def get_goal_by_id(self, db: AsyncSession, goal_id: UUID, user_id: UUID) -> Optional[Goal]:
        stmt = select(Goal).where(Goal.id == goal_id, Goal.user_id == user_id)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def update_goal(
        self,
        db: AsyncSession,
        goal_id: UUID,
        user_id: UUID,
        goal_data: GoalUpdate
    ) -> Optional[Goal]:
        goal = await self.get_goal_by_id(db, goal_id, user_id)
        if not goal:
            return None

        update_data = goal_data.model_dump(exclude_unset=True, exclude_none=True)
        for field, value in update_data.items():
            if field in _MONEY_FIELDS:
                value = Decimal(str(value))
            elif hasattr(value, "value"):
                value = value.value
            setattr(goal, field, value)

        await db.commit()
        await db.refresh(goal)
        logger.info(f"Updated goal {goal_id}")
        return goal

    async def update_progress(
        self,
        db: AsyncSession,
        goal_id: UUID,
        user_id: UUID,
        current_amount: float
    ) -> Optional[Goal]:
        goal = await self.get_goal_by_id(db, goal_id, user_id)
        if not goal:
            return None
        goal.current_amount = Decimal(str(current_amount))
        await db.commit()
        await db.refresh(goal)
        return goal

    async def delete_goal(self, db: AsyncSession, goal_id: UUID, user_id: UUID) -> bool:
        goal = await self.get_goal_by_id(db, goal_id, user_id)
        if not goal:
            return False
        await db.delete(goal)
        await db.commit()
        logger.info(f"Deleted goal {goal_id}")
        return True
