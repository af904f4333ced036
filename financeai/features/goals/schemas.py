import uuid
import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, computed_field

from financeai.features.goals.models import GoalType, GoalPriority


class GoalBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    type: GoalType = GoalType.SAVINGS
    target_amount: float = Field(..., gt=0)
    current_amount: float = Field(0, ge=0)
    target_date: datetime.date
    priority: GoalPriority = GoalPriority.MEDIUM
    category: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None


class GoalCreate(GoalBase):
    pass


class GoalUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    type: Optional[GoalType] = None
    target_amount: Optional[float] = Field(None, gt=0)
    current_amount: Optional[float] = Field(None, ge=0)
    target_date: Optional[datetime.date] = None
    priority: Optional[GoalPriority] = None
    category: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None


class GoalProgressUpdate(BaseModel):
    current_amount: float = Field(..., ge=0)


class GoalResponse(GoalBase):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    created_at: Optional[datetime.datetime] = None
    updated_at: Optional[datetime.datetime] = None

    @computed_field
    @property
    def progress_percentage(self) -> float:
        if self.target_amount <= 0:
            return 0.0
        return round(min(self.current_amount / self.target_amount * 100, 100.0), 2)
