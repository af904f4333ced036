import uuid
from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from financeai.features.transactions.schemas import coerce_amount, strip_required_text

BudgetPeriod = Literal["weekly", "monthly", "quarterly", "yearly"]


class BudgetBase(BaseModel):
    category: str = Field(..., min_length=1, max_length=100)
    budget_amount: float = Field(..., gt=0, le=1_000_000_000)
    period: BudgetPeriod = "monthly"

    @field_validator("category")
    @classmethod
    def strip_category(cls, v: str) -> str:
        return strip_required_text(v)


class BudgetCreate(BudgetBase):
    pass


class BudgetUpdate(BaseModel):
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    budget_amount: Optional[float] = Field(None, gt=0, le=1_000_000_000)
    period: Optional[BudgetPeriod] = None

    @field_validator("category")
    @classmethod
    def strip_category(cls, v: Optional[str]) -> Optional[str]:
        return strip_required_text(v)


class BudgetResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    category: str
    budget_amount: float = 0.0
    spent_amount: float = 0.0
    period: str = "monthly"

    @field_validator("budget_amount", "spent_amount", mode="before")
    @classmethod
    def lenient_amount(cls, v):
        return coerce_amount(v)


class BudgetStats(BaseModel):
    total_budget: float
    total_spent: float
    utilization_rate: float
    budget_count: int
