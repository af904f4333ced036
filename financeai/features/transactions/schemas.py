import uuid
import math
import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from financeai.features.transactions.models import TransactionType


def coerce_amount(value) -> float:
    """Lenient numeric parsing for read models: bad data becomes 0, never an error."""
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(amount) or math.isinf(amount):
        return 0.0
    return amount


def strip_required_text(v: Optional[str]) -> Optional[str]:
    """Trim surrounding whitespace; a value that is only whitespace is rejected."""
    if v is None:
        return v
    v = v.strip()
    if not v:
        raise ValueError("must not be blank")
    return v


class TransactionBase(BaseModel):
    date: datetime.date
    description: str = Field(..., min_length=1, max_length=500)
    category: str = Field(..., min_length=1, max_length=100)
    amount: float = Field(..., gt=0, le=1_000_000_000)
    type: TransactionType

    @field_validator("description", "category")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return strip_required_text(v)


class TransactionCreate(TransactionBase):
    pass


class TransactionBulkCreate(BaseModel):
    transactions: List[TransactionCreate] = Field(..., min_length=1, max_length=1000)


class TransactionUpdate(BaseModel):
    date: Optional[datetime.date] = None
    description: Optional[str] = Field(None, min_length=1, max_length=500)
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    amount: Optional[float] = Field(None, gt=0, le=1_000_000_000)
    type: Optional[TransactionType] = None

    @field_validator("description", "category")
    @classmethod
    def strip_text(cls, v: Optional[str]) -> Optional[str]:
        return strip_required_text(v)


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    date: datetime.date
    description: str = ""
    category: str = "Uncategorized"
    amount: float = 0.0
    type: TransactionType

    @field_validator("amount", mode="before")
    @classmethod
    def lenient_amount(cls, v):
        return coerce_amount(v)
