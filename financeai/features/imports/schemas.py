import math
import datetime
from typing import Dict, List, Literal, Optional
from pydantic import BaseModel, Field, field_validator

from financeai.features.transactions.models import TransactionType
from financeai.features.transactions.schemas import TransactionCreate, TransactionResponse

DateFormat = Literal["auto", "MM/DD/YYYY", "DD/MM/YYYY", "YYYY-MM-DD"]


class ImportOptions(BaseModel):
    skip_duplicates: bool = False
    date_format: DateFormat = "auto"
    currency: str = Field("USD", min_length=3, max_length=3)
    confidence_threshold: float = Field(0.0, ge=0.0, le=1.0)
    category_mapping: Dict[str, str] = {}


class ParsedTransaction(BaseModel):
    """One row as returned by the model, before it becomes an import candidate."""

    date: datetime.date
    description: str = Field(..., min_length=1, max_length=500)
    amount: float
    category: str = "Uncategorized"
    type: TransactionType
    confidence: float = Field(1.0, ge=0.0, le=1.0)

    @field_validator("description", "category", mode="before")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("category")
    @classmethod
    def default_category(cls, v: str) -> str:
        return v or "Uncategorized"

    @field_validator("type", mode="before")
    @classmethod
    def lower_type(cls, v):
        return v.lower().strip() if isinstance(v, str) else v

    @field_validator("amount")
    @classmethod
    def absolute_amount(cls, v: float) -> float:
        if math.isnan(v) or math.isinf(v):
            raise ValueError("amount is not a finite number")
        v = abs(v)
        if v == 0:
            raise ValueError("amount must not be zero")
        return v


class ImportedTransaction(BaseModel):
    id: str
    date: datetime.date
    description: str
    amount: float
    category: str
    type: TransactionType
    confidence: Optional[float] = None


class ImportSummary(BaseModel):
    total_processed: int = 1
    successfully_parsed: int = 0
    failed: int = 0
    duplicates_found: int = 0


class ImportResult(BaseModel):
    transactions: List[ImportedTransaction] = []
    errors: List[str] = []
    warnings: List[str] = []
    summary: ImportSummary = Field(default_factory=ImportSummary)


class ValidationResult(BaseModel):
    valid: List[ImportedTransaction] = []
    duplicates: List[ImportedTransaction] = []
    conflicts: List[ImportedTransaction] = []
    errors: List[str] = []
    warnings: List[str] = []


class TextImportRequest(BaseModel):
    text: str = Field(..., min_length=1)
    options: ImportOptions = Field(default_factory=ImportOptions)


class ImportCommitRequest(BaseModel):
    transactions: List[TransactionCreate] = Field(..., min_length=1, max_length=1000)
    skip_duplicates: bool = True


class ImportCommitResponse(BaseModel):
    created: List[TransactionResponse] = []
    duplicates_skipped: int = 0
    conflicts: int = 0
