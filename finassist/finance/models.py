# finassist/finance/models.py
from __future__ import annotations

import datetime as dt
import uuid
from typing import Literal

from pydantic import BaseModel, Field

TransactionType = Literal["income", "expense"]


class TransactionCreate(BaseModel):
    """Fields a user supplies when logging a transaction."""
    title: str = Field(min_length=1)
    amount: float = Field(ge=0)
    type: TransactionType
    category: str
    date: dt.date
    ai_categorized: bool = False


class TransactionUpdate(BaseModel):
    """Partial update; unset fields are left unchanged."""
    title: str | None = Field(default=None, min_length=1)
    amount: float | None = Field(default=None, ge=0)
    type: TransactionType | None = None
    category: str | None = None
    date: dt.date | None = None
    ai_categorized: bool | None = None


class Transaction(TransactionCreate):
    """
    A persisted transaction record.
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def signed_amount(self) -> float:
        return self.amount if self.type == "income" else -self.amount


class FinancialSummary(BaseModel):
    """Aggregates sent along with the chat as financial context."""
    current_balance: float
    transaction_count: int
    total_income: float
    total_expenses: float
    recent: list[Transaction] = Field(default_factory=list)


class CategorizationResult(BaseModel):
    category: str
    subcategory: str = ""
    confidence: float = Field(default=0.0, ge=0, le=1)


class CategoryAnalysis(BaseModel):
    category: str
    percentage: float
    status: Literal["safe", "attention", "danger"] = "safe"


class InsightsReport(BaseModel):
    """Budget analysis returned by the insights function."""
    analysis_type: str = Field(default="", alias="analysisType")
    analysis_title: str = Field(default="", alias="analysisTitle")
    analysis_subtitle: str = Field(default="", alias="analysisSubtitle")
    health_score: int = Field(default=0, ge=0, le=100, alias="healthScore")
    status: Literal["excellent", "good", "warning", "danger"] = "good"
    insights: list[str] = Field(default_factory=list)
    category_analysis: list[CategoryAnalysis] = Field(
        default_factory=list, alias="categoryAnalysis"
    )
    recommendations: list[str] = Field(default_factory=list)

    model_config = {"populate_by_name": True}


class Recommendation(BaseModel):
    """One actionable suggestion from the recommendations function."""
    title: str
    description: str = ""
    impact: Literal["high", "medium", "low"] = "medium"
    action: str = ""


class SpeechResult(BaseModel):
    """Base64-encoded audio from the text-to-speech function."""
    audio_content: str = Field(alias="audioContent")

    model_config = {"populate_by_name": True}
