"""
Transactions and the financial context sent to the assistant.
"""

from __future__ import annotations

from .context import (
    build_financial_context,
    category_breakdown,
    compute_balance,
    summarize,
)
from .models import (
    CategorizationResult,
    FinancialSummary,
    InsightsReport,
    Recommendation,
    SpeechResult,
    Transaction,
    TransactionCreate,
    TransactionUpdate,
)
from .repository import (
    DEMO_TRANSACTIONS,
    AsyncSqlTransactionRepo,
    TransactionRepository,
    load_transactions,
)

__all__ = [
    "DEMO_TRANSACTIONS",
    "AsyncSqlTransactionRepo",
    "CategorizationResult",
    "FinancialSummary",
    "InsightsReport",
    "Recommendation",
    "SpeechResult",
    "Transaction",
    "TransactionCreate",
    "TransactionRepository",
    "TransactionUpdate",
    "build_financial_context",
    "category_breakdown",
    "compute_balance",
    "load_transactions",
    "summarize",
]
