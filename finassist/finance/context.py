"""
Financial context for the assistant.

Summaries here back the terminal `/summary` view and mirror the context
block the chat function builds from the transactions sent with each request.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence

from .models import FinancialSummary, Transaction

RECENT_TRANSACTIONS = 5


def compute_balance(transactions: Iterable[Transaction]) -> float:
    """Income minus expenses."""
    return round(sum(t.signed_amount for t in transactions), 2)


def category_breakdown(transactions: Iterable[Transaction]) -> dict[str, float]:
    """Total expense per category, largest first."""
    totals: defaultdict[str, float] = defaultdict(float)
    for t in transactions:
        if t.type == "expense":
            totals[t.category] += t.amount
    return dict(sorted(totals.items(), key=lambda item: item[1], reverse=True))


def summarize(
    transactions: Sequence[Transaction], current_balance: float | None = None
) -> FinancialSummary:
    """
    Aggregate transactions for the chat context.

    Args:
        transactions: Transactions ordered most recent first
        current_balance: Balance to report; computed from transactions if None
    """
    if current_balance is None:
        current_balance = compute_balance(transactions)
    return FinancialSummary(
        current_balance=current_balance,
        transaction_count=len(transactions),
        total_income=round(
            sum(t.amount for t in transactions if t.type == "income"), 2
        ),
        total_expenses=round(
            sum(t.amount for t in transactions if t.type == "expense"), 2
        ),
        recent=list(transactions[:RECENT_TRANSACTIONS]),
    )


def build_financial_context(summary: FinancialSummary) -> str:
    if not summary.transaction_count:
        return "No transactions available yet."

    recent = "\n".join(
        f"- {t.title}: R$ {t.amount:.2f} ({t.category})" for t in summary.recent
    )
    return (
        "User financial context:\n"
        f"- Current balance: R$ {summary.current_balance:.2f}\n"
        f"- Total transactions: {summary.transaction_count}\n"
        f"- Total expenses: R$ {summary.total_expenses:.2f}\n"
        f"- Total income: R$ {summary.total_income:.2f}\n"
        "\n"
        f"Latest transactions:\n{recent}"
    )
