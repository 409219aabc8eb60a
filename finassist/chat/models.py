# finassist/chat/models.py
from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from finassist.finance.models import Transaction

Role = Literal["user", "assistant"]


class ChatMessage(BaseModel):
    """One turn of the conversation."""
    role: Role
    content: str


class ChatRequest(BaseModel):
    """
    Body posted to the chat function.

    Transactions are passed through as plain dicts so callers can send
    whatever context the backend understands.
    """
    model_config = ConfigDict(populate_by_name=True)

    messages: list[ChatMessage]
    transactions: list[dict[str, Any]] = Field(default_factory=list)
    current_balance: float = Field(default=0.0, alias="currentBalance")

    @classmethod
    def build(
        cls,
        messages: list[ChatMessage],
        transactions: list[Transaction | dict[str, Any]],
        current_balance: float,
    ) -> ChatRequest:
        return cls(
            messages=messages,
            transactions=[
                t.model_dump(mode="json") if isinstance(t, Transaction) else dict(t)
                for t in transactions
            ],
            current_balance=current_balance,
        )

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
