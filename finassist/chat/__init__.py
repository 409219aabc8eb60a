"""
Chat session support.

This package provides:
- Message and request models sent to the chat function
- The session controller that streams replies into the conversation
- Notification sinks for user-visible failures
"""

from __future__ import annotations

from .models import ChatMessage, ChatRequest
from .notifications import (
    CollectingNotifier,
    LoggingNotifier,
    Notification,
    NotificationLevel,
    Notifier,
)
from .session import FinancialChatSession

__all__ = [
    "ChatMessage",
    "ChatRequest",
    "CollectingNotifier",
    "FinancialChatSession",
    "LoggingNotifier",
    "Notification",
    "NotificationLevel",
    "Notifier",
]
