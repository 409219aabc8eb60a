"""
Error types for backend calls and chat streaming.

This module provides the error taxonomy shared by the backend client and
the chat session:
- Transport failures (network errors, unexpected status, missing body)
- Rate limit and quota signals with their server-provided message
- Streaming failures raised while reassembling events
- Cancellation through an explicit abort handle
"""

from __future__ import annotations

from typing import Any


class FinAssistError(Exception):
    """Base error with optional HTTP context."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_data: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data or {}


class TransportError(FinAssistError):
    """Request-level failure: network error, non-2xx status or missing body."""
    pass


class RateLimitError(TransportError):
    """HTTP 429 from the backend."""

    def __init__(
        self,
        message: str,
        retry_after: float | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class QuotaExceededError(TransportError):
    """HTTP 402: credits or billing quota exhausted."""
    pass


class StreamingError(FinAssistError):
    """Streaming-specific errors."""
    pass


class StreamCancelledError(FinAssistError):
    """The stream was aborted through its cancellation handle."""

    def __init__(self, message: str = "Stream cancelled", **kwargs: Any):
        super().__init__(message, **kwargs)
