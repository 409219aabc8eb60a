"""
HTTP client for the FinAssist backend functions.

One explicitly constructed client is created at startup and handed to every
consumer; there is no module-level client.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, Sequence
from contextlib import asynccontextmanager
from typing import Any

import httpx
from pydantic import ValidationError

from finassist.chat.models import ChatRequest
from finassist.exceptions import (
    QuotaExceededError,
    RateLimitError,
    StreamingError,
    TransportError,
)
from finassist.finance.models import (
    CategorizationResult,
    InsightsReport,
    Recommendation,
    SpeechResult,
    Transaction,
)
from finassist.logging_utils import log_operation

logger = logging.getLogger(__name__)

HTTP_PAYMENT_REQUIRED = 402
HTTP_TOO_MANY_REQUESTS = 429
HTTP_NO_CONTENT = 204

REQUIRED_KEYS = [
    "base_url", "chat_path", "tts_path", "categorize_path", "insights_path",
    "recommendations_path", "connect_timeout", "read_timeout",
]


def _error_message(response: httpx.Response) -> tuple[str, dict[str, Any]]:
    """Pull `{error: ...}` out of an already-read error body."""
    try:
        data = response.json()
    except ValueError:
        return response.text.strip(), {}
    if isinstance(data, dict):
        return str(data.get("error") or ""), data
    return "", {}


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


async def raise_for_backend_status(response: httpx.Response) -> None:
    """
    Map a non-2xx response onto the error taxonomy.

    Raises:
        RateLimitError: HTTP 429
        QuotaExceededError: HTTP 402
        TransportError: any other non-2xx status
    """
    if response.is_success:
        return

    await response.aread()
    message, data = _error_message(response)
    status = response.status_code

    if status == HTTP_TOO_MANY_REQUESTS:
        raise RateLimitError(
            message or "Too many requests",
            retry_after=_retry_after(response),
            status_code=status,
            response_data=data,
        )
    if status == HTTP_PAYMENT_REQUIRED:
        raise QuotaExceededError(
            message or "Insufficient credits",
            status_code=status,
            response_data=data,
        )
    raise TransportError(
        f"Backend error {status}: {message}" if message else f"Backend error {status}",
        status_code=status,
        response_data=data,
    )


class BackendClient:
    """
    HTTP client for the chat, speech, categorization, insights and
    recommendations functions.
    """

    def __init__(
        self,
        config: dict[str, Any],
        api_key: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        for key in REQUIRED_KEYS:
            if key not in config:
                raise ValueError(
                    f"Required backend configuration parameter '{key}' not found. "
                    "All backend parameters must be explicitly configured."
                )

        self.config: dict[str, Any] = config
        self.client: httpx.AsyncClient = httpx.AsyncClient(
            base_url=config["base_url"],
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(
                config["read_timeout"], connect=config["connect_timeout"]
            ),
            transport=transport,
        )

    @asynccontextmanager
    async def stream_chat(
        self, request: ChatRequest
    ) -> AsyncGenerator[httpx.Response]:
        """
        Open the chat event stream.

        Yields the response once its status and content type have been
        checked; the body is left unread for the caller to iterate.

        Raises:
            TransportError: the request failed before the stream opened
            StreamingError: the connection broke while the body was read
        """
        streaming = False
        try:
            async with self.client.stream(
                "POST",
                self.config["chat_path"],
                json=request.to_payload(),
                headers={"Accept": "text/event-stream"},
            ) as response:
                await raise_for_backend_status(response)

                if (
                    response.status_code == HTTP_NO_CONTENT
                    or response.headers.get("content-length") == "0"
                ):
                    raise TransportError(
                        "No response from server", status_code=response.status_code
                    )

                content_type = response.headers.get("content-type", "")
                if "event-stream" not in content_type:
                    raise TransportError(
                        "Expected streaming response, got "
                        f"content-type: {content_type}",
                        status_code=response.status_code,
                    )

                streaming = True
                yield response
        except httpx.HTTPError as e:
            logger.error(f"HTTP error during streaming: {e}")
            if streaming:
                raise StreamingError(f"Stream interrupted: {e!s}") from e
            raise TransportError(f"HTTP error: {e!s}") from e

    async def _post_json(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self.client.post(path, json=payload)
            await raise_for_backend_status(response)
            data = response.json()
        except httpx.HTTPError as e:
            logger.error(f"HTTP error: {e}")
            raise TransportError(f"HTTP error: {e!s}") from e
        except ValueError as e:
            raise TransportError(f"Unexpected response format: {e!s}") from e

        if not isinstance(data, dict):
            raise TransportError("Unexpected response format: expected a JSON object")
        if data.get("error"):
            raise TransportError(str(data["error"]), response_data=data)
        return data

    @log_operation("text_to_speech")
    async def text_to_speech(self, text: str, voice_id: str | None = None) -> SpeechResult:
        """Synthesize speech; returns base64-encoded audio."""
        if not text.strip():
            raise ValueError("Text is required")

        payload: dict[str, Any] = {"text": text}
        if voice_id:
            payload["voiceId"] = voice_id
        data = await self._post_json(self.config["tts_path"], payload)
        try:
            return SpeechResult.model_validate(data)
        except ValidationError as e:
            raise TransportError(f"Unexpected speech response: {e!s}") from e

    @log_operation("categorize_expense")
    async def categorize_expense(self, title: str, amount: float) -> CategorizationResult:
        data = await self._post_json(
            self.config["categorize_path"], {"title": title, "amount": amount}
        )
        try:
            return CategorizationResult.model_validate(data)
        except ValidationError as e:
            raise TransportError(f"Unexpected categorization response: {e!s}") from e

    @log_operation("generate_insights")
    async def generate_insights(
        self, transactions: Sequence[Transaction], current_balance: float
    ) -> InsightsReport:
        data = await self._post_json(
            self.config["insights_path"],
            {
                "transactions": [t.model_dump(mode="json") for t in transactions],
                "currentBalance": current_balance,
            },
        )
        try:
            return InsightsReport.model_validate(data.get("insights") or {})
        except ValidationError as e:
            raise TransportError(f"Unexpected insights response: {e!s}") from e

    @log_operation("generate_recommendations")
    async def generate_recommendations(
        self, transactions: Sequence[Transaction], current_balance: float
    ) -> list[Recommendation]:
        """Ask for practical savings recommendations based on the transactions."""
        data = await self._post_json(
            self.config["recommendations_path"],
            {
                "transactions": [t.model_dump(mode="json") for t in transactions],
                "currentBalance": current_balance,
            },
        )
        try:
            return [
                Recommendation.model_validate(item)
                for item in data.get("recommendations") or []
            ]
        except ValidationError as e:
            raise TransportError(f"Unexpected recommendations response: {e!s}") from e

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> BackendClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
