"""
Chat session controller.

Owns the ordered message list of one chat view, sends the user's message
with its financial context to the chat function, and streams the reply
into an assistant placeholder so the view can re-render after every
fragment.

Only one send is expected in flight per session. The controller takes no
lock: the caller guards on `is_loading`, and overlapping sends interleave
their appends.
"""

from __future__ import annotations

import asyncio
import inspect
import uuid
from collections.abc import Awaitable, Callable, Sequence
from contextlib import aclosing
from typing import TYPE_CHECKING, Any

from finassist.exceptions import (
    QuotaExceededError,
    RateLimitError,
    StreamCancelledError,
)
from finassist.finance.models import Transaction
from finassist.logging_utils import ContextualLogger, ErrorClassifier
from finassist.streaming import (
    CancellationToken,
    DeltaAccumulator,
    StreamingParser,
    cancellable,
)
from finassist.streaming.parser import DEFAULT_MAX_PENDING_BYTES, DONE_TOKEN

from .models import ChatMessage, ChatRequest
from .notifications import Notification, NotificationLevel, Notifier

if TYPE_CHECKING:                                        # pragma: no cover
    from finassist.client import BackendClient

AssistantCallback = Callable[[str], Awaitable[None] | None]
UpdateCallback = Callable[[list[ChatMessage]], None]

DEFAULT_STREAMING_CONFIG: dict[str, Any] = {
    "max_pending_bytes": DEFAULT_MAX_PENDING_BYTES,
    "done_token": DONE_TOKEN,
}


class FinancialChatSession:
    """
    Conversation controller for one chat view.

    Args:
        client: Backend client used to open the chat stream
        notifier: Receives every user-visible failure
        on_assistant_response: Called once with the finished reply, when non-empty
        on_update: Called with a snapshot of the messages after every change
        streaming_config: max_pending_bytes and done_token overrides
    """

    def __init__(
        self,
        client: BackendClient,
        notifier: Notifier,
        on_assistant_response: AssistantCallback | None = None,
        on_update: UpdateCallback | None = None,
        streaming_config: dict[str, Any] | None = None,
    ) -> None:
        self.client = client
        self.notifier = notifier
        self.on_assistant_response = on_assistant_response
        self.on_update = on_update
        self.streaming_config = {**DEFAULT_STREAMING_CONFIG, **(streaming_config or {})}

        self.session_id = str(uuid.uuid4())
        self.is_loading = False
        self._messages: list[ChatMessage] = []
        self._streaming_message: ChatMessage | None = None
        self._current_token: CancellationToken | None = None
        self._logger = ContextualLogger(
            {"component": "chat_session", "session_id": self.session_id[:8]}
        )

    @property
    def messages(self) -> list[ChatMessage]:
        """Snapshot of the conversation, oldest first."""
        return list(self._messages)

    def clear_chat(self) -> None:
        """Drop every message. An in-flight send is left running."""
        self._messages = []
        self._streaming_message = None
        self._publish()

    def cancel(self, reason: str = "cancelled by caller") -> bool:
        """Abort the in-flight send, if any. Returns True if one was running."""
        if self._current_token is None:
            return False
        self._current_token.cancel(reason)
        return True

    async def send_message(
        self,
        text: str,
        transactions: Sequence[Transaction | dict[str, Any]] = (),
        current_balance: float = 0.0,
        cancellation: CancellationToken | None = None,
    ) -> str | None:
        """
        Send a user message and stream the assistant's reply.

        Failures are reported through the notifier and never raised.

        Returns:
            The finished assistant text, or None when nothing was sent or
            the reply failed.
        """
        if not text or not text.strip():
            return None

        history = list(self._messages)
        token = cancellation or CancellationToken()
        accumulator = DeltaAccumulator()
        log = self._logger.bind(history_length=len(history))
        completed = False

        try:
            user_message = ChatMessage(role="user", content=text)
            self._messages.append(user_message)
            self.is_loading = True
            self._current_token = token

            self._streaming_message = ChatMessage(role="assistant", content="")
            self._messages.append(self._streaming_message)
            self._publish()

            request = ChatRequest.build(
                [*history, user_message], list(transactions), current_balance
            )
            await self._stream_reply(request, accumulator, token)
            completed = True
            log.info(
                "Assistant reply streamed",
                fragments=accumulator.state.fragment_count,
                finish_reason=accumulator.finish_reason,
            )
        except RateLimitError as e:
            ErrorClassifier.log_error(e, "send_message", {"retry_after": e.retry_after})
            self._discard_placeholder()
            self._notify(
                "Rate limit reached",
                "Too many requests. Try again shortly.",
                NotificationLevel.WARNING,
                "rate_limited",
            )
        except QuotaExceededError as e:
            ErrorClassifier.log_error(e, "send_message")
            self._discard_placeholder()
            self._notify(
                "Insufficient credits",
                "Please add credits to continue.",
                NotificationLevel.WARNING,
                "quota_exhausted",
            )
        except StreamCancelledError as e:
            log.info("Assistant reply cancelled", reason=token.reason)
            if not accumulator.content:
                self._discard_placeholder()
            self._notify(
                "Response cancelled", str(e), NotificationLevel.INFO, "cancelled"
            )
        except asyncio.CancelledError:
            if not accumulator.content:
                self._discard_placeholder()
            raise
        except Exception as e:
            category = ErrorClassifier.log_error(e, "send_message")
            self._discard_placeholder()
            self._notify("Chat error", str(e) or "Unknown error",
                         NotificationLevel.ERROR, category)
        finally:
            self.is_loading = False
            self._streaming_message = None
            if self._current_token is token:
                self._current_token = None
            self._publish()

        if not completed:
            return None

        final_text = accumulator.content
        if final_text:
            await self._invoke_completion_callback(final_text)
        return final_text

    async def _stream_reply(
        self,
        request: ChatRequest,
        accumulator: DeltaAccumulator,
        token: CancellationToken,
    ) -> None:
        token.raise_if_cancelled()
        parser = StreamingParser(
            max_pending_bytes=self.streaming_config["max_pending_bytes"],
            done_token=self.streaming_config["done_token"],
        )
        async with (
            self.client.stream_chat(request) as response,
            # No read size: every network read is relayed as it arrives
            aclosing(cancellable(response.aiter_bytes(), token)) as chunks,
        ):
            async for event in parser.parse(chunks):
                chunk = accumulator.process(event)
                if chunk is None:
                    continue
                self._set_streaming_content(chunk.accumulated_content)

        stats = parser.get_stats()
        if stats["dropped_frames"]:
            self._logger.warning("Partial frames dropped", **stats)

    def _set_streaming_content(self, content: str) -> None:
        """Overwrite the assistant placeholder with the text so far."""
        current = self._streaming_message
        if current is None or not self._messages or self._messages[-1] is not current:
            return
        updated = ChatMessage(role="assistant", content=content)
        self._messages[-1] = updated
        self._streaming_message = updated
        self._publish()

    def _discard_placeholder(self) -> None:
        current = self._streaming_message
        if current is not None and self._messages and self._messages[-1] is current:
            self._messages.pop()
        self._streaming_message = None

    async def _invoke_completion_callback(self, text: str) -> None:
        if self.on_assistant_response is None:
            return
        try:
            result = self.on_assistant_response(text)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            ErrorClassifier.log_error(e, "assistant_response_callback")

    def _notify(
        self,
        title: str,
        description: str,
        level: NotificationLevel,
        category: str | None = None,
    ) -> None:
        self.notifier.notify(
            Notification(
                title=title, description=description, level=level, category=category
            )
        )

    def _publish(self) -> None:
        if self.on_update is None:
            return
        try:
            self.on_update(self.messages)
        except Exception as e:
            ErrorClassifier.log_error(e, "update_callback")
