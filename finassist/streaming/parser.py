"""
Incremental SSE parsing for chat completion streams.

Bytes arrive in arbitrary chunks. LineFramer turns them into complete lines,
classify_line drops everything that is not a `data: ` line, StreamingParser
turns data lines into JSON events (holding and merging partial frames), and
DeltaAccumulator folds `choices[0].delta.content` into the running message.
"""

from __future__ import annotations

import codecs
import json
import logging
from collections.abc import AsyncGenerator, AsyncIterable
from typing import Any

from pydantic import ValidationError

from .models import (
    AccumulatorState,
    DeltaChoice,
    DeltaEvent,
    SSEEvent,
    SSEEventType,
    StreamChunk,
)

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_TOKEN = "[DONE]"
DEFAULT_MAX_PENDING_BYTES = 64 * 1024


def _strip_cr(line: str) -> str:
    return line[:-1] if line.endswith("\r") else line


class LineFramer:
    """Split a chunked byte stream into newline-terminated text lines."""

    def __init__(self, encoding: str = "utf-8"):
        # Multi-byte sequences split across chunks are held by the decoder
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    @property
    def pending(self) -> str:
        """Text received after the last newline."""
        return self._buffer

    def feed(self, chunk: bytes) -> list[str]:
        """Decode a chunk and return every line it completes."""
        if chunk:
            self._buffer += self._decoder.decode(chunk)
        return self._drain()

    def flush(self) -> list[str]:
        """Finish decoding and return what is left, including an unterminated line."""
        self._buffer += self._decoder.decode(b"", final=True)
        lines = self._drain()
        if self._buffer:
            lines.append(_strip_cr(self._buffer))
            self._buffer = ""
        return lines

    def _drain(self) -> list[str]:
        lines = []
        while (newline_index := self._buffer.find("\n")) != -1:
            lines.append(_strip_cr(self._buffer[:newline_index]))
            self._buffer = self._buffer[newline_index + 1:]
        return lines


async def iter_lines(chunks: AsyncIterable[bytes]) -> AsyncGenerator[str]:
    """Lazily yield complete lines from an async byte stream."""
    framer = LineFramer()
    async for chunk in chunks:
        for line in framer.feed(chunk):
            yield line
    for line in framer.flush():
        yield line


def classify_line(line: str, done_token: str = DONE_TOKEN) -> SSEEvent | None:
    """
    Classify one line per SSE framing.

    Returns None for blank lines, `:` comments/heartbeats and lines without
    the `data: ` prefix.
    """
    if not line.strip() or line.startswith(":"):
        return None
    if not line.startswith(DATA_PREFIX):
        return None

    payload = line[len(DATA_PREFIX):].strip()
    if payload == done_token:
        return SSEEvent(event_type=SSEEventType.COMPLETION, data=payload)
    return SSEEvent(event_type=SSEEventType.DATA, data=payload)


class StreamingParser:
    """
    Turn a chunked SSE byte stream into parsed JSON events.

    A data payload that fails to parse is not an error: it is held as a
    pending partial frame and each following non-data line is appended to
    it until the combination parses. A new `data: ` line supersedes a stale
    partial and is handled on its own, becoming the new partial if it does
    not parse either. A partial larger than max_pending_bytes, or one still
    open when the stream ends, is dropped without surfacing to the caller.
    """

    def __init__(
        self,
        max_pending_bytes: int = DEFAULT_MAX_PENDING_BYTES,
        done_token: str = DONE_TOKEN,
    ):
        self.max_pending_bytes = max_pending_bytes
        self.done_token = done_token
        self.completed = False
        self.reset_stats()

    def reset_stats(self) -> None:
        """Reset statistics counters."""
        self.stats = {
            "total_events": 0,
            "parse_failures": 0,
            "recovered_frames": 0,
            "dropped_frames": 0,
        }

    def get_stats(self) -> dict[str, int]:
        """Get streaming statistics for monitoring."""
        return self.stats.copy()

    async def parse(self, chunks: AsyncIterable[bytes]) -> AsyncGenerator[Any]:
        """
        Parse an SSE byte stream into JSON events.

        Stops at the completion token; lines after it, buffered or not, are
        never looked at.
        """
        self.completed = False
        pending: str | None = None

        lines = iter_lines(chunks)
        try:
            async for line in lines:
                done, pending, events = self._process_line(line, pending)
                for event in events:
                    yield event
                if done:
                    return
        finally:
            await lines.aclose()

        if pending is not None:
            self._drop_pending(pending, "stream ended")

    def _process_line(
        self, line: str, pending: str | None
    ) -> tuple[bool, str | None, list[Any]]:
        """Handle one line. Returns (done, pending, events)."""
        event = classify_line(line, self.done_token)

        if pending is not None:
            if event is None:
                # Not a data line of its own: continuation of the held frame
                candidate = f"{pending}\n{line}"
                parsed, ok = self._try_parse(candidate)
                if ok:
                    self.stats["recovered_frames"] += 1
                    self.stats["total_events"] += 1
                    return False, None, [parsed]
                if len(candidate.encode()) > self.max_pending_bytes:
                    self._drop_pending(candidate, "max_pending_bytes exceeded")
                    return False, None, []
                return False, candidate, []

            self._drop_pending(pending, "superseded by a new data line")

        if event is None:
            return False, None, []

        if event.event_type == SSEEventType.COMPLETION:
            self.completed = True
            return True, None, []

        parsed, ok = self._try_parse(event.data)
        if ok:
            self.stats["total_events"] += 1
            return False, None, [parsed]

        self.stats["parse_failures"] += 1
        logger.debug("Holding partial frame (%d chars)", len(event.data))
        if len(event.data.encode()) > self.max_pending_bytes:
            self._drop_pending(event.data, "max_pending_bytes exceeded")
            return False, None, []
        return False, event.data, []

    @staticmethod
    def _try_parse(payload: str) -> tuple[Any, bool]:
        try:
            return json.loads(payload), True
        except json.JSONDecodeError:
            return None, False

    def _drop_pending(self, pending: str, reason: str) -> None:
        self.stats["dropped_frames"] += 1
        logger.warning(
            "Dropping unparseable partial frame (%d chars): %s",
            len(pending), reason,
        )


class DeltaAccumulator:
    """Fold streamed content deltas into the running assistant message."""

    def __init__(self):
        self.state = AccumulatorState()

    @property
    def content(self) -> str:
        return self.state.content_buffer

    @property
    def finish_reason(self) -> str | None:
        return self.state.finish_reason

    def process(self, event: Any) -> StreamChunk | None:
        """
        Extract choices[0].delta.content from one parsed event.

        Events without string content (role-only deltas, finish events,
        foreign shapes) are a no-op and return None.
        """
        self.state.event_count += 1
        try:
            parsed = DeltaEvent.model_validate(event)
            if not parsed.choices:
                return None
            choice = DeltaChoice.model_validate(parsed.choices[0])
        except ValidationError:
            logger.debug("Skipping event with unexpected shape")
            return None

        if isinstance(choice.finish_reason, str) and choice.finish_reason:
            self.state.finish_reason = choice.finish_reason

        content = choice.delta.content
        if not isinstance(content, str) or not content:
            return None

        self.state.content_buffer += content
        self.state.fragment_count += 1
        return StreamChunk(
            content=content,
            accumulated_content=self.state.content_buffer,
            index=self.state.fragment_count - 1,
        )

    def reset(self) -> None:
        """Reset accumulator state for a new stream."""
        self.state = AccumulatorState()
