"""
Streaming-specific models for chat completion event streams.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SSEEventType(Enum):
    """Server-Sent Event types that survive line filtering."""
    DATA = "data"
    COMPLETION = "completion"


@dataclass(frozen=True)
class SSEEvent:
    """A data-bearing line with its prefix removed and payload trimmed."""
    event_type: SSEEventType
    data: str


@dataclass(frozen=True)
class StreamChunk:
    """One content fragment together with the text accumulated so far."""
    content: str
    accumulated_content: str
    index: int = 0


@dataclass
class AccumulatorState:
    """Mutable state for delta accumulation."""
    content_buffer: str = ""
    fragment_count: int = 0
    event_count: int = 0
    finish_reason: str | None = None


class Delta(BaseModel):
    """
    Incremental message fragment in a streaming chunk.

    Only `content` is read, and only when it is a string; the other fields
    are kept loose so an odd value elsewhere never hides a fragment.
    """
    model_config = ConfigDict(extra="allow")

    content: Any = None
    role: Any = None


class DeltaChoice(BaseModel):
    model_config = ConfigDict(extra="allow")

    index: Any = 0
    delta: Delta = Field(default_factory=Delta)
    finish_reason: Any = None


class DeltaEvent(BaseModel):
    """OpenAI-style chat completion streaming chunk."""
    model_config = ConfigDict(extra="allow")

    # Validated one at a time; only the first choice is ever read
    choices: list[Any] = Field(default_factory=list)
