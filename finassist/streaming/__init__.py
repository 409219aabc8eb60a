"""
Streaming support for chat completion responses.

This package contains:
- Incremental line framing over chunked byte streams
- SSE line classification and partial frame recovery
- Delta accumulation into the running assistant message
- Cooperative cancellation of in-flight streams
"""

from __future__ import annotations

from .cancellation import CancellationToken, cancellable
from .models import (
    AccumulatorState,
    Delta,
    DeltaChoice,
    DeltaEvent,
    SSEEvent,
    SSEEventType,
    StreamChunk,
)
from .parser import (
    DeltaAccumulator,
    LineFramer,
    StreamingParser,
    classify_line,
    iter_lines,
)

__all__ = [
    "AccumulatorState",
    "CancellationToken",
    "Delta",
    "DeltaAccumulator",
    "DeltaChoice",
    "DeltaEvent",
    "LineFramer",
    "SSEEvent",
    "SSEEventType",
    "StreamChunk",
    "StreamingParser",
    "cancellable",
    "classify_line",
    "iter_lines",
]
