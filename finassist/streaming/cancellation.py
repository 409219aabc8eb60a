"""
Cooperative cancellation for in-flight chat streams.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator, AsyncIterable

from finassist.exceptions import StreamCancelledError


class CancellationToken:
    """Abort handle shared between the caller and a running stream."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    def cancel(self, reason: str = "cancelled by caller") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise StreamCancelledError(f"Stream cancelled: {self.reason}")

    async def wait(self) -> None:
        await self._event.wait()


async def cancellable(
    chunks: AsyncIterable[bytes], token: CancellationToken
) -> AsyncGenerator[bytes]:
    """
    Relay chunks until the token fires.

    The pending read is raced against the token, so a stalled network read
    is abandoned as soon as cancel() is called rather than at the next chunk.

    Raises:
        StreamCancelledError: once the token is cancelled
    """
    token.raise_if_cancelled()
    iterator = aiter(chunks)
    waiter = asyncio.ensure_future(token.wait())
    try:
        while True:
            next_chunk = asyncio.ensure_future(anext(iterator))
            done, _ = await asyncio.wait(
                {next_chunk, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
            if next_chunk not in done:
                next_chunk.cancel()
                # Let the read unwind before the caller closes the response
                await asyncio.wait({next_chunk})
                token.raise_if_cancelled()
            try:
                chunk = next_chunk.result()
            except StopAsyncIteration:
                return
            token.raise_if_cancelled()
            yield chunk
    finally:
        waiter.cancel()
