#!/usr/bin/env python3
"""
Tests for SSE event parsing, partial frame recovery and delta accumulation.
"""

import asyncio
import json
from contextlib import aclosing

import pytest

from finassist.exceptions import StreamCancelledError
from finassist.streaming import (
    CancellationToken,
    DeltaAccumulator,
    StreamingParser,
    cancellable,
)


def delta_line(content=None, role=None, finish_reason=None) -> str:
    delta = {}
    if content is not None:
        delta["content"] = content
    if role is not None:
        delta["role"] = role
    choice = {"delta": delta, "finish_reason": finish_reason}
    return "data: " + json.dumps({"choices": [choice]}, ensure_ascii=False) + "\n"


async def chunks_of(*parts):
    for part in parts:
        yield part.encode() if isinstance(part, str) else part


async def run_stream(parts, parser=None):
    """Parse and accumulate a chunked stream; returns (text, parser, chunks)."""
    parser = parser or StreamingParser()
    accumulator = DeltaAccumulator()
    produced = []
    async for event in parser.parse(chunks_of(*parts)):
        chunk = accumulator.process(event)
        if chunk is not None:
            produced.append(chunk)
    return accumulator.content, parser, produced


class TestChunkingIndependence:
    """The assembled text does not depend on where the bytes were cut."""

    FRAGMENTS = ["Olá", ", você ", "gastou ", "R$ 120 ", "em café ☕"]

    def stream_bytes(self) -> bytes:
        body = "".join(delta_line(f) for f in self.FRAGMENTS)
        body += delta_line(role="assistant") + delta_line(finish_reason="stop")
        return (body + "\ndata: [DONE]\n\n").encode()

    @pytest.mark.asyncio
    async def test_every_single_split_point(self):
        data = self.stream_bytes()
        expected = "".join(self.FRAGMENTS)
        for cut in range(len(data) + 1):
            text, _, _ = await run_stream([data[:cut], data[cut:]])
            assert text == expected, f"split at byte {cut}"

    @pytest.mark.asyncio
    async def test_one_byte_chunks(self):
        data = self.stream_bytes()
        text, parser, produced = await run_stream(
            [data[i:i + 1] for i in range(len(data))]
        )
        assert text == "".join(self.FRAGMENTS)
        assert [c.content for c in produced] == self.FRAGMENTS
        assert parser.completed

    @pytest.mark.asyncio
    async def test_accumulated_content_grows_per_fragment(self):
        _, _, produced = await run_stream([self.stream_bytes()])
        assert [c.accumulated_content for c in produced] == [
            "".join(self.FRAGMENTS[:i + 1]) for i in range(len(self.FRAGMENTS))
        ]
        assert [c.index for c in produced] == list(range(len(self.FRAGMENTS)))


class TestEventFiltering:
    @pytest.mark.asyncio
    async def test_non_data_lines_never_contribute(self):
        text, parser, _ = await run_stream([
            ": keep-alive\n",
            "\n",
            "event: message\n",
            'data:{"choices":[{"delta":{"content":"no space"}}]}\n',
            "id: 42\n",
            delta_line("only this"),
            "   \n",
            "data: [DONE]\n",
        ])
        assert text == "only this"
        assert parser.get_stats()["total_events"] == 1

    @pytest.mark.asyncio
    async def test_done_stops_processing_of_same_buffer(self):
        text, parser, _ = await run_stream([
            delta_line("A") + "data: [DONE]\n" + delta_line("B") + delta_line("C")
        ])
        assert text == "A"
        assert parser.completed

    @pytest.mark.asyncio
    async def test_done_stops_before_later_chunks(self):
        text, _, _ = await run_stream(
            [delta_line("A"), "data: [DONE]\n", delta_line("never")]
        )
        assert text == "A"

    @pytest.mark.asyncio
    async def test_stream_end_without_done_or_trailing_newline(self):
        text, parser, _ = await run_stream(
            [delta_line("one"), delta_line("two").rstrip("\n")]
        )
        assert text == "onetwo"
        assert not parser.completed

    @pytest.mark.asyncio
    async def test_done_in_unterminated_final_line(self):
        text, parser, _ = await run_stream([delta_line("x"), "data: [DONE]"])
        assert text == "x"
        assert parser.completed

    @pytest.mark.asyncio
    async def test_crlf_line_endings(self):
        text, _, _ = await run_stream([
            delta_line("a").replace("\n", "\r\n"),
            delta_line("b").replace("\n", "\r\n"),
            "data: [DONE]\r\n",
        ])
        assert text == "ab"


class TestPartialFrameRecovery:
    """
    A data payload that does not parse is held and merged with the non-data
    lines that follow; a new data line replaces it.
    This is recovery from frames broken across lines, not an error path.
    """

    @pytest.mark.asyncio
    async def test_frame_completed_by_later_chunk_is_included_once(self):
        text, parser, produced = await run_stream([
            delta_line("Hi"),
            'data: {"choices":[{"delta":{"content":" there"\n',
            "}}]}\n",
            delta_line("!"),
            "data: [DONE]\n",
        ])
        assert text == "Hi there!"
        assert [c.content for c in produced] == ["Hi", " there", "!"]
        stats = parser.get_stats()
        assert stats["parse_failures"] == 1
        assert stats["recovered_frames"] == 1
        assert stats["dropped_frames"] == 0

    @pytest.mark.asyncio
    async def test_garbage_line_does_not_corrupt_accumulated_text(self):
        text, parser, _ = await run_stream([
            delta_line("keep "),
            "data: {not json at all\n",
            delta_line("going"),
            "data: [DONE]\n",
        ])
        assert text == "keep going"
        assert parser.get_stats()["dropped_frames"] == 1

    @pytest.mark.asyncio
    async def test_unparseable_remainder_at_stream_end_is_dropped(self):
        text, parser, _ = await run_stream(
            [delta_line("done"), 'data: {"choices":[{"delta":']
        )
        assert text == "done"
        assert parser.get_stats()["dropped_frames"] == 1

    @pytest.mark.asyncio
    async def test_pending_frame_is_bounded(self):
        parser = StreamingParser(max_pending_bytes=32)
        text, parser, _ = await run_stream(
            [
                'data: {"choices":[{"delta":{"content":"' + "x" * 50 + "\n",
                "more text that never closes the frame\n",
                delta_line("after"),
                "data: [DONE]\n",
            ],
            parser,
        )
        assert text == "after"
        assert parser.get_stats()["dropped_frames"] == 1

    @pytest.mark.asyncio
    async def test_done_after_pending_frame_still_terminates(self):
        text, parser, _ = await run_stream([
            delta_line("a"),
            'data: {"broken":\n',
            "data: [DONE]\n",
            delta_line("b"),
        ])
        assert text == "a"
        assert parser.completed

    @pytest.mark.asyncio
    async def test_new_data_line_replaces_stale_partial(self):
        text, parser, _ = await run_stream([
            'data: {"choices":[{"delta":{"content":"lost"\n',
            'data: {"choices":[{"delta":{"content":"A"}\n',
            "}]}\n",
            "data: [DONE]\n",
        ])
        assert text == "A"
        stats = parser.get_stats()
        assert stats["parse_failures"] == 2
        assert stats["recovered_frames"] == 1
        assert stats["dropped_frames"] == 1


class TestDeltaAccumulator:
    def test_content_is_appended(self):
        acc = DeltaAccumulator()
        first = acc.process({"choices": [{"delta": {"content": "Ol"}}]})
        second = acc.process({"choices": [{"delta": {"content": "á!"}}]})
        assert first.accumulated_content == "Ol"
        assert second.content == "á!"
        assert second.accumulated_content == "Olá!"
        assert acc.content == "Olá!"

    @pytest.mark.parametrize(
        "event",
        [
            {"choices": [{"delta": {"role": "assistant"}}]},
            {"choices": [{"delta": {}, "finish_reason": "stop"}]},
            {"choices": [{"delta": {"content": None}}]},
            {"choices": [{"delta": {"content": 5}}]},
            {"choices": [{"delta": {"content": ["a"]}}]},
            {"choices": [{"delta": {"content": ""}}]},
            {"choices": []},
            {},
            {"choices": "nope"},
            [1, 2, 3],
            "text",
            None,
        ],
    )
    def test_events_without_string_content_are_noops(self, event):
        acc = DeltaAccumulator()
        acc.process({"choices": [{"delta": {"content": "base"}}]})
        assert acc.process(event) is None
        assert acc.content == "base"

    @pytest.mark.parametrize(
        "event",
        [
            {"choices": [{"delta": {"content": "x"}, "index": None}]},
            {"choices": [{"delta": {"content": "x"}, "finish_reason": 1}]},
            {"choices": [{"delta": {"content": "x", "role": 5}}]},
            {"choices": [{"delta": {"content": "x"}}, "not a choice"]},
        ],
    )
    def test_odd_sibling_fields_do_not_hide_content(self, event):
        acc = DeltaAccumulator()
        chunk = acc.process(event)
        assert chunk.content == "x"
        assert acc.content == "x"
        assert acc.finish_reason is None

    def test_finish_reason_is_recorded(self):
        acc = DeltaAccumulator()
        acc.process({"choices": [{"delta": {}, "finish_reason": "length"}]})
        assert acc.finish_reason == "length"

    def test_reset(self):
        acc = DeltaAccumulator()
        acc.process({"choices": [{"delta": {"content": "x"}}]})
        acc.reset()
        assert acc.content == ""
        assert acc.state.fragment_count == 0


class TestCancellable:
    @pytest.mark.asyncio
    async def test_relays_all_chunks(self):
        token = CancellationToken()
        received = [c async for c in cancellable(chunks_of(b"a", b"b"), token)]
        assert received == [b"a", b"b"]

    @pytest.mark.asyncio
    async def test_already_cancelled_token(self):
        token = CancellationToken()
        token.cancel("teardown")
        with pytest.raises(StreamCancelledError, match="teardown"):
            async for _ in cancellable(chunks_of(b"a"), token):
                pass

    @pytest.mark.asyncio
    async def test_cancel_interrupts_stalled_read(self):
        token = CancellationToken()
        stalled = asyncio.Event()

        async def stalling():
            yield b"first"
            await stalled.wait()
            yield b"never"

        received = []

        async def consume():
            async for chunk in cancellable(stalling(), token):
                received.append(chunk)
                asyncio.get_running_loop().call_soon(token.cancel)

        with pytest.raises(StreamCancelledError):
            await asyncio.wait_for(consume(), timeout=5)
        assert received == [b"first"]
        assert token.cancelled

    @pytest.mark.asyncio
    async def test_relay_is_closed_when_parser_stops_early(self):
        token = CancellationToken()
        parser = StreamingParser()
        async with aclosing(
            cancellable(chunks_of(delta_line("a"), "data: [DONE]\n", b"unread"), token)
        ) as relay:
            events = [event async for event in parser.parse(relay)]

        assert len(events) == 1
        assert parser.completed
        assert relay.ag_frame is None
