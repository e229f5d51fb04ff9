"""Tests for the delimiter reassembler and upstream event decoding.

Tests cover:
- Event decoding: data lines, [DONE], malformed JSON, alternate field names
- State machine: marker placement, finish/[DONE]/end-of-stream closing
- Byte handling: split lines, split multi-byte characters, CRLF
- Property: output does not depend on how the bytes are chunked
- The async transform stage and its cleanup on early close
"""

from __future__ import annotations

import asyncio
import json

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from tests.helpers import chunk, reasoning_stream, sse
from tests.strategies import any_script, byte_splits, ordered_script
from thinktree.exceptions import InvalidStateError
from thinktree.streaming import (
    CLOSE_MARKER,
    OPEN_MARKER,
    Phase,
    ReasoningReassembler,
    decode_event_line,
    event_from_chunk,
    reassemble,
)


def run(data: bytes | list[bytes]) -> str:
    """Feed *data* (one buffer or a chunk list) and flush."""
    chunks = [data] if isinstance(data, bytes) else data
    r = ReasoningReassembler()
    out = "".join(r.feed(c) for c in chunks)
    return out + r.finish()


# ===========================================================================
# Event decoding
# ===========================================================================

class TestDecodeEventLine:

    def test_reasoning_and_answer_fields(self):
        event = decode_event_line("data: " + json.dumps(chunk(reasoning="a", content="b")))
        assert event.reasoning == "a"
        assert event.answer == "b"
        assert not event.finished
        assert not event.done

    def test_done_marker(self):
        event = decode_event_line("data: [DONE]")
        assert event.done

    def test_finish_reason(self):
        event = decode_event_line("data: " + json.dumps(chunk(finish="stop")))
        assert event.finished

    def test_alternate_reasoning_field(self):
        payload = {"choices": [{"delta": {"reasoning": "thinking"}, "finish_reason": None}]}
        assert event_from_chunk(payload).reasoning == "thinking"

    def test_no_space_after_prefix(self):
        event = decode_event_line("data:" + json.dumps(chunk(content="x")))
        assert event.answer == "x"

    @pytest.mark.parametrize(
        "line",
        ["", "   ", ": keep-alive", "event: message", "id: 7", "data:", "data: {not json"],
    )
    def test_ignored_lines(self, line):
        assert decode_event_line(line) is None

    def test_payload_without_choices(self):
        assert event_from_chunk({"object": "chat.completion.chunk", "choices": []}) is None
        assert event_from_chunk(["not", "a", "dict"]) is None

    def test_empty_strings_are_not_deltas(self):
        event = event_from_chunk(chunk(reasoning="", content=""))
        assert event.reasoning is None
        assert event.answer is None


# ===========================================================================
# State machine
# ===========================================================================

class TestReassemblerStateMachine:

    def test_reasoning_then_answer(self):
        data = reasoning_stream(["Let", " me"], ["Hi"])
        assert run(data) == "<think>\nLet me\n</think>\n\nHi"

    def test_answer_only_has_no_markers(self):
        data = reasoning_stream([], ["Hello", " world"])
        assert run(data) == "Hello world"

    def test_reasoning_only_closed_by_finish(self):
        data = sse(chunk(reasoning="foo"), chunk(finish="stop"), "[DONE]")
        assert run(data) == "<think>\nfoo\n</think>\n\n"

    def test_reasoning_only_closed_by_done(self):
        data = sse(chunk(reasoning="foo"), "[DONE]")
        assert run(data) == OPEN_MARKER + "foo" + CLOSE_MARKER

    def test_reasoning_only_closed_at_end_of_stream(self):
        r = ReasoningReassembler()
        out = r.feed(sse(chunk(reasoning="foo")))
        assert out == OPEN_MARKER + "foo"
        assert r.phase is Phase.IN_REASONING
        assert r.finish() == CLOSE_MARKER
        assert r.phase is Phase.IN_ANSWER

    def test_second_finish_signal_does_not_close_twice(self):
        data = sse(chunk(reasoning="a"), chunk(finish="stop"), chunk(finish="stop"), "[DONE]")
        out = run(data)
        assert out.count(CLOSE_MARKER) == 1

    def test_events_after_done_are_ignored(self):
        data = sse(chunk(content="a"), "[DONE]", chunk(content="b"))
        assert run(data) == "a"

    def test_reasoning_before_answer_within_one_event(self):
        data = sse(chunk(reasoning="r", content="c"), "[DONE]")
        assert run(data) == OPEN_MARKER + "r" + CLOSE_MARKER + "c"

    def test_late_first_reasoning_opens_the_span(self):
        data = sse(chunk(content="a"), chunk(reasoning="r"), chunk(content="b"), "[DONE]")
        assert run(data) == "a" + OPEN_MARKER + "r" + CLOSE_MARKER + "b"

    def test_reasoning_after_close_is_verbatim(self):
        data = sse(chunk(reasoning="r1"), chunk(content="a"), chunk(reasoning="r2"), "[DONE]")
        out = run(data)
        assert out == OPEN_MARKER + "r1" + CLOSE_MARKER + "a" + "r2"
        assert out.count(OPEN_MARKER) == 1

    def test_malformed_record_is_skipped(self):
        data = sse(chunk(content="a")) + b"data: {oops\n\n" + sse(chunk(content="b"))
        assert run(data) == "ab"

    def test_phases(self):
        r = ReasoningReassembler()
        assert r.phase is Phase.IDLE
        r.feed(sse(chunk(reasoning="x")))
        assert r.phase is Phase.IN_REASONING
        r.feed(sse(chunk(content="y")))
        assert r.phase is Phase.IN_ANSWER


# ===========================================================================
# Byte handling
# ===========================================================================

class TestReassemblerBuffering:

    def test_line_split_across_chunks(self):
        data = sse(chunk(content="hello"))
        r = ReasoningReassembler()
        assert r.feed(data[:10]) == ""
        assert r.buffered
        assert r.feed(data[10:]) == "hello"

    def test_multibyte_character_split(self):
        data = sse(chunk(content="héllo ✓"))
        cut = data.index("é".encode()) + 1
        assert run([data[:cut], data[cut:]]) == "héllo ✓"

    def test_crlf_line_endings(self):
        data = sse(chunk(reasoning="r"), chunk(content="c")).replace(b"\n", b"\r\n")
        assert run(data) == OPEN_MARKER + "r" + CLOSE_MARKER + "c"

    def test_unterminated_trailing_record_is_flushed(self):
        r = ReasoningReassembler()
        tail = ("data: " + json.dumps(chunk(reasoning="r", content="c"))).encode()
        assert r.feed(tail) == ""
        assert r.finish() == OPEN_MARKER + "r" + CLOSE_MARKER + "c"

    def test_unparseable_tail_still_closes_span(self):
        r = ReasoningReassembler()
        r.feed(sse(chunk(reasoning="r")) + b"data: {trunc")
        assert r.finish() == CLOSE_MARKER

    def test_finish_is_idempotent(self):
        r = ReasoningReassembler()
        r.feed(sse(chunk(reasoning="r")))
        assert r.finish() == CLOSE_MARKER
        assert r.finish() == ""

    def test_feed_after_finish_raises(self):
        r = ReasoningReassembler()
        r.finish()
        with pytest.raises(InvalidStateError):
            r.feed(b"data: [DONE]\n")

    def test_reset_allows_reuse(self):
        r = ReasoningReassembler()
        r.feed(sse(chunk(reasoning="r")) + b"data: {partial")
        r.reset()
        assert r.buffered == ""
        assert r.phase is Phase.IDLE
        assert r.feed(sse(chunk(content="fresh"))) == "fresh"


# ===========================================================================
# Properties
# ===========================================================================

class TestReassemblerProperties:

    @given(data=st.data(), script=any_script)
    @settings(max_examples=75)
    def test_output_independent_of_chunking(self, data, script):
        encoded = sse(*script, chunk(finish="stop"), "[DONE]")
        pieces = data.draw(byte_splits(encoded))
        assert run(pieces) == run(encoded)

    @given(data=st.data(), script=ordered_script)
    @settings(max_examples=75)
    def test_ordered_stream_has_single_span(self, data, script):
        reasoning, answer = script
        encoded = reasoning_stream(reasoning, answer)
        out = run(data.draw(byte_splits(encoded)))

        expected = "".join(answer)
        if reasoning:
            expected = OPEN_MARKER + "".join(reasoning) + CLOSE_MARKER + expected
        assert out == expected

    @given(script=any_script)
    def test_markers_balanced(self, script):
        out = run(sse(*script))
        opens = out.count(OPEN_MARKER)
        assert opens <= 1
        assert out.count(CLOSE_MARKER) == opens


# ===========================================================================
# Async transform stage
# ===========================================================================

async def _aiter(chunks):
    for c in chunks:
        yield c


class TestReassembleStage:

    def test_yields_delimited_text(self):
        data = reasoning_stream(["a", "b"], ["c"])

        async def collect():
            return [t async for t in reassemble(_aiter([data[:7], data[7:]]))]

        assert "".join(asyncio.run(collect())) == OPEN_MARKER + "ab" + CLOSE_MARKER + "c"

    def test_closing_early_releases_buffer(self):
        r = ReasoningReassembler()
        data = sse(chunk(reasoning="r")) + b"data: {partial"

        async def consume_one():
            stage = reassemble(_aiter([data, sse(chunk(content="never"))]), r)
            first = await stage.__anext__()
            assert r.buffered
            await stage.aclose()
            return first

        assert asyncio.run(consume_one()) == OPEN_MARKER + "r"
        assert r.buffered == ""
        assert r.phase is Phase.IDLE
