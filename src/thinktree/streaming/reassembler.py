"""Delimiter reassembler: upstream SSE bytes -> delimited text.

Turns the interleaved reasoning / answer deltas of a streaming
chat-completion into one linear text stream in which the reasoning is
wrapped in exactly one ``<think>`` ... ``</think>`` pair.

The transport delivers opaque byte chunks with no line or even character
alignment, so the reassembler keeps an incremental UTF-8 decoder and the
unterminated tail of the last chunk, and only decodes complete lines.
Concatenated output therefore does not depend on how the input is split.

Per-response state machine::

    IDLE         --reasoning-->  IN_REASONING   (emit OPEN_MARKER first)
    IN_REASONING --answer----->  IN_ANSWER      (emit CLOSE_MARKER first)
    IN_REASONING --finish/end->  IN_ANSWER      (emit CLOSE_MARKER)
    IDLE         --answer----->  IN_ANSWER
    IN_ANSWER    --answer----->  IN_ANSWER

A first reasoning delta that arrives after answer text still opens the
(single) span; reasoning that arrives after the span closed is emitted
verbatim.
"""

from __future__ import annotations

import codecs
import enum
import logging
from collections.abc import AsyncIterable, AsyncIterator

from thinktree.exceptions import InvalidStateError
from thinktree.streaming.delimiters import CLOSE_MARKER, OPEN_MARKER
from thinktree.streaming.events import UpstreamEvent, decode_event_line

logger = logging.getLogger(__name__)


class Phase(str, enum.Enum):
    """Reassembler phase for the current response."""

    IDLE = "idle"
    IN_REASONING = "in_reasoning"
    IN_ANSWER = "in_answer"


class ReasoningReassembler:
    """Push-driven transform, fed once per inbound network chunk.

    Not thread-safe; one instance per response stream.

    Usage::

        r = ReasoningReassembler()
        for chunk in chunks:
            out.write(r.feed(chunk))
        out.write(r.finish())
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._phase = Phase.IDLE
        self._span_opened = False
        self._ended = False
        self._finished = False

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def buffered(self) -> str:
        """Decoded text held back until its line terminator arrives."""
        return self._buffer

    def feed(self, chunk: bytes) -> str:
        """Consume one chunk and return the text it completes."""
        if self._finished:
            raise InvalidStateError("Reassembler already finished; call reset() to reuse it")
        self._buffer += self._decoder.decode(chunk)
        *lines, self._buffer = self._buffer.split("\n")
        out: list[str] = []
        for line in lines:
            self._handle_line(line, out)
        return "".join(out)

    def finish(self) -> str:
        """Flush at end of stream.

        Makes one best-effort attempt to decode a trailing unterminated
        record, then closes a span left open.  Idempotent.
        """
        if self._finished:
            return ""
        out: list[str] = []
        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        if tail.strip():
            self._handle_line(tail, out)
        self._close_span(out)
        self._finished = True
        return "".join(out)

    def reset(self) -> None:
        """Drop all buffered and per-response state."""
        self._decoder.reset()
        self._buffer = ""
        self._phase = Phase.IDLE
        self._span_opened = False
        self._ended = False
        self._finished = False

    def _handle_line(self, line: str, out: list[str]) -> None:
        if self._ended:
            return
        event = decode_event_line(line)
        if event is not None:
            self._apply(event, out)

    def _apply(self, event: UpstreamEvent, out: list[str]) -> None:
        if event.done:
            self._close_span(out)
            self._ended = True
            return
        if event.reasoning:
            if not self._span_opened:
                out.append(OPEN_MARKER)
                self._span_opened = True
                self._phase = Phase.IN_REASONING
            out.append(event.reasoning)
        if event.answer:
            self._close_span(out)
            self._phase = Phase.IN_ANSWER
            out.append(event.answer)
        if event.finished:
            self._close_span(out)

    def _close_span(self, out: list[str]) -> None:
        if self._phase is Phase.IN_REASONING:
            out.append(CLOSE_MARKER)
            self._phase = Phase.IN_ANSWER


async def reassemble(
    chunks: AsyncIterable[bytes],
    reassembler: ReasoningReassembler | None = None,
) -> AsyncIterator[str]:
    """Transform stage: yield delimited text for each inbound byte chunk.

    Chunks are processed strictly in arrival order.  The reassembler's
    buffered state is released when the generator finishes, fails, or is
    closed early (e.g. on cancellation).
    """
    r = reassembler or ReasoningReassembler()
    try:
        async for chunk in chunks:
            text = r.feed(chunk)
            if text:
                yield text
        tail = r.finish()
        if tail:
            yield tail
    finally:
        if r.buffered:
            logger.debug("Discarding %d buffered chars of an unfinished stream", len(r.buffered))
        r.reset()
