"""Shared builders for upstream payloads and a scripted chat transport."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Sequence

from thinktree.models.message import ChatTurn


def chunk(
    *,
    reasoning: str | None = None,
    content: str | None = None,
    finish: str | None = None,
) -> dict:
    """A realistic streaming chat-completion chunk."""
    delta: dict = {}
    if reasoning is not None:
        delta["reasoning_content"] = reasoning
    if content is not None:
        delta["content"] = content
    return {
        "id": "chatcmpl-test",
        "object": "chat.completion.chunk",
        "model": "deepseek-reasoner",
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish}],
    }


def sse(*payloads: dict | str) -> bytes:
    """Encode payloads as SSE ``data:`` records; a str is sent verbatim."""
    lines = []
    for payload in payloads:
        data = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False)
        lines.append(f"data: {data}\n\n")
    return "".join(lines).encode("utf-8")


def reasoning_stream(reasoning: list[str], answer: list[str], *, done: bool = True) -> bytes:
    """Reasoning deltas, then answer deltas, a finish chunk and [DONE]."""
    payloads: list[dict | str] = [chunk(reasoning=r) for r in reasoning]
    payloads += [chunk(content=a) for a in answer]
    payloads.append(chunk(finish="stop"))
    if done:
        payloads.append("[DONE]")
    return sse(*payloads)


class ScriptedTransport:
    """ChatTransport that replays scripted delimited text.

    Args:
        texts: Pieces yielded in order for every request.
        error: Raised after all *texts* were yielded, if set.
        gate: If set, the stream waits on it before every piece after the
            first, so a test can observe or cancel a half-streamed reply.
    """

    def __init__(
        self,
        texts: Sequence[str] = (),
        *,
        error: Exception | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.texts = list(texts)
        self.error = error
        self.gate = gate
        self.requests: list[list[ChatTurn]] = []
        self.closed_streams = 0

    async def stream(self, messages: Sequence[ChatTurn]) -> AsyncIterator[str]:
        self.requests.append(list(messages))
        try:
            for i, text in enumerate(self.texts):
                if i and self.gate is not None:
                    await self.gate.wait()
                yield text
            if self.error is not None:
                raise self.error
        finally:
            self.closed_streams += 1

    async def aclose(self) -> None:
        pass
