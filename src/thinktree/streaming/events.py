"""Decoding of upstream server-sent event records.

The upstream speaks the OpenAI streaming chat-completion dialect: one
``data: <json>`` line per chunk, terminated by ``data: [DONE]``.  Reasoning
models put their deliberation in ``delta.reasoning_content`` (DeepSeek) or
``delta.reasoning`` (several OpenAI-compatible gateways), and the answer in
``delta.content``.

Decoding is best-effort: anything that is not a well-formed data record
yields ``None`` and is skipped by the caller.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_MARKER = "[DONE]"


@dataclass(frozen=True)
class UpstreamEvent:
    """One decoded upstream record.

    Attributes:
        reasoning: Reasoning delta text, if any.
        answer: Answer delta text, if any.
        finished: The choice carried a non-null ``finish_reason``.
        done: The record was the ``[DONE]`` end-of-stream marker.
    """

    reasoning: str | None = None
    answer: str | None = None
    finished: bool = False
    done: bool = False


def _text(value: Any) -> str | None:
    if isinstance(value, str) and value:
        return value
    return None


def event_from_chunk(payload: Any) -> UpstreamEvent | None:
    """Build an event from a parsed chat-completion chunk.

    Returns None when the payload has no usable first choice.
    """
    if not isinstance(payload, dict):
        return None
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    choice = choices[0]
    if not isinstance(choice, dict):
        return None
    delta = choice.get("delta")
    if not isinstance(delta, dict):
        delta = {}
    reasoning = _text(delta.get("reasoning_content")) or _text(delta.get("reasoning"))
    return UpstreamEvent(
        reasoning=reasoning,
        answer=_text(delta.get("content")),
        finished=bool(choice.get("finish_reason")),
    )


def decode_event_line(line: str) -> UpstreamEvent | None:
    """Decode one complete SSE line.

    Blank lines, comments, ``event:`` / ``id:`` fields and undecodable JSON
    all return None.
    """
    stripped = line.strip()
    if not stripped.startswith(DATA_PREFIX):
        return None
    data = stripped[len(DATA_PREFIX):].strip()
    if not data:
        return None
    if data == DONE_MARKER:
        return UpstreamEvent(done=True)
    try:
        payload = json.loads(data)
    except json.JSONDecodeError:
        logger.debug("Skipping malformed upstream record: %.80s", data)
        return None
    return event_from_chunk(payload)
