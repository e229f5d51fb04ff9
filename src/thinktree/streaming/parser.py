"""Incremental response parser: delimited text -> (reasoning, content).

Called with the *cumulative* buffer after every received chunk, so it must
cope with a span that has opened but not yet closed, and with a tag that
is cut in half at the end of the buffer.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from thinktree.streaming.delimiters import CLOSE_TAG, OPEN_TAG

_SPAN_RE = re.compile(
    re.escape(OPEN_TAG) + r"(.*?)" + re.escape(CLOSE_TAG),
    re.DOTALL | re.IGNORECASE,
)


@dataclass(frozen=True)
class ParsedResponse:
    """Reasoning and visible answer extracted from a delimited buffer."""

    reasoning: str | None
    content: str


def _strip_partial_tag(text: str, tag: str) -> str:
    """Remove a proper prefix of *tag* dangling at the end of *text*."""
    lowered = text.lower()
    for size in range(len(tag) - 1, 0, -1):
        if lowered.endswith(tag[:size]):
            return text[:-size]
    return text


def parse_response(buffer: str, *, final: bool = False) -> ParsedResponse:
    """Split *buffer* into reasoning spans and answer content.

    Args:
        buffer: Everything received so far for one response.
        final: True once the stream is complete.  While False, an unclosed
            trailing span is reported as reasoning-in-progress and a
            half-received tag at the end of the buffer is withheld.

    Returns:
        ParsedResponse where ``reasoning`` is every span (trimmed) joined by a
        blank line, or None when the buffer holds no span, and ``content`` is
        the text outside spans, trimmed.
    """
    spans = [m.strip() for m in _SPAN_RE.findall(buffer)]
    outside = _SPAN_RE.sub("", buffer)

    open_at = outside.lower().rfind(OPEN_TAG)
    if open_at != -1:
        pending = outside[open_at + len(OPEN_TAG):]
        outside = outside[:open_at]
        if not final:
            pending = _strip_partial_tag(pending, CLOSE_TAG)
        spans.append(pending.strip())
    elif not final:
        outside = _strip_partial_tag(outside, OPEN_TAG)

    reasoning = "\n\n".join(spans) if spans else None
    return ParsedResponse(reasoning=reasoning, content=outside.strip())
