"""Streaming primitives: upstream event decoding, delimiter reassembly, parsing."""

from thinktree.streaming.delimiters import CLOSE_MARKER, CLOSE_TAG, OPEN_MARKER, OPEN_TAG
from thinktree.streaming.events import UpstreamEvent, decode_event_line, event_from_chunk
from thinktree.streaming.parser import ParsedResponse, parse_response
from thinktree.streaming.reassembler import Phase, ReasoningReassembler, reassemble

__all__ = [
    "CLOSE_MARKER",
    "CLOSE_TAG",
    "OPEN_MARKER",
    "OPEN_TAG",
    "ParsedResponse",
    "Phase",
    "ReasoningReassembler",
    "UpstreamEvent",
    "decode_event_line",
    "event_from_chunk",
    "parse_response",
    "reassemble",
]
