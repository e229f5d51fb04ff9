"""Reasoning-span delimiters used in the outbound text stream.

The reassembler emits ``OPEN_MARKER`` before the first reasoning delta and
``CLOSE_MARKER`` before the first answer delta (or at end of stream).  The
parser only looks for the bare tags, so surrounding whitespace is cosmetic.
"""

OPEN_TAG = "<think>"
CLOSE_TAG = "</think>"

OPEN_MARKER = f"{OPEN_TAG}\n"
CLOSE_MARKER = f"\n{CLOSE_TAG}\n\n"
