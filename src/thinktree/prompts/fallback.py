"""Canned responses served when the upstream fails.

Each response is already delimited, so it goes through the same parser as
a live stream and lands in the thread with reasoning and content split.
"""

from __future__ import annotations

import itertools

FALLBACK_RESPONSES: tuple[str, ...] = (
    "<think>\n"
    "The model service did not answer. I should tell the user plainly and "
    "suggest trying again.\n"
    "</think>\n\n"
    "I couldn't reach the model just now, so this is a placeholder reply. "
    "Your message is saved in this thread; send it again in a moment.",

    "<think>\n"
    "The user asked how branching works.\n"
    "Points to cover:\n"
    "1. Every thread is a node in a tree\n"
    "2. A branch remembers its ancestors up to the fork point\n"
    "3. Siblings never see each other\n"
    "</think>\n\n"
    "**Branches** let you explore side questions without cluttering the "
    "main thread. A branch sees everything its ancestors said up to the "
    "message you branched from, and nothing from its siblings.",

    "<think>\n"
    "Explain how reasoning is displayed.\n"
    "- The reasoning stream is wrapped in think tags\n"
    "- The parser splits it from the answer\n"
    "</think>\n\n"
    "Reasoning models think out loud before answering. That deliberation "
    "is kept separately from the answer, so you can expand it when you "
    "want to see how the model got there.",

    "<think>\n"
    "Show some formatting: a code block and a formula.\n"
    "</think>\n\n"
    "Here's a **code example** in Python:\n\n"
    "```python\n"
    "def fibonacci(n):\n"
    "    return n if n <= 1 else fibonacci(n - 1) + fibonacci(n - 2)\n"
    "```\n\n"
    "And a formula: $x = \\frac{-b \\pm \\sqrt{b^2 - 4ac}}{2a}$",
)


class FallbackResponder:
    """Cycles through canned delimited responses, in order."""

    def __init__(self, responses: tuple[str, ...] = FALLBACK_RESPONSES) -> None:
        if not responses:
            raise ValueError("FallbackResponder needs at least one response")
        self._cycle = itertools.cycle(responses)

    def next_response(self) -> str:
        return next(self._cycle)
