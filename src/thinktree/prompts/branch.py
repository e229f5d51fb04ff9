"""Branch prompts: canned queries, quoting, and branch welcome text.

A branch started from a text selection carries one user message: the
selected excerpt as a Markdown blockquote, a blank line, and the query.
"""

from __future__ import annotations

import enum

from thinktree.models.thread import clip_title

BRANCH_TITLE_LIMIT = 35
FORK_TITLE_LIMIT = 30
WELCOME_QUOTE_LIMIT = 150


class BranchAction(str, enum.Enum):
    """What the user asked for when branching from a selection."""

    EXPLAIN = "explain"
    EXAMPLE = "example"
    CUSTOM = "custom"


BRANCH_PROMPTS: dict[BranchAction, str] = {
    BranchAction.EXPLAIN: "Please explain this passage:",
    BranchAction.EXAMPLE: "Please give an example illustrating this point:",
}

BRANCH_WELCOME_REASONING: str = (
    "The user created a branch to explore an alternative path. I should "
    "acknowledge it and be ready for their new direction."
)


def resolve_prompt(action: BranchAction, custom_prompt: str | None = None) -> str:
    """Return the query text for *action*.

    Raises:
        ValueError: CUSTOM without a non-empty custom prompt.
    """
    if action is BranchAction.CUSTOM:
        if not custom_prompt or not custom_prompt.strip():
            raise ValueError("A custom branch needs a non-empty prompt")
        return custom_prompt.strip()
    return BRANCH_PROMPTS[action]


def format_quote(excerpt: str, query: str) -> str:
    """Quote *excerpt* as a blockquote followed by *query*."""
    return "> " + excerpt.replace("\n", "\n> ") + "\n\n" + query


def branch_title(query: str) -> str:
    return clip_title(query, BRANCH_TITLE_LIMIT)


def fork_title(source_content: str | None) -> str:
    """Title for a plain fork made from a message."""
    if not source_content:
        return "New branch"
    return "Branch: " + source_content[:FORK_TITLE_LIMIT] + "..."


def branch_welcome(source_content: str) -> str:
    """Welcome text for a plain fork, quoting the start of the fork message."""
    quoted = clip_title(source_content, WELCOME_QUOTE_LIMIT)
    return (
        "**Branching from the conversation.**\n\n"
        "You can explore a different direction here while keeping the "
        "original thread intact.\n\n"
        "> *Context from parent:*\n"
        f'> "{quoted}"'
    )
