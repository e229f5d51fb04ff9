"""Prompt text: branch queries, branch welcome messages, fallback replies."""

from thinktree.prompts.branch import (
    BRANCH_PROMPTS,
    BranchAction,
    branch_title,
    branch_welcome,
    format_quote,
    resolve_prompt,
)
from thinktree.prompts.fallback import FALLBACK_RESPONSES, FallbackResponder

__all__ = [
    "BRANCH_PROMPTS",
    "BranchAction",
    "FALLBACK_RESPONSES",
    "FallbackResponder",
    "branch_title",
    "branch_welcome",
    "format_quote",
    "resolve_prompt",
]
