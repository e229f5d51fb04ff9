"""Upstream client infrastructure for ThinkTree.

Provides a streaming OpenAI-compatible HTTP client for reasoning models,
pluggable chat transports, and the upstream error hierarchy.
"""

from thinktree.llm.client import ReasoningChatClient
from thinktree.llm.errors import (
    LLMAuthError,
    LLMClientError,
    LLMConfigError,
    LLMRateLimitError,
    UpstreamConnectionError,
    UpstreamStatusError,
)
from thinktree.llm.transport import ChatTransport, HttpTransport, UpstreamTransport

__all__ = [
    "ReasoningChatClient",
    "ChatTransport",
    "UpstreamTransport",
    "HttpTransport",
    "LLMClientError",
    "LLMConfigError",
    "LLMRateLimitError",
    "LLMAuthError",
    "UpstreamStatusError",
    "UpstreamConnectionError",
]
