"""Upstream / LLM error hierarchy.

All LLM errors inherit from ThinkTreeError for consistent exception handling.
"""

from __future__ import annotations

from thinktree.exceptions import ThinkTreeError

class LLMClientError(ThinkTreeError):
    """Base for all upstream client errors."""

class LLMConfigError(LLMClientError):
    """Missing or invalid client configuration (e.g., no API key)."""

class LLMAuthError(LLMClientError):
    """Authentication failed (401/403)."""

class LLMRateLimitError(LLMClientError):
    """Rate limited by the API (429).

    Attributes:
        retry_after: Seconds to wait before retrying (from Retry-After header),
            or None if not provided.
    """

    def __init__(self, message: str = "Rate limited", retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        if retry_after is not None:
            message = f"{message} (retry after {retry_after}s)"
        super().__init__(message)

class UpstreamStatusError(LLMClientError):
    """The upstream answered with a non-success HTTP status."""

    def __init__(self, status_code: int, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Upstream returned HTTP {status_code}: {body[:200]}")

class UpstreamConnectionError(LLMClientError):
    """The connection failed or dropped before the stream completed."""
