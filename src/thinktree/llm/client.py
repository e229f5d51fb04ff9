"""Streaming OpenAI-compatible httpx client with tenacity retry.

Provides an async HTTP client for chat completion APIs of reasoning
models (DeepSeek R1 and compatible gateways).  Reads configuration from
constructor arguments or environment variables.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import aclosing, asynccontextmanager
from typing import Any

import httpx
import tenacity

from thinktree.llm.errors import (
    LLMAuthError,
    LLMConfigError,
    LLMRateLimitError,
    UpstreamConnectionError,
    UpstreamStatusError,
)
from thinktree.models.config import DEFAULT_BASE_URL, DEFAULT_MODEL, ThinkTreeConfig
from thinktree.streaming.reassembler import reassemble

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS_CODES = {500, 502, 503, 504}
_AUTH_ERROR_STATUS_CODES = {401, 403}


def _is_retryable(exc: BaseException) -> bool:
    """Check if an exception is retryable.

    Retryable: 429, 500, 502, 503, 504, connection errors.
    Not retryable: 401, 403, 400, other client errors.
    """
    if isinstance(exc, LLMAuthError):
        return False
    if isinstance(exc, LLMRateLimitError):
        return True
    if isinstance(exc, UpstreamStatusError):
        return exc.status_code in _RETRYABLE_STATUS_CODES
    return isinstance(exc, (httpx.ConnectError, httpx.ConnectTimeout))


def _parse_retry_after(raw: str | None) -> float | None:
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


class ReasoningChatClient:
    """Async httpx client for streaming chat completions.

    Only the opening of the stream is retried (connection errors, 429 and
    5xx before the first byte).  Once bytes flow, a dropped connection is
    reported as :class:`UpstreamConnectionError` and never replayed.

    Usage::

        async with ReasoningChatClient(api_key="sk-...") as client:
            async for text in client.iter_reasoning(messages):
                print(text, end="")
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        default_model: str = DEFAULT_MODEL,
        timeout: float = 120.0,
        max_retries: int = 3,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_wait: tenacity.wait.wait_base | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_key: API key. Falls back to THINKTREE_API_KEY env var.
            base_url: API base URL. Falls back to THINKTREE_BASE_URL env var,
                then to https://api.deepseek.com.
            default_model: Default model for chat requests.
            timeout: Request timeout in seconds.
            max_retries: Maximum number of attempts for retryable errors.
            transport: Optional httpx transport (tests pass a MockTransport).
            retry_wait: Optional tenacity wait strategy between attempts.

        Raises:
            LLMConfigError: If no API key is provided or found in environment.
        """
        self._api_key = api_key or os.environ.get("THINKTREE_API_KEY", "")
        if not self._api_key:
            raise LLMConfigError(
                "No API key provided. Pass api_key= or set THINKTREE_API_KEY "
                "environment variable."
            )
        self._base_url = (
            base_url or os.environ.get("THINKTREE_BASE_URL", DEFAULT_BASE_URL)
        ).rstrip("/")
        self._default_model = default_model
        self._max_retries = max_retries
        self._retry_wait = retry_wait or (
            tenacity.wait_exponential(multiplier=1, min=1, max=30)
            + tenacity.wait_random(0, 2)
        )
        self._client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={
                "Content-Type": "application/json",
                "Accept": "text/event-stream",
                "Authorization": f"Bearer {self._api_key}",
            },
        )

    @classmethod
    def from_config(cls, config: ThinkTreeConfig, **kwargs: Any) -> ReasoningChatClient:
        return cls(
            api_key=config.api_key,
            base_url=config.base_url,
            default_model=config.model,
            timeout=config.timeout,
            max_retries=config.max_retries,
            **kwargs,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def default_model(self) -> str:
        return self._default_model

    @asynccontextmanager
    async def stream_chat(
        self,
        messages: list[dict[str, str]],
        *,
        model: str | None = None,
        **kwargs: Any,
    ) -> AsyncIterator[httpx.Response]:
        """Open a streaming completion and yield the response.

        The response's status has already been checked; its body is the
        raw server-sent event stream.  The response is closed on exit.

        Raises:
            LLMAuthError: On 401/403 (no retry).
            LLMRateLimitError: On 429 after all retries exhausted.
            UpstreamStatusError: On any other non-success status.
            UpstreamConnectionError: If the connection cannot be opened.
        """
        payload: dict[str, Any] = {
            "model": model or self._default_model,
            "messages": messages,
            "stream": True,
        }
        payload.update(kwargs)

        retryer = tenacity.AsyncRetrying(
            retry=tenacity.retry_if_exception(_is_retryable),
            wait=self._retry_wait,
            stop=tenacity.stop_after_attempt(self._max_retries),
            before_sleep=tenacity.before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            response = await retryer(self._open_stream, payload)
        except httpx.HTTPError as exc:
            raise UpstreamConnectionError(f"Cannot reach upstream: {exc}") from exc

        try:
            yield response
        finally:
            await response.aclose()

    async def _open_stream(self, payload: dict[str, Any]) -> httpx.Response:
        """Send one request and check its status (no retry)."""
        request = self._client.build_request(
            "POST", f"{self._base_url}/chat/completions", json=payload
        )
        response = await self._client.send(request, stream=True)
        if response.is_success:
            return response

        body = (await response.aread()).decode("utf-8", errors="replace")
        await response.aclose()

        if response.status_code in _AUTH_ERROR_STATUS_CODES:
            raise LLMAuthError(
                f"Authentication failed: HTTP {response.status_code} - {body}"
            )
        if response.status_code == 429:
            raise LLMRateLimitError(
                f"Rate limited: HTTP 429 - {body}",
                retry_after=_parse_retry_after(response.headers.get("Retry-After")),
            )
        raise UpstreamStatusError(response.status_code, body)

    async def iter_reasoning(
        self,
        messages: list[dict[str, str]],
        *,
        model: str | None = None,
        **kwargs: Any,
    ) -> AsyncIterator[str]:
        """Stream a completion as delimited text.

        Reasoning is wrapped in one ``<think>`` span ahead of the answer.
        """
        async with self.stream_chat(messages, model=model, **kwargs) as response:
            try:
                async with aclosing(reassemble(response.aiter_bytes())) as texts:
                    async for text in texts:
                        yield text
            except httpx.HTTPError as exc:
                raise UpstreamConnectionError(
                    f"Upstream stream interrupted: {exc}"
                ) from exc

    async def aclose(self) -> None:
        """Close the underlying httpx client."""
        await self._client.aclose()

    async def __aenter__(self) -> ReasoningChatClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()
