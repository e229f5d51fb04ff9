"""Chat transports: where a workspace gets its delimited text stream from.

A transport turns an assembled context into an async stream of delimited
text (reasoning inside one ``<think>`` span, then the answer).  Two are
built in:

* :class:`UpstreamTransport` talks to the model API directly and
  reassembles the deltas in-process.
* :class:`HttpTransport` posts to a running thinktree server's
  ``/api/chat`` route, which already streams delimited text.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence
from typing import Protocol, runtime_checkable

import httpx

from thinktree.llm.client import ReasoningChatClient
from thinktree.llm.errors import (
    LLMAuthError,
    LLMRateLimitError,
    UpstreamConnectionError,
    UpstreamStatusError,
)
from thinktree.models.message import ChatTurn

logger = logging.getLogger(__name__)


@runtime_checkable
class ChatTransport(Protocol):
    """Protocol for pluggable sources of delimited text.

    Implementations raise :class:`~thinktree.llm.errors.LLMClientError`
    subclasses for upstream failures; the workspace turns those into the
    canned fallback response.
    """

    def stream(self, messages: Sequence[ChatTurn]) -> AsyncIterator[str]:
        """Stream delimited text for *messages*."""
        ...


class UpstreamTransport:
    """Stream directly from the model API through a ReasoningChatClient."""

    def __init__(self, client: ReasoningChatClient, *, model: str | None = None) -> None:
        self._client = client
        self._model = model

    def stream(self, messages: Sequence[ChatTurn]) -> AsyncIterator[str]:
        return self._client.iter_reasoning(
            [turn.to_dict() for turn in messages], model=self._model
        )

    async def aclose(self) -> None:
        await self._client.aclose()


class HttpTransport:
    """Stream from a thinktree server's ``POST /api/chat`` route."""

    def __init__(
        self,
        server_url: str,
        *,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = server_url.rstrip("/") + "/api/chat"
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def stream(self, messages: Sequence[ChatTurn]) -> AsyncIterator[str]:
        payload = {"messages": [turn.to_dict() for turn in messages]}
        try:
            async with self._client.stream("POST", self._url, json=payload) as response:
                if not response.is_success:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise self._status_error(response.status_code, body)
                async for text in response.aiter_text():
                    if text:
                        yield text
        except httpx.HTTPError as exc:
            raise UpstreamConnectionError(f"Cannot reach server {self._url}: {exc}") from exc

    @staticmethod
    def _status_error(status_code: int, body: str) -> Exception:
        if status_code in (401, 403):
            return LLMAuthError(f"Authentication failed: HTTP {status_code} - {body}")
        if status_code == 429:
            return LLMRateLimitError(f"Rate limited: HTTP 429 - {body}")
        return UpstreamStatusError(status_code, body)

    async def aclose(self) -> None:
        await self._client.aclose()
