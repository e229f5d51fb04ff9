"""Tests for the thinktree.llm package.

Tests cover:
- ReasoningChatClient: request format, SSE reassembly, retry behavior,
  auth/status errors, connection failures, env config
- Transports: UpstreamTransport, HttpTransport, protocol conformance
- Error hierarchy: inheritance, error attributes
"""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest
import tenacity

from tests.helpers import ScriptedTransport, chunk, reasoning_stream, sse
from thinktree.exceptions import ThinkTreeError
from thinktree.llm import (
    ChatTransport,
    HttpTransport,
    LLMAuthError,
    LLMClientError,
    LLMConfigError,
    LLMRateLimitError,
    ReasoningChatClient,
    UpstreamConnectionError,
    UpstreamStatusError,
    UpstreamTransport,
)
from thinktree.models import ChatTurn, ThinkTreeConfig
from thinktree.streaming import CLOSE_MARKER, OPEN_MARKER

MESSAGES = [{"role": "user", "content": "Hello"}]


# ---------------------------------------------------------------------------
# Fixtures and helpers
# ---------------------------------------------------------------------------

def _make_client(handler, *, max_retries: int = 3, **kwargs) -> ReasoningChatClient:
    """Create a client on a MockTransport that never sleeps between retries."""
    return ReasoningChatClient(
        api_key="test-key",
        base_url="http://test-api",
        max_retries=max_retries,
        transport=httpx.MockTransport(handler),
        retry_wait=tenacity.wait_none(),
        **kwargs,
    )


def _collect(client: ReasoningChatClient, messages=MESSAGES, **kwargs) -> str:
    async def main():
        try:
            return "".join([t async for t in client.iter_reasoning(messages, **kwargs)])
        finally:
            await client.aclose()

    return asyncio.run(main())


class _Interrupted(httpx.AsyncByteStream):
    """Response body that drops the connection after *head*."""

    def __init__(self, head: bytes) -> None:
        self._head = head

    async def __aiter__(self):
        yield self._head
        raise httpx.ReadError("connection reset by peer")

    async def aclose(self) -> None:
        pass


# ===========================================================================
# Error hierarchy tests
# ===========================================================================

class TestErrorHierarchy:

    @pytest.mark.parametrize(
        "error_class",
        [LLMConfigError, LLMAuthError, LLMRateLimitError, UpstreamStatusError,
         UpstreamConnectionError],
    )
    def test_inherits_client_error(self, error_class):
        assert issubclass(error_class, LLMClientError)
        assert issubclass(error_class, ThinkTreeError)

    def test_rate_limit_error_has_retry_after(self):
        err = LLMRateLimitError("rate limited", retry_after=30.0)
        assert err.retry_after == 30.0
        assert "30.0s" in str(err)

    def test_status_error_attributes(self):
        err = UpstreamStatusError(502, "bad gateway")
        assert err.status_code == 502
        assert err.body == "bad gateway"
        assert "502" in str(err)


# ===========================================================================
# ReasoningChatClient tests
# ===========================================================================

class TestClientStreaming:

    def test_reasoning_then_answer(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=reasoning_stream(["Let", " me"], ["Hi"]))

        out = _collect(_make_client(handler))
        assert out == OPEN_MARKER + "Let me" + CLOSE_MARKER + "Hi"

    def test_answer_only(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=reasoning_stream([], ["plain"]))

        assert _collect(_make_client(handler)) == "plain"

    def test_request_format(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["payload"] = json.loads(request.content)
            captured["headers"] = dict(request.headers)
            captured["url"] = str(request.url)
            return httpx.Response(200, content=sse("[DONE]"))

        _collect(_make_client(handler), model="other-model", temperature=0.2)

        payload = captured["payload"]
        assert payload["model"] == "other-model"
        assert payload["messages"] == MESSAGES
        assert payload["stream"] is True
        assert payload["temperature"] == 0.2
        assert captured["headers"]["authorization"] == "Bearer test-key"
        assert captured["url"] == "http://test-api/chat/completions"

    def test_default_model(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured.update(json.loads(request.content))
            return httpx.Response(200, content=sse("[DONE]"))

        _collect(_make_client(handler, default_model="deepseek-reasoner"))
        assert captured["model"] == "deepseek-reasoner"

    def test_interrupted_stream_is_not_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(200, stream=_Interrupted(sse(chunk(reasoning="half"))))

        client = _make_client(handler)
        received: list[str] = []

        async def main():
            try:
                async for text in client.iter_reasoning(MESSAGES):
                    received.append(text)
            finally:
                await client.aclose()

        with pytest.raises(UpstreamConnectionError):
            asyncio.run(main())
        assert received == [OPEN_MARKER + "half"]
        assert len(calls) == 1


class TestClientRetry:

    def test_retries_5xx_then_succeeds(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            if len(calls) < 3:
                return httpx.Response(503, text="overloaded")
            return httpx.Response(200, content=reasoning_stream([], ["ok"]))

        assert _collect(_make_client(handler)) == "ok"
        assert len(calls) == 3

    def test_rate_limit_exhausts_retries(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(429, headers={"Retry-After": "7"}, text="slow down")

        with pytest.raises(LLMRateLimitError) as exc_info:
            _collect(_make_client(handler))
        assert exc_info.value.retry_after == 7.0
        assert len(calls) == 3

    def test_unparseable_retry_after(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, headers={"Retry-After": "soon"})

        with pytest.raises(LLMRateLimitError) as exc_info:
            _collect(_make_client(handler, max_retries=1))
        assert exc_info.value.retry_after is None

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_error_not_retried(self, status):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(status, text="bad key")

        with pytest.raises(LLMAuthError):
            _collect(_make_client(handler))
        assert len(calls) == 1

    def test_client_error_not_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(400, text="bad request")

        with pytest.raises(UpstreamStatusError) as exc_info:
            _collect(_make_client(handler))
        assert exc_info.value.status_code == 400
        assert exc_info.value.body == "bad request"
        assert len(calls) == 1

    def test_connection_error_retried_then_wrapped(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(UpstreamConnectionError):
            _collect(_make_client(handler))
        assert len(calls) == 3

    def test_connection_recovers(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            if len(calls) == 1:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, content=reasoning_stream(["r"], ["a"]))

        assert _collect(_make_client(handler)) == OPEN_MARKER + "r" + CLOSE_MARKER + "a"


class TestClientConfig:

    def test_missing_api_key(self):
        with pytest.raises(LLMConfigError):
            ReasoningChatClient()

    def test_env_api_key_and_base_url(self, monkeypatch):
        monkeypatch.setenv("THINKTREE_API_KEY", "env-key")
        monkeypatch.setenv("THINKTREE_BASE_URL", "http://env-api/")
        client = ReasoningChatClient()
        assert client.base_url == "http://env-api"
        asyncio.run(client.aclose())

    def test_default_base_url(self):
        client = ReasoningChatClient(api_key="k")
        assert client.base_url == "https://api.deepseek.com"
        assert client.default_model == "deepseek-reasoner"
        asyncio.run(client.aclose())

    def test_from_config(self):
        config = ThinkTreeConfig(api_key="cfg-key", base_url="http://cfg", model="m1")
        client = ReasoningChatClient.from_config(config)
        assert client.base_url == "http://cfg"
        assert client.default_model == "m1"
        asyncio.run(client.aclose())

    def test_config_from_env(self, monkeypatch):
        monkeypatch.setenv("THINKTREE_MODEL", "env-model")
        monkeypatch.setenv("THINKTREE_TIMEOUT", "5")
        config = ThinkTreeConfig.from_env(model=None, db_path="x.db")
        assert config.model == "env-model"
        assert config.timeout == 5.0
        assert config.db_path == "x.db"


# ===========================================================================
# Transport tests
# ===========================================================================

class TestUpstreamTransport:

    def test_streams_client_text(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured.update(json.loads(request.content))
            return httpx.Response(200, content=reasoning_stream(["r"], ["a"]))

        transport = UpstreamTransport(_make_client(handler), model="pinned")

        async def main():
            try:
                turns = [ChatTurn("user", "q"), ChatTurn("assistant", "a"), ChatTurn("user", "b")]
                return "".join([t async for t in transport.stream(turns)])
            finally:
                await transport.aclose()

        assert asyncio.run(main()) == OPEN_MARKER + "r" + CLOSE_MARKER + "a"
        assert captured["model"] == "pinned"
        assert [m["role"] for m in captured["messages"]] == ["user", "assistant", "user"]

    def test_protocol_conformance(self):
        transport = UpstreamTransport(_make_client(lambda r: httpx.Response(200)))
        assert isinstance(transport, ChatTransport)
        assert isinstance(ScriptedTransport(), ChatTransport)
        asyncio.run(transport.aclose())


class TestHttpTransport:

    def _stream(self, handler) -> str:
        transport = HttpTransport("http://server/", transport=httpx.MockTransport(handler))

        async def main():
            try:
                return "".join([t async for t in transport.stream([ChatTurn("user", "q")])])
            finally:
                await transport.aclose()

        return asyncio.run(main())

    def test_posts_messages_and_streams_text(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["payload"] = json.loads(request.content)
            return httpx.Response(200, text="<think>\nr\n</think>\n\nanswer")

        assert self._stream(handler) == "<think>\nr\n</think>\n\nanswer"
        assert captured["url"] == "http://server/api/chat"
        assert captured["payload"] == {"messages": [{"role": "user", "content": "q"}]}

    def test_status_errors(self):
        with pytest.raises(UpstreamStatusError) as exc_info:
            self._stream(lambda r: httpx.Response(502, json={"error": "upstream down"}))
        assert exc_info.value.status_code == 502
        assert "upstream down" in exc_info.value.body

        with pytest.raises(LLMAuthError):
            self._stream(lambda r: httpx.Response(401, json={"error": "bad key"}))
        with pytest.raises(LLMRateLimitError):
            self._stream(lambda r: httpx.Response(429, json={"error": "slow"}))

    def test_unreachable_server(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(UpstreamConnectionError):
            self._stream(handler)
