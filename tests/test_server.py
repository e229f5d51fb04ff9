"""Tests for the FastAPI server: chat streaming proxy and thread routes."""

from __future__ import annotations

import httpx
import pytest
import tenacity
from fastapi.testclient import TestClient

from tests.helpers import reasoning_stream
from thinktree._version import __version__
from thinktree.llm import ReasoningChatClient
from thinktree.models import ThinkTreeConfig
from thinktree.server import create_app
from thinktree.streaming import CLOSE_MARKER, OPEN_MARKER


def _client_for(handler) -> ReasoningChatClient:
    return ReasoningChatClient(
        api_key="test-key",
        base_url="http://upstream",
        max_retries=2,
        transport=httpx.MockTransport(handler),
        retry_wait=tenacity.wait_none(),
    )


@pytest.fixture
def make_api(store):
    """Build a TestClient around an app with an injected upstream handler."""

    def _make(handler=None, config: ThinkTreeConfig | None = None) -> TestClient:
        upstream = _client_for(handler) if handler is not None else None
        app = create_app(
            config or ThinkTreeConfig(db_path=":memory:"), client=upstream, store=store
        )
        return TestClient(app)

    return _make


# ===========================================================================
# Chat
# ===========================================================================

class TestChatRoute:

    def test_streams_delimited_text(self, make_api):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = request.content
            return httpx.Response(200, content=reasoning_stream(["Let me"], ["Hi", "!"]))

        with make_api(handler) as api:
            response = api.post(
                "/api/chat", json={"messages": [{"role": "user", "content": "hello"}]}
            )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert response.headers["cache-control"] == "no-cache"
        assert response.text == OPEN_MARKER + "Let me" + CLOSE_MARKER + "Hi!"
        assert b'"stream":true' in seen["body"].replace(b" ", b"")

    @pytest.mark.parametrize(
        "status, expected",
        [(401, 401), (429, 429), (400, 400), (503, 503)],
    )
    def test_upstream_errors_become_json(self, make_api, status, expected):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status, text="upstream says no")

        with make_api(handler) as api:
            response = api.post(
                "/api/chat", json={"messages": [{"role": "user", "content": "hello"}]}
            )

        assert response.status_code == expected
        assert "error" in response.json()

    def test_unreachable_upstream_is_bad_gateway(self, make_api):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with make_api(handler) as api:
            response = api.post(
                "/api/chat", json={"messages": [{"role": "user", "content": "hello"}]}
            )
        assert response.status_code == 502

    @pytest.mark.parametrize(
        "body",
        [{}, {"messages": []}, {"messages": [{"role": "robot", "content": "x"}]}],
    )
    def test_invalid_request(self, make_api, body):
        with make_api(lambda r: httpx.Response(200)) as api:
            response = api.post("/api/chat", json=body)
        assert response.status_code == 400
        assert "error" in response.json()

    def test_missing_api_key(self, make_api):
        with make_api() as api:
            response = api.post(
                "/api/chat", json={"messages": [{"role": "user", "content": "hello"}]}
            )
        assert response.status_code == 500
        assert "API key" in response.json()["error"]


# ===========================================================================
# Threads and messages
# ===========================================================================

class TestThreadRoutes:

    def test_thread_lifecycle(self, make_api):
        with make_api() as api:
            created = api.post("/api/threads", json={"title": "Research"}).json()
            thread_id = created["id"]
            assert created["title"] == "Research"

            message = api.post(
                "/api/messages",
                json={
                    "thread_id": thread_id,
                    "role": "assistant",
                    "content": "Answer",
                    "reasoning": "Thoughts",
                },
            )
            assert message.status_code == 200
            assert message.json()["reasoning"] == "Thoughts"

            fetched = api.get(f"/api/threads/{thread_id}").json()
            assert [m["content"] for m in fetched["messages"]] == ["Answer"]

            renamed = api.patch(f"/api/threads/{thread_id}", json={"title": "Renamed"})
            assert renamed.json()["title"] == "Renamed"

            listing = api.get("/api/threads").json()
            assert [t["id"] for t in listing] == [thread_id]

            assert api.delete(f"/api/threads/{thread_id}").json() == {"success": True}
            assert api.get(f"/api/threads/{thread_id}").status_code == 404

    def test_default_title(self, make_api):
        with make_api() as api:
            assert api.post("/api/threads", json={}).json()["title"] == "New conversation"

    def test_missing_thread(self, make_api):
        with make_api() as api:
            assert api.get("/api/threads/nope").json() == {"error": "Thread not found"}
            assert api.delete("/api/threads/nope").status_code == 404
            assert api.patch("/api/threads/nope", json={"title": "x"}).status_code == 404
            response = api.post(
                "/api/messages",
                json={"thread_id": "nope", "role": "user", "content": "hi"},
            )
            assert response.status_code == 404

    def test_message_validation(self, make_api):
        with make_api() as api:
            thread_id = api.post("/api/threads", json={}).json()["id"]
            response = api.post(
                "/api/messages", json={"thread_id": thread_id, "role": "user", "content": ""}
            )
            assert response.status_code == 400


class TestHealth:

    def test_health(self, make_api):
        with make_api() as api:
            assert api.get("/health").json() == {"status": "ok", "version": __version__}
