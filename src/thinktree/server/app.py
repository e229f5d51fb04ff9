"""FastAPI application: chat streaming proxy and thread persistence routes.

Routes:

* ``POST /api/chat`` streams delimited text (``text/plain``) for a list of
  ``{role, content}`` messages.  Upstream failures that happen before the
  first byte come back as JSON ``{"error": ...}`` with a matching status.
* ``/api/threads`` and ``/api/messages`` expose the thread store.
* ``GET /health`` for liveness checks.
"""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, aclosing, asynccontextmanager
from typing import AsyncIterator, Literal, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from thinktree._version import __version__
from thinktree.exceptions import ThreadNotFoundError
from thinktree.llm.client import ReasoningChatClient
from thinktree.llm.errors import (
    LLMAuthError,
    LLMClientError,
    LLMConfigError,
    LLMRateLimitError,
    UpstreamConnectionError,
    UpstreamStatusError,
)
from thinktree.models.config import ThinkTreeConfig
from thinktree.storage.store import SqlThreadStore
from thinktree.streaming.reassembler import reassemble

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class ChatRequest(BaseModel):
    messages: list[ChatMessage] = Field(min_length=1)
    model: Optional[str] = None


class ThreadCreate(BaseModel):
    title: Optional[str] = None


class ThreadUpdate(BaseModel):
    title: str = Field(min_length=1)


class MessageCreate(BaseModel):
    thread_id: str = Field(min_length=1)
    role: Literal["user", "assistant"]
    content: str = Field(min_length=1)
    reasoning: Optional[str] = None


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def _status_for(exc: LLMClientError) -> int:
    if isinstance(exc, UpstreamStatusError):
        return exc.status_code
    if isinstance(exc, LLMAuthError):
        return 401
    if isinstance(exc, LLMRateLimitError):
        return 429
    if isinstance(exc, UpstreamConnectionError):
        return 502
    return 500


def create_app(
    config: ThinkTreeConfig | None = None,
    *,
    client: ReasoningChatClient | None = None,
    store: SqlThreadStore | None = None,
) -> FastAPI:
    """Build the application.

    Args:
        config: Settings; defaults to :meth:`ThinkTreeConfig.from_env`.
        client: Upstream client; built lazily from *config* on the first
            chat request when omitted.
        store: Thread store; defaults to a SqlThreadStore from *config*.
    """
    config = config or ThinkTreeConfig.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("thinktree server starting (model %s)", config.model)
        yield
        if app.state.client is not None and app.state.owns_client:
            await app.state.client.aclose()
        logger.info("thinktree server stopped")

    app = FastAPI(title="thinktree", version=__version__, lifespan=lifespan)
    app.state.config = config
    app.state.client = client
    app.state.owns_client = client is None
    app.state.store = store if store is not None else SqlThreadStore.from_config(config)

    def get_client() -> ReasoningChatClient:
        if app.state.client is None:
            app.state.client = ReasoningChatClient.from_config(config)
        return app.state.client

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error(f"Invalid request: {exc.errors()[0].get('msg', 'bad input')}", 400)

    @app.exception_handler(ThreadNotFoundError)
    async def thread_not_found(request: Request, exc: ThreadNotFoundError) -> JSONResponse:
        return _error("Thread not found", 404)

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    @app.post("/api/chat")
    async def chat(body: ChatRequest):
        try:
            upstream = get_client()
        except LLMConfigError as exc:
            logger.error("Chat request rejected: %s", exc)
            return _error(str(exc), 500)

        messages = [m.model_dump() for m in body.messages]
        stack = AsyncExitStack()
        try:
            response = await stack.enter_async_context(
                upstream.stream_chat(messages, model=body.model)
            )
        except LLMClientError as exc:
            await stack.aclose()
            logger.warning("Upstream rejected chat request: %s", exc)
            return _error(f"API error: {exc}", _status_for(exc))

        async def delimited() -> AsyncIterator[str]:
            try:
                async with aclosing(reassemble(response.aiter_bytes())) as texts:
                    async for text in texts:
                        yield text
            except httpx.HTTPError as exc:
                logger.warning("Upstream stream interrupted: %s", exc)
            finally:
                await stack.aclose()

        return StreamingResponse(
            delimited(),
            media_type="text/plain; charset=utf-8",
            headers={"Cache-Control": "no-cache"},
        )

    # ------------------------------------------------------------------
    # Threads and messages
    # ------------------------------------------------------------------

    @app.get("/api/threads")
    def list_threads():
        return [t.model_dump(mode="json") for t in app.state.store.list_threads()]

    @app.post("/api/threads")
    def create_thread(body: ThreadCreate):
        thread_id = app.state.store.create_thread(body.title)
        return app.state.store.fetch_thread(thread_id).model_dump(mode="json")

    @app.get("/api/threads/{thread_id}")
    def get_thread(thread_id: str):
        thread = app.state.store.fetch_thread(thread_id)
        if thread is None:
            raise ThreadNotFoundError(thread_id)
        return thread.model_dump(mode="json")

    @app.patch("/api/threads/{thread_id}")
    def rename_thread(thread_id: str, body: ThreadUpdate):
        return app.state.store.rename_thread(thread_id, body.title).model_dump(mode="json")

    @app.delete("/api/threads/{thread_id}")
    def delete_thread(thread_id: str):
        if not app.state.store.delete_thread(thread_id):
            raise ThreadNotFoundError(thread_id)
        return {"success": True}

    @app.post("/api/messages")
    def create_message(body: MessageCreate):
        message = app.state.store.append_message(
            body.thread_id, body.role, body.content, body.reasoning
        )
        return message.model_dump(mode="json")

    @app.get("/health")
    def health():
        return {"status": "ok", "version": __version__}

    return app
