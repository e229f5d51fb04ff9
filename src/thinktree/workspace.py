"""Workspace: the conversation tree plus everything needed to talk to a model.

A Workspace is the explicit context object for one conversation forest.
It owns the tree, a chat transport, an optional thread store, and the
in-flight generations (at most one per thread).

Sending a message or branching with a query schedules a *generation*: an
``asyncio.Task`` that streams delimited text from the transport, parses
the cumulative buffer after every chunk, and writes the result into the
thread's trailing assistant message.  A generation ends in one of three
ways (:class:`StreamOutcome`):

* COMPLETED: the stream ended normally.
* FALLBACK: the transport raised an upstream error; the message is
  replaced by a canned response.
* CANCELLED: :meth:`Generation.cancel` stopped it; the message keeps
  exactly what had streamed so far.

In every case the assistant message ends up finalized.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import uuid
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any, Optional

from thinktree.context import ContextAssembler
from thinktree.exceptions import InvalidStateError
from thinktree.llm.errors import LLMClientError
from thinktree.llm.transport import ChatTransport
from thinktree.models.message import ChatTurn, Message, utcnow
from thinktree.models.thread import Thread
from thinktree.prompts.branch import (
    BRANCH_WELCOME_REASONING,
    BranchAction,
    branch_title,
    branch_welcome,
    fork_title,
    format_quote,
    resolve_prompt,
)
from thinktree.prompts.fallback import FallbackResponder
from thinktree.protocols import ThreadStore, UpdateListener
from thinktree.snapshot import WorkspaceRecord
from thinktree.streaming.parser import parse_response
from thinktree.tree import ConversationTree

logger = logging.getLogger(__name__)

THREAD_TITLE_LIMIT = 40
DEFAULT_WORKSPACE_TITLE = "New workspace"


class StreamOutcome(str, enum.Enum):
    """How a generation ended."""

    COMPLETED = "completed"
    FALLBACK = "fallback"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class BranchRequest:
    """Branch from a text selection inside a message.

    Attributes:
        source_thread_id: Thread holding the selected message.
        fork_message_id: Message the selection came from; None forks the
            whole thread (at its current last message).
        excerpt: The selected text, quoted into the seed message.
        action: Which canned query to ask.
        custom_prompt: The query for ``BranchAction.CUSTOM``.
    """

    source_thread_id: str
    fork_message_id: Optional[str]
    excerpt: str
    action: BranchAction = BranchAction.EXPLAIN
    custom_prompt: Optional[str] = None

    @property
    def query(self) -> str:
        return resolve_prompt(self.action, self.custom_prompt)


class Generation:
    """Handle on one in-flight response."""

    def __init__(self, thread_id: str, message: Message, task: asyncio.Task[StreamOutcome]) -> None:
        self.thread_id = thread_id
        self.message = message
        self._task = task

    @property
    def message_id(self) -> str:
        return self.message.id

    def done(self) -> bool:
        return self._task.done()

    def cancel(self) -> bool:
        """Request cancellation. Returns False if already finished."""
        return self._task.cancel()

    async def wait(self) -> StreamOutcome:
        """Wait for the generation to end and report how it ended.

        Cancelling the caller of ``wait()`` does not cancel the generation.
        """
        try:
            return await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if self._task.cancelled():
                return StreamOutcome.CANCELLED
            raise


class Workspace:
    """One conversation forest bound to a chat transport.

    Usage::

        async with Workspace(UpstreamTransport(client)) as ws:
            generation = ws.send_message("What is a monad?")
            await generation.wait()
    """

    def __init__(
        self,
        transport: ChatTransport,
        *,
        tree: ConversationTree | None = None,
        store: ThreadStore | None = None,
        fallback: FallbackResponder | None = None,
        on_update: UpdateListener | None = None,
        workspace_id: str | None = None,
        title: str = DEFAULT_WORKSPACE_TITLE,
    ) -> None:
        self.id = workspace_id or f"ws_{uuid.uuid4().hex[:16]}"
        self.title = title
        self.created_at = utcnow()
        self.updated_at = self.created_at
        self.tree = tree if tree is not None else ConversationTree.fresh()
        self.context = ContextAssembler(self.tree)
        self._transport = transport
        self._store = store
        self._fallback = fallback or FallbackResponder()
        self._on_update = on_update
        self._generations: dict[str, Generation] = {}
        self._store_ids: dict[str, str] = {}
        self._persist_lock = asyncio.Lock()

    @classmethod
    def from_record(
        cls, record: WorkspaceRecord, transport: ChatTransport, **kwargs: Any
    ) -> Workspace:
        """Rebuild a workspace from its snapshot record."""
        workspace = cls(
            transport,
            tree=record.to_tree(),
            workspace_id=record.id,
            title=record.title,
            **kwargs,
        )
        workspace.created_at = record.created_at
        workspace.updated_at = record.updated_at
        return workspace

    def to_record(self) -> WorkspaceRecord:
        return WorkspaceRecord.from_tree(
            self.tree,
            workspace_id=self.id,
            title=self.title,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    async def __aenter__(self) -> Workspace:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Cancel every in-flight generation and wait for them to settle."""
        pending = list(self._generations.values())
        for generation in pending:
            generation.cancel()
        results = await asyncio.gather(
            *(generation.wait() for generation in pending), return_exceptions=True
        )
        for generation, result in zip(pending, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Generation for thread %s failed",
                    generation.thread_id,
                    exc_info=result,
                )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def active_thread(self) -> Thread | None:
        return self.tree.active_thread

    def generation_for(self, thread_id: str) -> Generation | None:
        return self._generations.get(thread_id)

    def is_generating(self, thread_id: str | None = None) -> bool:
        if thread_id is None:
            return bool(self._generations)
        return thread_id in self._generations

    def set_active(self, thread_id: str) -> Thread:
        return self.tree.set_active(thread_id)

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def send_message(self, content: str, *, thread_id: str | None = None) -> Generation:
        """Append a user message and start generating the reply.

        Must be called from a running event loop.

        Raises:
            ThreadNotFoundError: Unknown thread.
            InvalidStateError: No active thread, or the thread is already
                generating.
            CorruptionError: The thread's ancestry cannot be resolved.
        """
        target = thread_id or self.tree.active_thread_id
        if target is None:
            raise InvalidStateError("No active thread")
        thread = self.tree.get(target)
        self._ensure_idle(target)

        turns = self.context.build(target, content)
        user_message = Message(role="user", content=content)
        if len(thread.messages) == 1:
            thread.title = content[:THREAD_TITLE_LIMIT]
        self.tree.append_message(target, user_message)
        self._touch()
        return self._start_generation(target, turns, user_message)

    def branch_with_query(self, request: BranchRequest) -> tuple[Thread, Generation]:
        """Fork at a message, seed it with a quoting query, and answer it.

        The fork exists (and is active) before this returns; only the
        response streams in the background.

        Raises:
            ValueError: CUSTOM action without a prompt.
            ThreadNotFoundError: Unknown source thread.
            MessageNotFoundError: The fork message is not in the source.
        """
        query = request.query
        seed = Message(role="user", content=format_quote(request.excerpt, query))
        thread = self.tree.create_fork(
            request.source_thread_id,
            request.fork_message_id,
            title=branch_title(query),
            messages=[seed],
        )
        self.tree.set_active(thread.id)
        self._touch()
        turns = self.context.history(thread.id)
        logger.info(
            "Branched %s from %s with a %s query",
            thread.id,
            request.source_thread_id,
            request.action.value,
        )
        return thread, self._start_generation(thread.id, turns, seed)

    def create_branch(self, source_thread_id: str, message_id: str | None = None) -> Thread:
        """Fork at a message with a display-only welcome; no request is made."""
        source = self.tree.get(source_thread_id)
        fork_point = None
        if message_id:
            index = source.index_of(message_id)
            fork_point = source.messages[index] if index is not None else None
        elif source.last_message is not None:
            fork_point = source.last_message
        content = fork_point.content if fork_point is not None else ""
        welcome = Message(
            role="assistant",
            content=branch_welcome(content),
            reasoning=BRANCH_WELCOME_REASONING,
            synthetic=True,
        )
        thread = self.tree.create_fork(
            source_thread_id,
            message_id,
            title=fork_title(content),
            messages=[welcome],
        )
        self.tree.set_active(thread.id)
        self._touch()
        return thread

    # ------------------------------------------------------------------
    # Stopping and deleting
    # ------------------------------------------------------------------

    def stop_generation(self, thread_id: str | None = None) -> bool:
        """Cancel the generation of *thread_id* (default: active thread)."""
        target = thread_id or self.tree.active_thread_id
        generation = self._generations.get(target) if target else None
        if generation is None:
            return False
        return generation.cancel()

    def delete_thread(self, thread_id: str) -> list[str]:
        """Delete a thread and all its descendants.

        Generations streaming into any of them are cancelled first.
        """
        for tid in self.tree.subtree_ids(thread_id):
            generation = self._generations.get(tid)
            if generation is not None:
                generation.cancel()

        deleted = self.tree.delete_subtree(thread_id)
        for tid in deleted:
            store_id = self._store_ids.pop(tid, None)
            if store_id is not None and self._store is not None:
                try:
                    self._store.delete_thread(store_id)
                except Exception:
                    logger.warning("Could not delete stored thread %s", store_id, exc_info=True)
        self._touch()
        return deleted

    # ------------------------------------------------------------------
    # Generation task
    # ------------------------------------------------------------------

    def _ensure_idle(self, thread_id: str) -> None:
        if thread_id in self._generations:
            raise InvalidStateError(f"Thread {thread_id} is already generating a response")

    def _start_generation(
        self,
        thread_id: str,
        turns: list[ChatTurn],
        user_message: Message,
    ) -> Generation:
        message = Message(role="assistant", content="", finalized=False)
        self.tree.append_message(thread_id, message)
        task = asyncio.get_running_loop().create_task(
            self._generate(thread_id, message, turns, user_message),
            name=f"thinktree-generate-{thread_id}",
        )
        generation = Generation(thread_id, message, task)
        self._generations[thread_id] = generation
        task.add_done_callback(lambda _t: self._settle(generation))
        self._notify(thread_id, message)
        return generation

    async def _generate(
        self,
        thread_id: str,
        message: Message,
        turns: list[ChatTurn],
        user_message: Message,
    ) -> StreamOutcome:
        buffer = ""
        try:
            async with aclosing(self._transport.stream(turns)) as texts:
                async for text in texts:
                    buffer += text
                    self._write(thread_id, message, buffer, final=False)
            self._write(thread_id, message, buffer, final=True)
            outcome = StreamOutcome.COMPLETED
        except LLMClientError as exc:
            logger.warning("Upstream failed for thread %s, using fallback: %s", thread_id, exc)
            self._write(thread_id, message, self._fallback.next_response(), final=True)
            outcome = StreamOutcome.FALLBACK
        except asyncio.CancelledError:
            logger.info("Generation for thread %s stopped after %d chars", thread_id, len(buffer))
            self._finalize(thread_id, message)
            raise

        self._finalize(thread_id, message)
        # Shielded so a stop request cannot abandon a write half done.
        await asyncio.shield(self._persist(thread_id, user_message, message))
        return outcome

    def _write(self, thread_id: str, message: Message, buffer: str, *, final: bool) -> None:
        parsed = parse_response(buffer, final=final)
        self.tree.update_last_message(
            thread_id,
            message.id,
            content=parsed.content,
            reasoning=parsed.reasoning,
        )
        self._notify(thread_id, message)

    def _finalize(self, thread_id: str, message: Message) -> None:
        if message.finalized:
            return
        if thread_id in self.tree:
            self.tree.finalize_last_message(thread_id, message.id)
        else:
            message.finalized = True
        self._notify(thread_id, message)

    def _settle(self, generation: Generation) -> None:
        if self._generations.get(generation.thread_id) is generation:
            del self._generations[generation.thread_id]
        # A task cancelled before its first step never ran _generate.
        self._finalize(generation.thread_id, generation.message)

    def _notify(self, thread_id: str, message: Message) -> None:
        if self._on_update is not None:
            self._on_update(thread_id, message)

    def _touch(self) -> None:
        self.updated_at = utcnow()

    async def _persist(self, thread_id: str, *messages: Message) -> None:
        """Save *messages* to the store on a worker thread, one write at a time.

        The store is synchronous; running it in a thread keeps other
        generations streaming while it writes.  Failures are logged.
        """
        if self._store is None or thread_id not in self.tree:
            return
        async with self._persist_lock:
            try:
                title = self.tree.get(thread_id).title
                await asyncio.to_thread(self._persist_sync, thread_id, title, messages)
            except Exception:
                logger.warning(
                    "Could not persist messages of thread %s", thread_id, exc_info=True
                )

    def _persist_sync(self, thread_id: str, title: str, messages: tuple[Message, ...]) -> None:
        assert self._store is not None
        store_id = self._store_ids.get(thread_id)
        if store_id is None:
            store_id = self._store.create_thread(title)
            self._store_ids[thread_id] = store_id
        for message in messages:
            if not message.synthetic:
                self._store.append_message(
                    store_id, message.role, message.content, message.reasoning
                )
