"""Conversation tree: threads, fork links, and message sequences.

The tree exclusively owns every Thread and Message of a workspace.  It
keeps three indexes next to the thread map:

* children: parent thread id -> child thread ids (creation order)
* message owners: message id -> owning thread id (ids are tree-unique)
* lineage cache: thread id -> resolved ancestor links with cutoffs

A thread's parent is fixed at creation, so its lineage never changes while
the thread exists; the cache entry is dropped only when the thread itself
is deleted.  That turns the context walk into an O(depth) lookup.

All operations are synchronous.  Not thread-safe: one tree per workspace,
mutated from a single event loop.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator

from thinktree.exceptions import (
    CorruptionError,
    InvalidStateError,
    MessageNotFoundError,
    ThreadNotFoundError,
)
from thinktree.models.message import Message
from thinktree.models.thread import AncestorLink, Thread, ThreadTreeNode

logger = logging.getLogger(__name__)

ROOT_TITLE = "Main thread"

WELCOME_TEXT = (
    "Welcome to **ThinkTree**!\n\n"
    "This is your main conversation thread. Send a message to start "
    "chatting. You can branch from any of my replies to explore a "
    "different direction without losing this one.\n\n"
    "**Features:**\n"
    "- Reasoning shown separately from the answer\n"
    "- Branches that remember everything up to their fork point\n"
    "- Markdown, code blocks and LaTeX in replies"
)

WELCOME_REASONING = (
    "The user just opened a new workspace. I should greet them and explain "
    "how branching works."
)

_UNSET: object = object()


class ConversationTree:
    """Forest of threads plus the designated active thread.

    Create a tree via :meth:`fresh` (one seeded root thread) or
    :meth:`from_threads` (restore).
    """

    MAX_DEPTH = 512

    def __init__(self) -> None:
        self._threads: dict[str, Thread] = {}
        self._children: dict[str, list[str]] = {}
        self._message_owner: dict[str, str] = {}
        self._lineage_cache: dict[str, tuple[AncestorLink, ...]] = {}
        self.active_thread_id: str | None = None

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def fresh(cls) -> ConversationTree:
        """A tree holding one root thread with a welcome message, active."""
        tree = cls()
        root = tree.create_root()
        tree.active_thread_id = root.id
        return tree

    @classmethod
    def from_threads(
        cls,
        threads: Iterable[Thread],
        active_thread_id: str | None = None,
    ) -> ConversationTree:
        """Rebuild a tree from already-constructed threads.

        Parent links are taken as given; a dangling parent is reported as
        :class:`CorruptionError` when the thread's ancestry is walked.
        Falls back to the first thread when *active_thread_id* is unknown.
        """
        tree = cls()
        for thread in threads:
            tree._insert(thread)
        for kids in tree._children.values():
            kids.sort(key=lambda tid: tree._threads[tid].created_at)
        if active_thread_id in tree._threads:
            tree.active_thread_id = active_thread_id
        elif tree._threads:
            tree.active_thread_id = next(iter(tree._threads))
        return tree

    def _insert(self, thread: Thread) -> None:
        if thread.id in self._threads:
            raise InvalidStateError(f"Duplicate thread id: {thread.id}")
        if (thread.parent_thread_id is None) != (thread.fork_message_id is None):
            raise InvalidStateError(
                f"Thread {thread.id} must set both parent_thread_id and "
                f"fork_message_id, or neither"
            )
        for message in thread.messages:
            if message.id in self._message_owner:
                raise InvalidStateError(f"Duplicate message id: {message.id}")
        self._threads[thread.id] = thread
        for message in thread.messages:
            self._message_owner[message.id] = thread.id
        if thread.parent_thread_id is not None:
            self._children.setdefault(thread.parent_thread_id, []).append(thread.id)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def __contains__(self, thread_id: object) -> bool:
        return thread_id in self._threads

    def __len__(self) -> int:
        return len(self._threads)

    def __iter__(self) -> Iterator[Thread]:
        return iter(list(self._threads.values()))

    def get(self, thread_id: str) -> Thread:
        """Return the thread or raise :class:`ThreadNotFoundError`."""
        thread = self._threads.get(thread_id)
        if thread is None:
            raise ThreadNotFoundError(thread_id)
        return thread

    @property
    def active_thread(self) -> Thread | None:
        if self.active_thread_id is None:
            return None
        return self._threads.get(self.active_thread_id)

    def set_active(self, thread_id: str) -> Thread:
        thread = self.get(thread_id)
        self.active_thread_id = thread_id
        return thread

    def children(self, thread_id: str) -> list[Thread]:
        """Direct children of *thread_id*, oldest first."""
        self.get(thread_id)
        return [self._threads[tid] for tid in self._children.get(thread_id, [])]

    def roots(self) -> list[Thread]:
        roots = [t for t in self._threads.values() if t.parent_thread_id is None]
        return sorted(roots, key=lambda t: t.created_at)

    def find_message(self, message_id: str) -> tuple[Thread, Message]:
        """Locate a message anywhere in the tree."""
        owner = self._message_owner.get(message_id)
        if owner is None or owner not in self._threads:
            raise MessageNotFoundError(message_id)
        thread = self._threads[owner]
        index = thread.index_of(message_id)
        if index is None:
            raise MessageNotFoundError(message_id, owner)
        return thread, thread.messages[index]

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    def create_root(
        self,
        *,
        title: str = ROOT_TITLE,
        welcome: str | None = WELCOME_TEXT,
    ) -> Thread:
        """Create a root thread seeded with one assistant message."""
        thread = Thread(title=title)
        if welcome is not None:
            thread.messages.append(
                Message(role="assistant", content=welcome, reasoning=WELCOME_REASONING)
            )
        self._insert(thread)
        if self.active_thread_id is None:
            self.active_thread_id = thread.id
        logger.debug("Created root thread %s", thread.id)
        return thread

    def create_fork(
        self,
        source_thread_id: str,
        fork_message_id: str | None = None,
        *,
        title: str = "New branch",
        messages: Iterable[Message] = (),
    ) -> Thread:
        """Create a child of *source_thread_id* branching at *fork_message_id*.

        An empty *fork_message_id* forks the whole thread: the fork point
        becomes the source's last message at this instant.

        Raises:
            ThreadNotFoundError: The source thread does not exist.
            MessageNotFoundError: The fork message is not in the source.
            InvalidStateError: The source has no messages to fork from.
        """
        source = self.get(source_thread_id)
        if not fork_message_id:
            if source.last_message is None:
                raise InvalidStateError(f"Cannot fork empty thread {source_thread_id}")
            fork_message_id = source.last_message.id
        elif source.index_of(fork_message_id) is None:
            raise MessageNotFoundError(fork_message_id, source_thread_id)

        thread = Thread(
            title=title,
            parent_thread_id=source.id,
            fork_message_id=fork_message_id,
        )
        self._insert(thread)
        for message in messages:
            self.append_message(thread.id, message)
        logger.debug(
            "Forked thread %s from %s at %s", thread.id, source.id, fork_message_id
        )
        return thread

    def subtree_ids(self, thread_id: str) -> list[str]:
        """Ids of *thread_id* and all its descendants, depth-first, itself first."""
        self.get(thread_id)
        ids: list[str] = []
        seen: set[str] = set()
        stack = [thread_id]
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            ids.append(current)
            stack.extend(reversed(self._children.get(current, [])))
        return ids

    def delete_subtree(self, thread_id: str) -> list[str]:
        """Delete *thread_id* and all of its descendants as one unit.

        Reassigns the active thread if it was deleted: to the oldest
        remaining root, or to a fresh root if nothing remains.

        Returns:
            The deleted thread ids, the requested thread first.
        """
        doomed = self.subtree_ids(thread_id)
        seen = set(doomed)

        for tid in doomed:
            thread = self._threads.pop(tid)
            for message in thread.messages:
                self._message_owner.pop(message.id, None)
            self._children.pop(tid, None)
            self._lineage_cache.pop(tid, None)
            parent_children = self._children.get(thread.parent_thread_id or "")
            if parent_children is not None and tid in parent_children:
                parent_children.remove(tid)

        if self.active_thread_id in seen:
            roots = self.roots()
            if roots:
                self.active_thread_id = roots[0].id
            elif self._threads:
                self.active_thread_id = next(iter(self._threads))
            else:
                self.active_thread_id = None
                self.create_root()
        logger.debug("Deleted %d thread(s) rooted at %s", len(doomed), thread_id)
        return doomed

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def append_message(self, thread_id: str, message: Message) -> Message:
        """Append *message* at the tail of the thread.

        Raises:
            ThreadNotFoundError: Unknown thread.
            InvalidStateError: A response is still streaming into the thread,
                or the message id is already used in the tree.
        """
        thread = self.get(thread_id)
        last = thread.last_message
        if last is not None and not last.finalized:
            raise InvalidStateError(
                f"Thread {thread_id} has a response in progress ({last.id})"
            )
        if message.id in self._message_owner:
            raise InvalidStateError(f"Duplicate message id: {message.id}")
        thread.messages.append(message)
        self._message_owner[message.id] = thread_id
        thread.touch()
        return message

    def update_last_message(
        self,
        thread_id: str,
        message_id: str,
        *,
        content: str | None = None,
        reasoning: str | None | object = _UNSET,
    ) -> Message:
        """Mutate the trailing, still-streaming message of a thread in place.

        Raises:
            ThreadNotFoundError: Unknown thread.
            InvalidStateError: *message_id* is not the thread's last message,
                or that message is already finalized.
        """
        message = self._streaming_tail(thread_id, message_id)
        if content is not None:
            message.content = content
        if reasoning is not _UNSET:
            message.reasoning = reasoning  # type: ignore[assignment]
        self._threads[thread_id].touch()
        return message

    def finalize_last_message(self, thread_id: str, message_id: str) -> Message:
        """Freeze the trailing message; later mutation is InvalidState."""
        message = self._streaming_tail(thread_id, message_id)
        message.finalized = True
        self._threads[thread_id].touch()
        return message

    def _streaming_tail(self, thread_id: str, message_id: str) -> Message:
        thread = self.get(thread_id)
        last = thread.last_message
        if last is None or last.id != message_id:
            raise InvalidStateError(
                f"Message {message_id} is not the last message of thread {thread_id}"
            )
        if last.finalized:
            raise InvalidStateError(f"Message {message_id} is already finalized")
        return last

    # ------------------------------------------------------------------
    # Ancestry
    # ------------------------------------------------------------------

    def get_ancestor_chain(self, thread_id: str) -> list[Thread]:
        """Return the ancestors of *thread_id*, root first, parent last.

        Raises:
            ThreadNotFoundError: Unknown thread.
            CorruptionError: A parent reference cannot be resolved, the links
                form a cycle, or the chain exceeds ``MAX_DEPTH``.
        """
        current = self.get(thread_id)
        chain: list[Thread] = []
        visited = {current.id}
        while current.parent_thread_id is not None:
            parent_id = current.parent_thread_id
            if parent_id in visited:
                raise CorruptionError(thread_id, f"cycle through {parent_id}")
            if len(chain) >= self.MAX_DEPTH:
                raise CorruptionError(thread_id, f"depth exceeds {self.MAX_DEPTH}")
            parent = self._threads.get(parent_id)
            if parent is None:
                raise CorruptionError(
                    thread_id, f"parent {parent_id} of {current.id} does not exist"
                )
            visited.add(parent_id)
            chain.append(parent)
            current = parent
        chain.reverse()
        return chain

    def lineage(self, thread_id: str) -> tuple[AncestorLink, ...]:
        """Resolved ancestor links of *thread_id*, root first (cached).

        Each link carries the fork point recorded on the child link that
        lies on the path toward *thread_id*.
        """
        cached = self._lineage_cache.get(thread_id)
        if cached is not None:
            return cached
        thread = self.get(thread_id)
        ancestors = self.get_ancestor_chain(thread_id)
        path = ancestors[1:] + [thread]
        links = tuple(
            AncestorLink(thread_id=ancestor.id, cutoff_message_id=child.fork_message_id)
            for ancestor, child in zip(ancestors, path)
        )
        self._lineage_cache[thread_id] = links
        return links

    def depth(self, thread_id: str) -> int:
        return len(self.lineage(thread_id))

    def forest(self) -> list[ThreadTreeNode]:
        """Nested view of all threads, roots and siblings oldest first."""

        def build(thread: Thread, depth: int) -> ThreadTreeNode:
            kids = sorted(
                (self._threads[tid] for tid in self._children.get(thread.id, [])),
                key=lambda t: t.created_at,
            )
            return ThreadTreeNode(
                thread=thread,
                children=[build(kid, depth + 1) for kid in kids],
                depth=depth,
            )

        return [build(root, 0) for root in self.roots()]
