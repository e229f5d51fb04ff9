"""Thread domain model.

A Thread is one linear conversation history: a node of the conversation
tree.  Root threads have neither ``parent_thread_id`` nor
``fork_message_id``; forks have both.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime

from thinktree.models.message import Message, utcnow


def new_thread_id() -> str:
    """Generate a unique thread id."""
    return f"thread_{uuid.uuid4().hex[:16]}"


@dataclass
class Thread:
    """A conversation thread (node of the tree)."""

    title: str
    id: str = field(default_factory=new_thread_id)
    messages: list[Message] = field(default_factory=list)
    parent_thread_id: str | None = None
    fork_message_id: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_root(self) -> bool:
        return self.parent_thread_id is None

    @property
    def last_message(self) -> Message | None:
        return self.messages[-1] if self.messages else None

    def index_of(self, message_id: str) -> int | None:
        """Return the position of *message_id* in this thread, or None."""
        for i, message in enumerate(self.messages):
            if message.id == message_id:
                return i
        return None

    def touch(self) -> None:
        self.updated_at = utcnow()


@dataclass(frozen=True)
class AncestorLink:
    """One step of a thread's resolved lineage.

    ``cutoff_message_id`` is the fork point that the next thread on the
    path toward the target used to branch off this ancestor.
    """

    thread_id: str
    cutoff_message_id: str | None


@dataclass
class ThreadTreeNode:
    """Nested view of a thread and its children, for display."""

    thread: Thread
    children: list[ThreadTreeNode] = field(default_factory=list)
    depth: int = 0


def clip_title(text: str, limit: int) -> str:
    """Cut *text* to *limit* characters, appending an ellipsis if cut."""
    return text[:limit] + "..." if len(text) > limit else text


def generate_title(thread: Thread, limit: int = 40) -> str:
    """Derive a title from the first user message of *thread*."""
    if not thread.messages:
        return "New branch" if thread.parent_thread_id else "New conversation"
    for message in thread.messages:
        if message.role == "user":
            return clip_title(message.content, limit)
    return thread.title
