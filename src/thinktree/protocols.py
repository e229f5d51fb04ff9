"""Protocol definitions for ThinkTree collaborators.

No SQLAlchemy imports allowed in this module -- pure domain protocols.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from thinktree.models.message import Message


@runtime_checkable
class ThreadStore(Protocol):
    """Persistence collaborator for finished messages.

    :class:`~thinktree.storage.store.SqlThreadStore` implements it.  The
    workspace treats every call as best-effort: failures are logged and
    never reach the conversation.
    """

    def create_thread(self, title: str | None = None) -> str:
        """Create a stored thread and return its id."""
        ...

    def append_message(
        self,
        thread_id: str,
        role: str,
        content: str,
        reasoning: str | None = None,
    ) -> Any:
        """Persist one message at the end of a stored thread."""
        ...

    def fetch_thread(self, thread_id: str) -> Any | None:
        """Return a stored thread with its messages, or None."""
        ...

    def delete_thread(self, thread_id: str) -> bool:
        """Delete a stored thread. Returns False if absent."""
        ...


@runtime_checkable
class UpdateListener(Protocol):
    """Called after every change to a streaming message."""

    def __call__(self, thread_id: str, message: Message) -> None: ...
