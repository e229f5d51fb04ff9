"""Abstract repository interfaces for ThinkTree storage.

Defines ABC interfaces for all database operations. No SQLAlchemy
imports here -- pure abstract contracts.

Concrete implementations are in sqlite.py.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from thinktree.storage.schema import MessageRow, ThreadRow


class ThreadRepository(ABC):
    """Abstract interface for thread storage operations."""

    @abstractmethod
    def get(self, thread_id: str) -> ThreadRow | None:
        """Get a thread (with its messages). Returns None if not found."""
        ...

    @abstractmethod
    def save(self, thread: ThreadRow) -> None:
        """Save a thread to storage."""
        ...

    @abstractmethod
    def list_recent(self, limit: int | None = None) -> Sequence[ThreadRow]:
        """All threads, most recently updated first."""
        ...

    @abstractmethod
    def delete(self, thread_id: str) -> bool:
        """Delete a thread and its messages. Returns False if not found."""
        ...


class MessageRepository(ABC):
    """Abstract interface for message storage operations."""

    @abstractmethod
    def save(self, message: MessageRow) -> None:
        """Save a message to storage."""
        ...

    @abstractmethod
    def next_position(self, thread_id: str) -> int:
        """Position the next message appended to *thread_id* gets."""
        ...

    @abstractmethod
    def list_for_thread(self, thread_id: str) -> Sequence[MessageRow]:
        """Messages of a thread in order."""
        ...
