"""ThinkTree exception hierarchy.

All ThinkTree-specific exceptions inherit from ThinkTreeError.
LLM / upstream errors live in :mod:`thinktree.llm.errors` and share the
same base.
"""


class ThinkTreeError(Exception):
    """Base exception for all ThinkTree errors."""


class NotFoundError(ThinkTreeError):
    """Raised when a referenced thread or message does not exist."""


class ThreadNotFoundError(NotFoundError):
    """Raised when a thread id lookup fails."""

    def __init__(self, thread_id: str) -> None:
        self.thread_id = thread_id
        super().__init__(f"Thread not found: {thread_id}")


class MessageNotFoundError(NotFoundError):
    """Raised when a message id is not part of the expected thread."""

    def __init__(self, message_id: str, thread_id: str | None = None) -> None:
        self.message_id = message_id
        self.thread_id = thread_id
        where = f" in thread {thread_id}" if thread_id else ""
        super().__init__(f"Message not found{where}: {message_id}")


class InvalidStateError(ThinkTreeError):
    """Raised when an operation is illegal for the current state.

    Examples: mutating a message that is not the thread's trailing message,
    mutating a finalized message, or appending while a response is still
    streaming into the thread.
    """


class CorruptionError(ThinkTreeError):
    """Raised when the ancestor chain of a thread cannot be resolved.

    Either a parent reference points at a thread that no longer exists,
    or the parent links loop back on themselves.
    """

    def __init__(self, thread_id: str, reason: str) -> None:
        self.thread_id = thread_id
        self.reason = reason
        super().__init__(f"Corrupt ancestry for thread {thread_id}: {reason}")


class SnapshotError(ThinkTreeError):
    """Raised when a snapshot cannot be written."""
