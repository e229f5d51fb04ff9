"""SQLite implementations of repository interfaces.

All repositories use SQLAlchemy 2.0-style queries (select() + session.execute()).
Each repository takes a Session in its constructor.
"""

from __future__ import annotations

from typing import Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from thinktree.storage.repositories import MessageRepository, ThreadRepository
from thinktree.storage.schema import MessageRow, ThreadRow


class SqliteThreadRepository(ThreadRepository):
    """SQLite implementation of thread repository."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, thread_id: str) -> ThreadRow | None:
        stmt = select(ThreadRow).where(ThreadRow.id == thread_id)
        return self._session.execute(stmt).scalar_one_or_none()

    def save(self, thread: ThreadRow) -> None:
        self._session.add(thread)
        self._session.flush()

    def list_recent(self, limit: int | None = None) -> Sequence[ThreadRow]:
        stmt = select(ThreadRow).order_by(ThreadRow.updated_at.desc(), ThreadRow.id)
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self._session.execute(stmt).scalars().all())

    def delete(self, thread_id: str) -> bool:
        thread = self.get(thread_id)
        if thread is None:
            return False
        self._session.delete(thread)
        self._session.flush()
        return True


class SqliteMessageRepository(MessageRepository):
    """SQLite implementation of message repository."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def save(self, message: MessageRow) -> None:
        self._session.add(message)
        self._session.flush()

    def next_position(self, thread_id: str) -> int:
        stmt = select(func.max(MessageRow.position)).where(
            MessageRow.thread_id == thread_id
        )
        current = self._session.execute(stmt).scalar_one_or_none()
        return 0 if current is None else current + 1

    def list_for_thread(self, thread_id: str) -> Sequence[MessageRow]:
        stmt = (
            select(MessageRow)
            .where(MessageRow.thread_id == thread_id)
            .order_by(MessageRow.position)
        )
        return list(self._session.execute(stmt).scalars().all())
