"""SqlThreadStore: the persistence collaborator behind the API routes.

Each call runs in its own short session, so one store may be shared by
the server's worker threads.  Results are returned as pydantic models
detached from the ORM.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field
from sqlalchemy import Engine

from thinktree.exceptions import ThreadNotFoundError
from thinktree.models.config import ThinkTreeConfig
from thinktree.models.message import utcnow
from thinktree.storage.engine import create_session_factory, create_store_engine, init_db
from thinktree.storage.schema import MessageRow, ThreadRow
from thinktree.storage.sqlite import SqliteMessageRepository, SqliteThreadRepository

logger = logging.getLogger(__name__)

DEFAULT_STORED_TITLE = "New conversation"


def _new_id() -> str:
    return uuid.uuid4().hex


class StoredMessage(BaseModel):
    """A message as persisted."""

    id: str
    thread_id: str
    role: str
    content: str
    reasoning: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_row(cls, row: MessageRow) -> StoredMessage:
        return cls(
            id=row.id,
            thread_id=row.thread_id,
            role=row.role,
            content=row.content,
            reasoning=row.reasoning,
            created_at=row.created_at,
        )


class StoredThread(BaseModel):
    """A thread as persisted, with its messages in order."""

    id: str
    title: str
    created_at: datetime
    updated_at: datetime
    messages: list[StoredMessage] = Field(default_factory=list)

    @classmethod
    def from_row(cls, row: ThreadRow, *, message_limit: int | None = None) -> StoredThread:
        rows = row.messages if message_limit is None else row.messages[:message_limit]
        return cls(
            id=row.id,
            title=row.title,
            created_at=row.created_at,
            updated_at=row.updated_at,
            messages=[StoredMessage.from_row(m) for m in rows],
        )


class SqlThreadStore:
    """Thread store over a SQLAlchemy engine.

    Usage::

        store = SqlThreadStore.open("thinktree.db")
        thread_id = store.create_thread("Main thread")
        store.append_message(thread_id, "user", "Hello")
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._session_factory = create_session_factory(engine)

    @classmethod
    def open(cls, db_path: str = ":memory:", *, url: str | None = None) -> SqlThreadStore:
        """Create the engine, initialize the schema, and wrap it."""
        engine = create_store_engine(db_path, url=url)
        init_db(engine)
        return cls(engine)

    @classmethod
    def from_config(cls, config: ThinkTreeConfig) -> SqlThreadStore:
        return cls.open(config.db_path, url=config.db_url)

    @property
    def engine(self) -> Engine:
        return self._engine

    def create_thread(self, title: str | None = None) -> str:
        now = utcnow()
        row = ThreadRow(
            id=_new_id(),
            title=title or DEFAULT_STORED_TITLE,
            created_at=now,
            updated_at=now,
        )
        with self._session_factory() as session:
            SqliteThreadRepository(session).save(row)
            session.commit()
        logger.debug("Stored thread %s", row.id)
        return row.id

    def append_message(
        self,
        thread_id: str,
        role: str,
        content: str,
        reasoning: str | None = None,
    ) -> StoredMessage:
        """Append a message and bump the thread's ``updated_at``.

        Raises:
            ThreadNotFoundError: No stored thread has *thread_id*.
        """
        with self._session_factory() as session:
            threads = SqliteThreadRepository(session)
            messages = SqliteMessageRepository(session)
            thread = threads.get(thread_id)
            if thread is None:
                raise ThreadNotFoundError(thread_id)
            now = utcnow()
            row = MessageRow(
                id=_new_id(),
                thread_id=thread_id,
                position=messages.next_position(thread_id),
                role=role,
                content=content,
                reasoning=reasoning,
                created_at=now,
            )
            messages.save(row)
            thread.updated_at = now
            session.commit()
            return StoredMessage.from_row(row)

    def fetch_thread(self, thread_id: str) -> StoredThread | None:
        with self._session_factory() as session:
            row = SqliteThreadRepository(session).get(thread_id)
            return None if row is None else StoredThread.from_row(row)

    def list_threads(self, *, preview: int = 1) -> list[StoredThread]:
        """All threads, most recently updated first, with a message preview."""
        with self._session_factory() as session:
            rows = SqliteThreadRepository(session).list_recent()
            return [StoredThread.from_row(r, message_limit=preview) for r in rows]

    def rename_thread(self, thread_id: str, title: str) -> StoredThread:
        with self._session_factory() as session:
            row = SqliteThreadRepository(session).get(thread_id)
            if row is None:
                raise ThreadNotFoundError(thread_id)
            row.title = title
            session.commit()
            return StoredThread.from_row(row)

    def delete_thread(self, thread_id: str) -> bool:
        """Delete a thread and its messages. Returns False if absent."""
        with self._session_factory() as session:
            deleted = SqliteThreadRepository(session).delete(thread_id)
            session.commit()
            return deleted

    def close(self) -> None:
        self._engine.dispose()
