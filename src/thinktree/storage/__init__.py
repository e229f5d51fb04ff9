"""Storage layer for ThinkTree: ORM schema, engine, repositories, thread store."""

from thinktree.storage.engine import create_session_factory, create_store_engine, init_db
from thinktree.storage.schema import Base, MessageRow, MetaRow, ThreadRow
from thinktree.storage.store import SqlThreadStore, StoredMessage, StoredThread

__all__ = [
    "Base",
    "MessageRow",
    "MetaRow",
    "SqlThreadStore",
    "StoredMessage",
    "StoredThread",
    "ThreadRow",
    "create_session_factory",
    "create_store_engine",
    "init_db",
]
