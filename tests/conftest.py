"""Shared test fixtures for ThinkTree.

Provides in-memory SQLite engine, session, repository and store fixtures,
plus a fresh conversation tree.
"""

import pytest
from sqlalchemy.orm import Session, sessionmaker

from thinktree.storage.engine import create_store_engine, init_db
from thinktree.storage.sqlite import SqliteMessageRepository, SqliteThreadRepository
from thinktree.storage.store import SqlThreadStore
from thinktree.tree import ConversationTree


@pytest.fixture
def engine():
    """In-memory SQLite engine with all tables created."""
    eng = create_store_engine(":memory:")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    """Session with automatic rollback after each test."""
    SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)
    sess = SessionLocal()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def thread_repo(session: Session) -> SqliteThreadRepository:
    return SqliteThreadRepository(session)


@pytest.fixture
def message_repo(session: Session) -> SqliteMessageRepository:
    return SqliteMessageRepository(session)


@pytest.fixture
def store(engine) -> SqlThreadStore:
    return SqlThreadStore(engine)


@pytest.fixture
def tree() -> ConversationTree:
    return ConversationTree.fresh()


@pytest.fixture(autouse=True)
def _no_ambient_config(monkeypatch):
    """Keep the developer's THINKTREE_* environment out of the tests."""
    for var in (
        "THINKTREE_API_KEY",
        "THINKTREE_BASE_URL",
        "THINKTREE_MODEL",
        "THINKTREE_TIMEOUT",
        "THINKTREE_MAX_RETRIES",
        "THINKTREE_DB",
        "THINKTREE_DB_URL",
        "THINKTREE_SNAPSHOT",
        "THINKTREE_SERVER_URL",
    ):
        monkeypatch.delenv(var, raising=False)
