"""Database engine setup for the thread store.

SQLite is the default backend; any SQLAlchemy URL works.  The
``_thinktree_meta`` table carries the schema version written on first use.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, create_engine, event, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from thinktree.storage.schema import Base, MetaRow

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1"

_SQLITE_PRAGMAS = (
    "PRAGMA foreign_keys=ON",
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA busy_timeout=5000",
)


def create_store_engine(
    db_path: str = ":memory:",
    *,
    url: str | None = None,
) -> Engine:
    """Build the engine for a store file, an in-memory store, or a URL.

    Args:
        db_path: SQLite file, or ``":memory:"``.  Unused when *url* is set.
        url: Any SQLAlchemy database URL.

    The in-memory variant keeps a single connection (``StaticPool``) so that
    every thread serving requests shares the same database.
    """
    if url is not None:
        engine = create_engine(url)
    elif db_path == ":memory:":
        engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(
            f"sqlite:///{db_path}",
            connect_args={"check_same_thread": False},
        )

    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _apply_pragmas)
    return engine


def _apply_pragmas(dbapi_conn, connection_record) -> None:  # type: ignore[no-untyped-def]
    cursor = dbapi_conn.cursor()
    try:
        for pragma in _SQLITE_PRAGMAS:
            cursor.execute(pragma)
    finally:
        cursor.close()


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    # Rows stay readable after commit; the store hands them out detached.
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create missing tables and check the stored schema version.

    A new database gets the current version.  An existing one with another
    version is used as is, with a warning.
    """
    Base.metadata.create_all(engine)

    with create_session_factory(engine)() as session:
        stored = session.execute(
            select(MetaRow.value).where(MetaRow.key == "schema_version")
        ).scalar_one_or_none()
        if stored is None:
            session.add(MetaRow(key="schema_version", value=SCHEMA_VERSION))
            session.commit()
        elif stored != SCHEMA_VERSION:
            logger.warning(
                "Database schema version %s differs from expected %s",
                stored,
                SCHEMA_VERSION,
            )
