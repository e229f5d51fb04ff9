"""Tests for SQLAlchemy ORM schema.

Covers:
- All tables are created and the schema version is recorded
- ThreadRow / MessageRow round-trip
- Foreign key constraints and cascading deletes
- Indexes exist on expected columns
"""

import logging
from datetime import datetime, timezone

import pytest
from sqlalchemy import inspect, select
from sqlalchemy.exc import IntegrityError

from thinktree.storage.engine import SCHEMA_VERSION, create_store_engine, init_db
from thinktree.storage.schema import MessageRow, MetaRow, ThreadRow


def _thread(thread_id: str = "t1") -> ThreadRow:
    now = datetime.now(timezone.utc)
    return ThreadRow(id=thread_id, title="A thread", created_at=now, updated_at=now)


def _message(message_id: str, thread_id: str = "t1", position: int = 0) -> MessageRow:
    return MessageRow(
        id=message_id,
        thread_id=thread_id,
        position=position,
        role="assistant",
        content="answer",
        reasoning="why",
        created_at=datetime.now(timezone.utc),
    )


class TestTableCreation:
    def test_all_tables_exist(self, engine):
        inspector = inspect(engine)
        assert {"threads", "messages", "_thinktree_meta"} <= set(inspector.get_table_names())

    def test_meta_has_schema_version(self, session):
        row = session.execute(
            select(MetaRow).where(MetaRow.key == "schema_version")
        ).scalar_one_or_none()
        assert row is not None
        assert row.value == SCHEMA_VERSION

    def test_init_db_is_idempotent(self, engine):
        init_db(engine)
        init_db(engine)

    def test_version_mismatch_is_logged(self, tmp_path, caplog):
        eng = create_store_engine(str(tmp_path / "old.db"))
        init_db(eng)
        with eng.begin() as conn:
            conn.execute(
                MetaRow.__table__.update()
                .where(MetaRow.key == "schema_version")
                .values(value="0")
            )
        with caplog.at_level(logging.WARNING, logger="thinktree.storage.engine"):
            init_db(eng)
        eng.dispose()
        assert "differs from expected" in caplog.text

    def test_message_index(self, engine):
        indexes = {ix["name"] for ix in inspect(engine).get_indexes("messages")}
        assert "ix_messages_thread_position" in indexes


class TestRows:
    def test_round_trip(self, session):
        session.add(_thread())
        session.flush()
        session.add_all([_message("m2", position=1), _message("m1", position=0)])
        session.flush()
        session.expire_all()

        thread = session.execute(select(ThreadRow).where(ThreadRow.id == "t1")).scalar_one()
        assert [m.id for m in thread.messages] == ["m1", "m2"]
        assert thread.messages[0].reasoning == "why"
        assert thread.messages[0].thread.id == "t1"

    def test_message_requires_existing_thread(self, session):
        session.add(_message("m1", thread_id="ghost"))
        with pytest.raises(IntegrityError):
            session.flush()

    def test_delete_cascades_to_messages(self, session):
        session.add(_thread())
        session.flush()
        session.add(_message("m1"))
        session.flush()

        session.delete(session.get(ThreadRow, "t1"))
        session.flush()
        assert session.execute(select(MessageRow)).scalars().all() == []
