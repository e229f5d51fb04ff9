"""SQLAlchemy ORM schema for ThinkTree storage.

Defines the tables: threads, messages, _thinktree_meta.
Deleting a thread cascades to its messages.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all ThinkTree ORM models."""

    pass


class ThreadRow(Base):
    """A persisted conversation thread."""

    __tablename__ = "threads"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)

    messages: Mapped[list["MessageRow"]] = relationship(
        "MessageRow",
        back_populates="thread",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="MessageRow.position",
        lazy="selectin",
    )


class MessageRow(Base):
    """A persisted message; ``position`` orders messages inside a thread."""

    __tablename__ = "messages"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    thread_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("threads.id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    reasoning: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    thread: Mapped["ThreadRow"] = relationship("ThreadRow", back_populates="messages")

    __table_args__ = (Index("ix_messages_thread_position", "thread_id", "position"),)


class MetaRow(Base):
    """Key-value metadata (schema version)."""

    __tablename__ = "_thinktree_meta"

    key: Mapped[str] = mapped_column(String(50), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
