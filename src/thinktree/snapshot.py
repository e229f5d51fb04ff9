"""Local snapshot: save and restore workspaces as one JSON document.

Format version 2::

    {
      "version": 2,
      "active_workspace_id": "ws_...",
      "workspaces": [
        {"id", "title", "created_at", "updated_at", "active_thread_id",
         "threads": [{"id", "title", "parent_thread_id", "fork_message_id",
                      "created_at", "updated_at",
                      "messages": [{"id", "role", "content", "reasoning",
                                    "created_at", "synthetic"}]}]}
      ]
    }

Version 1 held a single flat conversation (``{"threads", "active_thread_id"}``)
and is migrated into one workspace on load.  Restoring never fails: any
input that cannot be read yields a fresh snapshot, and single threads that
cannot be put back into a tree are dropped.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Literal, Optional, Sequence

from pydantic import BaseModel, Field, ValidationError

from thinktree.exceptions import SnapshotError
from thinktree.models.message import Message, Role, utcnow
from thinktree.models.thread import Thread
from thinktree.tree import ConversationTree

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 2
MIGRATED_TITLE = "Migrated conversation"
DEFAULT_TITLE = "New workspace"


class MessageRecord(BaseModel):
    id: str
    role: Role
    content: str
    reasoning: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    synthetic: bool = False

    @classmethod
    def from_message(cls, message: Message) -> MessageRecord:
        return cls(
            id=message.id,
            role=message.role,
            content=message.content,
            reasoning=message.reasoning,
            created_at=message.created_at,
            synthetic=message.synthetic,
        )

    def to_message(self) -> Message:
        return Message(
            role=self.role,
            content=self.content,
            reasoning=self.reasoning,
            id=self.id,
            created_at=self.created_at,
            synthetic=self.synthetic,
        )


class ThreadRecord(BaseModel):
    id: str
    title: str
    messages: list[MessageRecord] = Field(default_factory=list)
    parent_thread_id: Optional[str] = None
    fork_message_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def from_thread(cls, thread: Thread) -> ThreadRecord:
        return cls(
            id=thread.id,
            title=thread.title,
            messages=[MessageRecord.from_message(m) for m in thread.messages],
            parent_thread_id=thread.parent_thread_id,
            fork_message_id=thread.fork_message_id,
            created_at=thread.created_at,
            updated_at=thread.updated_at,
        )

    def to_thread(self) -> Thread:
        return Thread(
            title=self.title,
            id=self.id,
            messages=[m.to_message() for m in self.messages],
            parent_thread_id=self.parent_thread_id,
            fork_message_id=self.fork_message_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class WorkspaceRecord(BaseModel):
    id: str
    title: str = DEFAULT_TITLE
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    active_thread_id: Optional[str] = None
    threads: list[ThreadRecord] = Field(default_factory=list)

    @classmethod
    def fresh(cls, title: str = DEFAULT_TITLE) -> WorkspaceRecord:
        return cls.from_tree(
            ConversationTree.fresh(), workspace_id=_new_workspace_id(), title=title
        )

    @classmethod
    def from_tree(
        cls,
        tree: ConversationTree,
        *,
        workspace_id: str,
        title: str = DEFAULT_TITLE,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ) -> WorkspaceRecord:
        now = utcnow()
        return cls(
            id=workspace_id,
            title=title,
            created_at=created_at or now,
            updated_at=updated_at or now,
            active_thread_id=tree.active_thread_id,
            threads=[ThreadRecord.from_thread(t) for t in tree],
        )

    def to_tree(self) -> ConversationTree:
        """Rebuild the conversation tree (an empty record yields a fresh tree)."""
        if not self.threads:
            return ConversationTree.fresh()
        return ConversationTree.from_threads(
            (t.to_thread() for t in self.threads),
            active_thread_id=self.active_thread_id,
        )


class Snapshot(BaseModel):
    version: Literal[2] = SNAPSHOT_VERSION
    active_workspace_id: Optional[str] = None
    workspaces: list[WorkspaceRecord] = Field(default_factory=list)

    @classmethod
    def fresh(cls) -> Snapshot:
        workspace = WorkspaceRecord.fresh()
        return cls(active_workspace_id=workspace.id, workspaces=[workspace])

    @classmethod
    def capture(cls, workspaces: Sequence[Any], active_workspace_id: str | None = None) -> Snapshot:
        """Snapshot live workspaces (anything with ``id``, ``title``, ``tree``)."""
        records = [
            WorkspaceRecord.from_tree(
                ws.tree,
                workspace_id=ws.id,
                title=ws.title,
                created_at=getattr(ws, "created_at", None),
                updated_at=getattr(ws, "updated_at", None),
            )
            for ws in workspaces
        ]
        if active_workspace_id is None and records:
            active_workspace_id = records[0].id
        return cls(active_workspace_id=active_workspace_id, workspaces=records)

    def workspace(self, workspace_id: str | None = None) -> WorkspaceRecord:
        """The requested (default: active, else first) workspace record."""
        wanted = workspace_id or self.active_workspace_id
        for record in self.workspaces:
            if record.id == wanted:
                return record
        if workspace_id is not None or not self.workspaces:
            raise KeyError(wanted)
        return self.workspaces[0]

    def replace(self, record: WorkspaceRecord) -> None:
        """Insert or replace *record* by id."""
        for i, existing in enumerate(self.workspaces):
            if existing.id == record.id:
                self.workspaces[i] = record
                return
        self.workspaces.append(record)


class LegacySnapshot(BaseModel):
    """Version 1: one flat conversation, no workspaces."""

    version: Optional[int] = None
    threads: list[Any] = Field(default_factory=list)
    active_thread_id: Optional[str] = None


def _new_workspace_id() -> str:
    return f"ws_{uuid.uuid4().hex[:16]}"


def _consistent_threads(threads: list[ThreadRecord]) -> list[ThreadRecord]:
    """Drop threads that cannot be put back into a tree.

    A thread is dropped when it repeats a thread id or a message id seen
    earlier, sets only one of its two fork fields, or forks from a thread
    dropped here.  A parent missing from the snapshot altogether is kept
    as is and reported when the ancestry is walked.
    """
    kept: list[ThreadRecord] = []
    thread_ids: set[str] = set()
    message_ids: set[str] = set()
    dropped: set[str] = set()
    for thread in threads:
        own_ids = [m.id for m in thread.messages]
        if thread.id in thread_ids:
            reason = "duplicate thread id"
        elif (thread.parent_thread_id is None) != (thread.fork_message_id is None):
            reason = "incomplete fork link"
        elif thread.parent_thread_id in dropped:
            reason = "parent thread was dropped"
        elif len(set(own_ids)) != len(own_ids) or message_ids.intersection(own_ids):
            reason = "duplicate message id"
        else:
            kept.append(thread)
            thread_ids.add(thread.id)
            message_ids.update(own_ids)
            continue
        logger.warning("Dropping thread %s from snapshot: %s", thread.id, reason)
        if thread.id not in thread_ids:
            dropped.add(thread.id)
    return kept


def _migrate_legacy(legacy: LegacySnapshot) -> Snapshot | None:
    threads: list[ThreadRecord] = []
    for raw in legacy.threads:
        try:
            threads.append(ThreadRecord.model_validate(raw))
        except ValidationError:
            logger.warning("Dropping unreadable thread from legacy snapshot")
    threads = _consistent_threads(threads)
    if not threads:
        return None
    ids = {t.id for t in threads}
    active = legacy.active_thread_id if legacy.active_thread_id in ids else threads[0].id
    record = WorkspaceRecord(
        id=_new_workspace_id(),
        title=MIGRATED_TITLE,
        active_thread_id=active,
        threads=threads,
    )
    logger.info("Migrated legacy snapshot with %d thread(s)", len(threads))
    return Snapshot(active_workspace_id=record.id, workspaces=[record])


def restore_snapshot(raw: str | bytes | None) -> Snapshot:
    """Parse a stored snapshot, migrating version 1; never raises.

    Empty, non-JSON, schema-invalid, or workspace-less input yields
    :meth:`Snapshot.fresh`.
    """
    if not raw or not raw.strip():
        return Snapshot.fresh()
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning("Snapshot is not valid JSON; starting fresh")
        return Snapshot.fresh()
    if not isinstance(data, dict):
        logger.warning("Snapshot is not a JSON object; starting fresh")
        return Snapshot.fresh()

    if data.get("version") == SNAPSHOT_VERSION:
        try:
            snapshot = Snapshot.model_validate(data)
        except ValidationError as exc:
            logger.warning(
                "Snapshot failed validation (%d errors); starting fresh", exc.error_count()
            )
            return Snapshot.fresh()
        for record in snapshot.workspaces:
            record.threads = _consistent_threads(record.threads)
        if not snapshot.workspaces:
            return Snapshot.fresh()
        ids = {w.id for w in snapshot.workspaces}
        if snapshot.active_workspace_id not in ids:
            snapshot.active_workspace_id = snapshot.workspaces[0].id
        return snapshot

    if isinstance(data.get("threads"), list):
        try:
            migrated = _migrate_legacy(LegacySnapshot.model_validate(data))
        except ValidationError:
            migrated = None
        if migrated is not None:
            return migrated

    logger.warning("Unrecognized snapshot format; starting fresh")
    return Snapshot.fresh()


def read_snapshot(path: str | os.PathLike[str]) -> Snapshot:
    """Read *path*; a missing or unreadable file yields a fresh snapshot."""
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        return Snapshot.fresh()
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Cannot read snapshot %s: %s", path, exc)
        return Snapshot.fresh()
    return restore_snapshot(raw)


def write_snapshot(path: str | os.PathLike[str], snapshot: Snapshot) -> None:
    """Write *snapshot* to *path* atomically (temp file + replace).

    Raises:
        SnapshotError: The file could not be written.
    """
    target = Path(path)
    payload = snapshot.model_dump_json(indent=2)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
            os.replace(tmp, target)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
    except OSError as exc:
        raise SnapshotError(f"Cannot write snapshot {target}: {exc}") from exc
