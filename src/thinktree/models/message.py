"""Message domain model.

A Message is one turn in a thread.  It is immutable once finalized; while
a response is streaming, the tree mutates ``content`` / ``reasoning`` of the
trailing (unfinalized) message in place.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

Role = Literal["user", "assistant"]


def new_message_id() -> str:
    """Generate a unique message id."""
    return f"msg_{uuid.uuid4().hex[:16]}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ChatTurn:
    """A ``{role, content}`` pair as sent upstream."""

    role: Role
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class Message:
    """A single message inside a thread.

    Attributes:
        role: ``"user"`` or ``"assistant"``.
        content: Answer text (reasoning spans already removed).
        reasoning: Extracted reasoning text, or None if the model gave none.
        id: Unique across the whole conversation tree; fork points refer
            to it.
        created_at: UTC creation time.
        finalized: False only while a response is streaming into it.
        synthetic: True for branch-welcome messages that are shown to the
            user but never sent upstream.
    """

    role: Role
    content: str
    reasoning: str | None = None
    id: str = field(default_factory=new_message_id)
    created_at: datetime = field(default_factory=utcnow)
    finalized: bool = True
    synthetic: bool = False

    def to_turn(self) -> ChatTurn:
        return ChatTurn(role=self.role, content=self.content)
