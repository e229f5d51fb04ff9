"""Domain models for ThinkTree."""

from thinktree.models.config import ThinkTreeConfig
from thinktree.models.message import ChatTurn, Message, Role, new_message_id
from thinktree.models.thread import (
    AncestorLink,
    Thread,
    ThreadTreeNode,
    clip_title,
    generate_title,
    new_thread_id,
)

__all__ = [
    "AncestorLink",
    "ChatTurn",
    "Message",
    "Role",
    "Thread",
    "ThreadTreeNode",
    "ThinkTreeConfig",
    "clip_title",
    "generate_title",
    "new_message_id",
    "new_thread_id",
]
