"""Ancestral context assembly.

Builds the ordered ``{role, content}`` list sent upstream for a thread:
each ancestor's messages up to the fork point recorded on the link toward
the thread, then the thread's own messages, then the new user input.
Synthetic branch-welcome messages are display-only and never sent.
"""

from __future__ import annotations

import logging

from thinktree.models.message import ChatTurn, Message
from thinktree.tree import ConversationTree

logger = logging.getLogger(__name__)


def _visible(messages: list[Message]) -> list[ChatTurn]:
    return [m.to_turn() for m in messages if not m.synthetic]


class ContextAssembler:
    """Assemble upstream context from a ConversationTree."""

    def __init__(self, tree: ConversationTree) -> None:
        self._tree = tree

    def ancestral_context(self, thread_id: str) -> list[ChatTurn]:
        """Messages inherited from the ancestors of *thread_id*, root first.

        Raises:
            ThreadNotFoundError: Unknown thread.
            CorruptionError: The ancestry cannot be resolved.
        """
        turns: list[ChatTurn] = []
        for link in self._tree.lineage(thread_id):
            ancestor = self._tree.get(link.thread_id)
            cutoff = (
                ancestor.index_of(link.cutoff_message_id)
                if link.cutoff_message_id
                else None
            )
            if cutoff is None:
                logger.warning(
                    "Fork point %s missing from %s; using its whole history",
                    link.cutoff_message_id,
                    ancestor.id,
                )
                turns.extend(_visible(ancestor.messages))
            else:
                turns.extend(_visible(ancestor.messages[: cutoff + 1]))
        return turns

    def history(self, thread_id: str) -> list[ChatTurn]:
        """Ancestral context plus the thread's own messages."""
        thread = self._tree.get(thread_id)
        turns = self.ancestral_context(thread_id)
        turns.extend(_visible(thread.messages))
        return turns

    def build(self, thread_id: str, content: str) -> list[ChatTurn]:
        """Full upstream context for sending *content* into *thread_id*."""
        turns = self.history(thread_id)
        turns.append(ChatTurn(role="user", content=content))
        return turns
