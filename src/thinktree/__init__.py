"""ThinkTree: branching conversations with reasoning models.

Stream a reasoning model's deliberation and answer as one delimited text,
fork the conversation at any message, and let every branch inherit exactly
the history its ancestors had at the fork point.
"""

from thinktree._version import __version__

# Core entry points
from thinktree.workspace import BranchRequest, Generation, StreamOutcome, Workspace
from thinktree.tree import ConversationTree
from thinktree.context import ContextAssembler

# Domain models
from thinktree.models import (
    AncestorLink,
    ChatTurn,
    Message,
    Thread,
    ThreadTreeNode,
    ThinkTreeConfig,
)

# Streaming
from thinktree.streaming import (
    ParsedResponse,
    Phase,
    ReasoningReassembler,
    parse_response,
    reassemble,
)

# Upstream
from thinktree.llm import (
    ChatTransport,
    HttpTransport,
    ReasoningChatClient,
    UpstreamTransport,
)

# Prompts
from thinktree.prompts import BranchAction, FallbackResponder

# Persistence
from thinktree.protocols import ThreadStore
from thinktree.snapshot import Snapshot, read_snapshot, restore_snapshot, write_snapshot

# Exceptions
from thinktree.exceptions import (
    CorruptionError,
    InvalidStateError,
    MessageNotFoundError,
    NotFoundError,
    SnapshotError,
    ThinkTreeError,
    ThreadNotFoundError,
)
from thinktree.llm.errors import (
    LLMAuthError,
    LLMClientError,
    LLMConfigError,
    LLMRateLimitError,
    UpstreamConnectionError,
    UpstreamStatusError,
)

__all__ = [
    "__version__",
    # Core
    "Workspace",
    "Generation",
    "StreamOutcome",
    "BranchRequest",
    "ConversationTree",
    "ContextAssembler",
    # Models
    "AncestorLink",
    "ChatTurn",
    "Message",
    "Thread",
    "ThreadTreeNode",
    "ThinkTreeConfig",
    # Streaming
    "ParsedResponse",
    "Phase",
    "ReasoningReassembler",
    "parse_response",
    "reassemble",
    # Upstream
    "ChatTransport",
    "HttpTransport",
    "ReasoningChatClient",
    "UpstreamTransport",
    # Prompts
    "BranchAction",
    "FallbackResponder",
    # Persistence
    "ThreadStore",
    "Snapshot",
    "read_snapshot",
    "restore_snapshot",
    "write_snapshot",
    # Exceptions
    "ThinkTreeError",
    "NotFoundError",
    "ThreadNotFoundError",
    "MessageNotFoundError",
    "InvalidStateError",
    "CorruptionError",
    "SnapshotError",
    "LLMClientError",
    "LLMConfigError",
    "LLMAuthError",
    "LLMRateLimitError",
    "UpstreamStatusError",
    "UpstreamConnectionError",
]
