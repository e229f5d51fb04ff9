"""ThinkTree CLI -- terminal interface for branching reasoning conversations.

This module is NEVER imported from thinktree/__init__.py.
It is only loaded via the ``thinktree`` entry point defined in pyproject.toml.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING

import click
from rich.console import Console
from rich.logging import RichHandler

from thinktree.cli.formatting import format_error, get_console
from thinktree.models.config import ThinkTreeConfig

if TYPE_CHECKING:
    from collections.abc import Iterator

    from thinktree.llm.transport import ChatTransport
    from thinktree.snapshot import Snapshot, WorkspaceRecord
    from thinktree.tree import ConversationTree


@click.group()
@click.option(
    "--snapshot",
    default=None,
    envvar="THINKTREE_SNAPSHOT",
    help="Path to the conversation snapshot file.",
)
@click.option(
    "--server",
    default=None,
    envvar="THINKTREE_SERVER_URL",
    help="Send chat requests through a running thinktree server.",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, snapshot: str | None, server: str | None, verbose: bool) -> None:
    """ThinkTree: branching conversations with reasoning models."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
            force=True,
        )
    ctx.ensure_object(dict)
    ctx.obj["config"] = ThinkTreeConfig.from_env(snapshot_path=snapshot, server_url=server)


def _config(ctx: click.Context) -> ThinkTreeConfig:
    return ctx.obj["config"]


def _load(ctx: click.Context) -> tuple[Snapshot, WorkspaceRecord]:
    from thinktree.snapshot import read_snapshot

    snapshot = read_snapshot(_config(ctx).snapshot_path)
    return snapshot, snapshot.workspace()


def _save(ctx: click.Context, snapshot: Snapshot, record: WorkspaceRecord) -> None:
    from thinktree.snapshot import write_snapshot

    snapshot.replace(record)
    snapshot.active_workspace_id = record.id
    write_snapshot(_config(ctx).snapshot_path, snapshot)


@contextmanager
def _tree_session(
    ctx: click.Context, *, save: bool = False
) -> Iterator[tuple[ConversationTree, Console]]:
    """Open the active workspace's tree, yield (tree, console), save if asked.

    Formats exceptions as CLI errors.
    """
    from thinktree.snapshot import WorkspaceRecord

    console = get_console()
    try:
        snapshot, record = _load(ctx)
        tree = record.to_tree()
        yield tree, console
        if save:
            updated = WorkspaceRecord.from_tree(
                tree,
                workspace_id=record.id,
                title=record.title,
                created_at=record.created_at,
            )
            _save(ctx, snapshot, updated)
    except (SystemExit, click.Abort):
        raise
    except Exception as e:
        format_error(str(e), console)
        raise SystemExit(1) from None


def _make_transport(ctx: click.Context) -> ChatTransport:
    """Build the chat transport: the server if configured, else the API."""
    from thinktree.llm.client import ReasoningChatClient
    from thinktree.llm.transport import HttpTransport, UpstreamTransport

    config = _config(ctx)
    if config.server_url:
        return HttpTransport(config.server_url, timeout=config.timeout)
    return UpstreamTransport(ReasoningChatClient.from_config(config))


def _make_store(ctx: click.Context):  # type: ignore[no-untyped-def]
    from thinktree.storage.store import SqlThreadStore

    return SqlThreadStore.from_config(_config(ctx))


# Register subcommands after cli group is defined
from thinktree.cli.commands.branch import branch  # noqa: E402
from thinktree.cli.commands.chat import chat  # noqa: E402
from thinktree.cli.commands.delete import delete  # noqa: E402
from thinktree.cli.commands.serve import serve  # noqa: E402
from thinktree.cli.commands.show import show  # noqa: E402
from thinktree.cli.commands.switch import switch  # noqa: E402
from thinktree.cli.commands.tree import tree  # noqa: E402

cli.add_command(serve)
cli.add_command(chat)
cli.add_command(branch)
cli.add_command(tree)
cli.add_command(show)
cli.add_command(switch)
cli.add_command(delete)
