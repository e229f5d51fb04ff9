"""thinktree tree -- show the thread tree."""

from __future__ import annotations

import click

from thinktree.cli.formatting import format_forest


@click.command()
@click.pass_context
def tree(ctx: click.Context) -> None:
    """Show every thread as a tree, marking the active one."""
    from thinktree.cli import _tree_session

    with _tree_session(ctx) as (conversation, console):
        format_forest(conversation.forest(), conversation.active_thread_id, console)
