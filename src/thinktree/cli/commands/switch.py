"""thinktree switch -- make a thread the active one."""

from __future__ import annotations

import click
from rich.markup import escape


@click.command()
@click.argument("thread_id")
@click.pass_context
def switch(ctx: click.Context, thread_id: str) -> None:
    """Make THREAD_ID the active thread."""
    from thinktree.cli import _tree_session

    with _tree_session(ctx, save=True) as (conversation, console):
        thread = conversation.set_active(thread_id)
        console.print(
            f"Switched to [bold]{escape(thread.title)}[/bold] [yellow]{thread.id}[/yellow]"
        )
