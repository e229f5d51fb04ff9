"""thinktree delete -- delete a thread and its branches."""

from __future__ import annotations

import click


@click.command()
@click.argument("thread_id")
@click.option("-y", "--yes", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def delete(ctx: click.Context, thread_id: str, yes: bool) -> None:
    """Delete THREAD_ID together with every branch forked from it."""
    from thinktree.cli import _tree_session

    with _tree_session(ctx, save=True) as (conversation, console):
        doomed = conversation.subtree_ids(thread_id)
        if not yes and len(doomed) > 1:
            click.confirm(
                f"Delete {thread_id} and {len(doomed) - 1} branch(es)?",
                abort=True,
            )
        deleted = conversation.delete_subtree(thread_id)
        console.print(
            f"Deleted {len(deleted)} thread(s). "
            f"Active: [yellow]{conversation.active_thread_id}[/yellow]"
        )
