"""thinktree show -- print the messages of a thread."""

from __future__ import annotations

import click

from thinktree.cli.formatting import format_thread


@click.command()
@click.argument("thread_id", required=False)
@click.option("--hide-reasoning", is_flag=True, help="Do not print reasoning.")
@click.pass_context
def show(ctx: click.Context, thread_id: str | None, hide_reasoning: bool) -> None:
    """Print THREAD_ID (default: the active thread) with its messages."""
    from thinktree.cli import _tree_session
    from thinktree.exceptions import InvalidStateError

    with _tree_session(ctx) as (conversation, console):
        target = thread_id or conversation.active_thread_id
        if target is None:
            raise InvalidStateError("No active thread")
        format_thread(conversation.get(target), console, show_reasoning=not hide_reasoning)
