"""thinktree chat -- send a message and stream the reply."""

from __future__ import annotations

import click

from thinktree.cli.formatting import format_error, get_console


@click.command()
@click.argument("message")
@click.option("--thread", "thread_id", default=None, help="Thread to send to (default: active).")
@click.option("--hide-reasoning", is_flag=True, help="Do not print the model's reasoning.")
@click.pass_context
def chat(ctx: click.Context, message: str, thread_id: str | None, hide_reasoning: bool) -> None:
    """Send MESSAGE to a thread and stream the response."""
    from thinktree.cli.commands._stream import run_in_workspace
    from thinktree.workspace import StreamOutcome

    console = get_console()
    try:
        outcome = run_in_workspace(
            ctx,
            console,
            lambda ws: ws.send_message(message, thread_id=thread_id),
            show_reasoning=not hide_reasoning,
        )
    except SystemExit:
        raise
    except Exception as e:
        format_error(str(e), console)
        raise SystemExit(1) from None

    if outcome is StreamOutcome.FALLBACK:
        console.print("[yellow]Model unavailable; showed a canned reply.[/yellow]")
    elif outcome is StreamOutcome.CANCELLED:
        console.print("[yellow]Stopped.[/yellow]")
