"""thinktree branch -- fork a thread at a message."""

from __future__ import annotations

import click

from thinktree.cli.formatting import format_error, get_console


@click.command()
@click.argument("message_id", required=False)
@click.option(
    "--thread",
    "thread_id",
    default=None,
    help="Thread to fork (default: owner of MESSAGE_ID, else active).",
)
@click.option(
    "--action",
    type=click.Choice(["explain", "example", "custom"]),
    default=None,
    help="Ask a question in the new branch right away.",
)
@click.option("--prompt", default=None, help="Question for --action custom.")
@click.option("--excerpt", default=None, help="Text to quote (default: the whole message).")
@click.pass_context
def branch(
    ctx: click.Context,
    message_id: str | None,
    thread_id: str | None,
    action: str | None,
    prompt: str | None,
    excerpt: str | None,
) -> None:
    """Fork a thread at MESSAGE_ID (default: its last message).

    Without --action the branch gets a welcome note and no request is made.
    With --action the excerpt is quoted into a question that is answered
    immediately.
    """
    from thinktree.cli.commands._stream import run_in_workspace
    from thinktree.prompts.branch import BranchAction
    from thinktree.workspace import BranchRequest, Workspace

    console = get_console()
    created: list[str] = []

    def start(ws: Workspace):  # type: ignore[no-untyped-def]
        source_id = thread_id
        quoted = excerpt
        if message_id:
            owner, message = ws.tree.find_message(message_id)
            source_id = source_id or owner.id
            quoted = quoted if quoted is not None else message.content
        source_id = source_id or ws.tree.active_thread_id
        if action is None:
            created.append(ws.create_branch(source_id, message_id).id)
            return None
        if quoted is None:
            last = ws.tree.get(source_id).last_message
            quoted = last.content if last is not None else ""
        request = BranchRequest(
            source_thread_id=source_id,
            fork_message_id=message_id,
            excerpt=quoted,
            action=BranchAction(action),
            custom_prompt=prompt,
        )
        thread, generation = ws.branch_with_query(request)
        created.append(thread.id)
        return generation

    try:
        run_in_workspace(ctx, console, start)
    except SystemExit:
        raise
    except Exception as e:
        format_error(str(e), console)
        raise SystemExit(1) from None

    if created:
        console.print(f"Switched to new branch [yellow]{created[0]}[/yellow]")
