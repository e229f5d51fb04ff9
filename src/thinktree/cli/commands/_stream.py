"""Shared runner for commands that stream a response into the workspace."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Callable, Optional

import click
from rich.console import Console

from thinktree.cli.formatting import StreamPrinter

if TYPE_CHECKING:
    from thinktree.workspace import Generation, StreamOutcome, Workspace


def run_in_workspace(
    ctx: click.Context,
    console: Console,
    start: Callable[[Workspace], Optional[Generation]],
    *,
    show_reasoning: bool = True,
) -> Optional[StreamOutcome]:
    """Load the active workspace, run *start*, stream its generation, save.

    *start* receives the live workspace and returns the generation it
    scheduled, or None if it made no request.  Ctrl-C stops the generation
    and keeps what streamed so far.  The snapshot is saved in every case.
    """
    from thinktree.cli import _load, _make_store, _make_transport, _save
    from thinktree.workspace import StreamOutcome, Workspace

    snapshot, record = _load(ctx)
    printer = StreamPrinter(console, show_reasoning=show_reasoning)
    transport = _make_transport(ctx)
    store = _make_store(ctx)
    workspace = Workspace.from_record(record, transport, store=store, on_update=printer)

    async def main() -> Optional[StreamOutcome]:
        try:
            generation = start(workspace)
            if generation is None:
                return None
            return await generation.wait()
        finally:
            await workspace.aclose()
            await transport.aclose()

    outcome: Optional[StreamOutcome] = None
    try:
        outcome = asyncio.run(main())
    except KeyboardInterrupt:
        outcome = StreamOutcome.CANCELLED
    finally:
        printer.finish()
        _save(ctx, snapshot, workspace.to_record())
        store.close()
    return outcome
