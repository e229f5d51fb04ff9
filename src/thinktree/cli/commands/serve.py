"""thinktree serve -- run the HTTP server."""

from __future__ import annotations

import click
import uvicorn


@click.command()
@click.option("--host", default="127.0.0.1", show_default=True, help="Interface to bind.")
@click.option("--port", default=8000, show_default=True, type=int, help="Port to listen on.")
@click.pass_context
def serve(ctx: click.Context, host: str, port: int) -> None:
    """Serve the chat proxy and thread store over HTTP."""
    from thinktree.cli import _config
    from thinktree.server.app import create_app

    app = create_app(_config(ctx))
    uvicorn.run(app, host=host, port=port, log_level="info")
