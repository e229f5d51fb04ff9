"""HTTP server for ThinkTree."""

from thinktree.server.app import create_app

__all__ = ["create_app"]
