"""Configuration model for ThinkTree.

ThinkTreeConfig holds the settings shared by the client, the server, the
store, and the CLI.  Values come from constructor arguments or, through
:meth:`ThinkTreeConfig.from_env`, from ``THINKTREE_*`` environment
variables.
"""

from __future__ import annotations

import os
from typing import Any, Optional

from pydantic import BaseModel

DEFAULT_BASE_URL = "https://api.deepseek.com"
DEFAULT_MODEL = "deepseek-reasoner"

# field name -> environment variable
_ENV_VARS: dict[str, str] = {
    "api_key": "THINKTREE_API_KEY",
    "base_url": "THINKTREE_BASE_URL",
    "model": "THINKTREE_MODEL",
    "timeout": "THINKTREE_TIMEOUT",
    "max_retries": "THINKTREE_MAX_RETRIES",
    "db_path": "THINKTREE_DB",
    "db_url": "THINKTREE_DB_URL",
    "snapshot_path": "THINKTREE_SNAPSHOT",
    "server_url": "THINKTREE_SERVER_URL",
}


class ThinkTreeConfig(BaseModel):
    """Process-wide configuration."""

    api_key: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL
    timeout: float = 120.0
    max_retries: int = 3
    db_path: str = "thinktree.db"
    db_url: Optional[str] = None
    snapshot_path: str = ".thinktree.json"
    server_url: Optional[str] = None

    @classmethod
    def from_env(cls, **overrides: Any) -> ThinkTreeConfig:
        """Build a config from ``THINKTREE_*`` environment variables.

        Explicit *overrides* win over the environment; ``None`` overrides
        are ignored so callers can pass optional CLI flags straight through.
        """
        values: dict[str, Any] = {}
        for name, var in _ENV_VARS.items():
            raw = os.environ.get(var)
            if raw:
                values[name] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
