"""Programmatic uvicorn entry point for the cspgen service.

Reads host and port from the loaded config (127.0.0.1:4343 by default) and
starts uvicorn with hardened defaults:

  --limit-concurrency 100  Max 100 concurrent connections; HTTP 503 when exceeded
  --backlog 50             OS connection queue depth; limits SYN flood exposure
  --timeout-keep-alive 5   Reduces Slow Loris attack window

Usage:
    python -m cspgen.run       # reads .cspgen/config.yaml
    cspgen-server              # via pyproject.toml [project.scripts]
"""

from __future__ import annotations

import uvicorn

from cspgen.config import load_config
from cspgen.fetch.client import POOL_MAX_CONNECTIONS
from cspgen.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Uvicorn hardened defaults ───────────────────────────────────────────────

# Matches the httpx pool size so every concurrent analysis has a pooled slot.
UVICORN_LIMIT_CONCURRENCY: int = POOL_MAX_CONNECTIONS

UVICORN_BACKLOG: int = 50

UVICORN_TIMEOUT_KEEP_ALIVE: int = 5


def main() -> None:
    """Start the cspgen service with hardened uvicorn defaults.

    Raises:
        SystemExit: Propagated from load_config() on config parse errors.
    """
    config = load_config()

    if config.server.host not in ("127.0.0.1", "localhost", "::1"):
        logger.warning(
            "SECURITY WARNING: cspgen is bound to a non-loopback address — any "
            "client that can reach it can make the service fetch arbitrary URLs.",
            host=config.server.host,
        )

    uvicorn.run(
        "cspgen.main:build_app",
        factory=True,
        host=config.server.host,
        port=config.server.port,
        limit_concurrency=UVICORN_LIMIT_CONCURRENCY,
        backlog=UVICORN_BACKLOG,
        timeout_keep_alive=UVICORN_TIMEOUT_KEEP_ALIVE,
    )


if __name__ == "__main__":
    main()
