"""Health endpoint for the cspgen service.

  GET /health — 503 before ``app.state.ready`` is set, 200 with service
                statistics afterwards.

/health is polled by container health probes and by ``cspgen-server``
supervisors waiting for startup to finish.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Request

from cspgen.config import Config
from cspgen.fetch.client import POOL_MAX_CONNECTIONS
from cspgen.utils.health import AnalysisTracker

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Primary health check endpoint.

    Response body (200):
        {
          "status": "ok",
          "analyses_completed": 12,
          "analyses_failed": 1,
          "avg_analysis_ms": 143.2,
          "p99_analysis_ms": 0.0,
          "connection_pool_size": 100,
          "allow_private_targets": false,
          "config_path": "/path/to/config.yaml" | null
        }

    Response body (503):
        {"status": "starting", "message": "cspgen is starting up..."}
    """
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(
            status_code=503,
            detail={
                "status": "starting",
                "message": "cspgen is starting up...",
            },
        )

    config: Config = request.app.state.config
    tracker: Optional[AnalysisTracker] = getattr(request.app.state, "analysis_tracker", None)
    tracker = tracker or AnalysisTracker()

    return {
        "status": "ok",
        "analyses_completed": tracker.completed,
        "analyses_failed": tracker.failed,
        "avg_analysis_ms": round(tracker.avg_ms, 1),
        "p99_analysis_ms": round(tracker.p99_ms, 1),
        "connection_pool_size": POOL_MAX_CONNECTIONS,
        "allow_private_targets": config.server.allow_private_targets,
        "config_path": config.path,
    }
