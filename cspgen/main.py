"""cspgen FastAPI application factory + lifespan lifecycle.

This module implements:
  - create_app() — testable application factory
  - lifespan — @asynccontextmanager startup/shutdown sequence
  - /health router — delegated to cspgen/health.py
  - /v1/csp router — delegated to cspgen/api.py (gated on app.state.ready)
  - /        route  — service discovery root
  - build_app()  — uvicorn factory (configures logging, then create_app())

Startup sequence:
  1. load_config()          → app.state.config (unless injected)
  2. create_http_client()   → app.state.http_client (shared, pooled)
  3. SystemResolver()       → app.state.host_resolver (unless injected)
  4. AnalysisTracker()      → app.state.analysis_tracker
  5. app.state.ready = True

Shutdown (reverse):
  app.state.ready = False → close http client

Uvicorn hardened defaults (see cspgen/run.py):
  uvicorn --factory cspgen.main:build_app --host 127.0.0.1 --port 4343 --limit-concurrency 100
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import httpx
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.routing import APIRouter

from cspgen.api import router as csp_router
from cspgen.config import Config, load_config
from cspgen.fetch.client import POOL_MAX_CONNECTIONS, create_http_client
from cspgen.health import router as health_router
from cspgen.policy.origin import HostResolver, SystemResolver
from cspgen.utils.health import AnalysisTracker
from cspgen.utils.logger import configure_logging, get_logger

DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if not DEBUG else "DEBUG")
JSON_LOGS = os.getenv("JSON_LOGS", "true").lower() == "true"

logger = get_logger(__name__)

root_router = APIRouter(tags=["root"])


# ─── Dependencies ─────────────────────────────────────────────────────────────


async def require_ready(request: Request) -> None:
    """FastAPI dependency: raises HTTP 503 if app.state.ready is not True."""
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(
            status_code=503,
            detail={
                "status": "starting",
                "message": "cspgen is starting up...",
            },
        )


# ─── Root ─────────────────────────────────────────────────────────────────────


@root_router.get("/")
async def root() -> dict[str, str]:
    """Root endpoint — service identity / discovery."""
    return {
        "service": "cspgen",
        "tagline": "Content-Security-Policy generation from observed page resources",
        "generate": "/v1/csp",
        "health": "/health",
    }


# ─── Factory ──────────────────────────────────────────────────────────────────


def create_app(
    config: Optional[Config] = None,
    *,
    host_resolver: Optional[HostResolver] = None,
    http_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Create and configure the cspgen FastAPI application.

    Args:
        config:         Pre-built Config; ``load_config()`` is used when None.
        host_resolver:  DNS collaborator for the SSRF guard (default SystemResolver).
        http_transport: Low-level httpx transport for the shared client
                        (tests pass an ``httpx.MockTransport``).

    Returns:
        Configured FastAPI application with lifespan and routers.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("cspgen starting up...")

        app_config = config or load_config()
        app.state.config = app_config
        logger.info(
            "Config loaded",
            path=app_config.path,
            allow_private_targets=app_config.server.allow_private_targets,
        )

        http_client = create_http_client(
            app_config.generator.transport,
            http_transport=http_transport,
        )
        app.state.http_client = http_client
        logger.info("HTTP client created", max_connections=POOL_MAX_CONNECTIONS)

        app.state.host_resolver = host_resolver or SystemResolver()
        app.state.analysis_tracker = AnalysisTracker()

        app.state.ready = True
        logger.info("cspgen ready")

        yield

        logger.info("cspgen shutting down...")
        app.state.ready = False

        try:
            await http_client.aclose()
            logger.info("HTTP client closed")
        except httpx.HTTPError as exc:
            logger.warning("HTTP client close error (non-fatal)", error=str(exc))

    # API docs only in DEBUG: they expose the full schema to anyone on the port.
    application = FastAPI(
        title="cspgen",
        description="Content-Security-Policy generator",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if DEBUG else None,
        redoc_url="/redoc" if DEBUG else None,
        openapi_url="/openapi.json" if DEBUG else None,
    )

    # /health returns 503 for anything arriving before startup completes.
    application.state.ready = False

    application.include_router(root_router)
    application.include_router(health_router)
    application.include_router(csp_router, dependencies=[Depends(require_ready)])

    @application.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        logger.warning(
            "HTTP exception",
            status_code=exc.status_code,
            detail=exc.detail,
            path=str(request.url.path),
        )
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @application.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=str(request.url.path),
        )
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    return application


def build_app() -> FastAPI:
    """Configure process logging and build the app (uvicorn factory target)."""
    configure_logging(log_level=LOG_LEVEL, json_output=JSON_LOGS)
    return create_app()
