"""CSP generation endpoint — POST /v1/csp.

Request flow:
  1. Merge the request's option overrides onto ``app.state.config.generator``.
  2. Refuse ``allow_private_origins`` unless ``server.allow_private_targets``.
  3. Construct ``SecureCSPGenerator`` (ConfigurationError → 400).
  4. Unless private origins are allowed, reject pages whose own host is local
     or private (TargetNotAllowedError → 400). The service fetches arbitrary
     URLs for its callers; without this check it is an SSRF proxy.
  5. ``generate()`` using the shared ``app.state.http_client``. The generator
     applies the same scheme and private-host checks to every redirect hop.

Failures map to JSON error bodies via ``build_error_response()``; no partial
policy is ever returned.
"""

from __future__ import annotations

import time
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from cspgen.config import Config
from cspgen.generator import SecureCSPGenerator
from cspgen.models.errors import ConfigurationError, CSPGeneratorError, TargetNotAllowedError
from cspgen.models.policy import DirectiveStore
from cspgen.models.responses import build_csp_response, build_error_response
from cspgen.policy.origin import OriginResolver
from cspgen.utils.health import AnalysisTracker
from cspgen.utils.logger import get_logger
from cspgen.utils.ulid import generate_ulid

logger = get_logger(__name__)

router = APIRouter(tags=["csp"])


class CSPRequest(BaseModel):
    """Body of ``POST /v1/csp``. Unset options fall back to the server config."""

    url: str = Field(..., description="Absolute URL of the page to analyse")
    allow_http: Optional[bool] = None
    allow_private_origins: Optional[bool] = None
    allow_unsafe_inline_script: Optional[bool] = None
    allow_unsafe_inline_style: Optional[bool] = None
    allow_unsafe_eval: Optional[bool] = None
    require_trusted_types: Optional[bool] = None
    use_nonce: Optional[bool] = None
    use_hashes: Optional[bool] = None
    use_strict_dynamic: Optional[bool] = None
    strict_dynamic_inline_fallback: Optional[bool] = None
    upgrade_insecure_requests: Optional[bool] = None
    block_mixed_content: Optional[bool] = None
    restrict_framing: Optional[bool] = None
    use_sandbox: Optional[bool] = None
    max_body_size: Optional[int] = None
    timeout_ms: Optional[int] = None
    presets: Optional[dict[str, list[str]]] = None


async def ensure_public_target(generator: SecureCSPGenerator) -> None:
    """Raise TargetNotAllowedError if the page host is local or private.

    Raises:
        TargetNotAllowedError: The page host is local/private.
        DnsLookupError: The page host could not be resolved.
    """
    resolver = OriginResolver(
        generator.page_url,
        DirectiveStore(),
        allow_http=True,
        host_resolver=generator.host_resolver,
        logger=generator.logger,
    )
    if await resolver.is_private_host(generator.page_url.raw_host.decode("ascii")):
        raise TargetNotAllowedError(generator.url)


@router.post("/v1/csp")
async def generate_csp(body: CSPRequest, request: Request) -> JSONResponse:
    """Analyse ``body.url`` and return its Content-Security-Policy."""
    config: Config = request.app.state.config
    tracker: AnalysisTracker = request.app.state.analysis_tracker
    analysis_id = generate_ulid()
    start = time.perf_counter()
    generator: Optional[SecureCSPGenerator] = None

    overrides = body.model_dump(exclude_none=True, exclude={"url"})

    try:
        options = config.generator.replace(**overrides)
        if options.allow_private_origins and not config.server.allow_private_targets:
            raise ConfigurationError(
                "allow_private_origins is not permitted by this server "
                "(set server.allow_private_targets)"
            )
        generator = SecureCSPGenerator(
            body.url,
            options,
            http_client=request.app.state.http_client,
            host_resolver=request.app.state.host_resolver,
        )
        if not options.allow_private_origins:
            await ensure_public_target(generator)
        header = await generator.generate()
    except CSPGeneratorError as exc:
        duration_ms = (time.perf_counter() - start) * 1000
        tracker.record_failure(duration_ms)
        if generator is not None and generator.analysis_id:
            analysis_id = generator.analysis_id
        logger.warning(
            "csp_request_failed",
            analysis_id=analysis_id,
            url=body.url,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return build_error_response(exc, analysis_id)

    duration_ms = (time.perf_counter() - start) * 1000
    tracker.record_success(duration_ms)
    analysis_id = generator.analysis_id or analysis_id
    logger.info(
        "csp_request_completed",
        analysis_id=analysis_id,
        url=generator.url,
        duration_ms=round(duration_ms, 1),
    )
    return build_csp_response(
        analysis_id,
        header,
        generator.policy,
        nonce=generator.nonce if options.nonce_enabled else None,
    )
