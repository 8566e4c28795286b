"""JSON response builders for the cspgen HTTP service.

  build_csp_response():
      HTTP 200 — generated policy. Body carries the header value and the
      per-directive token lists; ``X-CSPGen-Analysis-ID`` correlates with logs.

  build_error_response():
      HTTP 4xx/5xx — a generation failure mapped from the exception hierarchy:

        ConfigurationError     → 400 invalid_request
        TargetNotAllowedError  → 400 target_not_allowed
        RedirectNotAllowedError → 502 redirect_not_allowed
        FetchTimeoutError      → 504 fetch_timeout
        BodyTooLargeError      → 502 body_too_large
        FetchError             → 502 fetch_failed
        DnsLookupError         → 502 dns_lookup_failed

No partial policy is ever included in an error body.
"""

from __future__ import annotations

from typing import Optional

from fastapi.responses import JSONResponse

from cspgen.constants import HEADER_NAME
from cspgen.models.errors import (
    BodyTooLargeError,
    ConfigurationError,
    CSPGeneratorError,
    DnsLookupError,
    FetchError,
    FetchTimeoutError,
    RedirectNotAllowedError,
    TargetNotAllowedError,
)

ANALYSIS_ID_HEADER: str = "X-CSPGen-Analysis-ID"

# Most specific first. BodyTooLargeError / FetchTimeoutError subclass FetchError.
_ERROR_STATUS: tuple[tuple[type[CSPGeneratorError], int, str], ...] = (
    (RedirectNotAllowedError, 502, "redirect_not_allowed"),
    (TargetNotAllowedError, 400, "target_not_allowed"),
    (ConfigurationError, 400, "invalid_request"),
    (FetchTimeoutError, 504, "fetch_timeout"),
    (BodyTooLargeError, 502, "body_too_large"),
    (DnsLookupError, 502, "dns_lookup_failed"),
    (FetchError, 502, "fetch_failed"),
)


def error_status(exc: CSPGeneratorError) -> tuple[int, str]:
    """Return ``(http_status, error_code)`` for a generator exception."""
    for error_type, status_code, code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code, code
    return 500, "internal_error"


def build_csp_response(
    analysis_id: str,
    header: str,
    policy: dict[str, list[str]],
    nonce: Optional[str] = None,
) -> JSONResponse:
    """Build the HTTP 200 response for a generated policy.

    The nonce is only included when nonce generation was enabled for the
    request; the caller needs it to stamp its inline scripts.
    """
    content: dict = {
        "analysis_id": analysis_id,
        "header": header,
        "policy": policy,
        "header_name": HEADER_NAME,
    }
    if nonce is not None:
        content["nonce"] = nonce
    response = JSONResponse(status_code=200, content=content)
    response.headers[ANALYSIS_ID_HEADER] = analysis_id
    return response


def build_error_response(exc: CSPGeneratorError, analysis_id: str) -> JSONResponse:
    """Build the JSON error response for a failed analysis.

    Args:
        exc:         The exception raised by the generator or target check.
        analysis_id: ULID of the failed analysis, for log correlation.

    Returns:
        JSONResponse with the mapped status code and ``X-CSPGen-Analysis-ID``.
    """
    status_code, code = error_status(exc)
    error: dict = {
        "message": str(exc),
        "code": code,
    }
    if isinstance(exc, FetchError) and exc.status_code is not None:
        error["upstream_status"] = exc.status_code

    response = JSONResponse(
        status_code=status_code,
        content={"error": error, "analysis_id": analysis_id},
    )
    response.headers[ANALYSIS_ID_HEADER] = analysis_id
    return response
