"""Page fetcher — bounded, cancellable HTML download over httpx.

Design:
  - Shared ``httpx.AsyncClient`` when the caller provides one (the HTTP service
    does); otherwise a client is created per generator run and closed after.
  - The whole download (connect + headers + body) runs under one total timeout
    (``asyncio.wait_for``). On expiry the partial body is discarded and
    ``FetchTimeoutError`` is raised.
  - Body size is enforced incrementally: ``Content-Length`` is checked before
    reading, then the running total is checked on every received chunk. The
    response is never fully buffered before the limit is applied.
  - Redirects are followed manually, at most MAX_REDIRECTS hops. Every
    target goes through the caller's redirect guard before it is requested.

Error taxonomy:
  - Non-2xx status                     → FetchError(status_code=...)
  - Redirect refused or limit exceeded → RedirectNotAllowedError
  - Declared or streamed size > limit  → BodyTooLargeError
  - Timeout (ours or httpx's)          → FetchTimeoutError
  - Any other httpx transport error    → FetchError
  - Non-HTML content type              → WARNING only
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional

import httpx

from cspgen.config import TransportOptions
from cspgen.constants import UNLIMITED_BODY_SIZE
from cspgen.fetch.headers import build_fetch_headers
from cspgen.models.errors import (
    BodyTooLargeError,
    FetchError,
    FetchTimeoutError,
    RedirectNotAllowedError,
)
from cspgen.utils.logger import adapt_logger

# ─── Constants ────────────────────────────────────────────────────────────────

POOL_MAX_CONNECTIONS: int = 100
POOL_MAX_KEEPALIVE: int = 20
POOL_KEEPALIVE_EXPIRY: float = 30.0  # seconds

HTML_CONTENT_TYPES: tuple[str, ...] = ("text/html", "application/xhtml+xml")

# Redirect hops followed before the fetch is refused.
MAX_REDIRECTS: int = 10

# Called with each redirect target before it is requested; raises to refuse it.
RedirectGuard = Callable[[httpx.URL], Awaitable[None]]

# ─── httpx.AsyncClient factory ────────────────────────────────────────────────


def create_http_client(
    transport: Optional[TransportOptions] = None,
    *,
    http_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Create an httpx.AsyncClient with connection pooling configured.

    Args:
        transport:      Transport options (TLS verification).
        http_transport: Optional low-level httpx transport (tests pass an
                        ``httpx.MockTransport`` here).

    Returns:
        Configured httpx.AsyncClient ready for use.
    """
    transport = transport or TransportOptions()
    return httpx.AsyncClient(
        limits=httpx.Limits(
            max_connections=POOL_MAX_CONNECTIONS,
            max_keepalive_connections=POOL_MAX_KEEPALIVE,
            keepalive_expiry=POOL_KEEPALIVE_EXPIRY,
        ),
        # The per-fetch total timeout is enforced by fetch_html(); this is a backstop.
        timeout=httpx.Timeout(None),
        # Redirects are followed hop by hop in fetch_html() so each target is checked.
        follow_redirects=False,
        verify=transport.verify,
        transport=http_transport,
    )


# ─── Fetch ────────────────────────────────────────────────────────────────────


def check_declared_length(response: httpx.Response, max_body_size: int) -> None:
    """Raise BodyTooLargeError if ``Content-Length`` already exceeds the limit."""
    if max_body_size == UNLIMITED_BODY_SIZE:
        return
    declared = response.headers.get("content-length")
    if declared and declared.strip().isdigit() and int(declared) > max_body_size:
        raise BodyTooLargeError(limit=max_body_size, received=int(declared))


async def read_bounded_body(response: httpx.Response, max_body_size: int) -> bytes:
    """Read the streamed body, aborting as soon as it exceeds ``max_body_size``.

    Raises:
        BodyTooLargeError: Running total exceeded the limit (0 = unlimited).
    """
    chunks: list[bytes] = []
    received = 0
    async for chunk in response.aiter_bytes():
        received += len(chunk)
        if max_body_size != UNLIMITED_BODY_SIZE and received > max_body_size:
            raise BodyTooLargeError(limit=max_body_size, received=received)
        chunks.append(chunk)
    return b"".join(chunks)


def decode_body(body: bytes, response: httpx.Response) -> str:
    """Decode ``body`` using the response charset, falling back to UTF-8."""
    encoding = response.charset_encoding or "utf-8"
    try:
        return body.decode(encoding, errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")


async def fetch_html(
    client: httpx.AsyncClient,
    url: str,
    *,
    transport: Optional[TransportOptions] = None,
    max_body_size: int = UNLIMITED_BODY_SIZE,
    timeout_ms: int,
    redirect_guard: Optional[RedirectGuard] = None,
    logger: Any = None,
) -> str:
    """Download ``url`` and return its decoded markup.

    Args:
        client:         httpx.AsyncClient used for the request.
        url:            Absolute page URL.
        transport:      Transport options (headers, redirects).
        max_body_size:  Body limit in bytes (0 = unlimited).
        timeout_ms:     Total fetch timeout in milliseconds.
        redirect_guard: Awaited with every redirect target before it is
                        requested. Without one, redirects are refused.
        logger:         Logger exposing debug/info/warning/error.

    Raises:
        FetchError, BodyTooLargeError, FetchTimeoutError, RedirectNotAllowedError
    """
    log = adapt_logger(logger, __name__)
    transport = transport or TransportOptions()

    try:
        return await asyncio.wait_for(
            _download(client, url, transport, max_body_size, redirect_guard, log),
            timeout=timeout_ms / 1000,
        )
    except asyncio.TimeoutError:
        log.warning("fetch_timeout", url=url, timeout_ms=timeout_ms)
        raise FetchTimeoutError(timeout_ms) from None
    except httpx.TimeoutException as exc:
        log.warning("fetch_timeout", url=url, timeout_ms=timeout_ms, error=str(exc))
        raise FetchTimeoutError(timeout_ms) from exc
    except httpx.HTTPError as exc:
        log.warning(
            "fetch_failed",
            url=url,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        raise FetchError(f"Failed to fetch {url}: {type(exc).__name__}: {exc}") from exc


async def _send_following_redirects(
    client: httpx.AsyncClient,
    request: httpx.Request,
    transport: TransportOptions,
    redirect_guard: Optional[RedirectGuard],
    log: Any,
) -> httpx.Response:
    redirects = 0
    while True:
        response = await client.send(request, stream=True, follow_redirects=False)
        next_request = response.next_request
        if next_request is None or not transport.follow_redirects:
            return response
        await response.aclose()

        target = next_request.url
        if redirects == MAX_REDIRECTS:
            raise RedirectNotAllowedError(str(target), f"more than {MAX_REDIRECTS} redirects")
        redirects += 1
        if redirect_guard is None:
            raise RedirectNotAllowedError(str(target), "no redirect policy configured")
        await redirect_guard(target)
        log.debug(
            "redirect_followed",
            from_url=str(request.url),
            to_url=str(target),
            status_code=response.status_code,
        )
        request = next_request


async def _download(
    client: httpx.AsyncClient,
    url: str,
    transport: TransportOptions,
    max_body_size: int,
    redirect_guard: Optional[RedirectGuard],
    log: Any,
) -> str:
    request = client.build_request("GET", url, headers=build_fetch_headers(transport))
    response = await _send_following_redirects(client, request, transport, redirect_guard, log)
    try:
        if not response.is_success:
            raise FetchError(
                f"Failed to fetch {url}: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        content_type = response.headers.get("content-type", "")
        if not content_type.lower().startswith(HTML_CONTENT_TYPES):
            log.warning("unexpected_content_type", url=url, content_type=content_type)

        check_declared_length(response, max_body_size)
        body = await read_bounded_body(response, max_body_size)
    finally:
        await response.aclose()

    log.debug(
        "page_fetched",
        url=url,
        status_code=response.status_code,
        body_bytes=len(body),
    )
    return decode_body(body, response)
