"""Exception hierarchy for cspgen.

Failure taxonomy (callers can catch ``CSPGeneratorError`` for all of them):

  ConfigurationError  — bad target URL or option value; raised at construction.
  FetchError          — transport failure or non-2xx response; fatal to the call.
    BodyTooLargeError — response exceeded ``max_body_size``.
    FetchTimeoutError — total fetch timeout elapsed; partial body discarded.
  DnsLookupError      — a discovered hostname could not be resolved while
                        checking it against the private-network ranges.
  TargetNotAllowedError — HTTP service only: the page itself is private/local.
  RedirectNotAllowedError — a redirect hop failed the scheme or private-host
                        check, or the redirect limit was exceeded.

Malformed candidate URLs found inside the page are NOT errors: they are
dropped and logged at DEBUG by the origin resolver.
"""

from __future__ import annotations

from typing import Optional


class CSPGeneratorError(Exception):
    """Base class for every error raised by cspgen."""


class ConfigurationError(CSPGeneratorError, ValueError):
    """Raised when the target URL or generator options are invalid."""


class FetchError(CSPGeneratorError):
    """Raised when the page could not be downloaded.

    Attributes:
        status_code: HTTP status of the response, or None for transport errors.
    """

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class BodyTooLargeError(FetchError):
    """Raised when the response body exceeds the configured size limit."""

    def __init__(self, limit: int, received: int) -> None:
        super().__init__(f"Response too large ({received} > {limit} bytes)")
        self.limit = limit
        self.received = received


class FetchTimeoutError(FetchError):
    """Raised when the fetch did not complete within ``timeout_ms``."""

    def __init__(self, timeout_ms: int) -> None:
        super().__init__(f"Fetch timed out after {timeout_ms}ms")
        self.timeout_ms = timeout_ms


class DnsLookupError(CSPGeneratorError):
    """Raised when a hostname cannot be resolved during the SSRF check."""

    def __init__(self, host: str, reason: str = "") -> None:
        message = f"DNS lookup failed for {host}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.host = host


class TargetNotAllowedError(CSPGeneratorError):
    """Raised by the HTTP service when the requested page is on a private network."""

    def __init__(self, url: str) -> None:
        super().__init__(f"Target URL is not allowed (private or local host): {url}")
        self.url = url


class RedirectNotAllowedError(CSPGeneratorError):
    """Raised when the page redirects to a URL the fetch policy refuses.

    Attributes:
        url:    The redirect target.
        reason: Why the hop was refused (scheme, private host, too many hops).
    """

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Redirect to {url} refused: {reason}")
        self.url = url
        self.reason = reason
