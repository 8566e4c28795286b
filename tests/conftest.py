"""Root test configuration for cspgen.

Shared doubles for the generator's external collaborators:

  - FakeResolver   — in-memory HostResolver (hostname → addresses); unknown
                     hosts raise DnsLookupError, every lookup is recorded.
  - MockSite       — httpx.MockTransport serving fixed pages by URL.
  - RecordingLogger — captures (level, event, kwargs) for log assertions.

The environment is cleared of CSP_* / CSPGEN_* variables for every test so a
developer's shell cannot leak into config or CLI tests.
"""

from __future__ import annotations

import os
from typing import Any, AsyncIterator, Iterable, Optional, Sequence

import httpx
import pytest

from cspgen.models.errors import DnsLookupError
from cspgen.utils.logger import configure_logging

# Public-looking addresses used throughout the suite (TEST-NET ranges).
PUBLIC_IP = "93.184.216.34"
PUBLIC_IP_2 = "198.51.100.7"

DEFAULT_HOSTS: dict[str, list[str]] = {
    "site.example": [PUBLIC_IP],
    "cdn.example.com": [PUBLIC_IP],
    "fonts.example.com": [PUBLIC_IP_2],
    "img.example.com": [PUBLIC_IP_2],
    "api.example.com": [PUBLIC_IP_2],
    "media.example.com": [PUBLIC_IP_2],
    "insecure.example.com": [PUBLIC_IP],
    "internal.example.com": ["10.0.0.5"],
    "rebind.example.com": [PUBLIC_IP, "192.168.1.10"],
}


# ─── Environment isolation ────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def clean_cspgen_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Any) -> None:
    """Remove CSP_* / CSPGEN_* variables and point config search at an empty dir."""
    for name in list(os.environ):
        if name.startswith(("CSP_", "CSPGEN_")):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(
        "cspgen.config.DEFAULT_CONFIG_PATHS",
        [str(tmp_path / "absent" / "config.yaml")],
    )


# ─── Logging ──────────────────────────────────────────────────────────────────


@pytest.fixture(autouse=True, scope="session")
def quiet_logging() -> None:
    """Send library logs to stderr at WARNING so stdout assertions stay clean."""
    configure_logging(log_level="WARNING", json_output=True)


# ─── DNS ──────────────────────────────────────────────────────────────────────


class FakeResolver:
    """HostResolver backed by a dict; records every lookup."""

    def __init__(self, hosts: Optional[dict[str, Sequence[str]]] = None) -> None:
        self.hosts = {k.lower(): list(v) for k, v in (hosts or DEFAULT_HOSTS).items()}
        self.lookups: list[str] = []

    async def resolve(self, host: str) -> Sequence[str]:
        self.lookups.append(host)
        try:
            return self.hosts[host.lower()]
        except KeyError:
            raise DnsLookupError(host, "Name or service not known") from None


@pytest.fixture
def resolver() -> FakeResolver:
    return FakeResolver()


# ─── HTTP ─────────────────────────────────────────────────────────────────────


async def chunked(chunks: Iterable[bytes]) -> AsyncIterator[bytes]:
    """Async body stream — httpx sends it without a Content-Length header."""
    for chunk in chunks:
        yield chunk


class MockSite:
    """In-process site using httpx.MockTransport.

    ``pages`` maps absolute URL → HTML and ``redirects`` maps absolute URL →
    Location (served as a 302). Unknown URLs return 404.
    """

    def __init__(
        self,
        pages: Optional[dict[str, str]] = None,
        *,
        redirects: Optional[dict[str, str]] = None,
        status_code: int = 200,
        content_type: str = "text/html; charset=utf-8",
    ) -> None:
        self.pages = dict(pages or {})
        self.redirects = dict(redirects or {})
        self.status_code = status_code
        self.content_type = content_type
        self.received_requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.received_requests.append(request)
        location = self.redirects.get(str(request.url))
        if location is not None:
            return httpx.Response(302, headers={"location": location})
        html = self.pages.get(str(request.url))
        if html is None:
            return httpx.Response(404, content=b"not found", headers={"content-type": "text/plain"})
        return httpx.Response(
            self.status_code,
            content=html.encode("utf-8"),
            headers={"content-type": self.content_type},
        )

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport)


# ─── Logging ──────────────────────────────────────────────────────────────────


class RecordingLogger:
    """Logger double exposing debug/info/warning/error with structlog-style kwargs."""

    def __init__(self) -> None:
        self.records: list[tuple[str, str, dict[str, Any]]] = []

    def _log(self, level: str, event: str, **kwargs: Any) -> None:
        self.records.append((level, event, kwargs))

    def debug(self, event: str, **kwargs: Any) -> None:
        self._log("debug", event, **kwargs)

    def info(self, event: str, **kwargs: Any) -> None:
        self._log("info", event, **kwargs)

    def warning(self, event: str, **kwargs: Any) -> None:
        self._log("warning", event, **kwargs)

    def error(self, event: str, **kwargs: Any) -> None:
        self._log("error", event, **kwargs)

    def events(self, level: Optional[str] = None) -> list[str]:
        return [event for lvl, event, _ in self.records if level is None or lvl == level]


@pytest.fixture
def recording_logger() -> RecordingLogger:
    return RecordingLogger()
