"""Unit tests for the page fetcher (cspgen/fetch/client.py).

Covers:
  - Request headers (default Accept / User-Agent, user overrides)
  - Non-2xx → FetchError with status_code
  - Body limit: declared Content-Length and streamed (chunked) bodies
  - Total timeout → FetchTimeoutError
  - Transport errors → FetchError
  - Content-type warning, charset decoding
  - Redirects: every hop passes the guard, limit on hops, refused without a guard
"""

from __future__ import annotations

import asyncio

import httpx
import pytest

from conftest import RecordingLogger, chunked
from cspgen.config import TransportOptions
from cspgen.constants import DEFAULT_USER_AGENT
from cspgen.fetch.client import MAX_REDIRECTS, create_http_client, fetch_html
from cspgen.models.errors import BodyTooLargeError, FetchError, FetchTimeoutError, RedirectNotAllowedError

URL = "https://site.example/index.html"
HTML = "<html><body>ok</body></html>"


def _client(handler) -> httpx.AsyncClient:
    return create_http_client(http_transport=httpx.MockTransport(handler))


def _html_response(body: bytes | str = HTML, **kwargs) -> httpx.Response:
    headers = kwargs.pop("headers", {"content-type": "text/html; charset=utf-8"})
    return httpx.Response(kwargs.pop("status_code", 200), content=body, headers=headers, **kwargs)


class TestSuccess:
    @pytest.mark.asyncio
    async def test_returns_decoded_body(self) -> None:
        async with _client(lambda request: _html_response()) as client:
            assert await fetch_html(client, URL, timeout_ms=1000) == HTML

    @pytest.mark.asyncio
    async def test_default_request_headers(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return _html_response()

        async with _client(handler) as client:
            await fetch_html(client, URL, timeout_ms=1000)

        assert seen[0].method == "GET"
        assert seen[0].headers["accept"] == "text/html"
        assert seen[0].headers["user-agent"] == DEFAULT_USER_AGENT

    @pytest.mark.asyncio
    async def test_user_headers_override_defaults(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return _html_response()

        transport = TransportOptions(headers={"accept": "application/xhtml+xml", "Cookie": "session=1"})
        async with _client(handler) as client:
            await fetch_html(client, URL, transport=transport, timeout_ms=1000)

        assert seen[0].headers["accept"] == "application/xhtml+xml"
        assert seen[0].headers["cookie"] == "session=1"

    @pytest.mark.asyncio
    async def test_latin1_charset(self) -> None:
        body = "<p>café</p>".encode("latin-1")
        headers = {"content-type": "text/html; charset=iso-8859-1"}
        async with _client(lambda request: _html_response(body, headers=headers)) as client:
            assert await fetch_html(client, URL, timeout_ms=1000) == "<p>café</p>"

    @pytest.mark.asyncio
    async def test_unknown_charset_falls_back_to_utf8(self) -> None:
        headers = {"content-type": "text/html; charset=x-not-a-codec"}
        async with _client(lambda request: _html_response("<p>ok</p>".encode(), headers=headers)) as client:
            assert await fetch_html(client, URL, timeout_ms=1000) == "<p>ok</p>"

    @pytest.mark.asyncio
    async def test_non_html_content_type_only_warns(self) -> None:
        logger = RecordingLogger()
        headers = {"content-type": "application/json"}
        async with _client(lambda request: _html_response(b"{}", headers=headers)) as client:
            assert await fetch_html(client, URL, timeout_ms=1000, logger=logger) == "{}"
        assert "unexpected_content_type" in logger.events("warning")

    @pytest.mark.asyncio
    async def test_unlimited_body(self) -> None:
        body = "<p>" + "x" * 200_000 + "</p>"
        async with _client(lambda request: _html_response(body)) as client:
            assert len(await fetch_html(client, URL, max_body_size=0, timeout_ms=5000)) == len(body)


class TestRedirects:
    @staticmethod
    def _redirecting_handler(seen: list[str], location: str):
        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            if request.url.path == "/old":
                return httpx.Response(302, headers={"location": location})
            return _html_response()

        return handler

    @pytest.mark.asyncio
    async def test_followed_when_guard_accepts(self) -> None:
        seen: list[str] = []
        checked: list[str] = []

        async def guard(target: httpx.URL) -> None:
            checked.append(str(target))

        async with _client(self._redirecting_handler(seen, URL)) as client:
            html = await fetch_html(client, "https://site.example/old", timeout_ms=1000, redirect_guard=guard)

        assert html == HTML
        assert checked == [URL]
        assert seen == ["https://site.example/old", URL]

    @pytest.mark.asyncio
    async def test_guard_refusal_stops_before_request(self) -> None:
        seen: list[str] = []

        async def guard(target: httpx.URL) -> None:
            raise RedirectNotAllowedError(str(target), "private or local host")

        handler = self._redirecting_handler(seen, "http://10.0.0.5/admin")
        async with _client(handler) as client:
            with pytest.raises(RedirectNotAllowedError) as exc_info:
                await fetch_html(client, "https://site.example/old", timeout_ms=1000, redirect_guard=guard)

        assert exc_info.value.url == "http://10.0.0.5/admin"
        assert seen == ["https://site.example/old"]

    @pytest.mark.asyncio
    async def test_refused_without_guard(self) -> None:
        seen: list[str] = []
        async with _client(self._redirecting_handler(seen, URL)) as client:
            with pytest.raises(RedirectNotAllowedError):
                await fetch_html(client, "https://site.example/old", timeout_ms=1000)
        assert seen == ["https://site.example/old"]

    @pytest.mark.asyncio
    async def test_redirect_limit(self) -> None:
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(302, headers={"location": f"/hop{len(seen)}"})

        async def guard(target: httpx.URL) -> None:
            return None

        async with _client(handler) as client:
            with pytest.raises(RedirectNotAllowedError) as exc_info:
                await fetch_html(client, URL, timeout_ms=1000, redirect_guard=guard)

        assert len(seen) == MAX_REDIRECTS + 1
        assert "redirects" in exc_info.value.reason

    @pytest.mark.asyncio
    async def test_client_never_follows_on_its_own(self) -> None:
        async with create_http_client(TransportOptions(follow_redirects=True)) as client:
            assert client.follow_redirects is False


class TestFailures:
    @pytest.mark.asyncio
    async def test_non_2xx_raises_with_status(self) -> None:
        async with _client(lambda request: httpx.Response(404, content=b"nope")) as client:
            with pytest.raises(FetchError) as exc_info:
                await fetch_html(client, URL, timeout_ms=1000)
        assert exc_info.value.status_code == 404
        assert "404" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_redirect_not_followed_when_disabled(self) -> None:
        handler = lambda request: httpx.Response(302, headers={"location": "https://site.example/"})  # noqa: E731
        transport = TransportOptions(follow_redirects=False)
        async with _client(handler) as client:
            with pytest.raises(FetchError) as exc_info:
                await fetch_html(client, URL, transport=transport, timeout_ms=1000)
        assert exc_info.value.status_code == 302

    @pytest.mark.asyncio
    async def test_declared_length_over_limit(self) -> None:
        async with _client(lambda request: _html_response(b"x" * 500)) as client:
            with pytest.raises(BodyTooLargeError) as exc_info:
                await fetch_html(client, URL, max_body_size=100, timeout_ms=1000)
        assert exc_info.value.limit == 100
        assert exc_info.value.received == 500

    @pytest.mark.asyncio
    async def test_streamed_body_aborts_at_first_chunk_over_limit(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                content=chunked([b"a" * 64] * 10),
                headers={"content-type": "text/html"},
            )

        async with _client(handler) as client:
            with pytest.raises(BodyTooLargeError) as exc_info:
                await fetch_html(client, URL, max_body_size=100, timeout_ms=1000)
        # Two 64-byte chunks cross the limit; the other eight are never read.
        assert exc_info.value.received == 128

    @pytest.mark.asyncio
    async def test_body_at_exact_limit_allowed(self) -> None:
        async with _client(lambda request: _html_response(b"y" * 100)) as client:
            assert await fetch_html(client, URL, max_body_size=100, timeout_ms=1000) == "y" * 100

    @pytest.mark.asyncio
    async def test_total_timeout(self) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(2)
            return _html_response()

        async with _client(handler) as client:
            with pytest.raises(FetchTimeoutError) as exc_info:
                await fetch_html(client, URL, timeout_ms=50)
        assert exc_info.value.timeout_ms == 50

    @pytest.mark.asyncio
    async def test_httpx_timeout_mapped(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("read timed out", request=request)

        async with _client(handler) as client:
            with pytest.raises(FetchTimeoutError):
                await fetch_html(client, URL, timeout_ms=1000)

    @pytest.mark.asyncio
    async def test_connect_error(self) -> None:
        logger = RecordingLogger()

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(FetchError) as exc_info:
                await fetch_html(client, URL, timeout_ms=1000, logger=logger)
        assert exc_info.value.status_code is None
        assert "ConnectError" in str(exc_info.value)
        assert "fetch_failed" in logger.events("warning")
