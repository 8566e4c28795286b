"""Unit tests for the resource scanner (cspgen/scanner/resources.py).

Covers the element → directive mapping, inline style / script handling, the
connect-src heuristic, the eval flag, and the base-uri fallback.
"""

from __future__ import annotations

import httpx
import pytest

from conftest import FakeResolver, RecordingLogger
from cspgen.document.adapter import SoupDocument
from cspgen.models.policy import Directive, DirectiveStore, ScanFlags
from cspgen.policy.origin import OriginResolver
from cspgen.scanner.inline import sha256_source
from cspgen.scanner.resources import ResourceScanner

PAGE_URL = httpx.URL("https://site.example/index.html")


async def _scan(
    html: str,
    resolver: FakeResolver,
    *,
    use_hashes: bool = True,
    allow_http: bool = False,
) -> tuple[DirectiveStore, ScanFlags]:
    store = DirectiveStore()
    origin = OriginResolver(
        PAGE_URL,
        store,
        allow_http=allow_http,
        host_resolver=resolver,
        logger=RecordingLogger(),
    )
    scanner = ResourceScanner(origin, use_hashes=use_hashes, logger=RecordingLogger())
    flags = await scanner.scan(SoupDocument(html))
    return store, flags


class TestElementMapping:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "html,directive",
        [
            ('<script src="https://cdn.example.com/a.js"></script>', Directive.SCRIPT_SRC),
            ('<link rel="stylesheet" href="https://cdn.example.com/a.css">', Directive.STYLE_SRC),
            ('<link rel="alternate Stylesheet" href="https://cdn.example.com/b.css">', Directive.STYLE_SRC),
            ('<img src="https://cdn.example.com/a.png">', Directive.IMG_SRC),
            ('<audio src="https://cdn.example.com/a.mp3"></audio>', Directive.MEDIA_SRC),
            ('<video src="https://cdn.example.com/a.mp4"></video>', Directive.MEDIA_SRC),
            ('<video><track src="https://cdn.example.com/a.vtt"></video>', Directive.MEDIA_SRC),
            ('<iframe src="https://cdn.example.com/embed"></iframe>', Directive.FRAME_SRC),
            ('<link rel="manifest" href="https://cdn.example.com/app.webmanifest">', Directive.MANIFEST_SRC),
            ('<link rel="preload" as="font" href="https://cdn.example.com/f.woff2">', Directive.FONT_SRC),
            ('<link rel="prefetch" as="font" href="https://cdn.example.com/f.woff">', Directive.FONT_SRC),
            ('<form action="https://cdn.example.com/submit"></form>', Directive.FORM_ACTION),
            ('<base href="https://cdn.example.com/">', Directive.BASE_URI),
        ],
    )
    async def test_mapping(self, resolver: FakeResolver, html: str, directive: Directive) -> None:
        store, _ = await _scan(html, resolver)
        assert store.tokens(directive) == ["https://cdn.example.com"]

    @pytest.mark.asyncio
    async def test_worker_script_in_script_and_worker_src(self, resolver: FakeResolver) -> None:
        store, _ = await _scan('<script type="text/worker" src="https://cdn.example.com/w.js"></script>', resolver)
        assert store.tokens(Directive.SCRIPT_SRC) == ["https://cdn.example.com"]
        assert store.tokens(Directive.WORKER_SRC) == ["https://cdn.example.com"]

    @pytest.mark.asyncio
    async def test_preload_of_non_font_ignored(self, resolver: FakeResolver) -> None:
        store, _ = await _scan('<link rel="preload" as="image" href="https://cdn.example.com/a.png">', resolver)
        assert Directive.FONT_SRC not in store

    @pytest.mark.asyncio
    async def test_link_without_href_ignored(self, resolver: FakeResolver) -> None:
        store, _ = await _scan('<link rel="stylesheet">', resolver)
        assert Directive.STYLE_SRC not in store

    @pytest.mark.asyncio
    async def test_empty_attribute_ignored(self, resolver: FakeResolver) -> None:
        store, _ = await _scan('<img src="">', resolver)
        assert Directive.IMG_SRC not in store
        assert resolver.lookups == []

    @pytest.mark.asyncio
    async def test_document_order_preserved(self, resolver: FakeResolver) -> None:
        html = (
            '<img src="https://img.example.com/1.png">'
            '<img src="https://cdn.example.com/2.png">'
            '<img src="/3.png">'
        )
        store, _ = await _scan(html, resolver)
        assert store.tokens(Directive.IMG_SRC) == [
            "https://img.example.com",
            "https://cdn.example.com",
            "https://site.example",
        ]

    @pytest.mark.asyncio
    async def test_directive_order_follows_selector_order(self, resolver: FakeResolver) -> None:
        html = (
            '<form action="/go"></form>'
            '<img src="https://img.example.com/a.png">'
            '<script src="https://cdn.example.com/a.js"></script>'
        )
        store, _ = await _scan(html, resolver)
        # base-uri falls back to 'self' only after every selector has run.
        assert list(store) == [
            Directive.SCRIPT_SRC,
            Directive.IMG_SRC,
            Directive.FORM_ACTION,
            Directive.BASE_URI,
        ]


class TestBaseUriFallback:
    @pytest.mark.asyncio
    async def test_absent_base_falls_back_to_self(self, resolver: FakeResolver) -> None:
        store, _ = await _scan("<p>hi</p>", resolver)
        assert store.tokens(Directive.BASE_URI) == ["'self'"]

    @pytest.mark.asyncio
    async def test_rejected_base_falls_back_to_self(self, resolver: FakeResolver) -> None:
        store, _ = await _scan('<base href="https://internal.example.com/">', resolver)
        assert store.tokens(Directive.BASE_URI) == ["'self'"]


class TestInlineStyles:
    @pytest.mark.asyncio
    async def test_style_attribute_sets_flag_and_extracts(self, resolver: FakeResolver) -> None:
        html = "<div style=\"background: url('https://img.example.com/bg.jpg')\"></div>"
        store, flags = await _scan(html, resolver)
        assert flags.inline_style is True
        assert store.tokens(Directive.STYLE_SRC) == ["https://img.example.com"]
        assert store.tokens(Directive.IMG_SRC) == ["https://img.example.com"]

    @pytest.mark.asyncio
    async def test_style_element_font_face(self, resolver: FakeResolver) -> None:
        html = "<style>@font-face { font-family: F; src: url(https://fonts.example.com/f.woff2); }</style>"
        store, flags = await _scan(html, resolver)
        assert flags.inline_style is True
        assert store.tokens(Directive.FONT_SRC) == ["https://fonts.example.com"]

    @pytest.mark.asyncio
    async def test_no_inline_style(self, resolver: FakeResolver) -> None:
        _, flags = await _scan("<p>plain</p>", resolver)
        assert flags.inline_style is False


class TestInlineScripts:
    @pytest.mark.asyncio
    async def test_hash_added_and_flag_set(self, resolver: FakeResolver) -> None:
        store, flags = await _scan("<script>console.log(1)</script>", resolver)
        assert flags.inline_script is True
        assert store.tokens(Directive.SCRIPT_SRC) == [sha256_source("console.log(1)")]

    @pytest.mark.asyncio
    async def test_one_token_per_inline_script(self, resolver: FakeResolver) -> None:
        html = (
            '<script nonce="abc">a()</script>'
            '<script integrity="sha256-xyz=">b()</script>'
            "<script>c()</script>"
        )
        store, _ = await _scan(html, resolver)
        assert store.tokens(Directive.SCRIPT_SRC) == ["'nonce-abc'", "'sha256-xyz='", sha256_source("c()")]

    @pytest.mark.asyncio
    async def test_empty_inline_script_ignored(self, resolver: FakeResolver) -> None:
        store, flags = await _scan("<script>  </script>", resolver)
        assert flags.inline_script is False
        assert Directive.SCRIPT_SRC not in store

    @pytest.mark.asyncio
    async def test_flag_set_when_hashing_disabled(self, resolver: FakeResolver) -> None:
        store, flags = await _scan("<script>go()</script>", resolver, use_hashes=False)
        assert flags.inline_script is True
        assert Directive.SCRIPT_SRC not in store

    @pytest.mark.asyncio
    async def test_connect_src_from_script_literals(self, resolver: FakeResolver) -> None:
        html = "<script>fetch('https://api.example.com/v1/items').then(r => r.json())</script>"
        store, _ = await _scan(html, resolver)
        assert store.tokens(Directive.CONNECT_SRC) == ["https://api.example.com"]

    @pytest.mark.asyncio
    async def test_websocket_literal_needs_allow_http(self, resolver: FakeResolver) -> None:
        html = "<script>new WebSocket('wss://api.example.com/socket')</script>"
        strict, _ = await _scan(html, resolver)
        relaxed, _ = await _scan(html, resolver, allow_http=True)
        assert Directive.CONNECT_SRC not in strict
        assert relaxed.tokens(Directive.CONNECT_SRC) == ["wss://api.example.com"]


class TestEvalFlag:
    @pytest.mark.asyncio
    async def test_eval_in_inline_script(self, resolver: FakeResolver) -> None:
        _, flags = await _scan("<script>eval(payload)</script>", resolver)
        assert flags.eval_detected is True

    @pytest.mark.asyncio
    async def test_eval_in_event_handler_attribute(self, resolver: FakeResolver) -> None:
        _, flags = await _scan("<button onclick=\"setTimeout('go()', 1)\">x</button>", resolver)
        assert flags.eval_detected is True

    @pytest.mark.asyncio
    async def test_no_eval(self, resolver: FakeResolver) -> None:
        _, flags = await _scan("<script>setTimeout(() => go(), 1)</script>", resolver)
        assert flags.eval_detected is False
