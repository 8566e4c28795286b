"""Unit tests for the CSS extractor (cspgen/scanner/css.py)."""

from __future__ import annotations

import httpx
import pytest

from conftest import FakeResolver, RecordingLogger
from cspgen.models.policy import Directive, DirectiveStore
from cspgen.policy.origin import OriginResolver
from cspgen.scanner.css import CssExtractor, has_image_extension


def _extractor(resolver: FakeResolver) -> CssExtractor:
    origin = OriginResolver(
        httpx.URL("https://site.example/index.html"),
        DirectiveStore(),
        host_resolver=resolver,
        logger=RecordingLogger(),
    )
    return CssExtractor(origin)


class TestHasImageExtension:
    @pytest.mark.parametrize(
        "target",
        ["a.png", "A.PNG", "/x/y.jpeg", "logo.svg?v=2", "icon.ico#frag", " sprite.webp ", "b.bmp", "c.gif", "d.jpg"],
    )
    def test_images(self, target: str) -> None:
        assert has_image_extension(target) is True

    @pytest.mark.parametrize("target", ["font.woff2", "theme.css", "png", "image.png.js", "/path/"])
    def test_non_images(self, target: str) -> None:
        assert has_image_extension(target) is False


class TestExtract:
    @pytest.mark.asyncio
    async def test_url_routed_to_given_directive(self, resolver: FakeResolver) -> None:
        css = _extractor(resolver)
        await css.extract("div { cursor: url(https://cdn.example.com/c.cur), auto }", Directive.STYLE_SRC)
        assert css.resolver.store.as_dict() == {"style-src": ["https://cdn.example.com"]}

    @pytest.mark.asyncio
    async def test_image_url_also_routed_to_img_src(self, resolver: FakeResolver) -> None:
        css = _extractor(resolver)
        await css.extract("body { background: url('https://img.example.com/bg.png') }", Directive.STYLE_SRC)
        store = css.resolver.store
        assert store.tokens(Directive.STYLE_SRC) == ["https://img.example.com"]
        assert store.tokens(Directive.IMG_SRC) == ["https://img.example.com"]

    @pytest.mark.asyncio
    async def test_import_routed_to_directive(self, resolver: FakeResolver) -> None:
        css = _extractor(resolver)
        await css.extract('@import "https://cdn.example.com/theme.css";', Directive.STYLE_SRC)
        assert css.resolver.store.tokens(Directive.STYLE_SRC) == ["https://cdn.example.com"]

    @pytest.mark.asyncio
    async def test_font_face_also_routed_to_font_src(self, resolver: FakeResolver) -> None:
        css = _extractor(resolver)
        await css.extract(
            "@font-face { font-family: F; src: url(https://fonts.example.com/f.woff2); }",
            Directive.STYLE_SRC,
        )
        store = css.resolver.store
        assert store.tokens(Directive.STYLE_SRC) == ["https://fonts.example.com"]
        assert store.tokens(Directive.FONT_SRC) == ["https://fonts.example.com"]

    @pytest.mark.asyncio
    async def test_relative_url_resolves_to_page_origin(self, resolver: FakeResolver) -> None:
        css = _extractor(resolver)
        await css.extract("a { background: url( ../img/a.png ) }", Directive.STYLE_SRC)
        assert css.resolver.store.tokens(Directive.IMG_SRC) == ["https://site.example"]

    @pytest.mark.asyncio
    async def test_data_uri_dropped(self, resolver: FakeResolver) -> None:
        css = _extractor(resolver)
        await css.extract("a { background: url(data:image/png;base64,AAAA) }", Directive.STYLE_SRC)
        assert len(css.resolver.store) == 0

    @pytest.mark.asyncio
    async def test_private_url_dropped(self, resolver: FakeResolver) -> None:
        css = _extractor(resolver)
        await css.extract("a { background: url(https://internal.example.com/a.png) }", Directive.STYLE_SRC)
        assert len(css.resolver.store) == 0

    @pytest.mark.asyncio
    async def test_empty_css_is_noop(self, resolver: FakeResolver) -> None:
        css = _extractor(resolver)
        await css.extract("", Directive.STYLE_SRC)
        assert resolver.lookups == []
