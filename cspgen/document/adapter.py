"""Document query interface and the BeautifulSoup adapter.

The resource scanner only ever talks to ``DocumentQuery`` / ``Element``:

    doc.query_all("script[src]")   → list of Element
    element.get_attribute("src")   → str | None
    element.has_attribute("nonce") → bool
    element.get_text()             → str

Any HTML provider can be plugged in by implementing these two protocols;
``SoupDocument`` is the default, built on beautifulsoup4 with the stdlib
``html.parser`` tree builder and soupsieve CSS selectors.
"""

from __future__ import annotations

from typing import Optional, Protocol, Sequence

from bs4 import BeautifulSoup
from bs4.element import Tag


class Element(Protocol):
    def get_attribute(self, name: str) -> Optional[str]: ...

    def has_attribute(self, name: str) -> bool: ...

    def get_text(self) -> str: ...


class DocumentQuery(Protocol):
    @property
    def source(self) -> str:
        """The raw markup the document was parsed from."""
        ...

    def query_all(self, selector: str) -> Sequence[Element]: ...


class SoupElement:
    """Element adapter over a ``bs4.element.Tag``."""

    __slots__ = ("_tag",)

    def __init__(self, tag: Tag) -> None:
        self._tag = tag

    def get_attribute(self, name: str) -> Optional[str]:
        value = self._tag.get(name)
        if value is None:
            return None
        # Multi-valued attributes (rel, class) come back as lists.
        if isinstance(value, list):
            return " ".join(value)
        return str(value)

    def has_attribute(self, name: str) -> bool:
        return self._tag.has_attr(name)

    def get_text(self) -> str:
        return self._tag.get_text()

    def __repr__(self) -> str:
        return f"SoupElement(<{self._tag.name}>)"


class SoupDocument:
    """DocumentQuery adapter over a BeautifulSoup tree."""

    def __init__(self, html: str, parser: str = "html.parser") -> None:
        self._html = html
        self._soup = BeautifulSoup(html, parser)

    @property
    def source(self) -> str:
        return self._html

    def query_all(self, selector: str) -> list[SoupElement]:
        return [SoupElement(tag) for tag in self._soup.select(selector)]


def parse_document(html: str) -> SoupDocument:
    """Parse raw markup into the default DocumentQuery implementation."""
    return SoupDocument(html)
