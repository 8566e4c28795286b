"""Policy data model — directive vocabulary, token store and scan flags.

``DirectiveStore`` is the per-request mutable state of one analysis:

  - seeded with ``default-src 'self'`` and ``object-src 'none'``
  - presets merged on top (a preset REPLACES the directive's token set)
  - mutated only while scanning
  - read once by the assembler, then discarded

Iteration order is insertion order (both for directives and for the tokens of
each directive), which makes the serialized header deterministic.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, Mapping, Optional

from cspgen.constants import NONE, SELF


class Directive(str, Enum):
    """Closed vocabulary of CSP directive names."""

    DEFAULT_SRC = "default-src"
    SCRIPT_SRC = "script-src"
    STYLE_SRC = "style-src"
    IMG_SRC = "img-src"
    FONT_SRC = "font-src"
    CONNECT_SRC = "connect-src"
    FRAME_SRC = "frame-src"
    OBJECT_SRC = "object-src"
    BASE_URI = "base-uri"
    FORM_ACTION = "form-action"
    FRAME_ANCESTORS = "frame-ancestors"
    MEDIA_SRC = "media-src"
    WORKER_SRC = "worker-src"
    MANIFEST_SRC = "manifest-src"
    REPORT_URI = "report-uri"
    REPORT_TO = "report-to"
    UPGRADE_INSECURE_REQUESTS = "upgrade-insecure-requests"
    BLOCK_ALL_MIXED_CONTENT = "block-all-mixed-content"
    REQUIRE_TRUSTED_TYPES_FOR = "require-trusted-types-for"
    SANDBOX = "sandbox"

    @classmethod
    def parse(cls, name: str) -> Optional["Directive"]:
        """Return the Directive for ``name`` (case-insensitive), or None if unknown."""
        try:
            return cls(name.strip().lower())
        except ValueError:
            return None


class GeneratorState(str, Enum):
    """Lifecycle of one analysis request."""

    CREATED = "created"
    FETCHING = "fetching"
    PARSING = "parsing"
    ASSEMBLING = "assembling"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass
class ScanFlags:
    """Content flags accumulated during scanning, consumed once by the assembler."""

    inline_script: bool = False
    inline_style: bool = False
    eval_detected: bool = False


class DirectiveStore:
    """Ordered mapping of Directive → ordered set of unique source tokens.

    Token sets are kept as ``dict[str, None]`` so duplicate insertion is a
    no-op while insertion order is preserved.
    """

    def __init__(self) -> None:
        self._sources: dict[Directive, dict[str, None]] = {}

    @classmethod
    def seeded(
        cls,
        presets: Optional[Mapping[Directive, Iterable[str]]] = None,
    ) -> "DirectiveStore":
        """Create a store holding the mandatory defaults plus ``presets``."""
        store = cls()
        store.replace(Directive.DEFAULT_SRC, [SELF])
        store.replace(Directive.OBJECT_SRC, [NONE])
        for directive, tokens in (presets or {}).items():
            store.replace(directive, tokens)
        return store

    # ── Mutation ──────────────────────────────────────────────────────────────

    def ensure(self, directive: Directive) -> None:
        """Create an empty token set for ``directive`` if it is not present."""
        self._sources.setdefault(directive, {})

    def add(self, directive: Directive, token: str) -> None:
        """Add ``token`` to ``directive`` (no-op if already present)."""
        self._sources.setdefault(directive, {})[token] = None

    def replace(self, directive: Directive, tokens: Iterable[str]) -> None:
        """Overwrite the token set of ``directive``, keeping its position if present."""
        self._sources[directive] = dict.fromkeys(tokens)

    # ── Read API ──────────────────────────────────────────────────────────────

    def tokens(self, directive: Directive) -> list[str]:
        """Return the tokens of ``directive`` in insertion order ([] if absent)."""
        return list(self._sources.get(directive, {}))

    def is_empty(self, directive: Directive) -> bool:
        return not self._sources.get(directive)

    def __contains__(self, directive: object) -> bool:
        return directive in self._sources

    def __iter__(self) -> Iterator[Directive]:
        return iter(self._sources)

    def __len__(self) -> int:
        return len(self._sources)

    def as_dict(self) -> dict[str, list[str]]:
        """Return a plain ``{directive-name: [tokens]}`` snapshot."""
        return {directive.value: list(tokens) for directive, tokens in self._sources.items()}

    def serialize(self) -> str:
        """Render the store as a CSP header value.

        Each directive becomes ``"<name> <t1> <t2>"``, or the bare name when it
        has no tokens (flag directives); entries are joined with ``"; "``.
        """
        parts: list[str] = []
        for directive, tokens in self._sources.items():
            if tokens:
                parts.append(f"{directive.value} {' '.join(tokens)}")
            else:
                parts.append(directive.value)
        return "; ".join(parts)
