"""Text-pattern definitions for the CSS and script heuristics.

All patterns are pre-compiled at module load time using google-re2 (linear
time matching, so hostile markup cannot trigger catastrophic backtracking).
NO pattern compilation happens per-request, per-call, or lazily.

These are heuristics, not parsers: they may both over- and under-match.
Everything that inspects CSS or script *text* goes through this module, so
swapping in a real CSS/JS parser later only touches ``TextPatternExtractor``.

IMPORT RULES:
  - ``import re2`` ONLY — ``import re`` is PROHIBITED in cspgen/scanner/.
  - Enforced by tests/unit/test_patterns.py (lint gate).
"""

from __future__ import annotations

from typing import Iterator

import re2  # google-re2, NOT stdlib re

# ---------------------------------------------------------------------------
# CSS
# ---------------------------------------------------------------------------

#: ``url(x)``, ``url('x')``, ``url( "x" )`` → group 1 is the target.
CSS_URL_PATTERN = re2.compile(r"(?i)url\(\s*['\"]?([^)'\"]+)['\"]?\s*\)")

#: ``@import "x.css"``, ``@import url(x.css)`` → group 1 is the target.
CSS_IMPORT_PATTERN = re2.compile(
    r"(?i)@import\s+(?:url\(\s*)?['\"]?([^)'\"\s;]+)['\"]?\s*\)?"
)

#: ``@font-face { ... }`` → group 1 is the block body.
FONT_FACE_PATTERN = re2.compile(r"(?i)@font-face\s*\{([^}]*)\}")

# ---------------------------------------------------------------------------
# Script
# ---------------------------------------------------------------------------

#: ``fetch('https://…')``, ``new WebSocket("wss://…")``, ``new EventSource(`…`)``
#: → group 1 is the absolute URL literal.
CONNECT_PATTERN = re2.compile(
    r"(?:\bfetch|\bnew\s+WebSocket|\bnew\s+EventSource)\s*\(\s*['\"`]"
    r"((?:https?|wss?)://[^'\"`\s]+)['\"`]"
)

#: ``eval(``, ``Function(`` / ``new Function(``, and string-argument
#: ``setTimeout("…")`` / ``setInterval('…')``.
EVAL_PATTERN = re2.compile(
    r"\beval\s*\(|\bFunction\s*\(|\bset(?:Timeout|Interval)\s*\(\s*['\"`]"
)


class TextPatternExtractor:
    """Heuristic extraction of URL candidates from CSS and script text."""

    def css_urls(self, css: str) -> Iterator[str]:
        """Yield every ``url(...)`` target in ``css``."""
        for match in CSS_URL_PATTERN.finditer(css):
            yield match.group(1)

    def css_imports(self, css: str) -> Iterator[str]:
        """Yield every ``@import`` target in ``css``."""
        for match in CSS_IMPORT_PATTERN.finditer(css):
            yield match.group(1)

    def font_face_urls(self, css: str) -> Iterator[str]:
        """Yield the ``url(...)`` targets found inside ``@font-face`` blocks."""
        for block in FONT_FACE_PATTERN.finditer(css):
            yield from self.css_urls(block.group(1))

    def connect_urls(self, script: str) -> Iterator[str]:
        """Yield absolute URL literals passed to fetch / WebSocket / EventSource."""
        for match in CONNECT_PATTERN.finditer(script):
            yield match.group(1)

    def has_eval(self, text: str) -> bool:
        """True if ``text`` contains an eval-like construct."""
        return EVAL_PATTERN.search(text) is not None
