"""Inline script classifier.

Each inline ``<script>`` (no ``src``, non-empty trimmed text) contributes
exactly one script-src token, first match wins:

  1. ``nonce`` attribute      → ``'nonce-<value>'``
  2. ``integrity`` attribute  → ``'<value>'``
  3. otherwise                → ``'sha256-<base64 digest of the trimmed text>'``
     (skipped when hashing is disabled)
"""

from __future__ import annotations

import base64
import hashlib
from typing import Optional

from cspgen.document.adapter import Element


def sha256_source(code: str) -> str:
    """Return the ``'sha256-…'`` source token for ``code`` (hashed as UTF-8)."""
    digest = hashlib.sha256(code.encode("utf-8")).digest()
    return f"'sha256-{base64.b64encode(digest).decode('ascii')}'"


class InlineScriptClassifier:
    """Chooses the script-src token that allow-lists one inline script."""

    def __init__(self, use_hashes: bool = True) -> None:
        self.use_hashes = use_hashes

    def classify(self, element: Element) -> Optional[str]:
        """Return the token for ``element``, or None if it contributes nothing.

        None is returned for external scripts, empty scripts, and un-nonced
        un-integrity scripts when hashing is disabled.
        """
        if element.has_attribute("src"):
            return None

        code = element.get_text().strip()
        if not code:
            return None

        if element.has_attribute("nonce"):
            return f"'nonce-{element.get_attribute('nonce') or ''}'"
        if element.has_attribute("integrity"):
            return f"'{element.get_attribute('integrity') or ''}'"
        if self.use_hashes:
            return sha256_source(code)
        return None
