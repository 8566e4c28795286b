"""Resource scanner — walks a parsed document and feeds the directive store.

Scanning is a single sequential pass, in this order:

  1. External resources (``RESOURCE_SELECTORS``, listed order, document order
     within each selector) → OriginResolver.
  2. ``base-uri`` falls back to ``'self'`` when nothing was accepted for it.
  3. ``style`` attributes, then ``<style>`` elements → inline-style flag +
     CssExtractor against style-src.
  4. ``<script>`` elements without ``src`` → InlineScriptClassifier
     (script-src) + connect-src heuristic on the script text.
  5. Page-wide eval heuristic over the raw markup → eval flag.

The scanner only talks to the ``DocumentQuery`` / ``Element`` protocols; it
has no knowledge of the HTML library behind them.
"""

from __future__ import annotations

from typing import Any, Optional

from cspgen.constants import SELF
from cspgen.document.adapter import DocumentQuery
from cspgen.models.policy import Directive, ScanFlags
from cspgen.policy.origin import OriginResolver
from cspgen.scanner.css import CssExtractor
from cspgen.scanner.inline import InlineScriptClassifier
from cspgen.scanner.patterns import TextPatternExtractor
from cspgen.utils.logger import adapt_logger

# (selector, attribute, directive), processed in this order.
RESOURCE_SELECTORS: tuple[tuple[str, str, Directive], ...] = (
    ("script[src]", "src", Directive.SCRIPT_SRC),
    ("link[rel~=stylesheet i][href]", "href", Directive.STYLE_SRC),
    ("img[src]", "src", Directive.IMG_SRC),
    ("audio[src], video[src], track[src]", "src", Directive.MEDIA_SRC),
    ("iframe[src]", "src", Directive.FRAME_SRC),
    ("link[rel~=manifest i][href]", "href", Directive.MANIFEST_SRC),
    (
        "link[rel~=preload i][as=font i][href], link[rel~=prefetch i][as=font i][href]",
        "href",
        Directive.FONT_SRC,
    ),
    ('script[type="text/worker" i][src]', "src", Directive.WORKER_SRC),
    ("base[href]", "href", Directive.BASE_URI),
    ("form[action]", "action", Directive.FORM_ACTION),
)


class ResourceScanner:
    """Scans one document into the resolver's directive store.

    Args:
        resolver:   Per-request OriginResolver (owns the DirectiveStore).
        use_hashes: Emit ``'sha256-…'`` tokens for un-nonced inline scripts.
        patterns:   Text-pattern strategy for CSS / script heuristics.
        logger:     Logger exposing debug/info/warning/error.
    """

    def __init__(
        self,
        resolver: OriginResolver,
        *,
        use_hashes: bool = True,
        patterns: Optional[TextPatternExtractor] = None,
        logger: Any = None,
    ) -> None:
        self.resolver = resolver
        self.store = resolver.store
        self.patterns = patterns or TextPatternExtractor()
        self.css = CssExtractor(resolver, self.patterns)
        self.classifier = InlineScriptClassifier(use_hashes=use_hashes)
        self.logger = adapt_logger(logger, __name__)

    async def scan(self, document: DocumentQuery) -> ScanFlags:
        """Populate the store from ``document`` and return the content flags.

        Raises:
            DnsLookupError: Propagated from the resolver in "abort" mode.
        """
        flags = ScanFlags()

        await self._scan_external_resources(document)
        await self._scan_inline_styles(document, flags)
        await self._scan_inline_scripts(document, flags)

        if self.patterns.has_eval(document.source):
            flags.eval_detected = True

        self.logger.debug(
            "document_scanned",
            directives=len(self.store),
            inline_script=flags.inline_script,
            inline_style=flags.inline_style,
            eval_detected=flags.eval_detected,
        )
        return flags

    # ─── Passes ──────────────────────────────────────────────────────────────

    async def _scan_external_resources(self, document: DocumentQuery) -> None:
        for selector, attribute, directive in RESOURCE_SELECTORS:
            for element in document.query_all(selector):
                value = element.get_attribute(attribute)
                if value:
                    await self.resolver.resolve(directive, value)

        if self.store.is_empty(Directive.BASE_URI):
            self.store.replace(Directive.BASE_URI, [SELF])

    async def _scan_inline_styles(self, document: DocumentQuery, flags: ScanFlags) -> None:
        for element in document.query_all("[style]"):
            flags.inline_style = True
            await self.css.extract(element.get_attribute("style") or "", Directive.STYLE_SRC)

        for element in document.query_all("style"):
            flags.inline_style = True
            await self.css.extract(element.get_text(), Directive.STYLE_SRC)

    async def _scan_inline_scripts(self, document: DocumentQuery, flags: ScanFlags) -> None:
        for element in document.query_all("script"):
            if element.has_attribute("src"):
                continue
            code = element.get_text()
            # Empty inline scripts emit no token and do not set the inline-script flag.
            if not code.strip():
                continue

            flags.inline_script = True
            token = self.classifier.classify(element)
            if token is not None:
                await self.resolver.resolve(Directive.SCRIPT_SRC, token)

            for target in self.patterns.connect_urls(code):
                await self.resolver.resolve(Directive.CONNECT_SRC, target)
