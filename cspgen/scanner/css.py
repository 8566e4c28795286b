"""CSS extractor — routes ``url()`` / ``@import`` targets through the resolver.

A single literal often satisfies two directives at once, so some matches are
routed twice:

  url(a.png)                       → <directive> and img-src
  @font-face { src: url(f.woff2) } → <directive> and font-src
"""

from __future__ import annotations

from typing import Optional

from cspgen.constants import IMAGE_EXTENSIONS
from cspgen.models.policy import Directive
from cspgen.policy.origin import OriginResolver
from cspgen.scanner.patterns import TextPatternExtractor


def has_image_extension(target: str) -> bool:
    """True if the path of ``target`` (query and fragment ignored) names an image."""
    path = target.strip().split("#", 1)[0].split("?", 1)[0]
    return path.lower().endswith(IMAGE_EXTENSIONS)


class CssExtractor:
    """Extracts resource URLs from CSS text and feeds them to an OriginResolver."""

    def __init__(
        self,
        resolver: OriginResolver,
        patterns: Optional[TextPatternExtractor] = None,
    ) -> None:
        self.resolver = resolver
        self.patterns = patterns or TextPatternExtractor()

    async def extract(self, css: str, directive: Directive) -> None:
        """Resolve every URL referenced by ``css`` against ``directive``.

        Raises:
            DnsLookupError: Propagated from the resolver in "abort" mode.
        """
        if not css:
            return

        for target in self.patterns.css_urls(css):
            await self.resolver.resolve(directive, target)
            if has_image_extension(target):
                await self.resolver.resolve(Directive.IMG_SRC, target)

        for target in self.patterns.css_imports(css):
            await self.resolver.resolve(directive, target)

        for target in self.patterns.font_face_urls(css):
            await self.resolver.resolve(Directive.FONT_SRC, target)
