"""SecureCSPGenerator — fetch one page and build its Content-Security-Policy.

Pipeline for one ``generate()`` call:

  CREATED → FETCHING → PARSING → ASSEMBLING → COMPLETE
                 ↘          ↘           ↘
                   FAILED (terminal; the exception propagates)

  1. fetch_html()       — bounded, timeout-cancellable download (httpx);
                          each redirect hop is re-checked like the page URL
  2. parse_document()   — BeautifulSoup DocumentQuery adapter
  3. ResourceScanner    — candidates → OriginResolver (SSRF guard) → store
  4. assemble()         — fixed-order policy steps → header string

Every call builds a fresh DirectiveStore, ScanFlags and DNS cache; nothing is
shared across calls or across generator instances. The generator never
configures logging: pass ``GeneratorOptions(logger=...)`` to redirect its
output, otherwise the module's structlog logger is used.

Usage::

    generator = SecureCSPGenerator("https://example.com", GeneratorOptions(use_nonce=True))
    header = await generator.generate()
    nonce = generator.nonce
"""

from __future__ import annotations

import base64
import secrets
from typing import Optional

import httpx

from cspgen.config import GeneratorOptions
from cspgen.constants import NONCE_BYTES, SECURE_SCHEMES
from cspgen.document.adapter import DocumentQuery, parse_document
from cspgen.fetch.client import create_http_client, fetch_html
from cspgen.models.errors import ConfigurationError, RedirectNotAllowedError
from cspgen.models.policy import DirectiveStore, GeneratorState
from cspgen.policy.assembler import assemble
from cspgen.policy.origin import HostResolver, OriginResolver
from cspgen.scanner.resources import ResourceScanner
from cspgen.utils.logger import PerformanceLogger, adapt_logger, clear_analysis_id, set_analysis_id
from cspgen.utils.ulid import generate_ulid


def generate_nonce() -> str:
    """Return a base64 nonce built from NONCE_BYTES cryptographically random bytes."""
    return base64.b64encode(secrets.token_bytes(NONCE_BYTES)).decode("ascii")


def validate_target_url(url: str, allow_http: bool) -> httpx.URL:
    """Parse and validate the page URL.

    Raises:
        ConfigurationError: Empty URL, unparseable URL, disallowed scheme, or no host.
    """
    if not isinstance(url, str) or not url.strip():
        raise ConfigurationError("URL must be a non-empty string")

    try:
        parsed = httpx.URL(url.strip())
    except httpx.InvalidURL as exc:
        raise ConfigurationError(f"Invalid URL: {url!r} ({exc})") from exc

    allowed = SECURE_SCHEMES | {"http"} if allow_http else SECURE_SCHEMES
    if parsed.scheme not in allowed:
        if parsed.scheme == "http":
            raise ConfigurationError(
                f"Insecure URL scheme 'http' for {url!r}; set allow_http to permit it"
            )
        raise ConfigurationError(f"Unsupported URL scheme {parsed.scheme!r} for {url!r}")

    if not parsed.host:
        raise ConfigurationError(f"URL has no host: {url!r}")
    return parsed


class SecureCSPGenerator:
    """Generates a CSP header value for a single page.

    Args:
        url:           Absolute page URL (https, or http with ``allow_http``).
        options:       Policy snapshot; defaults to ``GeneratorOptions()``.
        http_client:   Shared httpx.AsyncClient. When omitted a client is
                       created for each ``generate()`` call and closed after.
        host_resolver: DNS collaborator for the SSRF guard.

    Raises:
        ConfigurationError: At construction, for an unusable URL.
    """

    def __init__(
        self,
        url: str,
        options: Optional[GeneratorOptions] = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        host_resolver: Optional[HostResolver] = None,
    ) -> None:
        self.options = options or GeneratorOptions()
        self.page_url = validate_target_url(url, self.options.allow_http)
        self.url = str(self.page_url)
        self.http_client = http_client
        self.host_resolver = host_resolver
        self.logger = adapt_logger(self.options.logger, __name__)
        self.nonce: str = self.options.custom_nonce or generate_nonce()
        self.state = GeneratorState.CREATED
        self.analysis_id: Optional[str] = None
        self.policy: dict[str, list[str]] = {}

    # ─── Public API ──────────────────────────────────────────────────────────

    async def generate(self) -> str:
        """Fetch the page and return the CSP header value.

        Raises:
            FetchError: Non-2xx status or transport failure.
            BodyTooLargeError: Response exceeded ``max_body_size``.
            FetchTimeoutError: Fetch exceeded ``timeout_ms``.
            RedirectNotAllowedError: A redirect hop failed the page URL policy.
            DnsLookupError: SSRF DNS check failed (``dns_failure_mode="abort"``).
        """
        self._begin()
        try:
            with PerformanceLogger("csp_generation", self.logger, url=self.url) as perf:
                self._transition(GeneratorState.FETCHING)
                resolver = self._new_resolver()
                html = await self._fetch(resolver)
                header = await self._build(html, resolver)
                perf.context["directives"] = len(self.policy)
                return header
        except Exception:
            self._transition(GeneratorState.FAILED)
            raise
        finally:
            clear_analysis_id()

    async def generate_from_html(self, html: str) -> str:
        """Build the header from already-fetched markup (no network fetch).

        Origins are still resolved against the generator's URL and DNS is
        still consulted by the SSRF guard.
        """
        self._begin()
        try:
            with PerformanceLogger("csp_generation", self.logger, url=self.url, fetched=False) as perf:
                header = await self._build(html, self._new_resolver())
                perf.context["directives"] = len(self.policy)
                return header
        except Exception:
            self._transition(GeneratorState.FAILED)
            raise
        finally:
            clear_analysis_id()

    # ─── Pipeline ────────────────────────────────────────────────────────────

    def _begin(self) -> None:
        self.analysis_id = generate_ulid()
        set_analysis_id(self.analysis_id)
        self.state = GeneratorState.CREATED
        self.policy = {}

    def _transition(self, state: GeneratorState) -> None:
        self.logger.debug(
            "state_transition",
            analysis_id=self.analysis_id,
            from_state=self.state.value,
            to_state=state.value,
        )
        self.state = state

    def _new_resolver(self) -> OriginResolver:
        # One resolver, and so one DNS cache, per analysis.
        options = self.options
        return OriginResolver(
            self.page_url,
            DirectiveStore.seeded(options.presets),
            allow_http=options.allow_http,
            allow_private_origins=options.allow_private_origins,
            host_resolver=self.host_resolver,
            dns_failure_mode=options.dns_failure_mode,
            logger=self.logger,
        )

    async def _check_redirect(self, resolver: OriginResolver, target: httpx.URL) -> None:
        """Apply the page URL policy to a redirect target before it is fetched.

        Raises:
            RedirectNotAllowedError: Disallowed scheme, no host, or a private host.
            DnsLookupError: The target host could not be resolved (``"abort"`` mode).
        """
        try:
            validate_target_url(str(target), self.options.allow_http)
        except ConfigurationError as exc:
            raise RedirectNotAllowedError(str(target), str(exc)) from exc
        if self.options.allow_private_origins:
            return
        if await resolver.is_private_host(target.raw_host.decode("ascii")):
            raise RedirectNotAllowedError(str(target), "private or local host")

    async def _fetch(self, resolver: OriginResolver) -> str:
        options = self.options

        async def guard(target: httpx.URL) -> None:
            await self._check_redirect(resolver, target)

        if self.http_client is not None:
            return await fetch_html(
                self.http_client,
                self.url,
                transport=options.transport,
                max_body_size=options.max_body_size,
                timeout_ms=options.timeout_ms,
                redirect_guard=guard,
                logger=self.logger,
            )
        async with create_http_client(options.transport) as client:
            return await fetch_html(
                client,
                self.url,
                transport=options.transport,
                max_body_size=options.max_body_size,
                timeout_ms=options.timeout_ms,
                redirect_guard=guard,
                logger=self.logger,
            )

    async def _build(self, html: str, resolver: OriginResolver) -> str:
        options = self.options

        self._transition(GeneratorState.PARSING)
        document: DocumentQuery = parse_document(html)
        store = resolver.store
        scanner = ResourceScanner(resolver, use_hashes=options.use_hashes, logger=self.logger)
        flags = await scanner.scan(document)

        self._transition(GeneratorState.ASSEMBLING)
        header = assemble(store, flags, options, nonce=self.nonce, logger=self.logger)
        self.policy = store.as_dict()

        self._transition(GeneratorState.COMPLETE)
        self.logger.info(
            "csp_generated",
            analysis_id=self.analysis_id,
            url=self.url,
            directives=len(store),
        )
        return header
