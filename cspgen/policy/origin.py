"""Origin resolver and SSRF guard.

``OriginResolver.resolve()`` turns a raw candidate string discovered in the
page into a CSP source token and adds it to the directive store:

  1. Trim. Keyword tokens (``'self'``, ``'nonce-…'``, ``'sha256-…'``, integrity
     values ending in ``='``) are added verbatim — no origin logic applies.
  2. Resolve against the page URL. Malformed → dropped, DEBUG log, no error.
  3. Scheme policy: ``https`` only unless ``allow_http``.
  4. SSRF guard (unless ``allow_private_origins``): ``localhost`` / ``*.local``
     rejected; literal IPs classified directly; hostnames resolved via DNS and
     rejected if ANY address is private (DNS-rebinding defence).
  5. Normalized to ``scheme://host[:port]`` and added.

One resolver (and therefore one DNS cache) exists per analysis request.
"""

from __future__ import annotations

import asyncio
import ipaddress
import socket
from typing import Any, Optional, Protocol, Sequence, Union

import httpx

from cspgen.constants import (
    INSECURE_SCHEMES,
    LOCAL_DOMAIN_SUFFIX,
    LOCALHOST_NAMES,
    PRIVATE_NETWORKS,
    SECURE_SCHEMES,
)
from cspgen.models.errors import DnsLookupError
from cspgen.models.policy import Directive, DirectiveStore
from cspgen.utils.logger import adapt_logger

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

# Compiled once at import.
_PRIVATE_NETWORKS = tuple(ipaddress.ip_network(cidr) for cidr in PRIVATE_NETWORKS)


# ─── DNS ──────────────────────────────────────────────────────────────────────


class HostResolver(Protocol):
    """Hostname → addresses lookup used by the SSRF guard."""

    async def resolve(self, host: str) -> Sequence[str]:
        """Return every address ``host`` resolves to.

        Raises:
            DnsLookupError: The name could not be resolved.
        """
        ...


class SystemResolver:
    """HostResolver backed by the event loop's ``getaddrinfo``."""

    async def resolve(self, host: str) -> Sequence[str]:
        loop = asyncio.get_running_loop()
        try:
            infos = await loop.getaddrinfo(host, None)
        except (socket.gaierror, UnicodeError) as exc:
            raise DnsLookupError(host, str(exc)) from exc
        addresses: list[str] = []
        for *_, sockaddr in infos:
            address = str(sockaddr[0]).split("%", 1)[0]  # drop IPv6 scope id
            if address not in addresses:
                addresses.append(address)
        return addresses


# ─── Classification helpers ──────────────────────────────────────────────────


def parse_ip(value: str) -> Optional[IPAddress]:
    """Return the IP address for a literal, or None if ``value`` is a hostname."""
    try:
        return ipaddress.ip_address(value.strip("[]"))
    except ValueError:
        return None


def is_private_address(address: Union[str, IPAddress]) -> bool:
    """True if ``address`` is loopback, private or link-local.

    IPv4-mapped IPv6 addresses (``::ffff:10.0.0.1``) are classified by their
    embedded IPv4 address. Unparseable input is treated as private.
    """
    ip = parse_ip(address) if isinstance(address, str) else address
    if ip is None:
        return True
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return any(ip.version == net.version and ip in net for net in _PRIVATE_NETWORKS)


def is_local_hostname(host: str) -> bool:
    """True for ``localhost`` and names under the ``.local`` suffix."""
    name = host.lower().rstrip(".")
    return name in LOCALHOST_NAMES or name.endswith(LOCAL_DOMAIN_SUFFIX)


def is_keyword_token(token: str) -> bool:
    """True for pre-quoted keywords and integrity values, which bypass origin checks."""
    return token.startswith("'") or token.endswith("='")


def format_origin(url: httpx.URL) -> str:
    """Return ``scheme://host[:port]`` for an absolute URL (default port omitted)."""
    host = url.raw_host.decode("ascii").lower()
    if ":" in host:
        host = f"[{host}]"
    port = f":{url.port}" if url.port is not None else ""
    return f"{url.scheme}://{host}{port}"


# ─── Resolver ─────────────────────────────────────────────────────────────────


class OriginResolver:
    """Validates raw candidate tokens and records accepted ones in a DirectiveStore.

    Args:
        page_url:              URL of the analysed page; relative tokens resolve against it.
        store:                 Per-request DirectiveStore receiving accepted tokens.
        allow_http:            Accept ``http``/``ws``/``wss`` in addition to ``https``.
        allow_private_origins: Skip the SSRF guard entirely.
        host_resolver:         DNS collaborator (defaults to SystemResolver).
        dns_failure_mode:      ``"abort"`` re-raises DnsLookupError, ``"skip"`` drops the token.
        logger:                Logger exposing debug/info/warning/error.
    """

    def __init__(
        self,
        page_url: httpx.URL,
        store: DirectiveStore,
        *,
        allow_http: bool = False,
        allow_private_origins: bool = False,
        host_resolver: Optional[HostResolver] = None,
        dns_failure_mode: str = "abort",
        logger: Any = None,
    ) -> None:
        self.page_url = page_url
        self.store = store
        self.allow_http = allow_http
        self.allow_private_origins = allow_private_origins
        self.host_resolver: HostResolver = host_resolver or SystemResolver()
        self.dns_failure_mode = dns_failure_mode
        self.logger = adapt_logger(logger, __name__)
        self._schemes = SECURE_SCHEMES | INSECURE_SCHEMES if allow_http else SECURE_SCHEMES
        # hostname → addresses; None marks a lookup that failed in "skip" mode
        self._dns_cache: dict[str, Optional[tuple[str, ...]]] = {}

    async def resolve(self, directive: Directive, raw_token: str) -> Optional[str]:
        """Validate ``raw_token`` and add the resulting source token to ``directive``.

        Returns:
            The token added to the store, or None if it was dropped.

        Raises:
            DnsLookupError: DNS resolution failed and dns_failure_mode is "abort".
        """
        token = raw_token.strip()
        if not token:
            return None

        if is_keyword_token(token):
            self.store.add(directive, token)
            return token

        try:
            absolute = self.page_url.join(token)
            host = absolute.raw_host.decode("ascii")
            scheme = absolute.scheme
        except (httpx.InvalidURL, ValueError, UnicodeError) as exc:
            self.logger.debug("invalid_url_skipped", token=token, error=str(exc))
            return None

        if scheme not in self._schemes:
            self.logger.debug("scheme_rejected", token=token, scheme=scheme)
            return None

        if not host:
            self.logger.debug("invalid_url_skipped", token=token, error="missing host")
            return None

        if not self.allow_private_origins and await self.is_private_host(host):
            self.logger.debug("private_origin_rejected", token=token, host=host)
            return None

        origin = format_origin(absolute)
        self.store.add(directive, origin)
        return origin

    async def is_private_host(self, host: str) -> bool:
        """True if ``host`` is local, a private literal IP, or resolves to any private address.

        Raises:
            DnsLookupError: Resolution failed and dns_failure_mode is "abort".
        """
        if is_local_hostname(host):
            return True

        literal = parse_ip(host)
        if literal is not None:
            return is_private_address(literal)

        addresses = await self._lookup(host.lower())
        if addresses is None:
            # Lookup failed in "skip" mode; exclude the token.
            return True
        return any(is_private_address(address) for address in addresses)

    async def _lookup(self, host: str) -> Optional[tuple[str, ...]]:
        if host in self._dns_cache:
            return self._dns_cache[host]

        try:
            addresses: Optional[tuple[str, ...]] = tuple(await self.host_resolver.resolve(host))
        except DnsLookupError:
            if self.dns_failure_mode == "abort":
                raise
            self.logger.warning("dns_lookup_failed_token_skipped", host=host)
            addresses = None

        self._dns_cache[host] = addresses
        return addresses
