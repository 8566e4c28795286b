"""Request header construction for the page fetch.

  - build_fetch_headers(): default ``Accept: text/html`` and ``User-Agent``,
    then user-supplied transport headers (which win, case-insensitively),
    minus hop-by-hop headers.

RFC 7230 §6.1 — hop-by-hop headers are connection-scoped; httpx manages them
itself, so user-supplied values are dropped rather than sent.
"""

from __future__ import annotations

from typing import Iterable

from cspgen.config import TransportOptions
from cspgen.constants import DEFAULT_ACCEPT_HEADER

# ─── Constants ────────────────────────────────────────────────────────────────

HOP_BY_HOP_HEADERS: frozenset[str] = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailers",
        "transfer-encoding",
        "upgrade",
        "host",
        "content-length",  # GET has no body; httpx computes it anyway
    }
)

# ─── Public API ───────────────────────────────────────────────────────────────


def merge_headers(
    defaults: Iterable[tuple[str, str]],
    overrides: Iterable[tuple[str, str]],
) -> dict[str, str]:
    """Merge two header sequences; ``overrides`` replace defaults case-insensitively.

    Hop-by-hop headers are removed from the result.
    """
    merged: dict[str, tuple[str, str]] = {}
    for name, value in list(defaults) + list(overrides):
        lower_name = name.lower()
        if lower_name in HOP_BY_HOP_HEADERS:
            continue
        merged[lower_name] = (name, value)
    return {name: value for name, value in merged.values()}


def build_fetch_headers(transport: TransportOptions) -> dict[str, str]:
    """Build the header dict for the page request.

    Args:
        transport: Transport options of the current generator.

    Returns:
        ``dict[str, str]`` — headers for ``httpx.AsyncClient.build_request``.
    """
    defaults = [
        ("Accept", DEFAULT_ACCEPT_HEADER),
        ("User-Agent", transport.user_agent),
    ]
    return merge_headers(defaults, transport.headers.items())
