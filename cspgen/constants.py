"""Shared constants for cspgen.

Directive vocabulary, default policy tokens, fetch limits and the private
network ranges used by the SSRF guard all live here. No magic values in other
modules — import from here.
"""

from __future__ import annotations

# ─── Fetch Limits ────────────────────────────────────────────────────────────

# Default total fetch timeout in milliseconds (connect + headers + body).
DEFAULT_TIMEOUT_MS: int = 8_000

# 0 means "no limit" for GeneratorOptions.max_body_size.
UNLIMITED_BODY_SIZE: int = 0

# Accept header sent with every page fetch; user-supplied headers win.
DEFAULT_ACCEPT_HEADER: str = "text/html"

DEFAULT_USER_AGENT: str = "cspgen/1.0"

# ─── Policy Tokens ───────────────────────────────────────────────────────────

SELF: str = "'self'"
NONE: str = "'none'"
UNSAFE_INLINE: str = "'unsafe-inline'"
UNSAFE_EVAL: str = "'unsafe-eval'"
STRICT_DYNAMIC: str = "'strict-dynamic'"
TRUSTED_TYPES_SCRIPT: str = "'script'"

# Sandbox permissions applied when GeneratorOptions.use_sandbox is set.
SANDBOX_PERMISSIONS: tuple[str, ...] = (
    "allow-scripts",
    "allow-same-origin",
    "allow-forms",
    "allow-popups",
)

# Number of random bytes behind a generated nonce (base64 encoded).
NONCE_BYTES: int = 16

# ─── URL Policy ──────────────────────────────────────────────────────────────

SECURE_SCHEMES: frozenset[str] = frozenset({"https"})

# Additional schemes accepted only when allow_http is set.
INSECURE_SCHEMES: frozenset[str] = frozenset({"http", "ws", "wss"})

# Hostnames rejected outright by the SSRF guard (suffix match for ".local").
LOCALHOST_NAMES: frozenset[str] = frozenset({"localhost"})
LOCAL_DOMAIN_SUFFIX: str = ".local"

# Private, loopback, link-local and unspecified ranges rejected by the SSRF guard.
# 0.0.0.0/8 and :: reach the local host on Linux.
PRIVATE_NETWORKS: tuple[str, ...] = (
    "0.0.0.0/8",
    "10.0.0.0/8",
    "172.16.0.0/12",
    "192.168.0.0/16",
    "127.0.0.0/8",
    "169.254.0.0/16",
    "::/128",
    "::1/128",
    "fe80::/10",
    "fc00::/7",
)

# ─── Inline Content ──────────────────────────────────────────────────────────

# url() targets with these path suffixes are also allow-listed under img-src.
IMAGE_EXTENSIONS: tuple[str, ...] = (
    ".png",
    ".jpg",
    ".jpeg",
    ".gif",
    ".svg",
    ".webp",
    ".bmp",
    ".ico",
)

# ─── Output ──────────────────────────────────────────────────────────────────

HEADER_NAME: str = "Content-Security-Policy"

OUTPUT_FORMATS: frozenset[str] = frozenset({"header", "raw", "json", "csp-only"})
