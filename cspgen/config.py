"""Config loading for cspgen.

Two layers:

  - ``GeneratorOptions`` — the immutable policy snapshot handed to one
    ``SecureCSPGenerator``. Usable directly from Python without any file.
  - ``Config`` — the file/env backed configuration used by the CLI and the
    HTTP service. Wraps a ``GeneratorOptions`` plus service settings.

Config search order:
  1. ``config_path`` argument (if provided — for testing or explicit override)
  2. CSPGEN_CONFIG environment variable (if set)
  3. ``.cspgen/config.yaml`` (working directory)
  4. ``~/.cspgen/config.yaml`` (home directory)

If no config file is found, defaults are used (not an error). A file that
exists but cannot be parsed, or lacks ``version``, refuses to start with
``SystemExit(1)``.

Environment variable overrides (applied after the file):
  CSP_ALLOW_HTTP, CSP_ALLOW_PRIVATE_ORIGINS, CSP_ALLOW_UNSAFE_INLINE_SCRIPT,
  CSP_ALLOW_UNSAFE_INLINE_STYLE, CSP_ALLOW_UNSAFE_EVAL, CSP_REQUIRE_TRUSTED_TYPES,
  CSP_MAX_BODY_SIZE, CSP_TIMEOUT_MS, CSP_PRESETS, CSP_FETCH_OPTIONS,
  CSP_OUTPUT_FORMAT, CSPGEN_PORT
"""

from __future__ import annotations

import dataclasses
import json
import os
import sys
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

import yaml

from cspgen.constants import (
    DEFAULT_TIMEOUT_MS,
    DEFAULT_USER_AGENT,
    OUTPUT_FORMATS,
    UNLIMITED_BODY_SIZE,
)
from cspgen.models.errors import ConfigurationError
from cspgen.models.policy import Directive
from cspgen.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Version constants ────────────────────────────────────────────────────────

SUPPORTED_CONFIG_VERSION = 1

SUPPORTED_VERSIONS: frozenset[int] = frozenset({1})

# ─── Validation sets ─────────────────────────────────────────────────────────

VALID_DNS_FAILURE_MODES: frozenset[str] = frozenset({"abort", "skip"})

DEFAULT_CONFIG_PATHS = [
    ".cspgen/config.yaml",
    os.path.expanduser("~/.cspgen/config.yaml"),
]

_TRUE_STRINGS = frozenset({"1", "true", "yes", "on"})


# ─── Parsing helpers ─────────────────────────────────────────────────────────


def parse_bool(value: Optional[str], default: bool = False) -> bool:
    """Parse a ``true``/``false`` style string; None returns ``default``."""
    if value is None:
        return default
    return value.strip().lower() in _TRUE_STRINGS


def parse_int(value: Optional[str], default: int) -> int:
    """Parse a decimal integer string; missing or malformed values return ``default``."""
    if not value:
        return default
    try:
        return int(value, 10)
    except ValueError:
        return default


def parse_presets(value: Optional[str]) -> dict[Directive, tuple[str, ...]]:
    """Parse ``"dir:v1,v2;dir2:v3"`` into a presets mapping.

    Entries naming an unknown directive, or missing the ``:`` separator,
    are skipped.
    """
    presets: dict[Directive, tuple[str, ...]] = {}
    if not value:
        return presets
    for entry in value.split(";"):
        name, sep, values = entry.partition(":")
        if not sep or not values:
            continue
        directive = Directive.parse(name)
        if directive is None:
            logger.warning("preset_directive_ignored", directive=name.strip())
            continue
        presets[directive] = tuple(v.strip() for v in values.split(",") if v.strip())
    return presets


def parse_fetch_options(value: Optional[str]) -> dict[str, Any]:
    """Parse a JSON object of transport options; invalid JSON yields ``{}``."""
    if not value:
        return {}
    try:
        parsed = json.loads(value)
    except (json.JSONDecodeError, ValueError):
        logger.warning("fetch_options_invalid_json")
        return {}
    return parsed if isinstance(parsed, dict) else {}


def normalize_presets(raw: Optional[Mapping[Any, Any]]) -> dict[Directive, tuple[str, ...]]:
    """Convert a user presets mapping into ``{Directive: (tokens...)}``.

    Keys may be ``Directive`` members or directive names. Unknown names are
    ignored with a warning; a bare string value is treated as a single token.
    """
    presets: dict[Directive, tuple[str, ...]] = {}
    for key, values in (raw or {}).items():
        directive = key if isinstance(key, Directive) else Directive.parse(str(key))
        if directive is None:
            logger.warning("preset_directive_ignored", directive=str(key))
            continue
        if isinstance(values, str):
            values = [values]
        presets[directive] = tuple(str(v) for v in values)
    return presets


# ─── Dataclasses ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TransportOptions:
    """Options forwarded to the HTTP transport for the page fetch.

    headers:          Extra request headers (override the default Accept).
    follow_redirects: Follow 3xx responses from the target. Every hop must pass
                      the same scheme and private-host checks as the page URL.
    verify:           Verify TLS certificates.
    user_agent:       User-Agent header unless ``headers`` sets one.
    """

    headers: Mapping[str, str] = field(default_factory=dict)
    follow_redirects: bool = True
    verify: bool = True
    user_agent: str = DEFAULT_USER_AGENT

    @classmethod
    def from_dict(cls, raw: Optional[Mapping[str, Any]]) -> "TransportOptions":
        """Build from a fetch-options mapping; unknown keys are ignored.

        Accepts ``redirect: "follow" | "manual"`` as an alias of
        ``follow_redirects``.
        """
        raw = raw or {}
        follow = raw.get("follow_redirects")
        if follow is None and "redirect" in raw:
            follow = raw["redirect"] == "follow"
        headers = raw.get("headers") or {}
        return cls(
            headers={str(k): str(v) for k, v in dict(headers).items()},
            follow_redirects=True if follow is None else bool(follow),
            verify=bool(raw.get("verify", True)),
            user_agent=str(raw.get("user_agent", DEFAULT_USER_AGENT)),
        )


@dataclass(frozen=True)
class GeneratorOptions:
    """Immutable policy configuration captured when a generator is constructed.

    All toggles default to the fail-closed choice: HTTPS only, private
    origins blocked, no unsafe-* keywords.
    """

    allow_http: bool = False
    allow_private_origins: bool = False
    allow_unsafe_inline_script: bool = False
    allow_unsafe_inline_style: bool = False
    allow_unsafe_eval: bool = False
    require_trusted_types: bool = False
    use_nonce: bool = False
    custom_nonce: str = ""
    use_hashes: bool = True
    use_strict_dynamic: bool = False
    strict_dynamic_inline_fallback: bool = False
    upgrade_insecure_requests: bool = True
    block_mixed_content: bool = True
    restrict_framing: bool = False
    use_sandbox: bool = False
    max_body_size: int = UNLIMITED_BODY_SIZE
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    presets: Mapping[Directive, tuple[str, ...]] = field(default_factory=dict)
    transport: TransportOptions = field(default_factory=TransportOptions)
    dns_failure_mode: str = "abort"
    logger: Any = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "presets", normalize_presets(self.presets))
        if isinstance(self.transport, Mapping):
            object.__setattr__(self, "transport", TransportOptions.from_dict(self.transport))
        if self.max_body_size < 0:
            raise ConfigurationError("max_body_size must be >= 0 (0 = unlimited)")
        if self.timeout_ms <= 0:
            raise ConfigurationError("timeout_ms must be > 0")
        if self.dns_failure_mode not in VALID_DNS_FAILURE_MODES:
            raise ConfigurationError(
                f"Invalid dns_failure_mode: '{self.dns_failure_mode}'. "
                f"Supported values: {sorted(VALID_DNS_FAILURE_MODES)}."
            )

    @property
    def nonce_enabled(self) -> bool:
        return self.use_nonce or bool(self.custom_nonce)

    def replace(self, **changes: Any) -> "GeneratorOptions":
        """Return a copy with ``changes`` applied (validation runs again)."""
        return dataclasses.replace(self, **changes)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "GeneratorOptions":
        """Construct from a parsed YAML/JSON mapping; unknown keys are ignored."""
        known = {f.name for f in dataclasses.fields(cls)} - {"logger", "transport"}
        kwargs = {k: v for k, v in raw.items() if k in known}
        transport_raw = raw.get("transport", raw.get("fetch_options"))
        if transport_raw is not None:
            kwargs["transport"] = TransportOptions.from_dict(transport_raw)
        return cls(**kwargs)


@dataclass
class ServerConfig:
    """HTTP service binding configuration."""

    host: str = "127.0.0.1"
    port: int = 4343
    # Permits requests that target private/localhost pages. Off by default:
    # the service fetches arbitrary URLs on behalf of its callers.
    allow_private_targets: bool = False


@dataclass
class Config:
    """Root configuration object populated from .cspgen/config.yaml.

    All fields have safe defaults — cspgen can run without any config file.
    """

    version: int = SUPPORTED_CONFIG_VERSION
    generator: GeneratorOptions = field(default_factory=GeneratorOptions)
    server: ServerConfig = field(default_factory=ServerConfig)
    output_format: str = "header"
    path: Optional[str] = None

    @classmethod
    def defaults(cls) -> "Config":
        """Return a fully-default Config (no file required)."""
        return cls()

    @classmethod
    def from_dict(cls, raw: dict, path: Optional[str] = None) -> "Config":
        """Construct Config from a parsed YAML dict.

        Raises:
            SystemExit(1): On invalid option values or output format.
        """
        try:
            generator = GeneratorOptions.from_dict(raw.get("generator", {}) or {})
        except (ConfigurationError, TypeError) as exc:
            print(f"CONFIG ERROR: Invalid generator section: {exc}", file=sys.stderr)
            raise SystemExit(1)

        output_format = raw.get("output_format", "header")
        if output_format not in OUTPUT_FORMATS:
            print(
                f"CONFIG ERROR: Invalid output_format: '{output_format}'. "
                f"Supported values: {sorted(OUTPUT_FORMATS)}.",
                file=sys.stderr,
            )
            raise SystemExit(1)

        server_raw = raw.get("server", {}) or {}
        server = ServerConfig(
            host=server_raw.get("host", "127.0.0.1"),
            port=server_raw.get("port", 4343),
            allow_private_targets=server_raw.get("allow_private_targets", False),
        )

        return cls(
            version=raw.get("version", SUPPORTED_CONFIG_VERSION),
            generator=generator,
            server=server,
            output_format=output_format,
            path=path,
        )


# ─── Config loading ───────────────────────────────────────────────────────────


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and validate cspgen configuration.

    If no file is found at any search path, returns default Config.
    Environment overrides are applied in both cases.

    Raises:
        SystemExit(1): On YAML parse error, missing or unsupported ``version``,
                       invalid option values, or invalid ``CSPGEN_PORT``.
    """
    search_paths: list[str] = []
    if config_path:
        search_paths.append(config_path)
    env_config = os.environ.get("CSPGEN_CONFIG")
    if env_config:
        search_paths.append(env_config)
    search_paths.extend(DEFAULT_CONFIG_PATHS)

    found_path: Optional[str] = None
    for candidate in search_paths:
        expanded = os.path.expanduser(candidate)
        if os.path.isfile(expanded):
            found_path = expanded
            break

    if found_path is None:
        logger.debug("No config file found — using defaults", searched=search_paths)
        config = Config.defaults()
        _apply_env_overrides(config)
        return config

    logger.info("Loading config", path=found_path)

    try:
        with open(found_path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        print(
            f"CONFIG ERROR: Failed to parse {found_path}: {exc}\n"
            "cspgen refuses to start with an invalid config.",
            file=sys.stderr,
        )
        raise SystemExit(1)
    except OSError as exc:
        print(f"CONFIG ERROR: Could not read {found_path}: {exc}", file=sys.stderr)
        raise SystemExit(1)

    if not isinstance(raw, dict):
        if raw is None:
            msg = (
                f"CONFIG ERROR: {found_path} is missing the required 'version' field.\n"
                "Add 'version: 1' to the top of your config file."
            )
        else:
            msg = f"CONFIG ERROR: {found_path} is not a valid YAML mapping."
        print(msg, file=sys.stderr)
        raise SystemExit(1)

    version = raw.get("version")
    if version is None:
        print(
            f"CONFIG ERROR: {found_path} is missing the required 'version' field.\n"
            "Add 'version: 1' to the top of your config file.",
            file=sys.stderr,
        )
        raise SystemExit(1)

    if version not in SUPPORTED_VERSIONS:
        print(
            f"CONFIG ERROR: Unsupported config version: {version}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}.",
            file=sys.stderr,
        )
        raise SystemExit(1)

    config = Config.from_dict(raw, path=found_path)
    _apply_env_overrides(config)

    if config.generator.allow_private_origins:
        logger.warning(
            "SECURITY WARNING: allow_private_origins is enabled — private network "
            "origins will be allow-listed in generated policies."
        )

    logger.info("Config loaded", path=found_path, version=config.version)
    return config


def _apply_env_overrides(config: Config) -> None:
    """Apply CSP_* / CSPGEN_* environment variable overrides in-place.

    Raises:
        SystemExit(1): If CSPGEN_PORT is set but not a valid integer, or an
                       override produces invalid generator options.
    """
    env = os.environ
    gen = config.generator
    changes: dict[str, Any] = {}

    bool_vars = {
        "CSP_ALLOW_HTTP": "allow_http",
        "CSP_ALLOW_PRIVATE_ORIGINS": "allow_private_origins",
        "CSP_ALLOW_UNSAFE_INLINE_SCRIPT": "allow_unsafe_inline_script",
        "CSP_ALLOW_UNSAFE_INLINE_STYLE": "allow_unsafe_inline_style",
        "CSP_ALLOW_UNSAFE_EVAL": "allow_unsafe_eval",
        "CSP_REQUIRE_TRUSTED_TYPES": "require_trusted_types",
    }
    for var, attr in bool_vars.items():
        if var in env:
            changes[attr] = parse_bool(env[var])

    if "CSP_MAX_BODY_SIZE" in env:
        changes["max_body_size"] = parse_int(env["CSP_MAX_BODY_SIZE"], gen.max_body_size)
    if "CSP_TIMEOUT_MS" in env:
        changes["timeout_ms"] = parse_int(env["CSP_TIMEOUT_MS"], gen.timeout_ms)
    if env.get("CSP_PRESETS"):
        changes["presets"] = parse_presets(env["CSP_PRESETS"])
    if env.get("CSP_FETCH_OPTIONS"):
        changes["transport"] = TransportOptions.from_dict(
            parse_fetch_options(env["CSP_FETCH_OPTIONS"])
        )

    if changes:
        try:
            config.generator = gen.replace(**changes)
        except ConfigurationError as exc:
            print(f"CONFIG ERROR: Invalid environment override: {exc}", file=sys.stderr)
            raise SystemExit(1)

    output_format = env.get("CSP_OUTPUT_FORMAT")
    if output_format in OUTPUT_FORMATS:
        config.output_format = output_format

    env_port = env.get("CSPGEN_PORT")
    if env_port is not None:
        try:
            config.server.port = int(env_port)
        except ValueError:
            print(
                f"CONFIG ERROR: CSPGEN_PORT environment variable is not a valid "
                f"integer: '{env_port}'",
                file=sys.stderr,
            )
            raise SystemExit(1)
