"""Command-line interface: ``cspgen <url> [options]``.

Option precedence (highest first):
  1. command-line flags
  2. CSP_* environment variables (CSP_URL for the URL)
  3. config file (.cspgen/config.yaml, see cspgen/config.py)
  4. built-in defaults

Boolean flags take an explicit ``true``/``false`` value so that a flag can
switch off a setting enabled in the environment or config file.

Exit codes:
  0 — header printed on stdout
  1 — missing URL (usage on stderr) or generation error (``Error: ...`` on stderr)

Logs go to stderr (console format unless JSON_LOGS=true), so stdout only ever
carries the formatted policy.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from cspgen.config import (
    GeneratorOptions,
    TransportOptions,
    load_config,
    parse_bool,
    parse_fetch_options,
    parse_int,
    parse_presets,
)
from cspgen.constants import HEADER_NAME, OUTPUT_FORMATS
from cspgen.generator import SecureCSPGenerator
from cspgen.models.errors import CSPGeneratorError
from cspgen.utils.logger import configure_logging

USAGE_EXAMPLE = "Example: cspgen https://example.com --format json"

# flag → GeneratorOptions field, for every true/false option.
BOOLEAN_FLAGS: dict[str, str] = {
    "--allow-http": "allow_http",
    "--allow-private-origins": "allow_private_origins",
    "--allow-unsafe-inline-script": "allow_unsafe_inline_script",
    "--allow-unsafe-inline-style": "allow_unsafe_inline_style",
    "--allow-unsafe-eval": "allow_unsafe_eval",
    "--require-trusted-types": "require_trusted_types",
    "--use-nonce": "use_nonce",
    "--use-hashes": "use_hashes",
    "--use-strict-dynamic": "use_strict_dynamic",
    "--strict-dynamic-inline-fallback": "strict_dynamic_inline_fallback",
    "--upgrade-insecure-requests": "upgrade_insecure_requests",
    "--block-mixed-content": "block_mixed_content",
    "--restrict-framing": "restrict_framing",
    "--use-sandbox": "use_sandbox",
}

_BOOLEAN_HELP: dict[str, str] = {
    "allow_http": "Allow HTTP URLs in addition to HTTPS",
    "allow_private_origins": "Permit private IP / localhost origins",
    "allow_unsafe_inline_script": "Add 'unsafe-inline' to script-src",
    "allow_unsafe_inline_style": "Add 'unsafe-inline' to style-src",
    "allow_unsafe_eval": "Add 'unsafe-eval' to script-src",
    "require_trusted_types": "Add require-trusted-types-for 'script'",
    "use_nonce": "Add a generated nonce and 'strict-dynamic' to script-src",
    "use_hashes": "Hash inline scripts without nonce/integrity (default true)",
    "use_strict_dynamic": "Add 'strict-dynamic' to script-src",
    "strict_dynamic_inline_fallback": "Add 'unsafe-inline' next to 'strict-dynamic'",
    "upgrade_insecure_requests": "Emit upgrade-insecure-requests (default true)",
    "block_mixed_content": "Emit block-all-mixed-content (default true)",
    "restrict_framing": "Emit frame-ancestors 'none'",
    "use_sandbox": "Emit a sandbox directive",
}


@dataclass
class CliOptions:
    """Resolved command-line invocation."""

    url: str
    generator: GeneratorOptions
    output_format: str


# ─── Argument parsing ────────────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cspgen",
        usage="cspgen <url> [options]",
        description="Generate a Content-Security-Policy header from the resources a page uses.",
        epilog=USAGE_EXAMPLE,
    )
    parser.add_argument("url", nargs="?", default=None, help="Page URL (or CSP_URL)")
    for flag, field_name in BOOLEAN_FLAGS.items():
        parser.add_argument(
            flag,
            dest=field_name,
            metavar="<true|false>",
            default=None,
            help=_BOOLEAN_HELP[field_name],
        )
    parser.add_argument(
        "--max-body-size",
        metavar="<bytes>",
        default=None,
        help="Maximum allowed bytes for the HTML download (0 = unlimited)",
    )
    parser.add_argument(
        "--timeout-ms",
        metavar="<milliseconds>",
        default=None,
        help="Timeout for the page fetch",
    )
    parser.add_argument(
        "--presets",
        metavar="<presets>",
        default=None,
        help='User-provided source lists, e.g. "connect-src:https://api.example.com;img-src:data:"',
    )
    parser.add_argument(
        "--fetch-options",
        metavar="<json>",
        default=None,
        help='Transport options as JSON, e.g. \'{"headers": {"Cookie": "a=b"}}\'',
    )
    parser.add_argument(
        "--nonce",
        metavar="<value>",
        default=None,
        help="Use this nonce instead of generating one (implies --use-nonce true)",
    )
    parser.add_argument(
        "--dns-failure-mode",
        choices=("abort", "skip"),
        default=None,
        help="On DNS failure during the private-network check: abort the run or skip the resource",
    )
    parser.add_argument(
        "--format",
        "-f",
        dest="output_format",
        choices=sorted(OUTPUT_FORMATS),
        default=None,
        help="Output format (header, raw, json, csp-only)",
    )
    parser.add_argument(
        "--config",
        metavar="<path>",
        default=None,
        help="Config file (default: .cspgen/config.yaml, ~/.cspgen/config.yaml)",
    )
    return parser


def get_options(
    argv: Optional[Sequence[str]] = None,
    env: Optional[dict[str, str]] = None,
) -> CliOptions:
    """Resolve flags, environment and config file into a CliOptions.

    Raises:
        SystemExit(2): Unknown flag or invalid choice (argparse).
        SystemExit(1): Invalid config file.
        ConfigurationError: Flag values produce invalid generator options.
    """
    env = dict(os.environ) if env is None else env
    args = build_parser().parse_args(argv)
    config = load_config(args.config)
    base = config.generator

    changes: dict[str, Any] = {}
    for field_name in BOOLEAN_FLAGS.values():
        value = getattr(args, field_name)
        if value is not None:
            changes[field_name] = parse_bool(value)
    if args.max_body_size is not None:
        changes["max_body_size"] = parse_int(args.max_body_size, base.max_body_size)
    if args.timeout_ms is not None:
        changes["timeout_ms"] = parse_int(args.timeout_ms, base.timeout_ms)
    if args.presets is not None:
        changes["presets"] = parse_presets(args.presets)
    if args.fetch_options is not None:
        changes["transport"] = TransportOptions.from_dict(parse_fetch_options(args.fetch_options))
    if args.nonce:
        changes["custom_nonce"] = args.nonce
    if args.dns_failure_mode is not None:
        changes["dns_failure_mode"] = args.dns_failure_mode

    return CliOptions(
        url=(args.url or env.get("CSP_URL") or "").strip(),
        generator=base.replace(**changes) if changes else base,
        output_format=args.output_format or config.output_format,
    )


# ─── Output ──────────────────────────────────────────────────────────────────


def format_output(csp: str, output_format: str, nonce: Optional[str] = None) -> str:
    """Render the policy for stdout.

    ``header`` → ``Content-Security-Policy: <csp>``; ``raw`` / ``csp-only`` →
    ``<csp>``; ``json`` → ``{"Content-Security-Policy": "<csp>"}`` indented by
    two spaces, plus ``"nonce"`` when one was used.
    """
    if output_format == "json":
        payload = {HEADER_NAME: csp}
        if nonce is not None:
            payload["nonce"] = nonce
        return json.dumps(payload, indent=2)
    if output_format in ("raw", "csp-only"):
        return csp
    return f"{HEADER_NAME}: {csp}"


# ─── Entry points ────────────────────────────────────────────────────────────


async def run(options: CliOptions) -> str:
    """Generate the policy for ``options`` and return the formatted output."""
    generator = SecureCSPGenerator(options.url, options.generator)
    csp = await generator.generate()
    nonce = generator.nonce if options.generator.nonce_enabled else None
    return format_output(csp, options.output_format, nonce)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the CLI and return the process exit code."""
    configure_logging(
        log_level=os.getenv("LOG_LEVEL", "WARNING"),
        json_output=os.getenv("JSON_LOGS", "false").lower() == "true",
    )

    try:
        options = get_options(argv)
    except CSPGeneratorError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if not options.url:
        print(build_parser().format_help(), file=sys.stderr)
        return 1

    try:
        output = asyncio.run(run(options))
    except CSPGeneratorError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(output)
    return 0


def entrypoint() -> None:
    """Console-script entry point (``cspgen``)."""
    sys.exit(main())


if __name__ == "__main__":
    entrypoint()
