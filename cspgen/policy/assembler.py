"""Policy assembler — fixed-order post-scan adjustments and serialization.

``assemble()`` runs exactly once per analysis, after scanning. The step order
is part of the output contract (it fixes directive order in the header):

  1. nonce              → script-src += 'nonce-<v>' 'strict-dynamic'
                          use_strict_dynamic → script-src += 'strict-dynamic'
                          strict_dynamic_inline_fallback → += 'unsafe-inline'
  2. inline script      → script-src += 'unsafe-inline'   (if allowed)
  3. inline style       → style-src  += 'unsafe-inline'   (if allowed)
  4. eval               → script-src += 'unsafe-eval'     (if allowed, else WARN)
  5. overwrite          → require-trusted-types-for / frame-ancestors / sandbox
  6. flag directives    → upgrade-insecure-requests, block-all-mixed-content
  7. fail-closed        → empty default-src becomes 'none'
  8. serialize
"""

from __future__ import annotations

from typing import Any, Optional

from cspgen.config import GeneratorOptions
from cspgen.constants import (
    NONE,
    SANDBOX_PERMISSIONS,
    STRICT_DYNAMIC,
    TRUSTED_TYPES_SCRIPT,
    UNSAFE_EVAL,
    UNSAFE_INLINE,
)
from cspgen.models.policy import Directive, DirectiveStore, ScanFlags
from cspgen.utils.logger import adapt_logger


def assemble(
    store: DirectiveStore,
    flags: ScanFlags,
    options: GeneratorOptions,
    nonce: Optional[str] = None,
    logger: Any = None,
) -> str:
    """Apply the post-scan policy to ``store`` and return the header value.

    Args:
        store:   The request's DirectiveStore (mutated in place).
        flags:   Content flags produced by the scanner.
        options: Generator policy snapshot.
        nonce:   Page nonce; only used when ``options.nonce_enabled``.
        logger:  Logger for the eval warning.

    Returns:
        The serialized Content-Security-Policy value.
    """
    log = adapt_logger(logger, __name__)

    # 1
    if options.nonce_enabled and nonce:
        store.add(Directive.SCRIPT_SRC, f"'nonce-{nonce}'")
        store.add(Directive.SCRIPT_SRC, STRICT_DYNAMIC)
    if options.use_strict_dynamic:
        store.add(Directive.SCRIPT_SRC, STRICT_DYNAMIC)
    if options.strict_dynamic_inline_fallback and STRICT_DYNAMIC in store.tokens(
        Directive.SCRIPT_SRC
    ):
        store.add(Directive.SCRIPT_SRC, UNSAFE_INLINE)

    # 2
    if flags.inline_script and options.allow_unsafe_inline_script:
        store.add(Directive.SCRIPT_SRC, UNSAFE_INLINE)

    # 3
    if flags.inline_style and options.allow_unsafe_inline_style:
        store.add(Directive.STYLE_SRC, UNSAFE_INLINE)

    # 4
    if options.allow_unsafe_eval:
        store.add(Directive.SCRIPT_SRC, UNSAFE_EVAL)
    elif flags.eval_detected:
        log.warning(
            "eval_detected",
            message="Detected eval-like patterns; without allow_unsafe_eval, "
            "some scripts may break.",
        )

    # 5
    if options.require_trusted_types:
        store.replace(Directive.REQUIRE_TRUSTED_TYPES_FOR, [TRUSTED_TYPES_SCRIPT])
    if options.restrict_framing:
        store.replace(Directive.FRAME_ANCESTORS, [NONE])
    if options.use_sandbox:
        store.replace(Directive.SANDBOX, SANDBOX_PERMISSIONS)

    # 6
    if options.upgrade_insecure_requests:
        store.ensure(Directive.UPGRADE_INSECURE_REQUESTS)
    if options.block_mixed_content:
        store.ensure(Directive.BLOCK_ALL_MIXED_CONTENT)

    # 7
    if store.is_empty(Directive.DEFAULT_SRC):
        store.replace(Directive.DEFAULT_SRC, [NONE])

    # 8
    return store.serialize()
