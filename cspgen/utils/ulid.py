"""ULID generation utility for cspgen.

Provides ``generate_ulid()``, a 26-character ULID used as:
  - ``analysis_id`` bound into every log line of one analysis request
  - ``X-CSPGen-Analysis-ID`` response header of the HTTP service

Uses the ``python-ulid`` library — do NOT hand-roll ULID generation.
"""

from __future__ import annotations

from ulid import ULID


def generate_ulid() -> str:
    """Generate a new ULID as a 26-character uppercase string.

    Returns:
        str: Crockford Base32 ULID, e.g. ``"01KJ0JRVHYA7KX32VPN5ZSCTMV"``.
    """
    return str(ULID())
