"""cspgen models package.

Defines the shared data contracts used across the fetch, scan and assembly
pipeline:

  - policy.py    — Directive vocabulary, DirectiveStore, ScanFlags, GeneratorState
  - errors.py    — exception hierarchy raised by the generator
  - responses.py — JSON error/response builders for the HTTP service
"""
