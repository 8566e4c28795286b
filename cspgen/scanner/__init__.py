"""Markup scanning — resource discovery, CSS extraction, inline script classification."""
