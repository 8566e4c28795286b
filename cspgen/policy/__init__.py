"""Origin resolution (SSRF guard) and policy assembly."""
