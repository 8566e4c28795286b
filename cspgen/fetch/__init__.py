"""Page fetching — httpx client factory, request headers, bounded download."""
