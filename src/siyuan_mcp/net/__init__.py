"""Outbound network layer — resilient fetches and the SSRF guard."""

from siyuan_mcp.net.errors import (
    BlockedURLError,
    FetchError,
    FetchStatusError,
    FetchTimeoutError,
    FetchTransportError,
    ResponseTooLargeError,
    TooManyRedirectsError,
)
from siyuan_mcp.net.fetch import FetchOptions, FetchResult, ResilientFetcher
from siyuan_mcp.net.guard import is_public_url, validate_public_url

__all__ = [
    "BlockedURLError",
    "FetchError",
    "FetchOptions",
    "FetchResult",
    "FetchStatusError",
    "FetchTimeoutError",
    "FetchTransportError",
    "ResilientFetcher",
    "ResponseTooLargeError",
    "TooManyRedirectsError",
    "is_public_url",
    "validate_public_url",
]
