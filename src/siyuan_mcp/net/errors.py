"""Error types for outbound internet fetches."""


class FetchError(Exception):
    """Base error for all outbound fetch failures."""


class BlockedURLError(FetchError):
    """The URL targets a scheme or host the bridge refuses to contact."""

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Blocked URL {url}: {reason}")


class FetchTimeoutError(FetchError):
    """A single attempt did not complete within its timeout."""

    def __init__(self, url: str, timeout: float) -> None:
        self.url = url
        self.timeout = timeout
        super().__init__(f"Request to {url} timed out after {timeout:g}s")


class FetchTransportError(FetchError):
    """Connection-level failure (DNS, refused, reset, unreachable)."""

    def __init__(self, url: str, detail: str, *, retryable: bool = True) -> None:
        self.url = url
        self.detail = detail
        self.retryable = retryable
        super().__init__(f"Request to {url} failed: {detail}")


class FetchStatusError(FetchError):
    """The final response carried a non-2xx status."""

    def __init__(self, url: str, status_code: int) -> None:
        self.url = url
        self.status_code = status_code
        super().__init__(f"HTTP {status_code} from {url}")


class TooManyRedirectsError(FetchError):
    """The redirect chain exceeded the configured bound."""

    def __init__(self, url: str, max_redirects: int) -> None:
        self.url = url
        self.max_redirects = max_redirects
        super().__init__(f"Too many redirects (>{max_redirects}) starting at {url}")


class ResponseTooLargeError(FetchError):
    """The response body exceeded the size cap while streaming."""

    def __init__(self, url: str, limit: int) -> None:
        self.url = url
        self.limit = limit
        super().__init__(f"Response from {url} exceeds {limit} bytes")
