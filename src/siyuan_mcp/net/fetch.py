"""ResilientFetcher — bounded outbound HTTP client for internet resources.

Used for every *outbound* fetch (images, web pages, screenshot services).  The
trusted note backend goes through :class:`~siyuan_mcp.backend.client.SiYuanClient`
instead.

Each :meth:`ResilientFetcher.fetch` call:

1. Runs one attempt under ``asyncio.wait_for`` (timeout aborts the request).
2. Follows redirects in a bounded loop (303 downgrades to GET).
3. Streams the body and aborts once it grows past ``max_bytes + headroom``.
4. Retries transient socket failures and retryable statuses with linear
   backoff; everything else propagates immediately.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from urllib.parse import urljoin

import httpx

from siyuan_mcp.net.errors import (
    FetchError,
    FetchStatusError,
    FetchTimeoutError,
    FetchTransportError,
    ResponseTooLargeError,
    TooManyRedirectsError,
)

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = frozenset({408, 425, 429, 500, 502, 503, 504})
REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})

_RETRYABLE_TRANSPORT = (
    httpx.ConnectError,
    httpx.ReadError,
    httpx.WriteError,
    httpx.RemoteProtocolError,
)
# getaddrinfo texts for names that will never resolve; only transient DNS is retried.
_PERMANENT_DNS_MARKERS = ("name or service not known", "nodename nor servname", "no such host")


@dataclass(frozen=True)
class FetchOptions:
    """Per-call budget for :meth:`ResilientFetcher.fetch`."""

    timeout: float = 15.0
    max_redirects: int = 4
    max_retries: int = 2
    retry_backoff: float = 0.4
    max_bytes: int | None = None
    size_headroom: int = 64 * 1024
    decode_content: bool = False
    url_guard: Callable[[str], str] | None = None


@dataclass
class FetchResult:
    """A completed response.  ``body`` is raw (still content-encoded) unless the
    fetch ran with ``decode_content=True``."""

    status_code: int
    url: str
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    body: bytes = b""

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "")

    def text(self) -> str:
        """Decode the body using the declared charset, falling back to UTF-8."""
        charset = "utf-8"
        for param in self.content_type.split(";")[1:]:
            key, _, value = param.partition("=")
            if key.strip().lower() == "charset" and value.strip():
                charset = value.strip().strip('"')
        try:
            return self.body.decode(charset, errors="replace")
        except LookupError:
            return self.body.decode("utf-8", errors="replace")


class ResilientFetcher:
    """Async context manager around a redirect-free :class:`httpx.AsyncClient`.

    Usage::

        async with ResilientFetcher(user_agent="siyuan-mcp/0.1") as fetcher:
            result = await fetcher.fetch(url, options=FetchOptions(max_bytes=1 << 20))
    """

    def __init__(
        self,
        *,
        user_agent: str,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = httpx.AsyncClient(
            transport=transport,
            follow_redirects=False,
            headers={"User-Agent": user_agent, "Accept": "*/*"},
        )
        self._sleep = sleep

    async def __aenter__(self) -> ResilientFetcher:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch(
        self,
        url: str,
        *,
        method: str = "GET",
        body: bytes | None = None,
        headers: dict[str, str] | None = None,
        options: FetchOptions | None = None,
    ) -> FetchResult:
        """Fetch *url* applying redirects, retries and the size cap.

        Raises:
            FetchStatusError: Final status is not 2xx.
            FetchTimeoutError / FetchTransportError: After retries are exhausted.
            TooManyRedirectsError, ResponseTooLargeError, BlockedURLError: Never retried.
        """
        opts = options or FetchOptions()
        attempt = 0
        while True:
            try:
                result = await self._follow_redirects(url, method.upper(), body, headers, opts)
            except (FetchTimeoutError, FetchTransportError) as exc:
                retryable = getattr(exc, "retryable", True)
                if not retryable or attempt >= opts.max_retries:
                    raise
                logger.info("Retrying %s after transport failure: %s", url, exc)
            else:
                status = result.status_code
                if 200 <= status < 300:
                    return result
                if status not in RETRYABLE_STATUSES or attempt >= opts.max_retries:
                    raise FetchStatusError(result.url, status)
                logger.info("Retrying %s after HTTP %d", url, status)

            attempt += 1
            await self._sleep(opts.retry_backoff * attempt)

    async def _follow_redirects(
        self,
        url: str,
        method: str,
        body: bytes | None,
        headers: dict[str, str] | None,
        opts: FetchOptions,
    ) -> FetchResult:
        current_url, current_method, current_body = url, method, body
        remaining = opts.max_redirects
        while True:
            if opts.url_guard is not None:
                current_url = opts.url_guard(current_url)

            result = await self._attempt(current_url, current_method, current_body, headers, opts)
            if result.status_code not in REDIRECT_STATUSES:
                return result

            location = result.headers.get("location")
            if not location:
                raise FetchTransportError(
                    current_url,
                    f"HTTP {result.status_code} redirect without Location header",
                    retryable=False,
                )
            if remaining <= 0:
                raise TooManyRedirectsError(url, opts.max_redirects)
            remaining -= 1

            if result.status_code == 303:
                current_method, current_body = "GET", None
            current_url = urljoin(current_url, location)
            logger.debug("Redirect %d → %s", result.status_code, current_url)

    async def _attempt(
        self,
        url: str,
        method: str,
        body: bytes | None,
        headers: dict[str, str] | None,
        opts: FetchOptions,
    ) -> FetchResult:
        try:
            return await asyncio.wait_for(
                self._send(url, method, body, headers, opts),
                timeout=opts.timeout,
            )
        except TimeoutError as exc:
            raise FetchTimeoutError(url, opts.timeout) from exc

    async def _send(
        self,
        url: str,
        method: str,
        body: bytes | None,
        headers: dict[str, str] | None,
        opts: FetchOptions,
    ) -> FetchResult:
        request = self._client.build_request(
            method,
            url,
            content=body,
            headers=headers,
            timeout=httpx.Timeout(opts.timeout),
        )
        try:
            response = await self._client.send(request, stream=True)
            try:
                payload = b""
                if 200 <= response.status_code < 300:
                    payload = await self._read_capped(response, url, opts)
                return FetchResult(
                    status_code=response.status_code,
                    url=str(response.url),
                    headers=response.headers,
                    body=payload,
                )
            finally:
                await response.aclose()
        except httpx.TimeoutException as exc:
            raise FetchTimeoutError(url, opts.timeout) from exc
        except httpx.TransportError as exc:
            raise FetchTransportError(
                url, _describe(exc), retryable=_is_retryable_transport(exc)
            ) from exc

    @staticmethod
    async def _read_capped(response: httpx.Response, url: str, opts: FetchOptions) -> bytes:
        """Accumulate the body, aborting mid-stream once it passes the cap."""
        limit = None if opts.max_bytes is None else opts.max_bytes + opts.size_headroom
        if limit is not None:
            declared = response.headers.get("content-length", "")
            if declared.isdigit() and int(declared) > limit:
                raise ResponseTooLargeError(url, opts.max_bytes or 0)

        chunks = response.aiter_bytes() if opts.decode_content else response.aiter_raw()
        buffer = bytearray()
        async for chunk in chunks:
            buffer.extend(chunk)
            if limit is not None and len(buffer) > limit:
                raise ResponseTooLargeError(url, opts.max_bytes or 0)
        return bytes(buffer)


def _is_retryable_transport(exc: httpx.TransportError) -> bool:
    if not isinstance(exc, _RETRYABLE_TRANSPORT):
        return False
    text = str(exc).lower()
    return not any(marker in text for marker in _PERMANENT_DNS_MARKERS)


def _describe(exc: Exception) -> str:
    text = str(exc).strip()
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__


__all__ = [
    "REDIRECT_STATUSES",
    "RETRYABLE_STATUSES",
    "FetchError",
    "FetchOptions",
    "FetchResult",
    "ResilientFetcher",
]
