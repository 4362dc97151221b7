"""Best-effort image URL extraction from raw HTML (or reader-mirror markdown).

:func:`fetch_page_html` downloads the page with a short budget and falls back to
the configured reader mirror (``page_mirror_prefix + url``) when the site itself
cannot be fetched.

Extraction sits behind the :class:`ImageUrlExtractor` protocol so a real HTML
parser can replace :class:`RegexImageUrlExtractor` without touching callers.
"""

from __future__ import annotations

import html as html_lib
import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable
from urllib.parse import urldefrag, urljoin

from siyuan_mcp.net.errors import BlockedURLError, FetchError
from siyuan_mcp.net.fetch import FetchOptions
from siyuan_mcp.net.guard import is_public_url, validate_public_url

if TYPE_CHECKING:
    from siyuan_mcp.config import BridgeSettings
    from siyuan_mcp.net.fetch import ResilientFetcher

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 20
MAX_LIMIT = 100
PAGE_MAX_BYTES = 5 * 1024 * 1024
PAGE_ACCEPT = "text/html,application/xhtml+xml,text/plain;q=0.9,*/*;q=0.8"

_TAG_RE = re.compile(r"<(meta|img|source|base)\b([^>]*)>", re.IGNORECASE)
_ATTR_RE = re.compile(r"""([\w:.-]+)\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s"'>]+))""")
_MARKDOWN_IMG_RE = re.compile(r"!\[[^\]]*\]\(\s*<?([^)\s>]+)>?(?:\s+[\"'][^)]*[\"'])?\s*\)")
_BARE_IMG_URL_RE = re.compile(
    r"""https?://[^\s"'<>()\[\]]+?"""
    r"""\.(?:png|jpe?g|gif|webp|bmp|avif|svg)"""
    r"""(?:\?[^\s"'<>()\[\]]*)?""",
    re.IGNORECASE,
)
_SRCSET_SPLIT_RE = re.compile(r",\s+")

_META_KEYS = frozenset(
    {
        "og:image",
        "og:image:url",
        "og:image:secure_url",
        "twitter:image",
        "twitter:image:src",
    }
)
_IMG_ATTRS = ("srcset", "data-src", "data-original", "src")
_SKIPPED_SCHEMES = ("data:", "javascript:", "blob:", "about:")


@runtime_checkable
class ImageUrlExtractor(Protocol):
    """Collects candidate image URLs from a fetched page."""

    def extract(self, page_url: str, html: str, limit: int) -> list[str]: ...


def clamp_limit(limit: int | None) -> int:
    if limit is None or limit <= 0:
        return DEFAULT_LIMIT
    return min(limit, MAX_LIMIT)


class RegexImageUrlExtractor:
    """Regex scraper; satisfies :class:`ImageUrlExtractor`.

    Priority order: ``og:image``/``twitter:image`` meta tags, ``<img>``/``<source>``
    attributes (``srcset``, ``data-src``, ``data-original``, ``src``), markdown
    image syntax, then bare image-extension URLs in text.
    """

    def extract(self, page_url: str, html: str, limit: int) -> list[str]:
        limit = clamp_limit(limit)
        tags = [(name.lower(), _parse_attrs(attrs)) for name, attrs in _TAG_RE.findall(html)]
        base = page_url
        for name, attrs in tags:
            if name == "base" and attrs.get("href"):
                base = urljoin(page_url, html_lib.unescape(attrs["href"].strip()))
                break

        found: list[str] = []
        seen: set[str] = set()

        def add(raw: str) -> bool:
            url = _resolve(base, raw)
            if url and url not in seen and is_public_url(url):
                seen.add(url)
                found.append(url)
            return len(found) >= limit

        for candidate in self._candidates(tags, html):
            if add(candidate):
                break
        return found

    @staticmethod
    def _candidates(tags: list[tuple[str, dict[str, str]]], html: str) -> list[str]:
        meta: list[str] = []
        images: list[str] = []
        for name, attrs in tags:
            if name == "meta":
                key = (attrs.get("property") or attrs.get("name") or "").lower()
                if key in _META_KEYS and attrs.get("content"):
                    meta.append(attrs["content"])
            elif name in ("img", "source"):
                for attr in _IMG_ATTRS:
                    value = attrs.get(attr)
                    if not value:
                        continue
                    if attr == "srcset":
                        images.extend(_srcset_urls(value))
                    else:
                        images.append(value)

        markdown = _MARKDOWN_IMG_RE.findall(html)
        bare = _BARE_IMG_URL_RE.findall(html)
        return [*meta, *images, *markdown, *bare]


_default_extractor = RegexImageUrlExtractor()


def extract_image_urls_from_html(
    page_url: str,
    html: str,
    limit: int | None = DEFAULT_LIMIT,
    *,
    extractor: ImageUrlExtractor | None = None,
) -> list[str]:
    """Return up to *limit* distinct, public, absolute image URLs found in *html*."""
    return (extractor or _default_extractor).extract(page_url, html, clamp_limit(limit))


def _parse_attrs(raw: str) -> dict[str, str]:
    attrs: dict[str, str] = {}
    for match in _ATTR_RE.finditer(raw):
        key = match.group(1).lower()
        value = next((g for g in match.group(2, 3, 4) if g is not None), "")
        attrs.setdefault(key, value)
    return attrs


def _srcset_urls(srcset: str) -> list[str]:
    urls: list[str] = []
    for item in _SRCSET_SPLIT_RE.split(srcset.strip()):
        url = item.strip().split(" ", 1)[0].rstrip(",")
        if url:
            urls.append(url)
    return urls


def _resolve(base: str, raw: str) -> str:
    candidate = html_lib.unescape(raw).strip()
    if not candidate or candidate.lower().startswith(_SKIPPED_SCHEMES):
        return ""
    try:
        url, _ = urldefrag(urljoin(base, candidate))
    except ValueError:
        return ""
    return url


@dataclass
class FetchedPage:
    url: str
    html: str
    via_mirror: bool = False


async def fetch_page_html(
    fetcher: ResilientFetcher,
    url: str,
    settings: BridgeSettings,
) -> FetchedPage:
    """Fetch *url* as text: short budget and no retries, then the reader mirror.

    Raises:
        BlockedURLError: *url* is not public (never retried through the mirror).
        FetchError: Both the page and the mirror failed.
    """
    page_url = validate_public_url(url.strip())
    try:
        result = await fetcher.fetch(
            page_url,
            headers={"Accept": PAGE_ACCEPT},
            options=FetchOptions(
                timeout=settings.page_fetch_timeout,
                max_retries=0,
                max_bytes=PAGE_MAX_BYTES,
                decode_content=True,
                url_guard=validate_public_url,
            ),
        )
        return FetchedPage(url=result.url or page_url, html=result.text())
    except BlockedURLError:
        raise
    except FetchError as exc:
        if not settings.page_mirror_prefix:
            raise
        primary = exc

    mirror_url = settings.page_mirror_prefix + page_url
    logger.info("Page fetch failed (%s); trying mirror %s", primary, mirror_url)
    try:
        result = await fetcher.fetch(
            mirror_url,
            headers={"Accept": "text/plain, text/markdown;q=0.9, */*;q=0.5"},
            options=FetchOptions(
                timeout=settings.remote_timeout,
                max_retries=settings.remote_max_retries,
                retry_backoff=settings.remote_retry_backoff,
                max_bytes=PAGE_MAX_BYTES,
                decode_content=True,
                url_guard=validate_public_url,
            ),
        )
    except FetchError as exc:
        raise FetchError(f"Cannot fetch {page_url}: {primary}; mirror failed: {exc}") from exc
    return FetchedPage(url=page_url, html=result.text(), via_mirror=True)
