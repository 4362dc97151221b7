"""Binary content validation for downloaded images.

Pure logic, no I/O.  :func:`validate_image_payload` takes the raw response
(headers + still-encoded body) and either returns a :class:`ValidatedImage`
or raises :class:`ContentValidationError` with a diagnostic that includes a
printable preview of the body, which makes mislabelled error pages obvious.
"""

from __future__ import annotations

import re
import zlib
from collections.abc import Mapping

import brotli
import httpx

from siyuan_mcp.media.errors import ContentValidationError
from siyuan_mcp.media.models import ValidatedImage

_EXT_BY_MIME = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/bmp": "bmp",
    "image/avif": "avif",
    "image/svg+xml": "svg",
    "image/x-icon": "ico",
    "image/vnd.microsoft.icon": "ico",
    "image/tiff": "tiff",
    "image/heic": "heic",
}
_MIME_BY_EXT = {ext: mime for mime, ext in _EXT_BY_MIME.items()} | {"jpeg": "image/jpeg"}

# Types the sniffer recognises; declaring one of them without matching bytes is a lie.
SNIFFABLE_TYPES = frozenset(
    {
        "image/png",
        "image/jpeg",
        "image/gif",
        "image/webp",
        "image/bmp",
        "image/avif",
        "image/svg+xml",
    }
)

_HTML_MARKERS = ("<!doctype html", "<html", "<head", "<body")
_AVIF_BRANDS = (b"avif", b"avis")
_BMP_DIB_SIZES = frozenset({12, 40, 52, 56, 64, 108, 124})
_WHITESPACE_RE = re.compile(r"\s+")

CONTENT_LENGTH_HEADROOM = 64 * 1024


def sniff_image_mime(data: bytes) -> str | None:
    """Return the image MIME type implied by the leading bytes, if any."""
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data.startswith((b"GIF87a", b"GIF89a")):
        return "image/gif"
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if (
        data.startswith(b"BM")
        and len(data) >= 18
        and int.from_bytes(data[14:18], "little") in _BMP_DIB_SIZES
    ):
        return "image/bmp"
    if len(data) >= 12 and data[4:8] == b"ftyp" and data[8:12] in _AVIF_BRANDS:
        return "image/avif"

    head = data[:1024].decode("utf-8", errors="ignore").lstrip("\ufeff \t\r\n").lower()
    if head.startswith("<svg") or (
        head.startswith(("<?xml", "<!doctype svg")) and "<svg" in head
    ):
        return "image/svg+xml"
    return None


def extension_for_mime(mime: str) -> str:
    """Map an image MIME type to a file extension (``bin`` when unknown)."""
    base = normalize_content_type(mime)
    if base in _EXT_BY_MIME:
        return _EXT_BY_MIME[base]
    if base.startswith("image/"):
        subtype = re.sub(r"[^a-z0-9]", "", base.split("/", 1)[1].split("+", 1)[0])
        return subtype or "bin"
    return "bin"


def mime_for_extension(ext: str) -> str | None:
    return _MIME_BY_EXT.get(ext.lower().lstrip("."))


def normalize_content_type(value: str | None) -> str:
    return (value or "").split(";", 1)[0].strip().lower()


def printable_preview(data: bytes, limit: int = 160) -> str:
    """Short, single-line, printable rendition of *data* for error messages."""
    text = data[: limit * 2].decode("utf-8", errors="replace")
    text = "".join(ch if ch.isprintable() or ch.isspace() else "." for ch in text)
    text = _WHITESPACE_RE.sub(" ", text).strip()
    if len(text) > limit:
        return text[:limit] + "…"
    return text


def looks_like_html(data: bytes) -> bool:
    head = data[:512].decode("utf-8", errors="ignore").lstrip("\ufeff \t\r\n").lower()
    return any(marker in head for marker in _HTML_MARKERS)


def decompress_body(body: bytes, content_encoding: str | None, max_bytes: int) -> bytes:
    """Undo ``Content-Encoding`` (gzip/deflate/br), never producing more than *max_bytes*.

    Encodings listed as ``a, b`` were applied in that order, so they are
    undone in reverse.  Unknown encodings and corrupt streams are hard errors.
    """
    codings = [c.strip().lower() for c in (content_encoding or "").split(",") if c.strip()]
    data = body
    for coding in reversed(codings):
        if coding == "identity":
            continue
        if coding in ("gzip", "x-gzip"):
            data = _inflate(data, 16 + zlib.MAX_WBITS, max_bytes, coding)
        elif coding == "deflate":
            wbits = zlib.MAX_WBITS if _has_zlib_header(data) else -zlib.MAX_WBITS
            data = _inflate(data, wbits, max_bytes, coding)
        elif coding == "br":
            try:
                data = brotli.decompress(data)
            except brotli.error as exc:
                raise ContentValidationError(f"Failed to decompress br body: {exc}") from exc
            if len(data) > max_bytes:
                raise ContentValidationError(
                    f"Decompressed image exceeds {max_bytes} bytes (br)"
                )
        else:
            raise ContentValidationError(f"Unsupported Content-Encoding: {coding}")
    return data


def _has_zlib_header(data: bytes) -> bool:
    # RFC 1950: CM=8 in the low nibble and the 16-bit header divisible by 31.
    return len(data) >= 2 and data[0] & 0x0F == 8 and ((data[0] << 8) | data[1]) % 31 == 0


def _inflate(data: bytes, wbits: int, max_bytes: int, coding: str) -> bytes:
    decompressor = zlib.decompressobj(wbits)
    try:
        out = decompressor.decompress(data, max_bytes + 1)
    except zlib.error as exc:
        raise ContentValidationError(f"Failed to decompress {coding} body: {exc}") from exc
    if len(out) > max_bytes or decompressor.unconsumed_tail:
        raise ContentValidationError(f"Decompressed image exceeds {max_bytes} bytes ({coding})")
    if not decompressor.eof:
        raise ContentValidationError(f"Failed to decompress {coding} body: truncated stream")
    return out


def validate_image_payload(
    headers: Mapping[str, str] | httpx.Headers,
    body: bytes,
    *,
    max_bytes: int,
    check_content_length: bool = True,
) -> ValidatedImage:
    """Validate a downloaded image.

    Steps: size cap on the raw body, ``Content-Length`` integrity, decompression,
    size cap on the decoded body, magic-byte sniffing and Content-Type cross-check.

    Raises:
        ContentValidationError: When any step fails.
    """
    hdrs = httpx.Headers(headers)

    if len(body) > max_bytes:
        raise ContentValidationError(f"Image exceeds {max_bytes} bytes ({len(body)} received)")

    declared_length = hdrs.get("content-length", "").strip()
    if check_content_length and declared_length.isdigit():
        expected = int(declared_length)
        if 0 < expected <= max_bytes + CONTENT_LENGTH_HEADROOM and expected != len(body):
            raise ContentValidationError(
                f"Truncated transfer: Content-Length {expected} but received {len(body)} bytes"
            )

    data = decompress_body(body, hdrs.get("content-encoding"), max_bytes)
    if not data:
        raise ContentValidationError("Empty response body")

    declared = normalize_content_type(hdrs.get("content-type"))
    sniffed = sniff_image_mime(data)

    if sniffed is not None:
        return ValidatedImage(
            body=data,
            content_type=sniffed,
            detected_mime=sniffed,
            detected_ext=extension_for_mime(sniffed),
        )

    preview = printable_preview(data)
    if declared.startswith("image/"):
        if looks_like_html(data):
            raise ContentValidationError(
                f"Server returned an HTML page while declaring {declared}: {preview}"
            )
        if declared in SNIFFABLE_TYPES:
            raise ContentValidationError(
                f"Body does not match declared {declared}: {preview}"
            )
        return ValidatedImage(
            body=data,
            content_type=declared,
            detected_mime=declared,
            detected_ext=extension_for_mime(declared),
        )

    shown = declared or "missing Content-Type"
    raise ContentValidationError(f"Not an image ({shown}): {preview}")
