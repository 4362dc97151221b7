"""multipart/form-data body builder for the asset upload endpoint.

The exact boundary and part-header layout is part of the wire contract with
``/api/asset/upload``, so it is built here byte by byte instead of through a
form library.
"""

from __future__ import annotations

import secrets
from collections.abc import Sequence
from typing import NamedTuple

CRLF = b"\r\n"


class FilePart(NamedTuple):
    """One file part of a multipart body."""

    field: str
    filename: str
    content_type: str
    data: bytes


def make_boundary() -> str:
    return f"----SiyuanMcpBoundary{secrets.token_hex(12)}"


def build_multipart(
    fields: Sequence[tuple[str, str]] = (),
    files: Sequence[FilePart] = (),
    *,
    boundary: str | None = None,
) -> tuple[bytes, str]:
    """Return ``(body, content_type_header)`` for the given fields and files."""
    boundary = boundary or make_boundary()
    delimiter = f"--{boundary}".encode("ascii")
    out = bytearray()

    for name, value in fields:
        out += delimiter + CRLF
        out += f'Content-Disposition: form-data; name="{_quote(name)}"'.encode() + CRLF
        out += CRLF
        out += value.encode("utf-8") + CRLF

    for part in files:
        out += delimiter + CRLF
        out += (
            f'Content-Disposition: form-data; name="{_quote(part.field)}"; '
            f'filename="{_quote(part.filename)}"'
        ).encode() + CRLF
        out += f"Content-Type: {part.content_type or 'application/octet-stream'}".encode() + CRLF
        out += CRLF
        out += part.data + CRLF

    out += delimiter + b"--" + CRLF
    return bytes(out), f"multipart/form-data; boundary={boundary}"


def _quote(value: str) -> str:
    return value.replace("\r", "%0D").replace("\n", "%0A").replace('"', "%22")
