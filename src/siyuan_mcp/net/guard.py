"""SSRF guard — refuse URLs that point at private or loopback infrastructure.

Pure logic, no I/O.  Host names are checked lexically; IP literals, including
the shorthand numeric forms, are parsed with :mod:`ipaddress` so that every
private, loopback, link-local, unspecified or reserved range is covered, not
only the well-known prefixes.
"""

from __future__ import annotations

import ipaddress
import socket
from urllib.parse import urlsplit

from siyuan_mcp.net.errors import BlockedURLError

_ALLOWED_SCHEMES = frozenset({"http", "https"})
_BLOCKED_HOSTS = frozenset({"localhost", "0.0.0.0", "::", "::1"})
_BLOCKED_SUFFIXES = (".localhost", ".local", ".internal")


def validate_public_url(url: str) -> str:
    """Return *url* stripped if it is safe to fetch, else raise :class:`BlockedURLError`."""
    candidate = (url or "").strip()
    try:
        parts = urlsplit(candidate)
        host = parts.hostname
    except ValueError as exc:
        raise BlockedURLError(candidate, f"unparseable URL ({exc})") from exc

    if parts.scheme.lower() not in _ALLOWED_SCHEMES:
        raise BlockedURLError(candidate, "only http(s) URLs are allowed")
    if not host:
        raise BlockedURLError(candidate, "missing host")

    reason = blocked_host_reason(host)
    if reason:
        raise BlockedURLError(candidate, reason)
    return candidate


def is_public_url(url: str) -> bool:
    """Boolean form of :func:`validate_public_url`."""
    try:
        validate_public_url(url)
    except BlockedURLError:
        return False
    return True


def blocked_host_reason(host: str) -> str:
    """Return why *host* is blocked, or an empty string when it is allowed."""
    name = host.strip().strip("[]").rstrip(".").lower()
    if not name:
        return "missing host"
    if name in _BLOCKED_HOSTS:
        return f"host {name} is loopback/unspecified"
    if name.endswith(_BLOCKED_SUFFIXES):
        return f"host {name} is a local name"

    ip = _parse_ip(name)
    if ip is None:
        return ""

    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    if ip.is_loopback:
        return f"address {ip} is loopback"
    if ip.is_link_local:
        return f"address {ip} is link-local"
    if ip.is_unspecified:
        return f"address {ip} is unspecified"
    if ip.is_private:
        return f"address {ip} is private"
    if ip.is_reserved or ip.is_multicast:
        return f"address {ip} is reserved"
    return ""


def _parse_ip(name: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address | None:
    """Parse *name* as an IP literal, including the shorthand forms resolvers accept.

    ``127.1``, ``2130706433``, ``0x7f.0.0.1`` and ``0177.0.0.1`` are all
    handed to ``inet_aton`` by the system resolver, so they are read the same
    way here.
    """
    try:
        return ipaddress.ip_address(name)
    except ValueError:
        pass
    try:
        packed = socket.inet_aton(name)
    except (OSError, ValueError):
        return None
    return ipaddress.IPv4Address(packed)
