"""Validation of URLs that foreground pages ask the worker to fetch."""

import ipaddress
import logging
import socket
from urllib.parse import urlparse

from .models import origin_of, resolve_url

logger = logging.getLogger(__name__)

DEFAULT_PORTS = {"http": 80, "https": 443}


class UnsafeUrlError(Exception):
    """Raised when a URL must not be fetched on a page's behalf."""

    pass


def _resolve_address(hostname: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address:
    try:
        return ipaddress.ip_address(hostname)
    except ValueError:
        pass
    try:
        return ipaddress.ip_address(socket.gethostbyname(hostname))
    except socket.gaierror as e:
        raise UnsafeUrlError(f"Cannot resolve hostname '{hostname}': {e}")


def check_public_target(url: str) -> None:
    """Check that a cross-origin cache target is a public web resource.

    The proxy host fetches these URLs itself, so a page must not be able to
    point it at loopback, private or link-local addresses, or at services
    on non-web ports.

    Raises:
        UnsafeUrlError: If the URL may not be fetched.
    """
    parsed = urlparse(url)
    if parsed.scheme not in DEFAULT_PORTS:
        raise UnsafeUrlError(f"Scheme '{parsed.scheme}' not allowed. Only http:// and https:// are permitted.")

    try:
        port = parsed.port
    except ValueError as e:
        raise UnsafeUrlError(f"Invalid port in URL: {e}")
    if port is not None and port != DEFAULT_PORTS[parsed.scheme]:
        raise UnsafeUrlError(f"Port {port} not allowed for cross-origin targets")

    hostname = (parsed.hostname or "").lower()
    if not hostname:
        raise UnsafeUrlError("No hostname in URL")
    if hostname == "localhost" or hostname.endswith(".localhost"):
        raise UnsafeUrlError(f"Localhost access not allowed: {hostname}")

    address = _resolve_address(hostname)
    if not address.is_global or address.is_multicast:
        raise UnsafeUrlError(f"Non-public address not allowed: {address} (from {hostname})")


def validate_cache_target(url: str, base_url: str) -> str:
    """Resolve a URL a page asked us to cache and check it may be fetched.

    Same-origin targets are always allowed. Cross-origin targets must pass
    :func:`check_public_target`.

    Returns:
        The absolute URL to fetch.

    Raises:
        UnsafeUrlError: If the URL is empty, malformed or unsafe.
    """
    if not url or not isinstance(url, str):
        raise UnsafeUrlError("URL is required")

    if any(ord(c) < 32 for c in url):
        logger.warning("Control characters in cache target: %r", url)
        raise UnsafeUrlError("URL contains control characters")

    absolute = resolve_url(url, base_url)
    if origin_of(absolute) == origin_of(base_url):
        return absolute

    check_public_target(absolute)
    return absolute
