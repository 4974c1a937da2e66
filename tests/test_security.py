"""Tests for security module."""

import socket
from unittest.mock import patch

import pytest

from lipekpwa.security import UnsafeUrlError, check_public_target, validate_cache_target

BASE = "https://lipekfashion.com"


class TestCheckPublicTarget:
    """Tests for cross-origin target validation."""

    def test_allows_public_https_url(self) -> None:
        """Should allow hostnames resolving to public addresses."""
        with patch("lipekpwa.security.socket.gethostbyname", return_value="142.250.72.10"):
            check_public_target("https://fonts.googleapis.com/css2")

    def test_allows_explicit_default_port(self) -> None:
        """The scheme's own port may be spelled out."""
        with patch("lipekpwa.security.socket.gethostbyname", return_value="142.250.72.10"):
            check_public_target("https://fonts.googleapis.com:443/css2")

    def test_blocks_file_scheme(self) -> None:
        """Should block file:// URLs."""
        with pytest.raises(UnsafeUrlError, match="Scheme 'file' not allowed"):
            check_public_target("file:///etc/passwd")

    def test_blocks_data_scheme(self) -> None:
        """Should block data: URLs."""
        with pytest.raises(UnsafeUrlError, match="Scheme 'data' not allowed"):
            check_public_target("data:text/html,<script>alert(1)</script>")

    def test_blocks_localhost(self) -> None:
        """Should block localhost URLs."""
        with pytest.raises(UnsafeUrlError, match="Localhost access not allowed"):
            check_public_target("http://localhost/admin")

    def test_blocks_loopback_literal(self) -> None:
        """Should block 127.0.0.1 without a DNS lookup."""
        with pytest.raises(UnsafeUrlError, match="Non-public address"):
            check_public_target("http://127.0.0.1/admin")

    def test_blocks_ipv6_loopback(self) -> None:
        """Should block ::1 (IPv6 localhost)."""
        with pytest.raises(UnsafeUrlError, match="Non-public address"):
            check_public_target("http://[::1]/")

    def test_blocks_non_web_port(self) -> None:
        """Should block services on other ports (Redis here)."""
        with pytest.raises(UnsafeUrlError, match="Port 6379 not allowed"):
            check_public_target("http://example.com:6379/")

    def test_blocks_invalid_port(self) -> None:
        """Should reject a non-numeric port."""
        with pytest.raises(UnsafeUrlError, match="Invalid port"):
            check_public_target("http://example.com:http/")

    def test_blocks_private_ip(self) -> None:
        """Should block hostnames resolving to private ranges."""
        with patch("lipekpwa.security.socket.gethostbyname", return_value="10.1.2.3"):
            with pytest.raises(UnsafeUrlError, match="Non-public address not allowed: 10.1.2.3"):
                check_public_target("https://intranet.example.com/")

    def test_blocks_cloud_metadata(self) -> None:
        """Should block the link-local metadata address."""
        with patch("lipekpwa.security.socket.gethostbyname", return_value="169.254.169.254"):
            with pytest.raises(UnsafeUrlError, match="Non-public address"):
                check_public_target("http://metadata.example.com/latest/")

    def test_unresolvable_host(self) -> None:
        """Should reject hostnames that do not resolve."""
        with patch("lipekpwa.security.socket.gethostbyname", side_effect=socket.gaierror("no such host")):
            with pytest.raises(UnsafeUrlError, match="Cannot resolve hostname"):
                check_public_target("https://nope.invalid/")


class TestValidateCacheTarget:
    """Tests for validate_cache_target function."""

    def test_resolves_relative_path(self) -> None:
        """Paths are resolved against the site."""
        assert validate_cache_target("/gallery/", BASE) == "https://lipekfashion.com/gallery/"

    def test_same_origin_skips_address_checks(self) -> None:
        """Same-origin targets are always allowed, even on a local site."""
        assert validate_cache_target("/about/", "http://localhost:4000") == "http://localhost:4000/about/"

    def test_cross_origin_is_checked(self) -> None:
        """Cross-origin targets must be public."""
        with pytest.raises(UnsafeUrlError, match="Non-public address"):
            validate_cache_target("http://127.0.0.1/admin", BASE)

    def test_rejects_empty(self) -> None:
        """An empty target is rejected."""
        with pytest.raises(UnsafeUrlError, match="URL is required"):
            validate_cache_target("", BASE)

    def test_rejects_non_string(self) -> None:
        """Non-string targets are rejected."""
        with pytest.raises(UnsafeUrlError, match="URL is required"):
            validate_cache_target(42, BASE)  # type: ignore[arg-type]

    def test_rejects_control_characters(self) -> None:
        """Control characters are rejected."""
        with pytest.raises(UnsafeUrlError, match="control characters"):
            validate_cache_target("/gallery/\r\nX-Injected: 1", BASE)
