"""Tests for the offline proxy server."""

import json
import socket
import time
import urllib.error
import urllib.request

import pytest

from conftest import FakeFetcher, url
from lipekpwa.cache import MemoryCacheStorage
from lipekpwa.config import Config, ProxyConfig
from lipekpwa.controller import OfflineController
from lipekpwa.models import NAVIGATE, NO_CORS, Request, Response
from lipekpwa.proxy import OfflineProxyServer, ProxyError, _request_mode


def get_free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("", 0))
        return s.getsockname()[1]


def start_server(controller: OfflineController) -> OfflineProxyServer:
    server = OfflineProxyServer(ProxyConfig(port=get_free_port()), controller)
    server.start()
    # Give server time to start
    time.sleep(0.1)
    return server


class TestRequestMode:
    """Tests for _request_mode function."""

    def test_sec_fetch_mode_wins(self) -> None:
        """The browser's own mode header is used when present."""
        assert _request_mode("GET", {"Sec-Fetch-Mode": "navigate", "Accept": "image/png"}) == NAVIGATE
        assert _request_mode("GET", {"Sec-Fetch-Mode": "cors", "Accept": "text/html"}) == "cors"

    def test_html_get_is_navigation(self) -> None:
        """Without the header, an HTML GET is a page load."""
        assert _request_mode("GET", {"Accept": "text/html,application/xhtml+xml"}) == NAVIGATE

    def test_html_post_is_not_navigation(self) -> None:
        """Form posts are not treated as navigations."""
        assert _request_mode("POST", {"Accept": "text/html"}) == NO_CORS

    def test_default_is_no_cors(self) -> None:
        """Anything else is a sub-resource."""
        assert _request_mode("GET", {"Accept": "*/*"}) == NO_CORS


class TestOfflineProxyServer:
    """Tests for OfflineProxyServer class."""

    def test_starts_and_stops(self, controller: OfflineController) -> None:
        """Server starts and stops without errors."""
        server = OfflineProxyServer(ProxyConfig(port=get_free_port()), controller)

        assert not server.is_running
        server.start()
        assert server.is_running

        server.stop()
        assert not server.is_running

    def test_start_twice_is_safe(self, controller: OfflineController) -> None:
        """Calling start() twice doesn't cause errors."""
        server = OfflineProxyServer(ProxyConfig(port=get_free_port()), controller)
        try:
            server.start()
            server.start()  # Should not raise
            assert server.is_running
        finally:
            server.stop()

    def test_stop_without_start_is_safe(self, controller: OfflineController) -> None:
        """Calling stop() without start() doesn't cause errors."""
        OfflineProxyServer(ProxyConfig(port=get_free_port()), controller).stop()

    def test_raises_on_port_conflict(self, controller: OfflineController) -> None:
        """Raises ProxyError when port is already in use."""
        config = ProxyConfig(port=get_free_port())
        server1 = OfflineProxyServer(config, controller)
        server2 = OfflineProxyServer(config, controller)

        try:
            server1.start()
            with pytest.raises(ProxyError):
                server2.start()
        finally:
            server1.stop()
            server2.stop()


class ProxyTestBase:
    """Request helpers shared by the endpoint tests."""

    def _request(
        self,
        server: OfflineProxyServer,
        path: str,
        method: str = "GET",
        body: bytes | None = None,
        headers: dict | None = None,
    ) -> tuple[int, dict, bytes]:
        """Make a request and return (status_code, headers, body)."""
        req = urllib.request.Request(
            f"http://127.0.0.1:{server.port}{path}",
            data=body,
            method=method,
            headers=headers or {},
        )
        try:
            with urllib.request.urlopen(req, timeout=5) as response:
                return response.status, dict(response.headers), response.read()
        except urllib.error.HTTPError as e:
            return e.code, dict(e.headers), e.read()

    def _post_json(self, server: OfflineProxyServer, path: str, data: object) -> tuple[int, object]:
        status, _, body = self._request(
            server, path, "POST", json.dumps(data).encode(), {"Content-Type": "application/json"}
        )
        return status, json.loads(body)


class TestProxiedFetches(ProxyTestBase):
    """Integration tests for proxied requests."""

    @pytest.fixture
    def running_server(self, controller: OfflineController) -> OfflineProxyServer:
        """Start a server and yield it, stopping after test."""
        server = start_server(controller)
        yield server
        server.stop()

    def test_page_load_online(
        self, running_server: OfflineProxyServer, fetcher: FakeFetcher, controller: OfflineController
    ) -> None:
        """Online page loads return the origin response and cache it."""
        fetcher.add("/gallery/", "<h1>Gallery</h1>")

        status, headers, body = self._request(running_server, "/gallery/", headers={"Accept": "text/html"})

        assert status == 200
        assert body == b"<h1>Gallery</h1>"
        assert headers["Content-Type"] == "text/html"
        assert controller.caches.static().match(Request(url=url("/gallery/"))) is not None

    def test_page_load_offline_uncached(self, running_server: OfflineProxyServer, fetcher: FakeFetcher) -> None:
        """Offline page loads fall back to the offline page."""
        fetcher.offline = True

        status, _, body = self._request(running_server, "/alterations/", headers={"Sec-Fetch-Mode": "navigate"})

        assert status == 200
        assert body == b"asset /offline.html"

    def test_api_offline(self, running_server: OfflineProxyServer, fetcher: FakeFetcher) -> None:
        """Offline API reads with no cache get the offline JSON."""
        fetcher.offline = True

        status, headers, body = self._request(running_server, "/api/products")

        assert status == 503
        assert headers["Content-Type"] == "application/json"
        assert json.loads(body) == {"error": "Offline"}

    def test_api_post_forwards_body(self, running_server: OfflineProxyServer, fetcher: FakeFetcher) -> None:
        """Writes reach the origin with their body."""
        fetcher.add_json("/api/contact", {"ok": True}, status=201, method="POST")

        status, _, _ = self._request(
            running_server, "/api/contact", "POST", b'{"msg": "hi"}', {"Content-Type": "application/json"}
        )

        assert status == 201
        posted = fetcher.requests_to("/api/contact", method="POST")[-1]
        assert posted.body == b'{"msg": "hi"}'
        assert posted.headers["Content-Type"] == "application/json"

    def test_cookie_responses_are_not_shared(self, running_server: OfflineProxyServer, fetcher: FakeFetcher) -> None:
        """One visitor's signed-in response is never replayed to another offline."""
        fetcher.handle(
            "/api/orders",
            lambda request: Response(status=200, body=f"orders of {request.headers['Cookie']}".encode()),
            method="GET",
        )

        status, _, body = self._request(running_server, "/api/orders", headers={"Cookie": "session=alice"})
        assert status == 200
        assert body == b"orders of session=alice"

        fetcher.offline = True
        status, _, body = self._request(running_server, "/api/orders", headers={"Cookie": "session=bob"})

        assert status == 503
        assert json.loads(body) == {"error": "Offline"}

    def test_head_has_no_body(self, running_server: OfflineProxyServer) -> None:
        """HEAD bypasses the cache and returns headers only."""
        status, _, body = self._request(running_server, "/assets/css/main.css", method="HEAD")

        assert status == 404
        assert body == b""


class TestPassthrough(ProxyTestBase):
    """Requests before activation go straight to the origin."""

    def test_inactive_worker_proxies_directly(self, config: Config, fetcher: FakeFetcher) -> None:
        """The origin response is relayed as-is."""
        controller = OfflineController(config, MemoryCacheStorage(), fetcher)
        fetcher.add("/", "home")
        server = start_server(controller)
        try:
            status, _, body = self._request(server, "/")
        finally:
            server.stop()

        assert (status, body) == (200, b"home")
        assert controller.caches.storage.keys() == []

    def test_inactive_worker_origin_down(self, config: Config, fetcher: FakeFetcher) -> None:
        """An unreachable origin yields 502."""
        controller = OfflineController(config, MemoryCacheStorage(), fetcher)
        fetcher.offline = True
        server = start_server(controller)
        try:
            status, _, body = self._request(server, "/")
        finally:
            server.stop()

        assert status == 502
        assert json.loads(body) == {"error": "Origin unreachable"}


class TestControlEndpoints(ProxyTestBase):
    """Integration tests for /__sw/ endpoints."""

    @pytest.fixture
    def running_server(self, controller: OfflineController) -> OfflineProxyServer:
        """Start a server and yield it, stopping after test."""
        server = start_server(controller)
        yield server
        server.stop()

    def test_get_version_message(self, running_server: OfflineProxyServer) -> None:
        """GET_VERSION replies with the version info."""
        status, body = self._post_json(running_server, "/__sw/message", {"type": "GET_VERSION"})

        assert status == 200
        assert body["cacheName"] == "lipek-fashion-v1"

    def test_other_message_acknowledged(self, running_server: OfflineProxyServer) -> None:
        """Messages without a reply are acknowledged."""
        assert self._post_json(running_server, "/__sw/message", {"type": "SKIP_WAITING"}) == (200, {"ok": True})

    def test_invalid_json_is_400(self, running_server: OfflineProxyServer) -> None:
        """Malformed control bodies are rejected."""
        status, _, body = self._request(running_server, "/__sw/message", "POST", b"{not json")

        assert status == 400
        assert "not valid JSON" in json.loads(body)["error"]

    def test_sync_endpoint(self, running_server: OfflineProxyServer, fetcher: FakeFetcher) -> None:
        """Sync runs the replay and returns the report."""
        fetcher.add_json("/api/bookings/offline", [{"name": "A"}, {"name": "B"}])
        fetcher.add_json("/api/bookings", {"ok": True}, status=201, method="POST")

        status, _, body = self._request(running_server, "/__sw/sync/sync-bookings", "POST")

        assert status == 200
        assert json.loads(body)["succeeded"] == 2

    def test_sync_unknown_tag_is_404(self, running_server: OfflineProxyServer) -> None:
        """Unknown tags are reported."""
        status, _, _ = self._request(running_server, "/__sw/sync/sync-nothing", "POST")
        assert status == 404

    def test_periodic_sync_endpoint(self, running_server: OfflineProxyServer) -> None:
        """Periodic sync returns the refresh report."""
        status, _, body = self._request(running_server, "/__sw/periodic-sync/update-content", "POST")

        assert status == 200
        assert json.loads(body)["failed"] == 0

    def test_push_then_click(self, running_server: OfflineProxyServer) -> None:
        """A pushed notification can be clicked by tag."""
        payload = json.dumps({"body": "New arrivals", "tag": "arrivals", "data": {"url": "/gallery/"}}).encode()
        status, _, body = self._request(running_server, "/__sw/push", "POST", payload)

        assert status == 200
        assert json.loads(body)["actions"] == [
            {"action": "open", "title": "View"},
            {"action": "dismiss", "title": "Dismiss"},
        ]

        _, _, shown = self._request(running_server, "/__sw/notifications")
        assert [n["tag"] for n in json.loads(shown)] == ["arrivals"]

        status, client = self._post_json(
            running_server, "/__sw/notification-click", {"tag": "arrivals", "action": "open"}
        )
        assert status == 200
        assert client["url"] == "https://lipekfashion.com/gallery/"

        _, _, clients = self._request(running_server, "/__sw/clients")
        assert [c["url"] for c in json.loads(clients)] == ["https://lipekfashion.com/gallery/"]

    def test_click_with_data_only(self, running_server: OfflineProxyServer) -> None:
        """A click can carry the notification data directly."""
        status, client = self._post_json(
            running_server, "/__sw/notification-click", {"action": "open", "data": {"url": "/book-fitting/"}}
        )

        assert status == 200
        assert client["url"] == "https://lipekfashion.com/book-fitting/"

    def test_dismiss_click(self, running_server: OfflineProxyServer) -> None:
        """Dismiss closes without opening a window."""
        assert self._post_json(running_server, "/__sw/notification-click", {"action": "dismiss"}) == (
            200,
            {"closed": True},
        )

    def test_wrong_method_is_405(self, running_server: OfflineProxyServer) -> None:
        """Control actions are POST-only."""
        status, _, _ = self._request(running_server, "/__sw/push")
        assert status == 405

    def test_unknown_control_path_is_404(self, running_server: OfflineProxyServer) -> None:
        """Unknown control paths are 404."""
        status, _, _ = self._request(running_server, "/__sw/nope", "POST")
        assert status == 404
