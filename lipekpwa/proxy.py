"""HTTP host for the offline controller.

The proxy sits between browsers and the origin site. Each incoming request
becomes a fetch event; the controller decides whether it is answered from the
network, from a cache partition, or with an offline fallback. Paths under
``/__sw/`` stand in for the worker events a browser would raise (messages,
sync, push, notification clicks).
"""

import json
import logging
import threading
from collections import deque
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, List, Optional

from .config import ProxyConfig
from .controller import (
    FetchEvent,
    MessageEvent,
    NotificationClickEvent,
    OfflineController,
    PeriodicSyncEvent,
    PushEvent,
    RespondWith,
    SyncEvent,
)
from .models import NAVIGATE, NO_CORS, Notification, Request, Response
from .network import HOP_BY_HOP_HEADERS, NetworkError

logger = logging.getLogger(__name__)

CONTROL_PREFIX = "/__sw/"

# Maximum request body accepted from clients (bookings and contact forms are small).
MAX_BODY_BYTES = 1024 * 1024

# Request headers forwarded to the origin.
FORWARDED_HEADERS = ("Accept", "Accept-Language", "Authorization", "Content-Type", "Cookie", "User-Agent")

# Rendered notifications kept for GET /__sw/notifications and clicks by tag.
NOTIFICATION_HISTORY = 50


class ProxyError(Exception):
    """Raised when the proxy server cannot start."""
    pass


class NotificationLog:
    """Thread-safe history of the notifications the worker displayed."""

    def __init__(self, maxlen: int = NOTIFICATION_HISTORY) -> None:
        self._items: deque[Notification] = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    def add(self, notification: Notification) -> None:
        with self._lock:
            self._items.append(notification)

    def find(self, tag: str) -> Optional[Notification]:
        with self._lock:
            for notification in reversed(self._items):
                if notification.tag == tag:
                    return notification
        return None

    def all(self) -> List[Notification]:
        with self._lock:
            return list(self._items)


def _request_mode(method: str, headers: Any) -> str:
    """Infer the fetch mode of a proxied request."""
    mode = headers.get("Sec-Fetch-Mode")
    if mode:
        return mode.lower()
    if method == "GET" and "text/html" in headers.get("Accept", ""):
        return NAVIGATE
    return NO_CORS


class ProxyHandler(BaseHTTPRequestHandler):
    """HTTP request handler turning requests into controller events."""

    # Class-level references set by factory
    controller: Optional[OfflineController] = None
    notification_log: Optional[NotificationLog] = None

    protocol_version = "HTTP/1.0"

    def log_message(self, format: str, *args: Any) -> None:
        """Override to use Python logging instead of stderr."""
        logger.debug("Proxy %s - %s", self.address_string(), format % args)

    def _read_body(self) -> Optional[bytes]:
        length = int(self.headers.get("Content-Length") or 0)
        if length <= 0:
            return None
        if length > MAX_BODY_BYTES:
            raise ValueError(f"Request body too large ({length} bytes)")
        return self.rfile.read(length)

    def _send_response(self, response: Response, include_body: bool = True) -> None:
        self.send_response(response.status, response.status_text or None)
        for name, value in response.headers.items():
            if name.lower() not in HOP_BY_HOP_HEADERS:
                self.send_header(name, value)
        self.send_header("Content-Length", str(len(response.body)))
        self.send_header("Connection", "close")
        self.end_headers()
        if include_body:
            self.wfile.write(response.body)

    def _send_json(self, code: int, data: Any) -> None:
        """Send a JSON response with the given status code."""
        body = json.dumps(data, indent=2).encode("utf-8")
        self.send_response(code)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Connection", "close")
        self.end_headers()
        self.wfile.write(body)

    def _send_error_json(self, code: int, message: str) -> None:
        """Send a JSON error response."""
        self._send_json(code, {"error": message})

    def _dispatch(self) -> None:
        try:
            if self.path.startswith(CONTROL_PREFIX):
                self._handle_control()
            else:
                self._handle_fetch()
        except ValueError as e:
            self._send_error_json(400, str(e))
        except Exception as e:
            logger.exception("Error handling %s %s: %s", self.command, self.path, e)
            self._send_error_json(500, "Internal server error")

    do_GET = _dispatch
    do_POST = _dispatch
    do_PUT = _dispatch
    do_PATCH = _dispatch
    do_DELETE = _dispatch
    do_HEAD = _dispatch

    def _handle_fetch(self) -> None:
        """Hand a proxied request to the controller as a fetch event."""
        assert self.controller is not None
        headers = {name: self.headers[name] for name in FORWARDED_HEADERS if self.headers.get(name)}
        request = Request(
            url=self.controller.config.site.base_url + self.path,
            method=self.command,
            mode=_request_mode(self.command, self.headers),
            headers=headers,
            body=self._read_body(),
        )

        action = self.controller.dispatch(FetchEvent(request))
        if isinstance(action, RespondWith):
            response = action.response
        else:
            # Worker not active yet: behave as a plain proxy.
            try:
                response = self.controller.fetcher.fetch(request)
            except NetworkError as e:
                logger.warning("Passthrough fetch failed for %s: %s", request.url, e)
                self._send_error_json(502, "Origin unreachable")
                return

        self._send_response(response, include_body=self.command != "HEAD")

    def _handle_control(self) -> None:
        """Route /__sw/ control endpoints."""
        route = self.path[len(CONTROL_PREFIX):].split("?", 1)[0]

        if self.command == "GET" and route == "notifications":
            assert self.notification_log is not None
            self._send_json(200, [n.to_dict() for n in self.notification_log.all()])
        elif self.command == "GET" and route == "clients":
            assert self.controller is not None
            self._send_json(200, [c.to_dict() for c in self.controller.clients.match_all()])
        elif self.command != "POST":
            self._send_error_json(405, "Method not allowed")
        elif route == "message":
            self._handle_message()
        elif route.startswith("sync/") and route[5:]:
            self._handle_sync(SyncEvent(route[5:]))
        elif route.startswith("periodic-sync/") and route[14:]:
            self._handle_sync(PeriodicSyncEvent(route[14:]))
        elif route == "push":
            self._handle_push()
        elif route == "notification-click":
            self._handle_notification_click()
        else:
            self._send_error_json(404, "Not found")

    def _read_json(self) -> Any:
        body = self._read_body()
        if body is None:
            raise ValueError("JSON body is required")
        try:
            return json.loads(body)
        except (ValueError, UnicodeDecodeError):
            raise ValueError("Request body is not valid JSON")

    def _handle_message(self) -> None:
        """Handle POST /__sw/message - deliver a control message."""
        assert self.controller is not None
        replies: List[dict] = []
        self.controller.dispatch(MessageEvent(self._read_json(), reply=replies.append))
        self._send_json(200, replies[0] if replies else {"ok": True})

    def _handle_sync(self, event: Any) -> None:
        """Handle POST /__sw/sync/<tag> and /__sw/periodic-sync/<tag>."""
        assert self.controller is not None
        result = self.controller.dispatch(event).result
        if result is None:
            self._send_error_json(404, f"Unknown sync tag '{event.tag}'")
            return
        self._send_json(200, result.to_dict())

    def _handle_push(self) -> None:
        """Handle POST /__sw/push - render a notification from a push body."""
        assert self.controller is not None and self.notification_log is not None
        notification = self.controller.dispatch(PushEvent(self._read_body())).result
        self.notification_log.add(notification)
        self._send_json(200, notification.to_dict())

    def _handle_notification_click(self) -> None:
        """Handle POST /__sw/notification-click - route a click on a notification."""
        assert self.controller is not None and self.notification_log is not None
        payload = self._read_json()
        if not isinstance(payload, dict):
            raise ValueError("Click payload must be a JSON object")

        notification = None
        tag = payload.get("tag")
        if tag:
            notification = self.notification_log.find(str(tag))
        if notification is None:
            notification = self.controller.notifications.render_push(json.dumps(payload.get("data") or {}))

        action = str(payload.get("action") or "")
        client = self.controller.dispatch(NotificationClickEvent(notification, action)).result
        self._send_json(200, client.to_dict() if client is not None else {"closed": True})


def _create_handler_class(
    controller: OfflineController,
    notification_log: NotificationLog,
) -> type:
    """Create a handler class with the controller bound."""

    class BoundProxyHandler(ProxyHandler):
        pass

    BoundProxyHandler.controller = controller
    BoundProxyHandler.notification_log = notification_log
    return BoundProxyHandler


class OfflineProxyServer:
    """Threaded HTTP server hosting the offline controller."""

    def __init__(self, config: ProxyConfig, controller: OfflineController) -> None:
        """Initialize the proxy server.

        Args:
            config: Proxy configuration (bind host and port).
            controller: Controller that handles every proxied request.
        """
        self.config = config
        self.controller = controller
        self.notification_log = NotificationLog()
        self._server: Optional[ThreadingHTTPServer] = None
        self._thread: Optional[threading.Thread] = None
        self._shutdown_event = threading.Event()

    def start(self) -> None:
        """Start the proxy server in a background thread.

        Raises:
            ProxyError: If the server fails to start.
        """
        if self._thread is not None and self._thread.is_alive():
            logger.warning("Proxy server is already running")
            return

        try:
            handler_class = _create_handler_class(self.controller, self.notification_log)
            self._server = ThreadingHTTPServer((self.config.host, self.config.port), handler_class)
            self._server.daemon_threads = True
            self._server.timeout = 1.0  # Allow periodic shutdown checks

            self._shutdown_event.clear()
            self._thread = threading.Thread(
                target=self._serve_forever,
                name="offline-proxy",
                daemon=True,
            )
            self._thread.start()

            logger.info("Offline proxy listening on %s:%d", self.config.host, self.config.port)

        except OSError as e:
            if e.errno == 98 or e.errno == 48:  # EADDRINUSE (Linux=98, macOS=48)
                raise ProxyError(
                    f"Port {self.config.port} is already in use. "
                    f"Another process may be using this port, or lipekpwa is already running."
                )
            elif e.errno == 13:  # EACCES - Permission denied
                raise ProxyError(
                    f"Permission denied for port {self.config.port}. "
                    f"Ports below 1024 require root privileges."
                )
            else:
                raise ProxyError(f"Failed to start proxy on port {self.config.port}: {e}")

    def _serve_forever(self) -> None:
        """Server loop that checks for shutdown."""
        while not self._shutdown_event.is_set():
            if self._server:
                self._server.handle_request()

    def stop(self) -> None:
        """Stop the proxy server gracefully."""
        if self._thread is None:
            return

        logger.info("Stopping offline proxy...")
        self._shutdown_event.set()

        if self._server:
            self._server.server_close()

        if self._thread.is_alive():
            self._thread.join(timeout=5.0)

        self._server = None
        self._thread = None
        logger.info("Offline proxy stopped")

    @property
    def is_running(self) -> bool:
        """Check if the server is running."""
        return self._thread is not None and self._thread.is_alive()

    @property
    def port(self) -> int:
        if self._server is not None:
            return self._server.server_address[1]
        return self.config.port
