"""Push notification rendering and notification-click routing."""

import json
import logging
import math
import threading
import time
from datetime import datetime
from itertools import count
from typing import Any

from .config import Config
from .models import Notification, NotificationAction, WindowClient, resolve_url

logger = logging.getLogger(__name__)

OPEN_ACTION = NotificationAction(action="open", title="View")
DISMISS_ACTION = NotificationAction(action="dismiss", title="Dismiss")


class ClientRegistry:
    """Capability over the windows the worker controls."""

    def match_all(self) -> list[WindowClient]:
        raise NotImplementedError

    def focus(self, client: WindowClient) -> WindowClient:
        raise NotImplementedError

    def open_window(self, url: str) -> WindowClient:
        raise NotImplementedError


class MemoryClientRegistry(ClientRegistry):
    """Window clients tracked in memory (tests and the proxy host)."""

    def __init__(self, clients: list[WindowClient] | None = None) -> None:
        self._clients: list[WindowClient] = list(clients or [])
        self._ids = count(len(self._clients) + 1)
        self._lock = threading.Lock()

    def match_all(self) -> list[WindowClient]:
        with self._lock:
            return list(self._clients)

    def focus(self, client: WindowClient) -> WindowClient:
        with self._lock:
            for other in self._clients:
                other.focused = other is client
        return client

    def open_window(self, url: str) -> WindowClient:
        with self._lock:
            client = WindowClient(id=f"window-{next(self._ids)}", url=url)
            self._clients.append(client)
        return self.focus(client)


def _timestamp_ms(value: Any) -> int:
    """Convert a payload timestamp (ISO string or epoch ms) to epoch milliseconds."""
    if isinstance(value, bool):
        return int(time.time() * 1000)
    if isinstance(value, (int, float)):
        if math.isfinite(value):
            return int(value)
        logger.debug("Ignoring non-finite notification timestamp %r", value)
        return int(time.time() * 1000)
    if isinstance(value, str):
        try:
            return int(datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp() * 1000)
        except ValueError:
            logger.debug("Ignoring unparseable notification timestamp %r", value)
    return int(time.time() * 1000)


class NotificationManager:
    """Builds notifications from push payloads and routes clicks on them."""

    def __init__(self, config: Config, clients: ClientRegistry) -> None:
        self._config = config
        self._clients = clients

    def _defaults(self) -> dict[str, Any]:
        defaults = self._config.notifications
        return {
            "title": defaults.title,
            "body": defaults.body,
            "icon": defaults.icon,
            "badge": defaults.badge,
            "timestamp": datetime.now().astimezone().isoformat(),
        }

    def render_push(self, payload: bytes | str | None) -> Notification:
        """Merge a push payload over the defaults and build the notification.

        A payload that is not a JSON object is logged and ignored; the
        defaults are used instead.
        """
        data = self._defaults()

        if payload:
            try:
                pushed = json.loads(payload)
            except (ValueError, UnicodeDecodeError) as e:
                logger.error("Error parsing push data: %s", e)
            else:
                if isinstance(pushed, dict):
                    data.update(pushed)
                else:
                    logger.error("Error parsing push data: expected a JSON object, got %s", type(pushed).__name__)

        # Accept the target URL either at the top level or in the data bag.
        extra = data.get("data")
        if isinstance(extra, dict) and "url" in extra and "url" not in data:
            data["url"] = extra["url"]

        return Notification(
            title=str(data.get("title") or self._config.notifications.title),
            body=str(data.get("body", "")),
            icon=str(data.get("icon", "")),
            badge=str(data.get("badge", "")),
            tag=str(data.get("tag") or self._config.notifications.tag),
            data=data,
            vibrate=self._config.notifications.vibrate,
            actions=(OPEN_ACTION, DISMISS_ACTION),
            renotify=True,
            require_interaction=True,
            timestamp=_timestamp_ms(data.get("timestamp")),
        )

    def target_url(self, notification: Notification) -> str:
        """Absolute URL a click on the notification should lead to."""
        url = notification.data.get("url") or "/"
        return resolve_url(str(url), self._config.site.base_url)

    def handle_click(self, notification: Notification, action: str = "") -> WindowClient | None:
        """Route a click on a notification.

        The dismiss action only closes the notification. Any other action
        focuses a window already showing the target URL, or opens one.

        Returns:
            The focused or opened client, or None when dismissed.
        """
        if action == DISMISS_ACTION.action:
            logger.debug("Notification %s dismissed", notification.tag)
            return None

        url = self.target_url(notification)
        for client in self._clients.match_all():
            if client.url == url:
                logger.info("Focusing existing window at %s", url)
                return self._clients.focus(client)

        logger.info("Opening new window at %s", url)
        return self._clients.open_window(url)
