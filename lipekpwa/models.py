"""Data models shared by the cache, strategies, sync and notification layers."""

import json
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urljoin, urlparse

NAVIGATE = "navigate"
SAME_ORIGIN = "same-origin"
CORS = "cors"
NO_CORS = "no-cors"

# Response types as exposed to the worker.
BASIC = "basic"  # same-origin network response
CORS_TYPE = "cors"  # cross-origin network response
DEFAULT = "default"  # synthesized by the worker itself

# Request headers that make a response specific to one user.
CREDENTIAL_HEADERS = frozenset({"authorization", "cookie"})


def origin_of(url: str) -> str:
    """Return the scheme://host[:port] part of an absolute URL."""
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


def resolve_url(url: str, base_url: str) -> str:
    """Resolve a path or absolute URL against the site origin."""
    return urljoin(base_url.rstrip("/") + "/", url)


@dataclass(frozen=True)
class Request:
    """A request intercepted by the worker.

    Attributes:
        url: Absolute URL being requested.
        method: HTTP method, upper-case.
        mode: Request mode ("navigate" for top-level page loads).
        headers: Request headers relevant to the origin.
        body: Optional request body.
    """

    url: str
    method: str = "GET"
    mode: str = NO_CORS
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", self.method.upper())

    @property
    def path(self) -> str:
        return urlparse(self.url).path or "/"

    @property
    def origin(self) -> str:
        return origin_of(self.url)

    @property
    def is_navigation(self) -> bool:
        return self.mode == NAVIGATE

    @property
    def cache_key(self) -> tuple[str, str]:
        """Identity used by cache partitions: method and full URL."""
        return (self.method, self.url)

    @property
    def has_credentials(self) -> bool:
        """True if the request carries a cookie or an Authorization header."""
        return any(name.lower() in CREDENTIAL_HEADERS for name in self.headers)


@dataclass(frozen=True)
class Response:
    """A captured response snapshot.

    Responses are immutable, so storing one in a partition and returning it
    to the requester never consumes it twice.
    """

    status: int
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)
    status_text: str = ""
    url: str = ""
    type: str = BASIC

    @property
    def ok(self) -> bool:
        return 200 <= self.status <= 299

    @property
    def content_type(self) -> str | None:
        for name, value in self.headers.items():
            if name.lower() == "content-type":
                return value
        return None

    @property
    def is_private(self) -> bool:
        """True if Cache-Control forbids storing the response in a shared cache."""
        for name, value in self.headers.items():
            if name.lower() == "cache-control":
                directives = {d.strip().split("=", 1)[0].lower() for d in value.split(",")}
                return bool(directives & {"private", "no-store"})
        return False

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """Decode the body as JSON.

        Raises:
            ValueError: If the body is not valid JSON.
        """
        return json.loads(self.body.decode("utf-8"))


def json_response(data: Any, status: int = 200, status_text: str = "") -> Response:
    """Build a synthetic JSON response."""
    return Response(
        status=status,
        body=json.dumps(data).encode("utf-8"),
        headers={"Content-Type": "application/json"},
        status_text=status_text,
        type=DEFAULT,
    )


@dataclass(frozen=True)
class NotificationAction:
    """A button shown on a notification."""

    action: str
    title: str


@dataclass(frozen=True)
class Notification:
    """A rendered push notification.

    Attributes:
        title: Notification title.
        body: Notification text.
        icon: Icon URL.
        badge: Badge URL (monochrome, status bar).
        tag: Grouping tag; a new notification with the same tag replaces the old one.
        data: The merged payload, including the target ``url``.
        vibrate: Vibration pattern in milliseconds.
        actions: Buttons offered to the user.
        renotify: Alert again when replacing a notification with the same tag.
        require_interaction: Keep the notification until the user acts on it.
        timestamp: Event time in epoch milliseconds.
    """

    title: str
    body: str
    icon: str
    badge: str
    tag: str
    data: dict[str, Any]
    vibrate: tuple[int, ...]
    actions: tuple[NotificationAction, ...]
    renotify: bool = True
    require_interaction: bool = True
    timestamp: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "body": self.body,
            "icon": self.icon,
            "badge": self.badge,
            "tag": self.tag,
            "data": self.data,
            "vibrate": list(self.vibrate),
            "actions": [{"action": a.action, "title": a.title} for a in self.actions],
            "renotify": self.renotify,
            "requireInteraction": self.require_interaction,
            "timestamp": self.timestamp,
        }


@dataclass
class WindowClient:
    """A browser window controlled by the worker."""

    id: str
    url: str
    focused: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "url": self.url, "focused": self.focused}


@dataclass
class SyncReport:
    """Outcome of replaying one offline queue.

    Attributes:
        tag: Sync tag that triggered the replay.
        attempted: Items POSTed to the submit endpoint.
        succeeded: Items the endpoint accepted.
        failed: Items that failed (network error or non-2xx status).
        aborted: True when the abort policy stopped the batch early.
        error: Batch-level failure (queue unreachable or malformed), if any.
    """

    tag: str
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    aborted: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.failed == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "tag": self.tag,
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "aborted": self.aborted,
            "error": self.error,
        }


@dataclass
class RefreshReport:
    """Outcome of a periodic content refresh."""

    refreshed: int = 0
    skipped: int = 0
    failed: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"refreshed": self.refreshed, "skipped": self.skipped, "failed": self.failed}
