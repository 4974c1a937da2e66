"""Offline cache and sync controller.

Every event the hosting runtime receives is handed to
:meth:`OfflineController.dispatch`, which looks up the handler for the event
kind and returns the action the host must take:

- ``RespondWith(response)``: answer the intercepted request with ``response``
- ``Passthrough()``: the worker is not active yet, fetch the request directly
- ``WaitUntil(result)``: background work finished; ``result`` is its outcome

Handlers run synchronously, so a ``WaitUntil`` is only returned once the
work it stands for is complete. Lifecycle handlers raise on fatal errors.
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ._pwa import SERVICE_WORKER_TEMPLATE, compute_pwa_version
from .cache import CacheError, CacheStorage, CacheStoreManager
from .config import Config
from .models import Notification, Request, Response
from .network import Fetcher
from .notifications import ClientRegistry, MemoryClientRegistry, NotificationManager
from .router import RouteKind, classify
from .security import UnsafeUrlError, validate_cache_target
from .strategies import api_network_first, navigation_network_first, static_cache_first
from .sync import SyncManager

logger = logging.getLogger(__name__)


class WorkerState(Enum):
    """Lifecycle of one worker instance."""

    PARSED = "parsed"
    INSTALLING = "installing"
    INSTALLED = "installed"
    ACTIVATING = "activating"
    ACTIVATED = "activated"


class LifecycleError(Exception):
    """Raised when a lifecycle event arrives in the wrong state."""

    pass


# Events


@dataclass(frozen=True)
class InstallEvent:
    pass


@dataclass(frozen=True)
class ActivateEvent:
    pass


@dataclass(frozen=True)
class FetchEvent:
    request: Request


@dataclass(frozen=True)
class PushEvent:
    data: bytes | str | None = None


@dataclass(frozen=True)
class NotificationClickEvent:
    notification: Notification
    action: str = ""


@dataclass(frozen=True)
class SyncEvent:
    tag: str


@dataclass(frozen=True)
class PeriodicSyncEvent:
    tag: str


@dataclass(frozen=True)
class MessageEvent:
    """A control message posted by a foreground page.

    ``reply`` stands in for the message port the page passes along; it is
    only needed for messages that answer (``GET_VERSION``).
    """

    data: Any
    reply: Callable[[dict], None] | None = None


Event = (
    InstallEvent
    | ActivateEvent
    | FetchEvent
    | PushEvent
    | NotificationClickEvent
    | SyncEvent
    | PeriodicSyncEvent
    | MessageEvent
)


# Actions


@dataclass(frozen=True)
class RespondWith:
    response: Response


@dataclass(frozen=True)
class Passthrough:
    pass


@dataclass(frozen=True)
class WaitUntil:
    result: Any = None


Action = RespondWith | Passthrough | WaitUntil


class OfflineController:
    """Single logical worker: owns the partitions and reacts to events."""

    def __init__(
        self,
        config: Config,
        storage: CacheStorage,
        fetcher: Fetcher,
        clients: ClientRegistry | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            config: Validated configuration (cache names, manifest, API prefix, queues).
            storage: Cache storage capability holding the partitions.
            fetcher: Network capability.
            clients: Window clients capability; an in-memory registry by default.
        """
        self.config = config
        self.fetcher = fetcher
        self.clients = clients if clients is not None else MemoryClientRegistry()
        self.caches = CacheStoreManager(config, storage, fetcher)
        self.sync = SyncManager(config, self.caches, fetcher)
        self.notifications = NotificationManager(config, self.clients)
        self._state = WorkerState.PARSED
        self._skip_waiting = False
        self._claimed = False
        self._lock = threading.RLock()
        self._version = compute_pwa_version(config, SERVICE_WORKER_TEMPLATE)

    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state is WorkerState.ACTIVATED

    @property
    def skip_waiting(self) -> bool:
        return self._skip_waiting

    @property
    def claimed(self) -> bool:
        return self._claimed

    @property
    def version(self) -> str:
        """Worker version tag, identical to the one embedded in sw.js."""
        return self._version

    def dispatch(self, event: Event) -> Action:
        """Run the handler for an event and return the host's next action.

        Raises:
            InstallError: If install cannot precache the shell.
            CacheError: If activation housekeeping fails.
            LifecycleError: If a lifecycle event arrives out of order.
            TypeError: If the event kind is unknown.
        """
        handler = _HANDLERS.get(type(event))
        if handler is None:
            raise TypeError(f"Unsupported event: {type(event).__name__}")
        return handler(self, event)

    def start(self) -> None:
        """Install, then activate immediately if skip-waiting was requested."""
        self.dispatch(InstallEvent())
        if self._skip_waiting:
            self.dispatch(ActivateEvent())

    def request_skip_waiting(self) -> None:
        """Activate a waiting instance without waiting for pages to close."""
        with self._lock:
            self._skip_waiting = True
            waiting = self._state is WorkerState.INSTALLED
        if waiting:
            self.dispatch(ActivateEvent())

    def version_info(self) -> dict[str, str]:
        return {
            "version": self.version,
            "cacheName": self.caches.static_name,
            "apiCacheName": self.caches.api_name,
        }


def handle_install(controller: OfflineController, event: InstallEvent) -> WaitUntil:
    with controller._lock:
        if controller._state is not WorkerState.PARSED:
            raise LifecycleError(f"Cannot install from state {controller._state.value}")
        logger.info("Service worker %s installing...", controller.version)
        controller._state = WorkerState.INSTALLING
        try:
            cached = controller.caches.on_install()
        except CacheError:
            controller._state = WorkerState.PARSED
            raise
        controller._state = WorkerState.INSTALLED
        # Install requests skip-waiting; the host activates right after.
        controller._skip_waiting = True
    logger.info("Service worker %s installed (%d assets cached)", controller.version, cached)
    return WaitUntil(result=cached)


def handle_activate(controller: OfflineController, event: ActivateEvent) -> WaitUntil:
    with controller._lock:
        if controller._state is WorkerState.ACTIVATED:
            return WaitUntil(result=[])
        if controller._state is not WorkerState.INSTALLED:
            raise LifecycleError(f"Cannot activate from state {controller._state.value}")
        logger.info("Service worker %s activating...", controller.version)
        controller._state = WorkerState.ACTIVATING
        try:
            deleted = controller.caches.on_activate()
        except Exception:
            controller._state = WorkerState.INSTALLED
            raise
        controller._claimed = True
        controller._state = WorkerState.ACTIVATED
    logger.info("Service worker %s activated, %d old cache(s) removed", controller.version, len(deleted))
    return WaitUntil(result=deleted)


_STRATEGIES = {
    RouteKind.API: api_network_first,
    RouteKind.NAVIGATION: navigation_network_first,
    RouteKind.STATIC: static_cache_first,
}


def handle_fetch(controller: OfflineController, event: FetchEvent) -> RespondWith | Passthrough:
    if not controller.is_active:
        return Passthrough()
    kind = classify(event.request, controller.config.routing.api_prefix)
    logger.debug("%s %s -> %s", event.request.method, event.request.url, kind.value)
    strategy = _STRATEGIES[kind]
    return RespondWith(strategy(event.request, controller.caches, controller.fetcher))


def handle_push(controller: OfflineController, event: PushEvent) -> WaitUntil:
    logger.info("Push notification received")
    return WaitUntil(result=controller.notifications.render_push(event.data))


def handle_notification_click(controller: OfflineController, event: NotificationClickEvent) -> WaitUntil:
    logger.info("Notification clicked (action=%r)", event.action)
    return WaitUntil(result=controller.notifications.handle_click(event.notification, event.action))


def handle_sync(controller: OfflineController, event: SyncEvent) -> WaitUntil:
    logger.info("Sync event: %s", event.tag)
    return WaitUntil(result=controller.sync.sync(event.tag))


def handle_periodic_sync(controller: OfflineController, event: PeriodicSyncEvent) -> WaitUntil:
    logger.info("Periodic sync: %s", event.tag)
    if event.tag != controller.config.sync.periodic_tag:
        return WaitUntil(result=None)
    return WaitUntil(result=controller.sync.refresh_content())


def _cache_page(controller: OfflineController, url: Any) -> bool:
    try:
        target = validate_cache_target(url, controller.config.site.base_url)
        controller.caches.static().add(Request(url=target), controller.fetcher)
    except (UnsafeUrlError, CacheError) as e:
        logger.warning("CACHE_PAGE for %r failed: %s", url, e)
        return False
    logger.info("Cached page on request: %s", target)
    return True


def handle_message(controller: OfflineController, event: MessageEvent) -> WaitUntil:
    data = event.data
    if not isinstance(data, dict):
        logger.debug("Ignoring malformed message: %r", data)
        return WaitUntil(result=None)

    message_type = data.get("type")
    logger.debug("Message from client: %s", message_type)

    if message_type == "SKIP_WAITING":
        controller.request_skip_waiting()
        return WaitUntil(result=True)

    if message_type == "CACHE_PAGE":
        return WaitUntil(result=_cache_page(controller, data.get("url")))

    if message_type == "GET_VERSION":
        info = controller.version_info()
        if event.reply is not None:
            event.reply(info)
        else:
            logger.debug("GET_VERSION without a reply channel")
        return WaitUntil(result=info)

    logger.debug("Ignoring unknown message type: %r", message_type)
    return WaitUntil(result=None)


_HANDLERS: dict[type, Callable[[OfflineController, Any], Action]] = {
    InstallEvent: handle_install,
    ActivateEvent: handle_activate,
    FetchEvent: handle_fetch,
    PushEvent: handle_push,
    NotificationClickEvent: handle_notification_click,
    SyncEvent: handle_sync,
    PeriodicSyncEvent: handle_periodic_sync,
    MessageEvent: handle_message,
}
