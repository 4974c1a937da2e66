"""Local trigger for the periodic content refresh.

Browsers raise periodic-sync events on their own schedule. When the
controller is hosted by the offline proxy, this thread stands in for that
schedule and dispatches the configured periodic tag at a fixed interval.
"""

import logging
import threading

from .controller import OfflineController, PeriodicSyncEvent

logger = logging.getLogger(__name__)


class PeriodicRefresher:
    """Dispatches periodic-sync events from a background thread."""

    def __init__(self, controller: OfflineController, interval_seconds: int | None = None) -> None:
        """Initialize the refresher.

        Args:
            controller: Controller receiving the periodic-sync events.
            interval_seconds: Seconds between events. Defaults to
                ``sync.periodic_interval_seconds``; 0 disables the refresher.
        """
        self._controller = controller
        sync_config = controller.config.sync
        self._tag = sync_config.periodic_tag
        self._interval = sync_config.periodic_interval_seconds if interval_seconds is None else interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def enabled(self) -> bool:
        return self._interval > 0

    def start(self) -> None:
        """Start the refresher thread."""
        if not self.enabled:
            logger.info("Periodic refresh disabled")
            return

        if self._thread and self._thread.is_alive():
            logger.warning("Periodic refresh already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="periodic-refresh", daemon=True)
        self._thread.start()
        logger.info("Periodic refresh started (tag: %s, interval: %ds)", self._tag, self._interval)

    def stop(self) -> None:
        """Stop the refresher thread gracefully."""
        if not self._thread or not self._thread.is_alive():
            return

        logger.info("Stopping periodic refresh...")
        self._stop_event.set()
        self._thread.join(timeout=5)

        if self._thread.is_alive():
            logger.warning("Periodic refresh thread did not stop gracefully")
        else:
            logger.info("Periodic refresh stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        """Main loop - waits first so startup is not followed by an immediate refetch."""
        while not self._stop_event.wait(self._interval):
            self.trigger()

    def trigger(self) -> None:
        """Dispatch one periodic-sync event, logging any failure."""
        if not self._controller.is_active:
            logger.debug("Skipping periodic refresh: worker not active")
            return
        try:
            self._controller.dispatch(PeriodicSyncEvent(self._tag))
        except Exception as e:
            logger.error("Periodic refresh failed: %s", e)
