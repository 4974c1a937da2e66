"""Replay of offline outboxes and periodic refresh of cached content."""

import json
import logging
from enum import Enum
from typing import Any

from .cache import CacheError, CacheStoreManager
from .config import Config, SyncQueueConfig
from .models import RefreshReport, Request, SyncReport, resolve_url
from .network import Fetcher, NetworkError

logger = logging.getLogger(__name__)


class ReplayPolicy(Enum):
    """What to do with the rest of a batch after one item fails."""

    CONTINUE = "continue"
    ABORT = "abort"


class QueueError(Exception):
    """Raised when an offline queue cannot be read."""

    pass


class SyncManager:
    """Replays queued writes and refreshes the static partition.

    Replay is best-effort: items are POSTed one at a time in queue order,
    nothing is retried inside one invocation, and batch-level errors are
    logged and reported rather than raised. Retrying the whole tag is left to
    whoever raised the sync event.
    """

    def __init__(self, config: Config, caches: CacheStoreManager, fetcher: Fetcher) -> None:
        self._config = config
        self._caches = caches
        self._fetcher = fetcher
        self._policy = ReplayPolicy(config.sync.policy)

    @property
    def policy(self) -> ReplayPolicy:
        return self._policy

    def _url(self, path: str) -> str:
        return resolve_url(path, self._config.site.base_url)

    def sync(self, tag: str) -> SyncReport | None:
        """Replay the offline queue bound to a sync tag.

        Returns:
            The replay report, or None if no queue is bound to the tag.
        """
        queue = self._config.sync.queue_for(tag)
        if queue is None:
            logger.debug("No offline queue bound to sync tag %s", tag)
            return None

        report = SyncReport(tag=tag)
        try:
            items = self._read_queue(queue)
        except QueueError as e:
            logger.error("Failed to sync %s: %s", tag, e)
            report.error = str(e)
            return report

        for index, item in enumerate(items):
            report.attempted += 1
            if self._submit(queue, item, index):
                report.succeeded += 1
                continue

            report.failed += 1
            if self._policy is ReplayPolicy.ABORT:
                report.aborted = True
                logger.warning(
                    "Aborting %s after item %d failed (%d item(s) not attempted)",
                    tag,
                    index,
                    len(items) - index - 1,
                )
                break

        if report.failed:
            logger.warning("Synced %s: %d/%d item(s) failed", tag, report.failed, report.attempted)
        else:
            logger.info("Synced %s: %d item(s) replayed", tag, report.succeeded)
        return report

    def _read_queue(self, queue: SyncQueueConfig) -> list[Any]:
        """Fetch the queued items for a sync tag.

        Raises:
            QueueError: If the queue is unreachable, not ok, or not a JSON array.
        """
        request = Request(url=self._url(queue.queue_url), headers={"Accept": "application/json"})
        try:
            response = self._fetcher.fetch(request)
        except NetworkError as e:
            raise QueueError(f"queue {queue.queue_url} unreachable: {e}") from e

        if not response.ok:
            raise QueueError(f"queue {queue.queue_url} returned HTTP {response.status}")

        try:
            items = response.json()
        except ValueError as e:
            raise QueueError(f"queue {queue.queue_url} returned malformed JSON: {e}") from e

        if not isinstance(items, list):
            raise QueueError(f"queue {queue.queue_url} did not return a JSON array")
        return items

    def _submit(self, queue: SyncQueueConfig, item: Any, index: int) -> bool:
        """POST one queued item to its submit endpoint. Returns True on success."""
        request = Request(
            url=self._url(queue.submit_url),
            method="POST",
            headers={"Content-Type": "application/json"},
            body=json.dumps(item).encode("utf-8"),
        )
        try:
            response = self._fetcher.fetch(request)
        except NetworkError as e:
            logger.warning("Replay of %s item %d failed: %s", queue.tag, index, e)
            return False

        if not response.ok:
            logger.warning("Replay of %s item %d rejected: HTTP %d", queue.tag, index, response.status)
            return False

        logger.debug("Replayed %s item %d to %s", queue.tag, index, queue.submit_url)
        return True

    def refresh_content(self) -> RefreshReport:
        """Refetch every cached static URL and overwrite it on success.

        Per-URL failures are logged and skipped; the batch always completes.
        """
        report = RefreshReport()
        static = self._caches.static()

        for request in static.keys():
            try:
                response = self._fetcher.fetch(request)
            except NetworkError:
                logger.info("Failed to update: %s", request.url)
                report.failed += 1
                continue

            if not response.ok:
                logger.debug("Not updating %s: HTTP %d", request.url, response.status)
                report.skipped += 1
                continue

            try:
                static.put(request, response)
            except CacheError as e:
                logger.warning("Failed to store refreshed %s: %s", request.url, e)
                report.failed += 1
                continue
            report.refreshed += 1

        logger.info(
            "Content refresh: %d refreshed, %d skipped, %d failed",
            report.refreshed,
            report.skipped,
            report.failed,
        )
        return report
