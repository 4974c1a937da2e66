"""Named cache partitions and the install/activate housekeeping around them.

A partition maps a request identity (method + URL) to a captured response.
Two partitions are live at any time: ``static`` for the shell and pages,
``api`` for JSON responses. Their names carry a version suffix; activating a
new version deletes every partition whose name is not current.
"""

import logging
import threading
from collections import OrderedDict
from collections.abc import Iterable

from .config import Config
from .models import Request, Response, resolve_url
from .network import Fetcher, NetworkError

logger = logging.getLogger(__name__)


class CacheError(Exception):
    """Raised when a cache operation is invalid or cannot complete."""

    pass


class InstallError(CacheError):
    """Raised when the shell assets cannot be precached during install."""

    pass


class CachePartition:
    """Base class for a named request -> response store.

    Backends implement ``match``, ``put``, ``delete`` and ``keys``; the
    bulk-add operations are shared.
    """

    def __init__(self, name: str) -> None:
        self.name = name

    def match(self, request: Request) -> Response | None:
        raise NotImplementedError

    def put(self, request: Request, response: Response) -> None:
        raise NotImplementedError

    def delete(self, request: Request) -> bool:
        raise NotImplementedError

    def keys(self) -> list[Request]:
        raise NotImplementedError

    def _check_cacheable(self, request: Request) -> None:
        if request.method != "GET":
            raise CacheError(f"Only GET requests can be cached, got {request.method} {request.url}")

    def add(self, request: Request, fetcher: Fetcher) -> Response:
        """Fetch a request and store the response.

        Raises:
            CacheError: If the fetch fails or the response is not ok.
        """
        return self.add_all([request], fetcher)[0]

    def add_all(self, requests: Iterable[Request], fetcher: Fetcher) -> list[Response]:
        """Fetch every request and store all responses, or none of them.

        Raises:
            CacheError: If any fetch fails or returns a non-ok status. Nothing
                is stored in that case.
        """
        fetched: list[tuple[Request, Response]] = []
        for request in requests:
            self._check_cacheable(request)
            try:
                response = fetcher.fetch(request)
            except NetworkError as e:
                raise CacheError(f"Failed to fetch {request.url}: {e}") from e
            if not response.ok:
                raise CacheError(f"Failed to fetch {request.url}: HTTP {response.status}")
            fetched.append((request, response))

        for request, response in fetched:
            self.put(request, response)
        return [response for _, response in fetched]

    def __len__(self) -> int:
        return len(self.keys())


class CacheStorage:
    """Base class for the set of named partitions available to the worker."""

    def open(self, name: str) -> CachePartition:
        """Return the named partition, creating it if needed."""
        raise NotImplementedError

    def has(self, name: str) -> bool:
        raise NotImplementedError

    def delete(self, name: str) -> bool:
        """Delete a partition and its entries. Returns False if it did not exist."""
        raise NotImplementedError

    def keys(self) -> list[str]:
        """Partition names in creation order."""
        raise NotImplementedError

    def match(self, request: Request) -> Response | None:
        """Look the request up in every partition, in creation order."""
        for name in self.keys():
            response = self.open(name).match(request)
            if response is not None:
                return response
        return None

    def close(self) -> None:
        pass


class MemoryCachePartition(CachePartition):
    """In-memory partition. Thread-safe, last writer wins per key."""

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self._entries: OrderedDict[tuple[str, str], tuple[Request, Response]] = OrderedDict()
        self._lock = threading.Lock()

    def match(self, request: Request) -> Response | None:
        with self._lock:
            entry = self._entries.get(request.cache_key)
        return entry[1] if entry is not None else None

    def put(self, request: Request, response: Response) -> None:
        self._check_cacheable(request)
        with self._lock:
            self._entries[request.cache_key] = (request, response)

    def delete(self, request: Request) -> bool:
        with self._lock:
            return self._entries.pop(request.cache_key, None) is not None

    def keys(self) -> list[Request]:
        with self._lock:
            return [request for request, _ in self._entries.values()]


class MemoryCacheStorage(CacheStorage):
    """In-memory cache storage, used by tests and ``backend: memory``."""

    def __init__(self) -> None:
        self._partitions: dict[str, MemoryCachePartition] = {}
        self._lock = threading.Lock()

    def open(self, name: str) -> CachePartition:
        with self._lock:
            partition = self._partitions.get(name)
            if partition is None:
                partition = MemoryCachePartition(name)
                self._partitions[name] = partition
            return partition

    def has(self, name: str) -> bool:
        with self._lock:
            return name in self._partitions

    def delete(self, name: str) -> bool:
        with self._lock:
            return self._partitions.pop(name, None) is not None

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._partitions)


class CacheStoreManager:
    """Owns the two live partitions for one configured worker version."""

    def __init__(self, config: Config, storage: CacheStorage, fetcher: Fetcher) -> None:
        self._config = config
        self._storage = storage
        self._fetcher = fetcher

    @property
    def config(self) -> Config:
        return self._config

    @property
    def storage(self) -> CacheStorage:
        return self._storage

    @property
    def static_name(self) -> str:
        return self._config.cache.static_name

    @property
    def api_name(self) -> str:
        return self._config.cache.api_name

    def static(self) -> CachePartition:
        return self._storage.open(self.static_name)

    def api(self) -> CachePartition:
        return self._storage.open(self.api_name)

    def request_for(self, url: str) -> Request:
        """Build a GET request for a manifest entry or page path."""
        return Request(url=resolve_url(url, self._config.site.base_url))

    def manifest_requests(self) -> list[Request]:
        return [self.request_for(asset) for asset in self._config.routing.static_assets]

    def offline_request(self) -> Request:
        return self.request_for(self._config.routing.offline_page)

    def on_install(self) -> int:
        """Open the static partition and precache the shell assets.

        Returns:
            Number of assets cached.

        Raises:
            InstallError: If any asset cannot be fetched. Nothing is cached.
        """
        requests = self.manifest_requests()
        logger.info("Caching %d static assets into %s", len(requests), self.static_name)
        try:
            self.static().add_all(requests, self._fetcher)
        except CacheError as e:
            raise InstallError(f"Install failed: {e}") from e
        return len(requests)

    def on_activate(self) -> list[str]:
        """Delete every partition that is not one of the two current names.

        Storage errors propagate to the caller and fail the activation.

        Returns:
            Names of the deleted partitions.
        """
        current = set(self._config.cache.current_names)
        deleted = []
        for name in self._storage.keys():
            if name not in current:
                logger.info("Removing old cache: %s", name)
                self._storage.delete(name)
                deleted.append(name)
        return deleted

    def stale_partitions(self) -> list[str]:
        """Names that the next activation would delete."""
        current = set(self._config.cache.current_names)
        return [name for name in self._storage.keys() if name not in current]
