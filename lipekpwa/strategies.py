"""Fetch strategies applied to intercepted requests.

- Navigation: network-first, falling back to the cached page, then the offline page
- API: network-preferred (fresh when online), cached copy or JSON error when offline
- Static assets: cache-first, filling the cache from same-origin network responses

Every strategy returns a response; a network failure never reaches the requester.
"""

import logging

from .cache import CacheError, CacheStoreManager
from .models import BASIC, DEFAULT, Request, Response, json_response
from .network import Fetcher, NetworkError

logger = logging.getLogger(__name__)

OFFLINE_STATUS = 503

OFFLINE_HTML_TEMPLATE = """<!DOCTYPE html>
<html lang="en"><head><meta charset="utf-8"><title>{name} - Offline</title></head>
<body><main><h1>You are offline</h1>
<p>{name} is not reachable right now. Please check your connection and try again.</p>
</main></body></html>"""


def _store(partition_name: str, caches: CacheStoreManager, request: Request, response: Response) -> None:
    """Store a network response, logging instead of failing the request."""
    if request.method != "GET" or not response.ok:
        return
    # Partitions are shared by every client of the host.
    if request.has_credentials or response.is_private:
        logger.debug("Not caching user-specific response for %s", request.url)
        return
    try:
        caches.storage.open(partition_name).put(request, response)
    except CacheError as e:
        logger.warning("Could not cache %s in %s: %s", request.url, partition_name, e)


def offline_page(caches: CacheStoreManager) -> Response:
    """Return the precached offline page, or a built-in one if it is missing."""
    cached = caches.storage.match(caches.offline_request())
    if cached is not None:
        return cached
    logger.warning("Offline page %s is not cached, using built-in page", caches.config.routing.offline_page)
    return Response(
        status=OFFLINE_STATUS,
        body=OFFLINE_HTML_TEMPLATE.format(name=caches.config.site.name).encode("utf-8"),
        headers={"Content-Type": "text/html; charset=utf-8"},
        status_text="Service Unavailable",
        type=DEFAULT,
    )


def offline_api_response() -> Response:
    """Synthetic response for an API request with no network and no cache."""
    return json_response({"error": "Offline"}, status=OFFLINE_STATUS, status_text="Service Unavailable")


def offline_asset_response() -> Response:
    """Generic failure for a sub-resource with no network and no cache."""
    return Response(
        status=OFFLINE_STATUS,
        body=b"Offline",
        headers={"Content-Type": "text/plain; charset=utf-8"},
        status_text="Service Unavailable",
        type=DEFAULT,
    )


def navigation_network_first(request: Request, caches: CacheStoreManager, fetcher: Fetcher) -> Response:
    """Serve a page load: live when online, last-known page or offline page otherwise."""
    try:
        response = fetcher.fetch(request)
    except NetworkError:
        logger.warning("Network failed for %s, serving from cache", request.url)
        cached = caches.storage.match(request)
        if cached is not None:
            return cached
        return offline_page(caches)

    _store(caches.static_name, caches, request, response)
    return response


def api_network_first(request: Request, caches: CacheStoreManager, fetcher: Fetcher) -> Response:
    """Serve an API request, preferring fresh data over the cached copy."""
    try:
        response = fetcher.fetch(request)
    except NetworkError:
        if request.method != "GET":
            logger.warning("API offline, cannot send %s %s", request.method, request.url)
            return offline_api_response()
        logger.warning("API offline, serving %s from cache", request.url)
        cached = caches.api().match(request)
        if cached is not None:
            return cached
        return offline_api_response()

    _store(caches.api_name, caches, request, response)
    return response


def static_cache_first(request: Request, caches: CacheStoreManager, fetcher: Fetcher) -> Response:
    """Serve a sub-resource from the static partition, filling it on a miss."""
    if request.method == "GET":
        cached = caches.static().match(request)
        if cached is not None:
            logger.debug("Cache hit for %s", request.url)
            return cached

    try:
        response = fetcher.fetch(request)
    except NetworkError:
        if request.is_navigation:
            return offline_page(caches)
        return offline_asset_response()

    # Only same-origin responses are stored; cross-origin ones pass through.
    if response.type == BASIC:
        _store(caches.static_name, caches, request, response)
    return response
