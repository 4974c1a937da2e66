"""Network fetch capability.

The controller never talks to the network directly. It is handed a fetcher,
which in production is :class:`RequestsFetcher` and in tests an in-memory fake.
A fetcher mirrors the browser ``fetch`` contract: any HTTP status is a
response, only the absence of a response is an error.
"""

import logging
from typing import Protocol

import requests

from .config import NetworkConfig
from .models import BASIC, CORS_TYPE, Request, Response, origin_of

logger = logging.getLogger(__name__)

# Hop-by-hop headers are meaningless once a response is stored.
HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailers",
        "transfer-encoding",
        "upgrade",
        "content-encoding",
        "content-length",
    }
)


class NetworkError(Exception):
    """Raised when no response could be obtained (offline, DNS, refused, timeout)."""

    pass


class Fetcher(Protocol):
    """Capability to perform a network request."""

    def fetch(self, request: Request) -> Response:
        """Perform the request.

        Raises:
            NetworkError: If no response was received.
        """
        ...


class RequestsFetcher:
    """Fetcher backed by a ``requests`` session."""

    def __init__(self, config: NetworkConfig, site_origin: str, session: requests.Session | None = None) -> None:
        """Initialize the fetcher.

        Args:
            config: Network configuration (timeout, User-Agent).
            site_origin: Origin of the site; responses from it are typed "basic".
            session: Optional session to reuse (connection pooling, tests).
        """
        self._config = config
        self._site_origin = origin_of(site_origin)
        self._session = session or requests.Session()
        self._session.headers["User-Agent"] = config.user_agent

    def fetch(self, request: Request) -> Response:
        headers = {k: v for k, v in request.headers.items() if k.lower() not in HOP_BY_HOP_HEADERS}
        try:
            resp = self._session.request(
                request.method,
                request.url,
                headers=headers,
                data=request.body,
                timeout=self._config.timeout_seconds,
                allow_redirects=True,
            )
        except requests.RequestException as e:
            logger.debug("Network fetch failed for %s %s: %s", request.method, request.url, e)
            raise NetworkError(f"{request.method} {request.url} failed: {e}") from e

        response_url = resp.url or request.url
        return Response(
            status=resp.status_code,
            body=resp.content,
            headers={k: v for k, v in resp.headers.items() if k.lower() not in HOP_BY_HOP_HEADERS},
            status_text=resp.reason or "",
            url=response_url,
            type=BASIC if origin_of(response_url) == self._site_origin else CORS_TYPE,
        )

    def close(self) -> None:
        self._session.close()
