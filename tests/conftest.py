"""Shared fixtures and in-memory fakes."""

import json
from collections.abc import Callable

import pytest

from lipekpwa.cache import MemoryCacheStorage
from lipekpwa.config import Config, DEFAULT_STATIC_ASSETS, SiteConfig
from lipekpwa.controller import OfflineController
from lipekpwa.models import BASIC, CORS_TYPE, Request, Response, origin_of, resolve_url
from lipekpwa.network import NetworkError
from lipekpwa.notifications import MemoryClientRegistry

SITE = "https://lipekfashion.com"


def url(path: str) -> str:
    """Absolute site URL for a path."""
    return resolve_url(path, SITE)


class FakeFetcher:
    """Network fake: canned responses per (method, url), an offline switch, a call log."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Response | Exception | Callable[[Request], Response]] = {}
        self.offline = False
        self.calls: list[Request] = []

    def add(
        self,
        path_or_url: str,
        body: bytes | str = b"ok",
        status: int = 200,
        method: str = "GET",
        content_type: str = "text/html",
    ) -> Response:
        target = url(path_or_url)
        if isinstance(body, str):
            body = body.encode("utf-8")
        response = Response(
            status=status,
            body=body,
            headers={"Content-Type": content_type},
            url=target,
            type=BASIC if origin_of(target) == SITE else CORS_TYPE,
        )
        self.routes[(method, target)] = response
        return response

    def add_json(self, path: str, data: object, status: int = 200, method: str = "GET") -> Response:
        return self.add(path, json.dumps(data), status=status, method=method, content_type="application/json")

    def fail(self, path_or_url: str, method: str = "GET") -> None:
        self.routes[(method, url(path_or_url))] = NetworkError(f"{method} {path_or_url} refused")

    def handle(self, path: str, handler: Callable[[Request], Response], method: str = "POST") -> None:
        self.routes[(method, url(path))] = handler

    def requests_to(self, path: str, method: str | None = None) -> list[Request]:
        target = url(path)
        return [r for r in self.calls if r.url == target and (method is None or r.method == method)]

    def fetch(self, request: Request) -> Response:
        self.calls.append(request)
        if self.offline:
            raise NetworkError("Network unreachable")
        route = self.routes.get((request.method, request.url))
        if route is None:
            return Response(status=404, body=b"Not Found", url=request.url)
        if isinstance(route, Exception):
            raise route
        if callable(route):
            return route(request)
        return route


def serve_shell(fetcher: FakeFetcher, assets=DEFAULT_STATIC_ASSETS) -> None:
    """Make every shell asset fetchable."""
    for asset in assets:
        fetcher.add(asset, body=f"asset {asset}")


@pytest.fixture
def config() -> Config:
    return Config(site=SiteConfig(origin=SITE))


@pytest.fixture
def storage() -> MemoryCacheStorage:
    return MemoryCacheStorage()


@pytest.fixture
def fetcher() -> FakeFetcher:
    fake = FakeFetcher()
    serve_shell(fake)
    return fake


@pytest.fixture
def clients() -> MemoryClientRegistry:
    return MemoryClientRegistry()


@pytest.fixture
def controller(
    config: Config,
    storage: MemoryCacheStorage,
    fetcher: FakeFetcher,
    clients: MemoryClientRegistry,
) -> OfflineController:
    """A controller that has installed and activated."""
    ctl = OfflineController(config, storage, fetcher, clients)
    ctl.start()
    return ctl
