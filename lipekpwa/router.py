"""Request classification for intercepted fetches."""

from enum import Enum

from .models import Request


class RouteKind(Enum):
    """Which fetch strategy handles a request."""

    API = "api"
    NAVIGATION = "navigation"
    STATIC = "static"


def classify(request: Request, api_prefix: str) -> RouteKind:
    """Classify a request. The checks are disjoint and evaluated in order.

    1. Path under the API prefix -> API (even for page loads)
    2. Navigation mode -> NAVIGATION
    3. Anything else -> STATIC
    """
    if request.path.startswith(api_prefix):
        return RouteKind.API
    if request.is_navigation:
        return RouteKind.NAVIGATION
    return RouteKind.STATIC
