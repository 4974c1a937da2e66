"""Web App Manifest for PWA installation.

Defines app metadata for installation on home screens, with one icon per
generated size plus maskable variants.
"""

import json
from typing import Any

from ..config import ICON_SIZES, MASKABLE_ICON_SIZES, Config

ICON_PATH = "/assets/images/icon-{size}x{size}.png"

SHORTCUTS = (
    ("Book a Fitting", "Book", "Schedule a custom tailoring appointment", "/book-fitting/"),
    ("Gallery", "Gallery", "Browse the latest designs", "/gallery/"),
)


def icon_entries() -> list[dict[str, str]]:
    """Manifest icon list: every size for ``any`` and the maskable subset."""
    icons = [
        {"src": ICON_PATH.format(size=size), "sizes": f"{size}x{size}", "type": "image/png", "purpose": "any"}
        for size in ICON_SIZES
    ]
    icons.extend(
        {"src": ICON_PATH.format(size=size), "sizes": f"{size}x{size}", "type": "image/png", "purpose": "maskable"}
        for size in MASKABLE_ICON_SIZES
    )
    return icons


def build_manifest(config: Config, version: str) -> dict[str, Any]:
    site = config.site
    shortcut_icon = [{"src": ICON_PATH.format(size=192), "sizes": "192x192"}]
    return {
        "name": site.name,
        "short_name": site.short_name,
        "description": site.description,
        "version": version,
        "id": "/",
        "start_url": "/",
        "scope": "/",
        "display": "standalone",
        "orientation": "portrait-primary",
        "background_color": site.background_color,
        "theme_color": site.theme_color,
        "icons": icon_entries(),
        "shortcuts": [
            {"name": name, "short_name": short_name, "description": description, "url": url, "icons": shortcut_icon}
            for name, short_name, description, url in SHORTCUTS
        ],
        "categories": ["shopping", "lifestyle"],
    }


def render_manifest(config: Config, version: str) -> str:
    """Render ``manifest.json``."""
    return json.dumps(build_manifest(config, version), indent=2, ensure_ascii=False)
