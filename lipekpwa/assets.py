"""Writes the rendered PWA artifacts into a site's public directory."""

import logging
from pathlib import Path

from ._pwa import (
    SERVICE_WORKER_TEMPLATE,
    SW_REGISTRATION_JS,
    compute_pwa_version,
    render_manifest,
    render_offline_page,
    render_service_worker,
)
from .config import Config

logger = logging.getLogger(__name__)


def render_pwa_assets(config: Config) -> dict[str, str]:
    """Render every artifact, keyed by its path relative to the site root."""
    version = compute_pwa_version(config, SERVICE_WORKER_TEMPLATE)
    offline_path = config.routing.offline_page.lstrip("/")
    if not offline_path or offline_path.endswith("/"):
        offline_path += "index.html"
    return {
        "sw.js": render_service_worker(config),
        "manifest.json": render_manifest(config, version),
        "assets/js/pwa.js": SW_REGISTRATION_JS,
        offline_path: render_offline_page(config),
    }


def write_pwa_assets(config: Config, output_dir: str | Path) -> list[Path]:
    """Render the artifacts and write them under ``output_dir``.

    Existing files are overwritten. Returns the written paths.

    Raises:
        OSError: If a file cannot be written.
    """
    root = Path(output_dir)
    written = []
    for relative, content in render_pwa_assets(config).items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        logger.info("Wrote %s", path)
        written.append(path)
    return written
