"""Progressive Web App assets for the Lipek Fashion site.

Every browser-side artifact is rendered from the same configuration the
Python controller runs with, so both follow one caching and sync policy:

- ``sw.js``: the service worker
- ``manifest.json``: install metadata and icons
- ``assets/js/pwa.js``: registration, update banner and install prompt
- ``offline.html``: the offline fallback page
"""

from ._manifest import build_manifest, icon_entries, render_manifest
from ._offline import render_offline_page
from ._registration import SW_REGISTRATION_JS
from ._service_worker import SERVICE_WORKER_TEMPLATE, render_service_worker
from ._version import compute_pwa_version, policy_of

__all__ = [
    "SERVICE_WORKER_TEMPLATE",
    "SW_REGISTRATION_JS",
    "build_manifest",
    "compute_pwa_version",
    "icon_entries",
    "policy_of",
    "render_manifest",
    "render_offline_page",
    "render_service_worker",
]
