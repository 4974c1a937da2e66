"""PWA version computation.

The version embedded in ``sw.js`` is the site version plus a short hash of
the worker policy (partition names, manifest, routes, queues, notification
defaults) and the script template. Any policy change yields a new worker
script, which is what makes browsers install the new instance.
"""

import hashlib
import json
from typing import Any

from ..config import Config


def policy_of(config: Config) -> dict[str, Any]:
    """The configuration values the browser worker is rendered from."""
    return {
        "staticCache": config.cache.static_name,
        "apiCache": config.cache.api_name,
        "staticAssets": list(config.routing.static_assets),
        "apiPrefix": config.routing.api_prefix,
        "offlinePage": config.routing.offline_page,
        "syncQueues": {
            queue.tag: {"queue": queue.queue_url, "submit": queue.submit_url} for queue in config.sync.queues
        },
        "replayPolicy": config.sync.policy,
        "periodicTag": config.sync.periodic_tag,
        "notification": {
            "title": config.notifications.title,
            "body": config.notifications.body,
            "icon": config.notifications.icon,
            "badge": config.notifications.badge,
            "tag": config.notifications.tag,
            "vibrate": list(config.notifications.vibrate),
        },
    }


def compute_pwa_version(config: Config, template: str = "") -> str:
    """Compute the worker version from the site version and a policy hash."""
    digest = hashlib.sha256()
    digest.update(json.dumps(policy_of(config), sort_keys=True).encode())
    digest.update(template.encode())
    return f"{config.site.version}-{digest.hexdigest()[:8]}"
