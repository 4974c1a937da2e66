"""Service Worker JavaScript rendered from the site configuration.

The browser worker follows the same policy as the Python controller:
- Install: precache the shell into the static partition, then skip waiting
- Activate: delete every partition that is not current, then claim clients
- API requests: network-first, cached copy or JSON error when offline
- Navigations: network-first, cached page or offline page when offline
- Everything else: cache-first, filling the cache from same-origin responses
"""

import json

from ..config import Config
from ._version import compute_pwa_version, policy_of

# SERVICE WORKER
# Placeholders: {name}, {version} (JSON string), {policy} (JSON object).
# Literal braces are doubled.

SERVICE_WORKER_TEMPLATE = """// Service Worker for {name}
// Rendered by lipekpwa build-pwa; do not edit by hand.

const SW_VERSION = {version};
const POLICY = {policy};
const CACHE_NAME = POLICY.staticCache;
const API_CACHE = POLICY.apiCache;
const STATIC_ASSETS = POLICY.staticAssets;

// Install event - precache the shell, then take over without waiting
self.addEventListener('install', (event) => {{
    console.log('[SW] Installing version', SW_VERSION);
    event.waitUntil(
        caches.open(CACHE_NAME)
            .then(cache => cache.addAll(STATIC_ASSETS))
            .then(() => self.skipWaiting())
    );
}});

// Activate event - evict partitions from previous versions
self.addEventListener('activate', (event) => {{
    console.log('[SW] Activating version', SW_VERSION);
    event.waitUntil(
        caches.keys().then(cacheNames => Promise.all(
            cacheNames
                .filter(cacheName => cacheName !== CACHE_NAME && cacheName !== API_CACHE)
                .map(cacheName => {{
                    console.log('[SW] Deleting old cache:', cacheName);
                    return caches.delete(cacheName);
                }})
        ))
        .then(() => self.clients.claim())
    );
}});

function storeResponse(cacheName, request, response) {{
    if (request.method === 'GET' && response.ok) {{
        const responseClone = response.clone();
        caches.open(cacheName).then(cache => cache.put(request, responseClone));
    }}
}}

function offlinePage() {{
    return caches.match(POLICY.offlinePage).then(cached => cached || new Response(
        '<!DOCTYPE html><html><head><meta charset="utf-8"><title>Offline</title></head>' +
        '<body><h1>You are offline</h1></body></html>',
        {{ status: 503, statusText: 'Service Unavailable', headers: {{ 'Content-Type': 'text/html' }} }}
    ));
}}

function offlineApiResponse() {{
    return new Response(JSON.stringify({{ error: 'Offline' }}), {{
        status: 503,
        statusText: 'Service Unavailable',
        headers: {{ 'Content-Type': 'application/json' }}
    }});
}}

// API: network-first, cached copy or JSON error when offline
function handleApiRequest(request) {{
    return fetch(request)
        .then(response => {{
            storeResponse(API_CACHE, request, response);
            return response;
        }})
        .catch(() => {{
            if (request.method !== 'GET') {{
                return offlineApiResponse();
            }}
            return caches.open(API_CACHE)
                .then(cache => cache.match(request))
                .then(cached => cached || offlineApiResponse());
        }});
}}

// Navigation: network-first, last-known page or offline page when offline
function handleNavigationRequest(request) {{
    return fetch(request)
        .then(response => {{
            storeResponse(CACHE_NAME, request, response);
            return response;
        }})
        .catch(() => caches.match(request).then(cached => cached || offlinePage()));
}}

// Static assets: cache-first, storing same-origin responses on a miss
function handleStaticRequest(request) {{
    return caches.open(CACHE_NAME)
        .then(cache => cache.match(request))
        .then(cached => {{
            if (cached) {{
                return cached;
            }}
            return fetch(request)
                .then(response => {{
                    if (response.type === 'basic') {{
                        storeResponse(CACHE_NAME, request, response);
                    }}
                    return response;
                }})
                .catch(() => {{
                    if (request.mode === 'navigate') {{
                        return offlinePage();
                    }}
                    return new Response('Offline', {{ status: 503, statusText: 'Service Unavailable' }});
                }});
        }});
}}

self.addEventListener('fetch', (event) => {{
    const request = event.request;
    const url = new URL(request.url);

    if (url.pathname.startsWith(POLICY.apiPrefix)) {{
        event.respondWith(handleApiRequest(request));
        return;
    }}
    if (request.mode === 'navigate') {{
        event.respondWith(handleNavigationRequest(request));
        return;
    }}
    event.respondWith(handleStaticRequest(request));
}});

// Background sync - replay offline outboxes in queue order
function replayItem(queue, tag, item, index) {{
    return fetch(queue.submit, {{
        method: 'POST',
        headers: {{ 'Content-Type': 'application/json' }},
        body: JSON.stringify(item)
    }}).then(response => {{
        if (!response.ok) {{
            throw new Error('HTTP ' + response.status);
        }}
        return true;
    }}).catch(error => {{
        console.warn('[SW] Replay of', tag, 'item', index, 'failed:', error);
        return false;
    }});
}}

function replayQueue(tag) {{
    const queue = POLICY.syncQueues[tag];
    let aborted = false;
    return fetch(queue.queue)
        .then(response => {{
            if (!response.ok) {{
                throw new Error('queue returned HTTP ' + response.status);
            }}
            return response.json();
        }})
        .then(items => items.reduce((chain, item, index) => chain.then(() => {{
            if (aborted) {{
                return;
            }}
            return replayItem(queue, tag, item, index).then(ok => {{
                if (!ok && POLICY.replayPolicy === 'abort') {{
                    aborted = true;
                    console.warn('[SW] Aborting', tag, 'after item', index, 'failed');
                }}
            }});
        }}), Promise.resolve()))
        .catch(error => console.error('[SW] Failed to sync', tag, error));
}}

self.addEventListener('sync', (event) => {{
    if (POLICY.syncQueues[event.tag]) {{
        event.waitUntil(replayQueue(event.tag));
    }}
}});

// Push - merge the payload over the notification defaults
self.addEventListener('push', (event) => {{
    let data = Object.assign({{}}, POLICY.notification, {{ timestamp: new Date().toISOString() }});
    if (event.data) {{
        try {{
            data = Object.assign(data, event.data.json());
        }} catch (error) {{
            console.error('[SW] Error parsing push data:', error);
        }}
    }}
    const url = data.url || (data.data && data.data.url) || '/';

    event.waitUntil(
        self.registration.showNotification(data.title || POLICY.notification.title, {{
            body: data.body,
            icon: data.icon,
            badge: data.badge,
            tag: data.tag || POLICY.notification.tag,
            vibrate: POLICY.notification.vibrate,
            data: Object.assign({{}}, data, {{ url }}),
            actions: [
                {{ action: 'open', title: 'View' }},
                {{ action: 'dismiss', title: 'Dismiss' }}
            ],
            renotify: true,
            requireInteraction: true
        }})
    );
}});

// Notification click - focus a window already at the target, or open one
self.addEventListener('notificationclick', (event) => {{
    event.notification.close();
    if (event.action === 'dismiss') {{
        return;
    }}
    const target = new URL(event.notification.data.url || '/', self.location.origin).href;
    event.waitUntil(
        clients.matchAll({{ type: 'window', includeUncontrolled: true }}).then(windowClients => {{
            for (const client of windowClients) {{
                if (client.url === target && 'focus' in client) {{
                    return client.focus();
                }}
            }}
            if (clients.openWindow) {{
                return clients.openWindow(target);
            }}
        }})
    );
}});

// Periodic sync - refresh every cached static entry
function refreshContent() {{
    return caches.open(CACHE_NAME).then(cache => cache.keys().then(requests => Promise.all(
        requests.map(request => fetch(request)
            .then(response => {{
                if (response.ok) {{
                    return cache.put(request, response);
                }}
            }})
            .catch(() => console.log('[SW] Failed to update:', request.url)))
    )));
}}

self.addEventListener('periodicsync', (event) => {{
    if (event.tag === POLICY.periodicTag) {{
        event.waitUntil(refreshContent());
    }}
}});

// Messages from pages
self.addEventListener('message', (event) => {{
    const message = event.data || {{}};
    if (message.type === 'SKIP_WAITING') {{
        self.skipWaiting();
    }} else if (message.type === 'CACHE_PAGE' && message.url) {{
        event.waitUntil(caches.open(CACHE_NAME).then(cache => cache.add(message.url)));
    }} else if (message.type === 'GET_VERSION' && event.ports[0]) {{
        event.ports[0].postMessage({{ version: SW_VERSION, cacheName: CACHE_NAME, apiCacheName: API_CACHE }});
    }}
}});
"""


def render_service_worker(config: Config) -> str:
    """Render ``sw.js`` for a configuration."""
    return SERVICE_WORKER_TEMPLATE.format(
        name=config.site.name,
        version=json.dumps(compute_pwa_version(config, SERVICE_WORKER_TEMPLATE)),
        policy=json.dumps(policy_of(config), indent=4),
    )
