"""Service Worker registration script (``assets/js/pwa.js``).

Registers the worker at window load, shows an update banner when a new
version is waiting, reloads once the new worker takes control, and wires the
"Add to Home Screen" button to the deferred install prompt.
"""

SW_REGISTRATION_JS = """// PWA: Service Worker registration and install prompt
// Rendered by lipekpwa build-pwa; do not edit by hand.
if ('serviceWorker' in navigator) {
    // Reload once when a new worker takes control
    let refreshing = false;
    navigator.serviceWorker.addEventListener('controllerchange', () => {
        if (refreshing) return;
        refreshing = true;
        console.log('[PWA] New version activated, refreshing...');
        window.location.reload();
    });

    window.addEventListener('load', () => {
        navigator.serviceWorker.register('/sw.js')
            .then(registration => {
                console.log('[PWA] Service Worker registered:', registration.scope);

                registration.addEventListener('updatefound', () => {
                    const newWorker = registration.installing;
                    newWorker.addEventListener('statechange', () => {
                        if (newWorker.state === 'installed' && navigator.serviceWorker.controller) {
                            showUpdateNotification(newWorker);
                        }
                    });
                });
            })
            .catch(error => {
                console.error('[PWA] Service Worker registration failed:', error);
            });
    });
}

function showUpdateNotification(worker) {
    if (document.getElementById('pwa-update-banner')) return;
    const banner = document.createElement('div');
    banner.id = 'pwa-update-banner';
    banner.className = 'pwa-update-banner';
    banner.setAttribute('role', 'alert');
    banner.textContent = 'A new version is available. ';
    const button = document.createElement('button');
    button.type = 'button';
    button.textContent = 'Update';
    button.addEventListener('click', () => {
        worker.postMessage({ type: 'SKIP_WAITING' });
        banner.remove();
    });
    banner.appendChild(button);
    document.body.appendChild(banner);
}

// Install prompt
let deferredPrompt = null;
window.addEventListener('beforeinstallprompt', (event) => {
    event.preventDefault();
    deferredPrompt = event;
    showInstallPromotion();
});

function showInstallPromotion() {
    const installButton = document.getElementById('install-button');
    if (installButton) {
        installButton.style.display = 'block';
        installButton.addEventListener('click', installApp);
    }
}

async function installApp() {
    if (!deferredPrompt) return;
    deferredPrompt.prompt();
    const { outcome } = await deferredPrompt.userChoice;
    console.log('[PWA] Install prompt outcome:', outcome);
    deferredPrompt = null;
}
"""
