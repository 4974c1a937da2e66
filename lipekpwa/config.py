"""Configuration loader with type-safe dataclasses."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

import yaml


class ConfigError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""

    pass


# Shell assets precached on install. Paths are relative to the site origin;
# absolute URLs (web fonts) are fetched cross-origin.
DEFAULT_STATIC_ASSETS = (
    "/",
    "/offline.html",
    "/assets/css/main.css",
    "/assets/js/main.js",
    "/assets/js/pwa.js",
    "/assets/js/config.js",
    "/assets/images/logo.svg",
    "/assets/images/icon-72x72.png",
    "/assets/images/icon-96x96.png",
    "/assets/images/icon-128x128.png",
    "/assets/images/icon-144x144.png",
    "/assets/images/icon-152x152.png",
    "/assets/images/icon-192x192.png",
    "/assets/images/icon-384x384.png",
    "/assets/images/icon-512x512.png",
    "/manifest.json",
    "https://fonts.googleapis.com/css2?family=Montserrat:wght@300;400;500;600;700"
    "&family=Playfair+Display:wght@400;500;600;700&display=swap",
)

ICON_SIZES = (72, 96, 128, 144, 152, 192, 384, 512)
MASKABLE_ICON_SIZES = (192, 512)

REPLAY_POLICIES = ("continue", "abort")
CACHE_BACKENDS = ("sqlite", "memory")


def _get_default_cache_path() -> str:
    """Get the default cache database path using XDG-compliant directory."""
    home = Path.home()
    return str(home / ".local" / "share" / "lipekpwa" / "cache.db")


DEFAULT_CACHE_PATH = _get_default_cache_path()


@dataclass(frozen=True)
class SiteConfig:
    """Identity of the site served by the worker."""

    name: str = "Lipek Fashion"
    short_name: str = "Lipek"
    description: str = "Premium Custom Tailoring & African Fashion in Houston, Texas."
    origin: str = "https://lipekfashion.com"
    version: str = "1.0.0"
    theme_color: str = "#1a1a1a"
    background_color: str = "#ffffff"

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigError("Site name cannot be empty")
        if not self.origin.startswith(("http://", "https://")):
            raise ConfigError(f"Site origin must start with http:// or https://, got '{self.origin}'")
        parsed = urlparse(self.origin)
        if not parsed.netloc:
            raise ConfigError(f"Site origin has no host: '{self.origin}'")
        if parsed.path not in ("", "/") or parsed.query or parsed.fragment:
            raise ConfigError(f"Site origin must not contain a path, query or fragment: '{self.origin}'")
        if not self.version:
            raise ConfigError("Site version cannot be empty")

    @property
    def base_url(self) -> str:
        """Origin without a trailing slash."""
        return self.origin.rstrip("/")


@dataclass(frozen=True)
class CacheConfig:
    """Naming and storage of the cache partitions.

    Partition names carry the version as a suffix. Bumping ``version`` is what
    evicts the previous partitions when the new instance activates.
    """

    static_prefix: str = "lipek-fashion"
    api_prefix: str = "lipek-api"
    version: int = 1
    backend: str = "sqlite"
    path: str = DEFAULT_CACHE_PATH

    def __post_init__(self) -> None:
        if not self.static_prefix or not self.api_prefix:
            raise ConfigError("Cache partition prefixes cannot be empty")
        if self.static_prefix == self.api_prefix:
            raise ConfigError(f"Static and API cache prefixes must differ (both '{self.static_prefix}')")
        if self.version < 1:
            raise ConfigError(f"Cache version must be at least 1 (got {self.version})")
        if self.backend not in CACHE_BACKENDS:
            raise ConfigError(f"Invalid cache backend '{self.backend}'. Must be one of: {CACHE_BACKENDS}")

    @property
    def static_name(self) -> str:
        return f"{self.static_prefix}-v{self.version}"

    @property
    def api_name(self) -> str:
        return f"{self.api_prefix}-v{self.version}"

    @property
    def current_names(self) -> tuple[str, str]:
        return (self.static_name, self.api_name)


@dataclass(frozen=True)
class RoutingConfig:
    """Request classification and the precache manifest."""

    api_prefix: str = "/api/"
    offline_page: str = "/offline.html"
    static_assets: tuple[str, ...] = DEFAULT_STATIC_ASSETS

    def __post_init__(self) -> None:
        if not self.api_prefix.startswith("/"):
            raise ConfigError(f"API prefix must start with '/', got '{self.api_prefix}'")
        if not self.offline_page.startswith("/"):
            raise ConfigError(f"Offline page must be a path starting with '/', got '{self.offline_page}'")
        if self.offline_page not in self.static_assets:
            raise ConfigError(f"Offline page '{self.offline_page}' must be listed in static_assets")
        for asset in self.static_assets:
            if not asset.startswith(("/", "http://", "https://")):
                raise ConfigError(f"Static asset must be a path or an http(s) URL, got '{asset}'")
        if len(set(self.static_assets)) != len(self.static_assets):
            raise ConfigError("Duplicate entries in static_assets")


@dataclass(frozen=True)
class SyncQueueConfig:
    """An offline outbox: where queued items are read and where they are replayed."""

    tag: str
    queue_url: str
    submit_url: str

    def __post_init__(self) -> None:
        if not self.tag:
            raise ConfigError("Sync queue tag cannot be empty")
        if not self.queue_url.startswith("/"):
            raise ConfigError(f"Queue URL must be a path for '{self.tag}', got '{self.queue_url}'")
        if not self.submit_url.startswith("/"):
            raise ConfigError(f"Submit URL must be a path for '{self.tag}', got '{self.submit_url}'")


DEFAULT_SYNC_QUEUES = (
    SyncQueueConfig(tag="sync-bookings", queue_url="/api/bookings/offline", submit_url="/api/bookings"),
    SyncQueueConfig(tag="sync-forms", queue_url="/api/contact/offline", submit_url="/api/contact"),
)


@dataclass(frozen=True)
class SyncConfig:
    """Background sync and periodic refresh settings."""

    policy: str = "continue"  # continue past a failed item, or abort the batch
    queues: tuple[SyncQueueConfig, ...] = DEFAULT_SYNC_QUEUES
    periodic_tag: str = "update-content"
    periodic_interval_seconds: int = 0  # 0 disables the local periodic trigger

    def __post_init__(self) -> None:
        if self.policy not in REPLAY_POLICIES:
            raise ConfigError(f"Invalid sync policy '{self.policy}'. Must be one of: {REPLAY_POLICIES}")
        tags = [queue.tag for queue in self.queues]
        duplicates = {tag for tag in tags if tags.count(tag) > 1}
        if duplicates:
            raise ConfigError(f"Duplicate sync tags found: {duplicates}")
        if not self.periodic_tag:
            raise ConfigError("Periodic sync tag cannot be empty")
        if self.periodic_tag in tags:
            raise ConfigError(f"Periodic tag '{self.periodic_tag}' collides with a sync queue tag")
        if self.periodic_interval_seconds < 0:
            raise ConfigError(
                f"Periodic interval must be non-negative (got {self.periodic_interval_seconds})"
            )

    def queue_for(self, tag: str) -> SyncQueueConfig | None:
        """Return the queue bound to a sync tag, if any."""
        for queue in self.queues:
            if queue.tag == tag:
                return queue
        return None


@dataclass(frozen=True)
class NotificationConfig:
    """Defaults merged under every push payload."""

    title: str = "Lipek Fashion"
    body: str = "Something new from Lipek Fashion!"
    icon: str = "/assets/images/icon-192x192.png"
    badge: str = "/assets/images/icon-72x72.png"
    tag: str = "default"
    vibrate: tuple[int, ...] = (200, 100, 200)

    def __post_init__(self) -> None:
        if not self.title:
            raise ConfigError("Notification title cannot be empty")
        if any(v < 0 for v in self.vibrate):
            raise ConfigError("Notification vibrate pattern must be non-negative")


@dataclass(frozen=True)
class NetworkConfig:
    """Settings of the network fetch capability."""

    timeout_seconds: int = 30
    user_agent: str = "LipekPWA/1.0"

    def __post_init__(self) -> None:
        if self.timeout_seconds < 1:
            raise ConfigError(f"Network timeout must be at least 1 second (got {self.timeout_seconds})")
        if not self.user_agent:
            raise ConfigError("User-Agent cannot be empty")


@dataclass(frozen=True)
class ProxyConfig:
    """Configuration for the offline proxy server."""

    enabled: bool = True
    host: str = "127.0.0.1"
    port: int = 8080

    def __post_init__(self) -> None:
        if self.port < 1 or self.port > 65535:
            raise ConfigError(f"Proxy port must be between 1 and 65535, got {self.port}")


@dataclass(frozen=True)
class Config:
    """Main configuration container."""

    site: SiteConfig = field(default_factory=SiteConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    routing: RoutingConfig = field(default_factory=RoutingConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    proxy: ProxyConfig = field(default_factory=ProxyConfig)


def _section(data: dict, name: str) -> dict:
    """Return a config section as a dict, treating a missing section as empty."""
    value = data.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{name}' section must be a dictionary")
    return value


def _parse_site_config(data: dict) -> SiteConfig:
    """Parse site configuration section."""
    defaults = SiteConfig()
    return SiteConfig(
        name=str(data.get("name", defaults.name)),
        short_name=str(data.get("short_name", defaults.short_name)),
        description=str(data.get("description", defaults.description)),
        origin=str(data.get("origin", defaults.origin)),
        version=str(data.get("version", defaults.version)),
        theme_color=str(data.get("theme_color", defaults.theme_color)),
        background_color=str(data.get("background_color", defaults.background_color)),
    )


def _parse_cache_config(data: dict) -> CacheConfig:
    """Parse cache configuration section."""
    return CacheConfig(
        static_prefix=str(data.get("static_prefix", "lipek-fashion")),
        api_prefix=str(data.get("api_prefix", "lipek-api")),
        version=int(data.get("version", 1)),
        backend=str(data.get("backend", "sqlite")),
        path=os.path.expanduser(str(data.get("path", DEFAULT_CACHE_PATH))),
    )


def _parse_routing_config(data: dict) -> RoutingConfig:
    """Parse routing configuration section."""
    static_assets = data.get("static_assets")
    if static_assets is None:
        static_assets = DEFAULT_STATIC_ASSETS
    elif not isinstance(static_assets, list):
        raise ConfigError("'routing.static_assets' must be a list")

    return RoutingConfig(
        api_prefix=str(data.get("api_prefix", "/api/")),
        offline_page=str(data.get("offline_page", "/offline.html")),
        static_assets=tuple(str(asset) for asset in static_assets),
    )


def _parse_sync_queue_config(data: dict, index: int) -> SyncQueueConfig:
    """Parse a single sync queue entry."""
    if not isinstance(data, dict):
        raise ConfigError(f"Sync queue entry {index} must be a dictionary")

    for key in ("tag", "queue_url", "submit_url"):
        if data.get(key) is None:
            raise ConfigError(f"Sync queue entry {index} is missing '{key}' field")

    return SyncQueueConfig(
        tag=str(data["tag"]),
        queue_url=str(data["queue_url"]),
        submit_url=str(data["submit_url"]),
    )


def _parse_sync_config(data: dict) -> SyncConfig:
    """Parse sync configuration section."""
    queues_data = data.get("queues")
    if queues_data is None:
        queues = DEFAULT_SYNC_QUEUES
    else:
        if not isinstance(queues_data, list):
            raise ConfigError("'sync.queues' must be a list")
        queues = tuple(_parse_sync_queue_config(entry, i) for i, entry in enumerate(queues_data))

    return SyncConfig(
        policy=str(data.get("policy", "continue")).lower(),
        queues=queues,
        periodic_tag=str(data.get("periodic_tag", "update-content")),
        periodic_interval_seconds=int(data.get("periodic_interval_seconds", 0)),
    )


def _parse_notification_config(data: dict) -> NotificationConfig:
    """Parse notifications configuration section."""
    defaults = NotificationConfig()
    vibrate = data.get("vibrate", list(defaults.vibrate))
    if not isinstance(vibrate, list):
        raise ConfigError("'notifications.vibrate' must be a list of milliseconds")

    return NotificationConfig(
        title=str(data.get("title", defaults.title)),
        body=str(data.get("body", defaults.body)),
        icon=str(data.get("icon", defaults.icon)),
        badge=str(data.get("badge", defaults.badge)),
        tag=str(data.get("tag", defaults.tag)),
        vibrate=tuple(int(v) for v in vibrate),
    )


def _parse_network_config(data: dict) -> NetworkConfig:
    """Parse network configuration section."""
    return NetworkConfig(
        timeout_seconds=int(data.get("timeout_seconds", 30)),
        user_agent=str(data.get("user_agent", "LipekPWA/1.0")),
    )


def _parse_proxy_config(data: dict) -> ProxyConfig:
    """Parse proxy configuration section."""
    return ProxyConfig(
        enabled=bool(data.get("enabled", True)),
        host=str(data.get("host", "127.0.0.1")),
        port=int(data.get("port", 8080)),
    )


def _apply_env_overrides(config_data: dict) -> dict:
    """Apply environment variable overrides to configuration.

    Supported overrides:
    - LIPEKPWA_ORIGIN: Override site.origin
    - LIPEKPWA_CACHE_VERSION: Override cache.version
    - LIPEKPWA_CACHE_PATH: Override cache.path
    - LIPEKPWA_CACHE_BACKEND: Override cache.backend
    - LIPEKPWA_PROXY_PORT: Override proxy.port
    - LIPEKPWA_PROXY_ENABLED: Override proxy.enabled (true/false)
    - LIPEKPWA_SYNC_POLICY: Override sync.policy
    """
    for section in ("site", "cache", "proxy", "sync"):
        if config_data.get(section) is None:
            config_data[section] = {}

    origin = os.environ.get("LIPEKPWA_ORIGIN")
    if origin is not None:
        config_data["site"]["origin"] = origin

    cache_version = os.environ.get("LIPEKPWA_CACHE_VERSION")
    if cache_version is not None:
        config_data["cache"]["version"] = int(cache_version)

    cache_path = os.environ.get("LIPEKPWA_CACHE_PATH")
    if cache_path is not None:
        config_data["cache"]["path"] = cache_path

    cache_backend = os.environ.get("LIPEKPWA_CACHE_BACKEND")
    if cache_backend is not None:
        config_data["cache"]["backend"] = cache_backend

    proxy_port = os.environ.get("LIPEKPWA_PROXY_PORT")
    if proxy_port is not None:
        config_data["proxy"]["port"] = int(proxy_port)

    proxy_enabled = os.environ.get("LIPEKPWA_PROXY_ENABLED")
    if proxy_enabled is not None:
        config_data["proxy"]["enabled"] = proxy_enabled.lower() in ("true", "1", "yes")

    sync_policy = os.environ.get("LIPEKPWA_SYNC_POLICY")
    if sync_policy is not None:
        config_data["sync"]["policy"] = sync_policy

    return config_data


def parse_config(data: dict) -> Config:
    """Build a validated Config from already-parsed YAML data.

    Raises:
        ConfigError: If any section is invalid.
    """
    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a YAML dictionary")

    try:
        return Config(
            site=_parse_site_config(_section(data, "site")),
            cache=_parse_cache_config(_section(data, "cache")),
            routing=_parse_routing_config(_section(data, "routing")),
            sync=_parse_sync_config(_section(data, "sync")),
            notifications=_parse_notification_config(_section(data, "notifications")),
            network=_parse_network_config(_section(data, "network")),
            proxy=_parse_proxy_config(_section(data, "proxy")),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid configuration value: {e}")


def load_config(config_path: str | None = None) -> Config:
    """Load and validate configuration from a YAML file.

    Args:
        config_path: Path to the YAML configuration file. When None, the
            built-in defaults are used (environment overrides still apply).

    Returns:
        Validated Config object.

    Raises:
        ConfigError: If the file cannot be read or configuration is invalid.
    """
    if config_path is None:
        data: dict = {}
    else:
        path = Path(config_path)

        if not path.exists():
            raise ConfigError(f"Configuration file not found: {config_path}")

        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse YAML configuration: {e}")
        except OSError as e:
            raise ConfigError(f"Failed to read configuration file: {e}")

        if data is None:
            data = {}

        if not isinstance(data, dict):
            raise ConfigError("Configuration must be a YAML dictionary")

    try:
        data = _apply_env_overrides(data)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid environment override: {e}")

    return parse_config(data)
