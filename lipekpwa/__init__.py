"""lipekpwa - Offline cache and sync controller for the Lipek Fashion site."""

import argparse
import logging
import signal
import sys
from threading import Event
from typing import Optional

__version__ = "1.0.0"

# Global shutdown event for signal handlers
_shutdown_event: Optional[Event] = None

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )


def _handle_shutdown(signum: int, frame: object) -> None:
    """Signal handler for graceful shutdown."""
    sig_name = signal.Signals(signum).name
    logger.info("Received %s, initiating shutdown...", sig_name)
    if _shutdown_event is not None:
        _shutdown_event.set()


def _load_config_or_exit(config_path: Optional[str]):
    from .config import ConfigError, load_config

    try:
        return load_config(config_path)
    except ConfigError as e:
        print(f"Error: {e}")
        sys.exit(1)


def _cmd_run(args: argparse.Namespace) -> None:
    """Execute the run command - start the offline proxy."""
    global _shutdown_event

    _setup_logging(args.verbose)

    logger.info("lipekpwa %s starting...", __version__)

    # Import here to avoid circular imports and allow logging setup first
    from .cache import CacheError, MemoryCacheStorage
    from .config import ConfigError, load_config
    from .controller import OfflineController
    from .database import DatabaseError, SqliteCacheStorage
    from .network import RequestsFetcher
    from .proxy import OfflineProxyServer, ProxyError
    from .refresher import PeriodicRefresher

    # 1. Load configuration
    try:
        config = load_config(args.config)
        logger.info("Configuration loaded from %s", args.config or "built-in defaults")
        logger.info("Serving %s with %d precached assets", config.site.origin, len(config.routing.static_assets))
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        sys.exit(1)

    # 2. Open cache storage
    try:
        if config.cache.backend == "sqlite":
            storage = SqliteCacheStorage.from_path(config.cache.path)
            logger.info("Cache database opened at %s", config.cache.path)
        else:
            storage = MemoryCacheStorage()
            logger.info("Using in-memory cache storage")
    except DatabaseError as e:
        logger.error("Database error: %s", e)
        sys.exit(1)

    fetcher = RequestsFetcher(config.network, config.site.origin)
    controller = OfflineController(config, storage, fetcher)

    # 3. Install and activate
    try:
        controller.start()
    except CacheError as e:
        logger.error("Install failed: %s", e)
        fetcher.close()
        storage.close()
        sys.exit(1)

    # 4. Setup shutdown handler
    _shutdown_event = Event()
    signal.signal(signal.SIGTERM, _handle_shutdown)
    signal.signal(signal.SIGINT, _handle_shutdown)

    # 5. Start components
    proxy: Optional[OfflineProxyServer] = None
    refresher = PeriodicRefresher(controller, config.sync.periodic_interval_seconds)

    try:
        if config.proxy.enabled:
            try:
                proxy = OfflineProxyServer(config.proxy, controller)
                proxy.start()
            except ProxyError as e:
                logger.error("Failed to start proxy: %s", e)
                logger.warning("Continuing without proxy")
                proxy = None

        refresher.start()

        logger.info("All components started, waiting for shutdown signal...")

        # 6. Wait for shutdown signal
        _shutdown_event.wait()

    except KeyboardInterrupt:
        # Backup handler if signal doesn't work
        logger.info("Keyboard interrupt received")
    finally:
        # 7. Cleanup - stop all components
        logger.info("Shutting down components...")

        refresher.stop()

        if proxy is not None:
            proxy.stop()

        fetcher.close()
        storage.close()
        logger.info("Cache storage closed")

        logger.info("Shutdown complete")


def _cmd_build_pwa(args: argparse.Namespace) -> None:
    """Execute the build-pwa command - write the browser-side artifacts."""
    from .assets import write_pwa_assets

    config = _load_config_or_exit(args.config)

    try:
        written = write_pwa_assets(config, args.output)
    except OSError as e:
        print(f"Error: Failed to write PWA assets - {e}")
        sys.exit(1)

    for path in written:
        print(f"Wrote {path}")
    print(f"\nCache partitions: {config.cache.static_name}, {config.cache.api_name}")


def _open_cache_db_or_exit(config):
    """Open the SQLite cache database named by the configuration."""
    from pathlib import Path

    from .database import DatabaseError, init_db

    if config.cache.backend != "sqlite":
        print(f"Error: cache backend '{config.cache.backend}' keeps nothing on disk")
        sys.exit(1)

    if not Path(config.cache.path).exists():
        print(f"Error: Cache database not found at {config.cache.path}")
        sys.exit(1)

    try:
        return init_db(config.cache.path)
    except DatabaseError as e:
        print(f"Error: {e}")
        sys.exit(1)


def _cmd_caches(args: argparse.Namespace) -> None:
    """Execute the caches command - list cache partitions."""
    from .database import DatabaseError, list_partitions

    config = _load_config_or_exit(args.config)
    conn = _open_cache_db_or_exit(config)

    try:
        partitions = list_partitions(conn)
    except DatabaseError as e:
        print(f"Error: {e}")
        sys.exit(1)
    finally:
        conn.close()

    if not partitions:
        print("No cache partitions.")
        return

    current = config.cache.current_names
    for name, count in partitions:
        marker = "" if name in current else "  (stale)"
        print(f"{name}: {count} entries{marker}")


def _cmd_clean(args: argparse.Namespace) -> None:
    """Execute the clean command - evict stale (or all) cache partitions."""
    from .database import DatabaseError, delete_partition, list_partitions

    config = _load_config_or_exit(args.config)
    conn = _open_cache_db_or_exit(config)

    try:
        names = [name for name, _ in list_partitions(conn)]
        if not args.all:
            names = [name for name in names if name not in config.cache.current_names]

        deleted = [name for name in names if delete_partition(conn, name)]
    except DatabaseError as e:
        print(f"Error: {e}")
        sys.exit(1)
    finally:
        conn.close()

    if not deleted:
        print("Nothing to delete.")
        return
    for name in deleted:
        print(f"Deleted {name}")
    print(f"\nDeleted {len(deleted)} cache partition(s).")


def _cmd_sync(args: argparse.Namespace) -> None:
    """Execute the sync command - replay one offline queue against the origin."""
    from .cache import CacheStoreManager, MemoryCacheStorage
    from .network import RequestsFetcher
    from .sync import SyncManager

    _setup_logging(args.verbose)
    config = _load_config_or_exit(args.config)

    fetcher = RequestsFetcher(config.network, config.site.origin)
    try:
        caches = CacheStoreManager(config, MemoryCacheStorage(), fetcher)
        report = SyncManager(config, caches, fetcher).sync(args.tag)
    finally:
        fetcher.close()

    if report is None:
        known = ", ".join(queue.tag for queue in config.sync.queues)
        print(f"Error: No offline queue bound to '{args.tag}' (known tags: {known})")
        sys.exit(1)

    if report.error:
        print(f"Error: {report.error}")
        sys.exit(1)

    print(f"{report.tag}: {report.succeeded}/{report.attempted} item(s) replayed")
    if report.aborted:
        print("Batch aborted after the first failure.")

    if not report.ok:
        sys.exit(1)


def _add_config_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-c", "--config",
        default=None,
        help="Path to configuration file (default: built-in Lipek Fashion settings)",
    )


def main() -> None:
    """Main entry point for the lipekpwa package."""
    parser = argparse.ArgumentParser(
        description="lipekpwa - Offline cache and sync controller for the Lipek Fashion site"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"lipekpwa {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command")

    # Run subcommand (default behavior)
    run_parser = subparsers.add_parser(
        "run",
        help="Start the offline proxy (default)",
    )
    _add_config_argument(run_parser)
    run_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )
    run_parser.set_defaults(func=_cmd_run)

    # Build-pwa subcommand
    build_parser = subparsers.add_parser(
        "build-pwa",
        help="Write sw.js, manifest.json, pwa.js and the offline page",
    )
    _add_config_argument(build_parser)
    build_parser.add_argument(
        "-o", "--output",
        default="public",
        help="Site output directory (default: public)",
    )
    build_parser.set_defaults(func=_cmd_build_pwa)

    # Caches subcommand
    caches_parser = subparsers.add_parser(
        "caches",
        help="List cache partitions and their entry counts",
    )
    _add_config_argument(caches_parser)
    caches_parser.set_defaults(func=_cmd_caches)

    # Clean subcommand
    clean_parser = subparsers.add_parser(
        "clean",
        help="Delete cache partitions from previous versions",
    )
    _add_config_argument(clean_parser)
    clean_parser.add_argument(
        "--all",
        action="store_true",
        help="Delete every cache partition, including current ones",
    )
    clean_parser.set_defaults(func=_cmd_clean)

    # Sync subcommand
    sync_parser = subparsers.add_parser(
        "sync",
        help="Replay an offline queue against the origin",
    )
    sync_parser.add_argument("tag", help="Sync tag, e.g. sync-bookings")
    _add_config_argument(sync_parser)
    sync_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )
    sync_parser.set_defaults(func=_cmd_sync)

    args = parser.parse_args()

    # Default to 'run' if no command specified
    if args.command is None:
        args.config = None
        args.verbose = False
        args.func = _cmd_run

    args.func(args)
