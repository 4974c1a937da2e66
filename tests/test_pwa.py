"""Tests for the rendered PWA artifacts."""

import json
from pathlib import Path

from lipekpwa._pwa import (
    SERVICE_WORKER_TEMPLATE,
    SW_REGISTRATION_JS,
    compute_pwa_version,
    render_manifest,
    render_offline_page,
    render_service_worker,
)
from lipekpwa.assets import render_pwa_assets, write_pwa_assets
from lipekpwa.config import CacheConfig, Config, RoutingConfig, SiteConfig, SyncConfig


class TestVersion:
    """Tests for compute_pwa_version function."""

    def test_prefixed_with_site_version(self) -> None:
        """The site version leads the tag."""
        assert compute_pwa_version(Config()).startswith("1.0.0-")

    def test_stable_for_same_config(self) -> None:
        """Same policy, same version."""
        assert compute_pwa_version(Config()) == compute_pwa_version(Config())

    def test_changes_with_policy(self) -> None:
        """Any policy change yields a new version."""
        assert compute_pwa_version(Config()) != compute_pwa_version(Config(cache=CacheConfig(version=2)))

    def test_changes_with_template(self) -> None:
        """Template edits yield a new version."""
        assert compute_pwa_version(Config(), "a") != compute_pwa_version(Config(), "b")


class TestServiceWorker:
    """Tests for render_service_worker function."""

    def test_embeds_partition_names_and_manifest(self) -> None:
        """The script carries the configured names and assets."""
        script = render_service_worker(Config(cache=CacheConfig(version=4)))

        assert '"staticCache": "lipek-fashion-v4"' in script
        assert '"apiCache": "lipek-api-v4"' in script
        assert '"/offline.html"' in script
        assert '"/assets/images/icon-512x512.png"' in script

    def test_embeds_queue_endpoints(self) -> None:
        """Sync tags map to their queue and submit endpoints."""
        script = render_service_worker(Config())

        assert '"sync-bookings"' in script
        assert '"queue": "/api/bookings/offline"' in script
        assert '"submit": "/api/contact"' in script
        assert '"periodicTag": "update-content"' in script

    def test_embeds_version(self) -> None:
        """The version constant matches the computed version."""
        config = Config()
        version = compute_pwa_version(config, SERVICE_WORKER_TEMPLATE)
        assert f'const SW_VERSION = "{version}";' in render_service_worker(config)

    def test_handles_every_event(self) -> None:
        """Listeners exist for every worker event."""
        script = render_service_worker(Config())
        for event in ("install", "activate", "fetch", "sync", "push", "notificationclick", "periodicsync", "message"):
            assert f"addEventListener('{event}'" in script

    def test_no_unformatted_braces(self) -> None:
        """Doubled braces are collapsed by rendering."""
        assert "{{" not in render_service_worker(Config())

    def test_embeds_replay_policy(self) -> None:
        """The browser replay follows the configured continue or abort policy."""
        assert '"replayPolicy": "continue"' in render_service_worker(Config())

        script = render_service_worker(Config(sync=SyncConfig(policy="abort")))
        assert '"replayPolicy": "abort"' in script
        assert "POLICY.replayPolicy === 'abort'" in script

    def test_replay_treats_error_status_as_failure(self) -> None:
        """A non-ok submit response counts as a failed item."""
        script = render_service_worker(Config())
        replay = script[script.index("function replayItem") : script.index("function replayQueue")]

        assert "if (!response.ok)" in replay
        assert "return false;" in replay

    def test_policy_changes_version(self) -> None:
        """Switching the replay policy ships a new worker."""
        abort = Config(sync=SyncConfig(policy="abort"))
        assert compute_pwa_version(abort) != compute_pwa_version(Config())


class TestManifest:
    """Tests for render_manifest function."""

    def test_lists_every_icon(self) -> None:
        """Every size is listed, with maskable 192 and 512."""
        manifest = json.loads(render_manifest(Config(), "1.0.0-test"))

        any_sizes = [i["sizes"] for i in manifest["icons"] if i["purpose"] == "any"]
        maskable = [i["sizes"] for i in manifest["icons"] if i["purpose"] == "maskable"]
        assert any_sizes == [f"{s}x{s}" for s in (72, 96, 128, 144, 152, 192, 384, 512)]
        assert maskable == ["192x192", "512x512"]

    def test_site_identity(self) -> None:
        """Name, colours and display mode come from the site config."""
        site = SiteConfig(name="Lipek Atelier", short_name="Atelier", theme_color="#000000")
        manifest = json.loads(render_manifest(Config(site=site), "2.0.0-abc"))

        assert manifest["name"] == "Lipek Atelier"
        assert manifest["short_name"] == "Atelier"
        assert manifest["theme_color"] == "#000000"
        assert manifest["display"] == "standalone"
        assert manifest["version"] == "2.0.0-abc"

    def test_shortcuts(self) -> None:
        """Booking and gallery shortcuts are offered."""
        manifest = json.loads(render_manifest(Config(), "v"))
        assert [s["url"] for s in manifest["shortcuts"]] == ["/book-fitting/", "/gallery/"]


class TestRegistrationAndOfflinePage:
    """Tests for pwa.js and offline.html."""

    def test_registration_handles_updates_and_install(self) -> None:
        """pwa.js registers, offers updates and wires the install button."""
        assert "register('/sw.js')" in SW_REGISTRATION_JS
        assert "SKIP_WAITING" in SW_REGISTRATION_JS
        assert "controllerchange" in SW_REGISTRATION_JS
        assert "beforeinstallprompt" in SW_REGISTRATION_JS
        assert "install-button" in SW_REGISTRATION_JS

    def test_offline_page_escapes_site_name(self) -> None:
        """The site name is HTML-escaped."""
        page = render_offline_page(Config(site=SiteConfig(name="Lipek <Fashion>")))
        assert "Lipek &lt;Fashion&gt;" in page
        assert "<Fashion>" not in page


class TestWritePwaAssets:
    """Tests for the asset writer."""

    def test_writes_all_artifacts(self, tmp_path: Path) -> None:
        """Every artifact lands under the output directory."""
        written = write_pwa_assets(Config(), tmp_path / "public")

        relative = sorted(str(p.relative_to(tmp_path / "public")) for p in written)
        assert relative == ["assets/js/pwa.js", "manifest.json", "offline.html", "sw.js"]
        assert json.loads((tmp_path / "public" / "manifest.json").read_text())["name"] == "Lipek Fashion"

    def test_offline_page_path_follows_config(self) -> None:
        """A custom offline page path is honoured."""
        routing = RoutingConfig(offline_page="/pages/offline/", static_assets=("/", "/pages/offline/"))
        assert "pages/offline/index.html" in render_pwa_assets(Config(routing=routing))
