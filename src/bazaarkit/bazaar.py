"""
Marketplace service: the long-lived object that owns the caches, lock
registries and HTTP client, and wires listing, install and readme flows
together.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Callable

from .cache import PackageMetadataCache, RemoteIndexCache
from .client import BazaarClient, BazaarError, DescriptorParseError, PackageNotFoundError
from .config import Config
from .connectivity import ConnectivityGate, Notifier
from .descriptors import install_path, installed_dir_names, read_descriptor
from .downloads import DownloadCoordinator, DownloadProgress
from .install import InstallationPipeline, dir_size
from .locales import DEFAULT_README, apply_preferred, preferred_name, preferred_readme
from .models import Package, StageRepo, strip_source_host
from .readme import ReadmeRenderer, decode_markdown, remote_link_base, render
from .versions import compare_versions, disallow_display, is_incompatible, is_outdated

logger = logging.getLogger(__name__)

DESCRIPTOR_WORKERS = 8
TELEMETRY_DRAIN_S = 5.0


def human_bytes(size: int) -> str:
    if size < 1000:
        return f"{size} B"
    value = float(size)
    for unit in ("kB", "MB", "GB", "TB", "PB"):
        value /= 1000.0
        if value < 1000.0 or unit == "PB":
            return f"{value:.2f}".rstrip("0").rstrip(".") + f" {unit}"
    raise AssertionError("unreachable")


def format_updated(updated: str) -> str:
    raw = updated.strip()
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).strftime("%Y-%m-%d")
    except ValueError:
        pass
    if "T" in raw:
        return raw[: raw.index("T")]
    return raw.replace("T", "").replace("Z", "")


def _is_within(target: Path, base: Path) -> bool:
    resolved = target.resolve()
    return base.resolve() in resolved.parents


def _install_size(path: Path) -> int:
    try:
        return dir_size(path)
    except OSError as e:
        raise BazaarError(f"Could not measure {path.name}: {e}") from e


class Bazaar:
    def __init__(
        self,
        cfg: Config,
        *,
        client: BazaarClient | None = None,
        renderer: ReadmeRenderer | None = None,
        notify: Notifier | None = None,
        on_progress: DownloadProgress | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cfg = cfg
        self.client = client or BazaarClient(
            timeout_s=cfg.timeout_s,
            download_timeout_s=cfg.download_timeout_s,
            probe_timeout_s=cfg.probe_timeout_s,
        )
        self.renderer = renderer
        self.workspace = cfg.workspace_path
        self.gate = ConnectivityGate(self.client, cfg.registry_url, notify=notify)
        self.index = RemoteIndexCache(self.client, cfg, clock=clock)
        self.metadata = PackageMetadataCache(self.client, cfg, clock=clock)
        self.downloads = DownloadCoordinator(self.client, cfg, on_progress=on_progress)
        self.pipeline = InstallationPipeline(temp_dir=cfg.temp_path, metadata=self.metadata)

    def close(self) -> None:
        self.downloads.wait_pending(TELEMETRY_DRAIN_S)
        self.client.close()

    def __enter__(self) -> "Bazaar":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _is_current(self, pkg_type: str, name: str) -> bool:
        if pkg_type == "themes":
            return bool(self.cfg.current_theme) and name == self.cfg.current_theme
        if pkg_type == "icons":
            return bool(self.cfg.current_icon) and name == self.cfg.current_icon
        return False

    def _local_package(self, pkg_type: str, name: str) -> Package | None:
        try:
            return read_descriptor(self.workspace, pkg_type, name)
        except (PackageNotFoundError, DescriptorParseError):
            return None

    def online_packages(self, pkg_type: str) -> list[Package]:
        if not self.gate.is_online():
            return []

        stage_index = self.index.stage_index(pkg_type)
        if stage_index is None:
            return []
        stats = self.index.download_stats()

        def _build(repo: StageRepo) -> Package | None:
            return self._online_package(pkg_type, repo, stats)

        with ThreadPoolExecutor(max_workers=DESCRIPTOR_WORKERS) as pool:
            built = list(pool.map(_build, stage_index.repos))

        packages = [p for p in built if p is not None and not disallow_display(p, self.cfg.app_version)]
        packages.sort(key=lambda p: p.updated, reverse=True)
        return packages

    def _online_package(self, pkg_type: str, repo: StageRepo, stats: dict[str, int]) -> Package | None:
        if repo.package is None:
            return None
        cached = self.metadata.descriptor(pkg_type, repo.repo_url, repo.repo_hash)
        if cached is None:
            return None

        # Cached descriptors are shared between threads and calls.
        pkg = replace(cached)
        pkg.repo_url = repo.repo_url
        pkg.repo_hash = repo.repo_hash
        asset_base = f"{self.cfg.registry_url.rstrip('/')}/package/{repo.url}"
        pkg.preview_url = asset_base + "/preview.png?imageslim"
        pkg.preview_url_thumb = asset_base + "/preview.png?imageView2/2/w/436/h/232"
        pkg.icon_url = asset_base + "/icon.png"
        apply_preferred(pkg, self.cfg.lang)

        pkg.updated = repo.updated
        pkg.h_updated = format_updated(repo.updated)
        pkg.stars = repo.stars
        pkg.open_issues = repo.open_issues
        pkg.size = repo.size
        pkg.h_size = human_bytes(repo.size)
        pkg.install_size = repo.install_size
        pkg.h_install_size = human_bytes(repo.install_size)
        pkg.downloads = stats.get(repo.repo_path, 0)
        pkg.incompatible = is_incompatible(pkg, self.cfg.backend, self.cfg.frontend)

        local = self._local_package(pkg_type, pkg.name) if pkg.name else None
        if local is not None:
            pkg.installed = True
            pkg.outdated = compare_versions(local.version, pkg.version) < 0
            pkg.current = self._is_current(pkg_type, pkg.name)
        return pkg

    def installed_packages(self, pkg_type: str) -> list[Package]:
        packages: list[Package] = []
        for name in installed_dir_names(self.workspace, pkg_type):
            pkg = self._local_package(pkg_type, name)
            if pkg is None:
                continue
            path = install_path(self.workspace, pkg_type, name)
            pkg.installed = True
            pkg.current = self._is_current(pkg_type, name)
            pkg.incompatible = is_incompatible(pkg, self.cfg.backend, self.cfg.frontend)
            apply_preferred(pkg, self.cfg.lang)
            try:
                pkg.h_install_date = datetime.fromtimestamp(path.stat().st_mtime).strftime("%Y-%m-%d")
            except OSError as e:
                logger.warning("stat [%s] failed: %s", path, e)
            size_key = strip_source_host(pkg.url) if pkg.url else str(path)
            pkg.install_size = self.metadata.install_size(size_key, lambda: _install_size(path))
            pkg.h_install_size = human_bytes(pkg.install_size)
            packages.append(pkg)

        if not packages:
            return packages

        candidates = self.online_packages(pkg_type)
        for pkg in packages:
            pkg.outdated = is_outdated(pkg, candidates)
        return packages

    def install(
        self,
        pkg_type: str,
        repo_url: str,
        repo_hash: str,
        name: str,
        *,
        report_progress: bool = True,
    ) -> Path:
        path = install_path(self.workspace, pkg_type, name)
        artifact_id = f"{repo_url}@{repo_hash}"
        data = self.downloads.download(artifact_id, report_progress=report_progress, system_id=self.cfg.system_id)
        self.pipeline.install(data, path, artifact_id, display_name=name)
        return path

    def uninstall(self, pkg_type: str, name: str) -> None:
        path = install_path(self.workspace, pkg_type, name)
        local = self._local_package(pkg_type, name)
        display_name = preferred_name(local, self.cfg.lang) if local is not None else name
        self.pipeline.uninstall(path, display_name=display_name)

    def package_readme(self, repo_url: str, repo_hash: str, pkg_type: str) -> str:
        repo_url_hash = f"{repo_url}@{repo_hash}"
        stage_index = self.index.stage_index(pkg_type)
        if stage_index is None:
            return ""
        repo = stage_index.find(strip_source_host(repo_url_hash))
        if repo is None or repo.package is None:
            return ""

        readme_field = repo.package.readme
        readme = preferred_readme(readme_field, self.cfg.lang)
        try:
            data = self.downloads.download(f"{repo_url_hash}/{readme}")
        except BazaarError as e:
            ret = f"Load bazaar package's README.md({readme}) failed: {e}"
            default = readme_field.default.strip() if readme_field is not None else ""
            if not default or readme == default:
                return ret
            readme = default
            try:
                data = self.downloads.download(f"{repo_url_hash}/{readme}")
            except BazaarError as e2:
                return ret + f"<br>Load bazaar package's README.md({readme}) failed: {e2}"

        return render(self.renderer, decode_markdown(data), remote_link_base(repo_url))

    def installed_readme(self, pkg_type: str, name: str) -> str:
        pkg = read_descriptor(self.workspace, pkg_type, name)
        path = install_path(self.workspace, pkg_type, name)
        readme_path = path / preferred_readme(pkg.readme, self.cfg.lang)
        if not _is_within(readme_path, path) or not readme_path.is_file():
            readme_path = path / DEFAULT_README
        try:
            data = readme_path.read_bytes()
        except OSError as e:
            logger.error("read readme [%s] failed: %s", readme_path, e)
            raise PackageNotFoundError(f"README of package {name} not found") from e
        return render(self.renderer, decode_markdown(data), path.resolve().as_uri() + "/")

    def clean_cache(self) -> None:
        self.metadata.flush()
