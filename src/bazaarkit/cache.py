from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from .client import BazaarClient, BazaarError
from .config import Config
from .models import PACKAGE_TYPES, Package, StageIndex, strip_source_host

logger = logging.getLogger(__name__)

V = TypeVar("V")

STAGE_INDEX_TTL_S = 3600.0
STAT_INDEX_TTL_S = 3600.0
REGISTRY_HASH_TTL_S = 3600.0
DESCRIPTOR_TTL_S = 6 * 3600.0
DESCRIPTOR_CLEANUP_S = 30 * 60.0
INSTALL_SIZE_TTL_S = 48 * 3600.0
INSTALL_SIZE_CLEANUP_S = 6 * 3600.0


@dataclass
class _Entry(Generic[V]):
    value: V
    refreshed_at: float


class TTLCache(Generic[V]):
    """
    Mapping of key -> value that is refreshed once ``ttl_s`` has elapsed.

    One lock guards the whole cache, so refreshes of different keys are
    serialized too. A failed refresh keeps (and returns) the previous value.
    """

    def __init__(
        self,
        *,
        ttl_s: float,
        cleanup_interval_s: float | None = None,
        clock: Callable[[], float] = time.time,
        name: str = "cache",
    ) -> None:
        self.ttl_s = ttl_s
        self.cleanup_interval_s = cleanup_interval_s
        self.name = name
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, _Entry[V]] = {}
        self._last_cleanup = clock()

    def _is_fresh(self, entry: _Entry[V], now: float) -> bool:
        return now - entry.refreshed_at <= self.ttl_s

    def _maybe_cleanup(self, now: float) -> None:
        if self.cleanup_interval_s is None or now - self._last_cleanup < self.cleanup_interval_s:
            return
        self._last_cleanup = now
        for key in [k for k, e in self._entries.items() if not self._is_fresh(e, now)]:
            del self._entries[key]

    def get(self, key: str, fetch: Callable[[], V]) -> V | None:
        with self._lock:
            now = self._clock()
            self._maybe_cleanup(now)
            entry = self._entries.get(key)
            if entry is not None and self._is_fresh(entry, now):
                logger.debug("%s hit [%s]", self.name, key)
                return entry.value

            try:
                value = fetch()
            except BazaarError as e:
                logger.error("%s refresh [%s] failed: %s", self.name, key, e)
                return entry.value if entry is not None else None

            self._entries[key] = _Entry(value=value, refreshed_at=now)
            return value

    def peek(self, key: str) -> V | None:
        with self._lock:
            entry = self._entries.get(key)
            return entry.value if entry is not None else None

    def put(self, key: str, value: V) -> None:
        with self._lock:
            self._entries[key] = _Entry(value=value, refreshed_at=self._clock())

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def flush(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def _descriptor_name(pkg_type: str) -> str:
    try:
        return PACKAGE_TYPES[pkg_type][0]
    except KeyError as e:
        raise BazaarError(f"Unknown package type: {pkg_type}") from e


class RemoteIndexCache:
    """Stage indexes per package type plus the aggregate download counters."""

    def __init__(self, client: BazaarClient, cfg: Config, *, clock: Callable[[], float] = time.time) -> None:
        self._client = client
        self._cfg = cfg
        self._stage = TTLCache[StageIndex](ttl_s=STAGE_INDEX_TTL_S, clock=clock, name="stage index")
        self._stats = TTLCache[dict[str, int]](ttl_s=STAT_INDEX_TTL_S, clock=clock, name="download stats")
        self._registry_hash = TTLCache[str](ttl_s=REGISTRY_HASH_TTL_S, clock=clock, name="registry hash")

    def registry_hash(self) -> str | None:
        if self._cfg.registry_hash:
            return self._cfg.registry_hash
        return self._registry_hash.get("bazaar", self._fetch_registry_hash)

    def _fetch_registry_hash(self) -> str:
        url = f"{self._cfg.cloud_url.rstrip('/')}/apis/siyuan/version"
        data = self._client.get_json(f"{url}?ver={self._cfg.app_version}")
        if isinstance(data, dict) and isinstance(data.get("data"), dict):
            data = data["data"]
        value = data.get("bazaar") if isinstance(data, dict) else None
        if not isinstance(value, str) or not value.strip():
            raise BazaarError(f"Version endpoint [{url}] returned no bazaar hash")
        return value.strip()

    def stage_index(self, pkg_type: str) -> StageIndex | None:
        _descriptor_name(pkg_type)
        return self._stage.get(pkg_type, lambda: self._fetch_stage_index(pkg_type))

    def cached_stage_index(self, pkg_type: str) -> StageIndex | None:
        return self._stage.peek(pkg_type)

    def _fetch_stage_index(self, pkg_type: str) -> StageIndex:
        bazaar_hash = self.registry_hash()
        if not bazaar_hash:
            raise BazaarError("Registry hash is unavailable")
        url = f"{self._cfg.registry_url.rstrip('/')}/bazaar@{bazaar_hash}/stage/{pkg_type}.json"
        try:
            return StageIndex.from_json(self._client.get_json(url))
        except ValueError as e:
            raise BazaarError(f"Invalid stage index [{url}]: {e}") from e

    def download_stats(self) -> dict[str, int]:
        return self._stats.get("index", self._fetch_download_stats) or {}

    def _fetch_download_stats(self) -> dict[str, int]:
        url = f"{self._cfg.stat_url.rstrip('/')}/bazaar/index.json"
        data = self._client.get_json(url)
        out: dict[str, int] = {}
        if not isinstance(data, dict):
            return out
        for name, item in data.items():
            downloads: Any = item.get("downloads") if isinstance(item, dict) else None
            if isinstance(downloads, int) and not isinstance(downloads, bool):
                out[name] = downloads
        return out


class PackageMetadataCache:
    """Full package descriptors fetched from the registry, and computed install sizes."""

    def __init__(self, client: BazaarClient, cfg: Config, *, clock: Callable[[], float] = time.time) -> None:
        self._client = client
        self._cfg = cfg
        self._descriptors = TTLCache[Package](
            ttl_s=DESCRIPTOR_TTL_S, cleanup_interval_s=DESCRIPTOR_CLEANUP_S, clock=clock, name="descriptor"
        )
        self._sizes = TTLCache[int](
            ttl_s=INSTALL_SIZE_TTL_S, cleanup_interval_s=INSTALL_SIZE_CLEANUP_S, clock=clock, name="install size"
        )

    @staticmethod
    def key(repo_url: str, repo_hash: str) -> str:
        return strip_source_host(f"{repo_url}@{repo_hash}")

    def descriptor(self, pkg_type: str, repo_url: str, repo_hash: str) -> Package | None:
        descriptor = _descriptor_name(pkg_type)
        key = self.key(repo_url, repo_hash)
        return self._descriptors.get(key, lambda: self._fetch_descriptor(key, descriptor, repo_url, repo_hash))

    def _fetch_descriptor(self, key: str, descriptor: str, repo_url: str, repo_hash: str) -> Package:
        url = f"{self._cfg.registry_url.rstrip('/')}/package/{key}/{descriptor}"
        data = self._client.get_json(url)
        try:
            pkg = Package.from_json(data)
        except ValueError as e:
            logger.error("parse %s [%s] failed: %s", descriptor, url, e)
            raise BazaarError(f"Invalid {descriptor} from {url}") from e
        pkg.repo_url = repo_url
        pkg.repo_hash = repo_hash
        return pkg

    def install_size(self, key: str, compute: Callable[[], int]) -> int:
        return self._sizes.get(strip_source_host(key), compute) or 0

    def invalidate(self, repo_url_hash: str) -> None:
        self._descriptors.delete(strip_source_host(repo_url_hash))
        self._sizes.flush()

    def flush(self) -> None:
        self._descriptors.flush()
        self._sizes.flush()
