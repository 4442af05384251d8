from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from .client import BazaarClient, BazaarError, BazaarHTTPError, NetworkError
from .config import Config
from .models import strip_source_host

logger = logging.getLogger(__name__)

DownloadProgress = Callable[[str, float], None]


class LockRegistry:
    """
    Lazily created per-key locks.

    The registry lock only covers lookup/creation; entries are never removed.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


def split_artifact_id(artifact_id: str) -> tuple[str, str]:
    """``https://github.com/owner/repo@hash[/asset]`` -> (origin URL, hash part)."""
    at_idx = artifact_id.rfind("@")
    if at_idx <= 0:
        raise BazaarError(f"Invalid artifact identifier {artifact_id!r}. Expected <repoURL>@<hash>.")
    return artifact_id[:at_idx], artifact_id[at_idx + 1 :]


class DownloadCoordinator:
    """
    Downloads registry artifacts, at most one network fetch per artifact at a time.

    Callers waiting on the same artifact still perform their own fetch once the
    first one finishes; bytes are not shared between them.
    """

    def __init__(
        self,
        client: BazaarClient,
        cfg: Config,
        *,
        on_progress: DownloadProgress | None = None,
        locks: LockRegistry | None = None,
    ) -> None:
        self._client = client
        self._cfg = cfg
        self._on_progress = on_progress
        self.locks = locks or LockRegistry()
        self._pending_lock = threading.Lock()
        self._pending: set[threading.Thread] = set()

    def artifact_url(self, artifact_id: str) -> str:
        return f"{self._cfg.registry_url.rstrip('/')}/package/{strip_source_host(artifact_id)}"

    def download(self, artifact_id: str, *, report_progress: bool = False, system_id: str = "") -> bytes:
        repo_url, _ = split_artifact_id(artifact_id)
        url = self.artifact_url(artifact_id)

        on_chunk = None
        if report_progress and self._on_progress is not None:
            progress = self._on_progress

            def on_chunk(downloaded: int, total: int) -> None:
                if total > 0:
                    progress(repo_url, downloaded / total)

        with self.locks.lock_for(strip_source_host(artifact_id)):
            try:
                data = self._client.download(url, on_chunk=on_chunk)
            except BazaarHTTPError as e:
                logger.error("get bazaar package [%s] failed: %d", url, e.status_code)
                raise NetworkError(f"get bazaar package failed: HTTP {e.status_code}", url=url) from e
            except BazaarError as e:
                logger.error("get bazaar package [%s] failed: %s", url, e)
                raise NetworkError("get bazaar package failed, please check your network", url=url) from e

        self._dispatch_download_count(strip_source_host(artifact_id), system_id)
        return data

    def _dispatch_download_count(self, repo_url_hash: str, system_id: str) -> None:
        if ".md" in repo_url_hash or not system_id:
            return
        t = threading.Thread(
            target=self._run_download_count,
            args=(repo_url_hash, system_id),
            name="bazaar-download-count",
            daemon=True,
        )
        with self._pending_lock:
            self._pending.add(t)
        t.start()

    def _run_download_count(self, repo_url_hash: str, system_id: str) -> None:
        try:
            self._inc_download_count(repo_url_hash, system_id)
        finally:
            with self._pending_lock:
                self._pending.discard(threading.current_thread())

    def wait_pending(self, timeout_s: float) -> None:
        """Give in-flight download-count requests up to ``timeout_s`` to finish."""
        deadline = time.monotonic() + timeout_s
        with self._pending_lock:
            pending = list(self._pending)
        for t in pending:
            t.join(max(0.0, deadline - time.monotonic()))

    def _inc_download_count(self, repo_url_hash: str, system_id: str) -> None:
        repo = repo_url_hash.split("@", 1)[0]
        url = f"{self._cfg.cloud_url.rstrip('/')}/apis/siyuan/bazaar/addBazaarPackageDownloadCount"
        try:
            self._client.request(
                method="POST",
                url=url,
                json_body={"systemID": system_id, "repo": repo},
                timeout_s=self._cfg.timeout_s,
            )
        except Exception as e:
            # Telemetry never reaches the caller.
            logger.debug("inc bazaar package [%s] downloads failed: %s", repo, e)
