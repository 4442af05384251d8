from __future__ import annotations

import logging
import os
import shutil
import tempfile
import zipfile
import zlib
from pathlib import Path

from .cache import PackageMetadataCache
from .client import InstallError
from .downloads import LockRegistry

logger = logging.getLogger(__name__)

# zipfile raises NotImplementedError for unknown compression, RuntimeError for
# encrypted entries and EOFError or zlib.error for truncated streams.
_INSTALL_ERRORS = (OSError, zipfile.BadZipFile, RuntimeError, EOFError, ValueError, zlib.error)


def unzip(archive_path: Path, dest: Path) -> None:
    dest.mkdir(parents=True, exist_ok=True)
    base = dest.resolve()
    with zipfile.ZipFile(archive_path, "r") as zf:
        for info in zf.infolist():
            name = info.filename
            if not name:
                continue
            if name.startswith("/"):
                raise InstallError(f"Archive contains an absolute path entry: {name!r}")
            target = (dest / name).resolve()
            if not str(target).startswith(str(base) + os.sep) and target != base:
                raise InstallError(f"Archive contains an invalid path entry: {name!r}")

            if info.is_dir():
                target.mkdir(parents=True, exist_ok=True)
                continue

            target.parent.mkdir(parents=True, exist_ok=True)
            with zf.open(info, "r") as src, target.open("wb") as out:
                shutil.copyfileobj(src, out)


def package_root(unpack_root: Path) -> Path:
    """Unwrap the single top-level folder that archive exporters tend to add."""
    children = list(unpack_root.iterdir())
    if len(children) == 1 and children[0].is_dir():
        return children[0]
    return unpack_root


def dir_size(path: Path) -> int:
    total = 0
    for p in path.rglob("*"):
        if p.is_file() and not p.is_symlink():
            total += p.stat().st_size
    return total


class InstallationPipeline:
    def __init__(self, *, temp_dir: Path, metadata: PackageMetadataCache, path_locks: LockRegistry | None = None) -> None:
        self.scratch_dir = temp_dir.expanduser() / "bazaar" / "package"
        self.metadata = metadata
        self.path_locks = path_locks or LockRegistry()

    def _path_lock(self, install_path: Path):
        return self.path_locks.lock_for(str(install_path.expanduser().resolve()))

    def install(self, data: bytes, install_path: Path, repo_url_hash: str, *, display_name: str | None = None) -> None:
        name = display_name or install_path.name
        with self._path_lock(install_path):
            try:
                self._install(data, install_path)
            except InstallError:
                raise
            except _INSTALL_ERRORS as e:
                logger.error("install bazaar package [%s] into [%s] failed: %s", repo_url_hash, install_path, e)
                raise InstallError(f"install community package [{name}] failed") from e
        self.metadata.invalidate(repo_url_hash)
        logger.info("installed bazaar package [%s] into [%s]", repo_url_hash, install_path)

    def _install(self, data: bytes, install_path: Path) -> None:
        self.scratch_dir.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(prefix="bazaar-", dir=self.scratch_dir) as td:
            archive = Path(td) / "package.zip"
            archive.write_bytes(data)
            unpack_root = Path(td) / "unpacked"
            unzip(archive, unpack_root)
            source_root = package_root(unpack_root)

            dest = install_path.expanduser()
            dest.parent.mkdir(parents=True, exist_ok=True)
            backup = dest.with_name(dest.name + ".bazaar-backup")
            had_existing = dest.exists()
            if backup.exists():
                shutil.rmtree(backup, ignore_errors=True)
            if had_existing:
                dest.rename(backup)

            try:
                shutil.move(str(source_root), str(dest))
            except Exception:
                if dest.exists():
                    shutil.rmtree(dest, ignore_errors=True)
                if had_existing and backup.exists():
                    backup.rename(dest)
                raise
            finally:
                if backup.exists():
                    shutil.rmtree(backup, ignore_errors=True)

    def uninstall(self, install_path: Path, *, display_name: str | None = None) -> None:
        name = display_name or install_path.name
        with self._path_lock(install_path):
            try:
                if install_path.exists():
                    shutil.rmtree(install_path)
            except OSError as e:
                logger.error("remove [%s] failed: %s", install_path, e)
                raise InstallError(f"remove community package [{name}] failed") from e
        self.metadata.flush()
        logger.info("uninstalled bazaar package [%s]", name)
