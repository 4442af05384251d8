from __future__ import annotations

import json
import logging
from pathlib import Path

from .client import BazaarError, DescriptorParseError, PackageNotFoundError
from .models import PACKAGE_TYPES, Package

logger = logging.getLogger(__name__)


def _package_type(pkg_type: str) -> tuple[str, tuple[str, ...]]:
    try:
        return PACKAGE_TYPES[pkg_type]
    except KeyError as e:
        raise BazaarError(f"Unknown package type: {pkg_type}") from e


def slot_dir(workspace: Path, pkg_type: str) -> Path:
    _, parts = _package_type(pkg_type)
    return workspace.joinpath(*parts)


def install_path(workspace: Path, pkg_type: str, dir_name: str) -> Path:
    name = dir_name.strip()
    if not name or name in {".", ".."} or "/" in name or "\\" in name:
        raise BazaarError(f"Invalid package name {dir_name!r}.")
    return slot_dir(workspace, pkg_type) / name


def descriptor_path(workspace: Path, pkg_type: str, dir_name: str) -> Path:
    filename, _ = _package_type(pkg_type)
    return install_path(workspace, pkg_type, dir_name) / filename


def read_descriptor(workspace: Path, pkg_type: str, dir_name: str) -> Package:
    path = descriptor_path(workspace, pkg_type, dir_name)
    if not path.is_file():
        raise PackageNotFoundError(f"{path.name} not found for package {dir_name}")
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        logger.error("read %s [%s] failed: %s", path.name, path, e)
        raise DescriptorParseError(f"Could not read {path.name} of package {dir_name}") from e
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.error("parse %s [%s] failed: %s", path.name, path, e)
        raise DescriptorParseError(f"Could not parse {path.name} of package {dir_name}") from e

    try:
        return Package.from_json(raw)
    except ValueError as e:
        logger.error("parse %s [%s] failed: %s", path.name, path, e)
        raise DescriptorParseError(f"Could not parse {path.name} of package {dir_name}") from e


def installed_dir_names(workspace: Path, pkg_type: str) -> list[str]:
    root = slot_dir(workspace, pkg_type)
    if not root.is_dir():
        return []
    return sorted(p.name for p in root.iterdir() if p.is_dir() and not p.name.startswith("."))
