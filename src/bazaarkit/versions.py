from __future__ import annotations

import re
from typing import Iterable

from .models import SOURCE_HOST_PREFIX, Package

_Parsed = tuple[tuple[int, int, int], tuple[str, ...] | None]


_NUM = r"0|[1-9][0-9]*"
_IDENTS = r"[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*"
# MAJOR[.MINOR[.PATCH[-pre][+build]]]; the shorthands take no suffix.
_VERSION_RE = re.compile(
    rf"(?P<major>{_NUM})(?:\.(?P<minor>{_NUM})(?:\.(?P<patch>{_NUM})"
    rf"(?:-(?P<pre>{_IDENTS}))?(?:\+(?P<build>{_IDENTS}))?)?)?"
)
_LEADING_ZERO_RE = re.compile(r"0[0-9]+")


def _split_version(version: str) -> _Parsed:
    if not isinstance(version, str):
        raise ValueError("version must be str")
    m = _VERSION_RE.fullmatch(version)
    if m is None:
        raise ValueError(f"Unsupported version format: {version!r}")
    pre = m.group("pre")
    pre_parts = tuple(pre.split(".")) if pre is not None else None
    if pre_parts is not None and any(_LEADING_ZERO_RE.fullmatch(p) for p in pre_parts):
        raise ValueError(f"Unsupported version format: {version!r}")
    nums = (int(m.group("major")), int(m.group("minor") or 0), int(m.group("patch") or 0))
    return nums, pre_parts


def _parse_or_none(version: str) -> _Parsed | None:
    try:
        return _split_version(version)
    except ValueError:
        return None


def _compare_prerelease(pa: tuple[str, ...], pb: tuple[str, ...]) -> int:
    for i in range(max(len(pa), len(pb))):
        if i >= len(pa):
            return -1
        if i >= len(pb):
            return 1
        x = pa[i]
        y = pb[i]
        x_num = x.isdigit()
        y_num = y.isdigit()
        if x_num and y_num:
            xi = int(x)
            yi = int(y)
            if xi < yi:
                return -1
            if xi > yi:
                return 1
            continue
        if x_num and not y_num:
            return -1
        if not x_num and y_num:
            return 1
        if x < y:
            return -1
        if x > y:
            return 1
    return 0


def compare_versions(a: str, b: str) -> int:
    """
    Semantic-version ordering of ``a`` and ``b``, each read as ``"v" + version``.

    Invalid versions sort before every valid one and equal to each other.
    """
    pa = _parse_or_none(a)
    pb = _parse_or_none(b)
    if pa is None or pb is None:
        if pa is None and pb is None:
            return 0
        return -1 if pa is None else 1

    ma, prea = pa
    mb, preb = pb
    if ma < mb:
        return -1
    if ma > mb:
        return 1

    if prea is None and preb is None:
        return 0
    if prea is None:
        return 1
    if preb is None:
        return -1
    return _compare_prerelease(prea, preb)


def is_source_host_repo(url: str) -> bool:
    if not url.startswith(SOURCE_HOST_PREFIX):
        return False
    parts = url[len(SOURCE_HOST_PREFIX) :].split("/")
    return len(parts) == 2 and bool(parts[0].strip()) and bool(parts[1].strip())


def is_outdated(local: Package, candidates: Iterable[Package]) -> bool:
    """
    True when a registry entry with the same URL and name carries a newer version.

    The matching candidate's ``repo_hash`` is copied onto ``local`` so that the
    update can be downloaded afterwards.
    """
    if not is_source_host_repo(local.url):
        return False

    for pkg in candidates:
        if local.url == pkg.url and local.name == pkg.name and compare_versions(local.version, pkg.version) < 0:
            local.repo_hash = pkg.repo_hash
            return True
    return False


def disallow_display(pkg: Package, app_version: str) -> bool:
    # Packages without minAppVersion are still listed.
    if not pkg.min_app_version:
        return False
    return compare_versions(pkg.min_app_version, app_version) > 0


def is_incompatible(pkg: Package, backend: str, frontend: str) -> bool:
    if pkg.backends and "all" not in pkg.backends and backend not in pkg.backends:
        return True
    if pkg.frontends and "all" not in pkg.frontends and frontend not in pkg.frontends:
        return True
    return False
