from __future__ import annotations

import argparse
import json
import logging
import sys
import textwrap
from dataclasses import asdict, replace

from ._version import __version__
from .bazaar import Bazaar
from .client import BazaarError, NetworkError
from .config import Config, apply_env_overrides, config_path, load_config, save_config
from .models import PACKAGE_TYPES

_CONFIG_FIELDS = (
    "registry_url",
    "stat_url",
    "cloud_url",
    "registry_hash",
    "workspace_dir",
    "temp_dir",
    "lang",
    "app_version",
    "system_id",
    "backend",
    "frontend",
    "current_theme",
    "current_icon",
)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="bazaarkit",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description="Install, update and remove marketplace packages.",
        epilog=textwrap.dedent(
            """\
            Environment variables:
              BAZAARKIT_CONFIG_PATH, BAZAARKIT_REGISTRY_URL, BAZAARKIT_WORKSPACE_DIR, BAZAARKIT_LANG, ...
            """
        ),
    )
    p.add_argument("--version", action="version", version=f"bazaarkit {__version__}")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    p.add_argument("--workspace-dir", help="Workspace directory (overrides config/env)")
    p.add_argument("--lang", help="Active locale, e.g. zh_CN")

    sub = p.add_subparsers(dest="cmd", required=True)

    cfg = sub.add_parser("config", help="Manage local config")
    cfg_sub = cfg.add_subparsers(dest="subcmd", required=True)
    cfg_sub.add_parser("path", help="Print config path")
    cfg_sub.add_parser("show", help="Show effective config")
    cfg_set = cfg_sub.add_parser("set", help="Set config fields")
    for name in _CONFIG_FIELDS:
        cfg_set.add_argument("--" + name.replace("_", "-"), dest=name)

    types = sorted(PACKAGE_TYPES)

    list_p = sub.add_parser("list", help="List packages published in the marketplace")
    list_p.add_argument("type", choices=types)
    list_p.add_argument("--json", action="store_true", help="Output JSON")

    installed_p = sub.add_parser("installed", help="List installed packages")
    installed_p.add_argument("type", choices=types)
    installed_p.add_argument("--json", action="store_true", help="Output JSON")

    install_p = sub.add_parser("install", aliases=["i"], help="Install or update a package")
    install_p.add_argument("type", choices=types)
    install_p.add_argument("repo_url", help="Repository URL, e.g. https://github.com/owner/repo")
    install_p.add_argument("repo_hash", help="Repository content hash")
    install_p.add_argument("name", help="Package name (install directory)")

    uninstall_p = sub.add_parser("uninstall", aliases=["remove", "rm"], help="Remove an installed package")
    uninstall_p.add_argument("type", choices=types)
    uninstall_p.add_argument("name")

    readme_p = sub.add_parser("readme", help="Print a package README")
    readme_p.add_argument("type", choices=types)
    readme_p.add_argument("repo_url", nargs="?")
    readme_p.add_argument("repo_hash", nargs="?")
    readme_p.add_argument("--installed", metavar="NAME", help="Read the README of an installed package")

    return p


def _print_table(rows: list[list[str]]) -> None:
    if not rows:
        return
    widths = [0] * len(rows[0])
    for r in rows:
        for i, c in enumerate(r):
            widths[i] = max(widths[i], len(c))
    for r in rows:
        line = "  ".join(c.ljust(widths[i]) for i, c in enumerate(r))
        print(line.rstrip())


def _merge_cfg(base: Config, args: argparse.Namespace) -> Config:
    # Env overrides config; CLI overrides both.
    cfg = apply_env_overrides(base)
    changes = {}
    if getattr(args, "workspace_dir", None):
        changes["workspace_dir"] = args.workspace_dir
    if getattr(args, "lang", None):
        changes["lang"] = args.lang
    return replace(cfg, **changes) if changes else cfg


def _print_progress(repo_url: str, progress: float) -> None:
    sys.stderr.write(f"\rdownloading {repo_url}: {progress * 100:.0f}%")
    if progress >= 1.0:
        sys.stderr.write("\n")
    sys.stderr.flush()


def _make_bazaar(args: argparse.Namespace, **kwargs) -> Bazaar:
    cfg = _merge_cfg(load_config(), args)
    return Bazaar(cfg, **kwargs)


def cmd_config(args: argparse.Namespace) -> int:
    if args.subcmd == "path":
        print(str(config_path()))
        return 0

    if args.subcmd == "show":
        cfg = _merge_cfg(load_config(), args)
        print(json.dumps(asdict(cfg), indent=2, sort_keys=True))
        return 0

    if args.subcmd == "set":
        cfg = load_config()
        changes = {name: getattr(args, name) for name in _CONFIG_FIELDS if getattr(args, name) is not None}
        path = save_config(replace(cfg, **changes))
        print(f"Saved: {path}")
        return 0

    raise AssertionError("unreachable")


def _print_packages(packages, *, as_json: bool, installed: bool) -> None:
    if as_json:
        print(json.dumps([p.to_dict() for p in packages], indent=2, sort_keys=True, ensure_ascii=False))
        return

    if installed:
        rows = [["NAME", "VERSION", "DISPLAY NAME", "SIZE", "STATUS"]]
        for p in packages:
            status = "outdated" if p.outdated else ("current" if p.current else "")
            rows.append([p.name, p.version, p.preferred_name, p.h_install_size, status])
    else:
        rows = [["NAME", "VERSION", "AUTHOR", "DOWNLOADS", "UPDATED", "STATUS"]]
        for p in packages:
            if p.installed:
                status = "outdated" if p.outdated else "installed"
            else:
                status = "incompatible" if p.incompatible else ""
            rows.append([p.name, p.version, p.author, str(p.downloads), p.h_updated, status])
    _print_table(rows)


def cmd_list(args: argparse.Namespace) -> int:
    with _make_bazaar(args) as bazaar:
        packages = bazaar.online_packages(args.type)
    _print_packages(packages, as_json=args.json, installed=False)
    return 0


def cmd_installed(args: argparse.Namespace) -> int:
    with _make_bazaar(args) as bazaar:
        packages = bazaar.installed_packages(args.type)
    _print_packages(packages, as_json=args.json, installed=True)
    return 0


def cmd_install(args: argparse.Namespace) -> int:
    with _make_bazaar(args, on_progress=_print_progress) as bazaar:
        path = bazaar.install(args.type, args.repo_url, args.repo_hash, args.name)
    print(f"installed: {args.name}")
    print(f"path: {path}")
    return 0


def cmd_uninstall(args: argparse.Namespace) -> int:
    with _make_bazaar(args) as bazaar:
        bazaar.uninstall(args.type, args.name)
    print(f"removed: {args.name}")
    return 0


def cmd_readme(args: argparse.Namespace) -> int:
    with _make_bazaar(args) as bazaar:
        if args.installed:
            text = bazaar.installed_readme(args.type, args.installed)
        elif args.repo_url and args.repo_hash:
            text = bazaar.package_readme(args.repo_url, args.repo_hash, args.type)
        else:
            raise BazaarError("Pass <repo_url> <repo_hash> or --installed <name>.")
    print(text)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        if args.cmd == "config":
            return cmd_config(args)
        if args.cmd == "list":
            return cmd_list(args)
        if args.cmd == "installed":
            return cmd_installed(args)
        if args.cmd in ("install", "i"):
            return cmd_install(args)
        if args.cmd in ("uninstall", "remove", "rm"):
            return cmd_uninstall(args)
        if args.cmd == "readme":
            return cmd_readme(args)
        raise AssertionError("unreachable")
    except NetworkError as e:
        print(f"error: {e.user_message}", file=sys.stderr)
        return 1
    except BazaarError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
