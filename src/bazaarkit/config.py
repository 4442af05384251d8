from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any

from platformdirs import user_config_path, user_data_path

DEFAULT_REGISTRY_URL = "https://oss.b3logfile.com"
DEFAULT_STAT_URL = "https://bazaar.b3logfile.com"
DEFAULT_CLOUD_URL = "https://ld246.com"
DEFAULT_TIMEOUT_S = 30.0
DEFAULT_DOWNLOAD_TIMEOUT_S = 120.0
DEFAULT_PROBE_TIMEOUT_S = 3.0
DEFAULT_LANG = "en_US"
DEFAULT_APP_VERSION = "3.0.0"

_ENV_PREFIX = "BAZAARKIT_"


@dataclass(frozen=True)
class Config:
    registry_url: str = DEFAULT_REGISTRY_URL
    stat_url: str = DEFAULT_STAT_URL
    cloud_url: str = DEFAULT_CLOUD_URL
    registry_hash: str | None = None  # resolved from the cloud version endpoint when unset
    workspace_dir: str | None = None
    temp_dir: str | None = None
    lang: str = DEFAULT_LANG
    app_version: str = DEFAULT_APP_VERSION
    system_id: str = ""
    backend: str = "linux"  # e.g. "windows", "darwin", "android", "docker"
    frontend: str = "desktop"  # e.g. "mobile", "browser-desktop"
    current_theme: str | None = None
    current_icon: str | None = None
    timeout_s: float = DEFAULT_TIMEOUT_S
    download_timeout_s: float = DEFAULT_DOWNLOAD_TIMEOUT_S
    probe_timeout_s: float = DEFAULT_PROBE_TIMEOUT_S

    @property
    def workspace_path(self) -> Path:
        if self.workspace_dir:
            return Path(self.workspace_dir).expanduser()
        return user_data_path("bazaarkit") / "workspace"

    @property
    def temp_path(self) -> Path:
        if self.temp_dir:
            return Path(self.temp_dir).expanduser()
        return self.workspace_path / "temp"


def config_path(path_override: str | Path | None = None) -> Path:
    if path_override is not None:
        return Path(path_override).expanduser()
    if env := os.getenv("BAZAARKIT_CONFIG_PATH"):
        return Path(env).expanduser()
    return user_config_path("bazaarkit") / "config.json"


def load_config(path_override: str | Path | None = None) -> Config:
    path = config_path(path_override)
    if not path.exists():
        return Config()

    raw = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        return Config()

    allowed = {f.name for f in fields(Config)}
    filtered: dict[str, Any] = {k: v for k, v in raw.items() if k in allowed}
    return Config(**filtered)  # type: ignore[arg-type]


def save_config(cfg: Config, path_override: str | Path | None = None) -> Path:
    path = config_path(path_override)
    path.parent.mkdir(parents=True, exist_ok=True)

    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(asdict(cfg), indent=2, sort_keys=True) + "\n", encoding="utf-8")
    tmp.replace(path)
    return path


def apply_env_overrides(cfg: Config, environ: dict[str, str] | None = None) -> Config:
    """Overlay ``BAZAARKIT_<FIELD>`` environment variables on top of ``cfg``."""
    env = os.environ if environ is None else environ
    changes: dict[str, Any] = {}
    for f in fields(Config):
        value = env.get(_ENV_PREFIX + f.name.upper())
        if value is None:
            continue
        if f.name.endswith("_s"):
            try:
                changes[f.name] = float(value)
            except ValueError:
                continue
        else:
            changes[f.name] = value
    return replace(cfg, **changes) if changes else cfg
