from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any

SOURCE_HOST_PREFIX = "https://github.com/"

LOCALES = (
    "ar_SA",
    "de_DE",
    "en_US",
    "es_ES",
    "fr_FR",
    "he_IL",
    "it_IT",
    "ja_JP",
    "pl_PL",
    "pt_BR",
    "ru_RU",
    "zh_CHT",
    "zh_CN",
)

# package type -> (descriptor file name, install slot relative to the workspace)
PACKAGE_TYPES: dict[str, tuple[str, tuple[str, ...]]] = {
    "plugins": ("plugin.json", ("data", "plugins")),
    "widgets": ("widget.json", ("data", "widgets")),
    "templates": ("template.json", ("data", "templates")),
    "icons": ("icon.json", ("conf", "appearance", "icons")),
    "themes": ("theme.json", ("conf", "appearance", "themes")),
}


def _str(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    return 0


def _str_tuple(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(v.strip() for v in value if isinstance(v, str) and v.strip())


def strip_source_host(url: str) -> str:
    if url.startswith(SOURCE_HOST_PREFIX):
        return url[len(SOURCE_HOST_PREFIX) :]
    return url


@dataclass(frozen=True)
class LocalizedField:
    default: str = ""
    overrides: tuple[tuple[str, str], ...] = ()

    @classmethod
    def from_json(cls, raw: Any) -> LocalizedField | None:
        if not isinstance(raw, dict):
            return None
        overrides = tuple((loc, _str(raw.get(loc))) for loc in LOCALES if _str(raw.get(loc)))
        return cls(default=_str(raw.get("default")), overrides=overrides)

    def get(self, locale: str) -> str:
        for loc, value in self.overrides:
            if loc == locale:
                return value
        return ""

    def to_json(self) -> dict[str, str]:
        out = {"default": self.default}
        out.update(self.overrides)
        return out


@dataclass(frozen=True)
class Funding:
    open_collective: str = ""
    patreon: str = ""
    github: str = ""
    custom: tuple[str, ...] = ()

    @classmethod
    def from_json(cls, raw: Any) -> Funding | None:
        if not isinstance(raw, dict):
            return None
        return cls(
            open_collective=_str(raw.get("openCollective")),
            patreon=_str(raw.get("patreon")),
            github=_str(raw.get("github")),
            custom=_str_tuple(raw.get("custom")),
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "openCollective": self.open_collective,
            "patreon": self.patreon,
            "github": self.github,
            "custom": list(self.custom),
        }


@dataclass
class Package:
    name: str = ""
    author: str = ""
    url: str = ""
    version: str = ""
    min_app_version: str = ""
    backends: tuple[str, ...] = ()
    frontends: tuple[str, ...] = ()
    keywords: tuple[str, ...] = ()
    display_name: LocalizedField | None = None
    description: LocalizedField | None = None
    readme: LocalizedField | None = None
    funding: Funding | None = None

    preferred_funding: str = ""
    preferred_name: str = ""
    preferred_desc: str = ""
    preferred_readme: str = ""

    repo_url: str = ""
    repo_hash: str = ""
    preview_url: str = ""
    preview_url_thumb: str = ""
    icon_url: str = ""

    installed: bool = False
    outdated: bool = False
    current: bool = False
    incompatible: bool = False
    updated: str = ""
    h_updated: str = ""
    stars: int = 0
    open_issues: int = 0
    downloads: int = 0
    size: int = 0
    h_size: str = ""
    install_size: int = 0
    h_install_size: str = ""
    h_install_date: str = ""

    @classmethod
    def from_json(cls, raw: Any) -> Package:
        if not isinstance(raw, dict):
            raise ValueError("package descriptor must be a JSON object")
        return cls(
            name=_str(raw.get("name")),
            author=_str(raw.get("author")),
            url=_str(raw.get("url")).rstrip("/"),
            version=_str(raw.get("version")),
            min_app_version=_str(raw.get("minAppVersion")),
            backends=_str_tuple(raw.get("backends")),
            frontends=_str_tuple(raw.get("frontends")),
            keywords=_str_tuple(raw.get("keywords")),
            display_name=LocalizedField.from_json(raw.get("displayName")),
            description=LocalizedField.from_json(raw.get("description")),
            readme=LocalizedField.from_json(raw.get("readme")),
            funding=Funding.from_json(raw.get("funding")),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, (LocalizedField, Funding)):
                value = value.to_json()
            elif isinstance(value, tuple):
                value = list(value)
            out[_JSON_KEYS.get(f.name, f.name)] = value
        return out


_JSON_KEYS = {
    "min_app_version": "minAppVersion",
    "display_name": "displayName",
    "preferred_funding": "preferredFunding",
    "preferred_name": "preferredName",
    "preferred_desc": "preferredDesc",
    "preferred_readme": "preferredReadme",
    "repo_url": "repoURL",
    "repo_hash": "repoHash",
    "preview_url": "previewURL",
    "preview_url_thumb": "previewURLThumb",
    "icon_url": "iconURL",
    "h_updated": "hUpdated",
    "open_issues": "openIssues",
    "h_size": "hSize",
    "install_size": "installSize",
    "h_install_size": "hInstallSize",
    "h_install_date": "hInstallDate",
}


@dataclass(frozen=True)
class StagePackage:
    author: str = ""
    url: str = ""
    version: str = ""
    description: LocalizedField | None = None
    readme: LocalizedField | None = None
    i18n: tuple[str, ...] = ()
    funding: Funding | None = None

    @classmethod
    def from_json(cls, raw: Any) -> StagePackage | None:
        if not isinstance(raw, dict):
            return None
        return cls(
            author=_str(raw.get("author")),
            url=_str(raw.get("url")),
            version=_str(raw.get("version")),
            description=LocalizedField.from_json(raw.get("description")),
            readme=LocalizedField.from_json(raw.get("readme")),
            i18n=_str_tuple(raw.get("i18n")),
            funding=Funding.from_json(raw.get("funding")),
        )


@dataclass(frozen=True)
class StageRepo:
    url: str  # owner/repo@hash
    updated: str = ""
    stars: int = 0
    open_issues: int = 0
    size: int = 0
    install_size: int = 0
    package: StagePackage | None = None

    @classmethod
    def from_json(cls, raw: Any) -> StageRepo | None:
        if not isinstance(raw, dict):
            return None
        url = _str(raw.get("url"))
        if not url:
            return None
        return cls(
            url=url,
            updated=_str(raw.get("updated")),
            stars=_int(raw.get("stars")),
            open_issues=_int(raw.get("openIssues")),
            size=_int(raw.get("size")),
            install_size=_int(raw.get("installSize")),
            package=StagePackage.from_json(raw.get("package")),
        )

    @property
    def repo_path(self) -> str:
        return self.url.rsplit("@", 1)[0]

    @property
    def repo_hash(self) -> str:
        if "@" not in self.url:
            return ""
        return self.url.rsplit("@", 1)[1]

    @property
    def repo_url(self) -> str:
        return SOURCE_HOST_PREFIX + self.repo_path


@dataclass(frozen=True)
class StageIndex:
    repos: tuple[StageRepo, ...] = field(default_factory=tuple)

    @classmethod
    def from_json(cls, raw: Any) -> StageIndex:
        if not isinstance(raw, dict):
            raise ValueError("stage index must be a JSON object")
        items = raw.get("repos")
        repos: list[StageRepo] = []
        if isinstance(items, list):
            for item in items:
                repo = StageRepo.from_json(item)
                if repo is not None:
                    repos.append(repo)
        return cls(repos=tuple(repos))

    def find(self, url: str) -> StageRepo | None:
        for repo in self.repos:
            if repo.url == url:
                return repo
        return None
