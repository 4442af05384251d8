"""
Locale-aware resolution of the multi-language descriptor fields.

All three localized fields (display name, description, readme path) go through
``resolve``; only the literal fallback differs per call site.
"""

from __future__ import annotations

from .models import LOCALES, Funding, LocalizedField, Package

DEFAULT_README = "README.md"
FALLBACK_LOCALE = "en_US"

_FUNDING_BASES = (
    ("open_collective", "https://opencollective.com/"),
    ("patreon", "https://www.patreon.com/"),
    ("github", "https://github.com/sponsors/"),
)


def resolve(field: LocalizedField | None, active_locale: str, literal_fallback: str) -> str:
    if field is None:
        return literal_fallback

    ret = field.default
    if active_locale in LOCALES:
        override = field.get(active_locale)
    else:
        override = field.get(FALLBACK_LOCALE)
    if override:
        ret = override
    if not ret:
        ret = literal_fallback
    return ret


def preferred_name(pkg: Package, active_locale: str) -> str:
    return resolve(pkg.display_name, active_locale, pkg.name)


def preferred_desc(desc: LocalizedField | None, active_locale: str) -> str:
    if desc is None:
        return ""
    return resolve(desc, active_locale, desc.get(FALLBACK_LOCALE))


def preferred_readme(readme: LocalizedField | None, active_locale: str) -> str:
    return resolve(readme, active_locale, DEFAULT_README)


def preferred_funding(funding: Funding | None) -> str:
    if funding is None:
        return ""
    for attr, base in _FUNDING_BASES:
        value = getattr(funding, attr)
        if value:
            return base + value
    if funding.custom:
        return funding.custom[0]
    return ""


def apply_preferred(pkg: Package, active_locale: str) -> Package:
    """Fill the ``preferred_*`` fields of ``pkg`` in place and return it."""
    pkg.preferred_name = preferred_name(pkg, active_locale)
    pkg.preferred_desc = preferred_desc(pkg.description, active_locale)
    pkg.preferred_readme = preferred_readme(pkg.readme, active_locale)
    pkg.preferred_funding = preferred_funding(pkg.funding)
    return pkg
