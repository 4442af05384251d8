from __future__ import annotations

from typing import Protocol

from .models import strip_source_host

CDN_BASE_URL = "https://cdn.jsdelivr.net/gh/"


class ReadmeRenderer(Protocol):
    def render(self, markdown: str, link_base: str) -> str:
        ...


def decode_markdown(data: bytes) -> str:
    if len(data) > 2:
        if data[0] == 0xFF and data[1] == 0xFE:
            return data[2:].decode("utf-16-le", errors="replace")
        if data[0] == 0xFE and data[1] == 0xFF:
            return data[2:].decode("utf-16-be", errors="replace")
    return data.decode("utf-8", errors="replace")


def remote_link_base(repo_url: str) -> str:
    return CDN_BASE_URL + strip_source_host(repo_url)


def render(renderer: ReadmeRenderer | None, markdown: str, link_base: str) -> str:
    # Without a renderer the decoded markdown is handed back as-is.
    if renderer is None:
        return markdown
    return renderer.render(markdown, link_base)
