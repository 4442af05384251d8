from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable

import httpx

from .config import DEFAULT_DOWNLOAD_TIMEOUT_S, DEFAULT_PROBE_TIMEOUT_S, DEFAULT_TIMEOUT_S

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class BazaarError(RuntimeError):
    pass


@dataclass(frozen=True)
class BazaarHTTPError(BazaarError):
    status_code: int
    body: str

    def __str__(self) -> str:  # pragma: no cover
        return f"HTTP {self.status_code}: {self.body}"


class NetworkError(BazaarError):
    """A registry request failed. ``user_message`` is safe to show to users."""

    def __init__(self, user_message: str, *, url: str | None = None) -> None:
        super().__init__(user_message)
        self.user_message = user_message
        self.url = url


class PackageNotFoundError(BazaarError):
    pass


class DescriptorParseError(BazaarError):
    pass


class InstallError(BazaarError):
    pass


ProgressCallback = Callable[[int, int], None]


class BazaarClient:
    """
    Thin synchronous HTTP client for the registry, stat and cloud hosts.
    """

    def __init__(
        self,
        *,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        download_timeout_s: float = DEFAULT_DOWNLOAD_TIMEOUT_S,
        probe_timeout_s: float = DEFAULT_PROBE_TIMEOUT_S,
        default_headers: dict[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.timeout_s = timeout_s
        self.download_timeout_s = download_timeout_s
        self.probe_timeout_s = probe_timeout_s
        self._default_headers = dict(default_headers or {})
        self._http = httpx.Client(timeout=timeout_s, follow_redirects=True, transport=transport)

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "BazaarClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def request(
        self,
        *,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        json_body: Any | None = None,
        headers: dict[str, str] | None = None,
        timeout_s: float | None = None,
    ) -> httpx.Response:
        req_headers = dict(self._default_headers)
        if headers:
            req_headers.update(headers)

        try:
            resp = self._http.request(
                method.upper(),
                url,
                params=params,
                json=json_body,
                headers=req_headers,
                timeout=timeout_s if timeout_s is not None else self.timeout_s,
            )
        except httpx.HTTPError as e:
            raise BazaarError(f"Request failed: {e}") from e

        if resp.status_code >= 400:
            raise BazaarHTTPError(resp.status_code, resp.text)
        return resp

    def get_json(self, url: str, *, timeout_s: float | None = None) -> Any:
        resp = self.request(method="GET", url=url, timeout_s=timeout_s)
        try:
            return resp.json()
        except json.JSONDecodeError as e:
            raise DescriptorParseError(f"Invalid JSON from {url}: {e}") from e

    def download(self, url: str, *, on_chunk: ProgressCallback | None = None) -> bytes:
        """
        Stream ``url`` into memory.

        ``on_chunk(downloaded, total)`` is called after each chunk; ``total`` is 0
        when the server sent no Content-Length.
        """
        headers = dict(self._default_headers)
        buf = bytearray()
        try:
            with self._http.stream("GET", url, headers=headers, timeout=self.download_timeout_s) as resp:
                if resp.status_code < 200 or resp.status_code >= 300:
                    resp.read()
                    raise BazaarHTTPError(resp.status_code, resp.text)
                try:
                    total = int(resp.headers.get("content-length", "0"))
                except ValueError:
                    total = 0
                for chunk in resp.iter_bytes(CHUNK_SIZE):
                    buf.extend(chunk)
                    if on_chunk is not None:
                        on_chunk(len(buf), total)
        except httpx.HTTPError as e:
            raise BazaarError(f"Request failed: {e}") from e
        return bytes(buf)

    def probe(self, url: str) -> bool:
        try:
            self._http.head(url, timeout=self.probe_timeout_s)
        except httpx.HTTPError as e:
            logger.debug("probe [%s] failed: %s", url, e)
            return False
        return True
