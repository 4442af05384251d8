from __future__ import annotations

import logging
from typing import Callable

from .client import BazaarClient

logger = logging.getLogger(__name__)

OFFLINE_MESSAGE = "The marketplace is unreachable, please check your network connection."
OFFLINE_NOTICE_MS = 5000

Notifier = Callable[[str, int], None]


def _log_notice(message: str, timeout_ms: int) -> None:
    logger.warning("%s", message)


class ConnectivityGate:
    """Fail-fast probe of the registry host before remote listing work."""

    def __init__(self, client: BazaarClient, registry_url: str, *, notify: Notifier | None = None) -> None:
        self._client = client
        self._registry_url = registry_url
        self._notify = notify or _log_notice

    def is_online(self) -> bool:
        if self._client.probe(self._registry_url):
            return True
        self._notify(OFFLINE_MESSAGE, OFFLINE_NOTICE_MS)
        return False
