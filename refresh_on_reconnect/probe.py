"""HTTP reachability probe built on top of requests."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

import requests

from refresh_on_reconnect.settings import Settings

logger = logging.getLogger(__name__)

Probe = Callable[[], Awaitable[bool]]


class HttpProbe:
    """Confirm a remote endpoint answers a ``HEAD`` request.

    The blocking request runs in a worker thread so the event loop keeps
    serving other work while the round-trip is in flight. Transport errors
    (``requests.Timeout``, ``requests.ConnectionError`` and friends) are
    raised to the caller unchanged. Redirects are followed; only the final
    response has to be a 200.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        if url is None or timeout is None:
            settings = Settings.from_env()
            url = settings.check_url if url is None else url
            timeout = settings.timeout if timeout is None else timeout
        if not url or not url.strip():
            raise ValueError("probe url cannot be empty")
        self.url = url.strip()
        self.timeout = max(0.1, timeout)
        self._session = session

    async def __call__(self) -> bool:
        # requests bounds each socket operation; wait_for bounds the whole round-trip
        return await asyncio.wait_for(asyncio.to_thread(self._head), timeout=self.timeout)

    def _head(self) -> bool:
        requester = self._session or requests
        response = requester.head(self.url, timeout=self.timeout, allow_redirects=True)
        logger.debug("HEAD %s -> %s", self.url, response.status_code)
        return response.status_code == 200

    def __repr__(self) -> str:
        return f"HttpProbe(url={self.url!r}, timeout={self.timeout})"


__all__ = ["HttpProbe", "Probe"]
