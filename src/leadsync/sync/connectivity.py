"""Connectivity oracles.

- StaticConnectivity: a flag flipped by the host platform (or tests).
- HttpConnectivityProbe: a lightweight HEAD request against the API,
  cached for a few seconds so a burst of queue_operation calls doesn't
  turn into a burst of probes.
"""

from __future__ import annotations

import time

import httpx
import structlog

from src.leadsync.sync.adapter import ConnectivityOracle

logger = structlog.get_logger(__name__)


class StaticConnectivity(ConnectivityOracle):
    """Connectivity reported by the host, e.g. from a network-change listener."""

    def __init__(self, online: bool = True) -> None:
        self.online = online

    def set_online(self, online: bool) -> None:
        self.online = online

    async def is_online(self) -> bool:
        return self.online


class HttpConnectivityProbe(ConnectivityOracle):
    """Reports online when the probe URL answers at all.

    Any HTTP response counts as reachable (even 4xx/5xx: the network is
    up, the server is just unhappy). Transport errors and timeouts count
    as offline.

    Args:
        url: URL to probe, usually the API base URL.
        timeout: Probe timeout in seconds.
        cache_seconds: How long a probe result is reused.
        client: Optional shared httpx.AsyncClient.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 3.0,
        cache_seconds: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._cache_seconds = cache_seconds
        self._client = client
        self._last_result: bool | None = None
        self._last_checked = 0.0

    async def is_online(self) -> bool:
        now = time.monotonic()
        if self._last_result is not None and now - self._last_checked < self._cache_seconds:
            return self._last_result

        try:
            if self._client is not None:
                await self._client.head(self._url, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    await client.head(self._url)
            online = True
        except httpx.HTTPError as exc:
            logger.debug("connectivity.probe_failed", url=self._url, error=str(exc))
            online = False

        if online != self._last_result:
            logger.info("connectivity.changed", url=self._url, online=online)

        self._last_result = online
        self._last_checked = now
        return online
