"""Derived "is the internet usable" signal on top of link state and a probe."""
from __future__ import annotations

import asyncio
import contextlib
import logging
from enum import Enum
from time import perf_counter
from typing import Any, Dict, Optional

from refresh_on_reconnect.link_state import InterfaceLinkState, LinkSnapshot, LinkStateSource, has_link
from refresh_on_reconnect.metrics import MetricsLogger
from refresh_on_reconnect.probe import HttpProbe, Probe

logger = logging.getLogger(__name__)


class ProbePolicy(str, Enum):
    """How a failed reachability probe is interpreted.

    ``STRICT`` treats any probe failure as offline. ``LENIENT`` is meant for
    hosts that block outbound probing (sandboxes, proxies that reject ``HEAD``,
    browser-like runtimes with cross-origin rules): once the link layer
    reports an interface, a probe that *errors* counts as online. A probe that
    completes with a non-success status is offline under both policies.
    """

    STRICT = "strict"
    LENIENT = "lenient"


class ConnectivityMonitor:
    """Combine a link-state source and a reachability probe into one boolean."""

    def __init__(
        self,
        *,
        link_source: Optional[LinkStateSource] = None,
        probe: Optional[Probe] = None,
        check_url: Optional[str] = None,
        timeout: Optional[float] = None,
        policy: ProbePolicy = ProbePolicy.STRICT,
        metrics: Optional[MetricsLogger] = None,
    ) -> None:
        self.link_source: LinkStateSource = link_source or InterfaceLinkState()
        self.probe: Probe = probe or HttpProbe(check_url, timeout=timeout)
        self.policy = ProbePolicy(policy)
        self.metrics = metrics

    async def currently_online(self) -> bool:
        """Run a fresh check. Never raises for network-level failures."""
        try:
            kinds = await self.link_source.check()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Link-state check failed: %s", exc)
            self._metrics_log("link_check", status="error", message=str(exc))
            return False
        return await self.derive(kinds)

    def changes(self) -> "ConnectivityChanges":
        """Open a new subscription of distinct online/offline values."""
        return ConnectivityChanges(self)

    async def derive(self, kinds: LinkSnapshot) -> bool:
        if not has_link(kinds):
            self._metrics_log("probe", status="skipped", value=0.0, extra={"reason": "no_link"})
            return False
        return await self._reachable()

    async def _reachable(self) -> bool:
        start = perf_counter()
        try:
            reachable = bool(await self.probe())
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._metrics_log(
                "probe",
                status="error",
                value=perf_counter() - start,
                message=str(exc) or type(exc).__name__,
                extra={"policy": self.policy.value, "exception": type(exc).__name__},
            )
            if self.policy is ProbePolicy.LENIENT:
                logger.debug("Probe failed with link present, lenient policy reports online: %r", exc)
                return True
            logger.debug("Probe failed, reporting offline: %r", exc)
            return False
        self._metrics_log(
            "probe",
            status="ok" if reachable else "unreachable",
            value=perf_counter() - start,
            extra={"policy": self.policy.value},
        )
        return reachable

    def _metrics_log(
        self,
        event: str,
        *,
        status: Optional[str] = None,
        value: Optional[float] = None,
        message: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        if not self.metrics:
            return
        try:
            self.metrics.log(event, status=status, value=value, message=message, extra=extra)
        except Exception:
            logger.debug("Metrics logging failed for %s", event, exc_info=True)


class ConnectivityChanges:
    """One subscription to a monitor's derived connectivity stream.

    Subscribes to the link source on construction so no event raised after
    :meth:`ConnectivityMonitor.changes` returns is missed. Raw events are
    queued and derived one at a time, in emission order. Consecutive equal
    derived values are suppressed. Not restartable: once closed, iteration
    ends for good.
    """

    _CLOSED = object()

    def __init__(self, monitor: ConnectivityMonitor) -> None:
        self._monitor = monitor
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._last: Optional[bool] = None
        self._closed = False
        monitor.link_source.subscribe(self._on_link_event)

    @property
    def closed(self) -> bool:
        return self._closed

    def _on_link_event(self, kinds: LinkSnapshot) -> None:
        if not self._closed:
            self._queue.put_nowait(kinds)

    def __aiter__(self) -> "ConnectivityChanges":
        return self

    async def __anext__(self) -> bool:
        while True:
            if self._closed:
                raise StopAsyncIteration
            kinds = await self._queue.get()
            if kinds is self._CLOSED:
                raise StopAsyncIteration
            online = await self._monitor.derive(kinds)
            if self._closed:
                raise StopAsyncIteration
            if online == self._last:
                continue
            self._last = online
            self._monitor._metrics_log("link_change", status="online" if online else "offline", value=float(online))
            return online

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        with contextlib.suppress(Exception):
            self._monitor.link_source.unsubscribe(self._on_link_event)
        self._queue.put_nowait(self._CLOSED)

    async def aclose(self) -> None:
        self.close()

    async def __aenter__(self) -> "ConnectivityChanges":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = ["ConnectivityChanges", "ConnectivityMonitor", "ProbePolicy"]
