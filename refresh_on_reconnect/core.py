"""Reconnect detection: edge-trigger a debounced refresh on offline -> online."""
from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from refresh_on_reconnect.debounce import Debouncer
from refresh_on_reconnect.metrics import MetricsLogger
from refresh_on_reconnect.monitor import ConnectivityChanges, ConnectivityMonitor
from refresh_on_reconnect.settings import Settings

logger = logging.getLogger(__name__)

RefreshCallback = Callable[[], Union[None, Awaitable[Any]]]
StateListener = Callable[[bool], None]


@dataclass(slots=True)
class ReconnectOptions:
    """Configuration bundle for :class:`ReconnectCore`.

    ``debounce_delay`` defaults to ``REFRESH_ON_RECONNECT_DEBOUNCE`` as it reads
    when the bundle is built.
    """

    on_reconnect: Optional[RefreshCallback] = None
    offline_content: Any = None
    debounce_delay: float = field(default_factory=lambda: Settings.from_env().debounce)
    monitor: Optional[ConnectivityMonitor] = None


class ReconnectCore:
    """Track online state and fire ``on_reconnect`` after each reconnection.

    The core owns one :class:`ConnectivityMonitor` subscription and one
    :class:`Debouncer`. Use it as an async context manager, or pair
    :meth:`start` with :meth:`close`::

        async with ReconnectCore(on_reconnect=reload_feed) as core:
            core.subscribe(lambda online: banner.set_visible(not online))
            ...
    """

    def __init__(
        self,
        options: Optional[ReconnectOptions] = None,
        *,
        metrics: Optional[MetricsLogger] = None,
        **overrides: Any,
    ) -> None:
        self.options = dataclasses.replace(options or ReconnectOptions(), **overrides)
        self.monitor = self.options.monitor or ConnectivityMonitor(metrics=metrics)
        self.metrics = metrics
        self._debouncer = Debouncer(self.options.debounce_delay)
        self._listeners: List[StateListener] = []
        self._changes: Optional[ConnectivityChanges] = None
        self._task: Optional[asyncio.Task[None]] = None
        self._online = True
        self._was_offline = False
        self._started = False
        self._closed = False

    @property
    def online(self) -> bool:
        return self._online

    @property
    def was_offline(self) -> bool:
        return self._was_offline

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def debouncer(self) -> Debouncer:
        return self._debouncer

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def start(self) -> None:
        """Probe the initial state, then follow the monitor's changes."""
        if self._started or self._closed:
            return
        self._started = True
        # subscribe first so transitions during the initial probe are queued
        self._changes = self.monitor.changes()
        initial = await self.monitor.currently_online()
        if self._closed:
            logger.debug("Initial probe finished after close; result discarded")
            return
        self._was_offline = not initial
        self._set_online(initial)
        self._metrics_log("monitor_start", status="online" if initial else "offline")
        self._task = asyncio.create_task(self._consume(self._changes))

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._changes is not None:
            self._changes.close()
        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._debouncer.dispose()
        self._listeners.clear()
        self._metrics_log("monitor_stop", status="ok")

    async def __aenter__(self) -> "ReconnectCore":
        try:
            await self.start()
        except BaseException:
            await self.close()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _consume(self, changes: ConnectivityChanges) -> None:
        async for is_online in changes:
            if self._closed:
                break
            self.handle(is_online)

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------
    def handle(self, is_online: bool) -> bool:
        """Apply one observation; return ``True`` if it was a reconnect edge."""
        if self._closed:
            return False
        is_online = bool(is_online)
        self._set_online(is_online)
        # edge test reads the flag left by the previous observation
        edge = is_online and self._was_offline
        if edge:
            self._metrics_log("reconnect_scheduled", status="pending", value=self._debouncer.delay)
            self._debouncer.schedule(self._refresh)
        self._was_offline = not is_online
        return edge

    def _refresh(self) -> Union[None, Awaitable[Any]]:
        if self._closed:
            return None
        callback = self.options.on_reconnect
        self._metrics_log("refresh", status="ok" if callback else "skipped")
        if callback is None:
            return None
        return callback()

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------
    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call *listener* with the new value whenever ``online`` changes."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _unsubscribe

    def select(self, content: Any) -> Any:
        """Return the offline alternate while offline, otherwise *content*."""
        if not self._online and self.options.offline_content is not None:
            return self.options.offline_content
        return content

    def _set_online(self, value: bool) -> None:
        if value == self._online:
            return
        self._online = value
        self._metrics_log("state_change", status="online" if value else "offline", value=float(value))
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception:  # pragma: no cover - listener failure
                logger.exception("Connectivity listener raised")

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
        except Exception:  # pragma: no cover - logging must not break the core
            logger.debug("Metrics logging failed for %s", event, exc_info=True)

    def __repr__(self) -> str:
        state = "closed" if self._closed else ("online" if self._online else "offline")
        return f"<ReconnectCore {state} delay={self._debouncer.delay}>"


__all__ = ["RefreshCallback", "ReconnectCore", "ReconnectOptions", "StateListener"]
