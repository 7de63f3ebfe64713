"""Load data once, and load it again every time the connection comes back."""
from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, TypeVar

from refresh_on_reconnect.core import ReconnectCore
from refresh_on_reconnect.metrics import MetricsLogger
from refresh_on_reconnect.monitor import ConnectivityMonitor

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ConnectionState(str, Enum):
    NONE = "none"
    WAITING = "waiting"
    DONE = "done"


@dataclass(frozen=True, slots=True)
class Snapshot(Generic[T]):
    """Latest outcome of the fetch function."""

    state: ConnectionState = ConnectionState.NONE
    data: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def has_data(self) -> bool:
        return self.data is not None

    @property
    def has_error(self) -> bool:
        return self.error is not None

    def waiting(self) -> "Snapshot[T]":
        return Snapshot(ConnectionState.WAITING, self.data, self.error)


class RefreshingLoader(Generic[T]):
    """Run *fetch* on start and again after every reconnection.

    A newer fetch supersedes one still in flight: the older task is
    cancelled and its result is never published. Fetch errors are captured in
    :attr:`snapshot` instead of being raised.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[T]],
        *,
        offline_content: Any = None,
        debounce_delay: Optional[float] = None,
        monitor: Optional[ConnectivityMonitor] = None,
        metrics: Optional[MetricsLogger] = None,
    ) -> None:
        self._fetch = fetch
        self._snapshot: Snapshot[T] = Snapshot()
        self._listeners: List[Callable[[Snapshot[T]], None]] = []
        self._task: Optional[asyncio.Task[None]] = None
        self._generation = 0
        overrides: Dict[str, Any] = {}
        if debounce_delay is not None:
            overrides["debounce_delay"] = debounce_delay
        self.core = ReconnectCore(
            on_reconnect=self.refresh,
            offline_content=offline_content,
            monitor=monitor,
            metrics=metrics,
            **overrides,
        )

    @property
    def snapshot(self) -> Snapshot[T]:
        return self._snapshot

    @property
    def online(self) -> bool:
        return self.core.online

    async def start(self) -> None:
        self.refresh()
        await self.core.start()

    async def close(self) -> None:
        await self.core.close()
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._listeners.clear()

    async def __aenter__(self) -> "RefreshingLoader[T]":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def refresh(self) -> asyncio.Task[None]:
        """Start a new fetch, superseding any fetch still running."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._generation += 1
        self._publish(self._snapshot.waiting())
        self._task = asyncio.create_task(self._run(self._generation))
        return self._task

    async def wait(self) -> Snapshot[T]:
        """Wait for the current fetch to settle and return the snapshot."""
        while self._task is not None and not self._task.done():
            await asyncio.wait({self._task})
        return self._snapshot

    def subscribe(self, listener: Callable[[Snapshot[T]], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _unsubscribe

    def view(self, render: Callable[[Snapshot[T]], Any]) -> Any:
        if not self.core.online and self.core.options.offline_content is not None:
            return self.core.options.offline_content
        return render(self._snapshot)

    async def _run(self, generation: int) -> None:
        try:
            data = await self._fetch()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Fetch failed: %s", exc)
            outcome: Snapshot[T] = Snapshot(ConnectionState.DONE, error=exc)
        else:
            outcome = Snapshot(ConnectionState.DONE, data=data)
        if generation == self._generation:
            self._publish(outcome)

    def _publish(self, snapshot: Snapshot[T]) -> None:
        self._snapshot = snapshot
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:  # pragma: no cover - listener failure
                logger.exception("Snapshot listener raised")


__all__ = ["ConnectionState", "RefreshingLoader", "Snapshot"]
