"""Single-pending-timer debouncer for the asyncio event loop."""
from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Set, Union

logger = logging.getLogger(__name__)

Action = Callable[[], Union[None, Awaitable[Any]]]


class DebouncerDisposedError(RuntimeError):
    """Raised when scheduling on a debouncer that was already disposed."""


class Debouncer:
    """Run an action once a quiet period has passed since the last request.

    Each :meth:`schedule` call cancels the pending timer and starts a new one,
    so a burst of requests collapses into one invocation of the *last* action.
    Coroutine-returning actions run as tasks; :meth:`dispose` cancels both the
    timer and any such task still running.
    """

    def __init__(self, delay: float = 2.0, *, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        if delay < 0:
            raise ValueError("delay must be >= 0")
        self.delay = delay
        self._loop = loop
        self._handle: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Future[Any]] = set()
        self._disposed = False

    @property
    def pending(self) -> bool:
        return self._handle is not None

    @property
    def disposed(self) -> bool:
        return self._disposed

    def schedule(self, action: Action) -> None:
        if self._disposed:
            raise DebouncerDisposedError("cannot schedule on a disposed Debouncer")
        loop = self._loop or asyncio.get_running_loop()
        if self._handle is not None:
            self._handle.cancel()
            logger.debug("Pending action superseded")
        self._handle = loop.call_later(self.delay, self._fire, action)

    __call__ = schedule

    def cancel(self) -> None:
        """Drop the pending action, if any, without disposing."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def dispose(self) -> None:
        self._disposed = True
        self.cancel()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    def _fire(self, action: Action) -> None:
        self._handle = None
        outcome = action()
        if inspect.isawaitable(outcome):
            task = asyncio.ensure_future(outcome)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Future[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Debounced action raised", exc_info=exc)


__all__ = ["Action", "Debouncer", "DebouncerDisposedError"]
