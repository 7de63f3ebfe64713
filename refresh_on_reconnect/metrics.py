"""CSV event log for connectivity transitions and probe timings."""
from __future__ import annotations

import asyncio
import contextlib
import csv
import json
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence


FIELDS: Sequence[str] = (
    "timestamp",
    "event",
    "status",
    "value",
    "message",
    "extra",
)


def _encode_extra(extra: Mapping[str, Any]) -> str:
    if not extra:
        return ""
    try:
        return json.dumps(extra, separators=(",", ":"), ensure_ascii=True, sort_keys=True, default=str)
    except (TypeError, ValueError):
        return repr(extra)


@dataclass(slots=True)
class EventRecord:
    """One row of the event log."""

    timestamp: str
    event: str
    status: Optional[str] = None
    value: Optional[float] = None
    message: Optional[str] = None
    extra: str = ""

    def as_row(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "event": self.event,
            "status": self.status or "",
            "value": "" if self.value is None else self.value,
            "message": self.message or "",
            "extra": self.extra,
        }


class MetricsLogger:
    """Append-only CSV log of connectivity events.

    Rows are flushed on every write so ``tail -f`` shows transitions as they
    happen. Contextual fields pushed with :meth:`scope` are merged into the
    ``extra`` column of every row written inside the scope.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        static_extra: Mapping[str, Any] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.path = Path(path)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._static_extra: Dict[str, Any] = dict(static_extra or {})
        self._lock = threading.Lock()
        self._context = threading.local()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists() or self.path.stat().st_size == 0:
            with self._lock, self.path.open("w", newline="", encoding="utf-8") as handle:
                csv.DictWriter(handle, fieldnames=FIELDS).writeheader()

    def log(
        self,
        event: str,
        *,
        status: Optional[str] = None,
        value: Optional[float] = None,
        message: Optional[str] = None,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None:
        payload: Dict[str, Any] = dict(self._static_extra)
        for layer in self._stack():
            payload.update(layer)
        if extra:
            payload.update(extra)
        record = EventRecord(
            timestamp=self._timestamp(),
            event=event,
            status=status,
            value=value,
            message=message,
            extra=_encode_extra(payload),
        )
        with self._lock, self.path.open("a", newline="", encoding="utf-8") as handle:
            csv.DictWriter(handle, fieldnames=FIELDS).writerow(record.as_row())
            handle.flush()

    async def log_async(self, event: str, **fields: Any) -> None:
        await asyncio.to_thread(self.log, event, **fields)

    @contextlib.contextmanager
    def scope(self, extra: Mapping[str, Any] | None = None, **extra_kwargs: Any) -> Iterator[None]:
        layer: Dict[str, Any] = dict(extra or {})
        layer.update(extra_kwargs)
        stack = self._stack()
        stack.append(layer)
        try:
            yield
        finally:
            stack.pop()

    def _timestamp(self) -> str:
        dt = self._clock()
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds")

    def _stack(self) -> List[Dict[str, Any]]:
        stack = getattr(self._context, "stack", None)
        if stack is None:
            stack = []
            self._context.stack = stack
        return stack


__all__ = ["EventRecord", "FIELDS", "MetricsLogger"]
