"""Raw network link-state sources.

A link-state source only answers "which kinds of network interface are up
right now". It says nothing about whether the internet is actually reachable;
that is the job of :mod:`refresh_on_reconnect.probe`.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
import socket
from enum import Enum
from pathlib import Path
from typing import Callable, FrozenSet, Iterable, List, Optional, Protocol, Tuple, TypeAlias

from refresh_on_reconnect.settings import Settings

logger = logging.getLogger(__name__)

SYS_NET = Path("/sys/class/net")


class LinkKind(str, Enum):
	"""Kind of an active network interface."""

	NONE = "none"
	WIFI = "wifi"
	ETHERNET = "ethernet"
	CELLULAR = "cellular"
	VPN = "vpn"
	BLUETOOTH = "bluetooth"
	OTHER = "other"


LinkSnapshot: TypeAlias = FrozenSet[LinkKind]
LinkCallback = Callable[[LinkSnapshot], None]
InterfaceLister = Callable[[], Iterable[Tuple[str, bool]]]

NO_LINK: LinkSnapshot = frozenset({LinkKind.NONE})

_PREFIXES: Tuple[Tuple[Tuple[str, ...], LinkKind], ...] = (
	(("wlan", "wl", "wifi"), LinkKind.WIFI),
	(("eth", "en"), LinkKind.ETHERNET),
	(("wwan", "rmnet", "ppp", "ccmni"), LinkKind.CELLULAR),
	(("tun", "tap", "wg", "utun", "ipsec"), LinkKind.VPN),
	(("bnep", "bt-pan"), LinkKind.BLUETOOTH),
)


def has_link(kinds: Iterable[LinkKind]) -> bool:
	"""Return ``True`` when *kinds* describes at least one usable interface."""
	snapshot = frozenset(kinds)
	return bool(snapshot) and LinkKind.NONE not in snapshot


def classify(name: str) -> Optional[LinkKind]:
	"""Map an interface name to a :class:`LinkKind`; loopback maps to ``None``."""
	lowered = name.lower()
	if lowered == "lo" or lowered.startswith("loopback"):
		return None
	for prefixes, kind in _PREFIXES:
		if lowered.startswith(prefixes):
			return kind
	return LinkKind.OTHER


def snapshot_from(interfaces: Iterable[Tuple[str, bool]]) -> LinkSnapshot:
	kinds = set()
	for name, is_up in interfaces:
		if not is_up:
			continue
		kind = classify(name)
		if kind is not None:
			kinds.add(kind)
	if not kinds:
		return NO_LINK
	return frozenset(kinds)


def system_interfaces() -> List[Tuple[str, bool]]:
	"""List ``(name, is_up)`` pairs for the host's network interfaces.

	Interface state comes from ``/sys/class/net`` where the kernel exposes it;
	elsewhere every listed interface is assumed up.
	"""
	try:
		names = [name for _, name in socket.if_nameindex()]
	except OSError:
		logger.debug("if_nameindex unavailable", exc_info=True)
		return []
	return [(name, _is_up(name)) for name in names]


def _is_up(name: str) -> bool:
	operstate = SYS_NET / name / "operstate"
	try:
		state = operstate.read_text(encoding="ascii").strip()
	except OSError:
		return True
	# tun/wg devices report "unknown" while carrying traffic
	return state in ("up", "unknown")


class LinkStateSource(Protocol):
	"""Subscribe/unsubscribe boundary for raw link-state events."""

	def subscribe(self, callback: LinkCallback) -> None: ...

	def unsubscribe(self, callback: LinkCallback) -> None: ...

	async def check(self) -> LinkSnapshot: ...


class _Subscribers:
	def __init__(self) -> None:
		self._callbacks: List[LinkCallback] = []

	def add(self, callback: LinkCallback) -> bool:
		first = not self._callbacks
		if callback not in self._callbacks:
			self._callbacks.append(callback)
		return first

	def remove(self, callback: LinkCallback) -> bool:
		with contextlib.suppress(ValueError):
			self._callbacks.remove(callback)
		return not self._callbacks

	def emit(self, snapshot: LinkSnapshot) -> None:
		for callback in list(self._callbacks):
			callback(snapshot)

	def __len__(self) -> int:
		return len(self._callbacks)


class ManualLinkState:
	"""Link-state source driven by the application.

	Useful when the host platform already pushes network notifications (a
	desktop toolkit, a mobile bridge) or in tests. Every :meth:`set` call is
	forwarded, even if the state did not change.

	The source starts as a single wifi link when built without *kinds*, so a
	fresh instance reads as connected. :meth:`set` without *kinds* is the
	explicit way to report that no interface is up.
	"""

	def __init__(self, *kinds: LinkKind) -> None:
		self._state: LinkSnapshot = frozenset(kinds) if kinds else frozenset({LinkKind.WIFI})
		self._subscribers = _Subscribers()

	@property
	def state(self) -> LinkSnapshot:
		return self._state

	def set(self, *kinds: LinkKind) -> None:
		self._state = frozenset(kinds) if kinds else NO_LINK
		self._subscribers.emit(self._state)

	def subscribe(self, callback: LinkCallback) -> None:
		self._subscribers.add(callback)

	def unsubscribe(self, callback: LinkCallback) -> None:
		self._subscribers.remove(callback)

	async def check(self) -> LinkSnapshot:
		return self._state


class InterfaceLinkState:
	"""Poll the operating system's interfaces and emit on changes."""

	def __init__(
		self,
		*,
		poll_interval: Optional[float] = None,
		lister: Optional[InterfaceLister] = None,
	) -> None:
		if poll_interval is None:
			poll_interval = Settings.from_env().poll_interval
		self.poll_interval = max(0.01, poll_interval)
		self._lister: InterfaceLister = lister or system_interfaces
		self._subscribers = _Subscribers()
		self._task: Optional[asyncio.Task[None]] = None
		self._last: Optional[LinkSnapshot] = None

	@property
	def polling(self) -> bool:
		return self._task is not None and not self._task.done()

	def subscribe(self, callback: LinkCallback) -> None:
		if self._subscribers.add(callback):
			self._last = None
			self._task = asyncio.get_running_loop().create_task(self._poll_loop())

	def unsubscribe(self, callback: LinkCallback) -> None:
		if self._subscribers.remove(callback) and self._task is not None:
			self._task.cancel()
			self._task = None

	async def check(self) -> LinkSnapshot:
		return snapshot_from(self._lister())

	async def _poll_loop(self) -> None:
		while True:
			try:
				snapshot = await self.check()
			except asyncio.CancelledError:
				raise
			except Exception as exc:
				logger.warning("Interface listing failed: %r", exc)
				snapshot = NO_LINK
			if snapshot != self._last:
				logger.debug("Link state changed: %s -> %s", _describe(self._last), _describe(snapshot))
				self._last = snapshot
				self._subscribers.emit(snapshot)
			await asyncio.sleep(self.poll_interval)


def _describe(snapshot: Optional[LinkSnapshot]) -> str:
	if snapshot is None:
		return "unknown"
	return ",".join(sorted(kind.value for kind in snapshot))


__all__ = [
	"InterfaceLinkState",
	"LinkCallback",
	"LinkKind",
	"LinkSnapshot",
	"LinkStateSource",
	"ManualLinkState",
	"NO_LINK",
	"classify",
	"has_link",
	"snapshot_from",
	"system_interfaces",
]
