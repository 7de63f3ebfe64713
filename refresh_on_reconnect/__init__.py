"""Refresh application content when internet connectivity comes back.

The package watches a raw link-state source, confirms reachability with a
probe, and fires a debounced ``on_reconnect`` callback on every
offline -> online transition.
"""
from .core import ReconnectCore, ReconnectOptions
from .debounce import Debouncer, DebouncerDisposedError
from .fetcher import ConnectionState, RefreshingLoader, Snapshot
from .link_state import InterfaceLinkState, LinkKind, LinkStateSource, ManualLinkState
from .metrics import MetricsLogger
from .monitor import ConnectivityChanges, ConnectivityMonitor, ProbePolicy
from .probe import HttpProbe
from .settings import Settings

__all__ = [
    "ConnectionState",
    "ConnectivityChanges",
    "ConnectivityMonitor",
    "Debouncer",
    "DebouncerDisposedError",
    "HttpProbe",
    "InterfaceLinkState",
    "LinkKind",
    "LinkStateSource",
    "ManualLinkState",
    "MetricsLogger",
    "ProbePolicy",
    "ReconnectCore",
    "ReconnectOptions",
    "RefreshingLoader",
    "Settings",
    "Snapshot",
]
