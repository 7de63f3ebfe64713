"""Simulation tests for reconnect edge detection and debounced refresh."""
from __future__ import annotations

import asyncio
import csv
import tempfile
import unittest
from pathlib import Path
from typing import List

from refresh_on_reconnect.core import ReconnectCore, ReconnectOptions
from refresh_on_reconnect.link_state import LinkKind, ManualLinkState
from refresh_on_reconnect.metrics import MetricsLogger
from refresh_on_reconnect.monitor import ConnectivityMonitor

DELAY = 0.1


class _FakeProbe:
    def __init__(self, online: bool = True) -> None:
        self.online = online

    async def __call__(self) -> bool:
        await asyncio.sleep(0)
        return self.online


class _GatedProbe:
    def __init__(self) -> None:
        self.release = asyncio.Event()

    async def __call__(self) -> bool:
        await self.release.wait()
        return False


async def _settle() -> None:
    await asyncio.sleep(0.01)


class _CoreTestCase(unittest.IsolatedAsyncioTestCase):
    def build(self, *, initially_online: bool = True, **overrides) -> ReconnectCore:
        self.probe = _FakeProbe(online=initially_online)
        self.source = ManualLinkState(LinkKind.WIFI)
        self.refreshes: List[str] = []
        monitor = ConnectivityMonitor(link_source=self.source, probe=self.probe)
        options = dict(on_reconnect=lambda: self.refreshes.append("refresh"), debounce_delay=DELAY, monitor=monitor)
        options.update(overrides)
        core = ReconnectCore(**options)
        self.addAsyncCleanup(core.close)
        return core

    def go_offline(self) -> None:
        self.source.set()

    def go_online(self) -> None:
        self.probe.online = True
        self.source.set(LinkKind.WIFI)


class ReconnectScenarioTest(_CoreTestCase):
    async def test_offline_then_online_refreshes_once(self) -> None:
        core = self.build(initially_online=True)
        await core.start()
        self.assertTrue(core.online)
        self.assertFalse(core.was_offline)

        self.go_offline()
        await _settle()
        self.assertFalse(core.online)

        self.go_online()
        await _settle()
        self.assertTrue(core.online)
        self.assertEqual(self.refreshes, [])

        await asyncio.sleep(DELAY * 2)
        self.assertEqual(self.refreshes, ["refresh"])

    async def test_starting_offline_counts_as_prior_offline(self) -> None:
        core = self.build(initially_online=False)
        await core.start()
        self.assertFalse(core.online)
        self.assertTrue(core.was_offline)

        self.go_online()
        await asyncio.sleep(DELAY * 2)
        self.assertEqual(self.refreshes, ["refresh"])

    async def test_staying_online_never_refreshes(self) -> None:
        core = self.build(initially_online=True)
        await core.start()

        self.go_online()
        await _settle()
        self.go_online()
        await asyncio.sleep(DELAY * 2)

        self.assertTrue(core.online)
        self.assertEqual(self.refreshes, [])

    async def test_flapping_collapses_to_one_refresh(self) -> None:
        core = self.build(initially_online=True)
        await core.start()

        for _ in range(2):
            self.go_offline()
            await _settle()
            self.go_online()
            await _settle()

        await asyncio.sleep(DELAY * 2)
        self.assertEqual(self.refreshes, ["refresh"])

    async def test_initial_observation_alone_does_not_refresh(self) -> None:
        core = self.build(initially_online=False)
        await core.start()
        await asyncio.sleep(DELAY * 2)
        self.assertEqual(self.refreshes, [])

    async def test_context_manager_releases_on_exit(self) -> None:
        core = self.build(initially_online=False)
        async with core:
            self.go_online()
            await _settle()
            self.assertTrue(core.debouncer.pending)

        self.assertTrue(core.closed)
        self.assertTrue(core.debouncer.disposed)
        await asyncio.sleep(DELAY * 2)
        self.assertEqual(self.refreshes, [])

    async def test_async_refresh_callback_is_awaited(self) -> None:
        done = asyncio.Event()

        async def refresh() -> None:
            await asyncio.sleep(0)
            done.set()

        core = self.build(initially_online=False, on_reconnect=refresh)
        await core.start()
        self.go_online()
        await asyncio.wait_for(done.wait(), timeout=1.0)


class StateMachineTest(_CoreTestCase):
    async def test_handle_detects_only_offline_to_online_edges(self) -> None:
        core = self.build()
        observations = [True, True, False, False, True, True, False, True]
        edges = [core.handle(value) for value in observations]

        self.assertEqual(edges, [False, False, False, False, True, False, False, True])
        self.assertFalse(core.was_offline)

    async def test_failing_refresh_leaves_flags_consistent(self) -> None:
        async def refresh() -> None:
            raise RuntimeError("backend down")

        core = self.build(on_reconnect=refresh)
        core.handle(False)
        with self.assertLogs("refresh_on_reconnect.debounce", level="ERROR"):
            self.assertTrue(core.handle(True))
            await asyncio.sleep(DELAY * 2)

        self.assertTrue(core.online)
        self.assertFalse(core.was_offline)
        core.handle(False)
        self.assertTrue(core.handle(True))

    async def test_no_callback_is_a_noop(self) -> None:
        core = self.build(on_reconnect=None)
        core.handle(False)
        self.assertTrue(core.handle(True))
        await asyncio.sleep(DELAY * 2)
        self.assertFalse(core.debouncer.pending)

    async def test_handle_after_close_is_ignored(self) -> None:
        core = self.build()
        await core.close()
        await core.close()

        self.assertFalse(core.handle(False))
        self.assertTrue(core.online)

    async def test_late_initial_probe_is_discarded(self) -> None:
        gated = _GatedProbe()
        monitor = ConnectivityMonitor(link_source=ManualLinkState(LinkKind.WIFI), probe=gated)
        core = ReconnectCore(monitor=monitor, debounce_delay=DELAY)

        starting = asyncio.create_task(core.start())
        await _settle()
        await core.close()
        gated.release.set()
        await asyncio.wait_for(starting, timeout=1.0)

        self.assertTrue(core.online)
        self.assertFalse(core.was_offline)

    async def test_options_bundle_and_overrides(self) -> None:
        options = ReconnectOptions(offline_content="offline", debounce_delay=1.5)
        core = ReconnectCore(options, debounce_delay=DELAY, monitor=ConnectivityMonitor(
            link_source=ManualLinkState(LinkKind.WIFI), probe=_FakeProbe()))
        self.addAsyncCleanup(core.close)

        self.assertEqual(core.debouncer.delay, DELAY)
        self.assertEqual(options.debounce_delay, 1.5)
        self.assertEqual(core.select("content"), "content")
        core.handle(False)
        self.assertEqual(core.select("content"), "offline")

    async def test_select_without_offline_content_keeps_content(self) -> None:
        core = self.build()
        core.handle(False)
        self.assertEqual(core.select("content"), "content")


class ObservableStateTest(_CoreTestCase):
    async def test_listeners_see_each_change_once(self) -> None:
        core = self.build(initially_online=True)
        seen: List[bool] = []
        unsubscribe = core.subscribe(seen.append)
        await core.start()

        self.go_offline()
        await _settle()
        self.go_online()
        await _settle()
        unsubscribe()
        unsubscribe()
        self.go_offline()
        await _settle()

        self.assertEqual(seen, [False, True])

    async def test_initial_offline_state_is_published(self) -> None:
        core = self.build(initially_online=False)
        seen: List[bool] = []
        core.subscribe(seen.append)
        await core.start()
        self.assertEqual(seen, [False])

    async def test_metrics_record_transitions(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            log_path = Path(tmp, "events.csv")
            core = self.build(initially_online=False, metrics=MetricsLogger(log_path))
            await core.start()
            self.go_online()
            await asyncio.sleep(DELAY * 2)
            await core.close()

            with log_path.open("r", encoding="utf-8", newline="") as handle:
                events = [row["event"] for row in csv.DictReader(handle)]

        self.assertEqual(events[0], "state_change")
        for expected in ("monitor_start", "reconnect_scheduled", "refresh", "monitor_stop"):
            self.assertIn(expected, events)


if __name__ == "__main__":
    unittest.main()
