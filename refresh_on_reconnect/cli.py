"""refresh-on-reconnect command-line interface."""
from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import signal
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.table import Table

from refresh_on_reconnect.core import ReconnectCore
from refresh_on_reconnect.link_state import InterfaceLinkState
from refresh_on_reconnect.metrics import MetricsLogger
from refresh_on_reconnect.monitor import ConnectivityMonitor, ProbePolicy
from refresh_on_reconnect.settings import Settings

console = Console()


def _build_monitor(args: argparse.Namespace, metrics: Optional[MetricsLogger] = None) -> ConnectivityMonitor:
	return ConnectivityMonitor(
		link_source=InterfaceLinkState(poll_interval=getattr(args, "poll_interval", 5.0)),
		check_url=args.url,
		timeout=args.timeout,
		policy=ProbePolicy.LENIENT if args.lenient else ProbePolicy.STRICT,
		metrics=metrics,
	)


def _stamp() -> str:
	return datetime.now().strftime("%H:%M:%S")


async def _cmd_check(args: argparse.Namespace) -> int:
	monitor = _build_monitor(args)
	links = await monitor.link_source.check()
	online = await monitor.currently_online()
	data: Dict[str, Any] = {
		"online": online,
		"url": args.url,
		"policy": monitor.policy.value,
		"links": sorted(kind.value for kind in links),
	}
	if args.json:
		json.dump(data, sys.stdout, indent=2)
		sys.stdout.write("\n")
	else:
		table = Table(title="Connectivity", show_header=False)
		table.add_column("key")
		table.add_column("value")
		table.add_row("status", "[green]online[/green]" if online else "[red]offline[/red]")
		table.add_row("links", ", ".join(data["links"]))
		table.add_row("probe", f"{args.url} ({args.timeout:g}s)")
		table.add_row("policy", data["policy"])
		console.print(table)
	return 0 if online else 1


async def _cmd_watch(args: argparse.Namespace) -> int:
	metrics: Optional[MetricsLogger] = None
	if args.log:
		metrics = MetricsLogger(Path(args.log), static_extra={"url": args.url})

	refreshes = 0

	def _on_reconnect() -> None:
		nonlocal refreshes
		refreshes += 1
		console.print(f"[{_stamp()}] [bold cyan]reconnected[/bold cyan], refresh #{refreshes}")

	def _on_state(online: bool) -> None:
		label = "[green]online[/green]" if online else "[red]offline[/red]"
		console.print(f"[{_stamp()}] {label}")

	core = ReconnectCore(
		on_reconnect=_on_reconnect,
		debounce_delay=args.debounce,
		monitor=_build_monitor(args, metrics),
		metrics=metrics,
	)
	core.subscribe(_on_state)

	stop_event = asyncio.Event()
	loop = asyncio.get_running_loop()
	for sig in (signal.SIGINT, signal.SIGTERM):
		with contextlib.suppress(NotImplementedError):
			loop.add_signal_handler(sig, stop_event.set)

	async with core:
		state = "[green]online[/green]" if core.online else "[red]offline[/red]"
		console.print(f"[{_stamp()}] watching, initially {state}")
		with contextlib.suppress(asyncio.TimeoutError):
			await asyncio.wait_for(stop_event.wait(), timeout=args.runtime)
	return 0


def _build_parser(settings: Settings) -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(description="Internet reachability and reconnect notifications")
	parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
	sub = parser.add_subparsers(dest="command", required=True)

	def _probe_options(cmd: argparse.ArgumentParser) -> None:
		cmd.add_argument("--url", default=settings.check_url, help="Reachability probe URL")
		cmd.add_argument("--timeout", type=float, default=settings.timeout, help="Probe timeout seconds")
		cmd.add_argument(
			"--lenient",
			action="store_true",
			default=settings.lenient,
			help="Treat probe errors as online when an interface is up",
		)

	check = sub.add_parser("check", help="Probe connectivity once (exit 1 when offline)")
	_probe_options(check)
	check.add_argument("--json", action="store_true", help="Output JSON")
	check.set_defaults(handler=_cmd_check)

	watch = sub.add_parser("watch", help="Follow connectivity and report reconnections")
	_probe_options(watch)
	watch.add_argument("--debounce", type=float, default=settings.debounce, help="Reconnect debounce seconds")
	watch.add_argument(
		"--poll-interval",
		type=float,
		default=settings.poll_interval,
		help="Interface polling interval seconds",
	)
	watch.add_argument("--log", help="Path to a CSV event log")
	watch.add_argument("--runtime", type=float, help="Optional watch duration seconds")
	watch.set_defaults(handler=_cmd_watch)

	return parser


def main(argv: Optional[List[str]] = None) -> int:
	parser = _build_parser(Settings.from_env())
	args = parser.parse_args(argv)
	logging.basicConfig(
		level=logging.DEBUG if args.verbose else logging.WARNING,
		format="%(asctime)s %(levelname)s %(name)s: %(message)s",
	)
	try:
		return asyncio.run(args.handler(args))
	except ValueError as exc:
		parser.error(str(exc))
	except KeyboardInterrupt:
		return 130


if __name__ == "__main__":
	sys.exit(main())
