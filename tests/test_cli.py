"""Command-line interface driven by fake monitors."""
from __future__ import annotations

import csv
import json
from unittest.mock import patch

import pytest

from refresh_on_reconnect import cli
from refresh_on_reconnect.link_state import LinkKind, ManualLinkState
from refresh_on_reconnect.monitor import ConnectivityMonitor, ProbePolicy


class _FakeProbe:
    def __init__(self, online: bool) -> None:
        self.online = online

    async def __call__(self) -> bool:
        return self.online


def _fake_builder(online: bool):
    def build(args, metrics=None):
        return ConnectivityMonitor(
            link_source=ManualLinkState(LinkKind.ETHERNET),
            probe=_FakeProbe(online),
            policy=ProbePolicy.LENIENT if args.lenient else ProbePolicy.STRICT,
            metrics=metrics,
        )

    return build


def test_check_json_reports_online(capsys):
    with patch.object(cli, "_build_monitor", _fake_builder(True)):
        code = cli.main(["check", "--json", "--url", "https://example.com"])

    assert code == 0
    data = json.loads(capsys.readouterr().out)
    assert data == {"online": True, "url": "https://example.com", "policy": "strict", "links": ["ethernet"]}


def test_check_exit_code_when_offline():
    with patch.object(cli, "_build_monitor", _fake_builder(False)):
        assert cli.main(["check", "--lenient"]) == 1


def test_check_defaults_come_from_environment(monkeypatch, capsys):
    monkeypatch.setenv("REFRESH_ON_RECONNECT_CHECK_URL", "https://probe.example.net")
    monkeypatch.setenv("REFRESH_ON_RECONNECT_LENIENT", "1")
    with patch.object(cli, "_build_monitor", _fake_builder(True)):
        cli.main(["check", "--json"])

    data = json.loads(capsys.readouterr().out)
    assert data["url"] == "https://probe.example.net"
    assert data["policy"] == "lenient"


def test_watch_runs_for_runtime_and_logs(tmp_path):
    log_path = tmp_path / "watch.csv"
    with patch.object(cli, "_build_monitor", _fake_builder(True)):
        code = cli.main(["watch", "--runtime", "0.05", "--debounce", "0.01", "--log", str(log_path)])

    assert code == 0
    with log_path.open("r", encoding="utf-8", newline="") as handle:
        events = [row["event"] for row in csv.DictReader(handle)]
    assert events.count("monitor_start") == 1
    assert "probe" in events
    assert events[-1] == "monitor_stop"


def test_subcommand_is_required():
    with pytest.raises(SystemExit):
        cli.main([])
