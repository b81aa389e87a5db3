from __future__ import annotations

import argparse
import json
import sys
from types import SimpleNamespace

import pytest

from solaris import cli
from solaris.device.client import DeviceStatus
from solaris.main import SolarisState

from fake_device import FakeDeviceClient, make_capture


def _parsed() -> argparse.Namespace:
    return cli._build_parser("solaris").parse_args(["--bind", "127.0.0.1", "--port", "8877"])


def _fake_app(begin_shutdown_calls: list[int], shutdown_calls: list[int]) -> object:
    solaris = SimpleNamespace(
        begin_shutdown=lambda: begin_shutdown_calls.append(1),
        shutdown=lambda: shutdown_calls.append(1),
    )
    return SimpleNamespace(state=SimpleNamespace(solaris=solaris))


def _isolate(tmp_path, monkeypatch, fake: FakeDeviceClient | None = None) -> str:
    monkeypatch.setitem(sys.modules, "keyring", None)
    monkeypatch.setattr("solaris.config.migrate.bootstrap_config_path", lambda: tmp_path / "bootstrap.json")
    if fake is not None:
        monkeypatch.setattr("solaris.main.DeviceClient", lambda endpoint, **kwargs: fake)
    return str(tmp_path / "data")


def test_cli_returns_zero_on_keyboard_interrupt(monkeypatch) -> None:
    begin_calls: list[int] = []
    shutdown_calls: list[int] = []
    monkeypatch.setattr(cli, "create_app", lambda **kwargs: _fake_app(begin_calls, shutdown_calls))
    monkeypatch.setattr(cli.uvicorn, "Config", lambda *args, **kwargs: object())

    class _InterruptServer:
        def __init__(self, _config: object) -> None:
            self.should_exit = False
            self.started = True

        def run(self) -> None:
            raise KeyboardInterrupt

    monkeypatch.setattr(cli.uvicorn, "Server", _InterruptServer)

    assert cli._run(_parsed()) == 0
    assert len(begin_calls) == 1
    assert len(shutdown_calls) == 1


def test_cli_returns_nonzero_when_server_never_starts(monkeypatch) -> None:
    begin_calls: list[int] = []
    monkeypatch.setattr(cli, "create_app", lambda **kwargs: _fake_app(begin_calls, []))
    monkeypatch.setattr(cli.uvicorn, "Config", lambda *args, **kwargs: object())

    class _NeverStartedServer:
        def __init__(self, _config: object) -> None:
            self.should_exit = False
            self.started = False

        def run(self) -> None:
            return None

    monkeypatch.setattr(cli.uvicorn, "Server", _NeverStartedServer)

    assert cli._run(_parsed()) == 1
    assert len(begin_calls) == 1


def test_cli_forces_single_uvicorn_worker(monkeypatch) -> None:
    captured: dict[str, object] = {}
    monkeypatch.setattr(cli, "create_app", lambda **kwargs: _fake_app([], []))

    def _config(*args, **kwargs):
        captured.update(kwargs)
        return object()

    class _Server:
        def __init__(self, _config: object) -> None:
            self.should_exit = False
            self.started = True

        def run(self) -> None:
            return None

    monkeypatch.setattr(cli.uvicorn, "Config", _config)
    monkeypatch.setattr(cli.uvicorn, "Server", _Server)

    assert cli._run(_parsed()) == 0
    assert captured["workers"] == 1
    assert captured["port"] == 8877


def test_status_without_device_prints_disconnected_snapshot(tmp_path, monkeypatch, capsys) -> None:
    data_dir = _isolate(tmp_path, monkeypatch)

    assert cli.main(["status", "--data-dir", data_dir, "--log-level", "warning"]) == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload["device"] is None
    assert payload["connected"] is False


def test_mode_without_device_reports_error(tmp_path, monkeypatch, capsys) -> None:
    data_dir = _isolate(tmp_path, monkeypatch)

    assert cli.main(["mode", "manual", "--data-dir", data_dir, "--log-level", "warning"]) == 2
    assert capsys.readouterr().out.startswith("[error] No device is bound")


def test_light_and_captures_commands(tmp_path, monkeypatch, capsys) -> None:
    fake = FakeDeviceClient("http://device-a.test", DeviceStatus(mode="manual", foyer=False, porch=False, battery=90))
    data_dir = _isolate(tmp_path, monkeypatch, fake)
    state = SolarisState.create(data_dir=data_dir, log_level="warning", autostart=False)
    state.register_device("Front Door", "http://device-a.test")
    state.store.insert_captures([make_capture("evt-1", "2026-03-01T10:00:00+00:00", device_id="dev-local")])
    state.shutdown()

    assert cli.main(["light", "porch", "on", "--data-dir", data_dir, "--log-level", "warning"]) == 0
    snapshot = json.loads(capsys.readouterr().out)
    assert snapshot["porch_light"] is True
    assert fake.commands == [{"porch": True}]

    assert cli.main(["captures", "--data-dir", data_dir, "--log-level", "warning"]) == 0
    items = json.loads(capsys.readouterr().out)
    assert [item["id"] for item in items] == ["evt-1"]


def test_unknown_light_is_an_argparse_error(tmp_path, monkeypatch) -> None:
    data_dir = _isolate(tmp_path, monkeypatch)
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["light", "attic", "on", "--data-dir", data_dir])
    assert excinfo.value.code == 2
