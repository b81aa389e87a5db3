from __future__ import annotations

import argparse
from collections.abc import Callable
import json
import signal
import sys
import threading

import uvicorn

from solaris.config.defaults import DEFAULT_BIND, DEFAULT_LOG_LEVEL, DEFAULT_PORT, OPERATION_MODES
from solaris.device.simulator import create_simulator_app
from solaris.main import SolarisState, create_app
from solaris.util.logging import get_logger

logger = get_logger(__name__)

_KNOWN_COMMANDS = {"serve", "status", "captures", "mode", "light", "pair", "simulate"}


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--data-dir", default=None, help="Path for runtime data (SQLite/logs/config)")
    parser.add_argument("--log-level", default=DEFAULT_LOG_LEVEL, help="Log level")
    parser.add_argument("--backend", choices=["local", "supabase"], default=None, help="Event store backend")


def _add_serve_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--bind", default=DEFAULT_BIND, help=f"Bind host (default {DEFAULT_BIND})")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help=f"Bind port (default {DEFAULT_PORT})")


def _build_parser(prog: str) -> argparse.ArgumentParser:
    """Bare invocation without a command runs the companion server."""
    parser = argparse.ArgumentParser(prog=prog, description="SOLARIS home automation companion")
    _add_common(parser)
    _add_serve_options(parser)
    return parser


def _build_command_parser(prog: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=prog, description="SOLARIS home automation companion")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the companion API server")
    _add_common(serve)
    _add_serve_options(serve)

    status = subparsers.add_parser("status", help="Refresh and print the device status")
    _add_common(status)

    captures = subparsers.add_parser("captures", help="Print the most recent captures")
    _add_common(captures)
    captures.add_argument("--limit", type=int, default=None, help="Maximum captures to print")

    mode = subparsers.add_parser("mode", help="Change the operation mode")
    _add_common(mode)
    mode.add_argument("mode", choices=list(OPERATION_MODES))

    light = subparsers.add_parser("light", help="Switch a light on or off")
    _add_common(light)
    light.add_argument("light", choices=["foyer", "porch"])
    light.add_argument("value", choices=["on", "off"])

    pair = subparsers.add_parser("pair", help="Provision a device over its setup hotspot and register it")
    _add_common(pair)
    pair.add_argument("--name", required=True, help="Display name for the device")
    pair.add_argument("--ssid", required=True, help="Home WiFi network name")
    pair.add_argument("--password", required=True, help="Home WiFi password")
    pair.add_argument("--endpoint", required=True, help="Tunneled device URL to use after pairing")

    simulate = subparsers.add_parser("simulate", help="Run an in-memory device simulator")
    simulate.add_argument("--bind", default="127.0.0.1", help="Bind host (default 127.0.0.1)")
    simulate.add_argument("--port", type=int, default=5000, help="Bind port (default 5000)")
    simulate.add_argument("--log-level", default="info", help="Uvicorn log level")

    return parser


def _run(parsed: argparse.Namespace) -> int:
    if parsed.bind == "0.0.0.0":
        print("[warning] LAN access enabled. Keep SOLARIS on trusted networks and do not expose publicly.")

    app = create_app(
        data_dir=parsed.data_dir,
        bind=parsed.bind,
        port=parsed.port,
        log_level=parsed.log_level,
        backend=parsed.backend,
    )
    early_shutdown_started = threading.Event()

    print(f"SOLARIS companion running at http://{parsed.bind}:{parsed.port}")
    config = uvicorn.Config(
        app,
        host=parsed.bind,
        port=parsed.port,
        log_level=parsed.log_level,
        workers=1,
        timeout_graceful_shutdown=2,
        timeout_keep_alive=1,
    )
    server = uvicorn.Server(config)
    previous_handlers: dict[int, object] = {}
    run_exit_code: int | None = None

    def _begin_shutdown() -> None:
        if early_shutdown_started.is_set():
            return
        early_shutdown_started.set()
        solaris_state = getattr(getattr(app, "state", None), "solaris", None)
        if solaris_state is None:
            return
        try:
            solaris_state.begin_shutdown()
        except Exception:
            logger.exception("failed to stop pollers")

    def _finalize_shutdown() -> None:
        solaris_state = getattr(getattr(app, "state", None), "solaris", None)
        if solaris_state is None:
            return
        try:
            solaris_state.shutdown()
        except Exception:
            logger.exception("failed to release resources on shutdown")

    def _request_exit(signum: int, _frame: object) -> None:
        if signum in {signal.SIGINT, signal.SIGTERM}:
            _begin_shutdown()
            server.should_exit = True

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            previous_handlers[sig] = signal.getsignal(sig)
            signal.signal(sig, _request_exit)
        except (AttributeError, ValueError):
            continue

    try:
        try:
            server.run()
        except KeyboardInterrupt:
            _begin_shutdown()
            server.should_exit = True
        except SystemExit as exc:
            if server.should_exit or early_shutdown_started.is_set():
                run_exit_code = 0
            else:
                code = exc.code
                run_exit_code = code if isinstance(code, int) else 1
    finally:
        _begin_shutdown()
        _finalize_shutdown()
        for sig, handler in previous_handlers.items():
            try:
                signal.signal(sig, handler)
            except (AttributeError, ValueError):
                continue
    if run_exit_code is not None:
        return run_exit_code
    if bool(getattr(server, "started", False)) or server.should_exit:
        return 0
    return 1


def _print_result(payload: object) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True))


def _with_state(parsed: argparse.Namespace, action: Callable[[SolarisState], object]) -> int:
    state = SolarisState.create(
        data_dir=parsed.data_dir,
        log_level=parsed.log_level,
        backend=parsed.backend,
        autostart=False,
    )
    try:
        _print_result(action(state))
    finally:
        state.shutdown()
    return 0


def _status(state: SolarisState) -> dict[str, object]:
    state.reconciler.refresh()
    return state.reconciler.snapshot()


def _dispatch_command(parsed: argparse.Namespace) -> int:
    if parsed.command == "serve":
        return _run(parsed)
    if parsed.command == "simulate":
        print(f"SOLARIS device simulator running at http://{parsed.bind}:{parsed.port}")
        uvicorn.run(create_simulator_app(), host=parsed.bind, port=parsed.port, log_level=parsed.log_level)
        return 0
    if parsed.command == "status":
        return _with_state(parsed, _status)
    if parsed.command == "captures":
        return _with_state(
            parsed,
            lambda state: [c.as_dict() for c in state.captures.load_recent(limit=parsed.limit)],
        )
    if parsed.command == "mode":

        def _apply_mode(state: SolarisState) -> dict[str, object]:
            state.reconciler.apply_mode_change(parsed.mode)
            return state.reconciler.snapshot()

        return _with_state(parsed, _apply_mode)
    if parsed.command == "light":

        def _apply_light(state: SolarisState) -> dict[str, object]:
            state.reconciler.apply_light_toggle(parsed.light, parsed.value == "on")
            return state.reconciler.snapshot()

        return _with_state(parsed, _apply_light)
    if parsed.command == "pair":
        return _with_state(
            parsed,
            lambda state: state.pair_device(parsed.name, parsed.ssid, parsed.password, parsed.endpoint).as_dict(),
        )
    raise ValueError(f"Unknown command: {parsed.command}")


def main(argv: list[str] | None = None) -> int:
    args = list(argv or [])
    try:
        if args and args[0] in _KNOWN_COMMANDS:
            parser = _build_command_parser("solaris")
            parsed = parser.parse_args(args)
            return _dispatch_command(parsed)
        parser = _build_parser("solaris")
        parsed = parser.parse_args(args)
        return _run(parsed)
    except KeyboardInterrupt:
        return 0
    except Exception as exc:
        print(f"[error] {exc}")
        return 2


def run() -> None:
    raise SystemExit(main(sys.argv[1:]))


if __name__ == "__main__":
    run()
