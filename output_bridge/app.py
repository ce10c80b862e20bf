"""Command-line entry point for the output bridge."""
from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from output_bridge.config import SETTINGS_FILE, BridgeSettings, load_settings
from output_bridge.errors import ConfigError
from output_bridge.logging_utils import configure_logging
from output_bridge.runtime_services import BridgeRuntime, build_runtime
from output_bridge.version import __version__

EXIT_OK = 0
EXIT_STARTUP_FAILED = 1
EXIT_BAD_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    defaults = BridgeSettings()
    parser = argparse.ArgumentParser(
        prog="output-bridge",
        description=(
            "Relay a producer's 'name = value' network output to local consumers "
            "over a JSON-lines broadcast socket."
        ),
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config",
        type=Path,
        help=f"JSON settings file (default: ./{SETTINGS_FILE} when present)",
    )
    parser.add_argument("--host", dest="upstream_host", help=f"Producer host (default: {defaults.upstream_host})")
    parser.add_argument(
        "--port", dest="upstream_port", type=int, help=f"Producer port (default: {defaults.upstream_port})"
    )
    parser.add_argument(
        "--terminator",
        dest="line_terminator",
        help="Upstream line terminator: cr, lf or crlf (default: cr)",
    )
    parser.add_argument(
        "--reconnect-delay",
        dest="reconnect_delay",
        type=float,
        help=f"Seconds between connection attempts (default: {defaults.reconnect_delay})",
    )
    parser.add_argument(
        "--listen-host", dest="listen_host", help=f"Consumer listener host (default: {defaults.listen_host})"
    )
    parser.add_argument(
        "--listen-port",
        dest="listen_port",
        type=int,
        help=f"Consumer listener port, 0 for ephemeral (default: {defaults.listen_port})",
    )
    parser.add_argument("--port-file", dest="port_file", type=Path, help="Write the listener port to this JSON file")
    parser.add_argument("--log-dir", dest="log_dir", type=Path, help="Also write rotating logs to this directory")
    parser.add_argument("--debug", action="store_true", default=None, help="Enable debug logging")
    return parser


def _cli_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    keys = (
        "upstream_host",
        "upstream_port",
        "line_terminator",
        "reconnect_delay",
        "listen_host",
        "listen_port",
        "port_file",
        "log_dir",
        "debug",
    )
    return {key: getattr(args, key) for key in keys if getattr(args, key, None) is not None}


def _settings_path(args: argparse.Namespace) -> Optional[Path]:
    if args.config is not None:
        return args.config
    candidate = Path.cwd() / SETTINGS_FILE
    return candidate if candidate.exists() else None


def serve(runtime: BridgeRuntime, stop_event: threading.Event, logger: logging.Logger) -> int:
    """Run until ``stop_event`` is set, then tear everything down."""
    if not runtime.start():
        return EXIT_STARTUP_FAILED
    logger.info("Output bridge %s running", __version__)
    try:
        while not stop_event.wait(timeout=1.0):
            pass
    finally:
        logger.info("Shutting down output bridge")
        runtime.stop()
    return EXIT_OK


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        settings = load_settings(_settings_path(args), os.environ, _cli_overrides(args))
    except ConfigError as exc:
        parser.print_usage(sys.stderr)
        print(f"{parser.prog}: error: invalid configuration: {exc}", file=sys.stderr)
        return EXIT_BAD_CONFIG

    logger = configure_logging(debug=settings.debug, log_dir=settings.log_dir, retention=settings.log_retention)
    logger.debug("Effective settings: %s", settings)

    stop_event = threading.Event()

    def _request_stop(signum, _frame) -> None:
        logger.info("Received signal %s", signal.Signals(signum).name)
        stop_event.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    return serve(build_runtime(settings, logger), stop_event, logger)
