#!/usr/bin/env python3
"""Emulate a producer's network output server for exercising the bridge locally.

The mock listens like the producer does, greets each connection with a
``mame_start`` line and then cycles a handful of lamp outputs.
"""
from __future__ import annotations

import argparse
import itertools
import socket
import sys
import threading
import time
from typing import Iterable, Iterator, List

DEFAULT_OUTPUTS = ["lamp0", "lamp1", "led0", "digit0"]
TERMINATORS = {"cr": "\r", "lf": "\n", "crlf": "\r\n"}


def _print_step(message: str) -> None:
    print(f"[mock-producer] {message}")


def scripted_lines(title: str, outputs: Iterable[str], terminator: str) -> Iterator[str]:
    """Yield the start line, then toggle every output forever."""
    names: List[str] = list(outputs)
    yield f"mame_start = {title}{terminator}"
    for state in itertools.cycle((1, 0)):
        for name in names:
            yield f"{name} = {state}{terminator}"


def _serve_client(conn: socket.socket, args: argparse.Namespace) -> None:
    terminator = TERMINATORS[args.terminator]
    with conn:
        for line in scripted_lines(args.title, args.outputs, terminator):
            try:
                conn.sendall(line.encode("utf-8"))
            except OSError as exc:
                _print_step(f"Client went away: {exc}")
                return
            time.sleep(args.interval)


def main(argv: List[str]) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--title", default="pacman", help="Session title announced on connect")
    parser.add_argument("--interval", type=float, default=0.5, help="Seconds between lines")
    parser.add_argument("--terminator", choices=sorted(TERMINATORS), default="cr")
    parser.add_argument("outputs", nargs="*", default=DEFAULT_OUTPUTS)
    args = parser.parse_args(argv)

    with socket.create_server((args.host, args.port), reuse_port=False) as server:
        _print_step(f"Listening on {args.host}:{args.port}")
        try:
            while True:
                conn, peer = server.accept()
                _print_step(f"Bridge connected from {peer}")
                threading.Thread(target=_serve_client, args=(conn, args), daemon=True).start()
        except KeyboardInterrupt:
            _print_step("Stopping")
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main(sys.argv[1:]))
