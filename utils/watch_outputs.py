#!/usr/bin/env python3
"""Print output changes from a running bridge with their resolved names."""
from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path
from typing import List

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from output_client.data_client import OutputBridgeClient  # noqa: E402


def main(argv: List[str]) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8001)
    parser.add_argument("--port-file", type=Path, help="Read the bridge port from this JSON file instead")
    parser.add_argument("--lookup-timeout", type=float, default=2.0)
    args = parser.parse_args(argv)

    client: OutputBridgeClient

    def _on_update(output_id: int, value: int) -> None:
        future = client.resolve(output_id)
        future.add_done_callback(
            lambda done: print(f"{done.result() if not done.exception() else '?'} (id {output_id}) = {value}")
        )

    client = OutputBridgeClient(
        args.host,
        args.port,
        port_file=args.port_file,
        on_start=lambda title: print(f"== start: {title}"),
        on_stop=lambda: print("== stop"),
        on_update=_on_update,
        on_status=lambda status: print(f"[watch] {status}", file=sys.stderr),
    )
    client.start()
    try:
        while True:
            time.sleep(1.0)
    except KeyboardInterrupt:
        pass
    finally:
        client.unregister()
        client.stop()
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main(sys.argv[1:]))
