from __future__ import annotations

from output_bridge.app import main

if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
