from __future__ import annotations

from intermediator.cli import main

if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
