"""`python -m private_marbles` entrypoint."""

from __future__ import annotations

from private_marbles.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
