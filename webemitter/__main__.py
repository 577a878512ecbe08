"""Entry point for ``python -m webemitter``."""

from __future__ import annotations

from webemitter.cli.main import main

if __name__ == "__main__":
    main()
