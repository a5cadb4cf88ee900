"""Script entry point that normalizes the snapshot and pushes it to the store."""
from __future__ import annotations

import sys

from contentsync.cli import main as cli_main


def main() -> None:
    options = sys.argv[1:]
    cli_main([*options, "normalize"])
    cli_main([*options, "import"])


if __name__ == "__main__":
    main()
