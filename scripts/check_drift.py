"""Script entry point for the CI drift gate."""
from __future__ import annotations

import sys

from contentsync.cli import main as cli_main


def main() -> None:
    cli_main([*sys.argv[1:], "drift"])


if __name__ == "__main__":
    main()
