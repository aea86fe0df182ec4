"""Entry point for the Cadence application timing daemon.

``python main.py`` with no arguments runs the daemon; any arguments are
passed to the ``cadence`` command line.
"""

from __future__ import annotations

import sys

from cadence.cli import main as cli_main


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    return cli_main(args or ["run"])


if __name__ == "__main__":
    sys.exit(main())
