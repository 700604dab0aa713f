#!/usr/bin/env python3
"""ralph-loop CLI entrypoint."""

import argparse
import logging
import sys

from ralphloop import __version__
from ralphloop.commands import run as cmd_run_module


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ralph-loop",
        description="Generate one content artifact per pending work item, up to MAX_ITERATIONS per run.",
        epilog="Settings are read from ralph.env in the project root and RALPH_* environment variables.",
    )
    parser.add_argument("--root", help="Project directory (default: current directory)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Stream agent output and enable debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        return cmd_run_module.cmd_run(args)
    except KeyboardInterrupt:
        print("\nInterrupted; completed items are already saved")
        return 130


if __name__ == "__main__":
    sys.exit(main())
