#!/usr/bin/env python3
"""
Finance Buddy Entry Point

Runs the interactive ledger menu against the configured data file.
"""

import argparse
import sys
from typing import List, Optional

from .cli import LedgerShell
from .config import get_config
from .engine import LedgerEngine
from .logging_config import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="finance-buddy",
        description="Personal finance ledger with undo and flat-file persistence"
    )
    parser.add_argument(
        "--data-file",
        help="Ledger file to load at start and save on exit"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override the configured log level"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Start the menu loop"""
    args = build_parser().parse_args(argv)
    config = get_config()

    setup_logging(
        level=args.log_level or config.log_level,
        log_format=config.log_format,
        log_file=config.log_file
    )

    shell = LedgerShell(LedgerEngine(config=config), data_file=args.data_file)
    try:
        shell.run()
    except KeyboardInterrupt:
        print("\nInterrupted. Unsaved changes were discarded.")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
