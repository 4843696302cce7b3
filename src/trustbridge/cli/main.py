#!/usr/bin/env python3
"""
Trustbridge CLI - federated identity trust networks.

Commands:
  trustbridge network validate FILE         Check a trust-network document
  trustbridge network show FILE             List providers and trust relationships
  trustbridge network path FILE SRC DST     Compute a trust path
  trustbridge discover USER ...             Resolve a user's home provider
  trustbridge serve                         Run the backchannel (CIBA) server
"""

from __future__ import annotations

import argparse
import sys

from ..core.logging import configure_logging
from .commands import COMMAND_MODULES


def app() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="trustbridge",
        description="Federated identity trust networks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  trustbridge network validate network.json
  trustbridge network path network.json uni-b uni-a
  trustbridge discover alice@uni-a.edu -n network.json -a accounts.json -c uni-b --ciba
  trustbridge serve --accounts accounts.json --port 8480
        """,
    )
    parser.add_argument("--log-level", help="Log level (default: TRUSTBRIDGE_LOG_LEVEL)")

    subparsers = parser.add_subparsers(dest="command", required=True)
    for module in COMMAND_MODULES:
        module.register(subparsers)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = app()
    args = parser.parse_args(argv)

    configure_logging(level=args.log_level)

    handler = getattr(args, "func", None)
    if handler:
        return handler(args)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
