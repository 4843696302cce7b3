"""Backchannel server command.

Commands:
    trustbridge serve [--network FILE] [--accounts FILE] [--host H] [--port P]
"""

from __future__ import annotations

import argparse
import json

from ...core.config import get_config
from ...core.exceptions import ValidationException
from ...discovery.accounts import InMemoryAccountStore
from ...trust.registry import get_network_registry
from ..output import output_error
from .network import load_or_report


def register(subparsers: argparse._SubParsersAction) -> None:
    """Register the serve command."""
    serve_p = subparsers.add_parser("serve", help="Run the backchannel (CIBA) server")
    serve_p.add_argument("--network", "-n", help="Trust-network JSON document to publish")
    serve_p.add_argument("--accounts", "-a", help="JSON list of accounts (default: TRUSTBRIDGE_ACCOUNTS)")
    serve_p.add_argument("--host", help="Bind host (default: TRUSTBRIDGE_HOST)")
    serve_p.add_argument("--port", "-p", type=int, help="Bind port (default: TRUSTBRIDGE_PORT)")
    serve_p.set_defaults(func=cmd_serve)


def cmd_serve(args: argparse.Namespace) -> int:
    from ...ciba.app import run

    config = get_config()

    if args.network:
        network = load_or_report(args.network)
        if network is None:
            return 1
        get_network_registry().publish(network)
        print(f"✅ Published network '{network.network_id}' ({len(network.providers)} providers)")

    accounts_path = args.accounts or config.accounts_path
    accounts = None
    if accounts_path:
        try:
            accounts = InMemoryAccountStore.from_file(accounts_path)
        except (OSError, json.JSONDecodeError, ValidationException) as e:
            output_error(f"Cannot load accounts from {accounts_path}: {e}")
            return 1

    run(host=args.host, port=args.port, accounts=accounts)
    return 0
