"""Home-provider discovery command.

Commands:
    trustbridge discover USER --network FILE --accounts FILE   Resolve a user's home providers
"""

from __future__ import annotations

import argparse
import json
from typing import Any

from ...core.exceptions import ValidationException
from ...discovery.accounts import InMemoryAccountStore
from ...discovery.service import ProviderDiscoveryService
from ...topology.registry import compute_trust_path
from ..output import output_error, output_json
from .network import load_or_report


def register(subparsers: argparse._SubParsersAction) -> None:
    """Register the discover command."""
    discover_p = subparsers.add_parser("discover", help="Resolve a user's home provider")
    discover_p.add_argument("user", help="User identifier or email")
    discover_p.add_argument("--network", "-n", required=True, help="Trust-network JSON document")
    discover_p.add_argument("--accounts", "-a", required=True, help="JSON list of accounts")
    discover_p.add_argument("--current", "-c", help="Provider the user is at (adds trust paths)")
    discover_p.add_argument("--ciba", action="store_true", help="Also pick a backchannel-capable home provider")
    discover_p.add_argument("--json", action="store_true", help="Output as JSON")
    discover_p.set_defaults(func=cmd_discover)


def cmd_discover(args: argparse.Namespace) -> int:
    network = load_or_report(args.network)
    if network is None:
        return 1
    try:
        accounts = InMemoryAccountStore.from_file(args.accounts)
    except (OSError, json.JSONDecodeError, ValidationException) as e:
        output_error(f"Cannot load accounts from {args.accounts}: {e}")
        return 1

    if args.ciba and not args.current:
        output_error("--ciba needs --current")
        return 1
    if args.current and not network.is_member(args.current):
        output_error(f"Provider '{args.current}' is not a member of network {network.network_id}")
        return 1

    service = ProviderDiscoveryService(accounts)
    providers = service.find_providers_by_user(args.user)
    if not providers and "@" in args.user:
        providers = service.find_providers_by_email(args.user)

    result: dict[str, Any] = {"user": args.user, "providers": []}
    for provider_id in sorted(providers):
        entry: dict[str, Any] = {"provider_id": provider_id, "member": network.is_member(provider_id)}
        if args.current and entry["member"]:
            entry["trust_path"] = compute_trust_path(network, args.current, provider_id).to_dict()
        result["providers"].append(entry)
    if args.ciba:
        result["ciba_home_provider"] = service.find_ciba_home_provider(args.user, args.current, network)

    if args.json:
        output_json(result)
        return 0 if providers else 1

    if not providers:
        output_error(f"No home provider known for {args.user}")
        return 1

    print(f"Home provider(s) for {args.user}:")
    for entry in result["providers"]:
        line = f"  {entry['provider_id']}"
        if not entry["member"]:
            line += "  (not in this network)"
        elif "trust_path" in entry:
            path = entry["trust_path"]
            if path["reachable"]:
                line += f"  via {' -> '.join(path['path'])} ({path['hop_count']} hop(s))"
            else:
                line += "  (no trust path)"
        print(line)
    if args.ciba:
        ciba_home = result["ciba_home_provider"]
        if ciba_home:
            print(f"✅ Backchannel home provider: {ciba_home}")
        else:
            print("❌ No backchannel-capable home provider within reach")
    return 0
