"""Trust-network inspection commands.

Commands:
    trustbridge network validate FILE                  Check a trust-network document
    trustbridge network show FILE [--json]             List providers and trust relationships
    trustbridge network path FILE SOURCE TARGET        Compute the trust path between two providers
"""

from __future__ import annotations

import argparse

from ...core.exceptions import TrustNetworkConfigError
from ...topology.mesh import MeshTopology
from ...topology.registry import compute_trust_path, get_topology
from ...trust.loader import load_network_file
from ...trust.models import TrustNetwork
from ..output import output_error, output_json


def register(subparsers: argparse._SubParsersAction) -> None:
    """Register network subcommands."""
    network_p = subparsers.add_parser("network", help="Inspect trust-network documents")
    network_sub = network_p.add_subparsers(dest="network_command", required=True)

    validate_p = network_sub.add_parser("validate", help="Load and validate a trust network")
    validate_p.add_argument("file", help="Trust-network JSON document")
    validate_p.set_defaults(func=cmd_network_validate)

    show_p = network_sub.add_parser("show", help="Show providers and trust relationships")
    show_p.add_argument("file", help="Trust-network JSON document")
    show_p.add_argument("--json", action="store_true", help="Output the normalized document as JSON")
    show_p.set_defaults(func=cmd_network_show)

    path_p = network_sub.add_parser("path", help="Compute a trust path")
    path_p.add_argument("file", help="Trust-network JSON document")
    path_p.add_argument("source", help="Provider the user is at")
    path_p.add_argument("target", help="Provider to reach")
    path_p.add_argument("--max-hops", type=int, help="Hop bound for mesh networks")
    path_p.add_argument("--json", action="store_true", help="Output as JSON")
    path_p.set_defaults(func=cmd_network_path)


def load_or_report(path: str) -> TrustNetwork | None:
    """Load a network, printing every configuration problem on failure."""
    try:
        return load_network_file(path)
    except TrustNetworkConfigError as e:
        output_error(f"Trust network {path} has {len(e.problems)} problem(s):")
        for problem in e.problems:
            print(f"  - {problem}")
        return None


def cmd_network_validate(args: argparse.Namespace) -> int:
    network = load_or_report(args.file)
    if network is None:
        return 1
    print(
        f"✅ Network '{network.network_id}' is valid: {len(network.providers)} provider(s), "
        f"{len(network.edges)} trust relationship(s), topology {network.topology_type}"
    )
    return 0


def cmd_network_show(args: argparse.Namespace) -> int:
    network = load_or_report(args.file)
    if network is None:
        return 1
    if args.json:
        output_json(network.to_dict())
        return 0

    print(f"Network: {network.network_id} ({network.topology_type}, version {network.version.isoformat()})")
    print(f"\nProviders ({len(network.providers)}):")
    width = max((len(pid) for pid in network.providers), default=0)
    for pid, node in network.providers.items():
        flags = "  [ciba]" if node.supports_ciba else ""
        print(f"  {pid:<{width}}  {node.role.value:<5}  {node.issuer}{flags}")

    print(f"\nTrust relationships ({len(network.edges)}):")
    for edge in network.edges:
        print(f"  {edge.from_id} -> {edge.to_id}  {edge.level.value}")
    return 0


def cmd_network_path(args: argparse.Namespace) -> int:
    network = load_or_report(args.file)
    if network is None:
        return 1

    for provider_id in (args.source, args.target):
        if not network.is_member(provider_id):
            output_error(f"Provider '{provider_id}' is not a member of network {network.network_id}")
            return 1

    if args.max_hops is not None:
        if args.max_hops < 1:
            output_error("--max-hops must be at least 1")
            return 1
        if not isinstance(get_topology(network.topology_type), MeshTopology):
            output_error(f"--max-hops only applies to mesh networks, not {network.topology_type}")
            return 1
        path = MeshTopology(max_hops=args.max_hops).compute_trust_path(network, args.source, args.target)
    else:
        path = compute_trust_path(network, args.source, args.target)

    if args.json:
        output_json(path.to_dict())
        return 0 if path.reachable else 1

    if not path.reachable:
        output_error(f"No trust path from {args.source} to {args.target}")
        return 1
    print(f"✅ {path.as_audit_string()} ({path.hop_count} hop(s), {path.level.value})")
    return 0
