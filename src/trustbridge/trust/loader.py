"""Trust-network document loader.

Document format::

    {
      "network_id": "research-federation",
      "topology_type": "hub-and-spoke",
      "registry_version": "2026-01-15T10:00:00Z",
      "providers": {
        "hub": {"issuer": "https://hub.example.org", "role": "hub",
                "metadata": {"authorization_endpoint": "...", "token_endpoint": "..."},
                "attributes": {"ciba_supported": "true"}},
        ...
      },
      "trust_relationships": [
        {"from": "spoke-a", "to": "hub", "level": "explicit"},
        ...
      ]
    }

Missing required fields and dangling references fail the whole load; an
edge with an unrecognized level is skipped with a warning.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ..core.exceptions import TrustNetworkConfigError
from .models import (
    DEFAULT_TOPOLOGY,
    ProviderMetadata,
    ProviderNode,
    ProviderRole,
    TrustEdge,
    TrustLevel,
    TrustNetwork,
)

logger = logging.getLogger(__name__)


class _JSONObject(dict):
    """dict that remembers keys repeated in the JSON text it was parsed from."""

    duplicate_keys: tuple[str, ...] = ()


def _object_pairs_hook(pairs: list[tuple[str, Any]]) -> _JSONObject:
    obj = _JSONObject()
    duplicates = []
    for key, value in pairs:
        if key in obj:
            duplicates.append(key)
        obj[key] = value
    obj.duplicate_keys = tuple(duplicates)
    return obj


def _parse_version(raw: Any, network_id: str) -> datetime:
    if raw is None:
        return datetime.now(UTC)
    try:
        version = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Ignoring malformed registry_version {raw!r} in network '{network_id}'")
        return datetime.now(UTC)
    if version.tzinfo is None:
        version = version.replace(tzinfo=UTC)
    return version


def _stringify_attributes(raw: Mapping[str, Any]) -> dict[str, str]:
    attributes = {}
    for key, value in raw.items():
        if isinstance(value, bool):
            attributes[key] = "true" if value else "false"
        elif value is not None:
            attributes[key] = str(value)
    return attributes


def _parse_provider(provider_id: str, raw: Any, problems: list[str]) -> ProviderNode | None:
    if not isinstance(raw, Mapping):
        problems.append(f"provider '{provider_id}' must be an object")
        return None

    issuer = raw.get("issuer")
    role_raw = raw.get("role")
    ok = True
    if not isinstance(issuer, str) or not issuer:
        problems.append(f"provider '{provider_id}' is missing required field 'issuer'")
        ok = False
    role: ProviderRole | None = None
    if role_raw is None:
        problems.append(f"provider '{provider_id}' is missing required field 'role'")
        ok = False
    else:
        try:
            role = ProviderRole.from_string(str(role_raw))
        except ValueError:
            problems.append(f"provider '{provider_id}' has unknown role {role_raw!r}")
            ok = False
    if not ok:
        return None

    metadata_raw = raw.get("metadata")
    if metadata_raw is not None and not isinstance(metadata_raw, Mapping):
        logger.warning(f"Ignoring non-object metadata for provider '{provider_id}'")
        metadata_raw = None

    attributes_raw = raw.get("attributes")
    if attributes_raw is not None and not isinstance(attributes_raw, Mapping):
        logger.warning(f"Ignoring non-object attributes for provider '{provider_id}'")
        attributes_raw = None

    discovery = raw.get("discovery")
    if discovery is not None and not isinstance(discovery, str):
        logger.warning(f"Ignoring non-string discovery URL for provider '{provider_id}'")
        discovery = None

    return ProviderNode(
        provider_id=provider_id,
        issuer=issuer,
        role=role,
        metadata=ProviderMetadata.from_dict(metadata_raw),
        attributes=_stringify_attributes(attributes_raw or {}),
        discovery_url=discovery or None,
    )


def _parse_edge(index: int, raw: Any, network_id: str, problems: list[str]) -> TrustEdge | None:
    if not isinstance(raw, Mapping):
        problems.append(f"trust relationship #{index} must be an object")
        return None

    missing = [name for name in ("from", "to", "level") if not isinstance(raw.get(name), str) or not raw.get(name)]
    if missing:
        problems.append(f"trust relationship #{index} is missing required field(s): {', '.join(missing)}")
        return None

    try:
        level = TrustLevel.from_string(raw["level"])
    except ValueError:
        logger.warning(
            f"Skipping trust relationship {raw['from']} -> {raw['to']} in network '{network_id}': "
            f"unknown trust level {raw['level']!r}"
        )
        return None
    return TrustEdge(from_id=raw["from"], to_id=raw["to"], level=level)


def load_network(document: Mapping[str, Any], validate_topology: bool = True) -> TrustNetwork:
    """Build a TrustNetwork from a parsed trust-network document.

    Args:
        document: Parsed JSON object
        validate_topology: Also run the topology strategy's own checks
            (for example: a hub-and-spoke network needs a hub)

    Raises:
        TrustNetworkConfigError: Listing every problem found.
    """
    if not isinstance(document, Mapping):
        raise TrustNetworkConfigError(["document must be a JSON object"])

    problems: list[str] = []

    network_id = document.get("network_id")
    if not isinstance(network_id, str) or not network_id:
        problems.append("missing required field 'network_id'")
        network_id = ""

    topology_type = document.get("topology_type") or DEFAULT_TOPOLOGY
    if not isinstance(topology_type, str):
        problems.append(f"topology_type must be a string, got {topology_type!r}")
        topology_type = DEFAULT_TOPOLOGY

    version = _parse_version(document.get("registry_version"), network_id)

    providers_raw = document.get("providers")
    providers: list[ProviderNode] = []
    if not isinstance(providers_raw, Mapping):
        problems.append("missing required object 'providers'")
    else:
        for key in getattr(providers_raw, "duplicate_keys", ()):
            problems.append(f"duplicate provider id '{key}'")
        for provider_id, raw in providers_raw.items():
            node = _parse_provider(provider_id, raw, problems)
            if node is not None:
                providers.append(node)

    edges_raw = document.get("trust_relationships", [])
    edges: list[TrustEdge] = []
    if not isinstance(edges_raw, list):
        problems.append("trust_relationships must be an array")
    else:
        for index, raw in enumerate(edges_raw):
            edge = _parse_edge(index, raw, network_id, problems)
            if edge is not None:
                edges.append(edge)

    if problems:
        # Drop edges touching providers that failed to parse; those are
        # already reported and would otherwise show up twice.
        declared = set(providers_raw) if isinstance(providers_raw, Mapping) else set()
        failed = declared - {p.provider_id for p in providers}
        edges = [e for e in edges if e.from_id not in failed and e.to_id not in failed]

    network = TrustNetwork.build(
        network_id=network_id,
        providers=providers,
        edges=edges,
        topology_type=topology_type,
        version=version,
        extra_problems=problems,
    )

    if validate_topology:
        # Import here to avoid circular imports
        from ..topology.registry import validate_topology as _validate

        _validate(network)

    logger.debug(
        f"Loaded trust network '{network.network_id}' ({network.topology_type}): "
        f"{len(network.providers)} providers, {len(network.edges)} edges"
    )
    return network


def parse_network_json(text: str, validate_topology: bool = True) -> TrustNetwork:
    """Parse a trust-network document from JSON text."""
    try:
        document = json.loads(text, object_pairs_hook=_object_pairs_hook)
    except json.JSONDecodeError as e:
        raise TrustNetworkConfigError([f"invalid JSON: {e}"]) from e
    return load_network(document, validate_topology=validate_topology)


def load_network_file(path: str | Path, validate_topology: bool = True) -> TrustNetwork:
    """Load a trust-network document from a file."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise TrustNetworkConfigError([f"cannot read {path}: {e}"]) from e
    return parse_network_json(text, validate_topology=validate_topology)
