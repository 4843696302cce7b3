# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Trust network data model.

A TrustNetwork is an immutable, versioned snapshot of a federation: the
providers taking part, the directed trust edges between them, and the
topology they are arranged in. Snapshots are never mutated; a reload builds
a new one (see :mod:`trustbridge.trust.registry`).
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

from ..core.exceptions import TrustNetworkConfigError

# Attribute flagging backchannel (CIBA) authentication support
CIBA_SUPPORTED_ATTRIBUTE = "ciba_supported"

TRUTHY_FLAG_VALUES = frozenset({"true", "yes", "1"})

DEFAULT_TOPOLOGY = "hub-and-spoke"


def is_truthy_flag(value: str | None) -> bool:
    """Interpret a string attribute as a boolean flag.

    Only ``true``, ``yes`` and ``1`` (any case) are truthy; anything else,
    including a missing value, is falsy.
    """
    if value is None:
        return False
    return value.lower() in TRUTHY_FLAG_VALUES


# =============================================================================
# ENUMS
# =============================================================================


class TrustLevel(str, Enum):
    """Strength of a directed trust edge."""

    EXPLICIT = "explicit"  # Configured directly, usable for routing
    TRANSITIVE = "transitive"  # Derived through intermediate explicit edges
    NONE = "none"  # Explicit denial

    @classmethod
    def from_string(cls, value: str) -> TrustLevel:
        """Parse a trust level case-insensitively.

        Raises:
            ValueError: If ``value`` is not a known level.
        """
        normalized = value.strip().lower()
        for level in cls:
            if level.value == normalized:
                return level
        raise ValueError(f"Unknown trust level: {value!r}")


class ProviderRole(str, Enum):
    """Position of a provider within its network."""

    HUB = "hub"
    SPOKE = "spoke"
    PEER = "peer"

    @classmethod
    def from_string(cls, value: str) -> ProviderRole:
        normalized = value.strip().lower()
        for role in cls:
            if role.value == normalized:
                return role
        raise ValueError(f"Unknown provider role: {value!r}")


# =============================================================================
# PROVIDERS AND EDGES
# =============================================================================


@dataclass(frozen=True)
class ProviderMetadata:
    """Protocol endpoints of an identity provider.

    Every field is optional; an operation that needs an endpoint checks for
    it when it runs.
    """

    authorization_endpoint: str | None = None
    token_endpoint: str | None = None
    jwks_uri: str | None = None
    userinfo_endpoint: str | None = None
    backchannel_authentication_endpoint: str | None = None
    organization: str | None = None
    technical_contact: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> ProviderMetadata:
        """Build from a mapping, ignoring unknown keys and non-string values."""
        if not data:
            return cls()
        known = {f.name for f in dataclasses.fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known and isinstance(v, str) and v})

    def to_dict(self) -> dict[str, str]:
        return {k: v for k, v in dataclasses.asdict(self).items() if v is not None}

    def merged_with(self, other: ProviderMetadata) -> ProviderMetadata:
        """Return a copy with fields missing here filled in from ``other``."""
        updates = {
            f.name: getattr(other, f.name)
            for f in dataclasses.fields(self)
            if getattr(self, f.name) is None and getattr(other, f.name) is not None
        }
        return dataclasses.replace(self, **updates) if updates else self


@dataclass(frozen=True)
class ProviderNode:
    """One identity provider taking part in a trust network."""

    provider_id: str
    issuer: str
    role: ProviderRole
    metadata: ProviderMetadata = field(default_factory=ProviderMetadata)
    attributes: Mapping[str, str] = field(default_factory=dict)
    discovery_url: str | None = None

    def __post_init__(self) -> None:
        # Freeze the attribute map so a shared node can't be edited in place
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))

    def __hash__(self) -> int:
        return hash((self.provider_id, self.issuer))

    @property
    def is_hub(self) -> bool:
        return self.role == ProviderRole.HUB

    @property
    def supports_ciba(self) -> bool:
        """Whether the provider advertises backchannel authentication."""
        return is_truthy_flag(self.attributes.get(CIBA_SUPPORTED_ATTRIBUTE))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"issuer": self.issuer, "role": self.role.value}
        metadata = self.metadata.to_dict()
        if metadata:
            data["metadata"] = metadata
        if self.discovery_url:
            data["discovery"] = self.discovery_url
        if self.attributes:
            data["attributes"] = dict(self.attributes)
        return data


@dataclass(frozen=True)
class TrustEdge:
    """Directed trust: ``from_id`` trusts ``to_id`` at ``level``."""

    from_id: str
    to_id: str
    level: TrustLevel = TrustLevel.EXPLICIT

    def __post_init__(self) -> None:
        # Accept level names; anything unparseable is reported by TrustNetwork.build
        if isinstance(self.level, str) and not isinstance(self.level, TrustLevel):
            try:
                object.__setattr__(self, "level", TrustLevel.from_string(self.level))
            except ValueError:
                pass

    @property
    def pair(self) -> tuple[str, str]:
        return (self.from_id, self.to_id)

    def to_dict(self) -> dict[str, str]:
        return {"from": self.from_id, "to": self.to_id, "level": self.level.value}


# =============================================================================
# TRUST NETWORK
# =============================================================================


def _collect_problems(
    network_id: str,
    providers: Mapping[str, ProviderNode],
    edges: Iterable[TrustEdge],
) -> list[str]:
    """Referential and uniqueness checks shared by every construction path."""
    problems: list[str] = []
    if not network_id:
        problems.append("network_id is required")

    issuers: dict[str, str] = {}
    for provider_id, node in providers.items():
        if node.provider_id != provider_id:
            problems.append(f"provider key '{provider_id}' does not match provider_id '{node.provider_id}'")
        if node.issuer in issuers:
            problems.append(
                f"issuer '{node.issuer}' is shared by providers '{issuers[node.issuer]}' and '{provider_id}'"
            )
        else:
            issuers[node.issuer] = provider_id

    seen_pairs: set[tuple[str, str]] = set()
    for edge in edges:
        for end in (edge.from_id, edge.to_id):
            if end not in providers:
                problems.append(
                    f"trust relationship {edge.from_id} -> {edge.to_id} references unknown provider '{end}'"
                )
        if not isinstance(edge.level, TrustLevel):
            problems.append(
                f"trust relationship {edge.from_id} -> {edge.to_id} has malformed trust level '{edge.level}'"
            )
        if edge.pair in seen_pairs:
            problems.append(f"duplicate trust relationship {edge.from_id} -> {edge.to_id}")
        seen_pairs.add(edge.pair)
    return problems


@dataclass(frozen=True)
class TrustNetwork:
    """Immutable snapshot of a trust network.

    Construction validates referential integrity and raises
    TrustNetworkConfigError listing every problem found. Query methods are
    read-only and safe to call from any number of threads.
    """

    network_id: str
    topology_type: str
    providers: Mapping[str, ProviderNode]
    edges: tuple[TrustEdge, ...] = ()
    version: datetime = field(default_factory=lambda: datetime.now(UTC))

    _edge_index: Mapping[tuple[str, str], TrustEdge] = field(init=False, repr=False, compare=False)
    _successors: Mapping[str, tuple[str, ...]] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        providers = MappingProxyType(dict(self.providers))
        edges = tuple(self.edges)
        problems = _collect_problems(self.network_id, providers, edges)
        if problems:
            raise TrustNetworkConfigError(problems, self.network_id or None)

        successors: dict[str, list[str]] = {pid: [] for pid in providers}
        for edge in edges:
            if edge.level == TrustLevel.EXPLICIT:
                successors[edge.from_id].append(edge.to_id)

        object.__setattr__(self, "providers", providers)
        object.__setattr__(self, "edges", edges)
        object.__setattr__(self, "_edge_index", MappingProxyType({e.pair: e for e in edges}))
        object.__setattr__(
            self, "_successors", MappingProxyType({pid: tuple(s) for pid, s in successors.items()})
        )

    @classmethod
    def build(
        cls,
        network_id: str,
        providers: Iterable[ProviderNode],
        edges: Iterable[TrustEdge] = (),
        topology_type: str = DEFAULT_TOPOLOGY,
        version: datetime | None = None,
        extra_problems: Iterable[str] = (),
    ) -> TrustNetwork:
        """Build a network from provider and edge sequences.

        Unlike the plain constructor this detects duplicate provider ids.
        ``extra_problems`` lets a document loader report its own findings in
        the same error as the referential checks.
        """
        problems = list(extra_problems)
        by_id: dict[str, ProviderNode] = {}
        for node in providers:
            if node.provider_id in by_id:
                problems.append(f"duplicate provider id '{node.provider_id}'")
                continue
            by_id[node.provider_id] = node
        edges = tuple(edges)

        if problems:
            problems.extend(_collect_problems(network_id, by_id, edges))
            raise TrustNetworkConfigError(problems, network_id or None)

        return cls(
            network_id=network_id,
            topology_type=topology_type,
            providers=by_id,
            edges=edges,
            version=version or datetime.now(UTC),
        )

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def is_member(self, provider_id: str) -> bool:
        return provider_id in self.providers

    def get_provider(self, provider_id: str) -> ProviderNode | None:
        return self.providers.get(provider_id)

    def find_by_issuer(self, issuer: str) -> ProviderNode | None:
        for node in self.providers.values():
            if node.issuer == issuer:
                return node
        return None

    def get_edge(self, from_id: str, to_id: str) -> TrustEdge | None:
        return self._edge_index.get((from_id, to_id))

    def has_direct_trust(self, from_id: str, to_id: str) -> bool:
        """True when an EXPLICIT edge ``from_id -> to_id`` exists."""
        edge = self._edge_index.get((from_id, to_id))
        return edge is not None and edge.level == TrustLevel.EXPLICIT

    def is_denied(self, from_id: str, to_id: str) -> bool:
        """True when a NONE edge ``from_id -> to_id`` exists."""
        edge = self._edge_index.get((from_id, to_id))
        return edge is not None and edge.level == TrustLevel.NONE

    def successors(self, provider_id: str) -> tuple[str, ...]:
        """Providers reachable over one EXPLICIT edge, in declaration order."""
        return self._successors.get(provider_id, ())

    def hubs(self) -> tuple[ProviderNode, ...]:
        """Hub-role providers in declaration order."""
        return tuple(node for node in self.providers.values() if node.is_hub)

    @property
    def provider_ids(self) -> tuple[str, ...]:
        return tuple(self.providers)

    def replace_providers(self, nodes: Iterable[ProviderNode]) -> TrustNetwork:
        """Return a new snapshot with the given providers swapped in by id."""
        providers = dict(self.providers)
        for node in nodes:
            if node.provider_id not in providers:
                raise KeyError(node.provider_id)
            providers[node.provider_id] = node
        return TrustNetwork(
            network_id=self.network_id,
            topology_type=self.topology_type,
            providers=providers,
            edges=self.edges,
            version=self.version,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize in the trust-network document format."""
        return {
            "network_id": self.network_id,
            "topology_type": self.topology_type,
            "registry_version": self.version.isoformat(),
            "providers": {pid: node.to_dict() for pid, node in self.providers.items()},
            "trust_relationships": [edge.to_dict() for edge in self.edges],
        }
