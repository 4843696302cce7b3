"""Topology strategies keyed by a network's ``topology_type``.

New shapes are added by registering a factory for a new type name; callers
keep going through :func:`compute_trust_path`.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import TypeAlias

from ..core.exceptions import TrustNetworkConfigError
from ..trust.models import TrustNetwork
from .base import TopologyStrategy, TrustPath
from .hub_and_spoke import HubAndSpokeTopology
from .mesh import MeshTopology

StrategyFactory: TypeAlias = Callable[[], TopologyStrategy]

_factories: dict[str, StrategyFactory] = {
    "hub-and-spoke": HubAndSpokeTopology,
    "mesh": MeshTopology,
    "peer-to-peer": MeshTopology,
}
_instances: dict[str, TopologyStrategy] = {}
_lock = threading.Lock()


def _normalize(topology_type: str) -> str:
    return topology_type.strip().lower().replace("_", "-")


def register_topology(topology_type: str, factory: StrategyFactory) -> None:
    """Register (or replace) the strategy for a topology type."""
    key = _normalize(topology_type)
    with _lock:
        _factories[key] = factory
        _instances.pop(key, None)


def supported_topologies() -> list[str]:
    return sorted(_factories)


def get_topology(topology_type: str) -> TopologyStrategy:
    """Return the strategy for ``topology_type``.

    Raises:
        TrustNetworkConfigError: If no strategy handles that type.
    """
    key = _normalize(topology_type)
    strategy = _instances.get(key)
    if strategy is not None:
        return strategy

    with _lock:
        strategy = _instances.get(key)
        if strategy is None:
            factory = _factories.get(key)
            if factory is None:
                raise TrustNetworkConfigError(
                    [f"unsupported topology type {topology_type!r} (supported: {', '.join(sorted(_factories))})"]
                )
            strategy = factory()
            _instances[key] = strategy
    return strategy


def reset_topologies() -> None:
    """Drop cached strategy instances so they pick up new settings."""
    with _lock:
        _instances.clear()


def compute_trust_path(network: TrustNetwork, source: str, target: str) -> TrustPath:
    """Compute the trust path with the strategy of the network's topology."""
    return get_topology(network.topology_type).compute_trust_path(network, source, target)


def validate_topology(network: TrustNetwork) -> None:
    """Run the strategy's own checks against ``network``.

    Raises:
        TrustNetworkConfigError: Unknown topology type or a network the
            strategy can't route over (for example a hub-less star).
    """
    try:
        strategy = get_topology(network.topology_type)
    except TrustNetworkConfigError as e:
        raise TrustNetworkConfigError(e.problems, network.network_id) from e
    problems = strategy.validate(network)
    if problems:
        raise TrustNetworkConfigError(problems, network.network_id)
