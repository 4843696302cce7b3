"""Topology engine: path computation strategies keyed by network shape."""

from .base import TopologyStrategy, TrustPath
from .hub_and_spoke import HubAndSpokeTopology
from .mesh import MeshTopology
from .registry import (
    compute_trust_path,
    get_topology,
    register_topology,
    reset_topologies,
    supported_topologies,
    validate_topology,
)

__all__ = [
    "TrustPath",
    "TopologyStrategy",
    "HubAndSpokeTopology",
    "MeshTopology",
    "compute_trust_path",
    "get_topology",
    "register_topology",
    "reset_topologies",
    "supported_topologies",
    "validate_topology",
]
