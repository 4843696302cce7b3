"""Trust network model: providers, trust edges and immutable snapshots.

Key components:
- models: TrustLevel, ProviderRole, ProviderMetadata, ProviderNode, TrustEdge, TrustNetwork
- loader: trust-network document parsing and validation
- metadata: OpenID Connect discovery of provider endpoints
- registry: atomically swapped snapshots, reload from file
"""

from .loader import load_network, load_network_file, parse_network_json
from .models import (
    CIBA_SUPPORTED_ATTRIBUTE,
    ProviderMetadata,
    ProviderNode,
    ProviderRole,
    TrustEdge,
    TrustLevel,
    TrustNetwork,
    is_truthy_flag,
)
from .registry import TrustNetworkRegistry, get_network_registry, reset_network_registry

__all__ = [
    # Models
    "CIBA_SUPPORTED_ATTRIBUTE",
    "ProviderMetadata",
    "ProviderNode",
    "ProviderRole",
    "TrustEdge",
    "TrustLevel",
    "TrustNetwork",
    "is_truthy_flag",
    # Loading
    "load_network",
    "load_network_file",
    "parse_network_json",
    # Registry
    "TrustNetworkRegistry",
    "get_network_registry",
    "reset_network_registry",
]
