"""Hub-and-spoke path computation.

Spokes reach one another through a hub they both have explicit edges with.
Paths are at most two hops, so every query is answered with a constant
number of edge lookups per hub.
"""

from __future__ import annotations

import logging

from ..trust.models import ProviderRole, TrustNetwork
from .base import TrustPath

logger = logging.getLogger(__name__)


class HubAndSpokeTopology:
    """Star-shaped networks.

    Rules, in order:
    1. source == target: zero-hop path
    2. a NONE edge source -> target: unreachable
    3. an EXPLICIT edge in either direction: one-hop path
    4. the first hub (declaration order, other than source and target) with
       EXPLICIT edges source -> hub and hub -> target: two-hop path
    5. anything else: unreachable

    Hubs are never chained; a network with several hubs does not route
    hub -> hub.
    """

    name = "hub-and-spoke"

    def compute_trust_path(self, network: TrustNetwork, source: str, target: str) -> TrustPath:
        if source == target:
            return TrustPath.self_path(source)

        if not (network.is_member(source) and network.is_member(target)):
            return TrustPath.unreachable(source, target)

        if network.is_denied(source, target):
            logger.debug(f"Trust from {source} to {target} is explicitly denied")
            return TrustPath.unreachable(source, target)

        if network.has_direct_trust(source, target) or network.has_direct_trust(target, source):
            return TrustPath.through((source, target))

        for hub in network.hubs():
            if hub.provider_id in (source, target):
                continue
            if network.has_direct_trust(source, hub.provider_id) and network.has_direct_trust(
                hub.provider_id, target
            ):
                return TrustPath.through((source, hub.provider_id, target))

        return TrustPath.unreachable(source, target)

    def validate(self, network: TrustNetwork) -> list[str]:
        if any(node.role == ProviderRole.HUB for node in network.providers.values()):
            return []
        return [f"hub-and-spoke network '{network.network_id}' has no provider with role 'hub'"]
