# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Mesh (peer-to-peer) path computation.

Breadth-first search over EXPLICIT edges. BFS reaches every provider first
along a path with the fewest hops, so the path found is a shortest one.
TRANSITIVE and NONE input edges are never traversed; TRANSITIVE only
describes a computed path of two or more hops.
"""

from __future__ import annotations

import logging
from collections import deque

from ..trust.models import TrustNetwork
from .base import TrustPath

logger = logging.getLogger(__name__)

DEFAULT_MAX_HOPS = 10


class MeshTopology:
    """General directed trust graphs."""

    name = "mesh"

    def __init__(self, max_hops: int | None = None):
        """Initialize the strategy.

        Args:
            max_hops: Longest path explored; targets further away are
                unreachable. Defaults to TRUSTBRIDGE_MESH_MAX_HOPS.
        """
        if max_hops is None:
            from ..core.config import get_config

            max_hops = get_config().mesh_max_hops
        if max_hops < 1:
            raise ValueError(f"max_hops must be at least 1, got {max_hops}")
        self.max_hops = max_hops

    def compute_trust_path(self, network: TrustNetwork, source: str, target: str) -> TrustPath:
        if source == target:
            return TrustPath.self_path(source)

        if not (network.is_member(source) and network.is_member(target)):
            return TrustPath.unreachable(source, target)

        if network.is_denied(source, target):
            logger.debug(f"Trust from {source} to {target} is explicitly denied")
            return TrustPath.unreachable(source, target)

        parents: dict[str, str | None] = {source: None}
        frontier: deque[tuple[str, int]] = deque([(source, 0)])

        while frontier:
            current, depth = frontier.popleft()
            if depth >= self.max_hops:
                continue

            for neighbour in network.successors(current):
                if neighbour in parents:
                    continue
                parents[neighbour] = current
                if neighbour == target:
                    return TrustPath.through(self._unwind(parents, target))
                frontier.append((neighbour, depth + 1))

        return TrustPath.unreachable(source, target)

    @staticmethod
    def _unwind(parents: dict[str, str | None], target: str) -> list[str]:
        path = [target]
        node = parents[target]
        while node is not None:
            path.append(node)
            node = parents[node]
        path.reverse()
        return path

    def validate(self, network: TrustNetwork) -> list[str]:
        return []

    def find_cycles(self, network: TrustNetwork) -> list[tuple[str, ...]]:
        """Report EXPLICIT trust cycles.

        Cycles are harmless for routing (BFS never revisits a provider) but
        are worth surfacing when reviewing a network. Each cycle is listed
        once, rotated to start at its smallest provider id.
        """
        cycles: set[tuple[str, ...]] = set()

        def visit(node: str, stack: list[str], on_stack: set[str]) -> None:
            for neighbour in network.successors(node):
                if neighbour in on_stack:
                    cycle = stack[stack.index(neighbour):]
                    pivot = cycle.index(min(cycle))
                    cycles.add(tuple(cycle[pivot:] + cycle[:pivot]))
                    continue
                if len(stack) < self.max_hops:
                    stack.append(neighbour)
                    on_stack.add(neighbour)
                    visit(neighbour, stack, on_stack)
                    on_stack.discard(neighbour)
                    stack.pop()

        for provider_id in network.provider_ids:
            visit(provider_id, [provider_id], {provider_id})

        return sorted(cycles)
