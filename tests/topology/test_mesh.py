"""Tests for mesh (BFS) path computation."""

from __future__ import annotations

import itertools
import random

import pytest

from trustbridge.topology.mesh import DEFAULT_MAX_HOPS, MeshTopology
from trustbridge.trust.models import ProviderNode, ProviderRole, TrustEdge, TrustLevel, TrustNetwork


def random_network(rng: random.Random, size: int, density: float) -> TrustNetwork:
    ids = [f"p{i}" for i in range(size)]
    nodes = [ProviderNode(provider_id=pid, issuer=f"https://{pid}.example.org", role=ProviderRole.PEER) for pid in ids]
    edges = []
    for a, b in itertools.permutations(ids, 2):
        roll = rng.random()
        if roll < density:
            edges.append(TrustEdge(a, b))
        elif roll < density * 1.3:
            edges.append(TrustEdge(a, b, TrustLevel.TRANSITIVE))
    return TrustNetwork.build("random", nodes, edges, topology_type="mesh")


def shortest_hops(network: TrustNetwork, source: str, target: str, max_hops: int) -> int:
    """Brute-force distance over EXPLICIT edges by path enumeration."""
    if source == target:
        return 0
    best = -1

    def walk(node: str, visited: list[str]) -> None:
        nonlocal best
        hops = len(visited) - 1
        if node == target:
            if best == -1 or hops < best:
                best = hops
            return
        if hops >= max_hops or (best != -1 and hops >= best):
            return
        for nxt in network.successors(node):
            if nxt not in visited:
                walk(nxt, visited + [nxt])

    walk(source, [source])
    return best


class TestMeshTopology:
    """Shortest paths over explicit edges."""

    def test_two_hop_path(self, mesh_network):
        path = MeshTopology(max_hops=10).compute_trust_path(mesh_network, "A", "C")

        assert path.path == ("A", "B", "C")
        assert path.hop_count == 2
        assert path.level == TrustLevel.TRANSITIVE

    def test_one_hop_is_explicit(self, mesh_network):
        path = MeshTopology(max_hops=10).compute_trust_path(mesh_network, "A", "B")
        assert path.level == TrustLevel.EXPLICIT

    def test_siblings_unreachable(self, mesh_network):
        """C and D share a parent but trust doesn't flow backwards."""
        topology = MeshTopology(max_hops=10)

        assert not topology.compute_trust_path(mesh_network, "C", "D").reachable
        assert not topology.compute_trust_path(mesh_network, "C", "A").reachable

    def test_reflexive(self, mesh_network):
        assert MeshTopology(max_hops=1).compute_trust_path(mesh_network, "C", "C").hop_count == 0

    def test_idempotent(self, mesh_network):
        topology = MeshTopology(max_hops=10)
        assert topology.compute_trust_path(mesh_network, "A", "D") == topology.compute_trust_path(
            mesh_network, "A", "D"
        )

    def test_shortest_path_preferred(self, network_factory):
        network = network_factory([("A", "B"), ("B", "C"), ("C", "D"), ("A", "D")])
        assert MeshTopology(max_hops=10).compute_trust_path(network, "A", "D").path == ("A", "D")

    def test_max_hops_bound(self, network_factory):
        network = network_factory([("A", "B"), ("B", "C"), ("C", "D")])

        assert MeshTopology(max_hops=3).compute_trust_path(network, "A", "D").hop_count == 3
        assert not MeshTopology(max_hops=2).compute_trust_path(network, "A", "D").reachable

    def test_none_edge_blocks_pair(self, network_factory):
        network = network_factory([("A", "B"), ("B", "C"), ("A", "C", "none")])
        assert not MeshTopology(max_hops=10).compute_trust_path(network, "A", "C").reachable

    def test_none_edge_not_traversed(self, network_factory):
        network = network_factory([("A", "B", "none"), ("B", "C")])
        assert not MeshTopology(max_hops=10).compute_trust_path(network, "A", "C").reachable

    def test_transitive_edge_not_traversed(self, network_factory):
        network = network_factory([("A", "B", "transitive"), ("B", "C")])
        assert not MeshTopology(max_hops=10).compute_trust_path(network, "A", "B").reachable

    def test_cycles_terminate(self, network_factory):
        network = network_factory([("A", "B"), ("B", "A"), ("B", "C"), ("C", "A")], providers=["Z"])
        assert not MeshTopology(max_hops=10).compute_trust_path(network, "A", "Z").reachable

    def test_unknown_provider(self, mesh_network):
        assert not MeshTopology(max_hops=10).compute_trust_path(mesh_network, "A", "ghost").reachable

    def test_default_max_hops_from_config(self, clean_env):
        assert MeshTopology().max_hops == DEFAULT_MAX_HOPS

        clean_env.setenv("TRUSTBRIDGE_MESH_MAX_HOPS", "3")
        from trustbridge.core.config import clear_config_cache

        clear_config_cache()
        assert MeshTopology().max_hops == 3

    def test_invalid_max_hops(self):
        with pytest.raises(ValueError):
            MeshTopology(max_hops=0)

    @pytest.mark.parametrize("seed", range(8))
    def test_matches_brute_force(self, seed):
        """BFS distance equals the shortest enumerated path on random graphs."""
        rng = random.Random(seed)
        network = random_network(rng, size=7, density=0.25)
        topology = MeshTopology(max_hops=4)

        for source, target in itertools.product(network.provider_ids, repeat=2):
            path = topology.compute_trust_path(network, source, target)
            expected = shortest_hops(network, source, target, max_hops=4)
            assert path.hop_count == expected, (source, target)
            if path.reachable:
                assert path.path[0] == source
                assert path.path[-1] == target
                for a, b in itertools.pairwise(path.path):
                    assert network.has_direct_trust(a, b)


class TestFindCycles:
    def test_reports_each_cycle_once(self, network_factory):
        network = network_factory([("B", "A"), ("A", "B"), ("B", "C"), ("C", "D"), ("D", "B")])
        cycles = MeshTopology(max_hops=10).find_cycles(network)

        assert cycles == [("A", "B"), ("B", "C", "D")]

    def test_acyclic(self, mesh_network):
        assert MeshTopology(max_hops=10).find_cycles(mesh_network) == []

    def test_validate_accepts_any_network(self, mesh_network):
        assert MeshTopology(max_hops=10).validate(mesh_network) == []
