"""Global test fixtures for the Trustbridge test suite."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any

import pytest

from trustbridge.core.config import clear_config_cache
from trustbridge.topology.registry import reset_topologies
from trustbridge.trust.loader import load_network
from trustbridge.trust.models import TrustNetwork
from trustbridge.trust.registry import reset_network_registry

# ============================================================================
# Global state isolation
# ============================================================================


@pytest.fixture(autouse=True)
def reset_global_state(monkeypatch):
    """Give every test fresh settings, topology strategies and network registry."""
    for var in (
        "TRUSTBRIDGE_TRUST_NETWORK",
        "TRUSTBRIDGE_MESH_MAX_HOPS",
        "TRUSTBRIDGE_CIBA_MAX_HOPS",
        "TRUSTBRIDGE_DISCOVERY_CACHE_TTL",
        "TRUSTBRIDGE_CIBA_ALLOWED_CLIENTS",
        "TRUSTBRIDGE_SIGNING_KEY",
        "TRUSTBRIDGE_ACCOUNTS",
        "TRUSTBRIDGE_BACKCHANNEL_PROVIDER",
    ):
        monkeypatch.delenv(var, raising=False)
    clear_config_cache()
    reset_topologies()
    reset_network_registry()
    yield
    clear_config_cache()
    reset_topologies()
    reset_network_registry()


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every TRUSTBRIDGE_* variable from the environment."""
    import os

    for key in list(os.environ):
        if key.startswith("TRUSTBRIDGE_"):
            monkeypatch.delenv(key, raising=False)
    clear_config_cache()
    yield monkeypatch
    clear_config_cache()


# ============================================================================
# Trust networks
# ============================================================================


def provider_doc(provider_id: str, role: str = "spoke", ciba: bool | str | None = None) -> dict[str, Any]:
    """A provider entry with every endpoint under https://<id>.example.org."""
    base = f"https://{provider_id}.example.org"
    doc: dict[str, Any] = {
        "issuer": base,
        "role": role,
        "metadata": {
            "authorization_endpoint": f"{base}/authorize",
            "token_endpoint": f"{base}/token",
            "jwks_uri": f"{base}/jwks",
            "backchannel_authentication_endpoint": f"{base}/ciba/auth",
        },
    }
    if ciba is not None:
        doc["attributes"] = {"ciba_supported": ciba}
    return doc


@pytest.fixture
def network_factory() -> Callable[..., TrustNetwork]:
    """Build networks from a compact edge list.

    Example:
        network_factory([("a", "b"), ("b", "c", "none")], topology="mesh", ciba={"c"})
    """

    def _build(
        edges: Iterable[tuple[str, ...]],
        topology: str = "mesh",
        providers: Iterable[str] = (),
        hubs: Iterable[str] = (),
        ciba: Iterable[str] = (),
        network_id: str = "test-network",
    ) -> TrustNetwork:
        edges = list(edges)
        hubs = set(hubs)
        ciba = set(ciba)
        ids: list[str] = list(providers)
        for edge in edges:
            for end in edge[:2]:
                if end not in ids:
                    ids.append(end)
        default_role = "peer" if topology != "hub-and-spoke" else "spoke"
        document = {
            "network_id": network_id,
            "topology_type": topology,
            "providers": {
                pid: provider_doc(
                    pid,
                    role="hub" if pid in hubs else default_role,
                    ciba="true" if pid in ciba else None,
                )
                for pid in ids
            },
            "trust_relationships": [
                {"from": e[0], "to": e[1], "level": e[2] if len(e) > 2 else "explicit"} for e in edges
            ],
        }
        return load_network(document)

    return _build


@pytest.fixture
def hub_document() -> dict[str, Any]:
    """Hub H with spokes A and B, EXPLICIT edges both ways between each spoke and H."""
    return {
        "network_id": "research-federation",
        "topology_type": "hub-and-spoke",
        "registry_version": "2026-01-15T10:00:00Z",
        "providers": {
            "H": provider_doc("H", role="hub"),
            "A": provider_doc("A", ciba="true"),
            "B": provider_doc("B"),
        },
        "trust_relationships": [
            {"from": "A", "to": "H", "level": "explicit"},
            {"from": "H", "to": "A", "level": "explicit"},
            {"from": "B", "to": "H", "level": "explicit"},
            {"from": "H", "to": "B", "level": "explicit"},
        ],
    }


@pytest.fixture
def hub_network(hub_document) -> TrustNetwork:
    return load_network(hub_document)


@pytest.fixture
def mesh_network(network_factory) -> TrustNetwork:
    """A -> B, B -> C, B -> D."""
    return network_factory([("A", "B"), ("B", "C"), ("B", "D")], topology="mesh")
