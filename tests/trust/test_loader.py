"""Tests for trust-network document loading."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime

import pytest

from trustbridge.core.exceptions import TrustNetworkConfigError
from trustbridge.trust.loader import load_network, load_network_file, parse_network_json
from trustbridge.trust.models import ProviderRole, TrustLevel


class TestLoadNetwork:
    """Tests for load_network()."""

    def test_valid_document(self, hub_document):
        network = load_network(hub_document)

        assert network.network_id == "research-federation"
        assert network.topology_type == "hub-and-spoke"
        assert network.version == datetime(2026, 1, 15, 10, 0, tzinfo=UTC)
        assert network.provider_ids == ("H", "A", "B")
        assert network.get_provider("H").role == ProviderRole.HUB
        assert network.get_provider("A").metadata.token_endpoint == "https://A.example.org/token"
        assert network.get_provider("A").supports_ciba
        assert len(network.edges) == 4

    def test_unknown_level_skipped_with_warning(self, hub_document, caplog):
        """An unrecognized level drops that edge only."""
        hub_document["trust_relationships"].append({"from": "A", "to": "B", "level": "partial"})

        with caplog.at_level(logging.WARNING, logger="trustbridge.trust.loader"):
            network = load_network(hub_document)

        assert len(network.edges) == 4
        assert network.get_edge("A", "B") is None
        assert "unknown trust level 'partial'" in caplog.text

    def test_none_level_accepted(self, hub_document):
        hub_document["trust_relationships"].append({"from": "A", "to": "B", "level": "NONE"})
        network = load_network(hub_document)
        assert network.get_edge("A", "B").level == TrustLevel.NONE

    def test_missing_issuer_and_role(self, hub_document):
        """Both problems are reported in one error."""
        del hub_document["providers"]["A"]["issuer"]
        del hub_document["providers"]["B"]["role"]

        with pytest.raises(TrustNetworkConfigError) as exc_info:
            load_network(hub_document)

        problems = exc_info.value.problems
        assert "provider 'A' is missing required field 'issuer'" in problems
        assert "provider 'B' is missing required field 'role'" in problems
        # Edges to A and B are not reported a second time as dangling
        assert not any("unknown provider" in p for p in problems)

    def test_edge_missing_fields(self, hub_document):
        hub_document["trust_relationships"].append({"from": "A"})

        with pytest.raises(TrustNetworkConfigError, match="missing required field\\(s\\): to, level"):
            load_network(hub_document)

    def test_dangling_reference(self, hub_document):
        hub_document["trust_relationships"].append({"from": "A", "to": "Z", "level": "explicit"})

        with pytest.raises(TrustNetworkConfigError) as exc_info:
            load_network(hub_document)

        assert "'Z'" in str(exc_info.value)
        assert exc_info.value.details["network_id"] == "research-federation"

    def test_unknown_role(self, hub_document):
        hub_document["providers"]["B"]["role"] = "gateway"
        with pytest.raises(TrustNetworkConfigError, match="unknown role"):
            load_network(hub_document)

    def test_missing_network_id_and_providers(self):
        with pytest.raises(TrustNetworkConfigError) as exc_info:
            load_network({"topology_type": "mesh"})

        assert "missing required field 'network_id'" in exc_info.value.problems
        assert "missing required object 'providers'" in exc_info.value.problems

    def test_not_an_object(self):
        with pytest.raises(TrustNetworkConfigError):
            load_network(["not", "a", "document"])

    def test_malformed_version_falls_back_to_now(self, hub_document, caplog):
        hub_document["registry_version"] = "last tuesday"
        before = datetime.now(UTC)

        with caplog.at_level(logging.WARNING):
            network = load_network(hub_document)

        assert network.version >= before
        assert "malformed registry_version" in caplog.text

    def test_naive_version_is_utc(self, hub_document):
        hub_document["registry_version"] = "2026-03-01T08:30:00"
        assert load_network(hub_document).version.tzinfo is UTC

    def test_boolean_attributes_stringified(self, hub_document):
        hub_document["providers"]["B"]["attributes"] = {"ciba_supported": True, "tier": 2, "skip": None}
        provider = load_network(hub_document).get_provider("B")

        assert dict(provider.attributes) == {"ciba_supported": "true", "tier": "2"}
        assert provider.supports_ciba

    def test_discovery_url_kept(self, hub_document):
        hub_document["providers"]["B"]["discovery"] = "https://B.example.org/.well-known/openid-configuration"
        assert load_network(hub_document).get_provider("B").discovery_url.endswith("openid-configuration")

    def test_default_topology_is_hub_and_spoke(self, hub_document):
        del hub_document["topology_type"]
        assert load_network(hub_document).topology_type == "hub-and-spoke"

    def test_hub_and_spoke_without_hub_rejected(self, hub_document):
        hub_document["providers"]["H"]["role"] = "spoke"
        with pytest.raises(TrustNetworkConfigError, match="no provider with role 'hub'"):
            load_network(hub_document)

    def test_topology_validation_can_be_skipped(self, hub_document):
        hub_document["providers"]["H"]["role"] = "spoke"
        network = load_network(hub_document, validate_topology=False)
        assert network.hubs() == ()

    def test_unsupported_topology_type(self, hub_document):
        hub_document["topology_type"] = "ring"
        with pytest.raises(TrustNetworkConfigError, match="unsupported topology type 'ring'"):
            load_network(hub_document)


class TestParseNetworkJson:
    def test_duplicate_provider_key_rejected(self):
        """Repeated keys in the JSON text are not silently collapsed."""
        text = """
        {
          "network_id": "fed",
          "topology_type": "mesh",
          "providers": {
            "a": {"issuer": "https://a.example.org", "role": "peer"},
            "a": {"issuer": "https://a2.example.org", "role": "peer"}
          },
          "trust_relationships": []
        }
        """
        with pytest.raises(TrustNetworkConfigError, match="duplicate provider id 'a'"):
            parse_network_json(text)

    def test_invalid_json(self):
        with pytest.raises(TrustNetworkConfigError, match="invalid JSON"):
            parse_network_json("{not json")


class TestLoadNetworkFile:
    def test_loads_file(self, tmp_path, hub_document):
        path = tmp_path / "network.json"
        path.write_text(json.dumps(hub_document))

        assert load_network_file(path).network_id == "research-federation"

    def test_missing_file(self, tmp_path):
        with pytest.raises(TrustNetworkConfigError, match="cannot read"):
            load_network_file(tmp_path / "absent.json")
