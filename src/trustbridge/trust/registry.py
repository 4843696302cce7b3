"""Process-wide registry of published trust networks.

Readers fetch the current snapshot without locking. Publishing builds a new
id -> network mapping and swaps the reference in one assignment, so a reader
sees either the old snapshot or the new one, never a mix.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import TypeAlias

from ..core.exceptions import NotFoundError
from .loader import load_network_file
from .models import TrustNetwork

logger = logging.getLogger(__name__)

# Called with the newly published snapshot
ReloadListener: TypeAlias = Callable[[TrustNetwork], None]


class TrustNetworkRegistry:
    """Holds the current snapshot of each trust network by network id."""

    def __init__(self) -> None:
        self._networks: Mapping[str, TrustNetwork] = MappingProxyType({})
        self._sources: dict[str, Path] = {}
        self._listeners: list[ReloadListener] = []
        self._write_lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Reads (lock-free)
    # -------------------------------------------------------------------------

    def get(self, network_id: str) -> TrustNetwork:
        """Return the current snapshot of a network.

        Raises:
            NotFoundError: If no network with that id has been published.
        """
        network = self._networks.get(network_id)
        if network is None:
            raise NotFoundError("Trust network", network_id)
        return network

    def find(self, network_id: str) -> TrustNetwork | None:
        return self._networks.get(network_id)

    def network_ids(self) -> list[str]:
        return sorted(self._networks)

    def __contains__(self, network_id: object) -> bool:
        return network_id in self._networks

    def __len__(self) -> int:
        return len(self._networks)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def add_listener(self, listener: ReloadListener) -> None:
        """Register a callback run after every successful publish."""
        with self._write_lock:
            self._listeners.append(listener)

    def publish(self, network: TrustNetwork, validate_topology: bool = True) -> TrustNetwork:
        """Make ``network`` the current snapshot for its id.

        Args:
            network: The new snapshot
            validate_topology: Run the topology strategy's checks first

        Returns:
            The published snapshot.
        """
        if validate_topology:
            # Import here to avoid circular imports
            from ..topology.registry import validate_topology as _validate

            _validate(network)

        with self._write_lock:
            previous = self._networks.get(network.network_id)
            updated = dict(self._networks)
            updated[network.network_id] = network
            self._networks = MappingProxyType(updated)
            listeners = list(self._listeners)

        log_fields = {"network_id": network.network_id}
        if previous is None:
            logger.info(
                f"Published trust network '{network.network_id}' (version {network.version.isoformat()})",
                extra=log_fields,
            )
        else:
            logger.info(
                f"Replaced trust network '{network.network_id}': "
                f"{previous.version.isoformat()} -> {network.version.isoformat()}",
                extra=log_fields,
            )

        for listener in listeners:
            try:
                listener(network)
            except Exception:
                logger.exception(f"Reload listener failed for network '{network.network_id}'")
        return network

    def load_file(self, path: str | Path) -> TrustNetwork:
        """Load a network document from ``path`` and publish it.

        The path is remembered so :meth:`reload` can re-read it.
        """
        path = Path(path)
        network = load_network_file(path)
        self.publish(network, validate_topology=False)
        with self._write_lock:
            self._sources[network.network_id] = path
        return network

    def reload(self, network_id: str) -> TrustNetwork:
        """Re-read a network from the file it was loaded from.

        A failed reload leaves the current snapshot in place.

        Raises:
            NotFoundError: If the network was not loaded from a file.
            TrustNetworkConfigError: If the document no longer validates.
        """
        source = self._sources.get(network_id)
        if source is None:
            raise NotFoundError("Trust network source", network_id)
        network = load_network_file(source)
        if network.network_id != network_id:
            logger.warning(
                f"Document {source} now declares network '{network.network_id}' instead of '{network_id}'"
            )
        self.publish(network, validate_topology=False)
        with self._write_lock:
            self._sources[network.network_id] = source
        return network

    def remove(self, network_id: str) -> bool:
        with self._write_lock:
            if network_id not in self._networks:
                return False
            updated = dict(self._networks)
            del updated[network_id]
            self._networks = MappingProxyType(updated)
            self._sources.pop(network_id, None)
        return True

    def clear(self) -> None:
        """Forget every network and listener. Useful for testing."""
        with self._write_lock:
            self._networks = MappingProxyType({})
            self._sources.clear()
            self._listeners.clear()


# =============================================================================
# DEFAULT INSTANCE
# =============================================================================

_default_registry: TrustNetworkRegistry | None = None
_default_registry_lock = threading.Lock()


def get_network_registry() -> TrustNetworkRegistry:
    """Get the process-wide network registry.

    On first use the network named by TRUSTBRIDGE_TRUST_NETWORK, if set, is
    loaded into it.
    """
    global _default_registry

    if _default_registry is None:
        with _default_registry_lock:
            if _default_registry is None:
                from ..core.config import get_config

                registry = TrustNetworkRegistry()
                path = get_config().trust_network_path
                if path:
                    registry.load_file(path)
                _default_registry = registry

    return _default_registry


def reset_network_registry() -> None:
    """Drop the process-wide registry. Useful for testing."""
    global _default_registry
    with _default_registry_lock:
        _default_registry = None
