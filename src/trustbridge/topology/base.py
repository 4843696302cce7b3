"""Trust paths and the topology strategy capability."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from ..trust.models import TrustLevel, TrustNetwork

AUDIT_PATH_SEPARATOR = " -> "


@dataclass(frozen=True)
class TrustPath:
    """Result of a path query between two providers.

    ``path`` runs from source to target inclusive and is empty when the
    target can't be reached. Aggregate ``level`` is EXPLICIT for zero and
    one hop paths, TRANSITIVE for longer ones and NONE when unreachable.
    """

    source: str
    target: str
    path: tuple[str, ...] = ()
    level: TrustLevel = TrustLevel.NONE

    @classmethod
    def unreachable(cls, source: str, target: str) -> TrustPath:
        return cls(source=source, target=target)

    @classmethod
    def self_path(cls, provider_id: str) -> TrustPath:
        return cls(source=provider_id, target=provider_id, path=(provider_id,), level=TrustLevel.EXPLICIT)

    @classmethod
    def through(cls, hops: tuple[str, ...] | list[str]) -> TrustPath:
        """Build a reachable path from its hop sequence."""
        hops = tuple(hops)
        level = TrustLevel.EXPLICIT if len(hops) <= 2 else TrustLevel.TRANSITIVE
        return cls(source=hops[0], target=hops[-1], path=hops, level=level)

    @property
    def reachable(self) -> bool:
        return bool(self.path)

    @property
    def hop_count(self) -> int:
        """Edges traversed; -1 when unreachable."""
        return len(self.path) - 1

    def as_audit_string(self) -> str:
        return AUDIT_PATH_SEPARATOR.join(self.path)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "target": self.target,
            "path": list(self.path),
            "hop_count": self.hop_count,
            "reachable": self.reachable,
            "level": self.level.value,
        }


@runtime_checkable
class TopologyStrategy(Protocol):
    """Path computation for one network shape.

    Implementations hold no mutable state and may be called concurrently.
    """

    name: str

    def compute_trust_path(self, network: TrustNetwork, source: str, target: str) -> TrustPath:
        """Return the path from ``source`` to ``target``.

        Unknown providers yield an unreachable path, never an error.
        """
        ...

    def validate(self, network: TrustNetwork) -> list[str]:
        """Return the problems that make ``network`` unusable with this strategy."""
        ...
