"""Home-provider discovery with a TTL cache.

Resolves a user identifier (or e-mail) to the provider holding that user's
account. Positive answers are cached; negative answers are not, since a
missing account is often a provisioning gap that closes a moment later.
Failures of the account-lookup collaborator degrade to "no provider found".
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from ..core.lru_cache import LRUDict
from ..topology.registry import compute_trust_path
from ..trust.models import ProviderNode, TrustNetwork
from .accounts import Account, AccountLookup

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_CACHE_TTL = 3600  # 1 hour
DEFAULT_CIBA_MAX_HOPS = 2


def normalize_identifier(identifier: str) -> str:
    """Cache key for a user identifier.

    Whitespace is stripped; e-mail style identifiers are lower-cased. Other
    identifiers (DIDs, opaque ids) keep their case.
    """
    key = identifier.strip()
    if "@" in key and not key.startswith("did:"):
        key = key.lower()
    return key


def is_ciba_supported(provider: ProviderNode) -> bool:
    """Whether ``provider`` flags backchannel authentication support."""
    return provider.supports_ciba


# =============================================================================
# CACHE ENTRY
# =============================================================================


@dataclass(frozen=True)
class CachedAssociation:
    """user identifier -> provider id, valid until ``expires_at`` (epoch seconds)."""

    user_identifier: str
    provider_id: str
    expires_at: float

    def is_expired(self, now: float | None = None) -> bool:
        return (now if now is not None else time.time()) >= self.expires_at


# =============================================================================
# DISCOVERY SERVICE
# =============================================================================


class ProviderDiscoveryService:
    """Maps users to their home providers.

    Example:
        >>> discovery = ProviderDiscoveryService(account_store)
        >>> discovery.find_providers_by_user("alice@uni-a.example")
        {'uni-a'}
    """

    def __init__(
        self,
        accounts: AccountLookup,
        cache_ttl: int | None = None,
        max_entries: int | None = None,
        ciba_max_hops: int | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the service.

        Args:
            accounts: Account-lookup collaborator
            cache_ttl: Lifetime of cached associations in seconds
            max_entries: Bound on cached associations (LRU eviction)
            ciba_max_hops: Longest trust path accepted for backchannel flows
            clock: Time source, injectable for tests
        """
        if cache_ttl is None or max_entries is None or ciba_max_hops is None:
            from ..core.config import get_config

            config = get_config()
            cache_ttl = config.discovery_cache_ttl_seconds if cache_ttl is None else cache_ttl
            max_entries = config.cache_max_size if max_entries is None else max_entries
            ciba_max_hops = config.ciba_max_hops if ciba_max_hops is None else ciba_max_hops

        self.accounts = accounts
        self.cache_ttl = cache_ttl
        self.ciba_max_hops = ciba_max_hops
        self._clock = clock
        self._cache: LRUDict[str, CachedAssociation] = LRUDict(max_size=max_entries)
        self._stats_lock = threading.Lock()
        self.stats = {
            "lookups": 0,
            "cache_hits": 0,
            "cache_misses": 0,
            "lookup_errors": 0,
        }

    def _count(self, key: str) -> None:
        with self._stats_lock:
            self.stats[key] += 1

    # -------------------------------------------------------------------------
    # Cache primitives
    # -------------------------------------------------------------------------

    def _cached_provider(self, key: str) -> str | None:
        entry = self._cache.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            # Only drop the entry we looked at; a concurrent refresh wins
            if self._cache.peek(key) is entry:
                self._cache.pop(key)
            return None
        return entry.provider_id

    def cache_association(self, user_identifier: str, provider_id: str, ttl: int | None = None) -> None:
        """Record (or refresh) a user -> provider association."""
        key = normalize_identifier(user_identifier)
        lifetime = self.cache_ttl if ttl is None else ttl
        self._cache[key] = CachedAssociation(
            user_identifier=key,
            provider_id=provider_id,
            expires_at=self._clock() + lifetime,
        )

    def clear_cache(self, user_identifier: str) -> bool:
        """Forget the association of one user. Returns True if one existed."""
        return self._cache.pop(normalize_identifier(user_identifier)) is not None

    def clear_all_cache(self, *_: object) -> None:
        """Forget every association.

        Accepts and ignores positional arguments so it can be registered
        directly as a network-reload listener.
        """
        self._cache.clear()
        logger.debug("Discovery cache cleared")

    def cleanup_expired(self) -> int:
        """Remove expired associations. Returns the number removed."""
        now = self._clock()
        return self._cache.remove_where(lambda _key, entry: entry.is_expired(now))

    def get_cached(self, user_identifier: str) -> CachedAssociation | None:
        return self._cache.peek(normalize_identifier(user_identifier))

    def cache_stats(self) -> dict[str, object]:
        with self._stats_lock:
            stats: dict[str, object] = dict(self.stats)
        stats.update(self._cache.stats())
        return stats

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def _find(self, identifier: str, lookup: Callable[[str], Account | None], kind: str) -> set[str]:
        self._count("lookups")
        key = normalize_identifier(identifier)
        if not key:
            return set()

        cached = self._cached_provider(key)
        if cached is not None:
            self._count("cache_hits")
            logger.debug(f"Discovery cache hit for {kind} {key}: {cached}")
            return {cached}

        self._count("cache_misses")
        try:
            account = lookup(identifier.strip())
        except Exception as e:
            self._count("lookup_errors")
            logger.warning(f"Account lookup failed for {kind} {key}: {e}")
            return set()

        if account is None or not account.home_provider_id:
            logger.debug(f"No account found for {kind} {key}")
            return set()

        self.cache_association(key, account.home_provider_id)
        return {account.home_provider_id}

    def find_providers_by_user(self, user_identifier: str) -> set[str]:
        """Provider ids holding the account of ``user_identifier``."""
        return self._find(user_identifier, self.accounts.get_account, "user")

    def find_providers_by_email(self, email: str) -> set[str]:
        """Provider ids holding the account registered under ``email``."""
        return self._find(email, self.accounts.get_account_by_email, "email")

    def find_ciba_home_provider(
        self,
        user_identifier: str,
        current_provider_id: str,
        network: TrustNetwork,
        max_hops: int | None = None,
    ) -> str | None:
        """Home provider usable for a backchannel flow, or None.

        Candidates are checked cheapest first: membership in ``network``,
        the backchannel capability flag, reachability from
        ``current_provider_id``, then the hop bound.
        """
        limit = self.ciba_max_hops if max_hops is None else max_hops

        for candidate in sorted(self.find_providers_by_user(user_identifier)):
            provider = network.get_provider(candidate)
            if provider is None:
                logger.debug(f"Skipping {candidate}: not in network '{network.network_id}'")
                continue
            if not is_ciba_supported(provider):
                logger.debug(f"Skipping {candidate}: backchannel authentication not supported")
                continue
            path = compute_trust_path(network, current_provider_id, candidate)
            if not path.reachable:
                logger.debug(f"Skipping {candidate}: no trust path from {current_provider_id}")
                continue
            if path.hop_count > limit:
                logger.debug(f"Skipping {candidate}: {path.hop_count} hops exceeds limit of {limit}")
                continue
            return candidate

        return None
