"""Discovery: which provider holds a user's account."""

from .accounts import Account, AccountLookup, InMemoryAccountStore
from .service import (
    DEFAULT_CACHE_TTL,
    CachedAssociation,
    ProviderDiscoveryService,
    is_ciba_supported,
    normalize_identifier,
)

__all__ = [
    "Account",
    "AccountLookup",
    "InMemoryAccountStore",
    "DEFAULT_CACHE_TTL",
    "CachedAssociation",
    "ProviderDiscoveryService",
    "is_ciba_supported",
    "normalize_identifier",
]
