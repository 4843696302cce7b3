"""Trustbridge Core - configuration, errors, logging and caching primitives."""

from .config import CoreSettings, clear_config_cache, get_config
from .exceptions import (
    ConfigException,
    NotFoundError,
    TrustbridgeException,
    TrustNetworkConfigError,
    ValidationException,
)
from .logging import (
    attempt_context,
    configure_logging,
    get_attempt_id,
    redact_params,
)
from .lru_cache import LRUDict

__all__ = [
    # Config
    "CoreSettings",
    "get_config",
    "clear_config_cache",
    # Exceptions
    "TrustbridgeException",
    "ConfigException",
    "TrustNetworkConfigError",
    "ValidationException",
    "NotFoundError",
    # Logging
    "configure_logging",
    "attempt_context",
    "get_attempt_id",
    "redact_params",
    # Caching
    "LRUDict",
]
