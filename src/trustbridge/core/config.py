"""Core configuration - centralized config for the trustbridge package.

All environment-based configuration should flow through this module.
Components take explicit constructor arguments and fall back to these
settings only when an argument is omitted.

Usage:
    from trustbridge.core.config import get_config
    config = get_config()

    # Access settings
    ttl = config.discovery_cache_ttl_seconds
    log_level = config.log_level
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CoreSettings(BaseSettings):
    """Core configuration settings for Trustbridge.

    Settings can be configured via environment variables with the
    TRUSTBRIDGE_ prefix, or through a ``.env`` file in the working directory.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ==========================================================================
    # LOGGING SETTINGS
    # ==========================================================================

    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
        validation_alias="TRUSTBRIDGE_LOG_LEVEL",
    )
    log_format: str = Field(
        default="",
        description="Log format: 'json', 'text', or '' (auto-detect)",
        validation_alias="TRUSTBRIDGE_LOG_FORMAT",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (optional)",
        validation_alias="TRUSTBRIDGE_LOG_FILE",
    )

    # ==========================================================================
    # TRUST NETWORK SETTINGS
    # ==========================================================================

    trust_network_path: str | None = Field(
        default=None,
        description="Path to the trust-network JSON document loaded at startup",
        validation_alias="TRUSTBRIDGE_TRUST_NETWORK",
    )
    mesh_max_hops: int = Field(
        default=10,
        ge=1,
        description="Maximum hop count explored by mesh path computation",
        validation_alias="TRUSTBRIDGE_MESH_MAX_HOPS",
    )

    # ==========================================================================
    # DISCOVERY CACHE SETTINGS
    # ==========================================================================

    discovery_cache_ttl_seconds: int = Field(
        default=3600,
        gt=0,
        description="Lifetime of a cached user -> home provider association",
        validation_alias="TRUSTBRIDGE_DISCOVERY_CACHE_TTL",
    )
    cache_max_size: int = Field(
        default=10000,
        gt=0,
        description="Maximum number of cached associations",
        validation_alias="TRUSTBRIDGE_CACHE_MAX_SIZE",
    )
    ciba_max_hops: int = Field(
        default=2,
        ge=0,
        description="Maximum trust-path length accepted for backchannel flows",
        validation_alias="TRUSTBRIDGE_CIBA_MAX_HOPS",
    )

    # ==========================================================================
    # OUTBOUND HTTP SETTINGS
    # ==========================================================================

    http_connect_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Connect timeout (seconds) for calls to remote providers",
        validation_alias="TRUSTBRIDGE_HTTP_CONNECT_TIMEOUT",
    )
    http_request_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Total request timeout (seconds) for calls to remote providers",
        validation_alias="TRUSTBRIDGE_HTTP_REQUEST_TIMEOUT",
    )
    broker_client_id: str = Field(
        default="federation-broker",
        description="Client id presented to remote providers",
        validation_alias="TRUSTBRIDGE_BROKER_CLIENT_ID",
    )
    broker_client_secret: str | None = Field(
        default=None,
        description="Client secret presented to remote token endpoints",
        validation_alias="TRUSTBRIDGE_BROKER_CLIENT_SECRET",
    )

    # ==========================================================================
    # TOKEN ISSUING SETTINGS
    # ==========================================================================

    issuer_url: str = Field(
        default="http://localhost:8480",
        description="Issuer identifier of this provider",
        validation_alias="TRUSTBRIDGE_ISSUER_URL",
    )
    signing_key: str | None = Field(
        default=None,
        description="Ed25519 private key seed (hex); an ephemeral key is generated when unset",
        validation_alias="TRUSTBRIDGE_SIGNING_KEY",
    )
    token_lifetime_seconds: int = Field(
        default=3600,
        gt=0,
        description="Lifetime of tokens issued by this provider",
        validation_alias="TRUSTBRIDGE_TOKEN_LIFETIME",
    )

    # ==========================================================================
    # BACKCHANNEL (CIBA) SERVER SETTINGS
    # ==========================================================================

    ciba_expires_in: int = Field(
        default=300,
        gt=0,
        description="Default lifetime of a backchannel authentication request",
        validation_alias="TRUSTBRIDGE_CIBA_EXPIRES_IN",
    )
    ciba_poll_interval: int = Field(
        default=5,
        gt=0,
        description="Minimum interval clients should wait between polls",
        validation_alias="TRUSTBRIDGE_CIBA_POLL_INTERVAL",
    )
    ciba_allowed_clients: str = Field(
        default="",
        description="Comma-separated client ids allowed to use the backchannel endpoints (empty: any)",
        validation_alias="TRUSTBRIDGE_CIBA_ALLOWED_CLIENTS",
    )
    backchannel_provider: str = Field(
        default="memory",
        description="Backchannel provider: 'memory', 'mock' or 'file'",
        validation_alias="TRUSTBRIDGE_BACKCHANNEL_PROVIDER",
    )
    backchannel_dir: str = Field(
        default=str(Path.home() / ".trustbridge" / "backchannel"),
        description="Inbox/outbox directory used by the file backchannel provider",
        validation_alias="TRUSTBRIDGE_BACKCHANNEL_DIR",
    )
    accounts_path: str | None = Field(
        default=None,
        description="Path to a JSON list of accounts served by the local account store",
        validation_alias="TRUSTBRIDGE_ACCOUNTS",
    )

    # ==========================================================================
    # SERVER SETTINGS
    # ==========================================================================

    host: str = Field(
        default="127.0.0.1",
        description="Bind host for the backchannel server",
        validation_alias="TRUSTBRIDGE_HOST",
    )
    port: int = Field(
        default=8480,
        description="Bind port for the backchannel server",
        validation_alias="TRUSTBRIDGE_PORT",
    )

    # ==========================================================================
    # COMPUTED PROPERTIES
    # ==========================================================================

    @property
    def allowed_clients(self) -> frozenset[str]:
        """Parsed backchannel client allow-list (empty means any client)."""
        return frozenset(c.strip() for c in self.ciba_allowed_clients.split(",") if c.strip())


# ==========================================================================
# GLOBAL CONFIG INSTANCE (lazy loaded)
# ==========================================================================

_config: CoreSettings | None = None


def get_config() -> CoreSettings:
    """Get the global configuration instance.

    Returns:
        The singleton CoreSettings instance.
    """
    global _config
    if _config is None:
        _config = CoreSettings()
    return _config


def clear_config_cache() -> None:
    """Clear the config cache. Useful for testing."""
    global _config
    _config = None
