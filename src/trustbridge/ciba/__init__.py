"""Backchannel (CIBA) authentication: protocol constants, providers and server.

The HTTP side lives in ``ciba.endpoints`` and ``ciba.app``; import those
directly (they depend on the federation package, which depends on this one).
"""

from .models import (
    CIBA_GRANT_TYPE,
    DEFAULT_EXPIRES_IN,
    DEFAULT_POLL_INTERVAL,
    MAX_BINDING_MESSAGE_LENGTH,
    BackchannelAuthRequest,
    BackchannelAuthStatus,
    BackchannelStatus,
    generate_auth_req_id,
)
from .providers import (
    BackchannelError,
    BackchannelProvider,
    FileBackchannelProvider,
    InMemoryBackchannelProvider,
    MockBackchannelProvider,
    create_backchannel_provider,
)

__all__ = [
    # Protocol
    "CIBA_GRANT_TYPE",
    "DEFAULT_EXPIRES_IN",
    "DEFAULT_POLL_INTERVAL",
    "MAX_BINDING_MESSAGE_LENGTH",
    "BackchannelAuthRequest",
    "BackchannelAuthStatus",
    "BackchannelStatus",
    "generate_auth_req_id",
    # Providers
    "BackchannelError",
    "BackchannelProvider",
    "FileBackchannelProvider",
    "InMemoryBackchannelProvider",
    "MockBackchannelProvider",
    "create_backchannel_provider",
]
