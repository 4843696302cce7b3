"""Backchannel (CIBA) protocol constants and request/status records."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

# =============================================================================
# PROTOCOL CONSTANTS
# =============================================================================

CIBA_GRANT_TYPE = "urn:openid:params:grant-type:ciba"

DEFAULT_EXPIRES_IN = 300  # seconds
DEFAULT_POLL_INTERVAL = 5  # seconds
MAX_BINDING_MESSAGE_LENGTH = 256

DELIVERY_MODE_POLL = "poll"

# OAuth / CIBA error codes
ERROR_AUTHORIZATION_PENDING = "authorization_pending"
ERROR_SLOW_DOWN = "slow_down"
ERROR_ACCESS_DENIED = "access_denied"
ERROR_EXPIRED_TOKEN = "expired_token"
ERROR_INVALID_REQUEST = "invalid_request"
ERROR_INVALID_GRANT = "invalid_grant"
ERROR_UNAUTHORIZED_CLIENT = "unauthorized_client"
ERROR_UNSUPPORTED_GRANT_TYPE = "unsupported_grant_type"
ERROR_UNKNOWN_USER_ID = "unknown_user_id"
ERROR_SERVER_ERROR = "server_error"

# Poll errors after which a client must stop polling
TERMINAL_POLL_ERRORS = frozenset({ERROR_ACCESS_DENIED, ERROR_EXPIRED_TOKEN, ERROR_INVALID_GRANT})


def generate_auth_req_id() -> str:
    return f"urn:uuid:{uuid.uuid4()}"


# =============================================================================
# STATUS
# =============================================================================


class BackchannelStatus(str, Enum):
    """Server-side state of a backchannel request. Only PENDING is non-terminal."""

    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    EXPIRED = "expired"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self is not BackchannelStatus.PENDING


@dataclass(frozen=True)
class BackchannelAuthRequest:
    """An accepted backchannel authentication request."""

    login_hint: str
    client_id: str
    scope: str = "openid"
    binding_message: str | None = None
    user_code: str | None = None
    expires_in: int = DEFAULT_EXPIRES_IN
    auth_req_id: str = field(default_factory=generate_auth_req_id)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def expires_at(self) -> datetime:
        return self.created_at + timedelta(seconds=self.expires_in)

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or datetime.now(UTC)) >= self.expires_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "auth_req_id": self.auth_req_id,
            "login_hint": self.login_hint,
            "client_id": self.client_id,
            "scope": self.scope,
            "binding_message": self.binding_message,
            "user_code": self.user_code,
            "expires_in": self.expires_in,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BackchannelAuthRequest:
        return cls(
            auth_req_id=data["auth_req_id"],
            login_hint=data["login_hint"],
            client_id=data["client_id"],
            scope=data.get("scope") or "openid",
            binding_message=data.get("binding_message"),
            user_code=data.get("user_code"),
            expires_in=int(data.get("expires_in") or DEFAULT_EXPIRES_IN),
            created_at=datetime.fromisoformat(data["created_at"]),
        )


@dataclass(frozen=True)
class BackchannelAuthStatus:
    """Current state of a backchannel request as reported by a provider."""

    auth_req_id: str
    status: BackchannelStatus
    client_id: str | None = None
    scope: str | None = None
    user_id: str | None = None
    error_code: str | None = None
    error_description: str | None = None
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "auth_req_id": self.auth_req_id,
            "status": self.status.value,
            "client_id": self.client_id,
            "scope": self.scope,
            "user_id": self.user_id,
            "error_code": self.error_code,
            "error_description": self.error_description,
            "updated_at": self.updated_at.isoformat(),
        }
