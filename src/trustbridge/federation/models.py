"""Value objects and the per-attempt state machine of federated authentication.

None of these outlive a single authentication attempt.
"""

from __future__ import annotations

import secrets
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from ..topology.base import TrustPath
from .errors import InvalidStateTransition, RemoteProtocolError

DEFAULT_SCOPE = "openid"
DEFAULT_TOKEN_TYPE = "Bearer"


# =============================================================================
# REQUEST AND TOKEN VALUES
# =============================================================================


@dataclass(frozen=True)
class FederationRequest:
    """An in-flight cross-provider authentication attempt."""

    user_identifier: str
    home_provider_id: str
    current_provider_id: str
    client_id: str
    redirect_uri: str | None = None
    state: str | None = None
    nonce: str | None = None
    scope: str = DEFAULT_SCOPE
    login_hint: str | None = None
    binding_message: str | None = None
    additional_params: dict[str, str] = field(default_factory=dict, compare=False)

    @classmethod
    def create(
        cls,
        user_identifier: str,
        home_provider_id: str,
        current_provider_id: str,
        client_id: str,
        redirect_uri: str | None = None,
        scope: str = DEFAULT_SCOPE,
        **kwargs: Any,
    ) -> FederationRequest:
        """Build a request with fresh random ``state`` and ``nonce``."""
        kwargs.setdefault("state", secrets.token_urlsafe(32))
        kwargs.setdefault("nonce", secrets.token_urlsafe(32))
        return cls(
            user_identifier=user_identifier,
            home_provider_id=home_provider_id,
            current_provider_id=current_provider_id,
            client_id=client_id,
            redirect_uri=redirect_uri,
            scope=scope,
            **kwargs,
        )

    @property
    def effective_login_hint(self) -> str:
        return self.login_hint or self.user_identifier


@dataclass(frozen=True)
class TokenSet:
    """Token material returned by (or issued for) a provider."""

    access_token: str
    id_token: str | None = None
    refresh_token: str | None = None
    token_type: str = DEFAULT_TOKEN_TYPE
    expires_in: int = 0
    scope: str | None = None
    additional_claims: dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_response(cls, data: dict[str, Any], status: int | None = None, body: str | None = None) -> TokenSet:
        """Parse an OAuth token endpoint response.

        Raises:
            RemoteProtocolError: If ``access_token`` is missing.
        """
        access_token = data.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise RemoteProtocolError("Token response has no access_token", status=status, body=body)
        try:
            expires_in = int(data.get("expires_in") or 0)
        except (TypeError, ValueError):
            expires_in = 0
        return cls(
            access_token=access_token,
            id_token=data.get("id_token"),
            refresh_token=data.get("refresh_token"),
            token_type=data.get("token_type") or DEFAULT_TOKEN_TYPE,
            expires_in=expires_in,
            scope=data.get("scope"),
        )

    def to_response(self) -> dict[str, Any]:
        """Serialize as an OAuth token endpoint response body."""
        data: dict[str, Any] = {
            "access_token": self.access_token,
            "token_type": self.token_type,
            "expires_in": self.expires_in,
        }
        for key in ("id_token", "refresh_token", "scope"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


@dataclass(frozen=True)
class TokenValidationResult:
    """Outcome of validating a token; invalid results carry ``error``."""

    valid: bool
    subject: str | None = None
    issuer: str | None = None
    expires_at: datetime | None = None
    claims: dict[str, Any] = field(default_factory=dict, compare=False)
    error: str | None = None

    @classmethod
    def ok(cls, claims: dict[str, Any]) -> TokenValidationResult:
        return cls(
            valid=True,
            subject=claims.get("sub"),
            issuer=claims.get("iss"),
            expires_at=datetime.fromtimestamp(claims["exp"], tz=UTC) if "exp" in claims else None,
            claims=dict(claims),
        )

    @classmethod
    def invalid(cls, error: str) -> TokenValidationResult:
        return cls(valid=False, error=error)

    def __bool__(self) -> bool:
        return self.valid


@dataclass(frozen=True)
class AuthorizationRedirect:
    """Where to send the browser, and the path that justified it."""

    url: str
    trust_path: TrustPath
    request: FederationRequest


class PollStatus(str, Enum):
    """Outcome of one backchannel token poll."""

    PENDING = "pending"  # Keep polling
    DONE = "done"  # Tokens issued
    FAILED = "failed"  # Stop polling


@dataclass(frozen=True)
class CibaPollResult:
    status: PollStatus
    tokens: TokenSet | None = None
    error: str | None = None
    error_description: str | None = None
    http_status: int | None = None
    slow_down: bool = False

    @classmethod
    def pending(cls, slow_down: bool = False) -> CibaPollResult:
        return cls(status=PollStatus.PENDING, slow_down=slow_down)

    @classmethod
    def done(cls, tokens: TokenSet) -> CibaPollResult:
        return cls(status=PollStatus.DONE, tokens=tokens)

    @classmethod
    def failed(cls, error: str, description: str | None = None, http_status: int | None = None) -> CibaPollResult:
        return cls(status=PollStatus.FAILED, error=error, error_description=description, http_status=http_status)

    @property
    def is_pending(self) -> bool:
        return self.status == PollStatus.PENDING

    @property
    def is_done(self) -> bool:
        return self.status == PollStatus.DONE


# =============================================================================
# STATE MACHINE
# =============================================================================


class FederationState(str, Enum):
    """Stages of one authentication attempt."""

    INITIATED = "initiated"
    REDIRECTED = "redirected"  # Browser sent to the home provider
    BACKCHANNEL_PENDING = "backchannel_pending"  # Waiting on a decoupled approval
    CALLBACK_RECEIVED = "callback_received"
    TOKEN_EXCHANGED = "token_exchanged"
    VALIDATED = "validated"
    REISSUED = "reissued"
    FAILED = "failed"


_TRANSITIONS: dict[FederationState, frozenset[FederationState]] = {
    FederationState.INITIATED: frozenset(
        {FederationState.REDIRECTED, FederationState.BACKCHANNEL_PENDING, FederationState.FAILED}
    ),
    FederationState.REDIRECTED: frozenset({FederationState.CALLBACK_RECEIVED, FederationState.FAILED}),
    FederationState.BACKCHANNEL_PENDING: frozenset({FederationState.TOKEN_EXCHANGED, FederationState.FAILED}),
    FederationState.CALLBACK_RECEIVED: frozenset({FederationState.TOKEN_EXCHANGED, FederationState.FAILED}),
    FederationState.TOKEN_EXCHANGED: frozenset({FederationState.VALIDATED, FederationState.FAILED}),
    FederationState.VALIDATED: frozenset({FederationState.REISSUED, FederationState.FAILED}),
    FederationState.REISSUED: frozenset(),
    FederationState.FAILED: frozenset(),
}


class FailureCategory(str, Enum):
    """User-facing reason an attempt ended in FAILED."""

    NO_TRUST_PATH = "no_trust_path"
    UNKNOWN_USER = "unknown_user"
    HOME_PROVIDER_UNREACHABLE = "home_provider_unreachable"
    AUTHENTICATION_DENIED = "authentication_denied"
    AUTHENTICATION_TIMEOUT = "authentication_timeout"
    INVALID_STATE = "invalid_state"
    INVALID_TOKEN = "invalid_token"
    BACKCHANNEL_UNSUPPORTED = "backchannel_unsupported"
    INTERNAL_ERROR = "internal_error"


FAILURE_MESSAGES: dict[FailureCategory, str] = {
    FailureCategory.NO_TRUST_PATH: "Your home identity provider is not trusted by this provider.",
    FailureCategory.UNKNOWN_USER: "No identity provider is known for this user.",
    FailureCategory.HOME_PROVIDER_UNREACHABLE: "Your home identity provider could not be reached.",
    FailureCategory.AUTHENTICATION_DENIED: "Authentication was denied by your home identity provider.",
    FailureCategory.AUTHENTICATION_TIMEOUT: "The sign-in request expired before it was approved.",
    FailureCategory.INVALID_STATE: "The authentication response did not match this sign-in attempt.",
    FailureCategory.INVALID_TOKEN: "Your home identity provider returned an unusable token.",
    FailureCategory.BACKCHANNEL_UNSUPPORTED: "Your home identity provider does not support decoupled sign-in.",
    FailureCategory.INTERNAL_ERROR: "Sign-in failed due to an internal error.",
}


def is_terminal(state: FederationState) -> bool:
    return not _TRANSITIONS[state]


@dataclass
class FederationAttempt:
    """Mutable record of one attempt, owned by a single caller."""

    user_identifier: str
    current_provider_id: str
    client_id: str
    attempt_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    state: FederationState = FederationState.INITIATED
    redirect_uri: str | None = None
    request: FederationRequest | None = None
    home_provider_id: str | None = None
    trust_path: TrustPath | None = None
    authorization_url: str | None = None
    auth_req_id: str | None = None
    home_tokens: TokenSet | None = None
    validation: TokenValidationResult | None = None
    federated_tokens: TokenSet | None = None
    local_user_id: str | None = None
    failure_category: FailureCategory | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    history: list[tuple[FederationState, datetime]] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.history:
            self.history.append((self.state, self.created_at))

    def can_transition(self, target: FederationState) -> bool:
        return target in _TRANSITIONS[self.state]

    def transition(self, target: FederationState) -> None:
        """Move to ``target``.

        Raises:
            InvalidStateTransition: If the move is not allowed from the current state.
        """
        if not self.can_transition(target):
            raise InvalidStateTransition(self.state.value, target.value)
        self.state = target
        self.history.append((target, datetime.now(UTC)))

    def fail(self, category: FailureCategory) -> None:
        """Terminate the attempt. Failing an already failed attempt is a no-op."""
        if self.state == FederationState.FAILED:
            return
        self.transition(FederationState.FAILED)
        self.failure_category = category

    @property
    def is_finished(self) -> bool:
        return is_terminal(self.state)

    @property
    def succeeded(self) -> bool:
        return self.state == FederationState.REISSUED

    @property
    def failure_message(self) -> str | None:
        if self.failure_category is None:
            return None
        return FAILURE_MESSAGES[self.failure_category]

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempt_id": self.attempt_id,
            "state": self.state.value,
            "user_identifier": self.user_identifier,
            "current_provider_id": self.current_provider_id,
            "home_provider_id": self.home_provider_id,
            "trust_path": self.trust_path.to_dict() if self.trust_path else None,
            "local_user_id": self.local_user_id,
            "failure_category": self.failure_category.value if self.failure_category else None,
            "failure_message": self.failure_message,
            "history": [(state.value, at.isoformat()) for state, at in self.history],
        }
