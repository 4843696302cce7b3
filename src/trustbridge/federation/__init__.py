"""Cross-provider authentication routing.

Key components:
- router: authorization redirects, code exchange, token validation and
  re-issue, backchannel initiation and polling against home providers
- flow: the per-attempt state machine driving the router
- signing: local token signing (Ed25519 / EdDSA)
- tokens: structural JWT validation
- errors: routing and remote-protocol errors
"""

from .errors import (
    FederationError,
    InvalidStateTransition,
    RemoteProtocolError,
    RoutingError,
    RoutingFailure,
    TokenRejectedError,
    TransportError,
)
from .flow import FederatedAuthenticator, UserMaterializer, failure_category_for
from .models import (
    FAILURE_MESSAGES,
    AuthorizationRedirect,
    CibaPollResult,
    FailureCategory,
    FederationAttempt,
    FederationRequest,
    FederationState,
    PollStatus,
    TokenSet,
    TokenValidationResult,
)
from .router import FederationRouter
from .signing import Ed25519TokenSigner, TokenSigner
from .tokens import decode_claims, validate_claims, validate_jwt

__all__ = [
    # Errors
    "FederationError",
    "InvalidStateTransition",
    "RemoteProtocolError",
    "RoutingError",
    "RoutingFailure",
    "TokenRejectedError",
    "TransportError",
    # Models
    "AuthorizationRedirect",
    "CibaPollResult",
    "FAILURE_MESSAGES",
    "FailureCategory",
    "FederationAttempt",
    "FederationRequest",
    "FederationState",
    "PollStatus",
    "TokenSet",
    "TokenValidationResult",
    # Routing
    "FederationRouter",
    "FederatedAuthenticator",
    "UserMaterializer",
    "failure_category_for",
    # Tokens
    "Ed25519TokenSigner",
    "TokenSigner",
    "decode_claims",
    "validate_claims",
    "validate_jwt",
]
