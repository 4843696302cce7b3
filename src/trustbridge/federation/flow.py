"""Federated authentication flow.

Drives one FederationAttempt through the router:

    redirect:     INITIATED -> REDIRECTED -> CALLBACK_RECEIVED -> TOKEN_EXCHANGED
                  -> VALIDATED -> REISSUED
    backchannel:  INITIATED -> BACKCHANNEL_PENDING -> TOKEN_EXCHANGED
                  -> VALIDATED -> REISSUED

Any failure ends the attempt in FAILED with a FailureCategory whose message
is safe to show to the user. Exception details only go to the log.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, Protocol, TypeAlias, runtime_checkable

from ..ciba.models import ERROR_ACCESS_DENIED, ERROR_EXPIRED_TOKEN
from ..core.logging import attempt_context
from ..discovery.service import ProviderDiscoveryService
from ..topology.registry import compute_trust_path
from ..trust.models import TrustNetwork
from .errors import (
    InvalidStateTransition,
    RemoteProtocolError,
    RoutingError,
    RoutingFailure,
    TokenRejectedError,
    TransportError,
)
from .models import (
    DEFAULT_SCOPE,
    CibaPollResult,
    FailureCategory,
    FederationAttempt,
    FederationRequest,
    FederationState,
    PollStatus,
    TokenSet,
)
from .router import FederationRouter
from .signing import TokenSigner

logger = logging.getLogger(__name__)

NetworkSource: TypeAlias = Callable[[], TrustNetwork]


@runtime_checkable
class UserMaterializer(Protocol):
    """Creates or updates the local shadow identity of a federated user."""

    def materialize(self, claims: dict[str, Any]) -> str:
        """Return a stable local user handle for the federated identity in ``claims``."""
        ...


_ROUTING_CATEGORIES = {
    RoutingFailure.PROVIDER_NOT_FOUND: FailureCategory.HOME_PROVIDER_UNREACHABLE,
    RoutingFailure.MISSING_ENDPOINT: FailureCategory.HOME_PROVIDER_UNREACHABLE,
    RoutingFailure.NO_TRUST_PATH: FailureCategory.NO_TRUST_PATH,
    RoutingFailure.HOP_LIMIT_EXCEEDED: FailureCategory.NO_TRUST_PATH,
    RoutingFailure.CIBA_UNSUPPORTED: FailureCategory.BACKCHANNEL_UNSUPPORTED,
}


def failure_category_for(error: Exception) -> FailureCategory:
    """Map an exception raised during an attempt to its user-facing category."""
    if isinstance(error, RoutingError):
        return _ROUTING_CATEGORIES[error.reason]
    if isinstance(error, (RemoteProtocolError, TransportError)):
        return FailureCategory.HOME_PROVIDER_UNREACHABLE
    if isinstance(error, TokenRejectedError):
        return FailureCategory.INVALID_TOKEN
    return FailureCategory.INTERNAL_ERROR


class FederatedAuthenticator:
    """Runs redirect and backchannel federated authentication.

    Args:
        discovery: Resolves users to home providers
        router: Talks to home providers
        network: Network snapshot, or a zero-argument callable returning the
            current one (each step reads it once)
        materializer: Shadow-identity collaborator
        signer: Optional signer turning re-issued tokens into local tokens
    """

    def __init__(
        self,
        discovery: ProviderDiscoveryService,
        router: FederationRouter,
        network: TrustNetwork | NetworkSource,
        materializer: UserMaterializer,
        signer: TokenSigner | None = None,
    ):
        self.discovery = discovery
        self.router = router
        self._network = network if callable(network) else (lambda: network)
        self.materializer = materializer
        self.signer = signer

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _fail(self, attempt: FederationAttempt, category: FailureCategory, reason: str) -> FederationAttempt:
        logger.warning(f"Federated authentication failed ({category.value}): {reason}")
        attempt.fail(category)
        return attempt

    def _fail_with(self, attempt: FederationAttempt, error: Exception) -> FederationAttempt:
        category = failure_category_for(error)
        if category == FailureCategory.INTERNAL_ERROR:
            logger.exception("Unexpected error during federated authentication")
        return self._fail(attempt, category, str(error))

    def _providers_for(self, login_hint: str) -> set[str]:
        providers = self.discovery.find_providers_by_user(login_hint)
        if not providers and "@" in login_hint:
            providers = self.discovery.find_providers_by_email(login_hint)
        return providers

    def _finish(
        self,
        attempt: FederationAttempt,
        tokens: TokenSet,
        network: TrustNetwork,
    ) -> FederationAttempt:
        """Validate, re-issue, materialize and sign. Attempt is in TOKEN_EXCHANGED."""
        request = attempt.request
        attempt.home_tokens = tokens

        validation = self.router.validate_token(tokens.id_token, request.home_provider_id, network)
        attempt.validation = validation
        if not validation.valid:
            return self._fail(attempt, FailureCategory.INVALID_TOKEN, validation.error or "invalid token")
        token_nonce = validation.claims.get("nonce")
        if request.nonce and token_nonce is not None and token_nonce != request.nonce:
            return self._fail(attempt, FailureCategory.INVALID_TOKEN, "nonce mismatch")
        attempt.transition(FederationState.VALIDATED)

        federated = self.router.reissue_token(tokens, request, network)
        local_user_id = self.materializer.materialize({**validation.claims, **federated.additional_claims})
        attempt.local_user_id = local_user_id

        if self.signer is not None:
            federated = self.signer.sign(
                {"sub": local_user_id, "aud": attempt.client_id, "scope": federated.scope or request.scope},
                federated,
            )
        attempt.federated_tokens = federated
        attempt.transition(FederationState.REISSUED)
        logger.info(f"Federated authentication succeeded for local user {local_user_id}")
        return attempt

    # -------------------------------------------------------------------------
    # Redirect flow
    # -------------------------------------------------------------------------

    def begin(
        self,
        login_hint: str,
        current_provider_id: str,
        client_id: str,
        redirect_uri: str,
        scope: str = DEFAULT_SCOPE,
    ) -> FederationAttempt:
        """Discover the home provider and build the authorization redirect.

        On success the attempt is REDIRECTED and ``authorization_url`` is set.
        """
        attempt = FederationAttempt(
            user_identifier=login_hint,
            current_provider_id=current_provider_id,
            client_id=client_id,
            redirect_uri=redirect_uri,
        )
        with attempt_context(attempt.attempt_id, provider_id=attempt.current_provider_id):
            try:
                network = self._network()
                candidates = self._providers_for(login_hint)
                if not candidates:
                    return self._fail(attempt, FailureCategory.UNKNOWN_USER, f"no home provider for {login_hint}")

                home_provider_id = None
                for candidate in sorted(candidates):
                    if compute_trust_path(network, current_provider_id, candidate).reachable:
                        home_provider_id = candidate
                        break
                if home_provider_id is None:
                    return self._fail(
                        attempt,
                        FailureCategory.NO_TRUST_PATH,
                        f"no candidate in {sorted(candidates)} reachable from {current_provider_id}",
                    )

                request = FederationRequest.create(
                    user_identifier=login_hint,
                    home_provider_id=home_provider_id,
                    current_provider_id=current_provider_id,
                    client_id=client_id,
                    redirect_uri=redirect_uri,
                    scope=scope,
                )
                redirect = self.router.initiate_authentication_request(request, network)
            except Exception as e:
                return self._fail_with(attempt, e)

            attempt.request = request
            attempt.home_provider_id = home_provider_id
            attempt.trust_path = redirect.trust_path
            attempt.authorization_url = redirect.url
            attempt.transition(FederationState.REDIRECTED)
            return attempt

    async def complete(self, attempt: FederationAttempt, callback_params: Mapping[str, str]) -> FederationAttempt:
        """Handle the home provider's redirect back and finish the attempt.

        Raises:
            InvalidStateTransition: If the attempt is not REDIRECTED.
        """
        attempt.transition(FederationState.CALLBACK_RECEIVED)
        request = attempt.request

        with attempt_context(attempt.attempt_id, provider_id=attempt.current_provider_id):
            error = callback_params.get("error")
            if error:
                return self._fail(
                    attempt,
                    FailureCategory.AUTHENTICATION_DENIED,
                    f"home provider returned {error}: {callback_params.get('error_description', '')}",
                )
            if callback_params.get("state") != request.state:
                return self._fail(attempt, FailureCategory.INVALID_STATE, "state mismatch")
            code = callback_params.get("code")
            if not code:
                return self._fail(attempt, FailureCategory.INVALID_STATE, "callback carries no authorization code")

            try:
                network = self._network()
                tokens = await self.router.exchange_code_for_token(
                    code, request.home_provider_id, network, redirect_uri=request.redirect_uri
                )
                attempt.transition(FederationState.TOKEN_EXCHANGED)
                return self._finish(attempt, tokens, network)
            except Exception as e:
                return self._fail_with(attempt, e)

    # -------------------------------------------------------------------------
    # Backchannel flow
    # -------------------------------------------------------------------------

    async def begin_backchannel(
        self,
        login_hint: str,
        current_provider_id: str,
        client_id: str,
        scope: str = DEFAULT_SCOPE,
        binding_message: str | None = None,
    ) -> FederationAttempt:
        """Find a backchannel-capable home provider and start the request.

        On success the attempt is BACKCHANNEL_PENDING with ``auth_req_id`` set.
        """
        attempt = FederationAttempt(
            user_identifier=login_hint,
            current_provider_id=current_provider_id,
            client_id=client_id,
        )
        with attempt_context(attempt.attempt_id, provider_id=attempt.current_provider_id):
            try:
                network = self._network()
                home_provider_id = self.discovery.find_ciba_home_provider(login_hint, current_provider_id, network)
                if home_provider_id is None:
                    if not self._providers_for(login_hint):
                        return self._fail(attempt, FailureCategory.UNKNOWN_USER, f"no home provider for {login_hint}")
                    return self._fail(
                        attempt,
                        FailureCategory.BACKCHANNEL_UNSUPPORTED,
                        f"no backchannel-capable home provider for {login_hint} within reach",
                    )

                request = FederationRequest.create(
                    user_identifier=login_hint,
                    home_provider_id=home_provider_id,
                    current_provider_id=current_provider_id,
                    client_id=client_id,
                    scope=scope,
                    binding_message=binding_message,
                )
                auth_req_id = await self.router.initiate_ciba_request(request, network)
            except Exception as e:
                return self._fail_with(attempt, e)

            attempt.request = request
            attempt.home_provider_id = home_provider_id
            attempt.trust_path = compute_trust_path(network, current_provider_id, home_provider_id)
            attempt.auth_req_id = auth_req_id
            attempt.transition(FederationState.BACKCHANNEL_PENDING)
            return attempt

    async def poll_backchannel(self, attempt: FederationAttempt) -> CibaPollResult:
        """Poll once.

        A DONE result leaves the attempt REISSUED. Tokens that arrive but do
        not validate give a FAILED result, like a denial or a transport error;
        the attempt then ends FAILED with the matching category.

        Raises:
            InvalidStateTransition: If the attempt is not BACKCHANNEL_PENDING.
        """
        if attempt.state != FederationState.BACKCHANNEL_PENDING:
            raise InvalidStateTransition(attempt.state.value, FederationState.TOKEN_EXCHANGED.value)

        with attempt_context(attempt.attempt_id, provider_id=attempt.current_provider_id):
            try:
                network = self._network()
                result = await self.router.poll_ciba_token(attempt.auth_req_id, attempt.home_provider_id, network)
                if result.status == PollStatus.PENDING:
                    return result
                if result.status == PollStatus.FAILED:
                    category = {
                        ERROR_ACCESS_DENIED: FailureCategory.AUTHENTICATION_DENIED,
                        ERROR_EXPIRED_TOKEN: FailureCategory.AUTHENTICATION_TIMEOUT,
                    }.get(result.error, FailureCategory.INVALID_STATE)
                    self._fail(attempt, category, f"backchannel request ended with {result.error}")
                    return result

                attempt.transition(FederationState.TOKEN_EXCHANGED)
                self._finish(attempt, result.tokens, network)
                if attempt.state == FederationState.FAILED:
                    return CibaPollResult.failed(attempt.failure_category.value)
                return result
            except Exception as e:
                self._fail_with(attempt, e)
                return CibaPollResult.failed(failure_category_for(e).value)
