# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Federation router: talks to home providers on behalf of a requester.

Given a validated trust path, the router builds the authorization redirect,
exchanges the returned code for tokens, validates them, re-issues them with
federation provenance claims, and runs the backchannel (CIBA) initiation
and polling calls.

Outbound calls carry explicit connect and total timeouts; a timeout raises
TransportError rather than hanging. Polling is driven by the caller.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any
from urllib.parse import urlencode

import aiohttp

from ..ciba.models import (
    CIBA_GRANT_TYPE,
    ERROR_AUTHORIZATION_PENDING,
    ERROR_SLOW_DOWN,
    TERMINAL_POLL_ERRORS,
)
from ..core.logging import redact_params
from ..topology.base import TrustPath
from ..topology.registry import compute_trust_path
from ..trust.models import ProviderNode, TrustNetwork
from .errors import (
    RemoteProtocolError,
    RoutingError,
    RoutingFailure,
    TokenRejectedError,
    TransportError,
)
from .models import (
    DEFAULT_TOKEN_TYPE,
    AuthorizationRedirect,
    CibaPollResult,
    FederationRequest,
    TokenSet,
    TokenValidationResult,
)
from .tokens import validate_jwt

logger = logging.getLogger(__name__)

# Provenance claims added by reissue_token
CLAIM_FEDERATED_FROM = "federated_from"
CLAIM_HOME_SUBJECT = "home_subject"
CLAIM_HOME_ISSUER = "home_issuer"
CLAIM_TRUST_PATH = "trust_path"
CLAIM_HOP_COUNT = "hop_count"


class FederationRouter:
    """Executes cross-provider authentication against home providers.

    Example:
        >>> router = FederationRouter()
        >>> redirect = router.initiate_authentication_request(request, network)
        >>> # ... browser round-trip ...
        >>> tokens = await router.exchange_code_for_token(code, "uni-a", network)
        >>> federated = router.reissue_token(tokens, request, network)
    """

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        connect_timeout: float | None = None,
        request_timeout: float | None = None,
        ciba_max_hops: int | None = None,
        session: aiohttp.ClientSession | None = None,
    ):
        """Initialize the router.

        Args:
            client_id: Client id presented to remote token endpoints
            client_secret: Optional secret sent with token requests
            connect_timeout: Seconds allowed to establish a connection
            request_timeout: Seconds allowed for a whole request
            ciba_max_hops: Longest trust path accepted for backchannel requests
            session: Shared aiohttp session; a short-lived one is opened per call when omitted
        """
        from ..core.config import get_config

        config = get_config()
        self.client_id = client_id or config.broker_client_id
        self.client_secret = client_secret if client_secret is not None else config.broker_client_secret
        self.connect_timeout = connect_timeout if connect_timeout is not None else config.http_connect_timeout
        self.request_timeout = request_timeout if request_timeout is not None else config.http_request_timeout
        self.ciba_max_hops = ciba_max_hops if ciba_max_hops is not None else config.ciba_max_hops
        self._session = session

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @property
    def timeout(self) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(total=self.request_timeout, connect=self.connect_timeout)

    @staticmethod
    def _require_provider(network: TrustNetwork, provider_id: str) -> ProviderNode:
        provider = network.get_provider(provider_id)
        if provider is None:
            raise RoutingError(
                RoutingFailure.PROVIDER_NOT_FOUND,
                f"Provider {provider_id} is not a member of network {network.network_id}",
                provider_id,
            )
        return provider

    @staticmethod
    def _require_endpoint(provider: ProviderNode, name: str) -> str:
        endpoint = getattr(provider.metadata, name)
        if not endpoint:
            raise RoutingError(
                RoutingFailure.MISSING_ENDPOINT,
                f"Provider {provider.provider_id} has no {name} configured",
                provider.provider_id,
            )
        return endpoint

    @staticmethod
    def _require_path(network: TrustNetwork, source: str, target: str) -> TrustPath:
        path = compute_trust_path(network, source, target)
        if not path.reachable:
            raise RoutingError(
                RoutingFailure.NO_TRUST_PATH,
                f"No trust path from {source} to {target}",
                target,
            )
        return path

    def _client_params(self) -> dict[str, str]:
        params = {"client_id": self.client_id}
        if self.client_secret:
            params["client_secret"] = self.client_secret
        return params

    async def _post_form(self, url: str, params: dict[str, str]) -> tuple[int, str]:
        """POST form-encoded ``params`` and return (status, body text).

        Raises:
            TransportError: On connection failure or timeout.
        """
        logger.debug(f"POST {url} {redact_params(params)}")
        try:
            if self._session is not None:
                return await self._send(self._session, url, params)
            async with aiohttp.ClientSession() as session:
                return await self._send(session, url, params)
        except asyncio.TimeoutError as e:
            logger.warning(f"Timed out calling {url}")
            raise TransportError(f"Timed out calling {url}", timeout=True, url=url) from e
        except aiohttp.ClientError as e:
            logger.warning(f"Error calling {url}: {e}")
            raise TransportError(f"Error calling {url}: {e}", url=url) from e

    async def _send(self, session: aiohttp.ClientSession, url: str, params: dict[str, str]) -> tuple[int, str]:
        async with session.post(
            url,
            data=params,
            headers={"Accept": "application/json"},
            timeout=self.timeout,
        ) as response:
            body = await response.text()
            return response.status, body

    @staticmethod
    def _parse_json(status: int, body: str, url: str) -> dict[str, Any]:
        try:
            data = json.loads(body)
        except json.JSONDecodeError as e:
            raise RemoteProtocolError("Malformed JSON response", status=status, body=body, url=url) from e
        if not isinstance(data, dict):
            raise RemoteProtocolError("Expected a JSON object response", status=status, body=body, url=url)
        return data

    # -------------------------------------------------------------------------
    # Redirect flow
    # -------------------------------------------------------------------------

    def initiate_authentication_request(
        self,
        request: FederationRequest,
        network: TrustNetwork,
    ) -> AuthorizationRedirect:
        """Build the authorization URL at the user's home provider.

        Nothing is stored; the caller keeps ``state``, ``nonce`` and the home
        provider id across the redirect round-trip.

        Raises:
            RoutingError: Unknown home provider, no authorization endpoint,
                or no trust path from the current provider.
        """
        provider = self._require_provider(network, request.home_provider_id)
        endpoint = self._require_endpoint(provider, "authorization_endpoint")
        path = self._require_path(network, request.current_provider_id, request.home_provider_id)

        params = {
            "response_type": "code",
            "client_id": request.client_id,
            "scope": request.scope,
        }
        if request.redirect_uri:
            params["redirect_uri"] = request.redirect_uri
        if request.state:
            params["state"] = request.state
        if request.nonce:
            params["nonce"] = request.nonce
        params["login_hint"] = request.effective_login_hint
        for key, value in request.additional_params.items():
            params.setdefault(key, value)

        separator = "&" if "?" in endpoint else "?"
        url = f"{endpoint}{separator}{urlencode(params)}"

        logger.info(
            f"Routing {request.user_identifier} from {request.current_provider_id} to "
            f"{request.home_provider_id} ({path.hop_count} hop(s): {path.as_audit_string()})",
            extra={"home_provider_id": request.home_provider_id, "hop_count": path.hop_count},
        )
        return AuthorizationRedirect(url=url, trust_path=path, request=request)

    async def exchange_code_for_token(
        self,
        code: str,
        home_provider_id: str,
        network: TrustNetwork,
        redirect_uri: str | None = None,
    ) -> TokenSet:
        """Exchange an authorization code at the home provider's token endpoint.

        Raises:
            RoutingError: Unknown provider or no token endpoint.
            RemoteProtocolError: Non-2xx status or unusable response body.
            TransportError: Connection failure or timeout.
        """
        provider = self._require_provider(network, home_provider_id)
        endpoint = self._require_endpoint(provider, "token_endpoint")

        params = {"grant_type": "authorization_code", "code": code, **self._client_params()}
        if redirect_uri:
            params["redirect_uri"] = redirect_uri

        status, body = await self._post_form(endpoint, params)
        if not 200 <= status < 300:
            logger.warning(f"Token exchange with {home_provider_id} failed with status {status}")
            raise RemoteProtocolError("Token exchange failed", status=status, body=body, url=endpoint)

        return TokenSet.from_response(self._parse_json(status, body, endpoint), status=status, body=body)

    def validate_token(
        self,
        token: str | None,
        home_provider_id: str,
        network: TrustNetwork,
        now: float | None = None,
    ) -> TokenValidationResult:
        """Validate structure, issuer and expiry of a token from a home provider.

        Always returns a result; an unknown provider is an invalid result.
        """
        provider = network.get_provider(home_provider_id)
        if provider is None:
            return TokenValidationResult.invalid(f"Home provider not found: {home_provider_id}")
        result = validate_jwt(token, provider.issuer, now=now)
        if not result.valid:
            logger.info(f"Token from {home_provider_id} rejected: {result.error}")
        return result

    def reissue_token(
        self,
        home_tokens: TokenSet,
        request: FederationRequest,
        network: TrustNetwork,
        now: float | None = None,
    ) -> TokenSet:
        """Annotate validated home tokens with federation provenance.

        The home ID token is validated again and the trust path recomputed
        against the given snapshot. Every validated home claim is carried
        over, with the provenance claims laid on top. The home refresh token
        is not carried over. Signing the result is up to a TokenSigner.

        Raises:
            TokenRejectedError: If the home ID token does not validate.
            RoutingError: If the trust path no longer exists.
        """
        validation = self.validate_token(home_tokens.id_token, request.home_provider_id, network, now=now)
        if not validation.valid:
            raise TokenRejectedError(validation.error or "invalid token")

        path = self._require_path(network, request.current_provider_id, request.home_provider_id)

        claims = {
            **validation.claims,
            CLAIM_FEDERATED_FROM: request.home_provider_id,
            CLAIM_HOME_SUBJECT: validation.subject,
            CLAIM_HOME_ISSUER: validation.issuer,
            CLAIM_TRUST_PATH: path.as_audit_string(),
            CLAIM_HOP_COUNT: path.hop_count,
        }
        logger.info(
            f"Reissued token for {validation.subject} federated from {request.home_provider_id} "
            f"via {path.as_audit_string()}"
        )
        return TokenSet(
            access_token=home_tokens.access_token,
            id_token=home_tokens.id_token,
            token_type=DEFAULT_TOKEN_TYPE,
            expires_in=home_tokens.expires_in,
            scope=home_tokens.scope or request.scope,
            additional_claims=claims,
        )

    # -------------------------------------------------------------------------
    # Backchannel (CIBA) flow
    # -------------------------------------------------------------------------

    async def initiate_ciba_request(self, request: FederationRequest, network: TrustNetwork) -> str:
        """Start a backchannel authentication request at the home provider.

        Returns:
            The opaque ``auth_req_id`` to poll with.

        Raises:
            RoutingError: Unknown provider, backchannel unsupported, no
                backchannel endpoint, no trust path, or path too long.
            RemoteProtocolError: Non-2xx status or no ``auth_req_id`` in the response.
            TransportError: Connection failure or timeout.
        """
        provider = self._require_provider(network, request.home_provider_id)
        if not provider.supports_ciba:
            raise RoutingError(
                RoutingFailure.CIBA_UNSUPPORTED,
                f"Provider {provider.provider_id} does not support backchannel authentication",
                provider.provider_id,
            )
        endpoint = self._require_endpoint(provider, "backchannel_authentication_endpoint")
        path = self._require_path(network, request.current_provider_id, request.home_provider_id)
        if path.hop_count > self.ciba_max_hops:
            raise RoutingError(
                RoutingFailure.HOP_LIMIT_EXCEEDED,
                f"Trust path to {provider.provider_id} has {path.hop_count} hops, "
                f"backchannel flows allow at most {self.ciba_max_hops}",
                provider.provider_id,
            )

        params = {
            "login_hint": request.effective_login_hint,
            "scope": request.scope,
            **self._client_params(),
        }
        if request.binding_message:
            params["binding_message"] = request.binding_message

        status, body = await self._post_form(endpoint, params)
        if not 200 <= status < 300:
            logger.warning(f"Backchannel request to {provider.provider_id} failed with status {status}")
            raise RemoteProtocolError(
                "Backchannel authentication request failed", status=status, body=body, url=endpoint
            )

        data = self._parse_json(status, body, endpoint)
        auth_req_id = data.get("auth_req_id")
        if not isinstance(auth_req_id, str) or not auth_req_id:
            raise RemoteProtocolError("Backchannel response has no auth_req_id", status=status, body=body, url=endpoint)

        logger.info(
            f"Backchannel request started at {provider.provider_id} "
            f"(expires_in={data.get('expires_in')}, interval={data.get('interval')})"
        )
        return auth_req_id

    async def poll_ciba_token(
        self,
        auth_req_id: str,
        home_provider_id: str,
        network: TrustNetwork,
    ) -> CibaPollResult:
        """Poll the home provider's token endpoint once.

        Returns:
            ``pending`` while the user hasn't decided (``slow_down`` set when
            the provider asks for a longer interval), ``done`` with tokens, or
            ``failed`` for access_denied, expired_token and invalid_grant.

        Raises:
            RemoteProtocolError: Any other non-2xx response or an unusable body.
            TransportError: Connection failure or timeout.
        """
        provider = self._require_provider(network, home_provider_id)
        endpoint = self._require_endpoint(provider, "token_endpoint")

        params = {"grant_type": CIBA_GRANT_TYPE, "auth_req_id": auth_req_id, **self._client_params()}
        status, body = await self._post_form(endpoint, params)

        if 200 <= status < 300:
            return CibaPollResult.done(
                TokenSet.from_response(self._parse_json(status, body, endpoint), status=status, body=body)
            )

        try:
            error_body = json.loads(body)
        except json.JSONDecodeError:
            error_body = None
        error = error_body.get("error") if isinstance(error_body, dict) else None
        description = error_body.get("error_description") if isinstance(error_body, dict) else None

        if status == 400 and error == ERROR_AUTHORIZATION_PENDING:
            return CibaPollResult.pending()
        if status == 400 and error == ERROR_SLOW_DOWN:
            return CibaPollResult.pending(slow_down=True)
        if error in TERMINAL_POLL_ERRORS:
            logger.info(f"Backchannel request at {home_provider_id} ended: {error}")
            return CibaPollResult.failed(error, description, http_status=status)

        logger.warning(f"Backchannel poll at {home_provider_id} failed with status {status}")
        raise RemoteProtocolError("Backchannel token poll failed", status=status, body=body, url=endpoint)
