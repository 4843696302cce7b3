"""Backchannel (CIBA) HTTP endpoints.

Implements the poll mode of OpenID Connect Client-Initiated Backchannel
Authentication:
- POST /ciba/auth   accept an authentication request for a known user
- POST /ciba/token  poll for the outcome, issue tokens once approved
- GET  /health

Handlers read their collaborators from ``request.app.state.ciba``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from starlette.requests import Request
from starlette.responses import JSONResponse

from ..core.config import CoreSettings
from ..core.logging import redact_params
from ..discovery.accounts import Account, AccountLookup
from ..federation.signing import TokenSigner
from .models import (
    CIBA_GRANT_TYPE,
    ERROR_ACCESS_DENIED,
    ERROR_AUTHORIZATION_PENDING,
    ERROR_EXPIRED_TOKEN,
    ERROR_INVALID_GRANT,
    ERROR_INVALID_REQUEST,
    ERROR_SERVER_ERROR,
    ERROR_UNAUTHORIZED_CLIENT,
    ERROR_UNKNOWN_USER_ID,
    ERROR_UNSUPPORTED_GRANT_TYPE,
    MAX_BINDING_MESSAGE_LENGTH,
    BackchannelAuthRequest,
    BackchannelStatus,
)
from .providers import BackchannelError, BackchannelProvider

logger = logging.getLogger(__name__)


@dataclass
class CibaContext:
    """Collaborators shared by the CIBA handlers."""

    provider: BackchannelProvider
    accounts: AccountLookup
    signer: TokenSigner
    settings: CoreSettings


def _context(request: Request) -> CibaContext:
    return request.app.state.ciba


def _error(error: str, description: str, status_code: int = 400) -> JSONResponse:
    return JSONResponse({"error": error, "error_description": description}, status_code=status_code)


async def _read_form(request: Request) -> dict[str, str] | None:
    try:
        form = await request.form()
    except Exception:
        return None
    return {key: value for key, value in form.items() if isinstance(value, str)}


def resolve_account(accounts: AccountLookup, hint: str | None) -> Account | None:
    """Look a login hint (or approved user id) up by identifier, then by email."""
    if not hint:
        return None
    account = accounts.get_account(hint)
    if account is None and "@" in hint:
        account = accounts.get_account_by_email(hint)
    return account


def _client_allowed(settings: CoreSettings, client_id: str) -> bool:
    allowed = settings.allowed_clients
    return not allowed or client_id in allowed


# ============================================================================
# Authentication request
# ============================================================================


async def backchannel_authentication(request: Request) -> JSONResponse:
    """Accept a backchannel authentication request.

    Returns ``{auth_req_id, expires_in, interval}``.
    """
    ctx = _context(request)
    form = await _read_form(request)
    if form is None:
        return _error(ERROR_INVALID_REQUEST, "Invalid form data")
    logger.debug(f"Backchannel authentication request: {redact_params(form)}")

    login_hint = form.get("login_hint", "").strip()
    client_id = form.get("client_id", "").strip()
    if not login_hint:
        return _error(ERROR_INVALID_REQUEST, "Missing login_hint parameter")
    if not client_id:
        return _error(ERROR_INVALID_REQUEST, "Missing client_id parameter")
    if not _client_allowed(ctx.settings, client_id):
        logger.warning(f"Backchannel request from unauthorized client {client_id}")
        return _error(ERROR_UNAUTHORIZED_CLIENT, "Invalid client", status_code=401)

    binding_message = form.get("binding_message") or None
    if binding_message and len(binding_message) > MAX_BINDING_MESSAGE_LENGTH:
        return _error(
            ERROR_INVALID_REQUEST,
            f"binding_message exceeds maximum length of {MAX_BINDING_MESSAGE_LENGTH} characters",
        )

    expires_in = ctx.settings.ciba_expires_in
    requested_expiry = form.get("requested_expiry")
    if requested_expiry is not None:
        try:
            expires_in = int(requested_expiry)
        except ValueError:
            return _error(ERROR_INVALID_REQUEST, "Invalid requested_expiry")
        if expires_in <= 0:
            return _error(ERROR_INVALID_REQUEST, "requested_expiry must be positive")

    account = resolve_account(ctx.accounts, login_hint)
    if account is None:
        logger.warning(f"Backchannel request for unknown user {login_hint}")
        return _error(ERROR_UNKNOWN_USER_ID, "Unknown user")

    auth_request = BackchannelAuthRequest(
        login_hint=login_hint,
        client_id=client_id,
        scope=form.get("scope") or "openid",
        binding_message=binding_message,
        user_code=form.get("user_code") or None,
        expires_in=expires_in,
    )
    try:
        ctx.provider.initiate(auth_request)
    except BackchannelError as e:
        logger.error(f"Backchannel provider rejected request: {e}")
        return _error(ERROR_SERVER_ERROR, "Backchannel authentication failed", status_code=500)

    logger.info(
        f"Backchannel authentication initiated: auth_req_id={auth_request.auth_req_id}, "
        f"client={client_id}, user={account.user_identifier}"
    )
    return JSONResponse(
        {
            "auth_req_id": auth_request.auth_req_id,
            "expires_in": expires_in,
            "interval": ctx.settings.ciba_poll_interval,
        }
    )


# ============================================================================
# Token polling
# ============================================================================


async def backchannel_token(request: Request) -> JSONResponse:
    """Token endpoint for the CIBA grant type.

    Tokens are issued once; the request is forgotten afterwards.
    """
    ctx = _context(request)
    form = await _read_form(request)
    if form is None:
        return _error(ERROR_INVALID_REQUEST, "Invalid form data")

    grant_type = form.get("grant_type")
    if grant_type != CIBA_GRANT_TYPE:
        return _error(ERROR_UNSUPPORTED_GRANT_TYPE, f"Unknown grant_type: {grant_type}")

    auth_req_id = form.get("auth_req_id")
    client_id = form.get("client_id")
    if not auth_req_id or not client_id:
        return _error(ERROR_INVALID_REQUEST, "Missing auth_req_id or client_id")
    if not _client_allowed(ctx.settings, client_id):
        return _error(ERROR_UNAUTHORIZED_CLIENT, "Invalid client", status_code=401)

    try:
        status = ctx.provider.get_status(auth_req_id)
    except BackchannelError as e:
        logger.error(f"Backchannel provider failed to report {auth_req_id}: {e}")
        return _error(ERROR_SERVER_ERROR, "Backchannel status unavailable", status_code=500)

    if status is None:
        return _error(ERROR_INVALID_GRANT, "Invalid or expired auth_req_id")
    if status.client_id and status.client_id != client_id:
        return _error(ERROR_INVALID_GRANT, "client_id mismatch")

    if status.status == BackchannelStatus.PENDING:
        return _error(ERROR_AUTHORIZATION_PENDING, "The user has not yet approved the request")
    if status.status == BackchannelStatus.DENIED:
        return _error(ERROR_ACCESS_DENIED, status.error_description or "The user denied the request", status_code=403)
    if status.status == BackchannelStatus.EXPIRED:
        return _error(ERROR_EXPIRED_TOKEN, "The authentication request has expired")
    if status.status == BackchannelStatus.ERROR:
        return _error(status.error_code or ERROR_SERVER_ERROR, status.error_description or "Authentication failed")

    account = resolve_account(ctx.accounts, status.user_id)
    if account is None:
        logger.warning(f"Approved backchannel request {auth_req_id} has no resolvable user")
        return _error(ERROR_INVALID_GRANT, "Approved user could not be resolved")

    claims: dict[str, Any] = {
        "sub": account.user_identifier,
        "aud": client_id,
        "scope": status.scope or "openid",
        "auth_req_id": auth_req_id,
    }
    if account.email:
        claims["email"] = account.email
    if account.name:
        claims["name"] = account.name

    tokens = ctx.signer.sign(claims)
    ctx.provider.cancel(auth_req_id)
    logger.info(f"Issued tokens for backchannel request {auth_req_id} (user={account.user_identifier})")
    return JSONResponse(tokens.to_response(), headers={"Cache-Control": "no-store"})


async def health(request: Request) -> JSONResponse:
    """Health check endpoint."""
    ctx = _context(request)
    return JSONResponse(
        {
            "status": "healthy",
            "issuer": ctx.settings.issuer_url,
            "delivery_modes": sorted(ctx.provider.supported_delivery_modes),
        }
    )
