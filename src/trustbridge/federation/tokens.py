"""Structural token validation.

Checks performed on every token: it is a well-formed JWT with a JSON object
payload, ``iss`` equals the provider's configured issuer exactly, ``exp`` has
not passed and ``sub`` is present. Signatures are not verified here; that
belongs to whoever holds the provider's key material.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import jwt

from .models import TokenValidationResult

logger = logging.getLogger(__name__)


def decode_claims(token: str) -> dict[str, Any]:
    """Decode a JWT payload without verifying its signature.

    Raises:
        jwt.DecodeError: If the token is not a well-formed JWT.
    """
    return jwt.decode(token, options={"verify_signature": False})


def validate_claims(
    claims: dict[str, Any],
    expected_issuer: str,
    now: float | None = None,
) -> TokenValidationResult:
    """Check issuer, expiry and subject of already decoded claims."""
    issuer = claims.get("iss")
    if not isinstance(issuer, str) or not issuer:
        return TokenValidationResult.invalid("Token missing issuer claim")
    if issuer != expected_issuer:
        return TokenValidationResult.invalid(f"Issuer mismatch: expected {expected_issuer}, got {issuer}")

    exp = claims.get("exp")
    if exp is None:
        return TokenValidationResult.invalid("Token missing expiration claim")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return TokenValidationResult.invalid("Token expiration claim is not numeric")
    if exp < (time.time() if now is None else now):
        return TokenValidationResult.invalid("Token has expired")

    subject = claims.get("sub")
    if not isinstance(subject, str) or not subject:
        return TokenValidationResult.invalid("Token missing subject claim")

    return TokenValidationResult.ok(claims)


def validate_jwt(token: str | None, expected_issuer: str, now: float | None = None) -> TokenValidationResult:
    """Decode ``token`` and validate its claims against ``expected_issuer``."""
    if not token:
        return TokenValidationResult.invalid("Token is empty")
    try:
        claims = decode_claims(token)
    except jwt.PyJWTError as e:
        logger.debug(f"Token decoding failed: {e}")
        return TokenValidationResult.invalid("Malformed token")
    return validate_claims(claims, expected_issuer, now=now)
