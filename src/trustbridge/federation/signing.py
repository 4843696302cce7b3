"""Token signing collaborator.

The router's re-issued TokenSet is the input to a TokenSigner, which turns
claims into tokens in this provider's own format. Ed25519TokenSigner is the
bundled signer: EdDSA JWTs over an Ed25519 key.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
import time
from typing import Any, Protocol, runtime_checkable

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from .models import DEFAULT_TOKEN_TYPE, TokenSet

SIGNING_ALGORITHM = "EdDSA"

# Registered claims the signer always sets itself
_RESERVED_CLAIMS = ("iss", "iat", "exp", "jti")

# Claims bound to the home token, dropped from a re-issued set before signing
_HOME_TOKEN_CLAIMS = (*_RESERVED_CLAIMS, "sub", "aud", "nbf", "nonce", "auth_time", "at_hash")


@runtime_checkable
class TokenSigner(Protocol):
    """Produce a signed token set from claims."""

    def sign(self, claims: dict[str, Any], tokens: TokenSet | None = None) -> TokenSet: ...


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


class Ed25519TokenSigner:
    """Signs access and ID tokens with an Ed25519 key.

    Args:
        issuer: ``iss`` of issued tokens; TRUSTBRIDGE_ISSUER_URL when omitted
        private_key: Key object or 32-byte seed in hex; TRUSTBRIDGE_SIGNING_KEY,
            or a freshly generated key, when omitted
        lifetime: Token lifetime in seconds
    """

    def __init__(
        self,
        issuer: str | None = None,
        private_key: Ed25519PrivateKey | str | None = None,
        lifetime: int | None = None,
    ):
        from ..core.config import get_config

        config = get_config()
        self.issuer = issuer or config.issuer_url
        self.lifetime = lifetime if lifetime is not None else config.token_lifetime_seconds

        if private_key is None:
            private_key = config.signing_key
        if isinstance(private_key, str):
            private_key = Ed25519PrivateKey.from_private_bytes(bytes.fromhex(private_key))
        self._private_key = private_key or Ed25519PrivateKey.generate()
        self._public_key = self._private_key.public_key()

        raw = self._public_key.public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        self._public_raw = raw
        self.key_id = hashlib.sha256(raw).hexdigest()[:16]

    def _encode(self, payload: dict[str, Any]) -> str:
        return jwt.encode(payload, self._private_key, algorithm=SIGNING_ALGORITHM, headers={"kid": self.key_id})

    def sign(self, claims: dict[str, Any], tokens: TokenSet | None = None) -> TokenSet:
        """Sign ``claims`` into an access token and an ID token.

        ``tokens`` (typically the router's re-issued set) contributes its
        carried claims and scope. The home token's own registered claims are
        left out.
        """
        now = int(time.time())
        payload: dict[str, Any] = {}
        if tokens is not None:
            payload.update({k: v for k, v in tokens.additional_claims.items() if k not in _HOME_TOKEN_CLAIMS})
        payload.update({k: v for k, v in claims.items() if k not in _RESERVED_CLAIMS})
        payload.update(
            {
                "iss": self.issuer,
                "iat": now,
                "exp": now + self.lifetime,
                "jti": secrets.token_urlsafe(16),
            }
        )

        scope = payload.get("scope") or (tokens.scope if tokens else None)
        access_token = self._encode(payload)
        id_payload = {**payload, "jti": secrets.token_urlsafe(16)}
        id_payload.pop("scope", None)
        id_token = self._encode(id_payload)

        return TokenSet(
            access_token=access_token,
            id_token=id_token,
            token_type=DEFAULT_TOKEN_TYPE,
            expires_in=self.lifetime,
            scope=scope,
            additional_claims=payload,
        )

    def verify(self, token: str, audience: str | None = None) -> dict[str, Any]:
        """Verify a token issued by this signer and return its claims.

        Raises:
            jwt.PyJWTError: If the signature, issuer, audience or expiry is wrong.
        """
        options = {} if audience else {"verify_aud": False}
        return jwt.decode(
            token,
            self._public_key,
            algorithms=[SIGNING_ALGORITHM],
            issuer=self.issuer,
            audience=audience,
            options=options,
        )

    def public_key_pem(self) -> str:
        return self._public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode("ascii")

    def jwks(self) -> dict[str, Any]:
        """The verification key as a JWK set."""
        return {
            "keys": [
                {
                    "kty": "OKP",
                    "crv": "Ed25519",
                    "x": _b64url(self._public_raw),
                    "kid": self.key_id,
                    "alg": SIGNING_ALGORITHM,
                    "use": "sig",
                }
            ]
        }
