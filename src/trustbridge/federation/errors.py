"""Failures raised by the federation router and authentication flow.

Routing errors are local and caller-recoverable; remote protocol errors
carry the remote status and body; transport errors cover connection
failures and timeouts. Expected outcomes (an invalid token, a pending
backchannel request) are result values, not exceptions.
"""

from __future__ import annotations

from enum import Enum

from ..core.exceptions import TrustbridgeException


class RoutingFailure(str, Enum):
    """Why a request could not be routed to the home provider."""

    PROVIDER_NOT_FOUND = "provider_not_found"
    MISSING_ENDPOINT = "missing_endpoint"
    NO_TRUST_PATH = "no_trust_path"
    CIBA_UNSUPPORTED = "ciba_unsupported"
    HOP_LIMIT_EXCEEDED = "hop_limit_exceeded"


class FederationError(TrustbridgeException):
    """Base class for federation router failures."""


class RoutingError(FederationError):
    """The request can't be routed (local configuration or trust state)."""

    def __init__(self, reason: RoutingFailure, message: str, provider_id: str | None = None):
        details: dict = {"reason": reason.value}
        if provider_id:
            details["provider_id"] = provider_id
        super().__init__(message, details)
        self.reason = reason
        self.provider_id = provider_id


class RemoteProtocolError(FederationError):
    """A remote provider answered with a non-2xx status or an unusable body."""

    MAX_BODY_IN_MESSAGE = 200

    def __init__(self, message: str, status: int | None = None, body: str | None = None, url: str | None = None):
        details: dict = {}
        if status is not None:
            details["status"] = status
        if body is not None:
            details["body"] = body
        if url:
            details["url"] = url
        super().__init__(message, details)
        self.status = status
        self.body = body
        self.url = url

    def __str__(self) -> str:
        if self.status is None:
            return self.message
        body = (self.body or "")[: self.MAX_BODY_IN_MESSAGE]
        return f"{self.message} (status {self.status}): {body}"


class TransportError(FederationError):
    """The remote provider could not be reached or did not answer in time."""

    def __init__(self, message: str, timeout: bool = False, url: str | None = None):
        details: dict = {"timeout": timeout}
        if url:
            details["url"] = url
        super().__init__(message, details)
        self.timeout = timeout
        self.url = url


class TokenRejectedError(FederationError):
    """A home token failed validation where a valid one is required."""

    def __init__(self, reason: str):
        super().__init__(f"Cannot reissue token: {reason}", {"reason": reason})
        self.reason = reason


class InvalidStateTransition(FederationError):  # noqa: N818
    """An authentication attempt was asked to make an illegal state move."""

    def __init__(self, current: str, target: str):
        super().__init__(
            f"Illegal federation state transition {current} -> {target}",
            {"current": current, "target": target},
        )
        self.current = current
        self.target = target
