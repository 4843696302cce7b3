"""Exception hierarchy for Trustbridge.

Trust-network configuration, value validation and registry lookups fail with
the classes below. Router failures live in :mod:`trustbridge.federation.errors`
and backchannel failures in :mod:`trustbridge.ciba.providers`; both derive
from TrustbridgeException as well.
"""

from __future__ import annotations

from typing import Any


class TrustbridgeException(Exception):  # noqa: N818
    """Root of every error raised by this package."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Serialize for JSON error bodies and structured logs."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ValidationException(TrustbridgeException):
    """An account record or other input value is malformed.

    ``field`` names the offending attribute; ``value`` is kept as given and
    stringified in ``details``.
    """

    def __init__(self, message: str, field: str | None = None, value: Any = None):
        details: dict[str, Any] = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, details)
        self.field = field
        self.value = value


class ConfigException(TrustbridgeException):
    """Settings or a configuration document cannot be used."""


class TrustNetworkConfigError(ConfigException):
    """A trust-network document or snapshot failed validation.

    ``problems`` holds everything found in one pass, so a broken document can
    be fixed in one edit. A network that raises this is never published.
    """

    def __init__(self, problems: list[str], network_id: str | None = None):
        self.problems = list(problems)
        self.network_id = network_id
        label = f"trust network '{network_id}'" if network_id else "trust network"
        details: dict[str, Any] = {"problems": self.problems}
        if network_id:
            details["network_id"] = network_id
        super().__init__(f"Invalid {label}: " + "; ".join(self.problems), details)


class NotFoundError(TrustbridgeException):
    """A registry lookup named something that is not registered."""

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} not found: {resource_id}",
            {"resource_type": resource_type, "resource_id": resource_id},
        )
        self.resource_type = resource_type
        self.resource_id = resource_id
