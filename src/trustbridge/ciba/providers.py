# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Backchannel providers: where a decoupled authentication decision comes from.

The CIBA endpoints hand accepted requests to a BackchannelProvider and poll
it for the user's decision. Three implementations ship:

- InMemoryBackchannelProvider: decisions are recorded through approve/deny/fail
  (tests, embedding applications)
- MockBackchannelProvider: decides on its own after a delay (demos only)
- FileBackchannelProvider: requests are written to ``<dir>/inbox``, decisions
  are read from ``<dir>/outbox`` (out-of-band tooling)

Configure via environment variables:
    TRUSTBRIDGE_BACKCHANNEL_PROVIDER=memory|mock|file  (default: memory)
    TRUSTBRIDGE_BACKCHANNEL_DIR=~/.trustbridge/backchannel
"""

from __future__ import annotations

import json
import logging
import random
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from ..core.exceptions import TrustbridgeException
from .models import (
    DELIVERY_MODE_POLL,
    ERROR_ACCESS_DENIED,
    ERROR_SERVER_ERROR,
    BackchannelAuthRequest,
    BackchannelAuthStatus,
    BackchannelStatus,
)

logger = logging.getLogger(__name__)


class BackchannelError(TrustbridgeException):
    """A backchannel provider could not accept, report or change a request."""

    def __init__(self, message: str, auth_req_id: str | None = None):
        super().__init__(message, {"auth_req_id": auth_req_id} if auth_req_id else None)
        self.auth_req_id = auth_req_id


class BackchannelProvider(ABC):
    """Abstract interface for delivering backchannel requests to users."""

    @property
    def supported_delivery_modes(self) -> frozenset[str]:
        return frozenset({DELIVERY_MODE_POLL})

    @abstractmethod
    def initiate(self, request: BackchannelAuthRequest) -> None:
        """Accept a request and start asking the user.

        Raises:
            BackchannelError: If the request cannot be delivered.
        """
        ...

    @abstractmethod
    def get_status(self, auth_req_id: str) -> BackchannelAuthStatus | None:
        """Current state of a request, or None if it is unknown."""
        ...

    @abstractmethod
    def cancel(self, auth_req_id: str) -> bool:
        """Forget a request. Returns True if it existed."""
        ...

    @abstractmethod
    def cleanup_expired(self, max_age: int) -> int:
        """Forget requests created more than ``max_age`` seconds ago.

        Returns:
            Number of requests removed.
        """
        ...


# =============================================================================
# IN-MEMORY PROVIDER
# =============================================================================


@dataclass
class _Entry:
    request: BackchannelAuthRequest
    status: BackchannelStatus = BackchannelStatus.PENDING
    user_id: str | None = None
    error_code: str | None = None
    error_description: str | None = None
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def snapshot(self) -> BackchannelAuthStatus:
        return BackchannelAuthStatus(
            auth_req_id=self.request.auth_req_id,
            status=self.status,
            client_id=self.request.client_id,
            scope=self.request.scope,
            user_id=self.user_id,
            error_code=self.error_code,
            error_description=self.error_description,
            updated_at=self.updated_at,
        )


class InMemoryBackchannelProvider(BackchannelProvider):
    """Keeps requests in a dict; decisions come from approve/deny/fail.

    Pending requests past their expiry report EXPIRED.
    """

    def __init__(self) -> None:
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def initiate(self, request: BackchannelAuthRequest) -> None:
        with self._lock:
            if request.auth_req_id in self._entries:
                raise BackchannelError("Duplicate auth_req_id", request.auth_req_id)
            self._entries[request.auth_req_id] = _Entry(request=request)
        logger.info(f"Backchannel request {request.auth_req_id} pending for {request.login_hint}")

    def _decide(
        self,
        auth_req_id: str,
        status: BackchannelStatus,
        user_id: str | None = None,
        error_code: str | None = None,
        error_description: str | None = None,
    ) -> None:
        with self._lock:
            entry = self._entries.get(auth_req_id)
            if entry is None:
                raise BackchannelError("Unknown auth_req_id", auth_req_id)
            self._expire_if_due(entry)
            if entry.status.is_terminal:
                raise BackchannelError(f"Request is already {entry.status.value}", auth_req_id)
            entry.status = status
            entry.user_id = user_id
            entry.error_code = error_code
            entry.error_description = error_description
            entry.updated_at = datetime.now(UTC)
        logger.info(f"Backchannel request {auth_req_id} {status.value}")

    def approve(self, auth_req_id: str, user_id: str) -> None:
        """Record the user's approval.

        Raises:
            BackchannelError: If the request is unknown or already decided.
        """
        self._decide(auth_req_id, BackchannelStatus.APPROVED, user_id=user_id)

    def deny(self, auth_req_id: str, description: str | None = None) -> None:
        self._decide(
            auth_req_id, BackchannelStatus.DENIED, error_code=ERROR_ACCESS_DENIED, error_description=description
        )

    def fail(self, auth_req_id: str, error_code: str = ERROR_SERVER_ERROR, description: str | None = None) -> None:
        self._decide(auth_req_id, BackchannelStatus.ERROR, error_code=error_code, error_description=description)

    @staticmethod
    def _expire_if_due(entry: _Entry) -> None:
        if entry.status == BackchannelStatus.PENDING and entry.request.is_expired():
            entry.status = BackchannelStatus.EXPIRED
            entry.updated_at = datetime.now(UTC)

    def get_status(self, auth_req_id: str) -> BackchannelAuthStatus | None:
        with self._lock:
            entry = self._entries.get(auth_req_id)
            if entry is None:
                return None
            self._expire_if_due(entry)
            return entry.snapshot()

    def cancel(self, auth_req_id: str) -> bool:
        with self._lock:
            return self._entries.pop(auth_req_id, None) is not None

    def cleanup_expired(self, max_age: int) -> int:
        cutoff = datetime.now(UTC) - timedelta(seconds=max_age)
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.request.created_at < cutoff]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug(f"Removed {len(expired)} backchannel requests older than {max_age}s")
        return len(expired)

    def pending(self) -> list[BackchannelAuthRequest]:
        """Requests still waiting for a decision, oldest first."""
        with self._lock:
            for entry in self._entries.values():
                self._expire_if_due(entry)
            return [e.request for e in self._entries.values() if e.status == BackchannelStatus.PENDING]

    def __len__(self) -> int:
        return len(self._entries)


# =============================================================================
# MOCK PROVIDER
# =============================================================================


def user_id_from_login_hint(login_hint: str | None) -> str:
    """Local part of an email-like hint, or the whole hint."""
    if not login_hint:
        return "mock-user"
    at = login_hint.find("@")
    return login_hint[:at] if at > 0 else login_hint


class MockBackchannelProvider(InMemoryBackchannelProvider):
    """Decides every request by itself once ``delay`` seconds have passed.

    The outcome is rolled when the request arrives: ``error_rate`` percent
    fail, the next ``approval_rate`` percent are approved, the rest denied.
    With ``auto_decide`` off requests stay pending until decided explicitly.
    Never use outside development.
    """

    def __init__(
        self,
        delay: float = 5.0,
        approval_rate: int = 100,
        error_rate: int = 0,
        auto_decide: bool = True,
        rng: random.Random | None = None,
        clock=time.monotonic,
    ):
        super().__init__()
        if not 0 <= error_rate <= 100 or not 0 <= approval_rate <= 100:
            raise ValueError("approval_rate and error_rate are percentages")
        self.delay = delay
        self.approval_rate = approval_rate
        self.error_rate = error_rate
        self.auto_decide = auto_decide
        self._rng = rng or random.Random()
        self._clock = clock
        self._outcomes: dict[str, tuple[BackchannelStatus, float]] = {}
        logger.warning(
            f"Mock backchannel provider active (delay={delay}s, approval={approval_rate}%, "
            f"error={error_rate}%). Do not use in production."
        )

    def _roll(self) -> BackchannelStatus:
        roll = self._rng.randrange(100)
        if roll < self.error_rate:
            return BackchannelStatus.ERROR
        if roll < self.error_rate + self.approval_rate:
            return BackchannelStatus.APPROVED
        return BackchannelStatus.DENIED

    def initiate(self, request: BackchannelAuthRequest) -> None:
        super().initiate(request)
        if self.auto_decide:
            self._outcomes[request.auth_req_id] = (self._roll(), self._clock())

    def get_status(self, auth_req_id: str) -> BackchannelAuthStatus | None:
        planned = self._outcomes.get(auth_req_id)
        if planned is None or self._clock() - planned[1] < self.delay:
            return super().get_status(auth_req_id)

        del self._outcomes[auth_req_id]
        current = super().get_status(auth_req_id)
        if current is None or current.status != BackchannelStatus.PENDING:
            return current

        outcome = planned[0]
        if outcome == BackchannelStatus.APPROVED:
            request = self._entries[auth_req_id].request
            self.approve(auth_req_id, user_id_from_login_hint(request.login_hint))
        elif outcome == BackchannelStatus.DENIED:
            self.deny(auth_req_id, "User denied the authentication request (mock)")
        else:
            self.fail(auth_req_id, ERROR_SERVER_ERROR, "Simulated error during authentication (mock)")
        return super().get_status(auth_req_id)

    def cancel(self, auth_req_id: str) -> bool:
        self._outcomes.pop(auth_req_id, None)
        return super().cancel(auth_req_id)

    def cleanup_expired(self, max_age: int) -> int:
        removed = super().cleanup_expired(max_age)
        for key in [key for key in self._outcomes if key not in self._entries]:
            del self._outcomes[key]
        return removed


# =============================================================================
# FILE PROVIDER
# =============================================================================


class FileBackchannelProvider(BackchannelProvider):
    """Exchanges requests and decisions as JSON files.

    ``<base>/inbox/<auth_req_id>.json`` holds the request. An external
    process writes ``<base>/outbox/<auth_req_id>.json`` with at least
    ``status`` (approved/denied/error) and optionally ``user_id``,
    ``error_code``, ``error_description``.
    """

    def __init__(self, base_dir: str | Path):
        self.base_dir = Path(base_dir).expanduser()
        self.inbox = self.base_dir / "inbox"
        self.outbox = self.base_dir / "outbox"
        try:
            self.inbox.mkdir(parents=True, exist_ok=True)
            self.outbox.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise BackchannelError(f"Cannot create backchannel directories under {self.base_dir}: {e}") from e
        logger.info(f"File backchannel initialized: inbox={self.inbox}, outbox={self.outbox}")

    @staticmethod
    def _file_name(auth_req_id: str) -> str:
        # auth_req_ids are urn:uuid:..., keep file names portable
        return auth_req_id.replace(":", "_").replace("/", "_") + ".json"

    def _read_json(self, path: Path) -> dict[str, Any]:
        try:
            data = json.loads(path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise BackchannelError(f"Cannot read {path}: {e}") from e
        if not isinstance(data, dict):
            raise BackchannelError(f"{path} does not hold a JSON object")
        return data

    def initiate(self, request: BackchannelAuthRequest) -> None:
        path = self.inbox / self._file_name(request.auth_req_id)
        try:
            path.write_text(json.dumps(request.to_dict(), indent=2))
        except OSError as e:
            raise BackchannelError(f"Failed to write request: {e}", request.auth_req_id) from e
        logger.info(f"Backchannel request written to inbox: {request.auth_req_id}")

    def get_status(self, auth_req_id: str) -> BackchannelAuthStatus | None:
        name = self._file_name(auth_req_id)
        request_path = self.inbox / name
        response_path = self.outbox / name

        if not request_path.exists():
            return None
        request = BackchannelAuthRequest.from_dict(self._read_json(request_path))

        if not response_path.exists():
            status = BackchannelStatus.EXPIRED if request.is_expired() else BackchannelStatus.PENDING
            return BackchannelAuthStatus(
                auth_req_id=auth_req_id, status=status, client_id=request.client_id, scope=request.scope
            )

        response = self._read_json(response_path)
        raw_status = str(response.get("status") or "").lower()
        try:
            status = BackchannelStatus(raw_status)
        except ValueError:
            logger.warning(f"Unknown status '{raw_status}' in {response_path}, treating as pending")
            status = BackchannelStatus.PENDING

        updated_at = datetime.now(UTC)
        if response.get("updated_at"):
            try:
                updated_at = datetime.fromisoformat(response["updated_at"])
            except (TypeError, ValueError):
                logger.warning(f"Ignoring malformed updated_at in {response_path}")

        return BackchannelAuthStatus(
            auth_req_id=auth_req_id,
            status=status,
            client_id=request.client_id,
            scope=request.scope,
            user_id=response.get("user_id"),
            error_code=response.get("error_code"),
            error_description=response.get("error_description"),
            updated_at=updated_at,
        )

    def cancel(self, auth_req_id: str) -> bool:
        name = self._file_name(auth_req_id)
        removed = False
        for path in (self.inbox / name, self.outbox / name):
            try:
                path.unlink()
                removed = True
            except FileNotFoundError:
                continue
            except OSError as e:
                raise BackchannelError(f"Failed to cancel request: {e}", auth_req_id) from e
        if removed:
            logger.info(f"Backchannel request cancelled: {auth_req_id}")
        return removed

    def cleanup_expired(self, max_age: int) -> int:
        cutoff = time.time() - max_age
        cleaned = 0
        for directory in (self.inbox, self.outbox):
            for path in directory.glob("*.json"):
                try:
                    if path.stat().st_mtime < cutoff:
                        path.unlink()
                        cleaned += 1
                except FileNotFoundError:
                    continue
        if cleaned:
            logger.info(f"Cleaned up {cleaned} backchannel files older than {max_age}s")
        return cleaned


# =============================================================================
# FACTORY
# =============================================================================


def create_backchannel_provider(kind: str | None = None, base_dir: str | None = None) -> BackchannelProvider:
    """Build the provider named by ``kind`` (TRUSTBRIDGE_BACKCHANNEL_PROVIDER when omitted).

    Raises:
        ValueError: If ``kind`` is not memory, mock or file.
    """
    from ..core.config import get_config

    config = get_config()
    kind = (kind or config.backchannel_provider).lower()

    if kind == "memory":
        logger.info("Using in-memory backchannel provider")
        return InMemoryBackchannelProvider()
    if kind == "mock":
        return MockBackchannelProvider()
    if kind == "file":
        return FileBackchannelProvider(base_dir or config.backchannel_dir)
    raise ValueError(f"Unknown backchannel provider '{kind}' (expected memory, mock or file)")
