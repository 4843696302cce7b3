"""Shared fixtures for federation tests."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import jwt
import pytest

from trustbridge.federation.router import FederationRouter

TEST_HMAC_KEY = "federation-test-key-0123456789abcdef"


@pytest.fixture
def make_id_token() -> Callable[..., str]:
    """HS256 ID tokens. Structural validation never checks the signature."""

    def _make(
        issuer: str = "https://A.example.org", subject: str | None = "alice", ttl: int = 300, **claims: Any
    ) -> str:
        payload: dict[str, Any] = {"iss": issuer, "exp": int(time.time()) + ttl, **claims}
        if subject is not None:
            payload["sub"] = subject
        return jwt.encode(payload, TEST_HMAC_KEY, algorithm="HS256")

    return _make


@pytest.fixture
def mock_session() -> MagicMock:
    """aiohttp session whose POST replies are queued with ``session.queue(status, body)``."""
    session = MagicMock()
    session.responses = []

    def post(*args, **kwargs):
        status, body = session.responses.pop(0)
        response = MagicMock()
        response.status = status
        response.text = AsyncMock(return_value=body)
        context = MagicMock()
        context.__aenter__ = AsyncMock(return_value=response)
        context.__aexit__ = AsyncMock(return_value=False)
        return context

    session.post = MagicMock(side_effect=post)
    session.queue = lambda status, body: session.responses.append((status, body))
    return session


@pytest.fixture
def router(mock_session) -> FederationRouter:
    return FederationRouter(
        client_id="broker",
        client_secret="broker-secret",
        connect_timeout=1.0,
        request_timeout=2.0,
        ciba_max_hops=2,
        session=mock_session,
    )
