"""Starlette application for the backchannel (CIBA) server."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from starlette.applications import Starlette
from starlette.routing import Route

from ..core.config import CoreSettings, get_config
from ..discovery.accounts import AccountLookup, InMemoryAccountStore
from ..federation.signing import Ed25519TokenSigner, TokenSigner
from .endpoints import CibaContext, backchannel_authentication, backchannel_token, health
from .providers import BackchannelProvider, create_backchannel_provider

logger = logging.getLogger(__name__)


def create_app(
    provider: BackchannelProvider | None = None,
    accounts: AccountLookup | None = None,
    signer: TokenSigner | None = None,
    settings: CoreSettings | None = None,
) -> Starlette:
    """Create the ASGI application.

    Omitted collaborators are built from settings: the configured backchannel
    provider, the accounts file (or an empty store) and an Ed25519 signer.
    """
    settings = settings or get_config()
    if provider is None:
        provider = create_backchannel_provider(settings.backchannel_provider, settings.backchannel_dir)
    if accounts is None:
        if settings.accounts_path:
            accounts = InMemoryAccountStore.from_file(settings.accounts_path)
        else:
            logger.warning("No accounts configured; every backchannel request will be rejected")
            accounts = InMemoryAccountStore()
    if signer is None:
        signer = Ed25519TokenSigner(issuer=settings.issuer_url, lifetime=settings.token_lifetime_seconds)

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        logger.info(f"Backchannel server ready (issuer {settings.issuer_url})")
        yield
        removed = provider.cleanup_expired(settings.ciba_expires_in)
        logger.info(f"Backchannel server shutting down ({removed} stale requests dropped)")

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/ciba/auth", backchannel_authentication, methods=["POST"]),
        Route("/ciba/token", backchannel_token, methods=["POST"]),
    ]
    app = Starlette(routes=routes, lifespan=lifespan)
    app.state.ciba = CibaContext(provider=provider, accounts=accounts, signer=signer, settings=settings)
    return app


def run(host: str | None = None, port: int | None = None, **kwargs) -> None:
    """Run the server using uvicorn. Extra keyword arguments go to create_app."""
    import uvicorn

    settings = kwargs.get("settings") or get_config()
    host = host or settings.host
    port = port or settings.port

    logger.info(f"Starting trustbridge backchannel server on {host}:{port}")
    uvicorn.run(create_app(**kwargs), host=host, port=port, log_level=settings.log_level.lower())
