"""Provider metadata discovery.

Providers may declare a ``discovery`` URL (an OpenID Connect discovery
document) instead of listing every endpoint in the trust-network document.
These helpers fetch such documents and produce a new network snapshot with
the missing endpoints filled in.
"""

from __future__ import annotations

import asyncio
import logging

import aiohttp

from .models import ProviderMetadata, ProviderNode, TrustNetwork

logger = logging.getLogger(__name__)

DEFAULT_DISCOVERY_TIMEOUT = 10


async def fetch_provider_metadata(
    url: str,
    timeout: float = DEFAULT_DISCOVERY_TIMEOUT,
) -> ProviderMetadata | None:
    """Fetch an OpenID Connect discovery document.

    Args:
        url: Discovery document URL (usually ``.../.well-known/openid-configuration``)
        timeout: Total request timeout in seconds

    Returns:
        ProviderMetadata if fetched, None otherwise
    """
    try:
        async with aiohttp.ClientSession() as session:
            async with session.get(url, timeout=aiohttp.ClientTimeout(total=timeout)) as response:
                if response.status != 200:
                    logger.warning(f"Failed to fetch provider metadata from {url}: {response.status}")
                    return None
                data = await response.json(content_type=None)
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        logger.warning(f"Error fetching provider metadata from {url}: {e}")
        return None
    except ValueError as e:
        logger.warning(f"Invalid discovery document at {url}: {e}")
        return None

    if not isinstance(data, dict):
        logger.warning(f"Discovery document at {url} is not a JSON object")
        return None
    return ProviderMetadata.from_dict(data)


async def with_discovered_metadata(
    network: TrustNetwork,
    timeout: float = DEFAULT_DISCOVERY_TIMEOUT,
) -> TrustNetwork:
    """Return a snapshot whose providers carry their discovered endpoints.

    Only providers that declare a discovery URL are fetched. Endpoints
    already configured in the document take precedence. A provider whose
    document can't be fetched is left unchanged.
    """
    targets = [node for node in network.providers.values() if node.discovery_url]
    if not targets:
        return network

    fetched = await asyncio.gather(
        *(fetch_provider_metadata(node.discovery_url, timeout=timeout) for node in targets)
    )

    updated: list[ProviderNode] = []
    for node, metadata in zip(targets, fetched):
        if metadata is None:
            continue
        merged = node.metadata.merged_with(metadata)
        if merged != node.metadata:
            updated.append(
                ProviderNode(
                    provider_id=node.provider_id,
                    issuer=node.issuer,
                    role=node.role,
                    metadata=merged,
                    attributes=node.attributes,
                    discovery_url=node.discovery_url,
                )
            )

    if not updated:
        return network
    logger.info(f"Discovered metadata for {len(updated)} provider(s) in network '{network.network_id}'")
    return network.replace_providers(updated)


def with_discovered_metadata_sync(network: TrustNetwork) -> TrustNetwork:
    """Synchronous wrapper for with_discovered_metadata."""
    return asyncio.run(with_discovered_metadata(network))
