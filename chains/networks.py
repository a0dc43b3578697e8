"""
chains/networks.py - Endpoint URL resolution.

Turns an RPCProviderConfig into the ordered list of endpoint URLs for a
chain. Pure table lookup and string templating: no network I/O, so every
failure here is immediate and never retried.
"""

from typing import Optional

from httpx import AsyncBaseTransport

from chains.endpoints import Endpoint, EndpointPool
from config import CustomProvider, NamedProvider, RPCProviderConfig
from core.exceptions import ConfigurationError
from core.logging import mask_url


# (provider name) -> (chain id) -> network segment
PROVIDER_NETWORKS: dict[str, dict[int, str]] = {
    "alchemy": {
        1: "eth-mainnet",
        5: "eth-goerli",
        11155111: "eth-sepolia",
        137: "polygon-mainnet",
        80001: "polygon-mumbai",
        42161: "arb-mainnet",
        421613: "arb-goerli",
        10: "opt-mainnet",
        420: "opt-goerli",
    },
    "infura": {
        1: "mainnet",
        5: "goerli",
        11155111: "sepolia",
        137: "polygon-mainnet",
        80001: "polygon-mumbai",
        42161: "arbitrum-mainnet",
        421613: "arbitrum-goerli",
        10: "optimism-mainnet",
        420: "optimism-goerli",
    },
}

URL_TEMPLATES: dict[str, str] = {
    "alchemy": "https://{network}.g.alchemy.com/v2/{api_key}",
    "infura": "https://{network}.infura.io/v3/{api_key}",
}

PROVIDER_DISPLAY_NAMES: dict[str, str] = {
    "alchemy": "Alchemy",
    "infura": "Infura",
}


def supported_chains(provider_name: str) -> list[int]:
    """Chain IDs a named provider has a network segment for."""
    return sorted(PROVIDER_NETWORKS.get(provider_name.lower(), {}))


def validate_chain_id(chain_id: int) -> int:
    """Chain IDs are positive integers."""
    if isinstance(chain_id, bool) or not isinstance(chain_id, int) or chain_id <= 0:
        raise ConfigurationError(
            f"Chain ID must be a positive integer, got {chain_id!r}",
            details={"chain_id": chain_id},
        )
    return chain_id


def named_provider_url(provider: NamedProvider, chain_id: int) -> str:
    """
    Build a hosted provider URL.

    Raises:
        ConfigurationError: Unknown provider, missing API key, or a chain the
            provider has no network for
    """
    name = provider.name.lower()
    if name not in URL_TEMPLATES:
        raise ConfigurationError(
            f"Unknown provider: {provider.name}",
            details={"provider": provider.name, "known": sorted(URL_TEMPLATES)},
        )

    display = PROVIDER_DISPLAY_NAMES.get(name, name)
    if not provider.api_key:
        raise ConfigurationError(f"{display} API key is required")

    network = PROVIDER_NETWORKS[name].get(chain_id)
    if network is None:
        raise ConfigurationError(
            f"{display} does not support chain ID {chain_id}",
            details={"provider": name, "chain_id": chain_id},
        )

    return URL_TEMPLATES[name].format(network=network, api_key=provider.api_key)


def primary_url(config: RPCProviderConfig, chain_id: int) -> str:
    """Resolve the primary endpoint URL for a provider config."""
    source = config.source
    if isinstance(source, NamedProvider):
        return named_provider_url(source, chain_id)
    if isinstance(source, CustomProvider):
        if not source.url:
            raise ConfigurationError("Custom RPC URL is required")
        return source.url
    raise ConfigurationError(f"Unknown provider source: {type(source).__name__}")


def resolve_endpoint_urls(config: RPCProviderConfig, chain_id: int) -> list[str]:
    """
    Resolve all endpoint URLs, primary first then fallbacks in given order.

    Resolving the same config twice always yields the same list. Every URL
    appears once.
    """
    validate_chain_id(chain_id)
    urls = [primary_url(config, chain_id)]
    for url in config.fallback_urls:
        if not url:
            raise ConfigurationError("Fallback RPC URL must not be empty")
        if url in urls:
            raise ConfigurationError(
                f"Duplicate RPC URL: {mask_url(url)}",
                details={"position": len(urls)},
            )
        urls.append(url)
    return urls


def build_endpoint_pool(
    config: RPCProviderConfig,
    chain_id: int,
    transport: Optional[AsyncBaseTransport] = None,
) -> EndpointPool:
    """
    Build the endpoint pool for a provider config.

    Args:
        config: Provider configuration
        chain_id: Target chain
        transport: Optional httpx transport shared by all endpoints (tests)

    Returns:
        EndpointPool with the resolved primary first
    """
    urls = resolve_endpoint_urls(config, chain_id)
    timeout_seconds = config.timeout_ms / 1000
    return EndpointPool(
        tuple(
            Endpoint(
                url,
                chain_id,
                timeout_seconds=timeout_seconds,
                transport=transport,
            )
            for url in urls
        )
    )
