"""
Chain Adapter Registry - one adapter per chain, built from configuration.

Adapters that talk to the same explorer host share one RateLimiter, so the
minimum request interval holds across every worker using that host.
"""

import logging
from typing import Optional
from urllib.parse import urlparse

import aiohttp

from puzzle_flows.adapters import (
    BaseChainAdapter,
    DcrdataAdapter,
    EsploraAdapter,
    EtherscanAdapter,
)
from puzzle_flows.config import ChainConfig, FlowsConfig
from puzzle_flows.models import Chain
from puzzle_flows.rate_limit import RateLimiter


logger = logging.getLogger(__name__)


ADAPTER_TYPES: dict[str, type[BaseChainAdapter]] = {
    "esplora": EsploraAdapter,
    "dcrdata": DcrdataAdapter,
    "etherscan": EtherscanAdapter,
}


class AdapterRegistry:
    """
    Registry of chain adapters, keyed by chain.

    Usage:
        async with setup_default_adapters(config) as registry:
            adapter = registry.get(Chain.BITCOIN)
            txs = await adapter.fetch_transactions(address)
    """

    def __init__(self) -> None:
        self._adapters: dict[Chain, BaseChainAdapter] = {}

    def register(self, adapter: BaseChainAdapter) -> None:
        """Register an adapter for its chain, replacing any previous one."""
        chain = adapter.chain
        if chain in self._adapters:
            logger.warning(f"Adapter for {chain.value} already registered, replacing")
        self._adapters[chain] = adapter
        logger.info(f"Registered adapter '{adapter.name}' for {chain.value}")

    def unregister(self, chain: Chain) -> Optional[BaseChainAdapter]:
        return self._adapters.pop(chain, None)

    def get(self, chain: Chain) -> Optional[BaseChainAdapter]:
        """Get the adapter for a chain, or None if the chain is unsupported."""
        return self._adapters.get(chain)

    def supports(self, chain: Chain) -> bool:
        return chain in self._adapters

    def list_chains(self) -> list[Chain]:
        return list(self._adapters)

    def get_stats(self) -> dict[str, dict]:
        return {
            chain.value: adapter.get_stats()
            for chain, adapter in self._adapters.items()
        }

    async def close(self) -> None:
        """Close all adapters."""
        for adapter in self._adapters.values():
            await adapter.close()
        self._adapters.clear()

    async def __aenter__(self) -> "AdapterRegistry":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __len__(self) -> int:
        return len(self._adapters)


def _host_key(chain_config: ChainConfig) -> str:
    return urlparse(chain_config.explorer_api_url).netloc or chain_config.chain.value


def setup_default_adapters(
    config: FlowsConfig,
    session: Optional[aiohttp.ClientSession] = None,
) -> AdapterRegistry:
    """
    Build a registry with one adapter per enabled, usable chain.

    Etherscan is skipped when no API key is configured.
    """
    registry = AdapterRegistry()
    limiters: dict[str, RateLimiter] = {}

    for chain in config.get_enabled_chains():
        chain_config = config.chains[chain]

        if chain_config.explorer == "etherscan" and not chain_config.explorer_api_key:
            logger.warning(
                f"No API key for {chain.value} explorer, {chain.value} puzzles will be skipped"
            )
            continue

        host = _host_key(chain_config)
        limiter = limiters.get(host)
        if limiter is None:
            limiter = RateLimiter(chain_config.request_interval_seconds, name=host)
            limiters[host] = limiter
        elif limiter.min_interval < chain_config.request_interval_seconds:
            # Shared host: the strictest interval wins
            limiter.min_interval = chain_config.request_interval_seconds

        adapter_cls = ADAPTER_TYPES[chain_config.explorer]
        registry.register(adapter_cls(
            chain_config,
            rate_limiter=limiter,
            session=session,
            timeout=config.request_timeout_seconds,
            retry_delay=config.retry_delay_seconds,
            max_attempts=config.max_attempts,
            user_agent=config.user_agent,
        ))

    return registry
