"""
Puzzle Flows Configuration - Explorer endpoints, pacing and run settings.

Configuration can be loaded from:
- Default values
- Environment variables (PUZZLE_FLOWS_*, ETHERSCAN_API_KEY)
- YAML config file

API keys are loaded from environment variables, never from documents.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from puzzle_flows.exceptions import ConfigurationError
from puzzle_flows.models import DUST_THRESHOLD, Chain


logger = logging.getLogger(__name__)


EXPLORER_KINDS = ("esplora", "dcrdata", "etherscan")


@dataclass
class ChainConfig:
    """Configuration for a specific blockchain."""
    chain: Chain
    enabled: bool = True

    # Explorer endpoint
    explorer: str = "esplora"
    explorer_api_url: str = ""
    explorer_api_key: Optional[str] = None
    explorer_chain_id: Optional[int] = None

    # Minimum seconds between two requests to this explorer host
    request_interval_seconds: float = 3.0

    # None disables the key-reveal heuristic
    dust_threshold: Optional[int] = DUST_THRESHOLD

    def __post_init__(self) -> None:
        if self.explorer not in EXPLORER_KINDS:
            raise ConfigurationError(
                f"Unknown explorer '{self.explorer}'",
                config_key="explorer",
                chain=self.chain.value,
            )
        if self.request_interval_seconds < 0:
            raise ConfigurationError(
                "request_interval_seconds must be >= 0",
                config_key="request_interval_seconds",
                chain=self.chain.value,
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "chain": self.chain.value,
            "enabled": self.enabled,
            "explorer": self.explorer,
            "explorer_api_url": self.explorer_api_url,
            "explorer_chain_id": self.explorer_chain_id,
            "request_interval_seconds": self.request_interval_seconds,
            "dust_threshold": self.dust_threshold,
            "has_api_key": bool(self.explorer_api_key),
        }


def default_chain_configs() -> dict[Chain, ChainConfig]:
    """Default explorer configuration per chain."""
    return {
        Chain.BITCOIN: ChainConfig(
            chain=Chain.BITCOIN,
            explorer="esplora",
            explorer_api_url="https://mempool.space/api",
            request_interval_seconds=3.0,
        ),
        Chain.LITECOIN: ChainConfig(
            chain=Chain.LITECOIN,
            explorer="esplora",
            explorer_api_url="https://litecoinspace.org/api",
            request_interval_seconds=3.0,
        ),
        Chain.DECRED: ChainConfig(
            chain=Chain.DECRED,
            explorer="dcrdata",
            explorer_api_url="https://dcrdata.decred.org/api",
            request_interval_seconds=3.0,
            dust_threshold=None,
        ),
        Chain.ETHEREUM: ChainConfig(
            chain=Chain.ETHEREUM,
            explorer="etherscan",
            explorer_api_url="https://api.etherscan.io/v2/api",
            explorer_api_key=os.environ.get("ETHERSCAN_API_KEY") or None,
            explorer_chain_id=1,
            request_interval_seconds=0.25,
        ),
    }


def _env_number(key: str, parse: type) -> Optional[Any]:
    """Parse a numeric environment variable; unset or empty gives None."""
    raw = os.getenv(key)
    if not raw:
        return None
    try:
        return parse(raw)
    except ValueError as e:
        raise ConfigurationError(
            f"Invalid value for {key}: {raw!r}",
            config_key=key,
            original_error=e,
        )


@dataclass
class FlowsConfig:
    """Main configuration for a fetch/process run."""

    # Locations
    data_dir: str = "data"
    cache_dir: Optional[str] = None  # Defaults to <data_dir>/cache

    # Concurrency
    max_workers: int = 2

    # HTTP behaviour
    max_attempts: int = 5
    retry_delay_seconds: float = 60.0
    request_timeout_seconds: float = 30.0
    address_timeout_seconds: Optional[float] = None
    user_agent: str = "puzzle-flows/0.1"

    # Collections processed when none are named
    default_collections: list[str] = field(default_factory=list)

    # Chain configurations
    chains: dict[Chain, ChainConfig] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.chains:
            self.chains = default_chain_configs()
        if self.max_workers < 1:
            raise ConfigurationError("max_workers must be >= 1", config_key="max_workers")
        if self.max_attempts < 1:
            raise ConfigurationError("max_attempts must be >= 1", config_key="max_attempts")

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir)

    @property
    def cache_path(self) -> Path:
        if self.cache_dir:
            return Path(self.cache_dir)
        return self.data_path / "cache"

    def get_chain_config(self, chain: Chain) -> Optional[ChainConfig]:
        """Get configuration for a specific chain."""
        return self.chains.get(chain)

    def get_enabled_chains(self) -> list[Chain]:
        """Get list of enabled chains."""
        return [
            chain for chain, config in self.chains.items()
            if config.enabled
        ]

    @classmethod
    def from_env(cls) -> "FlowsConfig":
        """
        Load configuration from environment variables.

        Environment variables:
        - PUZZLE_FLOWS_DATA_DIR
        - PUZZLE_FLOWS_CACHE_DIR
        - PUZZLE_FLOWS_MAX_WORKERS
        - PUZZLE_FLOWS_MAX_ATTEMPTS
        - PUZZLE_FLOWS_RETRY_DELAY
        - PUZZLE_FLOWS_TIMEOUT
        - PUZZLE_FLOWS_ADDRESS_TIMEOUT
        - PUZZLE_FLOWS_<CHAIN>_API_URL
        - PUZZLE_FLOWS_<CHAIN>_INTERVAL
        - ETHERSCAN_API_KEY
        """
        config = cls()

        if os.getenv("PUZZLE_FLOWS_DATA_DIR"):
            config.data_dir = os.getenv("PUZZLE_FLOWS_DATA_DIR")
        if os.getenv("PUZZLE_FLOWS_CACHE_DIR"):
            config.cache_dir = os.getenv("PUZZLE_FLOWS_CACHE_DIR")
        max_workers = _env_number("PUZZLE_FLOWS_MAX_WORKERS", int)
        if max_workers is not None:
            config.max_workers = max(1, max_workers)
        max_attempts = _env_number("PUZZLE_FLOWS_MAX_ATTEMPTS", int)
        if max_attempts is not None:
            config.max_attempts = max(1, max_attempts)
        retry_delay = _env_number("PUZZLE_FLOWS_RETRY_DELAY", float)
        if retry_delay is not None:
            config.retry_delay_seconds = retry_delay
        timeout = _env_number("PUZZLE_FLOWS_TIMEOUT", float)
        if timeout is not None:
            config.request_timeout_seconds = timeout
        address_timeout = _env_number("PUZZLE_FLOWS_ADDRESS_TIMEOUT", float)
        if address_timeout is not None:
            config.address_timeout_seconds = address_timeout

        for chain, chain_config in config.chains.items():
            prefix = f"PUZZLE_FLOWS_{chain.name}"
            if os.getenv(f"{prefix}_API_URL"):
                chain_config.explorer_api_url = os.getenv(f"{prefix}_API_URL")
            interval = _env_number(f"{prefix}_INTERVAL", float)
            if interval is not None:
                chain_config.request_interval_seconds = interval

        etherscan_key = os.getenv("ETHERSCAN_API_KEY")
        if etherscan_key and Chain.ETHEREUM in config.chains:
            config.chains[Chain.ETHEREUM].explorer_api_key = etherscan_key

        return config

    @classmethod
    def from_yaml(cls, path: Path) -> "FlowsConfig":
        """
        Load configuration from a YAML file, on top of environment values.

        Layout:
            data_dir: data
            max_workers: 2
            chains:
              bitcoin:
                explorer_api_url: https://mempool.space/api
                request_interval_seconds: 3
        """
        import yaml

        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(
                f"Failed to load YAML config from {path}",
                config_key=str(path),
                original_error=e,
            )

        config = cls.from_env()

        for key in (
            "data_dir",
            "cache_dir",
            "max_workers",
            "max_attempts",
            "retry_delay_seconds",
            "request_timeout_seconds",
            "address_timeout_seconds",
            "user_agent",
            "default_collections",
        ):
            if key in data:
                setattr(config, key, data[key])

        for chain_name, overrides in (data.get("chains") or {}).items():
            try:
                chain = Chain(chain_name)
            except ValueError:
                logger.warning(f"Ignoring unknown chain '{chain_name}' in {path}")
                continue
            chain_config = config.chains.get(chain) or ChainConfig(chain=chain)
            for key, value in (overrides or {}).items():
                if key == "chain" or not hasattr(chain_config, key):
                    logger.warning(f"Ignoring unknown key '{key}' for {chain_name}")
                    continue
                setattr(chain_config, key, value)
            # Re-run validation after overrides
            chain_config.__post_init__()
            config.chains[chain] = chain_config

        config.__post_init__()
        return config

    def to_dict(self) -> dict[str, Any]:
        return {
            "data_dir": self.data_dir,
            "cache_dir": str(self.cache_path),
            "max_workers": self.max_workers,
            "max_attempts": self.max_attempts,
            "retry_delay_seconds": self.retry_delay_seconds,
            "request_timeout_seconds": self.request_timeout_seconds,
            "address_timeout_seconds": self.address_timeout_seconds,
            "user_agent": self.user_agent,
            "default_collections": list(self.default_collections),
            "chains": {k.value: v.to_dict() for k, v in self.chains.items()},
        }


# Default configuration instance
_default_config: Optional[FlowsConfig] = None


def get_config() -> FlowsConfig:
    """Get the default configuration."""
    global _default_config
    if _default_config is None:
        _default_config = FlowsConfig.from_env()
    return _default_config


def set_config(config: FlowsConfig) -> None:
    """Set the default configuration."""
    global _default_config
    _default_config = config
