"""
Puzzle Flows Package - fund-flow event reconstruction for puzzle addresses.

Reduces an address's on-chain history to a short, ordered sequence of
canonical events: funding, increase, decrease, pubkey_reveal, claim, sweep.

Features:
- Explorer adapters for Esplora, dcrdata and Etherscan
- Shared per-host rate limiting with bounded retries
- File cache of normalized transactions
- Pure classification and idempotent merging

Quick Start:
    from puzzle_flows import (
        CacheStore,
        FlowsConfig,
        Orchestrator,
        RunMode,
        setup_default_adapters,
    )

    async def refresh():
        config = FlowsConfig.from_env()
        async with setup_default_adapters(config) as registry:
            orchestrator = Orchestrator(config, registry, CacheStore(config.cache_path))
            reports = await orchestrator.run(["zden"], RunMode.BOTH)

Offline use:
    events = classify(address, transactions, authors, "solved")
    merged = merge_events(existing, events)
"""

from puzzle_flows.adapters import (
    BaseChainAdapter,
    DcrdataAdapter,
    EsploraAdapter,
    EtherscanAdapter,
)
from puzzle_flows.cache import CacheStore
from puzzle_flows.classifier import classify, classify_account, classify_utxo
from puzzle_flows.config import ChainConfig, FlowsConfig, get_config, set_config
from puzzle_flows.documents import CollectionDocument, strip_jsonc_comments
from puzzle_flows.exceptions import (
    ApiError,
    CacheError,
    ConfigurationError,
    DocumentError,
    FetchError,
    PuzzleFlowsError,
    RateLimitedError,
    TransportError,
)
from puzzle_flows.merge import merge_events
from puzzle_flows.models import (
    DUST_THRESHOLD,
    Chain,
    ChainFamily,
    ClassifiedEvent,
    CollectionReport,
    EventType,
    PuzzleStatus,
    RawTransaction,
    RunMode,
    TxInput,
    TxOutput,
)
from puzzle_flows.orchestrator import Orchestrator
from puzzle_flows.rate_limit import RateLimiter
from puzzle_flows.registry import AdapterRegistry, setup_default_adapters
from puzzle_flows.timestamps import derive_timestamps


__version__ = "0.1.0"

__all__ = [
    # Models
    "Chain",
    "ChainFamily",
    "EventType",
    "PuzzleStatus",
    "RunMode",
    "TxInput",
    "TxOutput",
    "RawTransaction",
    "ClassifiedEvent",
    "CollectionReport",
    "DUST_THRESHOLD",

    # Exceptions
    "PuzzleFlowsError",
    "FetchError",
    "TransportError",
    "RateLimitedError",
    "ApiError",
    "CacheError",
    "DocumentError",
    "ConfigurationError",

    # Config
    "ChainConfig",
    "FlowsConfig",
    "get_config",
    "set_config",

    # Adapters
    "BaseChainAdapter",
    "EsploraAdapter",
    "DcrdataAdapter",
    "EtherscanAdapter",
    "AdapterRegistry",
    "setup_default_adapters",
    "RateLimiter",

    # Pipeline
    "CacheStore",
    "classify",
    "classify_utxo",
    "classify_account",
    "merge_events",
    "CollectionDocument",
    "strip_jsonc_comments",
    "derive_timestamps",
    "Orchestrator",
]
