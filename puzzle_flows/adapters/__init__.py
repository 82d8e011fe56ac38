"""
Chain Adapters - explorer-specific transaction history fetchers.

Every adapter returns RawTransaction values in the chain's smallest unit,
sorted oldest first, and raises FetchError subclasses on failure.
"""

from puzzle_flows.adapters.base import BaseChainAdapter, parse_retry_after
from puzzle_flows.adapters.dcrdata import DcrdataAdapter, dcr_to_atoms
from puzzle_flows.adapters.esplora import EsploraAdapter
from puzzle_flows.adapters.etherscan import EtherscanAdapter


__all__ = [
    "BaseChainAdapter",
    "EsploraAdapter",
    "DcrdataAdapter",
    "EtherscanAdapter",
    "dcr_to_atoms",
    "parse_retry_after",
]
