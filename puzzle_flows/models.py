"""
Puzzle Flows Data Models - Chain-normalized transactions and canonical events.

RawTransaction values are ALWAYS in the chain's smallest unit
(satoshi, atom, wei). Conversion to display units happens only when
a ClassifiedEvent is produced.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional


# Spends at or below this many smallest units are treated as key reveals
DUST_THRESHOLD = 10_000

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class Chain(Enum):
    """Supported blockchain networks."""
    BITCOIN = "bitcoin"
    LITECOIN = "litecoin"
    DECRED = "decred"
    ETHEREUM = "ethereum"


class ChainFamily(Enum):
    """Transaction model of a chain."""
    UTXO = "utxo"
    ACCOUNT = "account"


CHAIN_FAMILIES: dict[Chain, ChainFamily] = {
    Chain.BITCOIN: ChainFamily.UTXO,
    Chain.LITECOIN: ChainFamily.UTXO,
    Chain.DECRED: ChainFamily.UTXO,
    Chain.ETHEREUM: ChainFamily.ACCOUNT,
}

NATIVE_DECIMALS: dict[Chain, int] = {
    Chain.BITCOIN: 8,
    Chain.LITECOIN: 8,
    Chain.DECRED: 8,
    Chain.ETHEREUM: 18,
}


class EventType(str, Enum):
    """Canonical fund-flow event types."""
    FUNDING = "funding"
    INCREASE = "increase"
    DECREASE = "decrease"
    PUBKEY_REVEAL = "pubkey_reveal"
    CLAIM = "claim"
    SWEEP = "sweep"


TERMINAL_EVENT_TYPES = frozenset({EventType.CLAIM.value, EventType.SWEEP.value})

EVENT_TYPE_PRIORITY: dict[str, int] = {
    EventType.FUNDING.value: 0,
    EventType.INCREASE.value: 1,
    EventType.DECREASE.value: 2,
    EventType.PUBKEY_REVEAL.value: 3,
    EventType.CLAIM.value: 4,
    EventType.SWEEP.value: 4,
}

UNKNOWN_EVENT_PRIORITY = 5


class PuzzleStatus(str, Enum):
    """Known terminal status of a puzzle."""
    SOLVED = "solved"
    CLAIMED = "claimed"
    SWEPT = "swept"
    UNSOLVED = "unsolved"

    @classmethod
    def from_value(cls, value: Any) -> "PuzzleStatus":
        """Parse a document status, treating anything unknown as unsolved."""
        if not isinstance(value, str) or not value:
            return cls.UNSOLVED
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.UNSOLVED


class RunMode(Enum):
    """Which pipeline phases to run."""
    FETCH = "fetch"
    PROCESS = "process"
    BOTH = "both"

    @property
    def fetches(self) -> bool:
        return self in (RunMode.FETCH, RunMode.BOTH)

    @property
    def processes(self) -> bool:
        return self in (RunMode.PROCESS, RunMode.BOTH)


def get_chain_family(chain: Chain) -> ChainFamily:
    """Get the transaction model for a chain."""
    return CHAIN_FAMILIES[chain]


def timestamp_to_date(timestamp: Optional[int]) -> Optional[str]:
    """Format a unix timestamp as a UTC date string."""
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime(DATE_FORMAT)


def to_display_units(value: int, decimals: int) -> float:
    """Convert smallest-unit integer value to display units."""
    return float(Decimal(value) / (Decimal(10) ** decimals))


# ─────────────────────────────────────────────────────────────
# Raw transactions
# ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TxInput:
    """One spent input, attributed to its source address when known."""
    source_address: Optional[str]
    value: int

    def to_dict(self) -> dict[str, Any]:
        return {"source_address": self.source_address, "value": self.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TxInput":
        return cls(
            source_address=data.get("source_address"),
            value=int(data.get("value", 0)),
        )


@dataclass(frozen=True)
class TxOutput:
    """One created output."""
    address: Optional[str]
    value: int

    def to_dict(self) -> dict[str, Any]:
        return {"address": self.address, "value": self.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TxOutput":
        return cls(
            address=data.get("address"),
            value=int(data.get("value", 0)),
        )


@dataclass(frozen=True)
class RawTransaction:
    """
    Chain-agnostic view of one transaction.

    timestamp is None for unconfirmed transactions.
    """
    txid: str
    timestamp: Optional[int]
    inputs: tuple[TxInput, ...] = field(default_factory=tuple)
    outputs: tuple[TxOutput, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        # Accept lists from callers while keeping the instance hashable
        object.__setattr__(self, "inputs", tuple(self.inputs))
        object.__setattr__(self, "outputs", tuple(self.outputs))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "txid": self.txid,
            "timestamp": self.timestamp,
            "inputs": [i.to_dict() for i in self.inputs],
            "outputs": [o.to_dict() for o in self.outputs],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RawTransaction":
        """Create from dictionary."""
        timestamp = data.get("timestamp")
        return cls(
            txid=data["txid"],
            timestamp=int(timestamp) if timestamp is not None else None,
            inputs=tuple(TxInput.from_dict(i) for i in data.get("inputs", [])),
            outputs=tuple(TxOutput.from_dict(o) for o in data.get("outputs", [])),
        )


def transaction_sort_key(tx: RawTransaction) -> tuple[bool, int]:
    """Ascending by timestamp, unconfirmed last."""
    return (tx.timestamp is None, tx.timestamp or 0)


def sort_transactions(transactions: list[RawTransaction]) -> list[RawTransaction]:
    """Stable chronological sort."""
    return sorted(transactions, key=transaction_sort_key)


# ─────────────────────────────────────────────────────────────
# Classified events
# ─────────────────────────────────────────────────────────────


def normalize_txid(txid: str) -> str:
    """Lower-case and drop any leading 0x prefix."""
    normalized = txid.lower()
    while normalized.startswith("0x"):
        normalized = normalized[2:]
    return normalized


@dataclass(frozen=True)
class ClassifiedEvent:
    """
    One canonical fund-flow event.

    event_type holds the plain string so that types written by
    other tools survive a read/merge/write cycle.
    """
    event_type: str
    txid: str
    date: Optional[str] = None
    amount: Optional[float] = None

    def __post_init__(self) -> None:
        if isinstance(self.event_type, EventType):
            object.__setattr__(self, "event_type", self.event_type.value)

    @property
    def normalized_txid(self) -> str:
        return normalize_txid(self.txid)

    @property
    def is_terminal(self) -> bool:
        return self.event_type in TERMINAL_EVENT_TYPES

    @property
    def sort_priority(self) -> int:
        return EVENT_TYPE_PRIORITY.get(self.event_type, UNKNOWN_EVENT_PRIORITY)

    def to_dict(self) -> dict[str, Any]:
        """Inline record for the collection document; absent fields omitted."""
        data: dict[str, Any] = {"type": self.event_type, "txid": self.txid}
        if self.date is not None:
            data["date"] = self.date
        if self.amount is not None:
            data["amount"] = self.amount
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ClassifiedEvent":
        amount = data.get("amount")
        return cls(
            event_type=str(data.get("type", "")),
            txid=str(data.get("txid", "")),
            date=data.get("date"),
            amount=float(amount) if isinstance(amount, (int, float)) else None,
        )


# ─────────────────────────────────────────────────────────────
# Run reporting
# ─────────────────────────────────────────────────────────────


@dataclass
class CollectionReport:
    """
    Aggregate outcome for one collection run.

    fetch_skipped counts fetch-phase skips (cached, unsupported, no adapter).
    skipped counts process-phase skips, so a puzzle never lands in both.
    """
    collection: str
    fetched: int = 0
    fetch_skipped: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    document_written: bool = False
    errors: list[str] = field(default_factory=list)

    def record_failure(self, message: str) -> None:
        self.failed += 1
        self.errors.append(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "collection": self.collection,
            "fetched": self.fetched,
            "fetch_skipped": self.fetch_skipped,
            "updated": self.updated,
            "skipped": self.skipped,
            "failed": self.failed,
            "document_written": self.document_written,
            "errors": list(self.errors),
        }
