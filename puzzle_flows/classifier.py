"""
Fund-Flow Classifier - reduce a transaction history to canonical events.

Pure functions, no I/O. The strategy is picked by chain family:

UTXO (Bitcoin, Litecoin, Decred), one forward pass over ordered transactions:
- Inflow: value paid to the puzzle by an author, or by anyone when the
  puzzle is not itself spending. First one is funding, later ones increase.
- Puzzle spends and pays an author: decrease (to-author amount)
- Puzzle spends a dust amount: pubkey_reveal
- Puzzle spends anything else: claim, or sweep for swept puzzles. Stop.

Account (Ethereum):
- Value to the puzzle: funding / increase
- Value from the puzzle to an author: decrease
- Any other value from the puzzle: claim / sweep. Stop.
"""

import logging
from typing import Callable, Iterable, Optional, Union

from puzzle_flows.models import (
    DUST_THRESHOLD,
    NATIVE_DECIMALS,
    Chain,
    ChainFamily,
    ClassifiedEvent,
    EventType,
    PuzzleStatus,
    RawTransaction,
    get_chain_family,
    timestamp_to_date,
    to_display_units,
)


logger = logging.getLogger(__name__)


def _terminal_type(known_status: PuzzleStatus) -> EventType:
    if known_status == PuzzleStatus.SWEPT:
        return EventType.SWEEP
    return EventType.CLAIM


def _event(
    event_type: EventType,
    tx: RawTransaction,
    value: int,
    decimals: int,
) -> ClassifiedEvent:
    return ClassifiedEvent(
        event_type=event_type,
        txid=tx.txid,
        date=timestamp_to_date(tx.timestamp),
        amount=to_display_units(value, decimals),
    )


def classify_utxo(
    puzzle_address: str,
    transactions: list[RawTransaction],
    author_addresses: set[str],
    known_status: PuzzleStatus,
    decimals: int = 8,
    dust_threshold: Optional[int] = DUST_THRESHOLD,
) -> list[ClassifiedEvent]:
    """Classify a UTXO history. Transactions must be in time order."""
    events: list[ClassifiedEvent] = []
    funded = False

    for tx in transactions:
        amount_in = sum(o.value for o in tx.outputs if o.address == puzzle_address)
        amount_out = sum(i.value for i in tx.inputs if i.source_address == puzzle_address)
        amount_to_author = sum(
            o.value for o in tx.outputs
            if o.address is not None and o.address in author_addresses
        )
        is_author_sender = any(
            i.source_address is not None and i.source_address in author_addresses
            for i in tx.inputs
        )
        puzzle_is_sender = any(i.source_address == puzzle_address for i in tx.inputs)

        # Change back to a spending puzzle is not an inflow
        if amount_in > 0 and (is_author_sender or not puzzle_is_sender):
            event_type = EventType.INCREASE if funded else EventType.FUNDING
            events.append(_event(event_type, tx, amount_in, decimals))
            funded = True

        if not puzzle_is_sender or amount_out <= 0:
            continue

        if amount_to_author > 0:
            events.append(_event(EventType.DECREASE, tx, amount_to_author, decimals))
        elif dust_threshold is not None and amount_out <= dust_threshold:
            events.append(_event(EventType.PUBKEY_REVEAL, tx, amount_out, decimals))
        else:
            events.append(_event(_terminal_type(known_status), tx, amount_out, decimals))
            break

    return events


def classify_account(
    puzzle_address: str,
    transactions: list[RawTransaction],
    author_addresses: set[str],
    known_status: PuzzleStatus,
    decimals: int = 18,
    dust_threshold: Optional[int] = None,
) -> list[ClassifiedEvent]:
    """
    Classify an account-model history.

    Addresses compare case-insensitively. Zero-value transactions and
    transactions without a recipient (contract creation) are skipped.
    dust_threshold is accepted for a uniform signature and unused.
    """
    puzzle = puzzle_address.lower()
    authors = {a.lower() for a in author_addresses}
    events: list[ClassifiedEvent] = []
    funded = False

    for tx in transactions:
        recipients = [o for o in tx.outputs if o.address]
        if not recipients:
            continue

        amount_in = sum(o.value for o in recipients if o.address.lower() == puzzle)
        amount_out = sum(
            i.value for i in tx.inputs
            if i.source_address and i.source_address.lower() == puzzle
        )
        amount_to_author = sum(o.value for o in recipients if o.address.lower() in authors)

        if amount_in > 0:
            event_type = EventType.INCREASE if funded else EventType.FUNDING
            events.append(_event(event_type, tx, amount_in, decimals))
            funded = True
        elif amount_out > 0:
            if amount_to_author > 0:
                events.append(_event(EventType.DECREASE, tx, amount_to_author, decimals))
            else:
                events.append(_event(_terminal_type(known_status), tx, amount_out, decimals))
                break

    return events


Classifier = Callable[..., list[ClassifiedEvent]]

CLASSIFIERS: dict[ChainFamily, Classifier] = {
    ChainFamily.UTXO: classify_utxo,
    ChainFamily.ACCOUNT: classify_account,
}


def classify(
    puzzle_address: str,
    transactions: list[RawTransaction],
    author_addresses: Iterable[str],
    known_status: Union[PuzzleStatus, str, None],
    chain: Chain = Chain.BITCOIN,
    dust_threshold: Optional[int] = DUST_THRESHOLD,
) -> list[ClassifiedEvent]:
    """
    Classify one address's history into fund-flow events.

    Args:
        puzzle_address: Address whose flows are reconstructed
        transactions: History, ascending by timestamp
        author_addresses: Addresses belonging to the puzzle author
        known_status: Puzzle status, picks claim vs sweep for the terminal event
        chain: Chain of the address, selects the strategy
        dust_threshold: Max spend treated as a key reveal, None to disable

    Returns:
        Events in the order they were observed
    """
    if not isinstance(known_status, PuzzleStatus):
        known_status = PuzzleStatus.from_value(known_status)

    classifier = CLASSIFIERS[get_chain_family(chain)]
    events = classifier(
        puzzle_address,
        transactions,
        set(author_addresses),
        known_status,
        decimals=NATIVE_DECIMALS[chain],
        dust_threshold=dust_threshold,
    )
    logger.debug(
        f"Classified {len(transactions)} transactions of {puzzle_address} "
        f"into {len(events)} events"
    )
    return events
