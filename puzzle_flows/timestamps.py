"""
Timestamp derivation for puzzle start/solve dates.

Documents often carry date-only values ("2019-05-31"). Once events are
known, these are upgraded to full UTC timestamps and solve_time (seconds
between start and solve) is filled in.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from puzzle_flows.documents import existing_events, puzzle_address, puzzle_name
from puzzle_flows.models import DATE_FORMAT, EventType, RawTransaction, timestamp_to_date


logger = logging.getLogger(__name__)


def has_time(value: str) -> bool:
    """True for "YYYY-MM-DD HH:MM:SS" style values, False for bare dates."""
    return len(value) > 10 and " " in value


def parse_date(value: str) -> Optional[datetime]:
    try:
        return datetime.strptime(value, DATE_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def _event_date(puzzle: dict[str, Any], event_type: EventType) -> Optional[str]:
    for event in existing_events(puzzle):
        if event.event_type == event_type.value and event.date and has_time(event.date):
            return event.date
    return None


def _first_funding(address: str, transactions: list[RawTransaction]) -> Optional[str]:
    for tx in transactions:
        if tx.timestamp is not None and any(o.address == address for o in tx.outputs):
            return timestamp_to_date(tx.timestamp)
    return None


def _first_spend(address: str, transactions: list[RawTransaction]) -> Optional[str]:
    for tx in transactions:
        if tx.timestamp is not None and any(i.source_address == address for i in tx.inputs):
            return timestamp_to_date(tx.timestamp)
    return None


def derive_timestamps(
    puzzle: dict[str, Any],
    transactions: Optional[list[RawTransaction]] = None,
) -> int:
    """
    Upgrade date-only start_date / solve_date and compute solve_time.

    Args:
        puzzle: Puzzle object, updated in place
        transactions: Cached history used when events carry no usable date

    Returns:
        Number of fields changed
    """
    changed = 0
    name = puzzle_name(puzzle)
    address = puzzle_address(puzzle)
    transactions = transactions or []

    start_date = puzzle.get("start_date")
    if isinstance(start_date, str) and not has_time(start_date):
        derived = _event_date(puzzle, EventType.FUNDING)
        if derived is None and address:
            derived = _first_funding(address, transactions)
        if derived:
            logger.info(f"{name} start_date: {start_date} -> {derived}")
            puzzle["start_date"] = derived
            changed += 1
        else:
            logger.warning(f"{name} start_date: {start_date} - no timestamp found")

    solve_date = puzzle.get("solve_date")
    if isinstance(solve_date, str) and not has_time(solve_date):
        derived = _event_date(puzzle, EventType.CLAIM) or _event_date(puzzle, EventType.SWEEP)
        if derived is None and address:
            derived = _first_spend(address, transactions)
        if derived:
            logger.info(f"{name} solve_date: {solve_date} -> {derived}")
            puzzle["solve_date"] = derived
            changed += 1
        else:
            logger.warning(f"{name} solve_date: {solve_date} - no timestamp found")

    start_date = puzzle.get("start_date")
    solve_date = puzzle.get("solve_date")
    if isinstance(start_date, str) and isinstance(solve_date, str):
        start = parse_date(start_date) if has_time(start_date) else None
        solve = parse_date(solve_date) if has_time(solve_date) else None
        if start and solve:
            solve_time = int((solve - start).total_seconds())
            if puzzle.get("solve_time") != solve_time:
                logger.info(f"{name} solve_time: {puzzle.get('solve_time')} -> {solve_time}")
                puzzle["solve_time"] = solve_time
                changed += 1

    return changed
