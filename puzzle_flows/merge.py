"""
Merge Engine - reconcile freshly classified events with persisted ones.

Rules:
- One event per normalized txid (lower-case, no 0x prefix); fresh wins
- Stable sort by (date, type priority), undated events last
- Nothing survives after the first terminal event (claim / sweep)

merge_events(merge_events(a, b), b) == merge_events(a, b)
"""

from typing import Iterable

from puzzle_flows.models import ClassifiedEvent


def event_sort_key(event: ClassifiedEvent) -> tuple[bool, str, int]:
    return (event.date is None, event.date or "", event.sort_priority)


def dedupe_events(events: Iterable[ClassifiedEvent]) -> list[ClassifiedEvent]:
    """Keep the last event seen for each normalized txid, at its first position."""
    by_txid: dict[str, ClassifiedEvent] = {}
    for event in events:
        by_txid[event.normalized_txid] = event
    return list(by_txid.values())


def truncate_after_terminal(events: list[ClassifiedEvent]) -> list[ClassifiedEvent]:
    for index, event in enumerate(events):
        if event.is_terminal:
            return events[:index + 1]
    return events


def merge_events(
    existing: Iterable[ClassifiedEvent],
    fresh: Iterable[ClassifiedEvent],
) -> list[ClassifiedEvent]:
    """
    Merge fresh events into an existing sequence.

    Args:
        existing: Events already persisted for the puzzle
        fresh: Events just produced by the classifier

    Returns:
        Deduplicated, ordered, truncated event sequence
    """
    combined = dedupe_events([*existing, *fresh])
    combined.sort(key=event_sort_key)
    return truncate_after_terminal(combined)
