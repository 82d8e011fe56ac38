"""
Collection Documents - JSONC files describing a puzzle collection.

    {
      "author": {"addresses": ["1Author..."]},
      "puzzles": [
        {
          "name": "puzzle-66",
          "chain": "bitcoin",
          "address": {"value": "13zb1hQ..."},
          "status": "solved",
          "key": {"bits": 66},
          "transactions": [{"type": "funding", "txid": "...", "date": "..."}]
        }
      ]
    }

A document holds either a "puzzles" array or a single "puzzle" object.
Comments are stripped on load; saving writes plain indented JSON.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Iterator, Optional, Union

from puzzle_flows.exceptions import DocumentError
from puzzle_flows.models import Chain, ClassifiedEvent, PuzzleStatus


logger = logging.getLogger(__name__)


DOCUMENT_SUFFIX = ".jsonc"


def strip_jsonc_comments(content: str) -> str:
    """Remove // and /* */ comments, leaving string literals untouched."""
    result: list[str] = []
    i = 0
    length = len(content)
    in_string = False

    while i < length:
        c = content[i]

        if in_string:
            result.append(c)
            if c == "\\" and i + 1 < length:
                result.append(content[i + 1])
                i += 2
                continue
            if c == '"':
                in_string = False
            i += 1
            continue

        if c == '"':
            in_string = True
            result.append(c)
            i += 1
            continue

        if c == "/" and i + 1 < length and content[i + 1] == "/":
            end = content.find("\n", i)
            if end == -1:
                break
            i = end  # keep the newline
            continue

        if c == "/" and i + 1 < length and content[i + 1] == "*":
            end = content.find("*/", i + 2)
            i = length if end == -1 else end + 2
            continue

        result.append(c)
        i += 1

    return "".join(result)


# ─────────────────────────────────────────────────────────────
# Puzzle field accessors
# ─────────────────────────────────────────────────────────────


def puzzle_bits(puzzle: dict[str, Any]) -> Optional[int]:
    key = puzzle.get("key")
    bits = key.get("bits") if isinstance(key, dict) else None
    if bits is None:
        bits = puzzle.get("bits")
    return bits if isinstance(bits, int) else None


def puzzle_address(puzzle: dict[str, Any]) -> Optional[str]:
    """Address string, from address.value or a plain string."""
    address = puzzle.get("address")
    if isinstance(address, dict):
        address = address.get("value")
    if isinstance(address, str) and address:
        return address
    return None


def puzzle_name(puzzle: dict[str, Any]) -> str:
    """Human identifier: name, then bits, then an address prefix."""
    name = puzzle.get("name")
    if isinstance(name, str) and name:
        return name
    bits = puzzle_bits(puzzle)
    if bits is not None:
        return str(bits)
    address = puzzle_address(puzzle)
    return address[:8] if address else "unknown"


def puzzle_chain(puzzle: dict[str, Any]) -> Optional[Chain]:
    """Chain of a puzzle, bitcoin when absent, None when unsupported."""
    value = puzzle.get("chain") or Chain.BITCOIN.value
    try:
        return Chain(str(value).lower())
    except ValueError:
        return None


def puzzle_status(puzzle: dict[str, Any]) -> PuzzleStatus:
    return PuzzleStatus.from_value(puzzle.get("status"))


def matches_filter(puzzle: dict[str, Any], puzzle_filter: Optional[str]) -> bool:
    """True when the filter is empty or equals the puzzle's name or bits."""
    if not puzzle_filter:
        return True
    if puzzle.get("name") == puzzle_filter:
        return True
    bits = puzzle_bits(puzzle)
    return bits is not None and str(bits) == puzzle_filter


def existing_events(puzzle: dict[str, Any]) -> list[ClassifiedEvent]:
    """Parse the puzzle's persisted events, skipping entries without a txid."""
    events = []
    for item in puzzle.get("transactions") or []:
        if not isinstance(item, dict):
            continue
        event = ClassifiedEvent.from_dict(item)
        if event.txid:
            events.append(event)
    return events


def set_events(puzzle: dict[str, Any], events: list[ClassifiedEvent]) -> None:
    puzzle["transactions"] = [event.to_dict() for event in events]


# ─────────────────────────────────────────────────────────────
# Document
# ─────────────────────────────────────────────────────────────


class CollectionDocument:
    """A loaded collection document and its mutable JSON tree."""

    def __init__(self, name: str, path: Path, data: dict[str, Any]) -> None:
        self.name = name
        self.path = path
        self.data = data

    @classmethod
    def load(cls, path: Union[str, Path]) -> "CollectionDocument":
        """
        Load and parse a JSONC document.

        Raises:
            DocumentError: If the file cannot be read or is not a JSON object
        """
        path = Path(path)
        try:
            content = path.read_text(encoding="utf-8")
            data = json.loads(strip_jsonc_comments(content))
        except (OSError, ValueError) as e:
            raise DocumentError(
                "Failed to load collection document",
                path=str(path),
                original_error=e,
            )

        if not isinstance(data, dict):
            raise DocumentError("Collection document is not a JSON object", path=str(path))

        return cls(path.stem, path, data)

    def save(self) -> None:
        """Atomically rewrite the document as indented JSON."""
        tmp_name: Optional[str] = None
        try:
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self.data, f, indent=2, ensure_ascii=False)
                f.write("\n")
            os.replace(tmp_name, self.path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.remove(tmp_name)
            raise DocumentError(
                "Failed to write collection document",
                path=str(self.path),
                original_error=e,
            )
        logger.info(f"Wrote {self.path}")

    def author_addresses(self) -> set[str]:
        author = self.data.get("author")
        addresses = author.get("addresses") if isinstance(author, dict) else None
        return {a for a in addresses or [] if isinstance(a, str) and a}

    def iter_puzzles(self, puzzle_filter: Optional[str] = None) -> Iterator[dict[str, Any]]:
        """Yield puzzle objects, from "puzzles" or the single "puzzle"."""
        puzzles = self.data.get("puzzles")
        if isinstance(puzzles, list):
            candidates = [p for p in puzzles if isinstance(p, dict)]
        elif isinstance(self.data.get("puzzle"), dict):
            candidates = [self.data["puzzle"]]
        else:
            candidates = []

        for puzzle in candidates:
            if matches_filter(puzzle, puzzle_filter):
                yield puzzle

    def __repr__(self) -> str:
        return f"<CollectionDocument(name={self.name}, path={self.path})>"


def discover_collections(data_dir: Union[str, Path]) -> list[str]:
    """Names of every *.jsonc document in a directory, sorted."""
    return sorted(
        p.stem
        for p in Path(data_dir).glob(f"*{DOCUMENT_SUFFIX}")
        if p.is_file()
    )


def collection_path(data_dir: Union[str, Path], collection: str) -> Path:
    return Path(data_dir) / f"{collection}{DOCUMENT_SUFFIX}"
