"""
Cache Store - one JSON file of raw transactions per (collection, address).

Layout: {root}/{collection}/{address}.json

Reads never raise: a missing or unreadable entry is simply absent.
Writes are atomic (temp file in the same directory, then os.replace).
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Union

from puzzle_flows.exceptions import CacheError
from puzzle_flows.models import RawTransaction


logger = logging.getLogger(__name__)


class CacheStore:
    """File-backed transaction cache."""

    def __init__(self, root: Union[str, Path]) -> None:
        self.root = Path(root)

    def path(self, collection: str, address: str) -> Path:
        return self.root / collection / f"{address}.json"

    def exists(self, collection: str, address: str) -> bool:
        return self.path(collection, address).is_file()

    def load(self, collection: str, address: str) -> Optional[list[RawTransaction]]:
        """
        Load cached transactions.

        Returns:
            Transactions, or None if the entry is missing or unreadable
        """
        path = self.path(collection, address)
        if not path.is_file():
            return None

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, list):
                raise ValueError(f"expected a list, got {type(data).__name__}")
            return [RawTransaction.from_dict(item) for item in data]
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Ignoring unreadable cache entry {path}: {e}")
            return None

    def save(
        self,
        collection: str,
        address: str,
        transactions: list[RawTransaction],
    ) -> Path:
        """Atomically replace the cache entry for an address."""
        path = self.path(collection, address)
        tmp_name: Optional[str] = None

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=path.parent, prefix=f".{address}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump([tx.to_dict() for tx in transactions], f, indent=2)
                f.write("\n")
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.remove(tmp_name)
            raise CacheError(
                f"Failed to write cache entry for {address}",
                cache_path=str(path),
                operation="write",
                original_error=e,
            )

        logger.debug(f"Cached {len(transactions)} transactions at {path}")
        return path
