"""
Esplora Chain Adapter - mempool.space style explorers.

Serves Bitcoin (mempool.space) and Litecoin (litecoinspace.org).

Pagination:
- GET {base}/address/{addr}/txs                     first page
- GET {base}/address/{addr}/txs/chain/{last_txid}   following pages
- Stop on an empty page
"""

import logging
from typing import Any, Optional

from puzzle_flows.exceptions import FetchError
from puzzle_flows.models import RawTransaction, TxInput, TxOutput
from puzzle_flows.adapters.base import BaseChainAdapter


logger = logging.getLogger(__name__)


class EsploraAdapter(BaseChainAdapter):
    """UTXO adapter for Esplora-compatible REST APIs."""

    @property
    def name(self) -> str:
        return f"esplora-{self.chain.value}"

    def _page_url(self, address: str, last_txid: Optional[str]) -> str:
        if last_txid:
            return f"{self.base_url}/address/{address}/txs/chain/{last_txid}"
        return f"{self.base_url}/address/{address}/txs"

    async def fetch_transactions(self, address: str) -> list[RawTransaction]:
        """Walk every page of the address history."""
        transactions: list[RawTransaction] = []
        seen: set[str] = set()
        last_txid: Optional[str] = None

        while True:
            url = self._page_url(address, last_txid)
            page = await self._get_json(url, address=address)

            if not isinstance(page, list):
                raise FetchError(
                    message=f"Unexpected response type {type(page).__name__}",
                    adapter_name=self.name,
                    chain=self.chain.value,
                    address=address,
                    request_url=url,
                )

            if not page:
                break

            for raw in page:
                tx = self.normalize(raw)
                if tx.txid not in seen:
                    seen.add(tx.txid)
                    transactions.append(tx)

            cursor = page[-1].get("txid")
            if not cursor or cursor == last_txid:
                break
            last_txid = cursor

        logger.info(f"[{self.name}] {address}: {len(transactions)} transactions")
        return self._sorted(transactions)

    def normalize(self, raw: dict[str, Any]) -> RawTransaction:
        """Convert an Esplora transaction into a RawTransaction."""
        status = raw.get("status") or {}

        inputs = []
        for vin in raw.get("vin") or []:
            prevout = vin.get("prevout")
            if prevout is None:
                # Coinbase input: nothing to attribute
                inputs.append(TxInput(source_address=None, value=0))
                continue
            inputs.append(TxInput(
                source_address=prevout.get("scriptpubkey_address"),
                value=int(prevout.get("value") or 0),
            ))

        outputs = [
            TxOutput(
                address=vout.get("scriptpubkey_address"),
                value=int(vout.get("value") or 0),
            )
            for vout in raw.get("vout") or []
        ]

        return RawTransaction(
            txid=raw["txid"],
            timestamp=status.get("block_time"),
            inputs=tuple(inputs),
            outputs=tuple(outputs),
        )
