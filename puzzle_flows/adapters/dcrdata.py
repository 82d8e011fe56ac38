"""
dcrdata Chain Adapter - Decred block explorer.

Pages through /address/{addr}/count/{n}/skip/{k}/raw. The raw format
carries no address on inputs, so inputs are attributed by looking up the
spent output among the transactions of the same history. Inputs whose
previous output is outside that history stay unattributed.
"""

import logging
from decimal import Decimal
from typing import Any, Optional

from puzzle_flows.exceptions import FetchError
from puzzle_flows.models import RawTransaction, TxInput, TxOutput
from puzzle_flows.adapters.base import BaseChainAdapter


logger = logging.getLogger(__name__)


ATOMS_PER_DCR = Decimal(100_000_000)


def dcr_to_atoms(value: Any) -> int:
    """Convert a DCR float amount to integer atoms."""
    if value is None:
        return 0
    return int((Decimal(str(value)) * ATOMS_PER_DCR).to_integral_value())


class DcrdataAdapter(BaseChainAdapter):
    """UTXO adapter for dcrdata."""

    PAGE_SIZE = 50

    @property
    def name(self) -> str:
        return "dcrdata"

    async def fetch_transactions(self, address: str) -> list[RawTransaction]:
        """Walk skip/count pages, then resolve inputs."""
        raw_txs: list[dict[str, Any]] = []
        skip = 0

        while True:
            url = f"{self.base_url}/address/{address}/count/{self.PAGE_SIZE}/skip/{skip}/raw"
            page = await self._get_json(url, address=address)

            if page is None:
                break
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

            raw_txs.extend(page)
            if len(page) < self.PAGE_SIZE:
                break
            skip += len(page)

        transactions = self.normalize_history(address, raw_txs)
        logger.info(f"[{self.name}] {address}: {len(transactions)} transactions")
        return self._sorted(transactions)

    @staticmethod
    def _pick_address(addresses: Optional[list[str]], preferred: str) -> Optional[str]:
        if not addresses:
            return None
        if preferred in addresses:
            return preferred
        return addresses[0]

    def normalize_history(
        self,
        address: str,
        raw_txs: list[dict[str, Any]],
    ) -> list[RawTransaction]:
        """Normalize a full history, resolving inputs against its own outputs."""
        # (txid, n) -> address of that output
        output_owner: dict[tuple[str, int], Optional[str]] = {}
        for raw in raw_txs:
            for position, vout in enumerate(raw.get("vout") or []):
                script = vout.get("scriptPubKey") or {}
                index = vout.get("n", position)
                output_owner[(raw.get("txid"), index)] = self._pick_address(
                    script.get("addresses"), address
                )

        transactions: list[RawTransaction] = []
        seen: set[str] = set()
        for raw in raw_txs:
            txid = raw.get("txid")
            if not txid or txid in seen:
                continue
            seen.add(txid)

            inputs = [
                TxInput(
                    source_address=output_owner.get((vin.get("txid"), vin.get("vout"))),
                    value=dcr_to_atoms(vin.get("amountin")),
                )
                for vin in raw.get("vin") or []
            ]
            outputs = [
                TxOutput(
                    address=self._pick_address(
                        (vout.get("scriptPubKey") or {}).get("addresses"), address
                    ),
                    value=dcr_to_atoms(vout.get("value")),
                )
                for vout in raw.get("vout") or []
            ]

            transactions.append(RawTransaction(
                txid=txid,
                timestamp=raw.get("time"),
                inputs=tuple(inputs),
                outputs=tuple(outputs),
            ))

        return transactions
