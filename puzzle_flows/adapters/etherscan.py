"""
Etherscan Chain Adapter - account-model history via Etherscan API V2.

Uses the unified V2 endpoint with a chainid parameter.
As of August 2025, V1 endpoints are deprecated.

Single bulk call: module=account&action=txlist&startblock=0.
Etherscan wraps responses in {"status": "1", "message": "OK", "result": [...]}.
"""

import logging
from typing import Any, Optional

from puzzle_flows.exceptions import ApiError, ConfigurationError, RateLimitedError
from puzzle_flows.models import RawTransaction, TxInput, TxOutput
from puzzle_flows.adapters.base import BaseChainAdapter


logger = logging.getLogger(__name__)


NO_TRANSACTIONS_MESSAGE = "no transactions found"


class EtherscanAdapter(BaseChainAdapter):
    """Account adapter for Etherscan-compatible explorers."""

    END_BLOCK = 99999999

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        if not self.chain_config.explorer_api_key:
            raise ConfigurationError(
                "Etherscan adapter requires an API key",
                config_key="ETHERSCAN_API_KEY",
                chain=self.chain.value,
            )

    @property
    def name(self) -> str:
        return "etherscan"

    def _params(self, address: str) -> dict[str, str]:
        return {
            "chainid": str(self.chain_config.explorer_chain_id or 1),
            "module": "account",
            "action": "txlist",
            "address": address,
            "startblock": "0",
            "endblock": str(self.END_BLOCK),
            "sort": "asc",
            "apikey": self.chain_config.explorer_api_key or "",
        }

    async def fetch_transactions(self, address: str) -> list[RawTransaction]:
        """Fetch the complete normal-transaction list in one call."""
        payload = await self._get_json(self.base_url, params=self._params(address), address=address)

        # Any status-0 payload reaching here is an empty history
        result = payload.get("result") if payload.get("status") == "1" else []

        if not isinstance(result, list):
            raise ApiError(
                message="Etherscan result is not a transaction list",
                adapter_name=self.name,
                chain=self.chain.value,
                address=address,
                request_url=self.base_url,
                response_body=str(payload),
            )

        transactions = [
            tx for tx in (self.normalize(raw) for raw in result)
            if tx is not None
        ]
        logger.info(f"[{self.name}] {address}: {len(transactions)} transactions")
        return self._sorted(transactions)

    def _check_payload(self, payload: Any, url: str) -> None:
        """Map in-band Etherscan failures onto the fetch error taxonomy."""
        if not isinstance(payload, dict):
            raise ApiError(
                message=f"Unexpected response type {type(payload).__name__}",
                adapter_name=self.name,
                chain=self.chain.value,
                request_url=url,
                response_body=str(payload),
            )

        if payload.get("status") == "1":
            return

        message = str(payload.get("message", ""))
        result = payload.get("result")
        detail = result if isinstance(result, str) else message

        if message.lower().startswith(NO_TRANSACTIONS_MESSAGE) or (
            isinstance(result, list) and not result and message.lower() in ("ok", "")
        ):
            return

        if "rate limit" in detail.lower() or "rate limit" in message.lower():
            raise RateLimitedError(
                message=f"Etherscan rate limit: {detail}",
                adapter_name=self.name,
                chain=self.chain.value,
                request_url=url,
            )

        raise ApiError(
            message=f"Etherscan API error: {detail}",
            adapter_name=self.name,
            chain=self.chain.value,
            request_url=url,
            response_body=str(payload),
        )

    def normalize(self, raw: dict[str, Any]) -> Optional[RawTransaction]:
        """Convert an Etherscan txlist entry; failed transactions are dropped."""
        if str(raw.get("isError", "0")) == "1":
            return None

        try:
            value = int(raw.get("value") or 0)
        except (TypeError, ValueError):
            logger.warning(f"[{self.name}] Bad value in {raw.get('hash')}: {raw.get('value')}")
            value = 0

        timestamp = raw.get("timeStamp")
        to_address = raw.get("to") or None

        return RawTransaction(
            txid=raw["hash"],
            timestamp=int(timestamp) if timestamp not in (None, "") else None,
            inputs=(TxInput(source_address=raw.get("from") or None, value=value),),
            outputs=(TxOutput(address=to_address, value=value),),
        )
