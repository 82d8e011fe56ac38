"""
Base Chain Adapter - Abstract interface for explorer transaction sources.

All adapters MUST:
- Pace every request through the shared RateLimiter
- Retry HTTP 429 and transport failures with exponential backoff
- Fail fast on any other unsuccessful status
- Return RawTransaction values in the chain's smallest unit, oldest first
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Optional

import aiohttp

from puzzle_flows.config import ChainConfig
from puzzle_flows.exceptions import (
    ApiError,
    FetchError,
    RateLimitedError,
    TransportError,
)
from puzzle_flows.models import RawTransaction, sort_transactions
from puzzle_flows.rate_limit import RateLimiter


logger = logging.getLogger(__name__)


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header given in seconds."""
    if not value:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


class BaseChainAdapter(ABC):
    """
    Abstract base class for chain adapters.

    Each adapter must:
    1. Implement name - Unique identifier
    2. Implement fetch_transactions() - Paginate and normalize one address

    Shared here:
    - Lazy aiohttp session management
    - Rate-limited, retrying JSON GET (_get_json)
    """

    # Configuration defaults
    DEFAULT_TIMEOUT = 30.0
    DEFAULT_RETRY_DELAY = 60.0
    MAX_ATTEMPTS = 5
    MAX_BACKOFF_EXPONENT = 3

    def __init__(
        self,
        chain_config: ChainConfig,
        rate_limiter: Optional[RateLimiter] = None,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = DEFAULT_TIMEOUT,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        max_attempts: int = MAX_ATTEMPTS,
        user_agent: str = "puzzle-flows/0.1",
    ) -> None:
        self.chain_config = chain_config
        self.rate_limiter = rate_limiter or RateLimiter(
            chain_config.request_interval_seconds,
            name=chain_config.chain.value,
        )
        self._session = session
        self._owns_session = session is None
        self._timeout = timeout
        self._retry_delay = retry_delay
        self._max_attempts = max_attempts
        self._user_agent = user_agent

        # Statistics
        self._stats = {
            "requests": 0,
            "retries": 0,
            "rate_limited": 0,
            "transport_errors": 0,
            "api_errors": 0,
        }

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this adapter."""
        pass

    @property
    def chain(self):
        return self.chain_config.chain

    @property
    def base_url(self) -> str:
        return self.chain_config.explorer_api_url.rstrip("/")

    @abstractmethod
    async def fetch_transactions(self, address: str) -> list[RawTransaction]:
        """
        Fetch the full transaction history of an address.

        Args:
            address: Target address

        Returns:
            Normalized transactions, ascending by timestamp, unconfirmed last

        Raises:
            FetchError: TransportError, RateLimitedError or ApiError
        """
        pass

    def get_stats(self) -> dict[str, Any]:
        """Get adapter statistics."""
        return {
            **self._stats,
            "adapter": self.name,
            "chain": self.chain.value,
        }

    @staticmethod
    def _sorted(transactions: list[RawTransaction]) -> list[RawTransaction]:
        return sort_transactions(transactions)

    # ─────────────────────────────────────────────────────────────
    # Retry
    # ─────────────────────────────────────────────────────────────

    def _backoff_delay(self, attempt: int) -> float:
        """Delay before retry attempt (attempt >= 1)."""
        return self._retry_delay * (2 ** min(attempt, self.MAX_BACKOFF_EXPONENT))

    async def _get_json(
        self,
        url: str,
        params: Optional[dict[str, Any]] = None,
        address: Optional[str] = None,
    ) -> Any:
        """
        Rate-limited GET with bounded retries.

        429s and transport errors are retried up to max_attempts, honouring
        Retry-After when the server sends one. ApiError is raised at once.
        """
        last_error: Optional[FetchError] = None
        retry_after: Optional[float] = None

        for attempt in range(self._max_attempts):
            if attempt > 0:
                delay = retry_after if retry_after is not None else self._backoff_delay(attempt)
                self._stats["retries"] += 1
                logger.warning(
                    f"[{self.name}] Retry {attempt + 1}/{self._max_attempts}, "
                    f"waiting {delay:.0f}s..."
                )
                await asyncio.sleep(delay)

            await self.rate_limiter.acquire()

            try:
                payload = await self._make_request(url, params)
                self._check_payload(payload, url)
                return payload

            except RateLimitedError as e:
                self._stats["rate_limited"] += 1
                retry_after = e.retry_after_seconds
                last_error = e
                logger.warning(f"[{self.name}] Rate limited: {e.message}")

            except TransportError as e:
                self._stats["transport_errors"] += 1
                retry_after = None
                last_error = e
                logger.warning(f"[{self.name}] Request error: {e.message}")

            except ApiError:
                self._stats["api_errors"] += 1
                raise

        raise RateLimitedError(
            message=f"Rate limited after {self._max_attempts} attempts",
            adapter_name=self.name,
            chain=self.chain.value,
            address=address,
            request_url=url,
            attempts=self._max_attempts,
            original_error=last_error,
        )

    def _check_payload(self, payload: Any, url: str) -> None:
        """Inspect a decoded body for in-band errors. Override if needed."""
        return None

    # ─────────────────────────────────────────────────────────────
    # HTTP Helpers
    # ─────────────────────────────────────────────────────────────

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
                headers=self._get_default_headers(),
            )
            self._owns_session = True
        return self._session

    def _get_default_headers(self) -> dict[str, str]:
        """Get default HTTP headers."""
        return {
            "Accept": "application/json",
            "User-Agent": self._user_agent,
        }

    async def _make_request(
        self,
        url: str,
        params: Optional[dict[str, Any]] = None,
    ) -> Any:
        """Single GET, mapped onto the fetch error taxonomy."""
        session = await self._get_session()
        self._stats["requests"] += 1

        start_time = time.time()
        try:
            async with session.get(url, params=params) as response:
                latency_ms = (time.time() - start_time) * 1000

                if response.status == 429:
                    raise RateLimitedError(
                        message="HTTP 429",
                        adapter_name=self.name,
                        chain=self.chain.value,
                        request_url=url,
                        retry_after_seconds=parse_retry_after(
                            response.headers.get("Retry-After")
                        ),
                    )

                if response.status < 200 or response.status >= 300:
                    body = await response.text()
                    raise ApiError(
                        message=f"API error: HTTP {response.status}",
                        adapter_name=self.name,
                        chain=self.chain.value,
                        request_url=url,
                        status_code=response.status,
                        response_body=body[:500],
                    )

                try:
                    data = await response.json(content_type=None)
                except ValueError as e:
                    raise TransportError(
                        message="Undecodable response body",
                        adapter_name=self.name,
                        chain=self.chain.value,
                        request_url=url,
                        original_error=e,
                    )

                logger.debug(f"[{self.name}] GET {url} completed in {latency_ms:.1f}ms")
                return data

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(
                message=f"Connection error: {e}",
                adapter_name=self.name,
                chain=self.chain.value,
                request_url=url,
                original_error=e,
            )

    # ─────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────

    async def close(self) -> None:
        """Close resources."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "BaseChainAdapter":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name={self.name}, chain={self.chain.value})>"
