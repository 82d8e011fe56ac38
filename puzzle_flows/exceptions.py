"""
Puzzle Flows Exceptions - Custom exception hierarchy.

Fetch errors are retried inside the adapter where retrying can help,
then surfaced so the orchestrator can log and skip a single address.
Classification is total and has no error type.
"""

from datetime import datetime
from typing import Any, Optional


class PuzzleFlowsError(Exception):
    """Base exception for all puzzle flows errors."""

    def __init__(
        self,
        message: str,
        chain: Optional[str] = None,
        address: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.chain = chain
        self.address = address
        self.original_error = original_error
        self.context = context or {}
        self.timestamp = datetime.utcnow()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "chain": self.chain,
            "address": self.address,
            "original_error": str(self.original_error) if self.original_error else None,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        parts = [f"{self.__class__.__name__}: {self.message}"]
        if self.chain:
            parts.append(f"[chain={self.chain}]")
        if self.address:
            parts.append(f"[address={self.address}]")
        if self.original_error:
            parts.append(f"(caused by: {self.original_error})")
        return " ".join(parts)


class FetchError(PuzzleFlowsError):
    """Error while fetching transactions from an explorer API."""

    def __init__(
        self,
        message: str,
        adapter_name: Optional[str] = None,
        chain: Optional[str] = None,
        address: Optional[str] = None,
        request_url: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, chain, address, original_error, context)
        self.adapter_name = adapter_name
        self.request_url = request_url

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({
            "adapter_name": self.adapter_name,
            "request_url": self.request_url,
        })
        return data


class TransportError(FetchError):
    """Connection, timeout or undecodable response. Retried."""
    pass


class RateLimitedError(FetchError):
    """Explorer refused with a rate limit, or the retry attempts ran out."""

    def __init__(
        self,
        message: str,
        adapter_name: Optional[str] = None,
        chain: Optional[str] = None,
        address: Optional[str] = None,
        request_url: Optional[str] = None,
        retry_after_seconds: Optional[float] = None,
        attempts: Optional[int] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message, adapter_name, chain, address, request_url, original_error, context
        )
        self.retry_after_seconds = retry_after_seconds
        self.attempts = attempts

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({
            "retry_after_seconds": self.retry_after_seconds,
            "attempts": self.attempts,
        })
        return data


class ApiError(FetchError):
    """Explorer answered with a non-retryable failure (bad address, deprecated endpoint)."""

    def __init__(
        self,
        message: str,
        adapter_name: Optional[str] = None,
        chain: Optional[str] = None,
        address: Optional[str] = None,
        request_url: Optional[str] = None,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message, adapter_name, chain, address, request_url, original_error, context
        )
        self.status_code = status_code
        self.response_body = response_body

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({
            "status_code": self.status_code,
            "response_body": self.response_body[:500] if self.response_body else None,
        })
        return data


class CacheError(PuzzleFlowsError):
    """Error writing a cache entry."""

    def __init__(
        self,
        message: str,
        cache_path: Optional[str] = None,
        operation: str = "write",
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, None, None, original_error, context)
        self.cache_path = cache_path
        self.operation = operation

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({
            "cache_path": self.cache_path,
            "operation": self.operation,
        })
        return data


class DocumentError(PuzzleFlowsError):
    """Collection document cannot be read, parsed or written."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, None, None, original_error, context)
        self.path = path

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["path"] = self.path
        return data


class ConfigurationError(PuzzleFlowsError):
    """Invalid or missing configuration."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        chain: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, chain, None, original_error, context)
        self.config_key = config_key

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["config_key"] = self.config_key
        return data
