"""
Abstract base classes for the address search engine.

These define the interfaces that all concrete implementations must follow.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional, Sequence

from .models import AddressCandidate


class Normalizer(ABC):
    """
    Abstract base for string normalizers.

    Normalizers transform an input string into a canonical form
    (e.g., "Herrenstraße" → "Herrenstr.").
    """

    @abstractmethod
    def normalize(self, value: str) -> str:
        """
        Normalize a string value.

        Args:
            value: String to normalize

        Returns:
            Normalized string
        """
        pass

    def normalize_batch(self, values: Sequence[str]) -> list[str]:
        """Normalize multiple values by calling normalize() for each."""
        return [self.normalize(v) for v in values]


class RateLimiter(ABC):
    """
    Abstract base for rate limiters.

    Rate limiters control the rate at which requests are made to each
    provider, keyed by provider identifier.
    """

    @abstractmethod
    async def acquire(self, provider_id: str) -> None:
        """
        Suspend until a request to `provider_id` may be made, then record
        the grant.

        Args:
            provider_id: Identifier of the provider about to be called
        """
        pass


class ResponseCache(ABC):
    """
    Abstract base for caching normalized provider results.

    Reduces redundant API calls by memoizing candidates keyed by
    (provider, normalized query).
    """

    @staticmethod
    def make_key(provider_id: str, query: str) -> str:
        return f"{provider_id}:{query.strip()}".lower()

    @abstractmethod
    def get(self, provider_id: str, query: str) -> Optional[list[AddressCandidate]]:
        """Get cached candidates, or None on a miss."""
        pass

    @abstractmethod
    def put(self, provider_id: str, query: str, candidates: Sequence[AddressCandidate]) -> None:
        """Cache candidates for a provider/query pair."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Clear all cached values."""
        pass

    @abstractmethod
    def __len__(self) -> int:
        pass


class Transport(ABC):
    """
    Abstract base for the HTTP transport used by provider adapters.

    Implementations raise `ProviderFetchError` for network failures,
    timeouts, HTTP error statuses and undecodable bodies.
    """

    @abstractmethod
    async def get_json(
        self,
        url: str,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Issue a GET request and return the decoded JSON body."""
        pass

    async def aclose(self) -> None:
        """Release connections. No-op by default."""
        return None
