"""
Response caches for normalized provider results.

The in-memory cache is unbounded unless `max_entries` is given, in which
case least-recently-used entries are evicted.
"""

import logging
from collections import OrderedDict
from typing import Optional, Sequence

from .base import ResponseCache
from .models import AddressCandidate

logger = logging.getLogger(__name__)


class InMemoryResponseCache(ResponseCache):
    """
    Process-lifetime cache keyed by lowercased (provider, query).

    Entries are stored as tuples and handed out as fresh lists, so callers
    cannot mutate cached state. Writes for an identical key are idempotent.
    """

    def __init__(self, max_entries: Optional[int] = None):
        if max_entries is not None and max_entries <= 0:
            raise ValueError("max_entries must be > 0")
        self.max_entries = max_entries
        self._entries: OrderedDict[str, tuple[AddressCandidate, ...]] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def get(self, provider_id: str, query: str) -> Optional[list[AddressCandidate]]:
        key = self.make_key(provider_id, query)
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        self.hits += 1
        if self.max_entries is not None:
            self._entries.move_to_end(key)
        logger.debug(f"Cache hit for {key}")
        return list(entry)

    def put(self, provider_id: str, query: str, candidates: Sequence[AddressCandidate]) -> None:
        key = self.make_key(provider_id, query)
        self._entries[key] = tuple(candidates)
        if self.max_entries is not None:
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Cache evicted {evicted}")

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries


class NullResponseCache(ResponseCache):
    """Cache that never stores anything, used when caching is disabled."""

    def get(self, provider_id: str, query: str) -> Optional[list[AddressCandidate]]:
        return None

    def put(self, provider_id: str, query: str, candidates: Sequence[AddressCandidate]) -> None:
        pass

    def clear(self) -> None:
        pass

    def __len__(self) -> int:
        return 0
