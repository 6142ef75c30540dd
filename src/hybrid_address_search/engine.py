"""
The hybrid address search engine.

`AddressSearchEngine` owns configuration, adapters, the shared rate
limiter and the shared response cache. `resolve` classifies a query,
selects providers, fans out one task per provider and merges the partial
results in invocation order.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Callable, Iterable, Optional, Sequence

from .adapters import ProviderAdapter
from .base import RateLimiter, ResponseCache, Transport
from .cache import InMemoryResponseCache, NullResponseCache
from .classifier import InputClassifier
from .config import EngineConfig, ProviderConfig
from .models import (
    AddressCandidate,
    Classification,
    ProviderOutcome,
    Query,
    ResolveResult,
    ResolveStatus,
)
from .normalizers import StreetAbbreviator
from .selection import ProviderSelector
from .throttling import IntervalRateLimiter
from .transport import HttpxTransport

logger = logging.getLogger(__name__)


def merge_candidates(partials: Iterable[Sequence[AddressCandidate]]) -> list[AddressCandidate]:
    """
    Concatenate partial lists in the given order and drop candidates whose
    dedup key was already seen. The first occurrence wins.
    """
    seen: set[str] = set()
    merged = []
    for partial in partials:
        for candidate in partial:
            key = candidate.dedup_key
            if key in seen:
                continue
            seen.add(key)
            merged.append(candidate)
    return merged


class JobState(StrEnum):
    CREATED = "created"
    DISPATCHING = "dispatching"
    JOINED = "joined"
    COMPLETED = "completed"


@dataclass
class FanOutJob:
    """
    Bookkeeping for one resolve fan-out.

    Each provider owns the slot at its invocation index. Completions may
    arrive in any order; `complete()` concatenates slots by index.
    """
    query: Query
    providers: list[str]
    slots: list[Optional[ProviderOutcome]] = field(default_factory=list)
    outstanding: int = 0
    state: JobState = JobState.CREATED
    merged: list[AddressCandidate] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.slots:
            self.slots = [None] * len(self.providers)

    def dispatch(self) -> None:
        if self.state is not JobState.CREATED:
            raise RuntimeError(f"cannot dispatch job in state {self.state}")
        self.outstanding = len(self.providers)
        self.state = JobState.DISPATCHING if self.outstanding else JobState.JOINED

    def record(self, index: int, outcome: ProviderOutcome) -> None:
        """Store a provider's outcome in its slot and decrement the count."""
        if self.state is not JobState.DISPATCHING:
            raise RuntimeError(f"cannot record outcome in state {self.state}")
        if self.slots[index] is not None:
            raise RuntimeError(f"slot {index} ({self.providers[index]}) already recorded")
        self.slots[index] = outcome
        self.outstanding -= 1
        logger.debug(
            f"{outcome.provider} finished with {outcome.status} "
            f"({len(outcome.candidates)} candidates, {self.outstanding} outstanding)"
        )
        if self.outstanding == 0:
            self.state = JobState.JOINED

    def complete(self) -> list[AddressCandidate]:
        """Merge slots in invocation order. May be called exactly once."""
        if self.state is not JobState.JOINED:
            raise RuntimeError(f"cannot complete job in state {self.state}")
        self.merged = merge_candidates(
            outcome.candidates for outcome in self.slots if outcome is not None
        )
        self.state = JobState.COMPLETED
        return self.merged

    @property
    def outcomes(self) -> list[ProviderOutcome]:
        return [o for o in self.slots if o is not None]


class AddressSearchEngine:
    """
    Resolves free-text address fragments into ranked, deduplicated
    candidates across several providers.

    Construct one engine per process and share it; the rate limiter and
    cache live for the engine's lifetime.

    Example:
        async with AddressSearchEngine(EngineConfig.from_env()) as engine:
            result = await engine.resolve("Marienplatz 1, 80331")
            for candidate in result:
                print(candidate.label())
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        transport: Optional[Transport] = None,
        rate_limiter: Optional[RateLimiter] = None,
        cache: Optional[ResponseCache] = None,
    ):
        """
        Initialize engine.

        Args:
            config: Engine configuration (defaults to the stock providers)
            transport: HTTP transport (defaults to an httpx-backed transport)
            rate_limiter: Shared rate limiter (defaults to per-provider
                intervals from the config)
            cache: Shared response cache (defaults to an in-memory cache,
                or no caching when `cache_enabled` is false)
        """
        self.config = config if config is not None else EngineConfig()
        self.transport = transport if transport is not None else HttpxTransport()
        if rate_limiter is not None:
            self.rate_limiter = rate_limiter
        else:
            self.rate_limiter = IntervalRateLimiter.from_configs(self.config.providers)
        if cache is not None:
            self.cache = cache
        elif self.config.cache_enabled:
            self.cache = InMemoryResponseCache(max_entries=self.config.cache_max_entries)
        else:
            self.cache = NullResponseCache()

        self.classifier = InputClassifier(self.config.region_ranges)
        self.selector = ProviderSelector(self.config.providers)
        self.abbreviator = StreetAbbreviator(enabled=self.config.abbreviation_enabled)
        self.adapters: dict[str, ProviderAdapter] = {
            p.name: ProviderAdapter.from_config(
                p,
                self.transport,
                engine_config=self.config,
                rate_limiter=self.rate_limiter,
                cache=self.cache,
                abbreviator=self.abbreviator,
            )
            for p in self.config.providers
        }

        logger.info(
            f"Initialized AddressSearchEngine: providers={list(self.adapters)}, "
            f"cache={'on' if self.config.cache_enabled else 'off'}"
        )

    # --- Public surface ------------------------------------------------------

    def classify(self, query: str) -> Classification:
        return self.classifier.classify(query)

    def is_in_region(self, postal_code: str) -> bool:
        return self.classifier.is_in_region(postal_code)

    def select_providers(self, classification: Classification) -> list[ProviderConfig]:
        return self.selector.select(classification)

    async def resolve(self, query: str) -> ResolveResult:
        """
        Resolve a query into merged candidates.

        Never raises for provider failures: a failing provider contributes
        no candidates and its error is recorded on the result's outcomes.
        """
        q = self.classifier.build_query(query)
        classification = q.classification
        logger.info(f"Resolving '{q.text}': {classification.description}")

        selected = self.select_providers(classification)
        if not selected:
            logger.warning("No providers enabled for this input")
            return ResolveResult(
                query=q.text,
                classification=classification,
                status=ResolveStatus.NO_PROVIDERS_ENABLED,
            )

        job = FanOutJob(query=q, providers=[p.name for p in selected])
        job.dispatch()

        async with asyncio.TaskGroup() as tg:
            for index, provider in enumerate(selected):
                tg.create_task(self._run_slot(job, index, self.adapters[provider.name]))

        merged = job.complete()
        logger.info(f"Merged {len(merged)} candidates from {len(selected)} providers")
        return ResolveResult(
            query=q.text,
            classification=classification,
            status=ResolveStatus.OK if merged else ResolveStatus.NO_RESULTS,
            providers=tuple(job.providers),
            candidates=tuple(merged),
            outcomes=tuple(job.outcomes),
        )

    async def _run_slot(self, job: FanOutJob, index: int, adapter: ProviderAdapter) -> None:
        outcome = await adapter.search(job.query)
        job.record(index, outcome)

    def session(self, name: str = "default", **kwargs: Any) -> "SearchSession":
        return SearchSession(self, name=name, **kwargs)

    async def aclose(self) -> None:
        await self.transport.aclose()

    async def __aenter__(self) -> "AddressSearchEngine":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


class SearchSession:
    """
    Resolve calls on behalf of one logical caller, e.g. one form field.

    Each `search` bumps the generation. A call that finishes after a newer
    one was started is stale: its result comes back with status `stale`
    and no candidates, and `on_result` is not invoked for it.
    """

    def __init__(
        self,
        engine: AddressSearchEngine,
        name: str = "default",
        on_result: Optional[Callable[[ResolveResult], Any]] = None,
        min_query_length: Optional[int] = None,
    ):
        self.engine = engine
        self.name = name
        self.on_result = on_result
        self.min_query_length = (
            engine.config.min_query_length if min_query_length is None else min_query_length
        )
        self.generation = 0

    def invalidate(self) -> None:
        """Discard any in-flight search."""
        self.generation += 1

    async def search(self, query: str) -> ResolveResult:
        self.generation += 1
        generation = self.generation

        text = (query or "").strip()
        if len(text) < self.min_query_length:
            result = ResolveResult(
                query=text,
                classification=self.engine.classify(text),
                status=ResolveStatus.QUERY_TOO_SHORT,
            )
        else:
            result = await self.engine.resolve(text)

        if generation != self.generation:
            logger.debug(f"Session {self.name}: discarding stale result for '{text}' (generation {generation})")
            return result.as_stale()

        if self.on_result is not None:
            self.on_result(result)
        return result
