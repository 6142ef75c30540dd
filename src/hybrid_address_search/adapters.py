"""
Provider adapters implementing the fetch/normalize contract.

One adapter per backend:
- BayernAdapter: Bavarian geoservice "Ortssuche" (regional tier)
- OpenPLZAdapter: OpenPLZ street directory, paged by postal code (country tier)
- NominatimAdapter: OpenStreetMap Nominatim search (fallback tier)

Each adapter fetches a raw payload, parses it into its own raw-response
variant and normalizes that into `AddressCandidate` objects. `search`
wraps the whole call in cache lookup, rate limiting, retries and error
recovery so that it never raises.
"""

from __future__ import annotations

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar, Mapping, Optional, Type
from urllib.parse import quote

from .base import RateLimiter, ResponseCache, Transport
from .cache import NullResponseCache
from .config import EngineConfig, ProviderConfig
from .errors import ProviderFetchError
from .models import (
    AddressCandidate,
    InputCategory,
    ProviderError,
    ProviderOutcome,
    ProviderStatus,
    Query,
)
from .normalizers import StreetAbbreviator, parse_label, strip_postal_codes
from .throttling import NoOpRateLimiter

logger = logging.getLogger(__name__)


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _as_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


# --- Raw response variants ---------------------------------------------------

@dataclass(frozen=True)
class RawResponse:
    """Base of the tagged raw-response variants. `items` are always dicts."""
    PROVIDER: ClassVar[str] = ""
    items: tuple[dict[str, Any], ...] = ()

    @staticmethod
    def _dicts(values: Any) -> tuple[dict[str, Any], ...]:
        if not isinstance(values, list):
            return ()
        return tuple(v for v in values if isinstance(v, dict))


@dataclass(frozen=True)
class BayernRawResponse(RawResponse):
    PROVIDER: ClassVar[str] = "bayern"

    @classmethod
    def parse(cls, payload: Any) -> "BayernRawResponse":
        results = payload.get("results") if isinstance(payload, dict) else None
        return cls(items=cls._dicts(results))


@dataclass(frozen=True)
class OpenPLZRawResponse(RawResponse):
    PROVIDER: ClassVar[str] = "openplz"
    pages: int = 0

    @classmethod
    def parse(cls, payload: Any, pages: int = 1) -> "OpenPLZRawResponse":
        return cls(items=cls._dicts(payload), pages=pages)


@dataclass(frozen=True)
class NominatimRawResponse(RawResponse):
    PROVIDER: ClassVar[str] = "nominatim"

    @classmethod
    def parse(cls, payload: Any) -> "NominatimRawResponse":
        return cls(items=cls._dicts(payload))


# --- Adapter base --------------------------------------------------------------

class ProviderAdapter(ABC):
    """
    Abstract base for provider adapters.

    Subclasses set `PROVIDER` and are registered automatically; use
    `ProviderAdapter.from_config()` to build the adapter named by a
    `ProviderConfig`.
    """

    PROVIDER: ClassVar[str]

    _REGISTRY: ClassVar[dict[str, Type["ProviderAdapter"]]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)

        if "PROVIDER" in cls.__dict__:
            key = str(cls.PROVIDER).lower()
            if key in ProviderAdapter._REGISTRY and ProviderAdapter._REGISTRY[key] is not cls:
                raise RuntimeError(f"Duplicate adapter PROVIDER '{key}' for {cls.__name__}")
            ProviderAdapter._REGISTRY[key] = cls
            logger.debug(f"Registered ProviderAdapter: {cls.__name__} as '{key}'")

    def __init__(
        self,
        config: ProviderConfig,
        transport: Transport,
        rate_limiter: Optional[RateLimiter] = None,
        cache: Optional[ResponseCache] = None,
        abbreviator: Optional[StreetAbbreviator] = None,
        page_size: int = 50,
        max_pages: int = 20,
    ):
        """
        Initialize adapter.

        Args:
            config: Provider configuration
            transport: HTTP transport shared by all adapters
            rate_limiter: Shared per-provider rate limiter (defaults to no limit)
            cache: Shared response cache (defaults to no caching)
            abbreviator: Street-suffix abbreviator; only used if the config
                sets `apply_abbreviation`
            page_size: Page size for paginating providers
            max_pages: Upper bound on pages requested per lookup
        """
        self.config = config
        self.transport = transport
        self.rate_limiter = rate_limiter if rate_limiter is not None else NoOpRateLimiter()
        self.cache = cache if cache is not None else NullResponseCache()
        self.abbreviator = abbreviator if abbreviator is not None else StreetAbbreviator()
        self._in_flight: dict[str, asyncio.Future] = {}
        self.page_size = page_size
        self.max_pages = max_pages

    @classmethod
    def from_config(
        cls,
        config: ProviderConfig,
        transport: Transport,
        engine_config: Optional[EngineConfig] = None,
        **kwargs: Any,
    ) -> "ProviderAdapter":
        """Build the registered adapter for `config.adapter_name`."""
        key = config.adapter_name
        try:
            adapter_cls = cls._REGISTRY[key]
        except KeyError as e:
            raise ValueError(
                f"Unknown provider adapter '{key}'. "
                f"Known adapters: {sorted(cls._REGISTRY.keys())}"
            ) from e

        if engine_config is not None:
            kwargs.setdefault("page_size", engine_config.page_size)
            kwargs.setdefault("max_pages", engine_config.max_pages)
        return adapter_cls(config, transport, **kwargs)

    @property
    def name(self) -> str:
        return self.config.name

    # --- Hooks for subclasses ---------------------------------------------

    def lookup_key(self, query: Query) -> Optional[str]:
        """
        The term this provider is queried with, also used as cache key.
        None means the provider cannot serve this query.
        """
        return query.text or None

    @abstractmethod
    async def fetch(self, term: str) -> RawResponse:
        """
        Fetch and parse the raw response for a lookup term.

        Raises:
            ProviderFetchError on network/HTTP/decoding failures
        """
        pass

    @abstractmethod
    def normalize(self, raw: RawResponse) -> list[AddressCandidate]:
        """Convert a raw response into candidates, dropping empty entries."""
        pass

    def refine(self, query: Query, candidates: list[AddressCandidate]) -> list[AddressCandidate]:
        """Post-cache filtering against the full query. Identity by default."""
        return candidates

    # --- Shared helpers ---------------------------------------------------

    def abbreviate(self, street: str) -> str:
        if not self.config.apply_abbreviation:
            return street
        return self.abbreviator.normalize(street)

    async def _request(
        self,
        url: str,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Any:
        """
        Rate-limited GET with retries and exponential backoff.

        Every attempt acquires the provider's rate limiter first.
        """
        attempts = self.config.max_retries
        for attempt in range(attempts):
            await self.rate_limiter.acquire(self.name)
            try:
                return await self.transport.get_json(
                    url, params=params, headers=headers, timeout=self.config.timeout_s
                )
            except ProviderFetchError as e:
                if attempt >= attempts - 1:
                    raise
                logger.warning(f"{self.name}: attempt {attempt + 1}/{attempts} failed: {e}")
                await asyncio.sleep(self.config.retry_delay_s * (2 ** attempt))
        raise ProviderFetchError(url, "no request attempted", error_label="no_attempt")

    # --- Entry point ------------------------------------------------------

    async def search(self, query: Query) -> ProviderOutcome:
        """
        Resolve a query against this provider.

        Checks the cache, fetches on a miss (joining a fetch already in
        flight for the same term), normalizes and caches the
        result, then refines it against the query. Failures are recorded on
        the returned outcome; this method does not raise.
        """
        term = self.lookup_key(query)
        if not term:
            return ProviderOutcome(provider=self.name, status=ProviderStatus.SKIPPED)

        cached = self.cache.get(self.name, term)
        if cached is not None:
            logger.debug(f"{self.name}: served '{term}' from cache ({len(cached)} candidates)")
            candidates = self.refine(query, cached)
            return ProviderOutcome(
                provider=self.name,
                status=ProviderStatus.CACHED,
                candidates=tuple(candidates),
            )

        key = self.cache.make_key(self.name, term)
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._load(term))
            self._in_flight[key] = task
            task.add_done_callback(lambda done: self._release(key, done))
        else:
            logger.debug(f"{self.name}: joining in-flight fetch for '{term}'")

        loaded = await asyncio.shield(task)
        if loaded.status is not ProviderStatus.OK:
            return loaded

        candidates = self.refine(query, list(loaded.candidates))
        logger.info(f"{self.name}: {len(candidates)} candidates for '{term}'")
        return ProviderOutcome(
            provider=self.name,
            status=ProviderStatus.OK if candidates else ProviderStatus.EMPTY,
            candidates=tuple(candidates),
        )

    def _release(self, key: str, task: asyncio.Future) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    async def _load(self, term: str) -> ProviderOutcome:
        """
        Fetch, normalize and cache one lookup term. Concurrent searches for
        the same term share a single call. Successful outcomes carry the
        unrefined candidates with status OK, even when empty.
        """
        try:
            raw = await self.fetch(term)
            candidates = self.normalize(raw)
        except ProviderFetchError as e:
            logger.warning(f"{self.name}: request failed for '{term}': {e}")
            return ProviderOutcome(
                provider=self.name,
                status=ProviderStatus.API_ERROR,
                errors=(e.to_error(self.name),),
            )
        except Exception as e:
            logger.warning(f"{self.name}: unexpected error for '{term}': {e!r}")
            return ProviderOutcome(
                provider=self.name,
                status=ProviderStatus.EXCEPTION,
                errors=(ProviderError(
                    provider=self.name,
                    endpoint=self.config.base_url,
                    error_label="exception",
                    api_message=str(e)[:500],
                ),),
            )

        self.cache.put(self.name, term, candidates)
        return ProviderOutcome(provider=self.name, status=ProviderStatus.OK, candidates=tuple(candidates))


# --- Concrete adapters ---------------------------------------------------------

class BayernAdapter(ProviderAdapter):
    """
    Bavarian geoservice address search.

    Labels come back as HTML, e.g. "<b>Marienplatz</b> 1, 80331 München";
    the first postal code splits the label into street and locality.
    """

    PROVIDER = "bayern"

    async def fetch(self, term: str) -> BayernRawResponse:
        endpoint = f"{self.config.base_url.rstrip('/')}/adressen/{quote(term, safe='')}"
        params: dict[str, Any] = {
            "filter": "address",
            "srid": "31468",
            "fuzzy": "false",
        }
        if self.config.api_key:
            params["api_key"] = self.config.api_key

        logger.debug(f"Bayern search: {term}")
        payload = await self._request(endpoint, params=params, headers={"Accept": "application/json"})
        return BayernRawResponse.parse(payload)

    def _extract(self, item: Mapping[str, Any]) -> Optional[AddressCandidate]:
        attrs = item.get("attrs")
        label = attrs.get("label") if isinstance(attrs, dict) else None
        if not isinstance(label, str) or not label.strip():
            return None

        parsed = parse_label(label)
        plain = parsed.plain_text.strip()
        street = ""
        locality = ""
        if parsed.postal_code:
            idx = plain.find(parsed.postal_code)
            if idx > 0:
                street = plain[:idx].strip().rstrip(",").strip()
            if idx >= 0:
                after = plain[idx + len(parsed.postal_code):]
                locality = re.sub(r"^[,\s]+", "", after).strip()

        candidate = AddressCandidate(
            street=self.abbreviate(street),
            postal_code=parsed.postal_code,
            locality=locality,
            display=self.abbreviate(plain),
            source=self.name,
        )
        return None if candidate.is_empty() else candidate

    def normalize(self, raw: RawResponse) -> list[AddressCandidate]:
        results = []
        for item in raw.items:
            candidate = self._extract(item)
            if candidate is not None:
                results.append(candidate)
        return results


class OpenPLZAdapter(ProviderAdapter):
    """
    OpenPLZ street directory.

    Streets are listed per postal code and paged; pages are requested while
    the previous page was full and `max_pages` has not been reached.
    """

    PROVIDER = "openplz"

    def lookup_key(self, query: Query) -> Optional[str]:
        return query.postal_code

    async def fetch(self, term: str) -> OpenPLZRawResponse:
        endpoint = f"{self.config.base_url.rstrip('/')}/Streets"
        streets: list[Any] = []
        page = 1

        while True:
            payload = await self._request(
                endpoint,
                params={"postalCode": term, "page": page, "pageSize": self.page_size},
                headers={"Accept": "application/json"},
            )
            batch = payload if isinstance(payload, list) else []
            if not batch:
                break

            streets.extend(batch)
            logger.debug(f"OpenPLZ page {page}: {len(batch)} streets")
            if len(batch) < self.page_size or page >= self.max_pages:
                break
            page += 1

        logger.debug(f"OpenPLZ: {len(streets)} streets for postal code {term}")
        return OpenPLZRawResponse.parse(streets, pages=page)

    def normalize(self, raw: RawResponse) -> list[AddressCandidate]:
        results = []
        for item in raw.items:
            street = _as_str(item.get("name"))
            if not street:
                continue
            postal_code = _as_str(item.get("postalCode"))
            locality = _as_str(item.get("locality"))
            street = self.abbreviate(street)
            results.append(AddressCandidate(
                street=street,
                postal_code=postal_code,
                locality=locality,
                display=f"{street} {postal_code} {locality}",
                source=self.name,
            ))
        return results

    @staticmethod
    def _matches_street(street: str, search: str) -> bool:
        name = street.lower()
        return search in name or name[:5] in search or len(search) < 3

    def refine(self, query: Query, candidates: list[AddressCandidate]) -> list[AddressCandidate]:
        """
        For free text with a postal code, keep streets matching the first
        word of the text. Falls back to the full list if nothing matches.
        """
        if query.classification.category is not InputCategory.WITH_POSTALCODE:
            return candidates

        search = strip_postal_codes(query.text).split(" ")[0]
        filtered = [c for c in candidates if self._matches_street(c.street, search)]
        return filtered or candidates


class NominatimAdapter(ProviderAdapter):
    """
    OpenStreetMap Nominatim search.

    Usage policy requires an identifying User-Agent and at most one request
    per second; the interval comes from `rate_limit_ms`.
    """

    PROVIDER = "nominatim"

    async def fetch(self, term: str) -> NominatimRawResponse:
        endpoint = f"{self.config.base_url.rstrip('/')}/search"
        params: dict[str, Any] = {
            "q": term,
            "format": "json",
            "addressdetails": 1,
            "limit": self.config.result_limit,
        }
        if self.config.country_code:
            params["countrycodes"] = self.config.country_code
        if self.config.language:
            params["accept-language"] = self.config.language

        headers = {"Accept": "application/json"}
        if self.config.user_agent:
            headers["User-Agent"] = self.config.user_agent

        logger.debug(f"Nominatim search: {term}")
        payload = await self._request(endpoint, params=params, headers=headers)
        return NominatimRawResponse.parse(payload)

    @staticmethod
    def _first(address: Mapping[str, Any], *keys: str) -> str:
        for key in keys:
            value = _as_str(address.get(key))
            if value:
                return value
        return ""

    def _extract(self, item: Mapping[str, Any]) -> Optional[AddressCandidate]:
        address = item.get("address")
        if not isinstance(address, dict):
            return None

        street = self._first(address, "road", "street", "pedestrian", "path")
        house_number = _as_str(address.get("house_number"))
        if street and house_number:
            street = f"{street} {house_number}"

        osm_type = _as_str(item.get("osm_type"))
        osm_id = _as_str(item.get("osm_id"))
        candidate = AddressCandidate(
            street=self.abbreviate(street),
            postal_code=_as_str(address.get("postcode")),
            locality=self._first(address, "city", "town", "village", "municipality"),
            display=_as_str(item.get("display_name")),
            source=self.name,
            lat=_as_float(item.get("lat")),
            lon=_as_float(item.get("lon")),
            external_id=f"{osm_type}/{osm_id}" if osm_type and osm_id else None,
        )
        return None if candidate.is_empty() else candidate

    def normalize(self, raw: RawResponse) -> list[AddressCandidate]:
        results = []
        for item in raw.items:
            candidate = self._extract(item)
            if candidate is not None:
                results.append(candidate)
        return results
