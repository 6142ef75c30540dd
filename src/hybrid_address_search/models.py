"""
Core data models for address resolution.

These immutable, frozen dataclasses serve as the contract between
the classifier, the provider adapters and the aggregating engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any, Iterator, Optional


class InputCategory(StrEnum):
    """Category assigned to a raw query string."""
    POSTALCODE_ONLY = "postalcode_only"
    WITH_POSTALCODE = "with_postalcode"
    STREET_WITH_NUMBER = "street_with_number"
    STREET_OR_CITY = "street_or_city"
    MIXED = "mixed"


class ProviderTier(StrEnum):
    """Authority level of a backend, used by the selection policy."""
    REGIONAL = "regional"
    COUNTRY = "country"
    FALLBACK = "fallback"


class ProviderStatus(StrEnum):
    """Status of a single provider call inside a resolve."""
    OK = "ok"
    EMPTY = "empty"
    CACHED = "cached"
    API_ERROR = "api_error"
    EXCEPTION = "exception"
    SKIPPED = "skipped"


class ResolveStatus(StrEnum):
    """Reason code attached to a resolve result."""
    OK = "ok"
    NO_RESULTS = "no_results"
    NO_PROVIDERS_ENABLED = "no_providers_enabled"
    QUERY_TOO_SHORT = "query_too_short"
    STALE = "stale"


@dataclass(frozen=True)
class Classification:
    """
    Result of classifying a query.

    `in_region` is only defined (not None) when a postal code was found.
    """
    category: InputCategory
    value: str
    postal_code: Optional[str] = None
    in_region: Optional[bool] = None

    @property
    def has_postal_code(self) -> bool:
        return self.postal_code is not None

    @property
    def description(self) -> str:
        """Human-readable summary, used in log lines."""
        if self.category is InputCategory.POSTALCODE_ONLY:
            return f"postal code only ({self.postal_code})"
        if self.category is InputCategory.WITH_POSTALCODE:
            region = "in region" if self.in_region else "outside region"
            return f"text with postal code {self.postal_code} ({region})"
        if self.category is InputCategory.STREET_WITH_NUMBER:
            return "street with number (no postal code)"
        if self.category is InputCategory.STREET_OR_CITY:
            return "street or city (no postal code)"
        return "mixed input"


@dataclass(frozen=True)
class Query:
    """A single resolve request: raw input, trimmed text and its classification."""
    raw: str
    text: str
    classification: Classification

    @property
    def normalized(self) -> str:
        """Lowercased trimmed form used for cache keys."""
        return self.text.lower()

    @property
    def postal_code(self) -> Optional[str]:
        return self.classification.postal_code


@dataclass(frozen=True)
class AddressCandidate:
    """One structured, normalized address returned by a provider."""
    street: str
    postal_code: str
    locality: str
    display: str
    source: str
    lat: Optional[float] = None
    lon: Optional[float] = None
    external_id: Optional[str] = None

    @property
    def dedup_key(self) -> str:
        """Lowercased concatenation of street, postal code and locality."""
        return f"{self.street}{self.postal_code}{self.locality}".lower()

    def is_empty(self) -> bool:
        return not (self.street or self.postal_code or self.locality or self.display)

    def label(self) -> str:
        """Short display form: street (when present), postal code and locality."""
        parts = [self.street, self.postal_code, self.locality] if self.street else [self.postal_code, self.locality]
        return " ".join(p for p in parts if p)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "street": self.street,
            "postal_code": self.postal_code,
            "locality": self.locality,
            "display": self.display,
            "source": self.source,
            "lat": self.lat,
            "lon": self.lon,
            "external_id": self.external_id,
        }


@dataclass(frozen=True)
class ProviderError:
    """Details of a failed provider call."""
    provider: str
    endpoint: str
    http_status: Optional[int] = None
    params_json: str = ""
    body_snippet: str = ""
    error_label: str = ""
    api_message: Optional[str] = None


@dataclass(frozen=True)
class ProviderOutcome:
    """
    The partial result of one provider inside a fan-out.

    Failed calls carry an empty candidate list plus error details; they
    never abort the surrounding resolve.
    """
    provider: str
    status: ProviderStatus
    candidates: tuple[AddressCandidate, ...] = ()
    errors: tuple[ProviderError, ...] = ()

    def is_success(self) -> bool:
        return self.status in (ProviderStatus.OK, ProviderStatus.EMPTY, ProviderStatus.CACHED)


@dataclass(frozen=True)
class ResolveResult:
    """
    Merged, deduplicated output of a resolve call.

    Iterating over the result yields its candidates in merge order.
    """
    query: str
    classification: Classification
    status: ResolveStatus
    providers: tuple[str, ...] = ()
    candidates: tuple[AddressCandidate, ...] = ()
    outcomes: tuple[ProviderOutcome, ...] = ()

    def __iter__(self) -> Iterator[AddressCandidate]:
        return iter(self.candidates)

    def __len__(self) -> int:
        return len(self.candidates)

    @property
    def errors(self) -> list[ProviderError]:
        return [err for outcome in self.outcomes for err in outcome.errors]

    def as_stale(self) -> "ResolveResult":
        """Copy of this result marked stale, with candidates and outcomes dropped."""
        return replace(self, status=ResolveStatus.STALE, candidates=(), outcomes=())


@dataclass(frozen=True)
class ParsedLabel:
    """An HTML label split into plain text, bold fragments and postal code."""
    plain_text: str
    bold_texts: list[str] = field(default_factory=list)
    postal_code: str = ""
