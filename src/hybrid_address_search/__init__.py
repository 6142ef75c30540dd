"""
- Models: Data structures (Classification, AddressCandidate, ResolveResult, ...)
- Base classes: Abstract interfaces
- Config: Provider and engine configuration, environment settings
- Classifier: Input categorization and region membership
- Selection: Provider selection policy
- Normalizers: Street-suffix abbreviation and label parsing
- Throttling: Per-provider rate limiting
- Cache: Response caches
- Transport: httpx-backed HTTP transport
- Adapters: Provider fetch/normalize implementations
- Engine: Concurrent fan-out, merge and sessions
"""

from .models import (
    InputCategory,
    ProviderTier,
    ProviderStatus,
    ResolveStatus,
    Classification,
    Query,
    AddressCandidate,
    ProviderError,
    ProviderOutcome,
    ResolveResult,
    ParsedLabel,
)

from .base import (
    Normalizer,
    RateLimiter,
    ResponseCache,
    Transport,
)

from .errors import (
    ConfigValidationError,
    ProviderFetchError,
)

from .config import (
    PostalRange,
    ProviderConfig,
    EngineConfig,
    Settings,
    DEFAULT_REGION_RANGES,
    default_providers,
)

from .classifier import InputClassifier

from .selection import (
    ProviderSelector,
    SelectionDecision,
)

from .normalizers import (
    AbbreviationRule,
    StreetAbbreviator,
    DEFAULT_ABBREVIATION_RULES,
    parse_label,
    extract_postal_code,
)

from .throttling import (
    IntervalRateLimiter,
    NoOpRateLimiter,
)

from .cache import (
    InMemoryResponseCache,
    NullResponseCache,
)

from .transport import HttpxTransport

from .adapters import (
    ProviderAdapter,
    BayernAdapter,
    OpenPLZAdapter,
    NominatimAdapter,
    RawResponse,
    BayernRawResponse,
    OpenPLZRawResponse,
    NominatimRawResponse,
)

from .engine import (
    AddressSearchEngine,
    SearchSession,
    FanOutJob,
    JobState,
    merge_candidates,
)

__all__ = [
    # Models
    "InputCategory",
    "ProviderTier",
    "ProviderStatus",
    "ResolveStatus",
    "Classification",
    "Query",
    "AddressCandidate",
    "ProviderError",
    "ProviderOutcome",
    "ResolveResult",
    "ParsedLabel",
    # Base classes
    "Normalizer",
    "RateLimiter",
    "ResponseCache",
    "Transport",
    # Errors
    "ConfigValidationError",
    "ProviderFetchError",
    # Config
    "PostalRange",
    "ProviderConfig",
    "EngineConfig",
    "Settings",
    "DEFAULT_REGION_RANGES",
    "default_providers",
    # Classification and selection
    "InputClassifier",
    "ProviderSelector",
    "SelectionDecision",
    # Normalizers
    "AbbreviationRule",
    "StreetAbbreviator",
    "DEFAULT_ABBREVIATION_RULES",
    "parse_label",
    "extract_postal_code",
    # Throttling
    "IntervalRateLimiter",
    "NoOpRateLimiter",
    # Cache
    "InMemoryResponseCache",
    "NullResponseCache",
    # Transport
    "HttpxTransport",
    # Adapters
    "ProviderAdapter",
    "BayernAdapter",
    "OpenPLZAdapter",
    "NominatimAdapter",
    "RawResponse",
    "BayernRawResponse",
    "OpenPLZRawResponse",
    "NominatimRawResponse",
    # Engine
    "AddressSearchEngine",
    "SearchSession",
    "FanOutJob",
    "JobState",
    "merge_candidates",
]
