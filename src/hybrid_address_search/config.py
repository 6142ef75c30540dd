"""
Configuration for the address search engine.

Provider and engine configuration are immutable pydantic models, loaded
once at startup. `Settings` reads the deployment-specific values (API
keys, enabled flags, paging bounds) from the environment or a `.env` file.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigValidationError
from .models import ProviderTier

logger = logging.getLogger(__name__)


class PostalRange(BaseModel):
    """Inclusive numeric postal-code range."""
    model_config = ConfigDict(frozen=True)

    min: int
    max: int

    @model_validator(mode="after")
    def _check_bounds(self) -> "PostalRange":
        if self.min > self.max:
            raise ValueError(f"range min {self.min} is greater than max {self.max}")
        return self

    def contains(self, value: int) -> bool:
        return self.min <= value <= self.max


class ProviderConfig(BaseModel):
    """
    Configuration of a single backend.

    `adapter` selects the registered adapter class; it defaults to `name`
    so the stock providers need no explicit mapping.
    """
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    tier: ProviderTier
    base_url: str
    adapter: Optional[str] = None
    enabled: bool = True
    priority: int = 100
    rate_limit_ms: int = Field(default=0, ge=0)
    apply_abbreviation: bool = False

    # Usage policy
    use_for_region: bool = True
    use_for_country_wide: bool = True
    use_as_fallback: bool = False

    # Transport
    timeout_s: float = Field(default=5.0, gt=0)
    max_retries: int = Field(default=1, ge=1)
    retry_delay_s: float = Field(default=0.5, ge=0)

    # Provider specific
    api_key: Optional[str] = None
    user_agent: Optional[str] = None
    country_code: Optional[str] = None
    language: Optional[str] = None
    result_limit: int = Field(default=10, ge=1)

    @property
    def adapter_name(self) -> str:
        return (self.adapter or self.name).lower()

    @property
    def rate_limit_s(self) -> float:
        return self.rate_limit_ms / 1000.0


DEFAULT_REGION_RANGES: tuple[PostalRange, ...] = (
    PostalRange(min=80000, max=87999),
    PostalRange(min=90000, max=97999),
)


def default_providers() -> tuple[ProviderConfig, ...]:
    """The stock provider set: Bavarian geoservice, OpenPLZ and Nominatim."""
    return (
        ProviderConfig(
            name="bayern",
            tier=ProviderTier.REGIONAL,
            base_url="https://geoservices.bayern.de/services/ortssuche/v1",
            priority=1,
            apply_abbreviation=True,
            use_for_region=True,
            use_for_country_wide=False,
        ),
        ProviderConfig(
            name="openplz",
            tier=ProviderTier.COUNTRY,
            base_url="https://openplzapi.org/de",
            priority=2,
            use_for_region=True,
            use_for_country_wide=True,
        ),
        ProviderConfig(
            name="nominatim",
            tier=ProviderTier.FALLBACK,
            base_url="https://nominatim.openstreetmap.org",
            priority=3,
            rate_limit_ms=1000,
            use_for_region=False,
            use_for_country_wide=True,
            use_as_fallback=True,
            user_agent="HybridAddressSearch/11.1",
            country_code="de",
            language="de",
            result_limit=10,
        ),
    )


class EngineConfig(BaseModel):
    """Process-wide engine configuration. Immutable once loaded."""
    model_config = ConfigDict(frozen=True)

    providers: tuple[ProviderConfig, ...] = Field(default_factory=default_providers)
    region_ranges: tuple[PostalRange, ...] = DEFAULT_REGION_RANGES
    page_size: int = Field(default=50, ge=1)
    max_pages: int = Field(default=20, ge=1)
    cache_enabled: bool = True
    cache_max_entries: Optional[int] = Field(default=None, ge=1)
    min_query_length: int = Field(default=3, ge=0)
    abbreviation_enabled: bool = True

    @field_validator("providers")
    @classmethod
    def _unique_names(cls, providers: tuple[ProviderConfig, ...]) -> tuple[ProviderConfig, ...]:
        seen: set[str] = set()
        for p in providers:
            key = p.name.lower()
            if key in seen:
                raise ValueError(f"duplicate provider name '{p.name}'")
            seen.add(key)
        return providers

    @classmethod
    def load(cls, data: dict[str, Any], source: str = "engine") -> "EngineConfig":
        """Validate raw configuration data, raising ConfigValidationError on failure."""
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigValidationError.from_validation_error(source, e) from e

    def provider(self, name: str) -> ProviderConfig:
        for p in self.providers:
            if p.name.lower() == name.lower():
                return p
        raise KeyError(f"Unknown provider '{name}'. Known providers: {[p.name for p in self.providers]}")

    def with_provider(self, name: str, **changes: Any) -> "EngineConfig":
        """Return a copy with one provider's fields replaced."""
        target = self.provider(name)
        providers = tuple(
            p.model_copy(update=changes) if p is target else p
            for p in self.providers
        )
        return self.model_copy(update={"providers": providers})

    # --- Environment helpers -------------------------------------------------
    @staticmethod
    def _env_var_candidates() -> list[str]:
        """Prioritized environment variable names holding the regional API key."""
        return [
            "HYBRID_SEARCH_BAYERN_API_KEY",
            "BAYERN_API_KEY",
            "ORTSSUCHE_API_KEY",
        ]

    @staticmethod
    def _read_key_from_file(path: str) -> Optional[str]:
        try:
            with open(path, "r", encoding="utf8") as fh:
                return fh.read().strip() or None
        except OSError as e:
            logger.warning(f"Could not read API key file {path}: {e}")
            return None

    @classmethod
    def resolve_api_key(cls) -> Optional[str]:
        """
        Resolve the regional provider API key.

        Priority:
        1. environment variables (candidates returned by `_env_var_candidates`)
        2. file path in env `BAYERN_API_KEY_FILE`
        3. None
        """
        load_dotenv(find_dotenv(usecwd=True), override=False)
        for name in cls._env_var_candidates():
            val = os.getenv(name)
            if val:
                return val.strip()

        key_file = os.getenv("BAYERN_API_KEY_FILE")
        if key_file:
            return cls._read_key_from_file(key_file)
        return None

    @classmethod
    def from_env(cls, **overrides: Any) -> "EngineConfig":
        """Build a config from `Settings` plus programmatic overrides."""
        try:
            settings = Settings()
        except ValidationError as e:
            raise ConfigValidationError.from_validation_error("environment", e) from e
        config = settings.to_engine_config()
        if overrides:
            data = config.model_dump()
            data.update(overrides)
            config = cls.load(data, source="overrides")
        return config


class Settings(BaseSettings):
    """Deployment settings read from `HYBRID_SEARCH_*` variables or `.env`."""
    model_config = SettingsConfigDict(env_prefix="HYBRID_SEARCH_", env_file=".env", extra="ignore")

    bayern_api_key: Optional[str] = None
    bayern_enabled: bool = True
    openplz_enabled: bool = True
    nominatim_enabled: bool = True
    nominatim_user_agent: str = "HybridAddressSearch/11.1"
    nominatim_country_code: str = "de"
    nominatim_rate_limit_ms: int = 1000
    page_size: int = 50
    max_pages: int = 20
    cache_enabled: bool = True
    cache_max_entries: Optional[int] = None
    min_query_length: int = 3
    abbreviation_enabled: bool = True
    key_file: Optional[Path] = None

    def to_engine_config(self) -> EngineConfig:
        api_key = self.bayern_api_key
        if not api_key and self.key_file:
            api_key = EngineConfig._read_key_from_file(str(self.key_file))
        if not api_key:
            api_key = EngineConfig.resolve_api_key()

        providers = []
        for p in default_providers():
            if p.name == "bayern":
                p = p.model_copy(update={"enabled": self.bayern_enabled, "api_key": api_key})
            elif p.name == "openplz":
                p = p.model_copy(update={"enabled": self.openplz_enabled})
            elif p.name == "nominatim":
                p = p.model_copy(update={
                    "enabled": self.nominatim_enabled,
                    "user_agent": self.nominatim_user_agent,
                    "country_code": self.nominatim_country_code,
                    "rate_limit_ms": self.nominatim_rate_limit_ms,
                })
            providers.append(p)

        return EngineConfig.load(
            {
                "providers": [p.model_dump() for p in providers],
                "page_size": self.page_size,
                "max_pages": self.max_pages,
                "cache_enabled": self.cache_enabled,
                "cache_max_entries": self.cache_max_entries,
                "min_query_length": self.min_query_length,
                "abbreviation_enabled": self.abbreviation_enabled,
            },
            source="settings",
        )
