"""
Provider selection policy.

Maps a query classification plus the provider configuration onto the
ordered list of providers a resolve call invokes.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from .config import ProviderConfig
from .models import Classification, ProviderTier

logger = logging.getLogger(__name__)

_TIER_RANK = {
    ProviderTier.REGIONAL: 0,
    ProviderTier.COUNTRY: 1,
    ProviderTier.FALLBACK: 2,
}


@dataclass(frozen=True)
class SelectionDecision:
    """Whether a provider is invoked for a classification, and why."""
    provider: str
    included: bool
    reason: str


class ProviderSelector:
    """
    Decision table over classification × region membership × usage policy.

    | postal code       | regional            | country              | fallback                              |
    |-------------------|---------------------|----------------------|---------------------------------------|
    | in region         | use_for_region      | enabled              | use_as_fallback and use_for_region    |
    | outside region    | excluded            | use_for_country_wide | use_as_fallback and use_for_country_wide |
    | none              | enabled             | excluded             | use_as_fallback                       |

    Disabled providers are never selected. Output order is tier
    (regional, country, fallback), then priority, then name.
    """

    def __init__(self, providers: Optional[Iterable[ProviderConfig]] = None):
        self.providers = tuple(providers or ())

    @staticmethod
    def _order_key(config: ProviderConfig) -> tuple[int, int, str]:
        return (_TIER_RANK[config.tier], config.priority, config.name)

    @staticmethod
    def decide(config: ProviderConfig, classification: Classification) -> SelectionDecision:
        name = config.name
        if not config.enabled:
            return SelectionDecision(name, False, "disabled")

        tier = config.tier
        if classification.has_postal_code and classification.in_region:
            if tier is ProviderTier.REGIONAL:
                return SelectionDecision(name, config.use_for_region, "regional provider for in-region postal code")
            if tier is ProviderTier.COUNTRY:
                return SelectionDecision(name, True, "country provider with postal code")
            included = config.use_as_fallback and config.use_for_region
            return SelectionDecision(name, included, "fallback for in-region postal code")

        if classification.has_postal_code:
            if tier is ProviderTier.REGIONAL:
                return SelectionDecision(name, False, "postal code outside region")
            if tier is ProviderTier.COUNTRY:
                return SelectionDecision(name, config.use_for_country_wide, "country provider outside region")
            included = config.use_as_fallback and config.use_for_country_wide
            return SelectionDecision(name, included, "fallback for out-of-region postal code")

        if tier is ProviderTier.REGIONAL:
            return SelectionDecision(name, True, "regional provider is the default without postal code")
        if tier is ProviderTier.COUNTRY:
            return SelectionDecision(name, False, "country provider requires a postal code")
        return SelectionDecision(name, config.use_as_fallback, "fallback without postal code")

    def explain(
        self,
        classification: Classification,
        configs: Optional[Iterable[ProviderConfig]] = None,
    ) -> list[SelectionDecision]:
        """Decisions for every configured provider, in invocation order."""
        pool = tuple(configs) if configs is not None else self.providers
        return [self.decide(c, classification) for c in sorted(pool, key=self._order_key)]

    def select(
        self,
        classification: Classification,
        configs: Optional[Iterable[ProviderConfig]] = None,
    ) -> list[ProviderConfig]:
        """
        Ordered providers to invoke. An empty list means no provider is
        enabled for this input.
        """
        pool = tuple(configs) if configs is not None else self.providers
        selected = []
        for config in sorted(pool, key=self._order_key):
            decision = self.decide(config, classification)
            logger.debug(f"Selection {decision.provider}: included={decision.included} ({decision.reason})")
            if decision.included:
                selected.append(config)

        logger.info(
            f"Selected providers for {classification.description}: "
            f"{[c.name for c in selected] or 'none'}"
        )
        return selected
