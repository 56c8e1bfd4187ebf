"""
Gift Finder Context — collaborators and shared state injected into the engine.

Holds the LLM and catalog collaborators, the shared cache, the bundle
generator and scoring weights. Tests build their own context with mocks;
the application uses build_default_context(), which picks real or local
collaborators depending on configured credentials.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from giftfinder.agents.bundling import BundleGenerator
from giftfinder.core.config import (
    CACHE_TTL_CATALOG_SECONDS,
    CACHE_TTL_INTENT_SECONDS,
    is_llm_configured,
    is_shopify_configured,
)
from giftfinder.models.gift_finder import CandidateScoringWeights
from giftfinder.services.cache import CacheService
from giftfinder.services.integrations.mock_catalog import MockCatalogService
from giftfinder.services.integrations.shopify import CatalogService, ShopifyCatalogService
from giftfinder.services.llm import ClaudeGiftLLM, GiftLLM, RuleBasedGiftLLM

logger = logging.getLogger(__name__)


@dataclass
class GiftFinderContext:
    llm: GiftLLM
    catalog: CatalogService
    cache: Optional[CacheService] = field(default_factory=CacheService)
    generator: BundleGenerator = field(default_factory=BundleGenerator)
    scoring_weights: CandidateScoringWeights = field(
        default_factory=CandidateScoringWeights,
    )
    intent_ttl_seconds: float = CACHE_TTL_INTENT_SECONDS
    catalog_ttl_seconds: float = CACHE_TTL_CATALOG_SECONDS


def build_default_context() -> GiftFinderContext:
    """
    Context for the running application.

    - Claude when ANTHROPIC_API_KEY is set, else the rule-based LLM
    - Shopify when the Storefront credentials are set, else the sample catalog
    """
    if is_llm_configured():
        llm: GiftLLM = ClaudeGiftLLM()
    else:
        logger.warning("Anthropic API key not configured — using rule-based intent extraction")
        llm = RuleBasedGiftLLM()

    if is_shopify_configured():
        catalog: CatalogService = ShopifyCatalogService()
    else:
        logger.warning("Shopify Storefront API not configured — using sample catalog")
        catalog = MockCatalogService()

    return GiftFinderContext(llm=llm, catalog=catalog)
