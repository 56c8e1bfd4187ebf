"""
Gift Finder Models — Pydantic schemas for the budget-aware gift bundle engine.

Defines the data that flows through the bundle pipeline:
1. RecipientProfile + prompt + budget (GiftFinderRequest) — caller input
2. GiftIntent — normalized signals extracted by the LLM collaborator
3. Product / ProductVariant — raw catalog records from the catalog collaborator
4. CandidateVariant — scored, budget-admissible variants (Candidate Scorer)
5. PartialBundle — assembled, ranked bundles before enrichment (Bundle Generator)
6. GiftBundle — enriched bundles with title and rationale
7. GiftFinderResult — terminal output with diagnostics

Also holds the engine's exception hierarchy and the tunable weight models.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from giftfinder.core.config import (
    BUDGET_TOLERANCE,
    MAX_BUDGET,
    MAX_BUNDLE_ITEMS,
    MIN_BUNDLE_ITEMS,
)
from giftfinder.models.signals import (
    AllergenExclusion,
    Exclusion,
    HardSignal,
    SoftSignal,
    coerce_signal,
    parse_hard_signal,
    parse_soft_signal,
)

BudgetStrategy = Literal["hero", "balanced", "stocking"]

PLACEHOLDER_IMAGE_URL = "https://via.placeholder.com/300x300?text=No+Image"


# ======================================================================
# Errors
# ======================================================================

class GiftFinderError(Exception):
    """Base class for gift finder errors."""


class InvalidGiftRequestError(GiftFinderError, ValueError):
    """Request input is invalid; raised before any collaborator is called."""


class CatalogSearchError(GiftFinderError):
    """The catalog collaborator failed to return products."""


class LLMResponseError(GiftFinderError):
    """The LLM collaborator returned an empty or unparseable response."""


# ======================================================================
# Recipient profile and intent
# ======================================================================

class RecipientProfile(BaseModel):
    """
    Optional attributes describing a gift recipient.

    No field is required; an absent field means "unconstrained".
    """

    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    relationship: Optional[
        Literal["partner", "parent", "sibling", "friend", "coworker", "other"]
    ] = None
    age_range: Optional[
        Literal["teen", "20s", "30s", "40s", "50s", "60plus"]
    ] = None
    gender_presentation: Optional[
        Literal["masc", "fem", "neutral", "unknown"]
    ] = None
    interests: list[str] = Field(default_factory=list)
    style: list[str] = Field(default_factory=list)
    dislikes: list[str] = Field(default_factory=list)
    allergies: list[str] = Field(default_factory=list)
    constraints: list[str] = Field(default_factory=list)
    sizes: Optional[dict[str, str]] = None
    location_climate: Optional[
        Literal["cold", "temperate", "hot", "mixed", "unknown"]
    ] = None
    notes: Optional[str] = None


class GiftIntent(BaseModel):
    """
    Normalized signal set derived from a profile + prompt + budget.

    Accepts the prefixed string convention ("no:x", "interest:x") on input
    and stores parsed Signal variants.
    """

    model_config = ConfigDict(frozen=True)

    hard_constraints: list[HardSignal] = Field(default_factory=list)
    soft_prefs: list[SoftSignal] = Field(default_factory=list)
    target_categories: list[str] = Field(default_factory=list)
    budget_strategy: BudgetStrategy = "balanced"

    @field_validator("hard_constraints", mode="before")
    @classmethod
    def _parse_hard(cls, v):
        return [coerce_signal(item, parse_hard_signal) for item in v or []]

    @field_validator("soft_prefs", mode="before")
    @classmethod
    def _parse_soft(cls, v):
        return [coerce_signal(item, parse_soft_signal) for item in v or []]

    @property
    def soft_pref_tags(self) -> list[str]:
        """Canonical tag strings of the soft preferences."""
        return [str(p) for p in self.soft_prefs]

    @property
    def excluded_tags(self) -> list[str]:
        """Catalog tags that must not appear on any product."""
        tags = []
        for constraint in self.hard_constraints:
            if isinstance(constraint, Exclusion):
                tags.append(constraint.tag)
            elif isinstance(constraint, AllergenExclusion):
                tags.append(f"allergen:{constraint.tag}")
        return tags

    def as_strings(self) -> dict:
        """Plain-string form, used for prompts and cache keys."""
        return {
            "hard_constraints": [str(c) for c in self.hard_constraints],
            "soft_prefs": self.soft_pref_tags,
            "target_categories": list(self.target_categories),
            "budget_strategy": self.budget_strategy,
        }


# ======================================================================
# Catalog records
# ======================================================================

class Money(BaseModel):
    model_config = ConfigDict(frozen=True)

    amount: float
    currency_code: str = "USD"


class ProductImage(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str


class ProductVariant(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str = ""
    price: Money
    available_for_sale: bool = True
    image: Optional[ProductImage] = None


class Product(BaseModel):
    """A catalog product with at least one variant."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    product_type: str = ""
    tags: list[str] = Field(default_factory=list)
    featured_image: Optional[ProductImage] = None
    variants: list[ProductVariant] = Field(default_factory=list)

    def best_image_url(self, variant: Optional[ProductVariant] = None) -> str:
        """Variant image, else featured image, else a placeholder."""
        if variant is not None and variant.image is not None:
            return variant.image.url
        if self.featured_image is not None:
            return self.featured_image.url
        return PLACEHOLDER_IMAGE_URL


class CandidateVariant(BaseModel):
    """A scored, budget-filtered product variant."""

    model_config = ConfigDict(frozen=True)

    product: Product
    variant: ProductVariant
    relevance_score: float = 0.0
    category: str = "general"
    price_value: float
    matched_signals: list[str] = Field(default_factory=list)


# ======================================================================
# Bundles
# ======================================================================

class BundleItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_id: str
    variant_id: str
    title: str
    image: str
    quantity: int = 1
    unit_price: float
    tags: list[str] = Field(default_factory=list)
    reasons: str = ""


class BundlePrice(BaseModel):
    model_config = ConfigDict(frozen=True)

    subtotal: float
    total: float
    near_budget: bool = False


class _BundleBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    items: list[BundleItem]
    price: BundlePrice
    diversity_score: float = Field(ge=0.0, le=1.0)
    theme_tags: list[str] = Field(default_factory=list, max_length=5)

    @property
    def variant_ids(self) -> list[str]:
        return [item.variant_id for item in self.items]


class PartialBundle(_BundleBase):
    """An assembled bundle before LLM enrichment (no title/rationale)."""

    def enrich(self, title: str, rationale: str) -> GiftBundle:
        return GiftBundle(
            **self.model_dump(),
            title=title,
            rationale=rationale,
        )


class GiftBundle(_BundleBase):
    """A final, enriched gift bundle."""

    title: str
    rationale: str


class GiftFinderDiagnostics(BaseModel):
    model_config = ConfigDict(frozen=True)

    matched_signals: list[str] = Field(default_factory=list)
    unmet_constraints: Optional[list[str]] = None
    inventory_notes: Optional[list[str]] = None


class GiftFinderResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    bundles: list[GiftBundle] = Field(default_factory=list)
    diagnostics: Optional[GiftFinderDiagnostics] = None


class GiftFinderRequest(BaseModel):
    """
    Input to the public engine entry point.

    Budget range and max_bundles are checked by the orchestrator so that
    invalid input raises InvalidGiftRequestError with a descriptive message.
    """

    profile: RecipientProfile = Field(default_factory=RecipientProfile)
    prompt: str = ""
    budget: float
    max_bundles: Optional[int] = None


# ======================================================================
# Tunables
# ======================================================================

class BundleConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    min_items: int = MIN_BUNDLE_ITEMS
    max_items: int = MAX_BUNDLE_ITEMS
    budget_tolerance: float = BUDGET_TOLERANCE


class CandidateScoringWeights(BaseModel):
    """Additive relevance bonuses applied by the Candidate Scorer."""

    model_config = ConfigDict(frozen=True)

    soft_pref: float = 0.3
    category_match: float = 0.2
    price_band: float = 0.1


class BundleScoreWeights(BaseModel):
    """Weights of the composite bundle ranking score."""

    model_config = ConfigDict(frozen=True)

    relevance: float = 0.45
    budget_fit: float = 0.25
    diversity: float = 0.15
    novelty: float = 0.10
    inventory: float = 0.05


# ======================================================================
# Validation helpers
# ======================================================================

def is_valid_budget(budget) -> bool:
    return (
        isinstance(budget, (int, float))
        and not isinstance(budget, bool)
        and 0 < budget < MAX_BUDGET
    )


def is_valid_profile(profile) -> bool:
    return isinstance(profile, RecipientProfile)
