"""
Candidate Scoring — turns raw catalog products into ranked CandidateVariants.

For each product:
1. Picks the best variant (first available-for-sale, else the first variant)
2. Rejects the product if that variant costs more than 90% of the budget
   (leaves headroom for multi-item bundles)
3. Scores relevance additively against the GiftIntent's soft preferences,
   target categories, and a mid-range price band
4. Assigns a coarse diversity category (beverages / home / style) when
   tag or title patterns match, else the catalog product type

Hard-constraint exclusion is done upstream by the catalog query; this
module only scores and applies the price ceiling.
"""

import logging
from typing import Optional

from giftfinder.models.gift_finder import (
    CandidateScoringWeights,
    CandidateVariant,
    GiftIntent,
    Product,
    ProductVariant,
)
from giftfinder.models.signals import Style, Theme, parse_tag

logger = logging.getLogger(__name__)

# --- Constants ---
MAX_PRICE_RATIO = 0.9  # variant price must be <= 90% of budget
PRICE_BAND = (0.1, 0.6)  # exclusive bounds of the "mid-range" bonus
CATEGORY_MATCH_SIGNAL = "category_match"
DEFAULT_CATEGORY = "general"


# ======================================================================
# Variant selection and categorization
# ======================================================================

def select_best_variant(product: Product) -> Optional[ProductVariant]:
    """
    First variant flagged available-for-sale; if none, the first variant.

    Returns None for a product without variants.
    """
    for variant in product.variants:
        if variant.available_for_sale:
            return variant
    return product.variants[0] if product.variants else None


def categorize_product(product: Product) -> str:
    """
    Assign the diversity bucket used by bundle assembly.

    Visually or thematically similar products are collapsed into one
    bucket even when the catalog product type differs:
    - "beverages": tagged interest:tea, or "tea" in the title
    - "home": tagged theme:cozy, or carries the plain "home" tag
    - "style": tagged style:minimal (or a bare "style:" tag)

    Otherwise the product type, or "general" when it is empty.
    """
    signals = {parse_tag(tag) for tag in product.tags} - {None}

    if "interest:tea" in product.tags or "tea" in product.title.lower():
        return "beverages"
    if Theme(tag="cozy") in signals or "home" in product.tags:
        return "home"
    if Style(tag="minimal") in signals or Style(tag="") in signals:
        return "style"
    return product.product_type or DEFAULT_CATEGORY


# ======================================================================
# Relevance scoring
# ======================================================================

def _score_relevance(
    product: Product,
    price_value: float,
    intent: GiftIntent,
    budget: float,
    weights: CandidateScoringWeights,
) -> tuple[float, list[str]]:
    """
    Additive relevance score for one product.

    - +weights.soft_pref per soft preference present in the product tags
    - +weights.category_match once if any target category is a
      case-insensitive substring of the product type or title
    - +weights.price_band if price / budget falls strictly inside PRICE_BAND

    Returns:
        (score, matched_signals). Matched soft prefs are reported by their
        canonical tag; a category hit adds "category_match".
    """
    score = 0.0
    matched: list[str] = []
    tags = set(product.tags)

    for pref in intent.soft_prefs:
        tag = str(pref)
        if tag in tags:
            score += weights.soft_pref
            matched.append(tag)

    product_type = product.product_type.lower()
    title = product.title.lower()
    for category in intent.target_categories:
        needle = category.strip().lower()
        if needle and (needle in product_type or needle in title):
            score += weights.category_match
            matched.append(CATEGORY_MATCH_SIGNAL)
            break

    ratio = price_value / budget
    if PRICE_BAND[0] < ratio < PRICE_BAND[1]:
        score += weights.price_band

    return score, matched


# ======================================================================
# Public entry point
# ======================================================================

def filter_and_score_variants(
    products: list[Product],
    intent: GiftIntent,
    budget: float,
    weights: Optional[CandidateScoringWeights] = None,
) -> list[CandidateVariant]:
    """
    Convert catalog products into ranked, budget-admissible candidates.

    Args:
        products: Catalog products (each expected to have >= 1 variant).
        intent: The request's GiftIntent.
        budget: Positive budget in request currency units.
        weights: Optional override of the relevance bonuses.

    Returns:
        Candidates sorted by relevance_score descending. Ties keep the
        input order (Python's sort is stable).
    """
    weights = weights or CandidateScoringWeights()
    candidates: list[CandidateVariant] = []
    too_expensive = 0

    for product in products:
        variant = select_best_variant(product)
        if variant is None:
            logger.debug("Skipping product '%s' with no variants", product.title)
            continue

        price_value = variant.price.amount
        if price_value > budget * MAX_PRICE_RATIO:
            too_expensive += 1
            continue

        score, matched = _score_relevance(
            product, price_value, intent, budget, weights,
        )
        candidates.append(
            CandidateVariant(
                product=product,
                variant=variant,
                relevance_score=score,
                category=categorize_product(product),
                price_value=price_value,
                matched_signals=matched,
            )
        )

    ranked = sorted(candidates, key=lambda c: c.relevance_score, reverse=True)

    logger.info(
        "Scored %d candidates from %d products (%d over %.0f%% of budget %.2f)",
        len(ranked), len(products), too_expensive, MAX_PRICE_RATIO * 100, budget,
    )
    return ranked
