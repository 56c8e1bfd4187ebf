"""
Bundle Generator — assembles and ranks budget-fitting, multi-item gift bundles.

Consumes ranked CandidateVariants and runs four packing strategies in
sequence, all appending to one accumulator so later strategies avoid
variants (and exact item sets) already used in this call:

1. Balanced — greedy packs of 3-4 items (always runs as the baseline)
2. Hero — one item at 30-60% of budget plus 1-2 companions
   (when budget_strategy == "hero", or as a top-up below 2 bundles)
3. Stocking — greedy packs of 4-6 items each <= 25% of budget
   (when budget_strategy == "stocking", or when nothing was built yet)
4. Single item — up to 3 one-item bundles at 80-100% of budget or within
   tolerance above it (only when strategies 1-3 produced nothing)

Each strategy's item count is further capped at BundleConfig.max_items.

Every accepted item set is finalized (price block, diversity score, theme
tags, content-addressed id) and the result is ranked by a weighted score
of relevance, budget fit, diversity, novelty and inventory health.

Packing is first-fit over the candidates' relevance order: the same
input always yields the same bundles in the same order, and among equally
relevant candidates the one earlier in the input wins.
"""

import hashlib
import logging
from typing import Optional

from giftfinder.core.config import DEFAULT_MAX_BUNDLES
from giftfinder.models.gift_finder import (
    BundleConfig,
    BundleItem,
    BundlePrice,
    BundleScoreWeights,
    CandidateVariant,
    GiftIntent,
    PartialBundle,
)
from giftfinder.models.signals import parse_tag

logger = logging.getLogger(__name__)

# --- Strategy constants ---
BALANCED_ATTEMPTS = 3
BALANCED_MIN_ITEMS = 3
BALANCED_MAX_ITEMS = 4

HERO_TARGET_COUNT = 2
HERO_MIN_PRICE_RATIO = 0.3
HERO_MAX_PRICE_RATIO = 0.6
HERO_MAX_ITEMS = 3
HERO_COMPANION_SLACK = 0.05  # companions may exceed the remaining budget by 5%
MIN_COMPANION_PRICE = 5.0

STOCKING_ATTEMPTS = 1
STOCKING_MAX_PRICE_RATIO = 0.25
STOCKING_MIN_ITEMS = 4
STOCKING_MAX_ITEMS = 6

SINGLE_ITEM_LIMIT = 3
SINGLE_ITEM_MIN_PRICE_RATIO = 0.8
SINGLE_ITEM_DIVERSITY = 0.2

# --- Greedy packer constants ---
MAX_ITEMS_PER_CATEGORY = 2
EARLY_EXIT_BUDGET_RATIO = 0.7  # stop once min items reached and >= 70% spent
MIN_BUDGET_UTILIZATION = 0.3  # reject packs spending < 30% of budget

MAX_THEME_TAGS = 5
NEUTRAL_ITEM_REASON = "Complements the bundle"


# ======================================================================
# Pure helpers
# ======================================================================

def get_price_range(price: float) -> str:
    """Coarse price bucket used by the diversity score."""
    if price < 15:
        return "low"
    if price < 40:
        return "mid"
    if price < 80:
        return "high"
    return "premium"


def generate_bundle_id(variant_ids: list[str], budget: float) -> str:
    """
    Content-addressed bundle id.

    The same set of variants under the same budget always yields the same
    id, regardless of item order.
    """
    base = "-".join(sorted(variant_ids)) + f"-{float(budget):.2f}"
    digest = hashlib.sha256(base.encode("utf-8")).hexdigest()[:16]
    return f"bundle_{digest}"


def calculate_diversity_score(items: list[CandidateVariant]) -> float:
    """
    Diversity in [0, 1] from category, price range and tag variety.

    0.5 x distinct categories / n
    + 0.3 x distinct price ranges / n
    + 0.2 x min(distinct tags / (3n), 1)

    A bundle of one item (or none) scores a flat 0.2.
    """
    if len(items) <= 1:
        return SINGLE_ITEM_DIVERSITY

    count = len(items)
    categories = {item.category for item in items}
    price_ranges = {get_price_range(item.price_value) for item in items}
    tags = {tag for item in items for tag in item.product.tags}

    score = (
        0.5 * (len(categories) / count)
        + 0.3 * (len(price_ranges) / count)
        + 0.2 * min(len(tags) / (count * 3), 1.0)
    )
    return round(min(max(score, 0.0), 1.0), 4)


def extract_theme_tags(items: list[CandidateVariant]) -> list[str]:
    """Up to MAX_THEME_TAGS distinct interest/style/theme tags, first seen first."""
    themes: list[str] = []
    for item in items:
        for tag in item.product.tags:
            if parse_tag(tag) is not None and tag not in themes:
                themes.append(tag)
                if len(themes) >= MAX_THEME_TAGS:
                    return themes
    return themes


def _item_reason(item: CandidateVariant) -> str:
    if not item.matched_signals:
        return NEUTRAL_ITEM_REASON
    return f"Matches {', '.join(item.matched_signals)} preferences"


def calculate_budget_fit_score(total: float, budget: float) -> float:
    """
    1.0 when total is 90-100% of budget, 0.8 x ratio below that, and a
    steep linear penalty (3x the overage ratio) above budget.
    """
    ratio = total / budget
    if ratio <= 1:
        return 1.0 if ratio >= 0.9 else ratio * 0.8
    return max(0.0, 1 - (ratio - 1) * 3)


def calculate_relevance_score(bundle: PartialBundle, intent: GiftIntent) -> float:
    """
    Fraction of the intent's signals satisfied by the bundle.

    Soft preferences count when any item carries the tag; target categories
    count when any item's title or tags contain the category text. With no
    signals to match the score is a neutral 0.5.
    """
    total_possible = len(intent.soft_prefs) + len(intent.target_categories)
    if total_possible == 0:
        return 0.5

    all_tags = [tag for item in bundle.items for tag in item.tags]
    score = 0
    for pref in intent.soft_prefs:
        if str(pref) in all_tags:
            score += 1

    for category in intent.target_categories:
        needle = category.lower()
        if any(
            needle in item.title.lower()
            or any(needle in tag.lower() for tag in item.tags)
            for item in bundle.items
        ):
            score += 1

    return min(score / total_possible, 1.0)


# ======================================================================
# BundleGenerator
# ======================================================================

class BundleGenerator:
    """
    Gift bundle assembly engine.

    Usage:
        generator = BundleGenerator()
        bundles = generator.assemble_bundles(
            candidates=ranked_candidates,
            budget=75,
            intent=intent,
            max_bundles=6,
        )
    """

    def __init__(
        self,
        config: Optional[BundleConfig] = None,
        weights: Optional[BundleScoreWeights] = None,
    ):
        self.config = config or BundleConfig()
        self.weights = weights or BundleScoreWeights()

    def assemble_bundles(
        self,
        candidates: list[CandidateVariant],
        budget: float,
        intent: GiftIntent,
        max_bundles: int = DEFAULT_MAX_BUNDLES,
    ) -> list[PartialBundle]:
        """
        Build, rank and truncate partial bundles.

        Args:
            candidates: Candidates sorted by relevance (Candidate Scorer output).
            budget: Positive budget in request currency units.
            intent: The request's GiftIntent (selects the dominant strategy).
            max_bundles: Maximum number of bundles returned.

        Returns:
            Up to max_bundles PartialBundles, best first.
        """
        if budget <= 0:
            raise ValueError(f"budget must be positive, got {budget}")

        bundles: list[PartialBundle] = []
        strategy = intent.budget_strategy

        self._create_balanced_bundles(candidates, budget, bundles)

        if strategy == "hero" or len(bundles) < 2:
            self._create_hero_bundles(candidates, budget, bundles)

        if strategy == "stocking" or len(bundles) < 1:
            self._create_stocking_bundles(candidates, budget, bundles)

        if not bundles:
            self._create_single_item_bundles(candidates, budget, bundles)

        ranked = self.score_and_rank_bundles(bundles, intent, budget)

        logger.info(
            "Assembled %d bundles (strategy=%s, budget=%.2f, %d candidates); "
            "returning %d",
            len(ranked), strategy, budget, len(candidates),
            min(len(ranked), max_bundles),
        )
        return ranked[:max_bundles]

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def _create_balanced_bundles(
        self,
        candidates: list[CandidateVariant],
        budget: float,
        bundles: list[PartialBundle],
    ) -> None:
        """Up to BALANCED_ATTEMPTS greedy packs of 3-4 items."""
        for _ in range(BALANCED_ATTEMPTS):
            bundle = self._greedy_pack_bundle(
                candidates, budget, BALANCED_MIN_ITEMS,
                min(BALANCED_MAX_ITEMS, self.config.max_items), bundles,
            )
            if bundle is None:
                break
            self._accept(bundle, bundles, "balanced")

    def _create_hero_bundles(
        self,
        candidates: list[CandidateVariant],
        budget: float,
        bundles: list[PartialBundle],
    ) -> None:
        """One hero at 30-60% of budget plus 1-2 companions that fit the rest."""
        heroes = [
            c for c in candidates
            if budget * HERO_MIN_PRICE_RATIO <= c.price_value <= budget * HERO_MAX_PRICE_RATIO
        ]

        added = 0
        for hero in heroes[:HERO_TARGET_COUNT * 2]:
            remaining_budget = budget - hero.price_value
            companions = [
                c for c in candidates
                if c.variant.id != hero.variant.id
                and MIN_COMPANION_PRICE <= c.price_value <= remaining_budget
            ]

            bundle = self._build_hero_bundle(hero, companions, remaining_budget)
            if bundle is not None and self._is_valid_bundle(bundle, budget):
                if self._accept(bundle, bundles, "hero"):
                    added += 1

            if added >= HERO_TARGET_COUNT:
                break

    def _create_stocking_bundles(
        self,
        candidates: list[CandidateVariant],
        budget: float,
        bundles: list[PartialBundle],
    ) -> None:
        """Greedy packs of 4-6 small items, each <= 25% of budget."""
        small_items = [
            c for c in candidates if c.price_value <= budget * STOCKING_MAX_PRICE_RATIO
        ]
        for _ in range(STOCKING_ATTEMPTS):
            bundle = self._greedy_pack_bundle(
                small_items, budget, STOCKING_MIN_ITEMS,
                min(STOCKING_MAX_ITEMS, self.config.max_items), bundles,
            )
            if bundle is None:
                break
            self._accept(bundle, bundles, "stocking")

    def _create_single_item_bundles(
        self,
        candidates: list[CandidateVariant],
        budget: float,
        bundles: list[PartialBundle],
    ) -> None:
        """Last resort: premium single items near the budget."""
        premium = [
            c for c in candidates
            if budget * SINGLE_ITEM_MIN_PRICE_RATIO <= c.price_value <= budget
        ]
        near_budget = [
            c for c in candidates
            if budget < c.price_value <= budget * (1 + self.config.budget_tolerance)
        ]

        for item in (premium + near_budget)[:SINGLE_ITEM_LIMIT]:
            bundle = self._build_bundle_from_items(
                [item],
                budget,
                reason=f"Premium {item.category} item that matches the gift intent",
            )
            self._accept(bundle, bundles, "single_item")

    # ------------------------------------------------------------------
    # Packing
    # ------------------------------------------------------------------

    def _greedy_pack_bundle(
        self,
        candidates: list[CandidateVariant],
        budget: float,
        min_items: int,
        max_items: int,
        existing_bundles: list[PartialBundle],
    ) -> Optional[PartialBundle]:
        """
        First-fit packing over candidates in relevance order.

        Skips variants used by earlier bundles in this call, items that
        would exceed the budget or max_items, and a third item from the
        same category. Stops early once min_items are packed and 70% of
        the budget is spent.

        Returns:
            The finalized bundle, or None when fewer than min_items were
            packed or less than 30% of the budget was spent.
        """
        used_variant_ids = {
            variant_id
            for bundle in existing_bundles
            for variant_id in bundle.variant_ids
        }

        selected: list[CandidateVariant] = []
        category_counts: dict[str, int] = {}
        current_total = 0.0

        for candidate in candidates:
            if candidate.variant.id in used_variant_ids:
                continue
            if len(selected) >= max_items:
                break
            if current_total + candidate.price_value > budget:
                continue
            if category_counts.get(candidate.category, 0) >= MAX_ITEMS_PER_CATEGORY:
                continue

            selected.append(candidate)
            used_variant_ids.add(candidate.variant.id)
            category_counts[candidate.category] = category_counts.get(candidate.category, 0) + 1
            current_total += candidate.price_value

            if (
                len(selected) >= min_items
                and current_total >= budget * EARLY_EXIT_BUDGET_RATIO
            ):
                break

        if len(selected) < min_items or current_total < budget * MIN_BUDGET_UTILIZATION:
            logger.debug(
                "Greedy pack rejected: %d items (min %d), total %.2f of %.2f",
                len(selected), min_items, current_total, budget,
            )
            return None

        return self._build_bundle_from_items(selected, budget)

    def _build_hero_bundle(
        self,
        hero: CandidateVariant,
        companions: list[CandidateVariant],
        remaining_budget: float,
    ) -> Optional[PartialBundle]:
        """Hero plus up to two companions within the remaining budget (+5%)."""
        selected = [hero]
        companion_total = 0.0
        companion_ceiling = remaining_budget * (1 + HERO_COMPANION_SLACK)

        for companion in companions:
            if companion_total + companion.price_value <= companion_ceiling:
                selected.append(companion)
                companion_total += companion.price_value
                if len(selected) >= min(HERO_MAX_ITEMS, self.config.max_items):
                    break

        if len(selected) < 2:
            return None

        return self._build_bundle_from_items(
            selected, hero.price_value + remaining_budget,
        )

    def _build_bundle_from_items(
        self,
        items: list[CandidateVariant],
        budget: float,
        reason: Optional[str] = None,
    ) -> PartialBundle:
        """Finalize an accepted item set into a PartialBundle."""
        bundle_items = [
            BundleItem(
                product_id=item.product.id,
                variant_id=item.variant.id,
                title=item.product.title,
                image=item.product.best_image_url(item.variant),
                quantity=1,
                unit_price=item.price_value,
                tags=list(item.product.tags),
                reasons=reason or _item_reason(item),
            )
            for item in items
        ]

        subtotal = round(sum(item.unit_price for item in bundle_items), 2)
        return PartialBundle(
            id=generate_bundle_id([item.variant_id for item in bundle_items], budget),
            items=bundle_items,
            price=BundlePrice(
                subtotal=subtotal,
                total=subtotal,
                near_budget=subtotal > budget,
            ),
            diversity_score=calculate_diversity_score(items),
            theme_tags=extract_theme_tags(items),
        )

    def _is_valid_bundle(self, bundle: PartialBundle, budget: float) -> bool:
        if len(bundle.items) < self.config.min_items:
            return False
        within_budget = bundle.price.total <= budget * (1 + self.config.budget_tolerance)
        meets_minimum = bundle.price.total >= budget * MIN_BUDGET_UTILIZATION
        return within_budget and meets_minimum

    @staticmethod
    def _accept(
        bundle: PartialBundle,
        bundles: list[PartialBundle],
        strategy: str,
    ) -> bool:
        """Append unless an accepted bundle already has the same variant set."""
        variant_set = frozenset(bundle.variant_ids)
        if len(variant_set) != len(bundle.items):
            logger.warning("Dropping %s bundle with duplicate variants", strategy)
            return False
        if any(frozenset(b.variant_ids) == variant_set for b in bundles):
            logger.debug("Skipping duplicate %s bundle %s", strategy, bundle.id)
            return False

        bundles.append(bundle)
        logger.debug(
            "Accepted %s bundle %s: %d items, total %.2f, diversity %.2f",
            strategy, bundle.id, len(bundle.items), bundle.price.total,
            bundle.diversity_score,
        )
        return True

    # ------------------------------------------------------------------
    # Ranking
    # ------------------------------------------------------------------

    def calculate_bundle_score(
        self,
        bundle: PartialBundle,
        intent: GiftIntent,
        budget: float,
    ) -> float:
        """Weighted composite score; not exposed in the final output."""
        if not bundle.items:
            return 0.0

        relevance = calculate_relevance_score(bundle, intent)
        budget_fit = calculate_budget_fit_score(bundle.price.total, budget)
        novelty = min(len(bundle.items) / 4, 1.0)
        # Surviving candidates are assumed purchasable.
        inventory = 1.0

        return (
            relevance * self.weights.relevance
            + budget_fit * self.weights.budget_fit
            + bundle.diversity_score * self.weights.diversity
            + novelty * self.weights.novelty
            + inventory * self.weights.inventory
        )

    def score_and_rank_bundles(
        self,
        bundles: list[PartialBundle],
        intent: GiftIntent,
        budget: float,
    ) -> list[PartialBundle]:
        """Sort by composite score, descending; ties keep assembly order."""
        scored = [
            (self.calculate_bundle_score(bundle, intent, budget), bundle)
            for bundle in bundles
        ]
        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [bundle for _, bundle in scored]
