"""
Candidate Scoring Tests

Tests that filter_and_score_variants:
1. Picks the first available variant (else the first variant)
2. Drops products priced above 90% of the budget
3. Scores soft preferences, category matches and the mid-range price band
4. Coarsens categories into beverages / home / style buckets
5. Sorts by relevance descending with stable ties

Run with: pytest tests/test_candidate_scoring.py -v
"""

import pytest

from giftfinder.agents.scoring import (
    categorize_product,
    filter_and_score_variants,
    select_best_variant,
)
from giftfinder.models.gift_finder import (
    CandidateScoringWeights,
    GiftIntent,
    Money,
    Product,
    ProductVariant,
)


# ======================================================================
# Sample data factories
# ======================================================================

def _sample_variant(variant_id: str, price: float, available: bool = True) -> ProductVariant:
    return ProductVariant(
        id=variant_id, price=Money(amount=price), available_for_sale=available,
    )


def _sample_product(
    number: int,
    price: float,
    title: str | None = None,
    product_type: str = "",
    tags: list[str] | None = None,
) -> Product:
    return Product(
        id=f"p{number}",
        title=title or f"Product {number}",
        product_type=product_type,
        tags=tags or [],
        variants=[_sample_variant(f"v{number}", price)],
    )


# ======================================================================
# Variant selection and categories
# ======================================================================

class TestVariantSelection:
    def test_prefers_first_available(self):
        product = Product(
            id="p", title="P",
            variants=[
                _sample_variant("sold-out", 10, available=False),
                _sample_variant("in-stock", 12),
            ],
        )
        assert select_best_variant(product).id == "in-stock"

    def test_falls_back_to_first_variant(self):
        product = Product(
            id="p", title="P",
            variants=[
                _sample_variant("a", 10, available=False),
                _sample_variant("b", 12, available=False),
            ],
        )
        assert select_best_variant(product).id == "a"

    def test_no_variants(self):
        assert select_best_variant(Product(id="p", title="P")) is None


class TestCategorize:
    def test_tea_by_tag_or_title(self):
        assert categorize_product(_sample_product(1, 10, tags=["interest:tea"])) == "beverages"
        assert categorize_product(_sample_product(2, 10, title="Green Tea Tin")) == "beverages"

    def test_cozy_and_home(self):
        assert categorize_product(_sample_product(1, 10, tags=["theme:cozy"])) == "home"
        assert categorize_product(_sample_product(2, 10, tags=["home"])) == "home"

    def test_minimal_style(self):
        assert categorize_product(_sample_product(1, 10, tags=["style:minimal"])) == "style"

    def test_product_type_or_general(self):
        assert categorize_product(_sample_product(1, 10, product_type="Jewelry")) == "Jewelry"
        assert categorize_product(_sample_product(2, 10)) == "general"


# ======================================================================
# Scoring
# ======================================================================

class TestFilterAndScore:
    def test_price_ceiling_is_90_percent(self):
        products = [_sample_product(1, 45), _sample_product(2, 45.01)]
        candidates = filter_and_score_variants(products, GiftIntent(), 50)
        assert [c.variant.id for c in candidates] == ["v1"]

    def test_additive_score(self):
        product = _sample_product(
            1, 20, title="Ceramic Mug", product_type="Tea Accessories",
            tags=["interest:tea", "style:minimal"],
        )
        intent = GiftIntent(
            soft_prefs=["interest:tea", "style:minimal", "theme:cozy"],
            target_categories=["mug", "tea"],
        )
        [candidate] = filter_and_score_variants([product], intent, 100)

        # 2 soft prefs + one category hit + price band (0.2 of budget)
        assert candidate.relevance_score == pytest.approx(0.3 * 2 + 0.2 + 0.1)
        assert candidate.matched_signals == [
            "interest:tea", "style:minimal", "category_match",
        ]
        assert candidate.price_value == 20

    def test_price_band_bounds_are_exclusive(self):
        products = [_sample_product(1, 10), _sample_product(2, 60), _sample_product(3, 30)]
        candidates = filter_and_score_variants(products, GiftIntent(), 100)
        scores = {c.variant.id: c.relevance_score for c in candidates}
        assert scores == {"v1": 0.0, "v2": 0.0, "v3": pytest.approx(0.1)}

    def test_sorted_descending_with_stable_ties(self):
        products = [
            _sample_product(1, 5),
            _sample_product(2, 5, tags=["interest:tea"]),
            _sample_product(3, 5),
        ]
        intent = GiftIntent(soft_prefs=["interest:tea"])
        candidates = filter_and_score_variants(products, intent, 100)
        assert [c.variant.id for c in candidates] == ["v2", "v1", "v3"]

    def test_custom_weights(self):
        product = _sample_product(1, 20, tags=["interest:tea"])
        intent = GiftIntent(soft_prefs=["interest:tea"])
        weights = CandidateScoringWeights(soft_pref=1.0, category_match=0, price_band=0)
        [candidate] = filter_and_score_variants([product], intent, 100, weights)
        assert candidate.relevance_score == 1.0

    def test_empty_input(self):
        assert filter_and_score_variants([], GiftIntent(), 50) == []
