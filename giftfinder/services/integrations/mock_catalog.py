"""
Mock Catalog — in-memory catalog collaborator for development and tests.

Serves a fixed set of realistic sample products through the same
``search_candidate_products(intent, budget)`` interface as the Shopify
integration. Filtering mimics the Storefront search closely enough for
local runs:
1. Keyword groups (tea / cozy / minimal) found in the built search query
   keep products matching any active group
2. Per-item price ceiling from the query builder
3. Exclusion and allergen exclusion tags are honored
4. Unavailable products are dropped
"""

import logging
from typing import Callable

from giftfinder.core.config import MAX_CANDIDATES
from giftfinder.models.gift_finder import (
    GiftIntent,
    Money,
    Product,
    ProductImage,
    ProductVariant,
)
from giftfinder.services.integrations.shopify import build_search_query, max_item_price

logger = logging.getLogger(__name__)

_IMAGE_URL = "https://images.unsplash.com/photo-{photo}?w=400&h=400&fit=crop"


def _sample_product(
    number: int,
    title: str,
    product_type: str,
    tags: list[str],
    price: float,
    variant_title: str,
    photo: str,
) -> Product:
    image = ProductImage(url=_IMAGE_URL.format(photo=photo))
    return Product(
        id=f"gid://shopify/Product/{number}",
        title=title,
        product_type=product_type,
        tags=tags,
        featured_image=image,
        variants=[
            ProductVariant(
                id=f"gid://shopify/ProductVariant/{number}",
                title=variant_title,
                price=Money(amount=price),
                available_for_sale=True,
                image=image,
            )
        ],
    )


SAMPLE_PRODUCTS: list[Product] = [
    # Tea & coffee
    _sample_product(
        1, "Organic Tea Sampler Set", "Tea",
        ["interest:tea", "organic", "theme:cozy", "allergen_free:fragrance", "gift-ready"],
        28.00, "Default Title", "1556679343-c7306c1976bc",
    ),
    _sample_product(
        2, "Ceramic Tea Mug with Infuser", "Tea Accessories",
        ["interest:tea", "style:minimal", "home", "ceramic"],
        24.00, "White", "1544787219-7f47ccb76574",
    ),
    # Home & cozy
    _sample_product(
        3, "Chunky Knit Throw Blanket", "Home Textiles",
        ["theme:cozy", "home", "comfort", "style:minimal"],
        45.00, "Cream", "1586023492125-27b2c045efd7",
    ),
    _sample_product(
        4, "Essential Oil Diffuser", "Wellness",
        ["wellness", "aromatherapy", "home", "relaxation"],
        35.00, "White", "1608571423902-eed4a5ad8108",
    ),
    # Reading
    _sample_product(
        5, "Reading Light & Book Stand", "Reading Accessories",
        ["interest:reading", "books", "study", "lighting"],
        22.00, "Default", "1481627834876-b7833e8f5570",
    ),
    _sample_product(
        6, "Leather Bookmark Set", "Stationery",
        ["interest:reading", "books", "leather", "style:classic"],
        18.00, "Brown Leather", "1507003211169-0a1dd7228f2d",
    ),
    # Skincare & wellness
    _sample_product(
        7, "Natural Face Moisturizer", "Skincare",
        ["skincare", "natural", "wellness", "allergen_free:fragrance"],
        32.00, "Unscented", "1556228720-195a672e8a03",
    ),
    # Fashion & accessories
    _sample_product(
        8, "Minimalist Silver Earrings", "Jewelry",
        ["jewelry", "style:minimal", "silver", "accessories"],
        29.00, "Silver", "1535632066927-ab7c9ab60908",
    ),
    # Tech
    _sample_product(
        9, "Wireless Phone Charger", "Tech Accessories",
        ["tech gadgets", "wireless", "convenience", "modern"],
        26.00, "Black", "1586953208448-b95a79798f07",
    ),
    # Coffee
    _sample_product(
        10, "French Press Coffee Maker", "Coffee Accessories",
        ["interest:coffee", "brewing", "home", "glass"],
        38.00, "34oz", "1559056199-641a0ac8b55e",
    ),
    # Premium
    _sample_product(
        11, "Cashmere Scarf", "Fashion Accessories",
        ["fashion", "luxury", "cashmere", "style:classic", "winter"],
        85.00, "Beige", "1601924994987-69e26d50dc26",
    ),
    # Stocking stuffers
    _sample_product(
        12, "Artisan Chocolate Bar", "Food & Snacks",
        ["chocolate", "artisan", "treats", "gift-ready"],
        12.00, "Dark 70%", "1549007953-2f2dc0b24019",
    ),
    _sample_product(
        13, "Succulent Plant in Pot", "Plants",
        ["plants", "home", "low-maintenance", "green"],
        15.00, "Small Pot", "1459411621453-7b03977f4bfc",
    ),
]

KEYWORD_FILTERS: dict[str, Callable[[Product], bool]] = {
    "tea": lambda p: "interest:tea" in p.tags or p.product_type == "Tea",
    "cozy": lambda p: "theme:cozy" in p.tags,
    "minimal": lambda p: "style:minimal" in p.tags,
}


class MockCatalogService:
    """Catalog collaborator serving SAMPLE_PRODUCTS."""

    def __init__(
        self,
        products: list[Product] | None = None,
        max_candidates: int = MAX_CANDIDATES,
    ):
        self.products = list(SAMPLE_PRODUCTS if products is None else products)
        self.max_candidates = max_candidates

    async def search_candidate_products(
        self, intent: GiftIntent, budget: float,
    ) -> list[Product]:
        query = build_search_query(intent, budget).lower()
        logger.info("Mock catalog search query: %s", query)

        active = [pred for keyword, pred in KEYWORD_FILTERS.items() if keyword in query]
        ceiling = max_item_price(budget)
        excluded = set(intent.excluded_tags)

        results = []
        for product in self.products:
            if active and not any(pred(product) for pred in active):
                continue
            if excluded.intersection(product.tags):
                continue
            if not any(v.available_for_sale for v in product.variants):
                continue
            if ceiling > 0 and product.variants[0].price.amount > ceiling:
                continue
            results.append(product)

        logger.info("Mock catalog returned %d products", len(results[: self.max_candidates]))
        return results[: self.max_candidates]
