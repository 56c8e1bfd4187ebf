"""
Shopify Storefront API Integration — catalog search for gift bundle candidates.

Queries the Shopify Storefront API (GraphQL) for products matching a
GiftIntent and budget, and normalizes the product nodes into Product
models for the Candidate Scorer.

Hard constraints are pushed into the search query (``-tag:`` exclusions), so
the returned products are already filtered for dislikes and allergens.

Uses the Storefront Access Token for authentication (X-Shopify-Storefront-Access-Token
header). Retries HTTP 429 responses with exponential backoff; any other
failure raises CatalogSearchError so the orchestrator can engage its
fallback path.
"""

import asyncio
import logging
from typing import Any, Optional, Protocol

import httpx

from giftfinder.core.config import (
    MAX_CANDIDATES,
    SHOPIFY_STORE_DOMAIN,
    SHOPIFY_STOREFRONT_TOKEN,
)
from giftfinder.models.gift_finder import (
    CatalogSearchError,
    GiftIntent,
    Money,
    Product,
    ProductImage,
    ProductVariant,
)
from giftfinder.models.signals import AllergenExclusion, Exclusion

logger = logging.getLogger(__name__)

# ======================================================================
# Constants
# ======================================================================

API_VERSION = "2025-01"
DEFAULT_TIMEOUT = 10.0  # seconds
MAX_RETRIES = 3
MAX_PRODUCTS_PER_QUERY = 80
MAX_ITEM_BUDGET_RATIO = 0.8
MIN_COMPANION_HEADROOM = 10  # currency units left for other bundle items

GIFT_FINDER_PRODUCTS_QUERY = """
query GiftFinderProducts($query: String!, $first: Int!) {
  products(first: $first, query: $query) {
    nodes {
      id
      title
      productType
      tags
      variants(first: 5) {
        nodes {
          id
          title
          availableForSale
          price {
            amount
            currencyCode
          }
          image {
            url
          }
        }
      }
      featuredImage {
        url
      }
    }
  }
}
"""


def _build_storefront_url(domain: str) -> str:
    """
    Build the Shopify Storefront API GraphQL endpoint URL.

    Args:
        domain: Shopify store domain (e.g., "my-store.myshopify.com").
    """
    clean = domain.strip().rstrip("/")
    if clean.startswith("https://"):
        clean = clean[len("https://"):]
    elif clean.startswith("http://"):
        clean = clean[len("http://"):]
    return f"https://{clean}/api/{API_VERSION}/graphql.json"


def max_item_price(budget: float) -> float:
    """Per-item price ceiling pushed into the search query."""
    return min(budget * MAX_ITEM_BUDGET_RATIO, budget - MIN_COMPANION_HEADROOM)


def _format_price(value: float) -> str:
    return f"{value:.2f}".rstrip("0").rstrip(".")


def build_search_query(intent: GiftIntent, budget: float) -> str:
    """
    Build the Storefront search query string for an intent and budget.

    - soft preferences as an OR-group of ``tag:'<pref>'``
    - target categories as an OR-group of ``product_type:'<category>'``
    - ``-tag:'<tag>'`` per exclusion, ``-tag:'allergen:<tag>'`` per allergen
    - ``available_for_sale:true``
    - ``variants.price:<=<ceiling>`` when the ceiling is positive

    Free-text constraints are not expressible as tag filters and are left
    to the caller.
    """
    parts: list[str] = []

    if intent.soft_prefs:
        parts.append(
            "(" + " OR ".join(f"tag:'{pref}'" for pref in intent.soft_pref_tags) + ")"
        )

    if intent.target_categories:
        parts.append(
            "("
            + " OR ".join(f"product_type:'{cat}'" for cat in intent.target_categories)
            + ")"
        )

    for constraint in intent.hard_constraints:
        if isinstance(constraint, Exclusion):
            parts.append(f"-tag:'{constraint.tag}'")
        elif isinstance(constraint, AllergenExclusion):
            parts.append(f"-tag:'allergen:{constraint.tag}'")

    parts.append("available_for_sale:true")

    ceiling = max_item_price(budget)
    if ceiling > 0:
        parts.append(f"variants.price:<={_format_price(ceiling)}")

    return " ".join(parts)


def _connection_nodes(connection: Optional[dict[str, Any]]) -> list[dict[str, Any]]:
    """Flatten a GraphQL connection in either ``nodes`` or ``edges`` form."""
    if not connection:
        return []
    if "nodes" in connection:
        return connection.get("nodes") or []
    return [edge.get("node", {}) for edge in connection.get("edges") or []]


def _normalize_image(image: Optional[dict[str, Any]]) -> Optional[ProductImage]:
    if image and image.get("url"):
        return ProductImage(url=image["url"])
    return None


def normalize_product(node: dict[str, Any]) -> Optional[Product]:
    """
    Convert a Storefront product node into a Product model.

    Variants with an unparseable price are dropped; a product left with no
    variants is skipped (returns None).
    """
    variants: list[ProductVariant] = []
    for variant_node in _connection_nodes(node.get("variants")):
        price_data = variant_node.get("price") or {}
        try:
            amount = float(price_data.get("amount"))
        except (TypeError, ValueError):
            logger.debug("Skipping variant %s with invalid price", variant_node.get("id"))
            continue
        variants.append(
            ProductVariant(
                id=variant_node.get("id", ""),
                title=variant_node.get("title") or "",
                price=Money(
                    amount=amount,
                    currency_code=price_data.get("currencyCode") or "USD",
                ),
                available_for_sale=variant_node.get("availableForSale", True),
                image=_normalize_image(variant_node.get("image")),
            )
        )

    if not variants:
        return None

    return Product(
        id=node.get("id", ""),
        title=node.get("title") or "Unknown Product",
        product_type=node.get("productType") or "",
        tags=list(node.get("tags") or []),
        featured_image=_normalize_image(node.get("featuredImage")),
        variants=variants,
    )


# ======================================================================
# Catalog collaborator interface
# ======================================================================

class CatalogService(Protocol):
    """Product search collaborator used by the orchestrator."""

    async def search_candidate_products(
        self, intent: GiftIntent, budget: float,
    ) -> list[Product]: ...


# ======================================================================
# ShopifyCatalogService
# ======================================================================

class ShopifyCatalogService:
    """Catalog collaborator backed by the Shopify Storefront API."""

    def __init__(
        self,
        store_domain: str = SHOPIFY_STORE_DOMAIN,
        storefront_token: str = SHOPIFY_STOREFRONT_TOKEN,
        max_candidates: int = MAX_CANDIDATES,
    ):
        self.store_domain = store_domain
        self.storefront_token = storefront_token
        self.max_candidates = min(max_candidates, MAX_PRODUCTS_PER_QUERY)

    async def search_candidate_products(
        self, intent: GiftIntent, budget: float,
    ) -> list[Product]:
        """
        Search products for an intent and budget.

        Returns:
            Normalized products, in the order the Storefront API returned them.

        Raises:
            CatalogSearchError: Missing credentials, HTTP/GraphQL errors,
                or rate-limit retries exhausted.
        """
        if not (self.store_domain and self.storefront_token):
            raise CatalogSearchError("Shopify Storefront API is not configured")

        query = build_search_query(intent, budget)
        logger.info("Shopify search query: %s", query)

        data = await self._make_request(
            GIFT_FINDER_PRODUCTS_QUERY,
            {"query": query, "first": self.max_candidates},
        )
        nodes = _connection_nodes((data.get("data") or {}).get("products"))

        products = []
        for node in nodes:
            product = normalize_product(node)
            if product is not None:
                products.append(product)

        logger.info("Found %d candidate products", len(products))
        return products

    async def _make_request(
        self,
        query: str,
        variables: dict[str, Any],
    ) -> dict[str, Any]:
        """
        Make authenticated GraphQL POST request to the Shopify Storefront API.

        Retries on HTTP 429 and timeouts with exponential backoff.
        """
        url = _build_storefront_url(self.store_domain)
        headers = {
            "X-Shopify-Storefront-Access-Token": self.storefront_token,
            "Content-Type": "application/json",
        }
        payload = {
            "query": query,
            "variables": variables,
        }

        async with httpx.AsyncClient(timeout=DEFAULT_TIMEOUT) as client:
            for retry in range(MAX_RETRIES):
                try:
                    response = await client.post(
                        url,
                        headers=headers,
                        json=payload,
                    )

                    if response.status_code == 429:
                        delay = 2**retry
                        logger.warning(
                            "Shopify Storefront API rate limited (429), retrying in %ds "
                            "(attempt %d/%d)",
                            delay, retry + 1, MAX_RETRIES,
                        )
                        await asyncio.sleep(delay)
                        continue

                    response.raise_for_status()
                    result = response.json()

                    if "errors" in result:
                        logger.error("Shopify GraphQL errors: %s", result["errors"])
                        raise CatalogSearchError(
                            f"GraphQL errors: {result['errors']}"
                        )

                    return result

                except httpx.TimeoutException:
                    logger.warning(
                        "Shopify Storefront API timeout (attempt %d/%d)",
                        retry + 1, MAX_RETRIES,
                    )
                    if retry < MAX_RETRIES - 1:
                        await asyncio.sleep(1)
                    continue

                except httpx.HTTPStatusError as exc:
                    logger.error(
                        "Shopify Storefront API HTTP error %d: %s",
                        exc.response.status_code, exc.response.text,
                    )
                    raise CatalogSearchError(
                        f"Shopify API error: {exc.response.status_code}"
                    ) from exc

                except httpx.HTTPError as exc:
                    logger.error("Shopify Storefront API request error: %s", exc)
                    raise CatalogSearchError(f"Product search failed: {exc}") from exc

        logger.warning("Shopify Storefront API exhausted all %d retries", MAX_RETRIES)
        raise CatalogSearchError(
            f"Product search failed after {MAX_RETRIES} attempts"
        )
