"""
Shopify Catalog and Mock Catalog Tests

Tests that:
1. build_search_query encodes soft prefs, categories, exclusions and
   the per-item price ceiling
2. Product nodes (nodes or edges form) normalize into Product models
3. ShopifyCatalogService retries 429s and raises CatalogSearchError on
   HTTP errors, GraphQL errors and exhausted retries
4. MockCatalogService filters the sample catalog like the Storefront search

httpx.AsyncClient is mocked; no network calls are made, except in the
live tests, which run only when Shopify credentials are configured.

Run with: pytest tests/test_shopify_catalog.py -v
"""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from giftfinder.core.config import is_shopify_configured
from giftfinder.models.gift_finder import CatalogSearchError, GiftIntent, Product
from giftfinder.services.integrations.mock_catalog import (
    SAMPLE_PRODUCTS,
    MockCatalogService,
)
from giftfinder.services.integrations.shopify import (
    MAX_RETRIES,
    ShopifyCatalogService,
    _build_storefront_url,
    build_search_query,
    normalize_product,
)

STORE_URL = "https://test-store.myshopify.com/api/2025-01/graphql.json"

requires_shopify = pytest.mark.skipif(
    not is_shopify_configured(),
    reason="Shopify Storefront credentials not configured in .env",
)


# ======================================================================
# Sample data factories
# ======================================================================

def _sample_product_node(**overrides) -> dict:
    node = {
        "id": "gid://shopify/Product/1",
        "title": "Organic Tea Sampler Set",
        "productType": "Tea",
        "tags": ["interest:tea", "theme:cozy"],
        "featuredImage": {"url": "https://img/featured.jpg"},
        "variants": {
            "nodes": [
                {
                    "id": "gid://shopify/ProductVariant/1",
                    "title": "Default Title",
                    "availableForSale": True,
                    "price": {"amount": "28.00", "currencyCode": "USD"},
                    "image": None,
                }
            ]
        },
    }
    node.update(overrides)
    return node


def _graphql_response(nodes: list[dict], status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code,
        json={"data": {"products": {"nodes": nodes}}},
        request=httpx.Request("POST", STORE_URL),
    )


def _mock_client(**post_kwargs) -> AsyncMock:
    mock_client = AsyncMock()
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    mock_client.post = AsyncMock(**post_kwargs)
    return mock_client


def _service() -> ShopifyCatalogService:
    return ShopifyCatalogService(
        store_domain="test-store.myshopify.com", storefront_token="test-token",
    )


# ======================================================================
# 1. Query building
# ======================================================================

class TestBuildSearchQuery:
    def test_full_query(self):
        intent = GiftIntent(
            hard_constraints=["no:fragrance", "allergen:no:nuts", "vegan"],
            soft_prefs=["interest:tea", "theme:cozy"],
            target_categories=["mugs", "blankets"],
        )
        assert build_search_query(intent, 75) == (
            "(tag:'interest:tea' OR tag:'theme:cozy') "
            "(product_type:'mugs' OR product_type:'blankets') "
            "-tag:'fragrance' -tag:'allergen:nuts' "
            "available_for_sale:true variants.price:<=60"
        )

    def test_headroom_rule_for_small_budgets(self):
        assert build_search_query(GiftIntent(), 30).endswith("variants.price:<=20")

    def test_no_price_filter_when_ceiling_not_positive(self):
        assert build_search_query(GiftIntent(), 10) == "available_for_sale:true"

    def test_storefront_url_strips_protocol(self):
        assert _build_storefront_url("https://test-store.myshopify.com/") == STORE_URL


# ======================================================================
# 2. Normalization
# ======================================================================

class TestNormalizeProduct:
    def test_nodes_form(self):
        product = normalize_product(_sample_product_node())
        assert product.title == "Organic Tea Sampler Set"
        assert product.product_type == "Tea"
        assert product.variants[0].price.amount == 28.0
        assert product.best_image_url(product.variants[0]) == "https://img/featured.jpg"

    def test_edges_form(self):
        node = _sample_product_node(
            variants={"edges": [{"node": {
                "id": "v1", "price": {"amount": "12.5", "currencyCode": "EUR"},
            }}]},
        )
        product = normalize_product(node)
        assert product.variants[0].price.amount == 12.5
        assert product.variants[0].price.currency_code == "EUR"

    def test_skips_product_without_priced_variants(self):
        node = _sample_product_node(
            variants={"nodes": [{"id": "v1", "price": {"amount": "n/a"}}]},
        )
        assert normalize_product(node) is None


# ======================================================================
# 3. ShopifyCatalogService
# ======================================================================

class TestShopifySearch:
    async def test_returns_products(self):
        mock_client = _mock_client(return_value=_graphql_response([_sample_product_node()]))
        with patch("httpx.AsyncClient", return_value=mock_client):
            products = await _service().search_candidate_products(GiftIntent(), 75)

        assert [p.id for p in products] == ["gid://shopify/Product/1"]
        variables = mock_client.post.call_args.kwargs["json"]["variables"]
        assert variables["first"] == 80
        assert "available_for_sale:true" in variables["query"]

    async def test_sends_storefront_token(self):
        mock_client = _mock_client(return_value=_graphql_response([]))
        with patch("httpx.AsyncClient", return_value=mock_client):
            await _service().search_candidate_products(GiftIntent(), 75)
        headers = mock_client.post.call_args.kwargs["headers"]
        assert headers["X-Shopify-Storefront-Access-Token"] == "test-token"

    async def test_retries_on_429_then_succeeds(self):
        rate_limited = httpx.Response(429, request=httpx.Request("POST", STORE_URL))
        mock_client = _mock_client(
            side_effect=[rate_limited, _graphql_response([_sample_product_node()])],
        )
        with patch("httpx.AsyncClient", return_value=mock_client), \
             patch("asyncio.sleep", new_callable=AsyncMock):
            products = await _service().search_candidate_products(GiftIntent(), 75)

        assert len(products) == 1
        assert mock_client.post.call_count == 2

    async def test_exhausted_retries_raise(self):
        rate_limited = httpx.Response(429, request=httpx.Request("POST", STORE_URL))
        mock_client = _mock_client(return_value=rate_limited)
        with patch("httpx.AsyncClient", return_value=mock_client), \
             patch("asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(CatalogSearchError):
                await _service().search_candidate_products(GiftIntent(), 75)
        assert mock_client.post.call_count == MAX_RETRIES

    async def test_http_error_raises(self):
        error_response = httpx.Response(500, request=httpx.Request("POST", STORE_URL))
        mock_client = _mock_client(return_value=error_response)
        with patch("httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(CatalogSearchError):
                await _service().search_candidate_products(GiftIntent(), 75)

    async def test_graphql_errors_raise(self):
        response = httpx.Response(
            200, json={"errors": [{"message": "bad query"}]},
            request=httpx.Request("POST", STORE_URL),
        )
        mock_client = _mock_client(return_value=response)
        with patch("httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(CatalogSearchError):
                await _service().search_candidate_products(GiftIntent(), 75)

    async def test_connection_error_raises(self):
        mock_client = _mock_client(side_effect=httpx.ConnectError("refused"))
        with patch("httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(CatalogSearchError):
                await _service().search_candidate_products(GiftIntent(), 75)

    async def test_unconfigured_raises(self):
        service = ShopifyCatalogService(store_domain="", storefront_token="")
        with pytest.raises(CatalogSearchError):
            await service.search_candidate_products(GiftIntent(), 75)


# ======================================================================
# 4. MockCatalogService
# ======================================================================

class TestMockCatalog:
    def test_sample_catalog(self):
        assert len(SAMPLE_PRODUCTS) == 13
        assert len({p.id for p in SAMPLE_PRODUCTS}) == 13

    async def test_keyword_groups_match_any(self):
        intent = GiftIntent(soft_prefs=["interest:tea", "theme:cozy"])
        products = await MockCatalogService().search_candidate_products(intent, 200)
        titles = {p.title for p in products}
        assert titles == {
            "Organic Tea Sampler Set",
            "Ceramic Tea Mug with Infuser",
            "Chunky Knit Throw Blanket",
        }

    async def test_price_ceiling(self):
        products = await MockCatalogService().search_candidate_products(GiftIntent(), 30)
        assert products
        assert all(p.variants[0].price.amount <= 20 for p in products)

    async def test_honors_exclusions(self):
        intent = GiftIntent(hard_constraints=["no:home"])
        products = await MockCatalogService().search_candidate_products(intent, 200)
        assert products
        assert all("home" not in p.tags for p in products)

    async def test_no_filters_returns_everything(self):
        products = await MockCatalogService().search_candidate_products(GiftIntent(), 200)
        assert len(products) == 13


# ======================================================================
# 5. Live Storefront API (requires credentials)
# ======================================================================

@requires_shopify
class TestShopifyLive:
    async def test_live_search_returns_products(self):
        products = await ShopifyCatalogService().search_candidate_products(
            GiftIntent(), 100,
        )
        assert isinstance(products, list)
        assert all(isinstance(p, Product) for p in products)
        assert all(p.variants for p in products)
