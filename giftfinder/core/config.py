"""
Application Configuration

Loads environment variables and provides typed settings
for the gift finder engine. Uses python-dotenv to load from .env file.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env file from the project root
_env_path = Path(__file__).resolve().parent.parent.parent / ".env"
load_dotenv(dotenv_path=_env_path)

# --- App Settings ---
API_V1_PREFIX = "/api/v1"
PROJECT_NAME = "Gift Finder"

# --- Shopify Storefront (catalog collaborator) ---
SHOPIFY_STORE_DOMAIN: str = os.getenv("SHOPIFY_STORE_DOMAIN", "")
SHOPIFY_STOREFRONT_TOKEN: str = os.getenv("SHOPIFY_STOREFRONT_TOKEN", "")

# --- Anthropic (LLM collaborator) ---
ANTHROPIC_API_KEY: str = os.getenv("ANTHROPIC_API_KEY", "")
GIFT_FINDER_LLM_MODEL: str = os.getenv(
    "GIFT_FINDER_LLM_MODEL", "claude-sonnet-4-20250514",
)

# --- Bundle assembly ---
DEFAULT_MAX_BUNDLES: int = int(os.getenv("DEFAULT_MAX_BUNDLES", "6"))
FALLBACK_MAX_BUNDLES: int = int(os.getenv("FALLBACK_MAX_BUNDLES", "3"))
MIN_BUNDLE_ITEMS: int = int(os.getenv("MIN_BUNDLE_ITEMS", "2"))
MAX_BUNDLE_ITEMS: int = int(os.getenv("MAX_BUNDLE_ITEMS", "6"))
BUDGET_TOLERANCE: float = float(os.getenv("BUDGET_TOLERANCE", "0.1"))
MAX_BUDGET: float = float(os.getenv("MAX_BUDGET", "10000"))

# --- Cache (TTLs in seconds) ---
CACHE_TTL_INTENT_SECONDS: float = float(os.getenv("CACHE_TTL_INTENT_SECONDS", "1800"))
CACHE_TTL_CATALOG_SECONDS: float = float(os.getenv("CACHE_TTL_CATALOG_SECONDS", "300"))
CACHE_MAX_SIZE: int = int(os.getenv("CACHE_MAX_SIZE", "1000"))

# --- Catalog search ---
MAX_CANDIDATES: int = int(os.getenv("MAX_CANDIDATES", "80"))
LOW_INVENTORY_THRESHOLD: int = int(os.getenv("LOW_INVENTORY_THRESHOLD", "20"))


def is_shopify_configured() -> bool:
    """
    Check if the Shopify Storefront API is available without raising exceptions.

    When not configured, the default context falls back to the in-memory
    sample catalog so the engine still produces bundles in development.
    """
    return bool(SHOPIFY_STORE_DOMAIN and SHOPIFY_STOREFRONT_TOKEN)


def is_llm_configured() -> bool:
    """Check if the Anthropic API key is present (Claude intent/enrichment)."""
    return bool(ANTHROPIC_API_KEY)
