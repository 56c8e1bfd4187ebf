"""
Import Test Script

Tests that all gift finder dependencies are installed and importable.
Run with: pytest tests/test_imports.py -v
"""


def test_fastapi():
    """FastAPI — Web framework."""
    import fastapi
    assert hasattr(fastapi, "FastAPI")
    print(f"  fastapi {fastapi.__version__}")


def test_uvicorn():
    """Uvicorn — ASGI server."""
    import uvicorn
    assert hasattr(uvicorn, "run")
    print(f"  uvicorn {uvicorn.__version__}")


def test_langgraph():
    """LangGraph — pipeline orchestration."""
    from langgraph.graph import StateGraph
    assert StateGraph is not None
    print("  langgraph OK (StateGraph importable)")


def test_pydantic():
    """Pydantic — Data validation."""
    from pydantic import BaseModel
    assert BaseModel is not None
    import pydantic
    print(f"  pydantic {pydantic.__version__}")


def test_httpx():
    """httpx — Async HTTP client for the Shopify Storefront API."""
    import httpx
    assert hasattr(httpx, "AsyncClient")
    print(f"  httpx {httpx.__version__}")


def test_anthropic():
    """Anthropic — Claude SDK for intent extraction and enrichment."""
    from anthropic import AsyncAnthropic
    assert AsyncAnthropic is not None
    import anthropic
    print(f"  anthropic {anthropic.__version__}")


def test_dotenv():
    """python-dotenv — Environment configuration."""
    from dotenv import load_dotenv
    assert callable(load_dotenv)


def test_giftfinder_app():
    """The FastAPI app imports and exposes the health route."""
    from giftfinder.main import app
    paths = app.openapi()["paths"]
    assert "/health" in paths
    assert "/api/v1/gift-bundles" in paths
