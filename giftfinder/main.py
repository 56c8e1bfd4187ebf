"""
Gift Finder — FastAPI Entry Point

Initializes the FastAPI app and registers the gift bundle routes.
"""

from fastapi import FastAPI

from giftfinder.api.gift_bundles import router as gift_bundles_router
from giftfinder.core.config import PROJECT_NAME

app = FastAPI(
    title=f"{PROJECT_NAME} API",
    description="Budget-aware gift bundle assembly and ranking",
    version="0.1.0",
)

# --- Register API routers ---
app.include_router(gift_bundles_router)


@app.get("/health")
async def health_check():
    """Health check endpoint. Returns service status."""
    return {"status": "ok"}
