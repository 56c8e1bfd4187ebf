"""
Gift Bundles API — budget-aware gift bundle generation.

POST /api/v1/gift-bundles — Generate ranked, enriched gift bundles for a
recipient profile, free-text prompt and budget.

The engine context comes from the get_gift_finder_context dependency so
tests can swap in mock collaborators via app.dependency_overrides.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from giftfinder.agents.pipeline import GiftFinderOrchestrator, get_default_orchestrator
from giftfinder.core.config import API_V1_PREFIX
from giftfinder.models.gift_finder import (
    GiftFinderRequest,
    GiftFinderResult,
    InvalidGiftRequestError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix=f"{API_V1_PREFIX}/gift-bundles", tags=["gift-bundles"])


def get_gift_finder_orchestrator() -> GiftFinderOrchestrator:
    """Dependency returning the process-wide orchestrator."""
    return get_default_orchestrator()


# ===================================================================
# POST /api/v1/gift-bundles — Generate Gift Bundles
# ===================================================================

@router.post(
    "",
    status_code=status.HTTP_200_OK,
    response_model=GiftFinderResult,
)
async def create_gift_bundles(
    payload: GiftFinderRequest,
    orchestrator: GiftFinderOrchestrator = Depends(get_gift_finder_orchestrator),
) -> GiftFinderResult:
    """
    Generate gift bundles.

    Returns:
        200: Bundles (possibly empty) with diagnostics. Collaborator
             failures degrade to fallback results rather than errors.
        400: Budget out of range or max_bundles < 1.
        422: Validation error in the request payload.
    """
    try:
        return await orchestrator.generate_gift_bundles(payload)
    except InvalidGiftRequestError as exc:
        logger.info("Rejected gift bundle request: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
