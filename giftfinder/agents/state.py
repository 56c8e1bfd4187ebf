"""
Gift Finder State Schema — Pydantic model for the LangGraph bundle pipeline.

Defines the state that flows through the gift bundle graph:
1. extract_intent — profile + prompt → GiftIntent (LLM, cached)
2. search_candidates — intent + budget → catalog Products (cached)
3. score_candidates — Products → ranked CandidateVariants
4. assemble_bundles — candidates → ranked PartialBundles
5. enrich_bundles — PartialBundles → titled GiftBundles (LLM)
6. build_diagnostics — matched/unmet signals and inventory notes
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from giftfinder.core.config import DEFAULT_MAX_BUNDLES
from giftfinder.models.gift_finder import (
    CandidateVariant,
    GiftBundle,
    GiftFinderDiagnostics,
    GiftIntent,
    PartialBundle,
    Product,
    RecipientProfile,
)


class GiftFinderState(BaseModel):
    """
    Complete state for the gift bundle pipeline.

    Input fields are set by the orchestrator; each node fills in the
    output of its stage.
    """

    # --- Input (set by the orchestrator) ---
    profile: RecipientProfile = Field(default_factory=RecipientProfile)
    prompt: str = ""
    budget: float
    max_bundles: int = DEFAULT_MAX_BUNDLES

    # --- Populated by extract_intent ---
    intent: Optional[GiftIntent] = None

    # --- Populated by search_candidates ---
    products: list[Product] = Field(default_factory=list)

    # --- Populated by score_candidates ---
    candidates: list[CandidateVariant] = Field(default_factory=list)

    # --- Populated by assemble_bundles ---
    partial_bundles: list[PartialBundle] = Field(default_factory=list)

    # --- Populated by enrich_bundles ---
    bundles: list[GiftBundle] = Field(default_factory=list)

    # --- Populated by build_diagnostics ---
    diagnostics: Optional[GiftFinderDiagnostics] = None
