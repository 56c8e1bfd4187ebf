"""
Gift Finder Pipeline — LangGraph orchestration with a degraded fallback path.

Chains the bundle generation stages into an executable graph:
1. extract_intent — LLM intent extraction, cached with the long TTL
2. search_candidates — catalog search, cached with the short TTL
3. score_candidates — Candidate Scorer (pure, uncached)
4. assemble_bundles — Bundle Generator (pure, uncached)
5. enrich_bundles — LLM titles and rationales (uncached)
6. build_diagnostics — matched signals, unmet preferences, inventory notes

A conditional edge skips enrichment when assembly produced no bundles.

Failure semantics: any exception raised by the graph is caught by
GiftFinderOrchestrator, which retries with a minimal intent built from
the profile's interests (no LLM calls) and placeholder titles. If that
also fails, a terminal empty result with guidance is returned. The only
error that escapes generate_gift_bundles is InvalidGiftRequestError,
raised before any collaborator is called.
"""

import logging
from functools import lru_cache
from typing import Any, Optional, Union

from langgraph.graph import END, START, StateGraph
from pydantic import ValidationError

from giftfinder.agents.scoring import filter_and_score_variants
from giftfinder.agents.state import GiftFinderState
from giftfinder.core.config import (
    DEFAULT_MAX_BUNDLES,
    FALLBACK_MAX_BUNDLES,
    LOW_INVENTORY_THRESHOLD,
    MAX_BUDGET,
)
from giftfinder.core.context import GiftFinderContext, build_default_context
from giftfinder.models.gift_finder import (
    CandidateVariant,
    GiftBundle,
    GiftFinderDiagnostics,
    GiftFinderRequest,
    GiftFinderResult,
    GiftIntent,
    InvalidGiftRequestError,
    LLMResponseError,
    PartialBundle,
    is_valid_budget,
    is_valid_profile,
)
from giftfinder.models.signals import Interest
from giftfinder.services.cache import make_cache_key
from giftfinder.services.llm import DEFAULT_TITLE, create_prompt_hash

logger = logging.getLogger(__name__)

FALLBACK_RATIONALE = "A thoughtfully curated selection of items that fit your budget."

FALLBACK_UNMET = "Using simplified search due to technical issue"
FALLBACK_NOTE = "Fallback results - try again for better matches"
TERMINAL_UNMET = "Unable to generate bundles - please try different criteria"
TERMINAL_NOTE = "Consider increasing budget or broadening preferences"


# ======================================================================
# Diagnostics
# ======================================================================

def build_diagnostics(
    candidates: list[CandidateVariant],
    intent: GiftIntent,
    bundles: list[GiftBundle],
    budget: float,
) -> GiftFinderDiagnostics:
    """
    Summarize how well the catalog matched the intent.

    - matched_signals: union of every candidate's matched signals
    - unmet_constraints: soft preferences absent from that union
    - inventory_notes: low candidate count, or no bundle fitting the budget

    When no bundle was produced, unmet_constraints is never empty: if every
    preference was matched, the budget itself is reported.
    """
    matched: list[str] = []
    for candidate in candidates:
        for signal in candidate.matched_signals:
            if signal not in matched:
                matched.append(signal)

    unmet = [pref for pref in intent.soft_pref_tags if pref not in matched]
    notes: list[str] = []

    if len(candidates) < LOW_INVENTORY_THRESHOLD:
        notes.append(
            f"Limited inventory: found {len(candidates)} candidates "
            f"(below {LOW_INVENTORY_THRESHOLD})"
        )

    if not bundles:
        notes.append(f"No bundle combination fits a budget of {budget:.2f}")
        if not unmet:
            unmet.append(f"budget:{budget:g}")

    return GiftFinderDiagnostics(
        matched_signals=matched,
        unmet_constraints=unmet or None,
        inventory_notes=notes or None,
    )


def placeholder_enrich(bundles: list[PartialBundle]) -> list[GiftBundle]:
    """Numbered placeholder titles used on the fallback path."""
    return [
        bundle.enrich(
            title=DEFAULT_TITLE.format(index=index + 1),
            rationale=FALLBACK_RATIONALE,
        )
        for index, bundle in enumerate(bundles)
    ]


# ======================================================================
# Conditional edge functions
# ======================================================================

def _check_after_assembly(state: GiftFinderState) -> str:
    """Skip enrichment when no bundle could be assembled."""
    if not state.partial_bundles:
        logger.warning("No bundles assembled for budget %.2f", state.budget)
        return "empty"
    return "continue"


# ======================================================================
# Graph construction
# ======================================================================

def build_gift_finder_graph(context: GiftFinderContext) -> StateGraph:
    """
    Build the LangGraph StateGraph for the gift bundle pipeline.

    Node functions close over ``context`` so collaborators are injected
    rather than imported. Returns the uncompiled StateGraph.
    """

    async def extract_intent(state: GiftFinderState) -> dict[str, Any]:
        cache_key = create_prompt_hash(state.profile, state.prompt)
        if context.cache is not None:
            cached = context.cache.get(cache_key)
            if cached is not None:
                logger.info("Using cached intent %s", cache_key)
                return {"intent": cached}

        intent = await context.llm.extract_intent(
            state.profile, state.prompt, state.budget,
        )
        if context.cache is not None:
            context.cache.set(cache_key, intent, context.intent_ttl_seconds)

        logger.info(
            "Extracted intent: strategy=%s, %d soft prefs, %d hard constraints",
            intent.budget_strategy, len(intent.soft_prefs), len(intent.hard_constraints),
        )
        return {"intent": intent}

    async def search_candidates(state: GiftFinderState) -> dict[str, Any]:
        cache_key = make_cache_key(
            "products",
            {"intent": state.intent.as_strings(), "budget": state.budget},
        )
        if context.cache is not None:
            cached = context.cache.get(cache_key)
            if cached is not None:
                logger.info("Using cached products %s", cache_key)
                return {"products": cached}

        products = await context.catalog.search_candidate_products(
            state.intent, state.budget,
        )
        if context.cache is not None:
            context.cache.set(cache_key, products, context.catalog_ttl_seconds)
        return {"products": products}

    def score_candidates(state: GiftFinderState) -> dict[str, Any]:
        candidates = filter_and_score_variants(
            state.products, state.intent, state.budget, context.scoring_weights,
        )
        return {"candidates": candidates}

    def assemble_bundles(state: GiftFinderState) -> dict[str, Any]:
        partial_bundles = context.generator.assemble_bundles(
            state.candidates, state.budget, state.intent, state.max_bundles,
        )
        return {"partial_bundles": partial_bundles}

    async def enrich_bundles(state: GiftFinderState) -> dict[str, Any]:
        bundles = await context.llm.enrich_bundles(
            state.partial_bundles, state.profile, state.prompt,
        )
        if len(bundles) != len(state.partial_bundles):
            raise LLMResponseError(
                f"Enrichment returned {len(bundles)} bundles, "
                f"expected {len(state.partial_bundles)}"
            )
        return {"bundles": bundles}

    def diagnostics(state: GiftFinderState) -> dict[str, Any]:
        return {
            "diagnostics": build_diagnostics(
                state.candidates, state.intent, state.bundles, state.budget,
            )
        }

    graph = StateGraph(GiftFinderState)

    # --- Add nodes ---
    graph.add_node("extract_intent", extract_intent)
    graph.add_node("search_candidates", search_candidates)
    graph.add_node("score_candidates", score_candidates)
    graph.add_node("assemble_bundles", assemble_bundles)
    graph.add_node("enrich_bundles", enrich_bundles)
    graph.add_node("build_diagnostics", diagnostics)

    # --- Define edges ---
    graph.add_edge(START, "extract_intent")
    graph.add_edge("extract_intent", "search_candidates")
    graph.add_edge("search_candidates", "score_candidates")
    graph.add_edge("score_candidates", "assemble_bundles")

    # assemble_bundles → (conditional) enrich_bundles or build_diagnostics
    graph.add_conditional_edges(
        "assemble_bundles",
        _check_after_assembly,
        {"continue": "enrich_bundles", "empty": "build_diagnostics"},
    )

    graph.add_edge("enrich_bundles", "build_diagnostics")
    graph.add_edge("build_diagnostics", END)

    return graph


# ======================================================================
# Orchestrator
# ======================================================================

def validate_request(
    request: Union[GiftFinderRequest, dict[str, Any]],
) -> GiftFinderRequest:
    """
    Coerce and check a request before any collaborator is called.

    Raises:
        InvalidGiftRequestError: Malformed request, budget outside
            (0, MAX_BUDGET), or max_bundles < 1.
    """
    if isinstance(request, dict):
        try:
            request = GiftFinderRequest.model_validate(request)
        except ValidationError as exc:
            raise InvalidGiftRequestError(f"Invalid gift request: {exc}") from exc

    if not isinstance(request, GiftFinderRequest):
        raise InvalidGiftRequestError("Request must be a GiftFinderRequest")
    if not is_valid_profile(request.profile):
        raise InvalidGiftRequestError("Profile must be a RecipientProfile")
    if not isinstance(request.prompt, str):
        raise InvalidGiftRequestError("Prompt must be a string")
    if not is_valid_budget(request.budget):
        raise InvalidGiftRequestError(
            f"Budget must be greater than 0 and less than {MAX_BUDGET:g}, "
            f"got {request.budget}"
        )
    if request.max_bundles is not None and request.max_bundles < 1:
        raise InvalidGiftRequestError(
            f"max_bundles must be at least 1, got {request.max_bundles}"
        )
    return request


class GiftFinderOrchestrator:
    """
    Public entry point of the gift bundle engine.

    Usage:
        orchestrator = GiftFinderOrchestrator(build_default_context())
        result = await orchestrator.generate_gift_bundles(
            GiftFinderRequest(profile=profile, prompt="cozy birthday", budget=75)
        )
    """

    def __init__(self, context: GiftFinderContext):
        self.context = context
        self.graph = build_gift_finder_graph(context).compile()

    async def generate_gift_bundles(
        self,
        request: Union[GiftFinderRequest, dict[str, Any]],
    ) -> GiftFinderResult:
        """
        Generate ranked gift bundles for a request.

        Never raises for collaborator failures; see the module docstring.

        Raises:
            InvalidGiftRequestError: The request failed validation.
        """
        request = validate_request(request)
        max_bundles = request.max_bundles or DEFAULT_MAX_BUNDLES

        logger.info(
            "Generating gift bundles: budget=%.2f, max_bundles=%d, prompt=%.50s",
            request.budget, max_bundles, request.prompt,
        )

        try:
            state = GiftFinderState(
                profile=request.profile,
                prompt=request.prompt,
                budget=request.budget,
                max_bundles=max_bundles,
            )
            final = await self.graph.ainvoke(state)
        except Exception:
            logger.error("Gift bundle generation failed, using fallback", exc_info=True)
            return await self._generate_fallback(request)

        result = GiftFinderResult(
            bundles=final.get("bundles", []),
            diagnostics=final.get("diagnostics"),
        )
        logger.info(
            "Generated %d bundles: %s",
            len(result.bundles), [b.title for b in result.bundles],
        )
        return result

    async def _generate_fallback(self, request: GiftFinderRequest) -> GiftFinderResult:
        """
        Degraded path: minimal intent from profile interests, one more
        catalog search, FALLBACK_MAX_BUNDLES bundles, placeholder titles.
        """
        try:
            intent = GiftIntent(
                hard_constraints=[],
                soft_prefs=[Interest(tag=i) for i in request.profile.interests],
                target_categories=["general"],
                budget_strategy="balanced",
            )
            products = await self.context.catalog.search_candidate_products(
                intent, request.budget,
            )

            if products:
                candidates = filter_and_score_variants(
                    products, intent, request.budget, self.context.scoring_weights,
                )
                partial_bundles = self.context.generator.assemble_bundles(
                    candidates, request.budget, intent, FALLBACK_MAX_BUNDLES,
                )
                logger.warning(
                    "Fallback produced %d bundles from %d candidates",
                    len(partial_bundles), len(candidates),
                )
                return GiftFinderResult(
                    bundles=placeholder_enrich(partial_bundles),
                    diagnostics=GiftFinderDiagnostics(
                        matched_signals=[],
                        unmet_constraints=[FALLBACK_UNMET],
                        inventory_notes=[FALLBACK_NOTE],
                    ),
                )
        except Exception:
            logger.error("Fallback bundle generation also failed", exc_info=True)

        logger.warning("Returning empty gift finder result")
        return GiftFinderResult(
            bundles=[],
            diagnostics=GiftFinderDiagnostics(
                matched_signals=[],
                unmet_constraints=[TERMINAL_UNMET],
                inventory_notes=[TERMINAL_NOTE],
            ),
        )


@lru_cache(maxsize=1)
def get_default_orchestrator() -> GiftFinderOrchestrator:
    """Process-wide orchestrator over build_default_context()."""
    return GiftFinderOrchestrator(build_default_context())


async def generate_gift_bundles(
    request: Union[GiftFinderRequest, dict[str, Any]],
    context: Optional[GiftFinderContext] = None,
) -> GiftFinderResult:
    """Convenience wrapper; uses the default orchestrator when no context is given."""
    if context is None:
        orchestrator = get_default_orchestrator()
    else:
        orchestrator = GiftFinderOrchestrator(context)
    return await orchestrator.generate_gift_bundles(request)
