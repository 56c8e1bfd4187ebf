"""
LLM Service — gift intent extraction and bundle enrichment.

Two interchangeable implementations of the GiftLLM collaborator:
- RuleBasedGiftLLM: deterministic keyword rules and title templates.
  Used in development, in tests, and whenever no API key is configured.
- ClaudeGiftLLM: Anthropic Claude with strict-JSON prompts.

Both expose the same async methods:
- extract_intent(profile, prompt, budget) -> GiftIntent
- enrich_bundles(bundles, profile, prompt) -> list[GiftBundle]
  (same length and order as the input, title/rationale added)

Also provides the prompt helpers shared by callers: profile summary,
input sanitization, and the normalized intent cache key.
"""

import json
import logging
from typing import Any, Optional, Protocol

from anthropic import AsyncAnthropic
from pydantic import ValidationError

from giftfinder.core.config import ANTHROPIC_API_KEY, GIFT_FINDER_LLM_MODEL
from giftfinder.models.gift_finder import (
    GiftBundle,
    GiftIntent,
    LLMResponseError,
    PartialBundle,
    RecipientProfile,
)
from giftfinder.services.cache import make_cache_key

logger = logging.getLogger(__name__)

# ======================================================================
# Constants
# ======================================================================

INTENT_MAX_TOKENS = 500
ENRICHMENT_MAX_TOKENS = 1000
INTENT_TEMPERATURE = 0.1
ENRICHMENT_TEMPERATURE = 0.3
MAX_INPUT_CHARS = 500

DEFAULT_TITLE = "Gift Bundle {index}"
DEFAULT_RATIONALE = "A thoughtfully curated selection of items."

# Prompt keyword → soft preference and target categories.
PROMPT_THEMES: dict[str, str] = {
    "cozy": "theme:cozy",
    "birthday": "theme:birthday",
    "tea": "interest:tea",
    "reading": "interest:reading",
}
KEYWORD_CATEGORIES: dict[str, list[str]] = {
    "tea": ["tea accessories", "mugs"],
    "reading": ["books", "stationery"],
    "cozy": ["home textiles", "blankets"],
}

STOCKING_BUDGET_CEILING = 30
HERO_BUDGET_FLOOR = 100

# LLMs sometimes answer with camelCase keys despite instructions.
_INTENT_KEY_ALIASES = {
    "hardConstraints": "hard_constraints",
    "softPrefs": "soft_prefs",
    "targetCategories": "target_categories",
    "budgetStrategy": "budget_strategy",
}


class GiftLLM(Protocol):
    """Text-completion collaborator used by the orchestrator."""

    async def extract_intent(
        self, profile: RecipientProfile, prompt: str, budget: float,
    ) -> GiftIntent: ...

    async def enrich_bundles(
        self,
        bundles: list[PartialBundle],
        profile: RecipientProfile,
        prompt: str,
    ) -> list[GiftBundle]: ...


# ======================================================================
# Prompt helpers
# ======================================================================

def sanitize_input(text: str) -> str:
    """Strip angle brackets and cap length before text reaches a prompt."""
    return text.replace("<", "").replace(">", "")[:MAX_INPUT_CHARS].strip()


def summarize_profile(profile: RecipientProfile) -> str:
    """One-line profile summary for prompts."""
    parts: list[str] = []
    if profile.relationship:
        parts.append(profile.relationship)
    if profile.age_range:
        parts.append(profile.age_range)
    if profile.interests:
        parts.append(f"interests: {', '.join(profile.interests)}")
    if profile.style:
        parts.append(f"style: {', '.join(profile.style)}")
    if profile.dislikes:
        parts.append(f"dislikes: {', '.join(profile.dislikes)}")
    if profile.allergies:
        parts.append(f"allergies: {', '.join(profile.allergies)}")
    return "; ".join(parts) or "No specific profile details provided"


def create_prompt_hash(profile: RecipientProfile, prompt: str) -> str:
    """
    Intent cache key from the normalized profile and prompt.

    List fields are sorted and the prompt is lower-cased and stripped,
    so cosmetic differences map to the same key.
    """
    normalized = {
        "interests": sorted(profile.interests),
        "style": sorted(profile.style),
        "dislikes": sorted(profile.dislikes),
        "allergies": sorted(profile.allergies),
        "constraints": sorted(profile.constraints),
        "relationship": profile.relationship,
        "age_range": profile.age_range,
        "prompt": prompt.lower().strip(),
    }
    return make_cache_key("intent", normalized)


def _strip_code_fences(text: str) -> str:
    """Remove markdown code fences Claude may add despite instructions."""
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else text[3:]
    if text.endswith("```"):
        text = text[:-3].strip()
    if text.startswith("json"):
        text = text[4:].strip()
    return text


def _bundle_digest(bundle: PartialBundle) -> dict[str, Any]:
    """Compact bundle description sent to the LLM for enrichment."""
    return {
        "id": bundle.id,
        "items": [
            {"title": item.title, "price": item.unit_price, "tags": item.tags}
            for item in bundle.items
        ],
        "total": bundle.price.total,
        "theme_tags": bundle.theme_tags,
    }


# ======================================================================
# Rule-based implementation
# ======================================================================

def rule_based_intent(
    profile: RecipientProfile, prompt: str, budget: float,
) -> GiftIntent:
    """
    Deterministic intent extraction.

    - dislikes → "no:<x>", allergies → "allergen:no:<x>", constraints verbatim
    - interests → "interest:<x>", style → "style:<x>"
    - prompt keywords add themes and target categories
    - budget < 30 → stocking, > 100 → hero, otherwise balanced
    """
    hard = (
        [f"no:{d}" for d in profile.dislikes]
        + [f"allergen:no:{a}" for a in profile.allergies]
        + list(profile.constraints)
    )
    soft = [f"interest:{i}" for i in profile.interests]
    soft += [f"style:{s}" for s in profile.style]

    lower_prompt = prompt.lower()
    for keyword, signal in PROMPT_THEMES.items():
        if keyword in lower_prompt and signal not in soft:
            soft.append(signal)

    interests = {i.lower() for i in profile.interests}
    categories: list[str] = []
    for keyword, mapped in KEYWORD_CATEGORIES.items():
        if keyword in interests or keyword in lower_prompt:
            categories.extend(c for c in mapped if c not in categories)

    if budget < STOCKING_BUDGET_CEILING:
        strategy = "stocking"
    elif budget > HERO_BUDGET_FLOOR:
        strategy = "hero"
    else:
        strategy = "balanced"

    return GiftIntent(
        hard_constraints=hard,
        soft_prefs=soft,
        target_categories=categories,
        budget_strategy=strategy,
    )


def _template_copy(bundle: PartialBundle, index: int) -> tuple[str, str]:
    """Pick a title and rationale from the bundle's contents."""
    has_tea = any(
        "tea" in item.title.lower() or "interest:tea" in item.tags
        for item in bundle.items
    )
    has_cozy = any(
        "blanket" in item.title.lower()
        or "throw" in item.title.lower()
        or "theme:cozy" in item.tags
        for item in bundle.items
    )
    count = len(bundle.items)

    if has_tea and has_cozy:
        return (
            "Cozy Tea Evening Kit",
            "Perfect for quiet evenings with a warm cup of tea and relaxation. "
            "The combination creates a complete cozy experience.",
        )
    if has_tea:
        return (
            "Tea Lover's Collection",
            "Curated for the tea enthusiast, featuring quality accessories and "
            "blends for the perfect brewing experience.",
        )
    if has_cozy:
        return (
            "Comfort & Coziness Set",
            "Designed to create a warm, comfortable atmosphere for relaxation "
            "and unwinding at home.",
        )
    if count >= 4:
        return (
            "Delightful Surprise Bundle",
            "A diverse collection of thoughtful items that cater to multiple "
            "interests and occasions.",
        )
    if count == 1:
        return (
            "Premium Single Gift",
            "A carefully selected high-quality item that makes a meaningful "
            "statement on its own.",
        )
    return DEFAULT_TITLE.format(index=index + 1), DEFAULT_RATIONALE


def template_enrich(bundles: list[PartialBundle]) -> list[GiftBundle]:
    """Enrich every bundle with template titles and rationales."""
    enriched = []
    for index, bundle in enumerate(bundles):
        title, rationale = _template_copy(bundle, index)
        enriched.append(bundle.enrich(title=title, rationale=rationale))
    return enriched


class RuleBasedGiftLLM:
    """GiftLLM implementation with no network calls."""

    async def extract_intent(
        self, profile: RecipientProfile, prompt: str, budget: float,
    ) -> GiftIntent:
        logger.debug("Rule-based intent extraction for prompt: %.50s", prompt)
        return rule_based_intent(profile, prompt, budget)

    async def enrich_bundles(
        self,
        bundles: list[PartialBundle],
        profile: RecipientProfile,
        prompt: str,
    ) -> list[GiftBundle]:
        return template_enrich(bundles)


# ======================================================================
# Claude implementation
# ======================================================================

INTENT_SYSTEM_PROMPT = """\
You extract normalized gift-buying signals from a recipient profile and a short prompt.
Return strict JSON with keys hard_constraints, soft_prefs, target_categories, budget_strategy.
Do not invent facts; infer conservatively from provided inputs.

Rules:
- hard_constraints: "no:" prefix for dislikes, "allergen:no:" for allergies, exact constraints from profile
- soft_prefs: "style:" for style preferences, "interest:" for interests, "theme:" for themes
- target_categories: derive from interests and prompt nouns (mugs, blankets, books, etc.)
- budget_strategy: "hero" if budget suggests one standout item, "balanced" for multiple mid-range items, "stocking" for many small items

Return only valid JSON, no explanations."""

ENRICHMENT_SYSTEM_PROMPT = """\
You generate concise titles and rationales for gift bundles. Do not change items or prices.
Create titles that are 3-5 words, catchy and descriptive.
Write rationales that are 1-3 sentences tying the bundle to the recipient profile and gift prompt.
Focus on how the items work together and why they fit the recipient.

Return ONLY a JSON array with one object per bundle, in the same order,
each with "title" and "rationale". No markdown, no explanation."""


class ClaudeGiftLLM:
    """GiftLLM implementation backed by Anthropic Claude."""

    def __init__(
        self,
        api_key: str = ANTHROPIC_API_KEY,
        model: str = GIFT_FINDER_LLM_MODEL,
        client: Optional[AsyncAnthropic] = None,
    ):
        self.model = model
        self._client = client or AsyncAnthropic(api_key=api_key)

    async def _complete(
        self, system: str, user: str, max_tokens: int, temperature: float,
    ) -> str:
        response = await self._client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system,
            messages=[{"role": "user", "content": user}],
        )
        if not response.content:
            raise LLMResponseError("Empty LLM response")
        text = _strip_code_fences(response.content[0].text)
        if not text:
            raise LLMResponseError("Empty LLM response")
        return text

    async def extract_intent(
        self, profile: RecipientProfile, prompt: str, budget: float,
    ) -> GiftIntent:
        """
        Ask Claude for a GiftIntent.

        Raises:
            LLMResponseError: The response is not valid GiftIntent JSON.
            anthropic.APIError: Transport/API failures are propagated.
        """
        user_prompt = (
            f"PROFILE:\n{profile.model_dump_json(indent=2, exclude_none=True)}\n\n"
            f'PROMPT:\n"{sanitize_input(prompt)}"\n\n'
            f"BUDGET: {budget}\n\n"
            f"Profile Summary: {summarize_profile(profile)}\n\n"
            "Extract GiftIntent JSON:"
        )
        text = await self._complete(
            INTENT_SYSTEM_PROMPT, user_prompt, INTENT_MAX_TOKENS, INTENT_TEMPERATURE,
        )

        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as exc:
            raise LLMResponseError(f"Invalid JSON response from LLM: {exc}") from exc
        if not isinstance(parsed, dict):
            raise LLMResponseError("Expected a JSON object for GiftIntent")

        normalized = {_INTENT_KEY_ALIASES.get(k, k): v for k, v in parsed.items()}
        required = ("hard_constraints", "soft_prefs", "target_categories", "budget_strategy")
        missing = [key for key in required if key not in normalized]
        if missing:
            raise LLMResponseError(f"Invalid GiftIntent structure, missing {missing}")

        try:
            intent = GiftIntent(**{key: normalized[key] for key in required})
        except ValidationError as exc:
            raise LLMResponseError(f"Invalid GiftIntent structure: {exc}") from exc

        logger.info(
            "Claude intent: %d hard, %d soft, %d categories, strategy=%s",
            len(intent.hard_constraints), len(intent.soft_prefs),
            len(intent.target_categories), intent.budget_strategy,
        )
        return intent

    async def enrich_bundles(
        self,
        bundles: list[PartialBundle],
        profile: RecipientProfile,
        prompt: str,
    ) -> list[GiftBundle]:
        """
        Ask Claude for titles and rationales.

        A malformed response degrades to template enrichment; missing or
        blank fields for individual bundles are filled from the templates.
        """
        if not bundles:
            return []

        user_prompt = (
            f"PROFILE (summary): {summarize_profile(profile)}\n"
            f'PROMPT: "{sanitize_input(prompt)}"\n\n'
            f"BUNDLES (JSON):\n"
            f"{json.dumps([_bundle_digest(b) for b in bundles], indent=2)}\n\n"
            'For each bundle, return {"title": 3-5 words, "rationale": 1-3 sentences}.'
        )
        text = await self._complete(
            ENRICHMENT_SYSTEM_PROMPT, user_prompt,
            ENRICHMENT_MAX_TOKENS, ENRICHMENT_TEMPERATURE,
        )

        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as exc:
            logger.error("Claude returned invalid enrichment JSON: %s", exc)
            return template_enrich(bundles)
        if not isinstance(parsed, list):
            logger.warning("Claude returned non-list enrichment response")
            return template_enrich(bundles)

        enriched = []
        for index, bundle in enumerate(bundles):
            entry = parsed[index] if index < len(parsed) else {}
            if not isinstance(entry, dict):
                entry = {}
            fallback_title, fallback_rationale = _template_copy(bundle, index)
            enriched.append(
                bundle.enrich(
                    title=str(entry.get("title") or fallback_title),
                    rationale=str(entry.get("rationale") or fallback_rationale),
                )
            )
        return enriched
