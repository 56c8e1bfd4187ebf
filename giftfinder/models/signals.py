"""
Gift Signals — closed tagged union for intent and catalog tag conventions.

Catalog tags and LLM output encode signals as prefixed strings
("no:fragrance", "allergen:no:nuts", "interest:tea", "style:minimal",
"theme:cozy"). They are parsed once at the catalog/LLM boundary into one
of the Signal variants below, so scoring code matches on types instead of
re-parsing prefixes. ``str(signal)`` returns the canonical tag string, which
is what catalog product tags are compared against.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

EXCLUSION_PREFIX = "no:"
ALLERGEN_PREFIX = "allergen:no:"
INTEREST_PREFIX = "interest:"
STYLE_PREFIX = "style:"
THEME_PREFIX = "theme:"


class _Signal(BaseModel):
    model_config = ConfigDict(frozen=True)

    tag: str

    @property
    def prefix(self) -> str:
        return ""

    def __str__(self) -> str:
        return f"{self.prefix}{self.tag}"


# ======================================================================
# Hard signals (exclusions)
# ======================================================================

class Exclusion(_Signal):
    """Recipient dislikes items carrying this tag."""

    kind: Literal["exclusion"] = "exclusion"

    @property
    def prefix(self) -> str:
        return EXCLUSION_PREFIX


class AllergenExclusion(_Signal):
    """Recipient is allergic; catalog tag is ``allergen:<tag>``."""

    kind: Literal["allergen"] = "allergen"

    @property
    def prefix(self) -> str:
        return ALLERGEN_PREFIX


class Constraint(_Signal):
    """Free-text hard constraint passed through verbatim (e.g. "vegan-only")."""

    kind: Literal["constraint"] = "constraint"


# ======================================================================
# Soft signals (scoring only)
# ======================================================================

class Interest(_Signal):
    kind: Literal["interest"] = "interest"

    @property
    def prefix(self) -> str:
        return INTEREST_PREFIX


class Style(_Signal):
    kind: Literal["style"] = "style"

    @property
    def prefix(self) -> str:
        return STYLE_PREFIX


class Theme(_Signal):
    kind: Literal["theme"] = "theme"

    @property
    def prefix(self) -> str:
        return THEME_PREFIX


HardSignal = Annotated[
    Union[Exclusion, AllergenExclusion, Constraint],
    Field(discriminator="kind"),
]
SoftSignal = Annotated[
    Union[Interest, Style, Theme],
    Field(discriminator="kind"),
]

# Order matters: "allergen:no:" must be tried before "no:".
_HARD_PREFIXES: list[tuple[str, type[_Signal]]] = [
    (ALLERGEN_PREFIX, AllergenExclusion),
    (EXCLUSION_PREFIX, Exclusion),
]
_SOFT_PREFIXES: list[tuple[str, type[_Signal]]] = [
    (INTEREST_PREFIX, Interest),
    (STYLE_PREFIX, Style),
    (THEME_PREFIX, Theme),
]


def parse_hard_signal(raw: str) -> Exclusion | AllergenExclusion | Constraint:
    """Parse a hard-constraint string. Unprefixed text becomes a Constraint."""
    text = raw.strip()
    for prefix, cls in _HARD_PREFIXES:
        if text.startswith(prefix):
            return cls(tag=text[len(prefix):])
    return Constraint(tag=text)


def parse_soft_signal(raw: str) -> Interest | Style | Theme:
    """Parse a soft-preference string. Unprefixed text is treated as an Interest."""
    text = raw.strip()
    for prefix, cls in _SOFT_PREFIXES:
        if text.startswith(prefix):
            return cls(tag=text[len(prefix):])
    return Interest(tag=text)


def parse_tag(raw: str) -> Interest | Style | Theme | None:
    """
    Parse a catalog product tag into a soft signal.

    Returns None for plain tags ("home", "ceramic") that carry no
    signal prefix.
    """
    for prefix, cls in _SOFT_PREFIXES:
        if raw.startswith(prefix):
            return cls(tag=raw[len(prefix):])
    return None


def coerce_signal(value, parser):
    """Pydantic before-validator helper: accept strings or signal objects."""
    if isinstance(value, str):
        return parser(value)
    return value
