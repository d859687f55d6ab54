"""
Indicator name matching.

Lab reports name the same indicator many ways ("Гемоглобин (HGB)",
"Hemoglobin", "Hb"). An ``IndicatorMatcher`` classifies a free-text name into
a ``CanonicalIndicator`` so rules never compare raw strings.

``SubstringIndicatorMatcher`` checks a fixed, ordered pattern table against
the lower-cased name; the first category with a matching pattern wins. Order
matters: glycated hemoglobin ("HbA1c", "Гликированный гемоглобин") is tested
before hemoglobin so it is never treated as a low-hemoglobin signal.
"""

from __future__ import annotations

import re
from typing import Optional, Protocol

from selfcare_recommender.taxonomy.indicator_taxonomy import CanonicalIndicator


class IndicatorMatcher(Protocol):
    def classify(self, name: str) -> Optional[CanonicalIndicator]:
        ...


# Ordered: earlier entries shadow later ones.
DEFAULT_PATTERNS: tuple[tuple[CanonicalIndicator, tuple[str, ...]], ...] = (
    (CanonicalIndicator.HBA1C,       ("hba1c", "гликированный", "glycated")),
    (CanonicalIndicator.VITAMIN_D,   ("vitamin d", "витамин d", "витамин д", "25-oh", "кальцидиол")),
    (CanonicalIndicator.HEMOGLOBIN,  ("гемоглобин", "hemoglobin", "haemoglobin", "hgb", "hb")),
    (CanonicalIndicator.CHOLESTEROL, ("холестерин", "cholesterol")),
    (CanonicalIndicator.GLUCOSE,     ("глюкоз", "сахар", "glucose")),
    (CanonicalIndicator.FERRITIN,    ("ферритин", "ferritin")),
    (CanonicalIndicator.ALT,         ("алт", "alt", "alanine", "аланинаминотрансфераза")),
    (CanonicalIndicator.AST,         ("аст", "ast", "aspartate", "аспартатаминотрансфераза")),
)

# Short latin/cyrillic abbreviations match only as whole tokens, so "hb"
# does not fire inside an unrelated word and "alt" not inside "salt".
_TOKEN_PATTERNS = frozenset({"hb", "hgb", "alt", "ast", "алт", "аст"})


class SubstringIndicatorMatcher:
    """Case-insensitive substring matcher over an ordered pattern table.

    Args:
        patterns: Ordered ``(category, patterns)`` pairs. Defaults to
            ``DEFAULT_PATTERNS``.
    """

    def __init__(
        self,
        patterns: tuple[tuple[CanonicalIndicator, tuple[str, ...]], ...] = DEFAULT_PATTERNS,
    ) -> None:
        self._patterns = patterns

    def classify(self, name: str) -> Optional[CanonicalIndicator]:
        """Return the first category whose pattern occurs in ``name``, or ``None``."""
        lowered = name.lower()
        tokens = set(re.findall(r"\w+", lowered))
        for category, patterns in self._patterns:
            for pattern in patterns:
                if pattern in _TOKEN_PATTERNS:
                    if pattern in tokens:
                        return category
                elif pattern in lowered:
                    return category
        return None
