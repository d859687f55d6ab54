"""
Canonical lab indicator categories.

Free-text lab names ("Гемоглобин (HGB)", "25-OH Vitamin D", "Glucose, fasting")
are classified into one of these categories by an ``IndicatorMatcher``
(see ``selfcare_recommender.recommendations.matcher``). Rules only ever
reason about categories, never about raw names.

``HBA1C`` exists so that glycated hemoglobin is not mistaken for
hemoglobin itself; no rule consumes it.
"""

from enum import StrEnum


class CanonicalIndicator(StrEnum):
    """Lab indicator category recognised by the rule catalog."""

    VITAMIN_D = "vitamin_d"
    HBA1C = "hba1c"
    HEMOGLOBIN = "hemoglobin"
    CHOLESTEROL = "cholesterol"
    GLUCOSE = "glucose"
    FERRITIN = "ferritin"
    ALT = "alt"
    AST = "ast"
