"""
Transaction categorization.

Deterministic, local keyword rules (no network calls): categorization runs
every time transactions are listed and is never persisted.
"""

from .rules import DEFAULT_RULES, CategorizationRule
from .scorer import (
    OTHER_CATEGORY,
    Categorizer,
    CategorySuggestion,
    MaterialSuggestion,
    categorize,
    is_renovation_related,
    suggest_materials,
)

__all__ = [
    "CategorizationRule",
    "DEFAULT_RULES",
    "Categorizer",
    "CategorySuggestion",
    "MaterialSuggestion",
    "OTHER_CATEGORY",
    "categorize",
    "is_renovation_related",
    "suggest_materials",
]
