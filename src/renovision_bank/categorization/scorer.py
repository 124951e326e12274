"""
Categorization scoring implementation.

Pure and deterministic: the same description always yields the same
suggestion. Scores are keyword-match strength, not calibrated probabilities.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from .rules import DEFAULT_RULES, CategorizationRule

OTHER_CATEGORY = "OTHER"

# Minimum confidence for a transaction to count as renovation spending
RENOVATION_THRESHOLD = 0.5


@dataclass(frozen=True)
class CategorySuggestion:
    """Suggested category for a transaction description."""

    category: str
    confidence: float

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {"category": self.category, "confidence": self.confidence}


@dataclass(frozen=True)
class MaterialSuggestion:
    """A project material that probably matches a transaction."""

    material: Any
    confidence: float
    reason: str


class Categorizer:
    """
    Scores descriptions against keyword rules.

    For each rule: confidence = matched_keywords / total_keywords * base_confidence.
    The strictly highest score wins; on exact ties the first rule seen wins.
    """

    def __init__(self, rules: Sequence[CategorizationRule] = DEFAULT_RULES):
        """Initialize scorer with an ordered rule set."""
        self.rules = tuple(rules)

    def score(self, description: str, rule: CategorizationRule) -> float:
        """Score one rule against an already lower-cased description."""
        matched = sum(1 for keyword in rule.keywords if keyword in description)
        if matched == 0:
            return 0.0
        return (matched / len(rule.keywords)) * rule.base_confidence

    def categorize(self, description: str | None) -> CategorySuggestion:
        """Suggest a category for a transaction description."""
        text = (description or "").lower()

        best_category = None
        best_confidence = 0.0
        for rule in self.rules:
            confidence = self.score(text, rule)
            if confidence > best_confidence:
                best_category = rule.category
                best_confidence = confidence

        if best_category is None:
            return CategorySuggestion(category=OTHER_CATEGORY, confidence=0.0)
        return CategorySuggestion(category=best_category, confidence=best_confidence)

    def is_renovation_related(self, description: str | None) -> bool:
        suggestion = self.categorize(description)
        return suggestion.category != OTHER_CATEGORY and suggestion.confidence > RENOVATION_THRESHOLD


_default_categorizer = Categorizer()


def categorize(description: str | None) -> CategorySuggestion:
    """Categorize with the default renovation rule set."""
    return _default_categorizer.categorize(description)


def is_renovation_related(description: str | None) -> bool:
    """True if the default rules place the description in a renovation category."""
    return _default_categorizer.is_renovation_related(description)


def _field(material: Any, name: str) -> str:
    if isinstance(material, dict):
        value = material.get(name)
    else:
        value = getattr(material, name, None)
    return (value or "").lower()


def suggest_materials(
    description: str | None,
    materials: Iterable[Any],
) -> list[MaterialSuggestion]:
    """
    Rank project materials that a transaction probably paid for.

    Materials are dicts or objects with optional `supplier` and `name`.
    A supplier found in the description scores 0.8, otherwise a name found in
    it scores 0.6. Best suggestions first.
    """
    text = (description or "").lower()
    suggestions: list[MaterialSuggestion] = []

    for material in materials:
        supplier = _field(material, "supplier")
        name = _field(material, "name")

        if supplier and supplier in text:
            suggestions.append(MaterialSuggestion(material, 0.8, "Fournisseur identique"))
        elif name and name in text:
            suggestions.append(MaterialSuggestion(material, 0.6, "Nom similaire"))

    return sorted(suggestions, key=lambda s: s.confidence, reverse=True)
