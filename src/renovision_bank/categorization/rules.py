"""
Keyword rules for renovation transaction categorization.

Static configuration, shared by every user. Keywords are matched as
lower-case substrings of the transaction description.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class CategorizationRule:
    """A category, its keywords and the confidence of a full keyword match."""

    category: str
    keywords: frozenset[str]
    base_confidence: float

    def __post_init__(self) -> None:
        if not self.keywords:
            raise ValueError(f"Rule '{self.category}' has no keywords")
        if not 0.0 <= self.base_confidence <= 1.0:
            raise ValueError(
                f"Rule '{self.category}' base_confidence must be in [0, 1], "
                f"got {self.base_confidence}"
            )
        # Normalize once so matching never re-lowers keywords
        object.__setattr__(self, "keywords", frozenset(k.lower() for k in self.keywords))


def _rule(category: str, confidence: float, *keywords: str) -> CategorizationRule:
    return CategorizationRule(category, frozenset(keywords), confidence)


# Evaluation order matters: on equal scores the earlier rule wins
DEFAULT_RULES: tuple[CategorizationRule, ...] = (
    _rule(
        "Matériaux", 0.9,
        "leroy merlin", "castorama", "brico depot", "bricoman", "point p",
        "weldom", "mr bricolage", "bricomarche", "brico cash", "maxmat",
        "gedimat", "lapeyre", "saint maclou", "la plateforme du batiment",
    ),
    _rule(
        "Main d'œuvre", 0.8,
        "electricien", "plombier", "peintre", "menuisier", "carreleur",
        "macon", "plaquier", "platrier", "chauffagiste", "couvreur",
        "entreprise", "artisan", "sas", "sarl", "eurl",
    ),
    _rule(
        "Mobilier", 0.9,
        "ikea", "conforama", "but", "maisons du monde", "fly",
        "alinea", "la redoute", "made", "habitat", "meuble",
    ),
    _rule(
        "Outillage", 0.95,
        "outillage", "outil", "makita", "bosch", "dewalt", "metabo",
        "ryobi", "stanley", "black decker", "hilti", "festool",
    ),
    _rule(
        "Électricité", 0.85,
        "electrique", "electricite", "cable", "prise", "interrupteur",
        "tableau electrique", "disjoncteur", "ampoule", "luminaire", "lampe",
    ),
    _rule(
        "Plomberie", 0.85,
        "plomberie", "robinet", "tuyau", "sanitaire", "salle de bain",
        "douche", "baignoire", "wc", "chasse d'eau", "lavabo", "evier",
    ),
    _rule(
        "Peinture", 0.9,
        "peinture", "vernis", "lasure", "enduit", "colle", "mastic",
        "rouleau", "pinceau", "bac peinture", "dulux", "ripolin", "v33",
    ),
    _rule(
        "Revêtement sol", 0.85,
        "parquet", "carrelage", "moquette", "vinyl", "lino", "stratifie",
        "plancher", "sol", "dalle", "plinthe",
    ),
    _rule(
        "Revêtement mur", 0.85,
        "papier peint", "tapisserie", "carrelage mural", "faience",
        "lambris", "panneau mural",
    ),
    _rule(
        "Isolation", 0.9,
        "isolation", "isolant", "laine de verre", "laine de roche",
        "polystyrene", "mousse polyurethane", "ouate de cellulose",
    ),
)
