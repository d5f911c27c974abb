"""
Core constants for card grading.

Every vendor reports condition in its own vocabulary. Records only ever
store one of the default grade tags below, ordered best to worst.
"""
from enum import Enum


class GradeTag(str, Enum):
    """Standardized card condition grades."""
    NEAR_MINT = "NM"
    SLIGHTLY_PLAYED = "SP"
    MODERATELY_PLAYED = "MP"
    HEAVILY_PLAYED = "HP"
    POOR = "PO"


DEFAULT_GRADE_TAGS: tuple[str, ...] = tuple(tag.value for tag in GradeTag)


# Maps external condition strings (lowercased) to grade tags
CONDITION_ALIASES: dict[str, str] = {
    # Abbreviations
    "nm": "NM",
    "m": "NM",
    "mint": "NM",
    "nm-m": "NM",
    "sp": "SP",
    "lp": "SP",
    "ex": "SP",
    "mp": "MP",
    "vg": "MP",
    "pld": "MP",
    "hp": "HP",
    "g": "HP",
    "po": "PO",
    "dmg": "PO",

    # Long forms
    "near mint": "NM",
    "near mint/mint": "NM",
    "excellent": "SP",
    "slightly played": "SP",
    "lightly played": "SP",
    "light played": "SP",
    "moderately played": "MP",
    "played": "MP",
    "very good": "MP",
    "heavily played": "HP",
    "heavy play": "HP",
    "good": "HP",
    "poor": "PO",
    "damaged": "PO",
}


def grade_rank(conditions: str) -> int:
    """
    Position of a grade tag in the best-to-worst ordering.

    Unknown tags sort after every known one.
    """
    try:
        return DEFAULT_GRADE_TAGS.index(conditions)
    except ValueError:
        return len(DEFAULT_GRADE_TAGS)


def normalize_condition(condition: str) -> str:
    """
    Normalize a vendor condition string to a grade tag.

    Args:
        condition: Raw condition string from the vendor.

    Returns:
        One of DEFAULT_GRADE_TAGS.

    Raises:
        ValueError: If the condition is not recognised.

    Examples:
        >>> normalize_condition("Near Mint")
        'NM'
        >>> normalize_condition("PLD")
        'MP'
    """
    key = condition.lower().strip()
    if key in CONDITION_ALIASES:
        return CONDITION_ALIASES[key]
    raise ValueError(f"Unknown condition: {condition!r}")
