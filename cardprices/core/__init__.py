"""
Core module containing configuration and shared utilities.
"""
from cardprices.core.config import settings
from cardprices.core.constants import (
    DEFAULT_GRADE_TAGS,
    GradeTag,
    grade_rank,
    normalize_condition,
)

__all__ = [
    "settings",
    "DEFAULT_GRADE_TAGS",
    "GradeTag",
    "grade_rank",
    "normalize_condition",
]
