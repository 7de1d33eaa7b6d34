# src/casecorr/normalize/__init__.py

"""
Normalization layer for casecorr.
Data model, per-field comparison rules and search response parsing.
"""

from .schema import (
    CorrelationType,
    Correlation,
    CorrelationResult,
    EntityView,
    ExtractedRecord,
    FieldKind,
    MatchGroup,
    MatchResult,
    PatternMatch,
    PatternType,
    SearchResult,
    SocialMediaHandle,
)
from .transformer import parse_search_response

__all__ = [
    "CorrelationType",
    "Correlation",
    "CorrelationResult",
    "EntityView",
    "ExtractedRecord",
    "FieldKind",
    "MatchGroup",
    "MatchResult",
    "PatternMatch",
    "PatternType",
    "SearchResult",
    "SocialMediaHandle",
    "parse_search_response",
]
