# src/casecorr/correlate/__init__.py

"""
Matching and correlation for casecorr.
Duplicate grouping within a search batch, consolidation, and cross-entity correlation.
"""

from .consolidator import consolidate_records
from .engine import CorrelationEngine, compare_entities
from .extractor import extract_records
from .graph_db import GraphDatabase
from .matcher import MatchDetector, find_duplicate_groups
from .patterns import PatternDetector

__all__ = [
    "consolidate_records",
    "CorrelationEngine",
    "compare_entities",
    "extract_records",
    "GraphDatabase",
    "MatchDetector",
    "find_duplicate_groups",
    "PatternDetector",
]
