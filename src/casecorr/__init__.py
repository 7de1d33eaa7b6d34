# src/casecorr/__init__.py

"""
casecorr: identity deduplication and entity correlation for investigation cases.
Groups leak-search records describing the same person and scores links between case targets.
"""

__version__ = "0.1.0"
__author__ = "casecorr Development Team"

# No direct exports from root; subpackages are accessed explicitly
# e.g., from casecorr.correlate.matcher import find_duplicate_groups
